"""
Re-runs report generation for every report still marked 'generating'.

Reports stay in that state when the process that queued them stopped
before the worker finished.
"""

import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from studenthub import create_app, report_queue

app = create_app()


def resume_reports():
    with app.app_context():
        ids = report_queue.resume_pending(inline=True)
        if ids:
            print(f"✅ Processed {len(ids)} pending report(s): {', '.join(str(i) for i in ids)}")
        else:
            print("ℹ️  No pending reports")


if __name__ == "__main__":
    resume_reports()
