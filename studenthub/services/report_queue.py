import logging
import queue
import threading

from flask import current_app

from studenthub.models import db, Report, REPORT_GENERATING

logger = logging.getLogger(__name__)


class ReportQueue:
    """
    Hands report ids to a background worker thread.

    The Report row in `generating` state is the durable record of queued
    work; `resume_pending` re-submits whatever a previous process left
    behind. With REPORT_QUEUE_EAGER the job runs inline in the caller.
    """

    def __init__(self, app=None):
        self._queue = queue.Queue()
        self._worker = None
        self._lock = threading.Lock()
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        app.extensions['report_queue'] = self

    def submit(self, report_id):
        app = current_app._get_current_object()
        if app.config.get('REPORT_QUEUE_EAGER'):
            self.process(report_id)
            return
        self._ensure_worker()
        self._queue.put((app, report_id))

    def _ensure_worker(self):
        with self._lock:
            if self._worker is None or not self._worker.is_alive():
                self._worker = threading.Thread(target=self._run, name='report-worker', daemon=True)
                self._worker.start()

    def _run(self):
        while True:
            app, report_id = self._queue.get()
            try:
                with app.app_context():
                    self.process(report_id)
            finally:
                self._queue.task_done()

    def join(self):
        self._queue.join()

    def process(self, report_id):
        """Build one report. Failures end up on the Report row, never in the caller."""
        # Local import: the builder pulls in pandas, which the app factory does not need
        from studenthub.services.report_service import ReportBuilder

        report = db.session.get(Report, report_id)
        if report is None:
            logger.warning("Report %s vanished before generation", report_id)
            return
        if report.status != REPORT_GENERATING:
            return

        builder = ReportBuilder(current_app.config.get('MIN_COMPLIANCE_CREDITS', 20))
        try:
            file_info, statistics = builder.build(report)
            report.mark_completed(file_info, statistics)
            db.session.commit()
            logger.info("Report %s completed (%s bytes)", report_id, file_info['size'])
        except Exception as exc:
            logger.exception("Report %s generation failed", report_id)
            db.session.rollback()
            report = db.session.get(Report, report_id)
            report.mark_failed(str(exc) or exc.__class__.__name__)
            db.session.commit()

    def resume_pending(self, inline=False):
        ids = [r.id for r in Report.query.filter_by(status=REPORT_GENERATING).order_by(Report.id).all()]
        for report_id in ids:
            if inline:
                self.process(report_id)
            else:
                self.submit(report_id)
        logger.info("Resumed %d pending reports", len(ids))
        return ids
