"""
Database Initialization Script
Creates all tables and seeds demo accounts plus a few sample activities
"""

import sys
import os
from datetime import date

# Add parent dir to path to import studenthub
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from studenthub import create_app
from studenthub.models import db, Activity
from studenthub.services.approval import ApprovalWorkflow
from studenthub.services.policy import AuthorizationPolicy
from studenthub.services.user_service import UserService

app = create_app()

DEMO_PASSWORD = 'password123'


def init_database(reset=False):
    """Create all database tables and seed demo data"""
    with app.app_context():
        try:
            print("🔧 Creating database tables...")
            if reset:
                db.drop_all()
            db.create_all()
            print("✅ Database tables created successfully!")

            if UserService.get_user_by_email('admin@demo.com'):
                print("ℹ️  Demo users already present, skipping seed")
                return True

            print("👤 Creating demo users...")
            admin = UserService.create_user(
                'admin@demo.com', DEMO_PASSWORD, 'admin',
                first_name='System', last_name='Administrator', is_verified=True,
            )
            faculty = UserService.create_user(
                'faculty@demo.com', DEMO_PASSWORD, 'faculty',
                first_name='Ada', last_name='Lovelace',
                department='Computer Science', designation='Associate Professor', is_verified=True,
            )
            student = UserService.create_user(
                'student@demo.com', DEMO_PASSWORD, 'student',
                first_name='Alan', last_name='Turing',
                department='Computer Science', year=3, semester=5, is_verified=True,
            )

            workshop = Activity(
                student_id=student.id, title='Machine Learning Workshop',
                description='Three-day hands-on workshop on supervised learning.',
                category='workshop', organizer='CS Society', mode='offline',
                start_date=date(2024, 1, 15), end_date=date(2024, 1, 17),
                credits=2, score=88, skills_gained=['Python', 'scikit-learn'], tags=['ml'],
            )
            hackathon = Activity(
                student_id=student.id, title='Campus Hackathon',
                description='24 hour hackathon building a campus navigation app.',
                category='competition', organizer='Tech Club', mode='hybrid',
                start_date=date(2024, 3, 2), end_date=date(2024, 3, 3),
                credits=1.5, skills_gained=['Flask', 'Teamwork'], tags=['hackathon'],
            )
            db.session.add_all([workshop, hackathon])
            db.session.commit()

            ApprovalWorkflow(AuthorizationPolicy()).approve(workshop, faculty, 'Certificate verified')

            print("✅ Demo data created successfully!")
            print("\nDemo Accounts (password: %s):" % DEMO_PASSWORD)
            for user in (admin, faculty, student):
                print(f"  - {user.role}: {user.email}")
            return True
        except Exception as e:
            print(f"❌ Error: {e}")
            import traceback
            traceback.print_exc()
            return False


if __name__ == '__main__':
    success = init_database(reset='--reset' in sys.argv)
    sys.exit(0 if success else 1)
