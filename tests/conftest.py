from datetime import date

import pytest
from flask import has_app_context

from config import TestingConfig
from studenthub import create_app
from studenthub.models import db, Activity
from studenthub.services.user_service import UserService

PASSWORD = 'password123'

ACCOUNTS = {
    'student': dict(email='student@demo.com', role='student', first_name='Alan', last_name='Turing',
                    department='Computer Science', year=3, semester=5),
    'classmate': dict(email='classmate@demo.com', role='student', first_name='Grace', last_name='Hopper',
                      department='Computer Science', year=2, semester=3),
    'chem_student': dict(email='chem@demo.com', role='student', first_name='Rosalind', last_name='Franklin',
                         department='Chemistry', year=1, semester=1),
    'faculty': dict(email='faculty@demo.com', role='faculty', first_name='Ada', last_name='Lovelace',
                    department='Computer Science', designation='Professor'),
    'physics_faculty': dict(email='physics@demo.com', role='faculty', first_name='Marie', last_name='Curie',
                            department='Physics', designation='Professor'),
    'admin': dict(email='admin@demo.com', role='admin', first_name='System', last_name='Admin'),
}


@pytest.fixture
def app(tmp_path):
    class Config(TestingConfig):
        UPLOAD_FOLDER = str(tmp_path / 'uploads')
        REPORTS_FOLDER = str(tmp_path / 'reports')

    app = create_app(Config)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """App context for service-level tests. API tests run without one so each request gets a fresh `g`."""
    with app.app_context():
        yield


@pytest.fixture
def users(app):
    ids = {}
    with app.app_context():
        for key, account in ACCOUNTS.items():
            fields = dict(account)
            user = UserService.create_user(fields.pop('email'), PASSWORD, fields.pop('role'), **fields)
            ids[key] = user.id
    return ids


@pytest.fixture
def login(app, users):
    def _login(key, password=PASSWORD):
        client = app.test_client()
        resp = client.post('/api/auth/login', json={'email': ACCOUNTS[key]['email'], 'password': password})
        assert resp.status_code == 200, resp.get_json()
        return client
    return _login


@pytest.fixture
def make_activity(app, users):
    def _create(owner, overrides):
        fields = dict(
            title='Machine Learning Workshop',
            description='Hands-on workshop on supervised learning',
            category='workshop',
            organizer='CS Society',
            start_date=date(2024, 1, 15),
            end_date=date(2024, 1, 17),
            credits=2,
        )
        fields.update(overrides)
        activity = Activity(student_id=users[owner], **fields)
        db.session.add(activity)
        db.session.commit()
        return activity.id

    def _make(owner='student', **overrides):
        if has_app_context():
            return _create(owner, overrides)
        with app.app_context():
            return _create(owner, overrides)
    return _make
