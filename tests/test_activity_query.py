from datetime import date, datetime

import pytest

from studenthub.errors import ValidationFailed
from studenthub.models import db, User
from studenthub.services.activity_query import ActivityQuery, clamp_pagination, like_pattern


def titles(query):
    return sorted(a.title for a in query.paginate().items)


@pytest.fixture
def dataset(ctx, users, make_activity):
    make_activity('student', title='Python Workshop', category='workshop', start_date=date(2024, 1, 10),
                  end_date=date(2024, 1, 11))
    make_activity('student', title='Robotics Contest', category='competition', organizer='IEEE',
                  start_date=date(2024, 3, 5), end_date=date(2024, 3, 5))
    make_activity('classmate', title='100% Attendance Award', category='award', start_date=date(2024, 2, 1),
                  end_date=date(2024, 2, 1))
    make_activity('chem_student', title='Chemistry Olympiad', category='competition',
                  start_date=date(2024, 4, 1), end_date=date(2024, 4, 2))
    make_activity('chem_student', title='Lab Safety Seminar', category='workshop', status='approved',
                  approved_by_id=users['physics_faculty'], approval_date=datetime.utcnow(),
                  start_date=date(2024, 5, 1), end_date=date(2024, 5, 1))
    return users


def actor(users, key):
    return db.session.get(User, users[key])


class TestActivityQuery:
    def test_student_sees_only_own(self, dataset):
        query = ActivityQuery(actor(dataset, 'student'))
        assert titles(query) == ['Python Workshop', 'Robotics Contest']

    def test_student_filter_ignored_for_students(self, dataset):
        query = ActivityQuery(actor(dataset, 'student'), student=dataset['classmate'])
        assert titles(query) == ['Python Workshop', 'Robotics Contest']

    def test_faculty_department_scope(self, dataset):
        query = ActivityQuery(actor(dataset, 'faculty'))
        assert titles(query) == ['100% Attendance Award', 'Python Workshop', 'Robotics Contest']

    def test_faculty_other_department_only_through_approver(self, dataset):
        query = ActivityQuery(actor(dataset, 'physics_faculty'))
        assert titles(query) == ['Lab Safety Seminar']

    def test_department_filter_cannot_widen_scope(self, dataset):
        query = ActivityQuery(actor(dataset, 'faculty'), department='Chemistry')
        assert titles(query) == []

    def test_admin_sees_everything(self, dataset):
        assert len(ActivityQuery(actor(dataset, 'admin')).paginate().items) == 5

    def test_empty_string_means_no_filter(self, dataset):
        admin = actor(dataset, 'admin')
        assert titles(ActivityQuery(admin, category='')) == titles(ActivityQuery(admin))
        assert titles(ActivityQuery(admin, status='', search='  ')) == titles(ActivityQuery(admin))

    def test_category_and_status_filters(self, dataset):
        admin = actor(dataset, 'admin')
        assert titles(ActivityQuery(admin, category='competition')) == ['Chemistry Olympiad', 'Robotics Contest']
        assert titles(ActivityQuery(admin, status='approved')) == ['Lab Safety Seminar']

    def test_search_is_case_insensitive_over_organizer(self, dataset):
        assert titles(ActivityQuery(actor(dataset, 'admin'), search='ieee')) == ['Robotics Contest']

    def test_search_escapes_wildcards(self, dataset):
        assert titles(ActivityQuery(actor(dataset, 'admin'), search='100%')) == ['100% Attendance Award']
        assert titles(ActivityQuery(actor(dataset, 'admin'), search='%')) == ['100% Attendance Award']

    def test_date_range_on_start_date(self, dataset):
        query = ActivityQuery(actor(dataset, 'admin'), start_date='2024-02-01', end_date='2024-03-31')
        assert titles(query) == ['100% Attendance Award', 'Robotics Contest']

    def test_sort_by_title(self, dataset):
        items = ActivityQuery(actor(dataset, 'admin'), sort='title').paginate().items
        assert [a.title for a in items][0] == '100% Attendance Award'
        items = ActivityQuery(actor(dataset, 'admin'), sort='-startDate').paginate().items
        assert items[0].title == 'Lab Safety Seminar'

    def test_malformed_student_filter_ignored_for_students(self, dataset):
        query = ActivityQuery(actor(dataset, 'student'), student='not-a-number')
        assert titles(query) == ['Python Workshop', 'Robotics Contest']

    def test_malformed_student_filter_rejected_for_staff(self, dataset):
        with pytest.raises(ValidationFailed):
            ActivityQuery(actor(dataset, 'faculty'), student='not-a-number')

    def test_unknown_sort_rejected(self, dataset):
        with pytest.raises(ValidationFailed):
            ActivityQuery(actor(dataset, 'admin'), sort='password')

    def test_invalid_category_rejected(self, dataset):
        with pytest.raises(ValidationFailed):
            ActivityQuery(actor(dataset, 'admin'), category='sleeping')

    def test_pagination_is_consistent_across_pages(self, dataset):
        admin = actor(dataset, 'admin')
        first = ActivityQuery(admin, page=1, limit=2).paginate()
        second = ActivityQuery(admin, page=2, limit=2).paginate()
        assert (first.total, first.pages) == (second.total, second.pages) == (5, 3)
        assert {a.id for a in first.items}.isdisjoint({a.id for a in second.items})


class TestHelpers:
    def test_clamp_pagination(self):
        assert clamp_pagination(0, 500) == (1, 100)
        assert clamp_pagination(None, None) == (1, 10)
        assert clamp_pagination(3, 0) == (3, 1)

    def test_like_pattern(self):
        assert like_pattern('50%_off') == '%50\\%\\_off%'
