from datetime import date, datetime

import pytest
from sqlalchemy import text

from studenthub.errors import PermissionDenied, StateConflict, ValidationFailed
from studenthub.models import db, Activity, User
from studenthub.services.approval import ApprovalWorkflow
from studenthub.services.policy import AuthorizationPolicy


@pytest.fixture
def workflow():
    return ApprovalWorkflow(AuthorizationPolicy(restrict_faculty_approval=True))


def get(model, id):
    return db.session.get(model, id)


class TestApprovalWorkflow:
    def test_approve_pending(self, ctx, users, make_activity, workflow):
        activity = get(Activity, make_activity())
        faculty = get(User, users['faculty'])

        workflow.approve(activity, faculty, 'Looks good')

        assert activity.status == 'approved'
        assert activity.approved_by_id == faculty.id
        assert activity.approval_date is not None
        assert activity.is_verified is True
        assert [c.message for c in activity.comments] == ['Looks good']

    def test_reject_records_reason_and_comment(self, ctx, users, make_activity, workflow):
        activity = get(Activity, make_activity())
        faculty = get(User, users['faculty'])

        workflow.reject(activity, faculty, 'Certificate missing')

        assert activity.status == 'rejected'
        assert activity.rejection_reason == 'Certificate missing'
        assert activity.comments[-1].message == 'Activity rejected: Certificate missing'

    def test_reject_requires_reason(self, ctx, users, make_activity, workflow):
        activity = get(Activity, make_activity())
        with pytest.raises(ValidationFailed):
            workflow.reject(activity, get(User, users['faculty']), '   ')
        assert activity.status == 'pending'

    def test_long_rejection_reason_refused_not_truncated(self, ctx, users, make_activity, workflow):
        activity = get(Activity, make_activity())
        faculty = get(User, users['faculty'])
        with pytest.raises(ValidationFailed):
            workflow.reject(activity, faculty, 'x' * 481)
        assert activity.status == 'pending'

        reason = 'y' * 480
        workflow.reject(activity, faculty, reason)
        assert activity.rejection_reason == reason
        assert activity.comments[-1].message == f'Activity rejected: {reason}'

    def test_second_decision_conflicts(self, ctx, users, make_activity, workflow):
        activity = get(Activity, make_activity())
        faculty = get(User, users['faculty'])
        workflow.approve(activity, faculty)

        with pytest.raises(StateConflict) as exc:
            workflow.approve(activity, get(User, users['admin']))
        assert 'approved' in exc.value.message

    def test_conditional_update_loses_race(self, ctx, users, make_activity, workflow):
        activity = get(Activity, make_activity())
        faculty = get(User, users['faculty'])
        assert activity.status == 'pending'

        # Another decider commits after our read but before our write
        with db.engine.begin() as conn:
            conn.execute(
                text("UPDATE activities SET status = 'approved', approved_by_id = :by, approval_date = :at "
                     "WHERE id = :id"),
                {'by': users['admin'], 'at': datetime.utcnow(), 'id': activity.id},
            )

        with pytest.raises(StateConflict) as exc:
            workflow.approve(activity, faculty, 'Me too')
        assert exc.value.message == 'Activity is already approved'
        assert activity.approved_by_id == users['admin']
        assert activity.comments == []

    def test_other_department_cannot_decide(self, ctx, users, make_activity, workflow):
        activity = get(Activity, make_activity(owner='chem_student'))
        with pytest.raises(PermissionDenied):
            workflow.approve(activity, get(User, users['physics_faculty']))

    def test_owner_edit_resets_decided_activity(self, ctx, users, make_activity, workflow):
        activity = get(Activity, make_activity())
        workflow.approve(activity, get(User, users['faculty']))

        workflow.owner_edit(activity, get(User, users['student']), {'title': 'Updated title'})
        db.session.commit()

        assert activity.title == 'Updated title'
        assert activity.status == 'pending'
        assert activity.approved_by_id is None
        assert activity.approval_date is None
        assert activity.is_verified is False

    def test_owner_edit_ignores_lifecycle_fields(self, ctx, users, make_activity, workflow):
        activity = get(Activity, make_activity())
        code = activity.verification_code

        workflow.owner_edit(activity, get(User, users['student']),
                            {'status': 'approved', 'verification_code': 'X', 'credits': 3})
        db.session.commit()

        assert activity.status == 'pending'
        assert activity.verification_code == code
        assert activity.credits == 3

    def test_owner_edit_rejects_inverted_dates(self, ctx, users, make_activity, workflow):
        activity = get(Activity, make_activity())
        with pytest.raises(ValidationFailed):
            workflow.owner_edit(activity, get(User, users['student']), {'end_date': date(2024, 1, 1)})
        assert activity.end_date == date(2024, 1, 17)

    def test_admin_edit_keeps_status(self, ctx, users, make_activity, workflow):
        activity = get(Activity, make_activity())
        workflow.approve(activity, get(User, users['faculty']))

        workflow.owner_edit(activity, get(User, users['admin']), {'credits': 4})
        db.session.commit()

        assert activity.status == 'approved'
        assert activity.credits == 4
