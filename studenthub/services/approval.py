import logging
from datetime import datetime

from sqlalchemy import update

from studenthub.models import db, Activity, ActivityComment, PENDING, APPROVED, REJECTED, MAX_REJECTION_REASON
from studenthub.errors import PermissionDenied, StateConflict, field_error
from studenthub.services.policy import ActivityContext

logger = logging.getLogger(__name__)

# Fields that identify the record or its lifecycle; never merged from an edit.
PROTECTED_FIELDS = {
    'id', 'student_id', 'status', 'approved_by_id', 'approval_date',
    'rejection_reason', 'verification_code', 'is_verified', 'created_at',
}


class ApprovalWorkflow:
    """
    Status transitions for an Activity.

        pending  --approve-->  approved
        pending  --reject--->  rejected
        approved/rejected --owner edit--> pending

    Approve and reject are a single conditional UPDATE keyed on status='pending',
    so two racing deciders produce exactly one transition.
    """

    def __init__(self, policy):
        self.policy = policy

    def approve(self, activity, actor, comment=None):
        values = {
            'status': APPROVED,
            'approved_by_id': actor.id,
            'approval_date': datetime.utcnow(),
            'is_verified': True,
            'rejection_reason': None,
        }
        message = comment.strip() if comment and comment.strip() else None
        return self._decide(activity, actor, values, message)

    def reject(self, activity, actor, reason):
        reason = (reason or '').strip()
        if not reason:
            raise field_error('rejectionReason', 'Rejection reason is required when rejecting an activity')
        if len(reason) > MAX_REJECTION_REASON:
            raise field_error('rejectionReason',
                              f'Rejection reason cannot exceed {MAX_REJECTION_REASON} characters', len(reason))
        values = {
            'status': REJECTED,
            'approved_by_id': actor.id,
            'approval_date': datetime.utcnow(),
            'is_verified': False,
            'rejection_reason': reason,
        }
        return self._decide(activity, actor, values, f'Activity rejected: {reason}')

    def _decide(self, activity, actor, values, comment_message):
        if not self.policy.can_decide(actor, ActivityContext.of(activity)):
            raise PermissionDenied('Faculty can only approve activities from their department')
        if activity.status != PENDING:
            raise StateConflict(f'Activity is already {activity.status}')

        result = db.session.execute(
            update(Activity)
            .where(Activity.id == activity.id, Activity.status == PENDING)
            .values(**values),
            execution_options={'synchronize_session': False},
        )
        if result.rowcount != 1:
            db.session.rollback()
            db.session.refresh(activity)
            raise StateConflict(f'Activity is already {activity.status}')

        if comment_message:
            db.session.add(ActivityComment(activity_id=activity.id, user_id=actor.id, message=comment_message))
        db.session.commit()
        db.session.refresh(activity)

        logger.info("Activity %s %s by user %s", activity.id, values['status'], actor.id)
        return activity

    def owner_edit(self, activity, actor, changes):
        """Merge edited fields; an owner touching a decided activity sends it back for review."""
        start = changes.get('start_date') or activity.start_date
        end = changes.get('end_date') or activity.end_date
        if end < start:
            raise field_error('endDate', 'End date must be after or equal to start date', end.isoformat())

        for name, value in changes.items():
            if name in PROTECTED_FIELDS:
                continue
            setattr(activity, name, value)

        is_owner = actor.role == 'student' and activity.student_id == actor.id
        if is_owner and activity.status in (APPROVED, REJECTED):
            previous = activity.status
            activity.status = PENDING
            activity.approved_by_id = None
            activity.approval_date = None
            activity.rejection_reason = None
            activity.is_verified = False
            logger.info("Activity %s reset from %s to pending after owner edit", activity.id, previous)
        return activity
