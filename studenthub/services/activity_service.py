import logging

from sqlalchemy import case, func

from studenthub.models import db, Activity, ActivityDocument, ActivityComment, APPROVED, PENDING, REJECTED
from studenthub.errors import NotFound, PermissionDenied
from studenthub.services.approval import ApprovalWorkflow
from studenthub.services.activity_query import ActivityQuery, pending_for, clamp_pagination
from studenthub.services.policy import ActivityContext

logger = logging.getLogger(__name__)


def _documents(items):
    return [
        ActivityDocument(name=d.name, url=d.url, public_id=d.public_id, file_type=d.file_type)
        for d in items or []
    ]


class ActivityService:
    """Activity CRUD on top of the policy and approval workflow."""

    def __init__(self, policy):
        self.policy = policy
        self.workflow = ApprovalWorkflow(policy)

    def create(self, actor, payload):
        if not self.policy.allowed(actor, 'create'):
            raise PermissionDenied(f"User role '{actor.role}' is not authorized to access this route")

        fields = payload.model_dump(exclude={'documents'}, exclude_none=True)
        # Ownership and lifecycle fields always come from the server
        for name in ('student_id', 'status', 'approved_by_id', 'approval_date', 'rejection_reason', 'is_verified'):
            fields.pop(name, None)

        activity = Activity(student_id=actor.id, **fields)
        activity.documents = _documents(payload.documents)
        db.session.add(activity)
        db.session.commit()
        logger.info("Student %s created activity %s", actor.id, activity.id)
        return activity

    def get_visible(self, actor, activity_id):
        """Missing and not-viewable look the same to the caller."""
        activity = db.session.get(Activity, activity_id)
        if activity is None or not self.policy.allowed(actor, 'view', ActivityContext.of(activity)):
            raise NotFound('Activity not found')
        return activity

    def _require(self, actor, action, activity, message):
        if not self.policy.allowed(actor, action, ActivityContext.of(activity)):
            raise PermissionDenied(message)

    def update(self, actor, activity_id, payload):
        activity = self.get_visible(actor, activity_id)
        self._require(actor, 'edit', activity, 'Not authorized to update this activity')

        changes = payload.model_dump(exclude_unset=True, exclude_none=True, exclude={'documents'})
        try:
            self.workflow.owner_edit(activity, actor, changes)
            if 'documents' in payload.model_fields_set:
                activity.documents = _documents(payload.documents)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return activity

    def delete(self, actor, activity_id):
        activity = self.get_visible(actor, activity_id)
        if actor.role == 'student' and activity.status == APPROVED:
            raise PermissionDenied('Cannot delete approved activities')
        self._require(actor, 'delete', activity, 'Not authorized to delete this activity')
        db.session.delete(activity)
        db.session.commit()
        logger.info("User %s deleted activity %s", actor.id, activity_id)

    def decide(self, actor, activity_id, decision):
        activity = db.session.get(Activity, activity_id)
        context = ActivityContext.of(activity) if activity is not None else None
        # Deciders outside the department still reach the activity when the restriction is off
        if activity is None or not (
                self.policy.allowed(actor, 'view', context) or self.policy.can_decide(actor, context)):
            raise NotFound('Activity not found')
        if decision.status == APPROVED:
            return self.workflow.approve(activity, actor, decision.comments)
        return self.workflow.reject(activity, actor, decision.rejection_reason)

    def add_comment(self, actor, activity_id, message):
        activity = self.get_visible(actor, activity_id)
        self._require(actor, 'comment', activity, 'Not authorized to comment on this activity')
        comment = ActivityComment(activity_id=activity.id, user_id=actor.id, message=message)
        db.session.add(comment)
        db.session.commit()
        return comment

    def set_visibility(self, actor, activity_id, is_public):
        activity = self.get_visible(actor, activity_id)
        self._require(actor, 'share', activity, 'Not authorized to change visibility of this activity')
        activity.is_public = is_public
        db.session.commit()
        return activity

    def list(self, actor, args):
        return ActivityQuery.from_args(actor, args).paginate()

    @staticmethod
    def pending(actor, page=1, limit=10):
        page, limit = clamp_pagination(page, limit)
        return pending_for(actor).paginate(page=page, per_page=limit, error_out=False)

    @staticmethod
    def stats_summary(actor):
        criteria = ActivityQuery(actor).criteria()

        def scoped(query):
            return query.filter(criteria) if criteria is not None else query

        row = scoped(db.session.query(
            func.count(Activity.id),
            func.coalesce(func.sum(case((Activity.status == APPROVED, 1), else_=0)), 0),
            func.coalesce(func.sum(case((Activity.status == PENDING, 1), else_=0)), 0),
            func.coalesce(func.sum(case((Activity.status == REJECTED, 1), else_=0)), 0),
            func.coalesce(func.sum(Activity.credits), 0),
            func.avg(Activity.score),
        )).one()

        categories = scoped(db.session.query(
            Activity.category,
            func.count(Activity.id).label('count'),
            func.coalesce(func.sum(case((Activity.status == APPROVED, 1), else_=0)), 0),
        )).group_by(Activity.category).order_by(func.count(Activity.id).desc(), Activity.category).all()

        total, approved_total, pending, rejected, credits, average = row
        return {
            'summary': {
                'totalActivities': total,
                'approvedActivities': int(approved_total),
                'pendingActivities': int(pending),
                'rejectedActivities': int(rejected),
                'totalCredits': float(credits),
                'averageScore': round(float(average), 2) if average is not None else 0,
            },
            'categoryBreakdown': [
                {'category': category, 'count': count, 'approved': int(approved_count)}
                for category, count, approved_count in categories
            ],
        }
