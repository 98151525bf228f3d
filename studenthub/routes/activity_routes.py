from flask import Blueprint, request
from flask_login import current_user, login_required

from studenthub.auth import get_policy, ok, page_envelope, parse_body, role_required
from studenthub.schemas import ActivityCreate, ActivityUpdate, ApprovalDecision, CommentIn, VisibilityIn
from studenthub.services.activity_service import ActivityService
from studenthub.services.policy import ActivityContext

activity_bp = Blueprint('activities', __name__)


def _service():
    return ActivityService(get_policy())


def _actor():
    return current_user._get_current_object()


@activity_bp.route('', methods=['GET'])
@login_required
def list_activities():
    pagination = _service().list(_actor(), request.args)
    return page_envelope(pagination, [a.to_dict() for a in pagination.items])


@activity_bp.route('', methods=['POST'])
@role_required('student')
def create_activity():
    payload = parse_body(ActivityCreate)
    activity = _service().create(_actor(), payload)
    return ok(activity.to_dict(), 'Activity created successfully', 201)


@activity_bp.route('/pending/approval', methods=['GET'])
@role_required('faculty', 'admin')
def pending_approval():
    pagination = ActivityService.pending(
        _actor(),
        page=request.args.get('page', 1, type=int),
        limit=request.args.get('limit', 10, type=int),
    )
    return page_envelope(pagination, [a.to_dict() for a in pagination.items])


@activity_bp.route('/stats/summary', methods=['GET'])
@login_required
def stats_summary():
    return ok(ActivityService.stats_summary(_actor()))


@activity_bp.route('/<int:activity_id>', methods=['GET'])
@login_required
def get_activity(activity_id):
    actor = _actor()
    activity = _service().get_visible(actor, activity_id)
    data = activity.to_dict(include_comments=True)
    data['permissions'] = get_policy().permissions(actor, ActivityContext.of(activity))
    return ok(data)


@activity_bp.route('/<int:activity_id>', methods=['PUT'])
@login_required
def update_activity(activity_id):
    payload = parse_body(ActivityUpdate)
    activity = _service().update(_actor(), activity_id, payload)
    return ok(activity.to_dict(), 'Activity updated successfully')


@activity_bp.route('/<int:activity_id>', methods=['DELETE'])
@login_required
def delete_activity(activity_id):
    _service().delete(_actor(), activity_id)
    return ok(message='Activity deleted successfully')


@activity_bp.route('/<int:activity_id>/approve', methods=['PATCH'])
@role_required('faculty', 'admin')
def approve_activity(activity_id):
    decision = parse_body(ApprovalDecision)
    activity = _service().decide(_actor(), activity_id, decision)
    return ok(activity.to_dict(include_comments=True), f'Activity {activity.status} successfully')


@activity_bp.route('/<int:activity_id>/comments', methods=['POST'])
@login_required
def add_comment(activity_id):
    payload = parse_body(CommentIn)
    comment = _service().add_comment(_actor(), activity_id, payload.message)
    return ok(comment.to_dict(), 'Comment added successfully', 201)


@activity_bp.route('/<int:activity_id>/visibility', methods=['PATCH'])
@login_required
def set_visibility(activity_id):
    payload = parse_body(VisibilityIn)
    activity = _service().set_visibility(_actor(), activity_id, payload.is_public)
    return ok({'id': activity.id, 'isPublic': activity.is_public}, 'Visibility updated successfully')
