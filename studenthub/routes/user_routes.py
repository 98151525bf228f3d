from flask import Blueprint, request
from flask_login import current_user, login_required

from studenthub.auth import ok, page_envelope, parse_body, role_required
from studenthub.errors import PermissionDenied
from studenthub.schemas import AdminUserUpdate, RegisterRequest
from studenthub.services.activity_query import clamp_pagination
from studenthub.services.user_service import UserService

user_bp = Blueprint('users', __name__)


def _actor():
    return current_user._get_current_object()


@user_bp.route('', methods=['GET'])
@role_required('admin', 'faculty')
def list_users():
    page, limit = clamp_pagination(request.args.get('page', 1, type=int), request.args.get('limit', 10, type=int))
    pagination = UserService.list_users(
        _actor(),
        role=request.args.get('role') or None,
        department=request.args.get('department') or None,
        search=request.args.get('search') or None,
        page=page,
        limit=limit,
    )
    return page_envelope(pagination, [u.to_dict() for u in pagination.items])


@user_bp.route('', methods=['POST'])
@role_required('admin')
def create_user():
    payload = parse_body(RegisterRequest)
    user = UserService.create_user(
        payload.email,
        payload.password,
        payload.role,
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone,
        department=payload.department,
        year=payload.year,
        semester=payload.semester,
        designation=payload.designation,
        is_verified=True,
    )
    return ok(user.to_dict(), 'User created successfully', 201)


@user_bp.route('/students/<department>', methods=['GET'])
@role_required('admin', 'faculty')
def department_students(department):
    actor = _actor()
    if actor.role == 'faculty' and actor.department != department:
        raise PermissionDenied('Faculty can only view students from their department')
    students = UserService.students_in_department(department)
    return ok([s.to_dict() for s in students], count=len(students))


@user_bp.route('/<int:user_id>', methods=['GET'])
@login_required
def get_user(user_id):
    user = UserService.get_visible_user(_actor(), user_id)
    data = user.to_dict()
    if user.role == 'student':
        data['activityStats'] = UserService.activity_summary(user)
    return ok(data)


@user_bp.route('/<int:user_id>', methods=['PUT'])
@role_required('admin')
def update_user(user_id):
    payload = parse_body(AdminUserUpdate)
    user = UserService.get_visible_user(_actor(), user_id)
    user = UserService.admin_update(user, payload.model_dump(exclude_unset=True), _actor())
    return ok(user.to_dict(), 'User updated successfully')


@user_bp.route('/<int:user_id>', methods=['DELETE'])
@role_required('admin')
def delete_user(user_id):
    user = UserService.get_visible_user(_actor(), user_id)
    UserService.deactivate(user, _actor())
    return ok(message='User deactivated successfully')
