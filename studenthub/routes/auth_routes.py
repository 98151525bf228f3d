from flask import Blueprint
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from studenthub.auth import ok, parse_body
from studenthub.errors import NotAuthenticated, PermissionDenied
from studenthub.schemas import LoginRequest, PasswordChange, ProfileUpdate, RegisterRequest
from studenthub.services.user_service import UserService

auth_bp = Blueprint('auth', __name__)


@auth_bp.route('/csrf-token', methods=['GET'])
def csrf_token():
    return ok({'csrfToken': generate_csrf()})


@auth_bp.route('/register', methods=['POST'])
def register():
    payload = parse_body(RegisterRequest)
    if payload.role == 'admin':
        raise PermissionDenied('Admin accounts can only be created by an administrator')

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
    )
    login_user(user)
    return ok({'user': user.to_dict()}, 'User registered successfully', 201)


@auth_bp.route('/login', methods=['POST'])
def login():
    payload = parse_body(LoginRequest)
    user = UserService.authenticate(payload.email, payload.password)
    if user is None:
        raise NotAuthenticated('Invalid credentials')
    if not user.is_active:
        raise NotAuthenticated('Account is deactivated. Please contact administrator.')

    login_user(user)
    UserService.record_login(user)
    return ok({'user': user.to_dict()}, 'Login successful')


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return ok(message='Logged out successfully')


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return ok({'user': current_user.to_dict()})


@auth_bp.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    payload = parse_body(ProfileUpdate)
    user = UserService.update_profile(
        current_user._get_current_object(), payload.model_dump(exclude_unset=True, exclude_none=True))
    return ok({'user': user.to_dict()}, 'Profile updated successfully')


@auth_bp.route('/password', methods=['PUT'])
@login_required
def change_password():
    payload = parse_body(PasswordChange)
    UserService.change_password(current_user._get_current_object(), payload.current_password, payload.new_password)
    return ok(message='Password updated successfully')
