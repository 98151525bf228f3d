import logging
import random
import time
from datetime import datetime

from sqlalchemy import func, or_, update
from werkzeug.security import generate_password_hash

from studenthub.models import db, User, Student, Activity, USER_CLASSES
from studenthub.errors import ValidationFailed, StateConflict, NotFound, field_error
from studenthub.services.activity_query import like_pattern

logger = logging.getLogger(__name__)

# Fields each variant carries beyond the shared user columns
VARIANT_FIELDS = {
    'student': ('department', 'year', 'semester', 'total_credits', 'cgpa'),
    'faculty': ('department', 'designation'),
    'admin': (),
}
PROFILE_FIELDS = ('first_name', 'last_name', 'phone', 'bio', 'year', 'semester', 'designation')


class UserService:
    @staticmethod
    def normalize_email(email):
        return (email or '').strip().lower()

    @staticmethod
    def get_user_by_email(email):
        return User.query.filter(func.lower(User.email) == UserService.normalize_email(email)).first()

    @staticmethod
    def get_user_by_id(user_id):
        return db.session.get(User, user_id)

    @staticmethod
    def _check_variant(role, fields):
        if role in ('student', 'faculty') and not fields.get('department'):
            raise field_error('department', 'Department is required for students and faculty')
        if role == 'student':
            for name, low, high in (('year', 1, 4), ('semester', 1, 8)):
                value = fields.get(name)
                if value is None or not low <= int(value) <= high:
                    raise field_error(name, f'{name.capitalize()} must be between {low} and {high}', value)
        if role == 'faculty' and not fields.get('designation'):
            raise field_error('designation', 'Designation is required for faculty')

    @staticmethod
    def _student_code(department):
        year = datetime.utcnow().strftime('%y')
        dept = ''.join(ch for ch in department if ch.isalnum())[:3].upper()
        while True:
            code = f'{year}{dept}{random.randint(0, 999):03d}'
            if not Student.query.filter_by(student_code=code).first():
                return code

    @staticmethod
    def create_user(email, password, role, **fields):
        """Factory for every user variant. Hashing and id minting happen here and only here."""
        if role not in USER_CLASSES:
            raise field_error('role', 'Role must be student, faculty, or admin', role)
        if UserService.get_user_by_email(email):
            raise ValidationFailed('User with this email already exists')

        UserService._check_variant(role, fields)
        allowed = set(VARIANT_FIELDS[role]) | {'first_name', 'last_name', 'phone', 'bio', 'is_verified'}
        values = {k: v for k, v in fields.items() if k in allowed and v is not None}

        user = USER_CLASSES[role](
            email=UserService.normalize_email(email),
            password_hash=generate_password_hash(password),
            is_active=True,
            **values
        )
        if role == 'student':
            user.student_code = UserService._student_code(user.department)
        elif role == 'faculty':
            user.employee_id = f'EMP{int(time.time() * 1000)}'

        db.session.add(user)
        db.session.commit()
        logger.info("Created %s account %s", role, user.email)
        return user

    @staticmethod
    def authenticate(email, password):
        user = UserService.get_user_by_email(email)
        if not user or not user.check_password(password):
            return None
        return user

    @staticmethod
    def record_login(user):
        user.last_login = datetime.utcnow()
        db.session.commit()

    @staticmethod
    def change_password(user, current_password, new_password):
        if not user.check_password(current_password):
            raise field_error('currentPassword', 'Current password is incorrect')
        user.password_hash = generate_password_hash(new_password)
        db.session.commit()

    @staticmethod
    def update_profile(user, changes):
        """Self-service edits; role-specific fields only apply to the matching variant."""
        for name in PROFILE_FIELDS:
            if name not in changes:
                continue
            if name in ('year', 'semester') and user.role != 'student':
                continue
            if name == 'designation' and user.role != 'faculty':
                continue
            setattr(user, name, changes[name])
        db.session.commit()
        return user

    @staticmethod
    def admin_update(user, changes, acting_admin):
        changes = dict(changes)
        new_role = changes.pop('role', None)

        if 'email' in changes and changes['email']:
            email = UserService.normalize_email(changes.pop('email'))
            clash = User.query.filter(func.lower(User.email) == email, User.id != user.id).first()
            if clash:
                raise field_error('email', 'Email already in use', email)
            user.email = email

        if changes.get('is_active') is False and user.id == acting_admin.id:
            raise StateConflict('Cannot deactivate your own account')

        if new_role and new_role != user.role:
            user = UserService._switch_role(user, new_role, changes)

        for name in ('first_name', 'last_name', 'phone', 'bio', 'is_active', 'is_verified'):
            if name in changes and changes[name] is not None:
                setattr(user, name, changes[name])
        for name in VARIANT_FIELDS[user.role]:
            if name in changes:
                setattr(user, name, changes[name])

        UserService._check_variant(user.role, {n: getattr(user, n) for n in VARIANT_FIELDS[user.role]})
        db.session.commit()
        return user

    @staticmethod
    def _switch_role(user, new_role, changes):
        """Move a user to another variant; required fields of the new role must be supplied or present."""
        merged = {name: changes.get(name, getattr(user, name, None)) for name in VARIANT_FIELDS[new_role]}
        UserService._check_variant(new_role, merged)

        user_id = user.id
        cleared = {'role': new_role}
        if new_role != 'student':
            cleared.update(year=None, semester=None, student_code=None)
        if new_role != 'faculty':
            cleared.update(designation=None, employee_id=None)
        if new_role == 'admin':
            cleared['department'] = None

        users = User.__table__
        db.session.flush()
        db.session.execute(update(users).where(users.c.id == user_id).values(**cleared))
        db.session.expunge(user)
        switched = db.session.get(USER_CLASSES[new_role], user_id)
        if new_role == 'student' and not switched.student_code:
            switched.student_code = UserService._student_code(merged['department'])
        if new_role == 'faculty' and not switched.employee_id:
            switched.employee_id = f'EMP{int(time.time() * 1000)}'
        logger.info("Changed role of user %s to %s", user_id, new_role)
        return switched

    @staticmethod
    def deactivate(user, acting_admin):
        if user.id == acting_admin.id:
            raise StateConflict('Cannot delete your own account')
        user.is_active = False
        db.session.commit()
        logger.info("Deactivated user %s", user.email)
        return user

    @staticmethod
    def list_users(actor, role=None, department=None, search=None, page=1, limit=10):
        query = User.query
        if role:
            query = query.filter(User.role == role)
        if department:
            query = query.filter(User.department == department)
        # Faculty only ever see their own department
        if actor.role == 'faculty':
            query = query.filter(User.department == actor.department)
        if search:
            term = like_pattern(search)
            query = query.filter(or_(
                User.first_name.ilike(term, escape='\\'),
                User.last_name.ilike(term, escape='\\'),
                User.email.ilike(term, escape='\\'),
                User.__table__.c.student_code.ilike(term, escape='\\'),
                User.__table__.c.employee_id.ilike(term, escape='\\'),
            ))
        return query.order_by(User.created_at.desc(), User.id.desc()).paginate(
            page=page, per_page=limit, error_out=False)

    @staticmethod
    def can_view(actor, user):
        return (
            actor.role == 'admin'
            or actor.id == user.id
            or (actor.role == 'faculty' and bool(actor.department) and user.department == actor.department)
        )

    @staticmethod
    def get_visible_user(actor, user_id):
        user = UserService.get_user_by_id(user_id)
        if user is None or not UserService.can_view(actor, user):
            raise NotFound('User not found')
        return user

    @staticmethod
    def activity_summary(student):
        rows = db.session.query(
            Activity.status,
            func.count(Activity.id),
            func.coalesce(func.sum(Activity.credits), 0),
        ).filter(Activity.student_id == student.id).group_by(Activity.status).all()
        return [{'status': status, 'count': count, 'totalCredits': float(credits)} for status, count, credits in rows]

    @staticmethod
    def students_in_department(department):
        return Student.query.filter_by(department=department, is_active=True).order_by(
            Student.year, Student.semester, Student.last_name).all()
