from functools import wraps

from flask import current_app, jsonify, request
from flask_login import login_required, current_user

from studenthub.errors import PermissionDenied, ValidationFailed


# --- Auth Helpers ---
def role_required(*roles):
    def decorator(f):
        @wraps(f)
        @login_required
        def wrapped(*args, **kwargs):
            if current_user.role not in roles:
                raise PermissionDenied(f"User role '{current_user.role}' is not authorized to access this route")
            return f(*args, **kwargs)
        return wrapped
    return decorator


def get_policy():
    return current_app.extensions['authorization_policy']


def parse_body(schema):
    """Validate the JSON body against a pydantic schema; errors surface as 400."""
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationFailed('Request body must be a JSON object')
    return schema.model_validate(payload)


def ok(data=None, message=None, status=200, **extra):
    body = {'success': True}
    if message:
        body['message'] = message
    if data is not None:
        body['data'] = data
    body.update(extra)
    return jsonify(body), status


def page_envelope(pagination, items, message=None):
    return ok(
        items,
        message=message,
        count=len(items),
        total=pagination.total,
        pages=pagination.pages,
        currentPage=pagination.page,
    )
