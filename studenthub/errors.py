import logging

from flask import jsonify, request
from pydantic import ValidationError as PydanticValidationError
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class APIError(Exception):
    status_code = 500
    default_message = 'Internal server error'

    def __init__(self, message=None, errors=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.errors = errors

    def to_response(self):
        body = {'success': False, 'message': self.message}
        if self.errors:
            body['errors'] = self.errors
        return jsonify(body), self.status_code


class ValidationFailed(APIError):
    status_code = 400
    default_message = 'Validation failed'


class StateConflict(APIError):
    """Legal request against an illegal current state."""
    status_code = 400
    default_message = 'Illegal state transition'


class NotAuthenticated(APIError):
    status_code = 401
    default_message = 'Not authorized, please log in'


class PermissionDenied(APIError):
    status_code = 403
    default_message = 'Not authorized to perform this action'


class NotFound(APIError):
    status_code = 404
    default_message = 'Resource not found'


class ReportGenerationError(Exception):
    """Raised inside background report builders; recorded on the Report, never returned."""


def pydantic_errors(exc):
    errors = []
    for err in exc.errors():
        field = '.'.join(str(part) for part in err.get('loc', ()))
        errors.append({
            'field': field,
            'message': err.get('msg'),
            'value': err.get('input') if not isinstance(err.get('input'), (dict, list)) else None,
        })
    return errors


def field_error(field, message, value=None):
    return ValidationFailed(errors=[{'field': field, 'message': message, 'value': value}])


def register_error_handlers(app):
    @app.errorhandler(APIError)
    def handle_api_error(error):
        return error.to_response()

    @app.errorhandler(PydanticValidationError)
    def handle_validation_error(error):
        return ValidationFailed(errors=pydantic_errors(error)).to_response()

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        message = error.description
        if error.code == 404:
            message = f'Route {request.path} not found'
        return jsonify({'success': False, 'message': message}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        logger.exception("Unhandled error: %s", error)
        return jsonify({'success': False, 'message': 'Internal server error'}), 500
