# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .errors import UnauthorizedError
from .permissions import role_has_permission
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def _unauthorized(message: str):
    err = UnauthorizedError(message)
    return jsonify(err.to_dict()), err.status_code


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user and g.session_context for the route.
    Returns 401 if the header is missing, the token is invalid or expired,
    or the user is inactive or soft-deleted.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return _unauthorized("Authentication required")

        token = auth_header.split(" ", 1)[1]

        context = session_service.validate_session(token)

        if not context:
            return _unauthorized("Invalid or expired token")

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require the caller's role to grant permission_code (403 otherwise)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return _unauthorized("Authentication required")

            user = g.current_user
            if not role_has_permission(user.role, permission_code):
                current_app.logger.warning(
                    "Permission %s denied for user %s (%s) on %s %s",
                    permission_code, user.id, user.role, request.method, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
