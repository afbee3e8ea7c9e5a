# Overview: Request decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .services import session_service
from .services.authorization_service import AccessContext


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def require_auth(f):
    """
    Require authentication and establish the access context.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.team_id: The team selected at login (None for team-less admins)
    - g.access_context: AccessContext handed to the authorization gate

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.team_id = context.team_id
        g.session_context = context
        g.access_context = AccessContext(user=context.user, team_id=context.team_id)

        return f(*args, **kwargs)

    return decorated_function


def require_global_admin(f):
    """Grant management and imports are global-admin operations. Use after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None:
            return jsonify({"error": "Authentication required"}), 401
        if not user.is_global_admin:
            return jsonify({
                "error": "Permission denied",
                "required_permission": "GLOBAL_ADMIN",
                "message": "Global administrator required",
            }), 403
        return f(*args, **kwargs)

    return decorated_function
