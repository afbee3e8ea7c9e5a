# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

Bearer tokens: POST /login returns a token that goes into the
Authorization header of every other request.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import _bearer_token, require_auth
from ..services import auth_service, permission_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Body: {"username" | "email", "password", "team_id"?}
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username") or data.get("email")
    password = data.get("password")

    if not all([username, password]):
        return jsonify({"error": "username/email and password required"}), 400

    user = auth_service.authenticate(username, password)
    if not user:
        permission_service.log_security_event(
            user_id=None,
            event_type="LOGIN_FAILED",
            success=False,
            resource=request.path,
            action="login",
            reason=f"Invalid credentials for {username}",
        )
        return jsonify({"error": "Invalid credentials"}), 401

    try:
        session, token = session_service.create_session(user.id, team_id=data.get("team_id"))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    current_app.logger.info("User %s logged in (team %s)", user.username, session.team_id)
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(permission_service.get_user_permissions(user.id, session.team_id)),
        "token": token,
        "team_id": session.team_id,
        "message": "Login successful",
    }), 200


@auth_bp.post("/logout")
def logout_route():
    token = _bearer_token()
    if not token:
        return jsonify({"error": "Authorization header required"}), 401

    if not session_service.revoke_session(token):
        return jsonify({"error": "Invalid or expired token"}), 401

    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({
        "user": g.current_user.to_dict(),
        "team_id": g.team_id,
        "permissions": sorted(permission_service.get_user_permissions(g.current_user.id, g.team_id)),
    }), 200
