# Overview: Flask API routes for access grant management; global admins only.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_global_admin
from ..services import access_service
from ..services.access_service import GrantError


access_bp = Blueprint("access", __name__, url_prefix="/api/access")


@access_bp.get("/grants")
@require_auth
@require_global_admin
def list_grants_route():
    """
    Query params:
    - user_id: int (optional)
    - include_deleted: "true" to include revoked grants
    """
    user_id = request.args.get("user_id", type=int)
    include_deleted = request.args.get("include_deleted", "false").lower() == "true"
    grants = access_service.list_grants(user_id=user_id, include_deleted=include_deleted)
    return jsonify({"data": [grant.to_dict() for grant in grants]}), 200


@access_bp.post("/grants")
@require_auth
@require_global_admin
def create_grant_route():
    data = request.get_json(silent=True) or {}
    user_id = data.get("user_id")
    entity_type = data.get("entity_type")
    entity_id = data.get("entity_id")

    if not all([user_id, entity_type, entity_id]):
        return jsonify({"error": "user_id, entity_type and entity_id are required"}), 400

    try:
        grant = access_service.grant_access(
            user_id=int(user_id),
            entity_type=entity_type,
            entity_id=int(entity_id),
            level=data.get("level"),
            is_guest=bool(data.get("is_guest", False)),
            granted_by_user_id=g.current_user.id,
        )
    except (GrantError, ValueError) as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"data": grant.to_dict()}), 201


@access_bp.delete("/grants/<int:grant_id>")
@require_auth
@require_global_admin
def revoke_grant_route(grant_id: int):
    if not access_service.revoke_access(grant_id=grant_id, revoked_by_user_id=g.current_user.id):
        return jsonify({"error": "Grant not found"}), 404
    return jsonify({"message": "Grant revoked"}), 200
