# Overview: Flask API routes for read access to every access-controlled and reference resource.

"""
Resource routes

One blueprint serves list and show for every resource, so each endpoint
goes through the same gate:

    GET /api/<resource>       -> view_any, rows scoped by access grants
    GET /api/<resource>/<id>  -> view, 404 before 403

Gate outcomes (AuthenticationRequired, AccessDenied, NotFound) are turned
into 401/403/404 by the handlers registered in create_app.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..entities import Action, EntityKind, ReferenceKind
from ..extensions import db
from ..services.authorization_service import gate, model_for_resource


RESOURCE_SLUGS = {
    "brands": EntityKind.BRAND,
    "products": EntityKind.PRODUCT,
    "product-items": EntityKind.PRODUCT_ITEM,
    "orders": EntityKind.ORDER,
    "order-items": EntityKind.ORDER_ITEM,
    "expenses": EntityKind.EXPENSE,
    "customers": EntityKind.CUSTOMER,
    "addresses": EntityKind.ADDRESS,
    "categories": ReferenceKind.CATEGORY,
    "genders": ReferenceKind.GENDER,
    "expense-types": ReferenceKind.EXPENSE_TYPE,
}

MAX_PER_PAGE = 100

resources_bp = Blueprint("resources", __name__, url_prefix="/api")


def _resource_or_404(slug: str):
    resource = RESOURCE_SLUGS.get(slug)
    if resource is None:
        return None, (jsonify({"error": f"Unknown resource: {slug}"}), 404)
    return resource, None


@resources_bp.get("/<slug>")
@require_auth
def list_resource(slug: str):
    """
    List the rows of a resource the caller may see.

    Query params:
    - page: int (optional) - page number (1-indexed). If omitted, returns all rows.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    resource, error = _resource_or_404(slug)
    if error:
        return error

    gate.require(g.access_context, Action.VIEW_ANY, resource)

    model = model_for_resource(resource)
    query = gate.scope_query(g.access_context, resource, db.session.query(model)).order_by(model.id.asc())

    page = request.args.get("page", type=int)
    if page is None:
        return jsonify({"data": [row.to_dict() for row in query.all()]}), 200

    per_page = min(max(request.args.get("per_page", 20, type=int), 1), MAX_PER_PAGE)
    page = max(page, 1)
    total = query.count()
    rows = query.offset((page - 1) * per_page).limit(per_page).all()
    return jsonify({
        "data": [row.to_dict() for row in rows],
        "pagination": {"page": page, "per_page": per_page, "total": total},
    }), 200


@resources_bp.get("/<slug>/<int:entity_id>")
@require_auth
def show_resource(slug: str, entity_id: int):
    resource, error = _resource_or_404(slug)
    if error:
        return error

    record = gate.require(g.access_context, Action.VIEW, resource, entity_id)
    return jsonify({"data": record.to_dict()}), 200
