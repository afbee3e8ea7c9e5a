# Overview: Flask API routes for the external import pipeline; global admins only.

"""
Import Routes

POST /api/import/sync body (all optional):
    date | from, to | last_days   date window (default: last 7 days)
    limit                         newest N rows instead of a window
    incremental                   resume after the stored checkpoint
    only                          "orders" | "expenses" (default both)
    chunk                         rows per chunk (1..1000)
    auto_create                   create missing products/expense types

Status codes: 200 with per-kind stats (also on partial row failures),
400 bad options, 409 another run holds the lease, 500 configuration,
503 external database unreachable.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_global_admin
from ..entities import ReferenceHandlingPolicy
from ..errors import ConfigurationError, ConnectivityError, ImportAlreadyRunning
from ..services.date_range import DateRangeError, resolve_date_range
from ..services.external_source import ExternalSource
from ..services.import_orchestrator import ImportOrchestrator, parse_only


imports_bp = Blueprint("imports", __name__, url_prefix="/api/import")

MAX_CHUNK = 1000


@imports_bp.get("/test-connection")
@require_auth
@require_global_admin
def test_connection_route():
    try:
        connected = ExternalSource.from_app().test_connection()
    except ConfigurationError as e:
        return jsonify({"connected": False, "message": str(e)}), 500

    return jsonify({
        "connected": connected,
        "message": (
            "Successfully connected to external database"
            if connected else "Failed to connect to external database"
        ),
    }), 200 if connected else 503


@imports_bp.post("/sync")
@require_auth
@require_global_admin
def sync_route():
    data = request.get_json(silent=True) or {}

    try:
        kinds = parse_only(data.get("only"))
        limit = int(data["limit"]) if data.get("limit") else None
        chunk = int(data["chunk"]) if data.get("chunk") else None
        last_days = int(data["last_days"]) if data.get("last_days") else None
        from_date, to_date = resolve_date_range(
            single_date=data.get("date"),
            from_date=data.get("from"),
            to_date=data.get("to"),
            last_days=last_days,
        )
    except (DateRangeError, ValueError, TypeError) as e:
        return jsonify({"error": str(e)}), 400

    if limit is not None and limit < 1:
        return jsonify({"error": "limit must be at least 1"}), 400
    if chunk is not None and not 1 <= chunk <= MAX_CHUNK:
        return jsonify({"error": f"chunk must be between 1 and {MAX_CHUNK}"}), 400

    policy = (
        ReferenceHandlingPolicy.AUTO_CREATE if data.get("auto_create")
        else ReferenceHandlingPolicy.SKIP_ON_MISSING
    )

    try:
        orchestrator = ImportOrchestrator.from_app(chunk_size=chunk)
        results = orchestrator.sync(
            kinds,
            policy=policy,
            from_date=from_date,
            to_date=to_date,
            limit=limit,
            incremental=bool(data.get("incremental")),
        )
    except ConfigurationError as e:
        current_app.logger.error("Import sync misconfigured: %s", e)
        return jsonify({"success": False, "error": str(e)}), 500
    except ConnectivityError as e:
        current_app.logger.error("Import sync failed: %s", e)
        return jsonify({"success": False, "error": str(e)}), 503
    except ImportAlreadyRunning as e:
        return jsonify({"success": False, "error": str(e)}), 409

    current_app.logger.info("Import sync completed via API for %s to %s", from_date, to_date)
    return jsonify({
        "success": True,
        "message": "Import completed successfully",
        "date_range": {"from": from_date.isoformat(), "to": to_date.isoformat()},
        "stats": {kind: stats.to_dict() for kind, stats in results.items()},
        "cancelled": any(stats.cancelled for stats in results.values()),
    }), 200
