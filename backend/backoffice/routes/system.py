# backend/backoffice/routes/system.py
"""
System health endpoint.

Checks the local database and, when configured, the external import
source. The external source being down degrades the service but does not
make it unhealthy: access control keeps working without it.
"""

import time

from flask import Blueprint, current_app

from ..errors import ConfigurationError
from ..extensions import db
from ..models import AccessGrant, Permission, User
from ..services.external_source import ExternalSource
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        permission_count = db.session.query(Permission).count()
        grant_count = db.session.query(AccessGrant).filter(AccessGrant.deleted_at.is_(None)).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "permissions": permission_count,
                "live_grants": grant_count,
            },
        }
    except Exception:  # noqa: BLE001
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_external_source_health() -> dict:
    start_time = time.time()
    try:
        connected = ExternalSource.from_app().test_connection()
    except ConfigurationError:
        return {"status": "not_configured"}

    elapsed_ms = (time.time() - start_time) * 1000
    return {
        "status": "healthy" if connected else "degraded",
        "latency_ms": round(elapsed_ms, 2),
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database healthy (external source may be degraded)
    - 503: database unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    external_health = check_external_source_health()

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif external_health["status"] == "degraded":
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "external_source": external_health,
        },
    }, http_status
