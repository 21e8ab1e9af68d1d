# recovery_app/utils/monitoring.py

from datetime import datetime, timezone

from flask import Response, current_app, jsonify
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from recovery_app.models import db


class HealthChecker:
    """Health endpoints covering the database and the recovery store."""

    def __init__(self, app=None):
        self.app = app

    def basic_health_check(self):
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            db.session.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            current_app.logger.error("Health check database probe failed: %s", exc)
            return jsonify({"status": "unhealthy", "error": "database unavailable", "timestamp": timestamp}), 503
        except Exception as exc:
            current_app.logger.exception("Health check failed unexpectedly.", exc_info=exc)
            return jsonify({"status": "unhealthy", "error": str(exc), "timestamp": timestamp}), 503

        recovery_state = current_app.extensions.get("recovery", {})
        payload = {
            "status": "healthy",
            "timestamp": timestamp,
            "app": current_app.config.get("APP_NAME"),
            "version": current_app.config.get("APP_VERSION"),
            "recovery": {
                "enabled": bool(recovery_state.get("enabled")),
                "active_sessions": len(recovery_state["store"]) if recovery_state.get("enabled") else 0,
            },
        }
        return jsonify(payload), 200


def metrics_response():
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)


def init_monitoring(app):
    """Register the health and Prometheus metrics endpoints."""
    health_checker = HealthChecker(app)
    health_path = app.config.get("HEALTH_CHECK_ENDPOINT", "/health")
    metrics_path = app.config.get("METRICS_ENDPOINT", "/metrics")

    if "health_check" not in app.view_functions:
        app.add_url_rule(health_path, "health_check", health_checker.basic_health_check)
    if "metrics" not in app.view_functions:
        app.add_url_rule(metrics_path, "metrics", metrics_response)

    app.extensions["health_checker"] = health_checker
    return health_checker
