"""
Error recovery feature package.

Builds the record loader, session store and fix service for the app, and
conditionally mounts the recovery blueprint and CLI group.
"""

from __future__ import annotations

from typing import Any

from flask import Flask

from recovery_app.utils.recovery import is_recovery_enabled

from .adapters import RecordLoader
from .cli import get_disabled_recovery_group, recovery_cli
from .pipeline.recovery_service import ErrorRecoveryService
from .pipeline.recovery_store import RecoverySessionStore
from .pipeline.session_lookup import ImportSessionLocator
from .views import RECOVERY_EXTENSION_KEY, recovery_blueprint

__all__ = [
    "RECOVERY_EXTENSION_KEY",
    "ErrorRecoveryService",
    "ImportSessionLocator",
    "RecoverySessionStore",
    "get_recovery_service",
    "init_recovery",
    "shutdown_recovery",
]


def _set_cli(app: Flask, enabled: bool) -> None:
    """Register the appropriate CLI group based on flag state."""
    command_name = recovery_cli.name
    if command_name in app.cli.commands:
        app.cli.commands.pop(command_name)

    if enabled:
        app.cli.add_command(recovery_cli)
    else:
        app.cli.add_command(get_disabled_recovery_group())


def _build_state(app: Flask) -> dict[str, Any]:
    loader = RecordLoader(
        timeout_seconds=float(app.config.get("RECOVERY_LOADER_TIMEOUT_SECONDS", 10.0)),
        fallback_enabled=bool(app.config.get("RECOVERY_FIXTURE_FALLBACK", True)),
    )
    store = RecoverySessionStore(loader)
    service = ErrorRecoveryService(
        store,
        autofix_threshold=int(app.config.get("RECOVERY_AUTOFIX_THRESHOLD", 90)),
        max_bulk_findings=int(app.config.get("RECOVERY_MAX_BULK_FINDINGS", 5000)),
    )
    return {
        "enabled": True,
        "loader": loader,
        "store": store,
        "service": service,
        "locator": ImportSessionLocator(),
    }


def init_recovery(app: Flask) -> None:
    """
    Conditionally mount the recovery blueprint and CLI based on configuration.

    Records recovery state inside ``app.extensions['recovery']``. Calling this
    again replaces the store, shutting down the previous one.
    """
    enabled = is_recovery_enabled(app)
    if not enabled:
        shutdown_recovery(app)
        app.extensions[RECOVERY_EXTENSION_KEY] = {"enabled": False}
        _set_cli(app, enabled=False)
        app.logger.info("Error recovery disabled via RECOVERY_ENABLED flag; skipping registration.")
        return

    shutdown_recovery(app)
    app.extensions[RECOVERY_EXTENSION_KEY] = _build_state(app)

    if recovery_blueprint.name not in app.blueprints and not getattr(app, "_got_first_request", False):
        app.register_blueprint(recovery_blueprint)
    elif recovery_blueprint.name not in app.blueprints:
        app.logger.warning(
            "Recovery blueprint registration skipped because the app has already handled its first request."
        )
    _set_cli(app, enabled=True)
    app.logger.info(
        "Error recovery enabled (fixture fallback %s, loader timeout %ss).",
        "on" if app.config.get("RECOVERY_FIXTURE_FALLBACK", True) else "off",
        app.config.get("RECOVERY_LOADER_TIMEOUT_SECONDS", 10.0),
    )


def get_recovery_service(app: Flask) -> ErrorRecoveryService | None:
    state = app.extensions.get(RECOVERY_EXTENSION_KEY, {})
    return state.get("service")


def shutdown_recovery(app: Flask) -> None:
    """Drop every recovery session and stop the record loader."""
    state = app.extensions.get(RECOVERY_EXTENSION_KEY)
    if not state or not state.get("enabled"):
        return
    state["store"].shutdown()
    state["enabled"] = False
