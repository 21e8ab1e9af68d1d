"""
Helpers for reading error recovery feature flags from Flask config.
"""

from __future__ import annotations

from flask import Flask, current_app


def is_recovery_enabled(app: Flask | None = None) -> bool:
    target = app or current_app
    return bool(target.config.get("RECOVERY_ENABLED", False))
