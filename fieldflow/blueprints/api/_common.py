"""
Blueprint Common Utilities
==========================

Shared helper functions for all API blueprints.

Usage:
    from fieldflow.blueprints.api._common import (
        get_container, get_json, success, fail, get_session_registry,
    )
"""
from __future__ import annotations

import logging
from typing import TypeVar

from flask import current_app, request, session
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from fieldflow.domain.exceptions import ValidationError
from fieldflow.utils.http import error_response, success_response

logger = logging.getLogger("api._common")

ModelT = TypeVar("ModelT", bound=BaseModel)

# ============================================================================
# User Session Utilities
# ============================================================================


def get_user_id() -> int:
    """Get current user ID from session."""
    return session.get("user_id", 1)


def is_operator() -> bool:
    """Operators may act on every user's devices (e.g. a site-wide emergency stop)."""
    return session.get("user_role") == "operator"

# ============================================================================
# CONTAINER ACCESS
# ============================================================================


def get_container():
    """
    Get the service container from Flask app config.

    Raises:
        RuntimeError: If container is not configured
    """
    container = current_app.config.get("CONTAINER")
    if not container:
        raise RuntimeError("ServiceContainer not found in app config")
    return container


def get_session_registry():
    return get_container().session_registry


def get_telemetry_gateway():
    return get_container().telemetry_gateway


def get_decision_engine():
    return get_container().decision_engine

# ============================================================================
# REQUEST HELPERS
# ============================================================================


def get_json() -> dict:
    """Get JSON request body, or an empty dict if there is none."""
    return request.get_json(silent=True) or {}


def parse_body(model: type[ModelT]) -> ModelT:
    """Validate the JSON body against ``model``; raises a 400 ValidationError."""
    try:
        return model.model_validate(get_json())
    except PydanticValidationError as ve:
        raise ValidationError(
            "Invalid request",
            detail={"errors": ve.errors(include_url=False, include_context=False)},
        ) from ve

# ============================================================================
# RESPONSE HELPERS
# ============================================================================


def success(data: dict | list | None = None, status: int = 200, *, message: str | None = None):
    """Flask Response with format: {"ok": true, "data": ..., "error": null}"""
    return success_response(data, status, message=message)


def fail(message: str, status: int = 400, *, details: dict | None = None):
    """Flask Response with format: {"ok": false, "data": null, "error": {...}}"""
    return error_response(message, status, details=details)
