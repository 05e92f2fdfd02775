"""Utilities for formatting structured HTTP error responses."""

from __future__ import annotations

from typing import Any, Dict

from core.exceptions import (
    ConfigurationError,
    NotFoundError,
    ServiceError,
    ValidationError,
)


def _build_error_payload(
    *,
    error: str,
    message: str,
    context: Dict[str, Any] | None = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"error": error, "message": message}
    if context:
        payload["context"] = context
    return payload


def format_validation_error(exc: ValidationError) -> Dict[str, Any]:
    """Return a standard payload for :class:`ValidationError`."""

    context = {"field": exc.field} if getattr(exc, "field", None) else None
    return _build_error_payload(
        error="validation_error",
        message=str(exc),
        context=context,
    )


def format_not_found_error(exc: NotFoundError) -> Dict[str, Any]:
    """Return a standard payload for :class:`NotFoundError`."""

    context = {"resource": exc.resource} if getattr(exc, "resource", None) else None
    return _build_error_payload(
        error="not_found",
        message=str(exc),
        context=context,
    )


def format_configuration_error(exc: ConfigurationError) -> Dict[str, Any]:
    """Return a standard payload for :class:`ConfigurationError`."""

    context = {"key": exc.key} if getattr(exc, "key", None) else None
    return _build_error_payload(
        error="configuration_error",
        message=str(exc),
        context=context,
    )


def format_unavailable_error(exc: ServiceError) -> Dict[str, Any]:
    """Return a standard payload for an upstream that is not reachable yet."""

    return _build_error_payload(
        error="service_unavailable",
        message=str(exc),
    )


def format_service_error(exc: ServiceError) -> Dict[str, Any]:
    """Return a standard payload for generic service errors."""

    return _build_error_payload(
        error="service_error",
        message=str(exc),
    )


__all__ = [
    "format_configuration_error",
    "format_not_found_error",
    "format_service_error",
    "format_unavailable_error",
    "format_validation_error",
]
