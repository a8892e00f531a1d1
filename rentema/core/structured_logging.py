"""Structured logging helpers (PII-safe)."""

from typing import Any
from uuid import UUID


def build_log_context(
    *,
    manager_id: UUID | str | None = None,
    inquiry_id: UUID | str | None = None,
    property_id: UUID | str | None = None,
    appointment_id: UUID | str | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict (identifiers only, never tenant data)."""
    context: dict[str, Any] = {}
    if manager_id:
        context["manager_id"] = str(manager_id)
    if inquiry_id:
        context["inquiry_id"] = str(inquiry_id)
    if property_id:
        context["property_id"] = str(property_id)
    if appointment_id:
        context["appointment_id"] = str(appointment_id)
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
