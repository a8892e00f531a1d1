"""Tests for structured logging helpers."""

import uuid

from rentema.core.structured_logging import build_log_context


def test_build_log_context_includes_only_provided_fields():
    inquiry_id = uuid.uuid4()
    context = build_log_context(
        manager_id="manager-1",
        inquiry_id=inquiry_id,
        request_id="req-1",
        route="/public/booking/{token}/confirm",
        method="POST",
    )

    assert context == {
        "manager_id": "manager-1",
        "inquiry_id": str(inquiry_id),
        "request_id": "req-1",
        "route": "/public/booking/{token}/confirm",
        "method": "POST",
    }


def test_build_log_context_ignores_empty_fields():
    context = build_log_context(
        manager_id="",
        property_id=None,
        appointment_id="appt-1",
    )

    assert context == {"appointment_id": "appt-1"}
