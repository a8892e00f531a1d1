"""API tests for the inquiry workflow, public links and appointments."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy.orm import Session

from rentema.db.models import BookingToken, Property, QuestionnaireToken
from rentema.services import inquiry_service


async def start_test_inquiry(authed_client: AsyncClient, prop: Property) -> dict:
    response = await authed_client.post(
        "/test/inquiries",
        json={"propertyId": str(prop.id), "message": "Is it still available?"},
    )
    assert response.status_code == 201
    return response.json()


def questionnaire_token(db: Session, inquiry_id: str) -> str:
    db.expire_all()
    return db.query(QuestionnaireToken).filter(
        QuestionnaireToken.inquiry_id == uuid.UUID(inquiry_id),
    ).one().token


def booking_tokens(db: Session, inquiry_id: str) -> list[BookingToken]:
    db.expire_all()
    return db.query(BookingToken).filter(
        BookingToken.inquiry_id == uuid.UUID(inquiry_id),
        BookingToken.invalidated_at.is_(None),
        BookingToken.consumed_at.is_(None),
    ).order_by(BookingToken.slot_start).all()


async def qualify_through_questionnaire(
    authed_client: AsyncClient, client: AsyncClient, db: Session, prop: Property, screening: dict
) -> dict:
    inquiry = await start_test_inquiry(authed_client, prop)
    token = questionnaire_token(db, inquiry["id"])
    response = await client.post(
        f"/public/questionnaire/{token}/submit",
        json={
            "responses": [
                {"questionId": screening["income"], "value": "4200"},
                {"questionId": screening["pets"], "value": "no"},
            ]
        },
    )
    assert response.status_code == 200
    assert response.json()["status"] == "qualified"
    return inquiry


@pytest.mark.asyncio
async def test_test_inquiry_requires_test_mode(authed_client: AsyncClient, db, rental: Property):
    rental.is_test_mode = False
    db.commit()

    response = await authed_client.post("/test/inquiries", json={"propertyId": str(rental.id)})
    assert response.status_code == 400
    assert response.json()["code"] == "ValidationError"


@pytest.mark.asyncio
async def test_test_inquiry_enters_questionnaire(authed_client: AsyncClient, rental, screening):
    inquiry = await start_test_inquiry(authed_client, rental)
    assert inquiry["status"] == "questionnaire_sent"
    assert inquiry["platformId"] == "test"


@pytest.mark.asyncio
async def test_public_questionnaire_flow(
    authed_client: AsyncClient, client: AsyncClient, db, rental, screening
):
    inquiry = await start_test_inquiry(authed_client, rental)
    token = questionnaire_token(db, inquiry["id"])

    page = await client.get(f"/public/questionnaire/{token}")
    assert page.status_code == 200
    assert [q["id"] for q in page.json()["questions"]] == [screening["income"], screening["pets"]]

    incomplete = await client.post(
        f"/public/questionnaire/{token}/submit",
        json={"responses": [{"questionId": screening["income"], "value": 5000}]},
    )
    assert incomplete.status_code == 400
    assert incomplete.json()["missing_question_ids"] == [screening["pets"]]

    submitted = await client.post(
        f"/public/questionnaire/{token}/submit",
        json={
            "responses": [
                {"questionId": screening["income"], "value": 2000},
                {"questionId": screening["pets"], "value": False},
            ]
        },
    )
    assert submitted.status_code == 200
    assert submitted.json()["status"] == "disqualified"

    again = await client.post(f"/public/questionnaire/{token}/submit", json={"responses": []})
    assert again.status_code == 409
    assert again.json()["code"] == "TokenAlreadyConsumed"


@pytest.mark.asyncio
async def test_inquiry_detail_and_override(
    authed_client: AsyncClient, client: AsyncClient, db, rental, screening
):
    inquiry = await start_test_inquiry(authed_client, rental)

    early = await authed_client.post(
        f"/inquiries/{inquiry['id']}/override", json={"type": "qualify"}
    )
    assert early.status_code == 409
    assert early.json()["code"] == "StateError"
    assert early.json()["current_status"] == "questionnaire_sent"

    note = await authed_client.post(
        f"/inquiries/{inquiry['id']}/notes", json={"note": "Called back, left voicemail"}
    )
    assert note.status_code == 201

    detail = await authed_client.get(f"/inquiries/{inquiry['id']}")
    assert detail.status_code == 200
    body = detail.json()
    assert [e["toStatus"] for e in body["events"]] == ["new", "questionnaire_sent"]
    assert body["notes"][0]["note"] == "Called back, left voicemail"
    assert len(body["questionSnapshot"]) == 2

    listing = await authed_client.get("/inquiries", params={"status": "questionnaire_sent"})
    assert [i["id"] for i in listing.json()] == [inquiry["id"]]


@pytest.mark.asyncio
async def test_public_booking_flow(
    authed_client: AsyncClient, client: AsyncClient, db, rental, screening, video_schedule
):
    inquiry = await qualify_through_questionnaire(authed_client, client, db, rental, screening)
    tokens = booking_tokens(db, inquiry["id"])
    assert tokens

    details = await client.get(f"/public/booking/{tokens[0].token}")
    assert details.status_code == 200
    assert details.json()["propertyAddress"] == rental.address
    assert details.json()["startTime"] == tokens[0].slot_start_time

    confirmed = await client.post(f"/public/booking/{tokens[0].token}/confirm")
    assert confirmed.status_code == 200
    assert confirmed.json()["appointment"]["status"] == "scheduled"

    replay = await client.post(f"/public/booking/{tokens[0].token}/confirm")
    assert replay.status_code == 409
    assert replay.json()["code"] == "TokenAlreadyConsumed"

    sibling = await client.get(f"/public/booking/{tokens[1].token}")
    assert sibling.status_code == 410
    assert sibling.json()["code"] == "TokenExpired"

    detail = await authed_client.get(f"/inquiries/{inquiry['id']}")
    assert detail.json()["status"] == "appointment_scheduled"
    assert len(detail.json()["appointments"]) == 1


@pytest.mark.asyncio
async def test_booking_link_errors(client: AsyncClient, authed_client, db, rental, screening, video_schedule):
    missing = await client.get("/public/booking/not-a-token")
    assert missing.status_code == 404
    assert missing.json()["code"] == "TokenNotFound"

    inquiry = await qualify_through_questionnaire(authed_client, client, db, rental, screening)
    token = booking_tokens(db, inquiry["id"])[0]
    token.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    db.commit()

    expired = await client.post(f"/public/booking/{token.token}/confirm")
    assert expired.status_code == 410
    assert expired.json()["code"] == "TokenExpired"


@pytest.mark.asyncio
async def test_manual_offer_and_booking_by_manager(
    authed_client: AsyncClient, client: AsyncClient, db, rental, screening, video_schedule
):
    inquiry = await qualify_through_questionnaire(authed_client, client, db, rental, screening)

    offer = await authed_client.post(
        f"/inquiries/{inquiry['id']}/offer-slots", json={"maxSlots": 3, "duration": 60}
    )
    assert offer.status_code == 200
    assert offer.json()["generation"] == 2
    slots = offer.json()["slots"]
    assert len(slots) == 3
    assert slots[0]["bookingUrl"].endswith(slots[0]["token"])

    booked = await authed_client.post(
        "/scheduling/appointments",
        json={
            "inquiryId": inquiry["id"],
            "type": "video_call",
            "scheduledTime": slots[1]["slotStart"],
            "duration": 60,
        },
    )
    assert booked.status_code == 201
    appointment = booked.json()

    # Offered links die once the manager books directly
    stale = await client.get(f"/public/booking/{slots[0]['token']}")
    assert stale.status_code == 410

    listed = await authed_client.get("/scheduling/appointments", params={"status": "scheduled"})
    assert [a["id"] for a in listed.json()] == [appointment["id"]]

    completed = await authed_client.post(f"/inquiries/{inquiry['id']}/complete")
    assert completed.status_code == 200
    assert completed.json()["status"] == "appointment_completed"


@pytest.mark.asyncio
async def test_double_booking_same_slot_is_rejected(
    authed_client: AsyncClient, client: AsyncClient, db, rental, screening, video_schedule
):
    first = await qualify_through_questionnaire(authed_client, client, db, rental, screening)
    second = await qualify_through_questionnaire(authed_client, client, db, rental, screening)
    slot_start = booking_tokens(db, first["id"])[0].slot_start.isoformat()

    payload = {"type": "video_call", "scheduledTime": slot_start, "duration": 30}
    ok = await authed_client.post(
        "/scheduling/appointments", json={**payload, "inquiryId": first["id"]}
    )
    clash = await authed_client.post(
        "/scheduling/appointments", json={**payload, "inquiryId": second["id"]}
    )

    assert ok.status_code == 201
    assert clash.status_code == 409
    assert clash.json()["code"] == "SlotNoLongerAvailable"


@pytest.mark.asyncio
async def test_cancel_appointment_returns_slot(
    authed_client: AsyncClient, client: AsyncClient, db, rental, screening, video_schedule
):
    inquiry = await qualify_through_questionnaire(authed_client, client, db, rental, screening)
    token = booking_tokens(db, inquiry["id"])[0]
    confirmed = await client.post(f"/public/booking/{token.token}/confirm")
    appointment_id = confirmed.json()["appointment"]["id"]

    cancelled = await authed_client.delete(f"/scheduling/appointments/{appointment_id}")
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"

    slots = await authed_client.get(
        "/scheduling/availability/slots",
        params={
            "date": token.slot_date.isoformat(),
            "appointmentType": "video_call",
            "duration": token.duration_minutes,
        },
    )
    assert token.slot_start_time in [s["localStartTime"] for s in slots.json()["slots"]]

    detail = await authed_client.get(f"/inquiries/{inquiry['id']}")
    assert detail.json()["status"] == "cancelled"


@pytest.mark.asyncio
async def test_manager_sends_questionnaire_once(authed_client: AsyncClient, db, rental, screening):
    inquiry = inquiry_service.create_inquiry(
        db,
        rental,
        platform_id="zillow",
        external_inquiry_id="ext-42",
        prospective_tenant_id="tenant-42",
    )

    sent = await authed_client.post(f"/inquiries/{inquiry.id}/questionnaire")
    assert sent.status_code == 200
    body = sent.json()
    assert body["inquiry"]["status"] == "questionnaire_sent"
    token = questionnaire_token(db, str(inquiry.id))
    assert body["questionnaireUrl"].endswith(f"/questionnaire/{token}")

    again = await authed_client.post(f"/inquiries/{inquiry.id}/questionnaire")
    assert again.status_code == 409
    assert again.json()["current_status"] == "questionnaire_sent"


@pytest.mark.asyncio
async def test_nan_answer_is_judged_not_crashed(
    authed_client: AsyncClient, client: AsyncClient, db, rental, screening
):
    inquiry = await start_test_inquiry(authed_client, rental)
    token = questionnaire_token(db, inquiry["id"])
    # JSON literal NaN is accepted by the request parser
    body = (
        '{"responses": ['
        f'{{"questionId": "{screening["income"]}", "value": NaN}},'
        f'{{"questionId": "{screening["pets"]}", "value": false}}'
        "]}"
    )

    response = await client.post(
        f"/public/questionnaire/{token}/submit",
        content=body,
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "disqualified"
