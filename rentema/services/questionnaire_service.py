"""Public questionnaire links.

One token per questionnaire send. Submitting through the link completes
the questionnaire and runs qualification.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, NamedTuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from rentema.core.config import settings
from rentema.core.errors import (
    TokenAlreadyConsumedError,
    TokenExpiredError,
    TokenNotFoundError,
)
from rentema.core.security import generate_token
from rentema.db.enums import InquiryStatus
from rentema.db.models import Inquiry, Property, QuestionnaireToken


class QuestionnaireView(NamedTuple):
    inquiry: Inquiry
    property_address: str
    questions: list[dict[str, Any]]


def questionnaire_url(token: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/questionnaire/{token}"


def issue_token(db: Session, inquiry: Inquiry) -> QuestionnaireToken:
    """Create a questionnaire link for the inquiry (no commit)."""
    record = QuestionnaireToken(
        token=generate_token(),
        inquiry_id=inquiry.id,
        expires_at=datetime.now(timezone.utc)
        + timedelta(hours=settings.QUESTIONNAIRE_TOKEN_TTL_HOURS),
    )
    db.add(record)
    db.flush()
    return record


def _load(db: Session, token: str, now: datetime) -> QuestionnaireToken:
    record = db.execute(
        select(QuestionnaireToken)
        .where(QuestionnaireToken.token == token)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not record:
        raise TokenNotFoundError("This questionnaire link is not valid.")
    if record.used_at is not None:
        raise TokenAlreadyConsumedError("This questionnaire has already been submitted.")
    if record.expires_at <= now:
        raise TokenExpiredError("This questionnaire link has expired.")
    return record


def get_questionnaire(db: Session, token: str) -> QuestionnaireView:
    """
    Questions to show on the public page, from the inquiry's snapshot.

    Raises:
        TokenNotFoundError, TokenExpiredError, TokenAlreadyConsumedError
    """
    record = _load(db, token, datetime.now(timezone.utc))
    inquiry = db.get(Inquiry, record.inquiry_id)
    if inquiry.status != InquiryStatus.QUESTIONNAIRE_SENT.value:
        raise TokenExpiredError("This questionnaire is no longer open.")
    address = db.execute(
        select(Property.address).where(Property.id == inquiry.property_id)
    ).scalar_one()
    questions = sorted(inquiry.question_snapshot or [], key=lambda q: q.get("order", 0))
    return QuestionnaireView(inquiry, address, questions)


def submit(db: Session, token: str, answers: dict[str, Any]) -> Inquiry:
    """
    Record answers through a questionnaire link.

    The link is claimed with a conditional UPDATE in the same transaction
    as the answers, so a duplicate submit sees TokenAlreadyConsumedError.
    A ValidationError for missing answers rolls the claim back.
    """
    from rentema.services import inquiry_workflow_service

    now = datetime.now(timezone.utc)
    record = _load(db, token, now)
    inquiry_id = record.inquiry_id

    result = db.execute(
        update(QuestionnaireToken)
        .where(QuestionnaireToken.token == token, QuestionnaireToken.used_at.is_(None))
        .values(used_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise TokenAlreadyConsumedError("This questionnaire has already been submitted.")

    return inquiry_workflow_service.complete_questionnaire(db, inquiry_id, answers)
