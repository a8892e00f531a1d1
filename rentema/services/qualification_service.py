"""Pre-qualification question and criteria configuration.

Configuration problems are rejected here, at save time, with
ConfigurationError; the evaluator only ever sees criteria that passed
these checks (or snapshots of them).
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Callable
from uuid import UUID

from sqlalchemy.orm import Session

from rentema.core.errors import ConfigurationError
from rentema.core.structured_logging import build_log_context
from rentema.db.enums import ALLOWED_OPERATORS, CriteriaOperator, ResponseType
from rentema.db.models import Property, QualificationCriteria, Question
from rentema.services.criteria_evaluator import COERCERS

logger = logging.getLogger(__name__)


# =============================================================================
# Per-type validation tables
# =============================================================================


def _no_options(options: list[str] | None) -> list[str] | None:
    if options:
        raise ConfigurationError("Only multiple_choice questions take options")
    return None


def _require_options(options: list[str] | None) -> list[str] | None:
    cleaned = [option.strip() for option in options or [] if option and option.strip()]
    if not cleaned:
        raise ConfigurationError("Multiple choice questions must have options")
    if len(set(cleaned)) != len(cleaned):
        raise ConfigurationError("Multiple choice options must be unique")
    return cleaned


OPTION_VALIDATORS: dict[ResponseType, Callable[[list[str] | None], list[str] | None]] = {
    ResponseType.TEXT: _no_options,
    ResponseType.NUMBER: _no_options,
    ResponseType.BOOLEAN: _no_options,
    ResponseType.MULTIPLE_CHOICE: _require_options,
}

if set(OPTION_VALIDATORS) != set(ResponseType):
    raise RuntimeError("OPTION_VALIDATORS must cover every ResponseType")


def _normalize_expected(response_type: ResponseType, value: Any, options: list[str] | None) -> Any:
    """Coerce an expected value to its question's type; ConfigurationError when impossible."""
    coerced = COERCERS[response_type](value)
    if not coerced.ok or (response_type == ResponseType.TEXT and not str(coerced.value).strip()):
        raise ConfigurationError(
            f"Expected value {value!r} does not match question type {response_type.value}"
        )
    if response_type == ResponseType.NUMBER:
        number: Decimal = coerced.value
        return int(number) if number == number.to_integral_value() else float(number)
    if response_type == ResponseType.MULTIPLE_CHOICE and coerced.value not in (options or []):
        raise ConfigurationError(f"Expected value {value!r} is not one of the question's options")
    return coerced.value


def _as_uuid(value: Any) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def validate_criterion(question: Question, operator: str, expected_value: Any) -> Any:
    """
    Check a criterion against its question.

    Returns:
        expected value normalized to the question's type
    """
    try:
        response_type = ResponseType(question.response_type)
    except ValueError:
        raise ConfigurationError(f"Unknown response type: {question.response_type}")
    try:
        op = CriteriaOperator(operator)
    except ValueError:
        raise ConfigurationError(f"Unknown operator: {operator}")

    if op not in ALLOWED_OPERATORS[response_type]:
        allowed = ", ".join(sorted(o.value for o in ALLOWED_OPERATORS[response_type]))
        raise ConfigurationError(
            f"Operator {op.value} is not valid for {response_type.value} questions (allowed: {allowed})",
            question_id=str(question.id),
        )
    return _normalize_expected(response_type, expected_value, question.options)


# =============================================================================
# Questions
# =============================================================================


def list_questions(db: Session, property_id: UUID) -> list[Question]:
    return db.query(Question).filter(
        Question.property_id == property_id,
    ).order_by(Question.order, Question.created_at).all()


def save_questions(db: Session, prop: Property, questions: list[dict[str, Any]]) -> list[Question]:
    """
    Replace a property's question set.

    Items carrying the ``id`` of an existing question update it in place
    (criteria stay attached); questions left out are deleted along with
    their criteria. ``order`` is renumbered to a dense 0-based sequence.

    Raises:
        ConfigurationError: bad response type/options, unknown question id,
            or a kept criterion no longer valid for its edited question
    """
    existing = {q.id: q for q in list_questions(db, prop.id)}

    # Stable sort: requested order first, then submission position
    indexed = sorted(
        enumerate(questions),
        key=lambda item: (item[0] if item[1].get("order") is None else item[1]["order"], item[0]),
    )

    try:
        kept, removed = _apply_questions(db, prop, indexed, existing)
        db.flush()
        _revalidate_criteria(db, prop.id)
    except ConfigurationError:
        db.rollback()
        raise

    db.commit()
    logger.info(
        f"Saved {len(kept)} questions ({len(removed)} removed)",
        extra=build_log_context(property_id=prop.id),
    )
    return list_questions(db, prop.id)


def _apply_questions(
    db: Session,
    prop: Property,
    indexed: list[tuple[int, dict[str, Any]]],
    existing: dict[UUID, Question],
) -> tuple[list[Question], list[Question]]:
    kept: list[Question] = []
    seen: set[UUID] = set()
    for new_order, (_, data) in enumerate(indexed):
        try:
            response_type = ResponseType(data.get("response_type"))
        except ValueError:
            raise ConfigurationError(f"Invalid response type: {data.get('response_type')}")
        text = (data.get("text") or "").strip()
        if not text:
            raise ConfigurationError("Each question must have text")
        options = OPTION_VALIDATORS[response_type](data.get("options"))

        raw_id = data.get("id")
        if raw_id is not None:
            question_id = _as_uuid(raw_id)
            question = existing.get(question_id)
            if question is None or question_id in seen:
                raise ConfigurationError(f"Unknown question id: {raw_id}")
            seen.add(question_id)
        else:
            question = Question(property_id=prop.id)
            db.add(question)

        question.text = text
        question.response_type = response_type.value
        question.options = options
        question.order = new_order
        kept.append(question)

    removed = [q for qid, q in existing.items() if qid not in seen]
    if removed:
        db.query(QualificationCriteria).filter(
            QualificationCriteria.question_id.in_([q.id for q in removed]),
        ).delete(synchronize_session=False)
        for question in removed:
            db.delete(question)
    return kept, removed


def _revalidate_criteria(db: Session, property_id: UUID) -> None:
    questions = {q.id: q for q in list_questions(db, property_id)}
    for criterion in list_criteria(db, property_id):
        question = questions.get(criterion.question_id)
        if question is None:
            raise ConfigurationError(f"Criterion references unknown question {criterion.question_id}")
        validate_criterion(question, criterion.operator, criterion.expected_value)


# =============================================================================
# Criteria
# =============================================================================


def list_criteria(db: Session, property_id: UUID) -> list[QualificationCriteria]:
    return db.query(QualificationCriteria).filter(
        QualificationCriteria.property_id == property_id,
    ).order_by(QualificationCriteria.position).all()


def save_criteria(
    db: Session,
    prop: Property,
    criteria: list[dict[str, Any]],
) -> list[QualificationCriteria]:
    """
    Replace a property's criteria. All are validated before anything is written.

    Raises:
        ConfigurationError: unknown question, operator not allowed for the
            question type, or expected value of the wrong type
    """
    questions = {q.id: q for q in list_questions(db, prop.id)}

    validated: list[tuple[UUID, str, Any]] = []
    for data in criteria:
        question = questions.get(_as_uuid(data.get("question_id")))
        if question is None:
            raise ConfigurationError(
                f"Criterion references unknown question {data.get('question_id')}"
            )
        expected = validate_criterion(question, data.get("operator"), data.get("expected_value"))
        validated.append((question.id, data["operator"], expected))

    db.query(QualificationCriteria).filter(
        QualificationCriteria.property_id == prop.id,
    ).delete(synchronize_session=False)

    saved = []
    for position, (question_id, operator, expected) in enumerate(validated):
        criterion = QualificationCriteria(
            property_id=prop.id,
            question_id=question_id,
            operator=operator,
            expected_value=expected,
            position=position,
        )
        db.add(criterion)
        saved.append(criterion)

    db.commit()
    logger.info(
        f"Saved {len(saved)} qualification criteria",
        extra=build_log_context(property_id=prop.id),
    )
    return list_criteria(db, prop.id)
