"""Qualification criteria evaluation.

Pure functions: no database, no clock. Bad answer data never raises; it
fails the criterion and adds a diagnostic. A criterion pointing at a
question that is not in ``questions`` is a configuration bug and raises
ConfigurationError.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping, NamedTuple, Sequence

from rentema.core.errors import ConfigurationError
from rentema.db.enums import CriteriaOperator, ResponseType


class QualificationVerdict(NamedTuple):
    qualified: bool
    failed_criteria: list[Any]
    diagnostics: list[str]


class _Coerced(NamedTuple):
    ok: bool
    value: Any = None


_MISSING = object()

_TRUE_STRINGS = {"true", "yes", "1"}
_FALSE_STRINGS = {"false", "no", "0"}


# =============================================================================
# Coercion per response type
# =============================================================================


def _coerce_number(value: Any) -> _Coerced:
    if isinstance(value, bool):
        return _Coerced(False)
    if isinstance(value, (int, float, Decimal)):
        raw = str(value)
    elif isinstance(value, str):
        raw = value.strip()
    else:
        return _Coerced(False)
    try:
        number = Decimal(raw)
    except InvalidOperation:
        return _Coerced(False)
    # NaN and infinities do not order against real thresholds
    if not number.is_finite():
        return _Coerced(False)
    return _Coerced(True, number)


def _coerce_boolean(value: Any) -> _Coerced:
    if isinstance(value, bool):
        return _Coerced(True, value)
    if isinstance(value, int) and value in (0, 1):
        return _Coerced(True, bool(value))
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUE_STRINGS:
            return _Coerced(True, True)
        if normalized in _FALSE_STRINGS:
            return _Coerced(True, False)
    return _Coerced(False)


def _coerce_text(value: Any) -> _Coerced:
    if isinstance(value, str):
        return _Coerced(True, value)
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return _Coerced(True, str(value))
    return _Coerced(False)


COERCERS: dict[ResponseType, Callable[[Any], _Coerced]] = {
    ResponseType.TEXT: _coerce_text,
    ResponseType.NUMBER: _coerce_number,
    ResponseType.BOOLEAN: _coerce_boolean,
    ResponseType.MULTIPLE_CHOICE: _coerce_text,
}


# =============================================================================
# Operators per response type
# =============================================================================


def _equals(actual: Any, expected: Any) -> bool:
    return actual == expected


def _greater_than(actual: Any, expected: Any) -> bool:
    return actual > expected


def _less_than(actual: Any, expected: Any) -> bool:
    return actual < expected


def _contains_ci(actual: Any, expected: Any) -> bool:
    return expected.lower() in actual.lower()


OPERATOR_TABLE: dict[ResponseType, dict[CriteriaOperator, Callable[[Any, Any], bool]]] = {
    ResponseType.NUMBER: {
        CriteriaOperator.EQUALS: _equals,
        CriteriaOperator.GREATER_THAN: _greater_than,
        CriteriaOperator.LESS_THAN: _less_than,
    },
    ResponseType.TEXT: {
        CriteriaOperator.EQUALS: _equals,
        CriteriaOperator.CONTAINS: _contains_ci,
    },
    ResponseType.BOOLEAN: {
        CriteriaOperator.EQUALS: _equals,
    },
    ResponseType.MULTIPLE_CHOICE: {
        CriteriaOperator.EQUALS: _equals,
    },
}

if set(COERCERS) != set(ResponseType):
    raise RuntimeError("COERCERS must cover every ResponseType")
if set(OPERATOR_TABLE) != set(ResponseType):
    raise RuntimeError("OPERATOR_TABLE must cover every ResponseType")


# =============================================================================
# Public API
# =============================================================================


def _field(obj: Any, name: str) -> Any:
    """Read a field from an ORM row or a plain mapping."""
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def evaluate(
    answers: Mapping[Any, Any],
    criteria: Sequence[Any],
    questions: Mapping[Any, Any],
) -> QualificationVerdict:
    """
    Evaluate answers against conjunctive criteria.

    Args:
        answers: question id → raw answer value
        criteria: rows/mappings with ``question_id``, ``operator``, ``expected_value``
        questions: question id → row/mapping with ``response_type``

    Returns:
        QualificationVerdict listing every failing criterion in input order.
    """
    # Ids may arrive as UUIDs or strings depending on the caller
    answers_by_id = {str(k): v for k, v in answers.items()}
    questions_by_id = {str(k): v for k, v in questions.items()}

    failed: list[Any] = []
    diagnostics: list[str] = []

    for criterion in criteria:
        question_id = str(_field(criterion, "question_id"))
        question = questions_by_id.get(question_id)
        if question is None:
            raise ConfigurationError(
                f"Criterion references unknown question {question_id}",
                question_id=question_id,
            )

        reason = _check_criterion(criterion, question, answers_by_id.get(question_id, _MISSING))
        if reason is not None:
            failed.append(criterion)
            diagnostics.append(f"question {question_id}: {reason}")

    return QualificationVerdict(qualified=not failed, failed_criteria=failed, diagnostics=diagnostics)


def _check_criterion(criterion: Any, question: Any, answer: Any) -> str | None:
    """Return None when the criterion passes, otherwise a short failure reason."""
    if answer is _MISSING or answer is None or answer == "":
        return "no answer"

    try:
        response_type = ResponseType(_field(question, "response_type"))
    except ValueError:
        return f"unknown response type {_field(question, 'response_type')!r}"

    try:
        operator = CriteriaOperator(_field(criterion, "operator"))
    except ValueError:
        return f"unknown operator {_field(criterion, 'operator')!r}"

    compare = OPERATOR_TABLE[response_type].get(operator)
    if compare is None:
        return f"operator {operator.value} is not valid for {response_type.value} questions"

    coerce = COERCERS[response_type]
    actual = coerce(answer)
    if not actual.ok:
        return f"answer {answer!r} is not a valid {response_type.value}"
    expected = coerce(_field(criterion, "expected_value"))
    if not expected.ok:
        return f"expected value {_field(criterion, 'expected_value')!r} is not a valid {response_type.value}"

    if not compare(actual.value, expected.value):
        return f"{operator.value} {expected.value!r} not satisfied"
    return None


def failed_criteria_payload(failed: Sequence[Any]) -> list[dict[str, Any]]:
    """Serialize failing criteria for ``Inquiry.qualification_result``."""
    payload = []
    for criterion in failed:
        criterion_id = _field(criterion, "id")
        payload.append(
            {
                "id": str(criterion_id) if criterion_id is not None else None,
                "questionId": str(_field(criterion, "question_id")),
                "operator": _field(criterion, "operator"),
                "expectedValue": _field(criterion, "expected_value"),
            }
        )
    return payload
