"""Pre-qualification question and criteria enums."""

from enum import Enum


class ResponseType(str, Enum):
    """
    Answer type of a pre-qualification question.

    Closed set: question validation and criteria evaluation both dispatch
    through per-type tables that must cover every member.
    """

    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    MULTIPLE_CHOICE = "multiple_choice"


class CriteriaOperator(str, Enum):
    EQUALS = "equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CONTAINS = "contains"


ALLOWED_OPERATORS: dict[ResponseType, frozenset[CriteriaOperator]] = {
    ResponseType.NUMBER: frozenset(
        {CriteriaOperator.EQUALS, CriteriaOperator.GREATER_THAN, CriteriaOperator.LESS_THAN}
    ),
    ResponseType.TEXT: frozenset({CriteriaOperator.EQUALS, CriteriaOperator.CONTAINS}),
    ResponseType.BOOLEAN: frozenset({CriteriaOperator.EQUALS}),
    ResponseType.MULTIPLE_CHOICE: frozenset({CriteriaOperator.EQUALS}),
}

if set(ALLOWED_OPERATORS) != set(ResponseType):
    raise RuntimeError("operator gate must cover every ResponseType")
