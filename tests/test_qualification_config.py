"""Tests for question and criteria configuration."""

import math

import pytest

from rentema.core.errors import ConfigurationError
from rentema.db.models import QualificationCriteria
from rentema.services import qualification_service


def test_questions_are_renumbered_by_requested_order(db, rental):
    saved = qualification_service.save_questions(
        db,
        rental,
        [
            {"text": "Second", "response_type": "text", "order": 5},
            {"text": "First", "response_type": "text", "order": 1},
        ],
    )
    assert [(q.text, q.order) for q in saved] == [("First", 0), ("Second", 1)]


def test_multiple_choice_requires_options(db, rental):
    with pytest.raises(ConfigurationError):
        qualification_service.save_questions(
            db, rental, [{"text": "Move-in?", "response_type": "multiple_choice"}]
        )
    with pytest.raises(ConfigurationError):
        qualification_service.save_questions(
            db, rental, [{"text": "Pets?", "response_type": "boolean", "options": ["yes"]}]
        )


def test_operator_must_suit_question_type(db, rental, screening):
    with pytest.raises(ConfigurationError):
        qualification_service.save_criteria(
            db,
            rental,
            [{"question_id": screening["pets"], "operator": "greater_than", "expected_value": 1}],
        )


def test_expected_value_must_match_question_type(db, rental, screening):
    income_id = qualification_service.list_questions(db, rental.id)[0].id
    with pytest.raises(ConfigurationError):
        qualification_service.save_criteria(
            db,
            rental,
            [{"question_id": income_id, "operator": "greater_than", "expected_value": "lots"}],
        )


@pytest.mark.parametrize("expected", [math.nan, math.inf, "nan", "-Infinity"])
def test_non_finite_expected_value_is_rejected(db, rental, screening, expected):
    income_id = qualification_service.list_questions(db, rental.id)[0].id
    with pytest.raises(ConfigurationError):
        qualification_service.save_criteria(
            db,
            rental,
            [{"question_id": income_id, "operator": "greater_than", "expected_value": expected}],
        )


def test_failed_criteria_save_keeps_existing_criteria(db, rental, screening):
    before = [c.id for c in qualification_service.list_criteria(db, rental.id)]
    pets_id = qualification_service.list_questions(db, rental.id)[1].id

    with pytest.raises(ConfigurationError):
        qualification_service.save_criteria(
            db,
            rental,
            [
                {"question_id": pets_id, "operator": "equals", "expected_value": True},
                {"question_id": pets_id, "operator": "contains", "expected_value": "x"},
            ],
        )

    assert [c.id for c in qualification_service.list_criteria(db, rental.id)] == before


def test_criteria_keep_submission_order(db, rental, screening):
    income, pets = qualification_service.list_questions(db, rental.id)
    saved = qualification_service.save_criteria(
        db,
        rental,
        [
            {"question_id": pets.id, "operator": "equals", "expected_value": "no"},
            {"question_id": income.id, "operator": "greater_than", "expected_value": "2500.5"},
        ],
    )
    assert [c.question_id for c in saved] == [pets.id, income.id]
    assert saved[0].expected_value is False
    assert saved[1].expected_value == 2500.5


def test_removing_a_question_drops_its_criteria(db, rental, screening):
    income, _ = qualification_service.list_questions(db, rental.id)

    qualification_service.save_questions(
        db,
        rental,
        [{"id": income.id, "text": "Monthly income (USD)?", "response_type": "number"}],
    )

    questions = qualification_service.list_questions(db, rental.id)
    assert [q.id for q in questions] == [income.id]
    assert questions[0].text == "Monthly income (USD)?"
    remaining = db.query(QualificationCriteria).filter(
        QualificationCriteria.property_id == rental.id
    ).all()
    assert [c.question_id for c in remaining] == [income.id]


def test_retyping_a_question_invalidates_its_criteria(db, rental, screening):
    income, pets = qualification_service.list_questions(db, rental.id)

    with pytest.raises(ConfigurationError):
        qualification_service.save_questions(
            db,
            rental,
            [
                {"id": income.id, "text": "Income?", "response_type": "boolean"},
                {"id": pets.id, "text": "Pets?", "response_type": "boolean"},
            ],
        )

    db.expire_all()
    assert qualification_service.list_questions(db, rental.id)[0].response_type == "number"
