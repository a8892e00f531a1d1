"""Public questionnaire router - tenants answer pre-qualification questions."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from rentema.core.deps import get_db
from rentema.core.rate_limit import PUBLIC_LIMIT, limiter
from rentema.schemas.booking import (
    PublicQuestion,
    PublicQuestionnaireRead,
    QuestionnaireSubmit,
    QuestionnaireSubmitResponse,
)
from rentema.services import questionnaire_service

router = APIRouter(prefix="/public/questionnaire", tags=["public-questionnaire"])


@router.get("/{token}", response_model=PublicQuestionnaireRead)
@limiter.limit(PUBLIC_LIMIT)
def get_questionnaire(
    token: str,
    request: Request,
    db: Session = Depends(get_db),
):
    view = questionnaire_service.get_questionnaire(db, token)
    return PublicQuestionnaireRead(
        tenant_name=view.inquiry.prospective_tenant_name or "",
        property_address=view.property_address,
        questions=[
            PublicQuestion(
                id=question["id"],
                text=question["text"],
                response_type=question["response_type"],
                options=question.get("options"),
                order=question.get("order", 0),
            )
            for question in view.questions
        ],
    )


@router.post("/{token}/submit", response_model=QuestionnaireSubmitResponse)
@limiter.limit(PUBLIC_LIMIT)
def submit_questionnaire(
    token: str,
    data: QuestionnaireSubmit,
    request: Request,
    db: Session = Depends(get_db),
):
    """Submit answers; qualification runs immediately."""
    inquiry = questionnaire_service.submit(
        db,
        token,
        {str(answer.question_id): answer.value for answer in data.responses},
    )
    return QuestionnaireSubmitResponse(
        message="Thanks! Your answers have been received.",
        status=inquiry.status,
    )
