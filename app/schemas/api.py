"""Pydantic schemas for HTTP request and response bodies."""

from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.survey import QuestionType


# Requests

class AnswerIn(BaseModel):
    """One answer row as sent by clients that manage their own form state."""
    question_id: int = Field(..., ge=1)
    answer_text: Optional[str] = None
    answer_value: Optional[str] = None


class RespondentInfo(BaseModel):
    email: Optional[str] = Field(None, max_length=255)
    name: Optional[str] = Field(None, max_length=255)


class SubmitSurveyRequest(BaseModel):
    answers: list[AnswerIn]
    respondent_info: Optional[RespondentInfo] = None


class UpdateResponseRequest(BaseModel):
    response_id: int = Field(..., ge=1)
    answers: list[AnswerIn]


class StartSessionRequest(BaseModel):
    convention: Optional[str] = Field(None, max_length=255, description="Convention from the survey link")


class SessionAnswerRequest(BaseModel):
    question_id: int = Field(..., ge=1)
    value: Union[int, str, list[str]]


class GMInterestRequest(BaseModel):
    response_id: int = Field(..., ge=1)
    first_name: Optional[str] = Field(None, max_length=255)
    last_name: Optional[str] = Field(None, max_length=255)
    email: Optional[str] = Field(None, max_length=255)


class OptionCreateRequest(BaseModel):
    question_id: int = Field(..., ge=1)
    option_text: str = Field(..., min_length=1, max_length=255)


class OptionUpdateRequest(BaseModel):
    option_id: int = Field(..., ge=1)
    option_text: str = Field(..., min_length=1, max_length=255)


class GMConventionCreateRequest(BaseModel):
    gm_option_id: int = Field(..., ge=1)
    convention_option_id: int = Field(..., ge=1)


class GMAdventureCreateRequest(BaseModel):
    gm_option_id: int = Field(..., ge=1)
    convention_option_id: int = Field(..., ge=1)
    adventure_option_id: int = Field(..., ge=1)


class CouponUploadRequest(BaseModel):
    codes: list[str] = Field(..., min_length=1)
    notes: Optional[str] = None


class CouponAssignRequest(BaseModel):
    response_id: int = Field(..., ge=1)


class CouponMarkUsedRequest(BaseModel):
    code: str = Field(..., min_length=1)
    action: Literal["copied", "emailed"]


class CouponDeliverRequest(BaseModel):
    response_id: int = Field(..., ge=1)
    coupon_code: str = Field(..., min_length=1)
    email_address: Optional[str] = None


class SendCouponEmailRequest(BaseModel):
    email: str = Field(..., max_length=255)
    coupon_code: str = Field(..., min_length=1)
    response_id: Optional[int] = None


# Responses

class OptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    option_text: str
    option_value: Optional[str] = None
    display_order: int = 0


class QuestionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    key: str
    question_text: str
    question_type: QuestionType
    is_required: bool
    display_order: int
    placeholder_text: Optional[str] = None
    validation_rules: Optional[dict] = None
    section: str
    visible_when: Optional[str] = None
    options: Optional[list[OptionOut]] = None
    empty_options_message: Optional[str] = Field(
        None, description="Shown as a disabled placeholder when narrowing left no options"
    )


class SurveyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: str
    title: str
    description: Optional[str] = None
    is_active: bool
    questions: list[QuestionOut] = Field(default_factory=list)
    convention_display_name: Optional[str] = None
    preselected_convention_value: Optional[str] = None


class CouponOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    status: str
    response_id: Optional[int] = None
    assigned_at: Optional[datetime] = None
    copied_at: Optional[datetime] = None
    emailed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class IssuedCoupon(BaseModel):
    """Coupon shown to a respondent; placeholders are not redeemable."""
    code: str
    placeholder: bool = False


class FlowStateOut(BaseModel):
    session_id: int
    survey_id: int
    mode: str
    current_index: int
    visible_count: int
    progress: float
    is_last_question: bool
    can_proceed: bool
    current_question: Optional[QuestionOut] = None
    answers: dict[str, Any] = Field(default_factory=dict)
    response_id: Optional[int] = None
    coupon: Optional[IssuedCoupon] = None
    convention_display_name: Optional[str] = None
    completed: bool = False
