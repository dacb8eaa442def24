"""ORM models for surveys, responses, GM assignments, coupons and form sessions."""

from app.models.database import Base, engine, SessionLocal, get_db, init_db, session_scope
from app.models.survey import Survey, Question, QuestionOption
from app.models.response import Response, Answer
from app.models.gm import GMInterest, GMConvention, GMAdventure
from app.models.coupon import CouponCode, CouponDelivery, CouponStatus
from app.models.session import SurveySession, FlowMode

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "init_db",
    "session_scope",
    "Survey",
    "Question",
    "QuestionOption",
    "Response",
    "Answer",
    "GMInterest",
    "GMConvention",
    "GMAdventure",
    "CouponCode",
    "CouponDelivery",
    "CouponStatus",
    "SurveySession",
    "FlowMode",
]
