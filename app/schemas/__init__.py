"""Pydantic schemas for data validation.

This package contains the Pydantic models for survey definitions and the
HTTP API bodies.
"""

from app.schemas.survey import (
    QuestionType,
    CHOICE_TYPES,
    MAIN_SECTION,
    OptionDefinition,
    ValidationRules,
    QuestionDefinition,
    SurveySettings,
    SurveyMetadata,
    SurveyDefinition,
    slugify_option,
)

__all__ = [
    "QuestionType",
    "CHOICE_TYPES",
    "MAIN_SECTION",
    "OptionDefinition",
    "ValidationRules",
    "QuestionDefinition",
    "SurveySettings",
    "SurveyMetadata",
    "SurveyDefinition",
    "slugify_option",
]
