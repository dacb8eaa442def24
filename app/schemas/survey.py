"""Pydantic schemas for survey YAML definitions.

This module defines the structure and validation rules for survey YAML files.
All surveys must conform to these schemas to be seeded into the database.
"""

import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class QuestionType(str, Enum):
    """Valid question types in survey definitions."""
    SHORT_TEXT = "short_text"
    LONG_TEXT = "long_text"
    MULTIPLE_CHOICE = "multiple_choice"
    SINGLE_CHOICE = "single_choice"
    DROPDOWN = "dropdown"
    RATING = "rating"
    YES_NO = "yes_no"
    EMAIL = "email"
    NUMBER = "number"
    DATE = "date"

    @property
    def has_options(self) -> bool:
        """Whether answers are picked from a list of options."""
        return self in CHOICE_TYPES


CHOICE_TYPES = frozenset({
    QuestionType.MULTIPLE_CHOICE,
    QuestionType.SINGLE_CHOICE,
    QuestionType.DROPDOWN,
})

MAIN_SECTION = "main"


def slugify_option(text: str) -> str:
    """Derive a stored option value from its display text.

    Example:
        >>> slugify_option("Gen Con  Indy")
        'gen_con_indy'
    """
    return re.sub(r"\s+", "_", text.strip().lower())


class OptionDefinition(BaseModel):
    """A single option for choice-type questions.

    Attributes:
        text: Text shown to the respondent (e.g., "Gen Con")
        value: Value stored with answers (e.g., "gen_con"); derived from text when omitted
    """
    text: str = Field(..., min_length=1, description="Display text for option")
    value: Optional[str] = Field(None, min_length=1, description="Stored value")

    @model_validator(mode='after')
    def default_value(self):
        """Derive the stored value from the display text when missing."""
        if self.value is None:
            self.value = slugify_option(self.text)
        return self


class ValidationRules(BaseModel):
    """Validation rules for question answers.

    Different question types use different fields:
    - rating, number: min, max
    - short_text, long_text: min_length, max_length
    """
    min: Optional[int] = Field(None, description="Minimum numeric value")
    max: Optional[int] = Field(None, description="Maximum numeric value")
    min_length: Optional[int] = Field(None, ge=1, description="Minimum text length")
    max_length: Optional[int] = Field(None, ge=1, description="Maximum text length")

    @field_validator('max')
    @classmethod
    def max_greater_than_min(cls, v, info):
        """Ensure max >= min if both are set."""
        if v is not None and info.data.get('min') is not None:
            if v < info.data['min']:
                raise ValueError('max must be >= min')
        return v

    @field_validator('max_length')
    @classmethod
    def max_length_greater_than_min(cls, v, info):
        """Ensure max_length >= min_length if both are set."""
        if v is not None and info.data.get('min_length') is not None:
            if v < info.data['min_length']:
                raise ValueError('max_length must be >= min_length')
        return v


class QuestionDefinition(BaseModel):
    """A single question in the survey.

    Attributes:
        key: Stable identifier, also the variable name in visibility conditions
        text: Question text shown to respondents
        type: Question type
        required: Whether an answer is needed to move on
        placeholder: Placeholder text for free-text inputs
        validation: Validation rules for answers
        options: Options for choice-type questions
        section: "main" or the name of the volunteer section
        visible_when: Condition over earlier answers (e.g., "learn_gm == 'yes'")
    """
    key: str = Field(..., pattern=r'^[a-z][a-z0-9_]*$', description="Question identifier")
    text: str = Field(..., min_length=1, description="Question text")
    type: QuestionType = Field(..., description="Question type")
    required: bool = Field(default=True, description="Answer required")
    placeholder: Optional[str] = Field(None, description="Placeholder text")
    validation: Optional[ValidationRules] = Field(None, description="Validation rules")
    options: Optional[list[OptionDefinition]] = Field(None, description="Choice options")
    section: str = Field(default=MAIN_SECTION, min_length=1, description="Survey section")
    visible_when: Optional[str] = Field(None, min_length=1, description="Visibility condition")

    @model_validator(mode='after')
    def validate_question_requirements(self):
        """Validate type-specific requirements."""
        if self.type.has_options and not self.options:
            raise ValueError(f"Choice question '{self.key}' must have options")

        if self.options:
            values = [option.value for option in self.options]
            if len(values) != len(set(values)):
                raise ValueError(f"Question '{self.key}' has duplicate option values")

        return self


class SurveySettings(BaseModel):
    """Flow settings for a survey.

    Attributes:
        submit_after: Key of the question after which answers are submitted
        volunteer_section: Section holding the "volunteer as GM" questions
    """
    submit_after: Optional[str] = Field(
        default="recommendation",
        description="Question key that triggers the first submission"
    )
    volunteer_section: str = Field(
        default="gm_contact",
        min_length=1,
        description="Section reused by the volunteer sub-flow"
    )


class SurveyMetadata(BaseModel):
    """Survey metadata and identification.

    Attributes:
        slug: Unique survey identifier (matches YAML filename)
        title: Human-readable survey title
        description: Survey description
        version: Survey version (semantic versioning)
    """
    slug: str = Field(..., min_length=1, description="Survey identifier")
    title: str = Field(..., min_length=1, description="Survey title")
    description: Optional[str] = Field(None, description="Survey description")
    version: str = Field(default="1.0.0", pattern=r'^\d+\.\d+\.\d+$', description="Semantic version")

    @field_validator('slug')
    @classmethod
    def slug_alphanumeric(cls, v):
        """Ensure slug is alphanumeric with underscores/hyphens only."""
        if not v.replace('_', '').replace('-', '').isalnum():
            raise ValueError('Survey slug must be alphanumeric with underscores/hyphens')
        return v


class SurveyDefinition(BaseModel):
    """Complete survey definition.

    Root schema for survey YAML files.
    """
    metadata: SurveyMetadata
    settings: SurveySettings = Field(default_factory=SurveySettings)
    questions: list[QuestionDefinition] = Field(..., min_length=1)

    @model_validator(mode='after')
    def validate_survey_structure(self):
        """Validate overall survey structure and references."""
        keys = [question.key for question in self.questions]
        if len(keys) != len(set(keys)):
            duplicates = sorted({key for key in keys if keys.count(key) > 1})
            raise ValueError(f"Duplicate question keys found: {duplicates}")

        if self.settings.submit_after is not None and self.settings.submit_after not in keys:
            raise ValueError(f"submit_after '{self.settings.submit_after}' not found in questions")

        return self

    def get_question(self, key: str) -> Optional[QuestionDefinition]:
        """Get question by key.

        Args:
            key: Question key

        Returns:
            QuestionDefinition if found, None otherwise
        """
        for question in self.questions:
            if question.key == key:
                return question
        return None
