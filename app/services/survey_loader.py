"""Survey loader service with caching, validation and database seeding.

This module loads survey definitions from YAML files, validates them against
Pydantic schemas, caches the results, and seeds them into the database.
"""

from pathlib import Path
from functools import lru_cache
from typing import Optional
import yaml
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.survey import Survey, Question, QuestionOption
from app.schemas.survey import SurveyDefinition
from app.logging_config import get_logger

logger = get_logger(__name__)


class SurveyNotFoundError(Exception):
    """Raised when a survey file is not found."""
    pass


class SurveyValidationError(Exception):
    """Raised when a survey fails validation."""
    pass


class SurveyLoader:
    """Service for loading, caching and seeding survey definitions.

    Surveys are loaded from YAML files in the surveys/ directory and validated
    against Pydantic schemas. Results are cached for performance.
    """

    def __init__(self, surveys_dir: Optional[str] = None):
        """Initialize survey loader.

        Args:
            surveys_dir: Path to surveys directory (defaults to the configured
                surveys_dir, resolved against the project root when relative)
        """
        if surveys_dir is None:
            configured = Path(get_settings().surveys_dir)
            if not configured.is_absolute():
                project_root = Path(__file__).parent.parent.parent
                configured = project_root / configured
            surveys_dir = configured

        self.surveys_dir = Path(surveys_dir)

        if not self.surveys_dir.exists():
            logger.warning(f"Surveys directory not found: {self.surveys_dir}")

    @lru_cache(maxsize=128)
    def load_definition(self, slug: str) -> SurveyDefinition:
        """Load and validate a survey definition from YAML file.

        Results are cached. Clear cache with clear_cache() if needed.

        Args:
            slug: Survey identifier (matches YAML filename without .yaml)

        Returns:
            Validated SurveyDefinition

        Raises:
            SurveyNotFoundError: If survey file doesn't exist
            SurveyValidationError: If survey fails validation

        Example:
            >>> loader = SurveyLoader()
            >>> definition = loader.load_definition("convention_feedback")
            >>> print(definition.metadata.title)
            'Everyday Heroes Convention Survey'
        """
        yaml_path = self.surveys_dir / f"{slug}.yaml"

        if not yaml_path.exists():
            logger.error(f"Survey file not found: {yaml_path}")
            raise SurveyNotFoundError(f"Survey '{slug}' not found at {yaml_path}")

        try:
            with open(yaml_path, 'r') as f:
                raw_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"YAML parsing error for {slug}: {e}")
            raise SurveyValidationError(f"Invalid YAML in survey '{slug}': {e}")
        except OSError as e:
            logger.error(f"Error reading survey file {yaml_path}: {e}")
            raise SurveyValidationError(f"Error reading survey '{slug}': {e}")

        if not isinstance(raw_data, dict):
            raise SurveyValidationError(f"Survey '{slug}' must be a YAML mapping")

        try:
            definition = SurveyDefinition(**raw_data)
        except ValidationError as e:
            logger.error(f"Validation error for survey {slug}: {e}")
            raise SurveyValidationError(f"Validation failed for survey '{slug}': {e}")

        if definition.metadata.slug != slug:
            raise SurveyValidationError(
                f"Survey file '{slug}.yaml' declares slug '{definition.metadata.slug}'"
            )

        logger.info(f"Successfully loaded survey: {slug} (version {definition.metadata.version})")
        return definition

    def list_definitions(self) -> list[str]:
        """List all available survey slugs.

        Returns:
            List of survey slugs (filenames without .yaml extension)
        """
        if not self.surveys_dir.exists():
            return []

        slugs = [f.stem for f in self.surveys_dir.glob("*.yaml")]

        logger.debug(f"Found {len(slugs)} surveys: {slugs}")
        return sorted(slugs)

    def seed(self, db: Session, definition: SurveyDefinition) -> Survey:
        """Insert a survey with its questions and options.

        Seeding is idempotent: an existing survey with the same slug is
        returned untouched, so admin edits to options survive restarts.

        Args:
            db: Database session
            definition: Validated survey definition

        Returns:
            The stored Survey
        """
        existing = db.execute(
            select(Survey).where(Survey.slug == definition.metadata.slug)
        ).scalar_one_or_none()
        if existing is not None:
            logger.debug(f"Survey {definition.metadata.slug} already seeded (id={existing.id})")
            return existing

        survey = Survey(
            slug=definition.metadata.slug,
            title=definition.metadata.title,
            description=definition.metadata.description,
            version=definition.metadata.version,
            is_active=True,
            settings=definition.settings.model_dump(),
        )

        for order, item in enumerate(definition.questions, start=1):
            question = Question(
                key=item.key,
                question_text=item.text,
                question_type=item.type,
                is_required=item.required,
                display_order=order,
                placeholder_text=item.placeholder,
                validation_rules=item.validation.model_dump(exclude_none=True) if item.validation else None,
                section=item.section,
                visible_when=item.visible_when,
            )
            for option_order, option in enumerate(item.options or [], start=1):
                question.options.append(QuestionOption(
                    option_text=option.text,
                    option_value=option.value,
                    display_order=option_order,
                ))
            survey.questions.append(question)

        db.add(survey)
        db.commit()
        db.refresh(survey)

        logger.info(
            f"Seeded survey {survey.slug} (id={survey.id}) "
            f"with {len(definition.questions)} questions"
        )
        return survey

    def seed_all(self, db: Session) -> list[Survey]:
        """Seed every definition found in the surveys directory."""
        return [self.seed(db, self.load_definition(slug)) for slug in self.list_definitions()]

    def clear_cache(self):
        """Clear the definition cache.

        Useful during development or when surveys are updated at runtime.
        """
        self.load_definition.cache_clear()
        logger.info("Survey cache cleared")


# Global singleton instance
_loader_instance: Optional[SurveyLoader] = None


def get_survey_loader() -> SurveyLoader:
    """Get global SurveyLoader instance.

    Creates singleton instance on first call.

    Returns:
        Global SurveyLoader instance
    """
    global _loader_instance
    if _loader_instance is None:
        _loader_instance = SurveyLoader()
    return _loader_instance
