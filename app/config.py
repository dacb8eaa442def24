"""Settings for the convention survey service.

Values come from environment variables or a .env file. Coupon wording and
the sender address live here so staff can change them without a deploy.
"""

from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        database_url: Database connection string (PostgreSQL in production)
        database_pool_size: Number of connections to maintain in pool
        database_max_overflow: Maximum overflow connections beyond pool_size
        sql_echo: Log every SQL statement
        environment: Application environment (development, staging, production)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        surveys_dir: Path to directory containing survey YAML files
        default_survey_id: Survey used by admin endpoints when none is given
        seed_surveys: Seed survey definitions into the database at startup
        create_tables: Create missing tables from model metadata at startup
        coupon_expiry_days: Lifetime of uploaded coupon codes
        coupon_placeholder_prefix: Prefix of placeholder codes shown when the pool is empty
        coupon_redeem_site: Where coupon codes are redeemed
        coupon_value: Value of a coupon shown to respondents
        email_from: Sender address for coupon emails
        allowed_origins: List of allowed CORS origins
    """

    # Database Configuration
    database_url: str = Field(
        description="Database connection string; coupon allocation relies on PostgreSQL row locks"
    )
    database_pool_size: int = Field(
        default=5,
        description="Number of database connections in pool"
    )
    database_max_overflow: int = Field(
        default=10,
        description="Maximum overflow connections beyond pool size"
    )
    sql_echo: bool = Field(
        default=False,
        description="Echo SQL statements to the log"
    )

    # Application Configuration
    environment: str = Field(
        default="development",
        description="Application environment"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    surveys_dir: str = Field(
        default="./surveys",
        description="Path to surveys directory"
    )
    default_survey_id: int = Field(
        default=1,
        ge=1,
        description="Survey used by admin endpoints"
    )
    seed_surveys: bool = Field(
        default=True,
        description="Seed survey definitions at startup"
    )
    create_tables: bool = Field(
        default=True,
        description="Create missing tables at startup"
    )

    # Coupon Configuration
    coupon_expiry_days: int = Field(
        default=365,
        ge=1,
        description="Days before an uploaded coupon code expires"
    )
    coupon_placeholder_prefix: str = Field(
        default="GM",
        min_length=1,
        description="Prefix for placeholder codes when the pool is exhausted"
    )
    coupon_redeem_site: str = Field(
        default="evilgeniusgames.com",
        description="Site where coupon codes are redeemed"
    )
    coupon_value: str = Field(
        default="$5",
        description="Coupon value shown to respondents"
    )
    email_from: str = Field(
        default="surveys@evilgeniusgames.com",
        description="Sender address for coupon emails"
    )

    # Security Configuration
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        description="Comma-separated list of allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values."""
        allowed = {"development", "staging", "production"}
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v_upper

    @field_validator("coupon_placeholder_prefix")
    @classmethod
    def prefix_uppercase(cls, v: str) -> str:
        """Coupon codes are stored uppercase, placeholders follow suit."""
        return v.strip().upper()

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed_origins string into a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Settings loaded once per process.

    Tests that change the environment call ``get_settings.cache_clear()``.
    """
    return Settings()
