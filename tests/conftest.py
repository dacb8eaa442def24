"""Pytest configuration and shared fixtures.

This module provides fixtures and configuration used across all tests.
"""

import os
from pathlib import Path
from typing import Generator

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set required environment variables for tests BEFORE importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("SEED_SURVEYS", "false")
os.environ.setdefault("CREATE_TABLES", "false")

import app.models  # noqa: F401,E402  registers every table
from app.models.database import Base, get_db  # noqa: E402
from app.models.gm import GMAdventure, GMConvention  # noqa: E402
from app.models.survey import Survey  # noqa: E402
from app.services.survey_loader import SurveyLoader  # noqa: E402

SURVEYS_DIR = Path(__file__).parent.parent / "surveys"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine with SQLite in-memory database.

    Yields:
        Engine: SQLAlchemy engine for testing

    Note:
        StaticPool keeps one connection so the in-memory database is shared
        between the test and the TestClient's worker thread.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,  # Set to True for SQL debugging
    )

    # Enable foreign key support for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session configured like the application's.

    Yields:
        Session: SQLAlchemy session for testing
    """
    TestSessionLocal = sessionmaker(
        bind=db_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )

    session = TestSessionLocal()

    yield session

    session.rollback()
    session.close()


@pytest.fixture
def survey_loader() -> SurveyLoader:
    """Loader reading the project's survey definitions."""
    return SurveyLoader(surveys_dir=str(SURVEYS_DIR))


@pytest.fixture
def survey(db_session, survey_loader) -> Survey:
    """The convention feedback survey seeded into the test database."""
    return survey_loader.seed(db_session, survey_loader.load_definition("convention_feedback"))


@pytest.fixture
def options(survey) -> dict:
    """Options of the survey keyed by (question key, option value).

    Example:
        >>> options[("gm", "alex_rivera")].option_text
        'Alex Rivera'
    """
    return {
        (question.key, option.option_value): option
        for question in survey.questions
        for option in question.options
    }


@pytest.fixture
def assignments(db_session, options) -> dict:
    """GM assignments used across tests.

    Gen Con: Alex Rivera (The Heist at Hollow Point, Night Shift) and
    Jordan Lee (Signal Lost). Origins: Alex Rivera (Signal Lost) and
    Sam Patel (no adventures). PAX Unplugged and Dragon Con: nobody.
    """
    pairs = [
        ("alex_rivera", "gen_con"),
        ("jordan_lee", "gen_con"),
        ("alex_rivera", "origins"),
        ("sam_patel", "origins"),
    ]
    triples = [
        ("alex_rivera", "gen_con", "the_heist_at_hollow_point"),
        ("alex_rivera", "gen_con", "night_shift"),
        ("jordan_lee", "gen_con", "signal_lost"),
        ("alex_rivera", "origins", "signal_lost"),
    ]
    for gm, convention in pairs:
        db_session.add(GMConvention(
            gm_option_id=options[("gm", gm)].id,
            convention_option_id=options[("convention", convention)].id,
        ))
    db_session.flush()
    for gm, convention, adventure in triples:
        db_session.add(GMAdventure(
            gm_option_id=options[("gm", gm)].id,
            convention_option_id=options[("convention", convention)].id,
            adventure_option_id=options[("adventure", adventure)].id,
        ))
    db_session.commit()
    return {"pairs": pairs, "triples": triples}


@pytest.fixture
def client(db_session):
    """TestClient whose requests use the test database session.

    The client is not entered as a context manager, so the application
    lifespan (table creation and seeding on the configured engine) does
    not run.
    """
    from fastapi.testclient import TestClient

    from app.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
