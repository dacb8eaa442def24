"""CSV exports of survey responses and GM interest."""

import csv
import io
from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.models.response import Response
from app.models.survey import Question
from app.services.gm_interest import GMInterestService
from app.logging_config import get_logger

logger = get_logger(__name__)

RESPONSE_COLUMNS = ["Response ID", "Submitted At", "Email", "Name"]
GM_INTEREST_COLUMNS = [
    "ID",
    "Response ID",
    "First Name",
    "Last Name",
    "Email",
    "Submitted At",
    "Response Submitted At",
]


def _iso(value: Optional[datetime]) -> str:
    return value.isoformat() if value else ""


def _write(header: list[str], rows: Iterable[list]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


def export_filename(prefix: str, today: Optional[date] = None) -> str:
    """Download name such as survey-responses-2024-05-01.csv."""
    return f"{prefix}-{(today or date.today()).isoformat()}.csv"


class CSVExporter:
    """Service for building CSV downloads."""

    def __init__(self, db: Session):
        self.db = db

    def responses_csv(self, survey_id: int) -> str:
        """One row per response, one column per question.

        Multiple-choice answers are joined with "; ". Newest responses come
        first.
        """
        questions = self.db.execute(
            select(Question)
            .where(Question.survey_id == survey_id)
            .order_by(Question.display_order)
        ).scalars().all()

        responses = self.db.execute(
            select(Response)
            .where(Response.survey_id == survey_id)
            .options(selectinload(Response.answers))
            .order_by(Response.submitted_at.desc(), Response.id)
        ).scalars().all()

        rows = []
        for response in responses:
            by_question: dict[int, list[str]] = {}
            for answer in sorted(response.answers, key=lambda a: a.id):
                by_question.setdefault(answer.question_id, []).append(answer.display)
            rows.append(
                [
                    response.id,
                    _iso(response.submitted_at),
                    response.respondent_email or "",
                    response.respondent_name or "",
                ]
                + ["; ".join(by_question.get(q.id, [])) for q in questions]
            )

        logger.info(f"Exported {len(rows)} responses of survey {survey_id}")
        return _write(RESPONSE_COLUMNS + [q.question_text for q in questions], rows)

    def gm_interest_csv(self) -> str:
        """Every GM interest row with its response time."""
        records = GMInterestService(self.db).list()
        rows = [
            [
                r["id"],
                r["response_id"],
                r["first_name"] or "",
                r["last_name"] or "",
                r["email"] or "",
                _iso(r["submitted_at"]),
                _iso(r["response_submitted_at"]),
            ]
            for r in records
        ]
        logger.info(f"Exported {len(rows)} GM interest rows")
        return _write(GM_INTEREST_COLUMNS, rows)
