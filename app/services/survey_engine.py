"""Survey engine for orchestrating the multi-step survey form.

This module keeps a respondent's progress in a ``SurveySession`` and moves it
through the form: validating answers, pruning answers that no longer apply,
submitting in two phases around the recommendation question, allocating the
coupon, and running the volunteer-as-GM sub-flow.

Modes:
    answering -> (next on the submission question) -> coupon
    coupon -> resume -> answering
    coupon (or answering after resume) -> volunteer -> volunteering
    answering/coupon/volunteering -> submit -> submitted
"""

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.session import FlowMode, SurveySession
from app.models.survey import Question, Survey
from app.schemas.api import FlowStateOut, IssuedCoupon, OptionOut, QuestionOut
from app.services.associations import (
    ADVENTURE_KEY,
    CONVENTION_KEY,
    GM_KEY,
    NO_ADVENTURES_MESSAGE,
    AssociationService,
    FilteredOptions,
)
from app.services.branching import BranchingService
from app.services.coupons import CouponService
from app.services.gm_interest import GMInterestService
from app.services.survey_store import SurveyStore
from app.services.validation import AnswerValidator, answer_rows
from app.logging_config import get_logger

logger = get_logger(__name__)


class FlowError(Exception):
    """Raised when an action is not allowed in the session's current state."""
    pass


class AnswerRejectedError(Exception):
    """Raised when an answer fails validation or a required answer is missing."""
    pass


class SessionNotFoundError(Exception):
    """Raised when a survey session does not exist."""
    pass


class SurveyEngine:
    """Main survey form orchestration service.

    Coordinates visibility, validation, dropdown narrowing, response storage,
    coupon allocation and GM interest to drive a session through the form.
    """

    def __init__(self, db: Session):
        """Initialize survey engine.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db
        self.store = SurveyStore(db)

    # Session lookup

    def start(self, survey_id: int, convention: Optional[str] = None) -> SurveySession:
        """Start a new session.

        A convention passed in the survey link is matched against the
        convention options and stored as the convention answer; the
        convention question is then not shown.

        Raises:
            SurveyNotFoundError: If the survey does not exist
            FlowError: If the survey is not accepting responses
        """
        survey = self.store.get_survey(survey_id)
        if not survey.is_active:
            raise FlowError(f"Survey {survey_id} is closed")

        session = SurveySession(
            survey_id=survey_id,
            mode=FlowMode.ANSWERING.value,
            current_index=0,
            answers={},
        )

        convention = (convention or "").strip()
        convention_question = survey.question_by_key(CONVENTION_KEY)
        if convention and convention_question is not None:
            match = AssociationService(self.db, survey_id).match_convention(convention)
            session.preselected_convention = convention
            session.set_answer(convention_question.id, match.value or convention)

        self.db.add(session)
        self.db.commit()

        logger.info(
            f"Started session {session.id} for survey {survey_id}"
            + (f" at convention {convention!r}" if convention else "")
        )
        return session

    def get_session(self, session_id: int, lock: bool = False) -> SurveySession:
        """Load a session, optionally locking the row for the update.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        stmt = select(SurveySession).where(SurveySession.id == session_id)
        if lock:
            stmt = stmt.with_for_update()
        session = self.db.execute(stmt).scalar_one_or_none()
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    # Visibility and narrowing

    def _survey(self, session: SurveySession) -> Survey:
        return self.store.get_survey(session.survey_id)

    def _hidden_question_id(self, survey: Survey, session: SurveySession) -> Optional[int]:
        if not session.preselected_convention:
            return None
        question = survey.question_by_key(CONVENTION_KEY)
        return question.id if question else None

    def visible_questions(
        self,
        survey: Survey,
        session: SurveySession,
        volunteering: Optional[bool] = None,
    ) -> list[Question]:
        """Questions the session currently shows, in display order."""
        if volunteering is None:
            volunteering = session.flow_mode == FlowMode.VOLUNTEERING
        return BranchingService.visible_questions(
            survey.questions,
            session.answers or {},
            survey.volunteer_section,
            volunteering=volunteering,
            hidden_question_id=self._hidden_question_id(survey, session),
        )

    def _answer_for_key(self, survey: Survey, session: SurveySession, key: str) -> Any:
        question = survey.question_by_key(key)
        return session.get_answer(question.id) if question else None

    def allowed_options(
        self,
        survey: Survey,
        session: SurveySession,
        question: Question,
    ) -> Optional[FilteredOptions]:
        """Narrowed options for the GM and adventure questions, else None."""
        associations = AssociationService(self.db, survey.id)
        convention = self._answer_for_key(survey, session, CONVENTION_KEY)

        if question.key == GM_KEY:
            return associations.filter_gms(convention)
        if question.key == ADVENTURE_KEY:
            gm = self._answer_for_key(survey, session, GM_KEY)
            if gm is None and survey.question_by_key(GM_KEY) is not None:
                # no GM can be chosen at this convention, so no adventure either
                gms = associations.filter_gms(convention)
                if gms.narrowed and not gms.options:
                    return FilteredOptions(empty_message=NO_ADVENTURES_MESSAGE, narrowed=True)
            return associations.filter_adventures(gm=gm, convention=convention)
        return None

    # Pruning

    def _prune_dependents(self, survey: Survey, session: SurveySession) -> list[int]:
        """Clear GM and adventure answers no longer in their narrowed lists."""
        removed: list[int] = []
        for key in (GM_KEY, ADVENTURE_KEY):
            question = survey.question_by_key(key)
            if question is None:
                continue
            current = session.get_answer(question.id)
            if current is None:
                continue

            gm_question = survey.question_by_key(GM_KEY)
            if key == ADVENTURE_KEY and gm_question is not None and gm_question.id in removed:
                removed += session.clear_answers([question.id])
                continue

            allowed = self.allowed_options(survey, session, question)
            if allowed.narrowed and current not in {o.stored_value for o in allowed.options}:
                removed += session.clear_answers([question.id])
        return removed

    def _prune_hidden(self, survey: Survey, session: SurveySession) -> list[int]:
        """Clear answers of questions that are no longer shown.

        Repeats until stable, since clearing one answer can hide another
        question.
        """
        hidden_id = self._hidden_question_id(survey, session)
        removed: list[int] = []
        while True:
            shown = {q.id for q in self.visible_questions(survey, session, volunteering=False)}
            stale = [
                q.id for q in survey.questions
                if q.id not in shown
                and q.id != hidden_id
                and session.get_answer(q.id) is not None
            ]
            if not stale:
                return removed
            removed += session.clear_answers(stale)

    def _clamp_index(self, survey: Survey, session: SurveySession) -> None:
        count = len(self.visible_questions(survey, session))
        if session.current_index >= count:
            session.move_to(count - 1)

    # Actions

    def _require_mode(self, session: SurveySession, *modes: FlowMode) -> None:
        if session.flow_mode not in modes:
            if session.flow_mode == FlowMode.SUBMITTED:
                raise FlowError("Survey already submitted")
            allowed = ", ".join(m.value for m in modes)
            raise FlowError(f"Action not allowed in {session.mode} mode (needs {allowed})")

    def answer(self, session: SurveySession, question_id: int, value: Any) -> SurveySession:
        """Validate and store an answer.

        Answers that stop applying are dropped: questions hidden by the new
        answer, and GM or adventure choices outside their narrowed lists.

        Raises:
            FlowError: If the session cannot take answers, or the question is
                not currently shown
            AnswerRejectedError: If the value fails validation
        """
        self._require_mode(session, FlowMode.ANSWERING, FlowMode.VOLUNTEERING)
        survey = self._survey(session)

        visible = self.visible_questions(survey, session)
        question = next((q for q in visible if q.id == question_id), None)
        if question is None:
            raise FlowError(f"Question {question_id} is not currently shown")

        allowed = self.allowed_options(survey, session, question)
        result = AnswerValidator.validate(
            question,
            value,
            allowed.options if allowed is not None and allowed.narrowed else None,
        )
        if not result.is_valid:
            if allowed is not None and allowed.empty_message:
                raise AnswerRejectedError(allowed.empty_message)
            raise AnswerRejectedError(result.error_message)

        session.set_answer(question.id, result.normalized_value)

        removed = self._prune_dependents(survey, session)
        if session.flow_mode == FlowMode.ANSWERING:
            removed += self._prune_hidden(survey, session)
        if removed:
            logger.debug(f"Session {session.id}: cleared answers to questions {removed}")

        self._clamp_index(survey, session)
        self.db.commit()
        return session

    def _is_answered(self, session: SurveySession, question: Question) -> bool:
        value = session.get_answer(question.id)
        return value is not None and value != "" and value != []

    def _is_missing(self, survey: Survey, session: SurveySession, question: Question) -> bool:
        """Whether a required answer is still owed.

        A dropdown narrowed down to no options cannot be answered, so it is
        skipped rather than blocking the form.
        """
        if not question.is_required or self._is_answered(session, question):
            return False
        allowed = self.allowed_options(survey, session, question)
        return not (allowed is not None and allowed.narrowed and not allowed.options)

    def next(self, session: SurveySession) -> SurveySession:
        """Move past the current question.

        On the submission question, the first submission happens instead:
        answers outside the volunteer section are stored as a response, a
        coupon is allocated, and the session switches to coupon mode.

        Raises:
            FlowError: If there is no next question
            AnswerRejectedError: If the current question is required and
                unanswered
        """
        self._require_mode(session, FlowMode.ANSWERING, FlowMode.VOLUNTEERING)
        survey = self._survey(session)
        visible = self.visible_questions(survey, session)
        if not visible:
            raise FlowError("No questions to answer")

        current = visible[min(session.current_index, len(visible) - 1)]
        if self._is_missing(survey, session, current):
            raise AnswerRejectedError("Please answer this question before continuing.")

        if (
            session.flow_mode == FlowMode.ANSWERING
            and current.key == survey.submit_after
            and session.response_id is None
        ):
            self._submit_first_phase(survey, session)
            session.set_mode(FlowMode.COUPON)
            self.db.commit()
            logger.info(f"Session {session.id}: first submission as response {session.response_id}")
            return session

        if session.current_index >= len(visible) - 1:
            raise FlowError("This is the last question; submit to finish")

        session.move_to(session.current_index + 1)
        self.db.commit()
        return session

    def previous(self, session: SurveySession) -> SurveySession:
        """Move back one question.

        Raises:
            FlowError: If already at the first question
        """
        self._require_mode(session, FlowMode.ANSWERING, FlowMode.VOLUNTEERING)
        if session.current_index <= 0:
            raise FlowError("Already at the first question")
        session.move_to(session.current_index - 1)
        self.db.commit()
        return session

    def resume(self, session: SurveySession) -> SurveySession:
        """Leave the coupon screen and continue after the submission question.

        Raises:
            FlowError: If not on the coupon screen or no questions remain
        """
        self._require_mode(session, FlowMode.COUPON)
        survey = self._survey(session)

        session.set_mode(FlowMode.ANSWERING)
        visible = self.visible_questions(survey, session)
        position = next(
            (i for i, q in enumerate(visible) if q.key == survey.submit_after),
            session.current_index,
        )
        if position + 1 >= len(visible):
            raise FlowError("No questions remain; submit to finish")

        session.move_to(position + 1)
        self.db.commit()
        return session

    def volunteer(self, session: SurveySession) -> SurveySession:
        """Switch to the volunteer-as-GM questions.

        Offered from the coupon screen, or after resuming from it; never
        before the first submission.

        Raises:
            FlowError: If the first submission has not happened or the survey
                has no volunteer questions
        """
        self._require_mode(session, FlowMode.ANSWERING, FlowMode.COUPON)
        if session.response_id is None:
            raise FlowError("Finish the survey questions before volunteering")
        survey = self._survey(session)
        if not any(q.section == survey.volunteer_section for q in survey.questions):
            raise FlowError("This survey has no volunteer questions")

        session.set_mode(FlowMode.VOLUNTEERING)
        session.move_to(0)
        self.db.commit()
        logger.info(f"Session {session.id}: volunteering")
        return session

    def submit(self, session: SurveySession) -> SurveySession:
        """Finish the survey.

        When the first submission already happened, the remaining answers are
        attached to that response; otherwise the whole survey is submitted
        now. Volunteer answers are stored as GM interest for the response.
        Required shown questions must be answered, except when submitting
        straight from the coupon screen.

        Raises:
            FlowError: If the session was already submitted
            AnswerRejectedError: If required questions are unanswered
        """
        self._require_mode(
            session, FlowMode.ANSWERING, FlowMode.COUPON, FlowMode.VOLUNTEERING
        )
        survey = self._survey(session)

        if session.flow_mode != FlowMode.COUPON:
            shown = self.visible_questions(survey, session)
            if session.response_id is None:
                # nothing stored yet, so the main questions are owed as well
                shown += [
                    q for q in self.visible_questions(survey, session, volunteering=False)
                    if q not in shown
                ]
            missing = [q.key for q in shown if self._is_missing(survey, session, q)]
            if missing:
                raise AnswerRejectedError(f"Please answer: {', '.join(missing)}")

        main_questions = [q for q in survey.questions if q.section != survey.volunteer_section]
        if session.response_id is None:
            self._submit_first_phase(survey, session)
        else:
            added = self.store.add_answers(
                survey.id, session.response_id, self._rows(survey, session, main_questions)
            )
            logger.info(f"Session {session.id}: added {added} answers to response {session.response_id}")

        contact = {
            q.key: session.get_answer(q.id)
            for q in survey.questions
            if q.section == survey.volunteer_section
        }
        GMInterestService(self.db).submit_from_answers(session.response_id, contact)

        session.mark_completed()
        self.db.commit()
        logger.info(f"Session {session.id}: submitted response {session.response_id}")
        return session

    # Submission

    def _rows(self, survey: Survey, session: SurveySession, questions: list[Question]) -> list[dict]:
        convention_display = None
        if session.preselected_convention:
            match = AssociationService(self.db, survey.id).match_convention(session.preselected_convention)
            convention_display = match.display_name

        rows: list[dict] = []
        for question in questions:
            value = session.get_answer(question.id)
            if value is None:
                continue
            question_rows = answer_rows(question, value)
            if (
                question.key == CONVENTION_KEY
                and convention_display
                and question.find_option(str(value)) is None
            ):
                for row in question_rows:
                    row["answer_text"] = convention_display
            rows.extend(question_rows)
        return rows

    def _submit_first_phase(self, survey: Survey, session: SurveySession) -> None:
        main_questions = [q for q in survey.questions if q.section != survey.volunteer_section]
        response = self.store.create_response(
            survey.id,
            self._rows(survey, session, main_questions),
            extra={"session_id": session.id, "convention": session.preselected_convention},
        )
        issued = CouponService(self.db).allocate_or_placeholder(response.id)

        session.response_id = response.id
        session.coupon_code = issued.code
        session.coupon_is_placeholder = issued.placeholder

    # State

    def _question_out(self, survey: Survey, session: SurveySession, question: Question) -> QuestionOut:
        item = QuestionOut.model_validate(question)
        if not question.question_type.has_options:
            item.options = None
            return item
        allowed = self.allowed_options(survey, session, question)
        if allowed is not None and allowed.narrowed:
            item.options = [OptionOut.model_validate(o) for o in allowed.options]
            item.empty_options_message = allowed.empty_message
        return item

    def describe(self, session: SurveySession) -> FlowStateOut:
        """Current state of a session for the form to render."""
        survey = self._survey(session)
        mode = session.flow_mode
        visible = self.visible_questions(survey, session)
        count = len(visible)
        index = min(session.current_index, max(count - 1, 0))

        current = None
        if mode in (FlowMode.ANSWERING, FlowMode.VOLUNTEERING) and count:
            current = visible[index]

        if mode == FlowMode.SUBMITTED:
            progress = 100.0
        elif count:
            progress = round((index + 1) / count * 100, 1)
        else:
            progress = 0.0

        convention_display = None
        if session.preselected_convention:
            convention_display = AssociationService(self.db, survey.id).match_convention(
                session.preselected_convention
            ).display_name

        answers = {
            q.key: session.get_answer(q.id)
            for q in survey.questions
            if session.get_answer(q.id) is not None
        }

        return FlowStateOut(
            session_id=session.id,
            survey_id=survey.id,
            mode=mode.value,
            current_index=index,
            visible_count=count,
            progress=progress,
            is_last_question=current is not None and index == count - 1,
            can_proceed=current is not None and (
                not self._is_missing(survey, session, current)
            ),
            current_question=self._question_out(survey, session, current) if current else None,
            answers=answers,
            response_id=session.response_id,
            coupon=IssuedCoupon(code=session.coupon_code, placeholder=session.coupon_is_placeholder)
            if session.coupon_code else None,
            convention_display_name=convention_display,
            completed=mode == FlowMode.SUBMITTED,
        )
