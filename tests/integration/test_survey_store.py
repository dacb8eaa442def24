"""Integration tests for the survey store.

Covers rendering with narrowed dropdowns, response writes, the second
submission phase, clearing responses and option management.
"""

import pytest
from sqlalchemy import func, select

from app.models.coupon import CouponCode, CouponDelivery
from app.models.gm import GMInterest
from app.models.response import Answer, Response
from app.models.session import SurveySession
from app.services.associations import NO_ADVENTURES_MESSAGE, NO_GMS_MESSAGE, OptionNotFoundError
from app.services.survey_store import (
    InvalidAnswerError,
    QuestionNotFoundError,
    ResponseNotFoundError,
    SurveyNotFoundError,
    SurveyStore,
)


@pytest.fixture
def store(db_session):
    return SurveyStore(db_session)


def rows(survey, **values):
    """Answer rows keyed by question key."""
    result = []
    for key, value in values.items():
        question = survey.question_by_key(key)
        if question.question_type.has_options:
            result.append({"question_id": question.id, "answer_text": None, "answer_value": value})
        elif question.question_type.value == "rating":
            result.append({"question_id": question.id, "answer_text": None, "answer_value": str(value)})
        else:
            result.append({"question_id": question.id, "answer_text": value, "answer_value": None})
    return result


def out_question(out, key):
    return next(q for q in out.questions if q.key == key)


class TestGetSurveyWithQuestions:
    """Tests for rendering a survey."""

    def test_unknown_survey(self, store):
        with pytest.raises(SurveyNotFoundError):
            store.get_survey_with_questions(999)

    def test_all_options_without_context(self, store, survey, assignments):
        out = store.get_survey_with_questions(survey.id)

        assert [q.key for q in out.questions][:3] == ["convention", "gm", "adventure"]
        assert len(out_question(out, "gm").options) == 3
        assert out_question(out, "gm_rating").options is None
        assert out.convention_display_name is None

    def test_convention_narrows_gms(self, store, survey, assignments):
        out = store.get_survey_with_questions(survey.id, convention="Gen Con")

        gm = out_question(out, "gm")
        assert [o.option_text for o in gm.options] == ["Alex Rivera", "Jordan Lee"]
        assert gm.empty_options_message is None
        assert out.convention_display_name == "Gen Con"
        assert out.preselected_convention_value == "gen_con"

    def test_convention_without_gms(self, store, survey, assignments):
        gm = out_question(store.get_survey_with_questions(survey.id, convention="pax_unplugged"), "gm")
        assert gm.options == []
        assert gm.empty_options_message == NO_GMS_MESSAGE

    def test_unknown_convention_keeps_raw_value(self, store, survey, assignments):
        out = store.get_survey_with_questions(survey.id, convention="worldcon")
        assert out.convention_display_name == "Worldcon"
        assert out.preselected_convention_value == "worldcon"
        assert out_question(out, "gm").options == []

    def test_gm_narrows_adventures(self, store, survey, options, assignments):
        out = store.get_survey_with_questions(
            survey.id, convention="origins", gm_id=options[("gm", "sam_patel")].id
        )
        adventure = out_question(out, "adventure")
        assert adventure.options == []
        assert adventure.empty_options_message == NO_ADVENTURES_MESSAGE


class TestResponses:
    """Tests for response writes."""

    def test_create_response(self, store, survey):
        response = store.create_response(
            survey.id,
            rows(survey, convention="gen_con", gm_rating=5),
            respondent_email="player@example.com",
            ip_address="127.0.0.1",
        )

        assert response.id is not None
        assert len(response.answers) == 2
        assert response.respondent_email == "player@example.com"

    def test_empty_answers_skipped(self, store, survey):
        question = survey.question_by_key("gm_last_name")
        response = store.create_response(
            survey.id, [{"question_id": question.id, "answer_text": "", "answer_value": None}]
        )
        assert response.answers == []

    def test_foreign_question_rejected(self, store, survey):
        with pytest.raises(InvalidAnswerError):
            store.create_response(survey.id, [{"question_id": 9999, "answer_text": "x"}])
        assert store.db.execute(select(func.count(Response.id))).scalar_one() == 0

    def test_unknown_survey(self, store):
        with pytest.raises(SurveyNotFoundError):
            store.create_response(42, [])

    def test_add_answers_skips_answered(self, store, survey):
        """The second phase only adds questions not answered yet."""
        response = store.create_response(survey.id, rows(survey, gm_rating=4))

        added = store.add_answers(survey.id, response.id, rows(survey, gm_rating=1, learn_gm="yes"))
        assert added == 1
        assert store.add_answers(survey.id, response.id, rows(survey, learn_gm="yes")) == 0

        values = {a.question.key: a.display for a in response.answers}
        assert values == {"gm_rating": "4", "learn_gm": "yes"}

    def test_add_answers_unknown_response(self, store, survey):
        with pytest.raises(ResponseNotFoundError):
            store.add_answers(survey.id, 555, [])

    def test_list_responses(self, store, survey):
        first = store.create_response(survey.id, rows(survey, recommendation=9, convention="origins"))
        second = store.create_response(survey.id, rows(survey, gm_rating=3))

        listed = store.list_responses(survey.id)
        assert {r["id"] for r in listed} == {first.id, second.id}
        entry = next(r for r in listed if r["id"] == first.id)
        assert [a["question_key"] for a in entry["answers"]] == ["convention", "recommendation"]

        assert len(store.list_responses(survey.id, limit=1)) == 1


class TestClearResponses:
    """Tests for clearing the database."""

    def test_clear_keeps_options_and_coupons(self, store, survey, db_session, assignments):
        response = store.create_response(survey.id, rows(survey, gm_rating=5))
        db_session.add_all([
            GMInterest(response_id=response.id, first_name="Ada"),
            CouponDelivery(response_id=response.id, coupon_code="ABC"),
            CouponCode(code="ABC", response_id=response.id),
            SurveySession(survey_id=survey.id, answers={}, response_id=response.id),
        ])
        db_session.commit()

        counts = store.clear_responses()

        assert counts == {"responses": 1, "answers": 1, "gm_interest": 1, "coupon_deliveries": 1}
        assert db_session.execute(select(func.count(Answer.id))).scalar_one() == 0
        coupon = db_session.execute(select(CouponCode)).scalar_one()
        db_session.refresh(coupon)
        assert coupon.response_id is None
        assert len(store.list_questions(survey.id)[1].options) == 3


class TestOptions:
    """Tests for option management."""

    def test_add_option(self, store, survey):
        gm = survey.question_by_key("gm")
        option = store.add_option(gm.id, "  Robin  Hart ")

        assert option.option_text == "Robin  Hart"
        assert option.option_value == "robin_hart"
        assert option.display_order == 4
        assert gm.options[-1] is option

    def test_add_option_unknown_question(self, store):
        with pytest.raises(QuestionNotFoundError):
            store.add_option(999, "Nobody")

    def test_rename_keeps_value(self, store, options):
        """Renaming changes the display text only, so old answers still match."""
        origins = options[("convention", "origins")]
        renamed = store.update_option_text(origins.id, "Origins 2025")

        assert renamed.option_text == "Origins 2025"
        assert renamed.option_value == "origins"

    def test_rename_unknown(self, store):
        with pytest.raises(OptionNotFoundError):
            store.update_option_text(999, "x")

    def test_delete_option(self, store, survey, options, assignments):
        sam = options[("gm", "sam_patel")]
        store.delete_option(sam.id)

        out = store.get_survey_with_questions(survey.id)
        assert [o.option_text for o in out_question(out, "gm").options] == ["Alex Rivera", "Jordan Lee"]

    def test_delete_unknown(self, store):
        with pytest.raises(OptionNotFoundError):
            store.delete_option(999)
