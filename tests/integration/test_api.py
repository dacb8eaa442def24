"""Integration tests for the HTTP API.

Requests go through FastAPI's TestClient with ``get_db`` overridden to the
test session, so routes, schemas and error translation are exercised
end to end.
"""

import pytest
from sqlalchemy import select

from app.models.coupon import CouponCode
from app.models.gm import GMInterest
from app.services.associations import NO_ADVENTURES_MESSAGE, NO_GMS_MESSAGE


def qid(survey, key):
    return survey.question_by_key(key).id


@pytest.fixture
def pool(client):
    response = client.post("/api/admin/coupon-codes", json={"codes": ["API001", "API002"]})
    assert response.status_code == 201


class TestServiceEndpoints:
    """Tests for root and health."""

    def test_root(self, client):
        body = client.get("/").json()
        assert body["service"] == "Convention Survey"
        assert body["status"] == "operational"

    def test_health(self, client, pool):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "connected", "coupons_available": 2}

    def test_request_id_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"

    def test_request_id_generated(self, client):
        assert len(client.get("/").headers["X-Request-ID"]) == 32


class TestSurveyEndpoints:
    """Tests for the public survey endpoints."""

    def test_get_survey(self, client, survey, assignments):
        body = client.get(f"/api/survey/{survey.id}", params={"convention": "Gen Con"}).json()

        gm = next(q for q in body["questions"] if q["key"] == "gm")
        assert [o["option_text"] for o in gm["options"]] == ["Alex Rivera", "Jordan Lee"]
        assert body["convention_display_name"] == "Gen Con"

    def test_get_survey_not_found(self, client, survey):
        assert client.get("/api/survey/999").status_code == 404

    def test_gms_by_convention_empty(self, client, survey, assignments):
        body = client.get("/api/survey/gms-by-convention", params={"convention": "dragon_con"}).json()
        assert body == {"gms": [], "message": NO_GMS_MESSAGE}

    def test_adventures_by_gm(self, client, survey, assignments):
        body = client.get(
            "/api/survey/adventures-by-gm", params={"gm": "alex_rivera", "convention": "gen_con"}
        ).json()
        assert [a["option_value"] for a in body["adventures"]] == ["the_heist_at_hollow_point", "night_shift"]
        assert body["message"] is None

    def test_adventures_by_gm_empty(self, client, survey, options, assignments):
        body = client.get(
            "/api/survey/adventures-by-gm",
            params={"gm_id": options[("gm", "sam_patel")].id, "convention": "origins"},
        ).json()
        assert body == {"adventures": [], "message": NO_ADVENTURES_MESSAGE}

    def test_adventures_by_gm_requires_gm(self, client, survey):
        assert client.get("/api/survey/adventures-by-gm").status_code == 400

    def test_submit_and_update(self, client, survey):
        response = client.post(f"/api/survey/{survey.id}/submit", json={
            "answers": [
                {"question_id": qid(survey, "convention"), "answer_text": "Gen Con", "answer_value": "gen_con"},
                {"question_id": qid(survey, "gm_rating"), "answer_value": "5"},
            ],
            "respondent_info": {"email": "player@example.com"},
        })
        assert response.status_code == 200
        response_id = response.json()["response_id"]

        update = client.post(f"/api/survey/{survey.id}/update-response", json={
            "response_id": response_id,
            "answers": [
                {"question_id": qid(survey, "gm_rating"), "answer_value": "1"},
                {"question_id": qid(survey, "learn_gm"), "answer_value": "no"},
            ],
        })
        assert update.json() == {"success": True, "added": 1}

    def test_submit_foreign_question(self, client, survey):
        response = client.post(f"/api/survey/{survey.id}/submit", json={
            "answers": [{"question_id": 9999, "answer_text": "x"}],
        })
        assert response.status_code == 400

    def test_update_unknown_response(self, client, survey):
        response = client.post(f"/api/survey/{survey.id}/update-response", json={
            "response_id": 77, "answers": [],
        })
        assert response.status_code == 404


class TestSessionEndpoints:
    """Tests for driving the form through session endpoints."""

    def answer(self, client, session_id, question_id, value):
        return client.post(
            f"/api/survey/sessions/{session_id}/answers",
            json={"question_id": question_id, "value": value},
        )

    def test_full_flow(self, client, survey, assignments, pool, db_session):
        start = client.post(f"/api/survey/{survey.id}/sessions", json={"convention": "gen_con"})
        assert start.status_code == 201
        state = start.json()
        session_id = state["session_id"]
        assert state["current_question"]["key"] == "gm"

        for key, value in (
            ("gm", "jordan_lee"),
            ("adventure", "signal_lost"),
            ("gm_rating", 5),
            ("adventure_rating", "4"),
            ("recommendation", 10),
        ):
            assert self.answer(client, session_id, qid(survey, key), value).status_code == 200
            state = client.post(f"/api/survey/sessions/{session_id}/next").json()

        assert state["mode"] == "coupon"
        assert state["coupon"] == {"code": "API001", "placeholder": False}
        response_id = state["response_id"]

        state = client.post(f"/api/survey/sessions/{session_id}/volunteer").json()
        assert state["current_question"]["key"] == "gm_first_name"
        self.answer(client, session_id, qid(survey, "gm_first_name"), "Ada")
        self.answer(client, session_id, qid(survey, "gm_email"), "ada@example.com")

        state = client.post(f"/api/survey/sessions/{session_id}/submit").json()
        assert state["mode"] == "submitted"
        assert state["response_id"] == response_id

        record = db_session.execute(select(GMInterest)).scalar_one()
        assert record.response_id == response_id

        again = client.post(f"/api/survey/sessions/{session_id}/submit")
        assert again.status_code == 409

    def test_invalid_answer_400(self, client, survey, assignments):
        session_id = client.post(f"/api/survey/{survey.id}/sessions", json={}).json()["session_id"]

        response = self.answer(client, session_id, qid(survey, "convention"), "worldcon")
        assert response.status_code == 400
        assert "Please choose one of" in response.json()["detail"]

    def test_volunteer_before_coupon_409(self, client, survey, assignments):
        session_id = client.post(f"/api/survey/{survey.id}/sessions", json={"convention": "gen_con"}).json()["session_id"]
        assert client.post(f"/api/survey/sessions/{session_id}/volunteer").status_code == 409

    def test_empty_gm_list_can_be_skipped(self, client, survey, assignments):
        session_id = client.post(f"/api/survey/{survey.id}/sessions", json={"convention": "dragon_con"}).json()["session_id"]
        state = client.post(f"/api/survey/sessions/{session_id}/next").json()
        assert state["current_question"]["key"] == "adventure"

    def test_previous_at_start_409(self, client, survey):
        session_id = client.post(f"/api/survey/{survey.id}/sessions", json={}).json()["session_id"]
        assert client.post(f"/api/survey/sessions/{session_id}/previous").status_code == 409

    def test_unknown_session_404(self, client, survey):
        assert client.get("/api/survey/sessions/999").status_code == 404
        assert client.post("/api/survey/sessions/999/next").status_code == 404

    def test_get_state(self, client, survey):
        session_id = client.post(f"/api/survey/{survey.id}/sessions", json={}).json()["session_id"]
        body = client.get(f"/api/survey/sessions/{session_id}").json()
        assert body["mode"] == "answering"
        assert body["can_proceed"] is False


class TestCouponEndpoints:
    """Tests for coupon delivery and email."""

    @pytest.fixture
    def response_id(self, client, survey):
        return client.post(f"/api/survey/{survey.id}/submit", json={"answers": []}).json()["response_id"]

    def test_deliver(self, client, response_id):
        body = client.post("/api/coupon/deliver", json={
            "response_id": response_id, "coupon_code": "API001",
        }).json()
        assert body["success"] is True
        assert body["delivery"]["email_sent"] is False

    def test_deliver_unknown_response(self, client, survey):
        response = client.post("/api/coupon/deliver", json={"response_id": 404, "coupon_code": "X"})
        assert response.status_code == 404

    def test_send_email(self, client, pool, response_id, db_session):
        response = client.post("/api/send-coupon-email", json={
            "email": "player@example.com", "coupon_code": "api002", "response_id": response_id,
        })
        assert response.json() == {"success": True, "message": "Email sent successfully"}

        coupon = db_session.execute(select(CouponCode).where(CouponCode.code == "API002")).scalar_one()
        assert coupon.emailed_at is not None

    def test_send_email_unknown_response_keeps_code(self, client, pool, db_session):
        response = client.post("/api/send-coupon-email", json={
            "email": "player@example.com", "coupon_code": "API001", "response_id": 999,
        })
        assert response.status_code == 404

        coupon = db_session.execute(select(CouponCode).where(CouponCode.code == "API001")).scalar_one()
        assert coupon.emailed_at is None
        assert coupon.status == "available"

    def test_send_email_invalid_address(self, client):
        response = client.post("/api/send-coupon-email", json={"email": "nope", "coupon_code": "X"})
        assert response.status_code == 400

    def test_gm_interest_submit(self, client, response_id):
        response = client.post("/api/gm-interest/submit", json={
            "response_id": response_id, "first_name": "Ada", "email": "ada@example.com",
        })
        assert response.json()["success"] is True

        assert client.post("/api/gm-interest/submit", json={"response_id": 999}).status_code == 404


class TestAdminEndpoints:
    """Tests for the admin API."""

    def test_questions(self, client, survey):
        body = client.get("/api/admin/questions").json()
        assert [q["key"] for q in body][:3] == ["convention", "gm", "adventure"]

    def test_option_lifecycle(self, client, survey):
        created = client.post("/api/admin/options", json={
            "question_id": qid(survey, "adventure"), "option_text": "Deep Water",
        }).json()
        assert created["option_value"] == "deep_water"

        renamed = client.put("/api/admin/options", json={
            "option_id": created["id"], "option_text": "Deep Water Redux",
        }).json()
        assert renamed["option_value"] == "deep_water"
        assert renamed["option_text"] == "Deep Water Redux"

        assert client.delete("/api/admin/options", params={"option_id": created["id"]}).json() == {"success": True}
        assert client.delete("/api/admin/options", params={"option_id": created["id"]}).status_code == 404

    def test_add_option_unknown_question(self, client, survey):
        response = client.post("/api/admin/options", json={"question_id": 999, "option_text": "X"})
        assert response.status_code == 404

    def test_gm_convention_endpoints(self, client, survey, options):
        body = {
            "gm_option_id": options[("gm", "sam_patel")].id,
            "convention_option_id": options[("convention", "dragon_con")].id,
        }
        created = client.post("/api/admin/gm-conventions", json=body)
        assert created.status_code == 201
        assert client.post("/api/admin/gm-conventions", json=body).status_code == 409

        wrong = dict(body, gm_option_id=options[("adventure", "night_shift")].id)
        assert client.post("/api/admin/gm-conventions", json=wrong).status_code == 400

        missing = dict(body, gm_option_id=9999)
        assert client.post("/api/admin/gm-conventions", json=missing).status_code == 404

        listed = client.get("/api/admin/gm-conventions").json()
        assert [(i["gm"], i["convention"]) for i in listed] == [("Sam Patel", "Dragon Con")]

        pair_id = created.json()["id"]
        assert client.delete("/api/admin/gm-conventions", params={"id": pair_id}).status_code == 200
        assert client.delete("/api/admin/gm-conventions", params={"id": pair_id}).status_code == 404

    def test_gm_adventure_needs_pair(self, client, survey, options):
        response = client.post("/api/admin/gm-adventures", json={
            "gm_option_id": options[("gm", "sam_patel")].id,
            "convention_option_id": options[("convention", "gen_con")].id,
            "adventure_option_id": options[("adventure", "night_shift")].id,
        })
        assert response.status_code == 400

    def test_gm_adventure_endpoints(self, client, survey, options, assignments):
        created = client.post("/api/admin/gm-adventures", json={
            "gm_option_id": options[("gm", "sam_patel")].id,
            "convention_option_id": options[("convention", "origins")].id,
            "adventure_option_id": options[("adventure", "night_shift")].id,
        })
        assert created.status_code == 201

        listed = client.get("/api/admin/gm-adventures", params={
            "gm_option_id": options[("gm", "sam_patel")].id,
        }).json()
        assert [i["adventure"] for i in listed] == ["Night Shift"]

        body = client.get("/api/admin/adventures-by-gm", params={
            "gm_id": options[("gm", "sam_patel")].id, "convention": "origins",
        }).json()
        assert [a["option_text"] for a in body["adventures"]] == ["Night Shift"]

        assert client.delete("/api/admin/gm-adventures", params={"id": created.json()["id"]}).status_code == 200

    def test_coupon_code_endpoints(self, client, survey, pool):
        upload = client.post("/api/admin/coupon-codes", json={"codes": ["api001", "API003", " "]}).json()
        assert upload == {"success": True, "inserted": 1, "duplicates": ["API001"], "skipped": 1}

        listed = client.get("/api/admin/coupon-codes", params={"status": "available"}).json()
        assert sorted(c["code"] for c in listed) == ["API001", "API002", "API003"]
        assert client.get("/api/admin/coupon-codes", params={"status": "bogus"}).status_code == 422

        response_id = client.post(f"/api/survey/{survey.id}/submit", json={"answers": []}).json()["response_id"]
        assigned = client.post("/api/admin/coupon-codes/assign", json={"response_id": response_id}).json()
        assert assigned["coupon_code"]["code"] == "API001"
        assert assigned["coupon_code"]["response_id"] == response_id

        used = client.post("/api/admin/coupon-codes/mark-used", json={"code": "API001", "action": "copied"})
        assert used.json()["coupon_code"]["status"] == "used"
        bad_action = client.post("/api/admin/coupon-codes/mark-used", json={"code": "API001", "action": "x"})
        assert bad_action.status_code == 422
        missing = client.post("/api/admin/coupon-codes/mark-used", json={"code": "NOPE", "action": "copied"})
        assert missing.status_code == 404

        assert client.delete("/api/admin/coupon-codes", params={"id": 999}).status_code == 404

    def test_assign_when_exhausted(self, client, survey):
        response_id = client.post(f"/api/survey/{survey.id}/submit", json={"answers": []}).json()["response_id"]
        response = client.post("/api/admin/coupon-codes/assign", json={"response_id": response_id})
        assert response.status_code == 404
        assert client.post("/api/admin/coupon-codes/assign", json={"response_id": 999}).status_code == 404

    def test_analytics_and_exports(self, client, survey):
        client.post(f"/api/survey/{survey.id}/submit", json={"answers": [
            {"question_id": qid(survey, "convention"), "answer_text": "Gen Con", "answer_value": "gen_con"},
            {"question_id": qid(survey, "gm_rating"), "answer_value": "4"},
        ]})

        data = client.get("/api/admin/rating-data", params={"convention": "gen_con"}).json()
        assert data["gm_rating"][3] == {"rating": 4, "count": 1}
        assert client.get("/api/admin/conventions").json() == [{"value": "gen_con", "display": "Gen Con"}]
        assert "Night Shift" in client.get("/api/admin/adventures").json()

        export = client.get("/api/admin/export-csv")
        assert export.headers["content-type"].startswith("text/csv")
        assert 'filename="survey-responses-' in export.headers["content-disposition"]
        assert "Gen Con" in export.text

        assert client.get("/api/admin/export-gm-interest-csv").text.startswith('"ID","Response ID"')

        responses = client.get("/api/admin/responses").json()
        assert len(responses) == 1

        cleared = client.delete("/api/admin/clear-database").json()
        assert cleared["deleted"]["responses"] == 1
        assert client.get("/api/admin/responses").json() == []

    def test_gm_interest_maintenance(self, client, survey):
        client.post(f"/api/survey/{survey.id}/submit", json={"answers": [
            {"question_id": qid(survey, "gm_first_name"), "answer_text": "Ada"},
            {"question_id": qid(survey, "gm_email"), "answer_text": "ada@example.com"},
        ]})

        reprocessed = client.post("/api/admin/reprocess-gm-interest").json()
        assert reprocessed["success"] is True
        assert reprocessed["processed"] == 1
        assert [i["first_name"] for i in client.get("/api/admin/gm-interest").json()] == ["Ada"]

        removed = client.post("/api/admin/remove-gm-answers").json()
        assert removed == {"success": True, "deleted": 2}
