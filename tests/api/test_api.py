"""
Tests for the PM Dojo REST API.
"""

import json
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from src.pm_dojo.api.main import create_app
from src.pm_dojo.core.db import get_connection
from src.pm_dojo.pipeline.errors import BadCredential, NoCredential, PaymentRequired, RateLimited
from src.pm_dojo.pipeline.schemas import Question
from src.pm_dojo.storage.intelligence_cache import IntelligenceCache
from src.pm_dojo.storage.question_bank import QuestionBank
from tests.helpers import make_intelligence, question_json

EVALUATION = {
    "overall_score": 6.5,
    "strengths": ["Clear"],
    "improvements": ["Deeper metrics"],
    "encouragement": "Keep going",
}


@pytest.fixture
def gateway():
    return Mock()


@pytest.fixture
def client(db_path, gateway):
    with TestClient(create_app(db_path=db_path, gateway=gateway)) as test_client:
        yield test_client


@pytest.fixture
def seeded(db_path, client):
    """Database with one cached episode and two bank questions."""
    conn = get_connection(db_path)
    try:
        IntelligenceCache(conn).upsert(make_intelligence("ep-1"))
        bank = QuestionBank(conn)
        bank.insert("ep-1", Question.model_validate_json(question_json(id="ep-1-behavioral-medium", company="Airbnb")))
        bank.insert(
            "ep-1",
            Question.model_validate_json(
                question_json(id="ep-1-metrics-hard", type="metrics", difficulty="hard", company="Airbnb")
            ),
        )
    finally:
        conn.close()
    return client


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["episodes_cached"] == 0

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")

    def test_stats(self, seeded):
        body = seeded.get("/api/stats").json()
        assert body == {
            "episodes_cached": 1,
            "questions_total": 2,
            "questions_by_type": {"behavioral": 1, "metrics": 1},
        }


class TestQuestions:

    def test_list_with_filters(self, seeded):
        body = seeded.get("/api/questions", params={"type": "metrics"}).json()
        assert body["count"] == 1
        assert body["questions"][0]["question"]["id"] == "ep-1-metrics-hard"

        body = seeded.get("/api/questions", params={"company": "airbnb"}).json()
        assert body["count"] == 2

    def test_invalid_type_is_400(self, client):
        assert client.get("/api/questions", params={"type": "trivia"}).status_code == 400

    def test_next_from_bank(self, seeded, gateway):
        body = seeded.get("/api/questions/next", params={"type": "behavioral"}).json()
        assert body["origin"] == "bank"
        assert body["question"]["id"] == "ep-1-behavioral-medium"
        gateway.complete.assert_not_called()

    def test_next_generated_on_miss(self, seeded, gateway):
        gateway.complete.return_value = question_json()

        response = seeded.get(
            "/api/questions/next",
            params={"type": "rca", "difficulty": "hard"},
            headers={"X-Dojo-Caller": "user-42"},
        )

        assert response.status_code == 200
        assert response.json()["origin"] == "generated"
        assert response.json()["question"]["id"] == "ep-1-rca-hard"
        assert gateway.complete.call_args.kwargs["caller"] == "user-42"

    def test_next_without_context_is_404(self, client):
        response = client.get("/api/questions/next", params={"type": "rca"})
        assert response.status_code == 404

    @pytest.mark.parametrize(
        "error,status",
        [
            (NoCredential(), 400),
            (BadCredential("bad key", status=401), 401),
            (PaymentRequired("no credit", status=402), 402),
            (RateLimited("slow down", status=429), 429),
        ],
    )
    def test_gateway_errors_mapped(self, seeded, gateway, error, status):
        gateway.complete.side_effect = error

        response = seeded.get("/api/questions/next", params={"type": "strategy"})

        assert response.status_code == status
        assert response.json()["error"] == str(error)
        assert response.json()["kind"] == error.kind.value

    def test_malformed_generation_is_502(self, seeded, gateway):
        gateway.complete.return_value = "no json here"
        response = seeded.get("/api/questions/next", params={"type": "strategy"})
        assert response.status_code == 502
        assert response.json()["kind"] == "malformed_response"


class TestEvaluate:

    def test_by_question_id(self, seeded, gateway):
        gateway.complete.return_value = json.dumps(EVALUATION)

        response = seeded.post(
            "/api/evaluate",
            json={"question_id": "ep-1-behavioral-medium", "answer": "I would cut scope."},
        )

        assert response.status_code == 200
        assert response.json()["question_id"] == "ep-1-behavioral-medium"
        assert response.json()["evaluation"]["overall_score"] == 6.5

    def test_with_inline_question(self, client, gateway):
        gateway.complete.return_value = json.dumps(EVALUATION)
        question = json.loads(question_json(id="adhoc-1"))

        response = client.post("/api/evaluate", json={"question": question, "answer": "My answer"})

        assert response.status_code == 200
        assert response.json()["question_id"] == "adhoc-1"

    def test_unknown_question_id(self, client):
        response = client.post("/api/evaluate", json={"question_id": "nope", "answer": "x"})
        assert response.status_code == 404

    def test_missing_question(self, client):
        response = client.post("/api/evaluate", json={"answer": "x"})
        assert response.status_code == 400

    def test_blank_answer(self, seeded, gateway):
        response = seeded.post("/api/evaluate", json={"question_id": "ep-1-behavioral-medium", "answer": "   "})
        assert response.status_code == 400
        gateway.complete.assert_not_called()


class TestIntelligence:

    def test_companies(self, seeded):
        body = seeded.get("/api/companies").json()
        assert body["count"] == 1
        assert body["companies"][0]["name"] == "Airbnb"

    def test_frameworks_empty(self, seeded):
        assert seeded.get("/api/frameworks").json() == {"count": 0, "frameworks": []}
