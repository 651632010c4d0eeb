"""
Tests for serve-time practice operations: next question and answer evaluation.
"""

import json
from unittest.mock import Mock, patch

import pytest

from src.pm_dojo.pipeline.errors import AssemblyFailed, EmptyResponse, MalformedResponse, RateLimited
from src.pm_dojo.pipeline.practice import (
    NoPracticeContext,
    build_company_contexts,
    evaluate_answer,
    next_question,
)
from src.pm_dojo.pipeline.schemas import Question
from src.pm_dojo.storage.intelligence_cache import IntelligenceCache
from src.pm_dojo.storage.question_bank import QuestionBank
from tests.helpers import make_intelligence, question_json

EVALUATION = {
    "overall_score": 7,
    "dimension_scores": {"structure": {"score": 8, "feedback": "Clear structure."}},
    "strengths": ["Led with the customer"],
    "improvements": ["Quantify the impact"],
    "missed_from_podcast": ["Founder mode"],
    "quote_to_remember": {"text": "Be in the details.", "why_it_matters": "Depth wins interviews."},
    "encouragement": "Good progress!",
}


def _question():
    return Question.model_validate_json(question_json(id="ep-1-behavioral-medium", company="Airbnb"))


class TestBuildCompanyContexts:

    def test_only_rich_companies(self):
        record = make_intelligence(
            "ep-1",
            companies=[
                {"name": "Quiet"},
                {"name": "Figma", "decisions": [{"what": "Go multiplayer"}]},
            ],
        )
        contexts = build_company_contexts([record])
        assert [c.company_name for c in contexts] == ["Figma"]
        assert contexts[0].company_context == "Figma as discussed by Brian Chesky"

    def test_company_filter_case_insensitive(self):
        records = [make_intelligence("ep-1"), make_intelligence("ep-2", companies=[{"name": "Figma", "opinions": [{"opinion": "x"}]}])]
        contexts = build_company_contexts(records, company="FIGMA")
        assert [c.episode_id for c in contexts] == ["ep-2"]


class TestNextQuestion:

    def test_bank_hit_makes_no_llm_call(self, conn):
        bank = QuestionBank(conn)
        bank.insert("ep-1", _question())
        gateway = Mock()

        question, origin = next_question(bank, IntelligenceCache(conn), gateway, "behavioral", "medium")

        assert origin == "bank"
        assert question.id == "ep-1-behavioral-medium"
        gateway.complete.assert_not_called()

    def test_bank_miss_generates_and_stores(self, conn):
        bank = QuestionBank(conn)
        cache = IntelligenceCache(conn)
        cache.upsert(make_intelligence("ep-1"))
        gateway = Mock()
        gateway.complete.return_value = question_json()

        question, origin = next_question(bank, cache, gateway, "strategy", "expert", caller="user-1")

        assert origin == "generated"
        assert question.id == "ep-1-strategy-expert"
        assert question.suggested_time_minutes == 45
        args, kwargs = gateway.complete.call_args
        assert args[1] == 4000
        assert kwargs["caller"] == "user-1"
        assert "EXPERT difficulty" in args[0][0]["content"]

        stored = bank.get("ep-1-strategy-expert")
        assert stored.origin == "on_demand"

    def test_bank_miss_without_context(self, conn):
        gateway = Mock()
        with pytest.raises(NoPracticeContext):
            next_question(QuestionBank(conn), IntelligenceCache(conn), gateway, "rca", "hard", company="Nobody")
        gateway.complete.assert_not_called()

    def test_generation_errors_propagate(self, conn):
        cache = IntelligenceCache(conn)
        cache.upsert(make_intelligence("ep-1"))
        gateway = Mock()
        gateway.complete.side_effect = RateLimited("slow down", status=429)

        with pytest.raises(AssemblyFailed) as exc_info:
            next_question(QuestionBank(conn), cache, gateway, "rca", "hard")
        assert isinstance(exc_info.value.cause, RateLimited)
        assert gateway.complete.call_count == 1


class TestEvaluateAnswer:

    def test_scores_answer(self):
        gateway = Mock()
        gateway.complete.return_value = "```json\n" + json.dumps(EVALUATION) + "\n```"

        evaluation = evaluate_answer(gateway, _question(), "  I would start with the customer.  ")

        assert evaluation.overall_score == 7
        assert evaluation.dimension_scores["structure"].score == 8
        assert evaluation.quote_to_remember.text == "Be in the details."
        args, _ = gateway.complete.call_args
        assert args[1] == 2000
        assert "I would start with the customer." in args[0][-1]["content"]

    def test_blank_answer_rejected(self):
        gateway = Mock()
        with pytest.raises(ValueError):
            evaluate_answer(gateway, _question(), "   ")
        gateway.complete.assert_not_called()

    def test_empty_completion(self):
        gateway = Mock()
        gateway.complete.return_value = ""
        with pytest.raises(EmptyResponse):
            evaluate_answer(gateway, _question(), "An answer")

    def test_score_out_of_range(self):
        gateway = Mock()
        gateway.complete.return_value = json.dumps({**EVALUATION, "overall_score": 42})
        with pytest.raises(MalformedResponse):
            evaluate_answer(gateway, _question(), "An answer")
