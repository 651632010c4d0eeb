"""
Tests for the batch pipeline jobs and CLI entry point.
"""

import json
from unittest.mock import Mock, patch

import pytest

from src.pm_dojo.core.db import get_connection
from src.pm_dojo.core.models import TranscriptHeader
from src.pm_dojo.pipeline.__main__ import main, parse_args, run_assemble_job, run_seed_job, run_sync_job
from src.pm_dojo.pipeline.errors import PaymentRequired
from src.pm_dojo.storage.intelligence_cache import IntelligenceCache
from src.pm_dojo.storage.question_bank import QuestionBank
from tests.helpers import make_intelligence, question_json

EXTRACTION = {
    "companies": [
        {"name": "Notion", "decisions": [{"what": "Rebuilt the editor", "why": "Performance"}], "opinions": []}
    ]
}


class StaticSource:
    def __init__(self, episode_ids):
        self.episode_ids = episode_ids

    def list_transcript_ids(self):
        return list(self.episode_ids)

    def fetch_transcript_header(self, episode_id):
        return TranscriptHeader(episode_id, "Ivan Zhao", f"Episode {episode_id}")

    def fetch_transcript_body(self, episode_id):
        return "Transcript body"

    def release(self, episode_ids):
        pass


def _scripted_gateway():
    """Extraction prompts get intelligence JSON, question prompts get a question."""
    gateway = Mock()

    def complete(messages, max_tokens, caller=None):
        if "extract structured intelligence" in messages[0]["content"]:
            return json.dumps(EXTRACTION)
        return question_json()

    gateway.complete.side_effect = complete
    return gateway


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("src.pm_dojo.pipeline.sync.time.sleep"), patch("src.pm_dojo.pipeline.assembler.time.sleep"), patch(
        "src.pm_dojo.pipeline.extractor.time.sleep"
    ):
        yield


class TestJobs:

    def test_sync_then_assemble_new_episodes(self, conn):
        IntelligenceCache(conn).upsert(make_intelligence("old-ep"))
        gateway = _scripted_gateway()

        sync_result, assembly = run_sync_job(conn, gateway=gateway, source=StaticSource(["old-ep", "new-ep"]))

        assert sync_result.processed_ids == ["new-ep"]
        assert assembly.generated == 12
        bank = QuestionBank(conn)
        # only the newly cached episode gets questions
        assert bank.existing_triples(["old-ep"]) == set()
        assert {q.company for q in assembly.questions} == {"Notion"}

    def test_sync_without_assembly(self, conn):
        gateway = _scripted_gateway()

        sync_result, assembly = run_sync_job(
            conn, gateway=gateway, source=StaticSource(["ep-1"]), assemble_after=False
        )

        assert sync_result.newly_processed == 1
        assert assembly is None
        assert QuestionBank(conn).count() == 0

    def test_systemic_stop_skips_assembly(self, conn):
        gateway = Mock()
        gateway.complete.side_effect = [json.dumps(EXTRACTION), PaymentRequired("no credit", status=402)]

        sync_result, assembly = run_sync_job(conn, gateway=gateway, source=StaticSource(["ep-1", "ep-2"]))

        assert sync_result.processed_ids == ["ep-1"]
        assert sync_result.stopped_reason.startswith("payment_required")
        assert assembly is None
        assert gateway.complete.call_count == 2

    def test_seed_job(self, conn):
        result = run_seed_job(conn, source=StaticSource(["ep-1", "ep-2"]))
        assert result.newly_processed == 2
        assert IntelligenceCache(conn).get("ep-1").guest_name == "Ivan Zhao"

    def test_assemble_job_limited_to_episodes(self, conn):
        cache = IntelligenceCache(conn)
        cache.upsert(make_intelligence("ep-1"))
        cache.upsert(make_intelligence("ep-2"))
        gateway = Mock()
        gateway.complete.return_value = question_json()

        result = run_assemble_job(conn, gateway=gateway, episode_ids=["ep-2"], types=["rca"], difficulties=["hard"])

        assert result.generated == 1
        assert QuestionBank(conn).existing_triples() == {"ep-2:rca:hard"}


class TestCli:

    def test_parse_assemble_lists(self):
        args = parse_args(["assemble", "--types", "rca, metrics", "--difficulties", "hard", "--max-questions", "3"])
        assert args.types == ["rca", "metrics"]
        assert args.difficulties == ["hard"]
        assert args.max_questions == 3

    def test_parse_sync_defaults(self):
        args = parse_args(["sync"])
        assert args.assemble is True
        assert args.max_episodes is None

    @pytest.mark.parametrize("flag,value", [("--types", "product_sense,execution"), ("--difficulties", "easy")])
    def test_unknown_assemble_values_rejected(self, flag, value):
        with pytest.raises(SystemExit):
            parse_args(["assemble", flag, value])

    def test_assemble_help_lists_real_defaults(self, capsys):
        with pytest.raises(SystemExit):
            parse_args(["assemble", "--help"])
        out = " ".join(capsys.readouterr().out.split())
        assert "behavioral,product_sense,product_design,rca,strategy,metrics" in out
        assert "medium,hard" in out
        assert "default: all" not in out

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_stats_command(self, db_path):
        conn = get_connection(db_path)
        conn.close()

        assert main(["--db-path", str(db_path), "stats"]) == 0

        conn = get_connection(db_path)
        try:
            assert IntelligenceCache(conn).count() == 0
        finally:
            conn.close()

    @patch("src.pm_dojo.pipeline.__main__.run_seed_job")
    def test_seed_command(self, mock_seed, db_path):
        assert main(["--db-path", str(db_path), "seed", "--max-episodes", "4"]) == 0
        assert mock_seed.call_args.kwargs["max_episodes"] == 4
