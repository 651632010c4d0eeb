"""
Tests for incremental sync and metadata seeding.
"""

import json
from typing import Dict, List, Optional
from unittest.mock import Mock, patch

import httpx
import pytest
import requests

from src.pm_dojo.core.http import HttpResponse
from src.pm_dojo.core.models import TranscriptHeader
from src.pm_dojo.core.utils import CancelToken
from src.pm_dojo.pipeline.errors import ExtractionFailed, GatewayError, PaymentRequired
from src.pm_dojo.pipeline.extractor import IntelligenceExtractor
from src.pm_dojo.pipeline.llm_client import Credential, ModelGateway, Provider, StaticCredentials
from src.pm_dojo.pipeline.sync import SyncOrchestrator
from src.pm_dojo.sources.transcripts import GitHubTranscriptSource
from src.pm_dojo.storage.intelligence_cache import IntelligenceCache
from tests.helpers import make_intelligence


class FakeSource:
    """In-memory transcript source."""

    def __init__(self, episode_ids: List[str], missing_headers=(), broken_headers=(), missing_bodies=()):
        self.episode_ids = list(episode_ids)
        self.missing_headers = set(missing_headers)
        self.broken_headers = set(broken_headers)
        self.missing_bodies = set(missing_bodies)
        self.body_requests: List[str] = []
        self.released: List[str] = []

    def list_transcript_ids(self) -> List[str]:
        return list(self.episode_ids)

    def fetch_transcript_header(self, episode_id: str) -> Optional[TranscriptHeader]:
        if episode_id in self.broken_headers:
            raise requests.ConnectionError("reset by peer")
        if episode_id in self.missing_headers:
            return None
        return TranscriptHeader(episode_id, f"Guest {episode_id}", f"Episode {episode_id}")

    def fetch_transcript_body(self, episode_id: str) -> str:
        self.body_requests.append(episode_id)
        if episode_id in self.missing_bodies:
            raise LookupError(f"No transcript file for {episode_id}")
        return f"Transcript of {episode_id}"

    def release(self, episode_ids: List[str]) -> None:
        self.released.extend(episode_ids)


def _extractor(failures: Optional[Dict[str, Exception]] = None):
    failures = failures or {}
    extractor = Mock()

    def extract(transcript):
        if transcript.episode_id in failures:
            cause = failures[transcript.episode_id]
            raise ExtractionFailed(transcript.episode_id, str(cause), cause)
        return make_intelligence(transcript.episode_id, guest_name=transcript.guest_name)

    extractor.extract.side_effect = extract
    return extractor


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("src.pm_dojo.pipeline.sync.time.sleep") as mock_sleep:
        yield mock_sleep


class TestSyncNew:

    def test_processes_only_unseen_episodes(self, conn):
        cache = IntelligenceCache(conn)
        cache.upsert(make_intelligence("ep-1"))
        extractor = _extractor()
        source = FakeSource(["ep-1", "ep-2", "ep-3"])

        result = SyncOrchestrator(source, cache, extractor).sync_new()

        assert result.total_known == 3
        assert result.already_cached == 1
        assert result.new_found == 2
        assert result.newly_processed == 2
        assert result.processed_ids == ["ep-2", "ep-3"]
        assert result.remaining == 0
        assert extractor.extract.call_count == 2
        assert cache.list_ids() == {"ep-1", "ep-2", "ep-3"}

    def test_second_run_is_a_no_op(self, conn):
        cache = IntelligenceCache(conn)
        extractor = _extractor()
        orchestrator = SyncOrchestrator(FakeSource(["ep-1", "ep-2"]), cache, extractor)

        orchestrator.sync_new()
        second = orchestrator.sync_new()

        assert second.new_found == 0
        assert second.newly_processed == 0
        assert extractor.extract.call_count == 2

    def test_max_episodes(self, conn):
        cache = IntelligenceCache(conn)
        source = FakeSource([f"ep-{i}" for i in range(5)])

        result = SyncOrchestrator(source, cache, _extractor(), batch_size=2).sync_new(max_episodes=3)

        assert result.newly_processed == 3
        assert result.remaining == 2
        assert cache.count() == 3

    def test_missing_header_is_skipped(self, conn):
        cache = IntelligenceCache(conn)
        source = FakeSource(["ep-1", "ep-2", "ep-3"], missing_headers={"ep-2"}, broken_headers={"ep-3"})

        result = SyncOrchestrator(source, cache, _extractor()).sync_new()

        assert result.processed_ids == ["ep-1"]
        assert [s["id"] for s in result.skipped] == ["ep-2", "ep-3"]
        assert source.body_requests == ["ep-1"]

    def test_per_episode_failure_is_isolated(self, conn):
        cache = IntelligenceCache(conn)
        source = FakeSource(["ep-1", "ep-2", "ep-3"], missing_bodies={"ep-1"})
        extractor = _extractor({"ep-2": GatewayError("boom", status=500)})

        result = SyncOrchestrator(source, cache, extractor).sync_new()

        assert result.processed_ids == ["ep-3"]
        assert [f["id"] for f in result.failed] == ["ep-1", "ep-2"]
        assert result.stopped_reason is None
        assert cache.list_ids() == {"ep-3"}

    def test_systemic_failure_stops_run(self, conn):
        cache = IntelligenceCache(conn)
        source = FakeSource(["ep-1", "ep-2", "ep-3"])
        extractor = _extractor({"ep-2": PaymentRequired("no credit", status=402)})

        result = SyncOrchestrator(source, cache, extractor).sync_new()

        assert result.processed_ids == ["ep-1"]
        assert result.stopped_reason.startswith("payment_required")
        assert extractor.extract.call_count == 2
        assert source.released == ["ep-1", "ep-2", "ep-3"]
        assert result.remaining == 1
        # committed work survives the stop
        assert cache.list_ids() == {"ep-1"}

    def test_cancel(self, conn):
        cancel = CancelToken()
        cancel.cancel()
        extractor = _extractor()

        result = SyncOrchestrator(FakeSource(["ep-1"]), IntelligenceCache(conn), extractor).sync_new(cancel=cancel)

        assert result.stopped_reason == "cancelled"
        extractor.extract.assert_not_called()

    def test_delay_between_extractions(self, conn, no_sleep):
        source = FakeSource(["ep-1", "ep-2", "ep-3"])

        SyncOrchestrator(source, IntelligenceCache(conn), _extractor(), episode_delay=2.0).sync_new()

        assert no_sleep.call_count == 2
        no_sleep.assert_called_with(2.0)

    def test_requires_extractor(self, conn):
        with pytest.raises(ValueError):
            SyncOrchestrator(FakeSource([]), IntelligenceCache(conn)).sync_new()

    def test_ollama_timeouts_are_recorded_per_episode(self, conn):
        client = Mock()
        client.chat.side_effect = httpx.ReadTimeout("timed out")
        gateway = ModelGateway(
            resolver=StaticCredentials(default=Credential(Provider.OLLAMA, "ollama-key")),
            session=Mock(),
            ollama_client_factory=lambda credential: client,
        )

        result = SyncOrchestrator(
            FakeSource(["ep-1", "ep-2"]), IntelligenceCache(conn), IntelligenceExtractor(gateway)
        ).sync_new()

        assert [f["id"] for f in result.failed] == ["ep-1", "ep-2"]
        assert result.stopped_reason is None
        assert client.chat.call_count == 2


class TestSeedMetadata:

    def test_seeds_empty_records(self, conn):
        cache = IntelligenceCache(conn)
        cache.upsert(make_intelligence("ep-1"))
        source = FakeSource(["ep-1", "ep-2", "ep-3", "ep-4"], missing_headers={"ep-4"})

        result = SyncOrchestrator(source, cache).seed_metadata()

        assert result.newly_processed == 2
        assert result.processed_ids == ["ep-2", "ep-3"]
        assert [s["id"] for s in result.skipped] == ["ep-4"]
        seeded = cache.get("ep-2")
        assert seeded.guest_name == "Guest ep-2"
        assert seeded.is_empty
        # existing extraction is not overwritten
        assert cache.get("ep-1").companies
        assert source.body_requests == []
        assert source.released == ["ep-2", "ep-3", "ep-4"]

    def test_seeded_episodes_count_as_cached(self, conn):
        cache = IntelligenceCache(conn)
        source = FakeSource(["ep-1", "ep-2"])
        SyncOrchestrator(source, cache).seed_metadata()

        extractor = _extractor()
        result = SyncOrchestrator(source, cache, extractor).sync_new()

        assert result.new_found == 0
        extractor.extract.assert_not_called()

    def test_github_source_holds_no_files_after_seed(self, conn):
        listing = [{"name": f"ep-{i}", "type": "dir"} for i in range(12)]
        transcript = "---\nguest: Guest\ntitle: Title\n---\n\n" + "word " * 20000

        def get(url, **kwargs):
            if url.startswith("https://api.github.com"):
                return HttpResponse(url=url, status_code=200, text=json.dumps(listing), headers={})
            return HttpResponse(url=url, status_code=200, text=transcript, headers={})

        http = Mock()
        http.get.side_effect = get
        source = GitHubTranscriptSource(http_client=http)

        result = SyncOrchestrator(source, IntelligenceCache(conn)).seed_metadata()

        assert result.newly_processed == 12
        assert source._pending == {}


class TestFetchHeaders:

    def test_failures_map_to_none(self, conn):
        source = FakeSource(["ep-1", "ep-2"], broken_headers={"ep-2"})
        headers = SyncOrchestrator(source, IntelligenceCache(conn)).fetch_headers(["ep-1", "ep-2"])

        assert headers["ep-1"].guest_name == "Guest ep-1"
        assert headers["ep-2"] is None

    def test_empty_batch(self, conn):
        assert SyncOrchestrator(FakeSource([]), IntelligenceCache(conn)).fetch_headers([]) == {}
