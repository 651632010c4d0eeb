"""
Incremental sync: extract intelligence only for episodes not yet cached.

The cursor is the set of episode ids in the IntelligenceCache, so a run is a
pure set difference (source ids - cached ids). A second run right after a
successful one finds nothing to do.
"""

import logging
import sqlite3
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import requests

from src.pm_dojo.core import config
from src.pm_dojo.core.logging_utils import log_banner
from src.pm_dojo.core.metrics import increment, start_timer, stop_timer
from src.pm_dojo.core.models import Transcript, TranscriptHeader
from src.pm_dojo.core.utils import CancelToken
from src.pm_dojo.pipeline.errors import ExtractionFailed, is_systemic
from src.pm_dojo.pipeline.extractor import IntelligenceExtractor
from src.pm_dojo.pipeline.schemas import Intelligence
from src.pm_dojo.sources.transcripts import TranscriptSource
from src.pm_dojo.storage.intelligence_cache import IntelligenceCache

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    total_known: int = 0
    already_cached: int = 0
    new_found: int = 0
    newly_processed: int = 0
    processed_ids: List[str] = field(default_factory=list)
    skipped: List[Dict[str, str]] = field(default_factory=list)  # [{"id", "reason"}]
    failed: List[Dict[str, str]] = field(default_factory=list)  # [{"id", "reason"}]
    stopped_reason: Optional[str] = None

    @property
    def remaining(self) -> int:
        return self.new_found - self.newly_processed - len(self.skipped) - len(self.failed)


def _batches(items: List[str], size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


class SyncOrchestrator:
    """
    Drives extraction over the unseen delta of the transcript source.

    Handles:
    - Set-diff of source ids against cached ids
    - Bounded concurrent header fetches per batch (read-only, IO-bound)
    - Sequential extraction with per-episode error isolation
    - Aborting on systemic errors (rate limit, billing, credentials)
    """

    def __init__(
        self,
        source: TranscriptSource,
        cache: IntelligenceCache,
        extractor: Optional[IntelligenceExtractor] = None,
        batch_size: int = config.SYNC_BATCH_SIZE,
        header_workers: int = config.SYNC_HEADER_WORKERS,
        episode_delay: float = config.SYNC_EPISODE_DELAY,
    ):
        self.source = source
        self.cache = cache
        self.extractor = extractor
        self.batch_size = max(1, batch_size)
        self.header_workers = max(1, header_workers)
        self.episode_delay = episode_delay

    def pending_ids(self) -> Tuple[List[str], int]:
        """(unseen ids in source order, number already cached)."""
        source_ids = self.source.list_transcript_ids()
        cached_ids = self.cache.list_ids()
        new_ids = [episode_id for episode_id in source_ids if episode_id not in cached_ids]
        already_cached = len(source_ids) - len(new_ids)
        logger.info(f"Source has {len(source_ids)} episodes: {already_cached} cached, {len(new_ids)} new")
        return new_ids, already_cached

    def fetch_headers(self, episode_ids: List[str]) -> Dict[str, Optional[TranscriptHeader]]:
        """Headers for a batch, fetched concurrently. Failures map to None."""
        headers: Dict[str, Optional[TranscriptHeader]] = {}
        if not episode_ids:
            return headers

        with ThreadPoolExecutor(max_workers=min(self.header_workers, len(episode_ids))) as pool:
            futures = {pool.submit(self.source.fetch_transcript_header, eid): eid for eid in episode_ids}
            for future in as_completed(futures):
                episode_id = futures[future]
                try:
                    headers[episode_id] = future.result()
                except (requests.RequestException, ValueError) as e:
                    logger.warning(f"Header fetch failed for {episode_id}: {e}")
                    headers[episode_id] = None
        return headers

    def sync_new(self, max_episodes: Optional[int] = None, cancel: Optional[CancelToken] = None) -> SyncResult:
        """
        Extract and cache every episode in the source that is not cached yet.

        Never raises for per-episode failures; a systemic error stops the run
        with stopped_reason set. Work committed before the stop stays cached.
        """
        if self.extractor is None:
            raise ValueError("sync_new requires an extractor")

        timer_id = start_timer("sync_run")
        increment("sync_runs", labels={"mode": "extract"})
        result = SyncResult()
        try:
            new_ids, result.already_cached = self.pending_ids()
            result.total_known = result.already_cached + len(new_ids)
            result.new_found = len(new_ids)
            if max_episodes is not None:
                new_ids = new_ids[:max_episodes]

            extractions = 0
            for batch_no, batch in enumerate(_batches(new_ids, self.batch_size), 1):
                if self._should_stop(result, cancel):
                    break
                logger.info(f"Batch {batch_no}: {len(batch)} episodes")
                headers = self.fetch_headers(batch)
                try:
                    for episode_id in batch:
                        if self._should_stop(result, cancel):
                            break
                        header = headers.get(episode_id)
                        if header is None:
                            logger.warning(f"⊘ {episode_id}: missing or unparseable header, skipping")
                            result.skipped.append({"id": episode_id, "reason": "missing or unparseable header"})
                            continue

                        if extractions and self.episode_delay > 0:
                            time.sleep(self.episode_delay)
                        extractions += 1
                        self._process_episode(header, result)
                finally:
                    # bodies not consumed (stop, cancel, skip) must not stay held
                    self.source.release(batch)
        finally:
            stop_timer("sync_run", timer_id=timer_id)

        self._log_summary("Sync complete", result)
        return result

    def _process_episode(self, header: TranscriptHeader, result: SyncResult) -> None:
        episode_id = header.episode_id
        try:
            body = self.source.fetch_transcript_body(episode_id)
        except (requests.RequestException, LookupError) as e:
            logger.error(f"✗ {episode_id}: could not fetch transcript: {e}")
            result.failed.append({"id": episode_id, "reason": f"fetch failed: {e}"})
            return

        transcript = Transcript.from_header(header, body)
        try:
            intelligence = self.extractor.extract(transcript)
        except ExtractionFailed as e:
            if is_systemic(e):
                result.stopped_reason = f"{e.kind.value}: {e.reason}"
                logger.error(f"✗ Stopping sync at {episode_id}: {e.reason}")
            result.failed.append({"id": episode_id, "reason": e.reason})
            return

        try:
            self.cache.upsert(intelligence)
        except sqlite3.Error as e:
            logger.error(f"✗ {episode_id}: cache write failed: {e}")
            result.failed.append({"id": episode_id, "reason": f"cache write failed: {e}"})
            return

        result.newly_processed += 1
        result.processed_ids.append(episode_id)

    def seed_metadata(self, max_episodes: Optional[int] = None, batch_size: int = config.SEED_BATCH_SIZE) -> SyncResult:
        """
        Cache metadata-only records (empty intelligence) for unseen episodes.

        No LLM calls. Seeded episodes count as cached, so a later sync_new
        will not extract them; re-extraction goes through the extractor and
        an explicit upsert.
        """
        increment("sync_runs", labels={"mode": "seed"})
        result = SyncResult()
        new_ids, result.already_cached = self.pending_ids()
        result.total_known = result.already_cached + len(new_ids)
        result.new_found = len(new_ids)
        if max_episodes is not None:
            new_ids = new_ids[:max_episodes]

        records: List[Intelligence] = []
        for batch in _batches(new_ids, self.batch_size):
            headers = self.fetch_headers(batch)
            self.source.release(batch)
            for episode_id in batch:
                header = headers.get(episode_id)
                if header is None:
                    result.skipped.append({"id": episode_id, "reason": "missing or unparseable header"})
                    continue
                records.append(
                    Intelligence(
                        episode_id=episode_id,
                        guest_name=header.guest_name,
                        episode_title=header.episode_title,
                    )
                )

        write = self.cache.upsert_many(records, batch_size=batch_size)
        failed_ids = set(write.failed_ids)
        for chunk in write.failed:
            for episode_id in chunk["ids"]:
                result.failed.append({"id": episode_id, "reason": chunk["reason"]})
        result.processed_ids = [r.episode_id for r in records if r.episode_id not in failed_ids]
        result.newly_processed = write.written

        self._log_summary("Seed complete", result)
        return result

    def _should_stop(self, result: SyncResult, cancel: Optional[CancelToken]) -> bool:
        if result.stopped_reason:
            return True
        if cancel is not None and cancel.cancelled:
            result.stopped_reason = cancel.reason()
            return True
        return False

    def _log_summary(self, title: str, result: SyncResult) -> None:
        log_banner(
            logger,
            title,
            {
                "Known episodes": result.total_known,
                "Already cached": result.already_cached,
                "Newly processed": result.newly_processed,
                "Skipped": len(result.skipped),
                "Failed": len(result.failed),
                "Remaining": result.remaining,
                "Stopped": result.stopped_reason or "no",
            },
        )
