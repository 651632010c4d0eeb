"""
Transcript -> Intelligence extraction with rate-limit-aware retry.

Retry policy (per transcript, strictly sequential):
- 429: back off min(30s, 1.5s * 2^(attempt-1)) and retry; terminal on the last attempt
- empty 2xx body: back off 1s * attempt and retry; EmptyResponse after the last attempt
- anything else (402, 401, 5xx, transport, unparseable output): terminal at once
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from src.pm_dojo.core import config
from src.pm_dojo.core.metrics import increment
from src.pm_dojo.core.models import Transcript
from src.pm_dojo.pipeline import sanitizer
from src.pm_dojo.pipeline.errors import (
    DojoError,
    EmptyResponse,
    ExtractionFailed,
    MalformedResponse,
    RateLimited,
)
from src.pm_dojo.pipeline.extraction.intelligence_prompt import build_messages
from src.pm_dojo.pipeline.llm_client import ModelGateway
from src.pm_dojo.pipeline.schemas import Intelligence

logger = logging.getLogger(__name__)


def rate_limit_delay(attempt: int) -> float:
    """Seconds to wait after a 429 on the given 1-based attempt."""
    return min(config.RATE_LIMIT_BACKOFF_CAP, config.RATE_LIMIT_BACKOFF_BASE * (2 ** (attempt - 1)))


class IntelligenceExtractor:
    """
    Turns one transcript into one Intelligence record.

    The gateway does a single request per call; all retrying lives here.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        max_attempts: int = config.EXTRACTION_MAX_ATTEMPTS,
        max_chars: int = config.MAX_TRANSCRIPT_CHARS,
        caller: Optional[str] = None,
    ):
        self.gateway = gateway
        self.max_attempts = max_attempts
        self.max_chars = max_chars
        self.caller = caller

    def extract(self, transcript: Transcript) -> Intelligence:
        """
        Extract intelligence from a transcript.

        Raises:
            ExtractionFailed: with .cause set to the underlying taxonomy error.
        """
        messages = build_messages(
            episode_title=transcript.episode_title,
            guest_name=transcript.guest_name,
            transcript=transcript.truncated_text(self.max_chars),
        )
        raw_text = self._complete_with_retry(transcript.episode_id, messages)
        intelligence = self._to_intelligence(transcript, raw_text)

        increment("intelligence_extracted")
        logger.info(
            f"✓ Extracted {transcript.episode_id}: {len(intelligence.companies)} companies, "
            f"{len(intelligence.frameworks)} frameworks, {len(intelligence.memorable_quotes)} quotes"
        )
        return intelligence

    def _complete_with_retry(self, episode_id: str, messages: list) -> str:
        for attempt in range(1, self.max_attempts + 1):
            try:
                text = self.gateway.complete(messages, config.EXTRACTION_MAX_TOKENS, caller=self.caller)
            except RateLimited as e:
                if attempt >= self.max_attempts:
                    self._fail(episode_id, f"rate limited after {attempt} attempts", e)
                wait = rate_limit_delay(attempt)
                logger.warning(
                    f"Rate limited on {episode_id} (attempt {attempt}/{self.max_attempts}); waiting {wait:.1f}s"
                )
                time.sleep(wait)
                continue
            except DojoError as e:
                self._fail(episode_id, str(e), e)

            if text and text.strip():
                return text

            if attempt >= self.max_attempts:
                self._fail(episode_id, f"empty response after {attempt} attempts", EmptyResponse())
            wait = config.EMPTY_RESPONSE_BACKOFF * attempt
            logger.warning(f"Empty response for {episode_id} (attempt {attempt}/{self.max_attempts}); waiting {wait:.1f}s")
            time.sleep(wait)

        # max_attempts < 1
        self._fail(episode_id, "no attempts made", EmptyResponse())

    def _to_intelligence(self, transcript: Transcript, raw_text: str) -> Intelligence:
        try:
            data = sanitizer.parse(raw_text)
        except MalformedResponse as e:
            logger.error(f"Unparseable extraction for {transcript.episode_id}. First 500 chars: {e.excerpt[:500]}")
            self._fail(transcript.episode_id, str(e), e)

        data.update(
            episode_id=transcript.episode_id,
            guest_name=transcript.guest_name,
            episode_title=transcript.episode_title,
            extracted_at=datetime.now(timezone.utc),
        )
        try:
            return Intelligence.model_validate(data)
        except ValidationError as e:
            cause = MalformedResponse(f"Response did not match the intelligence schema: {e}", excerpt=raw_text[:2000])
            self._fail(transcript.episode_id, str(cause), cause)

    def _fail(self, episode_id: str, reason: str, cause: Exception) -> None:
        kind = getattr(cause, "kind", None)
        increment("intelligence_failed", labels={"kind": kind.value if kind else "unknown"})
        logger.error(f"✗ Extraction failed for {episode_id}: {reason}")
        raise ExtractionFailed(episode_id, reason, cause) from cause
