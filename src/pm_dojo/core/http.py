from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import dataclass
from typing import Iterable, Optional

import requests

from src.pm_dojo.core import config

logger = logging.getLogger(__name__)

# Statuses worth another attempt; everything else >= 400 is raised at once
RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


@dataclass
class HttpResponse:
    url: str
    status_code: int
    text: str
    headers: dict

    def json(self):
        return json.loads(self.text)


class HttpClient:
    """
    HTTP client for read-only content sources (GitHub API, raw files).

    Features:
    - Shared requests.Session with a fixed User-Agent
    - Small randomized delay between calls
    - Retry with linear backoff on connection errors and retryable statuses
    """

    def __init__(
        self,
        *,
        timeout: int = config.REQUEST_TIMEOUT_SECONDS,
        user_agents: Optional[Iterable[str]] = None,
        min_delay: float = config.HTTP_MIN_DELAY,
        max_delay: float = config.HTTP_MAX_DELAY,
        max_retries: int = config.HTTP_MAX_RETRIES,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout
        self.user_agents = list(user_agents or config.HTTP_USER_AGENTS)
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.max_retries = max_retries

    def _headers(self, extra: Optional[dict] = None) -> dict:
        headers = {"User-Agent": random.choice(self.user_agents)}
        if extra:
            headers.update(extra)
        return headers

    def _sleep_a_bit(self) -> None:
        if self.max_delay > 0:
            time.sleep(random.uniform(self.min_delay, self.max_delay))

    def get(
        self,
        url: str,
        *,
        headers: Optional[dict] = None,
        allow_404: bool = False,
    ) -> Optional[HttpResponse]:
        """
        Perform a GET with retries.

        Returns None for a 404 when allow_404 is set; raises
        requests.HTTPError for other non-retryable error statuses.
        """
        retries = 0

        while True:
            self._sleep_a_bit()
            try:
                resp = self.session.get(
                    url,
                    timeout=self.timeout,
                    headers=self._headers(headers),
                )
            except requests.RequestException as e:
                retries += 1
                if retries > self.max_retries:
                    raise
                logger.warning(f"GET {url} failed ({e}); retry {retries}/{self.max_retries}")
                time.sleep(config.HTTP_BACKOFF_BASE * retries)
                continue

            if allow_404 and resp.status_code == 404:
                return None

            if resp.status_code in RETRYABLE_STATUSES:
                retries += 1
                if retries > self.max_retries:
                    resp.raise_for_status()
                logger.warning(f"GET {url} returned {resp.status_code}; retry {retries}/{self.max_retries}")
                time.sleep(config.HTTP_BACKOFF_BASE * retries)
                continue

            if resp.status_code >= 400:
                resp.raise_for_status()

            return HttpResponse(
                url=resp.url,
                status_code=resp.status_code,
                text=resp.text,
                headers=dict(resp.headers),
            )


def build_http_client() -> HttpClient:
    return HttpClient()
