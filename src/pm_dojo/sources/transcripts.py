"""
Podcast transcript source.

Default implementation reads the public transcripts repository on GitHub:
- directory listing via the contents API (one directory per episode)
- transcript files via raw.githubusercontent.com: episodes/<id>/transcript.md

Each transcript starts with a front matter block:

    ---
    guest: Brian Chesky
    title: "Brian Chesky's new playbook"
    youtube_url: https://www.youtube.com/watch?v=...
    ---
"""

import logging
import re
import threading
from typing import Dict, List, Optional, Protocol, Tuple

import requests

from src.pm_dojo.core import config
from src.pm_dojo.core.http import HttpClient, build_http_client
from src.pm_dojo.core.models import TranscriptHeader

logger = logging.getLogger(__name__)

_FRONT_MATTER_RE = re.compile(r"\A---\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)(.*)\Z", re.DOTALL)


class TranscriptSource(Protocol):
    def list_transcript_ids(self) -> List[str]:
        ...

    def fetch_transcript_header(self, episode_id: str) -> Optional[TranscriptHeader]:
        ...

    def fetch_transcript_body(self, episode_id: str) -> str:
        ...

    def release(self, episode_ids: List[str]) -> None:
        ...


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def humanize_episode_id(episode_id: str) -> str:
    """'brian-chesky' -> 'Brian Chesky'."""
    return " ".join(word.capitalize() for word in episode_id.split("-") if word)


def split_front_matter(content: str) -> Optional[Tuple[Dict[str, str], str]]:
    """
    Split a transcript file into (front matter fields, body).

    Front matter is parsed as simple `key: value` lines with surrounding
    quotes removed. Returns None when the file has no front matter block.
    """
    match = _FRONT_MATTER_RE.match(content)
    if not match:
        return None

    fields: Dict[str, str] = {}
    for line in match.group(1).splitlines():
        key, sep, value = line.partition(":")
        key = key.strip()
        if not sep or not key:
            continue
        fields[key] = _strip_quotes(value.strip())
    return fields, match.group(2).strip()


def parse_front_matter(episode_id: str, content: str) -> Optional[TranscriptHeader]:
    """
    Header for a transcript file, or None when it has no front matter.

    A missing guest falls back to the humanized episode id; a missing title
    to "Episode with <guest>".
    """
    split = split_front_matter(content)
    if split is None:
        return None
    fields, _ = split
    guest = fields.get("guest") or humanize_episode_id(episode_id)
    return TranscriptHeader(
        episode_id=episode_id,
        guest_name=guest,
        episode_title=fields.get("title") or f"Episode with {guest}",
        youtube_url=fields.get("youtube_url") or None,
        duration=fields.get("duration") or None,
    )


class GitHubTranscriptSource:
    """
    Transcript source backed by a GitHub repository.

    The header and the body live in the same file, so a file fetched for its
    header is held until its body is requested or the caller releases it.
    """

    def __init__(
        self,
        http_client: Optional[HttpClient] = None,
        owner: str = config.TRANSCRIPTS_REPO_OWNER,
        repo: str = config.TRANSCRIPTS_REPO_NAME,
        branch: str = config.TRANSCRIPTS_BRANCH,
        directory: str = config.TRANSCRIPTS_DIR,
        token: Optional[str] = config.GITHUB_TOKEN,
    ):
        self.http_client = http_client or build_http_client()
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.directory = directory
        self.token = token
        self._pending: Dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def listing_url(self) -> str:
        return f"https://api.github.com/repos/{self.owner}/{self.repo}/contents/{self.directory}"

    def transcript_url(self, episode_id: str) -> str:
        return (
            f"https://raw.githubusercontent.com/{self.owner}/{self.repo}/"
            f"{self.branch}/{self.directory}/{episode_id}/transcript.md"
        )

    def _api_headers(self) -> dict:
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def list_transcript_ids(self) -> List[str]:
        """Episode directory names, sorted."""
        resp = self.http_client.get(self.listing_url, headers=self._api_headers())
        entries = resp.json()
        ids = sorted(entry["name"] for entry in entries if entry.get("type") == "dir")
        logger.info(f"Found {len(ids)} episodes in {self.owner}/{self.repo}")
        return ids

    def _fetch_raw(self, episode_id: str) -> Optional[str]:
        resp = self.http_client.get(self.transcript_url(episode_id), allow_404=True)
        return resp.text if resp is not None else None

    def fetch_transcript_header(self, episode_id: str) -> Optional[TranscriptHeader]:
        """
        Header for one episode; None when the file is missing, unreachable
        or has no front matter.
        """
        try:
            content = self._fetch_raw(episode_id)
        except requests.RequestException as e:
            logger.warning(f"Could not fetch transcript for {episode_id}: {e}")
            return None
        if content is None:
            logger.warning(f"No transcript file for {episode_id}")
            return None

        header = parse_front_matter(episode_id, content)
        if header is not None:
            with self._lock:
                self._pending[episode_id] = content
        return header

    def fetch_transcript_body(self, episode_id: str) -> str:
        """
        Transcript text with the front matter removed.

        Raises:
            requests.RequestException: the file could not be fetched.
            LookupError: the file does not exist.
        """
        with self._lock:
            content = self._pending.pop(episode_id, None)
        if content is None:
            content = self._fetch_raw(episode_id)
            if content is None:
                raise LookupError(f"No transcript file for {episode_id}")
        split = split_front_matter(content)
        return split[1] if split else content.strip()

    def release(self, episode_ids: List[str]) -> None:
        """Drop held files for episodes whose bodies will not be requested."""
        with self._lock:
            for episode_id in episode_ids:
                self._pending.pop(episode_id, None)
