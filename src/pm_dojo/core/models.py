from dataclasses import dataclass
from typing import Optional

from src.pm_dojo.core.config import MAX_TRANSCRIPT_CHARS, TRANSCRIPT_TRUNCATION_MARKER


@dataclass(frozen=True)
class TranscriptHeader:
    """Metadata parsed from the front matter block of a transcript file."""
    episode_id: str
    guest_name: str
    episode_title: str
    youtube_url: Optional[str] = None
    duration: Optional[str] = None


@dataclass(frozen=True)
class Transcript:
    # Core identity
    episode_id: str                  # opaque slug, e.g. "brian-chesky"
    guest_name: str
    episode_title: str

    # Raw transcript body (front matter stripped)
    text: str

    @classmethod
    def from_header(cls, header: TranscriptHeader, text: str) -> "Transcript":
        return cls(
            episode_id=header.episode_id,
            guest_name=header.guest_name,
            episode_title=header.episode_title,
            text=text,
        )

    def truncated_text(self, max_chars: int = MAX_TRANSCRIPT_CHARS) -> str:
        """
        Body capped at max_chars, with a marker appended when cut.
        """
        if len(self.text) <= max_chars:
            return self.text
        return self.text[:max_chars] + TRANSCRIPT_TRUNCATION_MARKER

    @property
    def word_count(self) -> int:
        return len(self.text.split())


def triple_key(episode_id: str, interview_type: str, difficulty: str) -> str:
    """
    Stable string form of a question triple, used in logs and error summaries.
    """
    return f"{episode_id}:{interview_type}:{difficulty}"
