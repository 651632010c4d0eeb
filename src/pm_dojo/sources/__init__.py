"""
Transcript sources for the sync pipeline.
"""

from .transcripts import GitHubTranscriptSource, TranscriptSource, parse_front_matter

__all__ = [
    'GitHubTranscriptSource',
    'TranscriptSource',
    'parse_front_matter',
]
