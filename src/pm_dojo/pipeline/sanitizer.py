"""
Recover a JSON object from raw LLM text.

Repair chain, cheapest first, stopping at the first strict parse that yields
an object:
1. the full text
2. the body of a fenced code block
3. the substring from the first '{' to the last '}'
4. that substring with trailing commas removed and raw newlines inside
   string literals escaped

Repairs run only after the exact parses fail, so valid JSON is never rewritten.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from src.pm_dojo.pipeline.errors import MalformedResponse

logger = logging.getLogger(__name__)

EXCERPT_CHARS = 2000

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)```")
_TRAILING_COMMA_RE = re.compile(r",(\s*[\]}])")


def _loads_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    if not text:
        return None
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def extract_fenced_body(text: str) -> Optional[str]:
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else None


def extract_outer_object(text: str) -> Optional[str]:
    """Greedy span from the first '{' to the last '}'."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def remove_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def escape_newlines_in_strings(text: str) -> str:
    """
    Escape literal CR/LF characters that sit inside double-quoted strings.
    Newlines between tokens are left alone.
    """
    out = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            elif ch == "\n":
                out.append("\\n")
                continue
            elif ch == "\r":
                out.append("\\r")
                continue
        elif ch == '"':
            in_string = True
        out.append(ch)
    return "".join(out)


def repair_json_text(text: str) -> str:
    return escape_newlines_in_strings(remove_trailing_commas(text))


def parse(raw_text: Optional[str]) -> Dict[str, Any]:
    """
    Parse a model response into a dict.

    Raises:
        MalformedResponse: no stage produced a JSON object. Carries the first
            2,000 characters of the original text.
    """
    text = (raw_text or "").strip()

    parsed = _loads_object(text)
    if parsed is not None:
        return parsed

    fenced = extract_fenced_body(text)
    parsed = _loads_object(fenced)
    if parsed is not None:
        logger.debug("Parsed JSON from fenced code block")
        return parsed

    candidate = extract_outer_object(fenced if fenced else text)
    if candidate is None and fenced:
        candidate = extract_outer_object(text)
    parsed = _loads_object(candidate)
    if parsed is not None:
        logger.debug("Parsed JSON from outer object span")
        return parsed

    if candidate is not None:
        parsed = _loads_object(repair_json_text(candidate))
        if parsed is not None:
            logger.debug("Parsed JSON after trailing-comma / newline repair")
            return parsed

    excerpt = (raw_text or "")[:EXCERPT_CHARS]
    raise MalformedResponse("Could not recover a JSON object from the model response", excerpt=excerpt)
