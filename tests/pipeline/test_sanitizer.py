"""
Tests for recovering JSON objects from raw model text.
"""

import pytest

from src.pm_dojo.pipeline import sanitizer
from src.pm_dojo.pipeline.errors import ErrorKind, MalformedResponse


class TestParse:
    """Repair chain behaviour."""

    def test_plain_json(self):
        assert sanitizer.parse('{"companies": [], "frameworks": []}') == {"companies": [], "frameworks": []}

    def test_fenced_json_block(self):
        raw = 'Here you go:\n```json\n{"a": 1}\n```\nLet me know!'
        assert sanitizer.parse(raw) == {"a": 1}

    def test_fence_without_language_tag(self):
        assert sanitizer.parse('```\n{"a": [1, 2]}\n```') == {"a": [1, 2]}

    def test_prose_around_object(self):
        raw = 'Sure! The extraction is {"companies": [{"name": "Airbnb"}]} as requested.'
        assert sanitizer.parse(raw) == {"companies": [{"name": "Airbnb"}]}

    def test_trailing_commas_repaired(self):
        raw = '{"a": [1, 2,], "b": {"c": 3,},}'
        assert sanitizer.parse(raw) == {"a": [1, 2], "b": {"c": 3}}

    def test_raw_newline_inside_string_repaired(self):
        raw = '{"quote": "line one\nline two"}'
        assert sanitizer.parse(raw) == {"quote": "line one\nline two"}

    def test_fenced_body_with_trailing_comma(self):
        raw = '```json\n{"a": 1,}\n```'
        assert sanitizer.parse(raw) == {"a": 1}

    def test_valid_json_is_not_rewritten(self):
        # A literal ",]" inside a string must survive
        raw = '{"text": "odd ,] sequence"}'
        assert sanitizer.parse(raw) == {"text": "odd ,] sequence"}

    def test_top_level_array_is_not_an_object(self):
        with pytest.raises(MalformedResponse):
            sanitizer.parse("[1, 2, 3]")

    def test_unrecoverable_text_carries_excerpt(self):
        raw = "I could not find anything useful. " * 200
        with pytest.raises(MalformedResponse) as exc_info:
            sanitizer.parse(raw)
        assert exc_info.value.kind == ErrorKind.MALFORMED_RESPONSE
        assert exc_info.value.excerpt == raw[:2000]

    def test_empty_text(self):
        with pytest.raises(MalformedResponse):
            sanitizer.parse("")

    def test_none_text(self):
        with pytest.raises(MalformedResponse):
            sanitizer.parse(None)


class TestHelpers:

    def test_extract_outer_object_is_greedy(self):
        text = 'x {"a": {"b": 1}} y {"c": 2} z'
        assert sanitizer.extract_outer_object(text) == '{"a": {"b": 1}} y {"c": 2}'

    def test_extract_outer_object_without_braces(self):
        assert sanitizer.extract_outer_object("no object here") is None

    def test_remove_trailing_commas(self):
        assert sanitizer.remove_trailing_commas('[1, 2,]') == "[1, 2]"

    def test_newlines_between_tokens_untouched(self):
        text = '{\n  "a": "b"\n}'
        assert sanitizer.escape_newlines_in_strings(text) == text

    def test_escaped_quote_keeps_string_open(self):
        text = '{"a": "say \\"hi\\"\nthere"}'
        assert sanitizer.escape_newlines_in_strings(text) == '{"a": "say \\"hi\\"\\nthere"}'
