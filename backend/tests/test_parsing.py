"""
Tests for parsing.py - JSON extraction from LLM replies.
"""
from screener.services.parsing import parse_json_with_fallback, strip_markdown_fences


DEFAULT = {"summary": "Information could not be verified.", "items": []}


class TestParseJsonWithFallback:
    """parse_json_with_fallback never raises and tags its result."""

    def test_plain_json(self):
        result = parse_json_with_fallback('{"a": 1}', DEFAULT)
        assert result.ok
        assert result.value == {"a": 1}
        assert result.error is None

    def test_fenced_json_block(self):
        text = 'Here you go:\n```json\n{"risk_level": "High"}\n```\nThanks.'
        result = parse_json_with_fallback(text, DEFAULT)
        assert result.ok
        assert result.value == {"risk_level": "High"}

    def test_fence_without_language_tag(self):
        result = parse_json_with_fallback('```\n{"a": [1, 2]}\n```', DEFAULT)
        assert result.ok
        assert result.value == {"a": [1, 2]}

    def test_outermost_object_is_salvaged_from_prose(self):
        text = 'Based on my research, {"summary": "ok", "nested": {"x": 1}} is the answer.'
        result = parse_json_with_fallback(text, DEFAULT)
        assert result.ok
        assert result.value == {"summary": "ok", "nested": {"x": 1}}

    def test_malformed_json_falls_back(self):
        result = parse_json_with_fallback('{"summary": "unterminated', DEFAULT)
        assert not result.ok
        assert result.value == DEFAULT
        assert result.error

    def test_empty_text_falls_back(self):
        for text in ("", "   \n", None):
            result = parse_json_with_fallback(text, DEFAULT)
            assert not result.ok
            assert result.value == DEFAULT
            assert result.error == "empty response"

    def test_fallback_is_a_copy(self):
        """Mutating a fallback value must not leak into the shared default."""
        result = parse_json_with_fallback("not json", DEFAULT)
        result.value["items"].append("x")
        assert DEFAULT["items"] == []


class TestStripMarkdownFences:

    def test_returns_block_body(self):
        assert strip_markdown_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_text_without_fence_is_stripped_only(self):
        assert strip_markdown_fences('  {"a": 1}  ') == '{"a": 1}'
