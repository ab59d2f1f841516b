"""Tests for parsing model output into enhancements."""

import pytest

from sane.parsing import extract_with_fallback, parse_enhancement, strip_code_fence
from sane.types import Enhancement


class TestStripCodeFence:
    def test_json_fence(self):
        assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_generic_fence(self):
        assert strip_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_no_fence(self):
        assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'

    def test_unclosed_fence_left_alone(self):
        assert strip_code_fence('```json {"a": 1}') == '```json {"a": 1}'


class TestParseEnhancement:
    def test_fenced_json_with_commentary(self):
        raw = (
            'Here you go:\n```json\n'
            '{"tags":["x","y"],"keywords":[],"links":[],"summary":"s"}\n```'
        )
        assert parse_enhancement(raw) == Enhancement(
            tags=["x", "y"], keywords=[], links=[], summary="s"
        )

    def test_plain_json(self):
        raw = '{"tags": ["ml"], "keywords": ["neural networks"], "links": [], "summary": " Short. "}'
        result = parse_enhancement(raw)
        assert result.tags == ["ml"]
        assert result.keywords == ["neural networks"]
        assert result.summary == "Short."

    def test_object_surrounded_by_text(self):
        raw = 'Sure! {"tags": ["a"], "summary": "b"} Hope this helps.'
        result = parse_enhancement(raw)
        assert result.tags == ["a"]
        assert result.summary == "b"

    def test_links_are_normalized(self):
        raw = '{"links": ["Plain Title", "[[Already Linked]]", "\\"Quoted\\""]}'
        assert parse_enhancement(raw).links == [
            "[[Plain Title]]",
            "[[Already Linked]]",
            "[[Quoted]]",
        ]

    def test_invalid_items_dropped(self):
        raw = '{"tags": ["ok", 3, "", null, "  ", "fine"], "keywords": "not a list", "summary": 42}'
        result = parse_enhancement(raw)
        assert result.tags == ["ok", "fine"]
        assert result.keywords == []
        assert result.summary == ""

    def test_corrupt_json_falls_back_to_regex(self):
        raw = 'Result: {"tags": ["a", "b"], "keywords": ["k1", broken'
        result = parse_enhancement(raw)
        assert result.tags == ["a", "b"]

    def test_fallback_finds_summary_and_links(self):
        raw = '"tags": [\'one\', "two"], "links": ["Note A"], "summary": "Recovered text", oops}'
        result = parse_enhancement(raw)
        assert result.tags == ["one", "two"]
        assert result.links == ["[[Note A]]"]
        assert result.summary == "Recovered text"

    def test_json_array_is_not_an_object(self):
        assert parse_enhancement('["tags", "x"]').is_empty()

    @pytest.mark.parametrize("raw", [
        "",
        "   ",
        "no json here at all",
        "{",
        "}{",
        "```",
        "```json\n```",
        '{"tags": [[[[[',
        "[" * 5000,
        "\x00\x01\x02",
    ])
    def test_never_raises(self, raw):
        result = parse_enhancement(raw)
        assert isinstance(result, Enhancement)
        assert isinstance(result.tags, list)
        assert isinstance(result.summary, str)

    def test_non_string_input(self):
        assert parse_enhancement(None).is_empty()


class TestExtractWithFallback:
    def test_loose_summary_line(self):
        result = extract_with_fallback("Tags are unknown\nSummary: a loose line\nmore")
        assert result.summary == "a loose line"

    def test_single_quoted_summary(self):
        result = extract_with_fallback("\"summary\": 'single quoted'")
        assert result.summary == "single quoted"

    def test_nothing_found(self):
        assert extract_with_fallback("nothing useful").is_empty()
