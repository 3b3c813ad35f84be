"""
Tests for the shared text helpers.
"""
from quonx.utils.text import (
    cleanup_response,
    contains_any,
    detect_language,
    extract_code_blocks,
    extract_keywords,
    format_code_blocks,
    keyword_matches,
    keyword_score,
    parse_json_safely,
    sanitize_input,
    truncate_text,
)


class TestSanitizeInput:
    """Input normalization"""

    def test_strips_control_characters(self):
        assert sanitize_input("  hello\x00 world\x07 ") == "hello world"

    def test_non_string_values(self):
        assert sanitize_input(None) == ""
        assert sanitize_input(42) == "42"

    def test_keeps_newlines_and_tabs(self):
        assert sanitize_input("a\n\tb") == "a\n\tb"


class TestTruncate:

    def test_short_text_unchanged(self):
        assert truncate_text("abc", 10) == "abc"

    def test_long_text_ends_with_ellipsis(self):
        result = truncate_text("x" * 50, 10)
        assert len(result) == 10
        assert result.endswith("...")


class TestCodeBlocks:
    """Fenced code block handling"""

    def test_extract_code_blocks(self):
        text = "Intro\n```python\nprint(1)\n```\nand\n```\nplain\n```"
        blocks = extract_code_blocks(text)

        assert blocks == [
            {"language": "python", "code": "print(1)"},
            {"language": "text", "code": "plain"},
        ]

    def test_format_adds_detected_language(self):
        text = "```\ndef f():\n    return 1\n```"
        assert format_code_blocks(text).startswith("```python\n")

    def test_detect_language(self):
        assert detect_language("function f() { return 1 }") == "javascript"
        assert detect_language("#include <stdio.h>") == "cpp"
        assert detect_language("just words") == "text"


class TestCleanupResponse:

    def test_collapses_blank_lines(self):
        assert cleanup_response("a\n\n\n\nb") == "a\n\nb"

    def test_keeps_paragraph_breaks(self):
        assert cleanup_response("First.\n\nSecond.") == "First.\n\nSecond."

    def test_tightens_sentence_spacing(self):
        assert cleanup_response("One.   Two.") == "One. Two."


class TestKeywordScoring:
    """Keyword overlap scoring"""

    def test_single_words_match_inside_tokens(self):
        assert keyword_matches("Debugging the function", ["debug", "function", "class"]) == ["debug", "function"]

    def test_phrases_match_as_substrings(self):
        assert keyword_matches("list the pros and cons", ["pros and cons", "trade-off"]) == ["pros and cons"]

    def test_score_is_matched_over_total(self):
        assert keyword_score("write code", ["write", "code", "test", "build"]) == 0.5

    def test_empty_category_scores_zero(self):
        assert keyword_score("anything", []) == 0.0

    def test_contains_any_is_case_insensitive(self):
        assert contains_any("Is this SECURE?", ["secure"])
        assert not contains_any("hello", ["secure"])


class TestJsonParsing:

    def test_parses_fenced_json(self):
        assert parse_json_safely('```json\n{"a": 1}\n```') == {"a": 1}

    def test_malformed_json_returns_none(self):
        assert parse_json_safely("{not json") is None


def test_extract_keywords_orders_by_frequency():
    keywords = extract_keywords("sorting arrays: sorting lists and sorting arrays", 2)
    assert keywords == ["sorting", "arrays"]
