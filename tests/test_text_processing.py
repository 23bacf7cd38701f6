"""Tests for text normalization and analysis helpers."""

import pytest

from rag_ingest.chunking.text import (
    clean_text,
    estimate_token_count,
    extract_metadata,
    extract_text,
    generate_content_hash,
    normalize_text,
    truncate_to_tokens,
    validate_text,
)


def test_normalize_text_keeps_paragraphs():
    raw = "  First\tline   here\r\nsecond line\r\n\r\n\r\n\r\nNext   paragraph  "

    assert normalize_text(raw) == "First line here\nsecond line\n\nNext paragraph"


def test_extract_text_strips_markdown():
    markdown = (
        "# Title\n\n"
        "Some **bold** and _italic_ text with a [link](http://example.com).\n\n"
        "![diagram](img.png)\n\n"
        "```python\nprint('hidden')\n```\n\n"
        "- first item\n"
        "1. numbered item\n"
    )
    text = extract_text(markdown, "md")

    assert "Title" in text
    assert "Some bold and italic text with a link." in text
    assert "http://example.com" not in text
    assert "diagram" not in text
    assert "print" not in text
    assert "first item" in text and "- first" not in text
    assert "numbered item" in text and "1." not in text


def test_extract_text_rejects_unknown_format():
    with pytest.raises(ValueError):
        extract_text("content", "html")


def test_clean_text_collapses_whitespace_and_nbsp():
    assert clean_text("a\u00a0b \n\n c\t") == "a b c"


def test_content_hash_ignores_whitespace_differences():
    assert generate_content_hash("Hello   world\n") == generate_content_hash("Hello world")
    assert generate_content_hash("Hello world") != generate_content_hash("Hello there")
    assert len(generate_content_hash("x")) == 64


def test_estimate_token_count_rounds_up():
    assert estimate_token_count("") == 0
    assert estimate_token_count("abcd") == 1
    assert estimate_token_count("abcde") == 2


def test_truncate_to_tokens_prefers_sentence_boundary():
    text = "A" * 30 + ". " + "B" * 20
    truncated = truncate_to_tokens(text, 9)  # 36 characters allowed

    assert truncated == "A" * 30 + "."


def test_truncate_to_tokens_leaves_short_text_alone():
    assert truncate_to_tokens("short text", 100) == "short text"


def test_validate_text():
    assert validate_text("enough words here")["valid"]

    result = validate_text("two words")
    assert not result["valid"]
    assert any("at least 3 words" in error for error in result["errors"])

    assert not validate_text("")["valid"]
    assert not validate_text("   \n ")["valid"]


def test_extract_metadata(sample_text):
    metadata = extract_metadata(sample_text)

    assert metadata["word_count"] == len(sample_text.split())
    assert metadata["estimated_tokens"] == estimate_token_count(clean_text(sample_text))
    assert metadata["language"] == "en"
    assert metadata["has_structure"] is False
    assert extract_metadata("# Heading\n\nbody text here")["has_structure"] is True
