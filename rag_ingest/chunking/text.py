"""
Text normalization and analysis helpers.

``normalize_text`` defines the coordinate system for chunk offsets: the
segmenter and the content resolver must both see exactly the text it
returns, otherwise stored offsets point at the wrong characters.
"""

import hashlib
import math
import re
import unicodedata
from typing import Any, Dict, List

MAX_TEXT_LENGTH = 10_000_000
MIN_WORD_COUNT = 3

_CONTROL_CHARS = re.compile(r"[\u0000-\u001F\u007F-\u009F]")

_STRUCTURE_PATTERNS = [
    re.compile(r"^#{1,6}\s", re.MULTILINE),
    re.compile(r"^[-*+]\s", re.MULTILINE),
    re.compile(r"^\d+\.\s", re.MULTILINE),
    re.compile(r"^>\s", re.MULTILINE),
    re.compile(r"```[\s\S]*?```"),
    re.compile(r"\|.*\|", re.MULTILINE),
]

_ENGLISH_WORDS = ("the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by")


def normalize_text(text: str) -> str:
    """
    Normalize line endings and whitespace while keeping paragraph structure.

    - CRLF / CR become LF
    - runs of spaces and tabs collapse to one space
    - three or more newlines collapse to a single blank line
    - leading/trailing whitespace is trimmed
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def clean_text(text: str) -> str:
    """Aggressive cleanup used for hashing and statistics (drops structure)."""
    text = unicodedata.normalize("NFKD", text)
    text = text.replace("\u00a0", " ")
    text = re.sub(r"\s+", " ", text)
    text = _CONTROL_CHARS.sub("", text)
    return text.strip()


def strip_markdown(markdown: str) -> str:
    """Remove markdown syntax, keeping the readable text."""
    text = re.sub(r"```[\s\S]*?```", "", markdown)
    text = re.sub(r"`[^`\n]+`", "", text)
    text = re.sub(r"^#{1,6}\s+", "", text, flags=re.MULTILINE)
    # Images before links, otherwise the link rule eats the image's brackets
    text = re.sub(r"!\[([^\]]*)\]\([^)]+\)", "", text)
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
    # Rules and list markers before emphasis, so "* item" lines aren't read as italics
    text = re.sub(r"^[-*_]{3,}$", "", text, flags=re.MULTILINE)
    text = re.sub(r"^[ \t]*[-*+][ \t]+", "", text, flags=re.MULTILINE)
    text = re.sub(r"^[ \t]*\d+\.[ \t]+", "", text, flags=re.MULTILINE)
    text = re.sub(r"[*_]{1,2}([^*_\n]+)[*_]{1,2}", r"\1", text)
    text = re.sub(r"~~([^~\n]+)~~", r"\1", text)
    return text


def extract_text(content: str, fmt: str = "txt") -> str:
    """
    Extract normalized plain text from raw file content.

    Args:
        content: Decoded file content.
        fmt: ``txt`` or ``md``.

    Returns:
        Normalized text; chunk offsets index into this string.
    """
    if fmt == "txt":
        return normalize_text(content)
    if fmt == "md":
        return normalize_text(strip_markdown(content))
    raise ValueError(f"Unsupported format: {fmt}")


def generate_content_hash(content: str) -> str:
    """SHA256 of the cleaned text, used to detect duplicate documents."""
    return hashlib.sha256(clean_text(content).encode("utf-8")).hexdigest()


def estimate_token_count(text: str) -> int:
    # ~4 characters per token for English text
    return math.ceil(len(text) / 4)


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """
    Truncate text to roughly ``max_tokens`` tokens.

    Prefers ending on a sentence boundary, then a word boundary, as long as
    that boundary falls within the last 20% of the allowed length.
    """
    if estimate_token_count(text) <= max_tokens:
        return text

    max_chars = max_tokens * 4
    truncated = text[:max_chars]

    last_sentence_end = max(truncated.rfind("."), truncated.rfind("!"), truncated.rfind("?"))
    if last_sentence_end > max_chars * 0.8:
        return truncated[:last_sentence_end + 1].strip()

    last_space = truncated.rfind(" ")
    if last_space > max_chars * 0.8:
        return truncated[:last_space].strip()

    return truncated.strip()


def validate_text(text: str) -> Dict[str, Any]:
    """
    Check that text is worth ingesting.

    Returns:
        ``{'valid': bool, 'errors': [str, ...]}``
    """
    errors: List[str] = []

    if not text or not isinstance(text, str):
        return {"valid": False, "errors": ["Text must be a non-empty string"]}

    cleaned = clean_text(text)
    if not cleaned:
        errors.append("Text cannot be empty after cleaning")
    if len(cleaned) > MAX_TEXT_LENGTH:
        errors.append("Text is too large (max 10MB)")
    if len(cleaned.split()) < MIN_WORD_COUNT:
        errors.append(f"Text must contain at least {MIN_WORD_COUNT} words")

    return {"valid": not errors, "errors": errors}


def detect_language(text: str) -> str:
    sample = text[:1000].lower()
    matches = sum(1 for word in _ENGLISH_WORDS if f" {word} " in sample)
    return "en" if matches >= 3 else "unknown"


def has_structure(text: str) -> bool:
    return any(pattern.search(text) for pattern in _STRUCTURE_PATTERNS)


def extract_metadata(text: str) -> Dict[str, Any]:
    """Word/character/token counts plus a language guess and structure flag."""
    cleaned = clean_text(text)
    return {
        "word_count": len(cleaned.split()),
        "character_count": len(cleaned),
        "estimated_tokens": estimate_token_count(cleaned),
        "language": detect_language(cleaned),
        "has_structure": has_structure(text),
    }
