"""Text normalization and tokenization shared by parsing, classification and matching.

Deterministic and locale-independent. Tokens feed overlap scoring, so the
rules here directly shape ranking:
- Minimum 3 characters (2 for tokens with Han, Kana or Hangul characters)
- Stop words dropped for non-CJK tokens
- At most 24 tokens per text
"""

from __future__ import annotations

import re
import unicodedata

_COMBINING_MARKS = re.compile("[\u0300-\u036f]")
_NON_ALNUM = re.compile(r"[\W_]+")

# Han, Hiragana, Katakana and Hangul blocks
_CJK_RANGES: tuple[tuple[int, int], ...] = (
    (0x1100, 0x11FF),  # Hangul Jamo
    (0x3040, 0x309F),  # Hiragana
    (0x30A0, 0x30FF),  # Katakana
    (0x3130, 0x318F),  # Hangul Compatibility Jamo
    (0x31F0, 0x31FF),  # Katakana Phonetic Extensions
    (0x3400, 0x4DBF),  # CJK Extension A
    (0x4E00, 0x9FFF),  # CJK Unified Ideographs
    (0xAC00, 0xD7AF),  # Hangul Syllables
    (0xF900, 0xFAFF),  # CJK Compatibility Ideographs
    (0xFF66, 0xFF9F),  # Halfwidth Katakana
    (0x20000, 0x2FA1F),  # CJK Extensions B onwards
)

STOPWORDS = frozenset({
    # Spanish articles, prepositions and pronouns
    "de", "del", "la", "el", "los", "las", "y", "o", "a", "en", "por", "para",
    "con", "sin", "un", "una", "unos", "unas", "que", "se", "su", "sus", "al",
    "lo", "le", "les",
    # English articles and prepositions
    "the", "an", "and", "or", "of", "for", "in", "to", "on", "with", "from",
    # Chapter words and file extensions
    "cap", "capitulo", "chapter", "ch", "episodio", "ep", "pdf", "epub",
})

_MIN_TOKEN_LENGTH = 3
_MIN_CJK_TOKEN_LENGTH = 2
MAX_TOKENS = 24
_FALLBACK_TOKEN_LENGTH = 48

KNOWN_EXTENSIONS = ("pdf", "epub", "cbz", "cbr", "zip", "rar", "jpg", "jpeg", "png", "webp")
_EXTENSION_SUFFIX = re.compile(r"\.(" + "|".join(KNOWN_EXTENSIONS) + r")$", re.IGNORECASE)


def normalize_text(text: str | None) -> str:
    """Return a comparison key for *text*.

    Steps (order matters):
      1. Lowercase, then NFKC and NFKD
      2. Drop combining diacritics
      3. Replace every non-alphanumeric run with one space
      4. Collapse whitespace
    """
    if not text:
        return ""
    value = unicodedata.normalize("NFKC", str(text).lower())
    value = unicodedata.normalize("NFKD", value)
    value = _COMBINING_MARKS.sub("", value)
    value = _NON_ALNUM.sub(" ", value)
    return " ".join(value.split())


def has_cjk(token: str) -> bool:
    for char in token:
        code = ord(char)
        for start, end in _CJK_RANGES:
            if start <= code <= end:
                return True
    return False


def tokenize(text: str | None) -> list[str]:
    """Split normalized *text* into meaningful tokens, order preserved."""
    normalized = normalize_text(text)
    if not normalized:
        return []

    tokens: list[str] = []
    for token in normalized.split(" "):
        cjk = has_cjk(token)
        min_length = _MIN_CJK_TOKEN_LENGTH if cjk else _MIN_TOKEN_LENGTH
        if len(token) < min_length:
            continue
        if not cjk and token in STOPWORDS:
            continue
        tokens.append(token)
        if len(tokens) >= MAX_TOKENS:
            break

    if not tokens:
        return [normalized[:_FALLBACK_TOKEN_LENGTH]]
    return tokens


def token_overlap(query_tokens: list[str], candidate_tokens: list[str]) -> float:
    """Share of query tokens found in the candidate, 0.0 to 1.0."""
    if not query_tokens:
        return 0.0
    candidate = set(candidate_tokens)
    hits = sum(1 for token in set(query_tokens) if token in candidate)
    return hits / len(set(query_tokens))


def strip_known_extensions(name: str) -> str:
    """Remove one trailing file extension that is known to be an asset format."""
    return _EXTENSION_SUFFIX.sub("", name.strip())


def display_title(title: str, original_name: str = "") -> str:
    """Human title for an item, falling back to its original file name."""
    title = title.strip()
    if title:
        return title
    return strip_known_extensions(original_name) or "(untitled)"
