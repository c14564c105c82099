"""
Text Normalizer for Arabic Legal Sources

Pure functions shared by the crawler and the retrieval engine:
- HTML to plain text (script/style removal, block tags to newlines)
- Arabic-Indic digit normalization
- Article citation detection in user queries
- Gazette-style ordinal labels ("المادة السابعة بعد المائة")
- The acceptance check that a snippet really is the requested article

Nothing here touches the network or the store.
"""

import re
import unicodedata
from typing import Optional

from .language_patterns import (
    ALEF_VARIANTS,
    ARABIC_DIGIT_TRANSLATION,
    ARTICLE_NUMBER_PATTERN,
    ARTICLE_TEXT_QUERY_PATTERNS,
    ARTICLE_WORD,
    BIDI_MARKS,
    HUNDRED_LABEL,
    TWO_HUNDRED_LABEL,
    AFTER_HUNDRED,
    AFTER_TWO_HUNDRED,
    KEYWORD_MAX_TOKENS,
    KEYWORD_MIN_TOKEN_LENGTH,
    LABEL_CONTINUATION_GUARD,
    LABOR_LAW_PATTERN,
    LABOR_OFFICE_PATTERN,
    NEXT_ARTICLE_MARKER,
    ORDINAL_COMPOUND_UNITS,
    ORDINAL_TEENS,
    ORDINAL_TEN,
    ORDINAL_TENS,
    ORDINAL_UNITS,
)

_SCRIPT_RE = re.compile(r"<script[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style[\s\S]*?</style>", re.IGNORECASE)
_BR_RE = re.compile(r"<\s*br\b[^>]*>", re.IGNORECASE)
_BLOCK_TAG_RE = re.compile(r"<\s*/?\s*(?:p|div|li)\b[^>]*>", re.IGNORECASE)
_ANY_TAG_RE = re.compile(r"<[^>]+>")
_TITLE_RE = re.compile(r"<title[^>]*>([\s\S]*?)</title>", re.IGNORECASE)

_ENTITIES = (
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
)


def strip_html(html: str) -> str:
    """Convert an HTML page to plain text.

    Drops <script>/<style> blocks, turns br/p/div/li tags into newlines,
    removes all other tags, unescapes the common entities and collapses
    whitespace. Deterministic.
    """
    if not html:
        return ""
    text = _SCRIPT_RE.sub(" ", html)
    text = _STYLE_RE.sub(" ", text)
    text = _BR_RE.sub("\n", text)
    text = _BLOCK_TAG_RE.sub("\n", text)
    text = _ANY_TAG_RE.sub(" ", text)
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    text = re.sub(r"\s+\n", "\n", text)
    text = re.sub(r"\n\s+", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[\t\r]+", " ", text)
    text = re.sub(r" {2,}", " ", text)
    return text.strip()


def extract_title(html: str) -> Optional[str]:
    """Return the normalized <title> of a page, or None."""
    match = _TITLE_RE.search(html or "")
    if not match:
        return None
    return strip_html(match.group(1)) or None


def normalize_digits(value: str) -> str:
    """Map Arabic-Indic digits to ASCII 0-9."""
    return (value or "").translate(ARABIC_DIGIT_TRANSLATION)


def extract_article_number(query: str) -> Optional[int]:
    """Return the first cited article number in a query, e.g. "المادة ١٠٧" -> 107."""
    match = ARTICLE_NUMBER_PATTERN.search(normalize_digits(query))
    if not match:
        return None
    number = int(match.group(1))
    return number if number > 0 else None


def is_article_text_query(query: str) -> bool:
    """True when the query asks for the literal text of an article."""
    normalized = normalize_digits(query)
    return any(p.search(normalized) for p in ARTICLE_TEXT_QUERY_PATTERNS)


def mentions_labor_law(query: str) -> bool:
    """True when the query names the labor law or the labor office."""
    return bool(LABOR_LAW_PATTERN.search(query or "") or LABOR_OFFICE_PATTERN.search(query or ""))


def ordinal_under_100(n: int) -> Optional[str]:
    """Feminine Arabic ordinal for 1..99 as written in the gazette."""
    if isinstance(n, bool) or not isinstance(n, int) or n <= 0 or n >= 100:
        return None
    if n <= 9:
        return ORDINAL_UNITS.get(n)
    if n == 10:
        return ORDINAL_TEN
    if n <= 19:
        return ORDINAL_TEENS.get(n - 10)

    tens, unit = (n // 10) * 10, n % 10
    tens_label = ORDINAL_TENS.get(tens)
    if unit == 0:
        return tens_label
    unit_label = ORDINAL_COMPOUND_UNITS.get(unit)
    if not unit_label or not tens_label:
        return None
    return f"{unit_label} و{tens_label}"


def article_label_boe_style(n: int) -> Optional[str]:
    """
    Ordinal label the gazette uses for article numbers 1-299.

    Examples:
        1   -> "الأولى"
        21  -> "الحادية والعشرون"
        107 -> "السابعة بعد المائة"
        200 -> "المائتين"

    Returns None outside 1-299.
    """
    if isinstance(n, bool) or not isinstance(n, int) or n <= 0:
        return None
    if n < 100:
        return ordinal_under_100(n)
    if n == 100:
        return HUNDRED_LABEL
    if n < 200:
        under = ordinal_under_100(n - 100)
        return f"{under} {AFTER_HUNDRED}" if under else None
    if n == 200:
        return TWO_HUNDRED_LABEL
    if n < 300:
        under = ordinal_under_100(n - 200)
        return f"{under} {AFTER_TWO_HUNDRED}" if under else None
    return None


def _fold_alef(value: str) -> str:
    return ALEF_VARIANTS.sub("ا", value)


def _article_marker(article_number: int, boe_label: Optional[str], line_start: bool = False) -> re.Pattern:
    alternatives = []
    if boe_label:
        # "الثانية" must not match "الثانية عشرة", "الثانية والعشرون" or "الثانية بعد المائة"
        alternatives.append(re.escape(_fold_alef(boe_label)) + LABEL_CONTINUATION_GUARD)
    alternatives.append(rf"[(\[]?\s*{article_number}\s*[)\]]?(?!\d)")
    anchor = r"(?m)^[^\S\n]*" if line_start else ""
    return re.compile(rf"{anchor}{_fold_alef(ARTICLE_WORD)}\s*(?:{'|'.join(alternatives)})")


def looks_like_requested_article_text(
    text: str,
    article_number: Optional[int],
    boe_label: Optional[str],
) -> bool:
    """
    Check that a candidate snippet contains the requested article heading.

    Accepts "المادة" followed by the ordinal label or by the bare number,
    optionally bracketed: "المادة السابعة بعد المائة", "المادة 107",
    "المادة (107)".
    """
    if not text or article_number is None:
        return False
    candidate = _fold_alef(normalize_digits(text))
    return bool(_article_marker(article_number, boe_label).search(candidate))


def extract_article_span(
    text: str,
    article_number: int,
    boe_label: Optional[str],
    min_chars: int = 40,
    max_chars: int = 1600,
) -> Optional[str]:
    """
    Cut the requested article out of a page's plain text.

    The span starts at the first "المادة <label-or-number>" heading that opens
    a line, or at the first such marker anywhere when no line opens with one.
    It ends at the next article heading (or end of text), capped at max_chars.
    Returns None when the marker is missing or the span is too short.
    """
    if not text or article_number is None:
        return None
    # Digit mapping and alef folding preserve string length, so offsets
    # found on the folded copy apply to the original text.
    folded = _fold_alef(normalize_digits(text))
    match = (
        _article_marker(article_number, boe_label, line_start=True).search(folded)
        or _article_marker(article_number, boe_label).search(folded)
    )
    if not match:
        return None

    start = match.start()
    following = NEXT_ARTICLE_MARKER.search(folded, match.end())
    end = following.start() if following else len(text)
    span = text[start:min(end, start + max_chars)].strip()
    if len(span) < min_chars:
        return None
    return span


def tokenize_query(
    query: str,
    min_length: int = KEYWORD_MIN_TOKEN_LENGTH,
    max_tokens: int = KEYWORD_MAX_TOKENS,
) -> list[str]:
    """Split a query into informative tokens, dropping punctuation and symbols."""
    cleaned = BIDI_MARKS.sub(" ", query or "")
    cleaned = "".join(
        " " if unicodedata.category(ch)[0] in ("P", "S") else ch
        for ch in cleaned
    )
    tokens = [t for t in cleaned.split() if len(t) >= min_length]
    return tokens[:max_tokens]
