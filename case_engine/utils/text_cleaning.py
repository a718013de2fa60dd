"""Text cleaning utilities for case descriptions.

Descriptions arrive from rich-text form fields, mobile keyboards, and
copy-pasted notices. Everything the analysers look at passes through
these functions first so keyword matching sees one canonical form.
"""

import html
import re
import unicodedata

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")
_ZERO_WIDTH_RE = re.compile(r"[\u200b\u200c\u200d\ufeff]")
_SMART_QUOTES = str.maketrans({"\u2018": "'", "\u2019": "'", "\u201c": '"', "\u201d": '"'})


def strip_html(text: str) -> str:
    """Remove HTML tags and unescape entities, keeping line breaks as spaces."""
    result = re.sub(r"<br\s*/?>", " ", text, flags=re.IGNORECASE)
    result = _HTML_TAG_RE.sub(" ", result)
    return html.unescape(result)


def normalize_unicode(text: str) -> str:
    """Apply NFKC normalization, straighten quotes, drop zero-width characters."""
    text = unicodedata.normalize("NFKC", text)
    text = text.translate(_SMART_QUOTES)
    return _ZERO_WIDTH_RE.sub("", text)


def normalize_whitespace(text: str) -> str:
    """Collapse every whitespace run (including newlines) to a single space."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_for_matching(text: str | None) -> str:
    """Canonical lowercase form used for lexicon substring matching.

    ``None`` and non-string garbage collapse to the empty string.
    """
    if not isinstance(text, str) or not text:
        return ""
    text = strip_html(text)
    text = normalize_unicode(text)
    return normalize_whitespace(text).lower()
