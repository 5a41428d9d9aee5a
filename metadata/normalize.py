"""Pure text transforms used for identity keys and query matching."""

from __future__ import annotations

import re
import unicodedata

_WS_RE = re.compile(r"\s+")
_SEPARATOR_RE = re.compile(r"[&/]")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_SINGLE_QUOTES_RE = re.compile("[‘’]")
_DOUBLE_QUOTES_RE = re.compile("[“”]")
_TRAILING_PUNCT_RE = re.compile(r"[-–—:]\s*$")
_TRAILING_DASH_RE = re.compile(r"[-–—]\s*$")


def _patterns(*sources: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(source, re.IGNORECASE) for source in sources)


# Applied in order. Version words (remix, remaster, live, acoustic...) must never appear here.
_EDITORIAL_NOISE_PATTERNS = _patterns(
    r"\(official\s*(music\s*)?video\)",
    r"\(official\s*audio\)",
    r"\(official\)",
    r"\[official\s*(music\s*)?video\]",
    r"\[official\s*audio\]",
    r"\[official\]",
    r"\(video\s*oficial\)",
    r"\(audio\s*oficial\)",
    r"\(oficial\)",
    r"\[video\s*oficial\]",
    r"\[audio\s*oficial\]",
    r"\(lyrics?\s*(video)?\)",
    r"\(lyric\s*video\)",
    r"\[lyrics?\s*(video)?\]",
    r"\[lyric\s*video\]",
    r"\(con\s*letra\)",
    r"\[con\s*letra\]",
    r"\(hd\)",
    r"\(hq\)",
    r"\(4k\)",
    r"\(1080p?\)",
    r"\(720p?\)",
    r"\[hd\]",
    r"\[hq\]",
    r"\[4k\]",
    r"\[1080p?\]",
    r"\[720p?\]",
    r"\(audio\)",
    r"\(video\)",
    r"\[audio\]",
    r"\[video\]",
    r"\(videoclip\)",
    r"\[videoclip\]",
    r"\(explicit\)",
    r"\(clean\s*version\)",
    r"\[explicit\]",
    r"\[clean\]",
    r"\(from\s+[\"'][^\"']+[\"']\)",
    r"\(from\s+[^)]+\)",
    r"\[from\s+[^\]]+\]",
    r"\(premiere\)",
    r"\(new\s*\d*\)",
    r"\[premiere\]",
    r"\[new\]",
    r"\(\d{4}\)$",
    r"\[\d{4}\]$",
)

_SEMANTIC_SUBTITLE_PATTERNS = _patterns(
    r"\s*\(for a film\)",
    r"\s*\(from the motion picture[^)]*\)",
    r"\s*\(original motion picture soundtrack\)",
    r"\s*\(from \"[^\"]+\"\)",
    r"\s*\(feat\.\s*[^)]+\)",
    r"\s*\(ft\.\s*[^)]+\)",
)

# Venue and location phrases. Only the identity title is stripped; version type is carried separately.
_GEOGRAPHIC_CONTEXT_PATTERNS = _patterns(
    r"\(live\s+at\s+[^)]+\)",
    r"\(live\s+from\s+[^)]+\)",
    r"\(live\s+in\s+[^)]+\)",
    r"\[live\s+at\s+[^)\]]+\]",
    r"\[live\s+from\s+[^)\]]+\]",
    r"\[live\s+in\s+[^)\]]+\]",
    r"\(at\s+[^)]+\)",
    r"\(from\s+[^)]+\)",
    r"\[at\s+[^\]]+\]",
    r"\[from\s+[^\]]+\]",
    r"\(recorded\s+at\s+[^)]+\)",
    r"\[recorded\s+at\s+[^\]]+\]",
    r"\(en\s+vivo\s+en\s+[^)]+\)",
    r"\(en\s+[^)]+\)",
    r"\[en\s+vivo\s+en\s+[^\]]+\]",
    r"\(session\s+at\s+[^)]+\)",
    r"\(performance\s+at\s+[^)]+\)",
)


def normalize_text(value: str | None) -> str:
    """Lowercase, strip diacritics and punctuation, collapse whitespace.

    No stemming, translation or word removal happens here. The result is
    idempotent: ``normalize_text(normalize_text(x)) == normalize_text(x)``.
    """
    if not value or not isinstance(value, str):
        return ""
    text = unicodedata.normalize("NFD", value.lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = _SEPARATOR_RE.sub(" ", text)
    text = _NON_ALNUM_RE.sub(" ", text)
    return _WS_RE.sub(" ", text).strip()


def clean_title(title: str | None) -> str:
    """Remove editorial noise such as "(Official Video)" or "[HD]" from a raw title."""
    if not title or not isinstance(title, str):
        return ""
    result = _SINGLE_QUOTES_RE.sub("'", title)
    result = _DOUBLE_QUOTES_RE.sub('"', result)
    for pattern in _EDITORIAL_NOISE_PATTERNS:
        result = pattern.sub("", result)
    for pattern in _SEMANTIC_SUBTITLE_PATTERNS:
        result = pattern.sub("", result)
    result = _WS_RE.sub(" ", result).strip()
    return _TRAILING_PUNCT_RE.sub("", result).strip()


def strip_geographic_context(title: str | None) -> str:
    if not title or not isinstance(title, str):
        return ""
    result = title
    for pattern in _GEOGRAPHIC_CONTEXT_PATTERNS:
        result = pattern.sub("", result)
    result = _WS_RE.sub(" ", result).strip()
    return _TRAILING_DASH_RE.sub("", result).strip()


__all__ = ["clean_title", "normalize_text", "strip_geographic_context"]
