from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from metadata.normalize import normalize_text

# Keyword lists are matched literally against the normalized query; no NLP.
INTENT_PATTERNS: dict[str, tuple[str, ...]] = {
    "live": ("live", "en vivo", "directo", "concierto", "concert", "unplugged", "acoustic live"),
    "remix": ("remix", "rmx", "mix", "bootleg", "edit"),
    "instrumental": ("instrumental", "karaoke", "sin voz", "without vocals", "backing track"),
    "cover": ("cover", "version", "tribute", "performed by"),
}

INTENT_TOKENS = frozenset(
    {
        "live",
        "en",
        "vivo",
        "directo",
        "concierto",
        "concert",
        "unplugged",
        "remix",
        "rmx",
        "mix",
        "bootleg",
        "edit",
        "instrumental",
        "karaoke",
        "sin",
        "voz",
        "cover",
        "version",
        "tribute",
    }
)


@dataclass(frozen=True)
class SearchIntent:
    wants_live: bool = False
    wants_remix: bool = False
    wants_instrumental: bool = False
    wants_cover: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {
            "wantsLive": self.wants_live,
            "wantsRemix": self.wants_remix,
            "wantsInstrumental": self.wants_instrumental,
            "wantsCover": self.wants_cover,
        }


@dataclass(frozen=True)
class SearchContext:
    raw_query: str
    normalized_query: str
    tokens: tuple[str, ...]
    intent: SearchIntent

    def to_dict(self) -> dict[str, Any]:
        return {
            "rawQuery": self.raw_query,
            "normalizedQuery": self.normalized_query,
            "tokens": list(self.tokens),
            "intent": self.intent.to_dict(),
        }


def _detect_pattern(tokens: tuple[str, ...], normalized_query: str, patterns: tuple[str, ...]) -> bool:
    for pattern in patterns:
        normalized_pattern = normalize_text(pattern)
        if normalized_pattern in tokens or normalized_pattern in normalized_query:
            return True
    return False


def build_search_context(query: str | None) -> SearchContext:
    raw_query = query or ""
    normalized_query = normalize_text(raw_query)
    tokens = tuple(token for token in normalized_query.split() if token)
    intent = SearchIntent(
        wants_live=_detect_pattern(tokens, normalized_query, INTENT_PATTERNS["live"]),
        wants_remix=_detect_pattern(tokens, normalized_query, INTENT_PATTERNS["remix"]),
        wants_instrumental=_detect_pattern(tokens, normalized_query, INTENT_PATTERNS["instrumental"]),
        wants_cover=_detect_pattern(tokens, normalized_query, INTENT_PATTERNS["cover"]),
    )
    return SearchContext(raw_query=raw_query, normalized_query=normalized_query, tokens=tokens, intent=intent)


def get_search_tokens(context: SearchContext) -> list[str]:
    """Query tokens with intent vocabulary removed, used for title and artist matching."""
    return [token for token in context.tokens if token not in INTENT_TOKENS]


def has_specific_intent(context: SearchContext) -> bool:
    intent = context.intent
    return intent.wants_live or intent.wants_remix or intent.wants_instrumental or intent.wants_cover


__all__ = [
    "INTENT_PATTERNS",
    "INTENT_TOKENS",
    "SearchContext",
    "SearchIntent",
    "build_search_context",
    "get_search_tokens",
    "has_specific_intent",
]
