"""Prefix suggestions over raw titles and artist names."""

from __future__ import annotations

from typing import Iterable

from config.settings import SUGGESTION_DEFAULT_LIMIT, SUGGESTION_MIN_PREFIX
from metadata.types import Song


def _normalized_prefix(prefix: str | None) -> str | None:
    needle = (prefix or "").strip().lower()
    if len(needle) < SUGGESTION_MIN_PREFIX:
        return None
    return needle


def get_search_suggestions(songs: Iterable[Song], prefix: str | None, limit: int = SUGGESTION_DEFAULT_LIMIT) -> list[str]:
    """Distinct song titles starting with ``prefix``, in catalog order."""
    needle = _normalized_prefix(prefix)
    if needle is None:
        return []
    suggestions: dict[str, None] = {}
    for song in songs:
        if len(suggestions) >= limit:
            break
        title = song.title or ""
        if title.lower().startswith(needle):
            suggestions.setdefault(title, None)
    return list(suggestions)[:limit]


def get_artist_suggestions(songs: Iterable[Song], prefix: str | None, limit: int = SUGGESTION_DEFAULT_LIMIT) -> list[str]:
    needle = _normalized_prefix(prefix)
    if needle is None:
        return []
    artists: dict[str, None] = {}
    for song in songs:
        if len(artists) >= limit:
            break
        for artist in song.artist_names or ():
            if artist.lower().startswith(needle):
                artists.setdefault(artist, None)
    return list(artists)[:limit]
