"""Deterministic cross-source identity for a song."""

from __future__ import annotations

import math
from typing import Iterable

from metadata.errors import InputError
from metadata.normalize import clean_title, normalize_text, strip_geographic_context
from metadata.types import VERSION_ORIGINAL, Song, SongIdentity

# Part of the identity contract: 248s and 252s both land on 250.
DURATION_BUCKET_SECONDS = 5

UNKNOWN_ARTIST = "unknown"


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for positives, matching catalog-side rounding."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def calculate_duration_bucket(duration: float | None) -> int:
    if not duration or duration <= 0:
        return 0
    return int(round_half_up(duration / DURATION_BUCKET_SECONDS)) * DURATION_BUCKET_SECONDS


def normalize_artists(artist_names: Iterable[str] | None) -> tuple[str, ...]:
    normalized = tuple(name for name in (normalize_text(a) for a in (artist_names or ())) if name)
    return normalized or (UNKNOWN_ARTIST,)


def build_identity_key(
    title_normalized: str,
    artist_normalized: Iterable[str],
    version_type: str,
    duration_bucket: int,
) -> str:
    artists = "|".join(sorted(artist_normalized))
    return f"{title_normalized}|{artists}|{version_type}|{duration_bucket}"


def build_song_identity(song: Song) -> SongIdentity:
    """Build the identity for ``song``. Pure: the same song always yields the same key."""
    if song is None or not getattr(song, "id", None):
        raise InputError("build_song_identity requires a song with an id")

    title_raw = song.title or ""
    title_clean = clean_title(title_raw)
    title_identity = strip_geographic_context(title_clean)
    title_normalized = normalize_text(title_identity)

    artist_raw = tuple(song.artist_names or ())
    artist_normalized = normalize_artists(artist_raw)
    version_type = song.version_type or VERSION_ORIGINAL
    duration_bucket = calculate_duration_bucket(song.duration or 0)

    return SongIdentity(
        song_id=song.id,
        title_raw=title_raw,
        title_clean=title_clean,
        title_identity=title_identity,
        title_normalized=title_normalized,
        artist_raw=artist_raw,
        artist_normalized=artist_normalized,
        version_type=version_type,
        duration_bucket=duration_bucket,
        identity_key=build_identity_key(title_normalized, artist_normalized, version_type, duration_bucket),
    )


__all__ = [
    "DURATION_BUCKET_SECONDS",
    "UNKNOWN_ARTIST",
    "build_identity_key",
    "build_song_identity",
    "calculate_duration_bucket",
    "normalize_artists",
    "round_half_up",
]
