"""Source-trust scoring. Engagement metrics (views, likes) are never consulted."""

from __future__ import annotations

from metadata.non_official import detect_non_official_channel, detect_non_official_title
from metadata.types import (
    LEVEL_HIGH,
    LEVEL_LOW,
    LEVEL_MEDIUM,
    SOURCE_DEEZER,
    SOURCE_SAAVN,
    SOURCE_YOUTUBE,
    Song,
    SourceAuthority,
)

# Lower wins when authority scores tie.
SOURCE_PRIORITY = {
    SOURCE_DEEZER: 1,
    SOURCE_SAAVN: 2,
    SOURCE_YOUTUBE: 3,
}
UNKNOWN_SOURCE_PRIORITY = 99

LICENSED_BASE_SCORE = 95
LICENSED_FLOOR = 90
COMMUNITY_BASE_SCORE = 70
COMMUNITY_FLOOR = 30
SAAVN_SCORE = 60
UNKNOWN_SOURCE_SCORE = 50
MAX_SCORE = 100

TITLE_NON_OFFICIAL_PENALTY = 20
CHANNEL_NON_OFFICIAL_PENALTY = 15


def source_priority(source: str | None) -> int:
    return SOURCE_PRIORITY.get(str(source or ""), UNKNOWN_SOURCE_PRIORITY)


def level_for_score(score: int) -> str:
    if score >= 80:
        return LEVEL_HIGH
    if score >= 60:
        return LEVEL_MEDIUM
    return LEVEL_LOW


def missing_authority(song_id: str, reason: str = "no authority computed") -> SourceAuthority:
    return SourceAuthority(song_id=song_id, score=0, level=LEVEL_LOW, reasons=(reason,))


def _licensed_catalog_authority(song: Song) -> SourceAuthority:
    reasons = [f"Source: {song.source} (base: {LICENSED_BASE_SCORE})"]
    score = LICENSED_BASE_SCORE
    if song.album and song.release_date:
        score += 5
        reasons.append("+5: album and release date present")
    elif song.album:
        score += 2
        reasons.append("+2: album present")
    elif song.release_date:
        score += 2
        reasons.append("+2: release date present")
    score = min(max(score, LICENSED_FLOOR), MAX_SCORE)
    return SourceAuthority(song_id=song.id, score=score, level=LEVEL_HIGH, reasons=tuple(reasons))


def _community_video_authority(song: Song) -> SourceAuthority:
    reasons = [f"Source: {song.source} (base: {COMMUNITY_BASE_SCORE})"]
    score = COMMUNITY_BASE_SCORE
    channel = song.channel_title.lower()

    if "- topic" in channel:
        score += 10
        reasons.append('+10: auto-generated "- Topic" channel')
    elif "official" in channel or "vevo" in channel:
        score += 10
        reasons.append("+10: official/VEVO channel")

    if song.metadata.get("isrc"):
        score += 5
        reasons.append("+5: ISRC present")

    title_result = detect_non_official_title(song)
    if title_result.is_non_official:
        score -= TITLE_NON_OFFICIAL_PENALTY
        reasons.append(f"-{TITLE_NON_OFFICIAL_PENALTY}: non-official content ({title_result.reason})")
    else:
        channel_result = detect_non_official_channel(channel)
        if channel_result.is_non_official:
            score -= CHANNEL_NON_OFFICIAL_PENALTY
            reasons.append(f"-{CHANNEL_NON_OFFICIAL_PENALTY}: non-official channel ({channel_result.reason})")

    score = min(max(score, COMMUNITY_FLOOR), MAX_SCORE)
    return SourceAuthority(song_id=song.id, score=score, level=level_for_score(score), reasons=tuple(reasons))


def evaluate_source_authority(song: Song | None) -> SourceAuthority:
    """Score how much the reporting source can be trusted for this song (0-100)."""
    if song is None:
        return missing_authority("unknown", "invalid song")
    if song.source == SOURCE_DEEZER:
        return _licensed_catalog_authority(song)
    if song.source == SOURCE_YOUTUBE:
        return _community_video_authority(song)
    if song.source == SOURCE_SAAVN:
        return SourceAuthority(
            song_id=song.id,
            score=SAAVN_SCORE,
            level=LEVEL_MEDIUM,
            reasons=(f"Source: {song.source} (base: {SAAVN_SCORE})",),
        )
    return SourceAuthority(
        song_id=song.id,
        score=UNKNOWN_SOURCE_SCORE,
        level=LEVEL_LOW,
        reasons=(f"Unknown source: {song.source}",),
    )


__all__ = [
    "SOURCE_PRIORITY",
    "evaluate_source_authority",
    "level_for_score",
    "missing_authority",
    "source_priority",
]
