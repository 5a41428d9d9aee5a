from __future__ import annotations

import re

from metadata.types import OFFICIAL, NonOfficialResult, Song

# First match wins, so order matters.
_TITLE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\bcover\b", re.IGNORECASE), "cover"),
    (re.compile(r"\bkaraoke\b", re.IGNORECASE), "karaoke"),
    (re.compile(r"\binstrumental\b", re.IGNORECASE), "instrumental"),
    (re.compile(r"\btribute\b", re.IGNORECASE), "tribute"),
    (re.compile(r"\b8d\s*(audio)?\b", re.IGNORECASE), "8d_audio"),
    (re.compile(r"\bnightcore\b", re.IGNORECASE), "nightcore"),
    (re.compile(r"\bslowed\b", re.IGNORECASE), "slowed"),
    (re.compile(r"\breverb\b", re.IGNORECASE), "reverb"),
    (re.compile(r"\bsped\s*up\b", re.IGNORECASE), "sped_up"),
    (re.compile(r"\bchipmunk\b", re.IGNORECASE), "chipmunk"),
    (re.compile(r"\bspeed\s*up\b", re.IGNORECASE), "speed_up"),
    (re.compile(r"\bbass\s*boost(ed)?\b", re.IGNORECASE), "bass_boosted"),
    (re.compile(r"\bremake\b", re.IGNORECASE), "remake"),
    (re.compile(r"\bbootleg\b", re.IGNORECASE), "bootleg"),
    (re.compile(r"\bunofficial\b", re.IGNORECASE), "unofficial"),
    (re.compile(r"\bfan\s*made\b", re.IGNORECASE), "fan_made"),
    (re.compile(r"\blyric\s*video\s*by\b", re.IGNORECASE), "fan_lyric_video"),
)

_CHANNEL_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\bcover\b"), "cover_channel"),
    (re.compile(r"\bkaraoke\b"), "karaoke_channel"),
    (re.compile(r"\btribute\b"), "tribute_channel"),
    (re.compile(r"\bfan\b"), "fan_channel"),
    (re.compile(r"\bnightcore\b"), "nightcore_channel"),
    (re.compile(r"\b8d\b"), "8d_channel"),
)


def detect_non_official_title(song: Song | None) -> NonOfficialResult:
    """Scan the song title plus its channel name for derivative-content markers."""
    if song is None:
        return OFFICIAL
    search_text = f"{song.title or ''} {song.channel_title}"
    for pattern, reason in _TITLE_PATTERNS:
        if pattern.search(search_text):
            return NonOfficialResult(is_non_official=True, reason=reason)
    return OFFICIAL


def detect_non_official_channel(channel_title: str | None) -> NonOfficialResult:
    if not channel_title:
        return OFFICIAL
    lowered = channel_title.lower()
    for pattern, reason in _CHANNEL_PATTERNS:
        if pattern.search(lowered):
            return NonOfficialResult(is_non_official=True, reason=reason)
    return OFFICIAL


def evaluate_non_official(song: Song | None) -> NonOfficialResult:
    """Title pass first; the channel pass only runs when the title pass found nothing."""
    title_result = detect_non_official_title(song)
    if title_result.is_non_official or song is None:
        return title_result
    return detect_non_official_channel(song.channel_title)


__all__ = ["detect_non_official_channel", "detect_non_official_title", "evaluate_non_official"]
