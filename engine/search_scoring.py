"""Explainable per-candidate scoring: matching, intent, gated authority, clamp."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from engine.search_context import SearchContext, get_search_tokens
from metadata.identity import round_half_up
from metadata.non_official import evaluate_non_official
from metadata.types import VERSION_LIVE, VERSION_REMIX, NonOfficialResult, Song, SongIdentity, SourceAuthority

TITLE_EXACT_SCORE = 50
TITLE_ALL_TOKENS_SCORE = 40
TITLE_PARTIAL_MAX = 25
# Any nonzero overlap scores at least this much.
TITLE_PARTIAL_FLOOR = 10
ARTIST_EXACT_SCORE = 30
ARTIST_PARTIAL_SCORE = 15
ARTIST_MIN_LENGTH = 2

INTENT_SATISFIED_BONUS = 20
INTENT_UNSATISFIED_PENALTY = -10

# Authority never rescues an irrelevant match.
MINIMUM_MATCHING_FOR_AUTHORITY = 20
AUTHORITY_NEUTRAL_SCORE = 50
AUTHORITY_MAX_ADJUSTMENT = 15

_INSTRUMENTAL_TERMS = ("instrumental", "karaoke", "backing track")


@dataclass(frozen=True)
class MatchingResult:
    score: int
    title_score: int
    artist_score: int
    title_match: str
    artist_match: str

    def details(self) -> dict[str, Any]:
        return {
            "titleScore": self.title_score,
            "artistScore": self.artist_score,
            "titleMatch": self.title_match,
            "artistMatch": self.artist_match,
        }


@dataclass(frozen=True)
class IntentResult:
    live: int = 0
    remix: int = 0
    instrumental: int = 0
    cover: int = 0

    @property
    def total(self) -> int:
        return self.live + self.remix + self.instrumental + self.cover

    def details(self) -> dict[str, int]:
        return {
            "liveAdjustment": self.live,
            "remixAdjustment": self.remix,
            "instrumentalAdjustment": self.instrumental,
            "coverAdjustment": self.cover,
            "totalAdjustment": self.total,
        }


@dataclass(frozen=True)
class ScoreBreakdown:
    matching_score: int
    matching: MatchingResult
    intent: IntentResult
    authority_adjustment: float
    authority_applied: bool
    raw_score: float
    final_score: float

    @property
    def intent_adjustment(self) -> int:
        return self.intent.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "matchingScore": self.matching_score,
            "matchingDetails": self.matching.details(),
            "intentAdjustment": self.intent.total,
            "intentDetails": self.intent.details(),
            "authorityAdjustment": self.authority_adjustment,
            "authorityApplied": self.authority_applied,
            "rawScore": self.raw_score,
            "finalScore": self.final_score,
        }


def _title_score(title_normalized: str, search_tokens: list[str]) -> tuple[int, str]:
    if not title_normalized or not search_tokens:
        return 0, "none"
    if title_normalized == " ".join(search_tokens):
        return TITLE_EXACT_SCORE, "exact"
    title_tokens = title_normalized.split()
    matched = [token for token in search_tokens if token in title_tokens or token in title_normalized]
    if len(matched) == len(search_tokens):
        return TITLE_ALL_TOKENS_SCORE, "all_tokens"
    if matched:
        ratio = len(matched) / len(search_tokens)
        partial = int(round_half_up(TITLE_PARTIAL_MAX * ratio))
        return max(partial, TITLE_PARTIAL_FLOOR), "partial"
    return 0, "none"


def _artist_score(artist_normalized: tuple[str, ...], search_tokens: list[str], normalized_query: str) -> tuple[int, str]:
    if not artist_normalized or not search_tokens:
        return 0, "none"
    for artist in artist_normalized:
        if len(artist) > ARTIST_MIN_LENGTH and artist in normalized_query:
            return ARTIST_EXACT_SCORE, "exact"
    artists_joined = " ".join(artist_normalized)
    artist_tokens = artists_joined.split()
    if any(token in artist_tokens or token in artists_joined for token in search_tokens):
        return ARTIST_PARTIAL_SCORE, "partial"
    return 0, "none"


def compute_matching_score(identity: SongIdentity | None, context: SearchContext | None) -> MatchingResult:
    """Title (0-50) plus artist (0-30) token matching. No fuzzy matching."""
    if identity is None or context is None:
        return MatchingResult(score=0, title_score=0, artist_score=0, title_match="error", artist_match="error")
    search_tokens = get_search_tokens(context)
    title_score, title_match = _title_score(identity.title_normalized, search_tokens)
    artist_score, artist_match = _artist_score(identity.artist_normalized, search_tokens, context.normalized_query)
    return MatchingResult(
        score=title_score + artist_score,
        title_score=title_score,
        artist_score=artist_score,
        title_match=title_match,
        artist_match=artist_match,
    )


def _unsatisfied(is_non_official: bool) -> int:
    # Already penalized on the authority side; do not compound.
    return 0 if is_non_official else INTENT_UNSATISFIED_PENALTY


def compute_intent_adjustment(
    song: Song | None,
    context: SearchContext | None,
    non_official: NonOfficialResult | None = None,
) -> IntentResult:
    if song is None or context is None:
        return IntentResult()
    if non_official is None:
        non_official = evaluate_non_official(song)
    intent = context.intent
    flagged = non_official.is_non_official

    live = remix = instrumental = cover = 0
    if intent.wants_live:
        live = INTENT_SATISFIED_BONUS if song.version_type == VERSION_LIVE else _unsatisfied(flagged)
    if intent.wants_remix:
        remix = INTENT_SATISFIED_BONUS if song.version_type == VERSION_REMIX else _unsatisfied(flagged)
    if intent.wants_instrumental:
        title = (song.title or "").lower()
        is_instrumental = any(term in title for term in _INSTRUMENTAL_TERMS)
        instrumental = INTENT_SATISFIED_BONUS if is_instrumental else _unsatisfied(flagged)
    if intent.wants_cover:
        # Boost only: asking for a cover never pushes originals down.
        cover = INTENT_SATISFIED_BONUS if flagged and non_official.reason == "cover" else 0
    return IntentResult(live=live, remix=remix, instrumental=instrumental, cover=cover)


def compute_authority_adjustment(authority: SourceAuthority | None, matching_score: float) -> tuple[float, bool]:
    """Return ``(adjustment, applied)``; skipped entirely below the matching gate."""
    if matching_score < MINIMUM_MATCHING_FOR_AUTHORITY:
        return 0.0, False
    if authority is None:
        return 0.0, True
    score = authority.score if authority.score is not None else AUTHORITY_NEUTRAL_SCORE
    adjustment = ((score - AUTHORITY_NEUTRAL_SCORE) / AUTHORITY_NEUTRAL_SCORE) * AUTHORITY_MAX_ADJUSTMENT
    return round_half_up(adjustment, 1), True


def compute_final_score(
    song: Song | None,
    identity: SongIdentity | None,
    authority: SourceAuthority | None,
    context: SearchContext | None,
    non_official: NonOfficialResult | None = None,
) -> ScoreBreakdown:
    matching = compute_matching_score(identity, context)
    intent = compute_intent_adjustment(song, context, non_official)
    authority_adjustment, applied = compute_authority_adjustment(authority, matching.score)
    raw_score = matching.score + intent.total + authority_adjustment
    return ScoreBreakdown(
        matching_score=matching.score,
        matching=matching,
        intent=intent,
        authority_adjustment=authority_adjustment,
        authority_applied=applied,
        raw_score=raw_score,
        final_score=max(raw_score, 0),
    )


__all__ = [
    "IntentResult",
    "MINIMUM_MATCHING_FOR_AUTHORITY",
    "MatchingResult",
    "ScoreBreakdown",
    "compute_authority_adjustment",
    "compute_final_score",
    "compute_intent_adjustment",
    "compute_matching_score",
]
