"""Deterministic ranking of scored candidates and grouped/flat result assembly."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Iterable

from engine.catalog import CatalogSnapshot
from engine.search_context import SearchContext
from engine.search_scoring import ScoreBreakdown, compute_final_score
from metadata.authority import source_priority
from metadata.errors import INTEGRITY_LOG_EXTRA
from metadata.identity import build_song_identity
from metadata.non_official import evaluate_non_official
from metadata.types import Song, SongIdentity, song_to_dict

logger = logging.getLogger(__name__)

DEFAULT_TOP_RESULTS = 10


@dataclass(frozen=True)
class RankedResult:
    song: Song
    identity: SongIdentity | None
    final_score: float
    breakdown: ScoreBreakdown
    is_canonical: bool
    is_non_official: bool
    rank: int = 0

    @property
    def identity_key(self) -> str:
        return self.identity.identity_key if self.identity is not None else self.song.id


def _resolve_identity(song: Song, snapshot: CatalogSnapshot) -> SongIdentity | None:
    identity = snapshot.get_identity(song.id)
    if identity is not None:
        return identity
    logger.warning("[RANKING] song %s has no identity; building on the fly", song.id, extra=INTEGRITY_LOG_EXTRA)
    try:
        return build_song_identity(song)
    except Exception:
        logger.exception("[RANKING] identity rebuild failed for song %r", song.id)
        return None


def _score_song(song: Song, context: SearchContext, snapshot: CatalogSnapshot) -> RankedResult:
    identity = _resolve_identity(song, snapshot)
    authority = snapshot.get_authority(song.id)
    if authority is None:
        logger.warning("[RANKING] song %s has no authority; authority weight skipped", song.id, extra=INTEGRITY_LOG_EXTRA)
        non_official = evaluate_non_official(song)
    else:
        non_official = snapshot.get_non_official(song.id)
    breakdown = compute_final_score(song, identity, authority, context, non_official)
    is_canonical = identity is not None and snapshot.is_canonical(song.id, identity.identity_key)
    return RankedResult(
        song=song,
        identity=identity,
        final_score=breakdown.final_score,
        breakdown=breakdown,
        is_canonical=is_canonical,
        is_non_official=non_official.is_non_official,
    )


def _sort_key(result: RankedResult) -> tuple[Any, ...]:
    # Scores are multiples of 0.1; two decimals absorbs float noise.
    return (
        -round(result.final_score, 2),
        not result.is_canonical,
        result.is_non_official,
        source_priority(result.song.source),
        result.song.id,
    )


def rank_results(songs: Iterable[Song], context: SearchContext, snapshot: CatalogSnapshot) -> list[RankedResult]:
    """Score and totally order ``songs``. Pure with respect to ``snapshot``."""
    scored = [_score_song(song, context, snapshot) for song in songs if song is not None]
    scored.sort(key=_sort_key)
    return [replace(result, rank=index) for index, result in enumerate(scored, start=1)]


def rank_and_group_results(
    songs: Iterable[Song],
    context: SearchContext,
    snapshot: CatalogSnapshot,
) -> dict[str, list[RankedResult]]:
    grouped: dict[str, list[RankedResult]] = {}
    for result in rank_results(songs, context, snapshot):
        grouped.setdefault(result.identity_key, []).append(result)
    return grouped


def get_top_results(
    songs: Iterable[Song],
    context: SearchContext,
    snapshot: CatalogSnapshot,
    limit: int = DEFAULT_TOP_RESULTS,
) -> list[RankedResult]:
    return rank_results(songs, context, snapshot)[:limit]


def _result_item(result: RankedResult, include_debug: bool) -> dict[str, Any]:
    item: dict[str, Any] = {"song": song_to_dict(result.song), "score": round(result.final_score, 2)}
    if include_debug:
        item["breakdown"] = result.breakdown.to_dict()
        item["isCanonical"] = result.is_canonical
        item["isNonOfficial"] = result.is_non_official
    return item


def group_results_by_identity(ranked: Iterable[RankedResult], include_debug: bool = False) -> list[dict[str, Any]]:
    """Bucket ranked results by identity key.

    The first result seen opens a group as its display canonical. A later
    canonical-flagged result takes that place and pushes the previous
    display canonical to the front of the alternatives. Groups come back
    ordered by their display canonical's score.
    """
    groups: dict[str, dict[str, Any]] = {}
    for result in ranked:
        item = _result_item(result, include_debug)
        key = result.identity_key
        group = groups.get(key)
        if group is None:
            groups[key] = {"identityKey": key, "canonical": item, "alternatives": []}
        elif result.is_canonical:
            group["alternatives"].insert(0, group["canonical"])
            group["canonical"] = item
        else:
            group["alternatives"].append(item)
    return sorted(groups.values(), key=lambda group: -group["canonical"]["score"])


def flatten_results(ranked: Iterable[RankedResult], include_debug: bool = False) -> list[dict[str, Any]]:
    items = []
    for result in ranked:
        item = _result_item(result, include_debug)
        item["rank"] = result.rank
        items.append(item)
    return items


__all__ = [
    "RankedResult",
    "flatten_results",
    "get_top_results",
    "group_results_by_identity",
    "rank_and_group_results",
    "rank_results",
]
