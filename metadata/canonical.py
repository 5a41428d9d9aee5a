"""Group songs by identity key and pick one canonical song per group."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from metadata.authority import missing_authority, source_priority
from metadata.errors import INTEGRITY_LOG_EXTRA, InvariantViolation
from metadata.identity import build_song_identity
from metadata.types import (
    SOURCE_DEEZER,
    SOURCE_YOUTUBE,
    CanonicalGroup,
    CanonicalSelection,
    NonOfficialResult,
    Song,
    SongIdentity,
    SourceAuthority,
)

logger = logging.getLogger(__name__)


def build_canonical_groups(
    songs: Iterable[Song],
    identities: Mapping[str, SongIdentity],
) -> dict[str, CanonicalGroup]:
    """Partition ``songs`` strictly by identity key equality.

    A song whose identity is missing gets one rebuilt on the fly and a
    warning is logged; nothing is dropped.
    """
    buckets: dict[str, tuple[list[Song], list[SongIdentity]]] = {}
    song_count = 0
    for song in songs:
        song_count += 1
        identity = identities.get(song.id)
        if identity is None:
            logger.warning("[CANONICAL] song %s has no identity; rebuilding it", song.id, extra=INTEGRITY_LOG_EXTRA)
            identity = build_song_identity(song)
        members, member_identities = buckets.setdefault(identity.identity_key, ([], []))
        members.append(song)
        member_identities.append(identity)

    groups = {
        key: CanonicalGroup(identity_key=key, songs=tuple(members), identities=tuple(member_identities))
        for key, (members, member_identities) in buckets.items()
    }
    stats = group_stats(groups)
    logger.info(
        "[CANONICAL] grouped songs=%s groups=%s multi=%s max_size=%s",
        song_count,
        stats["totalGroups"],
        stats["multiSongGroups"],
        stats["maxGroupSize"],
    )
    return groups


def group_stats(groups: Mapping[str, CanonicalGroup]) -> dict[str, float | int]:
    sizes = [group.size for group in groups.values()]
    total_songs = sum(sizes)
    return {
        "totalGroups": len(sizes),
        "totalSongs": total_songs,
        "singleSongGroups": sum(1 for size in sizes if size == 1),
        "multiSongGroups": sum(1 for size in sizes if size > 1),
        "maxGroupSize": max(sizes, default=0),
        "avgGroupSize": (total_songs / len(sizes)) if sizes else 0,
    }


def select_canonical(
    group: CanonicalGroup,
    authority_map: Mapping[str, SourceAuthority],
    non_official_map: Mapping[str, NonOfficialResult] | None = None,
) -> CanonicalSelection:
    """Pick the canonical song of ``group`` using precomputed authority data.

    Official songs always win over non-official ones; a non-official song is
    canonical only when the group has nothing else. Ties break on source
    priority, then song id.
    """
    if group is None or not group.songs:
        raise InvariantViolation("select_canonical requires a group with at least one song")
    if authority_map is None:
        raise InvariantViolation("select_canonical requires a precomputed authority map")
    non_official_map = non_official_map or {}

    scored: list[tuple[Song, SourceAuthority, bool]] = []
    for song in group.songs:
        authority = authority_map.get(song.id)
        if authority is None:
            logger.warning("[CANONICAL] song %s has no authority; using score 0", song.id, extra=INTEGRITY_LOG_EXTRA)
            authority = missing_authority(song.id)
        status = non_official_map.get(song.id)
        scored.append((song, authority, bool(status and status.is_non_official)))

    official = [item for item in scored if not item[2]]
    pool = official or [item for item in scored if item[2]]
    pool.sort(key=lambda item: (-item[1].score, source_priority(item[0].source), item[0].id))
    canonical_song, canonical_authority, _ = pool[0]

    alternatives = sorted(
        (song for song, _authority, _flag in scored if song.id != canonical_song.id),
        key=lambda song: song.id,
    )
    return CanonicalSelection(
        identity_key=group.identity_key,
        canonical_song=canonical_song,
        alternatives=tuple(alternatives),
        canonical_authority=canonical_authority,
    )


def select_all_canonicals(
    groups: Mapping[str, CanonicalGroup],
    authority_map: Mapping[str, SourceAuthority],
    non_official_map: Mapping[str, NonOfficialResult] | None = None,
) -> dict[str, CanonicalSelection]:
    selections = {
        key: select_canonical(group, authority_map, non_official_map)
        for key, group in groups.items()
    }
    winners = [selection.canonical_song.source for selection in selections.values()]
    logger.info(
        "[CANONICAL] selected groups=%s licensed_wins=%s community_wins=%s with_alternatives=%s",
        len(selections),
        winners.count(SOURCE_DEEZER),
        winners.count(SOURCE_YOUTUBE),
        sum(1 for selection in selections.values() if selection.alternatives),
    )
    return selections


__all__ = [
    "build_canonical_groups",
    "group_stats",
    "select_all_canonicals",
    "select_canonical",
]
