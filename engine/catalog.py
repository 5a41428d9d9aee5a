"""Catalog state: identity, authority and canonical-selection repositories.

Repositories are filled once per build and then frozen inside a
``CatalogSnapshot``. ``CatalogState`` swaps whole snapshots under a lock, so
readers always see either the previous build or the next one, never a mix.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Generic, Iterable, Iterator, Mapping, TypeVar

from config.settings import REHYDRATE_PAGE_SIZE
from metadata.authority import evaluate_source_authority, missing_authority
from metadata.canonical import build_canonical_groups, group_stats, select_all_canonicals, select_canonical
from metadata.errors import INTEGRITY_LOG_EXTRA
from metadata.identity import build_song_identity
from metadata.non_official import evaluate_non_official
from metadata.types import (
    OFFICIAL,
    CanonicalGroup,
    CanonicalSelection,
    NonOfficialResult,
    Song,
    SongIdentity,
    SourceAuthority,
)

logger = logging.getLogger(__name__)


V = TypeVar("V")


class _KeyedRepository(Generic[V]):
    """Keyed records owned by one build. Writes are refused once frozen."""

    def __init__(self, items: Mapping[str, V] | None = None) -> None:
        self._items: dict[str, V] = dict(items or {})
        self._frozen = False
        self._lock = threading.Lock()

    def put(self, key: str, value: V) -> None:
        with self._lock:
            if self._frozen:
                raise RuntimeError(f"{type(self).__name__} is frozen")
            self._items[key] = value

    def get(self, key: str) -> V | None:
        return self._items.get(key)

    def clear(self) -> None:
        with self._lock:
            if self._frozen:
                raise RuntimeError(f"{type(self).__name__} is frozen")
            self._items.clear()

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def as_mapping(self) -> Mapping[str, V]:
        return MappingProxyType(self._items)

    def values(self) -> Iterable[V]:
        return self._items.values()

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)


class IdentityRepository(_KeyedRepository[SongIdentity]):
    def add(self, identity: SongIdentity) -> None:
        self.put(identity.song_id, identity)


class AuthorityRepository(_KeyedRepository[SourceAuthority]):
    """Authority per song plus the non-official classification computed alongside it."""

    def __init__(
        self,
        items: Mapping[str, SourceAuthority] | None = None,
        non_official: Mapping[str, NonOfficialResult] | None = None,
    ) -> None:
        super().__init__(items)
        self._non_official: dict[str, NonOfficialResult] = dict(non_official or {})

    def add(self, authority: SourceAuthority, non_official: NonOfficialResult) -> None:
        with self._lock:
            if self._frozen:
                raise RuntimeError("AuthorityRepository is frozen")
            self._items[authority.song_id] = authority
            self._non_official[authority.song_id] = non_official

    def get_non_official(self, song_id: str) -> NonOfficialResult:
        return self._non_official.get(song_id, OFFICIAL)

    def is_non_official(self, song_id: str) -> bool:
        return self.get_non_official(song_id).is_non_official

    def non_official_mapping(self) -> Mapping[str, NonOfficialResult]:
        return MappingProxyType(self._non_official)

    def non_official_count(self) -> int:
        return sum(1 for result in self._non_official.values() if result.is_non_official)

    def clear(self) -> None:
        super().clear()
        self._non_official.clear()


class SelectionRepository(_KeyedRepository[CanonicalSelection]):
    def add(self, selection: CanonicalSelection) -> None:
        self.put(selection.identity_key, selection)

    def is_canonical(self, song_id: str, identity_key: str) -> bool:
        selection = self.get(identity_key)
        return selection is not None and selection.canonical_song.id == song_id


@dataclass(frozen=True)
class CatalogSnapshot:
    """One complete, read-only build of the catalog."""

    songs: Mapping[str, Song]
    identities: IdentityRepository
    authorities: AuthorityRepository
    selections: SelectionRepository
    groups: Mapping[str, CanonicalGroup] = field(default_factory=dict)
    built_at: float = 0.0

    @classmethod
    def empty(cls) -> "CatalogSnapshot":
        identities, authorities, selections = IdentityRepository(), AuthorityRepository(), SelectionRepository()
        for repository in (identities, authorities, selections):
            repository.freeze()
        return cls(songs=MappingProxyType({}), identities=identities, authorities=authorities, selections=selections)

    def all_songs(self) -> list[Song]:
        return list(self.songs.values())

    def get_identity(self, song_id: str) -> SongIdentity | None:
        return self.identities.get(song_id)

    def get_authority(self, song_id: str) -> SourceAuthority | None:
        return self.authorities.get(song_id)

    def get_non_official(self, song_id: str) -> NonOfficialResult:
        return self.authorities.get_non_official(song_id)

    def is_non_official(self, song_id: str) -> bool:
        return self.authorities.is_non_official(song_id)

    def is_canonical(self, song_id: str, identity_key: str) -> bool:
        return self.selections.is_canonical(song_id, identity_key)

    def get_canonical_selection(self, identity_key: str) -> CanonicalSelection | None:
        return self.selections.get(identity_key)

    def stats(self) -> dict[str, Any]:
        return {
            "songs": len(self.songs),
            "identities": len(self.identities),
            "authorities": len(self.authorities),
            "nonOfficials": self.authorities.non_official_count(),
            "canonicalSelections": len(self.selections),
            "groups": group_stats(self.groups),
            "builtAt": self.built_at,
        }


def _freeze_snapshot(
    songs: dict[str, Song],
    identities: IdentityRepository,
    authorities: AuthorityRepository,
    selections: SelectionRepository,
    groups: Mapping[str, CanonicalGroup],
) -> CatalogSnapshot:
    for repository in (identities, authorities, selections):
        repository.freeze()
    return CatalogSnapshot(
        songs=MappingProxyType(songs),
        identities=identities,
        authorities=authorities,
        selections=selections,
        groups=MappingProxyType(dict(groups)),
        built_at=time.time(),
    )


def build_catalog_snapshot(all_songs: Iterable[Song]) -> tuple[CatalogSnapshot, dict[str, Any]]:
    """Run the identity, authority and selection passes over ``all_songs``.

    A song that fails a pass is logged and skipped; the rest of the batch
    continues. Selection runs only after both per-song passes finish.
    """
    songs: dict[str, Song] = {}
    identities = IdentityRepository()
    authorities = AuthorityRepository()
    failed = 0

    for song in all_songs:
        try:
            identity = build_song_identity(song)
        except Exception:
            failed += 1
            logger.exception("[REBUILD] identity failed for song %r", getattr(song, "id", None))
            continue
        songs[song.id] = song
        identities.add(identity)

    for song in songs.values():
        try:
            authority = evaluate_source_authority(song)
            non_official = evaluate_non_official(song)
        except Exception:
            failed += 1
            logger.exception("[REBUILD] authority failed for song %s", song.id)
            authority, non_official = missing_authority(song.id, "authority evaluation failed"), OFFICIAL
        authorities.add(authority, non_official)

    groups = build_canonical_groups(songs.values(), identities.as_mapping())
    selections = SelectionRepository()
    for selection in select_all_canonicals(groups, authorities.as_mapping(), authorities.non_official_mapping()).values():
        selections.add(selection)

    snapshot = _freeze_snapshot(songs, identities, authorities, selections, groups)
    stats = {
        "songs": len(songs),
        "identities": len(identities),
        "authorities": len(authorities),
        "nonOfficials": authorities.non_official_count(),
        "canonicalSelections": len(selections),
        "failed": failed,
    }
    return snapshot, stats


def _resolve_stored_selection(
    stored: Any,
    group: CanonicalGroup,
    authorities: AuthorityRepository,
) -> CanonicalSelection | None:
    """Turn a persisted selection back into songs, or ``None`` when it no longer fits the group."""
    members = {song.id: song for song in group.songs}
    canonical = members.get(stored.canonical_song_id)
    if canonical is None:
        logger.warning(
            "[REBUILD] stored canonical %s missing for %s; reselecting",
            stored.canonical_song_id,
            stored.identity_key,
        )
        return None
    if set(members) != {stored.canonical_song_id, *stored.alternative_ids}:
        logger.warning("[REBUILD] stored selection for %s is stale; reselecting", stored.identity_key)
        return None
    authority = authorities.get(canonical.id) or missing_authority(canonical.id)
    alternatives = sorted((song for song_id, song in members.items() if song_id != canonical.id), key=lambda s: s.id)
    return CanonicalSelection(
        identity_key=group.identity_key,
        canonical_song=canonical,
        alternatives=tuple(alternatives),
        canonical_authority=authority,
    )


class CatalogState:
    """Holds the current snapshot and swaps in new builds atomically."""

    def __init__(self, snapshot: CatalogSnapshot | None = None) -> None:
        self._lock = threading.Lock()
        self._snapshot = snapshot or CatalogSnapshot.empty()
        self._swap_listeners: list[Callable[[CatalogSnapshot], Any]] = []

    @property
    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    def add_swap_listener(self, callback: Callable[[CatalogSnapshot], Any]) -> None:
        self._swap_listeners.append(callback)

    def swap(self, snapshot: CatalogSnapshot) -> CatalogSnapshot:
        with self._lock:
            previous = self._snapshot
            self._snapshot = snapshot
        for callback in list(self._swap_listeners):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Catalog swap listener failed")
        return previous

    def rebuild_identities_and_authority(self, all_songs: Iterable[Song]) -> dict[str, Any]:
        started = time.monotonic()
        snapshot, stats = build_catalog_snapshot(all_songs)
        self.swap(snapshot)
        stats["elapsedMs"] = int((time.monotonic() - started) * 1000)
        logging.info("[REBUILD] catalog rebuilt %s", stats)
        return stats

    def get_canonical_selection(self, identity_key: str) -> CanonicalSelection | None:
        return self._snapshot.get_canonical_selection(identity_key)

    def rehydrate(self, repository: Any, page_size: int = REHYDRATE_PAGE_SIZE) -> dict[str, Any]:
        """Rebuild state from the durable store, reusing stored identity and authority records.

        Missing records are recomputed with a warning. Stored selections are
        reused when they still describe their group exactly.
        """
        started = time.monotonic()
        songs: dict[str, Song] = {}
        identities = IdentityRepository()
        authorities = AuthorityRepository()
        recomputed = {"identities": 0, "authorities": 0}

        for page in repository.iter_song_pages(page_size):
            stored_identities = repository.get_identities(page)
            stored_authorities = repository.get_authorities([song.id for song in page])
            for song in page:
                identity = stored_identities.get(song.id)
                if identity is None:
                    logger.warning("[REBUILD] song %s has no stored identity; rebuilding", song.id, extra=INTEGRITY_LOG_EXTRA)
                    try:
                        identity = build_song_identity(song)
                    except Exception:
                        logger.exception("[REBUILD] identity failed for song %s", song.id)
                        continue
                    recomputed["identities"] += 1
                stored = stored_authorities.get(song.id)
                if stored is None:
                    logger.warning("[REBUILD] song %s has no stored authority; recomputing", song.id, extra=INTEGRITY_LOG_EXTRA)
                    stored = (evaluate_source_authority(song), evaluate_non_official(song))
                    recomputed["authorities"] += 1
                songs[song.id] = song
                identities.add(identity)
                authorities.add(*stored)

        groups = build_canonical_groups(songs.values(), identities.as_mapping())
        selections = SelectionRepository()
        for selection_page in repository.iter_canonical_selection_pages(page_size):
            for stored_selection in selection_page:
                group = groups.get(stored_selection.identity_key)
                if group is None:
                    logger.warning("[REBUILD] stored selection %s has no songs; skipping", stored_selection.identity_key)
                    continue
                selection = _resolve_stored_selection(stored_selection, group, authorities)
                if selection is not None:
                    selections.add(selection)
        reselected = 0
        for key, group in groups.items():
            if key not in selections:
                selections.add(select_canonical(group, authorities.as_mapping(), authorities.non_official_mapping()))
                reselected += 1

        snapshot = _freeze_snapshot(songs, identities, authorities, selections, groups)
        self.swap(snapshot)
        stats = {
            "songs": len(songs),
            "identities": len(identities),
            "authorities": len(authorities),
            "nonOfficials": authorities.non_official_count(),
            "canonicalSelections": len(selections),
            "recomputedIdentities": recomputed["identities"],
            "recomputedAuthorities": recomputed["authorities"],
            "reselectedGroups": reselected,
            "elapsedMs": int((time.monotonic() - started) * 1000),
        }
        logging.info("[REBUILD] catalog rehydrated %s", stats)
        return stats

    def verify_rebuild(self, repository: Any) -> dict[str, Any]:
        snapshot = self._snapshot
        db_songs = repository.count_songs()
        memory_songs = len(snapshot.songs)
        checks = {
            "songsMatch": db_songs == memory_songs,
            "identitiesMatch": len(snapshot.identities) == memory_songs,
            "authoritiesMatch": len(snapshot.authorities) == memory_songs,
            "selectionsMatch": len(snapshot.selections) == len(snapshot.groups),
        }
        result = {
            "ok": all(checks.values()),
            "checks": checks,
            "dbSongs": db_songs,
            "memorySongs": memory_songs,
            "dbSelections": repository.count_canonical_selections(),
            "memorySelections": len(snapshot.selections),
        }
        if not result["ok"]:
            logger.warning("[REBUILD] verification mismatch %s", result)
        return result


def persist_snapshot(snapshot: CatalogSnapshot, repository: Any) -> None:
    """Write a snapshot's computed records to the durable store."""
    repository.persist_catalog(
        snapshot.songs.values(),
        snapshot.identities.values(),
        [
            (authority, snapshot.get_non_official(song_id))
            for song_id, authority in snapshot.authorities.as_mapping().items()
        ],
        snapshot.selections.values(),
    )


__all__ = [
    "AuthorityRepository",
    "CatalogSnapshot",
    "CatalogState",
    "IdentityRepository",
    "SelectionRepository",
    "build_catalog_snapshot",
    "persist_snapshot",
]
