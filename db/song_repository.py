"""SQLite persistence for songs and their precomputed identity, authority and selections."""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Iterator

from db.migrations import ensure_catalog_tables
from metadata.types import (
    CanonicalSelection,
    NonOfficialResult,
    Song,
    SongIdentity,
    SourceAuthority,
)

logger = logging.getLogger(__name__)

_DEFAULT_DB_ENV_KEY = "TUNECANON_DB_PATH"
DEFAULT_PAGE_SIZE = 500
# Keeps IN (...) lists under SQLite's bound-parameter limit.
_ID_CHUNK = 500


def _resolve_db_path() -> str:
    return os.environ.get(_DEFAULT_DB_ENV_KEY, os.path.join(os.getcwd(), "tunecanon.sqlite3"))


def _utc_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _chunks(values: list[str], size: int = _ID_CHUNK) -> Iterator[list[str]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


@dataclass(frozen=True)
class StoredSelection:
    """Canonical selection as persisted: ids only, resolved against live songs on load."""

    identity_key: str
    canonical_song_id: str
    canonical_authority_score: int
    alternative_ids: tuple[str, ...]


def _duration_from_row(value: Any) -> float:
    # REAL columns come back as floats; keep whole seconds as ints like freshly loaded songs
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _song_from_row(row: sqlite3.Row) -> Song:
    return Song(
        id=row["id"],
        title=row["title"],
        artist_names=tuple(json.loads(row["artist_names"] or "[]")),
        album=row["album"],
        release_date=row["release_date"],
        duration=_duration_from_row(row["duration"]),
        version_type=row["version_type"],
        version_details=row["version_details"],
        source=row["source"],
        source_id=row["source_id"],
        metadata=json.loads(row["metadata"] or "{}"),
    )


def _identity_from_row(row: sqlite3.Row, song: Song | None = None) -> SongIdentity:
    return SongIdentity(
        song_id=row["song_id"],
        title_raw=song.title if song is not None else row["title_clean"],
        title_clean=row["title_clean"],
        title_identity=row["title_identity"],
        title_normalized=row["title_normalized"],
        artist_raw=tuple(song.artist_names) if song is not None else (),
        artist_normalized=tuple(json.loads(row["artist_normalized"] or "[]")),
        version_type=row["version_type"],
        duration_bucket=int(row["duration_bucket"]),
        identity_key=row["identity_key"],
    )


def _authority_from_row(row: sqlite3.Row) -> tuple[SourceAuthority, NonOfficialResult]:
    authority = SourceAuthority(
        song_id=row["song_id"],
        score=int(row["score"]),
        level=row["level"],
        reasons=tuple(json.loads(row["reasons"] or "[]")),
    )
    non_official = NonOfficialResult(
        is_non_official=bool(row["is_non_official"]),
        reason=row["non_official_reason"],
    )
    return authority, non_official


def _selection_from_row(row: sqlite3.Row) -> StoredSelection:
    return StoredSelection(
        identity_key=row["identity_key"],
        canonical_song_id=row["canonical_song_id"],
        canonical_authority_score=int(row["canonical_authority_score"]),
        alternative_ids=tuple(json.loads(row["alternatives"] or "[]")),
    )


class SongRepository:
    """Durable catalog store. Every successful write notifies the registered listeners."""

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = db_path or _resolve_db_path()
        self._write_listeners: list[Callable[[], Any]] = []

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        ensure_catalog_tables(conn)
        return conn

    def ensure_schema(self) -> None:
        conn = self._connect()
        conn.close()

    def add_write_listener(self, callback: Callable[[], Any]) -> None:
        self._write_listeners.append(callback)

    def _notify_write(self) -> None:
        for callback in list(self._write_listeners):
            try:
                callback()
            except Exception:
                logger.exception("Catalog write listener failed")

    # -- songs ---------------------------------------------------------------

    @staticmethod
    def _upsert_song_rows(cur: sqlite3.Cursor, songs: Iterable[Song], now: str) -> int:
        rows = [
            (
                song.id,
                song.title,
                json.dumps(list(song.artist_names), ensure_ascii=False),
                song.album,
                song.release_date,
                song.duration,
                song.version_type,
                song.version_details,
                song.source,
                song.source_id,
                json.dumps(dict(song.metadata), ensure_ascii=False, default=str),
                now,
            )
            for song in songs
        ]
        cur.executemany(
            """
            INSERT INTO songs (
                id, title, artist_names, album, release_date, duration,
                version_type, version_details, source, source_id, metadata, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title=excluded.title,
                artist_names=excluded.artist_names,
                album=excluded.album,
                release_date=excluded.release_date,
                duration=excluded.duration,
                version_type=excluded.version_type,
                version_details=excluded.version_details,
                source=excluded.source,
                source_id=excluded.source_id,
                metadata=excluded.metadata,
                updated_at=excluded.updated_at
            """,
            rows,
        )
        # derived rows describe the previous version of each song
        song_ids = [(row[0],) for row in rows]
        cur.executemany("DELETE FROM song_identity WHERE song_id = ?", song_ids)
        cur.executemany("DELETE FROM song_authority WHERE song_id = ?", song_ids)
        return len(rows)

    def upsert_songs(self, songs: Iterable[Song]) -> int:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            count = self._upsert_song_rows(cur, songs, _utc_now())
            conn.commit()
        finally:
            conn.close()
        if count:
            self._notify_write()
        return count

    def upsert_song(self, song: Song) -> None:
        self.upsert_songs([song])

    def get_song_by_id(self, song_id: str) -> Song | None:
        if not song_id:
            return None
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM songs WHERE id=?", (song_id,)).fetchone()
            return _song_from_row(row) if row else None
        finally:
            conn.close()

    def get_songs_by_ids(self, song_ids: Iterable[str]) -> list[Song]:
        """Return songs in the order of ``song_ids``; unknown ids are skipped."""
        ids = [str(song_id) for song_id in song_ids if song_id]
        if not ids:
            return []
        found: dict[str, Song] = {}
        conn = self._connect()
        try:
            for chunk in _chunks(list(dict.fromkeys(ids))):
                placeholders = ",".join("?" for _ in chunk)
                for row in conn.execute(f"SELECT * FROM songs WHERE id IN ({placeholders})", chunk):
                    found[row["id"]] = _song_from_row(row)
        finally:
            conn.close()
        return [found[song_id] for song_id in dict.fromkeys(ids) if song_id in found]

    def iter_song_pages(self, page_size: int = DEFAULT_PAGE_SIZE) -> Iterator[list[Song]]:
        """Yield every song in id order, ``page_size`` at a time."""
        page_size = max(1, int(page_size))
        last_id = ""
        while True:
            conn = self._connect()
            try:
                rows = conn.execute(
                    "SELECT * FROM songs WHERE id > ? ORDER BY id ASC LIMIT ?",
                    (last_id, page_size),
                ).fetchall()
            finally:
                conn.close()
            if not rows:
                return
            page = [_song_from_row(row) for row in rows]
            yield page
            if len(rows) < page_size:
                return
            last_id = page[-1].id

    def get_all_songs(self) -> list[Song]:
        songs: list[Song] = []
        for page in self.iter_song_pages():
            songs.extend(page)
        return songs

    def count_songs(self) -> int:
        conn = self._connect()
        try:
            return int(conn.execute("SELECT COUNT(*) FROM songs").fetchone()[0])
        finally:
            conn.close()

    # -- identity / authority ------------------------------------------------

    @staticmethod
    def _upsert_identity_rows(cur: sqlite3.Cursor, identities: Iterable[SongIdentity], now: str) -> None:
        cur.executemany(
            """
            INSERT INTO song_identity (
                song_id, identity_key, title_clean, title_identity, title_normalized,
                artist_normalized, version_type, duration_bucket, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(song_id) DO UPDATE SET
                identity_key=excluded.identity_key,
                title_clean=excluded.title_clean,
                title_identity=excluded.title_identity,
                title_normalized=excluded.title_normalized,
                artist_normalized=excluded.artist_normalized,
                version_type=excluded.version_type,
                duration_bucket=excluded.duration_bucket,
                updated_at=excluded.updated_at
            """,
            [
                (
                    identity.song_id,
                    identity.identity_key,
                    identity.title_clean,
                    identity.title_identity,
                    identity.title_normalized,
                    json.dumps(list(identity.artist_normalized), ensure_ascii=False),
                    identity.version_type,
                    identity.duration_bucket,
                    now,
                )
                for identity in identities
            ],
        )

    @staticmethod
    def _upsert_authority_rows(
        cur: sqlite3.Cursor,
        authorities: Iterable[tuple[SourceAuthority, NonOfficialResult]],
        now: str,
    ) -> None:
        cur.executemany(
            """
            INSERT INTO song_authority (
                song_id, score, level, reasons, is_non_official, non_official_reason, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(song_id) DO UPDATE SET
                score=excluded.score,
                level=excluded.level,
                reasons=excluded.reasons,
                is_non_official=excluded.is_non_official,
                non_official_reason=excluded.non_official_reason,
                updated_at=excluded.updated_at
            """,
            [
                (
                    authority.song_id,
                    int(authority.score),
                    authority.level,
                    json.dumps(list(authority.reasons), ensure_ascii=False),
                    1 if non_official.is_non_official else 0,
                    non_official.reason,
                    now,
                )
                for authority, non_official in authorities
            ],
        )

    def upsert_identity(self, identity: SongIdentity) -> None:
        conn = self._connect()
        try:
            self._upsert_identity_rows(conn.cursor(), [identity], _utc_now())
            conn.commit()
        finally:
            conn.close()
        self._notify_write()

    def upsert_authority(self, authority: SourceAuthority, non_official: NonOfficialResult) -> None:
        conn = self._connect()
        try:
            self._upsert_authority_rows(conn.cursor(), [(authority, non_official)], _utc_now())
            conn.commit()
        finally:
            conn.close()
        self._notify_write()

    def get_identities(self, songs: Iterable[Song]) -> dict[str, SongIdentity]:
        by_id = {song.id: song for song in songs}
        identities: dict[str, SongIdentity] = {}
        if not by_id:
            return identities
        conn = self._connect()
        try:
            for chunk in _chunks(list(by_id)):
                placeholders = ",".join("?" for _ in chunk)
                rows = conn.execute(f"SELECT * FROM song_identity WHERE song_id IN ({placeholders})", chunk)
                for row in rows:
                    identities[row["song_id"]] = _identity_from_row(row, by_id.get(row["song_id"]))
        finally:
            conn.close()
        return identities

    def get_identity(self, song_id: str) -> SongIdentity | None:
        song = self.get_song_by_id(song_id)
        if song is None:
            return None
        return self.get_identities([song]).get(song_id)

    def get_authorities(self, song_ids: Iterable[str]) -> dict[str, tuple[SourceAuthority, NonOfficialResult]]:
        ids = list(dict.fromkeys(str(song_id) for song_id in song_ids if song_id))
        authorities: dict[str, tuple[SourceAuthority, NonOfficialResult]] = {}
        if not ids:
            return authorities
        conn = self._connect()
        try:
            for chunk in _chunks(ids):
                placeholders = ",".join("?" for _ in chunk)
                rows = conn.execute(f"SELECT * FROM song_authority WHERE song_id IN ({placeholders})", chunk)
                for row in rows:
                    authorities[row["song_id"]] = _authority_from_row(row)
        finally:
            conn.close()
        return authorities

    def get_authority(self, song_id: str) -> tuple[SourceAuthority, NonOfficialResult] | None:
        return self.get_authorities([song_id]).get(song_id)

    # -- canonical selections -------------------------------------------------

    @staticmethod
    def _upsert_selection_rows(cur: sqlite3.Cursor, selections: Iterable[CanonicalSelection], now: str) -> None:
        cur.executemany(
            """
            INSERT INTO canonical_selections (
                identity_key, canonical_song_id, canonical_authority_score, alternatives, updated_at
            ) VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(identity_key) DO UPDATE SET
                canonical_song_id=excluded.canonical_song_id,
                canonical_authority_score=excluded.canonical_authority_score,
                alternatives=excluded.alternatives,
                updated_at=excluded.updated_at
            """,
            [
                (
                    selection.identity_key,
                    selection.canonical_song.id,
                    int(selection.canonical_authority.score),
                    json.dumps([song.id for song in selection.alternatives], ensure_ascii=False),
                    now,
                )
                for selection in selections
            ],
        )

    def upsert_canonical_selection(self, selection: CanonicalSelection) -> None:
        conn = self._connect()
        try:
            self._upsert_selection_rows(conn.cursor(), [selection], _utc_now())
            conn.commit()
        finally:
            conn.close()
        self._notify_write()

    def get_canonical_selection(self, identity_key: str) -> StoredSelection | None:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM canonical_selections WHERE identity_key=?",
                (identity_key,),
            ).fetchone()
            return _selection_from_row(row) if row else None
        finally:
            conn.close()

    def iter_canonical_selection_pages(self, page_size: int = DEFAULT_PAGE_SIZE) -> Iterator[list[StoredSelection]]:
        page_size = max(1, int(page_size))
        last_key = ""
        while True:
            conn = self._connect()
            try:
                rows = conn.execute(
                    "SELECT * FROM canonical_selections WHERE identity_key > ? ORDER BY identity_key ASC LIMIT ?",
                    (last_key, page_size),
                ).fetchall()
            finally:
                conn.close()
            if not rows:
                return
            page = [_selection_from_row(row) for row in rows]
            yield page
            if len(rows) < page_size:
                return
            last_key = page[-1].identity_key

    def count_canonical_selections(self) -> int:
        conn = self._connect()
        try:
            return int(conn.execute("SELECT COUNT(*) FROM canonical_selections").fetchone()[0])
        finally:
            conn.close()

    # -- combined writes ------------------------------------------------------

    def persist_song(
        self,
        song: Song,
        identity: SongIdentity,
        authority: SourceAuthority,
        non_official: NonOfficialResult,
    ) -> bool:
        """Write a song with its computed records in one transaction."""
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            now = _utc_now()
            self._upsert_song_rows(cur, [song], now)
            self._upsert_identity_rows(cur, [identity], now)
            self._upsert_authority_rows(cur, [(authority, non_official)], now)
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            logger.exception("Failed to persist song %s", song.id)
            return False
        finally:
            conn.close()
        self._notify_write()
        return True

    def persist_catalog(
        self,
        songs: Iterable[Song],
        identities: Iterable[SongIdentity],
        authorities: Iterable[tuple[SourceAuthority, NonOfficialResult]],
        selections: Iterable[CanonicalSelection],
    ) -> None:
        """Replace computed records with a full catalog build, atomically."""
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            now = _utc_now()
            self._upsert_song_rows(cur, songs, now)
            cur.execute("DELETE FROM canonical_selections")
            self._upsert_identity_rows(cur, identities, now)
            self._upsert_authority_rows(cur, authorities, now)
            self._upsert_selection_rows(cur, selections, now)
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise
        finally:
            conn.close()
        self._notify_write()


__all__ = ["DEFAULT_PAGE_SIZE", "SongRepository", "StoredSelection"]
