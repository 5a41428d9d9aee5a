from __future__ import annotations

import logging
import time
from typing import Any, Iterable

from app.search_index.client import MeiliClient
from config.settings import INDEX_BATCH_SIZE
from metadata.errors import CollaboratorUnavailable
from metadata.types import Song, SongIdentity

logger = logging.getLogger(__name__)


def build_song_document(song: Song, identity: SongIdentity) -> dict[str, Any]:
    return {
        "songId": song.id,
        "titleClean": identity.title_clean,
        "titleNormalized": identity.title_normalized,
        "artistNormalized": list(identity.artist_normalized),
        "album": song.album or None,
        "releaseDate": song.release_date or None,
        "durationBucket": identity.duration_bucket,
        "versionType": song.version_type or "original",
        "identityKey": identity.identity_key,
        "source": song.source,
    }


class SongIndexer:
    """Pushes song documents to the full-text index. Failures are logged and counted."""

    def __init__(self, client: MeiliClient, batch_size: int = INDEX_BATCH_SIZE) -> None:
        self.client = client
        self.batch_size = max(1, int(batch_size))

    def index_song(self, song: Song, identity: SongIdentity) -> bool:
        if not self.client.is_available():
            return False
        try:
            self.client.add_documents([build_song_document(song, identity)])
        except CollaboratorUnavailable as exc:
            logger.error("[INDEXER] failed to index song %s: %s", song.id, exc)
            return False
        return True

    def index_batch(self, items: list[tuple[Song, SongIdentity]]) -> dict[str, int]:
        if not items:
            return {"indexed": 0, "failed": 0}
        if not self.client.is_available():
            return {"indexed": 0, "failed": len(items)}
        documents = [build_song_document(song, identity) for song, identity in items]
        try:
            task = self.client.add_documents(documents)
            self.client.wait_for_task(task)
        except CollaboratorUnavailable as exc:
            logger.error("[INDEXER] batch of %d failed: %s", len(documents), exc)
            return {"indexed": 0, "failed": len(documents)}
        logger.info("[INDEXER] %d songs indexed", len(documents))
        return {"indexed": len(documents), "failed": 0}

    def index_all(self, pairs: Iterable[tuple[Song, SongIdentity | None]]) -> dict[str, int]:
        totals = {"indexed": 0, "failed": 0, "skipped": 0}
        batch: list[tuple[Song, SongIdentity]] = []
        for song, identity in pairs:
            if identity is None:
                totals["skipped"] += 1
                continue
            batch.append((song, identity))
            if len(batch) >= self.batch_size:
                self._add_totals(totals, self.index_batch(batch))
                batch = []
        if batch:
            self._add_totals(totals, self.index_batch(batch))
        return totals

    def reindex_repository(self, repository: Any, *, clear_first: bool = True) -> dict[str, Any]:
        """Rebuild the index from stored songs and identities, one page at a time."""
        started = time.monotonic()
        if not self.client.is_available():
            raise CollaboratorUnavailable("full-text index is unavailable")
        if clear_first and not self.clear():
            raise CollaboratorUnavailable("could not clear the full-text index")
        totals = {"indexed": 0, "failed": 0, "skipped": 0}
        for page in repository.iter_song_pages(self.batch_size):
            identities = repository.get_identities(page)
            result = self.index_all((song, identities.get(song.id)) for song in page)
            for key in totals:
                totals[key] += result[key]
            logger.info("[INDEXER] progress indexed=%s failed=%s", totals["indexed"], totals["failed"])
        return {**totals, "elapsedMs": int((time.monotonic() - started) * 1000), "index": self.stats()}

    @staticmethod
    def _add_totals(totals: dict[str, int], result: dict[str, int]) -> None:
        totals["indexed"] += result["indexed"]
        totals["failed"] += result["failed"]

    def delete_song(self, song_id: str) -> bool:
        if not self.client.is_available():
            return False
        try:
            self.client.delete_document(song_id)
        except CollaboratorUnavailable as exc:
            logger.error("[INDEXER] failed to delete song %s: %s", song_id, exc)
            return False
        return True

    def clear(self) -> bool:
        if not self.client.is_available():
            return False
        try:
            self.client.wait_for_task(self.client.delete_all_documents())
        except CollaboratorUnavailable as exc:
            logger.error("[INDEXER] failed to clear index: %s", exc)
            return False
        logger.info("[INDEXER] index cleared")
        return True

    def stats(self) -> dict[str, Any] | None:
        if not self.client.is_available():
            return None
        try:
            return self.client.get_stats()
        except CollaboratorUnavailable as exc:
            logger.error("[INDEXER] failed to read index stats: %s", exc)
            return None
