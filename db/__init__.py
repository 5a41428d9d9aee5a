"""Database helpers for the song catalog."""

from db.song_repository import SongRepository, StoredSelection

__all__ = ["SongRepository", "StoredSelection"]
