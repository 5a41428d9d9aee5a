"""SQLite migrations for the song catalog."""

from __future__ import annotations

import sqlite3


def ensure_catalog_tables(conn: sqlite3.Connection) -> None:
    """Ensure song, identity, authority and canonical-selection tables exist."""
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS songs (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            artist_names TEXT NOT NULL,
            album TEXT,
            release_date TEXT,
            duration REAL NOT NULL DEFAULT 0,
            version_type TEXT NOT NULL DEFAULT 'original',
            version_details TEXT,
            source TEXT NOT NULL,
            source_id TEXT NOT NULL,
            metadata TEXT,
            updated_at TEXT NOT NULL
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_songs_source ON songs (source, source_id)")
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS song_identity (
            song_id TEXT PRIMARY KEY,
            identity_key TEXT NOT NULL,
            title_clean TEXT NOT NULL,
            title_identity TEXT NOT NULL,
            title_normalized TEXT NOT NULL,
            artist_normalized TEXT NOT NULL,
            version_type TEXT NOT NULL,
            duration_bucket INTEGER NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY (song_id) REFERENCES songs(id) ON DELETE CASCADE
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_song_identity_key ON song_identity (identity_key)")
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS song_authority (
            song_id TEXT PRIMARY KEY,
            score INTEGER NOT NULL,
            level TEXT NOT NULL,
            reasons TEXT NOT NULL,
            is_non_official INTEGER NOT NULL DEFAULT 0,
            non_official_reason TEXT,
            updated_at TEXT NOT NULL,
            FOREIGN KEY (song_id) REFERENCES songs(id) ON DELETE CASCADE
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS canonical_selections (
            identity_key TEXT PRIMARY KEY,
            canonical_song_id TEXT NOT NULL,
            canonical_authority_score INTEGER NOT NULL,
            alternatives TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY (canonical_song_id) REFERENCES songs(id) ON DELETE CASCADE
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_canonical_selections_song "
        "ON canonical_selections (canonical_song_id)"
    )
    conn.commit()
