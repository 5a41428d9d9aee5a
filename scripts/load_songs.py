#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

from db.song_repository import SongRepository
from engine.catalog import build_catalog_snapshot, persist_snapshot
from engine.paths import DB_PATH, build_engine_paths
from metadata.song_loader import load_songs


def _load_items(path: str | None, *, key: str) -> list[dict[str, Any]]:
    if not path:
        return []
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get(key) or payload.get("data") or []
    if not isinstance(payload, list):
        raise ValueError(f"{path} must contain a JSON list or an object with a '{key}' list")
    return [item for item in payload if isinstance(item, dict)]


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Load raw provider payloads into the song catalog.")
    parser.add_argument("--youtube", help="JSON file with YouTube video items.")
    parser.add_argument("--deezer", help="JSON file with Deezer track objects.")
    parser.add_argument("--db", default=None, help=f"SQLite path (default: {DB_PATH}).")
    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Recompute identities, authority and canonical selections for the whole store afterwards.",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    if not args.youtube and not args.deezer:
        print("Nothing to load: pass --youtube and/or --deezer")
        return 1

    result = load_songs(
        youtube_items=_load_items(args.youtube, key="items"),
        deezer_tracks=_load_items(args.deezer, key="tracks"),
    )
    db_path = args.db or build_engine_paths().db_path
    repository = SongRepository(db_path)
    repository.ensure_schema()
    written = repository.upsert_songs(result.songs)
    summary: dict[str, Any] = {"load": result.to_dict(), "written": written, "db": db_path}

    if args.rebuild:
        snapshot, stats = build_catalog_snapshot(repository.get_all_songs())
        persist_snapshot(snapshot, repository)
        summary["rebuild"] = stats

    print(json.dumps(summary, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
