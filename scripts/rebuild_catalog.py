#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import logging

from db.song_repository import SongRepository
from engine.catalog import CatalogState, persist_snapshot
from engine.paths import DB_PATH, build_engine_paths


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Rebuild the in-memory catalog from the durable store and verify it.")
    parser.add_argument("--db", default=None, help=f"SQLite path (default: {DB_PATH}).")
    parser.add_argument(
        "--recompute",
        action="store_true",
        help="Ignore stored identity/authority/selection records, recompute everything and persist it.",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    repository = SongRepository(args.db or build_engine_paths().db_path)
    repository.ensure_schema()
    state = CatalogState()
    if args.recompute:
        stats = state.rebuild_identities_and_authority(repository.get_all_songs())
        persist_snapshot(state.snapshot, repository)
    else:
        stats = state.rehydrate(repository)
    verification = state.verify_rebuild(repository)

    print(json.dumps({"stats": stats, "verification": verification}, indent=2))
    return 0 if verification["ok"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
