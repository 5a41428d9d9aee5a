from __future__ import annotations

import importlib.util
import json
from pathlib import Path

from db.song_repository import SongRepository

_SCRIPTS = Path(__file__).resolve().parents[1] / "scripts"


def _load_script(name: str):
    spec = importlib.util.spec_from_file_location(name, _SCRIPTS / f"{name}.py")
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


LOAD_SONGS = _load_script("load_songs")
REBUILD_CATALOG = _load_script("rebuild_catalog")


def _write_payloads(tmp_path: Path) -> tuple[Path, Path]:
    youtube = tmp_path / "youtube.json"
    youtube.write_text(
        json.dumps(
            {
                "items": [
                    {"videoId": "yt_a", "title": "Song", "artist": "Artist", "duration": 252, "channelTitle": "Artist - Topic"},
                    {"videoId": "yt_b", "title": "Song (Cover)", "duration": 250, "channelTitle": "Someone"},
                ]
            }
        ),
        encoding="utf-8",
    )
    deezer = tmp_path / "deezer.json"
    deezer.write_text(
        json.dumps([{"id": 1, "title": "Song", "duration": 248, "artist": {"name": "Artist"}}]),
        encoding="utf-8",
    )
    return youtube, deezer


def test_load_songs_writes_and_rebuilds(tmp_path, capsys) -> None:
    youtube, deezer = _write_payloads(tmp_path)
    db_path = str(tmp_path / "catalog.sqlite")

    code = LOAD_SONGS.main(["--youtube", str(youtube), "--deezer", str(deezer), "--db", db_path, "--rebuild"])

    assert code == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["written"] == 2
    assert summary["load"]["totalProcessed"] == 3
    assert summary["rebuild"]["canonicalSelections"] == 1
    selection = SongRepository(db_path).get_canonical_selection("song|artist|original|250")
    assert selection.canonical_song_id == "dz_1"
    assert selection.alternative_ids == ("yt_a",)


def test_load_songs_without_inputs_fails(tmp_path) -> None:
    assert LOAD_SONGS.main(["--db", str(tmp_path / "catalog.sqlite")]) == 1


def test_rebuild_catalog_verifies_store(tmp_path, capsys) -> None:
    youtube, deezer = _write_payloads(tmp_path)
    db_path = str(tmp_path / "catalog.sqlite")
    LOAD_SONGS.main(["--youtube", str(youtube), "--deezer", str(deezer), "--db", db_path])
    capsys.readouterr()

    assert REBUILD_CATALOG.main(["--db", db_path]) == 0
    first = json.loads(capsys.readouterr().out)
    assert first["stats"]["reselectedGroups"] == 1
    assert first["verification"]["ok"] is True

    assert REBUILD_CATALOG.main(["--db", db_path, "--recompute"]) == 0
    assert SongRepository(db_path).count_canonical_selections() == 1
