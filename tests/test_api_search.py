from __future__ import annotations

import importlib
import sys

import pytest

fastapi = pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

from metadata.types import Song


def _song(song_id: str, title: str = "Song", **overrides) -> Song:
    fields = {
        "id": song_id,
        "title": title,
        "artist_names": ("Artist",),
        "duration": 250,
        "version_type": "original",
        "source": "deezer",
        "source_id": song_id,
        "metadata": {},
    }
    fields.update(overrides)
    return Song(**fields)


SONGS = [
    _song("dz_1"),
    _song("yt_1", source="youtube", duration=252),
    _song("dz_2", "Songbird", artist_names=("Fleetwood Mac",)),
]


def _build_client(tmp_path):
    sys.modules.pop("api.main", None)
    module = importlib.import_module("api.main")
    module.app.router.on_startup.clear()
    module.app.router.on_shutdown.clear()
    services = module.build_services(db_path=str(tmp_path / "catalog.sqlite"), redis_url="", meili_host="")
    services.repository.upsert_songs(SONGS)
    services.catalog_state.rehydrate(services.repository)
    module.app.state.services = services
    return TestClient(module.app), services


def test_search_returns_grouped_results(tmp_path) -> None:
    client, _ = _build_client(tmp_path)

    response = client.get("/api/search", params={"q": "Song"})

    assert response.status_code == 200
    assert response.headers["cache-control"] == "public, max-age=30"
    payload = response.json()
    assert payload["totalGroups"] == 2
    assert payload["results"][0]["canonical"]["song"]["id"] == "dz_1"
    assert payload["meta"]["candidateSource"] == "memory"


def test_search_second_call_is_cached(tmp_path) -> None:
    client, _ = _build_client(tmp_path)
    client.get("/api/search", params={"q": "Song"})

    payload = client.get("/api/search", params={"q": "song"}).json()

    assert payload["meta"]["cached"] is True
    assert payload["meta"]["cacheSource"] == "memory"


def test_search_debug_and_flat_params(tmp_path) -> None:
    client, _ = _build_client(tmp_path)

    response = client.get("/api/search", params={"q": "Song", "grouped": "false", "debug": "1", "limit": "1"})

    assert response.headers["cache-control"] == "no-store"
    payload = response.json()
    assert payload["totalResults"] == 3
    assert len(payload["results"]) == 1
    assert "breakdown" in payload["results"][0]
    assert payload["debug"]["candidateCount"] == 3


@pytest.mark.parametrize(("query", "error"), [("", "Query is required"), ("a", "Query must be at least 2 characters")])
def test_search_rejects_short_queries(tmp_path, query, error) -> None:
    client, _ = _build_client(tmp_path)

    response = client.get("/api/search", params={"q": query})

    assert response.status_code == 400
    assert response.json() == {"error": error, "query": query}


def test_search_internal_error_is_hidden(tmp_path, monkeypatch) -> None:
    client, services = _build_client(tmp_path)

    def _boom(query, options):
        raise RuntimeError("database is on fire")

    monkeypatch.setattr(services.search_service, "search", _boom)
    response = client.get("/api/search", params={"q": "Song"})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}


def test_suggestions(tmp_path) -> None:
    client, _ = _build_client(tmp_path)

    titles = client.get("/api/suggestions", params={"q": "son"}).json()
    artists = client.get("/api/suggestions", params={"q": "fle", "type": "artist"}).json()

    assert titles == {"query": "son", "type": "title", "suggestions": ["Song", "Songbird"]}
    assert artists["suggestions"] == ["Fleetwood Mac"]


def test_canonical_lookup(tmp_path) -> None:
    client, _ = _build_client(tmp_path)

    response = client.get("/api/canonical/song|artist|original|250")
    missing = client.get("/api/canonical/nothing|here|original|0")

    assert response.status_code == 200
    assert response.json()["canonicalSong"]["id"] == "dz_1"
    assert missing.status_code == 404


def test_status_reports_catalog_and_cache(tmp_path) -> None:
    client, _ = _build_client(tmp_path)

    payload = client.get("/api/status").json()

    assert payload["catalog"]["songs"] == 3
    assert set(payload["cache"]) == {"memory"}
    assert payload["index"] == {"configured": False, "available": False}
    assert "python_version" in payload["runtime"]


def test_admin_requires_configured_token(tmp_path, monkeypatch) -> None:
    client, _ = _build_client(tmp_path)
    monkeypatch.delenv("TUNECANON_ADMIN_TOKEN", raising=False)

    assert client.post("/api/admin/rebuild-index").status_code == 503

    monkeypatch.setenv("TUNECANON_ADMIN_TOKEN", "letmein")
    assert client.post("/api/admin/rebuild-index").status_code == 401
    assert client.post("/api/admin/rebuild-index", headers={"X-Admin-Token": "nope"}).status_code == 401


def test_admin_stats_and_rehydrate(tmp_path, monkeypatch) -> None:
    client, _ = _build_client(tmp_path)
    monkeypatch.setenv("TUNECANON_ADMIN_TOKEN", "letmein")
    headers = {"X-Admin-Token": "letmein"}

    stats = client.post("/api/admin/rebuild-index", headers=headers).json()
    rehydrate = client.post("/api/admin/rebuild-index", headers=headers, json={"mode": "rehydrate"}).json()
    reindex = client.post("/api/admin/rebuild-index", headers=headers, json={"mode": "reindex"})

    assert stats["status"] == "ok"
    assert stats["database"] == {"total_songs": 3}
    assert stats["index"] == {"enabled": False, "stats": None}
    assert rehydrate["status"] == "success"
    assert rehydrate["verification"]["ok"] is True
    assert reindex.status_code == 503
