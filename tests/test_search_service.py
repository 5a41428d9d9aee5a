from __future__ import annotations

import json
import logging
from dataclasses import replace

import pytest

import engine.search_service as search_service_module
from app.search_cache import MemorySearchCache, TieredSearchCache
from db.song_repository import SongRepository
from engine.catalog import CatalogState
from engine.ranking import RankedResult
from engine.search_context import build_search_context
from engine.search_scoring import compute_final_score
from engine.search_service import (
    SearchOptions,
    SearchService,
    generate_cache_key,
    normalize_options,
    validate_query,
)
from metadata.identity import build_song_identity
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


def _catalog() -> list[Song]:
    return [
        _song("dz_1"),
        _song("yt_1", source="youtube", duration=252),
        _song("dz_live", version_type="live"),
        _song("dz_other", "Another Tune"),
    ]


def _state(songs=None) -> CatalogState:
    state = CatalogState()
    state.rebuild_identities_and_authority(songs if songs is not None else _catalog())
    return state


def _service(state=None, **kwargs) -> SearchService:
    cache = kwargs.pop("cache", TieredSearchCache([MemorySearchCache()]))
    return SearchService(state or _state(), cache=cache, **kwargs)


class FakeRetriever:
    name = "index"

    def __init__(self, ids, available=True, error=None):
        self.ids = ids
        self.available = available
        self.error = error
        self.calls = 0

    def is_available(self):
        return self.available

    def get_candidate_song_ids(self, context, limit):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.ids)


def test_validate_query() -> None:
    assert validate_query(None).error == "Query is required"
    assert validate_query(123).valid is False
    assert validate_query(" a ").error == "Query must be at least 2 characters"
    assert validate_query("ab").valid is True


def test_normalize_options_clamps_values() -> None:
    assert normalize_options(None) == SearchOptions(limit=20, offset=0, grouped=True, debug=False)
    assert normalize_options({"limit": 500, "offset": -4}).limit == 50
    assert normalize_options({"limit": 0}).limit == 20
    assert normalize_options({"limit": -3}).limit == 1
    assert normalize_options({"offset": -4}).offset == 0
    assert normalize_options({"grouped": False, "debug": "yes"}) == SearchOptions(grouped=False, debug=False)
    assert normalize_options(SearchOptions(limit=5)).limit == 5


def test_cache_key_is_normalized_query_plus_options() -> None:
    key = generate_cache_key("  Hello,   World! ", normalize_options({}))
    assert key == 'hello world:{"limit":20,"offset":0,"grouped":true,"debug":false}'


def test_invalid_query_returns_error_payload() -> None:
    result = _service().search("a")
    assert result["error"] == "Query must be at least 2 characters"
    assert result["totalResults"] == 0
    assert result["results"] == []
    assert result["meta"]["cached"] is False


def test_grouped_search_response_shape(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        result = _service().search("Song")

    assert result["query"] == "Song"
    assert result["totalGroups"] == 3
    assert result["totalSongs"] == 4
    first = result["results"][0]
    assert first["identityKey"] == "song|artist|original|250"
    assert first["canonical"]["song"]["id"] == "dz_1"
    assert [item["song"]["id"] for item in first["alternatives"]] == ["yt_1"]
    meta = result["meta"]
    assert meta["cached"] is False
    assert meta["candidateSource"] == "memory"
    assert meta["pagination"] == {"limit": 20, "offset": 0, "appliesTo": "groups"}
    assert "debug" not in result
    assert "[DEGRADED MODE]" in caplog.text


def test_flat_search_response_shape() -> None:
    result = _service().search("Song", {"grouped": False, "limit": 2, "offset": 1})

    assert result["totalResults"] == 4
    assert [item["rank"] for item in result["results"]] == [2, 3]
    assert result["meta"]["pagination"]["appliesTo"] == "songs"


def test_second_search_is_served_from_cache() -> None:
    service = _service()
    first = service.search("Song")
    second = service.search("song")

    assert first["meta"]["cached"] is False
    assert second["meta"]["cached"] is True
    assert second["meta"]["cacheSource"] == "memory"
    assert second["results"] == first["results"]


def test_cached_value_is_isolated_from_caller_mutation() -> None:
    service = _service()
    first = service.search("Song")
    first["results"].clear()

    assert service.search("Song")["results"] != []


def test_debug_search_bypasses_cache() -> None:
    service = _service()
    debug = service.search("Song live", {"debug": True})
    assert debug["debug"]["intent"]["wantsLive"] is True
    assert debug["debug"]["tokens"] == ["song", "live"]
    assert debug["debug"]["candidateCount"] == 4
    assert debug["results"][0]["canonical"]["breakdown"]["intentDetails"]["liveAdjustment"] == 20

    assert service.search("Song live", {"debug": True})["meta"]["cached"] is False
    assert service.search("Song live")["meta"]["cached"] is False


def test_catalog_swap_invalidates_cache() -> None:
    state = _state()
    service = _service(state)
    service.search("Song")

    state.rebuild_identities_and_authority(_catalog()[:1])

    result = service.search("Song")
    assert result["meta"]["cached"] is False
    assert result["totalSongs"] == 1


def test_repository_write_invalidates_cache(tmp_path) -> None:
    repository = SongRepository(str(tmp_path / "catalog.sqlite"))
    repository.ensure_schema()
    service = _service(repository=repository)
    service.search("Song")

    repository.upsert_song(_song("dz_new", "Brand New"))

    assert service.search("Song")["meta"]["cached"] is False


def test_index_candidates_are_used_when_available(tmp_path) -> None:
    repository = SongRepository(str(tmp_path / "catalog.sqlite"))
    repository.ensure_schema()
    repository.upsert_songs(_catalog())
    retriever = FakeRetriever(["dz_live", "missing"])
    service = _service(repository=repository, retriever=retriever)

    result = service.search("Song live", {"grouped": False})

    assert retriever.calls == 1
    assert result["meta"]["candidateSource"] == "index"
    assert [item["song"]["id"] for item in result["results"]] == ["dz_live"]


@pytest.mark.parametrize(
    "retriever",
    [
        FakeRetriever(["dz_1"], available=False),
        FakeRetriever([], available=True),
        FakeRetriever(["dz_1"], error=RuntimeError("index down")),
    ],
)
def test_falls_back_to_memory_scan(tmp_path, caplog, retriever) -> None:
    repository = SongRepository(str(tmp_path / "catalog.sqlite"))
    repository.ensure_schema()
    repository.upsert_songs(_catalog())
    service = _service(repository=repository, retriever=retriever)

    with caplog.at_level(logging.WARNING):
        result = service.search("Song")

    assert result["meta"]["candidateSource"] == "memory"
    assert result["totalSongs"] == 4
    assert "[DEGRADED MODE]" in caplog.text


class SwappingRetriever(FakeRetriever):
    """Rebuilds the catalog while candidates are being fetched."""

    def __init__(self, ids, state, rebuilt_songs):
        super().__init__(ids)
        self.state = state
        self.rebuilt_songs = rebuilt_songs

    def get_candidate_song_ids(self, context, limit):
        self.state.rebuild_identities_and_authority(self.rebuilt_songs)
        return super().get_candidate_song_ids(context, limit)


def test_catalog_swap_during_search_ranks_against_one_build(tmp_path) -> None:
    songs = [_song("dz_1", duration=250), _song("dz_2", duration=400)]
    repository = SongRepository(str(tmp_path / "catalog.sqlite"))
    repository.ensure_schema()
    repository.upsert_songs(songs)
    state = _state(songs)
    retriever = SwappingRetriever(["dz_1", "dz_2"], state, songs[1:])
    service = _service(state, repository=repository, retriever=retriever, cache=None)

    result = service.search("song", {"grouped": False, "debug": True})

    assert retriever.calls == 1
    assert state.snapshot.get_identity("dz_1") is None
    by_id = {item["song"]["id"]: item for item in result["results"]}
    assert by_id["dz_1"]["isCanonical"] is True
    assert by_id["dz_2"]["isCanonical"] is True


def test_index_and_memory_paths_serialize_identically(tmp_path) -> None:
    songs = [_song("dz_1", duration=248), _song("yt_1", source="youtube", duration=252)]
    repository = SongRepository(str(tmp_path / "catalog.sqlite"))
    repository.ensure_schema()
    repository.upsert_songs(songs)
    state = _state(songs)

    memory = _service(state, cache=None).search("song")
    index = _service(state, repository=repository, retriever=FakeRetriever(["dz_1", "yt_1"]), cache=None).search("song")

    assert memory["meta"]["candidateSource"] == "memory"
    assert index["meta"]["candidateSource"] == "index"
    assert index["results"][0]["canonical"]["song"]["duration"] == 248
    assert json.dumps(memory["results"]) == json.dumps(index["results"])


def _ranked(song: Song, score: float, *, canonical: bool = True) -> RankedResult:
    context = build_search_context("song")
    identity = build_song_identity(song)
    breakdown = compute_final_score(song, identity, None, context)
    return RankedResult(
        song=song,
        identity=identity,
        final_score=score,
        breakdown=breakdown,
        is_canonical=canonical,
        is_non_official=False,
    )


def test_pagination_applies_to_groups(monkeypatch) -> None:
    ranked = [
        _ranked(_song("a", "Alpha"), 90),
        _ranked(_song("b", "Beta"), 70),
        _ranked(_song("b2", "Beta", source="youtube"), 65, canonical=False),
        _ranked(_song("c", "Gamma"), 50),
    ]
    ranked = [replace(result, rank=index) for index, result in enumerate(ranked, start=1)]
    monkeypatch.setattr(search_service_module, "rank_results", lambda songs, context, snapshot: ranked)

    result = _service(cache=None).search("anything", {"limit": 2})

    assert result["totalGroups"] == 3
    assert result["totalSongs"] == 4
    assert [group["canonical"]["score"] for group in result["results"]] == [90, 70]
    assert [item["song"]["id"] for item in result["results"][1]["alternatives"]] == ["b2"]
    assert result["meta"]["pagination"] == {"limit": 2, "offset": 0, "appliesTo": "groups"}

    second_page = _service(cache=None).search("anything", {"limit": 2, "offset": 2})
    assert [group["canonical"]["song"]["id"] for group in second_page["results"]] == ["c"]


def test_service_without_cache_still_searches() -> None:
    service = SearchService(_state())
    assert service.invalidate_cache() == {}
    assert service.cache_stats() is None
    assert service.search("Song")["meta"]["cached"] is False
