from __future__ import annotations

from db.song_repository import SongRepository
from metadata.authority import evaluate_source_authority
from metadata.identity import build_song_identity
from metadata.non_official import evaluate_non_official
from metadata.types import CanonicalSelection, Song


def _song(song_id: str, **overrides) -> Song:
    fields = {
        "id": song_id,
        "title": "Song",
        "artist_names": ("Artist", "Guest"),
        "duration": 250,
        "version_type": "original",
        "source": "youtube",
        "source_id": song_id,
        "metadata": {"channelTitle": "Artist - Topic"},
    }
    fields.update(overrides)
    return Song(**fields)


def _repository(tmp_path) -> SongRepository:
    repository = SongRepository(str(tmp_path / "catalog.sqlite"))
    repository.ensure_schema()
    return repository


def test_songs_round_trip(tmp_path) -> None:
    repository = _repository(tmp_path)
    song = _song("yt_1", album="Album", release_date="2020-01-01")

    assert repository.upsert_songs([song]) == 1

    loaded = repository.get_song_by_id("yt_1")
    assert loaded == song
    assert loaded.metadata["channelTitle"] == "Artist - Topic"
    assert repository.get_song_by_id("missing") is None
    assert repository.count_songs() == 1


def test_upsert_replaces_existing_rows(tmp_path) -> None:
    repository = _repository(tmp_path)
    repository.upsert_song(_song("yt_1"))
    repository.upsert_song(_song("yt_1", title="Renamed"))
    assert repository.count_songs() == 1
    assert repository.get_song_by_id("yt_1").title == "Renamed"


def test_get_songs_by_ids_preserves_order_and_skips_unknown(tmp_path) -> None:
    repository = _repository(tmp_path)
    repository.upsert_songs([_song("a"), _song("b"), _song("c")])

    songs = repository.get_songs_by_ids(["c", "missing", "a", "c"])

    assert [song.id for song in songs] == ["c", "a"]
    assert repository.get_songs_by_ids([]) == []


def test_song_pages_walk_the_store_in_id_order(tmp_path) -> None:
    repository = _repository(tmp_path)
    repository.upsert_songs([_song(f"s{index:02d}") for index in range(7)])

    pages = list(repository.iter_song_pages(3))

    assert [len(page) for page in pages] == [3, 3, 1]
    assert [song.id for page in pages for song in page] == [f"s{index:02d}" for index in range(7)]
    assert len(repository.get_all_songs()) == 7


def test_identity_and_authority_round_trip(tmp_path) -> None:
    repository = _repository(tmp_path)
    song = _song("yt_1", title="Song (Cover)")
    identity = build_song_identity(song)
    authority = evaluate_source_authority(song)
    non_official = evaluate_non_official(song)

    assert repository.persist_song(song, identity, authority, non_official) is True

    assert repository.get_identity("yt_1") == identity
    stored_authority, stored_flag = repository.get_authority("yt_1")
    assert stored_authority == authority
    assert stored_flag.is_non_official is True
    assert stored_flag.reason == "cover"
    assert repository.get_identities([_song("missing")]) == {}


def test_upsert_drops_derived_rows_of_the_previous_version(tmp_path) -> None:
    repository = _repository(tmp_path)
    song = _song("yt_1", title="Old Title")
    repository.persist_song(song, build_song_identity(song), evaluate_source_authority(song), evaluate_non_official(song))

    repository.upsert_song(_song("yt_1", title="Brand New Title"))

    assert repository.get_identity("yt_1") is None
    assert repository.get_authority("yt_1") is None


def test_whole_second_durations_load_as_ints(tmp_path) -> None:
    repository = _repository(tmp_path)
    repository.upsert_songs([_song("a", duration=248), _song("b", duration=212.5)])

    whole, fractional = repository.get_songs_by_ids(["a", "b"])

    assert type(whole.duration) is int
    assert whole.duration == 248
    assert fractional.duration == 212.5


def test_canonical_selection_round_trip(tmp_path) -> None:
    repository = _repository(tmp_path)
    songs = [_song("a"), _song("b"), _song("c")]
    repository.upsert_songs(songs)
    selection = CanonicalSelection(
        identity_key="song|artist|guest|original|250",
        canonical_song=songs[1],
        alternatives=(songs[0], songs[2]),
        canonical_authority=evaluate_source_authority(songs[1]),
    )

    repository.upsert_canonical_selection(selection)

    stored = repository.get_canonical_selection(selection.identity_key)
    assert stored.canonical_song_id == "b"
    assert stored.alternative_ids == ("a", "c")
    assert stored.canonical_authority_score == 80
    assert repository.count_canonical_selections() == 1
    assert [s.identity_key for page in repository.iter_canonical_selection_pages(10) for s in page] == [
        selection.identity_key
    ]


def test_writes_notify_listeners(tmp_path) -> None:
    repository = _repository(tmp_path)
    calls: list[str] = []
    repository.add_write_listener(lambda: calls.append("write"))

    repository.upsert_song(_song("a"))
    repository.upsert_songs([])

    assert calls == ["write"]


def test_failing_listener_does_not_break_writes(tmp_path) -> None:
    repository = _repository(tmp_path)

    def _boom() -> None:
        raise RuntimeError("listener failed")

    repository.add_write_listener(_boom)
    repository.upsert_song(_song("a"))
    assert repository.count_songs() == 1
