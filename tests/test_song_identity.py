from __future__ import annotations

import dataclasses

import pytest

from metadata.errors import InputError
from metadata.identity import (
    build_identity_key,
    build_song_identity,
    calculate_duration_bucket,
    round_half_up,
)
from metadata.types import Song


def _song(**overrides) -> Song:
    fields = {
        "id": "dz_1",
        "title": "Song",
        "artist_names": ("Artist",),
        "duration": 250,
        "version_type": "original",
        "source": "deezer",
        "source_id": "1",
    }
    fields.update(overrides)
    return Song(**fields)


def test_duration_bucket_tolerates_small_differences() -> None:
    assert calculate_duration_bucket(248) == 250
    assert calculate_duration_bucket(252) == 250
    assert calculate_duration_bucket(247.5) == 250
    assert calculate_duration_bucket(247.4) == 245


def test_duration_bucket_is_zero_for_missing_durations() -> None:
    assert calculate_duration_bucket(None) == 0
    assert calculate_duration_bucket(0) == 0
    assert calculate_duration_bucket(-10) == 0


def test_round_half_up_rounds_halves_upward() -> None:
    assert round_half_up(2.5) == 3
    assert round_half_up(12.5) == 13
    assert round_half_up(0.25, 1) == pytest.approx(0.3)
    assert round_half_up(-13.5, 1) == pytest.approx(-13.5)


def test_identity_key_is_invariant_under_artist_order() -> None:
    first = build_song_identity(_song(artist_names=("Beta", "Alpha")))
    second = build_song_identity(_song(artist_names=("Alpha", "Beta")))
    assert first.identity_key == second.identity_key
    assert first.identity_key == "song|alpha|beta|original|250"


def test_build_identity_key_format() -> None:
    assert build_identity_key("halo", ["beyonce"], "live", 265) == "halo|beyonce|live|265"


def test_identity_strips_noise_and_geography_but_keeps_version() -> None:
    identity = build_song_identity(
        _song(title="Halo (Live at Wembley) (Official Video)", artist_names=("Beyoncé",), version_type="live")
    )
    assert identity.title_clean == "Halo (Live at Wembley)"
    assert identity.title_identity == "Halo"
    assert identity.title_normalized == "halo"
    assert identity.artist_normalized == ("beyonce",)
    assert identity.identity_key == "halo|beyonce|live|250"


def test_versions_never_share_a_key() -> None:
    original = build_song_identity(_song())
    remix = build_song_identity(_song(id="dz_2", version_type="remix"))
    assert original.identity_key != remix.identity_key


def test_missing_artists_fall_back_to_unknown() -> None:
    identity = build_song_identity(_song(artist_names=()))
    assert identity.artist_normalized == ("unknown",)


def test_identity_is_pure_and_frozen() -> None:
    song = _song()
    first = build_song_identity(song)
    assert build_song_identity(song) == first
    with pytest.raises(dataclasses.FrozenInstanceError):
        first.identity_key = "other"  # type: ignore[misc]


def test_identity_requires_song_id() -> None:
    with pytest.raises(InputError):
        build_song_identity(_song(id=""))
    with pytest.raises(InputError):
        build_song_identity(None)  # type: ignore[arg-type]
