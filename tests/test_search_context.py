from engine.search_context import build_search_context, get_search_tokens, has_specific_intent


def test_plain_query_has_no_intent() -> None:
    context = build_search_context("  Bohemian Rhapsody ")
    assert context.raw_query == "  Bohemian Rhapsody "
    assert context.normalized_query == "bohemian rhapsody"
    assert context.tokens == ("bohemian", "rhapsody")
    assert has_specific_intent(context) is False


def test_live_intent_from_multiword_pattern() -> None:
    context = build_search_context("Despacito en vivo")
    assert context.intent.wants_live is True
    assert context.intent.wants_remix is False
    assert get_search_tokens(context) == ["despacito"]


def test_each_intent_is_detected() -> None:
    assert build_search_context("song rmx").intent.wants_remix is True
    assert build_search_context("song karaoke").intent.wants_instrumental is True
    assert build_search_context("song performed by someone").intent.wants_cover is True
    assert build_search_context("song unplugged").intent.wants_live is True


def test_intent_tokens_are_removed_for_matching() -> None:
    context = build_search_context("Halo live cover")
    assert context.intent.wants_live is True
    assert context.intent.wants_cover is True
    assert get_search_tokens(context) == ["halo"]


def test_empty_query() -> None:
    context = build_search_context(None)
    assert context.tokens == ()
    assert context.to_dict()["intent"] == {
        "wantsLive": False,
        "wantsRemix": False,
        "wantsInstrumental": False,
        "wantsCover": False,
    }
