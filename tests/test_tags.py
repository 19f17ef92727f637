from brutus.core.analysis.tags import CALL_TAG_KEYWORDS, detect_call_tags


def test_price_objection_is_not_pricing():
    tags = detect_call_tags("Is this too expensive for you?")

    assert "objection-handling" in tags
    assert "pricing" not in tags


def test_discovery_question():
    assert detect_call_tags("Tell me about your current process") == frozenset({"discovery"})


def test_matching_is_case_insensitive_and_multi_tag():
    tags = detect_call_tags(
        "Just FOLLOWING UP on the proposal. What's the budget, and can we talk next steps?"
    )

    assert tags == frozenset({"follow-up", "pricing", "closing"})


def test_no_keywords_no_tags():
    assert detect_call_tags("hello there") == frozenset()
    assert detect_call_tags("") == frozenset()


def test_every_keyword_maps_to_its_tag():
    for tag, keywords in CALL_TAG_KEYWORDS.items():
        for keyword in keywords:
            assert tag in detect_call_tags(f"... {keyword.upper()} ...")
