import copy

import pytest

from conftest import make_entry
from knowledge_selector import InvalidInput, match_message, select_best_match


# ── Concrete scenarios ───────────────────────────────────────────────────────

def test_exact_keyword_greeting():
    greeting = make_entry("greeting", ["hi", "hello"], priority=10, response="Greeting")
    result = select_best_match("hello", [greeting])
    assert result["entry"]["response"] == "Greeting"
    assert result["score"] == 100.0


def test_phrase_entry_not_starved_by_higher_priority_single_word():
    phrase = make_entry("comparison", ["product comparison"], priority=5)
    single = make_entry("product", ["product"], priority=8)

    result = select_best_match("how to compare products", [single, phrase])

    assert result["entry"]["category"] == "comparison"
    # 85 (all phrase words) + 3 multi-match + 10 priority + 5 specificity
    assert result["score"] == pytest.approx(103.0)


def test_permuted_phrase_selects_phrase_entry():
    phrase = make_entry("comparison", ["product comparison"], priority=5)
    single = make_entry("product", ["product"], priority=8)
    result = select_best_match("compare products", [single, phrase])
    assert result["entry"]["category"] == "comparison"
    assert result["score"] == 95.0


def test_empty_knowledge_set_is_no_match():
    assert select_best_match("anything", []) is None
    assert match_message("anything", []) == {"matched": False}


def test_bounded_phrase_from_split_keywords():
    goodbye = make_entry("goodbye", ["bye", "goodbye", "see you"])
    result = select_best_match("see you later", [goodbye])
    assert result["entry"] is goodbye
    assert result["score"] == 98.0


def test_typos_fall_back_to_fuzzy_match():
    events = make_entry("events", ["events"], priority=7)
    password = make_entry("password", ["password"], priority=5)

    result = select_best_match("pls tell me abot evnts", [password, events])

    assert result["entry"] is events
    # 65 fuzzy + 3 multi-match + 14 priority + 0.5 specificity
    assert result["score"] == pytest.approx(82.5)


# ── Properties ───────────────────────────────────────────────────────────────

@pytest.mark.parametrize("keyword", ["hi", "hello", "see you", "what's up", "c++", "product comparison"])
def test_every_keyword_selects_its_own_entry(keyword):
    entry = make_entry("mixed", ["hi", "hello", "see you", "what's up", "c++", "product comparison"])
    assert select_best_match(keyword, [entry])["entry"] is entry


def test_priority_breaks_equal_match_quality():
    low  = make_entry("low", ["fee"], priority=1)
    high = make_entry("high", ["fee"], priority=5)
    assert select_best_match("tell me about fees", [low, high])["entry"] is high


def test_priority_order_breaks_near_match_ties():
    low  = make_entry("low", ["help"], priority=1)
    high = make_entry("high", ["help"], priority=5)
    result = select_best_match("i need help", [low, high])
    assert result["entry"] is high
    assert result["score"] == 95.0


def test_unrelated_text_is_no_match():
    entries = [
        make_entry("greeting", ["hi", "hello"], priority=10),
        make_entry("events", ["events"], priority=7),
    ]
    assert select_best_match("qwxz vbnm", entries) is None


def test_repeated_calls_are_identical():
    entries = [
        make_entry("greeting", ["hi", "hello"], priority=10),
        make_entry("events", ["events", "upcoming events"], priority=7),
    ]
    first  = select_best_match("any upcoming evnts?", entries)
    second = select_best_match("any upcoming evnts?", entries)
    assert first == second


def test_case_and_whitespace_are_ignored():
    entry = make_entry("greeting", ["hello"])
    assert select_best_match("  HELLO  ", [entry])["score"] == 100.0


def test_entries_are_not_mutated():
    entries = [
        make_entry("greeting", ["Hi", " Hello "], priority=10),
        make_entry("events", ["events"], priority=7),
    ]
    snapshot = copy.deepcopy(entries)
    select_best_match("hello events", entries)
    assert entries == snapshot


# ── Scoring buckets ──────────────────────────────────────────────────────────

def test_near_match_boost_competes_with_priority():
    phrase = make_entry("smart_decision", ["smart decision"], priority=0)
    single = make_entry("speed", ["quick"], priority=10)

    result = select_best_match("smart quick decision", [phrase, single])

    # 92 + 5 beats 90 + 5; priority is not added above 90
    assert result["entry"] is phrase
    assert result["score"] == pytest.approx(97.0)


def test_general_bucket_blends_keyword_scores():
    entry = make_entry("payments", ["fee", "payment"], priority=2)
    result = select_best_match("fees and payments due", [entry])
    # 0.7 * 65 + 0.3 * mean(65, 46) + 6 multi-match + 4 priority
    assert result["score"] == pytest.approx(72.15)


def test_literal_trigger_beats_higher_priority_phrase():
    gps     = make_entry("gps_info", ["what is gps"], priority=9)
    mission = make_entry("mission", ["what is gps mission"], priority=7)

    assert select_best_match("what is gps mission", [gps, mission])["entry"] is mission
    assert select_best_match("what is gps for", [gps, mission])["entry"] is gps


def test_prefix_sharing_phrase_does_not_short_circuit():
    greeting = make_entry("greeting", ["hi", "good evening"], priority=10)
    events   = make_entry("events", ["event", "events"], priority=7)

    result = select_best_match("good event", [greeting, events])

    # greeting: 70 partial + 3 multi-match + 20 priority + 1 specificity = 94
    assert result["entry"] is events
    assert result["score"] == pytest.approx(95.0)


def test_longer_word_does_not_stand_in_for_phrase_word():
    decision = make_entry("smart_decision", ["smart decision"], priority=6)
    phone    = make_entry("phones", ["smartphone"], priority=2)

    result = select_best_match("smartphone decisions", [decision, phone])

    assert result["entry"] is phone
    assert result["score"] == pytest.approx(95.0)


def test_specificity_uses_every_entry_keyword():
    entry = make_entry("fees", ["fee", "extraordinary"])
    # 46 + 3 multi-match + 0.5 * ((3 + 13) / 2 - 5)
    assert select_best_match("tell me about fees", [entry])["score"] == pytest.approx(50.5)


def test_negative_priority_lowers_score():
    entry = make_entry("fees", ["fee"], priority=-3)
    result = select_best_match("tell me about fees", [entry])
    assert result["score"] == pytest.approx(43.0)


# ── Edge cases ───────────────────────────────────────────────────────────────

def test_inactive_entries_are_ignored():
    entry = make_entry("greeting", ["hello"], is_active=False)
    assert select_best_match("hello", [entry]) is None


def test_entries_without_keywords_are_skipped():
    empty = make_entry("empty", ["", "   "], priority=20)
    hello = make_entry("greeting", ["hello"])
    assert select_best_match("hello there", [empty, hello])["entry"] is hello


@pytest.mark.parametrize("message", ["", "   ", "\n\t", None])
def test_blank_message_is_invalid(message):
    with pytest.raises(InvalidInput):
        select_best_match(message, [make_entry("greeting", ["hello"])])


def test_match_message_contract():
    entry = make_entry("greeting", ["hello"])
    result = match_message("hello", [entry])
    assert result["matched"] is True
    assert result["entry"] is entry
    assert result["score"] == 100.0
