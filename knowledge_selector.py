"""
knowledge_selector.py
=====================
Picks the single best knowledge entry for a chatbot message.

Public API
----------
select_best_match(message, entries) -> {"entry": dict, "score": float} | None
match_message(message, entries)     -> {"matched": True, "entry", "score"}
                                       | {"matched": False}

Pipeline
--------
1. Exact-trigger pass: an entry whose keyword the user typed verbatim wins
   outright; failing that, the first entry (in priority order) with a keyword
   phrase contained bounded in the message, or typed as a permutation, wins.
2. Scored pass: every keyword of every entry goes through
   keyword_scorer.score_keyword.  Per entry:
     best >= 95   near-perfect, used as-is (100 returns immediately)
     best >= 90   best + 5
     otherwise    0.7 * best + 0.3 * mean(top 3)   (if several keywords hit)
                  + min(15, 3 * hits) + min(20, 2 * priority)
                  + min(5, 0.5 * (avg length - 5))  when the mean length of
                    all the entry's keywords exceeds 5
3. Any near-perfect entry beats the general bucket; otherwise the best
   general score must exceed MATCH_THRESHOLD.

Entries are never mutated.  Negative priorities are accepted and simply
lower the boost.
"""

import logging
from typing import Optional

from keyword_scorer import EXACT_SCORE, exact_trigger_score, score_keyword
from text_normalizer import normalize

logger = logging.getLogger(__name__)

PERFECT_MATCH_SCORE = 95.0
NEAR_MATCH_SCORE    = 90.0
NEAR_MATCH_BOOST    = 5.0

BEST_WEIGHT = 0.7
TOP_WEIGHT  = 0.3
TOP_N       = 3

MULTI_MATCH_STEP = 3
MULTI_MATCH_CAP  = 15
PRIORITY_STEP    = 2
PRIORITY_CAP     = 20
SPECIFICITY_BASE = 5
SPECIFICITY_STEP = 0.5
SPECIFICITY_CAP  = 5

MATCH_THRESHOLD = 25.0


class InvalidInput(ValueError):
    """The chatbot message is empty or whitespace-only."""


# --------------------------------------------------------------------------- #
#  Entry helpers                                                               #
# --------------------------------------------------------------------------- #

def _entry_keywords(entry: dict) -> list:
    """Lower-cased, non-blank keywords of *entry*."""
    keywords = entry.get("keywords") or []
    if isinstance(keywords, str):
        keywords = keywords.split(",")
    return [k.strip().lower() for k in keywords if isinstance(k, str) and k.strip()]


def _priority(entry: dict) -> int:
    try:
        return int(entry.get("priority") or 0)
    except (TypeError, ValueError):
        return 0


def _active_in_priority_order(entries) -> list:
    """Active entries, highest priority first; equal priorities keep caller order."""
    active = [e for e in (entries or []) if e.get("is_active", True)]
    return sorted(active, key=lambda e: -_priority(e))


def _general_score(matched: list, priority: int, keywords: list) -> float:
    """Blend, bonus and boost for an entry whose best keyword scored < 90."""
    scores = sorted((s for _, s in matched), reverse=True)
    best   = scores[0]

    if len(scores) > 1:
        top = scores[:TOP_N]
        combined = BEST_WEIGHT * best + TOP_WEIGHT * (sum(top) / len(top))
    else:
        combined = best

    multi_bonus    = min(MULTI_MATCH_CAP, MULTI_MATCH_STEP * len(scores))
    priority_boost = min(PRIORITY_CAP, PRIORITY_STEP * priority)

    avg_length = sum(len(kw) for kw in keywords) / len(keywords)
    specificity = 0.0
    if avg_length > SPECIFICITY_BASE:
        specificity = min(SPECIFICITY_CAP, SPECIFICITY_STEP * (avg_length - SPECIFICITY_BASE))

    return combined + multi_bonus + priority_boost + specificity


# --------------------------------------------------------------------------- #
#  Public API                                                                  #
# --------------------------------------------------------------------------- #

def select_best_match(message: str, entries: list) -> Optional[dict]:
    """
    Return ``{"entry": entry, "score": score}`` for the best entry, or None.

    Parameters
    ----------
    message : str
        Raw user message.  Must contain something other than whitespace.
    entries : list[dict]
        Knowledge snapshot, ideally ordered priority DESC then category.
        Inactive entries are ignored.

    Raises
    ------
    InvalidInput
        If *message* is empty or whitespace-only.
    """
    if not message or not message.strip():
        raise InvalidInput("Message required")

    normalized = normalize(message)
    lower, words = normalized["lower"], normalized["words"]

    candidates = _active_in_priority_order(entries)
    if not candidates:
        return None

    # ── Pass 1: user typed a trigger ────────────────────────────────────────
    # A literal trigger wins anywhere; otherwise the first contained phrase
    trigger: Optional[dict] = None
    for entry in candidates:
        for keyword in _entry_keywords(entry):
            score = exact_trigger_score(lower, keyword, words)
            if score >= EXACT_SCORE:
                logger.debug("exact trigger %r -> %s", keyword, entry.get("category"))
                return {"entry": entry, "score": score}
            if score and trigger is None:
                trigger = {"entry": entry, "score": score}
    if trigger is not None:
        logger.debug("phrase trigger -> %s (%.1f)", trigger["entry"].get("category"), trigger["score"])
        return trigger

    # ── Pass 2: scored cascade ───────────────────────────────────────────────
    perfect: Optional[dict] = None
    best:    Optional[dict] = None

    for entry in candidates:
        keywords = _entry_keywords(entry)
        if not keywords:
            continue

        matched = []
        for keyword in keywords:
            score = score_keyword(lower, keyword, words)
            if score > 0:
                matched.append((keyword, score))
        if not matched:
            continue

        top = max(s for _, s in matched)

        if top >= PERFECT_MATCH_SCORE:
            if top >= EXACT_SCORE:
                return {"entry": entry, "score": top}
            if perfect is None or top > perfect["score"]:
                perfect = {"entry": entry, "score": top}
            continue

        if top >= NEAR_MATCH_SCORE:
            final = top + NEAR_MATCH_BOOST
        else:
            final = _general_score(matched, _priority(entry), keywords)

        if best is None or final > best["score"]:
            best = {"entry": entry, "score": final}

    if perfect is not None:
        logger.debug("near-perfect match -> %s (%.1f)", perfect["entry"].get("category"), perfect["score"])
        return perfect

    if best is not None and best["score"] > MATCH_THRESHOLD:
        logger.debug("scored match -> %s (%.1f)", best["entry"].get("category"), best["score"])
        return best

    return None


def match_message(message: str, entries: list) -> dict:
    """
    Boundary contract for the response composer.

    Returns ``{"matched": True, "entry": ..., "score": ...}`` or
    ``{"matched": False}``.  Raises InvalidInput for blank messages.
    """
    result = select_best_match(message, entries)
    if result is None:
        return {"matched": False}
    return {"matched": True, "entry": result["entry"], "score": result["score"]}
