"""
keyword_scorer.py
=================
Scores how well one knowledge keyword matches a user message.

score_keyword(message, keyword) -> float in [0, 100]   (0 = no match)

Both arguments are expected lower-cased and trimmed (text_normalizer output).
The first applicable strategy wins; scores are never summed across strategies.

Phrase keywords (2+ words)
--------------------------
  100  message equals the phrase (whitespace collapsed)
   98  phrase appears in the message bounded by start/end or whitespace
   99  message words == phrase words, same order
   95  message words are a permutation of the phrase words
   92  phrase words appear in order, each within 2 tokens of the previous one
   85  all phrase words appear somewhere
   60-80  some phrase words appear      60 + 20 * matched / total
   0-50   some words only overlap as substrings   50 * similar / total

Single-word keywords
--------------------
   90  word-boundary regex hit
   85  present in the token list
   80  message starts with "kw " / "kw,"
   75  message ends with " kw" / ",kw"
   70  " kw " / ",kw," etc. inside the message
  <=65 fuzzy: best Levenshtein similarity >= 80% against a token (len >= 3)
  <=60 keyword is a substring of a token
  <=55 a token (len >= 3) is a substring of the keyword
  <=50 keyword is a substring of the raw message

The 99 sequence check and the 60-80 partial count compare words literally.
The permutation, near-order and all-words checks also accept inflections of
the same stem ("products" / "product", "compare" / "comparison"): one suffix
from a short list (s, es, ed, ing, ies, ison, ation) is stripped, then a
trailing "e", keeping at least 4 characters.  "smart" / "smartphone" and
"event" / "evening" stay different words.
"""

import re
from functools import lru_cache

from edit_distance import similarity
from text_normalizer import collapse_whitespace, tokenize

# ── Score bands ──────────────────────────────────────────────────────────────
EXACT_SCORE              = 100.0
PHRASE_SEQUENCE_SCORE    = 99.0
PHRASE_BOUNDED_SCORE     = 98.0
PHRASE_PERMUTATION_SCORE = 95.0
PHRASE_NEAR_ORDER_SCORE  = 92.0
PHRASE_ALL_WORDS_SCORE   = 85.0
PHRASE_PARTIAL_BASE      = 60.0
PHRASE_PARTIAL_RANGE     = 20.0
PHRASE_SIMILAR_RANGE     = 50.0

WORD_BOUNDARY_SCORE = 90.0
WORD_TOKEN_SCORE    = 85.0
WORD_PREFIX_SCORE   = 80.0
WORD_SUFFIX_SCORE   = 75.0
WORD_INFIX_SCORE    = 70.0
FUZZY_CAP           = 65.0
IN_TOKEN_CAP        = 60.0
TOKEN_IN_KEYWORD_CAP = 55.0
RAW_SUBSTRING_CAP   = 50.0

# ── Tuning ───────────────────────────────────────────────────────────────────
FUZZY_MIN_SIMILARITY = 80.0
FUZZY_WEIGHT         = 0.8
MIN_FUZZY_LENGTH     = 3
NEAR_ORDER_MAX_GAP   = 2

# Checked in order; at most one is stripped per word
_SUFFIXES = ("ations", "ation", "isons", "ison", "ings", "ing", "ies", "es", "ed", "s")
_MIN_STEM = 4

_SEPARATORS = (" ", ",")


# --------------------------------------------------------------------------- #
#  Word / phrase helpers                                                       #
# --------------------------------------------------------------------------- #

def _stem(word: str) -> str:
    """
    Rule-based stem: strip one inflectional suffix, then a trailing "e".
    Stems never drop below _MIN_STEM characters.
    """
    for suffix in _SUFFIXES:
        if word.endswith(suffix) and len(word) - len(suffix) >= _MIN_STEM:
            # "class", "status" are not plurals
            if suffix == "s" and word.endswith(("ss", "us")):
                break
            word = word[:-len(suffix)] + ("y" if suffix == "ies" else "")
            break
    if word.endswith("e") and len(word) > _MIN_STEM:
        word = word[:-1]
    return word


def _same_word(a: str, b: str) -> bool:
    """Equal, or inflections of one stem ("events" / "event", "compare" / "comparison")."""
    return a == b or _stem(a) == _stem(b)


def _overlaps(a: str, b: str) -> bool:
    """One word contains the other (contained part at least 3 chars)."""
    if len(a) >= len(b):
        return len(b) >= MIN_FUZZY_LENGTH and b in a
    return len(a) >= MIN_FUZZY_LENGTH and a in b


def _bounded_phrase(message: str, phrase: str) -> bool:
    """Phrase occurs in *message* with start/end or whitespace on both sides."""
    return _phrase_pattern(phrase).search(message) is not None


@lru_cache(maxsize=1024)
def _phrase_pattern(phrase: str):
    return re.compile(r"(?:^|(?<=\s))" + re.escape(phrase) + r"(?=\s|$)")


@lru_cache(maxsize=1024)
def _word_pattern(keyword: str):
    return re.compile(r"\b" + re.escape(keyword) + r"\b")


def _same_sequence(words: list, phrase_words: list) -> bool:
    return words == phrase_words


def _same_multiset(words: list, phrase_words: list) -> bool:
    if len(words) != len(phrase_words):
        return False
    remaining = list(words)
    for target in phrase_words:
        for idx, candidate in enumerate(remaining):
            if _same_word(candidate, target):
                del remaining[idx]
                break
        else:
            return False
    return True


def _near_ordered(words: list, phrase_words: list) -> bool:
    """Phrase words appear in order, each within NEAR_ORDER_MAX_GAP tokens."""
    starts = [i for i, w in enumerate(words) if _same_word(w, phrase_words[0])]
    for start in starts:
        prev = start
        for target in phrase_words[1:]:
            window = range(prev + 1, min(prev + 1 + NEAR_ORDER_MAX_GAP, len(words)))
            nxt = next((j for j in window if _same_word(words[j], target)), None)
            if nxt is None:
                break
            prev = nxt
        else:
            return True
    return False


# --------------------------------------------------------------------------- #
#  Cascades                                                                    #
# --------------------------------------------------------------------------- #

def _score_phrase(message: str, words: list, phrase: str, phrase_words: list) -> float:
    flat_message = collapse_whitespace(message)
    flat_phrase  = collapse_whitespace(phrase)

    if flat_message == flat_phrase:
        return EXACT_SCORE
    if _bounded_phrase(flat_message, flat_phrase):
        return PHRASE_BOUNDED_SCORE
    if _same_sequence(words, phrase_words):
        return PHRASE_SEQUENCE_SCORE
    if _same_multiset(words, phrase_words):
        return PHRASE_PERMUTATION_SCORE
    if _near_ordered(words, phrase_words):
        return PHRASE_NEAR_ORDER_SCORE

    if all(any(_same_word(w, p) for w in words) for p in phrase_words):
        return PHRASE_ALL_WORDS_SCORE

    total = len(phrase_words)
    exact = sum(1 for p in phrase_words if p in words)
    if exact:
        return PHRASE_PARTIAL_BASE + PHRASE_PARTIAL_RANGE * exact / total

    similar = sum(1 for p in phrase_words if any(_overlaps(w, p) for w in words))
    if similar:
        return PHRASE_SIMILAR_RANGE * similar / total
    return 0.0


def _score_word(message: str, words: list, keyword: str) -> float:
    if _word_pattern(keyword).search(message):
        return WORD_BOUNDARY_SCORE
    if keyword in words:
        return WORD_TOKEN_SCORE
    if any(message.startswith(keyword + sep) for sep in _SEPARATORS):
        return WORD_PREFIX_SCORE
    if any(message.endswith(sep + keyword) for sep in _SEPARATORS):
        return WORD_SUFFIX_SCORE
    if any(left + keyword + right in message for left in _SEPARATORS for right in _SEPARATORS):
        return WORD_INFIX_SCORE

    # Typo fallback; short tokens give too many false positives
    if len(keyword) >= MIN_FUZZY_LENGTH:
        best = max(
            (similarity(keyword, w) for w in words if len(w) >= MIN_FUZZY_LENGTH),
            default=0.0,
        )
        if best >= FUZZY_MIN_SIMILARITY:
            return min(FUZZY_CAP, best * FUZZY_WEIGHT)

    if any(keyword in w for w in words):
        return min(IN_TOKEN_CAP, 40 + 2 * len(keyword))

    contained = [w for w in words if len(w) >= MIN_FUZZY_LENGTH and w in keyword]
    if contained:
        return min(TOKEN_IN_KEYWORD_CAP, 30 + 2 * max(len(w) for w in contained))

    if keyword in message:
        return min(RAW_SUBSTRING_CAP, 20 + 2 * len(keyword))
    return 0.0


# --------------------------------------------------------------------------- #
#  Public API                                                                  #
# --------------------------------------------------------------------------- #

def score_keyword(message: str, keyword: str, words: list = None) -> float:
    """
    Score *keyword* against *message*.

    Parameters
    ----------
    message : str
        Lower-cased, trimmed user message.
    keyword : str
        One trigger (single word or phrase). Blank keywords score 0.
    words : list[str], optional
        Pre-tokenised *message*; pass it when scoring many keywords.

    Returns
    -------
    float – 0 (no match) to 100 (exact match).
    """
    keyword = (keyword or "").strip().lower()
    if not keyword or not message:
        return 0.0
    if message == keyword:
        return EXACT_SCORE

    if words is None:
        words = tokenize(message)

    keyword_words = tokenize(keyword)
    if len(keyword_words) >= 2:
        # Multi-word keywords never fall through to single-word matching
        return _score_phrase(message, words, keyword, keyword_words)
    return _score_word(message, words, keyword)


def exact_trigger_score(message: str, keyword: str, words: list = None) -> float:
    """
    Score only the "user typed the trigger" strategies: exact equality,
    whole-message phrase, bounded phrase containment and phrase permutation.
    Returns 0 when none of them applies.
    """
    keyword = (keyword or "").strip().lower()
    if not keyword or not message:
        return 0.0
    if message == keyword:
        return EXACT_SCORE

    keyword_words = tokenize(keyword)
    if len(keyword_words) < 2:
        return 0.0
    if words is None:
        words = tokenize(message)

    flat_message = collapse_whitespace(message)
    flat_phrase  = collapse_whitespace(keyword)
    if flat_message == flat_phrase:
        return EXACT_SCORE
    if _bounded_phrase(flat_message, flat_phrase):
        return PHRASE_BOUNDED_SCORE
    if _same_multiset(words, keyword_words):
        return PHRASE_PERMUTATION_SCORE
    return 0.0


# ── Dev self-test ─────────────────────────────────────────────────────────────

if __name__ == "__main__":
    checks = [
        ("hello", "hello", 100.0),
        ("see you later", "see you", 98.0),
        ("compare products", "product comparison", 95.0),
        ("i need some help", "help", 90.0),
        ("pls tell me abot evnts", "events", 65.0),
        ("xyz", "", 0.0),
    ]
    for msg, kw, expected in checks:
        got = score_keyword(msg, kw)
        flag = "✓" if abs(got - expected) < 1e-6 else "✗"
        print(f"  {flag} {msg!r:28} {kw!r:22} {got:6.1f} (expected {expected})")
