"""
text_normalizer.py
------------------
Lower-cases, trims and tokenises chatbot input.

normalize(raw) -> {"lower": str, "words": list[str]}

``lower`` keeps punctuation so substring / phrase checks still see the
original characters; ``words`` is the punctuation-free token list used for
word-presence comparisons.
"""

import re

_NON_WORD   = re.compile(r"\W")
_WHITESPACE = re.compile(r"\s+")


def tokenize(text: str) -> list:
    """Split already lower-cased *text* into word tokens."""
    if not text:
        return []
    return [w for w in _WHITESPACE.split(_NON_WORD.sub(" ", text)) if w]


def collapse_whitespace(text: str) -> str:
    """Replace every run of whitespace with a single space."""
    return _WHITESPACE.sub(" ", text).strip()


def normalize(raw: str) -> dict:
    """
    Normalise a raw message or keyword.

    Empty / whitespace-only input returns ``{"lower": "", "words": []}``;
    rejecting such input is the caller's job.
    """
    lower = (raw or "").strip().lower()
    return {"lower": lower, "words": tokenize(lower)}
