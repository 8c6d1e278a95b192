"""Street name normalization used to group fragmented segments."""

from __future__ import annotations

import re
from typing import Optional

UNNAMED_PLACEHOLDERS = frozenset({"", "unnamed", "unnamed road"})

# Road classification codes such as "(A3066)" or "(B1234a)".
_CLASSIFICATION_CODE = re.compile(r"\s*\([A-Z]\d+[A-Za-z]?\d*\)\s*")
_QUOTES = re.compile(r"[\"'‘’“”`]")

_ABBREVIATIONS = {
    "rd": "road",
    "ave": "avenue",
    "av": "avenue",
    "ln": "lane",
    "dr": "drive",
    "ct": "court",
    "cres": "crescent",
    "blvd": "boulevard",
    "hwy": "highway",
    "pl": "place",
    "sq": "square",
    "tce": "terrace",
    "n": "north",
    "s": "south",
    "e": "east",
    "w": "west",
}


def is_unnamed(name: Optional[str]) -> bool:
    return name is None or name.strip().lower() in UNNAMED_PLACEHOLDERS


def normalize_street_name(name: Optional[str]) -> str:
    """Lower-case, trim and collapse whitespace."""

    if not name:
        return ""
    return " ".join(name.lower().split())


def normalize_street_name_strict(name: Optional[str]) -> str:
    """Normalization for matching names across data sources.

    Strips classification codes, quotes, dots and a leading "The", and
    expands common abbreviations. "St" becomes "saint" at the start of a
    multi-word name and "street" anywhere else.
    """

    if not name:
        return ""
    text = _CLASSIFICATION_CODE.sub(" ", name)
    text = _QUOTES.sub("", text.lower())
    text = text.replace(".", " ").replace("-", " ")
    words = text.split()
    if len(words) > 1 and words[0] == "the":
        words = words[1:]
    expanded = []
    for position, word in enumerate(words):
        if word == "st":
            leading = position == 0 and len(words) > 1
            expanded.append("saint" if leading else "street")
        else:
            expanded.append(_ABBREVIATIONS.get(word, word))
    return " ".join(expanded)


def street_names_match(a: Optional[str], b: Optional[str], threshold: float = 0.8) -> bool:
    """True when strict-normalized names share enough words (Jaccard)."""

    left = normalize_street_name_strict(a)
    right = normalize_street_name_strict(b)
    if not left or not right:
        return False
    if left == right:
        return True
    left_words = set(left.split())
    right_words = set(right.split())
    union = left_words | right_words
    return len(left_words & right_words) / len(union) >= threshold
