# boq_reconciler/similarity.py
"""
Text Similarity Scorer
----------------------

Scores a line-item description against a catalogue description.

Normalisation: lower-case, punctuation turned into spaces, whitespace
collapsed. Diacritics are left alone.

The score blends three terms (weights in config.SIMILARITY_WEIGHTS):
    token_overlap : Dice coefficient over the two token sets
    token_sort    : rapidfuzz token_sort_ratio (edit similarity, order-free)
    literal       : rapidfuzz ratio on the normalised strings

Both order-invariant terms together outweigh the literal one, so
"mechanized excavation" and "excavation, mechanized" land close to 1.0.
Exact matches (on the name or on any alias) short-circuit to 1.0.
"""

import re
from functools import lru_cache
from typing import FrozenSet, Iterable

from rapidfuzz import fuzz

from .config import SIMILARITY_WEIGHTS

_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")


@lru_cache(maxsize=50000)
def normalize_text(text: str) -> str:
    if not text:
        return ""
    lowered = _PUNCTUATION.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", lowered).strip()


@lru_cache(maxsize=50000)
def tokenize(text: str) -> FrozenSet[str]:
    return frozenset(normalize_text(text).split())


def token_overlap(a: str, b: str) -> float:
    ta, tb = tokenize(a), tokenize(b)
    if not ta or not tb:
        return 0.0
    return 2.0 * len(ta & tb) / (len(ta) + len(tb))


def _blend(query: str, candidate: str) -> float:
    nq, nc = normalize_text(query), normalize_text(candidate)
    if not nq or not nc:
        return 0.0
    if nq == nc:
        return 1.0

    w = SIMILARITY_WEIGHTS
    total = (
        w["token_overlap"] * token_overlap(nq, nc)
        + w["token_sort"] * fuzz.token_sort_ratio(nq, nc) / 100.0
        + w["literal"] * fuzz.ratio(nq, nc) / 100.0
    )
    return max(0.0, min(1.0, total / sum(w.values())))


def score(query_name: str, candidate_name: str, candidate_aliases: Iterable[str] = ()) -> float:
    """Similarity in [0, 1]; an alias hit counts as a hit on the name."""
    best = _blend(query_name, candidate_name)
    for alias in candidate_aliases:
        if best >= 1.0:
            break
        best = max(best, _blend(query_name, alias))
    return best
