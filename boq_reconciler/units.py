# boq_reconciler/units.py
"""
Unit Equivalence Table
----------------------

Maps unit-of-measure spellings ("pcs", "piece", "ea.") onto one canonical
unit. Lookup is case- and whitespace-insensitive. Units that are not in the
table canonicalize to themselves (trimmed, lower-cased).
"""

import re
from typing import Dict, Iterable, Mapping, Optional

from .config import UNIT_ALIASES

_WHITESPACE = re.compile(r"\s+")


def _fold(unit: Optional[str]) -> str:
    if not unit:
        return ""
    return _WHITESPACE.sub(" ", unit.strip().lower())


class UnitTable:
    def __init__(self, aliases: Mapping[str, Iterable[str]] = UNIT_ALIASES):
        self._variant_to_canonical: Dict[str, str] = {}

        for canonical, variants in aliases.items():
            canon = _fold(canonical)
            self._variant_to_canonical[canon] = canon
            for variant in variants:
                self._variant_to_canonical[_fold(variant)] = canon

    def canonicalize(self, unit: Optional[str]) -> str:
        folded = _fold(unit)
        return self._variant_to_canonical.get(folded, folded)

    def are_equivalent(self, a: Optional[str], b: Optional[str]) -> bool:
        return self.canonicalize(a) == self.canonicalize(b)

    def __contains__(self, unit: str) -> bool:
        return _fold(unit) in self._variant_to_canonical


DEFAULT_UNITS = UnitTable()
