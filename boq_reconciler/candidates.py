# boq_reconciler/candidates.py

import logging
from typing import Dict, List, Optional, Sequence

from .config import CANDIDATE_MIN_SCORE, TOP_N
from .models import CatalogueEntry, LineItem, MatchCandidate
from .similarity import normalize_text, score
from .units import DEFAULT_UNITS, UnitTable

logger = logging.getLogger(__name__)


def unified_key(name: str, unit: str, units: Optional[UnitTable] = None) -> str:
    """Identity shared by every occurrence of the same economic position."""
    units = units or DEFAULT_UNITS
    return f"{normalize_text(name)}|{units.canonicalize(unit)}"


def dedupe_catalogue(
    catalogue: Sequence[CatalogueEntry], units: Optional[UnitTable] = None
) -> List[CatalogueEntry]:
    """
    Collapse catalogue entries with the same (name, unit) identity.
    The first occurrence wins, so insertion order is preserved.
    """
    seen: Dict[str, CatalogueEntry] = {}
    duplicates = 0

    for entry in catalogue:
        key = unified_key(entry.name, entry.unit, units)
        if key in seen:
            duplicates += 1
            if seen[key].base_price != entry.base_price:
                logger.warning(
                    "Duplicate catalogue entry '%s' (%s) with differing prices %.2f / %.2f; keeping the first",
                    entry.name,
                    entry.unit,
                    seen[key].base_price,
                    entry.base_price,
                )
            continue
        seen[key] = entry

    if duplicates:
        logger.info("Dropped %d duplicate catalogue entries", duplicates)

    return list(seen.values())


def find_candidates(
    item: LineItem,
    catalogue: Sequence[CatalogueEntry],
    top_n: int = TOP_N,
    units: Optional[UnitTable] = None,
    min_score: float = CANDIDATE_MIN_SCORE,
) -> List[MatchCandidate]:
    """
    Rank catalogue entries for one line item.

    Only entries whose unit is equivalent to the item's unit are scored;
    a unit mismatch is a filter, not a penalty. Ordering is score
    descending, then base price ascending, then catalogue order.
    Returns an empty list when nothing reaches ``min_score``.
    """
    units = units or DEFAULT_UNITS
    item_unit = units.canonicalize(item.unit)

    scored = []
    for index, entry in enumerate(catalogue):
        if units.canonicalize(entry.unit) != item_unit:
            continue

        s = score(item.name, entry.name, entry.aliases)
        if s >= min_score:
            scored.append((s, entry.base_price, index, entry))

    scored.sort(key=lambda row: (-row[0], row[1], row[2]))

    return [MatchCandidate(entry=entry, score=s) for s, _, _, entry in scored[:top_n]]
