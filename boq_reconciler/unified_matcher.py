# boq_reconciler/unified_matcher.py
"""
Unified Matcher
---------------

Same (name, unit) across every BOQ file -> same catalogue entry.

1. Flatten the line items of all documents and group them by unified key.
2. Keys under a manual override keep the override.
3. Every other key is matched once, using its first occurrence, and the
   decision applies to all occurrences.
4. Statistics are counted over line items, not keys.

Manual overrides live in the matcher (one matcher per session), so a later
match_all() never silently replaces them.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence

from .candidates import dedupe_catalogue, find_candidates, unified_key
from .config import MATCH_THRESHOLD, TOP_N
from .errors import NotReadyError
from .models import (
    CatalogueEntry,
    LineItem,
    MatchDecision,
    MatchStatistics,
    UnifiedCandidate,
)
from .units import DEFAULT_UNITS, UnitTable

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    # unified key -> every line item sharing it, in input order
    occurrences: Dict[str, List[LineItem]]
    decisions: Dict[str, MatchDecision]
    file_ids: List[str] = field(default_factory=list)

    def copy(self) -> "MatchResult":
        return MatchResult(
            occurrences={k: list(v) for k, v in self.occurrences.items()},
            decisions=dict(self.decisions),
            file_ids=list(self.file_ids),
        )

    def representative(self, key: str) -> LineItem:
        return self.occurrences[key][0]

    def occurrence_count(self, key: str) -> int:
        return len(self.occurrences.get(key, ()))

    def decision(self, key: str) -> Optional[MatchDecision]:
        return self.decisions.get(key)

    def iter_items(self) -> Iterator[tuple]:
        """Yield (unified_key, line_item) for every line item."""
        for key, items in self.occurrences.items():
            for item in items:
                yield key, item

    def matched_keys(self) -> List[str]:
        return [k for k in self.occurrences if k in self.decisions]

    def unmatched_keys(self) -> List[str]:
        return [k for k in self.occurrences if k not in self.decisions]

    def statistics(self) -> MatchStatistics:
        total = sum(len(items) for items in self.occurrences.values())
        matched = sum(len(self.occurrences[k]) for k in self.matched_keys())

        weighted = [
            self.decisions[k].score * len(self.occurrences[k]) for k in self.matched_keys()
        ]

        return MatchStatistics(
            total_items=total,
            matched_items=matched,
            unmatched_items=total - matched,
            unique_positions=len(self.occurrences),
            manual_overrides=sum(1 for d in self.decisions.values() if d.is_manual_override),
            average_score=sum(weighted) / matched if matched else 0.0,
        )


class UnifiedMatcher:
    def __init__(
        self,
        units: Optional[UnitTable] = None,
        threshold: float = MATCH_THRESHOLD,
        top_n: int = TOP_N,
    ):
        self.units = units or DEFAULT_UNITS
        self.threshold = threshold
        self.top_n = top_n
        self._overrides: Dict[str, MatchDecision] = {}

    @property
    def overrides(self) -> Dict[str, MatchDecision]:
        return dict(self._overrides)

    def key_for(self, item: LineItem) -> str:
        return unified_key(item.name, item.unit, self.units)

    # ---------------------------------------------------------
    # Matching
    # ---------------------------------------------------------
    def match_all(
        self,
        documents: Sequence[Sequence[LineItem]],
        catalogue: Sequence[CatalogueEntry],
    ) -> MatchResult:
        if not catalogue:
            raise NotReadyError("Catalogue is empty; load price entries before matching")
        if not documents or not any(documents):
            raise NotReadyError("No BOQ line items to match; upload documents first")

        occurrences: Dict[str, List[LineItem]] = {}
        file_ids: List[str] = []
        for doc in documents:
            for item in doc:
                occurrences.setdefault(self.key_for(item), []).append(item)
                if item.source_file_id not in file_ids:
                    file_ids.append(item.source_file_id)

        entries = dedupe_catalogue(catalogue, self.units)
        decisions: Dict[str, MatchDecision] = {}

        for key, items in occurrences.items():
            override = self._overrides.get(key)
            if override is not None:
                decisions[key] = override
                continue

            candidates = find_candidates(items[0], entries, top_n=1, units=self.units)
            if candidates and candidates[0].score >= self.threshold:
                best = candidates[0]
                decisions[key] = MatchDecision(unified_key=key, entry=best.entry, score=best.score)
                logger.debug("Matched '%s' -> '%s' (%.3f)", key, best.entry.name, best.score)
            else:
                logger.debug("No match for '%s'", key)

        result = MatchResult(occurrences=occurrences, decisions=decisions, file_ids=file_ids)

        stats = result.statistics()
        logger.info(
            "Matching done: %d items, %d unique positions, %d matched, %d unmatched, %d overrides",
            stats.total_items,
            stats.unique_positions,
            stats.matched_items,
            stats.unmatched_items,
            stats.manual_overrides,
        )
        return result

    # ---------------------------------------------------------
    # Manual overrides
    # ---------------------------------------------------------
    def override_match(self, key: str, entry: CatalogueEntry, result: MatchResult) -> None:
        """Pin ``key`` to ``entry`` for every occurrence, now and on later re-matches."""
        if key not in result.occurrences:
            raise KeyError(f"Unified key '{key}' not found in match result")

        rep = result.representative(key)
        if not self.units.are_equivalent(rep.unit, entry.unit):
            logger.warning(
                "Manual override of '%s' uses a different unit (%s vs %s)", key, rep.unit, entry.unit
            )

        decision = MatchDecision(unified_key=key, entry=entry, score=1.0, is_manual_override=True)
        self._overrides[key] = decision
        result.decisions[key] = decision

        logger.info(
            "Override: '%s' -> '%s' (%s), %d occurrences",
            key,
            entry.name,
            entry.unit,
            result.occurrence_count(key),
        )

    def clear_override(self, key: str) -> bool:
        """Forget a manual override; the key is re-matched on the next match_all()."""
        removed = self._overrides.pop(key, None)
        return removed is not None

    # ---------------------------------------------------------
    # Manual review
    # ---------------------------------------------------------
    def get_unmatched_candidates(
        self,
        result: MatchResult,
        catalogue: Sequence[CatalogueEntry],
        top_n: Optional[int] = None,
    ) -> List[UnifiedCandidate]:
        """Unmatched positions, most frequent first, each with its best suggestions."""
        entries = dedupe_catalogue(catalogue, self.units)
        if top_n is None:
            top_n = self.top_n

        out = []
        for key in result.unmatched_keys():
            rep = result.representative(key)
            matches = find_candidates(rep, entries, top_n=top_n, units=self.units)
            out.append(
                UnifiedCandidate(
                    unified_key=key,
                    name=rep.name,
                    unit=rep.unit,
                    occurrence_count=result.occurrence_count(key),
                    top_matches=tuple(matches),
                )
            )

        out.sort(key=lambda c: (-c.occurrence_count, c.name.casefold(), c.unified_key))
        return out
