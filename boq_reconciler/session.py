# boq_reconciler/session.py
"""
Project session
---------------

Holds everything one reconciliation works on: BOQ documents, catalogue,
stage forecasts, the matcher (and its manual overrides), the current match
result and the iteration history.

Every public method runs under one re-entrant lock, so an optimization
always sees a consistent snapshot of matched items and forecasts, and an
upload, override or forecast edit never interleaves with it.
"""

import logging
import threading
import uuid
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import NotReadyError
from .iteration import default_parameters, forecast_map, optimize
from .models import (
    CatalogueEntry,
    IterationResult,
    LineItem,
    MatchDecision,
    MatchStatistics,
    SolverParameters,
    StageForecast,
    UnifiedCandidate,
)
from .unified_matcher import MatchResult, UnifiedMatcher
from .units import UnitTable

logger = logging.getLogger(__name__)


class ProjectSession:
    def __init__(self, name: str = "", units: Optional[UnitTable] = None, session_id: Optional[str] = None):
        self.id = session_id or str(uuid.uuid4())
        self.name = name
        self._matcher = UnifiedMatcher(units=units)

        self._lock = threading.RLock()
        self._documents: Dict[str, List[LineItem]] = {}
        self._catalogue: List[CatalogueEntry] = []
        self._forecasts: Dict[str, float] = {}
        self._match_result: Optional[MatchResult] = None
        self._iterations: List[IterationResult] = []
        self._pinned: Optional[int] = None

    # ---------------------------------------------------------
    # Snapshots
    # ---------------------------------------------------------
    @property
    def documents(self) -> Dict[str, List[LineItem]]:
        with self._lock:
            return {k: list(v) for k, v in self._documents.items()}

    @property
    def catalogue(self) -> List[CatalogueEntry]:
        with self._lock:
            return list(self._catalogue)

    @property
    def forecasts(self) -> Dict[str, float]:
        with self._lock:
            return dict(self._forecasts)

    @property
    def match_result(self) -> Optional[MatchResult]:
        """A copy; overrides go through override_match() so they take the lock."""
        with self._lock:
            return self._match_result.copy() if self._match_result is not None else None

    @property
    def overrides(self) -> Dict[str, MatchDecision]:
        with self._lock:
            return self._matcher.overrides

    @property
    def iterations(self) -> Tuple[IterationResult, ...]:
        with self._lock:
            return tuple(self._iterations)

    # ---------------------------------------------------------
    # Inputs
    # ---------------------------------------------------------
    def add_document(self, source_file_id: str, items: Sequence[LineItem]) -> None:
        with self._lock:
            self._documents[source_file_id] = list(items)
            self._match_result = None
            logger.info("Session %s: document '%s' with %d items", self.id, source_file_id, len(items))

    def remove_document(self, source_file_id: str) -> None:
        with self._lock:
            if self._documents.pop(source_file_id, None) is not None:
                self._match_result = None

    def set_catalogue(self, entries: Sequence[CatalogueEntry]) -> None:
        with self._lock:
            self._catalogue = list(entries)
            self._match_result = None
            logger.info("Session %s: catalogue with %d entries", self.id, len(entries))

    def set_forecasts(self, forecasts: Sequence[StageForecast]) -> None:
        with self._lock:
            self._forecasts = forecast_map(forecasts)

    def set_forecast(self, stage_code: str, amount: float) -> None:
        """Manual edit of a single stage ceiling."""
        forecast = StageForecast(stage_code=stage_code, forecast_amount=amount)
        with self._lock:
            self._forecasts[forecast.stage_code] = forecast.forecast_amount

    # ---------------------------------------------------------
    # Readiness
    # ---------------------------------------------------------
    def readiness(self) -> Tuple[bool, str]:
        with self._lock:
            missing = []
            if not any(self._documents.values()):
                missing.append("BOQ documents")
            if not self._catalogue:
                missing.append("price catalogue")
            if not self._forecasts:
                missing.append("stage forecasts")

        if missing:
            return False, "Missing: " + ", ".join(missing)
        return True, "OK"

    # ---------------------------------------------------------
    # Matching
    # ---------------------------------------------------------
    def run_matching(self) -> MatchResult:
        with self._lock:
            result = self._matcher.match_all(list(self._documents.values()), self._catalogue)
            self._match_result = result
            return result.copy()

    def _require_match(self) -> MatchResult:
        if self._match_result is None:
            raise NotReadyError("No matching performed yet; run matching first")
        return self._match_result

    def statistics(self) -> MatchStatistics:
        with self._lock:
            return self._require_match().statistics()

    def override_match(self, unified_key: str, entry: CatalogueEntry) -> None:
        with self._lock:
            self._matcher.override_match(unified_key, entry, self._require_match())

    def clear_override(self, unified_key: str) -> bool:
        with self._lock:
            removed = self._matcher.clear_override(unified_key)
            if removed and self._match_result is not None:
                self._match_result = self._matcher.match_all(list(self._documents.values()), self._catalogue)
            return removed

    def unmatched_candidates(self, top_n: Optional[int] = None) -> List[UnifiedCandidate]:
        with self._lock:
            return self._matcher.get_unmatched_candidates(self._require_match(), self._catalogue, top_n)

    # ---------------------------------------------------------
    # Optimization
    # ---------------------------------------------------------
    def run_optimization(
        self, params: Optional[SolverParameters] = None, adaptive: bool = True
    ) -> IterationResult:
        """
        Append one iteration to the history.

        Without explicit ``params`` the previous iteration's parameters are
        reused (defaults on the first run); with ``adaptive`` they are then
        re-tuned from the previous iteration's gap.
        """
        with self._lock:
            match_result = self._require_match()
            if not self._forecasts:
                raise NotReadyError("No stage forecasts available; load or enter forecasts first")

            previous = self._iterations[-1] if self._iterations else None
            if params is None:
                params = previous.parameters if previous else default_parameters()

            result = optimize(
                match_result,
                dict(self._forecasts),
                params,
                iteration_number=len(self._iterations) + 1,
                previous=previous if adaptive else None,
            )
            self._iterations.append(result)
            return result

    def select_iteration(self, iteration_number: Optional[int]) -> None:
        """Pin an iteration for export; ``None`` follows the latest again."""
        with self._lock:
            if iteration_number is not None and not any(
                it.iteration_number == iteration_number for it in self._iterations
            ):
                raise ValueError(f"Iteration {iteration_number} does not exist")
            self._pinned = iteration_number

    def selected_iteration(self) -> Optional[IterationResult]:
        with self._lock:
            if not self._iterations:
                return None
            if self._pinned is None:
                return self._iterations[-1]
            for it in self._iterations:
                if it.iteration_number == self._pinned:
                    return it
            return self._iterations[-1]
