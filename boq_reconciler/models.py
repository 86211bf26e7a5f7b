# boq_reconciler/models.py

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from .config import CURRENCY_DECIMALS, FEASIBILITY_TOLERANCE
from .errors import InvalidConfigError


def round_currency(value: float, decimals: int = CURRENCY_DECIMALS) -> float:
    """Round half-up to currency precision (used at output time only)."""
    quantum = Decimal(1).scaleb(-decimals)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


# ============================================================
# Inputs
# ============================================================


@dataclass(frozen=True)
class LineItem:
    stage_code: str
    name: str
    unit: str
    quantity: float
    source_file_id: str
    source_row: int = 0

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError(f"Line item in {self.source_file_id} row {self.source_row} has no name")
        if self.quantity <= 0:
            raise ValueError(
                f"Quantity must be positive, got {self.quantity} "
                f"({self.source_file_id} row {self.source_row})"
            )


@dataclass(frozen=True)
class CatalogueEntry:
    name: str
    unit: str
    base_price: float
    aliases: Tuple[str, ...] = ()
    category: Optional[str] = None

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Catalogue entry has no name")
        if self.base_price < 0:
            raise ValueError(f"Base price must be >= 0, got {self.base_price} for '{self.name}'")
        # lists from callers are frozen into tuples; a bare string is one alias
        aliases = (self.aliases,) if isinstance(self.aliases, str) else tuple(self.aliases)
        object.__setattr__(self, "aliases", aliases)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "unit": self.unit,
            "base_price": self.base_price,
            "aliases": list(self.aliases),
            "category": self.category,
        }


@dataclass(frozen=True)
class StageForecast:
    stage_code: str
    forecast_amount: float

    def __post_init__(self):
        if self.forecast_amount <= 0:
            raise ValueError(
                f"Forecast for stage '{self.stage_code}' must be positive, got {self.forecast_amount}"
            )


# ============================================================
# Matching
# ============================================================


@dataclass(frozen=True)
class MatchCandidate:
    entry: CatalogueEntry
    score: float


@dataclass(frozen=True)
class MatchDecision:
    unified_key: str
    entry: CatalogueEntry
    score: float
    is_manual_override: bool = False


@dataclass(frozen=True)
class UnifiedCandidate:
    """An unmatched position together with its best catalogue suggestions."""

    unified_key: str
    name: str
    unit: str
    occurrence_count: int
    top_matches: Tuple[MatchCandidate, ...]


@dataclass(frozen=True)
class MatchStatistics:
    total_items: int
    matched_items: int
    unmatched_items: int
    unique_positions: int
    manual_overrides: int
    average_score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_items": self.total_items,
            "matched_items": self.matched_items,
            "unmatched_items": self.unmatched_items,
            "unique_positions": self.unique_positions,
            "manual_overrides": self.manual_overrides,
            "average_score": self.average_score,
        }


# ============================================================
# Optimization
# ============================================================


@dataclass(frozen=True)
class SolverParameters:
    min_coeff: float
    max_coeff: float
    penalty: float

    def validate(self) -> None:
        if self.min_coeff < 0:
            raise InvalidConfigError(f"min_coeff must be >= 0, got {self.min_coeff}")
        if self.min_coeff >= self.max_coeff:
            raise InvalidConfigError(
                f"min_coeff ({self.min_coeff}) must be below max_coeff ({self.max_coeff})"
            )
        if self.penalty < 0:
            raise InvalidConfigError(f"penalty must be >= 0, got {self.penalty}")

    def to_dict(self) -> Dict[str, float]:
        return {
            "min_coeff": self.min_coeff,
            "max_coeff": self.max_coeff,
            "penalty": self.penalty,
        }


@dataclass(frozen=True)
class CoefficientAssignment:
    unified_key: str
    coefficient: float
    base_price: float
    entry: CatalogueEntry

    @property
    def work_price(self) -> float:
        return round_currency(self.base_price * self.coefficient)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unified_key": self.unified_key,
            "name": self.entry.name,
            "unit": self.entry.unit,
            "base_price": self.base_price,
            "coefficient": self.coefficient,
            "work_price": self.work_price,
        }


@dataclass(frozen=True)
class ItemResult:
    item: LineItem
    unified_key: str
    base_price: float
    coefficient: float
    matched: bool

    @property
    def value(self) -> float:
        return self.item.quantity * self.base_price * self.coefficient

    @property
    def work_price(self) -> float:
        return round_currency(self.base_price * self.coefficient)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage_code": self.item.stage_code,
            "name": self.item.name,
            "unit": self.item.unit,
            "quantity": self.item.quantity,
            "source_row": self.item.source_row,
            "unified_key": self.unified_key,
            "matched": self.matched,
            "base_price": self.base_price,
            "coefficient": self.coefficient,
            "work_price": self.work_price,
            "value": round_currency(self.value),
        }


@dataclass(frozen=True)
class StageBreakdown:
    stage_code: str
    forecast: float
    proposed: float

    @property
    def gap(self) -> float:
        return self.forecast - self.proposed

    @property
    def ok(self) -> bool:
        return self.gap >= -FEASIBILITY_TOLERANCE * max(self.forecast, 1.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage_code": self.stage_code,
            "forecast": self.forecast,
            "proposed": round_currency(self.proposed),
            "gap": round_currency(self.gap),
            "ok": self.ok,
        }


@dataclass(frozen=True)
class FileBreakdown:
    source_file_id: str
    stage_totals: Mapping[str, float]
    items: Tuple[ItemResult, ...]

    def __post_init__(self):
        object.__setattr__(self, "stage_totals", MappingProxyType(dict(self.stage_totals)))
        object.__setattr__(self, "items", tuple(self.items))

    @property
    def total_proposed(self) -> float:
        return sum(self.stage_totals.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_file_id": self.source_file_id,
            "stage_totals": {k: round_currency(v) for k, v in self.stage_totals.items()},
            "total_proposed": round_currency(self.total_proposed),
            "items": [i.to_dict() for i in self.items],
        }


@dataclass(frozen=True)
class IterationResult:
    iteration_number: int
    coefficients: Mapping[str, CoefficientAssignment]
    per_file: Mapping[str, FileBreakdown]
    per_stage: Mapping[str, StageBreakdown]
    overall_proposed: float
    overall_forecast: float
    solver_status: str
    objective_value: float
    duration_ms: float
    parameters: SolverParameters
    unmatched_keys: Tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        for name in ("coefficients", "per_file", "per_stage"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    @property
    def overall_gap(self) -> float:
        return self.overall_forecast - self.overall_proposed

    @property
    def gap_percent(self) -> float:
        if self.overall_forecast <= 0:
            return 0.0
        return self.overall_gap / self.overall_forecast * 100.0

    @property
    def ok(self) -> bool:
        return self.solver_status != "INFEASIBLE" and all(s.ok for s in self.per_stage.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iteration_number": self.iteration_number,
            "timestamp": self.timestamp.isoformat(),
            "solver_status": self.solver_status,
            "objective_value": self.objective_value,
            "duration_ms": self.duration_ms,
            "parameters": self.parameters.to_dict(),
            "overall_forecast": self.overall_forecast,
            "overall_proposed": round_currency(self.overall_proposed),
            "overall_gap": round_currency(self.overall_gap),
            "gap_percent": self.gap_percent,
            "ok": self.ok,
            "coefficients": [c.to_dict() for c in self.coefficients.values()],
            "per_stage": [s.to_dict() for s in self.per_stage.values()],
            "per_file": [f.to_dict() for f in self.per_file.values()],
            "unmatched_keys": list(self.unmatched_keys),
        }
