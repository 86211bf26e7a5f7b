# boq_reconciler/iteration.py
"""
Multi-File Iteration Controller
-------------------------------

One optimization run over every BOQ document of a session:

1. aggregate quantity * base_price per unified key and stage (all files)
2. optionally re-tune the solver parameters from the previous iteration
3. solve once (coefficient_solver)
4. project the unified coefficients back onto files, stages and items

Coefficients are never stored per file; the per-file and per-stage views
are derived from the flat key -> coefficient map.
"""

import logging
from dataclasses import replace
from typing import Dict, List, Mapping, Optional, Sequence, Union

from .coefficient_solver import INFEASIBLE, CoefficientSolver
from .config import (
    BOUND_STEP,
    DEFAULT_MAX_COEFF,
    DEFAULT_MIN_COEFF,
    DEFAULT_PENALTY,
    GAP_BAND_PERCENT,
    MAX_COEFF_CEILING,
    MIN_COEFF_FLOOR,
    PENALTY_CEILING,
    PENALTY_FLOOR,
    TARGET_GAP_PERCENT,
)
from .errors import NotReadyError
from .models import (
    CoefficientAssignment,
    FileBreakdown,
    ItemResult,
    IterationResult,
    SolverParameters,
    StageBreakdown,
    StageForecast,
)
from .unified_matcher import MatchResult

logger = logging.getLogger(__name__)


def default_parameters() -> SolverParameters:
    return SolverParameters(
        min_coeff=DEFAULT_MIN_COEFF,
        max_coeff=DEFAULT_MAX_COEFF,
        penalty=DEFAULT_PENALTY,
    )


def forecast_map(forecasts: Union[Sequence[StageForecast], Mapping[str, float]]) -> Dict[str, float]:
    if isinstance(forecasts, Mapping):
        return {stage: float(amount) for stage, amount in forecasts.items()}

    out: Dict[str, float] = {}
    for f in forecasts:
        if f.stage_code in out:
            raise ValueError(f"Duplicate forecast for stage '{f.stage_code}'")
        out[f.stage_code] = f.forecast_amount
    return out


def build_cost_terms(match_result: MatchResult) -> Dict[str, Dict[str, float]]:
    """unified key -> {stage: sum of quantity * base_price}, matched keys only."""
    terms: Dict[str, Dict[str, float]] = {}
    for key, item in match_result.iter_items():
        decision = match_result.decision(key)
        if decision is None:
            continue
        stages = terms.setdefault(key, {})
        stages[item.stage_code] = stages.get(item.stage_code, 0.0) + item.quantity * decision.entry.base_price
    return terms


# ============================================================
# Adaptive tuning
# ============================================================


def adapt_parameters(
    params: SolverParameters,
    previous: Optional[IterationResult],
    target_gap_percent: float = TARGET_GAP_PERCENT,
    band_percent: float = GAP_BAND_PERCENT,
) -> SolverParameters:
    """
    Next-iteration parameters from the previous result's gap.

    previous infeasible      -> lower min_coeff by one step
    gap above target + band  -> halve penalty, raise max_coeff one step
    gap below target - band  -> double penalty
    otherwise                -> unchanged
    """
    if previous is None:
        return params

    if previous.solver_status == INFEASIBLE:
        new_min = round(max(MIN_COEFF_FLOOR, params.min_coeff - BOUND_STEP), 6)
        logger.info("Previous iteration infeasible; min_coeff %.2f -> %.2f", params.min_coeff, new_min)
        return replace(params, min_coeff=min(new_min, params.min_coeff))

    gap = previous.gap_percent

    if gap > target_gap_percent + band_percent:
        adapted = replace(
            params,
            penalty=min(params.penalty, max(PENALTY_FLOOR, params.penalty / 2.0)),
            max_coeff=max(params.max_coeff, round(min(MAX_COEFF_CEILING, params.max_coeff + BOUND_STEP), 6)),
        )
        logger.info("Previous gap %.2f%% above target; loosening to %s", gap, adapted.to_dict())
        return adapted

    if gap < target_gap_percent - band_percent:
        doubled = min(PENALTY_CEILING, max(PENALTY_FLOOR, params.penalty * 2.0))
        adapted = replace(params, penalty=max(params.penalty, doubled))
        logger.info("Previous gap %.2f%% below target; stabilizing to %s", gap, adapted.to_dict())
        return adapted

    logger.info("Previous gap %.2f%% within target band; parameters unchanged", gap)
    return params


# ============================================================
# Optimize
# ============================================================


def optimize(
    match_result: MatchResult,
    forecasts: Union[Sequence[StageForecast], Mapping[str, float]],
    params: Optional[SolverParameters] = None,
    iteration_number: int = 1,
    previous: Optional[IterationResult] = None,
    target_gap_percent: float = TARGET_GAP_PERCENT,
) -> IterationResult:
    limits = forecast_map(forecasts)
    if not limits:
        raise NotReadyError("No stage forecasts available; load or enter forecasts first")

    params = params or default_parameters()
    params.validate()
    params = adapt_parameters(params, previous, target_gap_percent)

    logger.info(
        "Iteration %d: coeff range [%.2f, %.2f], penalty %.1f",
        iteration_number,
        params.min_coeff,
        params.max_coeff,
        params.penalty,
    )

    terms = build_cost_terms(match_result)
    outcome = CoefficientSolver(terms, limits, params).solve()

    coefficients: Dict[str, CoefficientAssignment] = {}
    for key, c in outcome.coefficients.items():
        entry = match_result.decisions[key].entry
        coefficients[key] = CoefficientAssignment(
            unified_key=key, coefficient=c, base_price=entry.base_price, entry=entry
        )

    per_file = _expand_per_file(match_result, coefficients)
    per_stage = _expand_per_stage(per_file, limits)

    overall_proposed = sum(s.proposed for s in per_stage.values())
    overall_forecast = sum(limits.values())

    result = IterationResult(
        iteration_number=iteration_number,
        coefficients=coefficients,
        per_file=per_file,
        per_stage=per_stage,
        overall_proposed=overall_proposed,
        overall_forecast=overall_forecast,
        solver_status=outcome.status,
        objective_value=outcome.objective_value,
        duration_ms=outcome.duration_ms,
        parameters=params,
        unmatched_keys=tuple(match_result.unmatched_keys()),
    )

    logger.info(
        "Iteration %d: forecast %.2f, proposed %.2f, gap %.2f (%.2f%%), status %s",
        iteration_number,
        result.overall_forecast,
        result.overall_proposed,
        result.overall_gap,
        result.gap_percent,
        result.solver_status,
    )
    return result


def _expand_per_file(
    match_result: MatchResult, coefficients: Mapping[str, CoefficientAssignment]
) -> Dict[str, FileBreakdown]:
    rows: Dict[str, List[ItemResult]] = {file_id: [] for file_id in match_result.file_ids}

    for key, item in match_result.iter_items():
        assignment = coefficients.get(key)
        if assignment is None:
            res = ItemResult(item=item, unified_key=key, base_price=0.0, coefficient=0.0, matched=False)
        else:
            res = ItemResult(
                item=item,
                unified_key=key,
                base_price=assignment.base_price,
                coefficient=assignment.coefficient,
                matched=True,
            )
        rows.setdefault(item.source_file_id, []).append(res)

    per_file = {}
    for file_id, items in rows.items():
        items.sort(key=lambda r: r.item.source_row)
        totals: Dict[str, float] = {}
        for r in items:
            totals[r.item.stage_code] = totals.get(r.item.stage_code, 0.0) + r.value
        per_file[file_id] = FileBreakdown(source_file_id=file_id, stage_totals=totals, items=tuple(items))
    return per_file


def _expand_per_stage(
    per_file: Mapping[str, FileBreakdown], limits: Mapping[str, float]
) -> Dict[str, StageBreakdown]:
    proposed: Dict[str, float] = {stage: 0.0 for stage in limits}
    for breakdown in per_file.values():
        for stage, total in breakdown.stage_totals.items():
            proposed[stage] = proposed.get(stage, 0.0) + total

    # stages without a forecast get 0.0 so they show up as over budget
    return {
        stage: StageBreakdown(stage_code=stage, forecast=limits.get(stage, 0.0), proposed=value)
        for stage, value in proposed.items()
    }
