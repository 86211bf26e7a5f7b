# boq_reconciler/validator.py
"""
validator.py
------------
Checks an IterationResult before it is shown or exported.

Nothing is corrected here (iteration results are immutable); problems are
reported so the caller can decide whether to block export:

- "error"   : solver infeasible, or a stage proposal exceeds its forecast
- "warning" : unmatched positions, stages without forecast, coefficients
              sitting on a bound
- "success" : nothing to report
"""

from typing import Any, Dict

from .coefficient_solver import INFEASIBLE
from .config import FEASIBILITY_TOLERANCE
from .models import IterationResult


def validate_iteration(result: IterationResult, tolerance: float = FEASIBILITY_TOLERANCE) -> Dict[str, Any]:
    errors = []
    warnings = []
    params = result.parameters

    # --------------------------------------------------------
    # 1. Solver status
    # --------------------------------------------------------
    if result.solver_status == INFEASIBLE:
        errors.append(
            "Stage ceilings cannot all be met even at the minimum coefficient; "
            "the result is a best-effort solution."
        )

    # --------------------------------------------------------
    # 2. Stage ceilings
    # --------------------------------------------------------
    for stage in result.per_stage.values():
        if stage.forecast <= 0 and stage.proposed > 0:
            warnings.append(f"Stage '{stage.stage_code}' has no forecast (proposed {stage.proposed:,.2f}).")
        elif not stage.ok:
            errors.append(
                f"Stage '{stage.stage_code}' exceeds forecast by {-stage.gap:,.2f} "
                f"({stage.proposed:,.2f} > {stage.forecast:,.2f})."
            )

    # --------------------------------------------------------
    # 3. Coefficient bounds
    # --------------------------------------------------------
    eps = tolerance * max(1.0, params.max_coeff)
    at_lower = at_upper = 0
    for a in result.coefficients.values():
        if a.coefficient < params.min_coeff - eps or a.coefficient > params.max_coeff + eps:
            errors.append(
                f"Coefficient {a.coefficient:.4f} for '{a.unified_key}' outside "
                f"[{params.min_coeff}, {params.max_coeff}]."
            )
        elif abs(a.coefficient - params.min_coeff) <= eps:
            at_lower += 1
        elif abs(a.coefficient - params.max_coeff) <= eps:
            at_upper += 1

    if at_lower:
        warnings.append(f"{at_lower} coefficient(s) at the lower bound {params.min_coeff}.")
    if at_upper:
        warnings.append(f"{at_upper} coefficient(s) at the upper bound {params.max_coeff}.")

    # --------------------------------------------------------
    # 4. Unmatched positions
    # --------------------------------------------------------
    if result.unmatched_keys:
        warnings.append(
            f"{len(result.unmatched_keys)} unmatched position(s) are priced at zero."
        )

    # --------------------------------------------------------
    # 5. Format response
    # --------------------------------------------------------
    if errors:
        status = "error"
    elif warnings:
        status = "warning"
    else:
        status = "success"

    return {
        "status": status,
        "iteration": result.iteration_number,
        "notes": errors + warnings,
    }
