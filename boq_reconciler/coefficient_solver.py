# boq_reconciler/coefficient_solver.py
# Linear Programming coefficient optimizer (one coefficient per unified key)

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import numpy as np
from scipy.optimize import linprog
from scipy.sparse import coo_matrix, csr_matrix, hstack, identity

from .models import SolverParameters

logger = logging.getLogger(__name__)

OPTIMAL = "OPTIMAL"
FEASIBLE = "FEASIBLE"
INFEASIBLE = "INFEASIBLE"


@dataclass(frozen=True)
class SolveOutcome:
    coefficients: Dict[str, float]
    status: str
    objective_value: float
    duration_ms: float
    message: str = ""
    overshoot: Dict[str, float] = field(default_factory=dict)


class CoefficientSolver:
    """
    Budget-constrained coefficient LP.

    Variables, for every unified key k:
        c_k in [min_coeff, max_coeff]
        p_k, n_k >= 0  with  c_k - 1 = p_k - n_k

    Constraints, for every stage s that has cost terms:
        sum_k terms[k][s] * c_k <= forecast[s]

    Objective:
        maximize  sum_k value_k * c_k  -  penalty * sum_k (p_k + n_k)

    ``terms`` maps unified key -> {stage: quantity * base_price summed over
    every line item of that key in that stage, across all files}.
    """

    def __init__(
        self,
        terms: Mapping[str, Mapping[str, float]],
        forecasts: Mapping[str, float],
        params: SolverParameters,
    ):
        params.validate()
        self.terms = terms
        self.forecasts = forecasts
        self.params = params
        self.keys: List[str] = list(terms.keys())
        self.n = len(self.keys)

        used = {stage for t in terms.values() for stage, v in t.items() if v != 0}
        # stages without any matched cost contribute no constraint
        self.stages: List[str] = [s for s in forecasts if s in used]
        self.unbudgeted: List[str] = sorted(used - set(forecasts))

        self.values = np.array([sum(terms[k].values()) for k in self.keys], dtype=float)

    # ---------------------------------------------------------
    # Build Constraints
    # ---------------------------------------------------------
    def _build_constraints(self):
        n = self.n
        eye = identity(n, format="csr")

        # c - p + n = 1
        A_eq = hstack([eye, -eye, eye], format="csr")
        b_eq = np.ones(n)

        rows, cols, data = [], [], []
        for i, stage in enumerate(self.stages):
            for j, key in enumerate(self.keys):
                v = self.terms[key].get(stage, 0.0)
                if v:
                    rows.append(i)
                    cols.append(j)
                    data.append(v)

        A_ub = None
        b_ub = None
        if self.stages:
            A_ub = coo_matrix((data, (rows, cols)), shape=(len(self.stages), 3 * n)).tocsr()
            b_ub = np.array([self.forecasts[s] for s in self.stages], dtype=float)

        bounds = [(self.params.min_coeff, self.params.max_coeff)] * n + [(0, None)] * (2 * n)

        return A_ub, b_ub, A_eq, b_eq, bounds

    # ---------------------------------------------------------
    # Objective Function
    # ---------------------------------------------------------
    def _objective(self):
        # linprog minimizes, so the value term flips sign
        lam = np.full(self.n, self.params.penalty)
        return np.concatenate([-self.values, lam, lam])

    def objective_value(self, coeffs: np.ndarray) -> float:
        return float(self.values @ coeffs - self.params.penalty * np.abs(coeffs - 1.0).sum())

    def stage_totals(self, coeffs: Mapping[str, float]) -> Dict[str, float]:
        totals = {s: 0.0 for s in self.forecasts}
        for key in self.keys:
            for stage, v in self.terms[key].items():
                totals[stage] = totals.get(stage, 0.0) + v * coeffs[key]
        return totals

    # ---------------------------------------------------------
    # Relaxed LP (used when the ceilings cannot all be met)
    # ---------------------------------------------------------
    def _solve_relaxed(self, A_ub: csr_matrix, b_ub, A_eq, b_eq, bounds):
        """
        Allow each stage to overshoot through a slack variable priced high
        enough that cutting a coefficient always beats overshooting.
        Coefficients feeding an over-budget stage end up at min_coeff.
        """
        m = len(self.stages)
        coo = A_ub.tocoo()
        ratios = [
            (self.values[j] + self.params.penalty) / v for j, v in zip(coo.col, coo.data) if v > 0
        ]
        big_m = 10.0 * max(ratios + [1.0])

        A_relaxed = hstack([A_ub, -identity(m, format="csr")], format="csr")
        A_eq_relaxed = hstack([A_eq, csr_matrix((A_eq.shape[0], m))], format="csr")
        c = np.concatenate([self._objective(), np.full(m, big_m)])

        return linprog(
            c,
            A_ub=A_relaxed,
            b_ub=b_ub,
            A_eq=A_eq_relaxed,
            b_eq=b_eq,
            bounds=bounds + [(0, None)] * m,
            method="highs",
        )

    # ---------------------------------------------------------
    # Solve LP
    # ---------------------------------------------------------
    def solve(self) -> SolveOutcome:
        start = time.perf_counter()

        if self.unbudgeted:
            logger.warning("Stages without forecast are left unconstrained: %s", ", ".join(self.unbudgeted))

        if self.n == 0:
            return SolveOutcome({}, OPTIMAL, 0.0, (time.perf_counter() - start) * 1000.0, "nothing to solve")

        A_ub, b_ub, A_eq, b_eq, bounds = self._build_constraints()
        result = linprog(
            self._objective(),
            A_ub=A_ub,
            b_ub=b_ub,
            A_eq=A_eq,
            b_eq=b_eq,
            bounds=bounds,
            method="highs",
        )

        message = result.message
        x: Optional[np.ndarray] = None

        if result.status == 0:
            status = OPTIMAL
            x = result.x
        elif result.x is not None and result.status in (1, 4):
            # iteration/time limit or numerical trouble with a usable point
            status = FEASIBLE
            x = result.x
        else:
            status = INFEASIBLE
            logger.warning("LP infeasible (%s); solving relaxed model", result.message)
            if A_ub is not None:
                relaxed = self._solve_relaxed(A_ub, b_ub, A_eq, b_eq, bounds)
                if relaxed.x is not None:
                    x = relaxed.x
                    message = f"{result.message} | relaxed: {relaxed.message}"

        if x is None:
            coeffs = np.full(self.n, self.params.min_coeff)
        else:
            coeffs = np.clip(x[: self.n], self.params.min_coeff, self.params.max_coeff)

        coefficients = {key: float(coeffs[i]) for i, key in enumerate(self.keys)}

        overshoot = {}
        if status == INFEASIBLE:
            totals = self.stage_totals(coefficients)
            overshoot = {
                s: totals[s] - self.forecasts[s] for s in self.stages if totals[s] > self.forecasts[s]
            }

        duration_ms = (time.perf_counter() - start) * 1000.0
        objective = self.objective_value(coeffs)

        logger.info(
            "Solver finished: status=%s, keys=%d, stages=%d, objective=%.2f, time=%.1fms",
            status,
            self.n,
            len(self.stages),
            objective,
            duration_ms,
        )

        return SolveOutcome(
            coefficients=coefficients,
            status=status,
            objective_value=objective,
            duration_ms=duration_ms,
            message=message,
            overshoot=overshoot,
        )


# End of file
