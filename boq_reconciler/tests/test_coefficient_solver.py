# boq_reconciler/tests/test_coefficient_solver.py

import numpy as np
import pytest
from scipy.optimize import OptimizeResult

from boq_reconciler import coefficient_solver
from boq_reconciler.coefficient_solver import FEASIBLE, INFEASIBLE, OPTIMAL, CoefficientSolver
from boq_reconciler.errors import InvalidConfigError
from boq_reconciler.models import SolverParameters


def test_two_stage_problem(params):
    terms = {
        "a": {"S1": 4550.0, "S2": 2275.0},
        "b": {"S1": 2400.0, "S2": 600.0},
    }
    out = CoefficientSolver(terms, {"S1": 8000.0, "S2": 3500.0}, params).solve()

    assert out.status == OPTIMAL
    assert out.coefficients["a"] == pytest.approx(5600.0 / 4550.0, abs=1e-6)
    assert out.coefficients["b"] == pytest.approx(1.0, abs=1e-6)
    assert out.overshoot == {}


def test_stage_ceilings_respected(params):
    terms = {
        "x": {"S1": 1000.0},
        "y": {"S1": 1000.0},
        "z": {"S2": 500.0},
    }
    forecasts = {"S1": 2100.0, "S2": 520.0}
    solver = CoefficientSolver(terms, forecasts, params)
    out = solver.solve()

    totals = solver.stage_totals(out.coefficients)
    for stage, limit in forecasts.items():
        assert totals[stage] <= limit * (1 + 1e-6)
    for c in out.coefficients.values():
        assert params.min_coeff - 1e-9 <= c <= params.max_coeff + 1e-9


def test_large_penalty_pins_coefficients_to_one():
    params = SolverParameters(min_coeff=0.7, max_coeff=1.3, penalty=50000.0)
    terms = {"a": {"S1": 1000.0}, "b": {"S1": 500.0}}
    out = CoefficientSolver(terms, {"S1": 5000.0}, params).solve()

    assert out.status == OPTIMAL
    assert out.coefficients["a"] == pytest.approx(1.0)
    assert out.coefficients["b"] == pytest.approx(1.0)


def test_zero_penalty_fills_headroom(params):
    params = SolverParameters(min_coeff=0.7, max_coeff=1.3, penalty=0.0)
    out = CoefficientSolver({"a": {"S1": 1000.0}}, {"S1": 1200.0}, params).solve()
    assert out.coefficients["a"] == pytest.approx(1.2)


def test_infeasible_returns_minimum_coefficients(params):
    out = CoefficientSolver({"a": {"S1": 5000.0}}, {"S1": 2000.0}, params).solve()

    assert out.status == INFEASIBLE
    assert out.coefficients["a"] == pytest.approx(params.min_coeff)
    assert out.overshoot["S1"] == pytest.approx(5000.0 * 0.7 - 2000.0)


def test_infeasible_stage_does_not_drag_down_other_stages(params):
    terms = {"a": {"S1": 5000.0}, "b": {"S2": 1000.0}}
    out = CoefficientSolver(terms, {"S1": 2000.0, "S2": 1200.0}, params).solve()

    assert out.status == INFEASIBLE
    assert out.coefficients["a"] == pytest.approx(0.7)
    assert out.coefficients["b"] == pytest.approx(1.2)


def test_stage_without_forecast_is_unconstrained(params):
    solver = CoefficientSolver({"a": {"S9": 1000.0}}, {"S1": 100.0}, params)
    assert solver.stages == []
    assert solver.unbudgeted == ["S9"]

    out = solver.solve()
    assert out.status == OPTIMAL
    assert out.coefficients["a"] == pytest.approx(params.max_coeff)


def test_empty_problem(params):
    out = CoefficientSolver({}, {"S1": 100.0}, params).solve()
    assert out.status == OPTIMAL
    assert out.coefficients == {}


@pytest.mark.parametrize(
    "bad",
    [
        SolverParameters(min_coeff=1.2, max_coeff=1.1, penalty=10.0),
        SolverParameters(min_coeff=1.0, max_coeff=1.0, penalty=10.0),
        SolverParameters(min_coeff=-0.1, max_coeff=1.1, penalty=10.0),
        SolverParameters(min_coeff=0.7, max_coeff=1.3, penalty=-1.0),
    ],
)
def test_invalid_parameters(bad):
    with pytest.raises(InvalidConfigError):
        CoefficientSolver({"a": {"S1": 1.0}}, {"S1": 1.0}, bad)


# ------------------------------------------------------------
# Reference scenarios
# ------------------------------------------------------------


def test_two_stages_wide_bounds():
    params = SolverParameters(min_coeff=0.4, max_coeff=2.0, penalty=500.0)
    terms = {"s1_item": {"S1": 100 * 80.0}, "s2_item": {"S2": 60 * 100.0}}
    forecasts = {"S1": 10000.0, "S2": 8000.0}
    solver = CoefficientSolver(terms, forecasts, params)
    out = solver.solve()

    assert out.status == OPTIMAL
    assert out.coefficients["s1_item"] == pytest.approx(1.25)
    assert out.coefficients["s2_item"] == pytest.approx(8000.0 / 6000.0)
    totals = solver.stage_totals(out.coefficients)
    for stage, limit in forecasts.items():
        assert limit - totals[stage] >= -1e-6 * limit


def test_single_item_below_minimum_cost_is_infeasible():
    params = SolverParameters(min_coeff=0.4, max_coeff=2.0, penalty=500.0)
    out = CoefficientSolver({"k": {"S1": 100 * 100.0}}, {"S1": 2000.0}, params).solve()

    assert out.status == INFEASIBLE
    assert out.coefficients["k"] == pytest.approx(0.4)


def test_penalty_dominates_headroom():
    params = SolverParameters(min_coeff=0.4, max_coeff=2.0, penalty=50000.0)
    out = CoefficientSolver({"k": {"S1": 100 * 100.0}}, {"S1": 12000.0}, params).solve()

    assert 0.9 <= out.coefficients["k"] <= 1.3


def test_stage_with_forecast_but_no_items_adds_no_row(params):
    solver = CoefficientSolver({"a": {"S1": 1000.0}}, {"S1": 1200.0, "S2": 50.0}, params)
    assert solver.stages == ["S1"]

    A_ub, b_ub, _, _, _ = solver._build_constraints()
    assert A_ub.shape[0] == 1
    assert list(b_ub) == [1200.0]

    out = solver.solve()
    assert out.status == OPTIMAL
    assert out.coefficients["a"] == pytest.approx(1.2)


# ------------------------------------------------------------
# Solver status branches (linprog replaced)
# ------------------------------------------------------------


def _stub_linprog(monkeypatch, *results):
    calls = []

    def fake(*args, **kwargs):
        calls.append(kwargs)
        return results[min(len(calls), len(results)) - 1]

    monkeypatch.setattr(coefficient_solver, "linprog", fake)
    return calls


@pytest.mark.parametrize("status", [1, 4])
def test_limit_with_usable_point_is_feasible(monkeypatch, params, status):
    # x = [c, p, n]; c above max_coeff gets clipped
    point = OptimizeResult(status=status, x=np.array([1.5, 0.5, 0.0]), message="limit reached")
    calls = _stub_linprog(monkeypatch, point)

    out = CoefficientSolver({"a": {"S1": 1000.0}}, {"S1": 5000.0}, params).solve()

    assert out.status == FEASIBLE
    assert out.coefficients["a"] == pytest.approx(params.max_coeff)
    assert out.message == "limit reached"
    assert len(calls) == 1


def test_limit_without_point_is_infeasible(monkeypatch, params):
    failed = OptimizeResult(status=1, x=None, message="limit reached")
    _stub_linprog(monkeypatch, failed)

    out = CoefficientSolver({"a": {"S1": 1000.0}}, {"S1": 5000.0}, params).solve()

    assert out.status == INFEASIBLE
    assert out.coefficients["a"] == pytest.approx(params.min_coeff)


def test_relaxed_failure_falls_back_to_min_coeff(monkeypatch, params):
    infeasible = OptimizeResult(status=2, x=None, message="infeasible")
    calls = _stub_linprog(monkeypatch, infeasible, infeasible)

    terms = {"a": {"S1": 5000.0}, "b": {"S2": 1000.0}}
    out = CoefficientSolver(terms, {"S1": 2000.0, "S2": 1200.0}, params).solve()

    assert len(calls) == 2
    assert out.status == INFEASIBLE
    assert out.coefficients == {"a": pytest.approx(0.7), "b": pytest.approx(0.7)}
    assert out.overshoot == {"S1": pytest.approx(5000.0 * 0.7 - 2000.0)}
