# boq_reconciler/tests/test_visualizer.py

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402

from boq_reconciler.budget_visualizer import IterationVisualizer  # noqa: E402
from boq_reconciler.iteration import optimize  # noqa: E402


def test_figures_render(matcher, documents, catalogue, forecasts, params):
    match_result = matcher.match_all(documents, catalogue)
    first = optimize(match_result, forecasts, params)
    second = optimize(match_result, forecasts, params, iteration_number=2, previous=first)

    viz = IterationVisualizer(second, [first, second])

    fig = viz.plot_stage_comparison()
    assert [t.get_text() for t in fig.axes[0].get_xticklabels()] == ["S1", "S2"]

    fig_hist = viz.plot_coefficient_distribution()
    assert fig_hist.axes[0].get_xlabel() == "Coefficient"

    fig_gap = viz.plot_gap_history()
    xs = list(fig_gap.axes[0].lines[0].get_xdata())
    assert xs == [1, 2]

    plt.close("all")


def test_history_defaults_to_current(matcher, documents, catalogue, forecasts, params):
    result = optimize(matcher.match_all(documents, catalogue), forecasts, params)
    viz = IterationVisualizer(result)
    assert viz.history == [result]
    plt.close("all")
