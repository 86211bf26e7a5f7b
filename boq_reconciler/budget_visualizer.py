# boq_reconciler/budget_visualizer.py
# Visualization for one iteration: stage forecast vs proposed, coefficients, gap history

from typing import Optional, Sequence

import matplotlib.pyplot as plt

from .models import IterationResult


class IterationVisualizer:
    """
    Generates:
    |-- Visualization Panel
    |     |-- Stage Forecast vs Proposed (Bar Chart)
    |     |-- Coefficient Distribution (Histogram)
    |     |-- Gap History across iterations (Line Chart)

    Output: Matplotlib figures (can be rendered inside Streamlit or saved)
    """

    def __init__(self, result: IterationResult, history: Optional[Sequence[IterationResult]] = None):
        self.result = result
        self.history = list(history) if history else [result]

    # ---------------------------------------------------------
    # Stage Forecast vs Proposed
    # ---------------------------------------------------------
    def plot_stage_comparison(self):
        stages = list(self.result.per_stage.values())
        labels = [s.stage_code for s in stages]
        forecast = [s.forecast for s in stages]
        proposed = [s.proposed for s in stages]

        x = range(len(labels))

        fig, ax = plt.subplots(figsize=(10, 5))
        ax.bar(x, forecast, width=0.4, label="Forecast")
        ax.bar(
            [i + 0.4 for i in x],
            proposed,
            width=0.4,
            label="Proposed",
            color=["tab:green" if s.ok else "tab:red" for s in stages],
        )

        ax.set_xticks([i + 0.2 for i in x])
        ax.set_xticklabels(labels, rotation=45)
        ax.set_title(f"Iteration {self.result.iteration_number}: Forecast vs Proposed per Stage")
        ax.legend()

        return fig

    # ---------------------------------------------------------
    # Coefficient Distribution
    # ---------------------------------------------------------
    def plot_coefficient_distribution(self, bins: int = 20):
        coeffs = [a.coefficient for a in self.result.coefficients.values()]
        params = self.result.parameters

        fig, ax = plt.subplots(figsize=(8, 4))
        ax.hist(coeffs, bins=bins, range=(params.min_coeff, params.max_coeff))
        ax.axvline(1.0, color="black", linestyle="--", linewidth=1)
        ax.set_xlabel("Coefficient")
        ax.set_ylabel("Positions")
        ax.set_title("Coefficient Distribution")

        return fig

    # ---------------------------------------------------------
    # Gap History
    # ---------------------------------------------------------
    def plot_gap_history(self):
        numbers = [it.iteration_number for it in self.history]
        gaps = [it.gap_percent for it in self.history]

        fig, ax = plt.subplots(figsize=(8, 4))
        ax.plot(numbers, gaps, marker="o")
        ax.axhline(0.0, color="black", linewidth=1)
        ax.set_xticks(numbers)
        ax.set_xlabel("Iteration")
        ax.set_ylabel("Gap (% of forecast)")
        ax.set_title("Gap History")

        return fig


# End of file
