"""Run result visualizations for StoX.

Every function:
  - Accepts a SimulationResult as input
  - Returns a matplotlib Figure
  - Has an optional ``save_path`` parameter (saves PNG when given)
  - Uses the shared dark theme from ``stox.viz.style``

matplotlib backend is forced to Agg (no display) on import.
"""

from __future__ import annotations

import matplotlib
matplotlib.use('Agg')

import math
from typing import Optional, TYPE_CHECKING

import matplotlib.pyplot as plt
import numpy as np

from stox.viz.style import (
    TEXT_COLOR,
    dark_figure,
    save_figure,
    stage_color,
)

if TYPE_CHECKING:
    from stox.model import SimulationResult


def _grid(n: int, max_cols: int = 3):
    ncols = max(1, min(n, max_cols))
    nrows = max(1, math.ceil(n / ncols))
    return nrows, ncols


def _no_data(ax, text: str = "No reported stages") -> None:
    ax.text(0.5, 0.5, text, ha='center', va='center',
            color=TEXT_COLOR, transform=ax.transAxes)


# ═══════════════════════════════════════════════════════════════════════
# 1. STAGE DISTRIBUTIONS
# ═══════════════════════════════════════════════════════════════════════

def plot_stage_distributions(
    result: 'SimulationResult',
    bins: int = 30,
    log_x: bool = False,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Histogram of the population reached by each reported stage.

    One panel per reported stage, with the mean and the 2.5-97.5 %
    bootstrap interval marked.

    Args:
        result: SimulationResult.
        bins: Histogram bins.
        log_x: Plot log10(population); useful when eps floors produce
            values many orders of magnitude below the bulk.
        save_path: Optional path to save the figure.

    Returns:
        matplotlib Figure.
    """
    matrix = result.matrix
    n = len(matrix.stage_ids)
    nrows, ncols = _grid(n)
    fig, axes = dark_figure(nrows, ncols)
    flat = list(axes.flat)

    if n == 0 or matrix.n_iterations == 0:
        _no_data(flat[0], "No reported stages" if n == 0 else "No iterations")
        sids = []
    else:
        sids = matrix.stage_ids
    summary = matrix.summary()
    values = matrix.values

    for j, sid in enumerate(sids):
        ax = flat[j]
        col = values[:, j]
        stats = summary[sid]
        if log_x:
            col = np.log10(np.clip(col, np.finfo(float).tiny, None))
            marks = [np.log10(max(v, np.finfo(float).tiny))
                     for v in (stats['mean'], stats['p2_5'], stats['p97_5'])]
            ax.set_xlabel('log10(population)')
        else:
            marks = [stats['mean'], stats['p2_5'], stats['p97_5']]
            ax.set_xlabel('Population')
        color = stage_color(j)
        ax.hist(col, bins=bins, color=color, alpha=0.8)
        ax.axvline(marks[0], color=TEXT_COLOR, linewidth=1.2)
        for m in marks[1:]:
            ax.axvline(m, color=TEXT_COLOR, linewidth=0.8, linestyle='--')
        ax.set_title(f"{sid} {stats['name']}  (eff. {stats['effectiveness']:.3g})",
                     fontsize=10)
        ax.set_ylabel('Iterations')

    for ax in flat[max(n, 1):]:
        ax.set_visible(False)

    if save_path:
        save_figure(fig, save_path)
    return fig


# ═══════════════════════════════════════════════════════════════════════
# 2. ITERATION TRACES
# ═══════════════════════════════════════════════════════════════════════

def plot_iteration_traces(
    result: 'SimulationResult',
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Population reached by every reported stage at each iteration.

    Args:
        result: SimulationResult.
        save_path: Optional path to save the figure.

    Returns:
        matplotlib Figure.
    """
    matrix = result.matrix
    fig, axes = dark_figure(1, 1, figsize=(10, 5))
    ax = axes[0, 0]

    if not matrix.stage_ids or matrix.n_iterations == 0:
        _no_data(ax)
    else:
        iters = matrix.iterations
        values = matrix.values
        for j, (sid, name) in enumerate(zip(matrix.stage_ids, matrix.stage_names)):
            ax.plot(iters, values[:, j], color=stage_color(j),
                    linewidth=0.8, label=f"{sid} {name}")
        ax.legend(fontsize=8, facecolor='none', labelcolor=TEXT_COLOR)
    ax.set_xlabel('Iteration')
    ax.set_ylabel('Population')
    ax.set_title(f"Run {result.status.value}: N={matrix.initial_population:g}, "
                 f"eps={matrix.eps:g}")

    if save_path:
        save_figure(fig, save_path)
    return fig
