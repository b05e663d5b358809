"""Smoke tests for stox.viz — figures build and save without a display."""

import matplotlib
matplotlib.use('Agg')

import matplotlib.pyplot as plt
import pytest

from stox.casting import CastingRegistry
from stox.model import run_simulation
from stox.tree import StageTree
from stox.types import SimulationParameters
from stox.viz import (
    STAGE_PALETTE,
    dark_figure,
    plot_iteration_traces,
    plot_stage_distributions,
    stage_color,
)


@pytest.fixture(autouse=True)
def _close_figures():
    yield
    plt.close('all')


@pytest.fixture
def result(sample_model):
    tree, reg = sample_model
    return run_simulation(tree, reg, SimulationParameters(1000.0, 40, 1e-4), seed=3)


class TestStyle:
    def test_palette_cycles(self):
        assert stage_color(0) == STAGE_PALETTE[0]
        assert stage_color(len(STAGE_PALETTE)) == STAGE_PALETTE[0]

    def test_dark_figure_is_2d(self):
        fig, axes = dark_figure(1, 1)
        assert axes.shape == (1, 1)


class TestResultPlots:
    def test_distributions(self, result):
        fig = plot_stage_distributions(result)
        visible = [ax for ax in fig.axes if ax.get_visible()]
        assert len(visible) == 4

    def test_distributions_log_x(self, result, tmp_path):
        path = tmp_path / "dist.png"
        plot_stage_distributions(result, log_x=True, save_path=str(path))
        assert path.exists()

    def test_traces(self, result, tmp_path):
        path = tmp_path / "traces.png"
        fig = plot_iteration_traces(result, save_path=str(path))
        assert path.exists()
        assert len(fig.axes[0].lines) == 4

    def test_no_reported_stages(self):
        tree = StageTree()
        tree.set_kind(tree.root, "Success")
        result = run_simulation(tree, CastingRegistry(),
                                SimulationParameters(1.0, 2, 1e-4), seed=0)
        plot_stage_distributions(result)
        plot_iteration_traces(result)
