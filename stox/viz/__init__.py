"""StoX visualization library.

Modules:
  - style: Dark theme colours and helpers
  - results: Run output plots (stage distributions, iteration traces)
"""

from stox.viz.style import (  # noqa: F401
    DARK_BG,
    DARK_PANEL,
    GRID_COLOR,
    STAGE_PALETTE,
    TEXT_COLOR,
    apply_dark_theme,
    dark_figure,
    save_figure,
    stage_color,
)

from stox.viz.results import (  # noqa: F401
    plot_iteration_traces,
    plot_stage_distributions,
)
