"""Dark theme styling for StoX plots.

Provides consistent colors and theme-application helpers so every plot
has the same look.
"""

import matplotlib.pyplot as plt
import numpy as np

# ═══════════════════════════════════════════════════════════════════════
# COLOR PALETTE
# ═══════════════════════════════════════════════════════════════════════

DARK_BG = '#1a1a2e'
DARK_PANEL = '#16213e'
TEXT_COLOR = '#e0e0e0'
GRID_COLOR = '#2a2a4a'

STAGE_PALETTE = [
    '#48c9b0',  # teal
    '#f39c12',  # amber
    '#3498db',  # sky blue
    '#e94560',  # crimson
    '#2ecc71',  # green
    '#9b59b6',  # purple
    '#f1c40f',  # yellow
    '#1abc9c',  # turquoise
]


def stage_color(i: int) -> str:
    """Palette color for the i-th reported stage (cycles)."""
    return STAGE_PALETTE[i % len(STAGE_PALETTE)]


# ═══════════════════════════════════════════════════════════════════════
# THEME HELPERS
# ═══════════════════════════════════════════════════════════════════════

def apply_dark_theme(fig=None, ax=None):
    """Apply dark theme to a matplotlib Figure and/or Axes."""
    if fig is not None:
        fig.patch.set_facecolor(DARK_BG)
    if ax is not None:
        ax.set_facecolor(DARK_PANEL)
        ax.tick_params(colors=TEXT_COLOR)
        ax.xaxis.label.set_color(TEXT_COLOR)
        ax.yaxis.label.set_color(TEXT_COLOR)
        ax.title.set_color(TEXT_COLOR)
        for spine in ax.spines.values():
            spine.set_color(GRID_COLOR)
        ax.grid(True, color=GRID_COLOR, alpha=0.3, linewidth=0.5)


def dark_figure(nrows=1, ncols=1, figsize=None, **kwargs):
    """Create a Figure + Axes grid with the dark theme applied.

    Always returns a 2-D ndarray of Axes (squeeze=False) so callers can
    index panels uniformly.
    """
    if figsize is None:
        figsize = (5 * ncols, 3.5 * nrows)
    fig, axes = plt.subplots(nrows, ncols, figsize=figsize, squeeze=False,
                             **kwargs)
    apply_dark_theme(fig=fig)
    for a in np.asarray(axes).flat:
        apply_dark_theme(ax=a)
    return fig, axes


def save_figure(fig, save_path, dpi=150):
    """Save a figure with tight layout and dark background, then close it."""
    fig.tight_layout()
    fig.savefig(save_path, dpi=dpi, facecolor=fig.get_facecolor(),
                edgecolor='none', bbox_inches='tight')
    plt.close(fig)
