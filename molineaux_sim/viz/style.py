"""Dark theme styling for molineaux-sim diagnostic plots.

Colours for the density trace, maxima, detection limit and histograms,
plus the figure factory and saver shared by ``viz.density``.
"""

from pathlib import Path

import matplotlib
matplotlib.use('Agg')

import matplotlib.pyplot as plt
import numpy as np

# ═══════════════════════════════════════════════════════════════════════
# COLOR PALETTE
# ═══════════════════════════════════════════════════════════════════════

DARK_BG = '#1a1a2e'
DARK_PANEL = '#16213e'
TEXT_COLOR = '#e0e0e0'
GRID_COLOR = '#2a2a4a'

DENSITY_COLOR = '#e94560'     # crimson
MAXIMA_COLOR = '#f39c12'      # amber
LIMIT_COLOR = '#48c9b0'       # teal
HIST_COLOR = '#3498db'        # sky blue

# rcParams applied inside dark_figure(); text colours only, panels are set per axes
_DARK_RC = {
    'text.color': TEXT_COLOR,
    'axes.labelcolor': TEXT_COLOR,
    'axes.titlecolor': TEXT_COLOR,
    'xtick.color': TEXT_COLOR,
    'ytick.color': TEXT_COLOR,
    'axes.edgecolor': GRID_COLOR,
}


# ═══════════════════════════════════════════════════════════════════════
# FIGURE HELPERS
# ═══════════════════════════════════════════════════════════════════════

def style_axes(ax) -> None:
    """Dark panel with a faint grid."""
    ax.set_facecolor(DARK_PANEL)
    ax.title.set_color(TEXT_COLOR)
    ax.grid(True, color=GRID_COLOR, alpha=0.3, linewidth=0.5)


def dark_figure(nrows=1, ncols=1, figsize=(12, 5)):
    """Figure and axes in the dark theme.

    Returns:
        (fig, ax) for a single panel, (fig, ndarray of axes) otherwise.
    """
    with plt.rc_context(_DARK_RC):
        fig, axes = plt.subplots(nrows, ncols, figsize=figsize, facecolor=DARK_BG)
    for ax in np.atleast_1d(axes).flat:
        style_axes(ax)
    return fig, axes


def save_figure(fig, save_path, dpi=150) -> Path:
    """Write a PNG (creating parent directories) and close the figure."""
    path = Path(save_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(path, dpi=dpi, facecolor=fig.get_facecolor(), bbox_inches='tight')
    plt.close(fig)
    return path
