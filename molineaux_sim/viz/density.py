"""Diagnostic plots for density trajectories and harness statistics.

Every function:
  - Returns a matplotlib Figure
  - Has an optional ``save_path`` parameter (saves PNG when given)
  - Uses the shared dark theme from ``molineaux_sim.viz.style``

matplotlib backend is forced to Agg (no display) on import.
"""

from __future__ import annotations

import matplotlib
matplotlib.use('Agg')

from typing import Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np

from molineaux_sim.stats import DETECTION_LIMIT, STAT_NAMES, InfectionStats, find_local_maxima
from molineaux_sim.viz.style import (
    DARK_PANEL,
    DENSITY_COLOR,
    GRID_COLOR,
    HIST_COLOR,
    LIMIT_COLOR,
    MAXIMA_COLOR,
    TEXT_COLOR,
    dark_figure,
    save_figure,
)


def plot_density_trajectory(
    densities: Sequence[float],
    title: str = 'Parasite density',
    detection_limit: float = DETECTION_LIMIT,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Blood-stage density against day (log scale) with local maxima marked.

    Zero densities are left out of the log-scale line.
    """
    dens = np.asarray(densities, dtype=np.float64)
    days = np.arange(len(dens))
    fig, ax = dark_figure(figsize=(12, 5))

    shown = np.where(dens > 0.0, dens, np.nan)
    ax.plot(days, shown, color=DENSITY_COLOR, linewidth=1.2, label='Density')
    maxima = find_local_maxima(dens)
    if len(maxima):
        ax.scatter(maxima, dens[maxima], color=MAXIMA_COLOR, s=18, zorder=3,
                   label=f'Local maxima ({len(maxima)})')
    ax.axhline(detection_limit, color=LIMIT_COLOR, linestyle=':', linewidth=1.5,
               label=f'Detection limit ({detection_limit:g}/µL)')

    if np.any(dens > 0.0):
        ax.set_yscale('log')
    ax.set_xlabel('Blood-stage day', fontsize=12)
    ax.set_ylabel('Parasites / µL', fontsize=12)
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.legend(facecolor=DARK_PANEL, edgecolor=GRID_COLOR,
              labelcolor=TEXT_COLOR, fontsize=9, loc='upper right')

    if save_path:
        save_figure(fig, save_path)
    return fig


def plot_stat_distributions(
    stats: InfectionStats,
    bins: int = 20,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """3×3 histograms of the nine per-run statistics, median marked."""
    fig, axes = dark_figure(3, 3, figsize=(15, 11))
    pct = stats.percentiles()
    for ax, name in zip(axes.flat, STAT_NAMES):
        values = stats.values[name]
        finite = values[np.isfinite(values)]
        if len(finite):
            ax.hist(finite, bins=bins, color=HIST_COLOR, alpha=0.8)
            if np.isfinite(pct[name]['med']):
                ax.axvline(pct[name]['med'], color=MAXIMA_COLOR, linewidth=1.5)
        n_nan = len(values) - len(finite)
        label = f'{name} (NaN: {n_nan})' if n_nan else name
        ax.set_title(label, fontsize=11)
    fig.suptitle(f'Summary statistics over {stats.n_runs} runs',
                 color=TEXT_COLOR, fontsize=14, fontweight='bold')

    if save_path:
        save_figure(fig, save_path)
    return fig
