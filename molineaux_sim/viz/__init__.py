"""molineaux-sim visualization library.

Modules:
  - style: Dark theme colours and figure helpers
  - density: Density trajectories and harness statistic distributions
"""

from molineaux_sim.viz.style import (  # noqa: F401
    DARK_BG,
    DARK_PANEL,
    TEXT_COLOR,
    dark_figure,
    save_figure,
    style_axes,
)

from molineaux_sim.viz.density import (  # noqa: F401
    plot_density_trajectory,
    plot_stat_distributions,
)
