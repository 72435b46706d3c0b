"""Titerplot package exposing Pre/Post titer bar-plot helpers."""

from .barplot_module import (
    DEFAULT_COLORS,
    ChartSpec,
    ChartTheme,
    barplot,
    build_chart_specs,
    multiplot,
    render_chart,
)
from .exceptions import ConfigurationError, InsufficientColorsError
from .pipeline import BarplotConfig, run_barplot, select_strains
from .titer_tables import (
    build_plot_table,
    compute_fourfold_flags,
    load_titer_tables,
    load_titer_workbook,
    match_condition_columns,
    split_titer_table,
    stack_titer_tables,
    titer_scale,
)

__all__ = [
    "DEFAULT_COLORS",
    "ChartSpec",
    "ChartTheme",
    "ConfigurationError",
    "InsufficientColorsError",
    "BarplotConfig",
    "barplot",
    "build_chart_specs",
    "build_plot_table",
    "compute_fourfold_flags",
    "load_titer_tables",
    "load_titer_workbook",
    "match_condition_columns",
    "multiplot",
    "render_chart",
    "run_barplot",
    "select_strains",
    "split_titer_table",
    "stack_titer_tables",
    "titer_scale",
]
