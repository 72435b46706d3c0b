#!/usr/bin/env python3
"""Chart specifications and matplotlib rendering for Pre/Post titer bar plots."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Mapping, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.axes import Axes
from matplotlib.figure import Figure
from matplotlib.patches import Patch

from .exceptions import ConfigurationError, InsufficientColorsError
from .titer_tables import (
    CONDITION_COL,
    FLAG_COL,
    PLOT_CONDITIONS,
    STRAIN_COL,
    TITER_COL,
    build_plot_table,
    compute_fourfold_flags,
    stack_titer_tables,
    titer_scale,
)

DEFAULT_COLORS: tuple[str, ...] = (
    "#A6CEE3",
    "#1F78B4",
    "#B2DF8A",
    "#33A02C",
    "#FB9A99",
    "#E31A1C",
    "#FDBF6F",
    "#FF7F00",
)
DEFAULT_KEY = "all"
MISSING_GROUP_LEVEL = "NA"
FILL_COL = "Day.Strain"
REFERENCE_TITER = float(np.log2(40))
OUTLINE_COLORS: Dict[bool, str] = {False: "white", True: "black"}
OUTLINE_NA_COLOR = "#7F7F7F"
REFERENCE_LINE_COLOR = "#333333"
GRID_COLOR = "#EBEBEB"


@dataclass(frozen=True)
class ChartTheme:
    """Font sizes and tick styling shared by every chart."""

    strip_text_size: float = 16.0
    axis_text_size: float = 14.0
    x_tick_rotation: float = 60.0
    x_tick_ha: str = "right"
    title_size: float = 20.0
    title_weight: str = "bold"


@dataclass(frozen=True, eq=False)
class ChartSpec:
    """Data, encodings and scales for one grouped Pre/Post bar chart."""

    data: pd.DataFrame
    x: str
    fill_levels: tuple[str, ...]
    fill_colors: Mapping[str, str]
    y_limits: tuple[float, float] | None
    y_breaks: tuple[float, ...]
    y_tick_labels: tuple[float, ...]
    x_label: str
    facet: str | None = None
    facet_level: str | None = None
    blank: bool = False
    y: str = TITER_COL
    fill_column: str = FILL_COL
    fill_legend_title: str = "Day.Strain"
    outline_column: str = FLAG_COL
    outline_colors: Mapping[bool, str] = field(
        default_factory=lambda: dict(OUTLINE_COLORS)
    )
    outline_na_color: str = OUTLINE_NA_COLOR
    outline_legend_title: str = "4 Fold Change"
    show_outline_legend: bool = False
    reference_line: float = REFERENCE_TITER
    reference_line_color: str = REFERENCE_LINE_COLOR
    reference_line_alpha: float = 0.5
    y_label: str = "HAI Titer"
    free_x: bool = True
    drop_empty_facets: bool = True
    theme: ChartTheme = field(default_factory=ChartTheme)

    @property
    def bar_count(self) -> int:
        return int(len(self.data))

    def outline_color(self, flag: object) -> str:
        """Return the bar edge color for a four-fold flag (``<NA>`` allowed)."""
        if pd.isna(flag):
            return self.outline_na_color
        return self.outline_colors[bool(flag)]


def _fill_levels(plot_df: pd.DataFrame) -> tuple[str, ...]:
    strains = sorted(plot_df[STRAIN_COL].dropna().astype(str).unique())
    return tuple(
        f"{condition}.{strain}" for strain in strains for condition in PLOT_CONDITIONS
    )


def _fill_labels(plot_df: pd.DataFrame) -> pd.Series:
    return (
        plot_df[CONDITION_COL].astype(str) + "." + plot_df[STRAIN_COL].astype(str)
    )


def _validate_group_var(plot_df: pd.DataFrame, group_var: object) -> None:
    if not isinstance(group_var, str):
        raise ConfigurationError(
            "`group_var` must be a single column name, "
            f"got {type(group_var).__name__}: {group_var!r}"
        )
    if group_var not in plot_df.columns:
        raise ConfigurationError(
            f"`group_var` '{group_var}' is not a column of the titer tables."
        )


def _resolve_fill_colors(
    plot_df: pd.DataFrame,
    n_tables: int,
    colors: Sequence[str],
) -> Dict[str, str]:
    colors = list(colors)
    n_required = 2 * n_tables
    if len(colors) < n_required:
        raise InsufficientColorsError(
            f"{n_tables} titer table(s) need at least {n_required} colors "
            f"(Pre and Post per strain); got {len(colors)}."
        )
    palette = colors[:n_required]
    fill_levels = _fill_levels(plot_df)
    if len(fill_levels) > len(palette):
        raise InsufficientColorsError(
            f"Data contains {len(fill_levels)} Pre/Post strain levels but only "
            f"{len(palette)} colors are available."
        )
    return dict(zip(fill_levels, palette))


def build_chart_specs(
    plot_df: pd.DataFrame,
    n_tables: int,
    subject_col: str = "SubjectID",
    group_var: str | None = None,
    colors: Sequence[str] = DEFAULT_COLORS,
) -> Dict[str, ChartSpec]:
    """
    Build one chart spec per level of ``group_var`` (or a single ``"all"`` spec).

    Levels follow the categorical order of the grouping column; a level with no
    rows still gets a blank spec so layouts keep one slot per level, and rows
    without a group value are collected under a last ``"NA"`` level. Only the
    last level keeps its x-axis label. The y scale and fill colors are resolved
    once from the whole table so every chart is drawn on the same axes.
    """
    if group_var is not None:
        _validate_group_var(plot_df, group_var)
    fill_colors = _resolve_fill_colors(plot_df, n_tables, colors)

    plot_df = plot_df.copy()
    plot_df[FILL_COL] = _fill_labels(plot_df)
    y_limits, y_breaks, y_tick_labels = titer_scale(plot_df)
    shared = dict(
        x=subject_col,
        fill_levels=tuple(fill_colors),
        fill_colors=fill_colors,
        y_limits=y_limits,
        y_breaks=y_breaks,
        y_tick_labels=y_tick_labels,
    )

    if group_var is None:
        return {DEFAULT_KEY: ChartSpec(data=plot_df, x_label=subject_col, **shared)}

    groups = plot_df[group_var]
    if not isinstance(groups.dtype, pd.CategoricalDtype):
        groups = groups.astype("category")
    # Missing group values get their own trailing level.
    if groups.isna().any():
        if MISSING_GROUP_LEVEL not in groups.cat.categories:
            groups = groups.cat.add_categories([MISSING_GROUP_LEVEL])
        groups = groups.fillna(MISSING_GROUP_LEVEL)
    plot_df[group_var] = groups
    levels = list(plot_df[group_var].cat.categories)

    specs: Dict[str, ChartSpec] = {}
    for idx, level in enumerate(levels):
        subset = plot_df.loc[plot_df[group_var] == level].reset_index(drop=True)
        blank = subset.empty
        specs[str(level)] = ChartSpec(
            data=subset,
            x_label=subject_col if idx == len(levels) - 1 else "",
            facet=None if blank else group_var,
            facet_level=str(level),
            blank=blank,
            **shared,
        )
    return specs


def _observed_subjects(spec: ChartSpec) -> list[object]:
    column = spec.data[spec.x]
    if isinstance(column.dtype, pd.CategoricalDtype):
        categories = list(column.cat.categories)
        if not spec.free_x:
            return categories
        present = set(column.dropna())
        return [value for value in categories if value in present]
    return sorted(column.dropna().unique())


def _expanded_limits(limits: tuple[float, float]) -> tuple[float, float]:
    lower, upper = limits
    pad = 0.05 * (upper - lower) if upper > lower else 0.5
    return lower - pad, upper + pad


def _format_tick_label(value: float) -> str:
    return f"{value:g}"


def render_chart(spec: ChartSpec, ax: Axes) -> Axes:
    """Draw ``spec`` on ``ax`` as dodged bars, one group of bars per subject."""
    theme = spec.theme
    subjects = [] if spec.blank else _observed_subjects(spec)
    positions = {subject: idx for idx, subject in enumerate(subjects)}

    present_levels: list[str] = []
    if not spec.blank and not spec.data.empty:
        fills = spec.data[spec.fill_column]
        present_levels = [level for level in spec.fill_levels if (fills == level).any()]

    n_levels = max(len(present_levels), 1)
    width = 0.9 / n_levels
    for level_idx, level in enumerate(present_levels):
        rows = spec.data.loc[
            (spec.data[spec.fill_column] == level)
            & spec.data[spec.y].notna()
            & spec.data[spec.x].isin(list(positions))
        ]
        if rows.empty:
            continue
        offset = (level_idx - (n_levels - 1) / 2) * width
        x_values = [positions[subject] + offset for subject in rows[spec.x]]
        ax.bar(
            x_values,
            rows[spec.y].to_numpy(dtype=float),
            width=width,
            color=spec.fill_colors[level],
            edgecolor=[spec.outline_color(flag) for flag in rows[spec.outline_column]],
            linewidth=1.0,
            zorder=2,
        )

    if not spec.blank:
        ax.axhline(
            spec.reference_line,
            color=spec.reference_line_color,
            alpha=spec.reference_line_alpha,
            zorder=1,
        )

    if spec.y_limits is not None:
        ax.set_ylim(*_expanded_limits(spec.y_limits))
        ax.set_yticks(list(spec.y_breaks))
        ax.set_yticklabels([_format_tick_label(v) for v in spec.y_tick_labels])

    ax.set_xticks(range(len(subjects)))
    ax.set_xticklabels(
        [str(subject) for subject in subjects],
        rotation=theme.x_tick_rotation,
        ha=theme.x_tick_ha,
    )
    if subjects:
        ax.set_xlim(-0.5, len(subjects) - 0.5)
    ax.tick_params(labelsize=theme.axis_text_size)

    title_font = {"fontsize": theme.title_size, "fontweight": theme.title_weight}
    ax.set_xlabel(spec.x_label, **title_font)
    ax.set_ylabel(spec.y_label, **title_font)
    if spec.facet is not None:
        ax.set_title(str(spec.facet_level), fontsize=theme.strip_text_size)

    ax.grid(True, color=GRID_COLOR, zorder=0)
    ax.set_axisbelow(True)

    if present_levels:
        handles = [
            Patch(facecolor=spec.fill_colors[level], label=level)
            for level in present_levels
        ]
        legend = ax.legend(
            handles=handles,
            title=spec.fill_legend_title,
            loc="upper left",
            bbox_to_anchor=(1.01, 1.0),
            frameon=False,
        )
        legend.get_title().set_fontsize(theme.title_size)
        legend.get_title().set_fontweight(theme.title_weight)
    return ax


def multiplot(
    charts: Iterable[ChartSpec],
    cols: int = 1,
    figsize: tuple[float, float] | None = None,
) -> Figure:
    """
    Lay charts out on a grid with ``cols`` columns, filling column by column.
    """
    charts = list(charts)
    if cols < 1:
        raise ValueError("cols must be at least 1")
    if not charts:
        raise ValueError("No charts to lay out.")

    n_rows = math.ceil(len(charts) / cols)
    if figsize is None:
        figsize = (10.0 * cols, 6.0 * n_rows)
    fig, axes = plt.subplots(n_rows, cols, figsize=figsize, squeeze=False)

    used: set[tuple[int, int]] = set()
    for idx, spec in enumerate(charts):
        row, col = idx % n_rows, idx // n_rows
        render_chart(spec, axes[row][col])
        used.add((row, col))

    for row in range(n_rows):
        for col in range(cols):
            if (row, col) not in used:
                fig.delaxes(axes[row][col])

    fig.tight_layout()
    return fig


def barplot(
    dat_list: Mapping[str, pd.DataFrame],
    subject_col: str = "SubjectID",
    cols: int = 1,
    group_var: str | None = None,
    colors: Sequence[str] = DEFAULT_COLORS,
    output_path: Path | None = None,
    show: bool = False,
) -> Dict[str, ChartSpec]:
    """
    Plot baseline and post-exposure titers for every subject and strain.

    Bars are filled by Pre/Post and strain; subjects with at least a four-fold
    rise get a black outline. With ``group_var`` one chart is produced per
    group level. The charts are laid out with ``cols`` columns, written to
    ``output_path`` as a PDF when given, and returned keyed by group level
    (``"all"`` when ungrouped).
    """
    long_df = stack_titer_tables(dat_list, subject_col=subject_col)
    flags = compute_fourfold_flags(long_df, subject_col=subject_col)
    plot_df = build_plot_table(long_df, flags, subject_col=subject_col)
    specs = build_chart_specs(
        plot_df,
        n_tables=len(dat_list),
        subject_col=subject_col,
        group_var=group_var,
        colors=colors,
    )

    fig = multiplot(specs.values(), cols=cols)
    if output_path is not None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, format="pdf", bbox_inches="tight")
    if show:
        plt.show()
    plt.close(fig)
    return specs


__all__ = [
    "DEFAULT_COLORS",
    "DEFAULT_KEY",
    "ChartSpec",
    "ChartTheme",
    "barplot",
    "build_chart_specs",
    "multiplot",
    "render_chart",
]
