#!/usr/bin/env python3
"""Minimal helpers for loading and reshaping paired Pre/Post titer tables."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Mapping, Sequence

import numpy as np
import pandas as pd

from .exceptions import ConfigurationError

STRAIN_COL = "Strain"
CONDITION_COL = "Condition"
TITER_COL = "titer"
FLAG_COL = "fourFC"
FC_CONDITION = "FC"
PLOT_CONDITIONS = ("Pre", "Post")
FOURFOLD_THRESHOLD = float(np.log2(4))

# Recognised titer columns as (token, match kind), in stacking order.
CONDITION_COLUMN_PATTERNS: tuple[tuple[str, str], ...] = (
    ("Pre", "prefix"),
    ("Post", "prefix"),
    ("FC", "exact"),
)


def _matches_condition(column: object, token: str, kind: str) -> bool:
    if not isinstance(column, str):
        return False
    if kind == "prefix":
        return column.startswith(token)
    return column == token


def match_condition_columns(columns: Sequence[object]) -> list[str]:
    """Return the titer columns found in ``columns``, in pattern order."""
    matched: list[str] = []
    for token, kind in CONDITION_COLUMN_PATTERNS:
        for column in columns:
            if column not in matched and _matches_condition(column, token, kind):
                matched.append(column)
    return matched


def _with_strain_column(frame: pd.DataFrame, strain: str) -> pd.DataFrame:
    if STRAIN_COL in frame.columns:
        return frame
    frame = frame.copy()
    frame[STRAIN_COL] = strain
    return frame


def _normalize_strain_column(frame: pd.DataFrame, strain_col: str) -> pd.DataFrame:
    if strain_col == STRAIN_COL or strain_col not in frame.columns:
        return frame
    return frame.rename(columns={strain_col: STRAIN_COL})


def _drop_unnamed_empty_columns(frame: pd.DataFrame) -> pd.DataFrame:
    """Remove spreadsheet padding columns (``Unnamed: n`` with no values)."""
    padding = [
        col
        for col in frame.columns
        if str(col).startswith("Unnamed:") and frame[col].isna().all()
    ]
    return frame.drop(columns=padding)


def load_titer_workbook(
    workbook_path: Path,
    strain_col: str = STRAIN_COL,
) -> Dict[str, pd.DataFrame]:
    """Return one titer table per worksheet, keyed by the sheet name."""
    workbook_path = Path(workbook_path)
    if not workbook_path.exists():
        raise FileNotFoundError(f"No such workbook: {workbook_path}")

    tables: Dict[str, pd.DataFrame] = {}
    with pd.ExcelFile(workbook_path) as excel:
        for sheet in excel.sheet_names:
            frame = pd.read_excel(excel, sheet_name=sheet)
            frame = _drop_unnamed_empty_columns(frame.dropna(axis=0, how="all"))
            if frame.empty:
                continue
            frame = _normalize_strain_column(frame, strain_col)
            tables[str(sheet)] = _with_strain_column(frame, str(sheet)).reset_index(
                drop=True
            )

    if not tables:
        raise ValueError(f"No titer tables found in {workbook_path.name}")
    return tables


def split_titer_table(
    frame: pd.DataFrame,
    strain_col: str = STRAIN_COL,
) -> Dict[str, pd.DataFrame]:
    """Split a single table holding every strain into per-strain tables."""
    if strain_col not in frame.columns:
        raise ConfigurationError(
            f"Titer table has no strain column '{strain_col}'. "
            "Pass the correct column via `strain_col`."
        )
    frame = _normalize_strain_column(frame, strain_col)
    return {
        str(strain): subset.reset_index(drop=True)
        for strain, subset in frame.groupby(STRAIN_COL, sort=True)
    }


def load_titer_tables(
    data_path: Path,
    strain_col: str = STRAIN_COL,
) -> Dict[str, pd.DataFrame]:
    """Load per-strain titer tables from an Excel workbook or a CSV file."""
    data_path = Path(data_path)
    suffix = data_path.suffix.lower()
    if suffix in {".xlsx", ".xls"}:
        return load_titer_workbook(data_path, strain_col=strain_col)
    if suffix == ".csv":
        if not data_path.exists():
            raise FileNotFoundError(f"No such file: {data_path}")
        return split_titer_table(pd.read_csv(data_path), strain_col=strain_col)
    raise ValueError(
        f"Unsupported titer file '{data_path.name}'; expected .xlsx, .xls or .csv"
    )


def stack_titer_tables(
    dat_list: Mapping[str, pd.DataFrame],
    subject_col: str = "SubjectID",
) -> pd.DataFrame:
    """
    Concatenate per-strain tables and melt their Pre/Post/FC columns.

    The result has one row per original row and titer column, with the column
    name in ``Condition`` and its value in ``titer``. Every other column is
    carried onto each row unchanged. Tables without a ``Strain`` column take
    their key in ``dat_list`` as the strain label.
    """
    if not dat_list:
        raise ConfigurationError("At least one titer table is required.")

    missing = [
        str(name) for name, frame in dat_list.items() if subject_col not in frame.columns
    ]
    if missing:
        raise ConfigurationError(
            f"Invalid subject column name '{subject_col}': missing from "
            f"{', '.join(missing)}. Pass a valid column via `subject_col`."
        )

    combined = pd.concat(
        [_with_strain_column(frame, str(name)) for name, frame in dat_list.items()],
        ignore_index=True,
        sort=False,
    )
    condition_cols = match_condition_columns(combined.columns)
    if not condition_cols:
        raise ConfigurationError(
            "No titer columns found; expected columns starting with 'Pre' or "
            "'Post', or named 'FC'."
        )

    combined = _numeric_titer_columns(combined, condition_cols)
    id_cols = [col for col in combined.columns if col not in condition_cols]
    return combined.melt(
        id_vars=id_cols,
        value_vars=condition_cols,
        var_name=CONDITION_COL,
        value_name=TITER_COL,
    )


def _numeric_titer_columns(frame: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    """Convert titer columns to floats, rejecting cells that are not numbers."""
    frame = frame.copy()
    problems = []
    for col in columns:
        values = pd.to_numeric(frame[col], errors="coerce")
        invalid = frame[col].notna() & values.isna()
        if invalid.any():
            examples = ", ".join(repr(v) for v in frame.loc[invalid, col].unique()[:3])
            problems.append(f"'{col}' ({examples})")
        frame[col] = values.astype(float)
    if problems:
        raise ConfigurationError(
            f"Non-numeric titer values in column(s) {'; '.join(problems)}. "
            "Titers must be log2 numbers; leave missing values empty."
        )
    return frame


def compute_fourfold_flags(
    long_df: pd.DataFrame,
    subject_col: str = "SubjectID",
) -> pd.DataFrame:
    """Flag subject/strain pairs whose log2 fold change is at least log2(4)."""
    fc_rows = long_df.loc[
        long_df[CONDITION_COL] == FC_CONDITION, [subject_col, STRAIN_COL, TITER_COL]
    ].copy()
    # Nullable floats keep a missing FC as <NA> instead of False.
    fc_rows[FLAG_COL] = fc_rows[TITER_COL].astype("Float64") >= FOURFOLD_THRESHOLD
    return fc_rows[[subject_col, STRAIN_COL, FLAG_COL]].reset_index(drop=True)


def _sorted_categorical(values: pd.Series) -> pd.Categorical:
    """Categorical with numeric ids first (numeric order), then string ids."""
    levels = sorted(
        values.dropna().unique(),
        key=lambda value: (isinstance(value, str), value),
    )
    return pd.Categorical(values, categories=levels)


def build_plot_table(
    long_df: pd.DataFrame,
    flags: pd.DataFrame,
    subject_col: str = "SubjectID",
) -> pd.DataFrame:
    """
    Attach the four-fold flag to every Pre/Post row.

    ``Condition`` becomes an ordered ``Pre < Post`` categorical and the subject
    column a categorical with its ids in sorted order.
    """
    merged = long_df.merge(flags, on=[subject_col, STRAIN_COL], how="outer")
    plot_df = merged.loc[merged[CONDITION_COL].isin(PLOT_CONDITIONS)].copy()
    plot_df[CONDITION_COL] = pd.Categorical(
        plot_df[CONDITION_COL], categories=list(PLOT_CONDITIONS), ordered=True
    )
    plot_df[subject_col] = _sorted_categorical(plot_df[subject_col])
    plot_df[FLAG_COL] = plot_df[FLAG_COL].astype("boolean")
    return plot_df.reset_index(drop=True)


def titer_scale(
    plot_df: pd.DataFrame,
) -> tuple[tuple[float, float] | None, tuple[float, ...], tuple[float, ...]]:
    """
    Return y limits, unit-spaced breaks and linear-scale labels for log2 titers.

    Breaks run ``lo, lo + 1, ...`` up to the maximum; each label is
    ``2 ** break``.
    """
    titers = pd.to_numeric(plot_df[TITER_COL], errors="coerce").dropna()
    if titers.empty:
        return None, (), ()

    lower = float(titers.min())
    upper = float(titers.max())
    n_breaks = int(np.floor(upper - lower + 1e-10)) + 1
    breaks = tuple(lower + float(step) for step in range(n_breaks))
    labels = tuple(2.0**value for value in breaks)
    return (lower, upper), breaks, labels


__all__ = [
    "CONDITION_COLUMN_PATTERNS",
    "FOURFOLD_THRESHOLD",
    "build_plot_table",
    "compute_fourfold_flags",
    "load_titer_tables",
    "load_titer_workbook",
    "match_condition_columns",
    "split_titer_table",
    "stack_titer_tables",
    "titer_scale",
]
