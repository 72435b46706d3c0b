"""High-level pipeline for turning a titer export into bar-plot PDFs."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Sequence

import pandas as pd

from .barplot_module import DEFAULT_COLORS, ChartSpec, barplot
from .exceptions import ConfigurationError
from .titer_tables import STRAIN_COL, load_titer_tables


@dataclass
class BarplotConfig:
    """User-tunable knobs for the titer bar-plot pipeline."""

    data_path: Path
    output_path: Path = Path("plots/titer_barplot.pdf")
    subject_col: str = "SubjectID"
    strain_col: str = STRAIN_COL
    cols: int = 1
    group_var: str | None = None
    colors: Sequence[str] = DEFAULT_COLORS
    strains: Sequence[str] | None = None

    def __post_init__(self) -> None:
        self.data_path = Path(self.data_path)
        self.output_path = Path(self.output_path)


def select_strains(
    tables: Dict[str, pd.DataFrame],
    strains: Sequence[str] | None,
) -> Dict[str, pd.DataFrame]:
    """Keep only ``strains`` (in the given order); all tables when ``None``."""
    if strains is None:
        return dict(tables)
    unknown = [strain for strain in strains if strain not in tables]
    if unknown:
        available = ", ".join(sorted(tables))
        raise ConfigurationError(
            f"Unknown strain(s): {', '.join(unknown)}. Available: {available}"
        )
    return {strain: tables[strain] for strain in strains}


def run_barplot(config: BarplotConfig) -> Dict[str, ChartSpec]:
    """
    Load the configured titer file, plot it and return the chart specs.
    """
    print(f"Loading {config.data_path} ...")
    tables = load_titer_tables(config.data_path, strain_col=config.strain_col)
    tables = select_strains(tables, config.strains)

    print(f"Plotting {len(tables)} strain(s): {', '.join(tables)} ...")
    specs = barplot(
        tables,
        subject_col=config.subject_col,
        cols=config.cols,
        group_var=config.group_var,
        colors=config.colors,
        output_path=config.output_path,
    )
    print(f"Wrote {len(specs)} chart(s) to {config.output_path}")

    print("Done.")
    return specs


__all__ = ["BarplotConfig", "run_barplot", "select_strains"]
