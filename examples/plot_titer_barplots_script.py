"""
Utility script for plotting baseline and post-exposure titers per subject.

Point ``DATA_PATH`` at a workbook with one sheet per strain (or a CSV with a
``Strain`` column), adjust ``GROUP_VAR``/``COLS`` if needed, and run:

    python plot_titer_barplots_script.py

The script writes a single PDF with one bar chart per group level.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------

# Titer workbook or CSV path (relative to this script or absolute).
DATA_PATH = "titers.xlsx"

# Column holding the subject identifier in every strain table.
SUBJECT_COL = "SubjectID"

# Optional covariate to split the charts by (e.g. "AgeGroup"); None for one chart.
GROUP_VAR = None

# Number of columns in the output grid.
COLS = 1

# Optional subset of strains (sheet names or Strain values); None keeps all.
STRAINS = None

# Output PDF.
OUTPUT_PATH = "plots/titer_barplot.pdf"

# ---------------------------------------------------------------------------
# Imports and setup
# ---------------------------------------------------------------------------

import os
from pathlib import Path

# Ensure Matplotlib/fontconfig caches live in writable directories.
_MPL_CACHE = Path(".matplotlib_cache")
_XDG_CACHE = Path(".cache")
os.environ.setdefault("MPLCONFIGDIR", str(_MPL_CACHE.resolve()))
os.environ.setdefault("XDG_CACHE_HOME", str(_XDG_CACHE.resolve()))
(_XDG_CACHE / "fontconfig").mkdir(parents=True, exist_ok=True)
_MPL_CACHE.mkdir(parents=True, exist_ok=True)

from titerplot.pipeline import BarplotConfig, run_barplot

# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------

_SCRIPT_DIR = Path(__file__).resolve().parent
_DATA_PATH = Path(DATA_PATH)
if not _DATA_PATH.is_absolute():
    _DATA_PATH = _SCRIPT_DIR / _DATA_PATH

CONFIG = BarplotConfig(
    data_path=_DATA_PATH,
    output_path=Path(OUTPUT_PATH),
    subject_col=SUBJECT_COL,
    cols=COLS,
    group_var=GROUP_VAR,
    strains=STRAINS,
)

if __name__ == "__main__":
    run_barplot(CONFIG)
