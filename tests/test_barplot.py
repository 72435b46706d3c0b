from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest
from matplotlib.colors import to_rgba

from titerplot import (
    DEFAULT_COLORS,
    ConfigurationError,
    InsufficientColorsError,
    barplot,
    build_chart_specs,
    build_plot_table,
    compute_fourfold_flags,
    multiplot,
    render_chart,
    stack_titer_tables,
)


def _strain_table(strain: str, pre, post) -> pd.DataFrame:
    pre = np.asarray(pre, dtype=float)
    post = np.asarray(post, dtype=float)
    subjects = [f"S{idx + 1}" for idx in range(len(pre))]
    return pd.DataFrame(
        {
            "SubjectID": subjects,
            "Strain": strain,
            "Pre": pre,
            "Post": post,
            "FC": post - pre,
            "AgeGroup": ["young" if idx < 2 else "old" for idx in range(len(pre))],
        }
    )


def _plot_table(tables: dict[str, pd.DataFrame]) -> pd.DataFrame:
    long_df = stack_titer_tables(tables)
    return build_plot_table(long_df, compute_fourfold_flags(long_df))


def _two_subject_tables() -> dict[str, pd.DataFrame]:
    return {
        "A": _strain_table("A", [3, 4], [6, 5]),
        "B": _strain_table("B", [2, 5], [3, 8]),
    }


def _four_subject_tables() -> dict[str, pd.DataFrame]:
    return {
        "A": _strain_table("A", [3, 4, 2, 5], [6, 5, 2, 8]),
        "B": _strain_table("B", [2, 5, 3, 3], [3, 8, 6, 4]),
    }


def test_ungrouped_two_strains_two_subjects_make_eight_bars() -> None:
    specs = build_chart_specs(_plot_table(_two_subject_tables()), n_tables=2)

    assert list(specs) == ["all"]
    spec = specs["all"]
    assert spec.bar_count == 8
    assert spec.x == "SubjectID"
    assert spec.x_label == "SubjectID"
    assert spec.facet is None
    assert spec.fill_levels == ("Pre.A", "Post.A", "Pre.B", "Post.B")
    assert list(spec.fill_colors.values()) == list(DEFAULT_COLORS[:4])


def test_chart_spec_encodings() -> None:
    spec = build_chart_specs(_plot_table(_two_subject_tables()), n_tables=2)["all"]

    assert spec.reference_line == pytest.approx(np.log2(40))
    assert spec.outline_colors == {False: "white", True: "black"}
    assert spec.show_outline_legend is False
    assert spec.y_label == "HAI Titer"
    assert spec.y_limits == (2.0, 8.0)
    assert spec.y_breaks == (2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0)
    for tick, label in zip(spec.y_breaks, spec.y_tick_labels):
        assert label == pytest.approx(2**tick)


def test_outline_color_for_missing_flag() -> None:
    spec = build_chart_specs(_plot_table(_two_subject_tables()), n_tables=2)["all"]
    assert spec.outline_color(True) == "black"
    assert spec.outline_color(False) == "white"
    assert spec.outline_color(pd.NA) == spec.outline_na_color


def test_grouped_specs_partition_the_plot_table() -> None:
    plot_df = _plot_table(_four_subject_tables())
    specs = build_chart_specs(plot_df, n_tables=2, group_var="AgeGroup")

    assert list(specs) == ["old", "young"]
    for level, spec in specs.items():
        assert set(spec.data["AgeGroup"].astype(str)) == {level}
        assert spec.facet == "AgeGroup"
        assert spec.facet_level == level
        assert not spec.blank
    assert sum(spec.bar_count for spec in specs.values()) == len(plot_df)
    assert specs["old"].x_label == ""
    assert specs["young"].x_label == "SubjectID"


def test_grouped_specs_share_global_y_scale() -> None:
    specs = build_chart_specs(
        _plot_table(_four_subject_tables()), n_tables=2, group_var="AgeGroup"
    )
    limits = {spec.y_limits for spec in specs.values()}
    assert limits == {(2.0, 8.0)}


def test_empty_category_level_gets_blank_placeholder() -> None:
    plot_df = _plot_table(_four_subject_tables())
    plot_df["AgeGroup"] = pd.Categorical(
        plot_df["AgeGroup"], categories=["young", "middle", "old"]
    )
    specs = build_chart_specs(plot_df, n_tables=2, group_var="AgeGroup")

    assert list(specs) == ["young", "middle", "old"]
    assert specs["middle"].blank
    assert specs["middle"].bar_count == 0
    assert specs["middle"].facet is None
    assert [spec.x_label for spec in specs.values()] == ["", "", "SubjectID"]


def test_group_var_must_be_single_name() -> None:
    with pytest.raises(ConfigurationError):
        build_chart_specs(
            _plot_table(_four_subject_tables()),
            n_tables=2,
            group_var=["AgeGroup", "Strain"],
        )


def test_group_var_must_be_a_column() -> None:
    with pytest.raises(ConfigurationError, match="Sex"):
        build_chart_specs(_plot_table(_four_subject_tables()), n_tables=2, group_var="Sex")


def test_short_palette_raises() -> None:
    with pytest.raises(InsufficientColorsError):
        build_chart_specs(
            _plot_table(_two_subject_tables()),
            n_tables=2,
            colors=["#000000", "#111111", "#222222"],
        )


def test_barplot_short_palette_returns_nothing(tmp_path: Path) -> None:
    output_path = tmp_path / "titers.pdf"
    with pytest.raises(InsufficientColorsError):
        barplot(_two_subject_tables(), colors=["red"], output_path=output_path)
    assert not output_path.exists()


def test_barplot_missing_subject_column_raises() -> None:
    with pytest.raises(ConfigurationError):
        barplot(_two_subject_tables(), subject_col="Subject")


def test_render_chart_draws_one_bar_per_row() -> None:
    spec = build_chart_specs(_plot_table(_two_subject_tables()), n_tables=2)["all"]
    fig, ax = plt.subplots()
    try:
        render_chart(spec, ax)
        assert len(ax.patches) == 8
        edge_colors = {tuple(patch.get_edgecolor()) for patch in ax.patches}
        assert to_rgba("black") in edge_colors
        assert to_rgba("white") in edge_colors
        assert [tick.get_text() for tick in ax.get_xticklabels()] == ["S1", "S2"]
        assert ax.get_yticklabels()[0].get_text() == "4"
    finally:
        plt.close(fig)


def test_render_blank_chart_has_no_bars() -> None:
    plot_df = _plot_table(_four_subject_tables())
    plot_df["AgeGroup"] = pd.Categorical(
        plot_df["AgeGroup"], categories=["young", "middle", "old"]
    )
    spec = build_chart_specs(plot_df, n_tables=2, group_var="AgeGroup")["middle"]
    fig, ax = plt.subplots()
    try:
        render_chart(spec, ax)
        assert len(ax.patches) == 0
    finally:
        plt.close(fig)


def test_multiplot_lays_out_grid() -> None:
    specs = build_chart_specs(
        _plot_table(_four_subject_tables()), n_tables=2, group_var="AgeGroup"
    )
    charts = list(specs.values()) + [specs["old"]]
    fig = multiplot(charts, cols=2)
    try:
        assert len(fig.axes) == 3
    finally:
        plt.close(fig)


def test_multiplot_rejects_zero_columns() -> None:
    specs = build_chart_specs(_plot_table(_two_subject_tables()), n_tables=2)
    with pytest.raises(ValueError):
        multiplot(specs.values(), cols=0)


def test_barplot_writes_pdf(tmp_path: Path) -> None:
    output_path = tmp_path / "plots" / "titers.pdf"
    specs = barplot(
        _four_subject_tables(), group_var="AgeGroup", cols=2, output_path=output_path
    )

    assert list(specs) == ["old", "young"]
    assert output_path.exists()
    assert output_path.stat().st_size > 0


def test_missing_group_values_get_trailing_level() -> None:
    tables = _two_subject_tables()
    tables["A"] = tables["A"].assign(Site="north")
    plot_df = _plot_table(tables)
    specs = build_chart_specs(plot_df, n_tables=2, group_var="Site")

    assert list(specs) == ["north", "NA"]
    assert sum(spec.bar_count for spec in specs.values()) == len(plot_df)
    assert set(specs["NA"].data["Strain"]) == {"B"}
    assert specs["north"].x_label == ""
    assert specs["NA"].x_label == "SubjectID"
