import numpy as np
import pandas as pd
import pytest

from data_Tools import (
    categorical_columns,
    count_where,
    group_summary,
    read_table,
    scale_columns,
    sumsq,
    tally,
)


def _write_tsv(tmp_path, df, name="data.txt"):
    path = tmp_path / name
    df.to_csv(path, sep="\t", index=False)
    return path


def test_read_table_keeps_declared_labels_verbatim(tmp_path, rxntime):
    path = _write_tsv(tmp_path, rxntime)
    df = read_table(path, categorical=["Subject"])

    assert len(df) == 960
    assert df["Subject"].map(type).eq(str).all()
    assert set(df["Subject"]) == {str(i) for i in range(1, 13)}
    assert df.attrs["categorical"][0] == "Subject"
    # string columns are inferred as labels, numeric ones stay numeric
    assert {"Littered", "FarAway"} <= set(df.attrs["categorical"])
    assert pd.api.types.is_float_dtype(df["PictureTarget.RT"])


def test_read_table_inferred_subject_is_numeric_unless_declared(tmp_path, rxntime):
    path = _write_tsv(tmp_path, rxntime)
    df = read_table(path)
    assert pd.api.types.is_integer_dtype(df["Subject"])
    assert "Subject" not in categorical_columns(df)


def test_read_table_comma_separated_with_numeric_coercion(tmp_path):
    path = tmp_path / "data.csv"
    path.write_text("y,x,g\n1.5,2,a\n2.5,n/a,b\n3.0,4,a\n")
    df = read_table(path, sep=",", numeric="x")
    assert np.isnan(df.loc[1, "x"])
    assert df["x"].dtype == float
    assert categorical_columns(df) == ["g"]


def test_read_table_rejects_conflicting_declarations(tmp_path, rxntime):
    path = _write_tsv(tmp_path, rxntime)
    with pytest.raises(ValueError):
        read_table(path, categorical=["Subject"], numeric=["Subject"])
    with pytest.raises(ValueError):
        read_table(path, categorical=["NotAColumn"])


def test_sumsq():
    assert sumsq([1.0, 2.0, 3.0]) == pytest.approx(2.0)
    assert sumsq([1.0, np.nan, 3.0]) == pytest.approx(2.0)
    assert np.isnan(sumsq([]))


def test_group_summary_matches_pandas(rxntime):
    table = group_summary(rxntime, "PictureTarget.RT", "Littered")
    assert list(table.columns) == ["Littered", "n", "mean", "sd", "median"]

    yes = rxntime.loc[rxntime["Littered"] == "yes", "PictureTarget.RT"]
    row = table.set_index("Littered").loc["yes"]
    assert row["n"] == 480
    assert row["mean"] == pytest.approx(yes.mean())
    assert row["sd"] == pytest.approx(yes.std(ddof=1))
    assert row["median"] == pytest.approx(yes.median())


def test_group_summary_two_factors_and_bad_stat(rxntime):
    table = group_summary(rxntime, "PictureTarget.RT", ["Littered", "FarAway"], stats=("n", "mean"))
    assert len(table) == 4
    assert (table["n"] == 240).all()
    with pytest.raises(ValueError):
        group_summary(rxntime, "PictureTarget.RT", "Littered", stats=("mode",))


def test_tally_shows_balanced_design(rxntime):
    counts = tally(rxntime, ["Littered", "FarAway"])
    assert counts.sum() == 960
    assert (counts == 240).all()


def test_count_where(rxntime):
    slow = rxntime["PictureTarget.RT"] > 700
    table = count_where(rxntime, slow, "FarAway")
    assert list(table.columns) == ["FarAway", "true", "false", "n"]
    assert table["true"].sum() == int(slow.sum())
    assert (table["true"] + table["false"] == table["n"]).all()

    with pytest.raises(ValueError):
        count_where(rxntime, slow[:10], "FarAway")


def test_scale_columns_returns_copy(ut2000):
    original = ut2000.copy()
    scaled = scale_columns(ut2000, ["GPA"])
    assert scaled["GPA"].mean() == pytest.approx(0.0, abs=1e-12)
    assert scaled["GPA"].std() == pytest.approx(1.0)
    pd.testing.assert_frame_equal(ut2000, original)

    with pytest.raises(ValueError):
        scale_columns(ut2000, ["School"])


def test_read_table_padded_header_keeps_labels_verbatim(tmp_path):
    path = tmp_path / "padded.txt"
    path.write_text("y\t Subject \n1.0\t007\n2.0\t010\n")
    df = read_table(path, categorical=["Subject"])

    assert list(df.columns) == ["y", "Subject"]
    assert list(df["Subject"]) == ["007", "010"]
    assert categorical_columns(df) == ["Subject"]
