### Functions for reading tables of observations into pd.DataFrames, with column typing and simple group-wise summaries.

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Sequence

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

# Key under df.attrs listing the columns to be treated as labels
CATEGORICAL_ATTR = "categorical"

_SUMMARY_STATS = ("n", "mean", "sd", "median", "min", "max")


### Helpers


def _as_list(value: str | Iterable[str] | None) -> list[str]:
    """Normalise a column name or collection of names to a list."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def _check_columns(df: pd.DataFrame, columns: Iterable[str]) -> None:
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise ValueError(f"Columns not found in data: {missing}")


def categorical_columns(df: pd.DataFrame) -> list[str]:
    """
    List the columns of a dataframe that hold labels rather than magnitudes.

    Declared columns (``df.attrs["categorical"]``) come first, followed by any
    remaining column whose dtype is not numeric.

    Parameters
    ----------
    df : pd.DataFrame
        Input data

    Returns
    -------
    list[str]
        Categorical column names
    """
    declared = [col for col in df.attrs.get(CATEGORICAL_ATTR, []) if col in df.columns]
    inferred = [
        col
        for col in df.columns
        if col not in declared
        and not pd.api.types.is_numeric_dtype(df[col])
        and not pd.api.types.is_bool_dtype(df[col])
    ]
    return declared + inferred


def as_labels(values: pd.Series) -> pd.Series:
    """Convert a column to string labels, leaving missing values missing."""
    labels = values.astype(object).where(values.notna(), None)
    return labels.map(lambda v: v if v is None else str(v))


### Ingestion


def read_table(
    path: str | Path,
    sep: str = "\t",
    categorical: str | Sequence[str] | None = None,
    numeric: str | Sequence[str] | None = None,
) -> pd.DataFrame:
    """
    Read a delimited text file with a header row into a dataframe.

    Parameters
    ----------
    path : str or Path
        File to read
    sep : str, default='\\t'
        Field delimiter
    categorical : str or list[str], optional
        Columns to keep verbatim as string labels, even when the labels look
        numeric (e.g. subject identifiers)
    numeric : str or list[str], optional
        Columns to coerce to floats. Unparseable entries become NaN.

    Returns
    -------
    pd.DataFrame
        Table of observations. Categorical columns (declared or inferred) are
        listed in ``df.attrs["categorical"]``.
    """
    categorical = _as_list(categorical)
    numeric = _as_list(numeric)

    overlap = set(categorical) & set(numeric)
    if overlap:
        raise ValueError(f"Columns declared both categorical and numeric: {sorted(overlap)}")

    # header names as written (tab-delimited exports often pad them) keyed by stripped name
    header = pd.read_csv(path, sep=sep, nrows=0).columns
    raw_names = {str(col).strip(): col for col in header}

    df = pd.read_csv(
        path,
        sep=sep,
        dtype={raw_names[col]: str for col in categorical if col in raw_names},
        keep_default_na=True,
    )
    df.columns = [str(col).strip() for col in df.columns]

    _check_columns(df, categorical + numeric)

    for col in numeric:
        df[col] = pd.to_numeric(df[col], errors="coerce")

    inferred = [
        col
        for col in df.columns
        if col not in categorical and not pd.api.types.is_numeric_dtype(df[col])
    ]
    for col in inferred:
        df[col] = as_labels(df[col])

    df.attrs[CATEGORICAL_ATTR] = categorical + inferred

    logger.info(
        "Read %d rows x %d columns from %s (categorical: %s)",
        len(df),
        df.shape[1],
        path,
        df.attrs[CATEGORICAL_ATTR],
    )
    return df


### Summaries


def sumsq(x) -> float:
    """Sum of squared deviations from the mean, ignoring NaN."""
    arr = np.asarray(x, dtype=float)
    arr = arr[np.isfinite(arr)]
    if len(arr) == 0:
        return np.nan
    return float(np.sum((arr - arr.mean()) ** 2))


def group_summary(
    df: pd.DataFrame,
    response: str,
    by: str | Sequence[str],
    stats: Sequence[str] = ("n", "mean", "sd", "median"),
) -> pd.DataFrame:
    """
    Summary statistics of a response within each group.

    Parameters
    ----------
    df : pd.DataFrame
        Input data
    response : str
        Numeric column to summarise
    by : str or list[str]
        Grouping column(s)
    stats : sequence of str
        Any of 'n', 'mean', 'sd', 'median', 'min', 'max'. The standard
        deviation uses ddof=1.

    Returns
    -------
    pd.DataFrame
        One row per observed group combination, with grouping columns followed
        by the requested statistics
    """
    by = _as_list(by)
    _check_columns(df, [response] + by)
    unknown = [s for s in stats if s not in _SUMMARY_STATS]
    if unknown:
        raise ValueError(f"Unknown statistics {unknown}; choose from {_SUMMARY_STATS}")

    agg_map = {
        "n": "size",
        "mean": "mean",
        "sd": "std",
        "median": "median",
        "min": "min",
        "max": "max",
    }
    grouped = df.groupby(by, observed=True, sort=True)[response]
    table = grouped.agg(**{s: agg_map[s] for s in stats}).reset_index()
    return table


def tally(df: pd.DataFrame, by: str | Sequence[str]) -> pd.Series:
    """Number of rows in each combination of the grouping columns."""
    by = _as_list(by)
    _check_columns(df, by)
    return df.groupby(by, observed=True, sort=True).size().rename("n")


def count_where(
    df: pd.DataFrame, condition: pd.Series | np.ndarray, by: str | Sequence[str]
) -> pd.DataFrame:
    """
    Count rows meeting a condition within each group.

    Parameters
    ----------
    df : pd.DataFrame
        Input data
    condition : boolean Series or array
        Row mask, aligned with ``df``
    by : str or list[str]
        Grouping column(s)

    Returns
    -------
    pd.DataFrame
        Columns: grouping columns, 'true', 'false', 'n'
    """
    by = _as_list(by)
    _check_columns(df, by)
    mask = np.asarray(condition, dtype=bool)
    if len(mask) != len(df):
        raise ValueError("condition must have one entry per row")

    work = df[by].copy()
    work["_hit"] = mask
    grouped = work.groupby(by, observed=True, sort=True)["_hit"]
    table = grouped.agg(true="sum", n="size").reset_index()
    table["true"] = table["true"].astype(int)
    table["false"] = table["n"] - table["true"]
    return table[by + ["true", "false", "n"]]


def scale_columns(df: pd.DataFrame, columns: str | Sequence[str]) -> pd.DataFrame:
    """
    Z-score selected numeric columns (mean 0, sd 1 with ddof=1).

    Returns a copy; the input dataframe is left untouched.
    """
    columns = _as_list(columns)
    _check_columns(df, columns)
    scaled = df.copy()
    for col in columns:
        if not pd.api.types.is_numeric_dtype(scaled[col]):
            raise ValueError(f"Cannot scale non-numeric column '{col}'")
        values = scaled[col].astype(float)
        sd = values.std()
        if not sd > 0:
            raise ValueError(f"Column '{col}' has no variance to scale by")
        scaled[col] = (values - values.mean()) / sd
    return scaled
