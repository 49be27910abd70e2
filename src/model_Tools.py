### Model specifications and thin fitting wrappers (OLS / mixed-effects) around statsmodels, returning coefficients keyed by name.

from __future__ import annotations

import itertools
import keyword
import logging
import re
import warnings
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

import numpy as np
import pandas as pd
from scipy import stats
import statsmodels.api as sm
import statsmodels.formula.api as smf
from statsmodels.stats.anova import anova_lm
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from data_Tools import as_labels, categorical_columns, sumsq

logger = logging.getLogger(__name__)


class DegenerateFitError(RuntimeError):
    """A model could not be estimated from the supplied data."""


### Model specification

# Q('a.b') wrappers that patsy leaves in coefficient names
_QUOTED_NAME = re.compile(r"Q\((['\"])(.*?)\1\)")
_CATEGORICAL_MARKER = re.compile(r"^(?:C|factor)\((.+)\)$")
_RANDOM_BLOCK = re.compile(r"\(([^()|]*)\|\s*([^()]+?)\s*\)")


def clean_label(name: str) -> str:
    """Strip patsy quoting from a coefficient or term name (``Q('SAT.V')`` -> ``SAT.V``)."""
    return _QUOTED_NAME.sub(lambda m: m.group(2), name)


def _column_expr(col: str) -> str:
    """Formula expression referring to a column, quoting names patsy cannot parse."""
    if col.isidentifier() and not keyword.iskeyword(col):
        return col
    escaped = col.replace("\\", "\\\\").replace("'", "\\'")
    return f"Q('{escaped}')"


def _parse_column(token: str) -> tuple[str, bool]:
    """
    Parse a single formula factor into (column name, is_categorical).

    Understands ``C(x)``, ``factor(x)``, ``Q('x')`` and backtick quoting.
    """
    token = token.strip()
    categorical = False
    match = _CATEGORICAL_MARKER.match(token)
    if match:
        # C(x, Treatment) style arguments are ignored; references go through ModelSpec
        token = match.group(1).split(",")[0].strip()
        categorical = True
    quoted = _QUOTED_NAME.fullmatch(token)
    if quoted:
        token = quoted.group(2)
    elif len(token) > 1 and token[0] == token[-1] == "`":
        token = token[1:-1]
    if not token:
        raise ValueError("Empty term in formula")
    return token, categorical


def _split_top_level(text: str, sep: str) -> list[str]:
    """Split on a separator character, ignoring separators inside parentheses."""
    parts, depth, current = [], 0, []
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == sep and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return [p.strip() for p in parts]


@dataclass(frozen=True)
class ModelSpec:
    """
    Description of a linear predictor.

    Parameters
    ----------
    response : str
        Name of the dependent variable column
    terms : tuple of tuple[str, ...]
        Predictor terms. A 1-tuple is a main effect, longer tuples are
        interactions between the listed columns.
    categorical : frozenset[str]
        Columns to expand into treatment-coded indicators
    references : tuple of (column, level) pairs
        Reference level for categorical columns. Columns without an entry get
        one when the spec is resolved against a dataset.
    intercept : bool, default=True
        Whether to include an intercept
    groups : str, optional
        Grouping column for a random-intercept mixed model
    random_slopes : tuple[str, ...]
        Columns whose slopes vary by group (mixed models only)
    resolved : bool
        Set by :meth:`resolve`; column types and reference levels are final
    """

    response: str
    terms: tuple[tuple[str, ...], ...] = ()
    categorical: frozenset[str] = frozenset()
    references: tuple[tuple[str, str], ...] = ()
    intercept: bool = True
    groups: str | None = None
    random_slopes: tuple[str, ...] = ()
    resolved: bool = False

    def __post_init__(self):
        terms = tuple(
            (term,) if isinstance(term, str) else tuple(term) for term in self.terms
        )
        if any(len(term) == 0 for term in terms):
            raise ValueError("Model terms must name at least one column")
        references = (
            tuple(self.references.items())
            if isinstance(self.references, Mapping)
            else tuple((str(k), str(v)) for k, v in self.references)
        )
        object.__setattr__(self, "terms", terms)
        object.__setattr__(self, "categorical", frozenset(self.categorical))
        object.__setattr__(self, "references", references)
        object.__setattr__(self, "random_slopes", tuple(self.random_slopes))
        if self.random_slopes and self.groups is None:
            raise ValueError("random_slopes require a grouping column")
        if self.response in self.predictor_columns:
            raise ValueError(f"Response '{self.response}' cannot also be a predictor")

    @classmethod
    def from_formula(
        cls,
        formula: str,
        categorical: Iterable[str] | None = None,
        groups: str | None = None,
        random_slopes: Iterable[str] | None = None,
        references: Mapping[str, str] | None = None,
    ) -> "ModelSpec":
        """
        Build a spec from an R-style formula.

        Supports ``+`` separated terms, ``a:b`` interactions, ``a*b`` crossing,
        ``C(x)`` / ``factor(x)`` categorical markers, ``- 1`` or ``+ 0`` to drop
        the intercept, and a single ``(1 | g)`` or ``(1 + x | g)`` random-effect
        block.

        Example
        -------
        >>> ModelSpec.from_formula("RT ~ Littered * FarAway + factor(Subject)")
        """
        if "~" not in formula:
            raise ValueError(f"Formula must contain '~': {formula!r}")
        lhs, rhs = formula.split("~", 1)
        response, _ = _parse_column(lhs)

        cat = set(categorical or ())
        slopes = list(random_slopes or ())

        # Random-effect blocks
        blocks = _RANDOM_BLOCK.findall(rhs)
        if len(blocks) > 1:
            raise ValueError("Only one random-effect block is supported")
        if blocks:
            re_terms, block_group = blocks[0]
            block_group, _ = _parse_column(block_group)
            if groups is not None and groups != block_group:
                raise ValueError(
                    f"Grouping column given twice: '{groups}' and '{block_group}'"
                )
            groups = block_group
            for token in re_terms.split("+"):
                token = token.strip()
                if token in ("", "1"):
                    continue
                if token == "0":
                    raise ValueError("Random slopes without a random intercept are not supported")
                slopes.append(_parse_column(token)[0])
            rhs = _RANDOM_BLOCK.sub("", rhs)

        intercept = True
        if re.search(r"-\s*1\b", rhs):
            intercept = False
            rhs = re.sub(r"-\s*1\b", "", rhs)

        terms: list[tuple[str, ...]] = []
        seen: set[frozenset[str]] = set()

        def add_term(cols: tuple[str, ...]):
            key = frozenset(cols)
            if key not in seen:
                seen.add(key)
                terms.append(cols)

        for chunk in _split_top_level(rhs, "+"):
            if chunk in ("", "1"):
                continue
            if chunk == "0":
                intercept = False
                continue
            factors = []
            for part in _split_top_level(chunk, "*"):
                cols = []
                for token in _split_top_level(part, ":"):
                    col, is_cat = _parse_column(token)
                    if is_cat:
                        cat.add(col)
                    cols.append(col)
                factors.append(tuple(cols))
            # a*b*c expands to every main effect and interaction of the crossed parts
            for size in range(1, len(factors) + 1):
                for combo in itertools.combinations(factors, size):
                    add_term(tuple(itertools.chain.from_iterable(combo)))

        return cls(
            response=response,
            terms=tuple(terms),
            categorical=frozenset(cat),
            references=tuple((references or {}).items()),
            intercept=intercept,
            groups=groups,
            random_slopes=tuple(slopes),
        )

    @property
    def predictor_columns(self) -> list[str]:
        """Unique columns used by the fixed-effect terms, in order of appearance."""
        return list(dict.fromkeys(col for term in self.terms for col in term))

    @property
    def columns(self) -> list[str]:
        """Every column the model reads."""
        cols = [self.response] + self.predictor_columns + list(self.random_slopes)
        if self.groups is not None:
            cols.append(self.groups)
        return list(dict.fromkeys(cols))

    @property
    def reference_map(self) -> dict[str, str]:
        return dict(self.references)

    @property
    def is_mixed(self) -> bool:
        return self.groups is not None

    def _is_categorical(self, col: str) -> bool:
        return col in self.categorical

    def resolve(self, df: pd.DataFrame) -> "ModelSpec":
        """
        Fix the spec against a dataset.

        Checks that every column exists, marks label columns (declared in
        ``df.attrs`` or non-numeric) as categorical, and pins the reference
        level of each categorical predictor to the first sorted label unless
        one was given. Resolving the same spec against the same data always
        gives the same coefficient names.

        Parameters
        ----------
        df : pd.DataFrame
            Full (not resampled) dataset

        Returns
        -------
        ModelSpec
            New, resolved spec
        """
        missing = [col for col in self.columns if col not in df.columns]
        if missing:
            raise ValueError(f"Columns not found in data: {missing}")

        label_cols = set(categorical_columns(df))
        if self.response in self.categorical or self.response in label_cols:
            raise ValueError(f"Response '{self.response}' must be numeric")

        predictors = self.predictor_columns
        categorical = set(self.categorical) | {c for c in predictors if c in label_cols}
        for col in self.random_slopes:
            if col in categorical:
                raise ValueError(f"Random slope column '{col}' must be numeric")

        references = self.reference_map
        for col in predictors:
            if col not in categorical:
                continue
            levels = sorted(as_labels(df[col]).dropna().unique())
            if not levels:
                raise ValueError(f"Categorical column '{col}' has no observed levels")
            if col in references:
                if references[col] not in levels:
                    raise ValueError(
                        f"Reference level '{references[col]}' not found in column '{col}'"
                    )
            else:
                references[col] = levels[0]

        return ModelSpec(
            response=self.response,
            terms=self.terms,
            categorical=frozenset(categorical),
            references=tuple(references.items()),
            intercept=self.intercept,
            groups=self.groups,
            random_slopes=self.random_slopes,
            resolved=True,
        )

    def formula(self) -> str:
        """Patsy formula for the fixed-effect part of the model."""
        rhs = [":".join(_column_expr(col) for col in term) for term in self.terms]
        if not rhs:
            rhs = ["1"]
        if not self.intercept:
            rhs.append("0")
        return f"{_column_expr(self.response)} ~ " + " + ".join(rhs)

    def re_formula(self) -> str:
        """statsmodels ``re_formula`` for the random part (random intercept first)."""
        if not self.random_slopes:
            return "1"
        return "~" + " + ".join(_column_expr(col) for col in self.random_slopes)

    def prepare(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Select and type the model columns of a (possibly resampled) dataset.

        Rows with missing values in any model column are dropped. Categorical
        predictors become pandas categoricals whose categories are the reference
        level followed by the other *observed* labels, so a level missing from
        the data drops its indicator instead of producing an all-zero column.

        Raises
        ------
        DegenerateFitError
            If a categorical reference level does not occur in ``df``, or no
            complete rows remain
        """
        data = df[self.columns].dropna()
        if len(data) == 0:
            raise DegenerateFitError("No complete rows to fit")

        data = data.copy()
        references = self.reference_map
        for col in self.predictor_columns:
            if col not in self.categorical:
                continue
            labels = as_labels(data[col])
            observed = set(labels.unique())
            ref = references.get(col)
            if ref is None:
                ref = min(observed)
            elif ref not in observed:
                raise DegenerateFitError(
                    f"Reference level '{ref}' of '{col}' is absent from the data"
                )
            others = sorted(observed - {ref})
            data[col] = pd.Categorical(labels, categories=[ref] + others)

        if self.groups is not None:
            data[self.groups] = as_labels(data[self.groups])
        return data

    def __str__(self) -> str:
        text = clean_label(self.formula())
        if self.groups is not None:
            slopes = " + ".join(["1"] + list(self.random_slopes))
            text += f" + ({slopes} | {self.groups})"
        return text


### Fitting


@dataclass(frozen=True)
class FitResult:
    """Container for the coefficients of one model fit."""

    params: dict[str, float]
    std_errors: dict[str, float]
    nobs: int
    spec: ModelSpec | None = None
    aliased: tuple[str, ...] = ()  # coefficients dropped as linear combinations of earlier columns
    model: Any = field(default=None, repr=False, compare=False)  # statsmodels results

    def __repr__(self) -> str:
        return f"FitResult(n={self.nobs}, coefficients={list(self.params)})"

    @property
    def is_mixed(self) -> bool:
        return self.spec is not None and self.spec.is_mixed

    def conf_int(self, level: float = 0.95) -> pd.DataFrame:
        """
        Analytic confidence intervals from the underlying statsmodels fit.

        Returns
        -------
        pd.DataFrame
            Indexed by coefficient name with columns 'ci_low', 'ci_high'
        """
        if not 0 < level < 1:
            raise ValueError(f"level must be in (0, 1), got {level}")
        if self.model is None:
            raise RuntimeError("No statsmodels result stored with this fit")
        ci = self.model.conf_int(alpha=1 - level)
        ci.index = [clean_label(str(name)) for name in ci.index]
        ci.columns = ["ci_low", "ci_high"]
        return ci.loc[[name for name in self.params if name in ci.index]]


Fitter = Callable[[pd.DataFrame, ModelSpec], FitResult]


def _estimable_columns(exog: np.ndarray) -> list[int]:
    """
    Positions of the design columns that can be estimated.

    Columns are taken in order and one is skipped when it is a linear
    combination of the columns already kept (e.g. an all-zero indicator for an
    interaction cell absent from the data), so the later of two aliased terms
    is the one dropped.
    """
    keep: list[int] = []
    for j in range(exog.shape[1]):
        candidate = keep + [j]
        if np.linalg.matrix_rank(exog[:, candidate]) == len(candidate):
            keep.append(j)
    return keep


def _fit_ols(data: pd.DataFrame, spec: ModelSpec, cov_type: str) -> FitResult:
    try:
        model = smf.ols(spec.formula(), data=data).fit(cov_type=cov_type)
    except Exception as e:
        raise DegenerateFitError(f"OLS fit failed: {type(e).__name__}: {e}") from e

    exog = np.asarray(model.model.exog)
    names = [clean_label(str(name)) for name in model.model.exog_names]
    aliased: list[str] = []
    if exog.shape[1] > 0 and np.linalg.matrix_rank(exog) < exog.shape[1]:
        keep = _estimable_columns(exog)
        if not keep:
            raise DegenerateFitError("No estimable coefficients in the design")
        aliased = [name for j, name in enumerate(names) if j not in keep]
        logger.debug("Dropping aliased coefficients %s", aliased)

        exog_kept = pd.DataFrame(
            exog[:, keep], columns=[names[j] for j in keep], index=data.index
        )
        try:
            model = sm.OLS(np.asarray(model.model.endog), exog_kept).fit(cov_type=cov_type)
        except Exception as e:
            raise DegenerateFitError(f"OLS refit failed: {type(e).__name__}: {e}") from e

    return FitResult(
        params={clean_label(str(k)): float(v) for k, v in model.params.items()},
        std_errors={clean_label(str(k)): float(v) for k, v in model.bse.items()},
        nobs=int(model.nobs),
        spec=spec,
        aliased=tuple(aliased),
        model=model,
    )


def _fit_mixed(data: pd.DataFrame, spec: ModelSpec, reml: bool) -> FitResult:
    try:
        with warnings.catch_warnings():
            # non-convergence is checked explicitly below
            warnings.simplefilter("ignore", ConvergenceWarning)
            model = smf.mixedlm(
                spec.formula(),
                data=data,
                groups=data[spec.groups],
                re_formula=spec.re_formula(),
            ).fit(reml=reml)
    except Exception as e:
        raise DegenerateFitError(f"Mixed model fit failed: {type(e).__name__}: {e}") from e

    if not getattr(model, "converged", True):
        raise DegenerateFitError("Mixed model did not converge")

    return FitResult(
        params={clean_label(k): float(v) for k, v in model.fe_params.items()},
        std_errors={clean_label(k): float(v) for k, v in model.bse_fe.items()},
        nobs=int(model.nobs),
        spec=spec,
        model=model,
    )


def fit_model(
    df: pd.DataFrame,
    spec: ModelSpec,
    cov_type: str = "nonrobust",
    reml: bool = True,
) -> FitResult:
    """
    Fit a linear model (OLS) or, when ``spec.groups`` is set, a linear mixed model.

    Parameters
    ----------
    df : pd.DataFrame
        Observations
    spec : ModelSpec
        Model to fit. Unresolved specs infer categorical columns and reference
        levels from ``df`` itself.
    cov_type : str, default='nonrobust'
        Covariance estimator for OLS standard errors (e.g. 'HC3')
    reml : bool, default=True
        Use REML rather than ML for mixed models

    Returns
    -------
    FitResult
        Fixed-effect coefficients and analytic standard errors keyed by name.
        Coefficient order is whatever statsmodels produces. For a
        rank-deficient OLS design the aliased coefficients are left out and
        named in ``FitResult.aliased``.

    Raises
    ------
    DegenerateFitError
        If the model cannot be estimated from ``df``
    """
    if not spec.resolved:
        spec = spec.resolve(df)
    data = spec.prepare(df)
    if spec.is_mixed:
        return _fit_mixed(data, spec, reml)
    return _fit_ols(data, spec, cov_type)


def fit_formula(df: pd.DataFrame, formula: str, **kwargs) -> FitResult:
    """Convenience wrapper: parse ``formula``, resolve it against ``df`` and fit."""
    spec_kwargs = {
        k: kwargs.pop(k)
        for k in ("categorical", "groups", "random_slopes", "references")
        if k in kwargs
    }
    spec = ModelSpec.from_formula(formula, **spec_kwargs).resolve(df)
    return fit_model(df, spec, **kwargs)


### Diagnostics and decompositions


def _require_model(fit: FitResult):
    if fit.model is None:
        raise RuntimeError("No statsmodels result stored with this fit")
    return fit.model


def fitted_table(fit: FitResult) -> pd.DataFrame:
    """Observed response, fitted values and residuals, one row per fitted observation."""
    model = _require_model(fit)
    observed = np.asarray(model.model.endog, dtype=float)
    fitted = np.asarray(model.fittedvalues, dtype=float)
    return pd.DataFrame(
        {"observed": observed, "fitted": fitted, "resid": observed - fitted},
        index=getattr(model.fittedvalues, "index", None),
    )


def variance_decomposition(fit: FitResult) -> pd.Series:
    """
    Split the variation of the response into predictable and unpredictable parts.

    Returns
    -------
    pd.Series
        'ss_total', 'ss_model' (sum of squares of fitted values about their
        mean), 'ss_resid' and 'r2' = ss_model / ss_total
    """
    table = fitted_table(fit)
    ss_total = sumsq(table["observed"])
    ss_model = sumsq(table["fitted"])
    ss_resid = sumsq(table["resid"])
    r2 = ss_model / ss_total if ss_total > 0 else np.nan
    return pd.Series(
        {"ss_total": ss_total, "ss_model": ss_model, "ss_resid": ss_resid, "r2": r2}
    )


def anova_table(fit: FitResult, typ: int = 1) -> pd.DataFrame:
    """
    ANOVA table for an OLS fit.

    Parameters
    ----------
    fit : FitResult
        Result of :func:`fit_model` for a fixed-effects model
    typ : int, default=1
        Type of sums of squares. Type 1 is sequential, so the table depends on
        term order unless the design is balanced.

    Returns
    -------
    pd.DataFrame
        statsmodels ANOVA table with cleaned term names
    """
    if typ not in (1, 2, 3):
        raise ValueError(f"typ must be 1, 2, or 3, got {typ}")
    if fit.is_mixed:
        raise ValueError("ANOVA tables are only available for OLS fits")
    if fit.aliased:
        raise ValueError(f"ANOVA table unavailable: aliased coefficients {list(fit.aliased)}")
    table = anova_lm(_require_model(fit), typ=typ)
    table.index = [clean_label(str(name)) for name in table.index]
    return table


### Fixed vs. random effects


def _random_effect_lookup(re_series: pd.Series, name: str | None):
    """Pick the intercept (name=None) or a slope from one group's random effects."""
    if name is None:
        return float(re_series.iloc[0])
    for label, value in re_series.items():
        if clean_label(str(label)) == name:
            return float(value)
    return np.nan


def group_coefficients(
    ols_fit: FitResult,
    mixed_fit: FitResult,
    group_col: str,
    slope: str | None = None,
) -> pd.DataFrame:
    """
    Per-group intercepts (or slopes) from a dummy-variable OLS fit next to the
    shrunken estimates of a mixed model.

    For OLS, the group value is the baseline coefficient plus the group's
    offset (0 for the reference group). For the mixed model it is the fixed
    effect plus the group's predicted random effect. Rows are matched by group
    label, never by position.

    Parameters
    ----------
    ols_fit : FitResult
        OLS fit containing ``group_col`` as a categorical predictor (and its
        interaction with ``slope`` if given)
    mixed_fit : FitResult
        Mixed model fitted with ``groups=group_col`` (and ``slope`` as a random
        slope if given)
    group_col : str
        Grouping column
    slope : str, optional
        Compare slopes of this numeric predictor instead of intercepts

    Returns
    -------
    pd.DataFrame
        Indexed by group label with columns 'fixed', 'mixed', 'n'
    """
    if ols_fit.spec is None or group_col not in ols_fit.spec.reference_map:
        raise ValueError(f"OLS fit has no categorical predictor '{group_col}'")
    if not mixed_fit.is_mixed or mixed_fit.spec.groups != group_col:
        raise ValueError(f"Mixed fit is not grouped by '{group_col}'")

    base_name = "Intercept" if slope is None else slope
    if base_name not in ols_fit.params:
        raise ValueError(f"OLS fit has no '{base_name}' coefficient")

    reference = ols_fit.spec.reference_map[group_col]
    prefix = f"{group_col}[T."

    fixed = {reference: ols_fit.params[base_name]}
    for name, value in ols_fit.params.items():
        parts = name.split(":")
        if slope is None:
            if len(parts) == 1 and name.startswith(prefix):
                fixed[name[len(prefix) : -1]] = ols_fit.params[base_name] + value
        elif len(parts) == 2 and slope in parts:
            other = parts[1] if parts[0] == slope else parts[0]
            if other.startswith(prefix):
                fixed[other[len(prefix) : -1]] = ols_fit.params[base_name] + value

    mixed_model = _require_model(mixed_fit)
    fe_base = mixed_fit.params.get(base_name, np.nan)
    mixed = {
        str(label): fe_base + _random_effect_lookup(effects, slope)
        for label, effects in mixed_model.random_effects.items()
    }

    counts = {str(label): len(rows) for label, rows in mixed_model.model.row_indices.items()}

    labels = sorted(set(fixed) | set(mixed))
    return pd.DataFrame(
        {
            "fixed": [fixed.get(label, np.nan) for label in labels],
            "mixed": [mixed.get(label, np.nan) for label in labels],
            "n": [int(counts.get(label, 0)) for label in labels],
        },
        index=pd.Index(labels, name=group_col),
    )


def compare_mixed_models(fit_a: FitResult, fit_b: FitResult) -> pd.Series:
    """
    Likelihood-ratio test between two nested mixed models.

    The model with more parameters is treated as the larger one. REML
    likelihoods are only comparable when the fixed effects are identical.

    Returns
    -------
    pd.Series
        'llf_small', 'llf_large', 'chi2', 'df', 'p_value'
    """
    model_a, model_b = _require_model(fit_a), _require_model(fit_b)
    if not (fit_a.is_mixed and fit_b.is_mixed):
        raise ValueError("Both fits must be mixed models")

    k_a, k_b = len(model_a.params), len(model_b.params)
    small, large = (model_a, model_b) if k_a <= k_b else (model_b, model_a)
    df_diff = abs(k_b - k_a)
    if df_diff == 0:
        raise ValueError("Models have the same number of parameters; they are not nested")

    if set(fit_a.params) != set(fit_b.params) and (
        getattr(model_a, "method", "") == "REML" or getattr(model_b, "method", "") == "REML"
    ):
        warnings.warn(
            "Comparing REML fits with different fixed effects; refit with reml=False."
        )

    chi2 = max(2.0 * (float(large.llf) - float(small.llf)), 0.0)
    p_value = float(stats.chi2.sf(chi2, df_diff))
    return pd.Series(
        {
            "llf_small": float(small.llf),
            "llf_large": float(large.llf),
            "chi2": chi2,
            "df": float(df_diff),
            "p_value": p_value,
        }
    )
