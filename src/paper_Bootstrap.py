### Bootstrapped sampling distributions of model coefficients: resample the data, refit, and summarise each coefficient by name.

from __future__ import annotations

import logging
import math
import os
import threading
import warnings
from concurrent.futures import (
    FIRST_COMPLETED,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    wait,
)
from dataclasses import dataclass, field
from typing import Literal, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from model_Tools import FitResult, Fitter, ModelSpec, fit_model

logger = logging.getLogger(__name__)


class OriginalFitError(RuntimeError):
    """The model could not be fitted to the full (non-resampled) data."""


class ExcessiveFailureRateWarning(RuntimeWarning):
    """Too many bootstrap trials failed for the summary to be trusted."""


class InsufficientCoverageWarning(RuntimeWarning):
    """A coefficient was estimated in fewer trials than the coverage threshold."""


class IncompleteRunWarning(RuntimeWarning):
    """The run was cancelled before every trial completed."""


INTERVAL_METHODS = ("normal", "percentile")
RESAMPLE_METHODS = ("rows", "groups", "strata")
BACKENDS = ("process", "thread", "sequential")

# Below this many trials a worker pool costs more than it saves
_MIN_PARALLEL_TRIALS = 100


### Resampling


def resample_indices(n: int, rng: np.random.Generator) -> np.ndarray:
    """
    Draw ``n`` row positions uniformly from ``0..n-1`` with replacement.

    Parameters
    ----------
    n : int
        Number of rows in the source data (>= 1)
    rng : np.random.Generator
        Random number generator

    Returns
    -------
    np.ndarray
        Positions in draw order
    """
    if n < 1:
        raise ValueError(f"Cannot resample from {n} rows")
    return rng.integers(0, n, size=n)


def resample_rows(df: pd.DataFrame, rng: np.random.Generator) -> pd.DataFrame:
    """
    Resample the rows of a dataframe with replacement.

    The result has the same number of rows as ``df`` and a fresh RangeIndex;
    ``df`` itself is not modified.
    """
    idx = resample_indices(len(df), rng)
    return df.iloc[idx].reset_index(drop=True)


def _bootstrap_resample_indices(
    strata_indices: list[np.ndarray], rng: np.random.Generator
) -> np.ndarray:
    """
    Generate stratified bootstrap resample indices.

    Samples with replacement within each stratum to preserve the factorial
    design structure.

    Parameters
    ----------
    strata_indices : list[np.ndarray]
        List of position arrays, one per stratum
    rng : np.random.Generator
        Random number generator

    Returns
    -------
    np.ndarray
        Concatenated resampled positions
    """
    resampled = [
        stratum[rng.integers(0, len(stratum), size=len(stratum))]
        for stratum in strata_indices
    ]
    return np.concatenate(resampled)


def resample_strata(
    df: pd.DataFrame, strata_cols: Sequence[str], rng: np.random.Generator
) -> pd.DataFrame:
    """Resample rows with replacement within each combination of ``strata_cols``."""
    if len(df) < 1:
        raise ValueError("Cannot resample an empty dataframe")
    grouped = df.groupby(list(strata_cols), observed=True, sort=True, dropna=False)
    strata_indices = [np.asarray(pos) for pos in grouped.indices.values()]
    idx = _bootstrap_resample_indices(strata_indices, rng)
    return df.iloc[idx].reset_index(drop=True)


def resample_groups(
    df: pd.DataFrame, group_col: str, rng: np.random.Generator
) -> pd.DataFrame:
    """
    Resample whole groups (e.g. subjects) with replacement.

    Every drawn copy of a group keeps all of its rows and gets a new, unique
    group label so duplicated groups are not merged by a mixed model. The row
    count varies with the sizes of the drawn groups.
    """
    indices = df.groupby(group_col, observed=True, sort=False).indices
    if not indices:
        raise ValueError(f"No groups found in column '{group_col}'")
    positions = [np.asarray(indices[key]) for key in sorted(indices, key=str)]

    drawn = rng.integers(0, len(positions), size=len(positions))
    idx = np.concatenate([positions[g] for g in drawn])
    sizes = [len(positions[g]) for g in drawn]

    df_boot = df.iloc[idx].reset_index(drop=True)
    df_boot[group_col] = np.repeat(np.arange(len(drawn)), sizes).astype(str)
    return df_boot


### Configuration and results


@dataclass(frozen=True)
class BootstrapConfig:
    """Settings for one bootstrap run."""

    n_boot: int = 1000
    ci_level: float = 0.95
    interval: Literal["normal", "percentile"] = "normal"
    resample: Literal["rows", "groups", "strata"] = "rows"
    strata_cols: tuple[str, ...] = ()
    random_state: int | None = None
    n_jobs: int = -1
    backend: Literal["process", "thread", "sequential"] = "process"
    max_failure_rate: float = 0.10
    min_coverage: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, "strata_cols", tuple(self.strata_cols))
        if self.n_boot < 1:
            raise ValueError(f"n_boot must be >= 1, got {self.n_boot}")
        if not 0 < self.ci_level < 1:
            raise ValueError(f"ci_level must be in (0, 1), got {self.ci_level}")
        if self.interval not in INTERVAL_METHODS:
            raise ValueError(f"interval must be one of {INTERVAL_METHODS}, got {self.interval!r}")
        if self.resample not in RESAMPLE_METHODS:
            raise ValueError(f"resample must be one of {RESAMPLE_METHODS}, got {self.resample!r}")
        if self.backend not in BACKENDS:
            raise ValueError(f"backend must be one of {BACKENDS}, got {self.backend!r}")
        if self.n_jobs == 0:
            raise ValueError("n_jobs must be positive or negative (all cores), not 0")
        if not 0 <= self.max_failure_rate <= 1:
            raise ValueError(f"max_failure_rate must be in [0, 1], got {self.max_failure_rate}")
        if not 0 < self.min_coverage <= 1:
            raise ValueError(f"min_coverage must be in (0, 1], got {self.min_coverage}")

    @property
    def n_workers(self) -> int:
        if self.backend == "sequential":
            return 1
        return self.n_jobs if self.n_jobs > 0 else (os.cpu_count() or 1)


@dataclass(frozen=True)
class TrialOutcome:
    """Coefficients from one resample-and-refit trial (``params`` is None if the fit failed)."""

    index: int
    params: dict[str, float] | None
    error: str | None = None
    dropped: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.params is not None


@dataclass
class CoefficientSummary:
    """Bootstrap distribution summary for one coefficient."""

    name: str
    estimate: float
    boot_mean: float
    std_error: float
    ci_low: float
    ci_high: float
    n_trials: int
    ci_level: float = 0.95
    interval: str = "normal"
    partial: bool = False

    def __repr__(self) -> str:
        flag = ", partial" if self.partial else ""
        return (
            f"CoefficientSummary({self.name}: estimate={self.estimate:.4f}, "
            f"SE={self.std_error:.4f}, "
            f"CI{int(self.ci_level*100)}=[{self.ci_low:.4f}, {self.ci_high:.4f}], "
            f"n={self.n_trials}{flag})"
        )

    @property
    def t_boot(self) -> float:
        """Signal-to-noise ratio of the original estimate against the bootstrap SE."""
        if not self.std_error > 0:
            return np.nan
        return self.estimate / self.std_error


def summarise_coefficient(
    name: str,
    values: np.ndarray,
    estimate: float,
    ci_level: float = 0.95,
    interval: str = "normal",
    partial: bool = False,
) -> CoefficientSummary:
    """
    Summarise the bootstrap values of one coefficient.

    Parameters
    ----------
    name : str
        Coefficient name
    values : np.ndarray
        Estimates from the trials that produced this coefficient
    estimate : float
        Estimate from the full-data fit (centre of the normal interval)
    ci_level : float, default=0.95
        Confidence level
    interval : {'normal', 'percentile'}
        'normal': estimate +/- z * SE. 'percentile': empirical quantiles of
        ``values``.
    partial : bool
        Whether the coefficient is missing from too many trials

    Returns
    -------
    CoefficientSummary
        Standard error and interval are NaN with fewer than two values
    """
    if interval not in INTERVAL_METHODS:
        raise ValueError(f"interval must be one of {INTERVAL_METHODS}, got {interval!r}")
    values = np.asarray(values, dtype=float)
    n = len(values)

    boot_mean = float(np.mean(values)) if n > 0 else np.nan
    std_error = float(np.std(values, ddof=1)) if n > 1 else np.nan

    alpha = (1 - ci_level) / 2
    if interval == "normal":
        z = float(stats.norm.ppf(1 - alpha))
        ci_low, ci_high = estimate - z * std_error, estimate + z * std_error
    elif n > 1:
        ci_low, ci_high = (float(q) for q in np.quantile(values, [alpha, 1 - alpha]))
    else:
        ci_low, ci_high = np.nan, np.nan

    return CoefficientSummary(
        name=name,
        estimate=float(estimate),
        boot_mean=boot_mean,
        std_error=std_error,
        ci_low=float(ci_low),
        ci_high=float(ci_high),
        n_trials=n,
        ci_level=ci_level,
        interval=interval,
        partial=partial,
    )


@dataclass
class BootstrapResults:
    """Container for a completed (or cancelled) bootstrap run."""

    original: FitResult
    spec: ModelSpec
    trials: list[TrialOutcome]
    config: BootstrapConfig
    seed_entropy: int
    cancelled: bool = False
    warnings: list[Warning] = field(default_factory=list)

    def __repr__(self) -> str:
        return (
            f"BootstrapResults(trials={self.n_completed}/{self.n_requested}, "
            f"failed={self.n_failed}, coefficients={self.coefficient_names})"
        )

    @property
    def n_requested(self) -> int:
        return self.config.n_boot

    @property
    def n_completed(self) -> int:
        return len(self.trials)

    @property
    def n_successful(self) -> int:
        return sum(trial.ok for trial in self.trials)

    @property
    def n_failed(self) -> int:
        return self.n_completed - self.n_successful

    @property
    def failure_rate(self) -> float:
        return self.n_failed / self.n_completed if self.n_completed else np.nan

    @property
    def coefficient_names(self) -> list[str]:
        """Coefficients of the original fit, then any seen only in trials."""
        names = dict.fromkeys(self.original.params)
        for trial in self.trials:
            if trial.ok:
                names.update(dict.fromkeys(trial.params))
        return list(names)

    def distribution(self, name: str) -> np.ndarray:
        """Bootstrap values of one coefficient, in trial order."""
        return np.array(
            [trial.params[name] for trial in self.trials if trial.ok and name in trial.params],
            dtype=float,
        )

    def coverage(self) -> pd.Series:
        """Number of trials that produced each coefficient."""
        return pd.Series(
            {name: len(self.distribution(name)) for name in self.coefficient_names},
            name="n_trials",
            dtype=int,
        )

    @property
    def partial_coefficients(self) -> list[str]:
        """Coefficients produced by fewer than ``min_coverage`` of the successful trials."""
        n_ok = self.n_successful
        if n_ok == 0:
            return []
        threshold = self.config.min_coverage * n_ok
        return [name for name, n in self.coverage().items() if n < threshold]

    def coefficients(
        self, interval: str | None = None, ci_level: float | None = None
    ) -> dict[str, CoefficientSummary]:
        """Per-coefficient summaries keyed by name."""
        interval = interval if interval is not None else self.config.interval
        ci_level = ci_level if ci_level is not None else self.config.ci_level
        if not 0 < ci_level < 1:
            raise ValueError(f"ci_level must be in (0, 1), got {ci_level}")

        partial = set(self.partial_coefficients)
        return {
            name: summarise_coefficient(
                name,
                self.distribution(name),
                self.original.params.get(name, np.nan),
                ci_level=ci_level,
                interval=interval,
                partial=name in partial,
            )
            for name in self.coefficient_names
        }

    def summary(
        self,
        interval: str | None = None,
        ci_level: float | None = None,
        include_partial: bool = True,
    ) -> pd.DataFrame:
        """
        Summary table of the bootstrap distributions.

        Parameters
        ----------
        interval : {'normal', 'percentile'}, optional
            Interval method. Defaults to the run's configuration.
        ci_level : float, optional
            Confidence level. Defaults to the run's configuration.
        include_partial : bool, default=True
            Keep coefficients flagged as partial (missing from some trials)

        Returns
        -------
        pd.DataFrame
            Indexed by coefficient name with columns estimate, boot_mean,
            std_error, ci_low, ci_high, t_boot, n_trials, partial
        """
        rows = []
        for name, res in self.coefficients(interval, ci_level).items():
            if res.partial and not include_partial:
                continue
            rows.append(
                {
                    "coefficient": name,
                    "estimate": res.estimate,
                    "boot_mean": res.boot_mean,
                    "std_error": res.std_error,
                    "ci_low": res.ci_low,
                    "ci_high": res.ci_high,
                    "t_boot": res.t_boot,
                    "n_trials": res.n_trials,
                    "partial": res.partial,
                }
            )
        columns = [
            "estimate",
            "boot_mean",
            "std_error",
            "ci_low",
            "ci_high",
            "t_boot",
            "n_trials",
            "partial",
        ]
        if not rows:
            return pd.DataFrame(columns=columns, index=pd.Index([], name="coefficient"))
        return pd.DataFrame(rows).set_index("coefficient")[columns]

    def to_frame(self) -> pd.DataFrame:
        """Raw trial x coefficient table for successful trials (NaN where a coefficient was absent)."""
        ok = [trial for trial in self.trials if trial.ok]
        table = pd.DataFrame(
            [trial.params for trial in ok],
            index=pd.Index([trial.index for trial in ok], name="trial"),
        )
        return table.reindex(columns=self.coefficient_names)


### Trials


def _draw_resample(
    df: pd.DataFrame,
    rng: np.random.Generator,
    resample: str,
    group_col: str | None,
    strata_cols: Sequence[str],
) -> pd.DataFrame:
    if resample == "groups":
        return resample_groups(df, group_col, rng)
    if resample == "strata":
        return resample_strata(df, strata_cols, rng)
    return resample_rows(df, rng)


def _run_trial(
    df: pd.DataFrame,
    spec: ModelSpec,
    fitter: Fitter,
    resample: str,
    strata_cols: Sequence[str],
    index: int,
    seed: np.random.SeedSequence,
) -> TrialOutcome:
    """Resample, refit and collect finite coefficients for one trial."""
    rng = np.random.default_rng(seed)
    try:
        df_boot = _draw_resample(df, rng, resample, spec.groups, strata_cols)
        fit = fitter(df_boot, spec)
    except Exception as e:
        logger.debug("Bootstrap trial %d failed: %s: %s", index, type(e).__name__, e)
        return TrialOutcome(index=index, params=None, error=f"{type(e).__name__}: {e}")

    params = {}
    dropped = []
    for name, value in fit.params.items():
        value = float(value)
        if math.isfinite(value):
            params[name] = value
        else:
            dropped.append(name)

    if not params:
        logger.debug("Bootstrap trial %d produced no finite coefficients", index)
        return TrialOutcome(
            index=index,
            params=None,
            error="No finite coefficients",
            dropped=tuple(dropped),
        )
    return TrialOutcome(index=index, params=params, dropped=tuple(dropped))


def _run_trial_batch(args: tuple) -> list[TrialOutcome]:
    """
    Run a batch of trials (for parallelization).

    Parameters
    ----------
    args : tuple
        (df, spec, fitter, resample, strata_cols, jobs) where jobs is a list
        of (trial index, SeedSequence)
    """
    df, spec, fitter, resample, strata_cols, jobs = args
    return [
        _run_trial(df, spec, fitter, resample, strata_cols, index, seed)
        for index, seed in jobs
    ]


### Core bootstrap class


class BootstrapEstimator:
    """
    Bootstrap standard errors and confidence intervals for model coefficients.

    Fits the model to the full data, then repeatedly resamples the data with
    replacement, refits, and summarises the distribution of each coefficient
    by name. Trials that fail to fit are recorded and excluded; coefficients
    missing from some trials (e.g. a rare category level absent from a
    resample) are summarised over the trials that produced them.

    Parameters
    ----------
    df : pd.DataFrame
        Input data containing all model variables
    spec : ModelSpec or str
        Model to fit, or an R-style formula (e.g. 'RT ~ Littered + FarAway')
    n_boot : int, default=1000
        Number of bootstrap trials
    ci_level : float, default=0.95
        Confidence level for intervals
    interval : {'normal', 'percentile'}, default='normal'
        'normal': full-data estimate +/- z * bootstrap SE.
        'percentile': empirical quantiles of the bootstrap distribution.
    fitter : callable, default=fit_model
        ``fitter(df, spec) -> FitResult``. Must be picklable (module-level)
        for the process backend.
    resample : {'rows', 'groups', 'strata'}, default='rows'
        Resample rows, whole groups (``spec.groups``), or rows within strata
    strata_cols : list[str], optional
        Columns for stratified resampling. If None, the categorical
        predictors are used.
    random_state : int, optional
        Random seed for reproducibility
    n_jobs : int, default=-1
        Number of parallel workers (-1 for all cores)
    backend : {'process', 'thread', 'sequential'}, default='process'
        Worker pool type
    max_failure_rate : float, default=0.10
        Warn when a larger fraction of trials fails
    min_coverage : float, default=1.0
        Flag coefficients produced by fewer than this fraction of the
        successful trials

    Attributes
    ----------
    results_ : BootstrapResults
        Fitted results (available after calling fit())
    is_fitted_ : bool
        Whether the bootstrap has been run
    """

    def __init__(
        self,
        df: pd.DataFrame,
        spec: ModelSpec | str,
        n_boot: int = 1000,
        ci_level: float = 0.95,
        interval: str = "normal",
        fitter: Fitter = fit_model,
        resample: str = "rows",
        strata_cols: Sequence[str] | None = None,
        random_state: int | None = None,
        n_jobs: int = -1,
        backend: str = "process",
        max_failure_rate: float = 0.10,
        min_coverage: float = 1.0,
    ):
        if isinstance(spec, str):
            spec = ModelSpec.from_formula(spec)
        if len(df) < 1:
            raise ValueError("Cannot bootstrap an empty dataframe")

        self.df = df.copy()
        self.spec = spec.resolve(self.df)
        self.fitter = fitter

        if resample == "groups" and self.spec.groups is None:
            raise ValueError("resample='groups' requires a spec with a grouping column")
        if resample == "strata" and strata_cols is None:
            strata_cols = [c for c in self.spec.predictor_columns if c in self.spec.categorical]
            if not strata_cols:
                raise ValueError("resample='strata' needs strata_cols or a categorical predictor")
        missing = [c for c in (strata_cols or []) if c not in self.df.columns]
        if missing:
            raise ValueError(f"Strata columns not found in data: {missing}")

        self.config = BootstrapConfig(
            n_boot=n_boot,
            ci_level=ci_level,
            interval=interval,
            resample=resample,
            strata_cols=tuple(strata_cols or ()),
            random_state=random_state,
            n_jobs=n_jobs,
            backend=backend,
            max_failure_rate=max_failure_rate,
            min_coverage=min_coverage,
        )

        # State
        self.is_fitted_ = False
        self.results_: BootstrapResults | None = None

    def _fit_original(self) -> FitResult:
        try:
            return self.fitter(self.df, self.spec)
        except Exception as e:
            raise OriginalFitError(
                f"Model '{self.spec}' could not be fitted to the full data: "
                f"{type(e).__name__}: {e}"
            ) from e

    def _run_trials(
        self,
        seeds: list[np.random.SeedSequence],
        cancel_event: threading.Event | None,
    ) -> tuple[list[TrialOutcome], bool]:
        """Map trials over the configured backend; returns (outcomes in trial order, cancelled)."""
        cfg = self.config
        outcomes: list[TrialOutcome | None] = [None] * len(seeds)
        jobs = list(enumerate(seeds))
        n_workers = cfg.n_workers
        cancelled = False

        if len(jobs) >= _MIN_PARALLEL_TRIALS and n_workers != 1:
            batch_size = max(1, math.ceil(len(jobs) / (n_workers * 4)))
            batches = [jobs[i : i + batch_size] for i in range(0, len(jobs), batch_size)]
            pool_cls = ProcessPoolExecutor if cfg.backend == "process" else ThreadPoolExecutor
            executor = pool_cls(max_workers=n_workers)
            try:
                pending = {
                    executor.submit(
                        _run_trial_batch,
                        (self.df, self.spec, self.fitter, cfg.resample, cfg.strata_cols, batch),
                    )
                    for batch in batches
                }
                while pending:
                    if cancel_event is not None and cancel_event.is_set():
                        cancelled = True
                        break
                    done, pending = wait(pending, timeout=0.1, return_when=FIRST_COMPLETED)
                    for future in done:
                        for outcome in future.result():
                            outcomes[outcome.index] = outcome
            except KeyboardInterrupt:
                cancelled = True
            finally:
                executor.shutdown(wait=not cancelled, cancel_futures=True)
        else:
            try:
                for index, seed in jobs:
                    if cancel_event is not None and cancel_event.is_set():
                        cancelled = True
                        break
                    outcomes[index] = _run_trial(
                        self.df,
                        self.spec,
                        self.fitter,
                        cfg.resample,
                        cfg.strata_cols,
                        index,
                        seed,
                    )
            except KeyboardInterrupt:
                cancelled = True

        return [outcome for outcome in outcomes if outcome is not None], cancelled

    def _collect_warnings(self, results: BootstrapResults) -> None:
        """Attach (and emit) warnings about the reliability of the run."""
        cfg = self.config
        found: list[Warning] = []

        if results.cancelled:
            found.append(
                IncompleteRunWarning(
                    f"Bootstrap cancelled after {results.n_completed} of "
                    f"{results.n_requested} trials; summaries use the completed trials."
                )
            )

        if results.n_completed and results.failure_rate > cfg.max_failure_rate:
            found.append(
                ExcessiveFailureRateWarning(
                    f"{results.n_failed} of {results.n_completed} bootstrap trials "
                    f"failed ({results.failure_rate:.1%} > {cfg.max_failure_rate:.1%}). "
                    "Bootstrap summaries may be unreliable."
                )
            )

        coverage = results.coverage()
        for name in results.partial_coefficients:
            found.append(
                InsufficientCoverageWarning(
                    f"Coefficient '{name}' was estimated in only {coverage[name]} of "
                    f"{results.n_successful} successful trials."
                )
            )

        for w in found:
            logger.warning(str(w))
            warnings.warn(w, stacklevel=3)
        results.warnings.extend(found)

    def fit(self, cancel_event: threading.Event | None = None) -> "BootstrapEstimator":
        """
        Fit the full data, run the bootstrap trials and summarise them.

        Parameters
        ----------
        cancel_event : threading.Event, optional
            When set, no further trials are started and the trials collected so
            far are summarised (the result is marked as cancelled).

        Returns
        -------
        self
            The fitted estimator instance

        Raises
        ------
        OriginalFitError
            If the model cannot be fitted to the full data
        """
        cfg = self.config
        original = self._fit_original()

        seed_seq = np.random.SeedSequence(cfg.random_state)
        seeds = seed_seq.spawn(cfg.n_boot)

        logger.info(
            "Bootstrapping '%s' on %d rows: %d trials, %s resampling, %d worker(s)",
            self.spec,
            len(self.df),
            cfg.n_boot,
            cfg.resample,
            cfg.n_workers,
        )
        trials, cancelled = self._run_trials(seeds, cancel_event)

        results = BootstrapResults(
            original=original,
            spec=self.spec,
            trials=trials,
            config=cfg,
            seed_entropy=int(seed_seq.entropy),
            cancelled=cancelled,
        )
        logger.info(
            "Completed %d/%d trials (%d failed)",
            results.n_completed,
            results.n_requested,
            results.n_failed,
        )
        self._collect_warnings(results)

        self.results_ = results
        self.is_fitted_ = True
        return self

    def summary(
        self,
        interval: str | None = None,
        include_partial: bool = True,
        precision: int = 4,
    ) -> pd.DataFrame:
        """
        Display the bootstrap summary table.

        Parameters
        ----------
        interval : {'normal', 'percentile'}, optional
            Interval method. Defaults to the configured one.
        include_partial : bool, default=True
            Include coefficients missing from some trials
        precision : int, default=4
            Number of decimal places for numeric values

        Returns
        -------
        pd.DataFrame
            See :meth:`BootstrapResults.summary`
        """
        if not self.is_fitted_:
            raise RuntimeError("Bootstrap has not been run. Call fit() first.")

        res = self.results_
        interval = interval if interval is not None else self.config.interval
        summary_df = res.summary(interval=interval, include_partial=include_partial)

        print("=" * 70)
        print("Bootstrap Summary")
        print("=" * 70)
        print(f"Model: {self.spec}")
        print(f"N observations: {len(self.df)}")
        print(
            f"Trials: {res.n_completed}/{res.n_requested} completed, "
            f"{res.n_failed} failed"
            + (" (cancelled)" if res.cancelled else "")
        )
        print(f"Interval: {interval}, level {self.config.ci_level:g}")
        print("-" * 70)
        print()
        print(summary_df.round(precision).to_string())
        print()

        if res.warnings:
            print("-" * 70)
            print("Warnings:")
            for w in res.warnings:
                print(f"  {type(w).__name__}: {w}")
            print()

        print("=" * 70)

        return summary_df


def bootstrap(df: pd.DataFrame, spec: ModelSpec | str, **kwargs) -> BootstrapResults:
    """Run a :class:`BootstrapEstimator` and return its results."""
    return BootstrapEstimator(df, spec, **kwargs).fit().results_
