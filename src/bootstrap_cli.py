"""
Command-line entry point: bootstrap the coefficients of a model fitted to a
delimited data file.

Example:
    lm-bootstrap rxntime.txt --formula "PictureTarget.RT ~ Littered + FarAway" \
        --categorical Subject --n-boot 1000 --seed 1
"""

# Pipeline:
# 1) Read the table (header row, fixed delimiter), keeping declared label
#    columns verbatim.
# 2) Parse the formula into a model spec and fit the full data.
# 3) Resample and refit n-boot times, then print the per-coefficient summary
#    (and optionally write it to CSV).

from __future__ import annotations

import argparse
import logging
import sys
import time

from data_Tools import read_table
from model_Tools import ModelSpec
from paper_Bootstrap import (
    BACKENDS,
    INTERVAL_METHODS,
    RESAMPLE_METHODS,
    BootstrapEstimator,
    OriginalFitError,
)

logger = logging.getLogger("bootstrap_cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lm-bootstrap",
        description="Bootstrap standard errors and confidence intervals for linear model coefficients.",
    )
    parser.add_argument("data", help="Delimited text file with a header row")
    parser.add_argument("--formula", required=True, help="Model formula, e.g. 'y ~ a + C(b)'")
    parser.add_argument("--sep", default="\t", help="Field delimiter (default: tab)")
    parser.add_argument(
        "--categorical", nargs="*", default=[], help="Columns to treat as labels"
    )
    parser.add_argument("--groups", default=None, help="Grouping column for a mixed model")
    parser.add_argument("--n-boot", type=int, default=1000, help="Number of bootstrap trials")
    parser.add_argument("--ci-level", type=float, default=0.95, help="Confidence level")
    parser.add_argument("--interval", choices=INTERVAL_METHODS, default="normal")
    parser.add_argument("--resample", choices=RESAMPLE_METHODS, default="rows")
    parser.add_argument("--strata", nargs="*", default=None, help="Strata columns")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--n-jobs", type=int, default=-1, help="Workers (-1 for all cores)")
    parser.add_argument("--backend", choices=BACKENDS, default="process")
    parser.add_argument("--max-failure-rate", type=float, default=0.10)
    parser.add_argument("--min-coverage", type=float, default=1.0)
    parser.add_argument("--output", default=None, help="Write the summary table to this CSV file")
    parser.add_argument("--log-file", default=None, help="Also write the log to this file")

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Warnings only")
    return parser


def configure_logging(verbose: bool = False, quiet: bool = False, log_file: str | None = None) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="w"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose, args.quiet, args.log_file)

    start_time = time.time()
    try:
        df = read_table(args.data, sep=args.sep, categorical=args.categorical)
        spec = ModelSpec.from_formula(
            args.formula, categorical=args.categorical, groups=args.groups
        )
        estimator = BootstrapEstimator(
            df,
            spec,
            n_boot=args.n_boot,
            ci_level=args.ci_level,
            interval=args.interval,
            resample=args.resample,
            strata_cols=args.strata,
            random_state=args.seed,
            n_jobs=args.n_jobs,
            backend=args.backend,
            max_failure_rate=args.max_failure_rate,
            min_coverage=args.min_coverage,
        )
        estimator.fit()

        summary_df = estimator.summary()
        if args.output:
            summary_df.to_csv(args.output)
            logger.info("Summary written to %s", args.output)
    except (OriginalFitError, ValueError, OSError) as e:
        logger.error("%s", e)
        return 1

    logger.info("Total execution time: %.2f seconds", time.time() - start_time)
    return 0


if __name__ == "__main__":
    sys.exit(main())
