import numpy as np

# Colours

Interval_colours = {"normal": "#1f77b4", "percentile": "#ff7f0e"}
Estimate_colour = "#d62728"
Mixed_colour = "#9467bd"


def add_identity_line(ax, color="gray", linestyle="--", linewidth=1, **kwargs):
    """
    Add a y = x line spanning the current axis limits.

    Args:
        ax: matplotlib axis
        color: line colour
        linestyle: line style
        linewidth: line width
    """
    xlim = ax.get_xlim()
    ylim = ax.get_ylim()
    lo = min(xlim[0], ylim[0])
    hi = max(xlim[1], ylim[1])
    ax.plot([lo, hi], [lo, hi], color=color, linestyle=linestyle, linewidth=linewidth, **kwargs)
    ax.set_xlim(xlim)
    ax.set_ylim(ylim)


def boot_histogram(
    ax,
    results,
    coefficient,
    bins=30,
    interval=None,
    hist_kwargs=dict(),
    line_kwargs=dict(),
):
    """
    Histogram of the bootstrap distribution of one coefficient, with the
    full-data estimate and the confidence interval marked.

    Args:
        ax: matplotlib axis
        results: BootstrapResults
        coefficient: coefficient name
        bins: number of histogram bins
        interval: 'normal' or 'percentile' (defaults to the run's setting)
    """
    values = results.distribution(coefficient)
    if len(values) == 0:
        raise ValueError(f"No bootstrap values for coefficient '{coefficient}'")

    summary = results.coefficients(interval=interval)[coefficient]
    colour = Interval_colours.get(summary.interval, "k")

    ax.hist(values, bins=bins, color="lightgray", edgecolor="white", **hist_kwargs)
    if np.isfinite(summary.estimate):
        ax.axvline(summary.estimate, color=Estimate_colour, label="estimate", **line_kwargs)
    for bound in (summary.ci_low, summary.ci_high):
        if np.isfinite(bound):
            ax.axvline(bound, color=colour, linestyle="--", **line_kwargs)

    ax.set_xlabel(coefficient)
    ax.set_ylabel("Trials")
    ax.set_title(f"n = {summary.n_trials}, SE = {summary.std_error:.3g}")
    return ax


def coefficient_interval_plot(ax, summary, interval="normal", exclude=("Intercept",), marker="o"):
    """
    Point estimates with bootstrap interval bars, one row per coefficient.

    Args:
        ax: matplotlib axis
        summary: DataFrame from BootstrapResults.summary()
        interval: only used to pick the bar colour
        exclude: coefficient names to leave out
    """
    table = summary.drop(index=[c for c in exclude if c in summary.index])
    y = np.arange(len(table))[::-1]

    # a percentile interval need not contain the estimate
    lower = np.clip((table["estimate"] - table["ci_low"]).to_numpy(dtype=float), 0, None)
    upper = np.clip((table["ci_high"] - table["estimate"]).to_numpy(dtype=float), 0, None)

    ax.errorbar(
        table["estimate"],
        y,
        xerr=np.vstack([lower, upper]),
        fmt=marker,
        color=Interval_colours.get(interval, "k"),
        capsize=3,
    )
    # partially covered coefficients are drawn hollow
    if "partial" in table.columns and table["partial"].any():
        mask = table["partial"].to_numpy(dtype=bool)
        ax.scatter(
            table["estimate"][mask], y[mask], facecolors="white", edgecolors="k", zorder=5
        )

    ax.axvline(0, color="gray", linewidth=0.8)
    ax.set_yticks(y)
    ax.set_yticklabels(table.index)
    ax.set_xlabel("Estimate")
    return ax


def group_boxplot(ax, df, response, by, **kwargs):
    """Boxplot of a response within each level of a grouping column (labels, not magnitudes)."""
    labels = df[by].astype(str)
    levels = sorted(labels.unique())
    data = [df.loc[labels == level, response].dropna().to_numpy() for level in levels]
    ax.boxplot(data, **kwargs)
    ax.set_xticks(np.arange(1, len(levels) + 1))
    ax.set_xticklabels(levels, rotation=90 if len(levels) > 10 else 0)
    ax.set_xlabel(by)
    ax.set_ylabel(response)
    return ax


def shrinkage_plot(ax, comparison, annotate=False, scatter_kwargs=dict()):
    """
    Fixed-effects group estimates against mixed-model (shrunken) estimates.

    Args:
        ax: matplotlib axis
        comparison: DataFrame from model_Tools.group_coefficients()
        annotate: label each point with its group
    """
    table = comparison.dropna(subset=["fixed", "mixed"])
    ax.scatter(table["fixed"], table["mixed"], color=Mixed_colour, **scatter_kwargs)
    if annotate:
        for label, row in table.iterrows():
            ax.annotate(str(label), (row["fixed"], row["mixed"]), fontsize=8)

    add_identity_line(ax)
    ax.set_xlabel("Fixed effects estimate")
    ax.set_ylabel("Mixed model estimate")
    return ax


def bootstrap_table(results, coefficients=None):
    """Long-format table (trial, coefficient, value) for custom plotting."""
    wide = results.to_frame()
    if coefficients is not None:
        wide = wide[list(coefficients)]
    long = wide.reset_index().melt(id_vars="trial", var_name="coefficient", value_name="value")
    return long.dropna(subset=["value"]).reset_index(drop=True)
