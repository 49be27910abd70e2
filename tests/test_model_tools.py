import numpy as np
import pandas as pd
import pytest

from data_Tools import scale_columns
from model_Tools import (
    DegenerateFitError,
    ModelSpec,
    anova_table,
    compare_mixed_models,
    fit_formula,
    fit_model,
    fitted_table,
    group_coefficients,
    variance_decomposition,
)


### Specs


def test_from_formula_crossing_expands_main_effects_and_interaction():
    spec = ModelSpec.from_formula("RT ~ Littered * FarAway")
    assert spec.response == "RT"
    assert spec.terms == (("Littered",), ("FarAway",), ("Littered", "FarAway"))
    assert spec.intercept


def test_from_formula_markers_quoting_and_intercept():
    spec = ModelSpec.from_formula("Q('PictureTarget.RT') ~ factor(Subject) + C(Site) + x - 1")
    assert spec.response == "PictureTarget.RT"
    assert spec.categorical == frozenset({"Subject", "Site"})
    assert spec.terms == (("Subject",), ("Site",), ("x",))
    assert not spec.intercept
    assert ModelSpec.from_formula("y ~ 0 + x").intercept is False


def test_from_formula_duplicate_terms_collapse():
    spec = ModelSpec.from_formula("y ~ a + b + a:b + b:a + a")
    assert spec.terms == (("a",), ("b",), ("a", "b"))


def test_from_formula_random_effect_block():
    spec = ModelSpec.from_formula("GPA ~ SAT.V + SAT.Q + (1 + SAT.Q | School)")
    assert spec.groups == "School"
    assert spec.random_slopes == ("SAT.Q",)
    assert spec.terms == (("SAT.V",), ("SAT.Q",))
    assert spec.is_mixed
    assert spec.re_formula() == "~Q('SAT.Q')"

    intercept_only = ModelSpec.from_formula("GPA ~ SAT.V + (1 | School)")
    assert intercept_only.random_slopes == ()
    assert intercept_only.re_formula() == "1"


def test_spec_validation():
    with pytest.raises(ValueError):
        ModelSpec.from_formula("y + x")
    with pytest.raises(ValueError):
        ModelSpec(response="y", terms=(("y",),))
    with pytest.raises(ValueError):
        ModelSpec(response="y", terms=(("x",),), random_slopes=("x",))


def test_formula_quotes_dotted_names():
    spec = ModelSpec.from_formula("GPA ~ SAT.V + SAT.Q:School")
    assert spec.formula() == "GPA ~ Q('SAT.V') + Q('SAT.Q'):School"
    assert str(spec) == "GPA ~ SAT.V + SAT.Q:School"


def test_resolve_pins_reference_levels(rxntime):
    spec = ModelSpec.from_formula("PictureTarget.RT ~ Littered + factor(Subject)").resolve(rxntime)
    assert spec.resolved
    refs = spec.reference_map
    assert refs["Littered"] == "no"
    # subject ids are labels: sorted as strings
    assert refs["Subject"] == "1"
    assert spec.categorical == frozenset({"Littered", "Subject"})


def test_resolve_rejects_missing_columns_and_unknown_reference(rxntime):
    with pytest.raises(ValueError):
        ModelSpec.from_formula("PictureTarget.RT ~ Missing").resolve(rxntime)
    with pytest.raises(ValueError):
        ModelSpec.from_formula(
            "PictureTarget.RT ~ Littered", references={"Littered": "maybe"}
        ).resolve(rxntime)
    with pytest.raises(ValueError):
        ModelSpec.from_formula("Littered ~ FarAway").resolve(rxntime)


def test_prepare_raises_when_reference_level_absent(rxntime):
    spec = ModelSpec.from_formula("PictureTarget.RT ~ Littered").resolve(rxntime)
    only_yes = rxntime[rxntime["Littered"] == "yes"]
    with pytest.raises(DegenerateFitError):
        spec.prepare(only_yes)


def test_prepare_drops_unobserved_levels(rxntime):
    spec = ModelSpec.from_formula("PictureTarget.RT ~ factor(Subject)").resolve(rxntime)
    subset = rxntime[rxntime["Subject"].isin([1, 2, 3])]
    data = spec.prepare(subset)
    assert list(data["Subject"].cat.categories) == ["1", "2", "3"]


### Fits


def test_group_model_coefficients_are_group_means(rxntime):
    fit = fit_formula(rxntime, "PictureTarget.RT ~ Littered")
    means = rxntime.groupby("Littered")["PictureTarget.RT"].mean()

    assert set(fit.params) == {"Intercept", "Littered[T.yes]"}
    assert fit.params["Intercept"] == pytest.approx(means["no"])
    assert fit.params["Littered[T.yes]"] == pytest.approx(means["yes"] - means["no"])
    assert fit.std_errors["Littered[T.yes]"] > 0
    assert fit.nobs == 960


def test_fit_model_resolves_unresolved_spec(rxntime):
    spec = ModelSpec.from_formula("PictureTarget.RT ~ Littered + factor(Subject)")
    fit = fit_model(rxntime, spec)
    assert "Subject[T.12]" in fit.params
    assert len(fit.params) == 1 + 1 + 11


def test_dotted_numeric_names_are_cleaned(ut2000):
    fit = fit_formula(ut2000, "GPA ~ SAT.V + SAT.Q")
    assert set(fit.params) == {"Intercept", "SAT.V", "SAT.Q"}
    assert fit.params["SAT.V"] == pytest.approx(0.3, abs=0.15)


def test_aliased_column_is_dropped_not_fatal(ut2000):
    df = ut2000.assign(twice=2 * ut2000["SAT.V"])
    fit = fit_formula(df, "GPA ~ SAT.V + twice")
    reference = fit_formula(ut2000, "GPA ~ SAT.V")

    assert fit.aliased == ("twice",)
    assert set(fit.params) == {"Intercept", "SAT.V"}
    assert fit.params["SAT.V"] == pytest.approx(reference.params["SAT.V"])
    assert fit.std_errors["SAT.V"] == pytest.approx(reference.std_errors["SAT.V"])
    with pytest.raises(ValueError):
        anova_table(fit)


def test_empty_interaction_cell_drops_only_its_coefficient():
    df = pd.DataFrame(
        {
            "A": ["a", "a", "b", "b", "a", "b"],
            "B": ["x", "y", "x", "x", "y", "x"],
            "y": [1.0, 2.0, 3.5, 2.5, 2.2, 3.1],
        }
    )
    fit = fit_formula(df, "y ~ A * B")
    assert fit.aliased == ("A[T.b]:B[T.y]",)
    assert set(fit.params) == {"Intercept", "A[T.b]", "B[T.y]"}


def test_design_without_estimable_columns_is_degenerate(ut2000):
    df = ut2000.assign(zero=0.0)
    with pytest.raises(DegenerateFitError):
        fit_formula(df, "GPA ~ zero - 1")


def test_conf_int_contains_estimates(rxntime):
    fit = fit_formula(rxntime, "PictureTarget.RT ~ Littered + FarAway")
    ci = fit.conf_int(0.95)
    assert list(ci.index) == list(fit.params)
    for name, value in fit.params.items():
        assert ci.loc[name, "ci_low"] < value < ci.loc[name, "ci_high"]


def test_variance_decomposition_adds_up(rxntime):
    fit = fit_formula(rxntime, "PictureTarget.RT ~ Littered")
    parts = variance_decomposition(fit)
    assert parts["ss_model"] + parts["ss_resid"] == pytest.approx(parts["ss_total"])
    assert parts["r2"] == pytest.approx(fit.model.rsquared)

    table = fitted_table(fit)
    assert len(table) == 960
    assert np.allclose(table["observed"], table["fitted"] + table["resid"])


def test_anova_order_does_not_matter_for_balanced_design(rxntime):
    lm3 = fit_formula(rxntime, "PictureTarget.RT ~ Littered + FarAway")
    lm3b = fit_formula(rxntime, "PictureTarget.RT ~ FarAway + Littered")

    assert lm3.params == pytest.approx(lm3b.params)
    a, b = anova_table(lm3), anova_table(lm3b)
    for term in ("Littered", "FarAway", "Residual"):
        assert a.loc[term, "sum_sq"] == pytest.approx(b.loc[term, "sum_sq"])


def test_anova_interaction_term_name(rxntime):
    fit = fit_formula(rxntime, "PictureTarget.RT ~ Littered * FarAway")
    table = anova_table(fit)
    assert "Littered:FarAway" in table.index
    with pytest.raises(ValueError):
        anova_table(fit, typ=4)


### Mixed models


def test_mixed_model_matches_ols_for_balanced_within_subject_design(rxntime):
    ols = fit_formula(rxntime, "PictureTarget.RT ~ Littered + FarAway")
    hlm = fit_formula(
        rxntime, "PictureTarget.RT ~ Littered + FarAway + (1 | Subject)"
    )
    assert hlm.is_mixed
    assert set(hlm.params) == set(ols.params)
    assert hlm.params["Littered[T.yes]"] == pytest.approx(ols.params["Littered[T.yes]"], rel=1e-4)
    with pytest.raises(ValueError):
        anova_table(hlm)


def test_group_intercepts_shrink_toward_common_mean(rxntime):
    ols = fit_formula(rxntime, "PictureTarget.RT ~ Littered + FarAway + factor(Subject)")
    hlm = fit_formula(rxntime, "PictureTarget.RT ~ Littered + FarAway + (1 | Subject)")

    table = group_coefficients(ols, hlm, "Subject")
    assert sorted(table.index) == sorted(str(i) for i in range(1, 13))
    assert (table["n"] == 80).all()
    assert table[["fixed", "mixed"]].notna().all().all()
    assert table["mixed"].var() < table["fixed"].var()


def test_group_slopes_and_likelihood_ratio(ut2000):
    df = scale_columns(ut2000, ["GPA"])
    lm2 = fit_formula(df, "GPA ~ SAT.V + SAT.Q + School + SAT.Q:School")
    hlm1 = fit_formula(df, "GPA ~ SAT.V + SAT.Q + (1 | School)", reml=False)
    hlm2 = fit_formula(df, "GPA ~ SAT.V + SAT.Q + (1 + SAT.Q | School)", reml=False)

    slopes = group_coefficients(lm2, hlm2, "School", slope="SAT.Q")
    assert len(slopes) == 10
    assert slopes[["fixed", "mixed"]].notna().all().all()
    assert slopes.loc["School09", "n"] == 12
    assert slopes["mixed"].var() < slopes["fixed"].var()

    lrt = compare_mixed_models(hlm1, hlm2)
    assert lrt["df"] == 2
    assert lrt["chi2"] >= 0
    assert 0 <= lrt["p_value"] <= 1


def test_group_coefficients_requires_matching_fits(rxntime):
    ols = fit_formula(rxntime, "PictureTarget.RT ~ Littered")
    hlm = fit_formula(rxntime, "PictureTarget.RT ~ Littered + (1 | Subject)")
    with pytest.raises(ValueError):
        group_coefficients(ols, hlm, "Subject")
