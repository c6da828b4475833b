"""Unit tests for the statistical test battery."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from conftest import make_raw
from shelter_cleaning import create_clean_table
from shelter_config import AnalysisConfig
from shelter_errors import InsufficientDataError
from shelter_stats import (
    chi_squared_test,
    cramers_v,
    dunn_test,
    fit_stay_model,
    kruskal_wallis,
    one_way_anova,
    run_test_battery,
    simulated_p_value,
    summary_table,
    two_sample_t_test,
    welch_t_test,
)


@pytest.fixture
def records(shelter_raw) -> pd.DataFrame:
    return create_clean_table(shelter_raw).records


def test_welch_on_matching_groups_gives_zero_t_and_unit_p() -> None:
    """Same mean and variance means no evidence of a difference."""
    result = two_sample_t_test([1.0, 2.0, 3.0, 4.0, 5.0], [5.0, 4.0, 3.0, 2.0, 1.0])

    assert result.t_statistic == pytest.approx(0.0, abs=1e-12)
    assert result.p_value == pytest.approx(1.0)
    assert result.ci_low < 0 < result.ci_high


def test_welch_matches_scipy_and_satterthwaite_df() -> None:
    """Welch statistic, p-value and df agree with the reference formulas."""
    a = np.array([3.0, 5.0, 8.0, 9.0, 12.0, 14.0])
    b = np.array([1.0, 2.0, 2.5, 3.0])

    result = two_sample_t_test(a, b)
    reference = stats.ttest_ind(a, b, equal_var=False)
    va, vb = a.var(ddof=1) / len(a), b.var(ddof=1) / len(b)
    expected_df = (va + vb) ** 2 / (va**2 / (len(a) - 1) + vb**2 / (len(b) - 1))

    assert result.t_statistic == pytest.approx(reference.statistic)
    assert result.p_value == pytest.approx(reference.pvalue)
    assert result.df == pytest.approx(expected_df)
    assert result.ci_low < result.mean_difference < result.ci_high


def test_pooled_t_test_uses_pooled_degrees_of_freedom() -> None:
    """The pooled variant is available and reports n_a + n_b - 2 df."""
    result = two_sample_t_test([1.0, 2.0, 4.0], [2.0, 3.0, 7.0, 9.0], equal_var=True)

    assert result.equal_var is True
    assert result.df == 5


def test_t_test_rejects_single_observation_group() -> None:
    """A group of one cannot support a variance estimate."""
    with pytest.raises(InsufficientDataError):
        two_sample_t_test([1.0], [2.0, 3.0])


def test_welch_by_adoption_compares_adopted_to_other_outcomes(records) -> None:
    """In-care records have no duration and fall out of both groups."""
    result = welch_t_test(records)

    with_stay = records[records["stay_duration_days"].notna()]
    assert result.n_a == int(with_stay["adopted"].sum())
    assert result.n_a + result.n_b == len(with_stay)
    assert result.mean_a > result.mean_b


def test_welch_by_adoption_leaves_out_in_care_record_with_outcome_date() -> None:
    """An animal with no outcome type is in neither group, whatever its dates say."""
    raw = make_raw(
        [
            {"Outcome Type": "ADOPTION", "Outcome Date": "2020-01-11"},
            {"Outcome Type": "ADOPTION", "Outcome Date": "2020-01-13"},
            {"Outcome Type": "TRANSFER", "Outcome Date": "2020-01-05"},
            {"Outcome Type": "TRANSFER", "Outcome Date": "2020-01-07"},
            {"Outcome Type": None, "Outcome Date": "2021-02-04"},
        ]
    )
    records = create_clean_table(raw).records
    assert records["stay_duration_days"].iloc[-1] == 400

    result = welch_t_test(records)

    assert (result.n_a, result.n_b) == (2, 2)
    assert result.mean_a == pytest.approx(11.0)
    assert result.mean_b == pytest.approx(5.0)


def test_anova_reports_degrees_of_freedom(records) -> None:
    """Three animal types give 2 between-group df."""
    result = one_way_anova(records)

    n = records["stay_duration_days"].notna().sum()
    assert result.df_between == 2
    assert result.df_within == n - 3
    assert result.p_value < 0.05


def test_anova_rejects_group_with_one_observation() -> None:
    """Too small a group is an error, not a NaN statistic."""
    frame = pd.DataFrame(
        {"stay_duration_days": [1.0, 2.0, 3.0, 4.0], "animal_type": ["cat", "cat", "cat", "dog"]}
    )

    with pytest.raises(InsufficientDataError, match="fewer than 2"):
        one_way_anova(frame)


def test_kruskal_and_dunn_follow_up(records) -> None:
    """A clear difference in stays is picked up and broken down by pair."""
    kruskal = kruskal_wallis(records)
    dunn = dunn_test(records)

    assert kruskal.df == 2
    assert kruskal.p_value < 0.05
    assert dunn.adjustment == "holm"
    assert [(p.group_a, p.group_b) for p in dunn.pairs] == [("cat", "dog"), ("cat", "other"), ("dog", "other")]
    assert all(p.adjusted_p_value >= p.p_value for p in dunn.pairs)


def test_dunn_bonferroni_multiplies_by_pair_count(records) -> None:
    """Bonferroni adjustment is the raw p-value times the number of pairs."""
    dunn = dunn_test(records, adjustment="bonferroni")

    for pair in dunn.pairs:
        assert pair.adjusted_p_value == pytest.approx(min(1.0, 3 * pair.p_value))
    assert len(dunn.to_frame()) == 3


def test_dunn_matches_hand_computed_values_with_ties() -> None:
    """Mean ranks 13/6, 29/6 and 15/2 over eight values with one tied pair."""
    frame = pd.DataFrame(
        {
            "stay_duration_days": [1.0, 2.0, 3.0, 3.0, 4.0, 5.0, 6.0, 7.0],
            "animal_type": ["a", "a", "a", "b", "b", "b", "c", "c"],
        }
    )

    dunn = dunn_test(frame)

    # spread = 8 * 9 / 12 - (2**3 - 2) / (12 * 7) = 83 / 14
    z = {(p.group_a, p.group_b): p.z_statistic for p in dunn.pairs}
    assert z[("a", "b")] == pytest.approx(-1.341342, abs=1e-5)
    assert z[("a", "c")] == pytest.approx(-2.399464, abs=1e-5)
    assert z[("b", "c")] == pytest.approx(-1.199732, abs=1e-5)

    raw_p = [p.p_value for p in dunn.pairs]
    assert raw_p == pytest.approx([0.1798, 0.01642, 0.2302], abs=5e-4)
    # holm: 3 * 0.01642, then max(2 * 0.1798, 0.2302) for the other two
    adjusted = [p.adjusted_p_value for p in dunn.pairs]
    assert adjusted == pytest.approx([0.3596, 0.04926, 0.3596], abs=1e-3)
    assert [p.reject for p in dunn.pairs] == [False, True, False]


def test_kruskal_rejects_all_tied_values() -> None:
    """Identical values cannot be ranked apart."""
    frame = pd.DataFrame({"stay_duration_days": [2.0] * 4, "animal_type": ["cat", "cat", "dog", "dog"]})

    with pytest.raises(InsufficientDataError):
        kruskal_wallis(frame)


def test_linear_model_reports_fit_statistics(records) -> None:
    """OLS uses only records with a duration and dummy codes each factor."""
    result = fit_stay_model(records)

    assert result.n_obs == records["stay_duration_days"].notna().sum()
    assert "Intercept" in result.coefficients
    assert "C(animal_type)[T.dog]" in result.coefficients
    assert 0 <= result.r_squared <= 1
    assert result.residual_std_error > 0
    assert 0 <= result.f_pvalue <= 1


def test_cramers_v_bounds() -> None:
    """V is 0 under independence and 1 for a one-to-one table."""
    assert cramers_v([[10, 10], [10, 10]]) == pytest.approx(0.0)
    assert cramers_v([[12, 0, 0], [0, 7, 0], [0, 0, 9]]) == pytest.approx(1.0)

    rng = np.random.default_rng(3)
    for _ in range(20):
        value = cramers_v(rng.integers(1, 30, size=(3, 4)))
        assert 0.0 <= value <= 1.0


def test_cramers_v_rejects_degenerate_table() -> None:
    with pytest.raises(InsufficientDataError):
        cramers_v([[4, 5, 6]])


def test_chi_squared_rejects_one_by_n_table(records) -> None:
    """A single animal type leaves nothing to compare."""
    cats = records[records["animal_type"] == "cat"]

    with pytest.raises(InsufficientDataError, match="1x"):
        chi_squared_test(cats, "animal_type", "outcome_type")


def test_chi_squared_asymptotic_on_well_filled_table(records) -> None:
    """Plenty of data per cell keeps the asymptotic p-value."""
    result = chi_squared_test(records, "intake_type", "animal_type")
    table = pd.crosstab(records["intake_type"], records["animal_type"])
    reference = stats.chi2_contingency(table, correction=False)

    assert result.method == "asymptotic"
    assert result.statistic == pytest.approx(reference[0])
    assert result.p_value == pytest.approx(reference[1])
    assert result.dof == 4
    assert 0.0 <= result.cramers_v <= 1.0


def test_chi_squared_simulates_sparse_table_reproducibly() -> None:
    """Small expected counts switch to a seeded Monte-Carlo p-value."""
    frame = pd.DataFrame(
        {
            "intake_type": ["stray"] * 4 + ["owner-surrender"] * 3,
            "outcome_type": ["adoption", "adoption", "adoption", "transfer", "transfer", "transfer", "adoption"],
        }
    )

    first = chi_squared_test(frame, "intake_type", "outcome_type", seed=11)
    second = chi_squared_test(frame, "intake_type", "outcome_type", seed=11)

    assert first.method == "monte_carlo"
    assert first.n_simulations == 2000
    assert first.p_value == second.p_value
    assert 0 < first.p_value <= 1


def test_simulated_p_value_is_one_for_independent_table() -> None:
    """No simulated table can be less extreme than perfect independence."""
    assert simulated_p_value([[5, 5], [5, 5]], n_simulations=200, seed=1) == 1.0


def test_chi_squared_rejects_unknown_simulate_mode(records) -> None:
    with pytest.raises(ValueError, match="simulate"):
        chi_squared_test(records, "intake_type", "animal_type", simulate="sometimes")


def test_battery_runs_every_test_and_is_deterministic(records) -> None:
    """Two runs over the same records give identical summaries."""
    config = AnalysisConfig(n_simulations=300)

    first = run_test_battery(records, config)
    second = run_test_battery(records, config)

    assert all(entry.status == "ok" for entry in first.values())
    assert len(first) == 8
    pd.testing.assert_frame_equal(summary_table(first), summary_table(second))


def test_battery_keeps_going_after_a_failed_test(records) -> None:
    """A degenerate animal type breaks its tests but not the others."""
    cats = records[records["animal_type"] == "cat"]

    entries = run_test_battery(cats)
    summary = summary_table(entries)

    assert entries["anova_animal_type"].status == "error"
    assert entries["kruskal_animal_type"].status == "error"
    assert entries["dunn_animal_type"].status == "skipped"
    assert entries["chi_squared_outcome_type_animal_type"].status == "error"
    assert entries["chi_squared_intake_type_outcome_type"].status == "ok"
    assert entries["t_test_adopted"].status == "ok"
    assert set(summary["test"]) == set(entries)
