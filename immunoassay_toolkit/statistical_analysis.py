"""
Statistical Analysis Module for Immunoassay Data

This module provides a configuration-driven, normality-gated pairwise
comparison: a Shapiro-Wilk test on every group decides whether the whole
comparison set uses a parametric (t-test) or non-parametric (rank-based)
pairwise test, p-values are Benjamini-Hochberg corrected, and corrected
p-values are mapped to significance symbols.
"""

import pandas as pd
import numpy as np
from itertools import combinations
from scipy.stats import shapiro, ttest_rel, ttest_ind, wilcoxon, mannwhitneyu
from statsmodels.stats.multitest import multipletests
import warnings

from .validation import require_columns


# (upper bound, symbol) pairs, checked from the smallest bound up.
DEFAULT_SIGNIFICANCE_THRESHOLDS = [(0.001, "***"), (0.01, "**"), (0.05, "*")]

MIN_NORMALITY_N = 3


class StatisticalConfig:
    """Configuration class for the normality-gated pairwise comparison

    Typical setups:
    - Treatment-wise: group_column='Treatment', subject_column='Donor', paired=True
    - Month-wise: group_column='Month', paired=False
    """

    def __init__(self):
        # Table layout
        self.value_column = "FoldChange"
        self.group_column = None  # Must be set by user
        self.subject_column = None  # Required for paired comparisons
        self.group_order = None  # Optional explicit order of groups

        # Test selection
        self.paired = False
        self.normality_alpha = 0.05
        self.equal_var = True  # Student (True) or Welch (False) for unpaired t-tests

        # Multiple testing correction
        self.correction_method = "fdr_bh"  # any statsmodels method, or "none"

        # P-value to symbol mapping
        self.significance_thresholds = list(DEFAULT_SIGNIFICANCE_THRESHOLDS)
        self.not_significant_symbol = ""

    def validate(self):
        """Validate that required parameters are set"""
        if not self.group_column:
            raise ValueError("group_column must be set")
        if self.paired and not self.subject_column:
            raise ValueError("paired comparisons require subject_column")
        if not 0 < self.normality_alpha < 1:
            raise ValueError("normality_alpha must be between 0 and 1")
        bounds = [bound for bound, _ in self.significance_thresholds]
        if bounds != sorted(bounds):
            raise ValueError("significance_thresholds must be sorted by increasing p-value bound")
        return True


def p_value_to_symbol(p_value, thresholds=None, not_significant=""):
    """
    Map a p-value to a significance symbol.

    With the default thresholds: p >= 0.05 -> "", [0.01, 0.05) -> "*",
    [0.001, 0.01) -> "**", p < 0.001 -> "***". NaN maps to "".
    """
    if thresholds is None:
        thresholds = DEFAULT_SIGNIFICANCE_THRESHOLDS
    if p_value is None or pd.isna(p_value):
        return not_significant
    for bound, symbol in thresholds:
        if p_value < bound:
            return symbol
    return not_significant


def _ordered_groups(data, config):
    """Groups present in the data, in configured order (else order of appearance)."""
    present = pd.unique(data[config.group_column].dropna())
    if config.group_order is not None:
        missing = [g for g in config.group_order if g not in set(present)]
        if missing:
            print(f"Warning: groups not found in data: {missing}")
        return [g for g in config.group_order if g in set(present)]
    return list(present)


def assess_normality(data, value_column, group_column, group_order=None):
    """
    Run a Shapiro-Wilk normality test on every group.

    Parameters:
    -----------
    data : pd.DataFrame
        Long-format table with a numeric response and a grouping factor
    value_column : str
        Numeric response column
    group_column : str
        Grouping factor
    group_order : list, optional
        Order of groups in the output

    Returns:
    --------
    pd.DataFrame
        One row per group: group, n, W, p_value, testable
        (groups with fewer than 3 finite values, or with identical values,
        are not testable and get NaN statistics)
    """

    require_columns(data, [value_column, group_column], "comparison table")

    if group_order is not None:
        groups = list(group_order)
    else:
        groups = list(pd.unique(data[group_column].dropna()))
    rows = []
    for group in groups:
        values = pd.to_numeric(
            data.loc[data[group_column] == group, value_column], errors="coerce"
        )
        values = values[np.isfinite(values)]
        if len(values) < MIN_NORMALITY_N:
            rows.append(
                {"group": group, "n": len(values), "W": np.nan, "p_value": np.nan, "testable": False}
            )
            continue
        if values.max() == values.min():
            # Identical values (e.g. all readouts below range) say nothing about normality
            rows.append(
                {"group": group, "n": len(values), "W": np.nan, "p_value": np.nan, "testable": False}
            )
            continue

        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            statistic, p_value = shapiro(values)

        rows.append(
            {
                "group": group,
                "n": len(values),
                "W": float(statistic),
                "p_value": float(p_value),
                "testable": bool(np.isfinite(p_value)),
            }
        )

    return pd.DataFrame(rows, columns=["group", "n", "W", "p_value", "testable"])


def choose_test_family(normality, alpha=0.05):
    """
    Decide between the parametric and non-parametric test family.

    Parametric only if every group could be tested and the smallest
    Shapiro-Wilk p-value is >= alpha.

    Returns:
    --------
    bool
        True for parametric, False for non-parametric
    """
    if normality.empty or not normality["testable"].all():
        return False
    return bool(normality["p_value"].min() >= alpha)


def _pair_values(data, config, group1, group2):
    """Values of two groups; for paired designs aligned by subject."""
    subset = data[[config.group_column, config.value_column]
                  + ([config.subject_column] if config.subject_column else [])].copy()
    subset[config.value_column] = pd.to_numeric(subset[config.value_column], errors="coerce")
    subset = subset[np.isfinite(subset[config.value_column])]

    first = subset[subset[config.group_column] == group1]
    second = subset[subset[config.group_column] == group2]

    if not config.paired:
        return first[config.value_column], second[config.value_column]

    # Key join on subject rather than relying on row order
    for group, values in ((group1, first), (group2, second)):
        repeated = values[config.subject_column][values[config.subject_column].duplicated()].unique()
        if len(repeated):
            print(f"Warning: {group} has several values for subjects {list(repeated)}; excluded from pairing")
    first = first.drop_duplicates(subset=config.subject_column, keep=False)
    second = second.drop_duplicates(subset=config.subject_column, keep=False)
    paired = first.merge(second, on=config.subject_column, suffixes=("_1", "_2"))
    return paired[f"{config.value_column}_1"], paired[f"{config.value_column}_2"]


def _create_empty_pair_result(group1, group2, n1, n2, test_method, reason):
    """Create an empty result for a pair that could not be tested"""
    return {
        "group1": group1,
        "group2": group2,
        "n1": n1,
        "n2": n2,
        "statistic": np.nan,
        "P.Value": np.nan,
        "test_method": test_method,
        "note": reason,
    }


def _test_method_name(paired, parametric, equal_var=True):
    if parametric:
        if paired:
            return "Paired t-test"
        return "Student t-test" if equal_var else "Welch t-test"
    return "Wilcoxon signed-rank" if paired else "Mann-Whitney U"


def run_pairwise_tests(data, config, parametric):
    """
    Run one test per unordered pair of groups.

    Parameters:
    -----------
    data : pd.DataFrame
        Long-format table
    config : StatisticalConfig
        Layout and test configuration
    parametric : bool
        Use t-tests (True) or rank-based tests (False)

    Returns:
    --------
    pd.DataFrame
        Raw pairwise results (group1, group2, n1, n2, statistic, P.Value,
        test_method, note)
    """

    groups = _ordered_groups(data, config)
    test_method = _test_method_name(config.paired, parametric, config.equal_var)
    min_n = 2

    results = []
    for group1, group2 in combinations(groups, 2):
        values1, values2 = _pair_values(data, config, group1, group2)
        n1, n2 = len(values1), len(values2)

        if n1 < min_n or n2 < min_n:
            results.append(
                _create_empty_pair_result(group1, group2, n1, n2, test_method, "Insufficient data")
            )
            continue

        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                if parametric and config.paired:
                    statistic, p_value = ttest_rel(values1, values2)
                elif parametric:
                    statistic, p_value = ttest_ind(values1, values2, equal_var=config.equal_var)
                elif config.paired:
                    differences = values1.to_numpy() - values2.to_numpy()
                    if np.all(differences == 0):
                        results.append(
                            _create_empty_pair_result(
                                group1, group2, n1, n2, test_method, "All paired differences are zero"
                            )
                        )
                        continue
                    statistic, p_value = wilcoxon(values1, values2, alternative="two-sided")
                else:
                    statistic, p_value = mannwhitneyu(values1, values2, alternative="two-sided")

            results.append(
                {
                    "group1": group1,
                    "group2": group2,
                    "n1": n1,
                    "n2": n2,
                    "statistic": float(statistic),
                    "P.Value": float(p_value),
                    "test_method": test_method,
                    "note": "",
                }
            )

        except (ValueError, RuntimeError, ZeroDivisionError) as e:
            results.append(
                _create_empty_pair_result(group1, group2, n1, n2, test_method, f"Analysis failed: {e}")
            )

    return pd.DataFrame(
        results,
        columns=["group1", "group2", "n1", "n2", "statistic", "P.Value", "test_method", "note"],
    )


def apply_multiple_testing_correction(results_df, method="fdr_bh"):
    """
    Apply multiple testing correction across all pairs of one comparison set.

    NaN p-values stay NaN and are not counted in the correction family.
    """

    results_df = results_df.copy()

    if "P.Value" not in results_df.columns:
        print("Warning: No P.Value column found for correction")
        return results_df

    valid = results_df["P.Value"].notna()
    results_df["adj.P.Val"] = np.nan

    if not valid.any():
        return results_df

    if method == "none":
        results_df.loc[valid, "adj.P.Val"] = results_df.loc[valid, "P.Value"]
    else:
        _, adj_pvalues, _, _ = multipletests(
            results_df.loc[valid, "P.Value"].to_numpy(), method=method
        )
        results_df.loc[valid, "adj.P.Val"] = adj_pvalues

    return results_df


def run_normality_gated_comparison(data, config, verbose=True):
    """
    Normality check -> test choice -> pairwise tests -> correction -> symbols.

    Parameters:
    -----------
    data : pd.DataFrame
        Long-format table with config.value_column and config.group_column
    config : StatisticalConfig
        Comparison configuration
    verbose : bool
        Print the test decision and a results summary

    Returns:
    --------
    results : pd.DataFrame
        group1, group2, n1, n2, statistic, P.Value, adj.P.Val, Significance,
        test_method, parametric, note
    normality : pd.DataFrame
        Per-group Shapiro-Wilk results
    """

    config.validate()
    required = [config.value_column, config.group_column]
    if config.paired:
        required.append(config.subject_column)
    require_columns(data, required, "comparison table")

    groups = _ordered_groups(data, config)
    normality = assess_normality(data, config.value_column, config.group_column, groups)
    parametric = choose_test_family(normality, config.normality_alpha)

    if verbose:
        min_p = normality["p_value"].min()
        decision = "parametric" if parametric else "non-parametric"
        print(f"Normality check on {len(groups)} groups (Shapiro-Wilk):")
        print(f"  -> Minimum p-value: {min_p:.4g}" if pd.notna(min_p) else "  -> Minimum p-value: n/a")
        untestable = normality.loc[~normality["testable"], "group"].tolist()
        if untestable:
            print(f"  -> Groups not testable (n < 3 or constant): {untestable}")
        print(f"  -> Using {decision} test: {_test_method_name(config.paired, parametric, config.equal_var)}")

    results = run_pairwise_tests(data, config, parametric)
    results = apply_multiple_testing_correction(results, config.correction_method)
    results["Significance"] = results["adj.P.Val"].apply(
        lambda p: p_value_to_symbol(
            p, config.significance_thresholds, config.not_significant_symbol
        )
    )
    results["parametric"] = parametric

    results = results[
        ["group1", "group2", "n1", "n2", "statistic", "P.Value", "adj.P.Val",
         "Significance", "test_method", "parametric", "note"]
    ]

    if verbose:
        n_significant = (results["Significance"] != config.not_significant_symbol).sum()
        print(f"✓ {len(results)} pairwise comparisons, {n_significant} significant "
              f"({config.correction_method} corrected)")

    return results, normality


def run_comparisons_by_facet(data, facet_column, config, verbose=True):
    """
    Run one independent normality-gated comparison per facet.

    Each facet (e.g. each analyte, or each collection month) gets its own
    normality decision and its own correction family.

    Returns:
    --------
    results : pd.DataFrame
        Concatenated pairwise results with a leading facet column
    normality : pd.DataFrame
        Concatenated normality tables with a leading facet column
    """

    require_columns(data, [facet_column], "comparison table")

    all_results = []
    all_normality = []
    facets = list(pd.unique(data[facet_column].dropna()))

    for facet in facets:
        if verbose:
            print(f"\n--- {facet_column}: {facet} ---")
        facet_data = data[data[facet_column] == facet]
        results, normality = run_normality_gated_comparison(facet_data, config, verbose=verbose)
        results.insert(0, facet_column, facet)
        normality.insert(0, facet_column, facet)
        all_results.append(results)
        all_normality.append(normality)

    if not all_results:
        return pd.DataFrame(), pd.DataFrame()

    return (
        pd.concat(all_results, ignore_index=True),
        pd.concat(all_normality, ignore_index=True),
    )


def display_comparison_summary(results, facet_column=None, not_significant=""):
    """
    Print the significant comparisons of a results table.

    ``not_significant`` is the symbol the results were built with for
    non-significant pairs (``StatisticalConfig.not_significant_symbol``).
    """
    significant = results[results["Significance"] != not_significant]
    print("COMPARISON SUMMARY")
    print("=" * 50)
    print(f"Comparisons: {len(results)}")
    print(f"Significant (adjusted): {len(significant)}")
    if "parametric" in results.columns and len(results):
        n_parametric = int(results["parametric"].sum())
        print(f"Parametric / non-parametric: {n_parametric} / {len(results) - n_parametric}")

    for _, row in significant.iterrows():
        prefix = f"{row[facet_column]}: " if facet_column else ""
        print(
            f"  {prefix}{row['group1']} vs {row['group2']}  "
            f"adj.P={row['adj.P.Val']:.4g} {row['Significance']}  ({row['test_method']})"
        )
