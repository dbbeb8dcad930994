"""
Fold-Change Module for Immunoassay Analysis Toolkit

Computes fold changes of treated samples against their paired vehicle
control. Treated and control observations are always aligned by key
(sample label, or donor/time point/analyte labels), never by row order.
"""

import pandas as pd
import numpy as np
from dataclasses import dataclass, field
from typing import List, Optional

from .validation import (
    PairingError,
    require_columns,
    check_unique_index,
    describe_unmatched,
)


@dataclass
class FoldChangeConfig:
    """Configuration for fold-change calculation."""

    value_column: str = 'Concentration'
    analyte_column: str = 'Analyte'
    treatment_column: str = 'Treatment'
    control_label: str = 'Vehicle'

    # Labels a treated row must share with its control row (besides the
    # analyte). Typically donor and time point.
    match_columns: List[str] = field(default_factory=lambda: ['Donor', 'Month'])

    log2: bool = False
    on_unmatched: str = 'raise'  # 'raise' or 'drop'

    def validate(self):
        """Validate configuration values"""
        if self.on_unmatched not in ('raise', 'drop'):
            raise ValueError("on_unmatched must be 'raise' or 'drop'")
        if not self.match_columns:
            raise ValueError("match_columns must name at least one column (e.g. the donor)")
        if self.treatment_column in self.match_columns:
            raise ValueError("treatment_column cannot also be a match column")
        return True


def _ratio(treated: pd.Series, control: pd.Series, log2: bool) -> pd.Series:
    """Element-wise ratio with zero controls mapped to NaN."""
    with np.errstate(divide='ignore', invalid='ignore'):
        ratio = treated.astype(float) / control.astype(float)
    ratio = ratio.replace([np.inf, -np.inf], np.nan)
    n_zero = int((control == 0).sum())
    if n_zero:
        print(f"Warning: {n_zero} control values are zero; fold change set to NaN")
    if log2:
        with np.errstate(divide='ignore', invalid='ignore'):
            ratio = np.log2(ratio.where(ratio > 0))
    return ratio


def calculate_fold_change(
    treated: pd.Series,
    control: pd.Series,
    log2: bool = False,
) -> pd.Series:
    """
    Element-wise fold change of treated over control values.

    Both Series are indexed by sample identity (e.g. donor). Values are
    aligned by index label, so the order of the two inputs does not matter.

    Parameters:
    -----------
    treated : pd.Series
        Treated values indexed by sample identity
    control : pd.Series
        Control values indexed by the same sample identities
    log2 : bool
        Return log2 fold changes instead of ratios

    Returns:
    --------
    pd.Series
        Fold changes, in the index order of `treated`

    Raises:
    -------
    PairingError
        If either index has duplicate labels, or the two label sets differ
    """

    check_unique_index(treated, "treated values")
    check_unique_index(control, "control values")

    treated_only = [label for label in treated.index if label not in control.index]
    control_only = [label for label in control.index if label not in treated.index]
    if treated_only or control_only:
        raise PairingError(
            describe_unmatched(treated_only, control_only, "treated values", "control values")
        )

    aligned_control = control.reindex(treated.index)
    fold_change = _ratio(treated, aligned_control, log2)
    fold_change.name = "log2FC" if log2 else "FoldChange"
    return fold_change


def calculate_fold_change_table(
    data: pd.DataFrame,
    config: Optional[FoldChangeConfig] = None,
) -> pd.DataFrame:
    """
    Compute a fold change for every treated observation of a long-format table.

    Each treated row (treatment != control_label) is matched to the one
    control row that shares every column in `config.match_columns` and the
    analyte. Other label columns (group, polarization, ...) are carried over
    from the treated row. Rows without a treatment label are dropped with a
    warning.

    Parameters:
    -----------
    data : pd.DataFrame
        Long-format measurement table
    config : FoldChangeConfig, optional
        Column names and matching rules (defaults to FoldChangeConfig())

    Returns:
    --------
    pd.DataFrame
        Treated rows with added `Control_Value` and `FoldChange`
        (or `log2FC`) columns

    Raises:
    -------
    PairingError
        If a treated row has no control (unless on_unmatched='drop'),
        or if a control key occurs more than once
    """

    if config is None:
        config = FoldChangeConfig()
    config.validate()

    key_columns = list(config.match_columns) + [config.analyte_column]
    require_columns(
        data,
        key_columns + [config.treatment_column, config.value_column],
        "measurement table",
    )

    print("Calculating fold changes against paired controls...")
    print(f"  -> Control label: {config.control_label}")
    print(f"  -> Matching on: {key_columns}")

    no_treatment = data[config.treatment_column].isna()
    if no_treatment.any():
        print(
            f"Warning: {int(no_treatment.sum())} rows have no {config.treatment_column} "
            "label; dropping them"
        )
        data = data.loc[~no_treatment]

    is_control = data[config.treatment_column] == config.control_label
    controls = data.loc[is_control, key_columns + [config.value_column]]
    treated = data.loc[~is_control].copy()

    if controls.empty:
        raise PairingError(
            f"No control rows with {config.treatment_column} == '{config.control_label}'"
        )

    duplicated_controls = controls.duplicated(subset=key_columns, keep=False)
    if duplicated_controls.any():
        keys = (
            controls.loc[duplicated_controls, key_columns]
            .drop_duplicates()
            .itertuples(index=False, name=None)
        )
        raise PairingError(
            f"Ambiguous controls: several control rows share the keys {list(keys)[:5]}"
        )

    controls = controls.rename(columns={config.value_column: "Control_Value"})
    merged = treated.merge(controls, on=key_columns, how="left", indicator=True)

    unmatched = merged["_merge"] == "left_only"
    n_unmatched = int(unmatched.sum())
    if n_unmatched:
        keys = (
            merged.loc[unmatched, key_columns]
            .drop_duplicates()
            .itertuples(index=False, name=None)
        )
        message = f"{n_unmatched} treated rows have no matching control, e.g. {list(keys)[:5]}"
        if config.on_unmatched == 'raise':
            raise PairingError(message)
        print(f"Warning: {message}; dropping them")
        merged = merged.loc[~unmatched]

    merged = merged.drop(columns="_merge").reset_index(drop=True)

    fc_column = "log2FC" if config.log2 else "FoldChange"
    merged[fc_column] = _ratio(
        merged[config.value_column], merged["Control_Value"], config.log2
    )

    print(f"✓ Fold changes computed for {len(merged)} treated observations")
    return merged


def summarize_fold_changes(
    fc_table: pd.DataFrame,
    group_columns: List[str],
    value_column: str = "FoldChange",
) -> pd.DataFrame:
    """
    Per-group mean, standard deviation, SEM and n of fold changes.

    These are the bar heights and error bars of a fold-change bar chart.

    Parameters:
    -----------
    fc_table : pd.DataFrame
        Output of calculate_fold_change_table
    group_columns : List[str]
        Columns defining the bars (e.g. ['Analyte', 'Treatment'])
    value_column : str
        Fold-change column to summarize

    Returns:
    --------
    pd.DataFrame
        One row per group with columns mean, sd, sem, n
    """

    require_columns(fc_table, list(group_columns) + [value_column], "fold-change table")

    grouped = fc_table.groupby(group_columns, sort=False)[value_column]
    summary = grouped.agg(mean="mean", sd="std", n="count").reset_index()
    summary["sem"] = summary["sd"] / np.sqrt(summary["n"])
    summary.loc[summary["n"] < 2, "sem"] = np.nan
    return summary[list(group_columns) + ["mean", "sd", "sem", "n"]]
