"""
Data Validation Module for Immunoassay Analysis Toolkit

Functions for validating assay table layouts and treated/control pairing,
with interpretable error messages when the structure is not what the
analysis expects.
"""

import pandas as pd
from typing import Dict, List, Iterable


class TableStructureError(Exception):
    """Custom exception for assay table layout issues."""
    def __init__(self, message):
        super().__init__(message)


class PairingError(Exception):
    """Custom exception for treated/control pairing issues."""
    def __init__(self, message):
        super().__init__(message)


def require_columns(data: pd.DataFrame, columns: Iterable[str], context: str = "table") -> None:
    """
    Raise TableStructureError if any of `columns` is missing from `data`.

    Parameters:
    -----------
    data : pd.DataFrame
        Table to check
    columns : iterable of str
        Column names that must be present (None entries are ignored)
    context : str
        Short description used in the error message
    """
    missing = [col for col in columns if col is not None and col not in data.columns]
    if missing:
        raise TableStructureError(
            f"Missing required columns in {context}: {missing}. "
            f"Available columns: {list(data.columns)}"
        )


def validate_long_format(
    data: pd.DataFrame,
    sample_column: str,
    analyte_column: str,
    value_column: str = None,
    verbose: bool = True,
    strict: bool = False,
) -> Dict:
    """
    Validate that a long-format measurement table has one row per
    (sample, analyte) pair.

    Parameters:
    -----------
    data : pd.DataFrame
        Long-format measurement table
    sample_column : str
        Column identifying the sample
    analyte_column : str
        Column identifying the analyte
    value_column : str, optional
        Numeric value column; if given, missing and non-numeric values
        are reported as warnings
    verbose : bool, default True
        Whether to print detailed validation results
    strict : bool, default False
        Whether to raise TableStructureError when validation fails

    Returns:
    --------
    Dict containing validation results and diagnostic information
    """

    results = {
        'is_valid': True,
        'errors': [],
        'warnings': [],
        'diagnostics': {}
    }

    if verbose:
        print("LONG-FORMAT TABLE VALIDATION")
        print("=" * 50)

    # 1. Required columns
    missing = [
        col for col in (sample_column, analyte_column, value_column)
        if col is not None and col not in data.columns
    ]
    if missing:
        results['is_valid'] = False
        results['errors'].append(f"Missing required columns: {missing}")
        if strict:
            raise TableStructureError("\n".join(results['errors']))
        return results

    # 2. One row per (sample, analyte)
    duplicated = data.duplicated(subset=[sample_column, analyte_column], keep=False)
    n_duplicated = int(duplicated.sum())
    results['diagnostics']['n_rows'] = len(data)
    results['diagnostics']['n_samples'] = data[sample_column].nunique()
    results['diagnostics']['n_analytes'] = data[analyte_column].nunique()
    results['diagnostics']['n_duplicated_rows'] = n_duplicated

    if n_duplicated > 0:
        pairs = (
            data.loc[duplicated, [sample_column, analyte_column]]
            .drop_duplicates()
            .itertuples(index=False, name=None)
        )
        pair_list = list(pairs)
        results['is_valid'] = False
        results['errors'].append(
            f"{len(pair_list)} (sample, analyte) pairs occur more than once, "
            f"e.g. {pair_list[:5]}"
        )

    # 3. Completeness: every sample measured for every analyte
    expected = results['diagnostics']['n_samples'] * results['diagnostics']['n_analytes']
    observed = len(data.drop_duplicates(subset=[sample_column, analyte_column]))
    if observed < expected:
        results['warnings'].append(
            f"{expected - observed} (sample, analyte) combinations are absent; "
            f"the wide table will contain missing values"
        )

    # 4. Value column sanity
    if value_column is not None:
        numeric = pd.to_numeric(data[value_column], errors='coerce')
        n_missing = int(numeric.isna().sum())
        results['diagnostics']['n_missing_values'] = n_missing
        if n_missing > 0:
            results['warnings'].append(
                f"{n_missing} values in '{value_column}' are missing or non-numeric"
            )

    if verbose:
        print(f"Rows: {results['diagnostics']['n_rows']}")
        print(f"Samples: {results['diagnostics']['n_samples']}")
        print(f"Analytes: {results['diagnostics']['n_analytes']}")
        if results['is_valid']:
            print("✓ One row per (sample, analyte) pair")
        for error in results['errors']:
            print(f"❌ {error}")
        for warning in results['warnings']:
            print(f"⚠️  {warning}")

    if strict and not results['is_valid']:
        raise TableStructureError(
            "Long-format validation failed:\n" + "\n".join(results['errors'])
        )

    return results


def check_unique_index(series: pd.Series, name: str) -> None:
    """Raise PairingError if a Series index carries duplicate labels."""
    duplicated = series.index[series.index.duplicated()].unique().tolist()
    if duplicated:
        raise PairingError(
            f"{name} has duplicate sample labels: {duplicated[:10]}"
        )


def describe_unmatched(left_only: List, right_only: List, left_name: str, right_name: str) -> str:
    """Format an interpretable message for sample sets that do not line up."""
    lines = [f"Sample sets of {left_name} and {right_name} do not match:"]
    if left_only:
        lines.append(f"  Only in {left_name} ({len(left_only)}): {left_only[:10]}")
    if right_only:
        lines.append(f"  Only in {right_name} ({len(right_only)}): {right_only[:10]}")
    return "\n".join(lines)
