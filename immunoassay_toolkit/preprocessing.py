"""
Data Preprocessing Module for Immunoassay Analysis Toolkit

Functions for cleaning multiplex readouts, deriving sample labels and
reshaping assay tables between wide and long format.
"""

import pandas as pd
from typing import Dict, List, Optional, Union
import re
import numpy as np

from .validation import TableStructureError, require_columns


# Markers written by multiplex bead-array software for values outside the
# standard curve.
BELOW_RANGE_MARKER = "OOR <"
ABOVE_RANGE_MARKER = "OOR >"


def _parse_concentration(value, below_range: float, above_range: float) -> float:
    """
    Convert a single multiplex readout to float.

    Parameters:
    -----------
    value : any
        Raw cell value (number, numeric string, out-of-range marker, or
        extrapolated value with a leading asterisk)
    below_range, above_range : float
        Replacement values for the out-of-range markers

    Returns:
    --------
    float
        Parsed value (NaN when the value cannot be interpreted)
    """

    if value is None:
        return np.nan
    if isinstance(value, (int, float, np.integer, np.floating)):
        return float(value)

    text = str(value).strip()
    if text == "":
        return np.nan
    if text.upper().startswith(BELOW_RANGE_MARKER):
        return below_range
    if text.upper().startswith(ABOVE_RANGE_MARKER):
        return above_range

    # Extrapolated values are flagged with a leading '*'
    text = text.lstrip("*").replace(",", "").strip()
    try:
        return float(text)
    except ValueError:
        return np.nan


def clean_concentration_values(
    values: pd.Series,
    below_range: float = np.nan,
    above_range: float = np.nan,
    verbose: bool = True,
) -> pd.Series:
    """
    Coerce multiplex assay readouts to numeric values.

    Parameters:
    -----------
    values : pd.Series
        Raw concentration / MFI column
    below_range : float
        Value used for "OOR <" (below the lowest standard). NaN by default;
        pass e.g. half the lower limit of quantification to impute.
    above_range : float
        Value used for "OOR >" (above the highest standard)
    verbose : bool
        Print a short summary of what was converted

    Returns:
    --------
    pd.Series
        Float series with the same index
    """

    as_text = values.astype(str).str.strip().str.upper()
    n_below = int(as_text.str.startswith(BELOW_RANGE_MARKER).sum())
    n_above = int(as_text.str.startswith(ABOVE_RANGE_MARKER).sum())
    n_extrapolated = int(as_text.str.startswith("*").sum())

    cleaned = values.apply(
        lambda v: _parse_concentration(v, below_range, above_range)
    ).astype(float)

    if verbose:
        print(f"Cleaned {len(cleaned)} concentration values:")
        print(f"  -> Below range ({BELOW_RANGE_MARKER}): {n_below}")
        print(f"  -> Above range ({ABOVE_RANGE_MARKER}): {n_above}")
        print(f"  -> Extrapolated (*): {n_extrapolated}")
        print(f"  -> Missing after cleaning: {int(cleaned.isna().sum())}")

    return cleaned


def parse_sample_labels(
    identifiers: Union[pd.Series, List[str]],
    pattern: str,
    strict: bool = False,
) -> pd.DataFrame:
    """
    Derive categorical labels from assay identifiers.

    The pattern is a regular expression with named groups; each group
    becomes a column. For identifiers such as ``"D03_M2_LPS_M1"`` a pattern
    like ``r"(?P<Donor>D\\d+)_(?P<Month>M\\d+)_(?P<Treatment>[^_]+)_(?P<Polarization>M[012])"``
    yields Donor, Month, Treatment and Polarization columns.

    Parameters:
    -----------
    identifiers : pd.Series or list of str
        Assay / sample identifiers
    pattern : str
        Regular expression with named groups
    strict : bool
        Raise TableStructureError if an identifier does not match

    Returns:
    --------
    pd.DataFrame
        One row per identifier, indexed like the input, with one column per
        named group (NaN where the identifier did not match)
    """

    regex = re.compile(pattern)
    if not regex.groupindex:
        raise ValueError("pattern must contain at least one named group")

    identifiers = pd.Series(identifiers)
    rows = []
    unmatched = []
    for identifier in identifiers:
        match = regex.search(str(identifier))
        if match:
            rows.append(match.groupdict())
        else:
            unmatched.append(identifier)
            rows.append({name: np.nan for name in regex.groupindex})

    if unmatched:
        message = f"{len(unmatched)} identifiers did not match the label pattern: {unmatched[:5]}"
        if strict:
            raise TableStructureError(message)
        print(f"Warning: {message}")

    return pd.DataFrame(rows, index=identifiers.index, columns=list(regex.groupindex))


def derive_collection_month(dates: pd.Series, date_format: Optional[str] = None) -> pd.Series:
    """
    Map collection dates to a year-month label such as ``"2023-04"``.

    Unparseable dates become NaN.
    """
    parsed = pd.to_datetime(dates, format=date_format, errors="coerce")
    months = parsed.dt.strftime("%Y-%m")
    return months.where(parsed.notna(), np.nan)


def reshape_to_long(
    data: pd.DataFrame,
    id_columns: List[str],
    analyte_columns: Optional[List[str]] = None,
    analyte_name: str = "Analyte",
    value_name: str = "Concentration",
) -> pd.DataFrame:
    """
    Reshape a wide assay table (one column per analyte) to long format
    (one row per sample × analyte).

    Parameters:
    -----------
    data : pd.DataFrame
        Wide table
    id_columns : List[str]
        Columns identifying the sample and its labels; kept on every row
    analyte_columns : List[str], optional
        Analyte columns to melt. Defaults to every column not in id_columns.
    analyte_name, value_name : str
        Names of the resulting analyte and value columns

    Returns:
    --------
    pd.DataFrame
        Long-format table
    """

    require_columns(data, id_columns, "wide table")

    if analyte_columns is None:
        analyte_columns = [c for c in data.columns if c not in id_columns]
    else:
        require_columns(data, analyte_columns, "wide table")

    if not analyte_columns:
        raise TableStructureError("No analyte columns to reshape")

    long_df = data.melt(
        id_vars=id_columns,
        value_vars=analyte_columns,
        var_name=analyte_name,
        value_name=value_name,
    )

    print(
        f"✓ Reshaped {len(data)} samples x {len(analyte_columns)} analytes "
        f"to {len(long_df)} long-format rows"
    )
    return long_df


def pivot_to_wide(
    data: pd.DataFrame,
    sample_column: str,
    analyte_column: str,
    value_column: str,
    label_columns: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Pivot a long-format table to one row per sample and one column per analyte.

    Parameters:
    -----------
    data : pd.DataFrame
        Long-format table with one row per (sample, analyte)
    sample_column, analyte_column, value_column : str
        Column names
    label_columns : List[str], optional
        Per-sample label columns to carry over. Each sample must have a
        single value for every label.

    Returns:
    --------
    pd.DataFrame
        Wide table indexed by sample
    """

    require_columns(
        data, [sample_column, analyte_column, value_column] + list(label_columns or []),
        "long-format table",
    )

    duplicated = data.duplicated(subset=[sample_column, analyte_column], keep=False)
    if duplicated.any():
        pairs = (
            data.loc[duplicated, [sample_column, analyte_column]]
            .drop_duplicates()
            .itertuples(index=False, name=None)
        )
        raise TableStructureError(
            f"Cannot pivot: (sample, analyte) pairs occur more than once: {list(pairs)[:5]}"
        )

    wide = data.pivot(index=sample_column, columns=analyte_column, values=value_column)
    wide.columns.name = None

    if label_columns:
        labels = data[[sample_column] + list(label_columns)].drop_duplicates()
        conflicting = labels[sample_column][labels[sample_column].duplicated()].unique().tolist()
        if conflicting:
            raise TableStructureError(
                f"Samples with conflicting labels: {conflicting[:5]}"
            )
        wide = labels.set_index(sample_column).join(wide)

    return wide


def summarize_table(data: pd.DataFrame, group_columns: List[str]) -> Dict[str, int]:
    """Count rows per label combination, e.g. samples per group and month."""
    counts = data.groupby(group_columns, dropna=False).size()
    return {
        " / ".join(str(k) for k in (key if isinstance(key, tuple) else (key,))): int(n)
        for key, n in counts.items()
    }
