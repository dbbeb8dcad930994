"""
Pytest configuration and fixtures for immunoassay_toolkit tests
"""

import pytest
import pandas as pd
import numpy as np
from scipy.stats import norm

from immunoassay_toolkit.statistical_analysis import StatisticalConfig
from immunoassay_toolkit.fold_change import FoldChangeConfig
from immunoassay_toolkit.network_analysis import WGCNAConfig


SUBJECTS = [f"D{i:02d}" for i in range(1, 11)]


def _normal_quantiles(n=10):
    """Exact normal quantiles: about as normal as 10 values can be."""
    return norm.ppf(np.linspace(0.05, 0.95, n))


@pytest.fixture
def normal_groups_df():
    """Three groups of 10 paired subjects, every group exactly normal-shaped"""
    base = _normal_quantiles()
    permutation = [3, 7, 0, 9, 5, 1, 8, 2, 6, 4]

    values = {
        "Vehicle": base,
        "LPS": base[permutation] + 2.0,
        "IFNg": base * 0.5 + 5.0,
    }
    rows = []
    for group, group_values in values.items():
        for subject, value in zip(SUBJECTS, group_values):
            rows.append({"Donor": subject, "Treatment": group, "FoldChange": value})
    return pd.DataFrame(rows)


@pytest.fixture
def skewed_groups_df(normal_groups_df):
    """Same design as normal_groups_df but one group is strongly skewed"""
    df = normal_groups_df.copy()
    skewed = np.array([0.0] * 9 + [10.0])
    df.loc[df["Treatment"] == "IFNg", "FoldChange"] = skewed
    return df


@pytest.fixture
def statistical_config():
    """Paired treatment-wise comparison configuration"""
    config = StatisticalConfig()
    config.value_column = "FoldChange"
    config.group_column = "Treatment"
    config.subject_column = "Donor"
    config.paired = True
    config.group_order = ["Vehicle", "LPS", "IFNg"]
    return config


@pytest.fixture
def long_measurements():
    """Long-format cytokine table: 3 donors x 2 months x 3 treatments x 2 analytes"""
    rows = []
    multipliers = {"Vehicle": 1.0, "LPS": 4.0, "IFNg": 2.0}
    for d, donor in enumerate(["D01", "D02", "D03"]):
        for m, month in enumerate(["2023-04", "2023-05"]):
            for treatment, multiplier in multipliers.items():
                for analyte, base in (("IL6", 10.0), ("TNF", 5.0)):
                    control_value = base + d + m
                    rows.append({
                        "Sample": f"{donor}_{month}_{treatment}",
                        "Donor": donor,
                        "Month": month,
                        "Treatment": treatment,
                        "Polarization": "M1" if d == 0 else "M0",
                        "Analyte": analyte,
                        "Concentration": control_value * multiplier,
                    })
    return pd.DataFrame(rows)


@pytest.fixture
def fold_change_config():
    """Fold-change configuration matching long_measurements"""
    return FoldChangeConfig(
        value_column="Concentration",
        analyte_column="Analyte",
        treatment_column="Treatment",
        control_label="Vehicle",
        match_columns=["Donor", "Month"],
    )


@pytest.fixture
def network_data():
    """30 samples x 20 analytes driven by two independent latent factors

    Analytes A0-A9 follow factor A, which separates the Ctrl and Treated
    groups; analytes B0-B9 follow an unrelated factor B.
    """
    np.random.seed(42)
    n_samples = 30
    treated = np.array([False] * 15 + [True] * 15)

    factor_a = np.where(treated, 1.5, -1.5) + np.random.normal(0, 0.5, n_samples)
    factor_b = np.random.normal(0, 1, n_samples)

    columns = {}
    for i in range(10):
        columns[f"A{i}"] = factor_a + np.random.normal(0, 0.3, n_samples)
    for i in range(10):
        columns[f"B{i}"] = factor_b + np.random.normal(0, 0.3, n_samples)

    samples = [f"S{i:02d}" for i in range(n_samples)]
    data = pd.DataFrame(columns, index=samples)
    metadata = pd.DataFrame(
        {
            "Group": np.where(treated, "Treated", "Ctrl"),
            "Month": ["2023-04", "2023-05", "2023-06"] * 10,
            "Age": np.linspace(30, 60, n_samples),
        },
        index=samples,
    )
    return data, metadata


@pytest.fixture
def wgcna_config():
    """Fixed-power configuration for deterministic module detection"""
    return WGCNAConfig(power=6, min_module_size=5, cut_height=0.9)


@pytest.fixture
def three_factor_data():
    """40 samples x 24 analytes from three latent factors, 8 analytes each

    Factors A and B correlate at about 0.5 (below the 0.75 eigengene merge
    threshold); factor C is independent of both.
    """
    np.random.seed(7)
    n_samples = 40

    factor_a = np.random.normal(0, 1, n_samples)
    factor_b = 0.5 * factor_a + np.sqrt(1 - 0.5 ** 2) * np.random.normal(0, 1, n_samples)
    factor_c = np.random.normal(0, 1, n_samples)

    columns = {}
    for name, factor in (("A", factor_a), ("B", factor_b), ("C", factor_c)):
        for i in range(8):
            columns[f"{name}{i}"] = factor + np.random.normal(0, 0.3, n_samples)

    return pd.DataFrame(columns, index=[f"S{i:02d}" for i in range(n_samples)])
