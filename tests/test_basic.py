"""
Basic tests to verify pytest setup and the public package surface
"""

import pandas as pd
import numpy as np


def test_basic_functionality():
    """Test basic functionality to verify test setup works"""
    df = pd.DataFrame({"Analyte": ["IL6", "TNF"], "Concentration": [10.0, 5.0]})

    assert len(df) == 2
    assert df["Concentration"].sum() == 15.0


def test_immunoassay_toolkit_import():
    """Test that we can import the toolkit and its version"""
    import immunoassay_toolkit

    assert hasattr(immunoassay_toolkit, "__version__")
    assert immunoassay_toolkit.__version__ == "1.0.0"


def test_public_api_exported():
    """Test that every name in __all__ is importable from the top level"""
    import immunoassay_toolkit

    for name in immunoassay_toolkit.__all__:
        assert hasattr(immunoassay_toolkit, name), name


def test_basic_statistical_config():
    """Test that we can import and create a statistical configuration"""
    from immunoassay_toolkit.statistical_analysis import StatisticalConfig

    config = StatisticalConfig()

    assert config.correction_method == "fdr_bh"
    assert config.normality_alpha == 0.05
    assert config.paired is False


def test_comparison_results_structure():
    """Test the column contract shared by comparison results"""
    results = pd.DataFrame(
        {
            "group1": ["Vehicle", "Vehicle", "LPS"],
            "group2": ["LPS", "IFNg", "IFNg"],
            "P.Value": [0.01, 0.001, 0.05],
            "adj.P.Val": [0.015, 0.003, 0.05],
        }
    )

    sorted_results = results.sort_values("P.Value")
    assert sorted_results.iloc[0]["group2"] == "IFNg"

    # 0.05 is not < 0.05
    significant = results[results["adj.P.Val"] < 0.05]
    assert len(significant) == 2


def test_end_to_end_pipeline(long_measurements, fold_change_config):
    """Test reshape-free pipeline: fold change -> comparison -> network input"""
    import immunoassay_toolkit as iat

    fc_table = iat.calculate_fold_change_table(long_measurements, fold_change_config)
    # Fold changes of the fixture are exact; spread them so the tests are defined
    fc_table["FoldChange"] += np.arange(len(fc_table)) * 0.1

    config = iat.StatisticalConfig()
    config.group_column = "Treatment"
    config.subject_column = "Donor"
    config.paired = False
    results, normality = iat.run_comparisons_by_facet(fc_table, "Analyte", config, verbose=False)

    assert set(results["Analyte"]) == {"IL6", "TNF"}
    assert len(results) == 2
    assert {"P.Value", "adj.P.Val", "Significance"}.issubset(results.columns)

    wide = iat.pivot_to_wide(fc_table, "Sample", "Analyte", "FoldChange")
    assert wide.shape == (12, 2)
    assert np.isfinite(wide.to_numpy()).all()
