"""
Immunoassay Analysis Toolkit
============================

A Python library for analyzing multiplex cytokine panels and phagocytosis
assay readouts: reshaping assay tables, computing fold changes against
paired vehicle controls, normality-gated pairwise testing with
Benjamini-Hochberg correction, and a WGCNA-style co-expression network
analysis of analyte profiles.

QUICK START EXAMPLE:
-------------------
    import pandas as pd
    import immunoassay_toolkit as iat

    # 1. Reshape a wide assay table (one column per cytokine)
    wide = pd.read_csv('cytokines.csv')
    long_df = iat.reshape_to_long(wide, id_columns=['Sample', 'Donor', 'Month', 'Treatment'])

    # 2. Fold change against the paired vehicle control
    fc_config = iat.FoldChangeConfig(control_label='Vehicle', match_columns=['Donor', 'Month'])
    fc_table = iat.calculate_fold_change_table(long_df, fc_config)

    # 3. Normality-gated pairwise comparison, one per analyte
    config = iat.StatisticalConfig()
    config.group_column = 'Treatment'
    config.subject_column = 'Donor'
    config.paired = True
    results, normality = iat.run_comparisons_by_facet(fc_table, 'Analyte', config)

    # 4. Co-expression modules of the fold-change profiles
    wide_fc = iat.pivot_to_wide(fc_table, 'Sample', 'Analyte', 'FoldChange')
    network = iat.run_network_analysis(wide_fc)

MODULE OVERVIEW:
===============

preprocessing
    Purpose: Clean multiplex readouts, derive sample labels, reshape tables
    Key functions: reshape_to_long(), pivot_to_wide(), clean_concentration_values()
    Use when: Preparing raw assay tables for analysis

fold_change
    Purpose: Fold change of treated samples against paired controls
    Key functions: calculate_fold_change_table(), calculate_fold_change()
    Use when: Normalizing treatment responses to the vehicle control

statistical_analysis
    Purpose: Normality-gated pairwise tests with multiple-testing correction
    Key functions: run_normality_gated_comparison(), StatisticalConfig()
    Use when: Comparing groups (treatments, months) and annotating figures

network_analysis
    Purpose: Soft threshold, TOM, modules, eigengenes, trait correlation
    Key functions: run_network_analysis(), WGCNAConfig()
    Use when: Looking for co-regulated analyte modules

validation
    Purpose: Table layout and pairing checks with clear error messages
    Key functions: validate_long_format(), require_columns()
    Use when: Diagnosing malformed input early

ERROR HANDLING:
==============
- TableStructureError: table layout problems (missing columns, duplicate
  sample/analyte pairs)
- PairingError: treated and control samples do not line up
- ValueError: invalid configuration
"""

# =============================================================================
# MODULE IMPORTS - Core functionality organized by analysis stage
# =============================================================================

from . import preprocessing        # Cleaning and reshaping
from . import fold_change          # Fold change against paired controls
from . import statistical_analysis # Normality-gated pairwise testing
from . import network_analysis     # Co-expression network analysis
from . import validation           # Data validation and error checking

__version__ = "1.0.0"

# =============================================================================
# CONVENIENCE IMPORTS - Most commonly used functions available at top level
# =============================================================================

# PREPROCESSING
from .preprocessing import (
    clean_concentration_values,  # Coerce "OOR <" / "*12.3" readouts to numbers
    parse_sample_labels,         # Labels from assay identifiers
    derive_collection_month,     # Collection month from dates
    reshape_to_long,             # Wide -> long
    pivot_to_wide,               # Long -> wide
)

# FOLD CHANGE
from .fold_change import (
    FoldChangeConfig,
    calculate_fold_change,        # Two aligned Series
    calculate_fold_change_table,  # Long-format table against paired controls
    summarize_fold_changes,       # Mean / SEM per group
)

# STATISTICAL ANALYSIS
from .statistical_analysis import (
    StatisticalConfig,
    assess_normality,
    choose_test_family,
    run_pairwise_tests,
    apply_multiple_testing_correction,
    p_value_to_symbol,
    run_normality_gated_comparison,  # MAIN FUNCTION: one comparison set
    run_comparisons_by_facet,        # One comparison set per facet
    display_comparison_summary,
)

# NETWORK ANALYSIS
from .network_analysis import (
    WGCNAConfig,
    NetworkResult,
    pick_soft_threshold,
    calculate_adjacency,
    calculate_tom_similarity,
    detect_modules,
    merge_close_modules,
    calculate_module_eigengenes,
    calculate_module_membership,
    encode_traits,
    correlate_modules_with_traits,
    build_module_table,
    run_network_analysis,            # MAIN FUNCTION: complete workflow
)

# VALIDATION
from .validation import (
    TableStructureError,
    PairingError,
    require_columns,
    validate_long_format,
)

# =============================================================================
# PUBLIC API - All functions available for import
# =============================================================================

__all__ = [
    # MODULES
    "preprocessing",
    "fold_change",
    "statistical_analysis",
    "network_analysis",
    "validation",

    # PREPROCESSING
    "clean_concentration_values",
    "parse_sample_labels",
    "derive_collection_month",
    "reshape_to_long",
    "pivot_to_wide",

    # FOLD CHANGE
    "FoldChangeConfig",
    "calculate_fold_change",
    "calculate_fold_change_table",
    "summarize_fold_changes",

    # STATISTICAL ANALYSIS
    "StatisticalConfig",
    "assess_normality",
    "choose_test_family",
    "run_pairwise_tests",
    "apply_multiple_testing_correction",
    "p_value_to_symbol",
    "run_normality_gated_comparison",
    "run_comparisons_by_facet",
    "display_comparison_summary",

    # NETWORK ANALYSIS
    "WGCNAConfig",
    "NetworkResult",
    "pick_soft_threshold",
    "calculate_adjacency",
    "calculate_tom_similarity",
    "detect_modules",
    "merge_close_modules",
    "calculate_module_eigengenes",
    "calculate_module_membership",
    "encode_traits",
    "correlate_modules_with_traits",
    "build_module_table",
    "run_network_analysis",

    # VALIDATION
    "TableStructureError",
    "PairingError",
    "require_columns",
    "validate_long_format",
]
