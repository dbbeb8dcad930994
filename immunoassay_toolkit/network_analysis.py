"""
Weighted Co-expression Network Analysis Module

This module provides a WGCNA-style analysis of analyte profiles (e.g. a
samples x cytokines fold-change table), including:

- Soft-threshold power selection by scale-free topology fit
- Weighted adjacency and topological overlap matrix (TOM) construction
- Module detection by average-linkage clustering of 1 - TOM with a
  dynamic (hybrid) tree cut and minimum module size
- Merging of modules whose eigengenes are highly correlated
- Module eigengenes (first principal component of each module)
- Module membership (kME) and eigengene-trait correlation

Methodology:
------------
Adjacency is a power of the analyte-analyte correlation:
  unsigned: a_ij = |cor_ij| ^ beta
  signed:   a_ij = ((1 + cor_ij) / 2) ^ beta
The power beta is the lowest candidate for which the connectivity
distribution is close to scale-free (signed R^2 >= 0.85). Analytes that do
not fall into any module large enough are assigned to the "grey" module.
"""

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler
from scipy.cluster.hierarchy import linkage, fcluster
from scipy.spatial.distance import squareform
from scipy.stats import linregress, pearsonr
from dynamicTreeCut import cutreeHybrid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .validation import PairingError, require_columns


UNASSIGNED_MODULE = "grey"
UNASSIGNED_ID = 0

# Standard WGCNA module colours, assigned by decreasing module size
MODULE_COLORS = [
    "turquoise", "blue", "brown", "yellow", "green", "red", "black", "pink",
    "magenta", "purple", "greenyellow", "tan", "salmon", "cyan",
    "midnightblue", "lightcyan", "grey60", "lightgreen", "lightyellow",
    "royalblue", "darkred", "darkgreen", "darkturquoise", "darkgrey",
    "orange", "darkorange", "white", "skyblue", "saddlebrown", "steelblue",
]


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class WGCNAConfig:
    """Configuration for the co-expression network analysis."""

    # Soft-threshold scan
    powers: List[int] = field(default_factory=lambda: list(range(1, 11)) + list(range(12, 21, 2)))
    r2_cutoff: float = 0.85
    n_breaks: int = 10
    power: Optional[int] = None  # None = pick from the scan

    # Network construction
    network_type: str = 'unsigned'  # 'unsigned' or 'signed'
    correlation_method: str = 'pearson'  # 'pearson' or 'spearman'

    # Module detection (hybrid dynamic tree cut)
    linkage_method: str = 'average'
    min_module_size: int = 5
    cut_height: Optional[float] = None  # None = 99% of the dendrogram height range
    deep_split: int = 2  # 0 (coarse) to 4 (fine)
    pam_respects_dendro: bool = False

    # Module merging: modules whose eigengenes correlate above
    # 1 - merge_cut_height are merged
    merge_cut_height: float = 0.25

    def validate(self):
        """Validate configuration values"""
        if self.network_type not in ('unsigned', 'signed'):
            raise ValueError("network_type must be 'unsigned' or 'signed'")
        if self.correlation_method not in ('pearson', 'spearman'):
            raise ValueError("correlation_method must be 'pearson' or 'spearman'")
        if not self.powers and self.power is None:
            raise ValueError("powers must list candidate exponents when power is not set")
        if any(p <= 0 for p in self.powers) or (self.power is not None and self.power <= 0):
            raise ValueError("soft-threshold powers must be positive")
        if self.min_module_size < 1:
            raise ValueError("min_module_size must be at least 1")
        if self.deep_split not in (0, 1, 2, 3, 4):
            raise ValueError("deep_split must be an integer from 0 to 4")
        if not 0 <= self.merge_cut_height < 1:
            raise ValueError("merge_cut_height must be in [0, 1)")
        return True


@dataclass
class NetworkResult:
    """Everything produced by run_network_analysis."""

    power: int
    soft_threshold_table: pd.DataFrame
    adjacency: pd.DataFrame
    tom: pd.DataFrame
    linkage_matrix: np.ndarray
    cut_height: float
    unmerged_modules: pd.Series
    modules: pd.Series
    eigengenes: pd.DataFrame
    variance_explained: pd.Series
    module_membership: pd.DataFrame
    module_table: pd.DataFrame
    trait_correlation: Optional[pd.DataFrame] = None
    trait_pvalues: Optional[pd.DataFrame] = None


# =============================================================================
# INPUT PREPARATION
# =============================================================================

def prepare_expression_matrix(data: pd.DataFrame, verbose: bool = True) -> pd.DataFrame:
    """
    Keep the numeric analyte columns usable for network construction.

    Drops non-numeric columns, analytes that are entirely missing and
    analytes with zero variance.

    Parameters
    ----------
    data : pd.DataFrame
        Samples x analytes table
    verbose : bool
        Print what was dropped

    Returns
    -------
    pd.DataFrame
        Float matrix, samples x analytes
    """
    numeric = data.select_dtypes(include=[np.number]).astype(float)
    dropped_non_numeric = [c for c in data.columns if c not in numeric.columns]

    all_missing = numeric.columns[numeric.isna().all()].tolist()
    numeric = numeric.drop(columns=all_missing)
    constant = numeric.columns[numeric.std(skipna=True).fillna(0) == 0].tolist()
    numeric = numeric.drop(columns=constant)

    if verbose:
        print(f"Expression matrix: {numeric.shape[0]} samples x {numeric.shape[1]} analytes")
        if dropped_non_numeric:
            print(f"  -> Ignored non-numeric columns: {dropped_non_numeric}")
        if all_missing:
            print(f"  -> Dropped all-missing analytes: {all_missing}")
        if constant:
            print(f"  -> Dropped zero-variance analytes: {constant}")

    if numeric.shape[1] < 2:
        raise ValueError("Network analysis needs at least 2 variable analytes")
    if numeric.shape[0] < 3:
        raise ValueError("Network analysis needs at least 3 samples")

    return numeric


def _correlation(data: pd.DataFrame, method: str = 'pearson') -> pd.DataFrame:
    """Analyte-analyte correlation with undefined entries set to 0."""
    corr = data.corr(method=method).fillna(0.0)
    values = corr.to_numpy(copy=True)
    np.fill_diagonal(values, 1.0)
    return pd.DataFrame(values, index=corr.index, columns=corr.columns)


def _adjacency_from_correlation(corr: pd.DataFrame, power: float, network_type: str) -> pd.DataFrame:
    values = corr.to_numpy()
    if network_type == 'signed':
        adjacency = ((1.0 + values) / 2.0) ** power
    else:
        adjacency = np.abs(values) ** power
    np.fill_diagonal(adjacency, 1.0)
    return pd.DataFrame(adjacency, index=corr.index, columns=corr.columns)


# =============================================================================
# SOFT THRESHOLD
# =============================================================================

def scale_free_fit(connectivity: np.ndarray, n_breaks: int = 10) -> Tuple[float, float]:
    """
    Scale-free topology fit of a connectivity vector.

    Connectivity is binned into `n_breaks` equal-width bins; log10 of the
    bin frequency is regressed on log10 of the mean bin connectivity.
    Empty bins use the bin midpoint and a frequency of 0.

    Returns
    -------
    r_squared : float
        R^2 of the linear fit (NaN if connectivity is constant)
    slope : float
        Slope of the fit
    """
    k = np.asarray(connectivity, dtype=float)
    k = k[np.isfinite(k)]
    if len(k) < 2 or np.isclose(k.max(), k.min()):
        return np.nan, np.nan

    edges = np.linspace(k.min(), k.max(), n_breaks + 1)
    mids = (edges[:-1] + edges[1:]) / 2
    bins = np.digitize(k, edges[1:-1], right=True)

    mean_k = np.array([k[bins == b].mean() if np.any(bins == b) else np.nan for b in range(n_breaks)])
    counts = np.bincount(bins, minlength=n_breaks)

    mean_k = np.where(np.isnan(mean_k) | (mean_k == 0), mids, mean_k)
    frequency = counts / len(k)

    log_k = np.log10(mean_k)
    log_p = np.log10(frequency + 1e-9)
    fit = linregress(log_k, log_p)
    return float(fit.rvalue ** 2), float(fit.slope)


def pick_soft_threshold(
    data: pd.DataFrame,
    config: Optional[WGCNAConfig] = None,
    verbose: bool = True,
) -> Tuple[int, pd.DataFrame]:
    """
    Scan candidate soft-threshold powers and pick one.

    Parameters
    ----------
    data : pd.DataFrame
        Samples x analytes matrix
    config : WGCNAConfig, optional
        Uses powers, r2_cutoff, n_breaks, network_type, correlation_method
    verbose : bool
        Print the scan table

    Returns
    -------
    power : int
        Lowest power with signed R^2 >= r2_cutoff; if none reaches the
        cutoff, the power with the highest signed R^2
    table : pd.DataFrame
        One row per power: Power, SFT.R.sq, slope, signed.R.sq,
        mean.k, median.k, max.k
    """
    if config is None:
        config = WGCNAConfig()
    config.validate()

    corr = _correlation(data, config.correlation_method)

    rows = []
    for power in config.powers:
        adjacency = _adjacency_from_correlation(corr, power, config.network_type).to_numpy()
        connectivity = adjacency.sum(axis=1) - 1.0
        r_squared, slope = scale_free_fit(connectivity, config.n_breaks)
        signed_r2 = -np.sign(slope) * r_squared if np.isfinite(slope) else np.nan
        rows.append({
            'Power': power,
            'SFT.R.sq': r_squared,
            'slope': slope,
            'signed.R.sq': signed_r2,
            'mean.k': connectivity.mean(),
            'median.k': np.median(connectivity),
            'max.k': connectivity.max(),
        })
    table = pd.DataFrame(rows)

    passing = table[table['signed.R.sq'] >= config.r2_cutoff]
    if not passing.empty:
        power = int(passing['Power'].iloc[0])
        reason = f"lowest power with signed R^2 >= {config.r2_cutoff}"
    elif table['signed.R.sq'].notna().any():
        power = int(table.loc[table['signed.R.sq'].idxmax(), 'Power'])
        reason = f"no power reached R^2 {config.r2_cutoff}; best fit used"
    else:
        power = int(table['Power'].iloc[0])
        reason = "scale-free fit undefined; first candidate used"

    if verbose:
        print("Soft-threshold scan:")
        print(table.round(3).to_string(index=False))
        print(f"✓ Selected power {power} ({reason})")

    return power, table


# =============================================================================
# NETWORK CONSTRUCTION
# =============================================================================

def calculate_adjacency(
    data: pd.DataFrame,
    power: float,
    network_type: str = 'unsigned',
    correlation_method: str = 'pearson',
) -> pd.DataFrame:
    """
    Weighted adjacency matrix of the analytes.

    unsigned: |cor| ^ power; signed: ((1 + cor) / 2) ^ power. Diagonal is 1.
    """
    if network_type not in ('unsigned', 'signed'):
        raise ValueError("network_type must be 'unsigned' or 'signed'")
    corr = _correlation(data, correlation_method)
    return _adjacency_from_correlation(corr, power, network_type)


def calculate_tom_similarity(adjacency: pd.DataFrame) -> pd.DataFrame:
    """
    Topological overlap matrix.

    TOM_ij = (sum_u a_iu a_uj + a_ij) / (min(k_i, k_j) + 1 - a_ij),
    with k the connectivity excluding self-adjacency. Diagonal is 1.
    """
    a = adjacency.to_numpy(dtype=float, copy=True)
    np.fill_diagonal(a, 0.0)

    shared = a @ a
    k = a.sum(axis=1)
    denominator = np.minimum.outer(k, k) + 1.0 - a
    tom = (shared + a) / denominator
    np.fill_diagonal(tom, 1.0)

    return pd.DataFrame(tom, index=adjacency.index, columns=adjacency.columns)


# =============================================================================
# MODULE DETECTION
# =============================================================================

def _color_for_rank(rank: int) -> str:
    if rank < len(MODULE_COLORS):
        return MODULE_COLORS[rank]
    return f"module{rank + 1}"


def label_modules_by_size(cluster_ids: pd.Series, min_module_size: int) -> pd.Series:
    """
    Turn integer cluster ids into module colours.

    Clusters of at least `min_module_size` members are coloured by
    decreasing size (ties broken by first appearance); id 0 (left
    unassigned by the tree cut) and smaller clusters become grey.
    """
    sizes = cluster_ids.value_counts(sort=False)
    first_seen = {cid: i for i, cid in reversed(list(enumerate(cluster_ids)))}
    kept = [
        cid for cid in sizes.index
        if cid != UNASSIGNED_ID and sizes[cid] >= min_module_size
    ]
    kept.sort(key=lambda cid: (-sizes[cid], first_seen[cid]))

    colors = {cid: _color_for_rank(rank) for rank, cid in enumerate(kept)}
    return cluster_ids.map(lambda cid: colors.get(cid, UNASSIGNED_MODULE)).rename("Module")


def detect_modules(
    tom: pd.DataFrame,
    config: Optional[WGCNAConfig] = None,
    verbose: bool = True,
) -> Tuple[pd.Series, np.ndarray, float]:
    """
    Hierarchical module detection on the TOM dissimilarity.

    The average-linkage dendrogram of 1 - TOM is split with the hybrid
    dynamic tree cut (``dynamicTreeCut.cutreeHybrid``), so branches that
    join below the top of the tree can still become separate modules.

    Parameters
    ----------
    tom : pd.DataFrame
        Topological overlap matrix (analytes x analytes)
    config : WGCNAConfig, optional
        Uses linkage_method, cut_height, min_module_size, deep_split,
        pam_respects_dendro
    verbose : bool
        Print module sizes

    Returns
    -------
    modules : pd.Series
        Analyte -> module colour ("grey" = no module)
    linkage_matrix : np.ndarray
        scipy linkage matrix (for dendrograms)
    cut_height : float
        Maximum joining height considered by the tree cut
    """
    if config is None:
        config = WGCNAConfig()

    dissimilarity = 1.0 - tom.to_numpy(dtype=float, copy=True)
    dissimilarity = np.clip((dissimilarity + dissimilarity.T) / 2, 0.0, 1.0)
    np.fill_diagonal(dissimilarity, 0.0)
    condensed = squareform(dissimilarity, checks=False)

    linkage_matrix = linkage(condensed, method=config.linkage_method)
    heights = linkage_matrix[:, 2]

    if config.cut_height is None:
        reference = np.quantile(heights, 0.05)
        cut_height = float(reference + 0.99 * (heights.max() - reference))
    else:
        cut_height = float(config.cut_height)

    tree_cut = cutreeHybrid(
        linkage_matrix,
        condensed,
        cutHeight=cut_height,
        minClusterSize=config.min_module_size,
        deepSplit=config.deep_split,
        pamRespectsDendro=config.pam_respects_dendro,
        verbose=0,
    )
    cluster_ids = pd.Series(np.asarray(tree_cut["labels"], dtype=int), index=tom.index)
    modules = label_modules_by_size(cluster_ids, config.min_module_size)

    if verbose:
        print(
            f"Module detection (dynamic tree cut, deepSplit {config.deep_split}, "
            f"max height {cut_height:.3f}, min size {config.min_module_size}):"
        )
        for module, size in modules.value_counts().items():
            print(f"  -> {module}: {size} analytes")

    return modules, linkage_matrix, cut_height


# =============================================================================
# EIGENGENES AND MERGING
# =============================================================================

def calculate_module_eigengenes(
    data: pd.DataFrame,
    modules: pd.Series,
    include_grey: bool = True,
) -> Tuple[pd.DataFrame, pd.Series]:
    """
    Module eigengenes: first principal component of each module.

    Analytes are standardized, missing values are replaced by the analyte
    mean, and the eigengene is scaled to unit variance with its sign chosen
    to agree with the module's average standardized profile.

    Returns
    -------
    eigengenes : pd.DataFrame
        Samples x modules, columns named "ME<colour>"
    variance_explained : pd.Series
        Fraction of the module's variance captured by its eigengene
    """
    eigengenes = {}
    variance_explained = {}

    colors = [m for m in pd.unique(modules) if include_grey or m != UNASSIGNED_MODULE]
    for color in colors:
        members = modules.index[modules == color].tolist()
        require_columns(data, members, "expression matrix")
        block = data[members].astype(float)
        block = block.fillna(block.mean())

        scaled = StandardScaler().fit_transform(block.to_numpy())
        if scaled.shape[1] == 1:
            component = scaled[:, 0].copy()
            explained = 1.0
        else:
            pca = PCA(n_components=1)
            component = pca.fit_transform(scaled)[:, 0]
            explained = float(pca.explained_variance_ratio_[0])

        average_profile = scaled.mean(axis=1)
        if np.std(component) > 0 and np.std(average_profile) > 0:
            if np.corrcoef(component, average_profile)[0, 1] < 0:
                component = -component
            component = (component - component.mean()) / component.std(ddof=1)

        eigengenes[f"ME{color}"] = component
        variance_explained[f"ME{color}"] = explained

    return (
        pd.DataFrame(eigengenes, index=data.index),
        pd.Series(variance_explained, name="VarianceExplained"),
    )


def merge_close_modules(
    data: pd.DataFrame,
    modules: pd.Series,
    merge_cut_height: float = 0.25,
    linkage_method: str = 'average',
    verbose: bool = True,
) -> pd.Series:
    """
    Merge modules whose eigengenes are highly correlated.

    Eigengenes are clustered on 1 - cor; modules joined below
    `merge_cut_height` are merged into the colour of their largest member.
    Repeats until no further merge happens. Grey is never merged.

    Returns
    -------
    pd.Series
        Analyte -> merged module colour
    """
    merged = modules.copy()
    n_before = merged[merged != UNASSIGNED_MODULE].nunique()

    while True:
        sizes = merged[merged != UNASSIGNED_MODULE].value_counts()
        if len(sizes) < 2:
            break

        eigengenes, _ = calculate_module_eigengenes(data, merged, include_grey=False)
        corr = eigengenes.corr().fillna(0.0).to_numpy()
        dissimilarity = np.clip(1.0 - corr, 0.0, 2.0)
        dissimilarity = (dissimilarity + dissimilarity.T) / 2
        np.fill_diagonal(dissimilarity, 0.0)

        tree = linkage(squareform(dissimilarity, checks=False), method=linkage_method)
        groups = fcluster(tree, t=merge_cut_height, criterion='distance')
        if len(set(groups)) == len(groups):
            break

        names = [column[2:] for column in eigengenes.columns]
        rank = {color: i for i, color in enumerate(MODULE_COLORS)}
        for group in set(groups):
            members = [names[i] for i in range(len(names)) if groups[i] == group]
            if len(members) < 2:
                continue
            target = sorted(members, key=lambda c: (-sizes[c], rank.get(c, len(rank)), c))[0]
            if verbose:
                print(f"  -> Merging {[m for m in members if m != target]} into {target}")
            merged = merged.replace({m: target for m in members if m != target})

    if verbose:
        n_after = merged[merged != UNASSIGNED_MODULE].nunique()
        print(f"✓ Module merging (cut height {merge_cut_height}): {n_before} -> {n_after} modules")

    return merged


def calculate_module_membership(data: pd.DataFrame, eigengenes: pd.DataFrame) -> pd.DataFrame:
    """
    Module membership (kME): correlation of every analyte with every eigengene.

    Returns an analytes x modules table with columns "kME<colour>".
    """
    membership = data.apply(lambda column: eigengenes.corrwith(column)).T
    membership.columns = [f"k{name}" for name in eigengenes.columns]
    return membership


# =============================================================================
# TRAITS
# =============================================================================

def encode_traits(metadata: pd.DataFrame, trait_columns: List[str]) -> pd.DataFrame:
    """
    Numeric trait encoding for eigengene-trait correlation.

    Numeric traits are kept as they are. Categorical traits become one 0/1
    indicator column per level, named "<trait>.<level>"; samples with a
    missing trait get NaN indicators.
    """
    require_columns(metadata, trait_columns, "sample metadata")

    encoded = []
    for column in trait_columns:
        values = metadata[column]
        if pd.api.types.is_numeric_dtype(values) and not pd.api.types.is_bool_dtype(values):
            encoded.append(values.astype(float).to_frame(column))
            continue

        indicators = pd.get_dummies(values, prefix=column, prefix_sep='.').astype(float)
        indicators.loc[values.isna()] = np.nan
        encoded.append(indicators)

    return pd.concat(encoded, axis=1)


def correlate_modules_with_traits(
    eigengenes: pd.DataFrame,
    traits: pd.DataFrame,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Pearson correlation and Student p-value for each (module, trait) pair.

    Samples are aligned by index label. Pairs with fewer than 3 complete
    samples, or a constant trait or eigengene, get NaN.

    Returns
    -------
    correlation : pd.DataFrame
        Modules x traits
    pvalues : pd.DataFrame
        Modules x traits
    """
    shared = eigengenes.index.intersection(traits.index)
    if len(shared) == 0:
        raise PairingError("Eigengenes and traits share no sample labels")
    if len(shared) < len(eigengenes.index):
        print(f"Warning: {len(eigengenes.index) - len(shared)} samples have no trait values")

    eigengenes = eigengenes.loc[shared]
    traits = traits.loc[shared]

    correlation = pd.DataFrame(np.nan, index=eigengenes.columns, columns=traits.columns)
    pvalues = pd.DataFrame(np.nan, index=eigengenes.columns, columns=traits.columns)

    for module in eigengenes.columns:
        for trait in traits.columns:
            x = eigengenes[module].astype(float)
            y = traits[trait].astype(float)
            complete = x.notna() & y.notna()
            x, y = x[complete], y[complete]
            if len(x) < 3 or x.std() == 0 or y.std() == 0:
                continue
            r, p = pearsonr(x, y)
            correlation.loc[module, trait] = r
            pvalues.loc[module, trait] = p

    return correlation, pvalues


# =============================================================================
# DISPLAY TABLE
# =============================================================================

def build_module_table(modules: pd.Series, include_grey: bool = True) -> pd.DataFrame:
    """
    Module -> analyte-list display table.

    Rows are ordered by decreasing module size with grey last.
    """
    rows = []
    for module in pd.unique(modules):
        if module == UNASSIGNED_MODULE and not include_grey:
            continue
        members = sorted(str(a) for a in modules.index[modules == module])
        rows.append({'Module': module, 'Size': len(members), 'Analytes': ", ".join(members)})

    table = pd.DataFrame(rows, columns=['Module', 'Size', 'Analytes'])
    if table.empty:
        return table
    rank = {color: i for i, color in enumerate(MODULE_COLORS)}
    table['_grey'] = table['Module'] == UNASSIGNED_MODULE
    table['_rank'] = table['Module'].map(lambda m: rank.get(m, len(rank)))
    table = table.sort_values(['_grey', 'Size', '_rank'], ascending=[True, False, True])
    return table.drop(columns=['_grey', '_rank']).reset_index(drop=True)


# =============================================================================
# COMPLETE WORKFLOW
# =============================================================================

def run_network_analysis(
    data: pd.DataFrame,
    metadata: Optional[pd.DataFrame] = None,
    trait_columns: Optional[List[str]] = None,
    config: Optional[WGCNAConfig] = None,
    verbose: bool = True,
) -> NetworkResult:
    """
    Run the complete co-expression network workflow.

    Parameters
    ----------
    data : pd.DataFrame
        Samples x analytes table (e.g. fold changes)
    metadata : pd.DataFrame, optional
        Sample labels indexed like `data`
    trait_columns : List[str], optional
        Metadata columns to correlate with module eigengenes
    config : WGCNAConfig, optional
        Analysis parameters
    verbose : bool
        Print progress

    Returns
    -------
    NetworkResult
    """
    if config is None:
        config = WGCNAConfig()
    config.validate()

    if verbose:
        print("=" * 60)
        print("CO-EXPRESSION NETWORK ANALYSIS")
        print("=" * 60)

    matrix = prepare_expression_matrix(data, verbose=verbose)

    if config.power is None:
        power, sft_table = pick_soft_threshold(matrix, config, verbose=verbose)
    else:
        scan_config = WGCNAConfig(**{**config.__dict__, 'powers': config.powers or [config.power]})
        _, sft_table = pick_soft_threshold(matrix, scan_config, verbose=False)
        power = config.power
        if verbose:
            print(f"Using configured soft-threshold power {power}")

    adjacency = calculate_adjacency(matrix, power, config.network_type, config.correlation_method)
    tom = calculate_tom_similarity(adjacency)

    unmerged, linkage_matrix, cut_height = detect_modules(tom, config, verbose=verbose)
    modules = merge_close_modules(
        matrix, unmerged, config.merge_cut_height, config.linkage_method, verbose=verbose
    )

    eigengenes, variance_explained = calculate_module_eigengenes(matrix, modules)
    membership = calculate_module_membership(matrix, eigengenes)
    module_table = build_module_table(modules)

    trait_correlation = trait_pvalues = None
    if metadata is not None and trait_columns:
        traits = encode_traits(metadata, trait_columns)
        trait_correlation, trait_pvalues = correlate_modules_with_traits(eigengenes, traits)
        if verbose:
            print(f"✓ Correlated {eigengenes.shape[1]} eigengenes with {traits.shape[1]} trait columns")

    if verbose:
        print(f"✓ Network analysis complete: {modules[modules != UNASSIGNED_MODULE].nunique()} modules")

    return NetworkResult(
        power=power,
        soft_threshold_table=sft_table,
        adjacency=adjacency,
        tom=tom,
        linkage_matrix=linkage_matrix,
        cut_height=cut_height,
        unmerged_modules=unmerged,
        modules=modules,
        eigengenes=eigengenes,
        variance_explained=variance_explained,
        module_membership=membership,
        module_table=module_table,
        trait_correlation=trait_correlation,
        trait_pvalues=trait_pvalues,
    )


def summarize_modules(result: NetworkResult) -> Dict[str, Dict]:
    """Per-module size, variance explained and strongest trait correlation."""
    summary = {}
    for _, row in result.module_table.iterrows():
        name = f"ME{row['Module']}"
        entry = {
            'size': int(row['Size']),
            'variance_explained': float(result.variance_explained.get(name, np.nan)),
        }
        if result.trait_correlation is not None and name in result.trait_correlation.index:
            correlations = result.trait_correlation.loc[name].dropna()
            if not correlations.empty:
                best = correlations.abs().idxmax()
                entry['top_trait'] = best
                entry['top_trait_correlation'] = float(correlations[best])
                entry['top_trait_pvalue'] = float(result.trait_pvalues.loc[name, best])
        summary[row['Module']] = entry
    return summary
