"""
Data Preprocessing Module - Phase 2
====================================

Tabular cleaning of the flattened district table and train/test splitting.

Functions:
    - remove_linear_combinations: Drop exactly collinear columns
    - quantile_bin: Replace a numeric column with ordered quantile bins
    - mean_threshold_flag: Boolean "at or above the mean" indicator
    - stratified_split: Reproducible 90/10 split stratified on the response
    - preprocess_pipeline: Run the whole cleaning sequence
    - replay_cleaning: Apply stored cleaning parameters to a new table
"""

import logging
from typing import Dict, Any, Tuple, Optional, List, Sequence

import pandas as pd
import numpy as np
from sklearn.model_selection import train_test_split

logger = logging.getLogger(__name__)

DEFAULT_BINS = [
    {'column': 'MED_INCOME',
     'labels': ['very_low', 'low', 'medium', 'high', 'very_high']},
    {'column': 'MEDIAN_AGE',
     'labels': ['young', 'middle', 'older']},
]

DEFAULT_FLAGS = [
    {'column': 'EDU_BACH', 'name': 'HIGH_EDU'},
    {'column': 'PCT_POV', 'name': 'HIGH_POV'},
    {'column': 'LAND_AREA', 'name': 'LARGE_AREA'},
]


def remove_linear_combinations(
    df: pd.DataFrame,
    exclude: Optional[Sequence[str]] = None,
    tol: Optional[float] = None
) -> Tuple[pd.DataFrame, List[str]]:
    """
    Remove numeric columns that are exact linear combinations of others.

    Columns are scanned in table order and kept only when they raise the
    rank of the columns kept so far, so within a dependent group the
    earliest column survives. Non-numeric and excluded columns pass through.

    Args:
        df: Input table
        exclude: Columns never considered (e.g. the response)
        tol: Rank tolerance passed to numpy.linalg.matrix_rank

    Returns:
        Tuple of (filtered table, removed column names)
    """
    exclude = set(exclude or [])
    candidates = [
        col for col in df.select_dtypes(include=[np.number]).columns
        if col not in exclude
    ]

    if len(candidates) < 2:
        raise ValueError(
            f"Need at least two numeric columns to check for linear combinations, "
            f"got {len(candidates)}"
        )

    # Column scaling so the rank test isn't dominated by large-valued columns
    matrix = df[candidates].to_numpy(dtype=float)
    norms = np.linalg.norm(matrix, axis=0)
    norms[norms == 0] = 1.0
    matrix = matrix / norms

    kept_idx: List[int] = []
    removed: List[str] = []
    rank = 0

    for i, col in enumerate(candidates):
        trial = matrix[:, kept_idx + [i]]
        trial_rank = np.linalg.matrix_rank(trial, tol=tol)
        if trial_rank > rank:
            kept_idx.append(i)
            rank = trial_rank
        else:
            removed.append(col)

    if removed:
        logger.info(f"Removing linearly dependent columns: {removed}")

    return df.drop(columns=removed), removed


def quantile_edges(series: pd.Series, n_bins: int) -> np.ndarray:
    """Bin edges at the 0, 1/n, ..., 1 empirical quantiles of ``series``."""
    return series.quantile(np.linspace(0, 1, n_bins + 1)).to_numpy()


def quantile_bin(
    series: pd.Series,
    n_bins: int,
    labels: Sequence[str],
    edges: Optional[Sequence[float]] = None
) -> pd.Series:
    """
    Bin a numeric column at its empirical quantiles.

    Intervals are right-closed with an open lower bound, so the column
    minimum falls outside every bin and becomes missing.

    Args:
        series: Numeric column
        n_bins: Number of bins
        labels: Bin labels in increasing order of the source value
        edges: Precomputed edges (default: quantiles of ``series``)

    Returns:
        Ordered categorical Series
    """
    if len(labels) != n_bins:
        raise ValueError(
            f"Expected {n_bins} labels for column '{series.name}', got {len(labels)}"
        )

    if edges is None:
        edges = quantile_edges(series, n_bins)
    return pd.cut(
        series,
        bins=np.asarray(edges, dtype=float),
        labels=list(labels),
        right=True,
        include_lowest=False,
        ordered=True
    )


def mean_threshold_flag(
    series: pd.Series,
    reference_mean: Optional[float] = None
) -> pd.Series:
    """True where the value is >= the reference mean (default: the column's own mean)."""
    if reference_mean is None:
        reference_mean = series.mean()
    return series >= reference_mean


def stratified_split(
    df: pd.DataFrame,
    response: str,
    train_fraction: float = 0.9,
    seed: int = 42,
    n_groups: int = 5
) -> Tuple[pd.Index, pd.Index]:
    """
    Split rows into train and test index sets stratified on the response.

    The numeric response is cut into ``n_groups`` quantile groups (fewer for
    small tables) and the split preserves the group proportions.

    Args:
        df: Table to split
        response: Response column name
        train_fraction: Fraction of rows used for training
        seed: Random seed
        n_groups: Number of quantile groups to stratify on

    Returns:
        Tuple of (train_index, test_index)
    """
    if response not in df.columns:
        raise ValueError(f"Response column '{response}' not found")

    y = df[response]
    n_groups = max(1, min(n_groups, len(y) // 10))

    if n_groups > 1:
        strata = pd.qcut(y, q=n_groups, labels=False, duplicates='drop')
    else:
        strata = None

    train_idx, test_idx = train_test_split(
        df.index,
        train_size=train_fraction,
        random_state=seed,
        stratify=strata
    )

    logger.info(
        f"Train/Test split: {len(train_idx)} train rows, {len(test_idx)} test rows"
    )

    return pd.Index(train_idx), pd.Index(test_idx)


def _apply_flags(
    frame: pd.DataFrame,
    flags: List[Dict[str, Any]],
    means: Dict[str, float]
) -> pd.DataFrame:
    frame = frame.copy()
    for flag in flags:
        frame[flag['name']] = mean_threshold_flag(frame[flag['column']], means[flag['column']])
    return frame.drop(columns=[flag['column'] for flag in flags])


def preprocess_pipeline(
    df: pd.DataFrame,
    config: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Complete cleaning and splitting sequence for the district table.

    Steps: drop configured identifier columns, remove linear combinations,
    bin the configured columns, drop rows left missing by binning, split,
    derive mean-threshold flags and drop their source columns.

    Bin and flag source columns never take part in the collinearity scan.
    With ``flag_reference: full`` the flag means are taken over every row
    of the table, before rows are dropped; with ``train`` they come from
    the training partition only.

    Args:
        df: Flattened district table with the response attached
        config: Configuration dictionary

    Returns:
        Dictionary containing:
            - train, test: Cleaned partitions
            - train_index, test_index: Row labels of each partition
            - removed_columns: Columns dropped as linear combinations
            - dropped_rows: Rows dropped after binning
            - flag_means: Reference mean used for each flag
            - cleaning: Parameters for replay_cleaning
            - response: Response column name
    """
    config = config or {}
    features = config.get('features', {})
    split_config = config.get('split', {})
    response = config.get('response', {}).get('column', 'revenue')

    bins = features.get('bins', DEFAULT_BINS)
    flags = features.get('flags', DEFAULT_FLAGS)
    flag_reference = features.get('flag_reference', 'train')
    drop_columns = features.get('drop', ['DISTRICT'])

    if flag_reference not in ('train', 'full'):
        raise ValueError(f"flag_reference must be 'train' or 'full', got '{flag_reference}'")
    if response not in df.columns:
        raise ValueError(f"Response column '{response}' not found")

    configured = [rule['column'] for rule in bins] + [flag['column'] for flag in flags]
    missing = [col for col in configured if col not in df.columns]
    if missing:
        raise ValueError(f"Configured bin/flag columns not in table: {missing}")

    logger.info("=" * 60)
    logger.info("STARTING DATA PREPROCESSING (Phase 2)")
    logger.info("=" * 60)

    data = df.drop(columns=[c for c in drop_columns if c in df.columns])

    data, removed = remove_linear_combinations(data, exclude=[response] + configured)

    full_means = {flag['column']: float(data[flag['column']].mean()) for flag in flags}

    bin_rules = []
    for rule in bins:
        labels = list(rule['labels'])
        edges = quantile_edges(data[rule['column']], len(labels))
        data[rule['column']] = quantile_bin(data[rule['column']], len(labels), labels, edges)
        bin_rules.append({'column': rule['column'], 'labels': labels, 'edges': edges.tolist()})

    n_before = len(data)
    data = data.dropna()
    dropped_rows = n_before - len(data)
    logger.info(f"Dropped {dropped_rows} rows with missing values after binning")

    train_idx, test_idx = stratified_split(
        data,
        response,
        train_fraction=split_config.get('train_fraction', 0.9),
        seed=split_config.get('seed', 42),
        n_groups=split_config.get('groups', 5)
    )

    if flag_reference == 'full':
        flag_means = full_means
    else:
        train_rows = data.loc[train_idx]
        flag_means = {flag['column']: float(train_rows[flag['column']].mean()) for flag in flags}

    train = _apply_flags(data.loc[train_idx], flags, flag_means)
    test = _apply_flags(data.loc[test_idx], flags, flag_means)

    cleaning = {
        'drop': [c for c in drop_columns if c in df.columns] + removed,
        'bins': bin_rules,
        'flags': [
            {'column': flag['column'], 'name': flag['name'], 'mean': flag_means[flag['column']]}
            for flag in flags
        ],
        'response': response
    }

    result = {
        'train': train,
        'test': test,
        'train_index': train_idx,
        'test_index': test_idx,
        'removed_columns': removed,
        'dropped_rows': dropped_rows,
        'flag_means': flag_means,
        'flag_reference': flag_reference,
        'cleaning': cleaning,
        'response': response
    }

    logger.info("=" * 60)
    logger.info("PREPROCESSING COMPLETE")
    logger.info(f"  Training rows: {len(train)}")
    logger.info(f"  Test rows: {len(test)}")
    logger.info(f"  Feature columns: {train.shape[1] - 1}")
    logger.info("=" * 60)

    return result


def replay_cleaning(df: pd.DataFrame, cleaning: Dict[str, Any]) -> pd.DataFrame:
    """
    Apply cleaning learned by preprocess_pipeline to a raw flattened table.

    Columns are dropped, binned at the stored edges and flagged against the
    stored means. The outer bin edges are open here, so values beyond the
    training range land in the lowest or highest bin and every row is kept.
    """
    missing = [r['column'] for r in cleaning['bins'] + cleaning['flags'] if r['column'] not in df.columns]
    if missing:
        raise ValueError(f"Input is missing columns needed for cleaning: {missing}")

    data = df.drop(columns=[c for c in cleaning['drop'] if c in df.columns])

    for rule in cleaning['bins']:
        edges = np.asarray(rule['edges'], dtype=float)
        edges[0], edges[-1] = -np.inf, np.inf
        data[rule['column']] = quantile_bin(
            data[rule['column']], len(rule['labels']), rule['labels'], edges
        )

    means = {flag['column']: flag['mean'] for flag in cleaning['flags']}
    return _apply_flags(data, cleaning['flags'], means)


def print_preprocessing_summary(result: Dict[str, Any]) -> None:
    """
    Print a summary of the preprocessing results.

    Args:
        result: Dictionary from preprocess_pipeline
    """
    print("\n" + "=" * 50)
    print("PREPROCESSING SUMMARY")
    print("=" * 50)
    print(f"Linearly dependent columns removed: {len(result['removed_columns'])}")
    for col in result['removed_columns']:
        print(f"  - {col}")
    print(f"Rows dropped after binning: {result['dropped_rows']}")
    print(f"Training rows: {len(result['train'])}")
    print(f"Test rows: {len(result['test'])}")
    print(f"\nFlag reference means ({result['flag_reference']} data):")
    for col, value in result['flag_means'].items():
        print(f"  - {col}: {value:.4f}")
    print("=" * 50 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    from .data_loader import flatten_to_centroids, synthesize_response
    from .synthetic import generate_districts

    sample_df = synthesize_response(flatten_to_centroids(generate_districts(200)))

    print("Testing preprocessing pipeline...")
    result = preprocess_pipeline(sample_df)
    print_preprocessing_summary(result)
