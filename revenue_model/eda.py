"""
Exploratory Data Analysis (EDA) Module - Phase 1
=================================================

Summary visualizations of the flattened district table.

Functions:
    - plot_correlation_matrix: Correlation heatmap
    - plot_distributions: Histograms with a normality test
    - plot_box_plots: Normalized box plots
    - plot_centroid_map: District centroids colored by the response
    - generate_eda_report: Full EDA report with all visualizations
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats

logger = logging.getLogger(__name__)

# Set style for all plots
plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")


def plot_correlation_matrix(
    df: pd.DataFrame,
    method: str = 'pearson',
    figsize: Tuple[int, int] = (12, 10),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.DataFrame]:
    """
    Create a correlation heatmap for all numerical columns.

    Args:
        df: DataFrame with numerical data
        method: Correlation method ('pearson', 'spearman', 'kendall')
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Tuple of (Figure, correlation matrix DataFrame)
    """
    corr_matrix = df.select_dtypes(include=[np.number]).corr(method=method)

    fig, ax = plt.subplots(figsize=figsize)

    mask = np.triu(np.ones_like(corr_matrix, dtype=bool), k=1)
    sns.heatmap(
        corr_matrix,
        mask=mask,
        annot=True,
        fmt='.2f',
        cmap='RdYlBu_r',
        center=0,
        square=True,
        linewidths=0.5,
        cbar_kws={"shrink": 0.8, "label": "Correlation"},
        ax=ax,
        vmin=-1,
        vmax=1
    )

    ax.set_title(f'Correlation Matrix ({method.capitalize()})',
                 fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Correlation matrix saved to {save_path}")

    return fig, corr_matrix


def plot_distributions(
    df: pd.DataFrame,
    figsize: Tuple[int, int] = (14, 16),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create distribution plots (histogram + KDE) for all numerical columns.

    Args:
        df: DataFrame with numerical data
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    columns = df.select_dtypes(include=[np.number]).columns.tolist()
    n_cols = len(columns)
    n_rows = (n_cols + 1) // 2

    fig, axes = plt.subplots(n_rows, 2, figsize=figsize, squeeze=False)
    axes = axes.flatten()

    for idx, col in enumerate(columns):
        ax = axes[idx]

        sns.histplot(df[col], kde=True, ax=ax, bins=30, alpha=0.7)

        mean_val = df[col].mean()
        median_val = df[col].median()
        ax.axvline(mean_val, color='red', linestyle='--', label=f'Mean: {mean_val:.2f}')
        ax.axvline(median_val, color='green', linestyle='--', label=f'Median: {median_val:.2f}')

        # normaltest needs at least 8 observations
        values = df[col].dropna()
        if len(values) >= 8:
            _, p_value = stats.normaltest(values)
            normality = "Normal" if p_value > 0.05 else "Non-Normal"
            ax.set_title(f'{col} ({normality}, p={p_value:.3f})', fontsize=10, fontweight='bold')
        else:
            ax.set_title(col, fontsize=10, fontweight='bold')
        ax.legend(fontsize=8)

    for idx in range(len(columns), len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Distribution Analysis', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Distribution plots saved to {save_path}")

    return fig


def plot_box_plots(
    df: pd.DataFrame,
    figsize: Tuple[int, int] = (14, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create min-max normalized box plots for outlier detection.
    """
    numeric = df.select_dtypes(include=[np.number])
    value_range = (numeric.max() - numeric.min()).replace(0, 1)
    df_normalized = (numeric - numeric.min()) / value_range

    fig, ax = plt.subplots(figsize=figsize)
    df_normalized.boxplot(ax=ax, grid=True, notch=True, rot=45)
    ax.set_title('Box Plots (Normalized) - Outlier Detection', fontsize=14, fontweight='bold')
    ax.set_ylabel('Normalized Value (0-1)')
    ax.set_xlabel('Columns')

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Box plots saved to {save_path}")

    return fig


def plot_centroid_map(
    df: pd.DataFrame,
    value_column: str,
    figsize: Tuple[int, int] = (12, 7),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Scatter the district centroids colored by ``value_column``.

    Args:
        df: Flattened table with ``x`` and ``y`` columns
        value_column: Column used for the color scale
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    points = ax.scatter(df['x'], df['y'], c=df[value_column], cmap='viridis', s=25, alpha=0.8)
    fig.colorbar(points, ax=ax, label=value_column)

    ax.set_xlabel('x (centroid)')
    ax.set_ylabel('y (centroid)')
    ax.set_title(f'District Centroids by {value_column}', fontsize=14, fontweight='bold')
    ax.set_aspect('equal', adjustable='datalim')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Centroid map saved to {save_path}")

    return fig


def generate_eda_report(
    df: pd.DataFrame,
    response: str = "revenue",
    output_dir: str = "reports/figures/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Write the EDA figures for the district table to ``output_dir``.

    The centroid map is skipped when the table has no ``x``/``y`` columns
    or no response.

    Returns:
        Dictionary with the figure file names, the correlation matrix and
        per-column statistics (mean, std, min, max, skew)
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS (Phase 1)")
    logger.info("=" * 60)

    figures = [
        ("01_correlation_matrix.png", plot_correlation_matrix),
        ("02_distributions.png", plot_distributions),
        ("03_box_plots.png", plot_box_plots),
    ]
    if {'x', 'y', response}.issubset(df.columns):
        figures.append(
            ("04_centroid_map.png", lambda data, save_path: plot_centroid_map(data, response, save_path=save_path))
        )

    corr_matrix = None
    for filename, plot in figures:
        logger.info(f"Writing {filename}")
        output = plot(df, save_path=str(output_dir / filename))
        if isinstance(output, tuple):
            corr_matrix = output[1]

    numeric = df.select_dtypes(include=[np.number])
    statistics = numeric.agg(['mean', 'std', 'min', 'max', 'skew']).astype(float)

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EDA COMPLETE - %d figures in %s", len(figures), output_dir)
    logger.info("=" * 60)

    return {
        "data_shape": df.shape,
        "columns": list(df.columns),
        "figures": [filename for filename, _ in figures],
        "correlation_matrix": corr_matrix.to_dict(),
        "statistics": statistics.to_dict()
    }


def print_correlation_insights(
    corr_matrix: pd.DataFrame,
    response: str = "revenue",
    threshold: float = 0.5
) -> None:
    """
    Print predictor pairs with |r| >= ``threshold`` and each predictor's
    correlation with the response.
    """
    print("\n" + "=" * 50)
    print("CORRELATION INSIGHTS")
    print("=" * 50)

    predictors = corr_matrix.drop(index=response, columns=response, errors='ignore')
    upper = predictors.where(np.triu(np.ones(predictors.shape, dtype=bool), k=1))
    pairs = upper.stack()
    pairs = pairs[pairs.abs() >= threshold]
    pairs = pairs.reindex(pairs.abs().sort_values(ascending=False).index)

    if len(pairs):
        print(f"\nPredictor pairs with |r| >= {threshold}:")
        for (left, right), r in pairs.items():
            marker = "  <- likely removed as collinear" if abs(r) > 0.999 else ""
            print(f"  {left} / {right}: {r:+.3f}{marker}")
    else:
        print(f"\nNo predictor pairs with |r| >= {threshold}")

    if response in corr_matrix.columns:
        with_response = corr_matrix[response].drop(response)
        with_response = with_response.reindex(with_response.abs().sort_values(ascending=False).index)
        print(f"\nCorrelation with {response}:")
        for col, r in with_response.head(5).items():
            print(f"  {col}: {r:+.3f}")

    print("=" * 50 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    from .data_loader import flatten_to_centroids, synthesize_response
    from .synthetic import generate_districts

    districts = synthesize_response(flatten_to_centroids(generate_districts(200)))
    report = generate_eda_report(districts, output_dir="reports/figures/demo/")
    print_correlation_insights(pd.DataFrame(report["correlation_matrix"]))
    print(f"{len(report['figures'])} figures written")
