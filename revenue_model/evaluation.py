"""
Model Evaluation Module - Phase 4
==================================

Error metrics and diagnostic plots for the revenue regression.

Features:
    - MAE, relative MAE, MAPE, RMSE, R² and Pearson correlation
    - Actual vs Predicted plots
    - Residual analysis
    - Metrics saved as JSON per partition
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats
from sklearn.metrics import (
    mean_absolute_error,
    mean_absolute_percentage_error,
    mean_squared_error,
    r2_score,
)

logger = logging.getLogger(__name__)

METRIC_LABELS = {
    'mae': 'MAE',
    'relative_mae': 'Relative MAE',
    'mape': 'MAPE (%)',
    'rmse': 'RMSE',
    'r2': 'R²',
    'pearson_r': 'Pearson r',
}


def calculate_metrics(y_true, y_pred) -> Dict[str, float]:
    """
    Calculate the regression error metrics.

    Args:
        y_true: Ground truth values
        y_pred: Predicted values, same length as ``y_true``

    Returns:
        Dictionary with mae, relative_mae, mape, rmse, r2, pearson_r
        and n_samples
    """
    y_true = np.asarray(y_true, dtype=float).ravel()
    y_pred = np.asarray(y_pred, dtype=float).ravel()

    if len(y_true) != len(y_pred):
        raise ValueError(
            f"y_true and y_pred must have the same length, got {len(y_true)} and {len(y_pred)}"
        )
    if len(y_true) == 0:
        raise ValueError("Cannot compute metrics on empty input")

    mae = mean_absolute_error(y_true, y_pred)

    if len(y_true) > 1:
        pearson_r = stats.pearsonr(y_true, y_pred)[0]
    else:
        pearson_r = np.nan

    return {
        'mae': float(mae),
        'relative_mae': float(mae / np.mean(y_true)),
        'mape': float(mean_absolute_percentage_error(y_true, y_pred) * 100),
        'rmse': float(np.sqrt(mean_squared_error(y_true, y_pred))),
        'r2': float(r2_score(y_true, y_pred)),
        'pearson_r': float(pearson_r),
        'n_samples': int(len(y_true))
    }


def plot_actual_vs_predicted(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    title: str = "Actual vs Predicted",
    figsize: Tuple[int, int] = (7, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Scatter actual against predicted values with the identity line.

    Args:
        y_true: Ground truth values
        y_pred: Predicted values
        title: Plot title
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    ax.scatter(y_true, y_pred, alpha=0.5, s=20)

    min_val = min(np.min(y_true), np.min(y_pred))
    max_val = max(np.max(y_true), np.max(y_pred))
    ax.plot([min_val, max_val], [min_val, max_val], 'r--', linewidth=2, label='Perfect')

    r2 = r2_score(y_true, y_pred)
    rmse = np.sqrt(mean_squared_error(y_true, y_pred))

    ax.set_xlabel('Actual')
    ax.set_ylabel('Predicted')
    ax.set_title(f'{title}\nR²={r2:.4f}, RMSE={rmse:.2f}', fontsize=11, fontweight='bold')
    ax.legend(loc='upper left', fontsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Actual vs Predicted plot saved to {save_path}")

    return fig


def plot_residuals(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    title: str = "Residual Analysis",
    figsize: Tuple[int, int] = (12, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Residual histogram and residuals against fitted values.

    Args:
        y_true: Ground truth values
        y_pred: Predicted values
        title: Plot title
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    residuals = np.asarray(y_true) - np.asarray(y_pred)

    fig, axes = plt.subplots(1, 2, figsize=figsize)

    sns.histplot(residuals, kde=True, ax=axes[0], bins=30, alpha=0.7)
    axes[0].axvline(0, color='red', linestyle='--', linewidth=2, label='Zero')
    axes[0].axvline(np.mean(residuals), color='green', linestyle='--',
                    linewidth=2, label=f'Mean: {np.mean(residuals):.2f}')
    axes[0].set_xlabel('Residual (Actual - Predicted)')
    axes[0].set_ylabel('Frequency')
    axes[0].set_title(f'Distribution (Std: {np.std(residuals):.2f})', fontweight='bold')
    axes[0].legend(fontsize=8)

    axes[1].scatter(y_pred, residuals, alpha=0.5, s=20)
    axes[1].axhline(0, color='red', linestyle='--', linewidth=2)
    axes[1].set_xlabel('Predicted')
    axes[1].set_ylabel('Residual')
    axes[1].set_title('Residuals vs Fitted', fontweight='bold')

    plt.suptitle(title, fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Residuals plot saved to {save_path}")

    return fig


def evaluate_model(
    y_true,
    y_pred,
    label: str = "test",
    output_dir: Optional[str] = "reports/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Compute metrics for one partition and write its reports.

    Args:
        y_true: Ground truth values
        y_pred: Predicted values
        label: Partition name used in titles and file names
        output_dir: Directory for output files; None skips writing
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing metrics and file paths
    """
    logger.info("=" * 60)
    logger.info(f"STARTING MODEL EVALUATION (Phase 4): {label}")
    logger.info("=" * 60)

    metrics = calculate_metrics(y_true, y_pred)
    result = {'label': label, 'metrics': metrics, 'figures': [], 'metrics_file': None}

    if output_dir is not None:
        output_dir = Path(output_dir)
        figures_dir = output_dir / "figures"
        metrics_dir = output_dir / "metrics"
        figures_dir.mkdir(parents=True, exist_ok=True)
        metrics_dir.mkdir(parents=True, exist_ok=True)

        metrics_file = metrics_dir / f"{label}_metrics.json"
        with open(metrics_file, 'w') as f:
            json.dump(metrics, f, indent=2)
        logger.info(f"Metrics saved to {metrics_file}")
        result['metrics_file'] = str(metrics_file)

        y_true_arr = np.asarray(y_true, dtype=float).ravel()
        y_pred_arr = np.asarray(y_pred, dtype=float).ravel()

        plot_actual_vs_predicted(
            y_true_arr, y_pred_arr,
            title=f"Actual vs Predicted ({label})",
            save_path=str(figures_dir / f"{label}_actual_vs_predicted.png")
        )
        result['figures'].append(f"{label}_actual_vs_predicted.png")

        plot_residuals(
            y_true_arr, y_pred_arr,
            title=f"Residual Analysis ({label})",
            save_path=str(figures_dir / f"{label}_residuals.png")
        )
        result['figures'].append(f"{label}_residuals.png")

        if show_plots:
            plt.show()
        else:
            plt.close('all')

    logger.info("=" * 60)
    logger.info(f"EVALUATION COMPLETE: {label}")
    logger.info(f"  RMSE: {metrics['rmse']:.6f}")
    logger.info(f"  MAE: {metrics['mae']:.6f}")
    logger.info(f"  R²: {metrics['r2']:.6f}")
    logger.info("=" * 60)

    return result


def print_evaluation_report(metrics_by_partition: Dict[str, Dict[str, float]]) -> None:
    """
    Print the metrics of each partition side by side.

    Args:
        metrics_by_partition: Mapping of partition name to calculate_metrics output
    """
    partitions = list(metrics_by_partition.keys())

    print("\n" + "=" * 70)
    print("MODEL EVALUATION REPORT")
    print("=" * 70)
    print(f"{'Metric':<16}" + "".join(f"{name:>18}" for name in partitions))
    print("-" * 70)

    for key, label in METRIC_LABELS.items():
        row = f"{label:<16}"
        for name in partitions:
            row += f"{metrics_by_partition[name][key]:>18.4f}"
        print(row)

    print("-" * 70)
    print(f"{'Samples':<16}" + "".join(
        f"{metrics_by_partition[name]['n_samples']:>18d}" for name in partitions
    ))

    if 'test' in metrics_by_partition:
        r2 = metrics_by_partition['test']['r2']
        print("\nInterpretation:")
        if r2 > 0.7:
            print("  ✓ Good holdout performance (R² > 0.7)")
        elif r2 > 0.0:
            print("  ⚠ Weak holdout performance (0 < R² <= 0.7)")
        else:
            print("  ✗ No better than predicting the mean (R² <= 0) - expected for a synthetic response")

    print("=" * 70 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    rng = np.random.default_rng(42)
    y_true = rng.normal(100000, 25000, 200)
    y_pred = y_true + rng.normal(0, 5000, 200)

    print("Testing evaluation module...")
    result = evaluate_model(y_true, y_pred, label="test", output_dir="reports/")
    print_evaluation_report({'test': result['metrics']})
