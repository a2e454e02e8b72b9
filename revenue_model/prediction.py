"""
Prediction Module - Phase 5
============================

Scores new tables with a persisted revenue model.

Features:
    - Load a saved model and score CSV or vector files
    - Export predictions to CSV
    - Prediction report generation
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime

import numpy as np
import pandas as pd

from .data_loader import load_shapefile, flatten_to_centroids, DEFAULT_CENTROID_CRS
from .model import RevenueRegressionModel
from .preprocessing import replay_cleaning

logger = logging.getLogger(__name__)

PREDICTION_COLUMN = "predicted_revenue"


def load_inference_table(
    file_path: str,
    centroid_crs: Optional[str] = DEFAULT_CENTROID_CRS,
    cleaning: Optional[Dict[str, Any]] = None
) -> pd.DataFrame:
    """
    Read a table to score.

    CSV files are taken to be in the cleaned training schema and read
    as-is. Any other extension is read with geopandas, flattened to
    centroids and, when ``cleaning`` is given, binned and flagged with the
    parameters learned at training time.
    """
    file_path = Path(file_path)

    if file_path.suffix.lower() == '.csv':
        if not file_path.exists():
            raise FileNotFoundError(f"Data file not found: {file_path}")
        df = pd.read_csv(file_path)
        logger.info(f"Loaded {len(df)} rows from {file_path}")
        return df

    df = flatten_to_centroids(load_shapefile(str(file_path)), centroid_crs=centroid_crs)
    if cleaning is not None:
        df = replay_cleaning(df, cleaning)
    return df


def predict_table(
    model: RevenueRegressionModel,
    df: pd.DataFrame,
    column: str = PREDICTION_COLUMN
) -> pd.DataFrame:
    """
    Return a copy of ``df`` with the model's predictions appended.

    Args:
        model: Trained model
        df: Table with the training feature columns
        column: Name of the prediction column

    Returns:
        Scored DataFrame
    """
    scored = df.copy()
    scored[column] = model.predict(df)
    return scored


def export_predictions(
    scored: pd.DataFrame,
    output_path: str,
    include_timestamp: bool = True
) -> str:
    """
    Export scored rows to a CSV file.

    Args:
        scored: Scored DataFrame
        output_path: Directory to save the file
        include_timestamp: Whether to add timestamp to filename

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.mkdir(parents=True, exist_ok=True)

    if include_timestamp:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"predictions_{timestamp}.csv"
    else:
        filename = "predictions.csv"

    filepath = output_path / filename
    scored.to_csv(filepath, index=False)

    logger.info(f"Predictions exported to {filepath}")
    return str(filepath)


def generate_prediction_report(
    predictions: np.ndarray,
    model: RevenueRegressionModel,
    model_path: Optional[str] = None,
    output_path: Optional[str] = None
) -> Dict[str, Any]:
    """
    Summarize a batch of predictions.

    Args:
        predictions: Predicted values
        model: Model that produced them
        model_path: Path the model was loaded from (optional)
        output_path: Path to save the report as JSON (optional)

    Returns:
        Report dictionary
    """
    predictions = np.asarray(predictions, dtype=float)

    report = {
        'generated_at': datetime.now().isoformat(),
        'model_path': model_path,
        'model_trained_at': model.training_info.get('trained_at'),
        'response': model.response,
        'summary': {
            'n_predictions': int(len(predictions)),
            'mean': float(np.mean(predictions)) if len(predictions) else None,
            'std': float(np.std(predictions)) if len(predictions) else None,
            'min': float(np.min(predictions)) if len(predictions) else None,
            'max': float(np.max(predictions)) if len(predictions) else None
        }
    }

    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w') as f:
            json.dump(report, f, indent=2)
        logger.info(f"Prediction report saved to {output_path}")

    return report


def run_inference(
    model_path: str,
    data_path: str,
    output_dir: str = "data/predictions/",
    centroid_crs: Optional[str] = DEFAULT_CENTROID_CRS,
    include_timestamp: bool = True
) -> Dict[str, Any]:
    """
    Execute the complete scoring workflow.

    This function:
    1. Loads the persisted model
    2. Reads the table to score
    3. Generates predictions
    4. Exports the scored rows and a JSON report

    Args:
        model_path: Path to the saved model
        data_path: Cleaned CSV, or a raw district vector file
        output_dir: Directory for output files
        centroid_crs: CRS used when flattening vector input
        include_timestamp: Whether the CSV file name carries a timestamp

    Returns:
        Dictionary containing predictions and file paths
    """
    logger.info("=" * 60)
    logger.info("STARTING PREDICTION (Phase 5)")
    logger.info("=" * 60)

    model = RevenueRegressionModel.load(model_path)
    df = load_inference_table(data_path, centroid_crs=centroid_crs, cleaning=model.cleaning)

    scored = predict_table(model, df)
    csv_path = export_predictions(scored, output_dir, include_timestamp=include_timestamp)

    report_path = Path(output_dir) / "prediction_report.json"
    report = generate_prediction_report(
        scored[PREDICTION_COLUMN].to_numpy(), model,
        model_path=model_path,
        output_path=str(report_path)
    )

    result = {
        'predictions': scored[PREDICTION_COLUMN].to_numpy(),
        'scored': scored,
        'csv_path': csv_path,
        'report_path': str(report_path),
        'report': report
    }

    logger.info("=" * 60)
    logger.info("PREDICTION COMPLETE")
    logger.info(f"  Rows scored: {len(scored)}")
    logger.info(f"  Output: {csv_path}")
    logger.info("=" * 60)

    return result


def print_prediction_results(result: Dict[str, Any], n_rows: int = 10) -> None:
    """
    Print formatted prediction results to console.

    Args:
        result: Result dictionary from run_inference
        n_rows: Number of rows to show
    """
    summary = result['report']['summary']

    print("\n" + "=" * 70)
    print("PREDICTION RESULTS")
    print("=" * 70)
    print(f"Rows scored: {summary['n_predictions']}")
    if summary['n_predictions']:
        print(f"Mean prediction: {summary['mean']:.2f}")
        print(f"Range: {summary['min']:.2f} - {summary['max']:.2f}")

    print(f"\nFirst {n_rows} predictions:")
    print("-" * 70)
    for i, value in enumerate(result['predictions'][:n_rows]):
        print(f"  {i:<6} {value:>15.2f}")

    print("-" * 70)
    print(f"\nPredictions exported to: {result['csv_path']}")
    print(f"Full report saved to: {result['report_path']}")
    print("=" * 70 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    print("Prediction module loaded successfully.")
    print("This module requires a trained model to run.")
    print("Use the main.py pipeline script to execute the full workflow.")
