#!/usr/bin/env python3
"""
District Revenue Model - Main Pipeline
=======================================

Orchestrates the training pipeline for the district revenue regression.

Phases:
    1. EDA - Exploratory Data Analysis
    2. Preprocessing - Collinearity filter, binning, flags, train/test split
    3. Training - OLS with center/scale/nzv/Yeo-Johnson preprocessing
    4. Evaluation - Training and holdout error metrics
    5. Prediction - Score a table with the saved model

Usage:
    # Run complete pipeline
    python main.py --data data/raw/districts.shp

    # Create a synthetic shapefile first, then run everything
    python main.py --data data/raw/districts.shp --generate-demo

    # Run specific phase
    python main.py --data data/raw/districts.shp --phase eda

    # Run with custom config
    python main.py --data data/raw/districts.shp --config config/config.yaml
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional

import pandas as pd

from revenue_model.data_loader import load_config, load_district_data, validate_data, print_data_summary
from revenue_model.eda import generate_eda_report, print_correlation_insights
from revenue_model.preprocessing import preprocess_pipeline, print_preprocessing_summary
from revenue_model.model import train_model, print_model_summary, RevenueRegressionModel
from revenue_model.evaluation import evaluate_model, print_evaluation_report
from revenue_model.prediction import run_inference, print_prediction_results
from revenue_model.synthetic import generate_districts, write_districts

DEFAULT_DATA_PATH = 'data/raw/districts.shp'


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the pipeline."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(f'pipeline_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')
        ]
    )


def run_eda(df: pd.DataFrame, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 1: Exploratory Data Analysis.

    Args:
        df: Flattened district table
        config: Configuration dictionary

    Returns:
        EDA report dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 1: EXPLORATORY DATA ANALYSIS")
    print("=" * 70)

    output_dir = config.get('output', {}).get('figures_path', 'reports/figures/')
    response = config.get('response', {}).get('column', 'revenue')

    report = generate_eda_report(df, response=response, output_dir=output_dir, show_plots=False)

    corr_df = pd.DataFrame(report["correlation_matrix"])
    print_correlation_insights(corr_df, response=response)

    print(f"\n✓ EDA complete. {len(report['figures'])} figures saved to {output_dir}")

    return report


def run_preprocessing(
    df: pd.DataFrame,
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 2: Data Preprocessing.

    The cleaned partitions are also written to the processed data folder
    so the prediction phase can score the holdout rows.

    Args:
        df: Flattened district table
        config: Configuration dictionary

    Returns:
        Preprocessing result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 2: DATA PREPROCESSING")
    print("=" * 70)

    result = preprocess_pipeline(df, config)

    processed_dir = Path(config.get('data', {}).get('processed_path', 'data/processed/'))
    processed_dir.mkdir(parents=True, exist_ok=True)
    result['train'].to_csv(processed_dir / 'train.csv', index=False)
    result['test'].to_csv(processed_dir / 'test.csv', index=False)
    result['test_path'] = str(processed_dir / 'test.csv')

    print_preprocessing_summary(result)

    return result


def run_training(
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> RevenueRegressionModel:
    """
    Execute Phase 3: Model Training.

    Args:
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Trained model
    """
    print("\n" + "=" * 70)
    print("PHASE 3: MODEL TRAINING")
    print("=" * 70)

    model_path = config.get('output', {}).get('model_path', 'models/revenue_model.joblib')

    model = train_model(
        prep_result['train'], config,
        save_path=model_path,
        cleaning=prep_result['cleaning']
    )

    print_model_summary(model)
    print(f"✓ Model saved to {model_path}")

    return model


def run_evaluation(
    model: RevenueRegressionModel,
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 4: Model Evaluation on the training and holdout partitions.

    Args:
        model: Trained model
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Evaluation results keyed by partition
    """
    print("\n" + "=" * 70)
    print("PHASE 4: MODEL EVALUATION")
    print("=" * 70)

    output_dir = config.get('output', {}).get('reports_path', 'reports/')
    response = prep_result['response']

    results = {}
    for label in ('train', 'test'):
        partition = prep_result[label]
        results[label] = evaluate_model(
            partition[response],
            model.predict(partition),
            label=label,
            output_dir=output_dir,
            show_plots=False
        )

    print_evaluation_report({label: r['metrics'] for label, r in results.items()})

    return results


def run_prediction_phase(
    config: Dict[str, Any],
    data_path: Optional[str] = None
) -> Dict[str, Any]:
    """
    Execute Phase 5: score a table with the saved model.

    Args:
        config: Configuration dictionary
        data_path: Table to score (default: the processed holdout partition)

    Returns:
        Prediction result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 5: PREDICTION")
    print("=" * 70)

    data_config = config.get('data', {})
    model_path = config.get('output', {}).get('model_path', 'models/revenue_model.joblib')

    if data_path is None:
        data_path = str(Path(data_config.get('processed_path', 'data/processed/')) / 'test.csv')

    result = run_inference(
        model_path,
        data_path,
        output_dir=data_config.get('predictions_path', 'data/predictions/'),
        centroid_crs=data_config.get('centroid_crs', 'EPSG:5070')
    )

    print_prediction_results(result)

    return result


def run_full_pipeline(
    data_path: str,
    config_path: str = "config/config.yaml",
    log_level: Optional[str] = None
) -> Dict[str, Any]:
    """
    Execute the complete 5-phase pipeline.

    Args:
        data_path: Path to the district shapefile
        config_path: Path to configuration file
        log_level: Overrides the configured logging level

    Returns:
        Dictionary containing all phase results
    """
    print("\n" + "=" * 70)
    print("DISTRICT REVENUE PIPELINE")
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    config = load_config(config_path)
    setup_logging(log_level or config.get('logging', {}).get('level', 'INFO'))

    print("\n📊 Loading data...")
    df = load_district_data(data_path, config)
    print_data_summary(df)

    is_valid, validation_report = validate_data(df, strict=False)
    if not is_valid:
        print("⚠️  Data validation warnings detected. Proceeding anyway...")

    results = {
        'config': config,
        'data_shape': df.shape
    }

    # Phase 1: EDA
    results['eda'] = run_eda(df, config)

    # Phase 2: Preprocessing
    results['preprocessing'] = run_preprocessing(df, config)

    # Phase 3: Training
    results['model'] = run_training(results['preprocessing'], config)

    # Phase 4: Evaluation
    results['evaluation'] = run_evaluation(
        results['model'],
        results['preprocessing'],
        config
    )

    # Phase 5: Prediction
    results['prediction'] = run_prediction_phase(
        config, results['preprocessing']['test_path']
    )

    test_metrics = results['evaluation']['test']['metrics']

    print("\n" + "=" * 70)
    print("PIPELINE COMPLETE")
    print("=" * 70)
    print(f"  • Input data: {df.shape[0]} rows × {df.shape[1]} columns")
    print(f"  • Holdout R²: {test_metrics['r2']:.4f}")
    print(f"  • Holdout RMSE: {test_metrics['rmse']:.2f}")
    print(f"  • Model: {config.get('output', {}).get('model_path', 'models/revenue_model.joblib')}")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return results


def run_single_phase(
    phase: str,
    data_path: Optional[str],
    config_path: str = "config/config.yaml",
    log_level: Optional[str] = None
) -> Dict[str, Any]:
    """
    Execute a single phase of the pipeline.

    Args:
        phase: Phase to run ('eda', 'preprocess', 'train', 'evaluate', 'predict')
        data_path: Path to the district shapefile; for 'predict', the table to score
            (None scores the processed holdout CSV)
        config_path: Path to configuration file
        log_level: Overrides the configured logging level

    Returns:
        Phase result dictionary
    """
    config = load_config(config_path)
    setup_logging(log_level or config.get('logging', {}).get('level', 'INFO'))

    if phase == 'predict':
        return run_prediction_phase(config, data_path)

    df = load_district_data(data_path, config)

    if phase == 'eda':
        return run_eda(df, config)

    elif phase == 'preprocess':
        return run_preprocessing(df, config)

    elif phase == 'train':
        prep_result = run_preprocessing(df, config)
        return {'model': run_training(prep_result, config), 'preprocessing': prep_result}

    elif phase == 'evaluate':
        prep_result = run_preprocessing(df, config)
        model = run_training(prep_result, config)
        return run_evaluation(model, prep_result, config)

    else:
        raise ValueError(f"Unknown phase: {phase}. Choose from: eda, preprocess, train, evaluate, predict")


def main():
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="District Revenue Model Training Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --data data/raw/districts.shp --generate-demo
  python main.py --data data/raw/districts.shp --phase eda
  python main.py --phase predict
  python main.py --data data/raw/districts.shp --phase predict
        """
    )

    parser.add_argument(
        '--data', '-d',
        type=str,
        default=None,
        help=(f'District shapefile (default: {DEFAULT_DATA_PATH}); for --phase predict, '
              'the table to score (default: the processed holdout CSV)')
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--phase', '-p',
        type=str,
        choices=['eda', 'preprocess', 'train', 'evaluate', 'predict', 'all'],
        default='all',
        help='Phase to run (default: all)'
    )

    parser.add_argument(
        '--generate-demo',
        action='store_true',
        help='Write a synthetic district shapefile to --data before running'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    args = parser.parse_args()
    log_level = 'DEBUG' if args.verbose else None

    # predict falls back to the processed holdout CSV when no table is named
    data_path = args.data
    if data_path is None and (args.phase != 'predict' or args.generate_demo):
        data_path = DEFAULT_DATA_PATH

    if args.generate_demo:
        write_districts(generate_districts(), data_path)
        print(f"Synthetic districts written to {data_path}")

    if data_path is not None and not Path(data_path).exists():
        print(f"Error: Data file not found: {data_path}")
        print("\nPlace the district shapefile bundle (.shp, .shx, .dbf, .prj) there,")
        print("or pass --generate-demo to create a synthetic one.")
        sys.exit(1)

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        sys.exit(1)

    try:
        if args.phase == 'all':
            run_full_pipeline(data_path, args.config, log_level)
        else:
            run_single_phase(args.phase, data_path, args.config, log_level)

        return 0

    except Exception as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
