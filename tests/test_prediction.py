"""
Test Suite for Prediction Module
==================================
"""

import json

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from revenue_model.data_loader import load_shapefile, flatten_to_centroids, synthesize_response
from revenue_model.model import RevenueRegressionModel, train_model
from revenue_model.prediction import (
    PREDICTION_COLUMN,
    load_inference_table,
    predict_table,
    export_predictions,
    run_inference,
)
from revenue_model.preprocessing import preprocess_pipeline
from revenue_model.synthetic import generate_districts, write_districts


@pytest.fixture(scope="module")
def fitted():
    """Trained model plus the holdout partition it never saw."""
    df = synthesize_response(flatten_to_centroids(generate_districts(300, seed=5)))
    result = preprocess_pipeline(df)
    model = RevenueRegressionModel().fit(result['train'])
    return model, result['test']


class TestPredictTable:
    """Tests for predict_table and export_predictions."""

    def test_appends_predictions(self, fitted):
        model, test = fitted

        scored = predict_table(model, test)

        assert PREDICTION_COLUMN in scored.columns
        assert PREDICTION_COLUMN not in test.columns
        np.testing.assert_array_equal(scored[PREDICTION_COLUMN].to_numpy(), model.predict(test))

    def test_export_without_timestamp(self, fitted, tmp_path):
        model, test = fitted
        scored = predict_table(model, test)

        path = export_predictions(scored, str(tmp_path), include_timestamp=False)

        assert Path(path).name == 'predictions.csv'
        assert len(pd.read_csv(path)) == len(test)


class TestRunInference:
    """Tests for the complete scoring workflow."""

    def test_csv_round_trip(self, fitted, tmp_path):
        model, test = fitted
        model_path = tmp_path / 'model.joblib'
        data_path = tmp_path / 'test.csv'
        model.save(str(model_path))
        test.to_csv(data_path, index=False)

        result = run_inference(
            str(model_path), str(data_path),
            output_dir=str(tmp_path / 'predictions'),
            include_timestamp=False
        )

        np.testing.assert_allclose(result['predictions'], model.predict(test))
        assert Path(result['csv_path']).exists()

        with open(result['report_path']) as f:
            report = json.load(f)
        assert report['summary']['n_predictions'] == len(test)
        assert report['response'] == 'revenue'

    def test_missing_table(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_inference_table(str(tmp_path / 'missing.csv'))

    def test_missing_model(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            run_inference(str(tmp_path / 'missing.joblib'), str(tmp_path / 'test.csv'))

    def test_raw_shapefile(self, tmp_path):
        districts = generate_districts(150, seed=9)
        shapefile = write_districts(districts, str(tmp_path / 'districts.shp'))
        table = flatten_to_centroids(load_shapefile(shapefile))
        result = preprocess_pipeline(synthesize_response(table))
        model_path = tmp_path / 'model.joblib'
        model = train_model(
            result['train'], {}, save_path=str(model_path), cleaning=result['cleaning']
        )

        scored = run_inference(
            str(model_path), shapefile,
            output_dir=str(tmp_path / 'predictions'),
            include_timestamp=False
        )

        assert len(scored['predictions']) == len(districts)
        assert np.isfinite(scored['predictions']).all()
        test_rows = scored['scored'].loc[result['test_index']]
        np.testing.assert_allclose(
            test_rows[PREDICTION_COLUMN].to_numpy(), model.predict(result['test'])
        )

    def test_raw_shapefile_without_cleaning(self, tmp_path):
        shapefile = write_districts(generate_districts(20), str(tmp_path / 'districts.shp'))

        df = load_inference_table(shapefile)

        assert 'EDU_BACH' in df.columns
        assert 'HIGH_EDU' not in df.columns


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
