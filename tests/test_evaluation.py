"""
Test Suite for Evaluation Module
==================================
"""

import json

import pytest
import numpy as np

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from revenue_model.evaluation import calculate_metrics, evaluate_model


class TestCalculateMetrics:
    """Tests for calculate_metrics."""

    def test_known_values(self):
        y_true = np.array([100.0, 200.0, 300.0, 400.0])
        y_pred = np.array([110.0, 190.0, 330.0, 370.0])

        metrics = calculate_metrics(y_true, y_pred)

        assert metrics['mae'] == pytest.approx(20.0)
        assert metrics['relative_mae'] == pytest.approx(20.0 / 250.0)
        assert metrics['mape'] == pytest.approx((0.1 + 0.05 + 0.1 + 0.075) / 4 * 100)
        assert metrics['rmse'] == pytest.approx(np.sqrt((100 + 100 + 900 + 900) / 4))
        assert metrics['r2'] == pytest.approx(1 - 2000.0 / 50000.0)
        assert metrics['pearson_r'] == pytest.approx(np.corrcoef(y_true, y_pred)[0, 1])
        assert metrics['n_samples'] == 4

    def test_perfect_prediction(self):
        y = np.array([1.0, 2.0, 3.0])

        metrics = calculate_metrics(y, y)

        assert metrics['mae'] == 0
        assert metrics['rmse'] == 0
        assert metrics['r2'] == pytest.approx(1.0)
        assert metrics['pearson_r'] == pytest.approx(1.0)

    def test_bounds_on_random_data(self):
        rng = np.random.default_rng(42)
        y_true = rng.normal(100000, 25000, 500)
        y_pred = rng.normal(100000, 25000, 500)

        metrics = calculate_metrics(y_true, y_pred)

        assert metrics['mae'] >= 0
        assert metrics['rmse'] >= metrics['mae']
        assert metrics['r2'] <= 1
        assert -1 <= metrics['pearson_r'] <= 1

    def test_accepts_lists(self):
        metrics = calculate_metrics([1.0, 2.0, 4.0], [1.5, 2.0, 3.0])

        assert metrics['mae'] == pytest.approx(0.5)

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="same length"):
            calculate_metrics([1.0, 2.0], [1.0])

    def test_empty_input(self):
        with pytest.raises(ValueError, match="empty"):
            calculate_metrics([], [])


class TestEvaluateModel:
    """Tests for evaluate_model."""

    @pytest.fixture
    def sample_predictions(self):
        rng = np.random.default_rng(42)
        y_true = rng.normal(100000, 25000, 100)
        return y_true, y_true + rng.normal(0, 5000, 100)

    def test_writes_reports(self, sample_predictions, tmp_path):
        y_true, y_pred = sample_predictions

        result = evaluate_model(y_true, y_pred, label='test', output_dir=str(tmp_path))

        assert result['label'] == 'test'
        assert (tmp_path / 'metrics' / 'test_metrics.json').exists()
        for figure in result['figures']:
            assert (tmp_path / 'figures' / figure).exists()

        with open(result['metrics_file']) as f:
            saved = json.load(f)
        assert saved['rmse'] == pytest.approx(result['metrics']['rmse'])

    def test_no_output_dir(self, sample_predictions):
        y_true, y_pred = sample_predictions

        result = evaluate_model(y_true, y_pred, label='train', output_dir=None)

        assert result['metrics_file'] is None
        assert result['figures'] == []
        assert result['metrics']['n_samples'] == 100


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
