"""
Test Suite for Model Module
=============================

Tests for RevenueRegressionModel, the near-zero-variance filter and
train_model.
"""

import pytest
import numpy as np
import pandas as pd
import tempfile
import os

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from revenue_model.data_loader import flatten_to_centroids, synthesize_response
from revenue_model.evaluation import calculate_metrics
from revenue_model.model import NearZeroVarianceFilter, RevenueRegressionModel, train_model
from revenue_model.preprocessing import preprocess_pipeline
from revenue_model.synthetic import generate_districts


@pytest.fixture(scope="module")
def partitions():
    """Cleaned train/test partitions of synthetic districts."""
    df = synthesize_response(flatten_to_centroids(generate_districts(400, seed=21)))
    return preprocess_pipeline(df)


class TestNearZeroVarianceFilter:
    """Tests for the near-zero-variance filter."""

    @pytest.fixture
    def sample_matrix(self):
        rng = np.random.default_rng(42)
        rare = np.zeros(100)
        rare[0] = 1.0
        return np.column_stack([
            rng.normal(size=100),
            np.full(100, 3.0),
            rare,
            rng.integers(0, 2, 100).astype(float)
        ])

    def test_drops_constant_and_rare_columns(self, sample_matrix):
        nzv = NearZeroVarianceFilter().fit(sample_matrix)

        assert nzv.support_.tolist() == [True, False, False, True]
        assert nzv.transform(sample_matrix).shape == (100, 2)

    def test_feature_names(self, sample_matrix):
        nzv = NearZeroVarianceFilter().fit(sample_matrix)

        names = nzv.get_feature_names_out(['a', 'b', 'c', 'd'])

        assert list(names) == ['a', 'd']

    def test_lenient_cutoff_keeps_rare_column(self, sample_matrix):
        nzv = NearZeroVarianceFilter(freq_cut=200).fit(sample_matrix)

        assert nzv.support_.tolist() == [True, False, True, True]

    def test_transform_shape_mismatch(self, sample_matrix):
        nzv = NearZeroVarianceFilter().fit(sample_matrix)

        with pytest.raises(ValueError, match="Expected 4 features"):
            nzv.transform(sample_matrix[:, :3])


class TestRevenueRegressionModel:
    """Tests for RevenueRegressionModel class."""

    @pytest.fixture
    def model(self, partitions):
        return RevenueRegressionModel().fit(partitions['train'])

    def test_init(self):
        model = RevenueRegressionModel(preprocess=['scale', 'YeoJohnson', 'center', 'nzv'])

        assert model.response == 'revenue'
        assert model.steps_ == ['nzv', 'yeojohnson', 'center', 'scale']
        assert model._is_fitted == False

    def test_unknown_step(self):
        with pytest.raises(ValueError, match="Unknown preprocessing step"):
            RevenueRegressionModel(preprocess=['center', 'pca'])

    def test_fit(self, model, partitions):
        assert model._is_fitted == True
        assert model.response not in model.feature_columns
        assert set(model.categorical_columns) == {'MED_INCOME', 'MEDIAN_AGE'}
        assert model.training_info['n_samples'] == len(partitions['train'])

    def test_predict_shape(self, model, partitions):
        predictions = model.predict(partitions['test'])

        assert predictions.shape == (len(partitions['test']),)
        assert np.isfinite(predictions).all()

    def test_coefficients(self, model):
        coefs = model.get_coefficients()

        assert coefs.index[0] == '(Intercept)'
        assert 'MED_INCOME_low' in coefs.index
        assert 'MED_INCOME_very_low' not in coefs.index
        assert 'MEDIAN_AGE_older' in coefs.index
        assert 'HIGH_EDU' in coefs.index
        assert len(coefs) == model.training_info['n_design_columns'] + 1

    def test_training_metrics_are_sane(self, model, partitions):
        train = partitions['train']
        metrics = calculate_metrics(train['revenue'], model.predict(train))

        assert metrics['mae'] >= 0
        assert metrics['rmse'] >= 0
        assert metrics['r2'] <= 1
        # OLS with an intercept never does worse than the mean on its own training data
        assert metrics['r2'] >= 0

    def test_predict_before_fit(self, partitions):
        with pytest.raises(ValueError, match="must be trained"):
            RevenueRegressionModel().predict(partitions['test'])

    def test_missing_response(self, partitions):
        train = partitions['train'].drop(columns=['revenue'])

        with pytest.raises(ValueError, match="Response column"):
            RevenueRegressionModel().fit(train)

    def test_too_few_columns_after_preprocessing(self):
        rng = np.random.default_rng(0)
        train = pd.DataFrame({
            'signal': rng.normal(size=50),
            'constant': np.ones(50),
            'revenue': rng.normal(size=50)
        })

        with pytest.raises(ValueError, match="need at least 2"):
            RevenueRegressionModel().fit(train)

    def test_predict_missing_columns(self, model, partitions):
        test = partitions['test'].drop(columns=['POP_TOTAL', 'x'])

        with pytest.raises(ValueError, match="missing training columns"):
            model.predict(test)

    def test_predict_ignores_response_and_extra_columns(self, model, partitions):
        test = partitions['test']
        extra = test.drop(columns=['revenue']).assign(comment='new')

        np.testing.assert_array_equal(model.predict(test), model.predict(extra))

    def test_string_categories_match_categorical(self, model, partitions):
        test = partitions['test']
        as_strings = test.astype({'MED_INCOME': str, 'MEDIAN_AGE': str})

        np.testing.assert_allclose(model.predict(as_strings), model.predict(test))

    def test_refit_is_deterministic(self, model, partitions):
        other = RevenueRegressionModel().fit(partitions['train'])

        pd.testing.assert_series_equal(model.get_coefficients(), other.get_coefficients())

    def test_save_load(self, model, partitions):
        with tempfile.NamedTemporaryFile(suffix='.joblib', delete=False) as f:
            temp_path = f.name

        try:
            model.save(temp_path)
            loaded = RevenueRegressionModel.load(temp_path)

            assert loaded._is_fitted == True
            assert loaded.feature_columns == model.feature_columns
            np.testing.assert_array_equal(
                loaded.predict(partitions['test']),
                model.predict(partitions['test'])
            )
        finally:
            os.unlink(temp_path)

    def test_save_untrained(self):
        with pytest.raises(ValueError, match="untrained"):
            RevenueRegressionModel().save('unused.joblib')

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            RevenueRegressionModel.load(str(tmp_path / 'missing.joblib'))

    def test_without_nzv_step(self, partitions):
        model = RevenueRegressionModel(preprocess=['center', 'scale']).fit(partitions['train'])

        assert model.removed_columns() == []
        assert 'nzv' not in model.preprocessor.named_steps


class TestTrainModel:
    """Tests for the train_model function."""

    def test_uses_config(self, partitions, tmp_path):
        config = {
            'response': {'column': 'revenue'},
            'model': {'preprocess': ['center', 'scale', 'nzv'], 'fit_intercept': True}
        }
        save_path = tmp_path / 'models' / 'revenue_model.joblib'

        model = train_model(partitions['train'], config, save_path=str(save_path))

        assert model.steps_ == ['nzv', 'center', 'scale']
        assert save_path.exists()

    def test_cleaning_is_persisted(self, partitions, tmp_path):
        save_path = tmp_path / 'model.joblib'

        train_model(
            partitions['train'], {}, save_path=str(save_path),
            cleaning=partitions['cleaning']
        )
        loaded = RevenueRegressionModel.load(str(save_path))

        assert loaded.cleaning == partitions['cleaning']
        assert [rule['column'] for rule in loaded.cleaning['bins']] == ['MED_INCOME', 'MEDIAN_AGE']


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
