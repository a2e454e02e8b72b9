"""
Model Training Module - Phase 3
================================

Ordinary least squares regression wrapped with a declarative preprocessing
recipe.

Features:
    - Treatment coding of ordered categorical columns, 0/1 booleans
    - Near-zero-variance filtering, Yeo-Johnson transform, centering, scaling
    - Preprocessing parameters learned from the training data only
    - Model persistence (save/load)
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, List, Sequence
from datetime import datetime

import numpy as np
import pandas as pd
import joblib
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.compose import ColumnTransformer
from sklearn.linear_model import LinearRegression
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder, PowerTransformer, StandardScaler
from sklearn.utils.validation import check_is_fitted

logger = logging.getLogger(__name__)

# Steps run in this order whatever order they are listed in
STEP_ORDER = ['nzv', 'yeojohnson', 'center', 'scale']
DEFAULT_STEPS = ['center', 'scale', 'nzv', 'YeoJohnson']


def _is_near_zero_variance(
    values: np.ndarray,
    freq_cut: float,
    unique_cut: float
) -> bool:
    values = values[~np.isnan(values)]
    uniques, counts = np.unique(values, return_counts=True)
    if len(uniques) <= 1:
        return True

    counts = np.sort(counts)[::-1]
    freq_ratio = counts[0] / counts[1]
    percent_unique = 100.0 * len(uniques) / len(values)
    return freq_ratio > freq_cut and percent_unique <= unique_cut


class NearZeroVarianceFilter(BaseEstimator, TransformerMixin):
    """
    Drop columns that are constant or nearly constant.

    A column is dropped when it has a single distinct value, or when the
    ratio of its most common to second most common value exceeds
    ``freq_cut`` and its distinct values make up at most ``unique_cut``
    percent of the rows.
    """

    def __init__(self, freq_cut: float = 95 / 5, unique_cut: float = 10.0):
        self.freq_cut = freq_cut
        self.unique_cut = unique_cut

    def fit(self, X, y=None):
        X = np.asarray(X, dtype=float)
        self.n_features_in_ = X.shape[1]
        self.support_ = np.array([
            not _is_near_zero_variance(X[:, j], self.freq_cut, self.unique_cut)
            for j in range(X.shape[1])
        ], dtype=bool)
        return self

    def transform(self, X):
        check_is_fitted(self, 'support_')
        X = np.asarray(X, dtype=float)
        if X.shape[1] != self.n_features_in_:
            raise ValueError(
                f"Expected {self.n_features_in_} features, but got {X.shape[1]}"
            )
        return X[:, self.support_]

    def get_feature_names_out(self, input_features=None):
        check_is_fitted(self, 'support_')
        if input_features is None:
            input_features = [f"x{i}" for i in range(self.n_features_in_)]
        return np.asarray(input_features, dtype=object)[self.support_]


def _normalize_steps(steps: Sequence[str]) -> List[str]:
    normalized = []
    for step in steps:
        key = step.replace('-', '').replace('_', '').lower()
        if key not in STEP_ORDER:
            raise ValueError(
                f"Unknown preprocessing step '{step}'. "
                f"Choose from: center, scale, nzv, YeoJohnson"
            )
        normalized.append(key)
    return [step for step in STEP_ORDER if step in normalized]


class RevenueRegressionModel:
    """
    OLS regression of the response on the district features.

    The preprocessing recipe is fitted on the training table and replayed
    on every table passed to ``predict``.
    """

    def __init__(
        self,
        response: str = "revenue",
        preprocess: Sequence[str] = tuple(DEFAULT_STEPS),
        freq_cut: float = 95 / 5,
        unique_cut: float = 10.0,
        fit_intercept: bool = True
    ):
        """
        Initialize the model.

        Args:
            response: Name of the response column
            preprocess: Preprocessing steps (center, scale, nzv, YeoJohnson)
            freq_cut: Near-zero-variance frequency ratio cut-off
            unique_cut: Near-zero-variance percent-unique cut-off
            fit_intercept: Whether the OLS fit includes an intercept
        """
        self.response = response
        self.preprocess = list(preprocess)
        self.freq_cut = freq_cut
        self.unique_cut = unique_cut
        self.fit_intercept = fit_intercept

        self.steps_ = _normalize_steps(self.preprocess)
        self.preprocessor: Optional[Pipeline] = None
        self.regressor: Optional[LinearRegression] = None
        self.feature_columns: Optional[List[str]] = None
        self.categorical_columns: Optional[List[str]] = None
        self.cleaning: Optional[Dict[str, Any]] = None
        self.training_info: Dict[str, Any] = {}
        self._is_fitted = False

    def _prepare_features(self, df: pd.DataFrame) -> pd.DataFrame:
        missing = [col for col in self.feature_columns if col not in df.columns]
        if missing:
            raise ValueError(f"Input is missing training columns: {missing}")

        X = df[self.feature_columns].copy()
        for col in X.columns:
            if X[col].dtype == bool:
                X[col] = X[col].astype(float)
        return X

    def _build_preprocessor(self, X: pd.DataFrame) -> Pipeline:
        categories = []
        for col in self.categorical_columns:
            if isinstance(X[col].dtype, pd.CategoricalDtype):
                categories.append(list(X[col].cat.categories))
            else:
                categories.append(sorted(X[col].dropna().unique()))

        numeric_columns = [c for c in X.columns if c not in self.categorical_columns]
        encoder = ColumnTransformer(
            [
                ('categorical',
                 OneHotEncoder(categories=categories, drop='first', sparse_output=False),
                 self.categorical_columns),
                ('numeric', 'passthrough', numeric_columns),
            ],
            verbose_feature_names_out=False
        )

        steps = [('encode', encoder)]
        if 'nzv' in self.steps_:
            steps.append(('nzv', NearZeroVarianceFilter(self.freq_cut, self.unique_cut)))
        if 'yeojohnson' in self.steps_:
            steps.append(('yeojohnson', PowerTransformer(method='yeo-johnson', standardize=False)))
        if 'center' in self.steps_ or 'scale' in self.steps_:
            steps.append(('standardize', StandardScaler(
                with_mean='center' in self.steps_,
                with_std='scale' in self.steps_
            )))

        return Pipeline(steps)

    def fit(self, train: pd.DataFrame) -> 'RevenueRegressionModel':
        """
        Fit preprocessing and regression on the training table.

        Args:
            train: Training table including the response column

        Returns:
            Self for method chaining
        """
        if self.response not in train.columns:
            raise ValueError(f"Response column '{self.response}' not found in training data")

        start_time = datetime.now()

        logger.info("=" * 60)
        logger.info("STARTING MODEL TRAINING (Phase 3)")
        logger.info("=" * 60)
        logger.info(f"Training data shape: {train.shape}")
        logger.info(f"Preprocessing steps: {self.steps_}")

        self.feature_columns = [c for c in train.columns if c != self.response]
        self.categorical_columns = [
            c for c in self.feature_columns
            if isinstance(train[c].dtype, pd.CategoricalDtype) or train[c].dtype == object
        ]

        X = self._prepare_features(train)
        y = train[self.response].to_numpy(dtype=float)

        self.preprocessor = self._build_preprocessor(X)
        X_design = self.preprocessor.fit_transform(X)

        if X_design.shape[1] < 2:
            raise ValueError(
                f"Only {X_design.shape[1]} column(s) left after preprocessing; need at least 2"
            )

        self.regressor = LinearRegression(fit_intercept=self.fit_intercept)
        self.regressor.fit(X_design, y)

        end_time = datetime.now()
        training_duration = (end_time - start_time).total_seconds()

        self.training_info = {
            'training_duration_seconds': training_duration,
            'n_samples': int(X_design.shape[0]),
            'n_input_columns': len(self.feature_columns),
            'n_design_columns': int(X_design.shape[1]),
            'removed_near_zero_variance': self.removed_columns(),
            'trained_at': end_time.isoformat(),
            'preprocess': self.steps_
        }

        self._is_fitted = True

        logger.info("=" * 60)
        logger.info(f"MODEL TRAINING COMPLETE in {training_duration:.2f} seconds")
        logger.info("=" * 60)

        return self

    def predict(self, new_data: pd.DataFrame) -> np.ndarray:
        """
        Predict the response for every row of ``new_data``.

        Args:
            new_data: Table with the training feature columns

        Returns:
            Predictions array of shape (n_rows,)
        """
        if not self._is_fitted:
            raise ValueError("Model must be trained before prediction. Call fit() first.")

        X = self._prepare_features(new_data)
        return self.regressor.predict(self.preprocessor.transform(X))

    def removed_columns(self) -> List[str]:
        """Design columns dropped by the near-zero-variance filter."""
        if 'nzv' not in self.preprocessor.named_steps:
            return []
        encoded = self.preprocessor.named_steps['encode'].get_feature_names_out()
        support = self.preprocessor.named_steps['nzv'].support_
        return [str(name) for name, keep in zip(encoded, support) if not keep]

    def get_coefficients(self) -> pd.Series:
        """
        Regression coefficients keyed by design column, intercept first.

        Coefficients are on the preprocessed (transformed/scaled) scale.
        """
        if not self._is_fitted:
            raise ValueError("Model must be trained first.")

        names = [str(n) for n in self.preprocessor.get_feature_names_out()]
        coefs = pd.Series(self.regressor.coef_, index=names)
        intercept = pd.Series([float(self.regressor.intercept_)], index=['(Intercept)'])
        return pd.concat([intercept, coefs])

    def save(self, filepath: str) -> None:
        """
        Save the trained model to disk.

        Args:
            filepath: Path to save the model
        """
        if not self._is_fitted:
            raise ValueError("Cannot save untrained model.")

        state = {
            'preprocessor': self.preprocessor,
            'regressor': self.regressor,
            'hyperparameters': {
                'response': self.response,
                'preprocess': self.preprocess,
                'freq_cut': self.freq_cut,
                'unique_cut': self.unique_cut,
                'fit_intercept': self.fit_intercept
            },
            'feature_columns': self.feature_columns,
            'categorical_columns': self.categorical_columns,
            'cleaning': self.cleaning,
            'training_info': self.training_info,
            '_is_fitted': self._is_fitted
        }

        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"Model saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'RevenueRegressionModel':
        """
        Load a trained model from disk.

        Args:
            filepath: Path to the saved model

        Returns:
            Loaded RevenueRegressionModel instance
        """
        if not Path(filepath).exists():
            raise FileNotFoundError(f"Model file not found: {filepath}")

        state = joblib.load(filepath)

        model = cls(**state['hyperparameters'])
        model.preprocessor = state['preprocessor']
        model.regressor = state['regressor']
        model.feature_columns = state['feature_columns']
        model.categorical_columns = state['categorical_columns']
        model.cleaning = state.get('cleaning')
        model.training_info = state['training_info']
        model._is_fitted = state['_is_fitted']

        logger.info(f"Model loaded from {filepath}")
        return model


def train_model(
    train: pd.DataFrame,
    config: Dict[str, Any],
    save_path: Optional[str] = None,
    cleaning: Optional[Dict[str, Any]] = None
) -> RevenueRegressionModel:
    """
    Train a model using configuration parameters.

    Args:
        train: Training table including the response
        config: Configuration dictionary
        save_path: Path to save the trained model (optional)
        cleaning: Table cleaning parameters from preprocess_pipeline,
            stored with the model so raw tables can be scored

    Returns:
        Trained RevenueRegressionModel
    """
    model_config = config.get('model', {})

    model = RevenueRegressionModel(
        response=config.get('response', {}).get('column', 'revenue'),
        preprocess=model_config.get('preprocess', DEFAULT_STEPS),
        freq_cut=model_config.get('freq_cut', 95 / 5),
        unique_cut=model_config.get('unique_cut', 10.0),
        fit_intercept=model_config.get('fit_intercept', True)
    )

    model.fit(train)
    model.cleaning = cleaning

    if save_path:
        model.save(save_path)

    return model


def print_model_summary(model: RevenueRegressionModel) -> None:
    """
    Print the coefficient list and training details.

    Args:
        model: Trained model instance
    """
    print("\n" + "=" * 50)
    print("MODEL SUMMARY")
    print("=" * 50)
    print("Model Type: LinearRegression (ordinary least squares)")
    print(f"Response: {model.response}")
    print(f"Preprocessing: {', '.join(model.steps_)}")
    print(f"Input columns: {len(model.feature_columns)}")

    removed = model.training_info.get('removed_near_zero_variance', [])
    print(f"Near-zero-variance columns removed: {len(removed)}")
    for col in removed:
        print(f"  - {col}")

    print("\nCoefficients:")
    for name, value in model.get_coefficients().items():
        print(f"  {name:<24} {value:>14.4f}")

    if model.training_info:
        print("\nTraining Info:")
        print(f"  - Duration: {model.training_info.get('training_duration_seconds', 0.0):.2f}s")
        print(f"  - Samples: {model.training_info.get('n_samples', 'N/A')}")

    print("=" * 50 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    rng = np.random.default_rng(42)
    n_samples = 300
    train = pd.DataFrame({
        'x': rng.normal(-95, 10, n_samples),
        'y': rng.normal(38, 5, n_samples),
        'POP_TOTAL': rng.integers(600000, 840000, n_samples),
        'SIZE': pd.Categorical(rng.choice(['small', 'medium', 'large'], n_samples),
                               categories=['small', 'medium', 'large'], ordered=True),
        'FLAG': rng.random(n_samples) > 0.5,
        'revenue': rng.normal(100000, 25000, n_samples)
    })

    print("Testing model training...")
    model = train_model(train, {'model': {}})
    print_model_summary(model)

    predictions = model.predict(train.head(10))
    print(f"Predictions shape: {predictions.shape}")
