"""
Projection Regression Module
============================

Principal-components regression (PCR) and partial least squares (PLS).

Both standardize predictors inside a scikit-learn Pipeline, so scaling
statistics always come from the rows the pipeline is fitted on. The number
of components is chosen by k-fold cross-validated MSE, with ties broken
toward fewer components.
"""

import logging
from typing import Dict, Any, Optional

import numpy as np
import pandas as pd
from sklearn.cross_decomposition import PLSRegression
from sklearn.decomposition import PCA
from sklearn.linear_model import LinearRegression
from sklearn.metrics import mean_squared_error
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from .preprocessing import assign_folds, draw_train_mask

logger = logging.getLogger(__name__)

PROJECTION_METHODS = ("pcr", "pls")


class ProjectionRegressor:
    """
    Regression on M latent components of the standardized predictors.

    PCR uses unsupervised principal components; PLS uses components
    that maximise covariance with the target.
    """

    def __init__(self, method: str = "pcr", n_components: int = 1):
        if method not in PROJECTION_METHODS:
            raise ValueError(f"Unknown projection method: {method}. Choose from: {PROJECTION_METHODS}")
        if n_components < 1:
            raise ValueError(f"n_components must be at least 1, got {n_components}")
        self.method = method
        self.n_components = n_components

        self.pipeline: Optional[Pipeline] = None
        self.feature_names_ = None
        self._is_fitted = False

    def _build_pipeline(self) -> Pipeline:
        if self.method == "pcr":
            return Pipeline([
                ('scaler', StandardScaler()),
                ('pca', PCA(n_components=self.n_components)),
                ('ols', LinearRegression()),
            ])
        return Pipeline([
            ('scaler', StandardScaler()),
            ('pls', PLSRegression(n_components=self.n_components, scale=False)),
        ])

    def fit(self, X: pd.DataFrame, y) -> 'ProjectionRegressor':
        """
        Fit the pipeline.

        Raises:
            ValueError: If n_components exceeds the number of predictors
        """
        n, p = X.shape
        if self.n_components > min(p, n - 1):
            raise ValueError(
                f"n_components ({self.n_components}) must lie in [1, {min(p, n - 1)}]"
            )
        self.feature_names_ = list(X.columns)
        self.pipeline = self._build_pipeline()
        self.pipeline.fit(X.to_numpy(dtype=float), np.asarray(y, dtype=float))
        self._is_fitted = True
        return self

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        if not self._is_fitted:
            raise ValueError("Model must be trained before prediction. Call fit() first.")
        return np.ravel(self.pipeline.predict(X[self.feature_names_].to_numpy(dtype=float)))


def cross_validate_components(
    X: pd.DataFrame,
    y: pd.Series,
    folds: np.ndarray,
    method: str,
    max_components: Optional[int] = None
) -> pd.DataFrame:
    """
    k-fold cross-validated MSE for M = 1..max_components.

    Returns:
        DataFrame indexed by n_components with cv_mse and cv_se columns
    """
    y = np.asarray(y, dtype=float)
    folds = np.asarray(folds)
    fold_labels = np.unique(folds)

    smallest_train = min(int((folds != f).sum()) for f in fold_labels)
    limit = min(X.shape[1], smallest_train - 1)
    max_components = limit if max_components is None else min(max_components, limit)
    if max_components < 1:
        raise ValueError(f"max_components must be at least 1, got {max_components}")

    components = np.arange(1, max_components + 1)
    fold_mse = np.zeros((len(fold_labels), len(components)))
    fold_sizes = np.zeros(len(fold_labels))

    for i, fold in enumerate(fold_labels):
        held_out = folds == fold
        for j, m in enumerate(components):
            model = ProjectionRegressor(method=method, n_components=int(m))
            model.fit(X[~held_out], y[~held_out])
            fold_mse[i, j] = mean_squared_error(y[held_out], model.predict(X[held_out]))
        fold_sizes[i] = held_out.sum()

    curve = pd.DataFrame({
        'cv_mse': np.average(fold_mse, axis=0, weights=fold_sizes),
        'cv_se': fold_mse.std(axis=0, ddof=1) / np.sqrt(len(fold_labels)),
    }, index=pd.Index(components, name="n_components"))
    return curve


def select_n_components(curve: pd.DataFrame) -> int:
    """Component count with minimum CV error; ties go to fewer components."""
    errors = curve['cv_mse'].sort_index()
    ties = errors.index[errors.to_numpy() == errors.min()]
    return int(ties[0])


def components_to_reach(curve: pd.DataFrame, threshold: float) -> Optional[int]:
    """Fewest components whose CV error is at or below `threshold`, or None."""
    reached = curve.index[curve['cv_mse'].to_numpy() <= threshold]
    return int(reached.min()) if len(reached) else None


def explained_variance(
    X: pd.DataFrame,
    y,
    method: str,
    max_components: Optional[int] = None
) -> pd.DataFrame:
    """
    Cumulative percentage of predictor and target variance explained per M.

    Returns:
        DataFrame indexed by n_components with columns X and target
    """
    y = np.asarray(y, dtype=float)
    max_components = X.shape[1] if max_components is None else min(max_components, X.shape[1])
    Xs = StandardScaler().fit_transform(X.to_numpy(dtype=float))
    total_x = float((Xs ** 2).sum())
    total_y = float(((y - y.mean()) ** 2).sum())

    y_pct = np.zeros(max_components)

    if method == "pcr":
        pca = PCA(n_components=max_components).fit(Xs)
        x_pct = np.cumsum(pca.explained_variance_ratio_) * 100
    else:
        pls = PLSRegression(n_components=max_components, scale=False).fit(Xs, y)
        per_component = np.array([
            (pls.x_scores_[:, a] ** 2).sum() * (pls.x_loadings_[:, a] ** 2).sum()
            for a in range(max_components)
        ])
        x_pct = np.cumsum(per_component) / total_x * 100

    for m in range(1, max_components + 1):
        model = ProjectionRegressor(method=method, n_components=m).fit(X, y)
        rss = float(((y - model.predict(X)) ** 2).sum())
        y_pct[m - 1] = (1.0 - rss / total_y) * 100

    return pd.DataFrame(
        {'X': x_pct, 'target': y_pct},
        index=pd.Index(np.arange(1, max_components + 1), name="n_components")
    )


def run_projection(
    X: pd.DataFrame,
    y: pd.Series,
    config: Dict[str, Any],
    method: str,
    train_mask: Optional[np.ndarray] = None
) -> Dict[str, Any]:
    """
    Cross-validate the component count for PCR or PLS and score it on the test rows.

    Args:
        X: Design matrix
        y: Target
        config: Configuration dictionary
        method: "pcr" or "pls"
        train_mask: Partition to use; drawn from the shrinkage seed when omitted

    Returns:
        Dictionary containing the CV curve, selected component count, test
        MSE, variance table and the model refit on all rows
    """
    logger.info("=" * 60)
    logger.info(f"STARTING {method.upper()} REGRESSION")
    logger.info("=" * 60)

    proj_config = config.get('projection', {})
    split_config = config.get('split', {})
    cv_config = config.get('cross_validation', {})
    max_components = proj_config.get('max_components')

    if train_mask is None:
        train_mask = draw_train_mask(
            len(X), seed=split_config.get('shrinkage_seed', 1), scheme="half"
        )
    train_mask = np.asarray(train_mask, dtype=bool)

    X_train, y_train = X[train_mask], y[train_mask]
    X_test, y_test = X[~train_mask], np.asarray(y[~train_mask], dtype=float)

    folds = assign_folds(
        len(X_train),
        k=cv_config.get('n_folds', 10),
        seed=cv_config.get('projection_seed', 2)
    )
    curve = cross_validate_components(X_train, y_train, folds, method, max_components)
    selected = select_n_components(curve)

    model = ProjectionRegressor(method=method, n_components=selected).fit(X_train, y_train)
    test_mse = float(mean_squared_error(y_test, model.predict(X_test)))

    final = ProjectionRegressor(method=method, n_components=selected).fit(X, y)
    variance = explained_variance(X, y, method, max_components)

    result = {
        'name': method,
        'cv_curve': curve,
        'selected_components': selected,
        'train_mask': train_mask,
        'test_mse': test_mse,
        'explained_variance': variance,
        'model': final,
    }

    logger.info("=" * 60)
    logger.info(f"{method.upper()} REGRESSION COMPLETE")
    logger.info(f"  Selected components (CV): {selected}")
    logger.info(f"  Test MSE: {test_mse:.2f}")
    logger.info("=" * 60)

    return result


def print_projection_report(result: Dict[str, Any]) -> None:
    """
    Print PCR / PLS results to console.

    Args:
        result: Dictionary from run_projection
    """
    print("\n" + "=" * 70)
    print(f"{result['name'].upper()} REGRESSION REPORT")
    print("=" * 70)

    table = result['cv_curve'].join(result['explained_variance'].add_prefix('% var '))
    print(table.round(2).to_string())

    print(f"\nSelected components: {result['selected_components']}")
    print(f"Test MSE: {result['test_mse']:.2f}")
    print("=" * 70 + "\n")
