"""
Regularized Regression Module
=============================

Ridge and lasso coefficient paths over a geometric penalty grid, with
k-fold cross-validated penalty selection.

The penalty follows the elastic-net parametrisation

    (1 / 2n) * RSS + lambda * ((1 - a) / 2 * ||b||_2^2 + a * ||b||_1)

with mixing a = 0 for ridge and a = 1 for lasso. Predictors are
standardized internally and coefficients are reported on the original
scale. A penalty of exactly zero is solved as ordinary least squares.
"""

import logging
from typing import Dict, Any, List, Optional

import numpy as np
import pandas as pd
from sklearn.linear_model import ElasticNet, Lasso, LinearRegression, Ridge
from sklearn.metrics import mean_squared_error
from sklearn.preprocessing import StandardScaler

from .preprocessing import assign_folds, draw_train_mask
from .subset_selection import INTERCEPT

logger = logging.getLogger(__name__)

RIDGE = 0.0
LASSO = 1.0

NULL_MODEL_LAMBDA = 1e10


def make_lambda_grid(high: float = 1e10, low: float = 1e-2, num: int = 100) -> np.ndarray:
    """Geometric penalty grid from `high` down to `low` (inclusive)."""
    if not (high > low > 0):
        raise ValueError(f"Penalty grid bounds must satisfy high > low > 0, got {high}, {low}")
    if num < 2:
        raise ValueError(f"Penalty grid needs at least 2 values, got {num}")
    return 10.0 ** np.linspace(np.log10(high), np.log10(low), num)


def validate_lambda_grid(lambdas) -> np.ndarray:
    """
    Check that a penalty grid is usable.

    Raises:
        ValueError: If the grid is empty, not finite, negative, or not
            strictly decreasing
    """
    grid = np.asarray(lambdas, dtype=float)
    if grid.ndim != 1 or grid.size == 0:
        raise ValueError("Penalty grid must be a non-empty 1-d sequence")
    if not np.all(np.isfinite(grid)):
        raise ValueError("Penalty grid contains non-finite values")
    if np.any(grid < 0):
        raise ValueError("Penalty grid contains negative values")
    if grid.size > 1 and not np.all(np.diff(grid) < 0):
        raise ValueError("Penalty grid must be strictly decreasing")
    return grid


class PenalizedPath:
    """
    Penalized linear model fitted at every penalty of a grid.

    Attributes set by fit():
        coef_path_: DataFrame of coefficients (rows: intercept + features,
            columns: penalties in grid order)
    """

    def __init__(
        self,
        mixing: float = RIDGE,
        lambdas=None,
        standardize: bool = True,
        max_iter: int = 100000,
        tol: float = 1e-7
    ):
        if not 0.0 <= mixing <= 1.0:
            raise ValueError(f"Mixing parameter must lie in [0, 1], got {mixing}")
        self.mixing = mixing
        self.lambdas = validate_lambda_grid(make_lambda_grid() if lambdas is None else lambdas)
        self.standardize = standardize
        self.max_iter = max_iter
        self.tol = tol

        self.feature_names_: Optional[List[str]] = None
        self.coef_path_: Optional[pd.DataFrame] = None
        self._X: Optional[np.ndarray] = None
        self._y: Optional[np.ndarray] = None
        self._is_fitted = False

    def _prepare(self, X: np.ndarray, y: np.ndarray):
        scaler = StandardScaler(with_std=self.standardize).fit(X)
        Xs = scaler.transform(X)
        scale = scaler.scale_ if self.standardize else np.ones(X.shape[1])
        return Xs, y - y.mean(), scaler.mean_, scale, y.mean()

    def _solve(self, Xs: np.ndarray, yc: np.ndarray, lambdas: np.ndarray) -> np.ndarray:
        """Standardized-scale coefficients, one column per penalty."""
        n, p = Xs.shape
        coefs = np.zeros((p, len(lambdas)))

        if self.mixing == RIDGE:
            for j, lam in enumerate(lambdas):
                if lam == 0:
                    model = LinearRegression(fit_intercept=False)
                else:
                    model = Ridge(alpha=n * lam, fit_intercept=False, solver='cholesky')
                coefs[:, j] = model.fit(Xs, yc).coef_
            return coefs

        if self.mixing == LASSO:
            model = Lasso(alpha=1.0, fit_intercept=False, warm_start=True,
                          max_iter=self.max_iter, tol=self.tol)
        else:
            model = ElasticNet(alpha=1.0, l1_ratio=self.mixing, fit_intercept=False,
                               warm_start=True, max_iter=self.max_iter, tol=self.tol)

        for j, lam in enumerate(lambdas):
            if lam == 0:
                coefs[:, j] = LinearRegression(fit_intercept=False).fit(Xs, yc).coef_
            else:
                model.set_params(alpha=lam)
                coefs[:, j] = model.fit(Xs, yc).coef_
        return coefs

    def _to_original_scale(self, coefs, mean, scale, y_mean) -> np.ndarray:
        slopes = coefs / scale[:, None]
        intercepts = y_mean - mean @ slopes
        return np.vstack([intercepts, slopes])

    def fit(self, X: pd.DataFrame, y) -> 'PenalizedPath':
        """
        Fit the model at every penalty of the grid.

        Args:
            X: Design matrix with labelled columns
            y: Target values

        Returns:
            Self for method chaining
        """
        self.feature_names_ = list(X.columns)
        self._X = X.to_numpy(dtype=float)
        self._y = np.asarray(y, dtype=float)

        Xs, yc, mean, scale, y_mean = self._prepare(self._X, self._y)
        coefs = self._solve(Xs, yc, self.lambdas)

        self.coef_path_ = pd.DataFrame(
            self._to_original_scale(coefs, mean, scale, y_mean),
            index=[INTERCEPT] + self.feature_names_,
            columns=self.lambdas
        )
        self._is_fitted = True
        return self

    def coef(self, lam: float, exact: bool = False) -> pd.Series:
        """
        Coefficients at penalty `lam`.

        Penalties on the grid return the stored fit. Penalties strictly
        inside the grid are linearly interpolated between neighbours unless
        `exact` is set, in which case the model is refitted at `lam`.
        A penalty of zero with `exact` is the least-squares solution.

        Raises:
            ValueError: If `lam` lies outside the grid and `exact` is False
        """
        if not self._is_fitted:
            raise ValueError("Model must be fitted before extracting coefficients. Call fit() first.")
        if lam < 0 or not np.isfinite(lam):
            raise ValueError(f"Penalty must be finite and non-negative, got {lam}")

        on_grid = np.flatnonzero(np.isclose(self.lambdas, lam, rtol=1e-12, atol=0.0))
        if on_grid.size and not exact:
            return self.coef_path_.iloc[:, on_grid[0]].rename("coefficient")

        if exact:
            Xs, yc, mean, scale, y_mean = self._prepare(self._X, self._y)
            coefs = self._solve(Xs, yc, np.array([lam]))
            values = self._to_original_scale(coefs, mean, scale, y_mean)[:, 0]
            return pd.Series(values, index=self.coef_path_.index, name="coefficient")

        lo, hi = self.lambdas.min(), self.lambdas.max()
        if not lo <= lam <= hi:
            raise ValueError(
                f"Penalty {lam:g} lies outside the fitted grid [{lo:g}, {hi:g}]; "
                f"pass exact=True to refit at this penalty"
            )

        # np.interp needs ascending abscissae
        grid = self.lambdas[::-1]
        path = self.coef_path_.to_numpy()[:, ::-1]
        values = np.array([np.interp(lam, grid, row) for row in path])
        return pd.Series(values, index=self.coef_path_.index, name="coefficient")

    def predict(self, X: pd.DataFrame, lam: float, exact: bool = False) -> np.ndarray:
        coef = self.coef(lam, exact=exact)
        return X[self.feature_names_].to_numpy(dtype=float) @ coef.iloc[1:].to_numpy() + coef.iloc[0]

    def predict_path(self, X: pd.DataFrame) -> np.ndarray:
        """Predictions at every grid penalty, shape (n_samples, n_lambdas)."""
        if not self._is_fitted:
            raise ValueError("Model must be fitted before prediction. Call fit() first.")
        path = self.coef_path_.to_numpy()
        return X[self.feature_names_].to_numpy(dtype=float) @ path[1:] + path[0]

    def n_nonzero(self) -> pd.Series:
        """Number of non-zero slope coefficients at each penalty."""
        return (self.coef_path_.iloc[1:].abs() > 0).sum(axis=0)


def cross_validate_penalty(
    X: pd.DataFrame,
    y: pd.Series,
    folds: np.ndarray,
    mixing: float,
    lambdas,
    standardize: bool = True
) -> Dict[str, Any]:
    """
    k-fold cross-validated MSE along the penalty grid.

    Returns:
        Dictionary containing:
            - lambdas: penalty grid
            - cv_mean: fold-size-weighted mean MSE per penalty
            - cv_se: standard error of the fold MSEs per penalty
            - lambda_min: penalty with minimum mean MSE (ties → larger penalty)
            - lambda_1se: largest penalty within one standard error of the minimum
    """
    lambdas = validate_lambda_grid(lambdas)
    y = np.asarray(y, dtype=float)
    folds = np.asarray(folds)

    fold_labels = np.unique(folds)
    fold_mse = np.zeros((len(fold_labels), len(lambdas)))
    fold_sizes = np.zeros(len(fold_labels))

    for i, fold in enumerate(fold_labels):
        held_out = folds == fold
        path = PenalizedPath(mixing=mixing, lambdas=lambdas, standardize=standardize)
        path.fit(X[~held_out], y[~held_out])
        preds = path.predict_path(X[held_out])
        fold_mse[i] = ((preds - y[held_out][:, None]) ** 2).mean(axis=0)
        fold_sizes[i] = held_out.sum()

    cv_mean = np.average(fold_mse, axis=0, weights=fold_sizes)
    cv_se = fold_mse.std(axis=0, ddof=1) / np.sqrt(len(fold_labels))

    # grid is decreasing, so the first minimum is the largest penalty
    best = int(np.argmin(cv_mean))
    within = np.flatnonzero(cv_mean <= cv_mean[best] + cv_se[best])

    return {
        'lambdas': lambdas,
        'cv_mean': cv_mean,
        'cv_se': cv_se,
        'fold_mse': fold_mse,
        'lambda_min': float(lambdas[best]),
        'lambda_1se': float(lambdas[within[0]]),
    }


def run_regularized(
    X: pd.DataFrame,
    y: pd.Series,
    config: Dict[str, Any],
    mixing: float,
    train_mask: Optional[np.ndarray] = None
) -> Dict[str, Any]:
    """
    Fit a ridge (mixing=0) or lasso (mixing=1) path and select the penalty.

    Args:
        X: Design matrix
        y: Target
        config: Configuration dictionary
        mixing: Elastic-net mixing parameter
        train_mask: Partition to use; drawn from the shrinkage seed when omitted

    Returns:
        Dictionary containing the training path, test MSEs at the demo,
        null-model, zero and CV-selected penalties, the CV curve and the
        final coefficients refit on all rows
    """
    name = "ridge" if mixing == RIDGE else "lasso" if mixing == LASSO else f"enet({mixing})"

    logger.info("=" * 60)
    logger.info(f"STARTING {name.upper()} REGRESSION")
    logger.info("=" * 60)

    reg_config = config.get('regularization', {})
    split_config = config.get('split', {})
    cv_config = config.get('cross_validation', {})

    lambdas = make_lambda_grid(
        high=reg_config.get('lambda_max', 1e10),
        low=reg_config.get('lambda_min', 1e-2),
        num=reg_config.get('n_lambdas', 100)
    )
    standardize = reg_config.get('standardize', True)
    demo_lambda = reg_config.get('demo_lambda', 4.0)

    if train_mask is None:
        train_mask = draw_train_mask(
            len(X), seed=split_config.get('shrinkage_seed', 1), scheme="half"
        )
    train_mask = np.asarray(train_mask, dtype=bool)

    X_train, y_train = X[train_mask], y[train_mask]
    X_test, y_test = X[~train_mask], np.asarray(y[~train_mask], dtype=float)

    path = PenalizedPath(mixing=mixing, lambdas=lambdas, standardize=standardize)
    path.fit(X_train, y_train)
    logger.info(f"Fitted {len(lambdas)} penalties on {int(train_mask.sum())} training rows")

    def test_mse(lam: float, exact: bool = False) -> float:
        return float(mean_squared_error(y_test, path.predict(X_test, lam, exact=exact)))

    fixed_errors = {
        'demo': test_mse(demo_lambda, exact=True),
        'null_model': test_mse(NULL_MODEL_LAMBDA, exact=True),
        'least_squares': test_mse(0.0, exact=True),
    }

    # exact zero-penalty solve against a direct least-squares fit
    ols = LinearRegression().fit(X_train.to_numpy(dtype=float), np.asarray(y_train, dtype=float))
    zero_coef = path.coef(0.0, exact=True)
    ols_coef = np.concatenate([[ols.intercept_], ols.coef_])
    ols_gap = float(np.max(np.abs(zero_coef.to_numpy() - ols_coef) / np.maximum(np.abs(ols_coef), 1.0)))

    logger.info("Cross-validating penalty...")
    folds = assign_folds(
        int(train_mask.sum()),
        k=cv_config.get('n_folds', 10),
        seed=cv_config.get('shrinkage_seed', 1)
    )
    cv = cross_validate_penalty(X_train, y_train, folds, mixing, lambdas, standardize)

    best_lambda = cv['lambda_min']
    best_test_mse = test_mse(best_lambda)

    final = PenalizedPath(mixing=mixing, lambdas=lambdas, standardize=standardize).fit(X, y)
    coefficients = final.coef(best_lambda)

    result = {
        'name': name,
        'mixing': mixing,
        'lambdas': lambdas,
        'path': path,
        'train_mask': train_mask,
        'fixed_errors': fixed_errors,
        'demo_lambda': demo_lambda,
        'ols_max_relative_gap': ols_gap,
        'cv': cv,
        'best_lambda': best_lambda,
        'test_mse': best_test_mse,
        'coefficients': coefficients,
        'nonzero_coefficients': coefficients[coefficients != 0].drop(INTERCEPT, errors='ignore'),
        'model': final,
    }

    logger.info("=" * 60)
    logger.info(f"{name.upper()} REGRESSION COMPLETE")
    logger.info(f"  Best penalty (CV): {best_lambda:.4f}")
    logger.info(f"  Test MSE at best penalty: {best_test_mse:.2f}")
    logger.info(f"  Zero-penalty vs least squares max relative gap: {ols_gap:.2e}")
    logger.info("=" * 60)

    return result


def print_regularized_report(result: Dict[str, Any]) -> None:
    """
    Print ridge / lasso results to console.

    Args:
        result: Dictionary from run_regularized
    """
    name = result['name'].upper()
    print("\n" + "=" * 70)
    print(f"{name} REGRESSION REPORT")
    print("=" * 70)
    print(f"Penalty grid: {len(result['lambdas'])} values "
          f"from {result['lambdas'][0]:g} to {result['lambdas'][-1]:g}")

    fixed = result['fixed_errors']
    print("\nTest MSE at fixed penalties:")
    print(f"  • lambda = {result['demo_lambda']:g}: {fixed['demo']:.2f}")
    print(f"  • lambda = {NULL_MODEL_LAMBDA:g} (null model): {fixed['null_model']:.2f}")
    print(f"  • lambda = 0 (least squares): {fixed['least_squares']:.2f}")
    print(f"  • zero-penalty vs OLS max relative gap: {result['ols_max_relative_gap']:.2e}")

    cv = result['cv']
    print(f"\nCross-validated penalty: {result['best_lambda']:.4f} "
          f"(1-SE rule: {cv['lambda_1se']:.4f})")
    print(f"Test MSE at selected penalty: {result['test_mse']:.2f}")

    print("\nCoefficients (refit on all rows):")
    for coef_name, value in result['coefficients'].items():
        marker = "" if value != 0 else "  (zero)"
        print(f"  {coef_name:<14} {value:>12.4f}{marker}")
    print(f"\nNon-zero predictors: {len(result['nonzero_coefficients'])}")
    print("=" * 70 + "\n")
