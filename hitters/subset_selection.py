"""
Subset Selection Module
=======================

Best-subset, forward stepwise and backward stepwise search over predictor
subsets, scored in-sample by residual sum of squares. The subset size is
chosen out-of-sample, by validation-set and k-fold cross-validated MSE.

Features:
    - Exhaustive search with batched normal-equation solves
    - Greedy forward / backward stepwise search
    - Column-name-matched prediction from a coefficient vector
    - Validation-set and cross-validated error curves per subset size
"""

import logging
from itertools import combinations, islice
from typing import Dict, Any, List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression
from sklearn.metrics import mean_squared_error

from .preprocessing import assign_folds, draw_train_mask

logger = logging.getLogger(__name__)

INTERCEPT = "(Intercept)"
SEARCH_METHODS = ("exhaustive", "forward", "backward")

# combinations scored per batched solve
_BATCH_SIZE = 20000


def _rss_for_subsets(
    gram: np.ndarray,
    xty: np.ndarray,
    yty: float,
    subsets: np.ndarray
) -> np.ndarray:
    """RSS of centred least-squares fits for a batch of equal-size subsets."""
    g = gram[subsets[:, :, None], subsets[:, None, :]]
    c = xty[subsets]
    try:
        beta = np.linalg.solve(g, c[..., None])[..., 0]
    except np.linalg.LinAlgError:
        # collinear subsets in the batch
        beta = np.einsum('bij,bj->bi', np.linalg.pinv(g), c)
    return yty - np.einsum('bi,bi->b', beta, c)


class BestSubsetSelector:
    """
    Finds, for each size 1..max_size, the predictor subset with minimum RSS.

    Attributes set by fit():
        subsets_: size -> list of selected column names
        rss_: Series of RSS indexed by size
        coefficients_: size -> Series of coefficients (intercept first)
    """

    def __init__(self, method: str = "exhaustive", max_size: Optional[int] = None):
        if method not in SEARCH_METHODS:
            raise ValueError(f"Unknown search method: {method}. Choose from: {SEARCH_METHODS}")
        self.method = method
        self.max_size = max_size

        self.feature_names_: Optional[List[str]] = None
        self.subsets_: Dict[int, List[str]] = {}
        self.rss_: Optional[pd.Series] = None
        self.coefficients_: Dict[int, pd.Series] = {}
        self.n_obs_: Optional[int] = None
        self.tss_: Optional[float] = None
        self.full_rss_: Optional[float] = None
        self._is_fitted = False

    def fit(self, X: pd.DataFrame, y) -> 'BestSubsetSelector':
        """
        Search subsets of every size on (X, y).

        Args:
            X: Design matrix with labelled columns
            y: Target values

        Returns:
            Self for method chaining
        """
        y = np.asarray(y, dtype=float)
        Xv = X.to_numpy(dtype=float)
        n, p = Xv.shape

        max_size = p if self.max_size is None else min(self.max_size, p)
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {self.max_size}")

        Xc = Xv - Xv.mean(axis=0)
        yc = y - y.mean()
        gram = Xc.T @ Xc
        xty = Xc.T @ yc
        yty = float(yc @ yc)

        if self.method == "exhaustive":
            best = self._search_exhaustive(gram, xty, yty, p, max_size)
        elif self.method == "forward":
            best = self._search_forward(gram, xty, yty, p, max_size)
        else:
            best = self._search_backward(gram, xty, yty, p, max_size)

        self.feature_names_ = list(X.columns)
        self.n_obs_ = n
        self.tss_ = yty
        self.full_rss_ = float(_rss_for_subsets(gram, xty, yty, np.arange(p)[None, :])[0])

        self.subsets_ = {}
        self.coefficients_ = {}
        rss = {}
        for size, (idx, size_rss) in best.items():
            cols = [self.feature_names_[i] for i in idx]
            self.subsets_[size] = cols
            rss[size] = size_rss
            self.coefficients_[size] = _fit_coefficients(X[cols], y)

        self.rss_ = pd.Series(rss, name="rss").sort_index()
        self.rss_.index.name = "size"
        self._is_fitted = True

        logger.debug(
            f"{self.method} subset search: sizes 1..{max_size} over {p} predictors, n={n}"
        )
        return self

    @staticmethod
    def _search_exhaustive(gram, xty, yty, p, max_size) -> Dict[int, Tuple[Tuple[int, ...], float]]:
        best = {}
        for size in range(1, max_size + 1):
            best_rss = np.inf
            best_idx = None
            combos = combinations(range(p), size)
            while True:
                batch = list(islice(combos, _BATCH_SIZE))
                if not batch:
                    break
                subsets = np.array(batch, dtype=int)
                rss = _rss_for_subsets(gram, xty, yty, subsets)
                i = int(np.argmin(rss))
                # strict improvement keeps the lexicographically first subset on ties
                if rss[i] < best_rss:
                    best_rss = float(rss[i])
                    best_idx = tuple(batch[i])
            best[size] = (best_idx, best_rss)
        return best

    @staticmethod
    def _search_forward(gram, xty, yty, p, max_size) -> Dict[int, Tuple[Tuple[int, ...], float]]:
        best = {}
        selected: List[int] = []
        for size in range(1, max_size + 1):
            candidates = [j for j in range(p) if j not in selected]
            subsets = np.array([sorted(selected + [j]) for j in candidates], dtype=int)
            rss = _rss_for_subsets(gram, xty, yty, subsets)
            i = int(np.argmin(rss))
            selected.append(candidates[i])
            best[size] = (tuple(sorted(selected)), float(rss[i]))
        return best

    @staticmethod
    def _search_backward(gram, xty, yty, p, max_size) -> Dict[int, Tuple[Tuple[int, ...], float]]:
        best = {}
        current = list(range(p))
        full_rss = float(_rss_for_subsets(gram, xty, yty, np.array([current]))[0])
        if p <= max_size:
            best[p] = (tuple(current), full_rss)
        for size in range(p - 1, 0, -1):
            subsets = np.array([[j for j in current if j != drop] for drop in current], dtype=int)
            rss = _rss_for_subsets(gram, xty, yty, subsets)
            i = int(np.argmin(rss))
            current = list(subsets[i])
            if size <= max_size:
                best[size] = (tuple(current), float(rss[i]))
        return best

    def _check_size(self, size: int) -> None:
        if not self._is_fitted:
            raise ValueError("Selector must be fitted first. Call fit() first.")
        if size not in self.subsets_:
            raise ValueError(
                f"No subset of size {size}; fitted sizes are {sorted(self.subsets_)}"
            )

    def coef(self, size: int) -> pd.Series:
        """Coefficients (intercept first) of the best subset of the given size."""
        self._check_size(size)
        return self.coefficients_[size].copy()

    def predict(self, X: pd.DataFrame, size: int) -> np.ndarray:
        self._check_size(size)
        return predict_from_coefficients(self.coefficients_[size], X)

    def summary(self) -> pd.DataFrame:
        """
        In-sample criteria per subset size.

        Cp and BIC use the error variance estimated from the least-squares
        fit on all predictors.

        Returns:
            DataFrame indexed by size with rss, r2, adj_r2, cp, bic, columns
        """
        if not self._is_fitted:
            raise ValueError("Selector must be fitted first. Call fit() first.")

        n = self.n_obs_
        p = len(self.feature_names_)
        sizes = self.rss_.index.to_numpy()
        rss = self.rss_.to_numpy()
        n_params = sizes + 1

        sigma2 = self.full_rss_ / (n - p - 1) if n > p + 1 else np.nan
        r2 = 1.0 - rss / self.tss_

        table = pd.DataFrame({
            'rss': rss,
            'r2': r2,
            'adj_r2': 1.0 - (1.0 - r2) * (n - 1) / (n - n_params),
            'cp': rss / sigma2 + 2 * n_params - n,
            'bic': n * np.log(rss / n) + n_params * np.log(n),
            'columns': [", ".join(self.subsets_[s]) for s in sizes],
        }, index=self.rss_.index)
        return table


def _fit_coefficients(X: pd.DataFrame, y: np.ndarray) -> pd.Series:
    ols = LinearRegression().fit(X.to_numpy(dtype=float), y)
    values = np.concatenate([[ols.intercept_], ols.coef_])
    return pd.Series(values, index=[INTERCEPT] + list(X.columns), name="coefficient")


def predict_from_coefficients(coef: pd.Series, X: pd.DataFrame) -> np.ndarray:
    """
    Predict from a labelled coefficient vector.

    Columns of X are looked up by the coefficient names, so the same
    function serves every subset size regardless of which columns it kept.

    Args:
        coef: Coefficients indexed by column name, optionally with an
            "(Intercept)" entry
        X: Rows to predict, with labelled columns

    Returns:
        Predictions array of shape (n_samples,)

    Raises:
        KeyError: If a coefficient names a column that X does not have
    """
    slopes = coef.drop(INTERCEPT, errors='ignore')
    missing = [name for name in slopes.index if name not in X.columns]
    if missing:
        raise KeyError(f"Design matrix lacks columns required by coefficients: {missing}")

    intercept = float(coef.get(INTERCEPT, 0.0))
    return X[list(slopes.index)].to_numpy(dtype=float) @ slopes.to_numpy(dtype=float) + intercept


def validation_set_errors(
    X: pd.DataFrame,
    y: pd.Series,
    train_mask: np.ndarray,
    method: str = "exhaustive",
    max_size: Optional[int] = None
) -> Tuple[pd.Series, BestSubsetSelector]:
    """
    Fit best subsets on training rows and score each size on held-out rows.

    Returns:
        Tuple of (test MSE indexed by size, selector fitted on training rows)
    """
    train_mask = np.asarray(train_mask, dtype=bool)
    selector = BestSubsetSelector(method=method, max_size=max_size)
    selector.fit(X[train_mask], y[train_mask])

    X_test = X[~train_mask]
    y_test = np.asarray(y[~train_mask], dtype=float)

    errors = {
        size: float(mean_squared_error(y_test, selector.predict(X_test, size)))
        for size in selector.subsets_
    }
    curve = pd.Series(errors, name="validation_mse").sort_index()
    curve.index.name = "size"
    return curve, selector


def cross_validate_subsets(
    X: pd.DataFrame,
    y: pd.Series,
    folds: np.ndarray,
    method: str = "exhaustive",
    max_size: Optional[int] = None
) -> pd.DataFrame:
    """
    k-fold cross-validated MSE for every subset size.

    For each fold, best subsets of every size are searched on the remaining
    folds and scored on the held-out fold.

    Returns:
        DataFrame with one row per fold label and one column per size
    """
    folds = np.asarray(folds)
    rows = {}
    for fold in np.unique(folds):
        held_out = folds == fold
        curve, _ = validation_set_errors(X, y, ~held_out, method=method, max_size=max_size)
        rows[int(fold)] = curve
        logger.debug(f"Fold {fold}: best size {int(curve.idxmin())}")

    errors = pd.DataFrame(rows).T.sort_index()
    errors.index.name = "fold"
    errors.columns.name = "size"
    return errors


def select_subset_size(mean_errors: pd.Series) -> int:
    """Size with minimum mean error; ties go to the smaller size."""
    values = mean_errors.sort_index()
    ties = values.index[values.to_numpy() == values.min()]
    return int(ties[0])


def run_subset_selection(
    X: pd.DataFrame,
    y: pd.Series,
    config: Dict[str, Any],
    train_mask: Optional[np.ndarray] = None
) -> Dict[str, Any]:
    """
    Run validation-set and cross-validated best-subset selection.

    Args:
        X: Design matrix
        y: Target
        config: Configuration dictionary
        train_mask: Partition to use; drawn from the subset seed when omitted

    Returns:
        Dictionary containing the in-sample summary, the validation and CV
        error curves, the selected size, its test MSE and final coefficients
    """
    logger.info("=" * 60)
    logger.info("STARTING SUBSET SELECTION")
    logger.info("=" * 60)

    sel_config = config.get('subset_selection', {})
    split_config = config.get('split', {})
    cv_config = config.get('cross_validation', {})

    method = sel_config.get('method', 'exhaustive')
    max_size = sel_config.get('max_size')
    n_folds = cv_config.get('n_folds', 10)

    if train_mask is None:
        train_mask = draw_train_mask(
            len(X), seed=split_config.get('subset_seed', 1), scheme="bernoulli"
        )

    logger.info(f"Search method: {method}, max size: {max_size or X.shape[1]}")

    # In-sample criteria on all rows (display only)
    full_selector = BestSubsetSelector(method=method, max_size=max_size).fit(X, y)
    summary = full_selector.summary()

    logger.info("Validation-set approach...")
    validation_curve, train_selector = validation_set_errors(
        X, y, train_mask, method=method, max_size=max_size
    )
    validation_size = select_subset_size(validation_curve)

    logger.info(f"{n_folds}-fold cross-validation...")
    folds = assign_folds(len(X), k=n_folds, seed=cv_config.get('subset_seed', 1))
    cv_errors = cross_validate_subsets(X, y, folds, method=method, max_size=max_size)
    cv_mean = cv_errors.mean(axis=0).rename("cv_mse")
    cv_mean.index.name = "size"
    selected_size = select_subset_size(cv_mean)

    test_mse = float(validation_curve.loc[selected_size])

    result = {
        'method': method,
        'summary': summary,
        'criteria_best': {
            'adj_r2': int(summary['adj_r2'].idxmax()),
            'cp': int(summary['cp'].idxmin()),
            'bic': int(summary['bic'].idxmin()),
        },
        'validation_curve': validation_curve,
        'validation_size': validation_size,
        'cv_errors': cv_errors,
        'cv_mean': cv_mean,
        'selected_size': selected_size,
        'selected_columns': list(full_selector.subsets_[selected_size]),
        'validation_columns': list(train_selector.subsets_[selected_size]),
        'test_mse': test_mse,
        'train_mask': np.asarray(train_mask, dtype=bool),
        'coefficients': full_selector.coef(selected_size),
        'model': full_selector,
    }

    logger.info("=" * 60)
    logger.info("SUBSET SELECTION COMPLETE")
    logger.info(f"  Validation-set best size: {validation_size}")
    logger.info(f"  Cross-validated best size: {selected_size}")
    logger.info(f"  Test MSE at size {selected_size}: {test_mse:.2f}")
    logger.info("=" * 60)

    return result


def print_subset_report(result: Dict[str, Any]) -> None:
    """
    Print subset selection results to console.

    Args:
        result: Dictionary from run_subset_selection
    """
    print("\n" + "=" * 70)
    print(f"SUBSET SELECTION REPORT ({result['method']})")
    print("=" * 70)

    table = result['summary'][['rss', 'r2', 'adj_r2', 'cp', 'bic']].copy()
    table['val_mse'] = result['validation_curve']
    table['cv_mse'] = result['cv_mean']
    print(table.round(3).to_string())

    best = result['criteria_best']
    print(f"\nIn-sample best size: adj R² → {best['adj_r2']}, Cp → {best['cp']}, BIC → {best['bic']}")
    print(f"Validation-set best size: {result['validation_size']}")
    print(f"Cross-validated best size: {result['selected_size']}")
    print(f"Test MSE at selected size: {result['test_mse']:.2f}")

    print("\nCoefficients (refit on all rows):")
    for name, value in result['coefficients'].items():
        print(f"  {name:<14} {value:>12.4f}")
    print("=" * 70 + "\n")
