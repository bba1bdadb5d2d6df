"""
Test Suite for Subset Selection Module
======================================
"""

from itertools import combinations

import pytest
import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression

from hitters.subset_selection import (
    BestSubsetSelector, predict_from_coefficients, validation_set_errors,
    cross_validate_subsets, select_subset_size, run_subset_selection, INTERCEPT
)
from hitters.data_loader import load_data
from hitters.preprocessing import assign_folds, draw_train_mask, prepare_features


@pytest.fixture
def regression_data():
    """Six predictors, three of which drive the target."""
    rng = np.random.default_rng(42)
    n = 120
    X = pd.DataFrame(rng.normal(size=(n, 6)), columns=[f'x{i}' for i in range(1, 7)])
    X['x4'] = X['x4'] + 0.5 * X['x1']
    y = 3.0 * X['x1'] - 2.0 * X['x3'] + 1.5 * X['x5'] + rng.normal(0, 0.5, size=n)
    return X, pd.Series(y, name='y')


def brute_force_rss(X, y, size):
    best = np.inf
    for cols in combinations(X.columns, size):
        model = LinearRegression().fit(X[list(cols)], y)
        rss = float(((y - model.predict(X[list(cols)])) ** 2).sum())
        best = min(best, rss)
    return best


class TestBestSubsetSelector:
    """Tests for the subset search strategies."""

    def test_exhaustive_matches_brute_force(self, regression_data):
        X, y = regression_data
        selector = BestSubsetSelector(method="exhaustive").fit(X, y)

        for size in range(1, 7):
            assert selector.rss_.loc[size] == pytest.approx(brute_force_rss(X, y, size), rel=1e-8)

    def test_recovers_true_predictors(self, regression_data):
        X, y = regression_data
        selector = BestSubsetSelector(method="exhaustive").fit(X, y)

        assert sorted(selector.subsets_[3]) == ['x1', 'x3', 'x5']

    @pytest.mark.parametrize("method", ["exhaustive", "forward", "backward"])
    def test_size_k_has_k_predictors(self, regression_data, method):
        X, y = regression_data
        selector = BestSubsetSelector(method=method).fit(X, y)

        for size in range(1, 7):
            coef = selector.coef(size)
            assert coef.index[0] == INTERCEPT
            assert len(coef) - 1 == size

    def test_rss_non_increasing(self, regression_data):
        """Exhaustive search never gets worse in-sample as the size grows."""
        X, y = regression_data
        rss = BestSubsetSelector(method="exhaustive").fit(X, y).rss_.to_numpy()

        assert np.all(np.diff(rss) <= 1e-9 * rss[0])

    def test_exhaustive_no_worse_than_stepwise(self, regression_data):
        X, y = regression_data
        best = BestSubsetSelector(method="exhaustive").fit(X, y).rss_
        forward = BestSubsetSelector(method="forward").fit(X, y).rss_
        backward = BestSubsetSelector(method="backward").fit(X, y).rss_

        assert np.all(best.to_numpy() <= forward.to_numpy() * (1 + 1e-10))
        assert np.all(best.to_numpy() <= backward.to_numpy() * (1 + 1e-10))

    def test_forward_is_nested(self, regression_data):
        X, y = regression_data
        selector = BestSubsetSelector(method="forward").fit(X, y)

        for size in range(1, 6):
            assert set(selector.subsets_[size]) <= set(selector.subsets_[size + 1])

    def test_max_size(self, regression_data):
        X, y = regression_data
        selector = BestSubsetSelector(method="backward", max_size=3).fit(X, y)

        assert sorted(selector.subsets_) == [1, 2, 3]
        with pytest.raises(ValueError, match="No subset of size 4"):
            selector.coef(4)

    def test_unknown_method(self):
        with pytest.raises(ValueError, match="Unknown search method"):
            BestSubsetSelector(method="stagewise")

    def test_summary_criteria(self, regression_data):
        X, y = regression_data
        summary = BestSubsetSelector().fit(X, y).summary()

        assert list(summary.index) == list(range(1, 7))
        assert summary['r2'].is_monotonic_increasing
        # the full model has Cp equal to its parameter count
        assert summary.loc[6, 'cp'] == pytest.approx(7.0)
        assert summary.loc[3, 'bic'] < summary.loc[2, 'bic'] < summary.loc[1, 'bic']


class TestPredictFromCoefficients:
    """Tests for column-name-matched prediction."""

    def test_matches_by_name_not_position(self):
        coef = pd.Series({INTERCEPT: 1.0, 'b': 2.0, 'a': -1.0})
        X = pd.DataFrame({'a': [1.0, 0.0], 'c': [9.0, 9.0], 'b': [0.0, 3.0]})

        np.testing.assert_allclose(predict_from_coefficients(coef, X), [0.0, 7.0])

    def test_without_intercept(self):
        coef = pd.Series({'a': 2.0})
        X = pd.DataFrame({'a': [1.0, 2.0]})

        np.testing.assert_allclose(predict_from_coefficients(coef, X), [2.0, 4.0])

    def test_missing_column(self):
        coef = pd.Series({INTERCEPT: 1.0, 'z': 2.0})
        X = pd.DataFrame({'a': [1.0]})

        with pytest.raises(KeyError, match="z"):
            predict_from_coefficients(coef, X)

    def test_agrees_with_least_squares(self, regression_data):
        X, y = regression_data
        selector = BestSubsetSelector().fit(X, y)
        cols = selector.subsets_[2]
        ols = LinearRegression().fit(X[cols], y)

        np.testing.assert_allclose(selector.predict(X, 2), ols.predict(X[cols]), rtol=1e-8)


class TestOutOfSampleSelection:
    """Tests for validation-set and cross-validated size selection."""

    def test_validation_curve(self, regression_data):
        X, y = regression_data
        mask = draw_train_mask(len(X), seed=1, scheme="bernoulli")
        curve, selector = validation_set_errors(X, y, mask)

        assert list(curve.index) == list(range(1, 7))
        assert (curve > 0).all()
        assert selector.n_obs_ == mask.sum()

    def test_cross_validation_shape(self, regression_data):
        X, y = regression_data
        folds = assign_folds(len(X), k=5, seed=1)
        errors = cross_validate_subsets(X, y, folds, method="forward")

        assert errors.shape == (5, 6)
        assert np.isfinite(errors.to_numpy()).all()

    def test_select_size_prefers_smaller_on_tie(self):
        errors = pd.Series({1: 5.0, 2: 3.0, 3: 3.0, 4: 4.0})

        assert select_subset_size(errors) == 2

    def test_run_subset_selection(self, regression_data):
        X, y = regression_data
        config = {'subset_selection': {'method': 'exhaustive'},
                  'cross_validation': {'n_folds': 10, 'subset_seed': 1}}

        result = run_subset_selection(X, y, config)

        assert 1 <= result['selected_size'] <= 6
        assert result['test_mse'] == result['validation_curve'].loc[result['selected_size']]
        assert len(result['coefficients']) == result['selected_size'] + 1
        assert result['cv_errors'].shape == (10, 6)
        assert result['selected_size'] >= 3

    def test_selected_columns_match_final_coefficients(self, hitters_csv):
        """Reported columns describe the full-data refit, not the training-rows search."""
        features = prepare_features(load_data(hitters_csv), {})
        config = {'subset_selection': {'method': 'forward'},
                  'cross_validation': {'n_folds': 10, 'subset_seed': 1}}

        result = run_subset_selection(features['X'], features['y'], config)

        assert sorted(result['selected_columns']) == sorted(result['coefficients'].index[1:])
        assert len(result['validation_columns']) == result['selected_size']


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
