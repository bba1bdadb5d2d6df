"""
Test Suite for Preprocessing Module
===================================

Tests for feature engineering, the design matrix, partitions and folds.
"""

import pytest
import numpy as np
import pandas as pd

from hitters.data_loader import load_data
from hitters.preprocessing import (
    add_per_year_averages, DesignMatrixBuilder, build_design_matrix,
    draw_train_mask, assign_folds, prepare_features
)


@pytest.fixture
def cleaned(hitters_csv):
    return load_data(hitters_csv)


class TestPerYearAverages:
    """Tests for add_per_year_averages."""

    def test_ratios(self, cleaned):
        data = add_per_year_averages(cleaned)

        np.testing.assert_allclose(data['AvgHits'], cleaned['CHits'] / cleaned['Years'])
        np.testing.assert_allclose(data['AvgHmRun'], cleaned['CHmRun'] / cleaned['Years'])
        np.testing.assert_allclose(data['AvgRuns'], cleaned['CRuns'] / cleaned['Years'])

    def test_input_not_mutated(self, cleaned):
        add_per_year_averages(cleaned)

        assert 'AvgHits' not in cleaned.columns

    def test_zero_years_raises(self, cleaned):
        """A zero denominator fails loudly instead of producing infinity."""
        broken = cleaned.copy()
        broken.iloc[3, broken.columns.get_loc('Years')] = 0

        with pytest.raises(ValueError, match="Years <= 0"):
            add_per_year_averages(broken)


class TestDesignMatrixBuilder:
    """Tests for DesignMatrixBuilder."""

    @pytest.fixture
    def data(self, cleaned):
        return add_per_year_averages(cleaned)

    def test_transform_before_fit(self, data):
        with pytest.raises(ValueError, match="must be fitted"):
            DesignMatrixBuilder().transform(data)

    def test_columns(self, data):
        X, y = DesignMatrixBuilder().fit_transform(data)

        assert X.shape == (len(data), 22)
        assert 'Salary' not in X.columns
        for col in ['League_N', 'Division_W', 'NewLeague_N', 'AvgHits']:
            assert col in X.columns
        assert 'League_A' not in X.columns
        assert y.name == 'Salary'

    def test_indicators(self, data):
        X, _ = build_design_matrix(data)

        expected = (data['Division'].astype(str) == 'W').astype(float)
        np.testing.assert_array_equal(X['Division_W'].values, expected.values)

    def test_row_subset_keeps_columns(self, data):
        """A subset holding a single league still yields every indicator column."""
        builder = DesignMatrixBuilder().fit(data)
        only_a = data[data['League'] == 'A']

        X, _ = builder.transform(only_a)

        assert list(X.columns) == builder.get_feature_names()
        assert (X['League_N'] == 0).all()


class TestPartitions:
    """Tests for draw_train_mask and assign_folds."""

    def test_half_split_size(self):
        mask = draw_train_mask(263, seed=1, scheme="half")

        assert mask.dtype == bool
        assert mask.sum() == 131

    def test_bernoulli_split_varies(self):
        mask = draw_train_mask(263, seed=1, scheme="bernoulli")

        assert 0 < mask.sum() < 263

    def test_seeded_reproducibility(self):
        a = draw_train_mask(263, seed=7, scheme="half")
        b = draw_train_mask(263, seed=7, scheme="half")

        np.testing.assert_array_equal(a, b)

    def test_schemes_are_independent_draws(self):
        half = draw_train_mask(263, seed=1, scheme="half")
        bern = draw_train_mask(263, seed=1, scheme="bernoulli")

        assert not np.array_equal(half, bern)

    def test_unknown_scheme(self):
        with pytest.raises(ValueError, match="Unknown split scheme"):
            draw_train_mask(10, seed=1, scheme="stratified")

    def test_degenerate_partition(self):
        with pytest.raises(ValueError, match="Degenerate partition"):
            draw_train_mask(1, seed=1, scheme="half")

    @pytest.mark.parametrize("n", [263, 131, 25])
    def test_folds_balanced(self, n):
        """Every row is in exactly one fold and fold sizes differ by at most one."""
        folds = assign_folds(n, k=10, seed=3)

        assert len(folds) == n
        assert set(np.unique(folds)) == set(range(1, 11))
        counts = np.bincount(folds)[1:]
        assert counts.sum() == n
        assert counts.max() - counts.min() <= 1

    def test_folds_reproducible(self):
        np.testing.assert_array_equal(assign_folds(100, 10, 5), assign_folds(100, 10, 5))

    def test_invalid_fold_count(self):
        with pytest.raises(ValueError):
            assign_folds(5, k=10, seed=1)
        with pytest.raises(ValueError):
            assign_folds(50, k=1, seed=1)


class TestPrepareFeatures:
    """Tests for the prepare_features stage."""

    def test_returns_expected_keys(self, cleaned):
        result = prepare_features(cleaned, {})

        for key in ['data', 'X', 'y', 'feature_names']:
            assert key in result, f"Missing key: {key}"
        assert result['feature_names'] == list(result['X'].columns)

    def test_averages_can_be_disabled(self, cleaned):
        result = prepare_features(cleaned, {'features': {'per_year_averages': False}})

        assert result['X'].shape[1] == 19
        assert 'AvgHits' not in result['X'].columns


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
