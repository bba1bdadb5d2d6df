"""
Test Suite for Data Loader Module
=================================

Tests for loading, cleaning and validating the Hitters records.
"""

import pytest
import numpy as np
import pandas as pd
import yaml

from hitters.data_loader import (
    load_config, load_data, validate_data, get_data_summary, REQUIRED_COLUMNS
)


class TestLoadData:
    """Tests for load_data."""

    def test_drops_rows_with_missing_values(self, hitters_csv):
        """Rows missing salary are removed, not imputed."""
        df = load_data(hitters_csv)

        assert len(df) == 322 - 59
        assert df.isnull().sum().sum() == 0

    def test_player_names_become_index(self, hitters_csv):
        df = load_data(hitters_csv)

        assert df.index.name == "Player"
        assert df.index[0].startswith("-Player")

    def test_categoricals_are_two_level(self, hitters_csv):
        df = load_data(hitters_csv)

        assert list(df['League'].cat.categories) == ['A', 'N']
        assert list(df['Division'].cat.categories) == ['E', 'W']
        assert list(df['NewLeague'].cat.categories) == ['A', 'N']

    def test_cleaned_invariants(self, hitters_csv):
        """Salary is positive and Years at least one for every record."""
        df = load_data(hitters_csv)

        assert (df['Salary'] > 0).all()
        assert (df['Years'] >= 1).all()
        assert list(df.columns) == REQUIRED_COLUMNS

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_data(tmp_path / "absent.csv")

    def test_missing_column(self, tmp_path, raw_hitters):
        path = tmp_path / "partial.csv"
        raw_hitters.drop(columns=['Walks']).to_csv(path)

        with pytest.raises(ValueError, match="Missing required columns"):
            load_data(path)

    def test_empty_after_cleaning(self, tmp_path, raw_hitters):
        path = tmp_path / "no_salary.csv"
        raw_hitters.assign(Salary=np.nan).to_csv(path)

        with pytest.raises(ValueError, match="No usable records"):
            load_data(path)

    def test_unknown_categorical_level(self, tmp_path, raw_hitters):
        path = tmp_path / "bad_league.csv"
        raw_hitters.assign(League='X').to_csv(path)

        with pytest.raises(ValueError, match="unknown levels"):
            load_data(path)

    def test_non_numeric_value(self, tmp_path, raw_hitters):
        path = tmp_path / "bad_hits.csv"
        bad = raw_hitters.astype({'Hits': object})
        bad.iloc[0, bad.columns.get_loc('Hits')] = 'many'
        bad.iloc[0, bad.columns.get_loc('Salary')] = 500.0
        bad.to_csv(path)

        with pytest.raises(ValueError, match="non-numeric"):
            load_data(path)


class TestValidateData:
    """Tests for validate_data."""

    def test_clean_data_is_valid(self, hitters_csv):
        df = load_data(hitters_csv)
        is_valid, report = validate_data(df)

        assert is_valid
        assert report['issues'] == []

    def test_zero_years_reported(self, hitters_csv):
        df = load_data(hitters_csv)
        df.iloc[0, df.columns.get_loc('Years')] = 0

        is_valid, report = validate_data(df, strict=False)

        assert not is_valid
        assert any("Years < 1" in issue for issue in report['issues'])

    def test_strict_raises(self, hitters_csv):
        df = load_data(hitters_csv)
        df.iloc[0, df.columns.get_loc('Salary')] = -1.0

        with pytest.raises(ValueError, match="Data validation failed"):
            validate_data(df, strict=True)


class TestSummaryAndConfig:

    def test_summary_statistics(self, hitters_csv):
        df = load_data(hitters_csv)
        summary = get_data_summary(df)

        stats = summary['statistics']['Salary']
        assert stats['min'] <= stats['25%'] <= stats['50%'] <= stats['75%'] <= stats['max']
        assert sum(summary['levels']['League'].values()) == len(df)

    def test_load_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({'cross_validation': {'n_folds': 5}}))

        config = load_config(path)

        assert config['cross_validation']['n_folds'] == 5

    def test_load_config_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
