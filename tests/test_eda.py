"""
Test Suite for EDA Module
=========================
"""

import pytest
import numpy as np
import pandas as pd

from hitters.data_loader import load_data
from hitters.eda import (
    summary_statistics, plot_salary_scatter, generate_eda_report,
    print_correlation_insights
)


@pytest.fixture
def cleaned(hitters_csv):
    return load_data(hitters_csv)


class TestSummaryStatistics:

    def test_columns_and_order(self, cleaned):
        table = summary_statistics(cleaned)

        assert list(table.columns) == ['min', '25%', '50%', 'mean', '75%', 'max']
        assert 'League' not in table.index
        assert table.loc['Salary', 'min'] == cleaned['Salary'].min()
        assert (table['min'] <= table['max']).all()


class TestSalaryScatter:

    def test_fit_statistics(self, cleaned):
        """CRuns drives the synthetic salary, so the fitted slope is positive."""
        _, fit = plot_salary_scatter(cleaned, 'CRuns')

        assert fit['slope'] > 0
        assert 0 < fit['r'] <= 1
        assert fit['p_value'] < 0.05

    def test_missing_feature(self, cleaned):
        with pytest.raises(ValueError, match="not found"):
            plot_salary_scatter(cleaned, 'Steals')


class TestGenerateReport:

    def test_figures_written(self, cleaned, tmp_path):
        report = generate_eda_report(cleaned, output_dir=str(tmp_path))

        assert report['figures'] == [
            "01_distributions.png", "02_salary_scatter.png",
            "03_correlation_matrix.png", "04_salary_by_category.png",
        ]
        for name in report['figures']:
            assert (tmp_path / name).exists()

    def test_report_contents(self, cleaned, tmp_path):
        report = generate_eda_report(cleaned, output_dir=str(tmp_path))

        assert report['data_shape'] == cleaned.shape
        assert report['scatter_fit']['feature'] == 'CRuns'
        assert 'Salary' not in report['target_correlations']
        corr = pd.DataFrame(report['correlation_matrix'])
        np.testing.assert_allclose(np.diag(corr.loc[corr.columns, corr.columns]), 1.0)

    def test_correlation_insights(self, cleaned, tmp_path, capsys):
        report = generate_eda_report(cleaned, output_dir=str(tmp_path))

        print_correlation_insights(pd.DataFrame(report['correlation_matrix']), threshold=0.5)

        output = capsys.readouterr().out
        assert "Correlation with Salary" in output
        assert "CHits" in output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
