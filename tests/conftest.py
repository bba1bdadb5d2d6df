"""
Shared fixtures: a synthetic dataset with the Hitters schema.

322 player-seasons, 59 of them missing Salary, matching the shape of the
real file so that cleaning leaves 263 records.
"""

import matplotlib
matplotlib.use("Agg")

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))


def make_hitters_frame(n: int = 322, n_missing_salary: int = 59, seed: int = 0) -> pd.DataFrame:
    """Generate Hitters-shaped records with a salary driven by career stats."""
    rng = np.random.default_rng(seed)

    years = rng.integers(1, 25, size=n)
    at_bat = rng.integers(100, 690, size=n)
    hits = (at_bat * rng.uniform(0.2, 0.32, size=n)).astype(int)
    hm_run = rng.integers(0, 40, size=n)
    runs = (hits * rng.uniform(0.35, 0.6, size=n)).astype(int)
    rbi = (hits * rng.uniform(0.3, 0.7, size=n)).astype(int)
    walks = rng.integers(5, 100, size=n)
    career = years * rng.uniform(0.8, 1.1, size=n)

    df = pd.DataFrame({
        'AtBat': at_bat,
        'Hits': hits,
        'HmRun': hm_run,
        'Runs': runs,
        'RBI': rbi,
        'Walks': walks,
        'Years': years,
        'CAtBat': (at_bat * career).astype(int),
        'CHits': (hits * career).astype(int),
        'CHmRun': (hm_run * career).astype(int),
        'CRuns': (runs * career).astype(int),
        'CRBI': (rbi * career).astype(int),
        'CWalks': (walks * career).astype(int),
        'League': rng.choice(['A', 'N'], size=n),
        'Division': rng.choice(['E', 'W'], size=n),
        'PutOuts': rng.integers(0, 1400, size=n),
        'Assists': rng.integers(0, 490, size=n),
        'Errors': rng.integers(0, 32, size=n),
    })
    df['NewLeague'] = np.where(rng.random(n) < 0.9, df['League'], 'N')

    salary = (
        80
        + 0.25 * df['CRuns']
        + 2.0 * df['Hits']
        + 1.5 * df['Walks']
        - 60 * (df['Division'] == 'W')
        + rng.normal(0, 120, size=n)
    )
    df['Salary'] = salary.clip(lower=67.5).round(1)
    df.loc[rng.choice(n, size=n_missing_salary, replace=False), 'Salary'] = np.nan

    df.index = [f"-Player {i}" for i in range(n)]
    return df


@pytest.fixture
def raw_hitters():
    """Raw synthetic records, including rows with missing salary."""
    return make_hitters_frame()


@pytest.fixture
def hitters_csv(tmp_path, raw_hitters):
    """Raw synthetic records written as a CSV with player names in the first column."""
    path = tmp_path / "Hitters.csv"
    raw_hitters.to_csv(path, index=True)
    return path


@pytest.fixture
def small_config(tmp_path):
    """Configuration sized for fast test runs."""
    return {
        'split': {'subset_seed': 1, 'shrinkage_seed': 1, 'unify': False},
        'cross_validation': {'n_folds': 10, 'subset_seed': 1,
                             'shrinkage_seed': 1, 'projection_seed': 2},
        'subset_selection': {'method': 'forward', 'max_size': None},
        'regularization': {'lambda_max': 1e10, 'lambda_min': 1e-2,
                           'n_lambdas': 100, 'demo_lambda': 4},
        'projection': {'max_components': None},
        'eda': {'scatter_feature': 'CRuns', 'correlation_threshold': 0.5},
        'output': {
            'reports_path': str(tmp_path / "reports"),
            'figures_path': str(tmp_path / "reports" / "figures"),
            'model_path': str(tmp_path / "models" / "best_model.joblib"),
        },
        'logging': {'level': 'WARNING'},
    }
