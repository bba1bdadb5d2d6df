"""
Data Preprocessing Module
=========================

Handles feature engineering, design matrix construction, and the random
train/test partitions and cross-validation folds used by every model.

Functions:
    - add_per_year_averages: Career counting stats divided by seasons played
    - DesignMatrixBuilder: Numeric predictors plus reference-dropped indicators
    - draw_train_mask: Seeded train/test membership vector
    - assign_folds: Seeded, balanced k-fold labels
"""

import logging
from typing import Dict, Any, Tuple, Optional, List

import pandas as pd
import numpy as np

from .data_loader import CATEGORICAL_LEVELS, TARGET_COLUMN

logger = logging.getLogger(__name__)

# derived column -> career counting stat it is computed from
PER_YEAR_AVERAGES: Dict[str, str] = {
    "AvgHits": "CHits",
    "AvgHmRun": "CHmRun",
    "AvgRuns": "CRuns",
}

SPLIT_SCHEMES = ("bernoulli", "half")


def add_per_year_averages(df: pd.DataFrame, years_column: str = "Years") -> pd.DataFrame:
    """
    Append AvgHits, AvgHmRun and AvgRuns (career totals per season played).

    The numerators are the career counts (CHits, CHmRun, CRuns), not the
    single-season Hits, HmRun and Runs.

    Args:
        df: Cleaned record set
        years_column: Column holding seasons played

    Returns:
        New DataFrame with the three derived columns appended

    Raises:
        ValueError: If any record has Years <= 0 or Years is missing
    """
    years = df[years_column]
    bad = years.isnull() | (years <= 0)
    if bad.any():
        offenders = list(df.index[bad][:5])
        raise ValueError(
            f"Cannot compute per-year averages: {int(bad.sum())} records have "
            f"{years_column} <= 0 (e.g. {offenders})"
        )

    result = df.copy()
    for new_col, source_col in PER_YEAR_AVERAGES.items():
        result[new_col] = df[source_col] / years

    logger.info(f"Added per-year averages: {list(PER_YEAR_AVERAGES)}")
    return result


class DesignMatrixBuilder:
    """
    Expands the record set into the numeric design matrix shared by all models.

    Categorical labels become indicator columns with the reference level
    dropped (League_N, Division_W, NewLeague_N). Column order is fixed at
    fit time so that any later row subset yields identically labelled columns.
    """

    def __init__(self, target: str = TARGET_COLUMN):
        self.target = target
        self.numeric_columns: Optional[List[str]] = None
        self.categorical_columns: Optional[List[str]] = None
        self.feature_columns: Optional[List[str]] = None
        self._is_fitted = False

    def fit(self, df: pd.DataFrame) -> 'DesignMatrixBuilder':
        if self.target not in df.columns:
            raise ValueError(f"Target column '{self.target}' not found")

        self.categorical_columns = [c for c in CATEGORICAL_LEVELS if c in df.columns]
        self.numeric_columns = [
            c for c in df.select_dtypes(include=[np.number]).columns
            if c != self.target
        ]
        self.feature_columns = list(self.numeric_columns)
        for col in self.categorical_columns:
            for level in CATEGORICAL_LEVELS[col][1:]:
                self.feature_columns.append(f"{col}_{level}")

        self._is_fitted = True
        return self

    def transform(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, pd.Series]:
        """
        Build (X, y) for the given rows.

        Returns:
            Tuple of (design matrix with float columns, target series)
        """
        if not self._is_fitted:
            raise ValueError("DesignMatrixBuilder must be fitted before transform. Call fit() first.")

        X = df[self.numeric_columns].astype(float)
        for col in self.categorical_columns:
            labels = df[col].astype(str)
            for level in CATEGORICAL_LEVELS[col][1:]:
                X[f"{col}_{level}"] = (labels == level).astype(float)

        X = X[self.feature_columns]
        y = df[self.target].astype(float)
        return X, y

    def fit_transform(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, pd.Series]:
        self.fit(df)
        return self.transform(df)

    def get_feature_names(self) -> List[str]:
        if self.feature_columns is None:
            raise ValueError("DesignMatrixBuilder must be fitted first.")
        return list(self.feature_columns)


def build_design_matrix(df: pd.DataFrame, target: str = TARGET_COLUMN) -> Tuple[pd.DataFrame, pd.Series]:
    """Construct a fresh (X, y) pair from the record set."""
    return DesignMatrixBuilder(target=target).fit_transform(df)


def draw_train_mask(
    n: int,
    seed: int,
    scheme: str = "half",
    fraction: float = 0.5
) -> np.ndarray:
    """
    Draw a boolean train membership vector over row positions.

    Schemes:
        - "bernoulli": each row joins the training set independently with
          probability `fraction`; train size varies with the seed.
        - "half": exactly floor(n * fraction) rows are sampled without
          replacement.

    Args:
        n: Number of rows
        seed: Random seed
        scheme: "bernoulli" or "half"
        fraction: Training fraction

    Returns:
        Boolean array of length n, True for training rows

    Raises:
        ValueError: On unknown scheme or if either side of the split is empty
    """
    if scheme not in SPLIT_SCHEMES:
        raise ValueError(f"Unknown split scheme: {scheme}. Choose from: {SPLIT_SCHEMES}")
    if not 0.0 < fraction < 1.0:
        raise ValueError(f"Training fraction must lie in (0, 1), got {fraction}")

    rng = np.random.default_rng(seed)

    if scheme == "bernoulli":
        mask = rng.random(n) < fraction
    else:
        mask = np.zeros(n, dtype=bool)
        mask[rng.choice(n, size=int(n * fraction), replace=False)] = True

    n_train = int(mask.sum())
    if n_train == 0 or n_train == n:
        raise ValueError(
            f"Degenerate partition: {n_train} training rows out of {n} "
            f"(scheme={scheme}, seed={seed})"
        )

    logger.info(
        f"Train/Test split ({scheme}, seed={seed}): {n_train} train, {n - n_train} test"
    )
    return mask


def assign_folds(n: int, k: int = 10, seed: int = 1) -> np.ndarray:
    """
    Assign each of n rows a fold label in 1..k.

    Labels are a seeded permutation of a balanced sequence, so every row
    lands in exactly one fold and fold sizes differ by at most one.
    """
    if k < 2:
        raise ValueError(f"Number of folds must be at least 2, got {k}")
    if k > n:
        raise ValueError(f"Number of folds ({k}) exceeds number of rows ({n})")

    rng = np.random.default_rng(seed)
    labels = np.arange(n) % k + 1
    return rng.permutation(labels)


def prepare_features(df: pd.DataFrame, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Run the feature engineering stage and build the shared design matrix.

    Args:
        df: Cleaned record set
        config: Configuration dictionary

    Returns:
        Dictionary containing:
            - data: record set with derived columns
            - X, y: design matrix and target
            - feature_names: design matrix column labels
    """
    logger.info("=" * 60)
    logger.info("STARTING FEATURE ENGINEERING")
    logger.info("=" * 60)

    feat_config = config.get('features', {})
    target = config.get('data', {}).get('target', TARGET_COLUMN)

    data = df
    if feat_config.get('per_year_averages', True):
        data = add_per_year_averages(df)

    builder = DesignMatrixBuilder(target=target)
    X, y = builder.fit_transform(data)

    logger.info(f"Design matrix: {X.shape[0]} rows × {X.shape[1]} predictors")

    return {
        'data': data,
        'X': X,
        'y': y,
        'feature_names': builder.get_feature_names()
    }


def print_preprocessing_summary(result: Dict[str, Any]) -> None:
    """
    Print a summary of the feature engineering results.

    Args:
        result: Dictionary from prepare_features
    """
    print("\n" + "=" * 50)
    print("FEATURE ENGINEERING SUMMARY")
    print("=" * 50)
    print(f"Records: {result['X'].shape[0]}")
    print(f"Predictors: {result['X'].shape[1]}")
    derived = [c for c in PER_YEAR_AVERAGES if c in result['data'].columns]
    if derived:
        print(f"Derived columns: {', '.join(derived)}")
        print(result['data'][derived].describe().round(2).to_string())
    print("=" * 50 + "\n")
