"""
Data Loader Module
==================

Handles CSV ingestion, cleaning, and basic data quality checks for the
Hitters player-season dataset.

Functions:
    - load_config: Load YAML configuration file
    - load_data: Load CSV data, drop incomplete rows, coerce categorical labels
    - validate_data: Check dataset invariants (positive salary, Years >= 1)
    - get_data_summary: Generate basic statistics
"""

import os
import logging
from pathlib import Path
from typing import Dict, Any, List, Tuple

import pandas as pd
import numpy as np
import yaml

logger = logging.getLogger(__name__)

TARGET_COLUMN = "Salary"

NUMERIC_COLUMNS: List[str] = [
    "AtBat", "Hits", "HmRun", "Runs", "RBI", "Walks", "Years",
    "CAtBat", "CHits", "CHmRun", "CRuns", "CRBI", "CWalks",
    "PutOuts", "Assists", "Errors", "Salary",
]

# Levels are listed reference-first; the first level is dropped when
# indicator columns are built.
CATEGORICAL_LEVELS: Dict[str, List[str]] = {
    "League": ["A", "N"],
    "Division": ["E", "W"],
    "NewLeague": ["A", "N"],
}

REQUIRED_COLUMNS: List[str] = NUMERIC_COLUMNS + list(CATEGORICAL_LEVELS)


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Dictionary containing configuration parameters

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def _coerce_categoricals(df: pd.DataFrame) -> pd.DataFrame:
    for col, levels in CATEGORICAL_LEVELS.items():
        values = df[col].astype(str).str.strip()
        unknown = sorted(set(values) - set(levels))
        if unknown:
            raise ValueError(
                f"Column '{col}' has unknown levels {unknown}; expected {levels}"
            )
        df[col] = pd.Categorical(values, categories=levels)
    return df


def _coerce_numerics(df: pd.DataFrame) -> pd.DataFrame:
    for col in NUMERIC_COLUMNS:
        try:
            df[col] = pd.to_numeric(df[col], errors='raise')
        except (ValueError, TypeError) as e:
            raise ValueError(f"Column '{col}' contains non-numeric values: {e}") from e
    return df


def load_data(file_path: str) -> pd.DataFrame:
    """
    Load the Hitters CSV and return the cleaned record set.

    Rows with any missing field are dropped (no imputation). League,
    Division and NewLeague are converted to two-level categoricals.

    Args:
        file_path: Path to the CSV file

    Returns:
        Cleaned DataFrame indexed by player name when the file provides one

    Raises:
        FileNotFoundError: If data file doesn't exist
        ValueError: If columns are missing, values cannot be coerced, or
            no records survive cleaning
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    df = pd.read_csv(file_path)

    # R exports write player names into an unnamed leading column
    first = df.columns[0] if len(df.columns) else None
    if first is not None and (first == "" or str(first).startswith("Unnamed")):
        df = df.set_index(first)
        df.index.name = "Player"

    logger.info(f"Loaded data from {file_path}: {df.shape[0]} rows × {df.shape[1]} columns")

    missing_cols = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing_cols:
        raise ValueError(
            f"Missing required columns: {missing_cols}. "
            f"Columns: {list(df.columns)}"
        )

    df = df[REQUIRED_COLUMNS].copy()

    n_raw = len(df)
    df = df.dropna(how='any')
    n_dropped = n_raw - len(df)
    if n_dropped:
        logger.info(f"Dropped {n_dropped} rows with missing values ({len(df)} remain)")

    if df.empty:
        raise ValueError(f"No usable records in {file_path} after removing missing values")

    df = _coerce_numerics(df)
    df = _coerce_categoricals(df)

    return df


def validate_data(df: pd.DataFrame, strict: bool = True) -> Tuple[bool, Dict[str, Any]]:
    """
    Validate the invariants of the cleaned record set.

    Checks:
        - Salary is present and strictly positive
        - Years played is at least 1
        - No duplicate rows

    Args:
        df: DataFrame to validate
        strict: If True, raise errors on validation failure

    Returns:
        Tuple of (is_valid, validation_report)
    """
    report = {
        "total_rows": len(df),
        "total_columns": len(df.columns),
        "column_names": list(df.columns),
        "issues": []
    }

    if df.empty:
        report["issues"].append("Dataset is empty")

    # Check 1: Salary
    if TARGET_COLUMN in df.columns:
        salary = df[TARGET_COLUMN]
        n_missing = int(salary.isnull().sum())
        n_nonpositive = int((salary <= 0).sum())
        if n_missing:
            issue = f"Missing salary values: {n_missing}"
            report["issues"].append(issue)
            logger.warning(issue)
        if n_nonpositive:
            issue = f"Non-positive salary values: {n_nonpositive}"
            report["issues"].append(issue)
            logger.warning(issue)
    else:
        report["issues"].append(f"Target column '{TARGET_COLUMN}' not found")

    # Check 2: Years played is a denominator downstream
    if "Years" in df.columns:
        n_bad_years = int((df["Years"] < 1).sum())
        if n_bad_years:
            issue = f"Records with Years < 1: {n_bad_years}"
            report["issues"].append(issue)
            logger.warning(issue)

    # Check 3: Duplicate rows
    duplicates = int(df.duplicated().sum())
    if duplicates > 0:
        issue = f"Duplicate rows found: {duplicates}"
        report["issues"].append(issue)
        logger.warning(issue)

    is_valid = len(report["issues"]) == 0
    report["is_valid"] = is_valid

    if strict and not is_valid:
        raise ValueError(f"Data validation failed: {report['issues']}")

    return is_valid, report


def get_data_summary(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Generate summary statistics for the dataset.

    Args:
        df: DataFrame to summarize

    Returns:
        Dictionary containing summary statistics
    """
    summary = {
        "shape": df.shape,
        "columns": list(df.columns),
        "dtypes": df.dtypes.astype(str).to_dict(),
        "statistics": {},
        "levels": {}
    }

    quantiles = df.select_dtypes(include=[np.number]).describe().T
    for col, row in quantiles.iterrows():
        summary["statistics"][col] = {
            stat: float(row[stat]) for stat in ("min", "25%", "50%", "mean", "75%", "max")
        }

    for col in CATEGORICAL_LEVELS:
        if col in df.columns:
            summary["levels"][col] = {
                str(k): int(v) for k, v in df[col].value_counts(sort=False).items()
            }

    return summary


def print_data_summary(df: pd.DataFrame) -> None:
    """
    Print a formatted summary of the dataset to console.

    Args:
        df: DataFrame to summarize
    """
    print("\n" + "=" * 60)
    print("DATASET SUMMARY")
    print("=" * 60)
    print(f"Records: {df.shape[0]} | Columns: {df.shape[1]}")

    print("\nCategorical levels:")
    print("-" * 40)
    for col, counts in get_data_summary(df)["levels"].items():
        print(f"  {col}: " + ", ".join(f"{level}={n}" for level, n in counts.items()))

    print("\nNumeric columns:")
    print("-" * 40)
    print(df.describe().round(2).to_string())
    print("=" * 60 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    data_path = "data/Hitters.csv"
    if os.path.exists(data_path):
        df = load_data(data_path)
        print_data_summary(df)
        is_valid, report = validate_data(df, strict=False)
        print(f"Validation passed: {is_valid}")
    else:
        print(f"No data file found at {data_path}")
        print("Place the Hitters CSV there to test the data loader.")
