"""
Exploratory Data Analysis (EDA) Module
======================================

Descriptive statistics and visualizations of the player-season records.
Everything here is informational; nothing feeds the models downstream.

Functions:
    - summary_statistics: min, quartiles, mean, max per numeric column
    - plot_distributions: Histograms with KDE for all numeric columns
    - plot_salary_scatter: One predictor against Salary with a linear fit
    - plot_correlation_matrix: Pearson correlation heatmap
    - plot_salary_by_category: Salary box plots per categorical label
    - generate_eda_report: Full EDA report with all visualizations
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats

from .data_loader import CATEGORICAL_LEVELS, TARGET_COLUMN

logger = logging.getLogger(__name__)

# Set style for all plots
plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")


def summary_statistics(df: pd.DataFrame) -> pd.DataFrame:
    """Per-column min, quartiles, mean and max of the numeric columns."""
    numeric = df.select_dtypes(include=[np.number])
    table = numeric.describe().T[['min', '25%', '50%', 'mean', '75%', 'max']]
    return table


def plot_distributions(
    df: pd.DataFrame,
    columns: Optional[List[str]] = None,
    n_panel_cols: int = 4,
    figsize: Tuple[int, int] = (16, 18),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create distribution plots (histogram + KDE) for numeric columns.

    Args:
        df: DataFrame with numerical data
        columns: Specific columns to plot (default: all numeric)
        n_panel_cols: Number of panels per row
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    if columns is None:
        columns = df.select_dtypes(include=[np.number]).columns.tolist()

    n_rows = (len(columns) + n_panel_cols - 1) // n_panel_cols
    fig, axes = plt.subplots(n_rows, n_panel_cols, figsize=figsize, squeeze=False)
    axes = axes.flatten()

    for idx, col in enumerate(columns):
        ax = axes[idx]
        sns.histplot(df[col], kde=True, ax=ax, bins=30, alpha=0.7)

        mean_val = df[col].mean()
        ax.axvline(mean_val, color='red', linestyle='--', label=f'Mean: {mean_val:.1f}')

        # normaltest needs at least 8 observations
        values = df[col].dropna()
        if len(values) >= 8 and values.nunique() > 1:
            _, p_value = stats.normaltest(values)
            title = f'{col} (p={p_value:.3f})'
        else:
            title = col

        ax.set_title(title, fontsize=10, fontweight='bold')
        ax.legend(fontsize=7)

    for idx in range(len(columns), len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Distribution Analysis', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Distribution plots saved to {save_path}")

    return fig


def plot_salary_scatter(
    df: pd.DataFrame,
    feature: str,
    target: str = TARGET_COLUMN,
    figsize: Tuple[int, int] = (8, 6),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, Dict[str, float]]:
    """
    Scatter one predictor against the target with a least-squares line.

    Args:
        df: DataFrame with the predictor and target
        feature: Predictor column
        target: Target column
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Tuple of (Figure, fit statistics: slope, intercept, r, p_value)
    """
    if feature not in df.columns:
        raise ValueError(f"Scatter feature '{feature}' not found in data")

    fit = stats.linregress(df[feature], df[target])

    fig, ax = plt.subplots(figsize=figsize)
    ax.scatter(df[feature], df[target], alpha=0.6, s=20)

    xs = np.linspace(df[feature].min(), df[feature].max(), 100)
    ax.plot(xs, fit.intercept + fit.slope * xs, 'r--', linewidth=2,
            label=f'Fit: slope={fit.slope:.3f}, r={fit.rvalue:.3f}')

    ax.set_xlabel(feature)
    ax.set_ylabel(target)
    ax.set_title(f'{target} vs {feature}', fontsize=14, fontweight='bold')
    ax.legend(loc='upper left')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Scatter plot saved to {save_path}")

    fit_stats = {
        'slope': float(fit.slope),
        'intercept': float(fit.intercept),
        'r': float(fit.rvalue),
        'p_value': float(fit.pvalue)
    }
    return fig, fit_stats


def plot_correlation_matrix(
    df: pd.DataFrame,
    method: str = 'pearson',
    figsize: Tuple[int, int] = (14, 12),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.DataFrame]:
    """
    Create a correlation heatmap for all numerical columns.

    Args:
        df: DataFrame with numerical data
        method: Correlation method ('pearson', 'spearman', 'kendall')
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Tuple of (Figure, correlation matrix DataFrame)
    """
    corr_matrix = df.select_dtypes(include=[np.number]).corr(method=method)

    fig, ax = plt.subplots(figsize=figsize)

    mask = np.triu(np.ones_like(corr_matrix, dtype=bool), k=1)
    sns.heatmap(
        corr_matrix,
        mask=mask,
        annot=True,
        fmt='.2f',
        annot_kws={"size": 7},
        cmap='RdYlBu_r',
        center=0,
        square=True,
        linewidths=0.5,
        cbar_kws={"shrink": 0.8, "label": "Correlation"},
        ax=ax,
        vmin=-1,
        vmax=1
    )

    ax.set_title(f'Correlation Matrix ({method.capitalize()})',
                 fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Correlation matrix saved to {save_path}")

    return fig, corr_matrix


def plot_salary_by_category(
    df: pd.DataFrame,
    target: str = TARGET_COLUMN,
    figsize: Tuple[int, int] = (14, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """Box plots of the target for each level of each categorical label."""
    columns = [c for c in CATEGORICAL_LEVELS if c in df.columns]
    fig, axes = plt.subplots(1, len(columns), figsize=figsize, squeeze=False)

    for ax, col in zip(axes[0], columns):
        sns.boxplot(data=df, x=col, y=target, ax=ax)
        ax.set_title(f'{target} by {col}', fontsize=11, fontweight='bold')

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Category box plots saved to {save_path}")

    return fig


def generate_eda_report(
    df: pd.DataFrame,
    output_dir: str = "reports/figures/",
    scatter_feature: str = "CRuns",
    target: str = TARGET_COLUMN,
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Generate a complete EDA report with all visualizations.

    Args:
        df: DataFrame to analyze
        output_dir: Directory to save figures
        scatter_feature: Predictor plotted against the target
        target: Target column
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing EDA results and file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    report = {
        "data_shape": df.shape,
        "columns": list(df.columns),
        "figures": [],
        "correlation_matrix": None,
        "statistics": {}
    }

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS")
    logger.info("=" * 60)

    logger.info("Computing summary statistics...")
    report["statistics"] = summary_statistics(df).to_dict(orient='index')

    logger.info("Plotting distributions...")
    plot_distributions(df, save_path=str(output_dir / "01_distributions.png"))
    report["figures"].append("01_distributions.png")

    logger.info(f"Plotting {target} against {scatter_feature}...")
    _, fit_stats = plot_salary_scatter(
        df, scatter_feature, target=target,
        save_path=str(output_dir / "02_salary_scatter.png")
    )
    report["figures"].append("02_salary_scatter.png")
    report["scatter_fit"] = {"feature": scatter_feature, **fit_stats}

    logger.info("Computing correlation matrix...")
    _, corr_matrix = plot_correlation_matrix(
        df, save_path=str(output_dir / "03_correlation_matrix.png")
    )
    report["figures"].append("03_correlation_matrix.png")
    report["correlation_matrix"] = corr_matrix.to_dict()
    if target in corr_matrix.columns:
        report["target_correlations"] = (
            corr_matrix[target].drop(target).sort_values(ascending=False).to_dict()
        )

    if any(c in df.columns for c in CATEGORICAL_LEVELS):
        logger.info("Creating categorical box plots...")
        plot_salary_by_category(
            df, target=target, save_path=str(output_dir / "04_salary_by_category.png")
        )
        report["figures"].append("04_salary_by_category.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EDA COMPLETE - All figures saved to: %s", output_dir)
    logger.info("=" * 60)

    return report


def print_correlation_insights(
    corr_matrix: pd.DataFrame,
    threshold: float = 0.5,
    target: str = TARGET_COLUMN
) -> None:
    """
    Print insights about strongly correlated variables.

    Args:
        corr_matrix: Correlation matrix DataFrame
        threshold: Correlation threshold for "strong" correlation
        target: Target column ranked separately
    """
    print("\n" + "=" * 50)
    print("CORRELATION INSIGHTS")
    print("=" * 50)

    if target in corr_matrix.columns:
        print(f"\nCorrelation with {target}:")
        ranked = corr_matrix[target].drop(target).sort_values(key=np.abs, ascending=False)
        for col, value in ranked.items():
            print(f"  • {col:<10} {value:>7.3f}")

    strong_corr = []
    columns = [c for c in corr_matrix.columns if c != target]
    for i in range(len(columns)):
        for j in range(i + 1, len(columns)):
            corr_val = corr_matrix.loc[columns[i], columns[j]]
            if abs(corr_val) >= threshold:
                strong_corr.append({
                    "col1": columns[i],
                    "col2": columns[j],
                    "correlation": corr_val
                })

    if strong_corr:
        print(f"\nStrongly correlated predictors (|r| >= {threshold}):")
        for item in sorted(strong_corr, key=lambda x: abs(x["correlation"]), reverse=True):
            print(f"  • {item['col1']} ↔ {item['col2']}: {item['correlation']:.3f}")
        print("\n  Collinear predictors favour shrinkage and projection methods.")
    else:
        print(f"\nNo strongly correlated predictors (|r| >= {threshold})")

    print("=" * 50 + "\n")
