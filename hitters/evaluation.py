"""
Model Evaluation Module
=======================

Compares the test-set error of every technique, declares a winner, and
renders the validation curves behind each model's tuning choice.

Features:
    - Ranking of test MSE with a deterministic tie-break
    - Subset criteria, CV curves, coefficient paths and component curves
    - Test MSE comparison bar chart
    - Metrics JSON and persisted winning model
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
import joblib

logger = logging.getLogger(__name__)

# Tie-break order: more interpretable models first
MODEL_PREFERENCE: List[str] = ["subset", "lasso", "pls", "pcr", "ridge"]

MODEL_LABELS: Dict[str, str] = {
    "subset": "Best subset",
    "ridge": "Ridge",
    "lasso": "Lasso",
    "pcr": "PCR",
    "pls": "PLS",
}


def compare_models(test_errors: Dict[str, float]) -> Dict[str, Any]:
    """
    Rank techniques by test MSE and pick the best.

    Equal errors are ordered by MODEL_PREFERENCE; names outside it
    follow alphabetically.

    Args:
        test_errors: technique name -> test-set MSE

    Returns:
        Dictionary containing the ranking table and the best model name

    Raises:
        ValueError: If no errors are given or any error is not a finite
            positive number
    """
    if not test_errors:
        raise ValueError("No test errors to compare")

    for name, value in test_errors.items():
        if value is None or not np.isfinite(value) or value <= 0:
            raise ValueError(f"Test MSE for '{name}' must be a finite positive number, got {value}")

    def preference(name: str) -> Tuple[int, str]:
        rank = MODEL_PREFERENCE.index(name) if name in MODEL_PREFERENCE else len(MODEL_PREFERENCE)
        return rank, name

    ordered = sorted(test_errors, key=lambda name: (test_errors[name], preference(name)))

    ranking = pd.DataFrame({
        'model': ordered,
        'label': [MODEL_LABELS.get(name, name) for name in ordered],
        'test_mse': [float(test_errors[name]) for name in ordered],
    })
    ranking.index = pd.RangeIndex(1, len(ranking) + 1, name="rank")
    ranking['relative_to_best'] = ranking['test_mse'] / ranking['test_mse'].iloc[0]

    return {
        'ranking': ranking,
        'best_model': ordered[0],
        'best_test_mse': float(test_errors[ordered[0]]),
    }


def partitions_differ(results: Dict[str, Dict[str, Any]]) -> bool:
    """True when the techniques were not scored on the same held-out rows."""
    masks = [r['train_mask'] for r in results.values() if 'train_mask' in r]
    return any(not np.array_equal(masks[0], m) for m in masks[1:])


def plot_subset_criteria(
    summary: pd.DataFrame,
    figsize: Tuple[int, int] = (12, 8),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Plot RSS, adjusted R², Cp and BIC against subset size.

    Args:
        summary: Table from BestSubsetSelector.summary()
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    fig, axes = plt.subplots(2, 2, figsize=figsize)
    panels = [('rss', 'RSS', 'min'), ('adj_r2', 'Adjusted R²', 'max'),
              ('cp', 'Cp', 'min'), ('bic', 'BIC', 'min')]

    for ax, (col, label, best) in zip(axes.flatten(), panels):
        values = summary[col]
        ax.plot(values.index, values.values, marker='o', markersize=4)
        best_size = values.idxmax() if best == 'max' else values.idxmin()
        ax.scatter([best_size], [values.loc[best_size]], color='red', s=80, zorder=5,
                   label=f'Best: {best_size}')
        ax.set_xlabel('Number of predictors')
        ax.set_ylabel(label)
        ax.set_title(label, fontsize=11, fontweight='bold')
        ax.legend(fontsize=8)

    plt.suptitle('Best Subset Selection - In-Sample Criteria', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Subset criteria plot saved to {save_path}")

    return fig


def plot_subset_errors(
    validation_curve: pd.Series,
    cv_mean: pd.Series,
    figsize: Tuple[int, int] = (10, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """Validation-set and cross-validated MSE against subset size."""
    fig, ax = plt.subplots(figsize=figsize)

    ax.plot(validation_curve.index, validation_curve.values, marker='o', label='Validation set')
    ax.plot(cv_mean.index, cv_mean.values, marker='s', label='10-fold CV')
    best = cv_mean.idxmin()
    ax.axvline(best, color='red', linestyle='--', alpha=0.6, label=f'CV best: {best}')

    ax.set_xlabel('Number of predictors')
    ax.set_ylabel('MSE')
    ax.set_title('Subset Selection - Out-of-Sample Error', fontsize=14, fontweight='bold')
    ax.legend()
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Subset error plot saved to {save_path}")

    return fig


def plot_penalty_cv(
    cv_results: Dict[str, Dict[str, Any]],
    figsize: Tuple[int, int] = (14, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Cross-validated MSE (± 1 SE) against log10 penalty, one panel per model.

    Args:
        cv_results: model name -> result from cross_validate_penalty
    """
    names = list(cv_results)
    fig, axes = plt.subplots(1, len(names), figsize=figsize, squeeze=False)

    for ax, name in zip(axes[0], names):
        cv = cv_results[name]
        log_lam = np.log10(cv['lambdas'])
        ax.errorbar(log_lam, cv['cv_mean'], yerr=cv['cv_se'], fmt='o', markersize=3,
                    color='steelblue', ecolor='lightgray', alpha=0.9)
        ax.axvline(np.log10(cv['lambda_min']), color='red', linestyle='--', label='min')
        ax.axvline(np.log10(cv['lambda_1se']), color='green', linestyle=':', label='1 SE')
        ax.set_xlabel('log10(lambda)')
        ax.set_ylabel('CV MSE')
        ax.set_title(MODEL_LABELS.get(name, name), fontsize=11, fontweight='bold')
        ax.legend(fontsize=8)

    plt.suptitle('Penalty Selection by Cross-Validation', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Penalty CV plot saved to {save_path}")

    return fig


def plot_coefficient_paths(
    paths: Dict[str, pd.DataFrame],
    figsize: Tuple[int, int] = (14, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Coefficient values against log10 penalty for each penalized model.

    Args:
        paths: model name -> coef_path_ of a fitted PenalizedPath
    """
    names = list(paths)
    fig, axes = plt.subplots(1, len(names), figsize=figsize, squeeze=False)

    for ax, name in zip(axes[0], names):
        path = paths[name].iloc[1:]
        log_lam = np.log10(path.columns.to_numpy(dtype=float))
        for feature, row in path.iterrows():
            ax.plot(log_lam, row.values, linewidth=1)
        ax.axhline(0, color='k', linewidth=0.5)
        ax.set_xlabel('log10(lambda)')
        ax.set_ylabel('Coefficient')
        ax.set_title(MODEL_LABELS.get(name, name), fontsize=11, fontweight='bold')

    plt.suptitle('Coefficient Paths', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Coefficient paths saved to {save_path}")

    return fig


def plot_component_validation(
    curves: Dict[str, pd.DataFrame],
    figsize: Tuple[int, int] = (10, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """Cross-validated MSE against number of components for PCR and PLS."""
    fig, ax = plt.subplots(figsize=figsize)

    for name, curve in curves.items():
        ax.plot(curve.index, curve['cv_mse'], marker='o', markersize=4,
                label=MODEL_LABELS.get(name, name))

    ax.set_xlabel('Number of components')
    ax.set_ylabel('CV MSE')
    ax.set_title('Projection Methods - Validation Curves', fontsize=14, fontweight='bold')
    ax.legend()
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Component validation plot saved to {save_path}")

    return fig


def plot_error_summary(
    ranking: pd.DataFrame,
    figsize: Tuple[int, int] = (10, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of test MSE per technique, best model highlighted.

    Args:
        ranking: Ranking table from compare_models
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    colors = ['green'] + ['steelblue'] * (len(ranking) - 1)
    sns.barplot(x=ranking['label'], y=ranking['test_mse'], hue=ranking['label'],
                palette=colors, legend=False, ax=ax)
    for i, value in enumerate(ranking['test_mse']):
        ax.text(i, value, f'{value:,.0f}', ha='center', va='bottom', fontsize=9)

    ax.set_xlabel('Technique')
    ax.set_ylabel('Test MSE')
    ax.set_title('Test-Set MSE by Technique', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Error summary plot saved to {save_path}")

    return fig


def evaluate_models(
    results: Dict[str, Dict[str, Any]],
    output_dir: str = "reports/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Compare all fitted techniques and generate reports.

    Args:
        results: technique name -> result dictionary from its run_* function
        output_dir: Directory for output files
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing the comparison, figures and metrics file path
    """
    output_dir = Path(output_dir)
    figures_dir = output_dir / "figures"
    metrics_dir = output_dir / "metrics"

    figures_dir.mkdir(parents=True, exist_ok=True)
    metrics_dir.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 60)
    logger.info("STARTING MODEL COMPARISON")
    logger.info("=" * 60)

    comparison = compare_models({name: r['test_mse'] for name, r in results.items()})

    mixed_partitions = partitions_differ(results)
    if mixed_partitions:
        logger.warning(
            "Techniques were scored on different train/test partitions; "
            "the test MSE comparison is not like-for-like"
        )
    comparison['mixed_partitions'] = mixed_partitions

    figures = []

    if 'subset' in results:
        plot_subset_criteria(
            results['subset']['summary'],
            save_path=str(figures_dir / "model_subset_criteria.png")
        )
        plot_subset_errors(
            results['subset']['validation_curve'], results['subset']['cv_mean'],
            save_path=str(figures_dir / "model_subset_errors.png")
        )
        figures += ["model_subset_criteria.png", "model_subset_errors.png"]

    penalized = [name for name in ('ridge', 'lasso') if name in results]
    if penalized:
        plot_penalty_cv(
            {name: results[name]['cv'] for name in penalized},
            save_path=str(figures_dir / "model_penalty_cv.png")
        )
        plot_coefficient_paths(
            {name: results[name]['path'].coef_path_ for name in penalized},
            save_path=str(figures_dir / "model_coefficient_paths.png")
        )
        figures += ["model_penalty_cv.png", "model_coefficient_paths.png"]

    projected = [name for name in ('pcr', 'pls') if name in results]
    if projected:
        plot_component_validation(
            {name: results[name]['cv_curve'] for name in projected},
            save_path=str(figures_dir / "model_component_validation.png")
        )
        figures.append("model_component_validation.png")

    plot_error_summary(
        comparison['ranking'],
        save_path=str(figures_dir / "model_test_mse.png")
    )
    figures.append("model_test_mse.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    metrics = {
        'test_mse': {name: float(r['test_mse']) for name, r in results.items()},
        'best_model': comparison['best_model'],
        'mixed_partitions': mixed_partitions,
        'tuning': _tuning_summary(results),
    }
    metrics_file = metrics_dir / "model_comparison.json"
    with open(metrics_file, 'w') as f:
        json.dump(metrics, f, indent=2)
    logger.info(f"Metrics saved to {metrics_file}")

    logger.info("=" * 60)
    logger.info("MODEL COMPARISON COMPLETE")
    logger.info(f"  Best model: {comparison['best_model']} "
                f"(test MSE {comparison['best_test_mse']:.2f})")
    logger.info("=" * 60)

    return {
        'comparison': comparison,
        'figures': figures,
        'metrics_file': str(metrics_file)
    }


def _tuning_summary(results: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    tuning = {}
    if 'subset' in results:
        tuning['subset'] = {'size': int(results['subset']['selected_size']),
                            'columns': list(results['subset']['selected_columns'])}
    for name in ('ridge', 'lasso'):
        if name in results:
            tuning[name] = {'lambda': float(results[name]['best_lambda'])}
    for name in ('pcr', 'pls'):
        if name in results:
            tuning[name] = {'n_components': int(results[name]['selected_components'])}
    return tuning


def save_best_model(
    results: Dict[str, Dict[str, Any]],
    best_model: str,
    filepath: str
) -> None:
    """
    Persist the full-data fit of the winning technique with joblib.

    Args:
        results: technique name -> result dictionary
        best_model: Name of the winning technique
        filepath: Destination path
    """
    result = results[best_model]
    state = {
        'technique': best_model,
        'model': result['model'],
        'tuning': _tuning_summary({best_model: result})[best_model],
        'test_mse': float(result['test_mse']),
    }
    Path(filepath).parent.mkdir(parents=True, exist_ok=True)
    joblib.dump(state, filepath)
    logger.info(f"Best model ({best_model}) saved to {filepath}")


def print_comparison_report(comparison: Dict[str, Any]) -> None:
    """
    Print the model comparison to console.

    Args:
        comparison: Dictionary from compare_models
    """
    print("\n" + "=" * 70)
    print("MODEL COMPARISON REPORT")
    print("=" * 70)
    print(f"{'Rank':<6} {'Technique':<15} {'Test MSE':<15} {'vs best':<10}")
    print("-" * 70)

    for rank, row in comparison['ranking'].iterrows():
        print(f"{rank:<6} {row['label']:<15} {row['test_mse']:<15.2f} {row['relative_to_best']:<10.3f}")

    print("-" * 70)
    print(f"\nRecommended model: {MODEL_LABELS.get(comparison['best_model'], comparison['best_model'])}")
    if comparison.get('mixed_partitions'):
        print("  ⚠ Subset selection was scored on a different held-out set than")
        print("    the shrinkage and projection methods; compare with care.")
    print("=" * 70 + "\n")
