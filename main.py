#!/usr/bin/env python3
"""
Hitters Salary Analysis - Main Pipeline
=======================================

Orchestrates the salary regression analysis end to end.

Phases:
    1. EDA - Exploratory Data Analysis
    2. Subset - Best-subset selection (validation set and 10-fold CV)
    3. Ridge / Lasso - Penalized regression with cross-validated penalty
    4. PCR / PLS - Projection regression with cross-validated components
    5. Compare - Test-set MSE comparison and best model

Usage:
    # Run complete pipeline. With the default exhaustive subset search the
    # subset phase refits all 2^22 subsets twelve times (full data, the
    # validation split and ten folds), which takes several minutes.
    python main.py --data data/Hitters.csv

    # Run specific phase
    python main.py --data data/Hitters.csv --phase lasso

    # Run with custom config
    python main.py --data data/Hitters.csv --config config/config.yaml
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any

import pandas as pd

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from hitters.data_loader import load_config, load_data, validate_data, print_data_summary
from hitters.preprocessing import prepare_features, print_preprocessing_summary, draw_train_mask
from hitters.eda import generate_eda_report, print_correlation_insights
from hitters.subset_selection import run_subset_selection, print_subset_report
from hitters.regularization import run_regularized, print_regularized_report, RIDGE, LASSO
from hitters.projection import run_projection, print_projection_report
from hitters.evaluation import evaluate_models, print_comparison_report, save_best_model

logger = logging.getLogger(__name__)

MODEL_PHASES = ['subset', 'ridge', 'lasso', 'pcr', 'pls']


def setup_logging(level: str = "INFO", log_file: bool = True) -> None:
    """Configure logging for the pipeline."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(
            logging.FileHandler(f'pipeline_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')
        )
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )


def prepare_data(data_path: str, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Load, validate and feature-engineer the dataset.

    Failures here are fatal: every later phase depends on this output.
    """
    print("\n📊 Loading data...")
    df = load_data(data_path)
    print_data_summary(df)

    is_valid, validation_report = validate_data(df, strict=False)
    if not is_valid:
        print("⚠️  Data validation warnings detected. Proceeding anyway...")

    features = prepare_features(df, config)
    print_preprocessing_summary(features)
    return features


def draw_partitions(n: int, config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Draw the subset-selection and shrinkage partitions.

    With split.unify the subset phase reuses the shrinkage half split.
    """
    split_config = config.get('split', {})
    shrinkage = draw_train_mask(n, seed=split_config.get('shrinkage_seed', 1), scheme="half")
    if split_config.get('unify', False):
        subset = shrinkage
    else:
        subset = draw_train_mask(n, seed=split_config.get('subset_seed', 1), scheme="bernoulli")
    return {'subset': subset, 'shrinkage': shrinkage}


def run_eda(features: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 1: Exploratory Data Analysis.

    Args:
        features: Output of prepare_data
        config: Configuration dictionary

    Returns:
        EDA report dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 1: EXPLORATORY DATA ANALYSIS")
    print("=" * 70)

    eda_config = config.get('eda', {})
    output_dir = config.get('output', {}).get('figures_path', 'reports/figures/')

    report = generate_eda_report(
        features['data'],
        output_dir=output_dir,
        scatter_feature=eda_config.get('scatter_feature', 'CRuns'),
        show_plots=False
    )

    corr_df = pd.DataFrame(report["correlation_matrix"])
    print_correlation_insights(corr_df, threshold=eda_config.get('correlation_threshold', 0.5))

    print(f"\n✓ EDA complete. {len(report['figures'])} figures saved to {output_dir}")

    return report


def run_model_phase(
    phase: str,
    features: Dict[str, Any],
    partitions: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute one modelling phase and print its report.

    Args:
        phase: One of 'subset', 'ridge', 'lasso', 'pcr', 'pls'
        features: Output of prepare_data
        partitions: Output of draw_partitions
        config: Configuration dictionary

    Returns:
        Result dictionary of the phase
    """
    print("\n" + "=" * 70)
    print(f"PHASE: {phase.upper()}")
    print("=" * 70)

    X, y = features['X'], features['y']

    if phase == 'subset':
        result = run_subset_selection(X, y, config, train_mask=partitions['subset'])
        print_subset_report(result)
    elif phase == 'ridge':
        result = run_regularized(X, y, config, mixing=RIDGE, train_mask=partitions['shrinkage'])
        print_regularized_report(result)
    elif phase == 'lasso':
        result = run_regularized(X, y, config, mixing=LASSO, train_mask=partitions['shrinkage'])
        print_regularized_report(result)
    elif phase in ('pcr', 'pls'):
        result = run_projection(X, y, config, method=phase, train_mask=partitions['shrinkage'])
        print_projection_report(result)
    else:
        raise ValueError(f"Unknown phase: {phase}. Choose from: {MODEL_PHASES}")

    return result


def run_comparison(
    model_results: Dict[str, Dict[str, Any]],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 5: Model Comparison.

    Args:
        model_results: phase name -> result dictionary
        config: Configuration dictionary

    Returns:
        Evaluation result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 5: MODEL COMPARISON")
    print("=" * 70)

    output_config = config.get('output', {})
    result = evaluate_models(
        model_results,
        output_dir=output_config.get('reports_path', 'reports/'),
        show_plots=False
    )
    print_comparison_report(result['comparison'])

    model_path = output_config.get('model_path')
    if model_path:
        save_best_model(model_results, result['comparison']['best_model'], model_path)

    return result


def run_full_pipeline(
    data_path: str,
    config_path: str = "config/config.yaml",
    log_level: str = None
) -> Dict[str, Any]:
    """
    Execute the complete pipeline.

    Modelling phases are independent of one another: a failure in one is
    logged and recorded, the remaining phases still run, and the
    comparison covers the phases that succeeded.

    Args:
        data_path: Path to input CSV file
        config_path: Path to configuration file
        log_level: Overrides the configured logging level

    Returns:
        Dictionary containing all phase results and a 'failures' mapping
    """
    print("\n" + "=" * 70)
    print("HITTERS SALARY ANALYSIS PIPELINE")
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    config = load_config(config_path)
    setup_logging(log_level or config.get('logging', {}).get('level', 'INFO'))

    features = prepare_data(data_path, config)
    partitions = draw_partitions(len(features['X']), config)

    results = {
        'config': config,
        'data_shape': features['data'].shape,
        'feature_names': features['feature_names'],
        'models': {},
        'failures': {}
    }

    try:
        results['eda'] = run_eda(features, config)
    except Exception as e:
        logger.error(f"EDA failed: {e}", exc_info=True)
        results['failures']['eda'] = str(e)

    for phase in MODEL_PHASES:
        try:
            results['models'][phase] = run_model_phase(phase, features, partitions, config)
        except Exception as e:
            logger.error(f"Phase '{phase}' failed: {e}", exc_info=True)
            results['failures'][phase] = str(e)

    if results['models']:
        results['evaluation'] = run_comparison(results['models'], config)

    print("\n" + "=" * 70)
    print("PIPELINE COMPLETE" if not results['failures'] else "PIPELINE COMPLETE WITH FAILURES")
    print("=" * 70)
    print(f"  • Records: {features['X'].shape[0]} | Predictors: {features['X'].shape[1]}")
    for phase, model_result in results['models'].items():
        print(f"  • {phase:<7} test MSE: {model_result['test_mse']:.2f}")
    if 'evaluation' in results:
        print(f"  • Best model: {results['evaluation']['comparison']['best_model']}")
    for phase, message in results['failures'].items():
        print(f"  ✗ {phase} failed: {message}")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return results


def run_single_phase(
    phase: str,
    data_path: str,
    config_path: str = "config/config.yaml",
    log_level: str = None
) -> Dict[str, Any]:
    """
    Execute a single phase of the pipeline.

    Args:
        phase: Phase to run ('eda', 'subset', 'ridge', 'lasso', 'pcr', 'pls')
        data_path: Path to input CSV file
        config_path: Path to configuration file
        log_level: Overrides the configured logging level

    Returns:
        Phase result dictionary
    """
    config = load_config(config_path)
    setup_logging(log_level or config.get('logging', {}).get('level', 'INFO'))

    features = prepare_data(data_path, config)

    if phase == 'eda':
        return run_eda(features, config)

    if phase in MODEL_PHASES:
        partitions = draw_partitions(len(features['X']), config)
        return run_model_phase(phase, features, partitions, config)

    raise ValueError(f"Unknown phase: {phase}. Choose from: eda, {', '.join(MODEL_PHASES)}")


def main():
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Salary regression analysis of the Hitters dataset",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --data data/Hitters.csv
  python main.py --data data/Hitters.csv --phase subset
  python main.py --data data/Hitters.csv --config config/custom.yaml
        """
    )

    parser.add_argument(
        '--data', '-d',
        type=str,
        default='data/Hitters.csv',
        help='Path to the input CSV file (default: data/Hitters.csv)'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--phase', '-p',
        type=str,
        choices=['eda'] + MODEL_PHASES + ['all'],
        default='all',
        help='Phase to run (default: all)'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args()

    if not Path(args.data).exists():
        print(f"Error: Data file not found: {args.data}")
        print("\nPlace the Hitters CSV file in the specified location.")
        print("Expected format: CSV with the 20 Hitters columns, player names in the first column")
        sys.exit(1)

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        sys.exit(1)

    log_level = 'DEBUG' if args.verbose else None

    try:
        if args.phase == 'all':
            results = run_full_pipeline(args.data, args.config, log_level)
            return 1 if results['failures'] else 0

        run_single_phase(args.phase, args.data, args.config, log_level)
        return 0

    except Exception as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
