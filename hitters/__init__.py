"""
Hitters Salary Analysis
=======================

Regression pipeline predicting baseball player salary from season and
career statistics.

Modules:
    - data_loader: CSV ingestion, cleaning and validation
    - preprocessing: Per-year averages, design matrix, partitions and folds
    - eda: Exploratory Data Analysis
    - subset_selection: Best-subset, forward and backward stepwise selection
    - regularization: Ridge and lasso paths with cross-validated penalty
    - projection: Principal-components and partial-least-squares regression
    - evaluation: Model comparison and reporting
"""

__version__ = "1.0.0"
__author__ = "Hitters Analysis Team"
