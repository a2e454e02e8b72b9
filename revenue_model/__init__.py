"""
District Revenue Model
======================

A toy OLS pipeline predicting a simulated revenue value from the centroids
and demographics of US congressional districts.

Modules:
    - data_loader: Shapefile ingestion, centroid flattening, response synthesis
    - eda: Exploratory Data Analysis (Phase 1)
    - preprocessing: Collinearity filter, binning, flags, splitting (Phase 2)
    - model: OLS with center/scale/nzv/Yeo-Johnson preprocessing (Phase 3)
    - evaluation: Model evaluation and metrics (Phase 4)
    - prediction: Scoring new tables with a saved model (Phase 5)
    - synthetic: Synthetic district polygons for demos and tests
"""

__version__ = "1.0.0"
