"""
Data Loader Module
==================

Handles shapefile ingestion, centroid flattening, response synthesis and
basic data quality checks.

Functions:
    - load_config: Load YAML configuration file
    - load_shapefile: Read a district polygon layer with its attribute table
    - flatten_to_centroids: Reduce polygons to centroid coordinates
    - synthesize_response: Attach the simulated response column
    - validate_data: Check data quality constraints
    - print_data_summary: Console overview of the district table
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

import pandas as pd
import numpy as np
import geopandas as gpd
import yaml

logger = logging.getLogger(__name__)

DEFAULT_CENTROID_CRS = "EPSG:5070"


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


def load_shapefile(file_path: str) -> gpd.GeoDataFrame:
    """
    Load a polygon layer (geometry plus attribute table).

    Any vector format readable by geopandas is accepted; the expected
    input is a shapefile bundle (.shp with its .shx/.dbf/.prj siblings).

    Args:
        file_path: Path to the .shp file

    Returns:
        GeoDataFrame with one row per polygon

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Shapefile not found: {file_path}")

    gdf = gpd.read_file(file_path)
    logger.info(
        f"Loaded {len(gdf)} features from {file_path} (crs={gdf.crs})"
    )
    return gdf


def flatten_to_centroids(
    gdf: gpd.GeoDataFrame,
    centroid_crs: Optional[str] = DEFAULT_CENTROID_CRS
) -> pd.DataFrame:
    """
    Replace each polygon with its centroid and drop the geometry.

    Centroids are computed in ``centroid_crs`` (a projected CRS) and then
    converted back into the source CRS, so lon/lat inputs get a true
    geometric centroid. Layers without a CRS are used as-is.

    Args:
        gdf: Polygon GeoDataFrame
        centroid_crs: Projected CRS used for the centroid computation

    Returns:
        Plain DataFrame with ``x`` and ``y`` first, then the attributes
    """
    if gdf.crs is not None and centroid_crs is not None:
        centroids = gdf.geometry.to_crs(centroid_crs).centroid.to_crs(gdf.crs)
    else:
        centroids = gdf.geometry.centroid

    attributes = pd.DataFrame(gdf.drop(columns=gdf.geometry.name))
    df = pd.concat(
        [
            pd.DataFrame({'x': centroids.x, 'y': centroids.y}, index=gdf.index),
            attributes
        ],
        axis=1
    )

    logger.info(f"Flattened {len(df)} polygons to centroid records")
    return df.reset_index(drop=True)


def synthesize_response(
    df: pd.DataFrame,
    column: str = "revenue",
    mean: float = 100000.0,
    sd: float = 25000.0,
    seed: int = 42
) -> pd.DataFrame:
    """
    Attach a synthetic response drawn from Normal(mean, sd).

    The values bear no relationship to the other attributes.
    """
    rng = np.random.default_rng(seed)
    df = df.copy()
    df[column] = rng.normal(loc=mean, scale=sd, size=len(df))
    logger.info(f"Synthesized response '{column}' ~ N({mean}, {sd}) with seed {seed}")
    return df


def load_district_data(
    file_path: str,
    config: Dict[str, Any]
) -> pd.DataFrame:
    """
    Load the district layer, flatten it and attach the response.

    Args:
        file_path: Path to the shapefile
        config: Configuration dictionary

    Returns:
        Flat DataFrame, one row per district
    """
    data_config = config.get('data', {})
    response_config = config.get('response', {})

    gdf = load_shapefile(file_path)
    df = flatten_to_centroids(
        gdf,
        centroid_crs=data_config.get('centroid_crs', DEFAULT_CENTROID_CRS)
    )
    return synthesize_response(
        df,
        column=response_config.get('column', 'revenue'),
        mean=response_config.get('mean', 100000.0),
        sd=response_config.get('sd', 25000.0),
        seed=response_config.get('seed', 42)
    )


def validate_data(df: pd.DataFrame, strict: bool = True) -> Tuple[bool, Dict[str, Any]]:
    """
    Check the flattened district table before modeling.

    Flags missing attributes, repeated records, districts sharing a centroid
    and numeric values more than 4 standard deviations from their column
    mean.

    Args:
        df: Flattened district table
        strict: Raise instead of returning when an issue is found

    Returns:
        Tuple of (is_valid, validation_report)
    """
    issues = []
    report: Dict[str, Any] = {"n_rows": len(df), "n_columns": df.shape[1]}

    missing = df.isna().sum()
    missing = missing[missing > 0]
    if len(missing):
        report["missing_by_column"] = missing.to_dict()
        issues.append(f"{int(missing.sum())} missing values in {list(missing.index)}")

    n_repeated = int(df.duplicated().sum())
    if n_repeated:
        issues.append(f"{n_repeated} repeated records")

    if {'x', 'y'}.issubset(df.columns):
        n_shared = int(df.duplicated(subset=['x', 'y']).sum())
        if n_shared:
            issues.append(f"{n_shared} districts share a centroid with another district")

    numeric = df.select_dtypes(include=[np.number])
    z = (numeric - numeric.mean()) / numeric.std().replace(0, np.nan)
    extreme = (z.abs() > 4).sum()
    for col, count in extreme[extreme > 0].items():
        issues.append(f"'{col}' has {int(count)} values beyond 4 standard deviations")

    for issue in issues:
        logger.warning(issue)

    report["issues"] = issues
    report["is_valid"] = not issues

    if strict and issues:
        raise ValueError(f"Data validation failed: {issues}")

    return report["is_valid"], report


def print_data_summary(df: pd.DataFrame) -> None:
    """Print row/column counts, centroid extent and numeric statistics."""
    print("\n" + "=" * 60)
    print("DISTRICT TABLE")
    print("=" * 60)
    print(f"Districts: {len(df)}")
    print(f"Attributes: {df.shape[1]}")

    if {'x', 'y'}.issubset(df.columns):
        print(f"Centroid x range: {df['x'].min():.4f} to {df['x'].max():.4f}")
        print(f"Centroid y range: {df['y'].min():.4f} to {df['y'].max():.4f}")

    non_numeric = df.select_dtypes(exclude=[np.number]).columns.tolist()
    if non_numeric:
        print(f"Non-numeric columns: {', '.join(non_numeric)}")

    print("\nNumeric columns:")
    print("-" * 60)
    print(df.describe().T[['mean', 'std', 'min', 'max']].round(2).to_string())
    print("=" * 60 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    config = load_config()
    shapefile = config.get('data', {}).get('shapefile_path', 'data/raw/districts.shp')

    if Path(shapefile).exists():
        table = load_district_data(shapefile, config)
        print_data_summary(table)
        print(f"Valid: {validate_data(table, strict=False)[0]}")
    else:
        print(f"No shapefile at {shapefile}; run `python main.py --generate-demo` first.")
