"""
Synthetic Districts
===================

Builds a small grid of square polygon "districts" carrying the demographic
attribute schema of the default configuration. Used for demos and tests
when the real congressional district shapefile is not available.
"""

import logging
from pathlib import Path

import numpy as np
import geopandas as gpd
from shapely.geometry import box

logger = logging.getLogger(__name__)


def generate_districts(
    n_districts: int = 400,
    seed: int = 1337,
    origin=(-124.0, 25.0),
    cell_size: float = 1.0
) -> gpd.GeoDataFrame:
    """
    Generate ``n_districts`` square districts laid out on a grid in EPSG:4326.

    Population columns are internally consistent
    (``POP_TOTAL == POP_MALE + POP_FEMALE``), which gives the collinearity
    filter something to remove.

    Args:
        n_districts: Number of polygons
        seed: Random seed
        origin: Lon/lat of the lower-left corner of the grid
        cell_size: Edge length of each square in degrees

    Returns:
        GeoDataFrame with a DISTRICT id, demographic columns and geometry
    """
    rng = np.random.default_rng(seed)
    n_cols = int(np.ceil(np.sqrt(n_districts)))
    lon0, lat0 = origin

    geometries = []
    for i in range(n_districts):
        row, col = divmod(i, n_cols)
        x0 = lon0 + col * cell_size
        y0 = lat0 + row * cell_size
        geometries.append(box(x0, y0, x0 + cell_size, y0 + cell_size))

    pop_male = np.round(rng.lognormal(12.8, 0.12, n_districts)).astype(int)
    pop_female = np.round(rng.lognormal(12.8, 0.12, n_districts)).astype(int)
    pop_total = pop_male + pop_female

    under_18 = rng.uniform(0.18, 0.28, n_districts)
    over_65 = rng.uniform(0.10, 0.24, n_districts)

    gdf = gpd.GeoDataFrame(
        {
            'DISTRICT': [f"CD{i + 1:03d}" for i in range(n_districts)],
            'POP_TOTAL': pop_total,
            'POP_MALE': pop_male,
            'POP_FEMALE': pop_female,
            'AGE_U18': np.round(pop_total * under_18).astype(int),
            'AGE_65P': np.round(pop_total * over_65).astype(int),
            'MEDIAN_AGE': np.round(rng.normal(38.5, 3.5, n_districts), 1),
            'EDU_HS': np.round(rng.uniform(0.78, 0.95, n_districts) * 100, 2),
            'EDU_BACH': np.round(rng.lognormal(3.3, 0.3, n_districts), 2),
            'MED_INCOME': np.round(rng.lognormal(11.0, 0.25, n_districts), 0),
            'PCT_POV': np.round(rng.gamma(4.0, 3.2, n_districts), 2),
            'LAND_AREA': np.round(rng.lognormal(8.5, 1.4, n_districts), 1),
        },
        geometry=geometries,
        crs="EPSG:4326"
    )

    logger.info(f"Generated {n_districts} synthetic districts (seed={seed})")
    return gdf


def write_districts(gdf: gpd.GeoDataFrame, file_path: str) -> str:
    """Write districts as a shapefile bundle, creating parent directories."""
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    gdf.to_file(file_path)
    logger.info(f"Wrote {len(gdf)} districts to {file_path}")
    return str(file_path)
