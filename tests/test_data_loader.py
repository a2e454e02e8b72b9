"""
Test Suite for Data Loader Module
===================================

Tests for configuration loading, shapefile ingestion, centroid
flattening and response synthesis.
"""

import pytest
import numpy as np
import pandas as pd
import geopandas as gpd
from shapely.geometry import box, Polygon

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from revenue_model.data_loader import (
    load_config,
    load_shapefile,
    flatten_to_centroids,
    synthesize_response,
    load_district_data,
    validate_data,
)
from revenue_model.synthetic import generate_districts, write_districts


class TestLoadConfig:
    """Tests for load_config."""

    def test_project_config(self):
        config = load_config(str(Path(__file__).parent.parent / 'config' / 'config.yaml'))

        assert config['response']['column'] == 'revenue'
        assert config['split']['train_fraction'] == 0.9
        assert len(config['features']['flags']) == 3
        assert [len(b['labels']) for b in config['features']['bins']] == [5, 3]

    def test_missing_config(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / 'missing.yaml'))

    def test_empty_config(self, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text('')

        assert load_config(str(path)) == {}


class TestFlattenToCentroids:
    """Tests for flatten_to_centroids."""

    def test_planar_centroids_without_crs(self):
        gdf = gpd.GeoDataFrame(
            {'name': ['a', 'b']},
            geometry=[box(0, 0, 2, 2), Polygon([(0, 0), (3, 0), (0, 3)])]
        )

        df = flatten_to_centroids(gdf)

        assert list(df.columns) == ['x', 'y', 'name']
        assert df.loc[0, 'x'] == pytest.approx(1.0)
        assert df.loc[0, 'y'] == pytest.approx(1.0)
        assert df.loc[1, 'x'] == pytest.approx(1.0)
        assert df.loc[1, 'y'] == pytest.approx(1.0)

    def test_one_record_per_polygon(self):
        gdf = generate_districts(50)

        df = flatten_to_centroids(gdf)

        assert len(df) == len(gdf)
        assert 'geometry' not in df.columns
        assert not isinstance(df, gpd.GeoDataFrame)
        assert df['DISTRICT'].is_unique

    def test_projected_centroids_stay_inside_polygons(self):
        gdf = generate_districts(25, cell_size=0.5)

        df = flatten_to_centroids(gdf)
        points = gpd.points_from_xy(df['x'], df['y'], crs=gdf.crs)

        assert all(poly.contains(point) for poly, point in zip(gdf.geometry, points))
        np.testing.assert_allclose(
            df['x'], [g.centroid.x for g in gdf.geometry], atol=0.01
        )


class TestSynthesizeResponse:
    """Tests for synthesize_response."""

    @pytest.fixture
    def sample_data(self):
        return pd.DataFrame({'x': np.arange(2000.0), 'y': np.arange(2000.0)})

    def test_distribution(self, sample_data):
        df = synthesize_response(sample_data, mean=50.0, sd=5.0, seed=1)

        assert df['revenue'].mean() == pytest.approx(50.0, abs=0.5)
        assert df['revenue'].std() == pytest.approx(5.0, abs=0.5)

    def test_reproducible(self, sample_data):
        first = synthesize_response(sample_data, seed=3)
        second = synthesize_response(sample_data, seed=3)

        pd.testing.assert_series_equal(first['revenue'], second['revenue'])

    def test_input_untouched(self, sample_data):
        synthesize_response(sample_data, column='profit')

        assert 'profit' not in sample_data.columns


class TestShapefileIO:
    """Tests for reading the district shapefile."""

    def test_missing_shapefile(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_shapefile(str(tmp_path / 'districts.shp'))

    def test_round_trip(self, tmp_path):
        path = write_districts(generate_districts(30), str(tmp_path / 'raw' / 'districts.shp'))

        gdf = load_shapefile(path)

        assert len(gdf) == 30
        assert gdf.crs is not None
        assert 'POP_TOTAL' in gdf.columns

    def test_load_district_data(self, tmp_path):
        path = write_districts(generate_districts(30), str(tmp_path / 'districts.shp'))
        config = {'response': {'column': 'revenue', 'mean': 10.0, 'sd': 1.0, 'seed': 5}}

        df = load_district_data(path, config)

        assert list(df.columns[:2]) == ['x', 'y']
        assert 'revenue' in df.columns
        assert len(df) == 30


class TestValidateData:
    """Tests for validate_data."""

    def test_clean_data(self):
        df = pd.DataFrame({'a': [1.0, 2.0, 3.0], 'b': [3.0, 1.0, 2.0]})

        is_valid, report = validate_data(df)

        assert is_valid
        assert report['issues'] == []

    def test_missing_values_non_strict(self):
        df = pd.DataFrame({'a': [1.0, None, 3.0], 'b': [3.0, 1.0, 2.0]})

        is_valid, report = validate_data(df, strict=False)

        assert not is_valid
        assert report['missing_by_column'] == {'a': 1}

    def test_strict_raises(self):
        df = pd.DataFrame({'a': [1.0, 1.0], 'b': [2.0, 2.0]})

        with pytest.raises(ValueError, match="validation failed"):
            validate_data(df, strict=True)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
