import geopandas as gpd
import pytest
from shapely.geometry import Point

from conftest import OffsetGeodesy
from config.config_loader import AggregationSettings
from core.exceptions import InvalidParameter
from core.interop import domain_to_geodataframe, features_from_geodataframe, hulls_to_geodataframe
from core.models import Domain
from core.pipeline import aggregate


@pytest.fixture
def sites_gdf():
    return gpd.GeoDataFrame(
        {'site': ['a', 'b', 'c'], 'code': [11, 12, 13]},
        geometry=[Point(0, 0), Point(0, 0.5), Point(10, 10)],
        crs='EPSG:3857'
    )


def test_features_from_geodataframe(sites_gdf):
    collection = features_from_geodataframe(sites_gdf, start_id=100, name='sites')
    assert [f.id for f in collection] == [100, 101, 102]
    assert collection.features[0].properties == {'site': 'a', 'code': 11}
    assert collection.crs == 'EPSG:3857'
    assert collection.name == 'sites'


def test_id_column(sites_gdf):
    collection = features_from_geodataframe(sites_gdf, id_column='code')
    assert [f.id for f in collection] == [11, 12, 13]
    assert 'code' not in collection.features[0].properties


def test_missing_id_column(sites_gdf):
    with pytest.raises(InvalidParameter):
        features_from_geodataframe(sites_gdf, id_column='missing')


def test_domain_round_trip(sites_gdf):
    collection = features_from_geodataframe(sites_gdf)
    domain = aggregate([collection], AggregationSettings(epsilon=1.0), geodesy=OffsetGeodesy())

    out = domain_to_geodataframe(domain, crs='EPSG:3857')
    assert list(out['feature_id']) == [0, 2]
    assert list(out['site']) == ['a', 'c']
    assert out.geometry.iloc[0].equals(Point(0, 0.25))
    assert out.crs == sites_gdf.crs

    hulls = hulls_to_geodataframe(domain)
    assert list(hulls['group']) == [0, 2]
    assert list(hulls['kind']) == ['segment', 'point']


def test_empty_domain_frames():
    assert len(domain_to_geodataframe(Domain.empty())) == 0
    assert 'feature_id' in domain_to_geodataframe(Domain.empty()).columns
    assert len(hulls_to_geodataframe(Domain.empty())) == 0
