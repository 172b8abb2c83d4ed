import pytest
from shapely.geometry import Point

from conftest import OffsetGeodesy, make_point_features
from config.config_loader import AggregationSettings
from core.concatenate import FeatureConcatenator
from core.exceptions import BatchProcessingError, InvalidParameter, ProjectionError
from core.models import BoundingBox, FeatureCollection
from core.pipeline import aggregate


def test_aggregate_plain_features(scenario_features):
    domain = aggregate(scenario_features, AggregationSettings(epsilon=1.0), geodesy=OffsetGeodesy())
    assert domain.feature_ids() == (0, 2)
    assert domain.bounds == BoundingBox(0, 0, 10, 10)
    assert domain.metadata['source_count'] == 1
    assert domain.metadata['input_feature_count'] == 3


def test_parallel_and_serial_agree():
    features = make_point_features([(i * 0.4, (i % 7) * 0.4) for i in range(60)])
    settings = AggregationSettings(epsilon=0.5, batch_size=len(features), worker_count=1)
    parallel = aggregate(features, settings, geodesy=OffsetGeodesy())
    serial = aggregate(features, settings, geodesy=OffsetGeodesy(), parallel=False)
    assert parallel == serial


def test_aggregate_collections_with_id_collisions():
    first = FeatureCollection(make_point_features([(0, 0), (5, 5)]), name='a')
    second = FeatureCollection(make_point_features([(0, 0.2), (20, 20)]), name='b')

    domain = aggregate([first, second], AggregationSettings(epsilon=0.5), geodesy=OffsetGeodesy())

    assert domain.metadata['source_count'] == 2
    assert domain.metadata['reassigned_ids'] == 2
    # (0, 0) and (0, 0.2) merge; the second collection's ids became 2 and 3
    assert domain.feature_ids() == (0, 1, 3)
    assert domain.features[0].properties['merged_ids'] == [0, 2]


def test_aggregate_reprojects_to_target_crs():
    geodesy = OffsetGeodesy(offset=100.0)
    local = FeatureCollection(make_point_features([(100, 0)]), crs='EPSG:3857')
    remote = FeatureCollection(make_point_features([(0, 0)], start_id=1), crs='EPSG:4326')
    settings = AggregationSettings(epsilon=0.5, target_crs='EPSG:3857')

    domain = aggregate([local, remote], settings, geodesy=geodesy)

    assert domain.feature_ids() == (0,)
    assert domain.features[0].properties['merged_count'] == 2


def test_aggregate_applies_scale():
    features = make_point_features([(0, 0), (2, 0)])
    domain = aggregate(features, AggregationSettings(epsilon=0.1, scale=2.0), geodesy=OffsetGeodesy())
    assert domain.features[0].geometry.equals(Point(-1, 0))
    assert domain.features[1].geometry.equals(Point(3, 0))


def test_aggregate_accepts_generators():
    features = (f for f in make_point_features([(0, 0), (1, 1)]))
    domain = aggregate(features, AggregationSettings(epsilon=0.1), geodesy=OffsetGeodesy())
    assert domain.feature_ids() == (0, 1)


def test_empty_input_is_not_an_error():
    domain = aggregate([], geodesy=OffsetGeodesy())
    assert domain.is_empty
    assert not domain.bounds.is_defined


@pytest.mark.parametrize('overrides', [
    {'epsilon': -1.0},
    {'batch_size': 0},
    {'worker_count': 0},
    {'scale': 0.0},
    {'hull_tolerance': float('nan')},
])
def test_invalid_settings_fail_before_processing(overrides):
    geodesy = OffsetGeodesy()
    remote = FeatureCollection(make_point_features([(0, 0)]), crs='EPSG:4326')
    with pytest.raises(InvalidParameter):
        aggregate([remote], AggregationSettings(target_crs='EPSG:3857', **overrides), geodesy=geodesy)
    assert geodesy.calls == 0


class FailingGeodesy:
    """Geodesy stand-in whose every reprojection fails."""

    def __init__(self):
        self.calls = 0

    def reproject(self, point, source_crs, target_crs):
        self.calls += 1
        raise ProjectionError("coordinate outside projection domain", source_crs, target_crs)


@pytest.mark.parametrize('parallel, batch_index', [(True, 1), (False, 0)])
def test_reprojection_failure_is_a_batch_failure(parallel, batch_index):
    local = FeatureCollection(make_point_features([(0, 0), (1, 1)]), crs='EPSG:3857')
    remote = FeatureCollection(make_point_features([(5, 5), (6, 6)], start_id=2), crs='EPSG:4326')
    settings = AggregationSettings(target_crs='EPSG:3857', batch_size=2, worker_count=2)
    geodesy = FailingGeodesy()

    with pytest.raises(BatchProcessingError) as excinfo:
        aggregate([local, remote], settings, geodesy=geodesy, parallel=parallel)

    assert excinfo.value.batch_index == batch_index
    assert isinstance(excinfo.value.cause, ProjectionError)
    assert excinfo.value.__cause__ is excinfo.value.cause
    assert geodesy.calls > 0


def test_missing_geodesy_service_fails_before_batches():
    remote = FeatureCollection(make_point_features([(0, 0)]), crs='EPSG:4326')
    concatenator = FeatureConcatenator(target_crs='EPSG:3857')
    with pytest.raises(InvalidParameter):
        concatenator.aligner([remote])
