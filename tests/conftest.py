"""Shared fixtures for the aggregation tests."""

import pytest
from shapely.geometry import Point

from config.config_loader import AggregationSettings
from core.context import RunContext
from core.models import Feature


def make_point_features(coords, start_id=0, **properties):
    return [
        Feature(start_id + i, Point(x, y), dict(properties))
        for i, (x, y) in enumerate(coords)
    ]


class OffsetGeodesy:
    """Geodesy stand-in that shifts x by a fixed offset."""

    def __init__(self, offset=1000.0):
        self.offset = offset
        self.calls = 0

    def reproject(self, point, source_crs, target_crs):
        self.calls += 1
        return Point(point.x + self.offset, point.y)


@pytest.fixture
def scenario_features():
    return make_point_features([(0, 0), (0, 0.5), (10, 10)])


@pytest.fixture
def settings():
    return AggregationSettings(epsilon=1.0, batch_size=2, worker_count=2)


@pytest.fixture
def context(settings):
    return RunContext.create(settings, geodesy=OffsetGeodesy())
