import pytest
from shapely.geometry import LineString, MultiPoint, Point, Polygon

from core.models import BoundingBox, Cluster, Domain, Feature, FeatureCollection, Hull, combine_bounds
from utils.geometry_helpers import coordinates_centroid, count_vertices, flatten_coordinates


def test_undefined_bounding_box():
    box = BoundingBox.undefined()
    assert not box.is_defined
    assert box.as_tuple() is None
    assert box.to_polygon() is None
    assert not box.contains(0, 0)
    assert box.width == 0.0


def test_combine_treats_undefined_as_identity():
    box = BoundingBox(0, 0, 1, 1)
    assert BoundingBox.undefined().combine(box) == box
    assert box.combine(BoundingBox.undefined()) == box
    assert combine_bounds([box, BoundingBox(-1, 2, 0, 3)]) == BoundingBox(-1, 0, 1, 3)
    assert not combine_bounds([]).is_defined


def test_degenerate_box_is_valid_but_inverted_is_not():
    assert BoundingBox(1, 1, 1, 1).contains(1, 1)
    with pytest.raises(ValueError):
        BoundingBox(2, 0, 1, 1)


def test_box_from_coordinates_and_geometry():
    assert BoundingBox.from_coordinates([(3, 1), (-2, 4, 9)]) == BoundingBox(-2, 1, 3, 4)
    assert not BoundingBox.from_coordinates([]).is_defined
    assert BoundingBox.from_geometry(LineString([(0, 5), (2, 1)])) == BoundingBox(0, 1, 2, 5)
    assert not BoundingBox.from_geometry(None).is_defined


def test_box_intersects():
    box = BoundingBox(0, 0, 2, 2)
    assert box.intersects(BoundingBox(2, 2, 3, 3))
    assert not box.intersects(BoundingBox(2.1, 0, 3, 1))
    assert not box.intersects(BoundingBox.undefined())


def test_hull_kinds_and_geometry():
    assert Hull().kind == 'empty'
    assert Hull(((1.0, 1.0),)).geometry.equals(Point(1, 1))
    assert Hull(((0.0, 0.0), (2.0, 2.0))).geometry.equals(LineString([(0, 0), (2, 2)]))
    triangle = Hull(((0.0, 0.0), (2.0, 0.0), (0.0, 2.0)))
    assert triangle.kind == 'polygon'
    assert triangle.contains(0.5, 0.5)
    assert triangle.contains(1.0, 1.0)
    assert not triangle.contains(1.5, 1.5)


def test_feature_anchor():
    square = Polygon([(0, 0), (2, 0), (2, 2), (0, 2)])
    assert Feature(0, square).anchor.equals(Point(1, 1))
    point = Point(3, 4)
    assert Feature(1, point).anchor is point
    assert Feature(2, None).anchor is None
    assert Feature(3, Polygon()).anchor is None


def test_feature_copies_are_independent():
    feature = Feature(0, Point(0, 0), {'a': 1})
    updated = feature.with_properties(b=2).with_id(5)
    assert feature.properties == {'a': 1}
    assert updated.properties == {'a': 1, 'b': 2}
    assert updated.id == 5


def test_collection_accepts_lists():
    collection = FeatureCollection([Feature(0, Point(0, 0))], name='x')
    assert isinstance(collection.features, tuple)
    assert len(collection) == 1
    assert [f.id for f in collection] == [0]


def test_domain_is_read_only():
    domain = Domain(hulls={1: None}, metadata={'k': 1})
    with pytest.raises(TypeError):
        domain.hulls[2] = None
    assert Domain.empty() == Domain()


def test_cluster_point():
    cluster = Cluster(3, (3, 8), (1.5, 2.5))
    assert cluster.size == 2
    assert cluster.point.equals(Point(1.5, 2.5))


def test_geometry_helpers():
    geoms = [Point(0, 0), LineString([(2, 0), (2, 2)]), None, MultiPoint([(4, 4)])]
    assert flatten_coordinates(geoms).shape == (4, 2)
    assert flatten_coordinates([]).shape == (0, 2)
    assert coordinates_centroid(geoms) == pytest.approx((2.0, 1.5))
    assert coordinates_centroid([None]) is None
    assert count_vertices(Polygon([(0, 0), (1, 0), (1, 1)])) == 4
    assert count_vertices(None) == 0


def test_count_vertices_by_geometry_type():
    assert count_vertices(Point(0, 0)) == 1
    assert count_vertices(MultiPoint([(0, 0), (1, 1)])) == 2
    assert count_vertices(LineString([(0, 0), (1, 0), (2, 0)])) == 3
    assert count_vertices(Polygon()) == 0
