"""
Convex Hull and Bounding Box Module

Computes the convex hull and axis-aligned bounding box of groups of
geometries (a cluster's members, a property grouping, or an arbitrary set).

Hulls use Andrew's monotone chain over distinct points. Cross products whose
magnitude is within ``hull_tolerance`` count as collinear, so floating-point
noise never produces sliver polygons. Degenerate groups yield a point or a
segment instead of failing. The bounding box is a running min/max computed in
the same pass, so it is defined whenever the group has any coordinate.
"""

from typing import Any, Callable, Dict, Hashable, Iterable, List, Mapping, Sequence, Tuple

from shapely import STRtree
from shapely.geometry import LineString, Point
from shapely.geometry.base import BaseGeometry

from core.models import BoundingBox, Cluster, Coordinate, Feature, GroupBounds, Hull
from core.union_find import UnionFind
from core.validation import require_non_negative
from utils.geometry_helpers import flatten_coordinates
from utils.logger import get_logger

logger = get_logger(__name__)


def _cross(o: Coordinate, a: Coordinate, b: Coordinate) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def monotone_chain(points: Sequence[Coordinate], tolerance: float = 0.0) -> Tuple[Coordinate, ...]:
    """
    Convex hull of distinct points.

    Args:
        points: Distinct (x, y) tuples, any order
        tolerance: Cross products <= tolerance are treated as collinear

    Returns:
        Hull vertices counter-clockwise, starting from the lowest (then
        leftmost) vertex. One vertex for a single point, two for a segment.
    """
    pts = sorted(points)
    if len(pts) <= 1:
        return tuple(pts)

    lower: List[Coordinate] = []
    for p in pts:
        while len(lower) >= 2 and _cross(lower[-2], lower[-1], p) <= tolerance:
            lower.pop()
        lower.append(p)

    upper: List[Coordinate] = []
    for p in reversed(pts):
        while len(upper) >= 2 and _cross(upper[-2], upper[-1], p) <= tolerance:
            upper.pop()
        upper.append(p)

    hull = lower[:-1] + upper[:-1]
    if len(hull) <= 2:
        # Collinear input collapses to its two extreme points
        return tuple(sorted({pts[0], pts[-1]}, key=lambda c: (c[1], c[0])))

    start = min(range(len(hull)), key=lambda i: (hull[i][1], hull[i][0]))
    return tuple(hull[start:] + hull[:start])


class ConvexBoundsCollector:
    """
    Hull and bounding box per group of geometries.

    Args:
        hull_tolerance: Collinearity tolerance for the orientation test

    Raises:
        InvalidParameter: If hull_tolerance is negative or non-finite
    """

    def __init__(self, hull_tolerance: float = 1e-9):
        self.hull_tolerance = require_non_negative('hull_tolerance', hull_tolerance)

    def collect(self, geometries: Iterable[BaseGeometry]) -> GroupBounds:
        """
        Hull and bounding box of all coordinates of ``geometries``.

        Exact duplicate coordinates are removed before hulling. Empty input
        gives an empty hull and an undefined bounding box.
        """
        coords = flatten_coordinates(geometries)

        min_x = min_y = float('inf')
        max_x = max_y = float('-inf')
        distinct = set()
        for x, y in coords.tolist():
            if x < min_x:
                min_x = x
            if x > max_x:
                max_x = x
            if y < min_y:
                min_y = y
            if y > max_y:
                max_y = y
            distinct.add((x, y))

        if not distinct:
            return GroupBounds(Hull(), BoundingBox.undefined())

        hull = Hull(monotone_chain(list(distinct), self.hull_tolerance))
        return GroupBounds(hull, BoundingBox(min_x, min_y, max_x, max_y))

    def collect_groups(self,
                       features: Sequence[Feature],
                       key: Callable[[Feature], Hashable]) -> Dict[Any, GroupBounds]:
        """
        Group features by ``key`` and collect bounds per group.

        Groups appear in order of first occurrence in ``features``.
        """
        groups: Dict[Any, List[BaseGeometry]] = {}
        for feature in features:
            groups.setdefault(key(feature), []).append(feature.geometry)
        return {k: self.collect(geoms) for k, geoms in groups.items()}

    def collect_by_property(self, features: Sequence[Feature], property_name: str) -> Dict[Any, GroupBounds]:
        return self.collect_groups(features, lambda f: f.properties.get(property_name))

    def collect_clusters(self,
                         features_by_id: Mapping[int, Feature],
                         clusters: Iterable[Cluster]) -> Dict[int, GroupBounds]:
        """Bounds of each cluster's member geometries, keyed by representative id."""
        return {
            c.representative_id: self.collect(features_by_id[m].geometry for m in c.member_ids)
            for c in clusters
        }

    def merge(self, parts: Iterable[GroupBounds]) -> GroupBounds:
        """
        Combine partial results for the same group.

        The hull of a union is the hull of the parts' hull vertices, so
        merging never needs the original geometries.
        """
        parts = list(parts)
        if len(parts) == 1:
            return parts[0]
        vertices = {v for part in parts for v in part.hull.vertices}
        bounds = BoundingBox.undefined()
        for part in parts:
            bounds = bounds.combine(part.bounds)
        return GroupBounds(Hull(monotone_chain(list(vertices), self.hull_tolerance)), bounds)


def unique_hulls(bounds: Mapping[Any, GroupBounds]) -> Dict[Any, GroupBounds]:
    """
    Drop groups whose hull has the same vertex set as an earlier group.

    Vertices are compared as a sorted set, so rotation of the vertex
    sequence does not matter.
    """
    seen = set()
    result = {}
    for key, group in bounds.items():
        canonical = tuple(sorted(set(group.hull.vertices)))
        if canonical in seen:
            logger.debug(f"Dropping duplicate hull for group {key!r}")
            continue
        seen.add(canonical)
        result[key] = group
    return result


def group_by_overlap(features: Sequence[Feature]) -> List[Tuple[Tuple[int, ...], BoundingBox]]:
    """
    Group features whose bounding boxes intersect, transitively.

    Returns:
        (member ids, merged bounding box) per component, ordered by the
        smallest member id
    """
    located = [f for f in features if f.geometry is not None and not f.geometry.is_empty]
    if not located:
        return []

    # Queries without a predicate test envelopes only, i.e. bbox intersection
    tree = STRtree([f.geometry for f in located])
    uf = UnionFind(f.id for f in located)
    for i, feature in enumerate(located):
        for j in tree.query(feature.geometry):
            if i < int(j):
                uf.union(feature.id, located[int(j)].id)

    boxes = {f.id: BoundingBox.from_geometry(f.geometry) for f in located}
    components = []
    for members in uf.groups().values():
        merged = BoundingBox.undefined()
        for m in members:
            merged = merged.combine(boxes[m])
        components.append((tuple(members), merged))

    logger.debug(f"Grouped {len(located)} features into {len(components)} overlap components")
    return components


def _bbox_geometry(bbox: BoundingBox) -> BaseGeometry:
    if bbox.width == 0 and bbox.height == 0:
        return Point(bbox.min_x, bbox.min_y)
    if bbox.width == 0 or bbox.height == 0:
        return LineString([(bbox.min_x, bbox.min_y), (bbox.max_x, bbox.max_y)])
    return bbox.to_polygon()


def pick_features_by_bbox(features: Sequence[Feature], bbox: BoundingBox) -> List[Feature]:
    """
    Keep features whose geometry intersects or lies within ``bbox``.

    Features without geometry are skipped. An undefined bbox selects nothing.
    """
    if not bbox.is_defined:
        return []

    region = _bbox_geometry(bbox)
    selected = [
        f for f in features
        if f.geometry is not None and not f.geometry.is_empty and f.geometry.intersects(region)
    ]
    logger.debug(f"Picked {len(selected)} of {len(features)} features inside {bbox.as_tuple()}")
    return selected
