"""
Data model for the aggregation core.

Geometries are plain shapely geometries; the classes here wrap them with the
identifiers, properties and derived values the pipeline passes around. All of
them are immutable: operations return new instances.

Classes:
    Feature: Geometry plus properties and a stable numeric identifier
    FeatureCollection: Ordered features with nominal scale and CRS declarations
    BoundingBox: Axis-aligned extent, with an explicit undefined value
    Hull: Convex hull vertices in canonical order
    GroupBounds: Hull and bounding box of one group
    Cluster: Transitively near features and their centroid
    Domain: Result of one pipeline run
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from shapely.geometry import LineString, Point, Polygon, box
from shapely.geometry.base import BaseGeometry

Coordinate = Tuple[float, float]


@dataclass(frozen=True)
class Feature:
    """
    A geometry with attached properties and a stable identifier.

    The identifier is assigned at ingestion and never reused within a run.
    """
    id: int
    geometry: Optional[BaseGeometry]
    properties: Dict[str, Any] = field(default_factory=dict)

    def with_geometry(self, geometry: Optional[BaseGeometry]) -> 'Feature':
        return replace(self, geometry=geometry)

    def with_properties(self, **updates) -> 'Feature':
        return replace(self, properties={**self.properties, **updates})

    def with_id(self, new_id: int) -> 'Feature':
        return replace(self, id=new_id)

    @property
    def anchor(self) -> Optional[Point]:
        """Point used for near-duplicate detection: the point itself, else the centroid."""
        if self.geometry is None or self.geometry.is_empty:
            return None
        if isinstance(self.geometry, Point):
            return self.geometry
        return self.geometry.centroid


@dataclass(frozen=True)
class FeatureCollection:
    """
    Ordered features from one source.

    ``scale`` is the nominal size of one collection unit in metres (1.0 for
    metres, 0.3048 for feet); ``crs`` is any string pyproj accepts.
    """
    features: Tuple[Feature, ...]
    name: str = ''
    scale: float = 1.0
    crs: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'features', tuple(self.features))

    def __len__(self) -> int:
        return len(self.features)

    def __iter__(self):
        return iter(self.features)


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned bounding box.

    A box with all fields None is undefined (no extent); it is the identity
    for ``combine``. Degenerate boxes (min == max) are valid.
    """
    min_x: Optional[float] = None
    min_y: Optional[float] = None
    max_x: Optional[float] = None
    max_y: Optional[float] = None

    def __post_init__(self):
        if self.is_defined and (self.min_x > self.max_x or self.min_y > self.max_y):
            raise ValueError(
                f"Invalid bounding box: min ({self.min_x}, {self.min_y}) "
                f"exceeds max ({self.max_x}, {self.max_y})"
            )

    @classmethod
    def undefined(cls) -> 'BoundingBox':
        return cls()

    @classmethod
    def from_coordinates(cls, coords: Iterable[Sequence[float]]) -> 'BoundingBox':
        """Running min/max over (x, y[, z]) coordinates."""
        min_x = min_y = float('inf')
        max_x = max_y = float('-inf')
        seen = False
        for c in coords:
            x, y = float(c[0]), float(c[1])
            seen = True
            if x < min_x:
                min_x = x
            if x > max_x:
                max_x = x
            if y < min_y:
                min_y = y
            if y > max_y:
                max_y = y
        if not seen:
            return cls.undefined()
        return cls(min_x, min_y, max_x, max_y)

    @classmethod
    def from_geometry(cls, geometry: Optional[BaseGeometry]) -> 'BoundingBox':
        if geometry is None or geometry.is_empty:
            return cls.undefined()
        return cls(*(float(v) for v in geometry.bounds))

    @property
    def is_defined(self) -> bool:
        return self.min_x is not None

    @property
    def width(self) -> float:
        return self.max_x - self.min_x if self.is_defined else 0.0

    @property
    def height(self) -> float:
        return self.max_y - self.min_y if self.is_defined else 0.0

    def combine(self, other: 'BoundingBox') -> 'BoundingBox':
        """Component-wise min/max; undefined boxes are ignored."""
        if not other.is_defined:
            return self
        if not self.is_defined:
            return other
        return BoundingBox(
            min(self.min_x, other.min_x),
            min(self.min_y, other.min_y),
            max(self.max_x, other.max_x),
            max(self.max_y, other.max_y),
        )

    def contains(self, x: float, y: float) -> bool:
        if not self.is_defined:
            return False
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y

    def intersects(self, other: 'BoundingBox') -> bool:
        if not (self.is_defined and other.is_defined):
            return False
        return not (
            other.min_x > self.max_x or other.max_x < self.min_x
            or other.min_y > self.max_y or other.max_y < self.min_y
        )

    def to_polygon(self) -> Optional[Polygon]:
        if not self.is_defined:
            return None
        return box(self.min_x, self.min_y, self.max_x, self.max_y)

    def as_tuple(self) -> Optional[Tuple[float, float, float, float]]:
        if not self.is_defined:
            return None
        return (self.min_x, self.min_y, self.max_x, self.max_y)


def combine_bounds(boxes: Iterable[BoundingBox]) -> BoundingBox:
    result = BoundingBox.undefined()
    for b in boxes:
        result = result.combine(b)
    return result


@dataclass(frozen=True)
class Hull:
    """
    Convex hull vertices, counter-clockwise from the lowest (then leftmost) vertex.

    Degenerate hulls keep fewer vertices: none for empty input, one for a
    single point, two (lowest-then-leftmost first) for a segment.
    """
    vertices: Tuple[Coordinate, ...] = ()

    @property
    def kind(self) -> str:
        n = len(self.vertices)
        if n == 0:
            return 'empty'
        if n == 1:
            return 'point'
        if n == 2:
            return 'segment'
        return 'polygon'

    @property
    def geometry(self) -> Optional[BaseGeometry]:
        kind = self.kind
        if kind == 'empty':
            return None
        if kind == 'point':
            return Point(self.vertices[0])
        if kind == 'segment':
            return LineString(self.vertices)
        return Polygon(self.vertices)

    def contains(self, x: float, y: float, tolerance: float = 1e-9) -> bool:
        """True if (x, y) lies inside or on the hull, within ``tolerance``."""
        geom = self.geometry
        if geom is None:
            return False
        return geom.distance(Point(x, y)) <= tolerance


@dataclass(frozen=True)
class GroupBounds:
    """Convex hull and bounding box of one group of geometries."""
    hull: Hull
    bounds: BoundingBox


@dataclass(frozen=True)
class Cluster:
    """
    Feature identifiers judged transitively near each other.

    ``representative_id`` is always the lowest member identifier.
    """
    representative_id: int
    member_ids: Tuple[int, ...]
    centroid: Coordinate

    @property
    def size(self) -> int:
        return len(self.member_ids)

    @property
    def point(self) -> Point:
        return Point(self.centroid)


@dataclass(frozen=True)
class Domain:
    """
    Output of one pipeline run.

    ``hulls`` maps each grouping key (cluster representative id, or property
    value when grouping by property) to its GroupBounds. ``bounds`` is
    undefined when there are no features.
    """
    features: Tuple[Feature, ...] = ()
    bounds: BoundingBox = field(default_factory=BoundingBox.undefined)
    hulls: Mapping[Any, GroupBounds] = field(default_factory=dict)
    clusters: Tuple[Cluster, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'features', tuple(self.features))
        object.__setattr__(self, 'clusters', tuple(self.clusters))
        object.__setattr__(self, 'hulls', MappingProxyType(dict(self.hulls)))
        object.__setattr__(self, 'metadata', MappingProxyType(dict(self.metadata)))

    @classmethod
    def empty(cls) -> 'Domain':
        return cls(metadata={'feature_count': 0, 'input_feature_count': 0})

    @property
    def is_empty(self) -> bool:
        return not self.features

    def feature_ids(self) -> Tuple[int, ...]:
        return tuple(f.id for f in self.features)
