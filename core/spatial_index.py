"""
Spatial index over identified points.

Wraps shapely's STRtree (a bulk-loaded, balanced R-tree) with point
identifiers, single inserts, radius queries and k-nearest queries.

STRtree is immutable once built, so single inserts go to a pending buffer
that is scanned alongside the tree; the tree is rebuilt once the buffer grows
past a fraction of the indexed size, which keeps inserts amortized
logarithmic. Indexes are built per batch and discarded; there are no
deletions.

Classes:
    SpatialIndex: Point index with insert, bulk_load, query_within, nearest
"""

import math
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from shapely import STRtree
from shapely.geometry import Point

from core.exceptions import InvalidParameter
from core.validation import require_non_negative

PointLike = Union[Point, Sequence[float]]

# Rebuild the tree when pending inserts exceed this share of indexed points
REBUILD_FRACTION = 0.25
MIN_PENDING_BEFORE_REBUILD = 32


def as_point(value: PointLike) -> Point:
    if isinstance(value, Point):
        return value
    return Point(*value)


class SpatialIndex:
    """
    Index of (id, Point) pairs supporting radius and nearest-neighbour queries.

    Distances are planar Euclidean on x/y; a z coordinate is carried but not
    used for distance.
    """

    def __init__(self, node_capacity: int = 10):
        self._node_capacity = node_capacity
        self._ids: List[int] = []
        self._points: List[Point] = []
        self._xy: List[Tuple[float, float]] = []
        self._id_set = set()
        self._tree: Optional[STRtree] = None
        self._tree_size = 0

    @classmethod
    def bulk_load(cls, items: Iterable[Tuple[int, PointLike]], node_capacity: int = 10) -> 'SpatialIndex':
        """
        Build an index from a sequence of (id, point) in one pass.

        Sort-tile-recursive packing gives a better balanced tree than
        repeated inserts.
        """
        index = cls(node_capacity=node_capacity)
        for item_id, point in items:
            index._append(item_id, as_point(point))
        index._rebuild()
        return index

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, item_id: int) -> bool:
        return item_id in self._id_set

    def insert(self, item_id: int, point: PointLike) -> None:
        self._append(item_id, as_point(point))
        pending = len(self._ids) - self._tree_size
        if pending > max(MIN_PENDING_BEFORE_REBUILD, REBUILD_FRACTION * self._tree_size):
            self._rebuild()

    def _append(self, item_id: int, point: Point) -> None:
        if item_id in self._id_set:
            raise InvalidParameter(f"Identifier {item_id} is already indexed")
        if point.is_empty or not (math.isfinite(point.x) and math.isfinite(point.y)):
            raise InvalidParameter(f"Cannot index non-finite or empty point for id {item_id}")
        self._id_set.add(item_id)
        self._ids.append(item_id)
        self._points.append(point)
        self._xy.append((point.x, point.y))

    def _rebuild(self) -> None:
        self._tree = STRtree(self._points, node_capacity=self._node_capacity) if self._points else None
        self._tree_size = len(self._points)

    def _pending_positions(self) -> range:
        return range(self._tree_size, len(self._ids))

    def _distance(self, center: Point, position: int) -> float:
        x, y = self._xy[position]
        return math.hypot(x - center.x, y - center.y)

    def _positions_within(self, center: Point, radius: float) -> List[int]:
        found: List[int] = []
        if self._tree is not None:
            if radius == 0:
                hits = self._tree.query(center, predicate='intersects')
            else:
                hits = self._tree.query(center, predicate='dwithin', distance=radius)
            found.extend(int(i) for i in hits)

        found.extend(
            i for i in self._pending_positions()
            if self._distance(center, i) <= radius
        )
        return found

    def query_within(self, center: PointLike, radius: float) -> List[int]:
        """
        Identifiers of all indexed points within ``radius`` of ``center``.

        The bound is inclusive and the result is unordered.
        """
        radius = require_non_negative('radius', radius)
        center = as_point(center)
        return [self._ids[i] for i in self._positions_within(center, radius)]

    def nearest(self, point: PointLike, k: int = 1) -> List[int]:
        """
        The ``k`` nearest identifiers by Euclidean distance.

        Ties are broken by ascending identifier. Returns fewer than ``k``
        identifiers only when the index holds fewer points.
        """
        if isinstance(k, bool) or not isinstance(k, int) or k < 0:
            raise InvalidParameter(f"k must be a non-negative integer, got {k!r}")
        point = as_point(point)
        k = min(k, len(self._ids))
        if k == 0:
            return []

        # Grow the radius until it holds k points; every point closer than
        # the k-th is then inside it as well.
        radius = self._nearest_distance(point)
        step = self._search_step()
        while True:
            positions = self._positions_within(point, radius)
            if len(positions) >= k:
                break
            radius = radius * 2 if radius > 0 else step

        ranked = sorted((self._distance(point, i), self._ids[i]) for i in positions)
        return [item_id for _, item_id in ranked[:k]]

    def _nearest_distance(self, point: Point) -> float:
        best = math.inf
        if self._tree is not None:
            _, distances = self._tree.query_nearest(point, return_distance=True)
            if len(distances):
                best = float(min(distances))
        for i in self._pending_positions():
            best = min(best, self._distance(point, i))
        return best

    def _search_step(self) -> float:
        xs = [x for x, _ in self._xy]
        ys = [y for _, y in self._xy]
        diagonal = math.hypot(max(xs) - min(xs), max(ys) - min(ys))
        return max(diagonal / len(self._xy), 1e-12)
