"""
Near-duplicate point clustering.

Points within ``epsilon`` of each other are linked, and clusters are the
transitive closure of those links: if A is near B and B is near C, all three
share a cluster even when A and C are further apart than ``epsilon``. A chain
of near-duplicates is treated as one feature.

Each cluster is reduced to one representative: the lowest member identifier,
located at the centroid of its members.

Classes:
    NearPointFilter: Cluster points and collapse near-duplicate features

Functions:
    merge_cluster_features: Collapse the features of one cluster into one feature
    thin_vertices: Drop near-duplicate vertices inside a single geometry
"""

import math
from typing import Callable, Hashable, Iterable, List, Mapping, Optional, Sequence, Tuple

from shapely.geometry import LineString, MultiLineString, MultiPoint, Point
from shapely.geometry.base import BaseGeometry

from core.models import Cluster, Feature
from core.spatial_index import PointLike, SpatialIndex, as_point
from core.union_find import UnionFind
from core.validation import require_non_negative
from utils.logger import get_logger

logger = get_logger(__name__)

IndexFactory = Callable[[Sequence[Tuple[int, Point]]], SpatialIndex]


def weighted_centroid(coords: Sequence[Tuple[float, float]],
                      weights: Optional[Sequence[float]] = None) -> Tuple[float, float]:
    if weights is None:
        weights = [1.0] * len(coords)
    total = math.fsum(weights)
    x = math.fsum(w * c[0] for w, c in zip(weights, coords)) / total
    y = math.fsum(w * c[1] for w, c in zip(weights, coords)) / total
    return x, y


class NearPointFilter:
    """
    Transitive clustering of points under a distance threshold.

    Args:
        epsilon: Link distance (inclusive); 0 merges only identical points
        index_factory: Builds a SpatialIndex from (id, point) pairs
        union_find_factory: Builds an empty UnionFind

    Raises:
        InvalidParameter: If epsilon is negative or non-finite
    """

    def __init__(self, epsilon: float,
                 index_factory: IndexFactory = SpatialIndex.bulk_load,
                 union_find_factory: Callable[[], UnionFind] = UnionFind):
        self.epsilon = require_non_negative('epsilon', epsilon)
        self._index_factory = index_factory
        self._union_find_factory = union_find_factory

    def cluster(self,
                points: Iterable[Tuple[int, PointLike]],
                partition: Optional[Mapping[int, Hashable]] = None,
                weights: Optional[Mapping[int, float]] = None) -> List[Cluster]:
        """
        Group points into transitive near-duplicate clusters.

        Args:
            points: (id, point) pairs; identifiers must be unique
            partition: Optional id -> key mapping; points sharing a key are
                never linked directly (they may still join through others)
            weights: Optional id -> weight used for the cluster centroid

        Returns:
            Clusters ordered by representative id, members ascending
        """
        items = sorted(((int(item_id), as_point(p)) for item_id, p in points), key=lambda t: t[0])
        if not items:
            return []

        index = self._index_factory(items)
        uf = self._union_find_factory()
        for item_id, _ in items:
            uf.make_set(item_id)

        links = 0
        for item_id, point in items:
            for neighbor in index.query_within(point, self.epsilon):
                if neighbor == item_id:
                    continue
                if partition is not None and partition[item_id] == partition[neighbor]:
                    continue
                uf.union(item_id, neighbor)
                links += 1

        coords = {item_id: (p.x, p.y) for item_id, p in items}
        clusters = []
        for representative, members in uf.groups().items():
            member_weights = None if weights is None else [weights[m] for m in members]
            centroid = weighted_centroid([coords[m] for m in members], member_weights)
            clusters.append(Cluster(representative, tuple(members), centroid))

        logger.debug(
            f"Clustered {len(items)} points into {len(clusters)} clusters "
            f"(epsilon={self.epsilon}, {links} links)"
        )
        return clusters

    def deduplicate(self, features: Sequence[Feature]) -> Tuple[List[Feature], List[Cluster]]:
        """
        Collapse near-duplicate features into one feature per cluster.

        Features without a geometry pass through unchanged and belong to no
        cluster. Output keeps input order, with each merged feature at the
        position of its representative.

        Returns:
            Tuple of (deduplicated features, clusters)
        """
        anchored = [(f.id, f.anchor) for f in features if f.anchor is not None]
        clusters = self.cluster(anchored)
        by_id = {f.id: f for f in features}

        cluster_of = {c.representative_id: c for c in clusters}
        result = []
        for feature in features:
            if feature.anchor is None:
                result.append(feature)
                continue
            cluster = cluster_of.get(feature.id)
            if cluster is not None:
                result.append(merge_cluster_features(cluster, [by_id[m] for m in cluster.member_ids]))

        removed = len(anchored) - len(clusters)
        if removed:
            logger.debug(f"Removed {removed} near-duplicate features")
        return result, clusters


def merge_cluster_features(cluster: Cluster, members: Sequence[Feature]) -> Feature:
    """
    Collapse a cluster's member features into its representative feature.

    A singleton returns its feature unchanged. Otherwise the representative
    keeps its properties and gains ``merged_ids`` and ``merged_count``; its
    geometry becomes the cluster centroid when every member is a Point, and
    is left as-is for other geometry types.
    """
    if cluster.size == 1:
        return members[0]

    representative = next(f for f in members if f.id == cluster.representative_id)
    merged = representative.with_properties(
        merged_ids=list(cluster.member_ids),
        merged_count=cluster.size,
    )
    if all(isinstance(f.geometry, Point) for f in members):
        merged = merged.with_geometry(cluster.point)
    return merged


def _thin_coords(coords: Sequence[Tuple[float, ...]], epsilon: float) -> List[Tuple[float, ...]]:
    kept = []
    index = SpatialIndex()
    for position, coord in enumerate(coords):
        if len(index) and index.query_within(coord[:2], epsilon):
            continue
        kept.append(coord)
        index.insert(position, coord[:2])
    return kept


def thin_vertices(geometry: Optional[BaseGeometry], epsilon: float) -> Optional[BaseGeometry]:
    """
    Drop vertices within ``epsilon`` of an earlier kept vertex of the same geometry.

    Applies to LineString, MultiLineString and MultiPoint. Points and
    polygons are returned unchanged, as is any line that would be left with
    fewer than two vertices.
    """
    epsilon = require_non_negative('epsilon', epsilon)
    if geometry is None or geometry.is_empty:
        return geometry

    if isinstance(geometry, LineString):
        kept = _thin_coords(list(geometry.coords), epsilon)
        return LineString(kept) if len(kept) >= 2 else geometry
    if isinstance(geometry, MultiLineString):
        return MultiLineString([thin_vertices(line, epsilon) for line in geometry.geoms])
    if isinstance(geometry, MultiPoint):
        return MultiPoint(_thin_coords([p.coords[0] for p in geometry.geoms], epsilon))
    return geometry
