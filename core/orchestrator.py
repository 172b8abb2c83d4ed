"""
Batch-parallel execution of the aggregation pipeline.

This module partitions a feature sequence into fixed-size batches, runs
alignment, dedup and hull/bounds collection for each batch on a worker
thread, and merges the batch results into one Domain.

Each batch builds and discards its own spatial index and union-find; workers
share nothing but the pool. Results are written to one slot per batch index
and read only after every worker has finished. Near-duplicates that landed in
different batches are caught by a second clustering pass over the member
points near batch borders, which runs single-threaded after the join.

Classes:
    BatchResult: Output of one batch
    ParallelOrchestrator: Partition, run and merge batches

Functions:
    assemble_domain: Merge batch results into a Domain
"""

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

from shapely.geometry import Point

from core.context import RunContext
from core.exceptions import BatchProcessingError, InvalidParameter
from core.models import BoundingBox, Cluster, Domain, Feature, GroupBounds, combine_bounds
from core.near_points import merge_cluster_features, thin_vertices, weighted_centroid
from utils.geometry_helpers import count_vertices
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class BatchResult:
    """
    Output of one batch.

    Attributes:
        index: Batch index in partition order
        prepared: Batch input after optional vertex thinning
        features: Deduplicated features, batch input order
        clusters: Batch-local clusters ordered by representative id
        bounds: Bounding box of every prepared geometry in the batch
        hulls: GroupBounds per cluster representative or property value
    """
    index: int
    prepared: Tuple[Feature, ...]
    features: Tuple[Feature, ...]
    clusters: Tuple[Cluster, ...]
    bounds: BoundingBox
    hulls: Mapping[Any, GroupBounds]


def check_unique_ids(features: Sequence[Feature]) -> None:
    """Raise InvalidParameter if two features share an identifier."""
    seen = set()
    for feature in features:
        if feature.id in seen:
            raise InvalidParameter(f"Duplicate feature id {feature.id}")
        seen.add(feature.id)


class ParallelOrchestrator:
    """
    Run the per-batch pipeline on a thread pool and merge the results.

    Args:
        context: Run context carrying validated settings and factories
    """

    def __init__(self, context: RunContext):
        self.context = context
        self.settings = context.settings

    def partition(self, features: Sequence[Feature]) -> List[Tuple[Feature, ...]]:
        """Split features into consecutive batches of at most batch_size."""
        size = self.settings.batch_size
        return [tuple(features[i:i + size]) for i in range(0, len(features), size)]

    def run_batches(self, work: Callable[[int, Tuple[Feature, ...]], Any],
                    batches: Sequence[Tuple[Feature, ...]]) -> List[Any]:
        """
        Run ``work(index, batch)`` for every batch on the worker pool.

        Returns:
            One result per batch, in batch index order

        Raises:
            BatchProcessingError: On the first failure pending batches are
                cancelled; the lowest failed batch index observed is raised
                with its underlying exception
        """
        workers = min(self.settings.worker_count, len(batches))
        slots: List[Any] = [None] * len(batches)
        failures: Dict[int, BaseException] = {}

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='spagg-batch') as executor:
            futures = {
                executor.submit(work, index, batch): index
                for index, batch in enumerate(batches)
            }
            for future in as_completed(futures):
                if future.cancelled():
                    continue
                index = futures[future]
                error = future.exception()
                if error is None:
                    slots[index] = future.result()
                    continue
                failures[index] = error
                cancelled = sum(1 for f in futures if f.cancel())
                if cancelled:
                    logger.warning(f"Batch {index} failed; cancelled {cancelled} pending batches")

        if failures:
            index = min(failures)
            cause = failures[index]
            logger.error(f"Batch {index} failed: {type(cause).__name__}: {cause}")
            raise BatchProcessingError(index, cause) from cause
        return slots

    def align(self, features: Sequence[Feature], aligner) -> List[Feature]:
        """
        Reproject / rescale features batch by batch on the worker pool.

        Uses the same partition as ``run``, so a failure names the batch the
        feature belongs to.
        """
        features = list(features)
        if not features or aligner.is_identity:
            return features
        aligned = self.run_batches(lambda index, batch: aligner.align(batch), self.partition(features))
        return [f for batch in aligned for f in batch]

    def process_batch(self, index: int, features: Sequence[Feature]) -> BatchResult:
        """
        Dedup, then collect bounds and hulls for one batch.

        Safe to run concurrently: everything it builds is local to the call.
        """
        start_time = time.time()

        if self.settings.thin_vertices:
            before = sum(count_vertices(f.geometry) for f in features)
            features = [f.with_geometry(thin_vertices(f.geometry, self.settings.epsilon)) for f in features]
            after = sum(count_vertices(f.geometry) for f in features)
            logger.debug(f"Batch {index}: thinned vertices {before} -> {after}")

        deduped, clusters = self.context.near_point_filter().deduplicate(features)

        collector = self.context.bounds_collector()
        if self.settings.group_by is not None:
            hulls = collector.collect_by_property(features, self.settings.group_by)
        else:
            by_id = {f.id: f for f in features}
            hulls = collector.collect_clusters(by_id, clusters)

        bounds = combine_bounds(BoundingBox.from_geometry(f.geometry) for f in features)

        logger.debug(
            f"Batch {index}: {len(features)} features -> {len(deduped)} after dedup, "
            f"{len(hulls)} hulls in {time.time() - start_time:.3f}s"
        )
        return BatchResult(
            index=index,
            prepared=tuple(features),
            features=tuple(deduped),
            clusters=tuple(clusters),
            bounds=bounds,
            hulls=hulls,
        )

    def run(self, features: Sequence[Feature]) -> Domain:
        """
        Run every batch on the worker pool and merge the results.

        Args:
            features: Input features with unique identifiers

        Returns:
            Domain whose feature order depends only on the input order and
            the batch partitioning

        Raises:
            InvalidParameter: If feature identifiers are not unique
            BatchProcessingError: If any batch fails; carries the lowest
                failed batch index and the underlying exception
        """
        features = list(features)
        check_unique_ids(features)
        if not features:
            logger.info("No input features; returning empty domain")
            return Domain.empty()

        start_time = time.time()
        batches = self.partition(features)
        workers = min(self.settings.worker_count, len(batches))

        logger.info("=" * 80)
        logger.info("Parallel Aggregation")
        logger.info("=" * 80)
        logger.info(
            f"{len(features)} features in {len(batches)} batches of up to "
            f"{self.settings.batch_size} on {workers} workers"
        )

        slots = self.run_batches(self.process_batch, batches)

        domain = assemble_domain(slots, self.context, features)
        elapsed = time.time() - start_time
        logger.info(
            f"Aggregated {len(features)} features into {len(domain.features)} "
            f"in {elapsed:.2f} seconds"
        )
        return Domain(
            features=domain.features,
            bounds=domain.bounds,
            hulls=domain.hulls,
            clusters=domain.clusters,
            metadata={**domain.metadata, 'worker_count': workers, 'elapsed_seconds': elapsed},
        )


def _near_box(point: Point, box: BoundingBox, distance: float) -> bool:
    return (box.min_x - distance <= point.x <= box.max_x + distance
            and box.min_y - distance <= point.y <= box.max_y + distance)


def _border_members(anchors: Mapping[int, Point],
                    batch_of: Mapping[int, int],
                    epsilon: float) -> List[int]:
    """
    Members within epsilon of another batch's anchor extent.

    Only these can link to a point in another batch.
    """
    extents: Dict[int, BoundingBox] = {}
    for member, anchor in anchors.items():
        box = BoundingBox(anchor.x, anchor.y, anchor.x, anchor.y)
        batch = batch_of[member]
        extents[batch] = extents[batch].combine(box) if batch in extents else box

    return [
        member for member, anchor in anchors.items()
        if any(batch != batch_of[member] and _near_box(anchor, box, epsilon)
               for batch, box in extents.items())
    ]


def _reconcile(results: Sequence[BatchResult],
               context: RunContext,
               prepared: Mapping[int, Feature]) -> Tuple[List[Cluster], Dict[int, List[int]]]:
    """
    Join batch clusters that are linked across batch borders.

    Member points near a batch border are clustered again with links allowed
    only between different batches; every batch cluster touched by such a
    link is joined with the others it reaches. Together with the batch-local
    pass this gives the same transitive closure as one pass over all points.

    Returns:
        (final clusters, representative id -> batch representatives it absorbs)
    """
    batch_clusters = {c.representative_id: c for r in results for c in r.clusters}
    if len(results) == 1:
        return list(batch_clusters.values()), {rep: [rep] for rep in batch_clusters}

    cluster_of = {m: c.representative_id for c in batch_clusters.values() for m in c.member_ids}
    batch_of = {m: r.index for r in results for c in r.clusters for m in c.member_ids}
    anchors = {m: prepared[m].anchor for m in cluster_of}

    border = _border_members(anchors, batch_of, context.settings.epsilon)
    links = context.near_point_filter().cluster(
        ((m, anchors[m]) for m in border),
        partition={m: batch_of[m] for m in border},
    )

    joined = context.union_find_factory()
    for rep in batch_clusters:
        joined.make_set(rep)
    for link in links:
        reps = [cluster_of[m] for m in link.member_ids]
        for rep in reps[1:]:
            joined.union(reps[0], rep)

    clusters = []
    absorbed = {}
    for rep, parts in joined.groups().items():
        if len(parts) == 1:
            clusters.append(batch_clusters[rep])
        else:
            members = sorted(m for part in parts for m in batch_clusters[part].member_ids)
            centroid = weighted_centroid([(anchors[m].x, anchors[m].y) for m in members])
            clusters.append(Cluster(rep, tuple(members), centroid))
        absorbed[rep] = parts
    logger.debug(f"Checked {len(border)} border points of {len(anchors)} for cross-batch links")
    return clusters, absorbed


def assemble_domain(results: Sequence[BatchResult],
                    context: RunContext,
                    features: Sequence[Feature]) -> Domain:
    """
    Merge batch results into one Domain.

    Bounding boxes combine by min/max. With more than one batch, clusters
    linked across batch borders are joined; the joined cluster's centroid and
    hull are computed from all of its members. Final features follow the
    input position of each feature or cluster representative.

    Args:
        results: Batch results in batch index order
        context: Run context of the run that produced them
        features: Original input, used for output ordering
    """
    position = {f.id: i for i, f in enumerate(features)}
    collector = context.bounds_collector()
    group_by = context.settings.group_by

    prepared = {f.id: f for r in results for f in r.prepared}
    clusters, absorbed = _reconcile(results, context, prepared)
    batch_features = {f.id: f for r in results for f in r.features}

    merged_features: Dict[int, Feature] = {}
    dropped = set()
    for cluster in clusters:
        parts = absorbed[cluster.representative_id]
        if len(parts) == 1:
            continue
        merged_features[cluster.representative_id] = merge_cluster_features(
            cluster, [prepared[m] for m in cluster.member_ids]
        )
        dropped.update(rep for rep in parts if rep != cluster.representative_id)

    output = []
    for feature_id, feature in batch_features.items():
        if feature_id in dropped:
            continue
        output.append(merged_features.get(feature_id, feature))
    output.sort(key=lambda f: position[f.id])

    if group_by is not None:
        parts_by_key: Dict[Any, List[GroupBounds]] = {}
        for result in results:
            for key, group in result.hulls.items():
                parts_by_key.setdefault(key, []).append(group)
        hulls = {key: collector.merge(parts) for key, parts in parts_by_key.items()}
    else:
        batch_hulls = {rep: group for r in results for rep, group in r.hulls.items()}
        hulls = {}
        for cluster in clusters:
            if len(absorbed[cluster.representative_id]) == 1:
                hulls[cluster.representative_id] = batch_hulls[cluster.representative_id]
            else:
                hulls[cluster.representative_id] = collector.collect(
                    prepared[m].geometry for m in cluster.member_ids
                )

    cross_batch = sum(len(parts) - 1 for parts in absorbed.values())
    if cross_batch:
        logger.info(f"Joined {cross_batch} batch clusters across batch boundaries")

    bounds = combine_bounds(r.bounds for r in results)
    metadata = {
        'input_feature_count': len(features),
        'feature_count': len(output),
        'cluster_count': len(clusters),
        'batch_count': len(results),
        'cross_batch_merges': cross_batch,
        'group_by': group_by,
    }
    return Domain(
        features=tuple(output),
        bounds=bounds,
        hulls=hulls,
        clusters=tuple(sorted(clusters, key=lambda c: c.representative_id)),
        metadata=metadata,
    )
