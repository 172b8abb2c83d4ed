"""
Core modules for the spatial aggregator.

This package contains the data model and the aggregation stages: spatial
indexing, near-duplicate clustering, concatenation and batch-parallel
orchestration.

Modules:
    models: Feature, FeatureCollection, BoundingBox, Hull, Cluster, Domain
    exceptions: InvalidParameter, ProjectionError, BatchProcessingError
    validation: Parameter range checks
    spatial_index: STRtree-backed point index
    union_find: Disjoint sets with smallest-id representatives
    near_points: Transitive near-duplicate clustering
    concatenate: Merge feature collections into one domain
    context: Per-run settings and factories
    orchestrator: Batch partitioning, worker pool, result merge
    pipeline: aggregate() entry point
    interop: GeoDataFrame conversion
"""

__version__ = '1.0.0'
