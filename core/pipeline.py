"""
Aggregation pipeline entry point.

Builds one run from settings: validate parameters, concatenate the input
collections into one domain, apply the configured scale, then deduplicate
and collect hulls and bounds either on the worker pool or in the calling
thread.

Functions:
    aggregate: Full pipeline over features or feature collections
    run_single_threaded: Dedup and hull/bounds over one batch, no pool
    align_single_threaded: Reprojection and rescaling as one batch, no pool
"""

import time
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from config.config_loader import AggregationSettings
from core.concatenate import CollectionAligner, FeatureConcatenator
from core.context import RunContext
from core.exceptions import BatchProcessingError, InvalidParameter
from core.models import Domain, Feature, FeatureCollection
from core.orchestrator import ParallelOrchestrator, assemble_domain, check_unique_ids
from geometry_ops.reprojection import GeodesyService
from utils.logger import get_logger

logger = get_logger(__name__)

PipelineInput = Union[FeatureCollection, Sequence[FeatureCollection], Iterable[Feature]]


def run_single_threaded(features: Sequence[Feature], context: RunContext) -> Domain:
    """
    Run dedup and hull/bounds collection over all features as one batch.

    Produces the same Domain as ParallelOrchestrator.run with one worker and
    a batch size covering the whole input.
    """
    features = list(features)
    check_unique_ids(features)
    if not features:
        return Domain.empty()
    result = ParallelOrchestrator(context).process_batch(0, features)
    return assemble_domain([result], context, features)


def align_single_threaded(features: Sequence[Feature], aligner: CollectionAligner) -> List[Feature]:
    """
    Reproject / rescale all features in the calling thread as batch 0.

    Raises:
        BatchProcessingError: If alignment fails, with batch index 0
    """
    try:
        return list(aligner.align(features))
    except Exception as e:
        logger.error(f"Batch 0 failed: {type(e).__name__}: {e}")
        raise BatchProcessingError(0, e) from e


def _split_inputs(inputs: PipelineInput) -> Tuple[List[Feature], Optional[List[FeatureCollection]]]:
    """Return (features, None) for plain features, or ([], collections)."""
    items = [inputs] if isinstance(inputs, FeatureCollection) else list(inputs)
    if items and all(isinstance(item, FeatureCollection) for item in items):
        return [], items
    return items, None


def aggregate(inputs: PipelineInput,
              settings: Optional[AggregationSettings] = None,
              geodesy: Optional[GeodesyService] = None,
              parallel: bool = True) -> Domain:
    """
    Aggregate features into a Domain.

    Settings are validated before anything else runs, so a bad parameter
    fails without partial work.

    Args:
        inputs: Features, one FeatureCollection, or a sequence of collections
        settings: Aggregation settings (defaults when omitted)
        geodesy: Geodesy service for reprojection (pyproj when omitted)
        parallel: Use the worker pool; False runs everything in this thread

    Returns:
        Domain with deduplicated features, clusters, hulls and bounds

    Raises:
        InvalidParameter: If a setting or collection scale is invalid
        BatchProcessingError: If a batch fails, including reprojection of a
            collection (the ProjectionError is the cause)
    """
    try:
        context = RunContext.create(settings, geodesy)
    except InvalidParameter as e:
        logger.error(f"Invalid aggregation settings: {e}")
        raise
    settings = context.settings
    start_time = time.time()

    logger.info("=" * 80)
    logger.info("SPATIAL AGGREGATION")
    logger.info("=" * 80)
    logger.info(
        f"epsilon={settings.epsilon}, hull_tolerance={settings.hull_tolerance}, "
        f"batch_size={settings.batch_size}, worker_count={settings.worker_count}"
    )

    try:
        features, collections = _split_inputs(inputs)
        reassigned = 0
        if collections is None:
            source_count = 1
        else:
            concatenator = FeatureConcatenator(context.geodesy, target_crs=settings.target_crs)
            aligner = concatenator.aligner(collections)
            merged = concatenator.concatenate(collections, align=False)
            features = list(merged.features)
            reassigned = merged.reassigned
            source_count = len(collections)
            if parallel:
                features = ParallelOrchestrator(context).align(features, aligner)
            else:
                features = align_single_threaded(features, aligner)

        transformer = context.scale_transformer()
        if not transformer.is_identity:
            logger.info(f"Scaling {len(features)} features by {transformer.factors}")
            features = list(transformer.scale_features(features))

        if parallel:
            domain = ParallelOrchestrator(context).run(features)
        else:
            domain = run_single_threaded(features, context)

    except Exception as e:
        elapsed_time = time.time() - start_time
        logger.error("=" * 80)
        logger.error("AGGREGATION FAILED")
        logger.error("=" * 80)
        logger.error(f"Error: {e}")
        logger.error(f"Failed after {elapsed_time:.2f} seconds")
        raise

    total_time = time.time() - start_time
    logger.info("")
    logger.info(f"Sources: {source_count}, identifiers reassigned: {reassigned}")
    logger.info(f"Features: {len(features)} in, {len(domain.features)} out")
    logger.info(f"Clusters: {len(domain.clusters)}, hulls: {len(domain.hulls)}")
    logger.info(f"Total aggregation time: {total_time:.2f} seconds")

    return Domain(
        features=domain.features,
        bounds=domain.bounds,
        hulls=domain.hulls,
        clusters=domain.clusters,
        metadata={
            **domain.metadata,
            'source_count': source_count,
            'reassigned_ids': reassigned,
            'total_seconds': total_time,
        },
    )
