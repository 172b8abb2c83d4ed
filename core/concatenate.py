"""
Feature concatenation module for the spatial aggregator.

Merges several feature collections into one sequence in a single spatial
domain: identifiers are made globally unique, collections in another CRS are
reprojected through the geodesy service, collections with a different
nominal unit scale are rescaled, and every feature records which collection
it came from.

Identifier assignment needs the whole input and runs once. Alignment
(reprojection or rescaling) is per feature, so the pipeline can run it batch
by batch on the worker pool through a CollectionAligner.

Classes:
    ConcatenationResult: Merged features plus provenance
    CollectionAligner: Per-feature reprojection or rescaling by source collection
    FeatureConcatenator: Merge collections into one domain
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from core.exceptions import InvalidParameter
from core.models import Feature, FeatureCollection
from core.validation import require_positive
from geometry_ops.reprojection import GeodesyService, reproject_geometry
from geometry_ops.scaling import ScaleTransformer
from utils.logger import get_logger

logger = get_logger(__name__)

SOURCE_INDEX_PROPERTY = 'source_index'
ORIGINAL_ID_PROPERTY = 'original_id'


@dataclass(frozen=True)
class ConcatenationResult:
    """
    Merged features with provenance.

    Attributes:
        features: Merged features; collection order, then in-collection order
        provenance: (source index, original id) per feature, aligned with features
        reassigned: Number of features that received a fresh identifier
    """
    features: Tuple[Feature, ...]
    provenance: Tuple[Tuple[int, int], ...]
    reassigned: int = 0


class CollectionAligner:
    """
    Bring features into the merged domain, one feature at a time.

    The step for a feature is chosen by its ``source_index`` property:
    ('reproject', source_crs, target_crs), ('rescale', factor), or None.
    """

    def __init__(self, geodesy: Optional[GeodesyService], steps: Sequence[Optional[tuple]]):
        self.geodesy = geodesy
        self.steps = tuple(steps)

    @property
    def is_identity(self) -> bool:
        return all(step is None for step in self.steps)

    def align_feature(self, feature: Feature) -> Feature:
        source_index = feature.properties.get(SOURCE_INDEX_PROPERTY)
        step = None if source_index is None else self.steps[source_index]
        if step is None:
            return feature
        if step[0] == 'reproject':
            _, source_crs, target_crs = step
            return feature.with_geometry(
                reproject_geometry(self.geodesy, feature.geometry, source_crs, target_crs)
            )
        scaler = ScaleTransformer(step[1], origin=(0.0, 0.0))
        return feature.with_geometry(scaler.scale_geometry(feature.geometry))

    def align(self, features: Sequence[Feature]) -> Tuple[Feature, ...]:
        """
        Align every feature.

        Raises:
            ProjectionError: If reprojection of any coordinate fails
        """
        if self.is_identity:
            return tuple(features)
        return tuple(self.align_feature(f) for f in features)


class FeatureConcatenator:
    """
    Merge N feature collections into one.

    Args:
        geodesy: Service used when a collection's CRS differs from target_crs
        target_scale: Unit size (metres) of the merged domain; defaults to
            the first collection's scale
        target_crs: CRS of the merged domain; None disables reprojection
    """

    def __init__(self, geodesy: Optional[GeodesyService] = None,
                 target_scale: Optional[float] = None,
                 target_crs: Optional[str] = None):
        self.geodesy = geodesy
        self.target_scale = None if target_scale is None else require_positive('target_scale', target_scale)
        self.target_crs = target_crs

    def aligner(self, collections: Sequence[FeatureCollection]) -> CollectionAligner:
        """
        Plan the alignment step of every collection.

        A collection in another CRS is reprojected; the target CRS defines
        the units, so it is not rescaled as well. Otherwise a collection
        whose scale differs from the target is rescaled about (0, 0) by
        ``collection.scale / target_scale``.

        Raises:
            InvalidParameter: If a collection declares a zero or non-finite
                scale, or reprojection is needed without a geodesy service
        """
        for collection in collections:
            require_positive(f"scale of collection {collection.name or '?'}", collection.scale)
        if not collections:
            return CollectionAligner(self.geodesy, ())

        target_scale = self.target_scale if self.target_scale is not None else collections[0].scale

        steps = []
        for collection in collections:
            if self.target_crs is not None and collection.crs is not None and collection.crs != self.target_crs:
                if self.geodesy is None:
                    raise InvalidParameter("A geodesy service is required to reproject collections")
                logger.info(f"  - Reprojecting '{collection.name}' from {collection.crs} to {self.target_crs}")
                steps.append(('reproject', collection.crs, self.target_crs))
            elif collection.scale != target_scale:
                factor = collection.scale / target_scale
                logger.info(f"  - Rescaling '{collection.name}' by {factor:g} to match target units")
                steps.append(('rescale', factor))
            else:
                steps.append(None)
        return CollectionAligner(self.geodesy, steps)

    def concatenate(self, collections: Sequence[FeatureCollection], align: bool = True) -> ConcatenationResult:
        """
        Merge collections in order.

        An identifier is kept the first time it is seen. Later collisions get
        a fresh identifier above every input identifier and keep the old one
        in the ``original_id`` property. Every feature gets ``source_index``.

        Args:
            collections: Source collections in merge order
            align: Reproject / rescale here; False leaves geometries as read,
                for callers that run ``aligner(collections)`` per batch

        Raises:
            InvalidParameter: If a collection declares a zero or non-finite
                scale, or reprojection is needed without a geodesy service
            ProjectionError: If reprojection of any coordinate fails
        """
        for collection in collections:
            require_positive(f"scale of collection {collection.name or '?'}", collection.scale)
        if not collections:
            return ConcatenationResult((), ())

        all_ids = [f.id for c in collections for f in c.features]
        next_id = max(all_ids) + 1 if all_ids else 0
        used = set()

        features = []
        provenance = []
        reassigned = 0
        for source_index, collection in enumerate(collections):
            for original in collection.features:
                feature = original
                if feature.id in used:
                    feature = feature.with_id(next_id).with_properties(**{ORIGINAL_ID_PROPERTY: original.id})
                    next_id += 1
                    reassigned += 1
                used.add(feature.id)
                features.append(feature.with_properties(**{SOURCE_INDEX_PROPERTY: source_index}))
                provenance.append((source_index, original.id))

        if align:
            features = self.aligner(collections).align(features)

        logger.info(
            f"Concatenated {len(collections)} collections into {len(features)} features "
            f"({reassigned} identifiers reassigned)"
        )
        return ConcatenationResult(tuple(features), tuple(provenance), reassigned)
