"""
Per-run context for the aggregation pipeline.

Everything a run needs (settings, geodesy service, index and union-find
factories) is carried on one object and handed to each component. There is
no process-wide index or cache: each run and each batch builds its own
structures from these factories and discards them afterwards.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

from config.config_loader import AggregationSettings, load_aggregation_settings
from core.near_points import IndexFactory, NearPointFilter
from core.spatial_index import SpatialIndex
from core.union_find import UnionFind
from geometry_ops.convex_bounds import ConvexBoundsCollector
from geometry_ops.reprojection import GeodesyService, PyprojGeodesy
from geometry_ops.scaling import ScaleTransformer


@dataclass
class RunContext:
    settings: AggregationSettings = field(default_factory=AggregationSettings)
    geodesy: GeodesyService = field(default_factory=PyprojGeodesy)
    index_factory: IndexFactory = SpatialIndex.bulk_load
    union_find_factory: Callable[[], UnionFind] = UnionFind

    @classmethod
    def create(cls, settings: Optional[AggregationSettings] = None,
               geodesy: Optional[GeodesyService] = None) -> 'RunContext':
        """
        Validate settings and build a context; raises InvalidParameter up front.

        Without explicit settings the bundled aggregation_config.json is read.
        """
        if settings is None:
            settings = load_aggregation_settings()
        else:
            settings = settings.validate()
        if geodesy is None:
            geodesy = PyprojGeodesy()
        return cls(settings=settings, geodesy=geodesy)

    def near_point_filter(self) -> NearPointFilter:
        return NearPointFilter(self.settings.epsilon, self.index_factory, self.union_find_factory)

    def bounds_collector(self) -> ConvexBoundsCollector:
        return ConvexBoundsCollector(self.settings.hull_tolerance)

    def scale_transformer(self) -> ScaleTransformer:
        return ScaleTransformer(self.settings.scale)
