"""
Geometry Reprojection Module

The geodesy service the aggregation core delegates coordinate transformation
to. The core only relies on the ``GeodesyService`` shape; ``PyprojGeodesy``
is the implementation backed by pyproj.

Transformers are cached on the service instance, never at module level, so
each pipeline run owns its own.
"""

import math
from typing import Dict, Optional, Protocol, Tuple

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry
from shapely.ops import transform

from core.exceptions import ProjectionError
from utils.logger import get_logger

logger = get_logger(__name__)


class GeodesyService(Protocol):
    def reproject(self, point: Point, source_crs: str, target_crs: str) -> Point:
        ...


class PyprojGeodesy:
    """
    Reprojection through pyproj Transformers (always_xy axis order).

    Raises ProjectionError for unknown CRS definitions, coordinates outside
    the projection's domain, and non-finite results.
    """

    def __init__(self):
        self._transformers: Dict[Tuple[str, str], Transformer] = {}

    def _transformer(self, source_crs: str, target_crs: str) -> Transformer:
        key = (source_crs, target_crs)
        if key not in self._transformers:
            try:
                self._transformers[key] = Transformer.from_crs(
                    CRS.from_user_input(source_crs),
                    CRS.from_user_input(target_crs),
                    always_xy=True
                )
            except CRSError as e:
                logger.error(f"Cannot build transformer {source_crs} -> {target_crs}: {e}")
                raise ProjectionError(f"Invalid CRS: {e}", source_crs, target_crs) from e
        return self._transformers[key]

    def _transform_xy(self, transformer: Transformer, source_crs: str, target_crs: str):
        def _apply(x, y, z=None):
            try:
                if z is None:
                    result = transformer.transform(x, y, errcheck=True)
                else:
                    result = transformer.transform(x, y, z, errcheck=True)
            except ProjError as e:
                raise ProjectionError(
                    f"Reprojection {source_crs} -> {target_crs} failed: {e}",
                    source_crs, target_crs
                ) from e
            if not all(math.isfinite(v) for v in _flat(result)):
                raise ProjectionError(
                    f"Reprojection {source_crs} -> {target_crs} produced non-finite coordinates",
                    source_crs, target_crs
                )
            return result
        return _apply

    def reproject(self, point: Point, source_crs: str, target_crs: str) -> Point:
        """Reproject a single point."""
        return self.reproject_geometry(point, source_crs, target_crs)

    def reproject_geometry(self, geometry: Optional[BaseGeometry],
                           source_crs: str, target_crs: str) -> Optional[BaseGeometry]:
        """Reproject every coordinate of ``geometry``; identical CRSs are a no-op."""
        if geometry is None or geometry.is_empty or source_crs == target_crs:
            return geometry
        transformer = self._transformer(source_crs, target_crs)
        return transform(self._transform_xy(transformer, source_crs, target_crs), geometry)


def _flat(values):
    for v in values:
        if hasattr(v, '__iter__'):
            yield from v
        else:
            yield v


def reproject_geometry(geodesy: GeodesyService, geometry: Optional[BaseGeometry],
                       source_crs: str, target_crs: str) -> Optional[BaseGeometry]:
    """
    Reproject a geometry through any GeodesyService.

    Uses the service's own ``reproject_geometry`` when it has one, otherwise
    reprojects coordinate by coordinate through ``reproject``.
    """
    if geometry is None or geometry.is_empty or source_crs == target_crs:
        return geometry
    if hasattr(geodesy, 'reproject_geometry'):
        return geodesy.reproject_geometry(geometry, source_crs, target_crs)

    def _apply(x, y, z=None):
        if hasattr(x, '__iter__'):
            points = [geodesy.reproject(Point(px, py), source_crs, target_crs) for px, py in zip(x, y)]
            xs, ys = [p.x for p in points], [p.y for p in points]
            return (xs, ys) if z is None else (xs, ys, z)
        p = geodesy.reproject(Point(x, y), source_crs, target_crs)
        return (p.x, p.y) if z is None else (p.x, p.y, z)

    return transform(_apply, geometry)
