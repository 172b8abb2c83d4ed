"""
Geometry Scaling Module

Applies a uniform or per-axis scale about a fixed origin to geometries and
feature collections. Inputs are never modified; shapely geometries are
immutable and every call returns new features.

Origins:
    'centroid': mean of all coordinates of the collection being scaled (default)
    'feature':  each feature about its own centroid (building footprints)
    (x, y) or Point: an explicit origin
"""

from typing import Optional, Sequence, Tuple, Union

from shapely import affinity
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry

from core.exceptions import InvalidParameter
from core.models import Feature
from core.validation import ScaleFactor, require_scale_factors
from utils.geometry_helpers import coordinates_centroid
from utils.logger import get_logger

logger = get_logger(__name__)

Origin = Union[str, Point, Tuple[float, float]]
ORIGIN_MODES = ('centroid', 'feature')


class ScaleTransformer:
    """
    Scale geometries about an origin.

    Args:
        factor: Uniform factor or (sx, sy[, sz]) tuple
        origin: 'centroid', 'feature', or an explicit point

    Raises:
        InvalidParameter: If any factor is zero or non-finite, or the origin
            mode is unknown
    """

    def __init__(self, factor: ScaleFactor = 1.0, origin: Origin = 'centroid'):
        self.factors = require_scale_factors(factor)
        if isinstance(origin, str) and origin not in ORIGIN_MODES:
            raise InvalidParameter(f"origin must be one of {ORIGIN_MODES} or a point, got {origin!r}")
        self.origin = origin

    @property
    def is_identity(self) -> bool:
        return self.factors == (1.0, 1.0, 1.0)

    def scale_geometry(self, geometry: Optional[BaseGeometry],
                       origin: Optional[Origin] = None) -> Optional[BaseGeometry]:
        """
        Scale one geometry.

        With the 'centroid' or 'feature' modes the geometry's own centroid is
        the origin; pass ``origin`` to override.
        """
        if geometry is None or geometry.is_empty:
            return geometry
        origin = self.origin if origin is None else origin
        if isinstance(origin, str):
            origin = 'centroid'
        elif not isinstance(origin, Point):
            origin = Point(origin)
        sx, sy, sz = self.factors
        return affinity.scale(geometry, xfact=sx, yfact=sy, zfact=sz, origin=origin)

    def scale_features(self, features: Sequence[Feature]) -> Tuple[Feature, ...]:
        """
        Scale every feature's geometry.

        With the 'centroid' origin all features share the collection
        centroid, so relative positions scale consistently.
        """
        if self.origin == 'feature':
            return tuple(f.with_geometry(self.scale_geometry(f.geometry, 'feature')) for f in features)

        if self.origin == 'centroid':
            centre = coordinates_centroid(f.geometry for f in features)
            if centre is None:
                return tuple(features)
            origin = Point(centre)
        else:
            origin = self.origin

        logger.debug(f"Scaling {len(features)} features by {self.factors} about {origin}")
        return tuple(f.with_geometry(self.scale_geometry(f.geometry, origin)) for f in features)
