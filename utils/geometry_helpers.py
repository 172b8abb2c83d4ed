"""
Geometry helper utilities for the spatial aggregator.

Small functions shared by the clustering, hull, scaling and batch modules for pulling
coordinates out of shapely geometries.

Functions:
    flatten_coordinates: All xy coordinates of one or more geometries as an (n, 2) array
    count_vertices: Count coordinates in a geometry
    coordinates_centroid: Mean of all coordinates of a set of geometries
"""

from typing import Iterable, Optional, Tuple

import numpy as np
import shapely
from shapely.geometry.base import BaseGeometry


def flatten_coordinates(geometries: Iterable[BaseGeometry]) -> np.ndarray:
    """
    Collect the xy coordinates of all geometries into a single array.

    Polygon rings contribute their closing coordinate as well; callers that
    need distinct points must deduplicate.

    Args:
        geometries: Iterable of shapely geometries (None and empty are skipped)

    Returns:
        Float array of shape (n, 2)
    """
    geoms = [g for g in geometries if g is not None and not g.is_empty]
    if not geoms:
        return np.empty((0, 2), dtype=float)
    return shapely.get_coordinates(geoms)


def count_vertices(geometry: Optional[BaseGeometry]) -> int:
    """Number of coordinates in a geometry; polygon rings count their closing vertex."""
    if geometry is None or geometry.is_empty:
        return 0
    return int(shapely.get_num_coordinates(geometry))


def coordinates_centroid(geometries: Iterable[BaseGeometry]) -> Optional[Tuple[float, float]]:
    """
    Mean of every coordinate of the given geometries.

    Unlike ``geometry.centroid`` this weights each vertex equally regardless
    of geometry dimension, which keeps mixed point/polygon groups well defined.

    Returns:
        (x, y) tuple, or None when there are no coordinates
    """
    coords = flatten_coordinates(geometries)
    if len(coords) == 0:
        return None
    mean = coords.mean(axis=0)
    return float(mean[0]), float(mean[1])
