"""
Geometry Operations Package

Geometric building blocks used by the aggregation core.

Modules:
    convex_bounds: Convex hulls and bounding boxes per group of geometries
    scaling: Uniform or per-axis scaling about an origin
    reprojection: pyproj-backed geodesy service for CRS transformation

Usage:
    from geometry_ops.convex_bounds import ConvexBoundsCollector
    from geometry_ops.scaling import ScaleTransformer

    bounds = ConvexBoundsCollector(hull_tolerance=1e-9).collect(geometries)
"""

__version__ = '1.0.0'
