"""
Utility modules for the spatial aggregator.

This package contains helpers used throughout the application.

Modules:
    logger: Logging configuration and setup
    geometry_helpers: Coordinate flattening and vertex counting
"""

__version__ = '1.0.0'
