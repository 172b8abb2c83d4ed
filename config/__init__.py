"""
Configuration package for the spatial aggregator.

This package contains configuration loading and validation.

Modules:
    config_loader: Load and validate aggregation settings from JSON
"""

__version__ = '1.0.0'
