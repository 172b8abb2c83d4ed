"""
Configuration loading for the spatial aggregator.

This module handles loading and validation of the aggregation configuration JSON file.

Constants:
    PROJECT_ROOT: Root directory of the project
    CONFIG_DIR: Configuration files directory
    DEFAULT_SETTINGS: Defaults applied under the 'aggregation' section

Functions:
    load_config: Load and validate configuration from JSON
    load_aggregation_settings: Merge aggregation settings over defaults
"""

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from core.exceptions import InvalidParameter
from core.validation import (
    require_non_negative,
    require_positive_int,
    require_scale_factors,
)

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_DIR = PROJECT_ROOT / 'config'

DEFAULT_SETTINGS = {
    'epsilon': 0.3,
    'hull_tolerance': 1e-9,
    'batch_size': 10000,
    'scale': 1.0,
    'worker_count': 4,
    'group_by': None,
    'target_crs': None,
    'thin_vertices': False,
}


@dataclass(frozen=True)
class AggregationSettings:
    """
    Validated settings consumed by the aggregation pipeline.

    Attributes:
        epsilon: Dedup distance threshold (planar units)
        hull_tolerance: Cross-product magnitude treated as collinear
        batch_size: Features per batch in parallel runs
        scale: Uniform factor or per-axis tuple applied to the merged features
        worker_count: Size of the worker pool
        group_by: Property name for hull grouping, or None to hull per cluster
        target_crs: CRS the concatenated collections are reprojected to
        thin_vertices: Drop near-duplicate vertices inside LineStrings/MultiPoints
    """
    epsilon: float = DEFAULT_SETTINGS['epsilon']
    hull_tolerance: float = DEFAULT_SETTINGS['hull_tolerance']
    batch_size: int = DEFAULT_SETTINGS['batch_size']
    scale: Union[float, Tuple[float, ...]] = DEFAULT_SETTINGS['scale']
    worker_count: int = DEFAULT_SETTINGS['worker_count']
    group_by: Optional[str] = None
    target_crs: Optional[str] = None
    thin_vertices: bool = False

    def validate(self) -> 'AggregationSettings':
        """
        Check every value; raise InvalidParameter on the first bad one.

        Returns self so construction and validation can be chained.
        """
        require_non_negative('epsilon', self.epsilon)
        require_non_negative('hull_tolerance', self.hull_tolerance)
        require_positive_int('batch_size', self.batch_size)
        require_positive_int('worker_count', self.worker_count)
        require_scale_factors(self.scale)
        if self.group_by is not None and not isinstance(self.group_by, str):
            raise InvalidParameter(f"group_by must be a property name, got {self.group_by!r}")
        return self

    def with_overrides(self, **overrides) -> 'AggregationSettings':
        return replace(self, **overrides).validate()


def load_config(config_path: Optional[Path] = None) -> Dict:
    """
    Load aggregation configuration from JSON file.

    Reads aggregation_config.json (or the given path) and validates basic structure.

    Parameters:
    -----------
    config_path : Optional[Path]
        Path to the configuration file. Defaults to CONFIG_DIR/aggregation_config.json

    Returns:
    --------
    Dict
        Configuration dictionary with an 'aggregation' key

    Raises:
    -------
    FileNotFoundError
        If configuration file doesn't exist
    json.JSONDecodeError
        If configuration file contains invalid JSON
    KeyError
        If required configuration keys are missing
    """
    if config_path is None:
        config_path = CONFIG_DIR / 'aggregation_config.json'
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config = json.load(f)

    if 'aggregation' not in config:
        raise KeyError("Configuration missing required 'aggregation' key")

    return config


def load_aggregation_settings(config: Optional[Dict] = None) -> AggregationSettings:
    """
    Load aggregation settings from configuration.

    Args:
        config: Configuration dictionary (optional, will load if not provided)

    Returns:
        Validated AggregationSettings

    Raises:
        InvalidParameter: If any value is out of range, or an unknown key is present

    Defaults:
        - epsilon: 0.3
        - hull_tolerance: 1e-9
        - batch_size: 10000
        - scale: 1.0
        - worker_count: 4
        - group_by: None
        - target_crs: None
        - thin_vertices: False

    Note:
        The config file requires epsilon > 0; epsilon = 0 is only accepted
        when settings are built programmatically.
    """
    if config is None:
        config = load_config()

    section = config.get('aggregation', {})
    unknown = set(section) - set(DEFAULT_SETTINGS)
    if unknown:
        raise InvalidParameter(f"Unknown aggregation settings: {', '.join(sorted(unknown))}")

    # Config values override defaults
    merged = {**DEFAULT_SETTINGS, **section}

    if isinstance(merged['scale'], list):
        merged['scale'] = tuple(merged['scale'])

    settings = AggregationSettings(**merged).validate()
    if settings.epsilon == 0:
        raise InvalidParameter("epsilon must be > 0 in the configuration file")

    return settings
