"""
GeoDataFrame conversion for the aggregation core.

The core works on Feature and Domain objects; readers and writers work on
geopandas GeoDataFrames. This module converts between the two so any format
geopandas can read becomes pipeline input. It does no file I/O itself.

Functions:
    features_from_geodataframe: GeoDataFrame rows to a FeatureCollection
    domain_to_geodataframe: Domain features to a GeoDataFrame
    hulls_to_geodataframe: Domain hulls and bounding boxes to a GeoDataFrame
"""

from typing import Optional

import geopandas as gpd
import pandas as pd

from core.exceptions import InvalidParameter
from core.models import Domain, Feature, FeatureCollection
from utils.logger import get_logger

logger = get_logger(__name__)

FEATURE_ID_COLUMN = 'feature_id'


def features_from_geodataframe(
    gdf: gpd.GeoDataFrame,
    id_column: Optional[str] = None,
    start_id: int = 0,
    name: str = '',
    scale: float = 1.0
) -> FeatureCollection:
    """
    Convert GeoDataFrame rows to a FeatureCollection.

    Parameters:
    -----------
    gdf : gpd.GeoDataFrame
        Input rows; the active geometry column becomes Feature.geometry
    id_column : Optional[str]
        Column holding integer identifiers. Defaults to row position + start_id
    start_id : int
        First identifier when id_column is not given
    name : str
        Collection name, used in log messages
    scale : float
        Nominal size of one coordinate unit in metres

    Returns:
    --------
    FeatureCollection
        One Feature per row, CRS taken from the GeoDataFrame

    Raises:
    -------
    InvalidParameter
        If id_column is missing or holds non-integer values
    """
    if id_column is not None and id_column not in gdf.columns:
        raise InvalidParameter(f"Identifier column '{id_column}' not found")

    geometry_column = gdf.geometry.name
    property_columns = [c for c in gdf.columns if c not in (geometry_column, id_column)]

    features = []
    for position, (_, row) in enumerate(gdf.iterrows()):
        if id_column is not None:
            raw_id = row[id_column]
            if pd.isna(raw_id) or int(raw_id) != raw_id:
                raise InvalidParameter(f"Identifier {raw_id!r} in '{id_column}' is not an integer")
            feature_id = int(raw_id)
        else:
            feature_id = start_id + position

        geometry = row[geometry_column]
        if geometry is not None and not hasattr(geometry, 'is_empty'):
            # Missing geometries come back as NaN from some readers
            geometry = None

        properties = {c: row[c] for c in property_columns}
        features.append(Feature(feature_id, geometry, properties))

    crs = gdf.crs.to_string() if gdf.crs is not None else None
    logger.debug(f"Converted {len(features)} rows from GeoDataFrame '{name}' (CRS {crs})")
    return FeatureCollection(tuple(features), name=name, scale=scale, crs=crs)


def domain_to_geodataframe(domain: Domain, crs: Optional[str] = None) -> gpd.GeoDataFrame:
    """
    Convert Domain features to a GeoDataFrame.

    Each feature becomes one row with a ``feature_id`` column followed by its
    properties. An empty Domain gives an empty GeoDataFrame with the
    ``feature_id`` column.
    """
    records = [{FEATURE_ID_COLUMN: f.id, **f.properties} for f in domain.features]
    geometries = [f.geometry for f in domain.features]

    if not records:
        return gpd.GeoDataFrame({FEATURE_ID_COLUMN: []}, geometry=[], crs=crs)

    return gpd.GeoDataFrame(pd.DataFrame.from_records(records), geometry=geometries, crs=crs)


def hulls_to_geodataframe(domain: Domain, crs: Optional[str] = None) -> gpd.GeoDataFrame:
    """
    Convert Domain hulls to a GeoDataFrame, one row per group.

    Columns: group, kind, min_x, min_y, max_x, max_y and the hull geometry
    (Point, LineString or Polygon depending on kind).
    """
    records = []
    geometries = []
    for key, group in domain.hulls.items():
        bounds = group.bounds
        records.append({
            'group': key,
            'kind': group.hull.kind,
            'min_x': bounds.min_x,
            'min_y': bounds.min_y,
            'max_x': bounds.max_x,
            'max_y': bounds.max_y,
        })
        geometries.append(group.hull.geometry)

    if not records:
        return gpd.GeoDataFrame(
            {c: [] for c in ('group', 'kind', 'min_x', 'min_y', 'max_x', 'max_y')},
            geometry=[], crs=crs
        )

    return gpd.GeoDataFrame(pd.DataFrame.from_records(records), geometry=geometries, crs=crs)
