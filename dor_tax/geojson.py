"""
GeoJSON FeatureCollection output for boundaries and combined features.

Collections in anything other than WGS 84 carry a named ``crs`` member
(``urn:ogc:def:crs:EPSG::{srid}``), as GeoJSON readers assume 4326 when
it is absent.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional, Union

from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

from dor_tax.boundaries import BoundaryFeature
from dor_tax.config import WGS84_SRID
from dor_tax.join import CombinedFeature, strip_bookkeeping
from dor_tax.rates import TaxRateItem

# Shapefile column -> published property name
ALIASES = {"LOCCODE": "LocationCode"}


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("latin-1")
    return value


def rate_properties(item: Union[TaxRateItem, CombinedFeature]) -> dict[str, Any]:
    return {
        "Name": item.name,
        "LocationCode": item.location_code,
        "State": float(item.state),
        "Local": float(item.local),
        "Rta": float(item.rta),
        "Rate": float(item.rate),
        "EffectiveDate": item.effective_date.isoformat(),
        "ExpirationDate": item.expiration_date.isoformat(),
    }


def boundary_properties(feature: BoundaryFeature) -> dict[str, Any]:
    properties: dict[str, Any] = {"LocationCode": feature.location_code}
    for key, value in strip_bookkeeping(feature.attributes).items():
        properties[ALIASES.get(key, key)] = _json_value(value)
    return properties


def combined_properties(feature: CombinedFeature) -> dict[str, Any]:
    properties = rate_properties(feature)
    for key, value in feature.attributes.items():
        properties.setdefault(ALIASES.get(key, key), _json_value(value))
    return properties


def geometry_to_json(geometry: Optional[BaseGeometry]) -> Optional[dict[str, Any]]:
    return mapping(geometry) if geometry is not None else None


def to_feature(feature: Union[BoundaryFeature, CombinedFeature]) -> dict[str, Any]:
    if isinstance(feature, CombinedFeature):
        properties = combined_properties(feature)
    else:
        properties = boundary_properties(feature)
    return {
        "type": "Feature",
        "id": feature.location_code,
        "geometry": geometry_to_json(feature.geometry),
        "properties": properties,
    }


def named_crs(srid: int) -> dict[str, Any]:
    return {
        "type": "name",
        "properties": {"name": f"urn:ogc:def:crs:EPSG::{srid}"},
    }


def to_feature_collection(
    features: Iterable[Union[BoundaryFeature, CombinedFeature]],
    srid: int,
) -> dict[str, Any]:
    """Build a FeatureCollection dict ready for ``json.dumps``."""
    collection: dict[str, Any] = {"type": "FeatureCollection"}
    if srid != WGS84_SRID:
        collection["crs"] = named_crs(srid)
    collection["features"] = [to_feature(f) for f in features]
    return collection
