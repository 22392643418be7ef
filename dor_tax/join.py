"""
Boundary / rate join by location code.

Both tables for a quarter come from the same DOR release, so every
boundary is expected to have a rate row. A boundary without one means
the two downloads are out of sync and the join fails instead of dropping
or null-filling the feature.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Iterator, Mapping, Optional, Union

from shapely.geometry.base import BaseGeometry

from dor_tax.boundaries import BoundaryFeature
from dor_tax.errors import JoinMismatchError
from dor_tax.rates import TaxRateItem

# Shapefile bookkeeping columns that carry no meaning for consumers
OMITTED_FIELDS = frozenset({"OBJECTID", "Shape_Area", "Shape_Leng", "Shape_Length"})


@dataclass(frozen=True)
class CombinedFeature:
    """A jurisdiction boundary carrying its quarter's tax rates."""

    location_code: str
    geometry: Optional[BaseGeometry]
    srid: int
    name: str
    state: Decimal
    local: Decimal
    rta: Decimal
    rate: Decimal
    effective_date: date
    expiration_date: date
    attributes: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def rate_item(self) -> TaxRateItem:
        return TaxRateItem(
            name=self.name,
            location_code=self.location_code,
            state=self.state,
            local=self.local,
            rta=self.rta,
            rate=self.rate,
            effective_date=self.effective_date,
            expiration_date=self.expiration_date,
        )


def strip_bookkeeping(attributes: Mapping[str, Any]) -> dict[str, Any]:
    omitted = {name.lower() for name in OMITTED_FIELDS}
    return {k: v for k, v in attributes.items() if k.lower() not in omitted}


def combine(boundary: BoundaryFeature, item: TaxRateItem) -> CombinedFeature:
    return CombinedFeature(
        location_code=boundary.location_code,
        geometry=boundary.geometry,
        srid=boundary.srid,
        name=item.name,
        state=item.state,
        local=item.local,
        rta=item.rta,
        rate=item.rate,
        effective_date=item.effective_date,
        expiration_date=item.expiration_date,
        attributes=strip_bookkeeping(boundary.attributes),
    )


def iter_combined(
    boundaries: Union[Mapping[str, BoundaryFeature], Iterable[BoundaryFeature]],
    rates: Mapping[str, TaxRateItem],
    quarter: object = None,
) -> Iterator[CombinedFeature]:
    """Yield combined features in boundary order."""
    features = boundaries.values() if isinstance(boundaries, Mapping) else boundaries
    for boundary in features:
        item = rates.get(boundary.location_code)
        if item is None:
            raise JoinMismatchError(boundary.location_code, quarter)
        yield combine(boundary, item)


def join_boundaries_and_rates(
    boundaries: Union[Mapping[str, BoundaryFeature], Iterable[BoundaryFeature]],
    rates: Mapping[str, TaxRateItem],
    quarter: object = None,
) -> list[CombinedFeature]:
    """
    Merge every boundary with its rate row.

    Raises JoinMismatchError for the first boundary whose location code
    is absent from ``rates``; nothing is returned in that case.
    """
    return list(iter_combined(boundaries, rates, quarter))
