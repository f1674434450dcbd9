# price_research/services/catalog_service.py
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from price_research.errors import ReferenceNotFoundError, InvalidReferencePriceError
from price_research.models.catalog_entry import CatalogEntry

PRICE_QUANTUM = Decimal("0.0001")


@dataclass(frozen=True)
class CatalogReference:
    external_ref_id: str
    unit_price: Decimal
    observation_date: Optional[date]
    description: str


class CatalogLookup(Protocol):
    """Resolves an external reference id into the price it cites."""

    def lookup(self, external_ref_id: str) -> CatalogReference:
        ...


class SqlCatalogLookup:
    """
    CatalogLookup backed by the locally ingested catalog_entries table.

    Unit price rules:
    - the published estimated unit price when present
    - otherwise total_value / quantity, when quantity > 0
    - a missing or non-positive price is rejected
    """

    def __init__(self, db: Session):
        self.db = db

    def lookup(self, external_ref_id: str) -> CatalogReference:
        entry = self.db.get(CatalogEntry, external_ref_id)
        if entry is None:
            raise ReferenceNotFoundError(external_ref_id)

        unit_price = self._derive_unit_price(entry)
        if unit_price is None or unit_price <= 0:
            raise InvalidReferencePriceError(external_ref_id, unit_price)

        return CatalogReference(
            external_ref_id=entry.external_ref_id,
            unit_price=unit_price,
            observation_date=entry.publication_date,
            description=entry.description or "",
        )

    def register_entry(
        self,
        *,
        external_ref_id: str,
        description: str,
        estimated_unit_price: Optional[Decimal] = None,
        total_value: Optional[Decimal] = None,
        quantity: Optional[Decimal] = None,
        unit: Optional[str] = None,
        publication_date: Optional[date] = None,
    ) -> CatalogEntry:
        '''Insert a catalog entry (seeding / fixtures). Flushes, does not commit.'''
        entry = CatalogEntry(
            external_ref_id=external_ref_id,
            description=description,
            estimated_unit_price=estimated_unit_price,
            total_value=total_value,
            quantity=quantity,
            unit=unit,
            publication_date=publication_date,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    @staticmethod
    def _derive_unit_price(entry: CatalogEntry) -> Optional[Decimal]:
        if entry.estimated_unit_price is not None:
            return Decimal(entry.estimated_unit_price)
        if entry.total_value is None or not entry.quantity:
            return None
        try:
            return (Decimal(entry.total_value) / Decimal(entry.quantity)).quantize(PRICE_QUANTUM)
        except (InvalidOperation, ZeroDivisionError):
            return None
