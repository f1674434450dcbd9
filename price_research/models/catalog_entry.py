# price_research/models/catalog_entry.py
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Text, Numeric, Date, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from price_research.db.base import Base


class CatalogEntry(Base):
    """
    A reference price already ingested from the external catalog.
    Read-only for this engine; ingestion lives elsewhere.
    """

    __tablename__ = "catalog_entries"

    external_ref_id: Mapped[str] = mapped_column(String(100), primary_key=True, comment="Catalog reference ID")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="", comment="Item description")
    estimated_unit_price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(14, 4),
        nullable=True,
        comment="Unit price as published",
    )
    total_value: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(16, 4),
        nullable=True,
        comment="Total value, used when no unit price is published",
    )
    quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4), nullable=True, comment="Quantity bought")
    unit: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, comment="Unit of measure")
    publication_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, comment="Publication date")
    ingested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="Ingestion timestamp",
    )

    def __repr__(self) -> str:
        return f"<CatalogEntry ref={self.external_ref_id} price={self.estimated_unit_price}>"
