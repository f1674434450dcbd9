# price_research/models/line_item.py
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import String, Text, Integer, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from price_research.config import DEFAULT_MIN_SOURCES
from price_research.db.base import Base
from price_research.models.mixins.timestamps import TimestampMixin

if TYPE_CHECKING:
    from price_research.models.project import Project
    from price_research.models.source import Source


class LineItem(Base, TimestampMixin):
    """
    A budget line item of a project.

    Invariants:
    - source_count == number of Source rows attached (excluded ones included)
    - computed_median == median unit price of the non-excluded sources, or None
    Both aggregates are written only by the source ledger, in the same
    transaction as the source mutation.
    """

    __tablename__ = "line_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_line_items_quantity_positive"),
    )

    # =========
    # 🔒 Identity
    # =========
    id: Mapped[str] = mapped_column(String(36), primary_key=True, comment="Line item UUID")
    project_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Parent project ID",
    )

    # =========
    # ✍️ Business editable
    # =========
    name: Mapped[str] = mapped_column(String(255), nullable=False, comment="Item name")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True, comment="Item description")
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, comment="Quantity (> 0)")
    unit: Mapped[str] = mapped_column(String(50), nullable=False, comment="Unit of measure")
    display_order: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="Display order")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True, comment="Free notes")

    # =========
    # 🔁 Aggregates maintained by the source ledger
    # =========
    computed_median: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(14, 4),
        nullable=True,
        comment="Median unit price over non-excluded sources",
    )
    source_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of attached sources, excluded ones included",
    )
    aggregated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Last aggregate recomputation",
    )
    version_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Optimistic concurrency counter",
    )

    project: Mapped["Project"] = relationship(back_populates="items")
    sources: Mapped[List["Source"]] = relationship(
        back_populates="line_item",
        cascade="all, delete-orphan",
        order_by="Source.created_at",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def has_enough_sources(self, minimum_sources: int = DEFAULT_MIN_SOURCES) -> bool:
        return (self.source_count or 0) >= minimum_sources

    def missing_sources_count(self, minimum_sources: int = DEFAULT_MIN_SOURCES) -> int:
        # raw count, excluded sources included
        return max(0, minimum_sources - (self.source_count or 0))

    def has_computed_median(self) -> bool:
        return self.computed_median is not None and self.computed_median > 0

    def estimated_total(self) -> Optional[Decimal]:
        if not self.has_computed_median():
            return None
        return Decimal(self.computed_median) * Decimal(self.quantity)

    def __repr__(self) -> str:
        return (
            f"<LineItem id={self.id} name={self.name} "
            f"sources={self.source_count} median={self.computed_median}>"
        )
