# price_research/models/source.py
import math
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

import pandas as pd
from sqlalchemy import (
    String,
    Text,
    Numeric,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from price_research.config import DEFAULT_RECENCY_MONTHS
from price_research.db.base import Base

if TYPE_CHECKING:
    from price_research.models.line_item import LineItem

# average month length used for source age
DAYS_PER_MONTH = 30.44


class Source(Base):
    """
    One cited reference price ("fonte") of a line item.

    Invariants:
    - an external reference is attached to a given item at most once
    - excluded sources keep their row; they only leave the median
    """

    __tablename__ = "sources"
    __table_args__ = (
        UniqueConstraint("line_item_id", "external_ref_id", name="uq_sources_item_reference"),
        CheckConstraint("unit_price > 0", name="ck_sources_unit_price_positive"),
    )

    # =========
    # 🔒 Immutable facts
    # =========
    id: Mapped[str] = mapped_column(String(36), primary_key=True, comment="Source UUID")
    line_item_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("line_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Parent line item ID",
    )
    external_ref_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Catalog entry the price was drawn from",
    )
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, comment="Cited unit price")
    observation_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        comment="Publication date of the cited price",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="Creation timestamp",
    )

    # =========
    # ✍️ Manual exclusion
    # =========
    excluded: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
        comment="Excluded from the median computation",
    )
    exclusion_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Justification, required while excluded",
    )

    line_item: Mapped["LineItem"] = relationship(back_populates="sources")

    def is_included(self) -> bool:
        return not self.excluded

    def is_stale(self, months_threshold: int = DEFAULT_RECENCY_MONTHS, today: Optional[date] = None) -> bool:
        """
        True when the cited price was published more than `months_threshold`
        months before `today`. Sources without a date are treated as recent.
        """
        if self.observation_date is None:
            return False
        today = today or date.today()
        limit = (pd.Timestamp(today) - pd.DateOffset(months=months_threshold)).date()
        return self.observation_date < limit

    def age_in_months(self, today: Optional[date] = None) -> Optional[int]:
        if self.observation_date is None:
            return None
        today = today or date.today()
        return math.floor((today - self.observation_date).days / DAYS_PER_MONTH)

    def __repr__(self) -> str:
        return (
            f"<Source id={self.id} item={self.line_item_id} "
            f"price={self.unit_price} excluded={self.excluded}>"
        )
