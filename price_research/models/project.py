# price_research/models/project.py
from datetime import datetime
from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import String, Text, DateTime, Enum, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from price_research.db.base import Base
from price_research.db.enums import ProjectStatus
from price_research.models.mixins.timestamps import TimestampMixin

if TYPE_CHECKING:
    from price_research.models.line_item import LineItem


class Project(Base, TimestampMixin):
    """
    A price-research case (one procurement process).

    Invariants:
    - finalized_at is set iff status == finalized
    - only draft / in_progress projects accept edits
    """

    __tablename__ = "projects"
    __table_args__ = (
        CheckConstraint(
            "(status = 'finalized' AND finalized_at IS NOT NULL) "
            "OR (status != 'finalized' AND finalized_at IS NULL)",
            name="ck_projects_finalized_at_matches_status",
        ),
    )

    # =========
    # 🔒 Identity & ownership
    # =========
    id: Mapped[str] = mapped_column(String(36), primary_key=True, comment="Project UUID")
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True, comment="Owning tenant ID")
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, comment="Owning user ID")

    # =========
    # ✍️ Business editable
    # =========
    name: Mapped[str] = mapped_column(String(255), nullable=False, comment="Project name")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True, comment="Free description")
    process_number: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Administrative process number",
    )
    subject: Mapped[Optional[str]] = mapped_column(Text, nullable=True, comment="Procurement object")

    # =========
    # 🔁 Lifecycle (system maintained)
    # =========
    status: Mapped[ProjectStatus] = mapped_column(
        Enum(ProjectStatus, name="project_status", native_enum=False),
        nullable=False,
        default=ProjectStatus.draft,
        comment="draft / in_progress / finalized / cancelled",
    )
    finalized_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Set only when the project is finalized",
    )

    items: Mapped[List["LineItem"]] = relationship(
        back_populates="project",
        cascade="all, delete-orphan",
    )

    def can_be_finalized(self) -> bool:
        return self.status in (ProjectStatus.draft, ProjectStatus.in_progress)

    def is_finalized(self) -> bool:
        return self.status == ProjectStatus.finalized

    def is_active(self) -> bool:
        """Active projects accept edits (not finalized, not cancelled)."""
        return self.status in (ProjectStatus.draft, ProjectStatus.in_progress)

    def __repr__(self) -> str:
        return f"<Project id={self.id} name={self.name} status={self.status.value}>"
