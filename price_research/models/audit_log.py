# price_research/models/audit_log.py
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import String, DateTime, Enum, JSON, func
from sqlalchemy.orm import Mapped, mapped_column

from price_research.db.base import Base
from price_research.db.enums import AuditEntityType, AuditAction


class AuditLog(Base):
    __tablename__ = "audit_logs"

    # =========
    # 🔒 Immutable fields (no update, no delete)
    # =========
    id: Mapped[str] = mapped_column(String(36), primary_key=True, comment="Audit log UUID")

    project_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        nullable=True,
        index=True,
        comment="Associated project ID, if applicable",
    )

    entity_type: Mapped[AuditEntityType] = mapped_column(
        Enum(AuditEntityType, name="audit_entity_type", native_enum=False),
        nullable=False,
        comment="Type of the audited entity"
    )

    entity_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True, comment="UUID of the audited entity")

    action: Mapped[AuditAction] = mapped_column(
        Enum(AuditAction, name="audit_action", native_enum=False),
        nullable=False,
        comment="Type of action performed on the entity"
    )

    changed_attribute: Mapped[str] = mapped_column(String(100), nullable=False, comment="Attribute that was changed")

    before_value: Mapped[Any] = mapped_column(JSON, nullable=True, comment="Value before the change")
    after_value: Mapped[Any] = mapped_column(JSON, nullable=True, comment="Value after the change")

    operator_id: Mapped[str] = mapped_column(String(36), nullable=False, comment="Operator who performed the action")

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="Timestamp when the action was performed"
    )

    def __repr__(self) -> str:
        return (
            f"<AuditLog entity={self.entity_type.value} "
            f"entity_id={self.entity_id} "
            f"action={self.action.value}>"
        )
