import enum
from datetime import datetime, date, timezone
from decimal import Decimal
from typing import Any, List, Optional, Union
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from price_research.models.audit_log import AuditLog
from price_research.db.enums import AuditEntityType, AuditAction

SYSTEM_OPERATOR = "SYSTEM"


class AuditLogService:
    """
    Centralized service for recording all auditable actions.
    This service is the ONLY place where AuditLog records can be created.
    Rows are added to the caller's session and commit with its transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def serialize_audit_value(self, value) -> Any:
        if value is None:
            return None
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, enum.Enum):
            return value.value
        if isinstance(value, (int, float, str, bool)):
            return value
        return str(value)

    def _normalize_entity_type(self, entity_type: Union[str, AuditEntityType]) -> AuditEntityType:
        """
        Accept an AuditEntityType, its value ("line_item") or its name ("LineItem").
        """
        if isinstance(entity_type, AuditEntityType):
            return entity_type

        raw = str(entity_type).strip()
        for member in AuditEntityType:
            if raw.lower() in (member.value, member.name.lower()):
                return member
        raise ValueError(f"Unknown entity_type: {raw}. Valid values: {[e.value for e in AuditEntityType]}")

    def _add(
        self,
        *,
        project_id: Optional[str],
        entity_type: Union[str, AuditEntityType],
        entity_id: str,
        action: AuditAction,
        changed_attribute: str,
        before_value: Any,
        after_value: Any,
        operator_id: str,
    ) -> AuditLog:
        log = AuditLog(
            id=str(uuid4()),
            project_id=project_id,
            entity_type=self._normalize_entity_type(entity_type),
            entity_id=entity_id,
            action=action,
            changed_attribute=changed_attribute,
            before_value=self.serialize_audit_value(before_value),
            after_value=self.serialize_audit_value(after_value),
            operator_id=operator_id,
            timestamp=datetime.now(timezone.utc),
        )
        self.db.add(log)
        return log

    def record_create(
        self,
        *,
        project_id: Optional[str],
        entity_type: Union[str, AuditEntityType],
        entity_id: str,
        operator_id: str,
    ) -> AuditLog:
        return self._add(
            project_id=project_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.create,
            changed_attribute="__all__",
            before_value=None,
            after_value=None,
            operator_id=operator_id,
        )

    def record_update(
        self,
        *,
        project_id: Optional[str],
        entity_type: Union[str, AuditEntityType],
        entity_id: str,
        changed_attribute: str,
        before_value: Any,
        after_value: Any,
        operator_id: str,
    ) -> AuditLog:
        '''
        Record a human edit of one attribute.

        :param project_id: owning project ID, optional
        :param entity_type: AuditEntityType or its string form
        :param entity_id: ID of the edited entity
        :param changed_attribute: name of the edited attribute
        :param before_value: value before the change
        :param after_value: value after the change
        :param operator_id: user who made the change
        '''
        return self._add(
            project_id=project_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.update,
            changed_attribute=changed_attribute,
            before_value=before_value,
            after_value=after_value,
            operator_id=operator_id,
        )

    def record_delete(
        self,
        *,
        project_id: Optional[str],
        entity_type: Union[str, AuditEntityType],
        entity_id: str,
        operator_id: str,
    ) -> AuditLog:
        return self._add(
            project_id=project_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.delete,
            changed_attribute="__all__",
            before_value=None,
            after_value=None,
            operator_id=operator_id,
        )

    def record_action(
        self,
        *,
        project_id: Optional[str],
        entity_type: Union[str, AuditEntityType],
        entity_id: str,
        action: AuditAction,
        operator_id: str,
        changed_attribute: str = "__all__",
        before_value: Any = None,
        after_value: Any = None,
    ) -> AuditLog:
        '''
        Record a lifecycle action: exclude / include a source, finalize,
        cancel, or the override justification used to bypass the
        minimum-sources gate (stored in after_value).
        '''
        return self._add(
            project_id=project_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            changed_attribute=changed_attribute,
            before_value=before_value,
            after_value=after_value,
            operator_id=operator_id,
        )

    def record_system_update(
        self,
        *,
        project_id: Optional[str],
        entity_type: Union[str, AuditEntityType],
        entity_id: str,
        changed_attribute: str,
        before_value: Any,
        after_value: Any,
    ) -> AuditLog:
        '''
        Record a change made by the system, e.g. the ledger recomputing an
        item's computed_median or source_count.
        '''
        return self._add(
            project_id=project_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.system,
            changed_attribute=changed_attribute,
            before_value=before_value,
            after_value=after_value,
            operator_id=SYSTEM_OPERATOR,
        )

    def list_logs(
        self,
        *,
        project_id: Optional[str] = None,
        entity_id: Optional[str] = None,
        action: Optional[AuditAction] = None,
    ) -> List[AuditLog]:
        stmt = select(AuditLog)
        if project_id is not None:
            stmt = stmt.where(AuditLog.project_id == project_id)
        if entity_id is not None:
            stmt = stmt.where(AuditLog.entity_id == entity_id)
        if action is not None:
            stmt = stmt.where(AuditLog.action == action)
        stmt = stmt.order_by(AuditLog.timestamp.asc())
        return list(self.db.scalars(stmt).all())
