from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from price_research.db.enums import AuditEntityType
from price_research.db.session import atomic
from price_research.errors import (
    InvalidItemDataError,
    ItemNotFoundError,
    ProjectLockedError,
    ProjectNotFoundError,
)
from price_research.logger import get_logger
from price_research.models.line_item import LineItem
from price_research.models.project import Project
from price_research.services.audit_log_service import AuditLogService
from price_research.services.project_service import ProjectService
from price_research.services.source_ledger_service import SourceLedgerService

logger = get_logger(__name__)


class LineItemService:
    """
    Budget items of a project.

    Responsibilities:
    - Create / edit / delete items of active projects
    - Record audit logs for human edits
    - Never write the price aggregates (the source ledger owns them)
    """

    def __init__(
        self,
        db: Session,
        audit_log_service: AuditLogService,
        project_service: ProjectService,
        source_ledger_service: SourceLedgerService,
    ):
        self.db = db
        self.audit_log_service = audit_log_service
        self.project_service = project_service
        self.source_ledger_service = source_ledger_service

    def create_item(
        self,
        *,
        project_id: str,
        name: str,
        quantity: Any,
        unit: str,
        operator_id: str,
        description: Optional[str] = None,
        display_order: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> LineItem:
        '''
        Add a budget item to a project. Starts with no sources and no median.

        :param quantity: must be > 0
        :raises InvalidItemDataError: blank name / unit or non-positive quantity
        :raises ProjectLockedError: project finalized or cancelled
        '''
        clean_name = self._require_text(name, "name")
        clean_unit = self._require_text(unit, "unit")
        clean_quantity = self._positive_quantity(quantity)

        with atomic(self.db):
            project = self._load_active_project(project_id, "receive new items")
            item = LineItem(
                id=str(uuid4()),
                project_id=project.id,
                name=clean_name,
                description=description,
                quantity=clean_quantity,
                unit=clean_unit,
                display_order=display_order,
                notes=notes,
                computed_median=None,
                source_count=0,
                created_at=datetime.now(timezone.utc),
            )
            self.db.add(item)
            self.project_service.mark_in_progress(project)
            self.db.flush()
            self.audit_log_service.record_create(
                project_id=project.id,
                entity_type=AuditEntityType.LineItem,
                entity_id=item.id,
                operator_id=operator_id,
            )
        logger.info("Item %s created in project %s", item.id, project_id)
        return item

    def update_item(self, *, item_id: str, updates: Dict[str, Any], operator_id: str) -> LineItem:
        '''
        Edit whitelisted fields of an item. The price aggregate is untouched.
        '''
        allowed_fields = self._allowed_edit_fields()

        with atomic(self.db):
            item = self.get_item(item_id)
            project = self._load_active_project(item.project_id, "edit items")

            changed = False
            for field_name, new_value in updates.items():
                if field_name not in allowed_fields:
                    raise InvalidItemDataError(
                        f"Field '{field_name}' is not editable", field=field_name, item_id=item_id
                    )
                if field_name in ("name", "unit"):
                    new_value = self._require_text(new_value, field_name)
                elif field_name == "quantity":
                    new_value = self._positive_quantity(new_value)

                old_value = getattr(item, field_name)
                if old_value == new_value:
                    continue
                setattr(item, field_name, new_value)
                changed = True

                self.audit_log_service.record_update(
                    project_id=item.project_id,
                    entity_type=AuditEntityType.LineItem,
                    entity_id=item.id,
                    changed_attribute=field_name,
                    before_value=old_value,
                    after_value=new_value,
                    operator_id=operator_id,
                )

            if changed:
                self.project_service.mark_in_progress(project)
            self.db.flush()
        return item

    def delete_item(self, *, item_id: str, operator_id: str) -> None:
        '''Delete an item together with all of its sources.'''
        with atomic(self.db):
            item = self.get_item(item_id)
            project = self._load_active_project(item.project_id, "delete items")
            self.db.delete(item)
            self.audit_log_service.record_delete(
                project_id=project.id,
                entity_type=AuditEntityType.LineItem,
                entity_id=item_id,
                operator_id=operator_id,
            )
            self.db.flush()
        logger.info("Item %s deleted from project %s", item_id, project.id)

    def get_item(self, item_id: str) -> LineItem:
        item = self.db.get(LineItem, item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    def list_items(self, project_id: str) -> List[LineItem]:
        if self.db.get(Project, project_id) is None:
            raise ProjectNotFoundError(project_id)
        stmt = (
            select(LineItem)
            .where(LineItem.project_id == project_id)
            .order_by(LineItem.display_order.is_(None), LineItem.display_order, LineItem.created_at)
        )
        return list(self.db.scalars(stmt).all())

    def recompute_median(self, item_id: str) -> Optional[Decimal]:
        '''Explicit recalculation, same routine the ledger runs after each mutation.'''
        return self.source_ledger_service.recompute_item(item_id)

    def _load_active_project(self, project_id: str, action: str) -> Project:
        project = self.db.get(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        if not project.is_active():
            raise ProjectLockedError(project.id, project.status.value, action)
        return project

    @staticmethod
    def _allowed_edit_fields() -> set[str]:
        return {"name", "description", "quantity", "unit", "display_order", "notes"}

    @staticmethod
    def _require_text(value: Any, field_name: str) -> str:
        if value is None or not str(value).strip():
            raise InvalidItemDataError(f"{field_name} is required", field=field_name)
        return str(value).strip()

    @staticmethod
    def _positive_quantity(value: Any) -> Decimal:
        try:
            quantity = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidItemDataError("quantity must be a number", field="quantity") from None
        if not quantity.is_finite() or quantity <= 0:
            raise InvalidItemDataError("quantity must be greater than 0", field="quantity")
        return quantity
