# price_research/services/source_ledger_service.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, List, Optional, TypeVar
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from price_research.config import Settings, get_settings
from price_research.db.enums import AuditAction, AuditEntityType
from price_research.db.session import atomic
from price_research.errors import (
    ConcurrentModificationError,
    DuplicateSourceError,
    InvalidReasonError,
    ItemNotFoundError,
    LedgerConsistencyError,
    ProjectLockedError,
    SourceNotFoundError,
)
from price_research.logger import get_logger
from price_research.models.line_item import LineItem
from price_research.models.source import Source
from price_research.services.audit_log_service import AuditLogService, SYSTEM_OPERATOR
from price_research.services.catalog_service import CatalogLookup
from price_research.services.statistics_service import StatisticsCalculator

logger = get_logger(__name__)

T = TypeVar("T")

MEDIAN_QUANTUM = Decimal("0.0001")


class SourceLedgerService:
    """
    Owns the Source rows of every line item and keeps the item aggregates
    (source_count, computed_median) in step with them.

    Every mutation runs as one unit: source write, aggregate recomputation and
    audit rows are committed together or not at all. Writers on the same item
    are serialized by the row lock (FOR UPDATE where the store supports it)
    and by the item's version column; a stale version rolls the unit back and
    the whole operation is retried.
    """

    def __init__(
        self,
        db: Session,
        audit_log_service: AuditLogService,
        catalog: CatalogLookup,
        statistics: Optional[StatisticsCalculator] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.audit_log_service = audit_log_service
        self.catalog = catalog
        self.settings = settings or get_settings()
        self.statistics = statistics or StatisticsCalculator(self.settings.iqr_factor)

    # =========
    # Mutations
    # =========
    def add_source(self, *, item_id: str, external_ref_id: str, operator_id: str = SYSTEM_OPERATOR) -> Source:
        '''
        Attach a catalog reference to an item as a new price source.

        :param item_id: line item receiving the source
        :type item_id: str
        :param external_ref_id: catalog entry the price is drawn from
        :type external_ref_id: str
        :param operator_id: user performing the action
        :type operator_id: str
        :return: the created Source, already reflected in the item aggregates
        :rtype: Source
        '''
        def apply() -> Source:
            item = self._lock_item(item_id)
            self._assert_project_editable(item, "receive new sources")

            if self._find_by_reference(item.id, external_ref_id) is not None:
                raise DuplicateSourceError(item.id, external_ref_id)

            reference = self.catalog.lookup(external_ref_id)
            source = Source(
                id=str(uuid4()),
                line_item_id=item.id,
                external_ref_id=external_ref_id,
                unit_price=reference.unit_price,
                observation_date=reference.observation_date,
                excluded=False,
                exclusion_reason=None,
                created_at=datetime.now(timezone.utc),
            )
            self.db.add(source)
            try:
                self.db.flush()
            except IntegrityError as e:
                # concurrent insert of the same reference
                raise DuplicateSourceError(item.id, external_ref_id) from e

            self._recompute(item)
            self.audit_log_service.record_create(
                project_id=item.project_id,
                entity_type=AuditEntityType.Source,
                entity_id=source.id,
                operator_id=operator_id,
            )
            return source

        source = self._run_atomic(item_id, "add_source", apply)
        logger.info("Source %s (ref=%s) added to item %s", source.id, external_ref_id, item_id)
        return source

    def remove_source(self, *, source_id: str, operator_id: str = SYSTEM_OPERATOR) -> None:
        item_id = self.get_source(source_id).line_item_id

        def apply() -> None:
            source = self.get_source(source_id)
            item = self._lock_item(source.line_item_id)
            self._assert_project_editable(item, "remove sources")

            self.db.delete(source)
            self.db.flush()

            self._recompute(item)
            self.audit_log_service.record_delete(
                project_id=item.project_id,
                entity_type=AuditEntityType.Source,
                entity_id=source_id,
                operator_id=operator_id,
            )

        self._run_atomic(item_id, "remove_source", apply)
        logger.info("Source %s removed from item %s", source_id, item_id)

    def mark_excluded(self, *, source_id: str, reason: str, operator_id: str = SYSTEM_OPERATOR) -> Source:
        '''
        Take a source out of the median computation. The row is kept.

        :param reason: justification, at least min_exclusion_reason_length
                       characters after trimming
        :raises InvalidReasonError: reason too short
        '''
        normalized_reason = (reason or "").strip()
        min_length = self.settings.min_exclusion_reason_length
        if len(normalized_reason) < min_length:
            raise InvalidReasonError(source_id, min_length)

        item_id = self.get_source(source_id).line_item_id

        def apply() -> Source:
            source = self.get_source(source_id)
            item = self._lock_item(source.line_item_id)
            self._assert_project_editable(item, "exclude sources")

            before = source.exclusion_reason
            source.excluded = True
            source.exclusion_reason = normalized_reason
            self.db.flush()

            self._recompute(item)
            self.audit_log_service.record_action(
                project_id=item.project_id,
                entity_type=AuditEntityType.Source,
                entity_id=source.id,
                action=AuditAction.exclude,
                operator_id=operator_id,
                changed_attribute="excluded",
                before_value=before,
                after_value=normalized_reason,
            )
            return source

        source = self._run_atomic(item_id, "mark_excluded", apply)
        logger.info("Source %s excluded from median of item %s", source_id, item_id)
        return source

    def mark_included(self, *, source_id: str, operator_id: str = SYSTEM_OPERATOR) -> Source:
        item_id = self.get_source(source_id).line_item_id

        def apply() -> Source:
            source = self.get_source(source_id)
            item = self._lock_item(source.line_item_id)
            self._assert_project_editable(item, "include sources")

            before = source.exclusion_reason
            source.excluded = False
            source.exclusion_reason = None
            self.db.flush()

            self._recompute(item)
            self.audit_log_service.record_action(
                project_id=item.project_id,
                entity_type=AuditEntityType.Source,
                entity_id=source.id,
                action=AuditAction.include,
                operator_id=operator_id,
                changed_attribute="excluded",
                before_value=before,
                after_value=None,
            )
            return source

        source = self._run_atomic(item_id, "mark_included", apply)
        logger.info("Source %s included again in median of item %s", source_id, item_id)
        return source

    def recompute_item(self, item_id: str) -> Optional[Decimal]:
        '''Recompute an item's aggregates on demand; returns the new median.'''
        def apply() -> Optional[Decimal]:
            item = self._lock_item(item_id)
            return self._recompute(item)

        return self._run_atomic(item_id, "recompute_item", apply)

    # =========
    # Reads
    # =========
    def get_source(self, source_id: str) -> Source:
        source = self.db.get(Source, source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        return source

    def list_sources(self, item_id: str) -> List[Source]:
        '''
        All sources of an item (excluded ones included), oldest first.
        Each Source exposes is_stale(months_threshold) and age_in_months().
        '''
        if self.db.get(LineItem, item_id) is None:
            raise ItemNotFoundError(item_id)
        stmt = (
            select(Source)
            .where(Source.line_item_id == item_id)
            .order_by(Source.created_at.asc(), Source.id.asc())
        )
        return list(self.db.scalars(stmt).all())

    def included_prices(self, item_id: str) -> List[Decimal]:
        stmt = (
            select(Source.unit_price)
            .where(Source.line_item_id == item_id, Source.excluded.is_(False))
            .order_by(Source.created_at.asc(), Source.id.asc())
        )
        return list(self.db.scalars(stmt).all())

    # =========
    # Internals
    # =========
    def _run_atomic(self, item_id: str, operation: str, apply: Callable[[], T]) -> T:
        attempts = max(1, self.settings.max_recompute_retries)
        for attempt in range(1, attempts + 1):
            try:
                with atomic(self.db):
                    return apply()
            except StaleDataError:
                logger.warning(
                    "Item %s changed concurrently during %s (attempt %d/%d), retrying",
                    item_id, operation, attempt, attempts,
                )
            except SQLAlchemyError as e:
                logger.error("Store failure during %s on item %s: %s", operation, item_id, e)
                raise LedgerConsistencyError(item_id, operation) from e
        raise ConcurrentModificationError(item_id, attempts)

    def _lock_item(self, item_id: str) -> LineItem:
        stmt = (
            select(LineItem)
            .where(LineItem.id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        item = self.db.scalars(stmt).one_or_none()
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    def _assert_project_editable(self, item: LineItem, action: str) -> None:
        project = item.project
        if not project.is_active():
            raise ProjectLockedError(project.id, project.status.value, action)

    def _find_by_reference(self, item_id: str, external_ref_id: str) -> Optional[Source]:
        stmt = select(Source).where(
            Source.line_item_id == item_id,
            Source.external_ref_id == external_ref_id,
        )
        return self.db.scalars(stmt).first()

    def _recompute(self, item: LineItem) -> Optional[Decimal]:
        '''
        Rewrite source_count and computed_median from the current Source rows.
        Must run inside the caller's unit, after the source write was flushed.
        '''
        rows = self.db.execute(
            select(Source.unit_price, Source.excluded).where(Source.line_item_id == item.id)
        ).all()
        included = [price for price, excluded in rows if not excluded]

        new_count = len(rows)
        new_median = self._median_or_none(included)
        old_count, old_median = item.source_count, item.computed_median

        item.source_count = new_count
        item.computed_median = new_median
        # always bump, so the version check guards every recomputation
        item.aggregated_at = datetime.now(timezone.utc)
        self.db.flush()

        if old_count != new_count:
            self.audit_log_service.record_system_update(
                project_id=item.project_id,
                entity_type=AuditEntityType.LineItem,
                entity_id=item.id,
                changed_attribute="source_count",
                before_value=old_count,
                after_value=new_count,
            )
        if not _same_amount(old_median, new_median):
            self.audit_log_service.record_system_update(
                project_id=item.project_id,
                entity_type=AuditEntityType.LineItem,
                entity_id=item.id,
                changed_attribute="computed_median",
                before_value=old_median,
                after_value=new_median,
            )
        logger.info("Item %s recomputed: sources=%d median=%s", item.id, new_count, new_median)
        return new_median

    def _median_or_none(self, prices: List[Any]) -> Optional[Decimal]:
        if not prices:
            return None
        median = self.statistics.median(prices)
        if median <= 0:
            return None
        return Decimal(str(median)).quantize(MEDIAN_QUANTUM)


def _same_amount(a: Optional[Decimal], b: Optional[Decimal]) -> bool:
    if a is None or b is None:
        return a is b
    return Decimal(a) == Decimal(b)
