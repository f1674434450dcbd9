from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from price_research.config import Settings, get_settings
from price_research.services.audit_log_service import AuditLogService
from price_research.services.catalog_service import CatalogLookup, SqlCatalogLookup
from price_research.services.line_item_service import LineItemService
from price_research.services.project_service import ProjectService
from price_research.services.source_ledger_service import SourceLedgerService
from price_research.services.statistics_service import StatisticsCalculator
from price_research.services.summary_service import SummaryService
from price_research.services.validation_service import ValidationService


@dataclass
class Services:
    audit_log: AuditLogService
    catalog: CatalogLookup
    statistics: StatisticsCalculator
    ledger: SourceLedgerService
    validation: ValidationService
    projects: ProjectService
    items: LineItemService
    summary: SummaryService


def build_services(
    db: Session,
    catalog: Optional[CatalogLookup] = None,
    settings: Optional[Settings] = None,
) -> Services:
    '''
    Wire every service of one request around a single session, so they all
    share its transaction.
    '''
    settings = settings or get_settings()
    audit_log = AuditLogService(db)
    catalog = catalog or SqlCatalogLookup(db)
    statistics = StatisticsCalculator(settings.iqr_factor)

    ledger = SourceLedgerService(
        db=db,
        audit_log_service=audit_log,
        catalog=catalog,
        statistics=statistics,
        settings=settings,
    )
    validation = ValidationService(db=db, statistics=statistics, settings=settings)
    projects = ProjectService(db=db, audit_log_service=audit_log, validation_service=validation)
    items = LineItemService(
        db=db,
        audit_log_service=audit_log,
        project_service=projects,
        source_ledger_service=ledger,
    )
    summary = SummaryService(
        db=db,
        project_service=projects,
        line_item_service=items,
        source_ledger_service=ledger,
        statistics=statistics,
    )
    return Services(
        audit_log=audit_log,
        catalog=catalog,
        statistics=statistics,
        ledger=ledger,
        validation=validation,
        projects=projects,
        items=items,
        summary=summary,
    )
