# price_research/services/validation_service.py
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from price_research.config import Settings, get_settings
from price_research.db.enums import ValidationLevel
from price_research.errors import ProjectNotFoundError
from price_research.models.line_item import LineItem
from price_research.models.project import Project
from price_research.models.source import Source
from price_research.services.statistics_service import StatisticsCalculator

# rule tags
RULE_MINIMUM_SOURCES = "minimum_sources"
RULE_RECENCY = "recency_check"
RULE_OUTLIER = "outlier_review"
RULE_MEDIAN_MISSING = "median_missing"
RULE_ITEM_NOT_FOUND = "item_not_found"


@dataclass
class ValidationMessage:
    rule: str
    level: ValidationLevel
    message: str
    item_id: Optional[str] = None
    source_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationReport:
    valid: bool = True
    errors: List[ValidationMessage] = field(default_factory=list)
    warnings: List[ValidationMessage] = field(default_factory=list)
    infos: List[ValidationMessage] = field(default_factory=list)

    def add(self, message: ValidationMessage) -> None:
        if message.level == ValidationLevel.error:
            self.errors.append(message)
        elif message.level == ValidationLevel.warning:
            self.warnings.append(message)
        else:
            self.infos.append(message)

    def errors_for(self, rule: str) -> List[ValidationMessage]:
        return [m for m in self.errors if m.rule == rule]


class ValidationService:
    """
    Compliance gate of a price research.

    Rules, evaluated per item:
    1. minimum_sources (error): fewer than min_sources non-excluded sources.
       The only rule that makes a report invalid.
    2. recency_check (warning): non-excluded source older than recency_months.
    3. outlier_review (info): IQR outliers among the non-excluded prices of
       items with at least min_sources of them.
    4. median_missing (warning): rule 1 satisfied but no computed median.

    Findings are data: every violation is collected, nothing is raised for a
    non-compliant project. Reads are not locked against concurrent source
    mutations; finalization re-checks at commit time.
    """

    def __init__(
        self,
        db: Session,
        statistics: Optional[StatisticsCalculator] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.statistics = statistics or StatisticsCalculator(self.settings.iqr_factor)

    def validate_project(self, project_id: str, today: Optional[date] = None) -> ValidationReport:
        '''
        Run every rule across all items of a project.

        :param project_id: project to validate
        :type project_id: str
        :param today: reference date for the recency rule (defaults to today)
        :type today: Optional[date]
        :return: ValidationReport; valid is False iff any minimum_sources error
        :rtype: ValidationReport
        '''
        if self.db.get(Project, project_id) is None:
            raise ProjectNotFoundError(project_id)

        today = today or date.today()
        report = ValidationReport()
        items = self._load_items(project_id)
        sources_by_item = self._load_sources(item.id for item in items)

        # rule order matches the report order callers render
        for item in items:
            self._check_minimum_sources(item, sources_by_item[item.id], report)
        for item in items:
            self._check_recency(item, sources_by_item[item.id], report, today)
        for item in items:
            self._check_outliers(item, sources_by_item[item.id], report)
        for item in items:
            self._check_median(item, sources_by_item[item.id], report)

        report.valid = not report.errors
        return report

    def validate_item(self, item_id: str, today: Optional[date] = None) -> ValidationReport:
        '''
        Same rules scoped to one item. A missing item is reported as an
        item_not_found error instead of raising.
        '''
        report = ValidationReport()
        item = self.db.get(LineItem, item_id)
        if item is None:
            report.add(ValidationMessage(
                rule=RULE_ITEM_NOT_FOUND,
                level=ValidationLevel.error,
                message="Item não encontrado.",
                item_id=item_id,
            ))
            report.valid = False
            return report

        today = today or date.today()
        sources = self._load_sources([item.id])[item.id]
        self._check_minimum_sources(item, sources, report)
        self._check_recency(item, sources, report, today)
        self._check_outliers(item, sources, report)
        self._check_median(item, sources, report)

        report.valid = not report.errors
        return report

    def check_minimum_sources(self, project_id: str) -> ValidationReport:
        '''Error tier only: the authoritative finalize gate.'''
        if self.db.get(Project, project_id) is None:
            raise ProjectNotFoundError(project_id)

        report = ValidationReport()
        items = self._load_items(project_id)
        sources_by_item = self._load_sources(item.id for item in items)
        for item in items:
            self._check_minimum_sources(item, sources_by_item[item.id], report)
        report.valid = not report.errors
        return report

    # =========
    # Rules
    # =========
    def _check_minimum_sources(self, item: LineItem, sources: List[Source], report: ValidationReport) -> None:
        included_count = len(_included(sources))
        minimum = self.settings.min_sources
        if included_count >= minimum:
            return

        missing = minimum - included_count
        report.add(ValidationMessage(
            rule=RULE_MINIMUM_SOURCES,
            level=ValidationLevel.error,
            message=(
                f'Item "{item.name}" possui apenas {included_count} fonte(s) válida(s). '
                f"Faltam {missing} para atingir o mínimo de {minimum} fontes exigido pela Lei 14.133/2021."
            ),
            item_id=item.id,
            data={
                "item_name": item.name,
                "included_sources_count": included_count,
                "source_count": item.source_count,
                "missing_sources_count": missing,
                "minimum_sources": minimum,
            },
        ))

    def _check_recency(
        self,
        item: LineItem,
        sources: List[Source],
        report: ValidationReport,
        today: date,
    ) -> None:
        months = self.settings.recency_months
        for source in _included(sources):
            if not source.is_stale(months, today=today):
                continue
            age = source.age_in_months(today=today)
            report.add(ValidationMessage(
                rule=RULE_RECENCY,
                level=ValidationLevel.warning,
                message=(
                    f'Item "{item.name}" possui fonte com {age} meses de idade. '
                    f"A Lei 14.133/2021 recomenda priorizar preços de até {months} meses."
                ),
                item_id=item.id,
                source_id=source.id,
                data={
                    "item_name": item.name,
                    "age_in_months": age,
                    "observation_date": source.observation_date.isoformat(),
                    "threshold_months": months,
                },
            ))

    def _check_outliers(self, item: LineItem, sources: List[Source], report: ValidationReport) -> None:
        included = _included(sources)
        if len(included) < self.settings.min_sources:
            return

        stats = self.statistics.compute([s.unit_price for s in included])
        if not stats.outliers or stats.median <= 0:
            return

        for index in stats.outliers:
            source = included[index]
            price = float(source.unit_price)
            deviation = (price - stats.median) / stats.median * 100
            report.add(ValidationMessage(
                rule=RULE_OUTLIER,
                level=ValidationLevel.info,
                message=(
                    f'Item "{item.name}": fonte com preço R$ {price:.4f} identificada como outlier '
                    f"({deviation:+.1f}% da mediana). Revise e considere excluir do cálculo."
                ),
                item_id=item.id,
                source_id=source.id,
                data={
                    "item_name": item.name,
                    "unit_price": price,
                    "median": stats.median,
                    "deviation_percent": round(deviation, 1),
                },
            ))

    def _check_median(self, item: LineItem, sources: List[Source], report: ValidationReport) -> None:
        if len(_included(sources)) < self.settings.min_sources:
            return
        if item.has_computed_median():
            return
        report.add(ValidationMessage(
            rule=RULE_MEDIAN_MISSING,
            level=ValidationLevel.warning,
            message=(
                f'Item "{item.name}" possui {item.source_count} fontes mas a mediana não foi calculada. '
                "Execute o recálculo."
            ),
            item_id=item.id,
            data={"item_name": item.name, "source_count": item.source_count},
        ))

    # =========
    # Loading
    # =========
    def _load_items(self, project_id: str) -> List[LineItem]:
        stmt = (
            select(LineItem)
            .where(LineItem.project_id == project_id)
            .order_by(LineItem.display_order.is_(None), LineItem.display_order, LineItem.created_at)
        )
        return list(self.db.scalars(stmt).all())

    def _load_sources(self, item_ids) -> Dict[str, List[Source]]:
        item_ids = list(item_ids)
        grouped: Dict[str, List[Source]] = {item_id: [] for item_id in item_ids}
        if not item_ids:
            return grouped
        stmt = (
            select(Source)
            .where(Source.line_item_id.in_(item_ids))
            .order_by(Source.created_at.asc(), Source.id.asc())
        )
        for source in self.db.scalars(stmt).all():
            grouped[source.line_item_id].append(source)
        return grouped


def _included(sources: List[Source]) -> List[Source]:
    return [s for s in sources if not s.excluded]
