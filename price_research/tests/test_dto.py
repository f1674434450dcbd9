from datetime import timedelta

from price_research.config import Settings
from price_research.errors import DuplicateSourceError, InvalidReasonError, PriceResearchError, ProjectLockedError
from price_research.schemas.dto.line_item_dto import LineItemDTO
from price_research.schemas.dto.project_dto import FinalizeResultDTO, ProjectDTO
from price_research.schemas.dto.source_dto import SourceDTO
from price_research.schemas.dto.validation_report_dto import ValidationReportDTO
from price_research.schemas.error_type import ErrorType
from price_research.services.container import build_services

from .conftest import TODAY


def test_validation_report_dto_summarizes_tiers(services, project, item, add_prices):
    add_prices(item.id, [10], published=TODAY - timedelta(days=500))

    dto = ValidationReportDTO.from_domain_model(services.validation.validate_project(project.id, today=TODAY))

    assert dto.valid is False
    assert dto.summary.error_count == 1
    assert dto.summary.warning_count == 1
    assert dto.summary.is_ready_for_finalization is False
    assert dto.errors[0].level == "error"
    assert dto.warnings[0].data["age_in_months"] == 16
    assert dto.model_dump()["errors"][0]["rule"] == "minimum_sources"


def test_source_dto_reports_staleness(services, item, add_prices):
    (old,) = add_prices(item.id, [10], published=TODAY - timedelta(days=400))
    (recent,) = add_prices(item.id, [11])

    old_dto = SourceDTO.from_orm_model(old, today=TODAY)
    recent_dto = SourceDTO.from_orm_model(recent, today=TODAY)

    assert old_dto.is_stale and old_dto.age_in_months == 13
    assert not recent_dto.is_stale and recent_dto.age_in_months == 0
    assert recent_dto.unit_price == 11.0


def test_line_item_dto_exposes_predicates(services, item, add_prices):
    add_prices(item.id, [2, 4])

    dto = LineItemDTO.from_orm_model(services.items.get_item(item.id))

    assert dto.source_count == 2
    assert dto.computed_median == 3.0
    assert dto.has_enough_sources is False
    assert dto.missing_sources_count == 1
    assert dto.estimated_total == 300.0


def test_finalize_result_dto(services, project, item, add_prices):
    add_prices(item.id, [2, 4])
    result = services.projects.finalize_project(project_id=project.id, operator_id="user-1")

    dto = FinalizeResultDTO.from_domain_model(result)

    assert dto.finalized is False
    assert dto.project.status == "in_progress"
    assert dto.report.summary.error_count == 1
    assert ProjectDTO.from_orm_model(project).can_be_finalized


def test_errors_serialize_with_type_and_details():
    duplicate = DuplicateSourceError("item-1", "REF-1").to_dict()
    assert duplicate["error"] == "DuplicateSourceError"
    assert duplicate["error_type"] == ErrorType.BUSINESS_RULE_ERROR.value
    assert duplicate["details"] == {"item_id": "item-1", "external_ref_id": "REF-1"}

    reason = InvalidReasonError("source-1", 10)
    assert reason.details["min_length"] == 10

    locked = ProjectLockedError("project-1", "finalized")
    assert locked.details["current_status"] == "finalized"


def test_dtos_follow_injected_thresholds(db, item, add_prices):
    add_prices(item.id, [10, 11, 12])
    (old,) = add_prices(item.id, [13], published=TODAY - timedelta(days=250))
    strict = build_services(db, settings=Settings(database_url="sqlite://", min_sources=5, recency_months=6))

    report = strict.validation.validate_item(item.id, today=TODAY)
    item_dto = LineItemDTO.from_orm_model(strict.items.get_item(item.id), settings=strict.ledger.settings)
    source_dto = SourceDTO.from_orm_model(old, today=TODAY, settings=strict.ledger.settings)

    assert not report.valid
    assert item_dto.has_enough_sources is False
    assert item_dto.missing_sources_count == 1
    assert source_dto.is_stale is True
    assert [w.source_id for w in report.warnings] == [old.id]


def test_every_error_type_is_raised_by_some_error():
    def all_subclasses(cls):
        for sub in cls.__subclasses__():
            yield sub
            yield from all_subclasses(sub)

    used = {cls.error_type for cls in all_subclasses(PriceResearchError)}

    assert used == set(ErrorType)
