import pytest
from sqlalchemy import func, select

from price_research.db.enums import AuditAction, ProjectStatus
from price_research.errors import (
    InvalidItemDataError,
    InvalidTransitionError,
    ProjectLockedError,
    ProjectNotFoundError,
)
from price_research.models.line_item import LineItem
from price_research.models.project import Project
from price_research.models.source import Source
from price_research.services.validation_service import RULE_MINIMUM_SOURCES


def test_new_project_starts_as_draft(services, project):
    assert project.status == ProjectStatus.draft
    assert project.finalized_at is None
    assert project.can_be_finalized()


def test_project_name_is_required(services):
    with pytest.raises(InvalidItemDataError):
        services.projects.create_project(tenant_id="tenant-1", user_id="user-1", name="   ")


def test_first_item_moves_draft_to_in_progress(db, services, project, item):
    assert db.get(Project, project.id).status == ProjectStatus.in_progress


def test_update_project_records_changes(services, project):
    updated = services.projects.update_project(
        project_id=project.id, updates={"subject": "Material de escritório"}, operator_id="user-1"
    )

    assert updated.subject == "Material de escritório"
    assert updated.status == ProjectStatus.in_progress
    logs = services.audit_log.list_logs(project_id=project.id, action=AuditAction.update)
    assert [log.changed_attribute for log in logs] == ["subject"]


def test_update_project_rejects_unknown_field(services, project):
    with pytest.raises(InvalidItemDataError):
        services.projects.update_project(project_id=project.id, updates={"status": "finalized"}, operator_id="u")


def test_finalize_blocked_below_minimum_sources(db, services, project, item, add_prices):
    add_prices(item.id, [10, 12])

    result = services.projects.finalize_project(project_id=project.id, operator_id="user-1")

    assert not result.finalized
    (error,) = result.report.errors_for(RULE_MINIMUM_SOURCES)
    assert error.item_id == item.id
    assert error.data["missing_sources_count"] == 1
    stored = db.get(Project, project.id)
    assert stored.status == ProjectStatus.in_progress
    assert stored.finalized_at is None


def test_blank_justification_does_not_override(db, services, project, item, add_prices):
    add_prices(item.id, [10, 12])

    result = services.projects.finalize_project(
        project_id=project.id, override_justification="   ", operator_id="user-1"
    )

    assert not result.finalized
    assert db.get(Project, project.id).status == ProjectStatus.in_progress


def test_override_finalizes_and_records_justification(db, services, project, item, add_prices):
    add_prices(item.id, [10, 12])
    justification = "Mercado restrito, apenas dois fornecedores no país"

    result = services.projects.finalize_project(
        project_id=project.id, override_justification=justification, operator_id="manager-1"
    )

    assert result.finalized
    assert result.override_used
    assert result.override_justification == justification
    stored = db.get(Project, project.id)
    assert stored.status == ProjectStatus.finalized
    assert stored.finalized_at is not None

    (override_log,) = services.audit_log.list_logs(project_id=project.id, action=AuditAction.override)
    assert override_log.after_value == justification
    assert override_log.operator_id == "manager-1"


def test_compliant_project_finalizes_without_override(db, services, project, item, add_prices):
    add_prices(item.id, [10, 11, 12])

    result = services.projects.finalize_project(
        project_id=project.id, override_justification="não deveria ser usada", operator_id="user-1"
    )

    assert result.finalized
    assert not result.override_used
    assert result.report.valid
    assert services.audit_log.list_logs(project_id=project.id, action=AuditAction.override) == []


def test_empty_project_can_be_finalized(db, services, project):
    result = services.projects.finalize_project(project_id=project.id, operator_id="user-1")

    assert result.finalized
    assert db.get(Project, project.id).status == ProjectStatus.finalized


def test_finalize_twice_is_invalid_transition(services, project, item, add_prices):
    add_prices(item.id, [10, 11, 12])
    services.projects.finalize_project(project_id=project.id, operator_id="user-1")

    with pytest.raises(InvalidTransitionError):
        services.projects.finalize_project(project_id=project.id, operator_id="user-1")


def test_cancelled_project_cannot_be_finalized(db, services, project):
    services.projects.cancel_project(project_id=project.id, operator_id="user-1")

    with pytest.raises(InvalidTransitionError):
        services.projects.finalize_project(project_id=project.id, override_justification="qualquer motivo")
    stored = db.get(Project, project.id)
    assert stored.status == ProjectStatus.cancelled
    assert stored.finalized_at is None


def test_finalized_project_cannot_be_cancelled(services, project):
    services.projects.finalize_project(project_id=project.id, operator_id="user-1")

    with pytest.raises(InvalidTransitionError):
        services.projects.cancel_project(project_id=project.id, operator_id="user-1")


def test_finalized_project_rejects_edits(services, project, item):
    services.projects.finalize_project(
        project_id=project.id, override_justification="Item sem mercado", operator_id="user-1"
    )

    with pytest.raises(ProjectLockedError):
        services.projects.update_project(project_id=project.id, updates={"name": "Outro"}, operator_id="u")
    with pytest.raises(ProjectLockedError):
        services.items.create_item(project_id=project.id, name="Novo", quantity=1, unit="UN", operator_id="u")


def test_finalized_project_cannot_be_deleted(db, services, project):
    services.projects.finalize_project(project_id=project.id, operator_id="user-1")

    with pytest.raises(InvalidTransitionError):
        services.projects.delete_project(project_id=project.id, operator_id="user-1")
    assert db.get(Project, project.id) is not None


def test_delete_project_removes_items_and_sources(db, services, project, item, add_prices):
    add_prices(item.id, [10, 11])

    services.projects.delete_project(project_id=project.id, operator_id="user-1")

    assert db.get(Project, project.id) is None
    assert db.scalar(select(func.count()).select_from(LineItem)) == 0
    assert db.scalar(select(func.count()).select_from(Source)) == 0


def test_cancelled_project_can_be_deleted(db, services, project):
    services.projects.cancel_project(project_id=project.id, operator_id="user-1")

    services.projects.delete_project(project_id=project.id, operator_id="user-1")

    assert db.get(Project, project.id) is None


def test_unknown_project(services):
    with pytest.raises(ProjectNotFoundError):
        services.projects.finalize_project(project_id="nope")
    with pytest.raises(ProjectNotFoundError):
        services.projects.get_project("nope")


def test_list_projects_by_tenant(services, project):
    other = services.projects.create_project(tenant_id="tenant-1", user_id="user-1", name="Limpeza")
    services.projects.create_project(tenant_id="tenant-2", user_id="user-9", name="Outro órgão")
    services.projects.cancel_project(project_id=other.id, operator_id="user-1")

    assert {p.id for p in services.projects.list_projects("tenant-1")} == {project.id, other.id}
    assert [p.id for p in services.projects.list_projects("tenant-1", include_cancelled=False)] == [project.id]


def test_update_without_changes_keeps_draft(db, services, project):
    services.projects.update_project(project_id=project.id, updates={}, operator_id="user-1")
    services.projects.update_project(
        project_id=project.id, updates={"name": "Aquisição de material de expediente"}, operator_id="user-1"
    )

    assert db.get(Project, project.id).status == ProjectStatus.draft
    assert services.audit_log.list_logs(project_id=project.id, action=AuditAction.update) == []
