from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from price_research.db.enums import AuditAction, AuditEntityType, ProjectStatus
from price_research.db.session import atomic
from price_research.errors import (
    InvalidItemDataError,
    InvalidTransitionError,
    ProjectLockedError,
    ProjectNotFoundError,
)
from price_research.logger import get_logger
from price_research.models.project import Project
from price_research.services.audit_log_service import AuditLogService, SYSTEM_OPERATOR
from price_research.services.validation_service import ValidationReport, ValidationService

logger = get_logger(__name__)


@dataclass
class FinalizeResult:
    finalized: bool
    project: Project
    report: ValidationReport
    override_justification: Optional[str] = None

    @property
    def override_used(self) -> bool:
        return self.finalized and self.override_justification is not None


class ProjectService:
    """
    Project records and their lifecycle.

        draft -> in_progress -> finalized
        draft | in_progress -> cancelled

    finalized and cancelled are terminal; a finalized project cannot be
    deleted. Who may finalize or override is decided by the caller, this
    service only records the justification.
    """

    EDITABLE_FIELDS = ("name", "description", "process_number", "subject")

    def __init__(
        self,
        db: Session,
        audit_log_service: AuditLogService,
        validation_service: ValidationService,
    ):
        self.db = db
        self.audit_log_service = audit_log_service
        self.validation_service = validation_service

    def create_project(
        self,
        *,
        tenant_id: str,
        user_id: str,
        name: str,
        description: Optional[str] = None,
        process_number: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> Project:
        '''
        Create a new project in status draft.

        :param tenant_id: owning tenant, already checked by the caller
        :param user_id: owning user, also recorded as operator
        :param name: project name, must not be blank
        :return: the persisted Project
        :rtype: Project
        '''
        if not name or not name.strip():
            raise InvalidItemDataError("Project name is required", field="name")

        project = Project(
            id=str(uuid4()),
            tenant_id=tenant_id,
            user_id=user_id,
            name=name.strip(),
            description=description,
            process_number=process_number,
            subject=subject,
            status=ProjectStatus.draft,
            finalized_at=None,
        )
        with atomic(self.db):
            self.db.add(project)
            self.db.flush()
            self.audit_log_service.record_create(
                project_id=project.id,
                entity_type=AuditEntityType.Project,
                entity_id=project.id,
                operator_id=user_id,
            )
        logger.info("Project %s created for tenant %s", project.id, tenant_id)
        return project

    def get_project(self, project_id: str) -> Project:
        project = self.db.get(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def list_projects(self, tenant_id: str, include_cancelled: bool = True) -> List[Project]:
        stmt = select(Project).where(Project.tenant_id == tenant_id)
        if not include_cancelled:
            stmt = stmt.where(Project.status != ProjectStatus.cancelled)
        stmt = stmt.order_by(Project.created_at.desc())
        return list(self.db.scalars(stmt).all())

    def update_project(self, *, project_id: str, updates: Dict[str, Any], operator_id: str) -> Project:
        '''
        Edit descriptive fields. The first actual change of a draft moves it to
        in_progress; finalized and cancelled projects reject edits.
        '''
        with atomic(self.db):
            project = self._lock_project(project_id)
            if not project.is_active():
                raise ProjectLockedError(project.id, project.status.value)

            changed = False
            for field_name, new_value in updates.items():
                if field_name not in self.EDITABLE_FIELDS:
                    raise InvalidItemDataError(f"Field '{field_name}' is not editable", field=field_name)
                if field_name == "name" and (not new_value or not str(new_value).strip()):
                    raise InvalidItemDataError("Project name is required", field="name")

                old_value = getattr(project, field_name)
                if old_value == new_value:
                    continue
                setattr(project, field_name, new_value)
                changed = True
                self.audit_log_service.record_update(
                    project_id=project.id,
                    entity_type=AuditEntityType.Project,
                    entity_id=project.id,
                    changed_attribute=field_name,
                    before_value=old_value,
                    after_value=new_value,
                    operator_id=operator_id,
                )

            if changed:
                self.mark_in_progress(project)
            self.db.flush()
        return project

    def mark_in_progress(self, project: Project) -> None:
        '''draft -> in_progress, triggered by edits. Flushes nothing itself.'''
        if project.status != ProjectStatus.draft:
            return
        project.status = ProjectStatus.in_progress
        self.audit_log_service.record_system_update(
            project_id=project.id,
            entity_type=AuditEntityType.Project,
            entity_id=project.id,
            changed_attribute="status",
            before_value=ProjectStatus.draft,
            after_value=ProjectStatus.in_progress,
        )

    def cancel_project(self, *, project_id: str, operator_id: str) -> Project:
        with atomic(self.db):
            project = self._lock_project(project_id)
            if not project.is_active():
                raise InvalidTransitionError(project.id, project.status.value, "be cancelled")

            before = project.status
            project.status = ProjectStatus.cancelled
            self.audit_log_service.record_action(
                project_id=project.id,
                entity_type=AuditEntityType.Project,
                entity_id=project.id,
                action=AuditAction.cancel,
                operator_id=operator_id,
                changed_attribute="status",
                before_value=before,
                after_value=ProjectStatus.cancelled,
            )
            self.db.flush()
        logger.info("Project %s cancelled", project_id)
        return project

    def delete_project(self, *, project_id: str, operator_id: str) -> None:
        '''Delete a project with its items and sources. Finalized projects are kept.'''
        with atomic(self.db):
            project = self._lock_project(project_id)
            if project.is_finalized():
                raise InvalidTransitionError(
                    project.id,
                    project.status.value,
                    "be deleted",
                    message="Não é possível deletar um projeto finalizado",
                )
            self.db.delete(project)
            self.audit_log_service.record_delete(
                project_id=project_id,
                entity_type=AuditEntityType.Project,
                entity_id=project_id,
                operator_id=operator_id,
            )
            self.db.flush()
        logger.info("Project %s deleted", project_id)

    def finalize_project(
        self,
        *,
        project_id: str,
        override_justification: Optional[str] = None,
        operator_id: str = SYSTEM_OPERATOR,
    ) -> FinalizeResult:
        '''
        Gated transition to finalized.

        The project row is locked and the minimum-sources rule re-evaluated
        inside the same transaction, so the decision holds at commit time.
        When the rule reports errors and no justification is given the
        project is left untouched and the report is returned with
        finalized=False. A blank justification counts as absent.

        :raises InvalidTransitionError: project is not draft / in_progress
        '''
        justification = (override_justification or "").strip() or None

        with atomic(self.db):
            project = self._lock_project(project_id)
            if not project.can_be_finalized():
                raise InvalidTransitionError(
                    project.id,
                    project.status.value,
                    "be finalized",
                    message=f"Projeto com status '{project.status.value}' não pode ser finalizado",
                )

            report = self.validation_service.validate_project(project.id)
            if report.errors and justification is None:
                logger.info(
                    "Finalization of project %s blocked: %d item(s) below minimum sources",
                    project.id, len(report.errors),
                )
                return FinalizeResult(finalized=False, project=project, report=report)

            before = project.status
            project.status = ProjectStatus.finalized
            project.finalized_at = datetime.now(timezone.utc)

            self.audit_log_service.record_action(
                project_id=project.id,
                entity_type=AuditEntityType.Project,
                entity_id=project.id,
                action=AuditAction.finalize,
                operator_id=operator_id,
                changed_attribute="status",
                before_value=before,
                after_value=ProjectStatus.finalized,
            )
            used_override = bool(report.errors)
            if used_override:
                self.audit_log_service.record_action(
                    project_id=project.id,
                    entity_type=AuditEntityType.Project,
                    entity_id=project.id,
                    action=AuditAction.override,
                    operator_id=operator_id,
                    changed_attribute="minimum_sources",
                    before_value=len(report.errors),
                    after_value=justification,
                )
            self.db.flush()

        if used_override:
            logger.warning("Project %s finalized with override by %s", project_id, operator_id)
        else:
            logger.info("Project %s finalized", project_id)
        return FinalizeResult(
            finalized=True,
            project=project,
            report=report,
            override_justification=justification if used_override else None,
        )

    def _lock_project(self, project_id: str) -> Project:
        stmt = (
            select(Project)
            .where(Project.id == project_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        project = self.db.scalars(stmt).one_or_none()
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project
