from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from price_research.models.project import Project
from price_research.schemas.dto.validation_report_dto import ValidationReportDTO
from price_research.services.project_service import FinalizeResult


class ProjectDTO(BaseModel):
    id: str
    tenant_id: str
    user_id: str
    name: str
    description: Optional[str]
    process_number: Optional[str]
    subject: Optional[str]
    status: str
    finalized_at: Optional[datetime]
    created_at: Optional[datetime]

    can_be_finalized: bool
    is_active: bool

    @classmethod
    def from_orm_model(cls, project: Project) -> "ProjectDTO":
        return cls(
            id=project.id,
            tenant_id=project.tenant_id,
            user_id=project.user_id,
            name=project.name,
            description=project.description,
            process_number=project.process_number,
            subject=project.subject,
            status=project.status.value,
            finalized_at=project.finalized_at,
            created_at=project.created_at,
            can_be_finalized=project.can_be_finalized(),
            is_active=project.is_active(),
        )


class FinalizeResultDTO(BaseModel):
    finalized: bool
    project: ProjectDTO
    report: ValidationReportDTO
    override_justification: Optional[str] = None

    @classmethod
    def from_domain_model(cls, result: FinalizeResult) -> "FinalizeResultDTO":
        return cls(
            finalized=result.finalized,
            project=ProjectDTO.from_orm_model(result.project),
            report=ValidationReportDTO.from_domain_model(result.report),
            override_justification=result.override_justification,
        )
