from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from price_research.services.validation_service import ValidationMessage, ValidationReport


class ValidationMessageDTO(BaseModel):
    rule: str
    level: str  # "error" | "warning" | "info"
    message: str
    item_id: Optional[str] = None
    source_id: Optional[str] = None
    data: Dict[str, Any] = {}


class ValidationSummaryDTO(BaseModel):
    error_count: int
    warning_count: int
    info_count: int

    is_ready_for_finalization: bool


class ValidationReportDTO(BaseModel):
    valid: bool
    summary: ValidationSummaryDTO

    errors: List[ValidationMessageDTO]
    warnings: List[ValidationMessageDTO]
    infos: List[ValidationMessageDTO]

    @classmethod
    def from_domain_model(cls, report: ValidationReport) -> "ValidationReportDTO":

        summary = ValidationSummaryDTO(
            error_count=len(report.errors),
            warning_count=len(report.warnings),
            info_count=len(report.infos),
            is_ready_for_finalization=report.valid,
        )

        def convert_message(message: ValidationMessage):
            return ValidationMessageDTO(
                rule=message.rule,
                level=message.level.value,
                message=message.message,
                item_id=message.item_id,
                source_id=message.source_id,
                data=dict(message.data),
            )

        return cls(
            valid=report.valid,
            summary=summary,
            errors=[convert_message(m) for m in report.errors],
            warnings=[convert_message(m) for m in report.warnings],
            infos=[convert_message(m) for m in report.infos],
        )
