# price_research/errors.py
from typing import Any, Dict, Optional

from price_research.schemas.error_type import ErrorType


class PriceResearchError(Exception):
    """
    Base class of every failure the engine raises on purpose.
    `details` carries the identifiers and rule needed to render a message.
    """
    error_type: ErrorType = ErrorType.BUSINESS_RULE_ERROR

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "error_type": self.error_type.value,
            "message": self.message,
            "details": self.details,
        }


# =========
# Not found
# =========
class ProjectNotFoundError(PriceResearchError):
    error_type = ErrorType.NOT_FOUND

    def __init__(self, project_id: str):
        super().__init__(f"Project not found: {project_id}", project_id=project_id)


class ItemNotFoundError(PriceResearchError):
    error_type = ErrorType.NOT_FOUND

    def __init__(self, item_id: str):
        super().__init__(f"Line item not found: {item_id}", item_id=item_id)


class SourceNotFoundError(PriceResearchError):
    error_type = ErrorType.NOT_FOUND

    def __init__(self, source_id: str):
        super().__init__(f"Source not found: {source_id}", source_id=source_id)


class ReferenceNotFoundError(PriceResearchError):
    error_type = ErrorType.NOT_FOUND

    def __init__(self, external_ref_id: str):
        super().__init__(
            f"Catalog reference not found: {external_ref_id}",
            external_ref_id=external_ref_id,
        )


# =========
# Input / business rules
# =========
class InvalidReferencePriceError(PriceResearchError):
    error_type = ErrorType.INPUT_ERROR

    def __init__(self, external_ref_id: str, unit_price: Any):
        super().__init__(
            f"Catalog reference {external_ref_id} has no positive unit price",
            external_ref_id=external_ref_id,
            unit_price=None if unit_price is None else str(unit_price),
        )


class InvalidItemDataError(PriceResearchError):
    error_type = ErrorType.INPUT_ERROR

    def __init__(self, message: str, field: str, item_id: Optional[str] = None):
        super().__init__(message, field=field, item_id=item_id)


class DuplicateSourceError(PriceResearchError):
    def __init__(self, item_id: str, external_ref_id: str):
        super().__init__(
            f"Reference {external_ref_id} is already attached to item {item_id}",
            item_id=item_id,
            external_ref_id=external_ref_id,
        )


class InvalidReasonError(PriceResearchError):
    error_type = ErrorType.INPUT_ERROR

    def __init__(self, source_id: str, min_length: int):
        super().__init__(
            f"Exclusion reason must have at least {min_length} characters",
            source_id=source_id,
            min_length=min_length,
        )


class InvalidTransitionError(PriceResearchError):
    def __init__(self, project_id: str, current_status: str, action: str, message: Optional[str] = None):
        super().__init__(
            message or f"Project {project_id} with status '{current_status}' cannot {action}",
            project_id=project_id,
            current_status=current_status,
            action=action,
        )


class ProjectLockedError(InvalidTransitionError):
    """Edits attempted on a finalized or cancelled project."""

    def __init__(self, project_id: str, current_status: str, action: str = "be edited"):
        super().__init__(
            project_id,
            current_status,
            action,
            message=f"Project {project_id} is {current_status} and cannot {action}",
        )


# =========
# Consistency
# =========
class ConcurrentModificationError(PriceResearchError):
    error_type = ErrorType.CONCURRENCY_ERROR

    def __init__(self, item_id: str, attempts: int):
        super().__init__(
            f"Line item {item_id} kept changing concurrently; gave up after {attempts} attempts",
            item_id=item_id,
            attempts=attempts,
        )


class LedgerConsistencyError(PriceResearchError):
    error_type = ErrorType.DATABASE_ERROR

    def __init__(self, item_id: str, operation: str):
        super().__init__(
            f"Could not apply {operation} on item {item_id}; nothing was changed",
            item_id=item_id,
            operation=operation,
        )
