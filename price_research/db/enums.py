# price_research/db/enums.py
import enum


# Project related enums
class ProjectStatus(enum.Enum):
    draft = "draft"
    in_progress = "in_progress"
    finalized = "finalized"
    cancelled = "cancelled"


# AuditLog related enums
class AuditEntityType(enum.Enum):
    Project = "project"
    LineItem = "line_item"
    Source = "source"


class AuditAction(enum.Enum):
    create = "create"
    update = "update"
    delete = "delete"
    exclude = "exclude"
    include = "include"
    finalize = "finalize"
    override = "override"
    cancel = "cancel"
    system = "system"


# Validation related enums
class ValidationLevel(enum.Enum):
    error = "error"
    warning = "warning"
    info = "info"
