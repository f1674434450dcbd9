from price_research.models.project import Project
from price_research.models.line_item import LineItem
from price_research.models.source import Source
from price_research.models.catalog_entry import CatalogEntry
from price_research.models.audit_log import AuditLog

__all__ = ["Project", "LineItem", "Source", "CatalogEntry", "AuditLog"]
