from typing import Optional

from pydantic import BaseModel

from price_research.config import Settings, get_settings
from price_research.models.line_item import LineItem


class LineItemDTO(BaseModel):
    id: str
    project_id: str
    name: str
    description: Optional[str]
    quantity: float
    unit: str
    display_order: Optional[int]
    notes: Optional[str]

    computed_median: Optional[float]
    source_count: int

    has_enough_sources: bool
    missing_sources_count: int
    estimated_total: Optional[float]

    @classmethod
    def from_orm_model(cls, item: LineItem, settings: Optional[Settings] = None) -> "LineItemDTO":
        minimum = (settings or get_settings()).min_sources
        estimated_total = item.estimated_total()
        return cls(
            id=item.id,
            project_id=item.project_id,
            name=item.name,
            description=item.description,
            quantity=float(item.quantity),
            unit=item.unit,
            display_order=item.display_order,
            notes=item.notes,
            computed_median=float(item.computed_median) if item.computed_median is not None else None,
            source_count=item.source_count,
            has_enough_sources=item.has_enough_sources(minimum),
            missing_sources_count=item.missing_sources_count(minimum),
            estimated_total=float(estimated_total) if estimated_total is not None else None,
        )
