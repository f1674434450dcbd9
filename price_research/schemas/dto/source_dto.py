from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel

from price_research.config import Settings, get_settings
from price_research.models.source import Source


class SourceDTO(BaseModel):
    id: str
    line_item_id: str
    external_ref_id: str
    unit_price: float
    excluded: bool
    exclusion_reason: Optional[str]
    observation_date: Optional[date]
    created_at: Optional[datetime]

    # derived
    is_stale: bool
    age_in_months: Optional[int]

    @classmethod
    def from_orm_model(
        cls,
        source: Source,
        today: Optional[date] = None,
        settings: Optional[Settings] = None,
    ) -> "SourceDTO":
        '''
        :param settings: thresholds the caller's services run with, so the
                         staleness flag agrees with the recency rule
        '''
        settings = settings or get_settings()
        return cls(
            id=source.id,
            line_item_id=source.line_item_id,
            external_ref_id=source.external_ref_id,
            unit_price=float(source.unit_price),
            excluded=source.excluded,
            exclusion_reason=source.exclusion_reason,
            observation_date=source.observation_date,
            created_at=source.created_at,
            is_stale=source.is_stale(settings.recency_months, today=today),
            age_in_months=source.age_in_months(today=today),
        )
