# price_research/services/statistics_service.py
import math
import numbers
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional, Sequence

import pandas as pd

from price_research.config import get_settings

# IQR is not meaningful below this many points
MIN_OUTLIER_SAMPLE = 4


@dataclass
class Statistics:
    mean: float = 0.0
    median: float = 0.0
    std_dev: float = 0.0
    min: float = 0.0
    max: float = 0.0
    count: int = 0
    # positions in the caller's input list
    outliers: List[int] = field(default_factory=list)


class StatisticsCalculator:
    """
    Descriptive statistics over observed unit prices.

    Pure and stateless: invalid entries (non-numeric, NaN, infinite, zero or
    negative) are dropped before computing, never rejected. Outlier detection
    uses the IQR rule with linearly interpolated quartiles
    (index = p * (n - 1) over the sorted sample).
    """

    def __init__(self, iqr_factor: Optional[float] = None):
        self.iqr_factor = iqr_factor if iqr_factor is not None else get_settings().iqr_factor

    def compute(self, prices: Sequence[Any]) -> Statistics:
        '''
        Compute mean, median, population standard deviation, min, max and
        IQR outliers.

        :param prices: observed unit prices, in any order
        :type prices: Sequence[Any]
        :return: Statistics with every numeric field 0 when no valid price remains
        :rtype: Statistics
        '''
        series = self._valid_series(prices)
        if series.empty:
            return Statistics()

        return Statistics(
            mean=float(series.mean()),
            median=float(series.median()),
            std_dev=float(series.std(ddof=0)),
            min=float(series.min()),
            max=float(series.max()),
            count=int(series.size),
            outliers=self._outlier_positions(series),
        )

    def median(self, prices: Sequence[Any]) -> float:
        series = self._valid_series(prices)
        if series.empty:
            return 0.0
        return float(series.median())

    def quartile(self, prices: Sequence[Any], p: float) -> float:
        '''
        Quantile `p` (0..1) with linear interpolation between the floor and
        ceiling elements of the sorted sample. Input order does not matter.
        '''
        if not 0 <= p <= 1:
            raise ValueError(f"quantile must be within [0, 1], got {p}")
        series = self._valid_series(prices)
        if series.empty:
            return 0.0
        return float(series.quantile(p, interpolation="linear"))

    def outliers(self, prices: Sequence[Any]) -> List[int]:
        return self._outlier_positions(self._valid_series(prices))

    def _outlier_positions(self, series: pd.Series) -> List[int]:
        if series.size < MIN_OUTLIER_SAMPLE:
            return []
        q1 = series.quantile(0.25, interpolation="linear")
        q3 = series.quantile(0.75, interpolation="linear")
        iqr = q3 - q1
        lower = q1 - self.iqr_factor * iqr
        upper = q3 + self.iqr_factor * iqr

        mask = (series < lower) | (series > upper)
        return [int(position) for position in series.index[mask]]

    @staticmethod
    def _valid_series(prices: Sequence[Any]) -> pd.Series:
        # keep the original positions as the index so outliers map back to the input
        positions: List[int] = []
        values: List[float] = []
        for position, value in enumerate(prices or []):
            if not _is_valid_price(value):
                continue
            positions.append(position)
            values.append(float(value))
        return pd.Series(values, index=positions, dtype="float64")


def _is_valid_price(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (numbers.Real, Decimal)):
        return False
    try:
        number = float(value)
    except (TypeError, ValueError, ArithmeticError):
        return False
    return math.isfinite(number) and number > 0
