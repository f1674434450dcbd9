import math
from decimal import Decimal

import numpy as np
import pytest

from price_research.services.statistics_service import StatisticsCalculator


@pytest.fixture
def calculator():
    return StatisticsCalculator(iqr_factor=1.5)


def test_empty_input_yields_zeroed_statistics(calculator):
    stats = calculator.compute([])

    assert stats.count == 0
    assert stats.mean == 0
    assert stats.median == 0
    assert stats.std_dev == 0
    assert stats.min == 0
    assert stats.max == 0
    assert stats.outliers == []


def test_tight_cluster_has_no_outliers(calculator):
    stats = calculator.compute([10, 12, 11, 9])

    assert stats.count == 4
    assert stats.median == pytest.approx(10.5)
    assert stats.mean == pytest.approx(10.5)
    assert stats.min == 9
    assert stats.max == 12
    assert stats.outliers == []


def test_far_value_is_flagged_by_input_position(calculator):
    stats = calculator.compute([10, 11, 12, 9, 100])

    assert stats.median == pytest.approx(11)
    assert stats.outliers == [4]


def test_low_outlier_is_detected(calculator):
    stats = calculator.compute([50, 52, 51, 49, 1])

    assert stats.outliers == [4]


def test_fewer_than_four_values_never_yield_outliers(calculator):
    assert calculator.compute([1, 2, 1000]).outliers == []
    assert calculator.outliers([5, 500]) == []


def test_population_standard_deviation(calculator):
    stats = calculator.compute([2, 4, 4, 4, 5, 5, 7, 9])

    assert stats.std_dev == pytest.approx(2.0)


def test_median_of_even_sample_averages_middle_values(calculator):
    assert calculator.median([4, 1, 3, 2]) == pytest.approx(2.5)


def test_median_of_empty_input_is_zero(calculator):
    assert calculator.median([]) == 0.0


def test_quartile_is_independent_of_input_order(calculator):
    prices = [7, 1, 3, 9, 5]

    assert calculator.quartile(prices, 0.25) == pytest.approx(3.0)
    assert calculator.quartile(sorted(prices), 0.25) == calculator.quartile(prices, 0.25)
    assert calculator.quartile(list(reversed(prices)), 0.75) == pytest.approx(7.0)


def test_quartile_interpolates_linearly(calculator):
    # index 0.25 * 3 = 0.75 between 10 and 20
    assert calculator.quartile([10, 20, 30, 40], 0.25) == pytest.approx(17.5)


def test_quartile_rejects_out_of_range_fraction(calculator):
    with pytest.raises(ValueError):
        calculator.quartile([1, 2, 3], 1.5)


def test_invalid_entries_are_dropped_before_computing(calculator):
    prices = [10, None, "abc", -5, 0, math.nan, math.inf, True, 12]
    stats = calculator.compute(prices)

    assert stats.count == 2
    assert stats.median == pytest.approx(11)
    assert stats.min == 10
    assert stats.max == 12


def test_outlier_positions_skip_dropped_entries(calculator):
    prices = [10, None, 11, 12, -1, 9, 100]

    assert calculator.compute(prices).outliers == [6]


def test_decimal_prices_are_accepted(calculator):
    stats = calculator.compute([Decimal("10.50"), Decimal("11.25"), Decimal("9.75")])

    assert stats.count == 3
    assert stats.median == pytest.approx(10.5)


def test_custom_iqr_factor_widens_fences():
    prices = [10, 11, 12, 9, 16]

    assert StatisticsCalculator(iqr_factor=1.5).outliers(prices) == [4]
    assert StatisticsCalculator(iqr_factor=3.0).outliers(prices) == []


def test_numpy_scalars_are_valid_prices(calculator):
    stats = calculator.compute([np.int64(10), np.int64(12), np.float64(11), np.int32(9)])

    assert stats.count == 4
    assert stats.median == pytest.approx(10.5)
    assert calculator.median([np.int64(7)]) == 7.0
