import math
from decimal import Decimal

import pytest

from price_research.errors import ItemNotFoundError


def test_item_statistics_cover_included_prices(services, item, add_prices):
    sources = add_prices(item.id, [10, 11, 12, 9, 100])
    services.ledger.mark_excluded(source_id=sources[4].id, reason="Preço desproporcional")

    stats = services.summary.item_statistics(item.id)

    assert stats.count == 4
    assert stats.median == pytest.approx(10.5)
    assert stats.max == 12


def test_item_statistics_of_unknown_item(services):
    with pytest.raises(ItemNotFoundError):
        services.summary.item_statistics("nope")


def test_project_summary_dataframe(services, project, item, add_prices):
    empty = services.items.create_item(
        project_id=project.id, name="Clips", quantity=3, unit="CX", operator_id="u", display_order=2
    )
    add_prices(item.id, [2, 3, 4])

    df = services.summary.project_summary_df(project.id)

    assert list(df["item_id"]) == [item.id, empty.id]
    first = df.iloc[0]
    assert first["median"] == pytest.approx(3.0)
    assert first["estimated_total"] == pytest.approx(300.0)
    assert math.isnan(df.iloc[1]["median"])
    assert df.attrs["project_id"] == project.id
    assert df.attrs["estimated_total"] == pytest.approx(300.0)


def test_project_estimated_total_skips_items_without_median(services, project, item, add_prices):
    services.items.create_item(project_id=project.id, name="Clips", quantity=3, unit="CX", operator_id="u")
    add_prices(item.id, [1.5, 2.5])

    assert services.summary.project_estimated_total(project.id) == Decimal("200")
