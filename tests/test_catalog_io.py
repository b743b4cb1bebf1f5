"""
Tests for the price-list CSV import and export.
"""
from pathlib import Path

import pytest

from quotation_tool.data.catalog_io import export_catalog_csv, import_catalog_csv
from quotation_tool.engine.models import MANUAL
from quotation_tool.engine.strategies import CostStrategy, SellingStrategy

SEED_CATALOG = Path(__file__).parent.parent / "data" / "master_catalog.csv"


@pytest.fixture
def seed_items():
    items, report = import_catalog_csv(SEED_CATALOG)
    assert report["status"] == "success", report["errors"]
    return {item.item_name: item for item in items}, report


def test_seed_catalog_report(seed_items):
    _, report = seed_items
    metrics = report["metrics"]

    assert metrics["rows_read"] == 7
    assert metrics["rows_dropped"] == 1, "Blank spacer rows are dropped"
    assert metrics["items_imported"] == 6
    assert metrics["categories"] == 5
    assert report["warnings"] == []
    assert len(report["input_file"]["hash"]) == 12


def test_seed_catalog_prices(seed_items):
    items, _ = seed_items

    expected = {
        "ABB Terra AC 22kW": 152743,
        "ABB Terra DC 60kW": 95000,
        "4C 16mm2 XLPE/SWA/PVC": 168,
        "Pedestal stand": 2843.6,
        "500kVA Cast Resin Transformer": 34179,
        "Standard installation (up to 10m)": 1200,
    }
    for name, price in expected.items():
        assert items[name].price == pytest.approx(price), f"{name}: expected {price}, got {items[name].price}"


def test_legacy_strategy_ids_are_canonicalized(seed_items):
    items, _ = seed_items
    pedestal = items["Pedestal stand"]

    assert pedestal.cost.strategy == CostStrategy.FORMULA_ROUND_0_01_PLUS_30.value
    assert pedestal.cost.value == pytest.approx(1421.76)
    assert pedestal.selling_price.strategy == SellingStrategy.FACTOR_0_5_ROUND_0_1.value


def test_manual_columns(seed_items):
    items, _ = seed_items
    dc = items["ABB Terra DC 60kW"]
    install = items["Standard installation (up to 10m)"]

    assert dc.retail_selling_price.strategy == MANUAL
    assert dc.retail_selling_price.manual_override == 95000
    assert dc.selling_price.value == 85279
    assert install.cost.value == 800
    assert install.category == "Services"
    assert install.brand == ""


def test_missing_columns_are_defaulted(tmp_path):
    path = tmp_path / "minimal.csv"
    path.write_text("Item,SP\nSite survey,450\n")

    items, report = import_catalog_csv(path)

    assert report["status"] == "success"
    [item] = items
    assert item.category == "Uncategorized"
    assert item.uom == "Unit"
    assert item.selling_price.value == 450
    assert item.cost.value == 0
    assert item.price == 0, "Retail defaults to a manual zero"


def test_unknown_strategy_is_reported(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("Item,FOB,DDP Strategy\nWidget,10,FORMULA_ROUND_5\n")

    items, report = import_catalog_csv(path)

    assert items[0].cost.value == 0
    assert report["warnings"] and "FORMULA_ROUND_5" in report["warnings"][0]


def test_missing_file_and_missing_item_column(tmp_path):
    items, report = import_catalog_csv(tmp_path / "nope.csv")
    assert items == [] and report["status"] == "failed"

    path = tmp_path / "headers.csv"
    path.write_text("Name,Price\nWidget,1\n")
    items, report = import_catalog_csv(path)
    assert items == [] and report["status"] == "failed"
    assert "'Item'" in report["errors"][0]


def test_export_then_import_keeps_prices(seed_items, tmp_path):
    items, _ = seed_items

    out = export_catalog_csv(items.values(), tmp_path / "out" / "catalog.csv")
    reloaded, report = import_catalog_csv(out)

    assert report["status"] == "success"
    assert {i.item_name: i.price for i in reloaded} == {name: i.price for name, i in items.items()}
