"""
Catalog CSV import / export.

Reads the reseller's price-list sheet (one row per item) into sanitized,
fully priced MasterItems, and writes the catalog back out in the same
layout with the resolved DDP / SP / RSP values appended.
"""
import hashlib
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional, Union

import pandas as pd

from ..engine.models import MANUAL, PRICE_FIELDS, MasterItem, PriceField, shallow_fields
from ..engine.resolver import DerivedFieldResolver, coerce_number
from .sanitizer import sanitize_master_item

logger = logging.getLogger(__name__)

# CSV header -> item attribute
COLUMN_MAP = {
    'Brand': 'brand',
    'AXSKU': 'axsku',
    'MPN': 'mpn',
    'Group': 'group',
    'Category': 'category',
    'Type': 'description',
    'Item': 'item_name',
    'UOM': 'uom',
    'FOB': 'fob_cost',
    'Forex': 'forex_rate',
    'SST': 'tax_multiplier',
    'OPTA': 'operational_adjustment',
}

# Price field -> (strategy column, value column)
PRICE_COLUMNS = {
    'cost': ('DDP Strategy', 'DDP'),
    'selling_price': ('SP Strategy', 'SP'),
    'retail_selling_price': ('RSP Strategy', 'RSP'),
}


def get_file_hash(path: Path) -> str:
    """Get SHA256 hash of a file."""
    if not path.exists():
        return ""
    with open(path, 'rb') as f:
        return hashlib.sha256(f.read()).hexdigest()[:12]


def _price_field(strategy: str, value: str) -> PriceField:
    """
    Price field from a strategy cell and a value cell.

    A named strategy wins; otherwise the value cell is a manual amount.
    """
    strategy = (strategy or '').strip()
    if strategy and strategy.upper() != MANUAL:
        return PriceField(value=0.0, strategy=strategy, manual_override=0.0)
    return PriceField.manual(coerce_number(value, 0.0))


def import_catalog_csv(path: Union[str, Path],
                       resolver: Optional[DerivedFieldResolver] = None) -> tuple[list[MasterItem], dict]:
    """
    Read a price-list CSV.

    Args:
        path: CSV file with the COLUMN_MAP headers (missing columns are
            defaulted) and optional DDP/SP/RSP strategy and value columns
        resolver: Resolver used to price each row

    Returns:
        (items, build report)
    """
    path = Path(path)
    resolver = resolver or DerivedFieldResolver()

    report = {
        "timestamp": datetime.now().isoformat(),
        "status": "pending",
        "input_file": {},
        "metrics": {},
        "warnings": [],
        "errors": []
    }

    if not path.exists():
        msg = f"Catalog file {path} not found"
        report["errors"].append(msg)
        report["status"] = "failed"
        logger.error(msg)
        return [], report

    report["input_file"] = {"path": str(path), "hash": get_file_hash(path)}

    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    except Exception as e:
        msg = f"Failed to read {path}: {e}"
        report["errors"].append(msg)
        report["status"] = "failed"
        logger.error(msg)
        return [], report

    df.columns = [str(c).strip() for c in df.columns]
    df = df.apply(lambda col: col.str.strip())
    report["metrics"]["rows_read"] = len(df)

    if 'Item' not in df.columns:
        msg = "Catalog file has no 'Item' column"
        report["errors"].append(msg)
        report["status"] = "failed"
        logger.error(msg)
        return [], report

    # Rows without an item name are spacer / heading rows in the sheet
    df = df[df['Item'] != '']
    report["metrics"]["rows_dropped"] = report["metrics"]["rows_read"] - len(df)

    items = []
    for row in df.to_dict(orient='records'):
        raw = {attr: row[col] for col, attr in COLUMN_MAP.items() if col in row}
        item = sanitize_master_item(raw)
        for name, (strategy_col, value_col) in PRICE_COLUMNS.items():
            setattr(item, name, _price_field(row.get(strategy_col, ''), row.get(value_col, '')))

        resolved = resolver.resolve(shallow_fields(item))
        for warning in resolved.warnings:
            report["warnings"].append(f"{item.item_name}: {warning}")
        for key, value in resolved.as_updates().items():
            setattr(item, key, value)
        items.append(item)

    report["metrics"]["items_imported"] = len(items)
    report["metrics"]["categories"] = len({i.category for i in items})
    report["status"] = "success"
    logger.info("Imported %d catalog items from %s (%d warnings)",
                len(items), path, len(report["warnings"]))
    return items, report


def export_catalog_csv(items: Iterable[MasterItem], path: Union[str, Path]) -> Path:
    """Write items in the import layout plus the resolved price columns."""
    path = Path(path)
    rows = []
    for item in items:
        row = {col: getattr(item, attr) for col, attr in COLUMN_MAP.items()}
        for name in PRICE_FIELDS:
            strategy_col, value_col = PRICE_COLUMNS[name]
            field = getattr(item, name)
            row[strategy_col] = field.strategy
            row[value_col] = field.value
        row['Price'] = item.price
        rows.append(row)

    columns = list(COLUMN_MAP) + [c for pair in PRICE_COLUMNS.values() for c in pair] + ['Price']
    path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(rows, columns=columns).to_csv(path, index=False)
    logger.info("Exported %d catalog items to %s", len(rows), path)
    return path
