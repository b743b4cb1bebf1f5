"""
Field mapping between in-memory records and the remote store's column names.

Pure, stateless 1:1 translation. Keys not in a table pass through unchanged.
"""
from typing import Any, Mapping

MASTER_ITEMS = "master_items"
PROJECTS = "projects"
VERSIONS = "versions"
BQ_ITEMS = "bq_items"

# local attribute -> remote column
FIELD_MAP: dict[str, dict[str, str]] = {
    MASTER_ITEMS: {
        "id": "id",
        "category": "category",
        "item_name": "item_name",
        "description": "description",
        "uom": "uom",
        "brand": "brand",
        "axsku": "axsku",
        "mpn": "mpn",
        "group": "group_name",
        "fob_cost": "rex_sc_fob",
        "forex_rate": "forex",
        "tax_multiplier": "sst",
        "operational_adjustment": "opta",
        "cost": "rex_sc_ddp",
        "selling_price": "rex_sp",
        "retail_selling_price": "rex_rsp",
        "price": "price",
        "is_deleted": "is_deleted",
    },
    PROJECTS: {
        "id": "id",
        "project_name": "project_name",
        "client_name": "client_name",
        "client_contact": "client_contact",
        "client_address": "client_address",
        "date": "quote_date",
        "validity_period": "validity_period",
        "quote_id": "quote_ref",
        "discount": "discount",
        "created_at": "created_at",
        "is_deleted": "is_deleted",
    },
    VERSIONS: {
        "id": "id",
        "project_id": "project_id",
        "name": "name",
        "created_at": "created_at",
        "master_snapshot": "master_snapshot",
        "is_deleted": "is_deleted",
    },
    BQ_ITEMS: {
        "id": "id",
        "project_id": "project_id",
        "version_id": "version_id",
        "master_id": "master_id",
        "category": "category",
        "item_name": "item_name",
        "description": "description",
        "quotation_description": "quotation_description",
        "uom": "uom",
        "price": "price",
        "qty": "qty",
        "total": "total",
        "is_optional": "is_optional",
        "sort_order": "sort_order",
        "fob_cost": "rex_sc_fob",
        "forex_rate": "forex",
        "tax_multiplier": "sst",
        "operational_adjustment": "opta",
        "cost": "rex_sc_ddp",
        "selling_price": "rex_sp",
        "retail_selling_price": "rex_rsp",
        "is_deleted": "is_deleted",
    },
}

REVERSE_MAP: dict[str, dict[str, str]] = {
    table: {remote: local for local, remote in mapping.items()}
    for table, mapping in FIELD_MAP.items()
}


def to_wire(table: str, record: Mapping[str, Any]) -> dict:
    """Rename local attribute keys to remote column names."""
    mapping = FIELD_MAP.get(table, {})
    return {mapping.get(key, key): value for key, value in record.items()}


def from_wire(table: str, record: Mapping[str, Any]) -> dict:
    """Rename remote column names back to local attribute keys."""
    mapping = REVERSE_MAP.get(table, {})
    return {mapping.get(key, key): value for key, value in record.items()}
