"""
Catalog Service - the authoritative, in-memory master item list.

Every write resolves derived pricing before storing, so a stored item's
price always equals its retail selling price. Writes are mirrored to the
remote store through RemoteSync.
"""
import logging
from typing import Any, Iterable, Mapping, Optional, Union

from ..data.sanitizer import sanitize_master_item
from ..engine.models import COST_DRIVERS, PRICE_FIELDS, MasterItem, clone, new_id, shallow_fields
from ..engine.resolver import DerivedFieldResolver, ResolvedPricing
from ..persistence.field_mapping import MASTER_ITEMS
from ..persistence.remote import RemoteSync

logger = logging.getLogger(__name__)

# Fields whose change requires the pricing chain to be recomputed
CALCULATION_TRIGGERS = frozenset(COST_DRIVERS + PRICE_FIELDS)

# Derived / bookkeeping fields callers cannot write directly
PROTECTED_FIELDS = frozenset({"id", "price", "is_deleted"})

SEARCH_FIELDS = ("item_name", "description", "category", "brand", "axsku", "mpn")


class CatalogStore:
    """Service for managing master catalog items."""

    def __init__(self, resolver: Optional[DerivedFieldResolver] = None,
                 remote: Optional[RemoteSync] = None):
        self.resolver = resolver or DerivedFieldResolver()
        self.remote = remote or RemoteSync()
        self._items: dict[str, MasterItem] = {}
        self.remote.register_reconciler(MASTER_ITEMS, self.reassign_id)

    # ------------------------------------------------------------------
    # Read projections
    # ------------------------------------------------------------------

    @property
    def active_items(self) -> list[MasterItem]:
        """Non-deleted items in insertion order."""
        return [item for item in self._items.values() if not item.is_deleted]

    def get(self, item_id: str) -> Optional[MasterItem]:
        item = self._items.get(item_id)
        if item is None or item.is_deleted:
            return None
        return item

    def __contains__(self, item_id: str) -> bool:
        return self.get(item_id) is not None

    def __len__(self) -> int:
        return len(self.active_items)

    def snapshot(self) -> list[MasterItem]:
        """Deep copy of the active catalog, for seeding a project version."""
        return [clone(item) for item in self.active_items]

    def categories(self) -> list[str]:
        return sorted({item.category for item in self.active_items if item.category})

    def filtered(self, search: Optional[str] = None, category: Optional[str] = None) -> list[MasterItem]:
        """Active items matching a free-text search and/or exact category."""
        items = self.active_items
        if category:
            items = [i for i in items if i.category == category]
        if search:
            needle = search.strip().lower()
            items = [
                i for i in items
                if any(needle in str(getattr(i, f, "")).lower() for f in SEARCH_FIELDS)
            ]
        return items

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def price_item(self, fields: Mapping[str, Any]) -> ResolvedPricing:
        """Resolve derived pricing and log any unknown strategy ids."""
        resolved = self.resolver.resolve(fields)
        for warning in resolved.warnings:
            logger.warning("Item %s: %s", fields.get("id"), warning)
        return resolved

    def add(self, item: Union[MasterItem, Mapping[str, Any]]) -> MasterItem:
        """Add a new item, resolving its derived pricing first."""
        item = clone(item) if isinstance(item, MasterItem) else sanitize_master_item(item)
        if not item.id or item.id in self._items:
            item.id = new_id()

        self._normalize_drivers(item)
        resolved = self.price_item(shallow_fields(item))
        self._apply_fields(item, resolved.as_updates())
        item.is_deleted = False

        self._items[item.id] = item
        self.remote.insert(MASTER_ITEMS, item.to_dict())
        return item

    def merged(self, item_id: str, updates: Mapping[str, Any]) -> Optional[MasterItem]:
        """
        Build (without storing) the item that ``updates`` would produce.

        Derived pricing is re-resolved only when a calculation trigger is in
        the update.
        """
        current = self.get(item_id)
        if current is None:
            return None

        updates = {k: v for k, v in updates.items() if k not in PROTECTED_FIELDS}
        candidate = clone(current)
        self._apply_fields(candidate, updates)

        if CALCULATION_TRIGGERS.intersection(updates):
            self._normalize_drivers(candidate)
            resolved = self.price_item(shallow_fields(candidate))
            self._apply_fields(candidate, resolved.as_updates())
        return candidate

    def update(self, item_id: str, updates: Mapping[str, Any]) -> Optional[MasterItem]:
        """Merge a partial update into an item; returns None if the id is unknown."""
        candidate = self.merged(item_id, updates)
        if candidate is None:
            logger.warning("Update ignored: catalog item %s not found", item_id)
            return None

        self._items[item_id] = candidate
        self.remote.update(MASTER_ITEMS, item_id, self._changed_fields(updates, candidate))
        return candidate

    def apply_batch(self, deltas: Mapping[str, Mapping[str, Any]]) -> list[MasterItem]:
        """
        Apply several partial updates at once.

        All new items are built before any is stored; ids that no longer
        exist are skipped.
        """
        prepared = {}
        for item_id, delta in deltas.items():
            candidate = self.merged(item_id, delta)
            if candidate is None:
                logger.warning("Skipping staged changes for missing catalog item %s", item_id)
                continue
            prepared[item_id] = (candidate, delta)

        for item_id, (candidate, delta) in prepared.items():
            self._items[item_id] = candidate
            self.remote.update(MASTER_ITEMS, item_id, self._changed_fields(delta, candidate))
        return [candidate for candidate, _ in prepared.values()]

    def soft_delete(self, item_id: str) -> bool:
        """Mark an item deleted. Version snapshots keep their own copies."""
        item = self.get(item_id)
        if item is None:
            logger.warning("Delete ignored: catalog item %s not found", item_id)
            return False
        item.is_deleted = True
        self.remote.soft_delete(MASTER_ITEMS, item_id)
        return True

    def load(self, records: Iterable[Any]) -> int:
        """Replace local state from a bulk read; every record is sanitized and re-priced."""
        self._items = {}
        for raw in records:
            item = sanitize_master_item(raw)
            self._normalize_drivers(item)
            resolved = self.price_item(shallow_fields(item))
            self._apply_fields(item, resolved.as_updates())
            self._items[item.id] = item
        logger.info("Loaded %d catalog items", len(self._items))
        return len(self._items)

    def reassign_id(self, old_id: str, new_id_: str) -> bool:
        """Swap a temporary id for the one assigned by the remote store."""
        item = self._items.pop(old_id, None)
        if item is None:
            return False
        item.id = new_id_
        self._items[new_id_] = item
        return True

    def _normalize_drivers(self, item: MasterItem):
        ctx = self.resolver.normalize_inputs(shallow_fields(item))
        item.fob_cost = ctx.fob
        item.forex_rate = ctx.forex
        item.tax_multiplier = ctx.tax_multiplier
        item.operational_adjustment = ctx.op_adjustment

    @staticmethod
    def _apply_fields(item: MasterItem, updates: Mapping[str, Any]):
        for key, value in updates.items():
            if hasattr(item, key):
                setattr(item, key, value)

    @staticmethod
    def _changed_fields(updates: Mapping[str, Any], item: MasterItem) -> dict:
        keys = {k for k in updates if hasattr(item, k)}
        if CALCULATION_TRIGGERS.intersection(keys):
            keys.update(PRICE_FIELDS + ("price",))
        return {k: getattr(item, k) for k in keys if k not in ("id",)}
