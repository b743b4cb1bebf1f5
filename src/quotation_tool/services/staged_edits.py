"""
Staged edits - pending field changes held until an explicit commit or discard.

A buffer is keyed by entity id. When a staged field feeds derived values
(e.g. a cost driver of a catalog item) the derived fields are recomputed
from the committed entity merged with everything pending, and folded into
the same pending delta. A pending delta is therefore always self-consistent
and commit never has to re-derive anything itself.
"""
import logging
from typing import Any, Callable, Iterable, Mapping, Optional

from ..engine.models import MANUAL, PriceField, clone, shallow_fields
from ..engine.resolver import coerce_number, coerce_price_field

logger = logging.getLogger(__name__)

Lookup = Callable[[str], Optional[Any]]
ApplyBatch = Callable[[Mapping[str, Mapping[str, Any]]], list]
Derive = Callable[[Mapping[str, Any]], Mapping[str, Any]]

PRICE_FIELD_PARTS = ("value", "strategy", "manual_override")


class StagedEditBuffer:
    """
    Pending edits for one kind of entity.

    Args:
        name: Label used in log messages
        lookup: Returns the committed entity for an id, or None
        apply_batch: Applies ``{id: delta}`` to the backing store in one pass
        derive: Recomputes derived fields from a merged field mapping
        triggers: Fields whose change requires ``derive``
        editable: If given, the only fields that may be staged
    """

    def __init__(self, name: str, lookup: Lookup, apply_batch: ApplyBatch,
                 derive: Optional[Derive] = None, triggers: Iterable[str] = (),
                 editable: Optional[Iterable[str]] = None):
        self.name = name
        self._lookup = lookup
        self._apply_batch = apply_batch
        self._derive = derive
        self._triggers = frozenset(triggers)
        self._editable = frozenset(editable) if editable is not None else None
        self._pending: dict[str, dict[str, Any]] = {}

    @property
    def has_pending_changes(self) -> bool:
        return bool(self._pending)

    @property
    def pending_ids(self) -> list[str]:
        return list(self._pending)

    def pending(self, entity_id: str) -> Optional[dict]:
        delta = self._pending.get(entity_id)
        return dict(delta) if delta is not None else None

    def view(self, entity_id: str) -> Optional[dict]:
        """Committed fields of an entity with its pending delta laid over them."""
        entity = self._lookup(entity_id)
        if entity is None:
            return None
        merged = shallow_fields(entity)
        merged.update(self._pending.get(entity_id, {}))
        return merged

    def stage(self, entity_id: str, field: str, value: Any) -> Optional[dict]:
        """
        Stage one field change.

        ``field`` may address part of a price field with a dotted path, e.g.
        ``cost.strategy`` or ``selling_price.manual_override``. Returns the
        entity's pending delta, or None if nothing was staged.
        """
        entity = self._lookup(entity_id)
        if entity is None:
            logger.warning("[%s] Stage ignored: %s not found", self.name, entity_id)
            return None

        key, _, part = field.partition(".")
        if self._editable is not None and key not in self._editable:
            logger.warning("[%s] Stage ignored: field %s is not editable", self.name, field)
            return None
        if not hasattr(entity, key):
            logger.warning("[%s] Stage ignored: unknown field %s", self.name, field)
            return None

        delta = dict(self._pending.get(entity_id, {}))
        if part:
            if part not in PRICE_FIELD_PARTS:
                logger.warning("[%s] Stage ignored: unknown price field part %s", self.name, field)
                return None
            current = delta.get(key, getattr(entity, key))
            price_field: PriceField = coerce_price_field(clone(current))
            if part == "strategy":
                price_field.strategy = str(getattr(value, "value", value) or "").strip() or MANUAL
            elif part == "manual_override" and value is None:
                price_field.manual_override = None
            else:
                setattr(price_field, part, coerce_number(value, 0.0))
            delta[key] = price_field
        else:
            delta[key] = value

        if self._derive is not None and key in self._triggers:
            merged = shallow_fields(entity)
            merged.update(delta)
            delta.update(self._derive(merged))

        self._pending[entity_id] = delta
        return dict(delta)

    def drop(self, entity_id: str) -> bool:
        """Forget pending edits for one entity (e.g. after it was deleted)."""
        return self._pending.pop(entity_id, None) is not None

    def rekey(self, old_id: str, new_id: str) -> bool:
        """Move pending edits to an entity's new id."""
        if old_id not in self._pending:
            return False
        self._pending[new_id] = self._pending.pop(old_id)
        return True

    def commit(self) -> int:
        """
        Apply every pending delta in one batch, then clear the buffer.

        Entities deleted since their edits were staged are skipped by the
        backing store. Returns the number of entities updated.
        """
        if not self._pending:
            return 0
        deltas = {entity_id: dict(delta) for entity_id, delta in self._pending.items()}
        applied = self._apply_batch(deltas)
        self._pending.clear()
        logger.info("[%s] Committed %d of %d staged entities", self.name, len(applied), len(deltas))
        return len(applied)

    def discard(self) -> int:
        """Drop every pending delta without applying it. Returns how many were dropped."""
        count = len(self._pending)
        self._pending.clear()
        return count
