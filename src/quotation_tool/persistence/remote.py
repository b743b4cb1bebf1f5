"""
Remote persistence boundary.

Local stores update their in-memory state first and hand every change to
RemoteSync, which queues it as a PendingOp and sends it to the configured
RemoteStore when drained:

    pending → applied     remote call succeeded
    pending → orphaned    insert completed but the local entity is gone
    pending → failed      remote call raised; logged, local state kept

There is no rollback and no retry. Ids assigned by the remote store on
insert are reconciled back into the owning local store, and later ops still
addressed to the temporary id are re-targeted.
"""
import json
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field, is_dataclass, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Protocol

from .field_mapping import to_wire

logger = logging.getLogger(__name__)


class RemoteStore(Protocol):
    """The four primitive calls a persistence backend must offer."""

    def insert(self, table: str, record: dict) -> dict: ...

    def update(self, table: str, record_id: str, partial: dict) -> None: ...

    def soft_delete(self, table: str, record_id: str) -> None: ...

    def bulk_fetch(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> list[dict]: ...


def _matches(record: Mapping[str, Any], filters: Optional[Mapping[str, Any]]) -> bool:
    if record.get("is_deleted"):
        return False
    if not filters:
        return True
    return all(record.get(key) == value for key, value in filters.items())


class InMemoryRemoteStore:
    """Dict-backed store for tests and local development."""

    def __init__(self, assign_server_ids: bool = False):
        self.tables: dict[str, dict[str, dict]] = {}
        self.assign_server_ids = assign_server_ids

    def insert(self, table: str, record: dict) -> dict:
        stored = dict(record)
        if self.assign_server_ids or not stored.get("id"):
            stored["id"] = str(uuid.uuid4())
        self.tables.setdefault(table, {})[stored["id"]] = stored
        return dict(stored)

    def update(self, table: str, record_id: str, partial: dict) -> None:
        rows = self.tables.setdefault(table, {})
        if record_id in rows:
            rows[record_id].update(partial)

    def soft_delete(self, table: str, record_id: str) -> None:
        self.update(table, record_id, {"is_deleted": True})

    def bulk_fetch(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> list[dict]:
        return [dict(r) for r in self.tables.get(table, {}).values() if _matches(r, filters)]


class JsonFileRemoteStore:
    """One JSON file per table under ``store_dir``."""

    def __init__(self, store_dir: Path):
        self.store_dir = Path(store_dir)

    def _path(self, table: str) -> Path:
        return self.store_dir / f"{table}.json"

    def _load(self, table: str) -> dict[str, dict]:
        path = self._path(table)
        if not path.exists():
            return {}
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return data.get("records", {})

    def _save(self, table: str, rows: dict[str, dict]):
        self.store_dir.mkdir(parents=True, exist_ok=True)
        with open(self._path(table), 'w', encoding='utf-8') as f:
            json.dump({"table": table, "records": rows}, f, indent=2)

    def insert(self, table: str, record: dict) -> dict:
        rows = self._load(table)
        stored = dict(record)
        if not stored.get("id"):
            stored["id"] = str(uuid.uuid4())
        rows[stored["id"]] = stored
        self._save(table, rows)
        return dict(stored)

    def update(self, table: str, record_id: str, partial: dict) -> None:
        rows = self._load(table)
        if record_id not in rows:
            return
        rows[record_id].update(partial)
        self._save(table, rows)

    def soft_delete(self, table: str, record_id: str) -> None:
        self.update(table, record_id, {"is_deleted": True})

    def bulk_fetch(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> list[dict]:
        return [r for r in self._load(table).values() if _matches(r, filters)]


class OpKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    SOFT_DELETE = "soft_delete"


class OpState(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    ORPHANED = "orphaned"
    FAILED = "failed"


@dataclass
class PendingOp:
    """One queued remote call and its outcome."""
    kind: OpKind
    table: str
    target_id: str
    payload: dict = field(default_factory=dict)
    state: OpState = OpState.PENDING
    server_id: Optional[str] = None
    error: Optional[str] = None


def to_plain(value: Any) -> Any:
    """Convert dataclasses and enums to JSON-ready values."""
    if is_dataclass(value) and not isinstance(value, type):
        return to_plain(asdict(value))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


# Foreign keys re-pointed when the referenced record got a server id
REFERENCE_FIELDS = ("project_id", "version_id", "master_id")

# (old_id, new_id) -> True when the local entity existed and was renamed
Reconciler = Callable[[str, str], bool]


class RemoteSync:
    """Queue of optimistic remote writes with id reconciliation."""

    HISTORY_SIZE = 500
    ALIAS_LIMIT = 500

    def __init__(self, remote: Optional[RemoteStore] = None):
        self.remote = remote
        self.queue: deque[PendingOp] = deque()
        self.history: deque[PendingOp] = deque(maxlen=self.HISTORY_SIZE)
        self._id_aliases: dict[str, str] = {}
        self._reconcilers: dict[str, Reconciler] = {}

    def register_reconciler(self, table: str, reconciler: Reconciler):
        self._reconcilers[table] = reconciler

    def resolve_id(self, record_id: str) -> str:
        """Follow temporary → server id reassignments."""
        seen = set()
        while record_id in self._id_aliases and record_id not in seen:
            seen.add(record_id)
            record_id = self._id_aliases[record_id]
        return record_id

    @property
    def pending_count(self) -> int:
        return len(self.queue)

    def insert(self, table: str, record: Mapping[str, Any]) -> PendingOp:
        return self._dispatch(PendingOp(OpKind.INSERT, table, str(record.get("id", "")), to_plain(record)))

    def update(self, table: str, record_id: str, partial: Mapping[str, Any]) -> PendingOp:
        return self._dispatch(PendingOp(OpKind.UPDATE, table, record_id, to_plain(partial)))

    def soft_delete(self, table: str, record_id: str) -> PendingOp:
        return self._dispatch(PendingOp(OpKind.SOFT_DELETE, table, record_id))

    def _dispatch(self, op: PendingOp) -> PendingOp:
        if self.remote is None:
            op.state = OpState.APPLIED
            self.history.append(op)
            return op
        self.queue.append(op)
        return op

    def drain(self) -> list[PendingOp]:
        """Send every queued op in order. Never raises."""
        completed = []
        while self.queue:
            op = self.queue.popleft()
            self._execute(op)
            self.history.append(op)
            completed.append(op)
        return completed

    def _execute(self, op: PendingOp):
        target = self.resolve_id(op.target_id)
        payload = dict(op.payload)
        for key in REFERENCE_FIELDS:
            if isinstance(payload.get(key), str):
                payload[key] = self.resolve_id(payload[key])
        if isinstance(payload.get("master_snapshot"), list):
            payload["master_snapshot"] = [
                {**item, "id": self.resolve_id(item["id"])}
                if isinstance(item, Mapping) and isinstance(item.get("id"), str) else item
                for item in payload["master_snapshot"]
            ]
        payload = to_wire(op.table, payload)
        try:
            if op.kind == OpKind.INSERT:
                payload["id"] = target
                response = self.remote.insert(op.table, payload) or {}
                self._complete_insert(op, target, response.get("id"))
                return
            if op.kind == OpKind.UPDATE:
                payload.pop("id", None)
                self.remote.update(op.table, target, payload)
            else:
                self.remote.soft_delete(op.table, target)
            op.state = OpState.APPLIED
        except Exception as e:
            op.state = OpState.FAILED
            op.error = str(e)
            logger.warning("Remote %s on %s/%s failed: %s", op.kind.value, op.table, target, e)

    def _complete_insert(self, op: PendingOp, local_id: str, server_id: Optional[str]):
        op.server_id = server_id
        if not server_id or server_id == local_id:
            op.state = OpState.APPLIED
            return

        self._id_aliases[local_id] = server_id
        if len(self._id_aliases) > self.ALIAS_LIMIT:
            self._prune_aliases()
        reconciler = self._reconcilers.get(op.table)
        if reconciler is not None and reconciler(local_id, server_id):
            op.state = OpState.APPLIED
        else:
            op.state = OpState.ORPHANED
            logger.info("Insert on %s completed for %s after local removal", op.table, local_id)

    def _referenced_ids(self) -> set[str]:
        ids = set()
        for op in self.queue:
            ids.add(op.target_id)
            ids.update(op.payload[key] for key in REFERENCE_FIELDS if isinstance(op.payload.get(key), str))
            for item in op.payload.get("master_snapshot") or ():
                if isinstance(item, Mapping) and isinstance(item.get("id"), str):
                    ids.add(item["id"])
        return ids

    def _prune_aliases(self):
        """Drop the oldest aliases no queued op still addresses."""
        keep = self._referenced_ids()
        for alias in list(self._id_aliases):
            if len(self._id_aliases) <= self.ALIAS_LIMIT:
                break
            if alias not in keep:
                del self._id_aliases[alias]
