"""
Project Service - projects, their versions, and each version's bill of quantities.

Each version owns a deep copy of the catalog taken when it was created
(or copied from the version it was duplicated from). Catalog edits never
reach an existing version unless resync_snapshot is called for it.
"""
import logging
import re
from typing import Any, Iterable, Mapping, Optional

from ..data.sanitizer import sanitize_bq_item, sanitize_master_item, sanitize_project, sanitize_version
from ..engine.models import (
    COST_DRIVERS,
    PRICE_FIELDS,
    UNCATEGORIZED,
    BQItem,
    LineAnalytics,
    MasterItem,
    Project,
    ProjectVersion,
    QuotationTotals,
    RenderRow,
    RowKind,
    VersionSummary,
    clone,
    new_id,
    now_iso,
    shallow_fields,
)
from ..engine.resolver import coerce_number, coerce_price_field
from ..persistence.field_mapping import BQ_ITEMS, PROJECTS, VERSIONS
from ..persistence.remote import RemoteSync
from .catalog_service import CALCULATION_TRIGGERS, CatalogStore

logger = logging.getLogger(__name__)

PROJECT_FIELDS = (
    "project_name", "client_name", "client_contact", "client_address",
    "date", "validity_period", "quote_id", "discount",
)

# Line fields copied from a catalog item when a line is created from it
SNAPSHOT_FIELDS = ("category", "item_name", "description", "uom") + COST_DRIVERS + PRICE_FIELDS

LINE_TEXT_FIELDS = ("category", "item_name", "description", "quotation_description", "uom")
LINE_LOCKED_FIELDS = ("id", "project_id", "version_id", "total")


def line_from_master(project_id: str, version_id: str, master: MasterItem, qty: float) -> BQItem:
    """New line cloned from a catalog (or snapshot) item."""
    line = BQItem(
        id=new_id(),
        project_id=project_id,
        version_id=version_id,
        master_id=master.id,
        price=master.price,
        qty=qty,
    )
    for name in SNAPSHOT_FIELDS:
        setattr(line, name, clone(getattr(master, name)))
    line.recompute_total()
    return line


class ProjectVersionStore:
    """Service for managing projects, versions and line items."""

    def __init__(self, catalog: CatalogStore, remote: Optional[RemoteSync] = None,
                 version_prefix: str = "version", tax_rate: float = 0.0):
        self.catalog = catalog
        self.remote = remote or catalog.remote
        self.version_prefix = version_prefix
        self.tax_rate = tax_rate
        self._projects: dict[str, Project] = {}
        self._lines: list[BQItem] = []
        self._version_pattern = re.compile(rf"^{re.escape(version_prefix)}-(\d+)$")

        self.remote.register_reconciler(PROJECTS, self._reassign_project_id)
        self.remote.register_reconciler(VERSIONS, self._reassign_version_id)
        self.remote.register_reconciler(BQ_ITEMS, self.reassign_line_id)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    @property
    def projects(self) -> list[Project]:
        return [p for p in self._projects.values() if not p.is_deleted]

    def get_project(self, project_id: str) -> Optional[Project]:
        project = self._projects.get(project_id)
        if project is None or project.is_deleted:
            return None
        return project

    def create_project(self, meta: Optional[Mapping[str, Any]] = None) -> Project:
        """Create a project with one version seeded from the current catalog."""
        project = sanitize_project(meta or {})
        if project.id in self._projects:
            project.id = new_id()
        if not project.date:
            project.date = now_iso()[:10]

        version = ProjectVersion(
            id=new_id(),
            name=f"{self.version_prefix}-1",
            master_snapshot=self.catalog.snapshot(),
        )
        project.versions = [version]
        self._projects[project.id] = project

        self.remote.insert(PROJECTS, self._project_record(project))
        self.remote.insert(VERSIONS, self._version_record(project.id, version))
        logger.info("Created project %s (%s) with %d catalog items",
                    project.id, project.project_name, len(version.master_snapshot))
        return project

    def update_project(self, project_id: str, updates: Mapping[str, Any]) -> Optional[Project]:
        project = self.get_project(project_id)
        if project is None:
            logger.warning("Update ignored: project %s not found", project_id)
            return None

        changed = {}
        for key, value in updates.items():
            if key not in PROJECT_FIELDS:
                continue
            if key == "discount":
                value = max(coerce_number(value, 0.0), 0.0)
            else:
                value = "" if value is None else str(value)
            setattr(project, key, value)
            changed[key] = value

        if changed:
            self.remote.update(PROJECTS, project_id, changed)
        return project

    def delete_project(self, project_id: str) -> bool:
        """Soft-delete a project with all its versions and lines."""
        project = self.get_project(project_id)
        if project is None:
            return False

        for version in list(project.versions):
            self._delete_lines(project_id, version.id)
            self.remote.soft_delete(VERSIONS, version.id)
        project.is_deleted = True
        self.remote.soft_delete(PROJECTS, project_id)
        return True

    def duplicate_project(self, project_id: str) -> Optional[Project]:
        """Copy a project, every version and every line, under new ids."""
        source = self.get_project(project_id)
        if source is None:
            return None

        copy_ = clone(source)
        copy_.id = new_id()
        copy_.project_name = f"{source.project_name} (Copy)"
        copy_.created_at = now_iso()
        copy_.versions = []
        self._projects[copy_.id] = copy_
        self.remote.insert(PROJECTS, self._project_record(copy_))

        for version in source.versions:
            new_version = ProjectVersion(
                id=new_id(), name=version.name,
                master_snapshot=[clone(i) for i in version.master_snapshot],
            )
            copy_.versions.append(new_version)
            self.remote.insert(VERSIONS, self._version_record(copy_.id, new_version))
            self._clone_lines(project_id, version.id, copy_.id, new_version.id)
        return copy_

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def get_version(self, project_id: str, version_id: str) -> Optional[ProjectVersion]:
        project = self.get_project(project_id)
        if project is None:
            return None
        return project.get_version(version_id)

    def propose_version_name(self, project_id: str, source_name: str) -> str:
        """
        Name for a copy of ``source_name``.

        "version-N" → "version-(N+1)", anything else → "<name>-copy"; if the
        proposal is taken, the first unused "version-K" (K >= 2).
        """
        project = self.get_project(project_id)
        taken = {v.name for v in project.versions} if project else set()

        match = self._version_pattern.match(source_name or "")
        if match:
            proposal = f"{self.version_prefix}-{int(match.group(1)) + 1}"
        else:
            proposal = f"{source_name}-copy"

        if proposal not in taken:
            return proposal
        k = 2
        while f"{self.version_prefix}-{k}" in taken:
            k += 1
        return f"{self.version_prefix}-{k}"

    def create_version(self, project_id: str, source_version_id: str,
                       name: Optional[str] = None) -> Optional[ProjectVersion]:
        """Duplicate a version: deep copy of its snapshot and of all its lines."""
        project = self.get_project(project_id)
        source = project.get_version(source_version_id) if project else None
        if source is None:
            logger.warning("Cannot duplicate version %s of project %s: not found",
                           source_version_id, project_id)
            return None

        name = (name or "").strip() or self.propose_version_name(project_id, source.name)
        version = ProjectVersion(
            id=new_id(),
            name=name,
            master_snapshot=[clone(item) for item in source.master_snapshot],
        )
        project.versions.append(version)
        self.remote.insert(VERSIONS, self._version_record(project_id, version))
        self._clone_lines(project_id, source.id, project_id, version.id)
        logger.info("Created version %s (%s) from %s", version.id, version.name, source.name)
        return version

    def rename_version(self, project_id: str, version_id: str, name: str) -> Optional[ProjectVersion]:
        version = self.get_version(project_id, version_id)
        name = (name or "").strip()
        if version is None or not name:
            return None
        version.name = name
        self.remote.update(VERSIONS, version_id, {"name": name})
        return version

    def delete_version(self, project_id: str, version_id: str) -> bool:
        """Remove a version and its lines. The last version of a project is kept."""
        project = self.get_project(project_id)
        version = project.get_version(version_id) if project else None
        if version is None:
            return False
        if len(project.versions) <= 1:
            logger.warning("Refusing to delete the only version of project %s", project_id)
            return False

        self._delete_lines(project_id, version_id)
        project.versions = [v for v in project.versions if v.id != version_id]
        self.remote.soft_delete(VERSIONS, version_id)
        return True

    def resync_snapshot(self, project_id: str, version_id: str,
                        updates: Iterable[Mapping[str, Any]]) -> int:
        """
        Push catalog-shaped updates into one version.

        Each update (keyed by its "id") is merged into the matching snapshot
        item, which is re-priced; lines linked to it take the new pricing and
        have their totals recomputed. Ids missing from the snapshot are added
        to it. Returns the number of lines changed.
        """
        version = self.get_version(project_id, version_id)
        if version is None:
            return 0

        changed_lines = 0
        for update in updates:
            master_id = update.get("id")
            if not master_id:
                continue

            item = version.snapshot_item(master_id)
            if item is None:
                item = sanitize_master_item(dict(update))
                resolved = self.catalog.price_item(shallow_fields(item))
                for key, value in resolved.as_updates().items():
                    setattr(item, key, value)
                version.master_snapshot.append(item)
            else:
                self._merge_snapshot_item(item, update)

            for line in self.lines_for(project_id, version_id):
                if line.master_id != master_id:
                    continue
                self._refresh_line(line, item, update)
                changed_lines += 1

        self.remote.update(VERSIONS, version_id, {"master_snapshot": version.master_snapshot})
        return changed_lines

    def resync_from_catalog(self, project_id: str, version_id: str,
                            master_ids: Optional[Iterable[str]] = None) -> int:
        """Resync a version with the live catalog (all items, or only ``master_ids``)."""
        ids = set(master_ids) if master_ids is not None else None
        updates = [
            shallow_fields(item) for item in self.catalog.active_items
            if ids is None or item.id in ids
        ]
        return self.resync_snapshot(project_id, version_id, updates)

    def _merge_snapshot_item(self, item: MasterItem, update: Mapping[str, Any]):
        for key, value in update.items():
            if key in ("id", "price", "is_deleted") or not hasattr(item, key):
                continue
            setattr(item, key, clone(value))
        if CALCULATION_TRIGGERS.intersection(update):
            resolved = self.catalog.price_item(shallow_fields(item))
            for key, value in resolved.as_updates().items():
                setattr(item, key, value)

    def _refresh_line(self, line: BQItem, item: MasterItem, update: Mapping[str, Any]):
        for name in COST_DRIVERS + PRICE_FIELDS:
            setattr(line, name, clone(getattr(item, name)))
        for name in ("category", "item_name", "description", "uom"):
            if name in update:
                setattr(line, name, getattr(item, name))
        line.price = item.price
        line.recompute_total()
        self.remote.update(BQ_ITEMS, line.id, line.to_dict())

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    def lines_for(self, project_id: str, version_id: str) -> list[BQItem]:
        """Lines of one version in display order."""
        return [l for l in self._lines if l.project_id == project_id and l.version_id == version_id]

    def get_line(self, line_id: str) -> Optional[BQItem]:
        for line in self._lines:
            if line.id == line_id:
                return line
        return None

    def find_line(self, project_id: str, version_id: str, master_id: str) -> Optional[BQItem]:
        for line in self.lines_for(project_id, version_id):
            if line.master_id == master_id:
                return line
        return None

    def insert_line(self, line: BQItem) -> Optional[BQItem]:
        """Append a line to its version; ignored if the version does not exist."""
        if self.get_version(line.project_id, line.version_id) is None:
            logger.warning("Line ignored: version %s of project %s not found",
                           line.version_id, line.project_id)
            return None
        line.recompute_total()
        self._lines.append(line)
        record = line.to_dict()
        record["sort_order"] = len(self.lines_for(line.project_id, line.version_id)) - 1
        self.remote.insert(BQ_ITEMS, record)
        return line

    def add_custom_item(self, project_id: str, version_id: str,
                        fields: Optional[Mapping[str, Any]] = None) -> Optional[BQItem]:
        """Add a free-form line not linked to the catalog."""
        raw = dict(fields or {})
        raw.update({"id": new_id(), "project_id": project_id, "version_id": version_id})
        raw.setdefault("qty", 1)
        return self.insert_line(sanitize_bq_item(raw))

    def update_line_field(self, line_id: str, field: str, value: Any) -> Optional[BQItem]:
        """
        Edit one field of a line.

        price/qty changes recompute the total; a quantity of zero or less
        removes the line (returns None).
        """
        line = self.get_line(line_id)
        if line is None:
            logger.warning("Update ignored: line %s not found", line_id)
            return None
        if field in LINE_LOCKED_FIELDS or not hasattr(line, field):
            logger.warning("Update ignored: line field %s is not editable", field)
            return line

        if field == "qty":
            qty = coerce_number(value, 0.0)
            if qty <= 0:
                self.remove_line(line_id)
                return None
            line.qty = qty
        elif field == "price":
            line.price = coerce_number(value, 0.0)
        elif field == "is_optional":
            line.is_optional = bool(value)
        elif field in PRICE_FIELDS:
            setattr(line, field, coerce_price_field(value))
        elif field in COST_DRIVERS:
            setattr(line, field, coerce_number(value, getattr(line, field)))
        elif field == "quotation_description":
            line.quotation_description = None if value is None else str(value)
        elif field in LINE_TEXT_FIELDS:
            setattr(line, field, "" if value is None else str(value))
        else:
            setattr(line, field, value)

        line.recompute_total()
        self.remote.update(BQ_ITEMS, line_id, {field: getattr(line, field), "total": line.total})
        return line

    def apply_line_batch(self, deltas: Mapping[str, Mapping[str, Any]]) -> list[BQItem]:
        """Apply staged line edits; missing lines are skipped."""
        targets = {}
        for line_id, delta in deltas.items():
            line = self.get_line(line_id)
            if line is None:
                logger.warning("Skipping staged changes for missing line %s", line_id)
                continue
            targets[line_id] = delta

        applied = []
        for line_id, delta in targets.items():
            line = None
            for field, value in delta.items():
                line = self.update_line_field(line_id, field, value)
                if line is None:
                    break
            if line is not None:
                applied.append(line)
        return applied

    def remove_line(self, line_id: str) -> bool:
        line = self.get_line(line_id)
        if line is None:
            return False
        self._lines.remove(line)
        self.remote.soft_delete(BQ_ITEMS, line_id)
        return True

    def reorder_lines(self, project_id: str, version_id: str,
                      source_index: int, destination_index: int) -> bool:
        """Move one line within its version's display order."""
        lines = self.lines_for(project_id, version_id)
        if not (0 <= source_index < len(lines)) or not (0 <= destination_index < len(lines)):
            return False
        if source_index == destination_index:
            return True

        moved = lines.pop(source_index)
        lines.insert(destination_index, moved)

        # Put the reordered lines back into the slots this version occupied
        slots = [i for i, l in enumerate(self._lines)
                 if l.project_id == project_id and l.version_id == version_id]
        for slot, line in zip(slots, lines):
            self._lines[slot] = line
        for order, line in enumerate(lines):
            self.remote.update(BQ_ITEMS, line.id, {"sort_order": order})
        return True

    def _clone_lines(self, source_project_id: str, source_version_id: str,
                     project_id: str, version_id: str):
        for line in self.lines_for(source_project_id, source_version_id):
            copy_ = clone(line)
            copy_.id = new_id()
            copy_.project_id = project_id
            copy_.version_id = version_id
            self.insert_line(copy_)

    def _delete_lines(self, project_id: str, version_id: str):
        for line in self.lines_for(project_id, version_id):
            self.remove_line(line.id)

    # ------------------------------------------------------------------
    # Quotation figures
    # ------------------------------------------------------------------

    def totals(self, project_id: str, version_id: str) -> QuotationTotals:
        """Subtotal of standard lines, less the project discount, plus tax."""
        project = self.get_project(project_id)
        if project is None:
            return QuotationTotals()

        lines = self.lines_for(project_id, version_id)
        subtotal = sum(l.total for l in lines if not l.is_optional)
        optional_total = sum(l.total for l in lines if l.is_optional)
        discount = project.discount
        taxable = subtotal - discount
        tax = taxable * (self.tax_rate / 100.0)
        return QuotationTotals(
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            grand_total=taxable + tax,
            optional_total=optional_total,
        )

    @staticmethod
    def line_analytics(line: BQItem) -> LineAnalytics:
        total_cost = line.cost.value * line.qty
        total_selling = line.selling_price.value * line.qty
        gross_profit = line.total - total_cost
        return LineAnalytics(
            line_id=line.id,
            total_cost=total_cost,
            total_selling=total_selling,
            total_retail=line.total,
            gross_profit=gross_profit,
            gross_profit_percent=(gross_profit / line.total * 100.0) if line.total else 0.0,
        )

    def summary(self, project_id: str, version_id: str) -> VersionSummary:
        """Cost and margin totals over the standard (non-optional) lines."""
        summary = VersionSummary()
        for line in self.lines_for(project_id, version_id):
            analytics = self.line_analytics(line)
            summary.lines.append(analytics)
            if line.is_optional:
                continue
            summary.line_count += 1
            summary.total_cost += analytics.total_cost
            summary.total_selling += analytics.total_selling
            summary.total_retail += analytics.total_retail
            summary.gross_profit += analytics.gross_profit
        if summary.total_retail:
            summary.gross_profit_percent = summary.gross_profit / summary.total_retail * 100.0
        return summary

    def render_rows(self, project_id: str, version_id: str) -> list[RenderRow]:
        """
        Ordered rows for printing: standard lines grouped by category, then an
        optional-items separator and the optional lines grouped the same way.
        """
        lines = self.lines_for(project_id, version_id)
        standard = [l for l in lines if not l.is_optional]
        optional = [l for l in lines if l.is_optional]

        rows: list[RenderRow] = []
        counter = 0
        for group, is_optional in ((standard, False), (optional, True)):
            if not group:
                continue
            if is_optional:
                rows.append(RenderRow(kind=RowKind.OPTIONAL_SEPARATOR))
            by_category: dict[str, list[BQItem]] = {}
            for line in group:
                by_category.setdefault(line.category or UNCATEGORIZED, []).append(line)
            for category, members in by_category.items():
                rows.append(RenderRow(kind=RowKind.CATEGORY, category=category))
                for line in members:
                    counter += 1
                    rows.append(RenderRow(kind=RowKind.ITEM, category=category, item=line, index=counter))
        return rows

    # ------------------------------------------------------------------
    # Bulk load / remote bookkeeping
    # ------------------------------------------------------------------

    def load(self, projects: Iterable[Any], versions: Iterable[Any], lines: Iterable[Any]) -> int:
        """Replace local state from bulk reads of the three tables."""
        by_project: dict[str, list[ProjectVersion]] = {}
        for raw in versions:
            project_id = str((raw or {}).get("project_id", ""))
            by_project.setdefault(project_id, []).append(sanitize_version(raw))

        self._projects = {}
        for raw in projects:
            project = sanitize_project(raw)
            project.versions = by_project.get(project.id, [])
            if not project.versions:
                project.versions = [ProjectVersion(id=new_id(), name=f"{self.version_prefix}-1",
                                                   master_snapshot=self.catalog.snapshot())]
            self._projects[project.id] = project

        ordered = sorted(
            (dict(raw) for raw in lines if isinstance(raw, Mapping)),
            key=lambda r: coerce_number(r.get("sort_order"), 0.0),
        )
        self._lines = []
        for raw in ordered:
            line = sanitize_bq_item(raw)
            if self.get_version(line.project_id, line.version_id) is None:
                continue
            self._lines.append(line)
        logger.info("Loaded %d projects and %d line items", len(self._projects), len(self._lines))
        return len(self._projects)

    def replace_master_id(self, old_id: str, new_id_: str):
        """Re-point lines and snapshots after the catalog reassigns an item id."""
        for line in self._lines:
            if line.master_id == old_id:
                line.master_id = new_id_
        for project in self._projects.values():
            for version in project.versions:
                item = version.snapshot_item(old_id)
                if item is not None:
                    item.id = new_id_
                    self.remote.update(VERSIONS, version.id, {"master_snapshot": version.master_snapshot})

    def _reassign_project_id(self, old_id: str, new_id_: str) -> bool:
        project = self._projects.pop(old_id, None)
        if project is None:
            return False
        project.id = new_id_
        self._projects[new_id_] = project
        for line in self._lines:
            if line.project_id == old_id:
                line.project_id = new_id_
        return True

    def _reassign_version_id(self, old_id: str, new_id_: str) -> bool:
        for project in self._projects.values():
            version = project.get_version(old_id)
            if version is None:
                continue
            version.id = new_id_
            for line in self._lines:
                if line.version_id == old_id:
                    line.version_id = new_id_
            return True
        return False

    def reassign_line_id(self, old_id: str, new_id_: str) -> bool:
        line = self.get_line(old_id)
        if line is None:
            return False
        line.id = new_id_
        return True

    @staticmethod
    def _project_record(project: Project) -> dict:
        record = project.to_dict()
        record.pop("versions", None)
        return record

    @staticmethod
    def _version_record(project_id: str, version: ProjectVersion) -> dict:
        record = version.to_dict()
        record["project_id"] = project_id
        return record
