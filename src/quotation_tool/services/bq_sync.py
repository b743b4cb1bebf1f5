"""
Catalog-to-BQ sync - turns a quantity typed against a catalog row into a
line-item insert, update or delete on one project version.
"""
import logging
from enum import Enum
from typing import Any, Optional

from ..engine.models import MasterItem
from ..engine.resolver import coerce_number
from .catalog_service import CatalogStore
from .project_service import ProjectVersionStore, line_from_master

logger = logging.getLogger(__name__)


class SyncAction(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    NONE = "none"


class CatalogToBQSync:
    """Reconciles catalog-side quantities into a version's line items."""

    def __init__(self, projects: ProjectVersionStore, catalog: CatalogStore):
        self.projects = projects
        self.catalog = catalog

    def sync(self, project_id: str, version_id: str, master_item: Optional[MasterItem],
             requested_qty: Any) -> SyncAction:
        """
        Apply a requested quantity for one catalog item.

        | line exists | qty  | action |
        |-------------|------|--------|
        | no          | <= 0 | none   |
        | no          | > 0  | insert |
        | yes         | <= 0 | delete |
        | yes         | > 0  | update (line price kept) |
        """
        if master_item is None:
            return SyncAction.NONE
        if self.projects.get_version(project_id, version_id) is None:
            logger.warning("Sync ignored: version %s of project %s not found", version_id, project_id)
            return SyncAction.NONE

        qty = coerce_number(requested_qty, 0.0)
        existing = self.projects.find_line(project_id, version_id, master_item.id)

        if existing is None:
            if qty <= 0:
                return SyncAction.NONE
            line = line_from_master(project_id, version_id, master_item, qty)
            if self.projects.insert_line(line) is None:
                return SyncAction.NONE
            return SyncAction.INSERT

        if qty <= 0:
            self.projects.remove_line(existing.id)
            return SyncAction.DELETE

        self.projects.update_line_field(existing.id, "qty", qty)
        return SyncAction.UPDATE

    def sync_by_id(self, project_id: str, version_id: str, master_id: str,
                   requested_qty: Any) -> SyncAction:
        """Like ``sync``, looking the item up in the version snapshot, then the catalog."""
        version = self.projects.get_version(project_id, version_id)
        if version is None:
            return SyncAction.NONE
        item = version.snapshot_item(master_id) or self.catalog.get(master_id)
        if item is None:
            logger.warning("Sync ignored: catalog item %s not found", master_id)
            return SyncAction.NONE
        return self.sync(project_id, version_id, item, requested_qty)

    def quantity_for(self, project_id: str, version_id: str, master_id: str) -> Optional[float]:
        line = self.projects.find_line(project_id, version_id, master_id)
        return line.qty if line is not None else None
