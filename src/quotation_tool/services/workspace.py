"""
Quotation Workspace - the root object owning the catalog, the projects and
the two staged-edit buffers.

Everything is passed in through the constructor; ``QuotationWorkspace.create``
wires the default graph from Settings.
"""
import logging
from typing import Any, Optional

from ..config.settings import Settings, get_settings
from ..data.catalog_io import import_catalog_csv
from ..engine.models import MasterItem
from ..engine.resolver import DerivedFieldResolver, InputDefaults
from ..persistence.field_mapping import BQ_ITEMS, MASTER_ITEMS, PROJECTS, VERSIONS, from_wire
from ..persistence.remote import RemoteStore, RemoteSync
from .bq_sync import CatalogToBQSync
from .catalog_service import CALCULATION_TRIGGERS, CatalogStore
from .project_service import ProjectVersionStore
from .staged_edits import StagedEditBuffer

logger = logging.getLogger(__name__)

QUOTATION_TEXT_FIELDS = ("quotation_description",)


class QuotationWorkspace:
    """All stores of one running session."""

    def __init__(self, catalog: CatalogStore, projects: ProjectVersionStore,
                 catalog_edits: StagedEditBuffer, quotation_edits: StagedEditBuffer,
                 sync: CatalogToBQSync, remote: RemoteSync):
        self.catalog = catalog
        self.projects = projects
        self.catalog_edits = catalog_edits
        self.quotation_edits = quotation_edits
        self.sync = sync
        self.remote = remote

        # Catalog id changes must reach line back-references and snapshots too
        self.remote.register_reconciler(MASTER_ITEMS, self._reassign_master_id)
        self.remote.register_reconciler(BQ_ITEMS, self._reassign_line_id)

    @classmethod
    def create(cls, settings: Optional[Settings] = None,
               remote_store: Optional[RemoteStore] = None) -> 'QuotationWorkspace':
        """Build a workspace with default wiring."""
        settings = settings or get_settings()
        resolver = DerivedFieldResolver(defaults=InputDefaults(
            forex_rate=settings.default_forex_rate,
            tax_multiplier=settings.default_tax_multiplier,
            operational_adjustment=settings.default_operational_adjustment,
        ))
        remote = RemoteSync(remote_store)
        catalog = CatalogStore(resolver=resolver, remote=remote)
        projects = ProjectVersionStore(
            catalog, remote,
            version_prefix=settings.version_name_prefix,
            tax_rate=settings.tax_rate,
        )
        catalog_edits = StagedEditBuffer(
            "catalog",
            lookup=catalog.get,
            apply_batch=catalog.apply_batch,
            derive=lambda merged: catalog.price_item(merged).as_updates(),
            triggers=CALCULATION_TRIGGERS,
        )
        quotation_edits = StagedEditBuffer(
            "quotation",
            lookup=projects.get_line,
            apply_batch=projects.apply_line_batch,
            editable=QUOTATION_TEXT_FIELDS,
        )
        sync = CatalogToBQSync(projects, catalog)
        return cls(catalog, projects, catalog_edits, quotation_edits, sync, remote)

    # ------------------------------------------------------------------
    # Staged edits across both buffers
    # ------------------------------------------------------------------

    @property
    def has_unsaved_changes(self) -> bool:
        return self.catalog_edits.has_pending_changes or self.quotation_edits.has_pending_changes

    def save_all(self) -> dict[str, int]:
        return {
            "catalog": self.catalog_edits.commit(),
            "quotation": self.quotation_edits.commit(),
        }

    def discard_all(self) -> dict[str, int]:
        return {
            "catalog": self.catalog_edits.discard(),
            "quotation": self.quotation_edits.discard(),
        }

    # ------------------------------------------------------------------
    # Cross-store operations
    # ------------------------------------------------------------------

    def delete_master_item(self, item_id: str) -> bool:
        """Soft-delete a catalog item and forget its staged edits."""
        self.catalog_edits.drop(item_id)
        return self.catalog.soft_delete(item_id)

    def remove_line(self, line_id: str) -> bool:
        self.quotation_edits.drop(line_id)
        return self.projects.remove_line(line_id)

    def add_master_item(self, item: Any) -> MasterItem:
        return self.catalog.add(item)

    def import_catalog(self, path) -> dict:
        """Add every row of a price-list CSV to the catalog. Returns the build report."""
        items, report = import_catalog_csv(path, resolver=self.catalog.resolver)
        for item in items:
            self.catalog.add(item)
        return report

    def load(self) -> bool:
        """
        Replace local state with a bulk read of the remote store.

        Returns False (local state untouched) when no store is configured or
        the read fails.
        """
        store = self.remote.remote
        if store is None:
            return False
        try:
            tables = {
                table: [from_wire(table, r) for r in store.bulk_fetch(table)]
                for table in (MASTER_ITEMS, PROJECTS, VERSIONS, BQ_ITEMS)
            }
        except Exception as e:
            logger.warning("Bulk fetch from remote store failed: %s", e)
            return False

        self.catalog.load(tables[MASTER_ITEMS])
        self.projects.load(tables[PROJECTS], tables[VERSIONS], tables[BQ_ITEMS])
        self.discard_all()
        return True

    def status(self) -> dict:
        return {
            "catalog_items": len(self.catalog),
            "projects": len(self.projects.projects),
            "pending_remote_ops": self.remote.pending_count,
            "unsaved_changes": self.has_unsaved_changes,
        }

    def _reassign_master_id(self, old_id: str, new_id_: str) -> bool:
        if not self.catalog.reassign_id(old_id, new_id_):
            return False
        self.projects.replace_master_id(old_id, new_id_)
        self.catalog_edits.rekey(old_id, new_id_)
        return True

    def _reassign_line_id(self, old_id: str, new_id_: str) -> bool:
        if not self.projects.reassign_line_id(old_id, new_id_):
            return False
        self.quotation_edits.rekey(old_id, new_id_)
        return True
