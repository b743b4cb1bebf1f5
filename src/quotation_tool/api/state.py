"""
Process-wide workspace shared by the API routers.
"""
import logging
from typing import Optional

from ..config.settings import configure_logging, get_settings
from ..persistence.remote import JsonFileRemoteStore
from ..services.workspace import QuotationWorkspace

logger = logging.getLogger(__name__)

_workspace: Optional[QuotationWorkspace] = None


def get_workspace() -> QuotationWorkspace:
    """Workspace backed by the JSON store; seeded from the price list on first run."""
    global _workspace
    if _workspace is None:
        settings = get_settings()
        configure_logging(settings.log_level)
        workspace = QuotationWorkspace.create(settings, JsonFileRemoteStore(settings.store_dir))
        workspace.load()
        if not len(workspace.catalog) and settings.seed_catalog.exists():
            report = workspace.import_catalog(settings.seed_catalog)
            logger.info("Seeded catalog from %s: %s", settings.seed_catalog, report["status"])
            workspace.remote.drain()
        _workspace = workspace
    return _workspace
