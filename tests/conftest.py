"""
Shared test fixtures - resolver, stores, workspace and API client.
"""
import pytest
from fastapi.testclient import TestClient

from quotation_tool.config.settings import Settings
from quotation_tool.engine.models import PriceField
from quotation_tool.engine.resolver import DerivedFieldResolver
from quotation_tool.persistence.remote import InMemoryRemoteStore, RemoteSync
from quotation_tool.services.catalog_service import CatalogStore
from quotation_tool.services.project_service import ProjectVersionStore
from quotation_tool.services.workspace import QuotationWorkspace


def charger_fields(**overrides) -> dict:
    """The AC charger used across the suite: cost 106920.00, SP/RSP 152743."""
    fields = {
        "category": "EV Charger",
        "item_name": "ABB Terra AC 22kW",
        "description": "AC Charger",
        "uom": "Unit",
        "fob_cost": 99000,
        "forex_rate": 1,
        "tax_multiplier": 1.08,
        "operational_adjustment": 1,
        "cost": PriceField(strategy="FORMULA_ROUND_0.01"),
        "selling_price": PriceField(strategy="FACTOR_0.7_ROUND_1"),
        "retail_selling_price": PriceField(strategy="COPY_SELLING"),
    }
    fields.update(overrides)
    return fields


def cable_fields(**overrides) -> dict:
    """Cable priced per meter: cost 134, SP/RSP 168."""
    fields = {
        "category": "Cable",
        "item_name": "4C 16mm2 XLPE/SWA/PVC",
        "uom": "Meter",
        "fob_cost": 25,
        "forex_rate": 4.7,
        "tax_multiplier": 1.1,
        "operational_adjustment": 0.97,
        "cost": PriceField(strategy="FORMULA_ROUND_1"),
        "selling_price": PriceField(strategy="FACTOR_0.8_ROUND_1"),
        "retail_selling_price": PriceField(strategy="COPY_SELLING"),
    }
    fields.update(overrides)
    return fields


def installation_fields(**overrides) -> dict:
    """Manually priced service: cost 800, SP/RSP 1200."""
    fields = {
        "category": "Services",
        "item_name": "Standard installation",
        "uom": "Lot",
        "cost": PriceField.manual(800),
        "selling_price": PriceField.manual(1200),
        "retail_selling_price": PriceField(strategy="COPY_SELLING"),
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def resolver():
    return DerivedFieldResolver()


@pytest.fixture
def catalog():
    """Catalog with no remote store (ops are recorded as applied)."""
    return CatalogStore(remote=RemoteSync())


@pytest.fixture
def projects(catalog):
    return ProjectVersionStore(catalog)


@pytest.fixture
def settings(tmp_path):
    return Settings.load(tmp_path)


@pytest.fixture
def workspace(settings):
    """Workspace seeded with a charger, a cable and an installation service."""
    ws = QuotationWorkspace.create(settings)
    ws.catalog.add(charger_fields(id="charger"))
    ws.catalog.add(cable_fields(id="cable"))
    ws.catalog.add(installation_fields(id="install"))
    return ws


@pytest.fixture
def project(workspace):
    """A project created after the catalog was seeded."""
    return workspace.projects.create_project({"project_name": "Mall Car Park", "client_name": "ACME"})


@pytest.fixture
def remote_store():
    return InMemoryRemoteStore()


@pytest.fixture
def client(settings, remote_store):
    """API client over a seeded workspace backed by an in-memory store."""
    from quotation_tool.api.main import app
    from quotation_tool.api.state import get_workspace

    ws = QuotationWorkspace.create(settings, remote_store)
    ws.catalog.add(charger_fields(id="charger"))
    ws.catalog.add(cable_fields(id="cable"))
    ws.remote.drain()

    app.dependency_overrides[get_workspace] = lambda: ws
    yield TestClient(app)
    app.dependency_overrides.clear()
