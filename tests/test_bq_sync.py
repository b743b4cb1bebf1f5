"""
Tests for catalog quantity → line item reconciliation.
"""
from quotation_tool.services.bq_sync import SyncAction


def _v1(project):
    return project.versions[0]


def test_no_line_zero_qty_is_none(workspace, project):
    v1 = _v1(project)
    item = workspace.catalog.get("charger")
    assert workspace.sync.sync(project.id, v1.id, item, 0) == SyncAction.NONE
    assert workspace.projects.lines_for(project.id, v1.id) == []


def test_no_line_positive_qty_inserts(workspace, project):
    v1 = _v1(project)
    item = workspace.catalog.get("charger")

    assert workspace.sync.sync(project.id, v1.id, item, 5) == SyncAction.INSERT

    line = workspace.projects.find_line(project.id, v1.id, "charger")
    assert line.qty == 5
    assert line.price == item.price
    assert line.total == item.price * 5
    assert line.item_name == item.item_name
    assert line.cost == item.cost
    assert line.cost is not item.cost, "Lines hold their own copy of the pricing"


def test_update_preserves_manual_line_price(workspace, project):
    v1 = _v1(project)
    store = workspace.projects
    workspace.sync.sync_by_id(project.id, v1.id, "charger", 2)
    line = store.find_line(project.id, v1.id, "charger")
    store.update_line_field(line.id, "price", 140000)

    assert workspace.sync.sync_by_id(project.id, v1.id, "charger", 5) == SyncAction.UPDATE

    assert line.qty == 5
    assert line.price == 140000
    assert line.total == 140000 * 5


def test_existing_line_zero_qty_deletes(workspace, project):
    v1 = _v1(project)
    workspace.sync.sync_by_id(project.id, v1.id, "cable", 10)

    assert workspace.sync.sync_by_id(project.id, v1.id, "cable", "0") == SyncAction.DELETE
    assert workspace.projects.find_line(project.id, v1.id, "cable") is None
    assert workspace.sync.quantity_for(project.id, v1.id, "cable") is None


def test_unparsable_qty_counts_as_zero(workspace, project):
    v1 = _v1(project)
    assert workspace.sync.sync_by_id(project.id, v1.id, "cable", "lots") == SyncAction.NONE


def test_sync_uses_version_snapshot_first(workspace, project):
    """A version keeps quoting the price it was created with."""
    v1 = _v1(project)
    workspace.catalog.update("charger", {"fob_cost": 100000})

    workspace.sync.sync_by_id(project.id, v1.id, "charger", 1)

    line = workspace.projects.find_line(project.id, v1.id, "charger")
    assert line.price == 152743


def test_sync_falls_back_to_catalog(workspace, project):
    v1 = _v1(project)
    workspace.catalog.add({"id": "late", "item_name": "Added later", "cost": 10, "retail_selling_price": 15})

    assert workspace.sync.sync_by_id(project.id, v1.id, "late", 2) == SyncAction.INSERT
    assert workspace.sync.quantity_for(project.id, v1.id, "late") == 2


def test_referential_inconsistency_is_noop(workspace, project):
    v1 = _v1(project)
    item = workspace.catalog.get("charger")

    assert workspace.sync.sync_by_id(project.id, v1.id, "ghost", 3) == SyncAction.NONE
    assert workspace.sync.sync("nope", v1.id, item, 3) == SyncAction.NONE
    assert workspace.sync.sync(project.id, "nope", item, 3) == SyncAction.NONE
    assert workspace.sync.sync(project.id, v1.id, None, 3) == SyncAction.NONE


def test_direct_qty_zero_deletes_line(workspace, project):
    v1 = _v1(project)
    workspace.sync.sync_by_id(project.id, v1.id, "install", 1)
    line = workspace.projects.find_line(project.id, v1.id, "install")

    assert workspace.projects.update_line_field(line.id, "qty", 0) is None
    assert workspace.projects.get_line(line.id) is None
