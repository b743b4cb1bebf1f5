"""
API tests against a seeded in-memory workspace.
"""


def _project(client, name="Depot"):
    response = client.post("/api/projects", json={"project_name": name, "client_name": "ACME"})
    assert response.status_code == 200
    data = response.json()
    return data["id"], data["versions"][0]["id"]


def test_root_and_status(client):
    assert client.get("/").json()["status"] == "online"

    status = client.get("/system/status").json()
    assert status["catalog_items"] == 2
    assert status["pending_remote_ops"] == 0
    assert status["failed_remote_ops"] == 0
    assert status["currency"] == "RM"


def test_catalog_listing(client):
    items = client.get("/api/catalog").json()
    assert {i["id"] for i in items} == {"charger", "cable"}

    assert [i["id"] for i in client.get("/api/catalog", params={"search": "xlpe"}).json()] == ["cable"]
    assert client.get("/api/catalog/categories").json() == ["Cable", "EV Charger"]

    strategies = client.get("/api/catalog/strategies").json()
    assert set(strategies) == {"cost", "selling_price", "retail_selling_price"}
    assert "COPY_SELLING" in [s["id"] for s in strategies["retail_selling_price"]]


def test_get_item_and_trace(client):
    item = client.get("/api/catalog/charger").json()
    assert item["price"] == 152743
    assert item["cost"]["strategy"] == "FORMULA_ROUND_0.01"

    trace = client.get("/api/catalog/charger/trace").json()
    assert "Price" in trace["trace"]
    assert trace["warnings"] == []

    assert client.get("/api/catalog/ghost").status_code == 404
    assert client.get("/api/catalog/ghost/trace").status_code == 404


def test_create_update_delete_item(client, remote_store):
    response = client.post("/api/catalog", json={
        "item_name": "Cable tray",
        "category": "Accessories",
        "fob_cost": 10,
        "forex_rate": 4.7,
        "cost": {"strategy": "FORMULA_ROUND_1"},
        "selling_price": {"strategy": "FACTOR_0.8_ROUND_1"},
        "retail_selling_price": {"strategy": "COPY_SELLING"},
    })
    assert response.status_code == 200
    item = response.json()
    # 10 * 4.7 / 0.97 = 48.45 -> 49, / 0.8 = 61.25 -> 62
    assert item["cost"]["value"] == 49
    assert item["price"] == 62
    assert item["id"] in remote_store.tables["master_items"], "Background drain pushed the insert"

    updated = client.put(f"/api/catalog/{item['id']}", json={"fob_cost": 20}).json()
    assert updated["price"] == 122

    assert client.put(f"/api/catalog/{item['id']}", json={}).status_code == 400
    assert client.put("/api/catalog/ghost", json={"uom": "Set"}).status_code == 404
    assert client.post("/api/catalog", json={"item_name": "  "}).status_code == 400

    assert client.delete(f"/api/catalog/{item['id']}").json() == {"deleted": item["id"]}
    assert client.get(f"/api/catalog/{item['id']}").status_code == 404
    assert client.delete(f"/api/catalog/{item['id']}").status_code == 404


def test_staged_catalog_edits(client):
    delta = client.post("/api/catalog/edits", json={"item_id": "charger", "field": "fob_cost", "value": 100000})
    assert delta.status_code == 200
    assert delta.json()["price"] == 154286
    assert client.get("/api/catalog/charger").json()["price"] == 152743

    assert client.get("/api/catalog/edits").json()["charger"]["fob_cost"] == 100000
    assert client.get("/system/status").json()["unsaved_changes"] is True

    assert client.post("/api/catalog/edits/commit").json() == {"committed": 1}
    assert client.get("/api/catalog/charger").json()["price"] == 154286

    client.post("/api/catalog/edits", json={"item_id": "cable", "field": "uom", "value": "Roll"})
    assert client.post("/api/catalog/edits/discard").json() == {"discarded": 1}
    assert client.get("/api/catalog/cable").json()["uom"] == "Meter"


def test_staged_edit_errors(client):
    assert client.post("/api/catalog/edits", json={"item_id": "ghost", "field": "uom"}).status_code == 404
    assert client.post("/api/catalog/edits", json={"item_id": "cable", "field": "nope"}).status_code == 400


def test_project_crud(client):
    project_id, _ = _project(client)

    assert client.post("/api/projects", json={"project_name": " "}).status_code == 400
    assert [p["id"] for p in client.get("/api/projects").json()] == [project_id]

    project = client.get(f"/api/projects/{project_id}").json()
    assert project["versions"][0]["name"] == "version-1"
    assert project["versions"][0]["item_count"] == 2

    updated = client.put(f"/api/projects/{project_id}", json={"discount": 500, "quote_id": "Q-7"}).json()
    assert updated["discount"] == 500 and updated["quote_id"] == "Q-7"
    assert client.put(f"/api/projects/{project_id}", json={}).status_code == 400

    copy_ = client.post(f"/api/projects/{project_id}/duplicate").json()
    assert copy_["project_name"] == "Depot (Copy)"

    assert client.delete(f"/api/projects/{project_id}").json() == {"deleted": project_id}
    assert client.get(f"/api/projects/{project_id}").status_code == 404
    assert client.put(f"/api/projects/{project_id}", json={"discount": 1}).status_code == 404
    assert client.post(f"/api/projects/{project_id}/duplicate").status_code == 404


def test_versions(client):
    project_id, v1 = _project(client)
    base = f"/api/projects/{project_id}/versions"

    assert client.get(f"{base}/{v1}/proposed-name").json() == {"name": "version-2"}
    v2 = client.post(base, json={"source_version_id": v1}).json()
    assert v2["name"] == "version-2"

    assert client.put(f"{base}/{v2['id']}", json={"name": "Tender"}).json()["name"] == "Tender"
    assert client.put(f"{base}/{v2['id']}", json={"name": ""}).status_code == 400

    snapshot = client.get(f"{base}/{v1}/snapshot").json()
    assert {i["id"] for i in snapshot} == {"charger", "cable"}

    assert client.delete(f"{base}/{v1}").json() == {"deleted": v1}
    assert client.delete(f"{base}/{v2['id']}").status_code == 400, "Last version is kept"
    assert client.get(f"{base}/{v1}/snapshot").status_code == 404
    assert client.post(base, json={"source_version_id": "ghost"}).status_code == 404


def test_quantity_sync_and_lines(client):
    project_id, v1 = _project(client)
    base = f"/api/projects/{project_id}/versions/{v1}"

    assert client.post(f"{base}/sync", json={"master_id": "cable", "qty": 10}).json() == {"action": "insert", "qty": 10}
    assert client.post(f"{base}/sync", json={"master_id": "cable", "qty": "25"}).json() == {"action": "update", "qty": 25}
    client.post(f"{base}/sync", json={"master_id": "charger", "qty": 1})

    lines = client.get(f"{base}/lines").json()
    assert [l["master_id"] for l in lines] == ["cable", "charger"]
    assert lines[0]["total"] == 168 * 25

    custom = client.post(f"{base}/lines", json={"item_name": "Permit", "price": 300, "is_optional": True}).json()
    assert custom["master_id"] is None
    assert client.post(f"{base}/lines", json={"item_name": "Bad", "qty": 0}).status_code == 400

    reordered = client.post(f"{base}/lines/reorder", json={"source_index": 1, "destination_index": 0}).json()
    assert [l["master_id"] for l in reordered] == ["charger", "cable", None]
    assert client.post(f"{base}/lines/reorder", json={"source_index": 9, "destination_index": 0}).status_code == 400

    cable_line = lines[0]["id"]
    patched = client.patch(f"{base}/lines/{cable_line}", json={"field": "price", "value": 150}).json()
    assert patched["total"] == 150 * 25
    assert client.patch(f"{base}/lines/{cable_line}", json={"field": "qty", "value": 0}).json() == {"deleted": cable_line}
    assert client.patch(f"{base}/lines/{cable_line}", json={"field": "qty", "value": 1}).status_code == 404

    assert client.delete(f"{base}/lines/{custom['id']}").json() == {"deleted": custom["id"]}
    assert client.post(f"{base}/sync", json={"master_id": "charger", "qty": 0}).json() == {"action": "delete", "qty": None}
    assert client.get(f"{base}/lines").json() == []


def test_figures(client):
    project_id, v1 = _project(client)
    base = f"/api/projects/{project_id}/versions/{v1}"
    client.post(f"{base}/sync", json={"master_id": "charger", "qty": 2})
    client.post(f"{base}/lines", json={"item_name": "Survey", "price": 500, "is_optional": True})
    client.put(f"/api/projects/{project_id}", json={"discount": 743})

    totals = client.get(f"{base}/totals").json()
    assert totals["subtotal"] == 305486
    assert totals["optional_total"] == 500
    assert totals["grand_total"] == 304743

    summary = client.get(f"{base}/summary").json()
    assert summary["line_count"] == 1
    assert len(summary["lines"]) == 2

    rows = client.get(f"{base}/render-rows").json()
    assert [r["kind"] for r in rows] == ["category", "item", "optional_separator", "category", "item"]
    assert rows[3]["category"] == "Uncategorized"
    assert rows[4]["index"] == 2

    assert client.get(f"/api/projects/{project_id}/versions/ghost/totals").status_code == 404


def test_resync_version(client):
    project_id, v1 = _project(client)
    base = f"/api/projects/{project_id}/versions/{v1}"
    client.post(f"{base}/sync", json={"master_id": "charger", "qty": 1})
    client.put("/api/catalog/charger", json={"fob_cost": 100000})

    assert client.post(f"{base}/resync", json={"master_ids": ["charger"]}).json() == {"lines_updated": 1}
    assert client.get(f"{base}/lines").json()[0]["price"] == 154286


def test_quotation_edits_and_save_all(client):
    project_id, v1 = _project(client)
    base = f"/api/projects/{project_id}/versions/{v1}"
    client.post(f"{base}/sync", json={"master_id": "cable", "qty": 5})
    line_id = client.get(f"{base}/lines").json()[0]["id"]

    staged = client.post("/api/projects/quotation-edits", json={"line_id": line_id, "value": "Armoured cable"})
    assert staged.json() == {"quotation_description": "Armoured cable"}
    assert client.get("/api/projects/quotation-edits").json() == {line_id: {"quotation_description": "Armoured cable"}}
    assert client.post("/api/projects/quotation-edits", json={"line_id": "ghost", "value": "x"}).status_code == 404

    client.post("/api/catalog/edits", json={"item_id": "cable", "field": "uom", "value": "Roll"})
    assert client.post("/api/save-all").json() == {"committed": {"catalog": 1, "quotation": 1}}
    assert client.get(f"{base}/lines").json()[0]["quotation_description"] == "Armoured cable"
    assert client.get("/api/catalog/cable").json()["uom"] == "Roll"

    client.post("/api/projects/quotation-edits", json={"line_id": line_id, "value": "Other"})
    assert client.post("/api/discard-all").json() == {"discarded": {"catalog": 0, "quotation": 1}}
