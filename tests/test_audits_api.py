import uuid

import pytest

pytestmark = pytest.mark.asyncio

BASE = "/api/v1/audits"


async def _create(client, headers, warehouse, **body):
    payload = {"warehouseId": str(warehouse.id), "startDate": "2030-03-01T08:00:00Z", **body}
    return await client.post(BASE, json=payload, headers=headers)


async def test_requests_without_token_are_unauthorized(client):
    response = await client.get(BASE)

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


async def test_token_for_unknown_user_cannot_create(client, seed, auth_headers):
    wh = await seed.warehouse()

    response = await _create(client, auth_headers(uuid.uuid4()), wh)

    assert response.status_code == 401
    assert response.json()["error"] == "Unauthorized"


async def test_missing_fields_are_a_400(client, seed, auth_headers):
    user = await seed.user()

    response = await client.post(BASE, json={"notes": "no warehouse"}, headers=auth_headers(user.id))

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request"
    assert "warehouseId" in body["details"] or "warehouse_id" in body["details"]


async def test_create_audit(client, seed, auth_headers):
    user = await seed.user()
    counter = await seed.user()
    wh = await seed.warehouse()
    await seed.inventory(wh, quantity=7)

    response = await _create(
        client, auth_headers(user.id), wh, notes="Year end", users=[str(counter.id)]
    )

    assert response.status_code == 201
    body = response.json()
    assert body["warnings"] == []
    audit = body["audit"]
    assert audit["status"] == "PLANNED"
    assert audit["reference_number"].startswith("AUDIT-")
    assert audit["warehouse"]["id"] == str(wh.id)
    assert audit["created_by_id"] == str(user.id)
    assert audit["total_items"] == 1
    assert audit["items"][0]["expected_quantity"] == 7
    assert [a["user_id"] for a in audit["assignments"]] == [str(counter.id)]


async def test_create_for_unknown_warehouse_is_a_400(client, seed, auth_headers):
    user = await seed.user()

    response = await client.post(
        BASE,
        json={"warehouseId": str(uuid.uuid4()), "startDate": "2030-03-01T08:00:00Z"},
        headers=auth_headers(user.id),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Warehouse not found"


async def test_unknown_audit_is_a_404(client, seed, auth_headers):
    user = await seed.user()

    response = await client.get(f"{BASE}/{uuid.uuid4()}", headers=auth_headers(user.id))

    assert response.status_code == 404
    assert response.json()["error"] == "Audit not found"


async def test_count_flow_from_start_to_report(client, seed, auth_headers):
    user = await seed.user()
    wh = await seed.warehouse()
    await seed.inventory(wh, quantity=10)
    await seed.inventory(wh, quantity=4)
    headers = auth_headers(user.id)
    audit_id = (await _create(client, headers, wh)).json()["audit"]["id"]

    started = await client.post(f"{BASE}/{audit_id}/start", headers=headers)
    assert started.status_code == 200
    assert started.json()["status"] == "IN_PROGRESS"

    items = (await client.get(f"{BASE}/{audit_id}/items", headers=headers)).json()
    assert items["total"] == 2
    counts = [
        {"id": item["id"], "actualQuantity": item["expected_quantity"] - 1}
        for item in items["items"]
    ]

    counted = await client.put(f"{BASE}/{audit_id}/items", json={"items": counts}, headers=headers)
    assert counted.status_code == 200
    body = counted.json()
    assert body["updated_count"] == 2
    assert body["is_complete"] is True
    assert {item["status"] for item in body["items"]} == {"DISCREPANCY"}

    report = (await client.get(f"{BASE}/{audit_id}/report", headers=headers)).json()
    assert report["counted_items"] == 2
    assert report["discrepancy_items"] == 2
    assert float(report["accuracy_rate"]) == 0.0
    assert float(report["negative_variance_value"]) == 20.0

    completed = await client.post(f"{BASE}/{audit_id}/complete", headers=headers)
    assert completed.status_code == 200
    assert completed.json()["status"] == "COMPLETED"


async def test_counting_a_planned_audit_is_a_400(client, seed, auth_headers):
    user = await seed.user()
    wh = await seed.warehouse()
    await seed.inventory(wh, quantity=3)
    headers = auth_headers(user.id)
    audit = (await _create(client, headers, wh)).json()["audit"]

    response = await client.put(
        f"{BASE}/{audit['id']}/items",
        json={"items": [{"id": audit["items"][0]["id"], "actualQuantity": 3}]},
        headers=headers,
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Audit must be in progress to update items"


async def test_negative_count_is_a_400(client, seed, auth_headers):
    user = await seed.user()
    wh = await seed.warehouse()
    await seed.inventory(wh, quantity=3)
    headers = auth_headers(user.id)
    audit = (await _create(client, headers, wh)).json()["audit"]
    await client.post(f"{BASE}/{audit['id']}/start", headers=headers)

    response = await client.put(
        f"{BASE}/{audit['id']}/items",
        json={"items": [{"id": audit["items"][0]["id"], "actualQuantity": -2}]},
        headers=headers,
    )

    assert response.status_code == 400


async def test_list_paginates_and_filters_by_status(client, seed, auth_headers):
    user = await seed.user()
    wh = await seed.warehouse()
    headers = auth_headers(user.id)
    ids = [(await _create(client, headers, wh)).json()["audit"]["id"] for _ in range(3)]
    await client.post(f"{BASE}/{ids[0]}/cancel", headers=headers)

    page = (await client.get(BASE, params={"pageSize": 2, "page": 2}, headers=headers)).json()
    assert page["total"] == 3
    assert page["pages"] == 2
    assert len(page["items"]) == 1

    cancelled = (await client.get(BASE, params={"status": "CANCELLED"}, headers=headers)).json()
    assert [a["id"] for a in cancelled["items"]] == [ids[0]]


async def test_invalid_status_filter_is_a_400(client, seed, auth_headers):
    user = await seed.user()

    response = await client.get(BASE, params={"status": "LOST"}, headers=auth_headers(user.id))

    assert response.status_code == 400


async def test_period_summary_endpoint(client, seed, auth_headers):
    user = await seed.user()
    wh = await seed.warehouse()
    await seed.inventory(wh, quantity=2)
    headers = auth_headers(user.id)
    await _create(client, headers, wh)

    response = await client.get(f"{BASE}/reports/summary", params={"warehouse": str(wh.id)}, headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["total_audits"] == 1
    assert body["planned_audits"] == 1
    assert body["total_items"] == 1

    reversed_range = await client.get(
        f"{BASE}/reports/summary",
        params={"startDate": "2030-02-01", "endDate": "2030-01-01"},
        headers=headers,
    )
    assert reversed_range.status_code == 400


async def test_update_and_delete(client, seed, auth_headers):
    user = await seed.user()
    wh = await seed.warehouse()
    headers = auth_headers(user.id)
    audit_id = (await _create(client, headers, wh)).json()["audit"]["id"]

    updated = await client.put(f"{BASE}/{audit_id}", json={"notes": "Moved to Friday"}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["notes"] == "Moved to Friday"

    deleted = await client.delete(f"{BASE}/{audit_id}", headers=headers)
    assert deleted.status_code == 204

    missing = await client.get(f"{BASE}/{audit_id}", headers=headers)
    assert missing.status_code == 404


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["checks"]["database"] == "connected"


async def test_count_single_item(client, seed, auth_headers):
    user = await seed.user()
    wh = await seed.warehouse()
    await seed.inventory(wh, quantity=6)
    await seed.inventory(wh, quantity=6)
    headers = auth_headers(user.id)
    audit = (await _create(client, headers, wh)).json()["audit"]
    item_id = audit["items"][0]["id"]
    url = f"{BASE}/{audit['id']}/items/{item_id}"

    planned = await client.patch(url, json={"actualQuantity": 6}, headers=headers)
    assert planned.status_code == 400

    await client.post(f"{BASE}/{audit['id']}/start", headers=headers)
    response = await client.patch(url, json={"actualQuantity": 6, "notes": "ok"}, headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["item"]["status"] == "COUNTED"
    assert body["item"]["notes"] == "ok"
    assert body["progress"] == {"total_items": 2, "counted_items": 1, "percentage": 50}
    assert body["message"] == "Audit item status updated to COUNTED"

    missing = await client.patch(
        f"{BASE}/{audit['id']}/items/{uuid.uuid4()}", json={"actualQuantity": 1}, headers=headers
    )
    assert missing.status_code == 404


async def test_duplicate_items_in_batch_are_a_400(client, seed, auth_headers):
    user = await seed.user()
    wh = await seed.warehouse()
    await seed.inventory(wh, quantity=3)
    headers = auth_headers(user.id)
    audit = (await _create(client, headers, wh)).json()["audit"]
    await client.post(f"{BASE}/{audit['id']}/start", headers=headers)
    item_id = audit["items"][0]["id"]

    response = await client.put(
        f"{BASE}/{audit['id']}/items",
        json={"items": [{"id": item_id, "actualQuantity": 3}, {"id": item_id, "actualQuantity": 10}]},
        headers=headers,
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Duplicate audit items in submission"
