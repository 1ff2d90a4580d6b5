from jose import jwt

from app.config import settings
from app.core.geofencing import Coordinate
from app.models.service import NGOService
from app.models.victim import UrgencyLevel, VictimNeed
from app.utils.geocoding import geocoding_service

from conftest import make_area, make_event, make_inventory, make_ngo, make_staff, make_victim

def bearer(staff_id):
    token = jwt.encode({"staff_id": staff_id}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return {"Authorization": f"Bearer {token}"}

async def test_root_and_health(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "active"

    response = await client.get("/health")
    assert response.json()["status"] == "healthy"

async def test_allocation_by_coordinates(client, seed):
    [ngo_id] = await seed(make_ngo(name="NGO X", focus_area="Food"))
    [area_id] = await seed(make_area(ngo_id, 23.81, 90.41, 5))
    await seed(make_inventory(ngo_id, "Food", 20))

    response = await client.get(
        "/api/allocation",
        params={"latitude": 23.83, "longitude": 90.40, "need_type": "food"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    candidate = body["ngos"][0]
    assert candidate["ngo_id"] == ngo_id
    assert candidate["service_area_id"] == area_id
    assert candidate["ngo_info"]["name"] == "NGO X"
    assert candidate["distance_km"] == round(candidate["distance_km"], 3)
    assert [r["quantity"] for r in candidate["available_resources"]] == [20]

    far = await client.get("/api/allocation", params={"latitude": 24.0, "longitude": 90.41})
    assert far.json() == {"ngos": [], "total": 0}

async def test_allocation_input_errors(client, seed):
    response = await client.get("/api/allocation")
    assert response.status_code == 400

    response = await client.get("/api/allocation", params={"latitude": 95, "longitude": 10})
    assert response.status_code == 400
    assert response.json()["errors"] == ["Invalid latitude: must be between -90 and 90"]

    [event_id] = await seed(make_event(location="Unknown"))
    response = await client.get("/api/allocation", params={"event_id": event_id})
    assert response.status_code == 404
    assert response.json()["detail"] == "Event has no location data"

async def test_service_request_lifecycle_with_token_staff(client, seed):
    await seed(make_victim(1001), make_ngo(id=5, name="Five"), make_ngo(id=9, name="Nine"))
    await seed(make_staff(5, id=7, email="seven@five.org"), make_staff(9, id=8, email="eight@nine.org"))

    response = await client.post("/api/service-requests", json={
        "victim_id": 1001,
        "ngo_id": 5,
        "request_type": "Medical",
        "urgency_level": "high",
        "service_items": [{"service_type": "First aid", "quantity": 1}]
    })
    assert response.status_code == 201
    created = response.json()
    assert created["status"] == "pending"
    assert created["response_date"] is None
    assert len(created["service_items"]) == 1

    request_url = f"/api/service-requests/{created['id']}"

    response = await client.put(request_url, json={"status": "approved"}, headers=bearer(8))
    assert response.status_code == 409

    response = await client.put(request_url, json={"status": "approved"}, headers=bearer(7))
    assert response.status_code == 200
    assert response.json()["responded_by"] == 7
    assert response.json()["response_date"] is not None

    response = await client.put(request_url, json={"status": "completed"})
    assert response.status_code == 400
    assert response.json()["allowed"] == ["denied", "in_progress"]

    response = await client.put(request_url, json={"status": "approved"}, headers={"Authorization": "Bearer junk"})
    assert response.status_code == 401

    listed = await client.get("/api/service-requests", params={"ngo_id": 5, "status": "approved"})
    assert [r["id"] for r in listed.json()] == [created["id"]]

    staff = await client.get("/api/staff/7")
    assert staff.json()["service_request_count"] == 1

    response = await client.delete("/api/staff/7")
    assert response.status_code == 409
    assert "marking as inactive" in response.json()["detail"]

    response = await client.delete(request_url)
    assert response.status_code == 200
    assert (await client.get(request_url)).status_code == 404

async def test_inventory_consume_and_out_of_stock(client, seed):
    [ngo_id] = await seed(make_ngo(id=5))

    response = await client.post("/api/inventory", json={
        "ngo_id": ngo_id, "resource_type": "Food", "resource_name": "Rice", "quantity": 3, "unit": "kg"
    })
    assert response.status_code == 201
    item_id = response.json()["id"]

    response = await client.post(f"/api/inventory/{item_id}/consume", json={"amount": 3})
    assert response.status_code == 200
    assert response.json()["quantity"] == 0
    assert response.json()["is_available"] is False

    response = await client.post(f"/api/inventory/{item_id}/consume", json={"amount": 1})
    assert response.status_code == 409
    assert response.json()["available"] == 0

    detail = await client.get(f"/api/inventory/{item_id}")
    assert detail.json()["service_items"] == []

    response = await client.post("/api/inventory", json={"ngo_id": ngo_id})
    assert response.status_code == 400

async def test_events_geocode_free_text_locations(client, monkeypatch):
    async def fake_geocode(address):
        return Coordinate(23.81, 90.41) if address == "Dhaka" else None

    monkeypatch.setattr(geocoding_service, "geocode", fake_geocode)

    response = await client.post("/api/events", json={"description": "Flood", "location": "Dhaka"})
    assert response.status_code == 201
    assert (response.json()["latitude"], response.json()["longitude"]) == (23.81, 90.41)

    response = await client.post("/api/events", json={"description": "Storm", "location": "Atlantis"})
    assert response.status_code == 201
    assert response.json()["latitude"] is None

    response = await client.post("/api/events", json={
        "description": "Quake", "location": "Dhaka", "latitude": 1.0, "longitude": 2.0
    })
    assert response.json()["latitude"] == 1.0

async def test_victim_registration(client, seed):
    [event_id] = await seed(make_event())

    response = await client.post("/api/victims", json={"id": 42, "name": "Rahim", "event_id": event_id})
    assert response.status_code == 201

    response = await client.post("/api/victims", json={"id": 42, "name": "Again"})
    assert response.status_code == 409

    response = await client.post("/api/victims", json={"id": 43, "name": "Karim", "event_id": 999})
    assert response.status_code == 404

    assert (await client.get("/api/victims/42")).json()["name"] == "Rahim"

async def test_need_detail_lists_requests_and_matching_ngos(client, seed):
    await seed(make_victim(42), make_ngo(id=8, name="Shelter Org", focus_area="Shelter"))
    [need_id] = await seed(VictimNeed(victim_id=42, need_type="Shelter", urgency_level=UrgencyLevel.HIGH))

    await client.post("/api/service-requests", json={
        "victim_id": 42, "ngo_id": 8, "request_type": "Shelter", "urgency_level": "high"
    })

    response = await client.get(f"/api/needs/{need_id}")
    assert response.status_code == 200
    body = response.json()
    assert [r["ngo_id"] for r in body["service_requests"]] == [8]
    assert [n["name"] for n in body["matching_ngos"]] == ["Shelter Org"]

    response = await client.delete(f"/api/needs/{need_id}")
    assert response.status_code == 409

    response = await client.post(f"/api/needs/{need_id}/resolve")
    assert response.json()["status"] == "addressed"
    assert response.json()["date_addressed"] is not None

async def test_service_area_coverage(client, seed):
    [ngo_id] = await seed(make_ngo())

    response = await client.post("/api/service-areas", json={
        "ngo_id": ngo_id, "location_name": "Dhaka", "latitude": 23.81, "longitude": 90.41, "radius_km": 5
    })
    assert response.status_code == 201

    response = await client.post("/api/service-areas", json={
        "ngo_id": ngo_id, "location_name": "Nowhere", "latitude": 23.81, "longitude": 90.41, "radius_km": 0
    })
    assert response.status_code == 400

    inside = await client.get(
        "/api/service-areas/coverage",
        params={"ngo_id": ngo_id, "latitude": 23.83, "longitude": 90.40}
    )
    assert inside.json()["can_serve"] is True

    outside = await client.get(
        "/api/service-areas/coverage",
        params={"ngo_id": ngo_id, "latitude": 24.0, "longitude": 90.41}
    )
    assert outside.json()["can_serve"] is False

async def test_delivery_uses_token_staff_when_body_omits_it(client, seed):
    await seed(make_victim(1), make_ngo(id=5))
    await seed(make_staff(5, id=7))
    [service_id] = await seed(NGOService(victim_id=1, ngo_id=5, service_type="Medical"))

    response = await client.post("/api/service-deliveries", json={"service_id": service_id})
    assert response.status_code == 400

    response = await client.post(
        "/api/service-deliveries",
        json={"service_id": service_id, "effectiveness_rating": 5},
        headers=bearer(7)
    )
    assert response.status_code == 201
    assert response.json()["staff_id"] == 7

    service = await client.get(f"/api/services/{service_id}")
    assert service.json()["status"] == "active"
