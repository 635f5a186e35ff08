"""
Tests for event CRUD, approval and listing endpoints.
"""

import pytest
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from httpx import AsyncClient

from app.models.event import EventStatus


def future(days: int = 30) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def event_payload(**overrides) -> dict:
    payload = {
        "title": "Python Conference",
        "description": "Annual Python gathering",
        "date": future(),
        "location": "Convention Center",
        "category": "tech",
        "price": "49.99",
        "total_tickets": 500,
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_create_event(client: AsyncClient, organizer, organizer_headers):
    """Organizer creates an event; it starts pending with all tickets available."""
    response = await client.post(
        "/api/v1/events/", json=event_payload(), headers=organizer_headers
    )
    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Python Conference"
    assert data["total_tickets"] == 500
    assert data["remaining_tickets"] == 500
    assert data["status"] == "pending"
    assert data["organizer_id"] == organizer.id
    assert Decimal(data["price"]) == Decimal("49.99")


@pytest.mark.asyncio
async def test_create_event_unauthenticated(client: AsyncClient):
    """Unauthenticated request returns 401."""
    response = await client.post("/api/v1/events/", json=event_payload())
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_regular_user_cannot_create_event(client: AsyncClient, auth_headers):
    response = await client.post("/api/v1/events/", json=event_payload(), headers=auth_headers)
    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_create_event_past_date(client: AsyncClient, organizer_headers):
    """Event with past date returns 400."""
    past_date = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    response = await client.post(
        "/api/v1/events/", json=event_payload(date=past_date), headers=organizer_headers
    )
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_REQUEST"


@pytest.mark.asyncio
@pytest.mark.parametrize("field,value", [("total_tickets", -1), ("price", "-5.00"), ("title", "")])
async def test_create_event_validation(client: AsyncClient, organizer_headers, field, value):
    response = await client.post(
        "/api/v1/events/", json=event_payload(**{field: value}), headers=organizer_headers
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_zero_ticket_event_is_sold_out(
    client: AsyncClient, organizer_headers, admin_headers, auth_headers
):
    created = await client.post(
        "/api/v1/events/", json=event_payload(total_tickets=0), headers=organizer_headers
    )
    event_id = created.json()["id"]
    await client.put(
        f"/api/v1/events/{event_id}/status", json={"status": "approved"}, headers=admin_headers
    )

    response = await client.post(
        "/api/v1/bookings/", json={"event_id": event_id, "quantity": 1}, headers=auth_headers
    )
    assert response.status_code == 409
    assert response.json()["code"] == "INSUFFICIENT_INVENTORY"


@pytest.mark.asyncio
async def test_list_events_shows_only_approved(
    client: AsyncClient, test_event, pending_event, make_event
):
    """Public listing hides pending and declined events."""
    await make_event(status=EventStatus.DECLINED, title="Declined Show")

    response = await client.get("/api/v1/events/")

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert [e["id"] for e in data["events"]] == [test_event.id]
    assert data["cached"] is False


@pytest.mark.asyncio
async def test_list_events_pagination(client: AsyncClient, make_event):
    for i in range(5):
        await make_event(title=f"Show {i}")

    response = await client.get("/api/v1/events/?page=2&page_size=2")

    data = response.json()
    assert data["total"] == 5
    assert data["page"] == 2
    assert len(data["events"]) == 2


@pytest.mark.asyncio
async def test_get_event(client: AsyncClient, test_event):
    response = await client.get(f"/api/v1/events/{test_event.id}")
    assert response.status_code == 200
    data = response.json()
    assert data["remaining_tickets"] == 10
    assert Decimal(data["price"]) == Decimal("20.00")


@pytest.mark.asyncio
async def test_get_event_not_found(client: AsyncClient):
    """Non-existent event returns 404."""
    response = await client.get("/api/v1/events/99999")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_admin_approves_event(client: AsyncClient, admin_headers, pending_event):
    response = await client.put(
        f"/api/v1/events/{pending_event.id}/status",
        json={"status": "approved"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "approved"

    listing = await client.get("/api/v1/events/")
    assert pending_event.id in [e["id"] for e in listing.json()["events"]]


@pytest.mark.asyncio
async def test_organizer_cannot_approve(client: AsyncClient, organizer_headers, pending_event):
    response = await client.put(
        f"/api/v1/events/{pending_event.id}/status",
        json={"status": "approved"},
        headers=organizer_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_invalid_status_value(client: AsyncClient, admin_headers, pending_event):
    response = await client.put(
        f"/api/v1/events/{pending_event.id}/status",
        json={"status": "pending"},
        headers=admin_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_admin_lists_all_events(
    client: AsyncClient, admin_headers, auth_headers, test_event, pending_event
):
    response = await client.get("/api/v1/events/all", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["total"] == 2

    pending = await client.get("/api/v1/events/all?status=pending", headers=admin_headers)
    assert [e["id"] for e in pending.json()["events"]] == [pending_event.id]

    assert (await client.get("/api/v1/events/all", headers=auth_headers)).status_code == 403


@pytest.mark.asyncio
async def test_organizer_updates_own_event(client: AsyncClient, organizer_headers, test_event):
    response = await client.put(
        f"/api/v1/events/{test_event.id}",
        json={"title": "Renamed Concert", "location": "New Hall"},
        headers=organizer_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["title"] == "Renamed Concert"
    assert data["location"] == "New Hall"
    assert data["remaining_tickets"] == 10


@pytest.mark.asyncio
async def test_organizer_cannot_change_price(client: AsyncClient, organizer_headers, test_event):
    response = await client.put(
        f"/api/v1/events/{test_event.id}",
        json={"price": "1.00"},
        headers=organizer_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_ticket_counts_not_editable(client: AsyncClient, admin_headers, test_event):
    response = await client.put(
        f"/api/v1/events/{test_event.id}",
        json={"remaining_tickets": 1000},
        headers=admin_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_update_other_organizers_event(
    client: AsyncClient, other_organizer_headers, auth_headers, test_event
):
    """Only the owning organizer (or an admin) may edit."""
    for headers in (other_organizer_headers, auth_headers):
        response = await client.put(
            f"/api/v1/events/{test_event.id}",
            json={"title": "Hijacked"},
            headers=headers,
        )
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_update_event_empty_body(client: AsyncClient, organizer_headers, test_event):
    response = await client.put(
        f"/api/v1/events/{test_event.id}", json={}, headers=organizer_headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_update_event_past_date(client: AsyncClient, organizer_headers, test_event):
    past_date = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    response = await client.put(
        f"/api/v1/events/{test_event.id}", json={"date": past_date}, headers=organizer_headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_delete_event(client: AsyncClient, organizer_headers, test_event):
    response = await client.delete(
        f"/api/v1/events/{test_event.id}", headers=organizer_headers
    )
    assert response.status_code == 204
    assert (await client.get(f"/api/v1/events/{test_event.id}")).status_code == 404


@pytest.mark.asyncio
async def test_delete_event_with_bookings(
    client: AsyncClient, auth_headers, admin_headers, test_event
):
    """Events with bookings (even cancelled ones) cannot be deleted."""
    booking = await client.post(
        "/api/v1/bookings/", json={"event_id": test_event.id, "quantity": 1}, headers=auth_headers
    )
    await client.delete(f"/api/v1/bookings/{booking.json()['id']}", headers=auth_headers)

    response = await client.delete(f"/api/v1/events/{test_event.id}", headers=admin_headers)

    assert response.status_code == 409
    assert (await client.get(f"/api/v1/events/{test_event.id}")).status_code == 200


@pytest.mark.asyncio
async def test_delete_other_organizers_event(
    client: AsyncClient, other_organizer_headers, test_event
):
    response = await client.delete(
        f"/api/v1/events/{test_event.id}", headers=other_organizer_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_organizer_lists_own_events(
    client: AsyncClient, organizer_headers, other_organizer_headers, test_event, pending_event
):
    response = await client.get("/api/v1/users/me/events", headers=organizer_headers)
    assert response.status_code == 200
    assert {e["id"] for e in response.json()} == {test_event.id, pending_event.id}

    other = await client.get("/api/v1/users/me/events", headers=other_organizer_headers)
    assert other.json() == []
