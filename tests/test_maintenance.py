from datetime import datetime, timedelta, timezone

import pytest
from conftest import make_item, make_location

from gearhub.models.models import Item, MaintenanceRecord, UsageRecord, add_months, shift_by_frequency


UTC = timezone.utc


@pytest.mark.parametrize(
    "start,months,expected",
    [
        (datetime(2024, 1, 31, tzinfo=UTC), 1, datetime(2024, 2, 29, tzinfo=UTC)),
        (datetime(2023, 1, 31, tzinfo=UTC), 1, datetime(2023, 2, 28, tzinfo=UTC)),
        (datetime(2024, 11, 30, tzinfo=UTC), 3, datetime(2025, 2, 28, tzinfo=UTC)),
        (datetime(2024, 2, 29, tzinfo=UTC), 12, datetime(2025, 2, 28, tzinfo=UTC)),
        (datetime(2024, 5, 15, tzinfo=UTC), 1, datetime(2024, 6, 15, tzinfo=UTC)),
    ],
)
def test_add_months_clamps_to_month_end(start, months, expected):
    assert add_months(start, months) == expected


def test_shift_by_frequency():
    anchor = datetime(2024, 3, 10, tzinfo=UTC)
    assert shift_by_frequency(anchor, "weekly") == datetime(2024, 3, 17, tzinfo=UTC)
    assert shift_by_frequency(anchor, "monthly") == datetime(2024, 4, 10, tzinfo=UTC)
    assert shift_by_frequency(anchor, "quarterly") == datetime(2024, 6, 10, tzinfo=UTC)
    assert shift_by_frequency(anchor, "yearly") == datetime(2025, 3, 10, tzinfo=UTC)
    assert shift_by_frequency(anchor, "custom") is None
    assert shift_by_frequency(anchor, None) is None


def test_derived_values_on_model():
    item = Item(name="Sail", maintenance_frequency="monthly")
    item.maintenance_records = [MaintenanceRecord(type="repair", cost=40.0), MaintenanceRecord(type="cleaning")]
    item.usage_records = [UsageRecord(duration=90), UsageRecord(duration=30)]
    assert item.total_maintenance_cost == 40.0
    assert item.total_usage_hours == 2.0

    item.last_maintenance = datetime(2024, 1, 31, tzinfo=UTC)
    assert item.calculate_next_maintenance() == datetime(2024, 2, 29, tzinfo=UTC)

    assert item.is_maintenance_due() is False
    item.next_maintenance = datetime(2024, 2, 29, tzinfo=UTC)
    assert item.is_maintenance_due(now=datetime(2024, 2, 28, tzinfo=UTC)) is False
    assert item.is_maintenance_due(now=datetime(2024, 2, 29, tzinfo=UTC)) is True


def test_maintenance_record_moves_schedule(client, alice):
    item = make_item(client, alice, maintenanceSchedule={"frequency": "monthly"})
    assert item["maintenanceSchedule"]["frequency"] == "monthly"

    resp = client.post(
        f"/items/{item['id']}/maintenance",
        json={"type": "inspection", "date": "2024-01-31T10:00:00Z", "cost": 25.5, "performedBy": "Me"},
        headers=alice,
    )
    assert resp.status_code == 200
    body = resp.json()["item"]
    schedule = body["maintenanceSchedule"]
    assert schedule["lastMaintenance"].startswith("2024-01-31T10:00:00")
    assert schedule["nextMaintenance"].startswith("2024-02-29T10:00:00")
    # the next date is long past, so maintenance is due again
    assert body["maintenanceDue"] is True
    assert body["totalMaintenanceCost"] == 25.5
    assert body["maintenanceRecords"][0]["performedBy"] == "Me"


def test_offset_dates_are_stored_in_utc(client, alice):
    item = make_item(client, alice, maintenanceSchedule={"frequency": "weekly"}, purchaseDate="2023-06-30T22:00:00-04:00")
    assert item["purchaseDate"] == "2023-07-01T02:00:00Z"

    body = client.post(
        f"/items/{item['id']}/maintenance",
        json={"type": "cleaning", "date": "2024-01-31T23:00:00-05:00"},
        headers=alice,
    ).json()["item"]
    assert body["maintenanceRecords"][0]["date"] == "2024-02-01T04:00:00Z"
    assert body["maintenanceSchedule"]["lastMaintenance"] == "2024-02-01T04:00:00Z"
    assert body["maintenanceSchedule"]["nextMaintenance"] == "2024-02-08T04:00:00Z"
    assert body["createdAt"].endswith("Z")


def test_model_dates_read_back_in_utc(db, client, alice):
    item = make_item(client, alice)
    row = db.query(Item).filter(Item.name == item["name"]).one()
    assert row.created_at.tzinfo is not None
    assert row.created_at.utcoffset() == timedelta(0)


def test_recent_maintenance_is_not_due(client, alice):
    item = make_item(client, alice, maintenanceSchedule={"frequency": "weekly"})
    body = client.post(f"/items/{item['id']}/maintenance", json={"type": "cleaning"}, headers=alice).json()["item"]
    next_at = datetime.fromisoformat(body["maintenanceSchedule"]["nextMaintenance"].replace("Z", "+00:00"))
    if next_at.tzinfo is None:
        next_at = next_at.replace(tzinfo=UTC)
    assert next_at > datetime.now(UTC) + timedelta(days=6)
    assert body["maintenanceDue"] is False


def test_custom_frequency_keeps_next_date(client, alice):
    item = make_item(
        client,
        alice,
        maintenanceSchedule={"frequency": "custom", "nextMaintenance": "2030-06-01T00:00:00Z"},
    )
    body = client.post(f"/items/{item['id']}/maintenance", json={"type": "upgrade"}, headers=alice).json()["item"]
    assert body["maintenanceSchedule"]["nextMaintenance"].startswith("2030-06-01T00:00:00")
    assert body["maintenanceSchedule"]["lastMaintenance"] is not None


def test_costs_sum_with_missing_values(client, alice):
    item = make_item(client, alice)
    for payload in ({"type": "repair", "cost": 10}, {"type": "cleaning"}, {"type": "upgrade", "cost": 32.5}):
        body = client.post(f"/items/{item['id']}/maintenance", json=payload, headers=alice).json()["item"]
    assert body["totalMaintenanceCost"] == 42.5
    assert body["maintenanceSchedule"] is None


def test_maintenance_type_validated(client, alice):
    item = make_item(client, alice)
    assert client.post(f"/items/{item['id']}/maintenance", json={"type": "polish"}, headers=alice).status_code == 400
    assert client.post(f"/items/{item['id']}/maintenance", json={"type": "repair", "cost": -5}, headers=alice).status_code == 400


def test_delete_maintenance_record(client, alice):
    item = make_item(client, alice)
    body = client.post(f"/items/{item['id']}/maintenance", json={"type": "repair", "cost": 10}, headers=alice).json()["item"]
    record_id = body["maintenanceRecords"][0]["id"]
    resp = client.delete(f"/items/{item['id']}/maintenance/{record_id}", headers=alice)
    assert resp.status_code == 200
    assert resp.json()["item"]["maintenanceRecords"] == []
    assert resp.json()["item"]["totalMaintenanceCost"] == 0
    assert client.delete(f"/items/{item['id']}/maintenance/{record_id}", headers=alice).status_code == 404


def test_maintenance_attachments(client, alice):
    item = make_item(client, alice)
    resp = client.post(
        f"/items/{item['id']}/maintenance",
        data={"type": "repair", "cost": "12"},
        files=[("attachments", ("receipt.jpg", b"\xff\xd8\xff", "image/jpeg"))],
        headers=alice,
    )
    assert resp.status_code == 200, resp.text
    record = resp.json()["item"]["maintenanceRecords"][0]
    assert record["cost"] == 12.0
    assert len(record["attachments"]) == 1
    assert "receipt" in record["attachments"][0]


def test_usage_record_with_unavailable_weather(client, alice):
    loc = make_location(client, alice)
    item = make_item(client, alice)
    resp = client.post(
        f"/items/{item['id']}/usage",
        json={"duration": 90, "locationId": loc["id"], "notes": "Planing all session"},
        headers=alice,
    )
    assert resp.status_code == 200
    body = resp.json()["item"]
    assert body["totalUsageHours"] == 1.5
    record = body["usageRecords"][0]
    assert record["locationId"] == loc["id"]
    assert record["weatherConditions"] == {
        "windSpeed": None,
        "windDirection": None,
        "temperature": None,
        "conditions": None,
        "available": False,
    }


def test_usage_record_uses_weather_lookup(client, alice, db):
    from gearhub.models.models import User
    from gearhub.schemas.items import UsageRecordCreate
    from gearhub.services import items as item_service

    loc = make_location(client, alice, latitude=45.7, longitude=-121.5)
    item = make_item(client, alice)
    owner = db.query(User).filter(User.email == "alice@example.com").one()
    calls = []

    def lookup(lat, lon):
        calls.append((lat, lon))
        return {"available": True, "wind_speed": 9.5, "wind_direction": "W", "temperature": 21.0, "conditions": "Clear"}

    row = item_service.add_usage_record(
        db, owner.id, item["id"], UsageRecordCreate(duration=45, location_id=loc["id"]), weather_lookup=lookup
    )
    assert calls == [(45.7, -121.5)]
    assert row.usage_records[0].weather_conditions == {
        "wind_speed": 9.5,
        "wind_direction": "W",
        "temperature": 21.0,
        "conditions": "Clear",
        "available": True,
    }


def test_usage_record_validation(client, alice, bob):
    item = make_item(client, alice)
    their_loc = make_location(client, bob)
    assert client.post(f"/items/{item['id']}/usage", json={"duration": 0}, headers=alice).status_code == 400
    resp = client.post(f"/items/{item['id']}/usage", json={"duration": 30, "locationId": their_loc["id"]}, headers=alice)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Location does not exist"
    # without a location there is nothing to look up
    body = client.post(f"/items/{item['id']}/usage", json={"duration": 30}, headers=alice).json()["item"]
    assert body["usageRecords"][0]["weatherConditions"] is None
