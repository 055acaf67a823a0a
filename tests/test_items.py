import base64
import json
import uuid
from urllib.parse import urlparse

import pytest
from conftest import make_category, make_item, make_location
from sqlalchemy.exc import IntegrityError

from gearhub.errors import InvalidReference, ValidationError
from gearhub.models.models import Item, User
from gearhub.schemas.items import ItemCreate
from gearhub.services import items as item_service
from gearhub.services.images import Upload
from gearhub.storage.local_provider import LocalStorageProvider


PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _path(url):
    return urlparse(url).path


def test_create_item_with_references_and_qr(client, alice):
    cat = make_category(client, alice)
    loc = make_location(client, alice)
    item = make_item(
        client,
        alice,
        "Freeride 6.5",
        brand="Severne",
        serialNumber="SV-001",
        categoryId=cat["id"],
        locationId=loc["id"],
        purchasePrice=899.0,
        specifications={"size": "6.5", "mast": "460"},
    )
    assert item["condition"] == "good"
    assert item["category"] == {"id": cat["id"], "name": "Sails", "color": "#1976d2"}
    assert item["location"] == {"id": loc["id"], "name": "Lake Michigan"}
    assert item["specifications"] == {"size": "6.5", "mast": "460"}
    assert item["totalUsageHours"] == 0
    assert item["totalMaintenanceCost"] == 0
    assert item["maintenanceDue"] is False

    assert item["qrCode"].startswith("data:image/png;base64,")
    png = base64.b64decode(item["qrCode"].split(",", 1)[1])
    assert png.startswith(b"\x89PNG")


def test_qr_payload_names_the_item():
    from gearhub.services.qr import qr_payload

    item_id = uuid.uuid4()
    payload = json.loads(qr_payload(item_id, "Freeride 6.5", "Severne", None))
    assert payload == {"id": str(item_id), "name": "Freeride 6.5", "brand": "Severne", "serialNumber": None}


def test_qr_kept_on_update_and_rebuilt_on_request(client, alice):
    item = make_item(client, alice)
    updated = client.put(f"/items/{item['id']}", json={"name": "Freeride 7.0"}, headers=alice).json()["item"]
    assert updated["name"] == "Freeride 7.0"
    assert updated["qrCode"] == item["qrCode"]

    resp = client.post(f"/items/{item['id']}/qr", headers=alice)
    assert resp.status_code == 200
    assert resp.json()["qrCode"] != item["qrCode"]


def test_references_must_belong_to_owner(client, alice, bob):
    their_cat = make_category(client, bob)
    their_loc = make_location(client, bob)
    resp = client.post("/items", json={"name": "Board", "categoryId": their_cat["id"]}, headers=alice)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Category does not exist"
    resp = client.post("/items", json={"name": "Board", "locationId": their_loc["id"]}, headers=alice)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Location does not exist"
    assert client.post("/items", json={"name": "Board", "categoryId": str(uuid.uuid4())}, headers=alice).status_code == 400
    assert client.post("/items", json={"name": "Board", "categoryId": "abc"}, headers=alice).status_code == 400
    assert client.get("/items", headers=alice).json()["items"] == []


def test_serial_number_unique_across_owners(client, alice, bob):
    make_item(client, alice, serialNumber="SN-42")
    resp = client.post("/items", json={"name": "Copy", "serialNumber": "SN-42"}, headers=bob)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Serial number already exists"


def test_item_validation(client, alice):
    assert client.post("/items", json={"brand": "NoName"}, headers=alice).status_code == 400
    assert client.post("/items", json={"name": "Board", "condition": "mint"}, headers=alice).status_code == 400
    assert client.post("/items", json={"name": "Board", "purchasePrice": -1}, headers=alice).status_code == 400


def test_update_can_clear_references(client, alice):
    cat = make_category(client, alice)
    item = make_item(client, alice, categoryId=cat["id"], brand="Severne")
    resp = client.put(f"/items/{item['id']}", json={"categoryId": None}, headers=alice)
    assert resp.status_code == 200
    body = resp.json()["item"]
    assert body["categoryId"] is None
    assert body["category"] is None
    assert body["brand"] == "Severne"


def test_update_rechecks_references(client, alice, bob):
    item = make_item(client, alice)
    their_loc = make_location(client, bob)
    resp = client.put(f"/items/{item['id']}", json={"locationId": their_loc["id"]}, headers=alice)
    assert resp.status_code == 400


def test_item_isolation(client, alice, bob):
    item = make_item(client, alice)
    path = f"/items/{item['id']}"
    assert client.get(path, headers=bob).status_code == 404
    assert client.put(path, json={"name": "Mine"}, headers=bob).status_code == 404
    assert client.delete(path, headers=bob).status_code == 404
    assert client.post(f"{path}/usage", json={"duration": 30}, headers=bob).status_code == 404
    assert client.post(f"{path}/maintenance", json={"type": "repair"}, headers=bob).status_code == 404
    assert client.get(f"{path}/boxes", headers=bob).status_code == 404
    assert client.get(path, headers=alice).json()["item"]["name"] == "Freeride 6.5"


def test_list_filters_and_search(client, alice):
    sails = make_category(client, alice, "Sails")
    boards = make_category(client, alice, "Boards")
    make_item(client, alice, "Freeride 6.5", brand="Severne", categoryId=sails["id"])
    make_item(client, alice, "Wave 4.7", brand="Goya", categoryId=sails["id"])
    make_item(client, alice, "Slalom 110", brand="Starboard", categoryId=boards["id"])

    by_cat = client.get("/items", params={"category": sails["id"]}, headers=alice).json()
    assert by_cat["pagination"]["total"] == 2
    by_brand = client.get("/items", params={"search": "goya"}, headers=alice).json()["items"]
    assert [i["name"] for i in by_brand] == ["Wave 4.7"]
    newest = client.get("/items", params={"sort": "createdAt", "order": "desc"}, headers=alice).json()["items"]
    assert newest[0]["name"] == "Slalom 110"
    assert client.get("/items", params={"category": "bogus"}, headers=alice).json()["items"] == []


def test_get_item_includes_weather(client, alice):
    loc = make_location(client, alice)
    with_loc = make_item(client, alice, "A", locationId=loc["id"])
    without = make_item(client, alice, "B")
    body = client.get(f"/items/{with_loc['id']}", headers=alice).json()
    assert body["weather"]["available"] is False
    assert client.get(f"/items/{without['id']}", headers=alice).json()["weather"] is None


def test_multipart_create_with_images(client, alice):
    resp = client.post(
        "/items",
        data={"name": "Wave board", "caption0": "Deck", "specifications": json.dumps({"volume": "85"})},
        files=[("images", ("deck.png", PNG, "image/png")), ("images", ("Bottom Shot.PNG", PNG, "image/png"))],
        headers=alice,
    )
    assert resp.status_code == 201, resp.text
    item = resp.json()["item"]
    assert item["specifications"] == {"volume": "85"}
    images = item["images"]
    assert [img["isPrimary"] for img in images] == [True, False]
    assert [img["caption"] for img in images] == ["Deck", ""]
    assert "key" not in images[0]
    assert "bottom-shot" in images[1]["url"]

    served = client.get(_path(images[0]["url"]))
    assert served.status_code == 200
    assert served.content == PNG


def test_update_appends_images(client, alice):
    item = make_item(client, alice)
    first = client.put(f"/items/{item['id']}", files=[("images", ("a.png", PNG, "image/png"))], headers=alice).json()["item"]
    assert [img["isPrimary"] for img in first["images"]] == [True]
    second = client.put(f"/items/{item['id']}", files=[("images", ("b.png", PNG, "image/png"))], headers=alice).json()["item"]
    assert [img["isPrimary"] for img in second["images"]] == [True, False]
    assert second["name"] == "Freeride 6.5"


def test_upload_limits(client, alice):
    too_many = [("images", (f"{i}.png", PNG, "image/png")) for i in range(6)]
    assert client.post("/items", data={"name": "Board"}, files=too_many, headers=alice).status_code == 400
    not_image = [("images", ("notes.txt", b"hello", "text/plain"))]
    resp = client.post("/items", data={"name": "Board"}, files=not_image, headers=alice)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Only image files are allowed"
    assert client.get("/items", headers=alice).json()["items"] == []


def test_delete_item_purges_images(client, alice):
    resp = client.post("/items", data={"name": "Board"}, files=[("images", ("a.png", PNG, "image/png"))], headers=alice)
    item = resp.json()["item"]
    url = _path(item["images"][0]["url"])
    assert client.get(url).status_code == 200

    assert client.delete(f"/items/{item['id']}", headers=alice).status_code == 200
    assert client.get(f"/items/{item['id']}", headers=alice).status_code == 404
    assert client.get(url).status_code == 404


def test_files_route_refuses_paths_outside_storage(client):
    assert client.get("/files/local/..%2F..%2Fetc%2Fpasswd").status_code == 404


def test_failed_write_removes_uploaded_images(client, alice, db, tmp_path, monkeypatch):
    make_item(client, alice, serialNumber="SN-1")
    owner = db.query(User).filter(User.email == "alice@example.com").one()
    storage = LocalStorageProvider(str(tmp_path))
    # skip the pre-check so the unique constraint fires on commit
    monkeypatch.setattr(item_service, "_ensure_unique_serial", lambda *a, **k: None)

    with pytest.raises(ValidationError):
        item_service.create_item(
            db,
            owner.id,
            ItemCreate(name="Clone", serial_number="SN-1"),
            [Upload(filename="a.png", content_type="image/png", data=PNG)],
            storage,
        )
    assert [p for p in tmp_path.rglob("*") if p.is_file()] == []
    assert db.query(Item).count() == 1



class _FailingSession:
    def __init__(self, message):
        self.error = IntegrityError("INSERT INTO items ...", {}, Exception(message))
        self.rolled_back = False

    def commit(self):
        raise self.error

    def rollback(self):
        self.rolled_back = True


def test_commit_reports_integrity_errors_by_constraint():
    serial = _FailingSession('duplicate key value violates unique constraint "items_serial_number_key"')
    with pytest.raises(ValidationError, match="Serial number already exists"):
        item_service._commit(serial)
    assert serial.rolled_back

    reference = _FailingSession('insert or update on table "items" violates foreign key constraint "items_category_id_fkey"')
    with pytest.raises(InvalidReference):
        item_service._commit(reference)

    other = _FailingSession("NOT NULL constraint failed: items.name")
    with pytest.raises(IntegrityError):
        item_service._commit(other)

def test_boxes(client, alice, bob):
    item = make_item(client, alice)
    path = f"/items/{item['id']}/boxes"
    resp = client.post(path, json={"name": "Quiver bag", "description": "Blue"}, headers=alice)
    assert resp.status_code == 201
    box = resp.json()["box"]
    assert box["itemId"] == item["id"]

    assert [b["name"] for b in client.get(path, headers=alice).json()["boxes"]] == ["Quiver bag"]
    assert client.get(f"/items/{item['id']}", headers=alice).json()["item"]["boxes"][0]["id"] == box["id"]
    assert client.delete(f"{path}/{box['id']}", headers=bob).status_code == 404
    assert client.delete(f"{path}/{uuid.uuid4()}", headers=alice).status_code == 404
    assert client.delete(f"{path}/{box['id']}", headers=alice).status_code == 200
    assert client.get(path, headers=alice).json()["boxes"] == []


def test_delete_item_cascades_records(client, alice, db):
    item = make_item(client, alice)
    client.post(f"/items/{item['id']}/usage", json={"duration": 60}, headers=alice)
    client.post(f"/items/{item['id']}/maintenance", json={"type": "cleaning", "cost": 10}, headers=alice)
    client.post(f"/items/{item['id']}/boxes", json={"name": "Bag"}, headers=alice)
    assert client.delete(f"/items/{item['id']}", headers=alice).status_code == 200

    from gearhub.models.models import Box, MaintenanceRecord, UsageRecord

    assert db.query(UsageRecord).count() == 0
    assert db.query(MaintenanceRecord).count() == 0
    assert db.query(Box).count() == 0
