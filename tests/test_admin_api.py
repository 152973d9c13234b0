import pytest

from app.core.security import create_admin_cookie, verify_password
from app.models.batch import Batch
from app.models.server_config import ServerConfig

pytestmark = pytest.mark.asyncio

RESET_KEY = "reset-key-for-tests"

BATCH = {
    "batchId": "admin-1",
    "batchName": "Olympiad Prep",
    "batchPrice": 1500,
    "language": "English",
    "byName": "Team Olympiad",
    "startDate": "2026-01-01T00:00:00Z",
    "endDate": "2026-12-31T00:00:00Z",
}


@pytest.fixture
def reset_key(settings, monkeypatch):
    monkeypatch.setattr(settings, "admin_reset_key", RESET_KEY)
    return RESET_KEY


def _admin_cookies() -> dict:
    return {"admin_token": create_admin_cookie("root")}


async def test_reset_hashes_and_upserts_credentials(client, reset_key):
    r = await client.post(
        "/v1/admin/reset",
        json={"username": "root", "password": "s3cret"},
        headers={"X-Admin-Reset-Key": reset_key},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["config"] == {"username": "root"}
    assert "s3cret" not in r.text

    docs = await ServerConfig.find_all().to_list()
    assert len(docs) == 1
    assert docs[0].password != "s3cret"
    assert verify_password("s3cret", docs[0].password)

    again = await client.post(
        "/v1/admin/reset",
        json={"username": "root2", "password": "other"},
        headers={"X-Admin-Reset-Key": reset_key},
    )
    assert again.status_code == 200
    assert await ServerConfig.find_all().count() == 1


async def test_reset_requires_key(client, reset_key):
    r = await client.post("/v1/admin/reset", json={"username": "root", "password": "x"})
    assert r.status_code == 401
    r = await client.post(
        "/v1/admin/reset",
        json={"username": "root", "password": "x"},
        headers={"X-Admin-Reset-Key": "wrong"},
    )
    assert r.status_code == 401


async def test_reset_disabled_without_configured_key(client):
    r = await client.post(
        "/v1/admin/reset",
        json={"username": "root", "password": "x"},
        headers={"X-Admin-Reset-Key": "anything"},
    )
    assert r.status_code == 403


async def test_reset_requires_username_and_password(client, reset_key):
    r = await client.post("/v1/admin/reset", json={"username": "root"}, headers={"X-Admin-Reset-Key": reset_key})
    assert r.status_code == 400


async def test_login_after_reset_sets_admin_cookie(client, reset_key):
    await client.post(
        "/v1/admin/reset",
        json={"username": "root", "password": "s3cret"},
        headers={"X-Admin-Reset-Key": reset_key},
    )

    bad = await client.post("/v1/admin/login", json={"username": "root", "password": "nope"})
    assert bad.status_code == 401

    r = await client.post("/v1/admin/login", json={"username": "root", "password": "s3cret"})
    assert r.status_code == 200
    assert any(c.startswith("admin_token=") for c in r.headers.get_list("set-cookie"))


async def test_create_batch(client):
    r = await client.post("/v1/admin/batches", json=BATCH, cookies=_admin_cookies())

    assert r.status_code == 201, r.text
    batch = r.json()["batch"]
    assert batch["batchId"] == "admin-1"
    assert batch["BatchType"] == "PAID"
    assert batch["template"] == "NORMAL"
    assert batch["batchStatus"] is True
    stored = await Batch.find_one(Batch.batch_id == "admin-1")
    assert stored.batch_name == "Olympiad Prep"
    assert stored.enrolled_tokens == []


async def test_create_free_batch(client):
    r = await client.post(
        "/v1/admin/batches",
        json={**BATCH, "batchId": "admin-free", "batchPrice": 0},
        cookies=_admin_cookies(),
    )
    assert r.status_code == 201
    assert r.json()["batch"]["BatchType"] == "FREE"


async def test_duplicate_batch_id_is_rejected_without_mutation(client):
    first = await client.post("/v1/admin/batches", json=BATCH, cookies=_admin_cookies())
    assert first.status_code == 201

    r = await client.post(
        "/v1/admin/batches",
        json={**BATCH, "batchName": "Overwritten?", "batchPrice": 1},
        cookies=_admin_cookies(),
    )

    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Batch ID already exists"
    stored = await Batch.find_one(Batch.batch_id == "admin-1")
    assert stored.batch_name == "Olympiad Prep"
    assert stored.batch_price == 1500


async def test_create_batch_requires_admin_cookie(client):
    r = await client.post("/v1/admin/batches", json=BATCH)
    assert r.status_code == 401
    r = await client.post("/v1/admin/batches", json=BATCH, cookies={"admin_token": "forged"})
    assert r.status_code == 401


async def test_create_batch_missing_fields(client):
    payload = {k: v for k, v in BATCH.items() if k != "byName"}
    r = await client.post("/v1/admin/batches", json=payload, cookies=_admin_cookies())
    assert r.status_code == 400
    assert await Batch.find_all().count() == 0
