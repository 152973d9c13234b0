import os
from typing import Any, AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

os.environ.setdefault("MONGODB_DB_NAME", "batchmirror_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-min-32-characters-long")
os.environ.setdefault("ENV", "development")


class FakePlatform:
    """Routes PlatformClient requests to canned responses.

    `purchased` maps tier ("paid"/"free") to a list of batch summaries;
    `details` maps batch id to a detail payload.
    """

    def __init__(self) -> None:
        self.otp_status = 200
        self.otp_body: Any = {
            "success": True,
            "data": {
                "access_token": "pw-access-1",
                "refresh_token": "pw-refresh-1",
                "user": {"firstName": "Asha", "lastName": "Rao"},
            },
        }
        self.verify_status = 200
        self.verify_body: Any = {"success": True, "data": {"isVerified": True}}
        self.purchased: dict[str, list[dict[str, Any]]] = {"paid": [], "free": []}
        self.details: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/v3/oauth/token":
            return httpx.Response(self.otp_status, json=self.otp_body)
        if path == "/v3/oauth/verify-token":
            return httpx.Response(self.verify_status, json=self.verify_body)
        if path == "/batch-service/v1/batches/purchased-batches":
            tier = request.url.params.get("amount")
            data = [{"batch": b} for b in self.purchased.get(tier, [])]
            return httpx.Response(200, json={"success": True, "data": data})
        if path.startswith("/v3/batches/") and path.endswith("/details"):
            batch_id = path.split("/")[3]
            detail = self.details.get(batch_id)
            if detail is None:
                return httpx.Response(404, json={"success": False})
            return httpx.Response(200, json={"success": True, "data": detail})
        return httpx.Response(404, json={"success": False})

    def paths(self, prefix: str) -> list[str]:
        return [r.url.path for r in self.requests if r.url.path.startswith(prefix)]

    def client(self, settings=None):
        from app.core.config import get_settings
        from app.services.platform import PlatformClient
        return PlatformClient(settings or get_settings(), transport=httpx.MockTransport(self.handler))


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[str] = []

    async def log_event(self, text: str) -> bool:
        self.messages.append(text)
        return True


def summary(batch_id: str, name: str | None = None, **extra: Any) -> dict[str, Any]:
    return {"_id": batch_id, "name": name or f"Batch {batch_id}", **extra}


@pytest.fixture
def settings():
    from app.core.config import get_settings
    return get_settings()


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[None, None]:
    """Beanie bound to a fresh in-memory MongoDB."""
    from app.db.init import init_db
    from app.services import server_config
    server_config._provider = None
    client = AsyncMongoMockClient()
    await init_db(client["batchmirror_test"])
    yield
    server_config._provider = None


@pytest.fixture
def fake_platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def client(db, fake_platform, notifier) -> AsyncGenerator[AsyncClient, None]:
    from app.deps import get_notifier, get_platform_client
    from app.main import app
    platform = fake_platform.client()
    app.dependency_overrides[get_platform_client] = lambda: platform
    app.dependency_overrides[get_notifier] = lambda: notifier
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
    await platform.close()
