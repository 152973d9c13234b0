"""Client for the remote education platform: OTP exchange, purchased batches, batch details.

Sync-path calls never raise. Each is time-boxed and reports its outcome through
`FetchResult` (or `None` for details) so a slow or broken platform degrades the
batch mirror instead of failing the login.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

import httpx

from app.core.config import Settings
from app.core.exceptions import UpstreamError
from app.core.logging import get_logger

log = get_logger(__name__)

Tier = Literal["paid", "free"]

PURCHASED_BATCHES_PATH = "/batch-service/v1/batches/purchased-batches"
BATCH_DETAILS_PATH = "/v3/batches/{batch_id}/details"
OAUTH_TOKEN_PATH = "/v3/oauth/token"
VERIFY_TOKEN_PATH = "/v3/oauth/verify-token"

BASE_HEADERS = {
    "accept": "application/json, text/plain, */*",
    "client-type": "WEB",
    "client-version": "2.1.1",
}


class FetchStatus(str, Enum):
    OK = "ok"
    TIMEOUT = "timeout"
    ERROR = "error"


@dataclass
class FetchResult:
    """Outcome of a purchased-batch listing; `OK` with no batches means no purchases."""

    status: FetchStatus
    tier: str
    batches: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.OK


def _unwrap_batch(item: Any) -> dict[str, Any] | None:
    if not isinstance(item, dict):
        return None
    inner = item.get("batch")
    return inner if isinstance(inner, dict) else item


class PlatformClient:
    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self.timeout = settings.platform_timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=settings.platform_base_url,
            headers={**BASE_HEADERS, "client-id": settings.platform_organization_id},
            timeout=self.timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        # httpx timeouts are per phase; wait_for bounds the whole call
        return await asyncio.wait_for(self._client.request(method, url, **kwargs), timeout=self.timeout)

    async def exchange_otp(self, username: str, otp: str, random_id: str) -> tuple[int, Any]:
        """POST the OTP to the platform token endpoint. Returns (status_code, json body or None)."""
        body = {
            "username": username,
            "otp": otp,
            "client_id": self.settings.platform_client_id,
            "client_secret": self.settings.platform_client_secret,
            "grant_type": "password",
            "organizationId": self.settings.platform_organization_id,
            "latitude": 0,
            "longitude": 0,
        }
        try:
            response = await self._request(
                "POST",
                OAUTH_TOKEN_PATH,
                json=body,
                headers={"randomid": random_id},
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            log.warning("otp_exchange_failed", error=repr(e))
            raise UpstreamError("Could not reach the platform") from e
        return response.status_code, _json_or_none(response)

    async def verify_token(self, token: str) -> tuple[int, Any]:
        try:
            response = await self._request(
                "POST",
                VERIFY_TOKEN_PATH,
                headers={"Authorization": f"Bearer {token}"},
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            log.warning("verify_token_failed", error=repr(e))
            raise UpstreamError("Could not reach the platform") from e
        return response.status_code, _json_or_none(response)

    async def fetch_purchased_batches(self, access_token: str, tier: Tier) -> FetchResult:
        """First page of the user's purchased batches for one price tier."""
        try:
            response = await self._request(
                "GET",
                PURCHASED_BATCHES_PATH,
                params={"page": 1, "type": "ALL", "amount": tier},
                headers={"authorization": f"Bearer {access_token}", "randomid": str(uuid.uuid4())},
            )
            payload = response.json()
        except asyncio.TimeoutError:
            log.warning("purchased_batches_timeout", tier=tier, timeout=self.timeout)
            return FetchResult(FetchStatus.TIMEOUT, tier, error="timeout")
        except httpx.TimeoutException as e:
            log.warning("purchased_batches_timeout", tier=tier, error=repr(e))
            return FetchResult(FetchStatus.TIMEOUT, tier, error=repr(e))
        except (httpx.HTTPError, ValueError) as e:
            log.warning("purchased_batches_failed", tier=tier, error=repr(e))
            return FetchResult(FetchStatus.ERROR, tier, error=repr(e))

        if not isinstance(payload, dict) or not payload.get("success") or not isinstance(payload.get("data"), list):
            log.warning("purchased_batches_rejected", tier=tier, status_code=response.status_code)
            return FetchResult(FetchStatus.ERROR, tier, error=f"unexpected payload (HTTP {response.status_code})")

        batches = [b for b in (_unwrap_batch(i) for i in payload["data"]) if b and b.get("_id")]
        return FetchResult(FetchStatus.OK, tier, batches=batches)

    async def fetch_batch_detail(self, batch_id: str, access_token: str | None = None) -> dict[str, Any] | None:
        headers = {"randomid": str(uuid.uuid4())}
        if access_token:
            headers["authorization"] = f"Bearer {access_token}"
        try:
            response = await self._request("GET", BATCH_DETAILS_PATH.format(batch_id=batch_id), headers=headers)
            payload = response.json()
        except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as e:
            log.info("batch_detail_unavailable", batch_id=batch_id, error=repr(e))
            return None
        if not isinstance(payload, dict) or not payload.get("success"):
            return None
        data = payload.get("data")
        return data if isinstance(data, dict) else None


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None
