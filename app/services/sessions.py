"""OTP login against the platform and local session issuance."""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pymongo.errors import DuplicateKeyError

from app.core.exceptions import AuthenticationError, NotFoundError, UnauthorizedError
from app.core.logging import get_logger
from app.core.security import create_access_token
from app.models.user import User
from app.services import sync as sync_service
from app.services import users as user_service
from app.services.platform import PlatformClient
from app.services.server_config import RuntimeConfig

log = get_logger(__name__)

PURCHASE_TIERS = ("paid", "free")


@dataclass
class Session:
    user: User
    access_token: str
    refresh_token: str
    sync: sync_service.SyncResult = field(default_factory=sync_service.SyncResult)


def _token_data(status_code: int, body: Any) -> dict[str, Any] | None:
    if not 200 <= status_code < 300 or not isinstance(body, dict) or not body.get("success"):
        return None
    data = body.get("data")
    if not isinstance(data, dict) or not data.get("access_token"):
        return None
    return data


async def _provision(phone_number: str, profile: dict[str, Any] | None) -> User:
    try:
        return await user_service.create_from_profile(phone_number, profile)
    except DuplicateKeyError:
        # Concurrent first login for the same phone; the other request won.
        user = await user_service.find_by_phone(phone_number)
        if user is None:
            raise
        return user


async def sync_purchases(
    user: User,
    access_token: str,
    refresh_token: str,
    random_id: str | None,
    platform: PlatformClient,
    tiers: tuple[str, ...] = PURCHASE_TIERS,
    refresh_existing: bool = True,
) -> sync_service.SyncResult:
    """Pull purchased batches for `tiers` and reconcile them. Never raises."""
    try:
        results = await asyncio.gather(*(platform.fetch_purchased_batches(access_token, t) for t in tiers))
        if not any(r.ok for r in results):
            # Nothing trustworthy to rebuild from; keep the cache, still rotate stored tokens.
            log.warning(
                "purchased_batches_unavailable",
                user_id=str(user.id),
                outcomes={r.tier: r.status.value for r in results},
            )
            refreshed = 0
            if refresh_existing:
                refreshed = await sync_service.refresh_tokens(user, access_token, refresh_token, random_id)
            return sync_service.SyncResult(refreshed=refreshed)
        remote = [batch for r in results if r.ok for batch in r.batches]
        return await sync_service.reconcile(
            user,
            access_token,
            refresh_token,
            random_id,
            remote,
            platform,
            refresh_existing=refresh_existing,
            complete=all(r.ok for r in results),
        )
    except Exception as e:
        log.exception("batch_sync_aborted", user_id=str(user.id), error=repr(e))
        return sync_service.SyncResult()


async def login(phone_number: str, otp: str, platform: PlatformClient, config: RuntimeConfig) -> Session:
    """Verify the OTP with the platform, mirror purchases, and mint local session tokens."""
    normalized = user_service.normalize_phone(phone_number)
    user = await user_service.find_by_phone(normalized)
    if user is None and not config.direct_login_open:
        raise NotFoundError("User not found")

    random_id = str(uuid.uuid4())
    status_code, body = await platform.exchange_otp(phone_number.strip(), otp, random_id)
    data = _token_data(status_code, body)
    if data is None:
        log.info("otp_rejected", phone_suffix=normalized[-4:], status_code=status_code)
        raise AuthenticationError("OTP verification failed!", remote=body)

    if user is None:
        user = await _provision(normalized, data.get("user"))

    platform_access = data["access_token"]
    platform_refresh = data.get("refresh_token") or ""
    user.platform_access_token = platform_access
    user.platform_refresh_token = platform_refresh
    user.random_id = random_id
    user.has_logged_in = True
    user.last_login_at = datetime.utcnow()
    user.updated_at = datetime.utcnow()
    await user.save()

    sync = await sync_purchases(user, platform_access, platform_refresh, random_id, platform)

    access_token = create_access_token(user_service.access_token_claims(user))
    refresh_token = await user_service.issue_refresh_token(user)
    log.info("otp_login", user_id=str(user.id), batches_synced=sync.synced, batches_refreshed=sync.refreshed)
    return Session(user=user, access_token=access_token, refresh_token=refresh_token, sync=sync)


async def refresh_session(refresh_token: str) -> Session:
    """Trade a refresh token for a new access token and a rotated refresh token."""
    user = await user_service.find_by_refresh_token(refresh_token) if refresh_token else None
    if user is None:
        raise UnauthorizedError("Invalid refresh token")
    access_token = create_access_token(user_service.access_token_claims(user))
    new_refresh = await user_service.issue_refresh_token(user)
    log.info("session_refreshed", user_id=str(user.id))
    return Session(user=user, access_token=access_token, refresh_token=new_refresh)


def login_message(session: Session) -> str:
    return (
        f"✅ *OTP Login Verified for {session.user.user_name}*\n"
        f"🔁 *Batches:* {session.sync.refreshed}"
    )
