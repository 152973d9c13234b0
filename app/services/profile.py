"""Profile reads with lazy batch sync when the user's batch cache is stale."""

import uuid
from datetime import datetime, timedelta

from app.core.config import get_settings
from app.core.logging import get_logger
from app.models.user import User
from app.services.platform import PlatformClient
from app.services.sessions import PURCHASE_TIERS, sync_purchases

log = get_logger(__name__)


def needs_batch_sync(user: User, now: datetime | None = None) -> bool:
    """Stale when never synced or synced longer ago than the TTL; needs a platform token."""
    if not user.platform_access_token:
        return False
    if user.batches_synced_at is None:
        return True
    now = now or datetime.utcnow()
    return now - user.batches_synced_at >= timedelta(seconds=get_settings().batch_sync_ttl_seconds)


async def load_profile(user: User, platform: PlatformClient) -> dict:
    if needs_batch_sync(user):
        log.info("lazy_batch_sync", user_id=str(user.id))
        # Both tiers so the cache stays complete; tokens are unchanged since login so no bulk refresh.
        await sync_purchases(
            user,
            user.platform_access_token,
            user.platform_refresh_token or "",
            user.random_id or str(uuid.uuid4()),
            platform,
            tiers=PURCHASE_TIERS,
            refresh_existing=False,
        )
    return {
        "success": True,
        "user": {
            "userId": str(user.id),
            "name": user.user_name,
            "telegramId": user.telegram_id,
            "photoUrl": user.photo_url,
            "tag": user.tag,
        },
        "enrolledBatches": [{"batchId": b.batch_id, "name": b.name} for b in user.enrolled_batches],
    }
