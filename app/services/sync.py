"""Batch reconciliation: merge a user's purchased batches into the shared registry."""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from app.core.config import get_settings
from app.core.logging import get_logger
from app.models.batch import EnrollmentToken, batch_type_for_price
from app.models.user import EnrolledBatch, User
from app.services import batches as batch_service
from app.services.platform import PlatformClient

log = get_logger(__name__)

DEFAULT_BATCH_NAME = "Unknown Batch"
DEFAULT_LANGUAGE = "English"
DEFAULT_BY_NAME = "Unknown"
DEFAULT_TEMPLATE = "NORMAL"


@dataclass
class SyncResult:
    synced: int = 0
    created: int = 0
    failed: int = 0
    refreshed: int = 0
    entitled: int = 0


def dedupe_batches(batches: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """One entry per `_id`; a later occurrence replaces an earlier one in its original slot."""
    by_id: dict[str, dict[str, Any]] = {}
    for batch in batches:
        batch_id = batch.get("_id")
        if batch_id:
            by_id[str(batch_id)] = batch
    return list(by_id.values())


def _first(*values: Any) -> Any:
    for value in values:
        if value not in (None, ""):
            return value
    return None


def _preview_url(image: Any) -> str | None:
    if isinstance(image, dict) and image.get("baseUrl") and image.get("key"):
        return f"{image['baseUrl']}{image['key']}"
    return None


def _fee(batch: dict[str, Any] | None) -> float | None:
    fee = (batch or {}).get("fee")
    if isinstance(fee, dict) and isinstance(fee.get("total"), (int, float)):
        return float(fee["total"])
    return None


def _parse_date(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    # Stored naive UTC like every other timestamp in the registry
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def build_batch_fields(
    summary: dict[str, Any],
    detail: dict[str, Any] | None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Descriptive batch fields: detail value, else summary value, else default."""
    now = now or datetime.utcnow()
    detail = detail or {}
    price = _first(_fee(detail), _fee(summary)) or 0.0
    return {
        "batch_id": str(summary["_id"]),
        "batch_name": _first(detail.get("name"), summary.get("name")) or DEFAULT_BATCH_NAME,
        "batch_price": price,
        "batch_image": _first(
            detail.get("iosPreviewImageUrl"),
            _preview_url(detail.get("previewImage")),
            summary.get("iosPreviewImageUrl"),
            _preview_url(summary.get("previewImage")),
        )
        or "",
        "template": _first(detail.get("template"), summary.get("template")) or DEFAULT_TEMPLATE,
        "batch_type": batch_type_for_price(price),
        "language": _first(detail.get("language"), summary.get("language")) or DEFAULT_LANGUAGE,
        "by_name": _first(detail.get("byName"), summary.get("byName")) or DEFAULT_BY_NAME,
        "start_date": _first(_parse_date(detail.get("startDate")), _parse_date(summary.get("startDate"))) or now,
        "end_date": _first(_parse_date(detail.get("endDate")), _parse_date(summary.get("endDate"))) or now,
        "batch_status": True,
    }


async def _sync_one(
    platform: PlatformClient,
    summary: dict[str, Any],
    entry: EnrollmentToken,
) -> bool | None:
    """Upsert one batch. Returns True if created, False if updated, None on failure."""
    batch_id = summary.get("_id")
    try:
        detail = await platform.fetch_batch_detail(batch_id, entry.access_token)
        fields = build_batch_fields(summary, detail)
        return await batch_service.upsert_enrollment(fields, entry)
    except Exception as e:
        log.warning("batch_sync_failed", batch_id=batch_id, owner_id=str(entry.owner_id), error=repr(e))
        return None


async def reconcile(
    user: User,
    access_token: str,
    refresh_token: str,
    random_id: str | None,
    remote_batches: Iterable[dict[str, Any]],
    platform: PlatformClient,
    refresh_existing: bool = True,
    complete: bool = True,
) -> SyncResult:
    """Mirror the user's purchased batches into the registry and their enrolled-batch cache.

    Only the first `batch_sync_limit` batches are rebuilt (detail fetch + upsert,
    concurrently). When `refresh_existing` is set, every batch already holding an
    entry for this user then gets the new tokens. The user's cache always lists
    every purchased batch.

    `complete=False` means some tier listings failed, so `remote_batches` is only
    part of the entitlement: it is merged into the cache by batch id and
    `batches_synced_at` is left alone so the next profile read retries.
    """
    settings = get_settings()
    batches = dedupe_batches(remote_batches)
    result = SyncResult(entitled=len(batches))

    if batches:
        now = datetime.utcnow()
        to_sync = batches[: settings.batch_sync_limit]
        outcomes = await asyncio.gather(
            *(
                _sync_one(
                    platform,
                    summary,
                    EnrollmentToken(
                        owner_id=user.id,
                        access_token=access_token,
                        refresh_token=refresh_token,
                        token_status=True,
                        random_id=random_id,
                        updated_at=now,
                    ),
                )
                for summary in to_sync
            )
        )
        result.synced = sum(1 for o in outcomes if o is not None)
        result.created = sum(1 for o in outcomes if o is True)
        result.failed = sum(1 for o in outcomes if o is None)

    if refresh_existing and (batches or not complete):
        result.refreshed = await refresh_tokens(user, access_token, refresh_token, random_id)

    enrolled = [EnrolledBatch(batch_id=str(b["_id"]), name=b.get("name") or "") for b in batches]
    if complete:
        user.enrolled_batches = enrolled
        user.batches_synced_at = datetime.utcnow()
    else:
        fresh = {b.batch_id: b for b in enrolled}
        kept = [fresh.pop(b.batch_id, b) for b in user.enrolled_batches]
        user.enrolled_batches = kept + list(fresh.values())
    user.updated_at = datetime.utcnow()
    await user.save()
    log.info(
        "batch_sync_done",
        user_id=str(user.id),
        entitled=result.entitled,
        synced=result.synced,
        created=result.created,
        failed=result.failed,
        refreshed=result.refreshed,
        complete=complete,
    )
    return result


async def refresh_tokens(user: User, access_token: str, refresh_token: str, random_id: str | None) -> int:
    """Push new platform tokens into every batch the user is already enrolled in."""
    try:
        return await batch_service.refresh_enrollments(user.id, access_token, refresh_token, random_id)
    except Exception as e:
        log.warning("enrollment_refresh_failed", user_id=str(user.id), error=repr(e))
        return 0
