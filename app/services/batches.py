"""Shared batch registry: upserts keyed by external batch id, per-owner enrollment entries."""

from datetime import datetime
from typing import Any

from beanie import PydanticObjectId
from pymongo.errors import DuplicateKeyError

from app.core.exceptions import BadRequestError
from app.core.logging import get_logger
from app.models.batch import Batch, EnrollmentToken

log = get_logger(__name__)

# Attempts before giving up on a batch whose document keeps changing under us
UPSERT_ATTEMPTS = 3


class BatchUpsertConflict(Exception):
    pass


def _entry_doc(entry: EnrollmentToken) -> dict[str, Any]:
    return {
        "owner_id": entry.owner_id,
        "access_token": entry.access_token,
        "refresh_token": entry.refresh_token,
        "token_status": entry.token_status,
        "random_id": entry.random_id,
        "updated_at": entry.updated_at,
    }


async def upsert_enrollment(fields: dict[str, Any], entry: EnrollmentToken) -> bool:
    """Write descriptive `fields` onto the batch and set `entry` for its owner.

    The owner's existing entry is replaced in place; otherwise the entry is
    appended, creating the batch document when it does not exist yet. A
    concurrent create of the same batch id trips the unique index and the
    write is retried against the now-existing document.

    Returns True when this call created the document.
    """
    collection = Batch.get_motor_collection()
    batch_id = fields["batch_id"]
    now = datetime.utcnow()
    doc = _entry_doc(entry)
    for _ in range(UPSERT_ATTEMPTS):
        result = await collection.update_one(
            {"batch_id": batch_id, "enrolled_tokens.owner_id": entry.owner_id},
            {"$set": {**fields, "updated_at": now, "enrolled_tokens.$": doc}},
        )
        if result.matched_count:
            return False
        result = await collection.update_one(
            {"batch_id": batch_id, "enrolled_tokens.owner_id": {"$ne": entry.owner_id}},
            {"$set": {**fields, "updated_at": now}, "$push": {"enrolled_tokens": doc}},
        )
        if result.matched_count:
            return False
        try:
            await collection.insert_one(
                {**fields, "enrolled_tokens": [doc], "created_at": now, "updated_at": now}
            )
        except DuplicateKeyError:
            # Another writer created this batch first; update the document it made.
            log.info("batch_create_race", batch_id=batch_id)
            continue
        return True
    raise BatchUpsertConflict(batch_id)


async def refresh_enrollments(
    owner_id: PydanticObjectId,
    access_token: str,
    refresh_token: str,
    random_id: str | None,
) -> int:
    """Refresh the owner's entry in every batch that has one. Returns batches modified."""
    collection = Batch.get_motor_collection()
    result = await collection.update_many(
        {"enrolled_tokens.owner_id": owner_id},
        {
            "$set": {
                "enrolled_tokens.$.access_token": access_token,
                "enrolled_tokens.$.refresh_token": refresh_token,
                "enrolled_tokens.$.updated_at": datetime.utcnow(),
                "enrolled_tokens.$.random_id": random_id,
                "enrolled_tokens.$.token_status": True,
            }
        },
    )
    return result.modified_count


async def create_batch(batch: Batch) -> Batch:
    """Admin create; an existing batch id is rejected and left untouched."""
    if await Batch.find_one(Batch.batch_id == batch.batch_id):
        raise BadRequestError("Batch ID already exists")
    try:
        await batch.insert()
    except DuplicateKeyError as e:
        raise BadRequestError("Batch ID already exists") from e
    log.info("batch_created", batch_id=batch.batch_id, batch_type=batch.batch_type)
    return batch
