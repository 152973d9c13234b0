from datetime import datetime

from beanie import Document, Indexed
from pydantic import BaseModel, Field


class EnrolledBatch(BaseModel):
    """Denormalized summary of a batch the user is entitled to."""

    batch_id: str
    name: str = ""


class User(Document):
    phone_number: Indexed(str, unique=True)
    user_name: str = ""
    telegram_id: str | None = None
    photo_url: str | None = None
    # Credentials issued by the remote platform
    platform_access_token: str | None = None
    platform_refresh_token: str | None = None
    # Local session refresh token; uniqueness is checked on generation
    refresh_token: str | None = None
    random_id: str | None = None
    tag: str = "user"
    tag_expiry: datetime | None = None
    has_logged_in: bool = False
    enrolled_batches: list[EnrolledBatch] = Field(default_factory=list)
    batches_synced_at: datetime | None = None
    last_login_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
        indexes = [[("refresh_token", 1)]]
