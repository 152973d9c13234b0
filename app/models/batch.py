from datetime import datetime
from typing import Literal

from beanie import Document, Indexed, PydanticObjectId
from pydantic import BaseModel, Field


class EnrollmentToken(BaseModel):
    """One user's platform credentials for a batch; at most one per owner_id."""

    owner_id: PydanticObjectId
    access_token: str
    refresh_token: str = ""
    token_status: bool = True
    random_id: str | None = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Batch(Document):
    batch_id: Indexed(str, unique=True)
    batch_name: str
    batch_price: float = 0
    batch_image: str = ""
    template: str = "NORMAL"
    batch_type: Literal["PAID", "FREE"] = "FREE"
    language: str = "English"
    by_name: str = "Unknown"
    start_date: datetime = Field(default_factory=datetime.utcnow)
    end_date: datetime = Field(default_factory=datetime.utcnow)
    batch_status: bool = True
    enrolled_tokens: list[EnrollmentToken] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "batches"
        indexes = [[("enrolled_tokens.owner_id", 1)]]


def batch_type_for_price(price: float) -> Literal["PAID", "FREE"]:
    return "PAID" if price > 0 else "FREE"
