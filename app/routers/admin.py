import hmac
from datetime import datetime

from fastapi import APIRouter, Depends, Header, Response, status
from pydantic import BaseModel, ConfigDict, Field

from app.core.config import get_settings
from app.core.exceptions import ForbiddenError, UnauthorizedError
from app.core.security import create_admin_cookie, verify_password
from app.deps import ADMIN_COOKIE_NAME, get_runtime_config, require_admin
from app.models.batch import Batch, EnrollmentToken, batch_type_for_price
from app.services import batches as batch_service
from app.services import server_config as server_config_service
from app.services.server_config import RuntimeConfig

router = APIRouter()


class AdminCredentials(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class CreateBatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    batch_id: str = Field(alias="batchId", min_length=1)
    batch_name: str = Field(alias="batchName", min_length=1)
    batch_price: float = Field(alias="batchPrice", ge=0)
    batch_image: str = Field(default="", alias="batchImage")
    template: str | None = None
    language: str = Field(min_length=1)
    by_name: str = Field(alias="byName", min_length=1)
    start_date: datetime = Field(alias="startDate")
    end_date: datetime = Field(alias="endDate")
    batch_status: bool = Field(default=True, alias="batchStatus")
    enrolled_tokens: list[EnrollmentToken] = Field(default_factory=list, alias="enrolledTokens")


def _batch_out(batch: Batch) -> dict:
    return {
        "id": str(batch.id),
        "batchId": batch.batch_id,
        "batchName": batch.batch_name,
        "batchPrice": batch.batch_price,
        "batchImage": batch.batch_image,
        "template": batch.template,
        "BatchType": batch.batch_type,
        "language": batch.language,
        "byName": batch.by_name,
        "startDate": batch.start_date.isoformat(),
        "endDate": batch.end_date.isoformat(),
        "batchStatus": batch.batch_status,
        "enrolledCount": len(batch.enrolled_tokens),
    }


@router.post("/reset")
async def reset_admin(
    body: AdminCredentials,
    x_admin_reset_key: str | None = Header(default=None, alias="X-Admin-Reset-Key"),
):
    """Set the admin username and bcrypt-hashed password on the server config document."""
    expected = get_settings().admin_reset_key
    if not expected:
        raise ForbiddenError("Admin reset is disabled")
    if not x_admin_reset_key or not hmac.compare_digest(x_admin_reset_key, expected):
        raise UnauthorizedError("Invalid reset key")
    doc = await server_config_service.reset_admin_credentials(body.username, body.password)
    return {
        "success": True,
        "message": "Admin credentials updated successfully",
        "config": {"username": doc.username},
    }


@router.post("/login")
async def admin_login(
    body: AdminCredentials,
    response: Response,
    config: RuntimeConfig = Depends(get_runtime_config),
):
    """Check admin credentials and set the signed admin cookie."""
    if body.username != config.admin_username or not verify_password(body.password, config.admin_password_hash):
        raise UnauthorizedError("Invalid credentials")
    settings = get_settings()
    response.set_cookie(
        key=ADMIN_COOKIE_NAME,
        value=create_admin_cookie(body.username),
        max_age=settings.admin_session_max_age,
        httponly=True,
        secure=settings.is_production,
        samesite="strict" if settings.is_production else "lax",
        path="/",
    )
    return {"success": True, "username": body.username}


@router.post("/batches", status_code=status.HTTP_201_CREATED)
async def create_batch(body: CreateBatchRequest, admin: dict = Depends(require_admin)):
    """Admin: register a batch by hand. Duplicate batch ids are rejected."""
    batch = Batch(
        batch_id=body.batch_id,
        batch_name=body.batch_name,
        batch_price=body.batch_price,
        batch_image=body.batch_image,
        template=body.template or "NORMAL",
        batch_type=batch_type_for_price(body.batch_price),
        language=body.language,
        by_name=body.by_name,
        start_date=body.start_date,
        end_date=body.end_date,
        batch_status=body.batch_status,
        enrolled_tokens=body.enrolled_tokens,
    )
    batch = await batch_service.create_batch(batch)
    return {"message": "Batch created successfully", "batch": _batch_out(batch)}
