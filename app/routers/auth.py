from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, ConfigDict, Field

from app.core.config import get_settings
from app.core.exceptions import BadRequestError
from app.deps import (
    ACCESS_COOKIE_NAME,
    REFRESH_COOKIE_NAME,
    get_current_user,
    get_notifier,
    get_platform_client,
    get_runtime_config,
)
from app.models.user import User
from app.services import profile as profile_service
from app.services import sessions as session_service
from app.services.notifier import Notifier
from app.services.platform import PlatformClient
from app.services.server_config import RuntimeConfig

router = APIRouter()


class VerifyOtpRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(alias="phoneNumber", min_length=1)
    otp: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str | None = Field(default=None, alias="refreshToken")


class VerifyTokenRequest(BaseModel):
    token: str | None = None


def set_session_cookies(response: Response, session: session_service.Session) -> None:
    """Set both session cookies; cross-site attributes depend on ENV."""
    settings = get_settings()
    if settings.is_production:
        samesite, secure = "none", True
    else:
        samesite, secure = "lax", False
    response.set_cookie(
        key=ACCESS_COOKIE_NAME,
        value=session.access_token,
        max_age=settings.access_cookie_max_age,
        httponly=True,
        secure=secure,
        samesite=samesite,
        path="/",
    )
    response.set_cookie(
        key=REFRESH_COOKIE_NAME,
        value=session.refresh_token,
        max_age=settings.refresh_cookie_max_age,
        httponly=True,
        secure=secure,
        samesite=samesite,
        path="/",
    )


def _session_body(session: session_service.Session, message: str) -> dict:
    user = session.user
    return {
        "success": True,
        "message": message,
        "accessToken": session.access_token,
        "refreshToken": session.refresh_token,
        "user": {
            "id": str(user.id),
            "name": user.user_name,
            "telegramId": user.telegram_id,
            "photoUrl": user.photo_url,
        },
    }


@router.post("/verify-otp")
async def verify_otp(
    body: VerifyOtpRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    platform: PlatformClient = Depends(get_platform_client),
    notifier: Notifier = Depends(get_notifier),
    config: RuntimeConfig = Depends(get_runtime_config),
):
    """Exchange phone + OTP for platform tokens, sync purchased batches, and open a session."""
    session = await session_service.login(body.phone_number, body.otp, platform, config)
    set_session_cookies(response, session)
    background_tasks.add_task(notifier.log_event, session_service.login_message(session))
    return _session_body(session, "OTP verified")


@router.post("/refresh")
async def refresh(request: Request, response: Response, body: RefreshRequest | None = None):
    """Rotate the refresh token (cookie or body) and issue a new access token."""
    token = (body.refresh_token if body else None) or request.cookies.get(REFRESH_COOKIE_NAME)
    if not token:
        raise BadRequestError("Refresh token is required")
    session = await session_service.refresh_session(token)
    set_session_cookies(response, session)
    return _session_body(session, "Session refreshed")


@router.get("/me")
async def me(
    user: User = Depends(get_current_user),
    platform: PlatformClient = Depends(get_platform_client),
):
    """Current user and enrolled batches; re-syncs batches when the cache is stale."""
    return await profile_service.load_profile(user, platform)


@router.post("/verify-token")
async def verify_token(body: VerifyTokenRequest, platform: PlatformClient = Depends(get_platform_client)):
    """Pass a platform token through to the platform's verifier and mirror its answer."""
    if not body.token:
        raise BadRequestError("Token is required")
    status_code, payload = await platform.verify_token(body.token)
    return ORJSONResponse(status_code=status_code, content=payload)
