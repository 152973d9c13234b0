"""Shared FastAPI dependencies."""

from functools import lru_cache

from beanie import PydanticObjectId
from bson.errors import InvalidId
from fastapi import Request

from app.core.config import get_settings
from app.core.exceptions import UnauthorizedError
from app.core.logging import bind_user_id
from app.core.security import decode_access_token, load_admin_cookie
from app.models.user import User
from app.services.notifier import Notifier
from app.services.platform import PlatformClient
from app.services.server_config import RuntimeConfig, get_config_provider

ACCESS_COOKIE_NAME = "accessToken"
REFRESH_COOKIE_NAME = "refreshToken"
ADMIN_COOKIE_NAME = "admin_token"


@lru_cache
def get_platform_client() -> PlatformClient:
    return PlatformClient(get_settings())


@lru_cache
def get_notifier() -> Notifier:
    return Notifier(get_settings())


async def get_runtime_config() -> RuntimeConfig:
    return await get_config_provider().get()


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return request.cookies.get(ACCESS_COOKIE_NAME)


async def get_current_user(request: Request) -> User:
    """Dependency: resolve the user from a Bearer header or the access-token cookie."""
    token = _bearer_token(request)
    if not token:
        raise UnauthorizedError("Not authenticated")
    payload = decode_access_token(token)
    if not payload:
        raise UnauthorizedError("Invalid or expired token")
    try:
        user_id = PydanticObjectId(payload["sub"])
    except (InvalidId, TypeError):
        raise UnauthorizedError("Invalid token") from None
    user = await User.get(user_id)
    if not user:
        raise UnauthorizedError("User not found")
    bind_user_id(str(user.id))
    return user


async def require_admin(request: Request) -> dict:
    """Dependency: require a valid signed admin cookie; returns its payload."""
    cookie = request.cookies.get(ADMIN_COOKIE_NAME)
    if not cookie:
        raise UnauthorizedError("No token provided")
    payload = load_admin_cookie(cookie)
    if not payload:
        raise UnauthorizedError("Invalid token")
    return payload
