import re
from datetime import datetime
from typing import Any

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.security import generate_refresh_token
from app.models.user import User

log = get_logger(__name__)

_NON_PHONE_CHARS = re.compile(r"[^\d+]")


def normalize_phone(phone: str, country_code: str | None = None) -> str:
    """Strip everything but digits and '+'; prefix the default country code if none given."""
    phone = _NON_PHONE_CHARS.sub("", phone.strip())
    if phone.startswith("+"):
        return phone
    return (country_code or get_settings().default_country_code) + phone


async def find_by_phone(phone_number: str) -> User | None:
    return await User.find_one(User.phone_number == phone_number)


async def find_by_refresh_token(refresh_token: str) -> User | None:
    return await User.find_one(User.refresh_token == refresh_token)


def _display_name(profile: dict[str, Any], phone_number: str) -> str:
    first = (profile.get("firstName") or "").strip()
    last = (profile.get("lastName") or "").strip()
    name = f"{first} {last}".strip()
    return name or f"User_{phone_number[-4:]}"


def _photo_url(profile: dict[str, Any]) -> str:
    image = profile.get("imageId")
    if isinstance(image, dict) and image.get("baseUrl") and image.get("key"):
        return f"{image['baseUrl']}{image['key']}"
    return get_settings().default_photo_url


async def create_from_profile(phone_number: str, profile: dict[str, Any] | None) -> User:
    """Provision a local user from the platform's profile payload."""
    profile = profile or {}
    user = User(
        phone_number=phone_number,
        user_name=_display_name(profile, phone_number),
        photo_url=_photo_url(profile),
        tag="user",
        has_logged_in=False,
        enrolled_batches=[],
    )
    await user.insert()
    log.info("user_created", user_id=str(user.id))
    return user


async def issue_refresh_token(user: User) -> str:
    """Assign a refresh token no other user holds and persist it."""
    while True:
        token = generate_refresh_token()
        if not await find_by_refresh_token(token):
            break
        log.warning("refresh_token_collision", user_id=str(user.id))
    user.refresh_token = token
    user.updated_at = datetime.utcnow()
    await user.save()
    return token


def access_token_claims(user: User) -> dict[str, Any]:
    return {
        "sub": str(user.id),
        "name": user.user_name,
        "telegram_id": user.telegram_id,
        "photo_url": user.photo_url,
    }
