import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from passlib.context import CryptContext

from app.core.config import get_settings

JWT_ALGORITHM = "HS256"
REFRESH_TOKEN_BYTES = 64

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False


def create_access_token(claims: dict[str, Any], expires_seconds: int | None = None) -> str:
    """Sign a user access token; `claims` must carry `sub` (the user id)."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    ttl = expires_seconds if expires_seconds is not None else settings.jwt_access_expires_seconds
    payload = {
        **claims,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any] | None:
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.InvalidTokenError:
        return None


def generate_refresh_token() -> str:
    return secrets.token_hex(REFRESH_TOKEN_BYTES)


def get_admin_serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(
        settings.secret_key,
        salt="batchmirror-admin",
        signer_kwargs={"key_derivation": "hmac", "digest_method": hashlib.sha256},
    )


def create_admin_cookie(username: str) -> str:
    return get_admin_serializer().dumps({"admin": True, "username": username})


def load_admin_cookie(cookie_value: str) -> dict[str, Any] | None:
    serializer = get_admin_serializer()
    try:
        payload = serializer.loads(cookie_value, max_age=get_settings().admin_session_max_age)
    except (BadSignature, SignatureExpired):
        return None
    if not isinstance(payload, dict) or not payload.get("admin"):
        return None
    return payload
