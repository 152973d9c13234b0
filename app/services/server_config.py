"""Runtime server configuration loaded from the ServerConfig document.

The document is read into an immutable `RuntimeConfig`, cached for
`server_config_ttl_seconds`, and dropped immediately when an admin writes it.
"""

import time
from dataclasses import dataclass
from datetime import datetime

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.core.security import hash_password
from app.models.server_config import MAIN_CONFIG_KEY, ServerConfig

log = get_logger(__name__)


@dataclass(frozen=True)
class RuntimeConfig:
    direct_login_open: bool
    web_name: str | None = None
    sidebar_logo_url: str | None = None
    sidebar_title: str | None = None
    tg_channel: str | None = None
    tg_username: str | None = None
    tg_bot: str | None = None
    admin_username: str | None = None
    admin_password_hash: str | None = None

    @classmethod
    def from_document(cls, doc: ServerConfig | None, settings: Settings) -> "RuntimeConfig":
        if doc is None:
            return cls(direct_login_open=settings.direct_login_open)
        direct = doc.is_direct_login_open
        return cls(
            direct_login_open=settings.direct_login_open if direct is None else direct,
            web_name=doc.web_name,
            sidebar_logo_url=doc.sidebar_logo_url,
            sidebar_title=doc.sidebar_title,
            tg_channel=doc.tg_channel,
            tg_username=doc.tg_username,
            tg_bot=doc.tg_bot,
            admin_username=doc.username,
            admin_password_hash=doc.password,
        )


class ServerConfigProvider:
    def __init__(self, ttl_seconds: float) -> None:
        self.ttl_seconds = ttl_seconds
        self._cached: RuntimeConfig | None = None
        self._loaded_at = 0.0

    async def get(self) -> RuntimeConfig:
        if self._cached is not None and time.monotonic() - self._loaded_at < self.ttl_seconds:
            return self._cached
        return await self.reload()

    async def reload(self) -> RuntimeConfig:
        doc = await ServerConfig.find_one(ServerConfig.key == MAIN_CONFIG_KEY)
        self._cached = RuntimeConfig.from_document(doc, get_settings())
        self._loaded_at = time.monotonic()
        log.debug("server_config_loaded", found=doc is not None)
        return self._cached

    def invalidate(self) -> None:
        self._cached = None


_provider: ServerConfigProvider | None = None


def get_config_provider() -> ServerConfigProvider:
    global _provider
    if _provider is None:
        _provider = ServerConfigProvider(get_settings().server_config_ttl_seconds)
    return _provider


async def reset_admin_credentials(username: str, password: str) -> ServerConfig:
    """Hash the password and upsert it with the username into the main config document."""
    hashed = hash_password(password)
    doc = await ServerConfig.find_one(ServerConfig.key == MAIN_CONFIG_KEY)
    if doc is None:
        doc = ServerConfig(key=MAIN_CONFIG_KEY, username=username, password=hashed)
        await doc.insert()
    else:
        doc.username = username
        doc.password = hashed
        doc.updated_at = datetime.utcnow()
        await doc.save()
    get_config_provider().invalidate()
    log.info("admin_credentials_reset", username=username)
    return doc
