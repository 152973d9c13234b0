from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field

MAIN_CONFIG_KEY = "main"


class ServerConfig(Document):
    """Site-wide settings editable at runtime; a single document keyed "main"."""

    key: Indexed(str, unique=True) = MAIN_CONFIG_KEY
    web_name: str | None = None
    sidebar_logo_url: str | None = None
    sidebar_title: str | None = None
    tg_channel: str | None = None
    tg_username: str | None = None
    tg_bot: str | None = None
    is_direct_login_open: bool | None = None
    username: str | None = None
    password: str | None = None  # bcrypt hash
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "server_config"
