from app.models.user import User
from app.models.batch import Batch
from app.models.server_config import ServerConfig

__all__ = [
    "User",
    "Batch",
    "ServerConfig",
]
