from fastapi import APIRouter, Depends

from app.deps import get_runtime_config
from app.services.server_config import RuntimeConfig

router = APIRouter()


@router.get("")
async def get_site_config(config: RuntimeConfig = Depends(get_runtime_config)):
    """Public site branding and login mode. Admin credentials are never exposed."""
    return {
        "success": True,
        "config": {
            "webName": config.web_name,
            "sidebarLogoUrl": config.sidebar_logo_url,
            "sidebarTitle": config.sidebar_title,
            "tgChannel": config.tg_channel,
            "tgUsername": config.tg_username,
            "tgBot": config.tg_bot,
            "isDirectLoginOpen": config.direct_login_open,
        },
    }
