from app import main
from app.models.server_config import ServerConfig
from app.services.server_config import reset_admin_credentials


async def test_site_config_defaults_without_document(client):
    r = await client.get("/v1/config")

    assert r.status_code == 200
    config = r.json()["config"]
    assert config["isDirectLoginOpen"] is False
    assert config["webName"] is None


async def test_site_config_exposes_branding_but_not_admin_credentials(client):
    await ServerConfig(
        web_name="Mirror",
        sidebar_logo_url="https://cdn.example.com/logo.png",
        sidebar_title="Batches",
        tg_channel="@mirror",
        tg_username="@mirror_admin",
        tg_bot="@mirror_bot",
        is_direct_login_open=True,
    ).insert()
    await reset_admin_credentials("root", "s3cret")

    r = await client.get("/v1/config")

    assert r.status_code == 200
    assert r.json()["config"] == {
        "webName": "Mirror",
        "sidebarLogoUrl": "https://cdn.example.com/logo.png",
        "sidebarTitle": "Batches",
        "tgChannel": "@mirror",
        "tgUsername": "@mirror_admin",
        "tgBot": "@mirror_bot",
        "isDirectLoginOpen": True,
    }
    assert "root" not in r.text
    assert "password" not in r.text.lower()


class _RecordingLog:
    def __init__(self) -> None:
        self.warnings: list[str] = []

    def warning(self, event: str, **kw) -> None:
        self.warnings.append(event)


def test_startup_warns_when_reset_key_missing(settings, monkeypatch):
    recorder = _RecordingLog()
    monkeypatch.setattr(main, "log", recorder)
    monkeypatch.setattr(settings, "admin_reset_key", "")

    main.log_config_warnings()

    assert recorder.warnings == ["admin_reset_disabled"]


def test_no_warning_when_reset_key_configured(settings, monkeypatch):
    recorder = _RecordingLog()
    monkeypatch.setattr(main, "log", recorder)
    monkeypatch.setattr(settings, "admin_reset_key", "configured")

    main.log_config_warnings()

    assert recorder.warnings == []
