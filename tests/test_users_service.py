import pytest

from app.core.security import decode_access_token, create_access_token
from app.models.user import User
from app.services import users as user_service


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("9876543210", "+919876543210"),
        (" 98765-43210 ", "+919876543210"),
        ("(987) 654 3210", "+919876543210"),
        ("+14155550100", "+14155550100"),
        ("+91 98765 43210", "+919876543210"),
    ],
)
def test_normalize_phone(raw, expected):
    assert user_service.normalize_phone(raw) == expected


def test_normalize_phone_custom_country_code():
    assert user_service.normalize_phone("7700900123", country_code="+44") == "+447700900123"


async def test_create_from_profile_uses_platform_name_and_image(db):
    user = await user_service.create_from_profile(
        "+919876543210",
        {"firstName": "Asha", "lastName": "Rao", "imageId": {"baseUrl": "https://cdn/", "key": "a.png"}},
    )
    assert user.user_name == "Asha Rao"
    assert user.photo_url == "https://cdn/a.png"
    assert await user_service.find_by_phone("+919876543210") is not None


async def test_create_from_profile_falls_back_to_placeholders(db, settings):
    user = await user_service.create_from_profile("+919876543210", {})
    assert user.user_name == "User_3210"
    assert user.photo_url == settings.default_photo_url


async def test_issue_refresh_token_skips_tokens_already_held(db, monkeypatch):
    holder = User(phone_number="+910000000001", refresh_token="taken")
    await holder.insert()
    user = User(phone_number="+910000000002")
    await user.insert()

    candidates = iter(["taken", "taken", "fresh"])
    monkeypatch.setattr(user_service, "generate_refresh_token", lambda: next(candidates))

    token = await user_service.issue_refresh_token(user)

    assert token == "fresh"
    stored = await User.get(user.id)
    assert stored.refresh_token == "fresh"
    assert (await User.get(holder.id)).refresh_token == "taken"


async def test_generated_refresh_tokens_are_long_hex(db):
    user = User(phone_number="+910000000003")
    await user.insert()
    token = await user_service.issue_refresh_token(user)
    assert len(token) == 128
    int(token, 16)


async def test_access_token_carries_profile_claims(db):
    user = User(phone_number="+910000000004", user_name="Ravi", telegram_id="tg1", photo_url="https://p")
    await user.insert()
    token = create_access_token(user_service.access_token_claims(user))
    claims = decode_access_token(token)
    assert claims["sub"] == str(user.id)
    assert claims["name"] == "Ravi"
    assert claims["telegram_id"] == "tg1"
    assert claims["photo_url"] == "https://p"
    assert claims["exp"] > claims["iat"]


def test_expired_or_tampered_access_token_is_rejected():
    expired = create_access_token({"sub": "abc"}, expires_seconds=-10)
    assert decode_access_token(expired) is None
    valid = create_access_token({"sub": "abc"})
    assert decode_access_token(valid.rsplit(".", 1)[0] + ".bm90LWEtc2lnbmF0dXJl") is None
