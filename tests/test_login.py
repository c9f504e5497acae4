import asyncio
import pathlib
import sys
from unittest.mock import AsyncMock, MagicMock

import pyotp
import pytest

SYS_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_PATH = SYS_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from epicheck.core.login import (
    LoginConfig,
    LoginCredentials,
    LoginTimeout,
    auto_login,
    totp_code,
    wait_for_session_cookie,
)


def test_session_cookie_is_picked_from_context():
    context = MagicMock()
    context.cookies = AsyncMock(
        side_effect=[
            [{"name": "lang", "value": "fr"}],
            [{"name": "lang", "value": "fr"}, {"name": "user", "value": "eyJ0b2tlbiI"}],
        ]
    )
    config = LoginConfig(intra_url="https://intra.epitech.eu", timeout_ms=5000)

    token = asyncio.run(wait_for_session_cookie(context, config, poll_seconds=0))

    assert token == "eyJ0b2tlbiI"
    context.cookies.assert_awaited_with("https://intra.epitech.eu")


def test_missing_cookie_times_out():
    context = MagicMock()
    context.cookies = AsyncMock(return_value=[])
    config = LoginConfig(intra_url="https://intra.epitech.eu", timeout_ms=50)

    with pytest.raises(LoginTimeout):
        asyncio.run(wait_for_session_cookie(context, config, poll_seconds=0.01))


def test_auto_login_without_credentials_leaves_login_to_user():
    page = MagicMock()
    creds = LoginCredentials(username=None, password=None, totp_secret=None)

    assert asyncio.run(auto_login(page, creds)) is False
    page.locator.assert_not_called()


def test_auto_login_fills_microsoft_form_with_totp(monkeypatch):
    filled = {}
    clicked = []

    async def fake_fill(page, selectors, value, timeout_ms=5000):
        filled[selectors[0]] = value
        return True

    async def fake_click(page, selectors, timeout_ms=5000):
        clicked.append(selectors[0])
        return True

    monkeypatch.setattr("epicheck.core.login.fill_first_match", fake_fill)
    monkeypatch.setattr("epicheck.core.login.click_first_match", fake_click)
    monkeypatch.setattr("epicheck.core.login.totp_code", lambda secret: "123456")

    creds = LoginCredentials(username="prof.x@epitech.eu", password="hunter2", totp_secret="JBSWY3DPEHPK3PXP")
    assert asyncio.run(auto_login(MagicMock(), creds)) is True

    assert filled == {
        'input[name="loginfmt"]': "prof.x@epitech.eu",
        'input[name="passwd"]': "hunter2",
        'input[name="otc"]': "123456",
    }
    assert "#idSubmit_SAOTCC_Continue" in clicked


def test_totp_code_accepts_spaced_setup_key():
    secret = "JBSWY3DPEHPK3PXP"
    spaced = "jbsw y3dp ehpk 3pxp"
    assert totp_code(spaced) == pyotp.TOTP(secret).now()
