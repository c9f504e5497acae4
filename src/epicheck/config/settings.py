"""Runtime settings assembled from the environment and ``.env``."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from ..utils.env_utils import env_flag, load_env


def _env_str(name: str, default: str = "") -> str:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _browser_channel() -> Optional[str]:
    # an explicit empty value selects the bundled browser
    raw = os.getenv("BROWSER_CHANNEL")
    if raw is None:
        return "chrome"
    return raw.strip() or None


@dataclass
class Settings:
    intra_url: str = "https://intra.epitech.eu"
    intra_domain: str = "epitech.eu"
    token_file: str = ".epicheck_token"
    relay_url: Optional[str] = None
    relay_host: str = "0.0.0.0"
    relay_port: int = 3001
    request_timeout: float = 30.0
    scan_cooldown: float = 5.0
    strict_matching: bool = True
    browser: str = "chromium"
    browser_channel: Optional[str] = "chrome"
    headless: bool = False
    login_timeout_ms: int = 180000
    username: Optional[str] = None
    password: Optional[str] = None
    totp_secret: Optional[str] = None

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        load_env(env_file or os.getenv("ENV_FILE", ".env"))
        return cls(
            intra_url=_env_str("INTRA_URL", cls.intra_url).rstrip("/"),
            intra_domain=_env_str("INTRA_DOMAIN", cls.intra_domain).lstrip("@"),
            token_file=_env_str("TOKEN_FILE", cls.token_file),
            relay_url=_env_str("RELAY_URL") or None,
            relay_host=_env_str("RELAY_HOST", cls.relay_host),
            relay_port=_env_number("RELAY_PORT", cls.relay_port, int),
            request_timeout=_env_number("REQUEST_TIMEOUT", cls.request_timeout, float),
            scan_cooldown=_env_number("SCAN_COOLDOWN_SECONDS", cls.scan_cooldown, float),
            strict_matching=env_flag("STRICT_MATCHING", True),
            browser=_env_str("BROWSER", cls.browser),
            browser_channel=_browser_channel(),
            headless=env_flag("HEADLESS", False),
            login_timeout_ms=_env_number("LOGIN_TIMEOUT_MS", cls.login_timeout_ms, int),
            username=_env_str("USERNAME") or None,
            password=_env_str("PASSWORD") or None,
            totp_secret=_env_str("TOTP_SECRET") or None,
        )


__all__ = ["Settings"]
