"""
███████╗██████╗ ██╗ ██████╗██╗  ██╗███████╗ ██████╗██╗  ██╗
██╔════╝██╔══██╗██║██╔════╝██║  ██║██╔════╝██╔════╝██║ ██╔╝
█████╗  ██████╔╝██║██║     ███████║█████╗  ██║     █████╔╝
██╔══╝  ██╔═══╝ ██║██║     ██╔══██║██╔══╝  ██║     ██╔═██╗
███████╗██║     ██║╚██████╗██║  ██║███████╗╚██████╗██║  ██╗
╚══════╝╚═╝     ╚═╝ ╚═════╝╚═╝  ╚═╝╚══════╝ ╚═════╝╚═╝  ╚═╝
src/epicheck/core/login.py
Browser login that captures the intranet ``user`` cookie.

The intranet signs in through Microsoft Office 365. A real browser window
is opened on the intranet; when credentials are configured the Microsoft
form is filled automatically (including a TOTP code), otherwise the user
finishes the login by hand. Once the intranet sets its ``user`` cookie the
value is written to the token store and the browser is closed.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import urlparse

import pyotp
from playwright.async_api import BrowserContext, Error as PlaywrightError, Page, async_playwright

from ..config.settings import Settings
from ..utils.logger import debug_detail, get_logger, success
from ..utils.session import TokenStore

LOGGER = get_logger("login")

SESSION_COOKIE = "user"
COOKIE_POLL_SECONDS = 1.0

EMAIL_SELECTORS = ('input[name="loginfmt"]', 'input[type="email"]')
PASSWORD_SELECTORS = ('input[name="passwd"]', 'input[type="password"]')
OTP_SELECTORS = ('input[name="otc"]', 'input[autocomplete="one-time-code"]')
NEXT_SELECTORS = ("#idSIButton9", 'input[type="submit"]', 'button[type="submit"]')
OTP_SUBMIT_SELECTORS = ("#idSubmit_SAOTCC_Continue", 'input[type="submit"]')


class LoginTimeout(Exception):
    """The intranet never set its session cookie within the allowed time."""


@dataclass
class LoginCredentials:
    username: Optional[str]
    password: Optional[str]
    totp_secret: Optional[str]

    @property
    def complete(self) -> bool:
        return bool(self.username and self.password)


@dataclass
class LoginConfig:
    intra_url: str
    browser_name: str = "chromium"
    channel: Optional[str] = None
    headed: bool = True
    timeout_ms: int = 180000

    @property
    def cookie_domain(self) -> str:
        return urlparse(self.intra_url).hostname or ""


def totp_code(secret: str) -> str:
    """Current authenticator code for a setup key as shown by Microsoft (spaces allowed)."""
    return pyotp.TOTP("".join(secret.split()).upper()).now()


async def fill_first_match(page: Page, selectors: Iterable[str], value: str, timeout_ms: int = 5000) -> bool:
    for selector in selectors:
        try:
            field = page.locator(selector).first
            await field.wait_for(state="visible", timeout=timeout_ms)
            await field.fill(value)
            debug_detail(f"Filled {selector}")
            return True
        except PlaywrightError:
            continue
    return False


async def click_first_match(page: Page, selectors: Iterable[str], timeout_ms: int = 5000) -> bool:
    for selector in selectors:
        try:
            button = page.locator(selector).first
            await button.wait_for(state="visible", timeout=timeout_ms)
            await button.click()
            debug_detail(f"Clicked {selector}")
            return True
        except PlaywrightError:
            continue
    return False


async def auto_login(page: Page, creds: LoginCredentials) -> bool:
    """Fill the Microsoft sign-in pages; returns False when a step is missing."""

    def _flag(val: Optional[str]) -> str:
        return "✓" if val else "✗"

    LOGGER.info(
        "Credentials availability → USERNAME:%s PASSWORD:%s TOTP:%s",
        _flag(creds.username),
        _flag(creds.password),
        _flag(creds.totp_secret),
    )
    if not creds.complete:
        LOGGER.info("No USERNAME or PASSWORD configured; complete the login in the browser window.")
        return False

    if not await fill_first_match(page, EMAIL_SELECTORS, creds.username):
        LOGGER.warning("Microsoft e-mail field not found")
        return False
    await click_first_match(page, NEXT_SELECTORS)

    if not await fill_first_match(page, PASSWORD_SELECTORS, creds.password, timeout_ms=10000):
        LOGGER.warning("Microsoft password field not found")
        return False
    await click_first_match(page, NEXT_SELECTORS)

    if creds.totp_secret:
        code = totp_code(creds.totp_secret)
        debug_detail(f"Generated TOTP code: {code}")
        if await fill_first_match(page, OTP_SELECTORS, code, timeout_ms=10000):
            await click_first_match(page, OTP_SUBMIT_SELECTORS)
        else:
            LOGGER.warning("Verification code field not found; finish MFA in the browser window.")

    # "Stay signed in?" prompt
    await click_first_match(page, NEXT_SELECTORS, timeout_ms=3000)
    return True


async def wait_for_session_cookie(
    context: BrowserContext,
    config: LoginConfig,
    *,
    poll_seconds: float = COOKIE_POLL_SECONDS,
) -> str:
    deadline = time.monotonic() + config.timeout_ms / 1000
    while time.monotonic() < deadline:
        for cookie in await context.cookies(config.intra_url):
            if cookie.get("name") == SESSION_COOKIE and cookie.get("value"):
                return cookie["value"]
        await asyncio.sleep(poll_seconds)
    raise LoginTimeout(f"No '{SESSION_COOKIE}' cookie from {config.cookie_domain} after {config.timeout_ms // 1000}s")


class LoginWorkflow:
    """Drive one browser login and persist the captured token."""

    def __init__(self, config: LoginConfig, store: TokenStore, credentials: LoginCredentials):
        self.config = config
        self.store = store
        self.credentials = credentials

    async def run(self) -> str:
        async with async_playwright() as playwright:
            browser_type = getattr(playwright, self.config.browser_name)
            launch_kwargs = {"headless": not self.config.headed}
            if self.config.browser_name == "chromium" and self.config.channel:
                launch_kwargs["channel"] = self.config.channel
            try:
                browser = await browser_type.launch(**launch_kwargs)
            except PlaywrightError as exc:
                if "channel" not in launch_kwargs:
                    raise
                LOGGER.info(
                    "Browser channel '%s' is unavailable (%s); falling back to bundled Chromium.",
                    self.config.channel,
                    exc,
                )
                launch_kwargs.pop("channel")
                browser = await browser_type.launch(**launch_kwargs)

            try:
                context = await browser.new_context()
                page = await context.new_page()
                await page.goto(self.config.intra_url, timeout=self.config.timeout_ms)

                try:
                    await auto_login(page, self.credentials)
                except PlaywrightError as exc:
                    LOGGER.warning("Auto-login error: %s", exc)

                LOGGER.info("Waiting for the intranet session (finish the login in the browser if needed)...")
                token = await wait_for_session_cookie(context, self.config)
            finally:
                await browser.close()

        self.store.save(token)
        success(f"Session saved to {self.store.path}")
        return token


async def run_login(settings: Settings, store: TokenStore) -> str:
    config = LoginConfig(
        intra_url=settings.intra_url,
        browser_name=settings.browser,
        channel=settings.browser_channel,
        headed=not settings.headless,
        timeout_ms=settings.login_timeout_ms,
    )
    credentials = LoginCredentials(
        username=settings.username,
        password=settings.password,
        totp_secret=settings.totp_secret,
    )
    return await LoginWorkflow(config, store, credentials).run()


__all__ = [
    "LoginConfig",
    "LoginCredentials",
    "LoginTimeout",
    "LoginWorkflow",
    "auto_login",
    "wait_for_session_cookie",
    "run_login",
    "totp_code",
]
