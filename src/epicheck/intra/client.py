"""
███████╗██████╗ ██╗ ██████╗██╗  ██╗███████╗ ██████╗██╗  ██╗
██╔════╝██╔══██╗██║██╔════╝██║  ██║██╔════╝██╔════╝██║ ██╔╝
█████╗  ██████╔╝██║██║     ███████║█████╗  ██║     █████╔╝
██╔══╝  ██╔═══╝ ██║██║     ██╔══██║██╔══╝  ██║     ██╔═██╗
███████╗██║     ██║╚██████╗██║  ██║███████╗╚██████╗██║  ██╗
╚══════╝╚═╝     ╚═╝ ╚═════╝╚═╝  ╚═╝╚══════╝ ╚═════╝╚═╝  ╚═╝
src/epicheck/intra/client.py
aiohttp client for the school intranet REST API.

Every call authenticates with the intranet ``user`` cookie supplied by a
session provider. Requests go straight to the intranet, or through the CORS
relay when a relay URL is configured. HTTP failures are turned into the
EpiCheck error taxonomy here so callers only ever see classified errors.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple
from urllib.parse import urlencode

import aiohttp

from ..core.errors import (
    AuthExpired,
    EpiCheckError,
    EventNotFound,
    NotRegisteredForEvent,
    TransientNetworkError,
)
from ..core.models import Event, PresenceStatus, Roster
from .rdv import Registration, extract_rdv_payload, parse_rdv_data

DEFAULT_INTRA_URL = "https://intra.epitech.eu"
RELAY_ENDPOINT = "/api/intra-proxy"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

_REGISTRATION_HINTS = ("regist", "inscri")


class SessionProvider(Protocol):
    def get_token(self) -> Optional[str]:
        """Return the current session token, if any."""

    def on_session_invalid(self) -> None:
        """Called when the intranet rejects the token."""


def cookie_header(token: str) -> str:
    """Full cookie strings pass through; a bare value becomes the ``user`` cookie."""
    return token if ";" in token else f"user={token}"


def encode_presence_items(updates: Sequence[Tuple[str, PresenceStatus]]) -> str:
    """Build the ``items[i][login]=...&items[i][present]=...`` form body."""
    pairs: List[Tuple[str, str]] = []
    for index, (login, status) in enumerate(updates):
        pairs.append((f"items[{index}][login]", login))
        pairs.append((f"items[{index}][present]", status.value))
    return urlencode(pairs)


def error_message(body: str) -> str:
    try:
        payload = json.loads(body)
    except ValueError:
        return body.strip()[:200]
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
        if isinstance(message, str):
            return message
    return body.strip()[:200]


class IntraClient:
    """Roster source and general API access for the intranet."""

    def __init__(
        self,
        session: SessionProvider,
        *,
        base_url: str = DEFAULT_INTRA_URL,
        relay_url: Optional[str] = None,
        timeout: float = 30.0,
        http: Optional[aiohttp.ClientSession] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._relay_url = relay_url.rstrip("/") if relay_url else None
        self._timeout = timeout
        self._http = http
        self._owns_http = http is None
        self._logger = logger or logging.getLogger("epicheck.intra")

    async def __aenter__(self) -> "IntraClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.close()
        self._http = None

    def _client(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers={"User-Agent": USER_AGENT, "Accept": "application/json, text/plain, */*"},
            )
            self._owns_http = True
        return self._http

    # ------------------------------------------------------------------
    # Transport

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[str] = None,
        json_response: bool = True,
        context: str = "request",
    ) -> Any:
        token = self._session.get_token()
        if not token:
            raise AuthExpired("Not authenticated with the intranet. Run `epicheck login` first.")

        query = dict(params or {})
        if json_response:
            query.setdefault("format", "json")
        target = endpoint
        if query:
            target = f"{endpoint}?{urlencode(query)}"

        self._logger.debug("%s %s", method, target)
        try:
            if self._relay_url:
                status, body = await self._send_via_relay(method, target, token, data)
            else:
                status, body = await self._send_direct(method, target, token, data)
        except (asyncio.TimeoutError, aiohttp.ClientError) as exc:
            raise TransientNetworkError(f"Intranet request failed: {exc or exc.__class__.__name__}") from exc

        if not 200 <= status < 300:
            raise self._classify(status, body, context)

        if not json_response:
            return body
        if not body.strip():
            return None
        try:
            return json.loads(body)
        except ValueError as exc:
            raise TransientNetworkError("Intranet returned a response that is not JSON") from exc

    async def _send_direct(self, method: str, target: str, token: str, data: Optional[str]) -> Tuple[int, str]:
        headers = {"Cookie": cookie_header(token)}
        if data is not None:
            headers["Content-Type"] = FORM_CONTENT_TYPE
        async with self._client().request(method, self._base_url + target, data=data, headers=headers) as response:
            return response.status, await response.text()

    async def _send_via_relay(self, method: str, target: str, token: str, data: Optional[str]) -> Tuple[int, str]:
        envelope: Dict[str, Any] = {"endpoint": target, "cookie": token, "method": method}
        if data is not None:
            envelope["data"] = data
        async with self._client().post(self._relay_url + RELAY_ENDPOINT, json=envelope) as response:
            return response.status, await response.text()

    def _classify(self, status: int, body: str, context: str) -> EpiCheckError:
        message = error_message(body)
        self._logger.debug("Intranet error %s during %s: %s", status, context, message)
        if status in (401, 403) or (status == 503 and "Anti-DDoS" in body):
            self._session.on_session_invalid()
            return AuthExpired(status=status)
        if status == 404:
            return EventNotFound(status=status)
        if context == "submit" and status in (400, 422):
            return NotRegisteredForEvent(message or None, status=status)
        return TransientNetworkError(f"Intranet returned HTTP {status}: {message}", status=status)

    # ------------------------------------------------------------------
    # Session

    async def get_current_user(self) -> Dict[str, Any]:
        return await self._request("GET", "/user/", context="user")

    async def check_session(self) -> bool:
        try:
            await self.get_current_user()
        except AuthExpired:
            return False
        return True

    # ------------------------------------------------------------------
    # Planning

    async def get_activities(self, location: str, start: str, end: Optional[str] = None) -> List[Dict[str, Any]]:
        payload = await self._request(
            "GET",
            "/planning/load",
            params={"location": location, "start": start, "end": end or start},
            context="planning",
        )
        if isinstance(payload, dict):
            payload = payload.get("items", [])
        return list(payload or [])

    async def get_module_info(self, year: str, module: str, instance: str) -> Dict[str, Any]:
        return await self._request("GET", f"/module/{year}/{module}/{instance}", context="module")

    async def get_students_by_location(self, location: str, year: int) -> List[Dict[str, Any]]:
        payload = await self._request(
            "GET",
            "/user/filter/user",
            params={"location": location, "year": year, "active": "true", "count": 99999},
            context="trombi",
        )
        if isinstance(payload, dict):
            payload = payload.get("items", [])
        return list(payload or [])

    # ------------------------------------------------------------------
    # Roster source

    async def fetch_roster(self, event: Event) -> Roster:
        payload = await self._request("GET", f"{event.path}/registered", context="roster")
        try:
            return Roster.from_payload(event, payload or [])
        except ValueError as exc:
            raise TransientNetworkError(f"Unexpected registered list format: {exc}") from exc

    async def update_presence(self, event: Event, updates: Sequence[Tuple[str, PresenceStatus]]) -> None:
        if not updates:
            return
        body = encode_presence_items(updates)
        self._logger.debug("Updating presence on %s: %s", event.path, body)
        payload = await self._request(
            "POST",
            f"{event.path}/updateregistered",
            data=body,
            context="submit",
        )
        if isinstance(payload, dict):
            message = payload.get("error") or payload.get("message")
            if isinstance(message, str) and any(hint in message.lower() for hint in _REGISTRATION_HINTS):
                raise NotRegisteredForEvent(message)

    async def submit_presence(self, event: Event, login: str, status: PresenceStatus) -> None:
        await self.update_presence(event, [(login, status)])

    # ------------------------------------------------------------------
    # Appointments

    async def get_rdv_registrations(self, event: Event) -> List[Registration]:
        html = await self._request(
            "GET",
            f"/module/{event.year}/{event.module}/{event.instance}/{event.activity}/rdv/",
            json_response=False,
            context="rdv",
        )
        return parse_rdv_data(extract_rdv_payload(html))


__all__ = [
    "IntraClient",
    "SessionProvider",
    "DEFAULT_INTRA_URL",
    "cookie_header",
    "encode_presence_items",
    "error_message",
]
