"""
███████╗██████╗ ██╗ ██████╗██╗  ██╗███████╗ ██████╗██╗  ██╗
██╔════╝██╔══██╗██║██╔════╝██║  ██║██╔════╝██╔════╝██║ ██╔╝
█████╗  ██████╔╝██║██║     ███████║█████╗  ██║     █████╔╝
██╔══╝  ██╔═══╝ ██║██║     ██╔══██║██╔══╝  ██║     ██╔═██╗
███████╗██║     ██║╚██████╗██║  ██║███████╗╚██████╗██║  ██╗
╚══════╝╚═╝     ╚═╝ ╚═════╝╚═╝  ╚═╝╚══════╝ ╚═════╝╚═╝  ╚═╝
src/epicheck/relay/server.py
CORS relay for browser front-ends.

Browsers cannot call the intranet directly (no CORS headers, and the
session cookie belongs to another origin). The relay accepts an envelope
``{endpoint, cookie, method, data}``, replays it against the intranet with
browser-like headers and mirrors the answer back with permissive CORS.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp
from aiohttp import web

from ..intra.client import DEFAULT_INTRA_URL, USER_AGENT, FORM_CONTENT_TYPE, cookie_header, error_message
from ..utils.logger import get_logger, step

LOGGER = get_logger("relay")

SERVICE_NAME = "EpiCheck CORS Proxy"
DEFAULT_RELAY_PORT = 3001

INTRA_URL_KEY = web.AppKey("intra_url", str)
HTTP_KEY = web.AppKey("http", aiohttp.ClientSession)
TIMEOUT_KEY = web.AppKey("timeout", float)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


def _json(payload: Dict[str, Any], status: int = 200) -> web.Response:
    return web.json_response(payload, status=status)


@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        response: web.StreamResponse = web.Response(status=204)
    else:
        try:
            response = await handler(request)
        except web.HTTPNotFound:
            response = _json(
                {"error": "Not Found", "message": "The requested endpoint does not exist"},
                status=404,
            )
    response.headers.update(CORS_HEADERS)
    return response


async def health(request: web.Request) -> web.Response:
    return _json(
        {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
        }
    )


def _upstream_headers(intra_url: str, cookie: str) -> Dict[str, str]:
    return {
        "Cookie": cookie_header(cookie),
        "User-Agent": USER_AGENT,
        "Accept": "application/json, text/plain, */*",
        "Accept-Language": "en-US,en;q=0.9,fr;q=0.8",
        "Referer": f"{intra_url}/",
        "Origin": intra_url,
        "Content-Type": FORM_CONTENT_TYPE,
    }


async def intra_proxy(request: web.Request) -> web.Response:
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        body = {}

    endpoint: Optional[str] = body.get("endpoint")
    cookie: Optional[str] = body.get("cookie")
    if not endpoint or not cookie:
        return _json(
            {"error": "Missing required parameters", "message": "Both endpoint and cookie are required"},
            status=400,
        )

    method = str(body.get("method") or "GET").upper()
    intra_url = request.app[INTRA_URL_KEY]
    url = intra_url + (endpoint if endpoint.startswith("/") else f"/{endpoint}")
    data = body.get("data")
    LOGGER.debug("Relaying %s %s", method, endpoint)

    try:
        async with request.app[HTTP_KEY].request(
            method,
            url,
            data=data,
            headers=_upstream_headers(intra_url, cookie),
            timeout=aiohttp.ClientTimeout(total=request.app[TIMEOUT_KEY]),
        ) as upstream:
            status = upstream.status
            text = await upstream.text()
    except (asyncio.TimeoutError, aiohttp.ClientError) as exc:
        LOGGER.warning("No response from intranet for %s: %s", endpoint, exc or exc.__class__.__name__)
        return _json({"error": "Gateway Timeout", "message": "No response from Intranet API"}, status=504)
    except Exception:
        LOGGER.exception("Relay failure for %s", endpoint)
        return _json({"error": "Internal Server Error", "message": "Unexpected relay failure"}, status=500)

    if 200 <= status < 300:
        try:
            payload = json.loads(text) if text.strip() else None
        except ValueError:
            return web.Response(text=text, status=status, content_type="text/html")
        return web.json_response(payload, status=status)

    if status == 503 and "Anti-DDoS" in text:
        return _json(
            {
                "error": "Authentication Required",
                "message": "Your session cookie is invalid or expired. Please log in again.",
                "hint": "Log in to the intranet again and copy a fresh 'user' cookie.",
            },
            status=401,
        )

    LOGGER.warning("Intranet answered %s for %s", status, endpoint)
    return _json(
        {"error": "Intranet API Error", "message": error_message(text), "status": status},
        status=status,
    )


def create_relay_app(intra_url: str = DEFAULT_INTRA_URL, *, timeout: float = 30.0) -> web.Application:
    app = web.Application(middlewares=[cors_middleware])
    app[INTRA_URL_KEY] = intra_url.rstrip("/")
    app[TIMEOUT_KEY] = float(timeout)

    async def _http_session(app: web.Application) -> AsyncIterator[None]:
        app[HTTP_KEY] = aiohttp.ClientSession()
        yield
        await app[HTTP_KEY].close()

    app.cleanup_ctx.append(_http_session)
    app.router.add_get("/health", health)
    app.router.add_post("/api/intra-proxy", intra_proxy)
    return app


def run_relay(
    host: str = "0.0.0.0",
    port: int = DEFAULT_RELAY_PORT,
    intra_url: str = DEFAULT_INTRA_URL,
    timeout: float = 30.0,
) -> None:
    step(f"{SERVICE_NAME} listening on http://{host}:{port} (forwarding to {intra_url})")
    web.run_app(create_relay_app(intra_url, timeout=timeout), host=host, port=port, print=None)


__all__ = ["create_relay_app", "run_relay", "cors_middleware", "DEFAULT_RELAY_PORT", "SERVICE_NAME"]
