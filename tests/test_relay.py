import asyncio
import pathlib
import sys

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

SYS_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_PATH = SYS_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from epicheck.core.errors import AuthExpired
from epicheck.core.models import Event, PresenceStatus
from epicheck.intra.client import IntraClient
from epicheck.relay.server import SERVICE_NAME, create_relay_app

EVENT = Event.parse("2024/B-PRO-100/PAR-1-1/acti-100/event-200")


class FakeSession:
    def __init__(self, token="session-token"):
        self.token = token
        self.invalidated = 0

    def get_token(self):
        return self.token

    def on_session_invalid(self):
        self.invalidated += 1


def _run_relay(upstream_app, scenario, *, upstream_url=None):
    """Serve ``upstream_app`` as the intranet and run ``scenario(client)`` on the relay."""

    async def _main():
        upstream = TestServer(upstream_app)
        await upstream.start_server()
        relay = create_relay_app(upstream_url or f"http://{upstream.host}:{upstream.port}", timeout=2.0)
        try:
            async with TestClient(TestServer(relay)) as client:
                return await scenario(client)
        finally:
            await upstream.close()

    return asyncio.run(_main())


def _upstream(method, path, handler):
    app = web.Application()
    app.router.add_route(method, path, handler)
    return app


def test_health_reports_service():
    async def scenario(client):
        response = await client.get("/health")
        return response.status, await response.json()

    status, body = _run_relay(web.Application(), scenario)
    assert status == 200
    assert body["status"] == "ok"
    assert body["service"] == SERVICE_NAME
    assert body["timestamp"]


def test_unknown_path_is_json_404_with_cors():
    async def scenario(client):
        response = await client.get("/nope")
        return response.status, response.headers.get("Access-Control-Allow-Origin"), await response.json()

    status, origin, body = _run_relay(web.Application(), scenario)
    assert status == 404
    assert origin == "*"
    assert body == {"error": "Not Found", "message": "The requested endpoint does not exist"}


def test_preflight_is_answered_without_forwarding():
    async def scenario(client):
        response = await client.options("/api/intra-proxy")
        return response.status, response.headers.get("Access-Control-Allow-Methods")

    status, methods = _run_relay(web.Application(), scenario)
    assert status == 204
    assert "POST" in methods


def test_missing_endpoint_or_cookie_is_rejected():
    async def scenario(client):
        first = await client.post("/api/intra-proxy", json={"endpoint": "/user/?format=json"})
        second = await client.post("/api/intra-proxy", json={"cookie": "abc"})
        third = await client.post("/api/intra-proxy", data="not json")
        return first.status, second.status, third.status

    assert _run_relay(web.Application(), scenario) == (400, 400, 400)


def test_forwards_with_user_cookie_and_browser_headers():
    seen = {}

    async def user(request):
        seen["cookie"] = request.cookies.get("user")
        seen["referer"] = request.headers.get("Referer")
        seen["agent"] = request.headers.get("User-Agent")
        seen["query"] = dict(request.query)
        return web.json_response({"login": "marie.curie", "location": "FR/PAR"})

    async def scenario(client):
        response = await client.post(
            "/api/intra-proxy",
            json={"endpoint": "/user/?format=json", "cookie": "abc123"},
        )
        return response.status, await response.json()

    status, body = _run_relay(_upstream("GET", "/user/", user), scenario)
    assert status == 200
    assert body == {"login": "marie.curie", "location": "FR/PAR"}
    assert seen["cookie"] == "abc123"
    assert seen["referer"].endswith("/")
    assert "Mozilla" in seen["agent"]
    assert seen["query"] == {"format": "json"}


def test_forwards_form_data_for_post():
    seen = {}

    async def update(request):
        seen.update(await request.post())
        return web.json_response({})

    async def scenario(client):
        response = await client.post(
            "/api/intra-proxy",
            json={
                "endpoint": f"{EVENT.path}/updateregistered?format=json",
                "cookie": "abc123",
                "method": "post",
                "data": "items%5B0%5D%5Blogin%5D=marie.curie&items%5B0%5D%5Bpresent%5D=present",
            },
        )
        return response.status

    assert _run_relay(_upstream("POST", f"{EVENT.path}/updateregistered", update), scenario) == 200
    assert seen == {"items[0][login]": "marie.curie", "items[0][present]": "present"}


def test_anti_ddos_page_becomes_authentication_required():
    async def blocked(request):
        return web.Response(status=503, text="<title>Anti-DDoS</title>", content_type="text/html")

    async def scenario(client):
        response = await client.post("/api/intra-proxy", json={"endpoint": "/user/", "cookie": "stale"})
        return response.status, await response.json()

    status, body = _run_relay(_upstream("GET", "/user/", blocked), scenario)
    assert status == 401
    assert body["error"] == "Authentication Required"
    assert "log in again" in body["message"]


def test_upstream_errors_are_mirrored():
    async def scenario(client):
        response = await client.post("/api/intra-proxy", json={"endpoint": "/missing", "cookie": "abc"})
        return response.status, await response.json()

    status, body = _run_relay(web.Application(), scenario)
    assert status == 404
    assert body["error"] == "Intranet API Error"
    assert body["status"] == 404


def test_unreachable_intranet_is_gateway_timeout():
    async def free_port():
        server = TestServer(web.Application())
        await server.start_server()
        port = server.port
        await server.close()
        return port

    dead_url = f"http://127.0.0.1:{asyncio.run(free_port())}"

    async def scenario(client):
        response = await client.post("/api/intra-proxy", json={"endpoint": "/user/", "cookie": "abc"})
        return response.status, await response.json()

    status, body = _run_relay(web.Application(), scenario, upstream_url=dead_url)
    assert status == 504
    assert body == {"error": "Gateway Timeout", "message": "No response from Intranet API"}


def test_intra_client_round_trip_through_relay():
    submitted = {}

    async def registered(request):
        return web.json_response([{"login": "marie.curie", "title": "Marie Curie"}])

    async def update(request):
        submitted.update(await request.post())
        return web.json_response({})

    upstream = web.Application()
    upstream.router.add_get(f"{EVENT.path}/registered", registered)
    upstream.router.add_post(f"{EVENT.path}/updateregistered", update)

    async def _main():
        intranet = TestServer(upstream)
        await intranet.start_server()
        relay = TestServer(create_relay_app(f"http://{intranet.host}:{intranet.port}"))
        await relay.start_server()
        client = IntraClient(FakeSession(), relay_url=f"http://{relay.host}:{relay.port}")
        try:
            roster = await client.fetch_roster(EVENT)
            await client.submit_presence(EVENT, roster.find_by_login("marie.curie").login, PresenceStatus.PRESENT)
            return roster
        finally:
            await client.close()
            await relay.close()
            await intranet.close()

    roster = asyncio.run(_main())
    assert [s.login for s in roster] == ["marie.curie"]
    assert submitted == {"items[0][login]": "marie.curie", "items[0][present]": "present"}


def test_anti_ddos_through_relay_invalidates_client_session():
    async def blocked(request):
        return web.Response(status=503, text="<title>Anti-DDoS</title>", content_type="text/html")

    session = FakeSession()

    async def _main():
        intranet = TestServer(_upstream("GET", f"{EVENT.path}/registered", blocked))
        await intranet.start_server()
        relay = TestServer(create_relay_app(f"http://{intranet.host}:{intranet.port}"))
        await relay.start_server()
        client = IntraClient(session, relay_url=f"http://{relay.host}:{relay.port}")
        try:
            await client.fetch_roster(EVENT)
        finally:
            await client.close()
            await relay.close()
            await intranet.close()

    with pytest.raises(AuthExpired):
        asyncio.run(_main())
    assert session.invalidated == 1
