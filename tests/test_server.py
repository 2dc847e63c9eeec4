import asyncio
from types import SimpleNamespace

import pytest
from aiohttp import WSMsgType
from aiohttp.test_utils import TestClient, TestServer

from intspeed.locations import GLOBAL_LOCATIONS
from intspeed.models import Result
from intspeed.server import WebServer, main

LOCATIONS = GLOBAL_LOCATIONS[:2]


def _no_servers(location):
    return Result(location=location, error=f"no servers found for {location.name}")


def fake_client():
    return SimpleNamespace(test_location=_no_servers)


def make_app():
    return WebServer(client_factory=fake_client, locations=LOCATIONS).routes()


@pytest.mark.asyncio
async def test_index_page_served():
    async with TestClient(TestServer(make_app())) as client:
        response = await client.get("/")
        assert response.status == 200
        assert response.content_type == "text/html"
        body = await response.text()
        assert "Interactive Global Speedtest" in body
        assert "Start Global Test" in body


@pytest.mark.asyncio
async def test_index_rejects_post():
    async with TestClient(TestServer(make_app())) as client:
        response = await client.post("/")
        assert response.status == 405


@pytest.mark.asyncio
async def test_ws_endpoint_requires_handshake():
    async with TestClient(TestServer(make_app())) as client:
        response = await client.get("/ws")
        assert response.status == 400


@pytest.mark.asyncio
async def test_websocket_sends_locations_first():
    async with TestClient(TestServer(make_app())) as client:
        ws = await client.ws_connect("/ws")
        message = await ws.receive_json(timeout=5)
        assert message["type"] == "locations"
        assert message["data"] == [loc.to_dict() for loc in LOCATIONS]
        await ws.close()


@pytest.mark.asyncio
async def test_default_server_lists_all_locations():
    server = WebServer(client_factory=fake_client)
    async with TestClient(TestServer(server.routes())) as client:
        ws = await client.ws_connect("/ws")
        message = await ws.receive_json(timeout=5)
        assert len(message["data"]) == len(GLOBAL_LOCATIONS)
        await ws.close()


@pytest.mark.asyncio
async def test_start_test_streams_progress_and_results():
    async with TestClient(TestServer(make_app())) as client:
        ws = await client.ws_connect("/ws")
        await ws.receive_json(timeout=5)
        await ws.send_json({"type": "start_test"})
        messages = [await ws.receive_json(timeout=5) for _ in range(2 * len(LOCATIONS) + 2)]
        await ws.close()

    types = [m["type"] for m in messages]
    assert types == ["test_started"] + ["test_progress", "test_result"] * len(LOCATIONS) + [
        "test_complete"
    ]
    assert messages[0]["data"] is None
    progress = messages[1]["data"]
    assert progress == {"current": 1, "total": len(LOCATIONS), "location": LOCATIONS[0].name}
    last_progress = messages[3]["data"]
    assert last_progress["current"] == len(LOCATIONS)
    result = Result.from_dict(messages[2]["data"])
    assert result.location == LOCATIONS[0]
    assert result.error == f"no servers found for {LOCATIONS[0].name}"
    assert result.success is False


@pytest.mark.asyncio
async def test_unknown_message_type_is_ignored():
    async with TestClient(TestServer(make_app())) as client:
        ws = await client.ws_connect("/ws")
        await ws.receive_json(timeout=5)
        await ws.send_json({"type": "hello"})
        await ws.send_json({"type": "start_test"})
        message = await ws.receive_json(timeout=5)
        assert message["type"] == "test_started"
        await asyncio.sleep(0)
        await ws.close()


@pytest.mark.asyncio
async def test_invalid_json_closes_connection():
    async with TestClient(TestServer(make_app())) as client:
        ws = await client.ws_connect("/ws")
        await ws.receive_json(timeout=5)
        await ws.send_str("not json")
        message = await ws.receive(timeout=5)
        assert message.type in (WSMsgType.CLOSE, WSMsgType.CLOSED)


def test_main_rejects_non_numeric_port():
    with pytest.raises(SystemExit) as info:
        main(["--port", "abc"])
    assert info.value.code == 2