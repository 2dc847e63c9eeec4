"""Interactive web server that runs the global test and streams results over a WebSocket."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any, Callable, Iterable, Protocol, Sequence

from aiohttp import WSCloseCode, WSMsgType, web

from .client import Config, SpeedtestClient
from .locations import GLOBAL_LOCATIONS, Location
from .models import Result

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8080
SHUTDOWN_TIMEOUT = 15.0


class _LocationTester(Protocol):
    def test_location(self, location: Location) -> Result: ...


def _default_client() -> _LocationTester:
    return SpeedtestClient(Config(threads=1))


_CDN_SCRIPTS = ("https://cdn.tailwindcss.com", "https://cdn.jsdelivr.net/npm/chart.js")
_PANEL = "bg-white rounded-lg p-6 shadow"

_INDEX_SCRIPT = """let ws;
let results = [];
const byId = id => document.getElementById(id);
const handlers = {
  locations: data => console.log('Locations received:', data.length),
  test_started: () => {
    byId('progress').classList.remove('hidden');
    byId('startTest').disabled = true;
    byId('results').innerHTML = '';
    results = [];
  },
  test_progress: data => {
    byId('progressBar').style.width = (data.current / data.total) * 100 + '%';
    byId('progressText').textContent = 'Testing ' + data.location + '...';
    byId('progressCount').textContent = data.current + '/' + data.total;
  },
  test_result: data => {
    results.push(data);
    addResult(data);
  },
  test_complete: () => {
    byId('progressText').textContent = 'Complete!';
    byId('startTest').disabled = false;
  },
};
function handleMessage(msg) {
  const handler = handlers[msg.type];
  if (handler) handler(msg.data);
}
function connectWebSocket() {
  const scheme = window.location.protocol === 'https:' ? 'wss:' : 'ws:';
  ws = new WebSocket(scheme + '//' + window.location.host + '/ws');
  ws.onmessage = event => handleMessage(JSON.parse(event.data));
  ws.onerror = error => console.error('WebSocket error:', error);
}
function addResult(result) {
  const list = byId('results');
  const item = document.createElement('div');
  item.className = 'flex justify-between items-center p-3 border rounded-lg ' +
    (result.success ? 'border-green-200 bg-green-50' : 'border-red-200 bg-red-50');
  const detail = result.success
    ? '<div class="text-sm"><div>📶 ' + result.latency_ms.toFixed(1) + 'ms</div>' +
      '<div>⬇️ ' + result.download_mbps.toFixed(1) + ' Mbps</div>' +
      '<div>⬆️ ' + result.upload_mbps.toFixed(1) + ' Mbps</div></div>'
    : '<div class="text-red-600 text-sm">' + result.error + '</div>';
  item.innerHTML = '<div><div class="font-medium">' + result.location.name + '</div>' +
    '<div class="text-sm text-gray-600">' + result.location.region + '</div></div>' +
    '<div class="text-right">' + detail + '</div>';
  list.appendChild(item);
  list.scrollTop = list.scrollHeight;
}
function startTest() {
  if (ws && ws.readyState === WebSocket.OPEN) ws.send(JSON.stringify({type: 'start_test'}));
}
connectWebSocket();
"""


def _index_html() -> str:
    scripts = "".join(f'<script src="{src}"></script>' for src in _CDN_SCRIPTS)
    head = (
        '<head><meta charset="UTF-8">'
        '<meta name="viewport" content="width=device-width, initial-scale=1.0">'
        f"<title>Interactive Speedtest</title>{scripts}</head>"
    )
    banner = (
        '<div class="bg-white rounded-lg shadow-lg p-6 mb-8">'
        '<h1 class="text-4xl font-bold text-gray-800 mb-2">🌍 Interactive Global Speedtest</h1>'
        '<p class="text-gray-600">Real-time network performance testing</p></div>'
    )
    button = (
        '<button id="startTest" class="bg-blue-600 text-white px-6 py-2 rounded-lg '
        'hover:bg-blue-700 disabled:opacity-50" onclick="startTest()">Start Global Test</button>'
    )
    progress = (
        '<div id="progress" class="hidden"><div class="mb-2">'
        '<div class="flex justify-between text-sm"><span id="progressText">Preparing...</span>'
        '<span id="progressCount">0/0</span></div>'
        '<div class="w-full bg-gray-200 rounded-full h-2"><div id="progressBar" '
        'class="bg-blue-600 h-2 rounded-full transition-all duration-300" style="width: 0%"></div>'
        "</div></div></div>"
    )
    control = (
        f'<div class="{_PANEL} mb-8"><div class="flex items-center justify-between mb-4">'
        f'<h2 class="text-2xl font-semibold">Test Control</h2>{button}</div>{progress}</div>'
    )
    live = (
        f'<div class="{_PANEL}"><h3 class="text-xl font-semibold mb-4">Live Results</h3>'
        '<div id="results" class="space-y-2"></div></div>'
    )
    return "\n".join(
        (
            "<!DOCTYPE html>",
            '<html lang="en">',
            head,
            '<body class="bg-gray-50 min-h-screen">',
            '<div class="container mx-auto px-4 py-8">',
            banner,
            control,
            live,
            "</div>",
            "<script>",
            _INDEX_SCRIPT,
            "</script>",
            "</body>",
            "</html>",
        )
    )


_INDEX_HTML = _index_html()


class WebServer:
    """Serves the interactive page and runs tests for connected WebSocket clients."""

    def __init__(
        self,
        client_factory: Callable[[], _LocationTester] | None = None,
        locations: Iterable[Location] = GLOBAL_LOCATIONS,
    ) -> None:
        self._client_factory = client_factory if client_factory is not None else _default_client
        self._locations: tuple[Location, ...] = tuple(locations)
        self._clients: set[web.WebSocketResponse] = set()
        self._tasks: set[asyncio.Task[None]] = set()

    def routes(self) -> web.Application:
        """Build the application with the WebSocket endpoint and the index page."""
        app = web.Application()
        app.router.add_route("*", "/ws", self._handle_websocket)
        app.router.add_get("/", self._serve_index)
        app.on_shutdown.append(self._on_shutdown)
        return app

    async def _send(self, ws: web.WebSocketResponse, kind: str, data: Any = None) -> bool:
        try:
            await ws.send_json({"type": kind, "data": data})
        except (ConnectionError, RuntimeError):
            return False
        return True

    async def _broadcast(self, kind: str, data: Any = None) -> None:
        for ws in list(self._clients):
            if not await self._send(ws, kind, data):
                self._clients.discard(ws)
                await ws.close()

    async def _handle_websocket(self, request: web.Request) -> web.StreamResponse:
        ws = web.WebSocketResponse()
        if not ws.can_prepare(request).ok:
            logger.warning("WebSocket upgrade error: not a websocket handshake")
            return web.Response(status=400, text="Bad Request")
        await ws.prepare(request)

        self._clients.add(ws)
        try:
            await self._send(ws, "locations", [loc.to_dict() for loc in self._locations])
            async for message in ws:
                if message.type not in (WSMsgType.TEXT, WSMsgType.BINARY):
                    break
                try:
                    payload = json.loads(message.data)
                except ValueError:
                    break
                if not isinstance(payload, dict) or not isinstance(payload.get("type", ""), str):
                    break
                if payload.get("type") == "start_test":
                    task = asyncio.create_task(self._run_test(ws))
                    self._tasks.add(task)
                    task.add_done_callback(self._tasks.discard)
        finally:
            self._clients.discard(ws)
            await ws.close()
        return ws

    async def _run_test(self, ws: web.WebSocketResponse) -> None:
        client = self._client_factory()
        await self._send(ws, "test_started")
        total = len(self._locations)
        for current, location in enumerate(self._locations, 1):
            await self._send(
                ws,
                "test_progress",
                {"current": current, "total": total, "location": location.name},
            )
            result = await asyncio.to_thread(client.test_location, location)
            await self._send(ws, "test_result", result.to_dict())
        await self._send(ws, "test_complete")

    async def _serve_index(self, request: web.Request) -> web.Response:
        return web.Response(text=_INDEX_HTML, content_type="text/html")

    async def _on_shutdown(self, app: web.Application) -> None:
        for task in list(self._tasks):
            task.cancel()
        for ws in list(self._clients):
            await ws.close(code=WSCloseCode.GOING_AWAY, message=b"server shutdown")
        self._clients.clear()


def run_server(port: int) -> None:
    """Serve until interrupted, then shut down gracefully."""
    app = WebServer().routes()
    print(f"🌐 intspeed server starting on port {port}")
    print(f"📱 Open http://localhost:{port} in your browser")
    web.run_app(app, port=port, print=None, shutdown_timeout=SHUTDOWN_TIMEOUT)
    print("\n🛑 Shutting down server...")


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point of the web server."""
    parser = argparse.ArgumentParser(
        prog="intspeed-server", description="international speedtest web server"
    )
    parser.add_argument("-p", "--port", type=int, default=DEFAULT_PORT, help="Server port")
    args = parser.parse_args(argv)
    run_server(args.port)
    return 0