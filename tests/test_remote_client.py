from __future__ import annotations

import json
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

import httpx
import pytest

from nemea_agent.errors import MalformedResponseError
from nemea_agent.models import MonitorType
from nemea_agent.remote import ApiConfig, NemeaApiClient


class _FakeNemeaHandler(BaseHTTPRequestHandler):
    token = "secret"
    ingested: list[dict] = []

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        return

    def _auth_ok(self) -> bool:
        return (self.headers.get("Authorization") or "") == f"Bearer {self.token}"

    def _send_json(self, status: int, obj: object) -> None:
        body = json.dumps(obj).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self) -> None:  # noqa: N802
        if not self._auth_ok():
            self.send_error(403)
            return
        if self.path == "/v1/nemea/config":
            self._send_json(200, {"monitorRefreshInterval": 30000})
            return
        if self.path == "/v1/nemea/monitors":
            self._send_json(
                200,
                {
                    "monitors": [
                        {"id": "dns-1", "type": "DNS", "recordType": "A", "domain": "example.com", "interval": 10000},
                        {"id": "ping-1", "type": "PING", "host": "192.0.2.1"},
                    ]
                },
            )
            return
        self.send_error(404)

    def do_POST(self) -> None:  # noqa: N802
        if not self._auth_ok():
            self.send_error(403)
            return
        if self.path != "/v1/nemea/ingest":
            self.send_error(404)
            return
        n = int(self.headers.get("Content-Length") or "0")
        type(self).ingested.append(json.loads(self.rfile.read(n).decode("utf-8")))
        self._send_json(200, {"ok": True})


@pytest.fixture()
def fake_server():
    _FakeNemeaHandler.ingested = []
    server = HTTPServer(("127.0.0.1", 0), _FakeNemeaHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()


@pytest.mark.asyncio
async def test_client_round_trip_against_fake_server(fake_server: str) -> None:
    async with httpx.AsyncClient() as http:
        client = NemeaApiClient(http, ApiConfig(base_url=fake_server + "/", api_key="secret"))

        config = await client.fetch_config()
        assert config.refresh_interval_seconds == 30.0

        monitors = await client.fetch_monitors()
        assert [m.id for m in monitors] == ["dns-1", "ping-1"]
        assert monitors[0].type is MonitorType.DNS
        assert monitors[0].interval_seconds == 10.0
        assert monitors[1].interval_seconds == 60.0

        await client.send_result({"monitorId": "dns-1", "monitorType": "DNS", "result": {}})

    assert _FakeNemeaHandler.ingested == [{"monitorId": "dns-1", "monitorType": "DNS", "result": {}}]


@pytest.mark.asyncio
async def test_client_raises_status_error_on_bad_token(fake_server: str) -> None:
    async with httpx.AsyncClient() as http:
        client = NemeaApiClient(http, ApiConfig(base_url=fake_server, api_key="wrong"))
        with pytest.raises(httpx.HTTPStatusError) as info:
            await client.fetch_config()
    assert info.value.response.status_code == 403


@pytest.mark.asyncio
async def test_client_rejects_non_json_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = NemeaApiClient(http, ApiConfig(base_url="https://api.example", api_key="k"))
        with pytest.raises(MalformedResponseError):
            await client.fetch_monitors()
