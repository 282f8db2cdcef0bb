from __future__ import annotations

import json
from collections.abc import AsyncIterator
from pathlib import Path

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from hudrelay.config import LinkConfig
from hudrelay.exceptions import HudTransportError
from hudrelay.link.bootstrap import LinkConfigStore, fetch_relay_config, merge_link_config


def test_server_values_override_local_record() -> None:
    local = LinkConfig(proxy_url="ws://local.example/ws", topic_prefix="mine", car_id=2)
    server = LinkConfig.model_validate({"proxyUrl": "", "topicPrefix": "teslamate", "carId": 1})

    merged = merge_link_config(local, server)

    assert merged.proxy_url == "ws://local.example/ws"
    assert merged.topic_prefix == "teslamate"
    assert merged.car_id == 1


def test_fields_missing_from_server_keep_local_value() -> None:
    local = LinkConfig(topic_prefix="mine", car_id=2)
    server = LinkConfig.model_validate({"carId": 5})

    merged = merge_link_config(local, server)

    assert merged.topic_prefix == "mine"
    assert merged.car_id == 5


def test_no_server_record_returns_local() -> None:
    local = LinkConfig(car_id=9)
    assert merge_link_config(local, None) is local


def test_store_round_trip(tmp_path: Path) -> None:
    store = LinkConfigStore(tmp_path / "nested" / "link.json")
    assert store.load() == LinkConfig()

    store.save(LinkConfig(proxy_url="wss://hud.example/ws", topic_prefix="tm", car_id=3))

    on_disk = json.loads(store.path.read_text(encoding="utf-8"))
    assert on_disk == {"proxyUrl": "wss://hud.example/ws", "topicPrefix": "tm", "carId": 3}
    assert store.load() == LinkConfig(proxy_url="wss://hud.example/ws", topic_prefix="tm", car_id=3)


def test_store_ignores_malformed_file(tmp_path: Path) -> None:
    path = tmp_path / "link.json"
    path.write_text('{"carId": "not a number"', encoding="utf-8")
    assert LinkConfigStore(path).load() == LinkConfig()


def _config_app() -> web.Application:
    async def good(request: web.Request) -> web.Response:
        return web.json_response({"proxyUrl": " wss://hud.example/ws ", "topicPrefix": "tm", "carId": 4})

    async def broken(request: web.Request) -> web.Response:
        return web.Response(status=500, text="boom")

    async def garbage(request: web.Request) -> web.Response:
        return web.Response(text="<html>not json</html>")

    app = web.Application()
    app.router.add_get("/good/api/config", good)
    app.router.add_get("/broken/api/config", broken)
    app.router.add_get("/garbage/api/config", garbage)
    return app


@pytest_asyncio.fixture
async def config_server() -> AsyncIterator[TestServer]:
    async with TestServer(_config_app()) as server:
        yield server


@pytest.mark.asyncio
async def test_fetch_relay_config(config_server: TestServer) -> None:
    async with aiohttp.ClientSession() as session:
        config = await fetch_relay_config(session, str(config_server.make_url("/good/")))

    assert config == LinkConfig(proxy_url="wss://hud.example/ws", topic_prefix="tm", car_id=4)


@pytest.mark.asyncio
async def test_fetch_relay_config_non_200(config_server: TestServer) -> None:
    async with aiohttp.ClientSession() as session:
        with pytest.raises(HudTransportError) as excinfo:
            await fetch_relay_config(session, str(config_server.make_url("/broken")))

    assert excinfo.value.status_code == 500
    assert excinfo.value.endpoint == "/api/config"


@pytest.mark.asyncio
async def test_fetch_relay_config_invalid_body(config_server: TestServer) -> None:
    async with aiohttp.ClientSession() as session:
        with pytest.raises(HudTransportError):
            await fetch_relay_config(session, str(config_server.make_url("/garbage")))
