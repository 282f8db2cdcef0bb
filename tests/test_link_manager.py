from __future__ import annotations

import asyncio
import json
from collections.abc import Callable

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer, unused_port

from hudrelay.config import LinkConfig
from hudrelay.exceptions import HudLinkError
from hudrelay.link.manager import ConnectionStatus, LinkManager, resolve_ws_url
from hudrelay.link.retry import RetryPolicy
from hudrelay.state.reducer import StateReducer


@pytest.mark.parametrize(
    ("proxy_url", "page_url", "expected"),
    [
        ("", "http://hud.local:8080/", "ws://hud.local:8080/ws"),
        ("", "https://hud.example/dash", "wss://hud.example/ws"),
        ("wss://relay.example/ws", "http://hud.local", "wss://relay.example/ws"),
        ("ws://relay.example/ws", "https://hud.local", "ws://relay.example/ws"),
        ("relay.example:9000/ws", "https://hud.local", "wss://relay.example:9000/ws"),
        ("relay.example:9000/ws", "http://hud.local", "ws://relay.example:9000/ws"),
        ("https://relay.example/ws", "http://hud.local", "wss://relay.example/ws"),
        ("/custom", "http://hud.local:81", "ws://hud.local:81/custom"),
        ("  ", "http://hud.local", "ws://hud.local/ws"),
    ],
)
def test_resolve_ws_url(proxy_url: str, page_url: str, expected: str) -> None:
    assert resolve_ws_url(proxy_url, page_url) == expected


async def _wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def _relay_app(connections: list[web.WebSocketResponse]) -> web.Application:
    async def handle_ws(request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        connections.append(ws)
        await ws.send_str(json.dumps({"type": "status", "msg": "Linked to HUD relay"}))
        await ws.send_str(json.dumps({"topic": "teslamate/cars/1/speed", "data": "42", "timestamp": 1}))
        if len(connections) == 1:
            # First connection is dropped by the server right away.
            await ws.close()
            return ws
        async for _msg in ws:
            pass
        return ws

    app = web.Application()
    app.router.add_get("/ws", handle_ws)
    return app


@pytest.mark.asyncio
async def test_reconnects_after_server_close_within_retry_interval() -> None:
    connections: list[web.WebSocketResponse] = []
    loop = asyncio.get_running_loop()
    transitions: list[tuple[ConnectionStatus, float]] = []
    reducer = StateReducer()

    async with TestServer(_relay_app(connections)) as server:
        link = LinkManager(
            reducer,
            page_url=str(server.make_url("/")),
            retry=RetryPolicy(0.05),
            on_status=lambda status: transitions.append((status, loop.time())),
        )
        link.connect(LinkConfig())
        await _wait_for(lambda: len(connections) == 2 and link.status == ConnectionStatus.CONNECTED)

        statuses = [status for status, _ in transitions]
        assert statuses == [
            ConnectionStatus.CONNECTING,
            ConnectionStatus.CONNECTED,
            ConnectionStatus.DISCONNECTED,
            ConnectionStatus.CONNECTING,
            ConnectionStatus.CONNECTED,
        ]
        gap = transitions[3][1] - transitions[2][1]
        assert 0.04 <= gap < 1.0
        assert link.retry.attempts == 1

        await _wait_for(lambda: reducer.state.speed == 42)
        assert any("Status: Linked to HUD relay" in line for line in link.logs)
        assert any("Relay disconnected" in line for line in link.logs)

        await link.close()

    assert link.status == ConnectionStatus.DISCONNECTED
    assert transitions[-1][0] == ConnectionStatus.DISCONNECTED


@pytest.mark.asyncio
async def test_close_cancels_pending_retry() -> None:
    statuses: list[ConnectionStatus] = []
    link = LinkManager(
        StateReducer(),
        page_url=f"http://127.0.0.1:{unused_port()}/",
        retry=RetryPolicy(30.0),
        on_status=statuses.append,
    )

    link.connect(LinkConfig())
    await _wait_for(lambda: link.retry.pending)
    assert statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.DISCONNECTED]
    assert any("Connection error" in line for line in link.logs)

    await link.close()
    assert not link.retry.pending
    await asyncio.sleep(0.05)
    assert statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.DISCONNECTED]


@pytest.mark.asyncio
async def test_connect_reconfigures_reducer_namespace() -> None:
    reducer = StateReducer()
    async with LinkManager(reducer, page_url=f"http://127.0.0.1:{unused_port()}/", retry=RetryPolicy(30.0)) as link:
        link.connect(LinkConfig(proxy_url="/relay", topic_prefix="tm", car_id=4))
        assert reducer.topic_root == "tm/cars/4"
        assert link.url is not None
        assert link.url.endswith("/relay")


@pytest.mark.asyncio
async def test_rolling_log_is_bounded() -> None:
    entries: list[str] = []
    link = LinkManager(StateReducer(), page_url="http://hud.local/", on_log=entries.append)

    for i in range(30):
        link._handle_frame(json.dumps({"type": "status", "msg": f"hello {i}"}))  # type: ignore[attr-defined]

    assert len(link.logs) == 20
    assert link.logs[0].endswith("Status: hello 10")
    assert link.logs[-1].endswith("Status: hello 29")
    assert len(entries) == 30


@pytest.mark.asyncio
async def test_frames_feed_reducer_and_bad_frames_are_ignored() -> None:
    reducer = StateReducer()
    link = LinkManager(reducer, page_url="http://hud.local/")

    frames = [
        "{not json",
        json.dumps({"topic": "teslamate/cars/1/shift_state", "data": "R", "timestamp": 0}),
        json.dumps({"topic": "teslamate/cars/1/unknown", "data": "1", "timestamp": 0}),
    ]
    for frame in frames:
        link._handle_frame(frame)  # type: ignore[attr-defined]

    assert reducer.state.gear == "R"
    assert link.logs == []


def test_connect_requires_running_loop() -> None:
    link = LinkManager(StateReducer(), page_url="http://hud.local/")
    with pytest.raises(HudLinkError):
        link.connect(LinkConfig())


def test_initial_status_and_default_retry() -> None:
    link = LinkManager(StateReducer(), page_url="http://hud.local/")
    assert link.status == ConnectionStatus.DISCONNECTED
    assert link.retry.interval == 5.0
    assert link.url is None


@pytest.mark.asyncio
async def test_failing_listener_does_not_stop_reconnecting() -> None:
    connections: list[web.WebSocketResponse] = []
    statuses: list[ConnectionStatus] = []
    reducer = StateReducer()

    def render(_state: object, _patch: object) -> None:
        raise ValueError("render failed")

    reducer.add_listener(render)

    async with TestServer(_relay_app(connections)) as server:
        link = LinkManager(
            reducer,
            page_url=str(server.make_url("/")),
            retry=RetryPolicy(0.05),
            on_status=statuses.append,
        )
        link.connect(LinkConfig())
        await _wait_for(lambda: len(connections) == 2 and link.status == ConnectionStatus.CONNECTED)

        assert statuses == [
            ConnectionStatus.CONNECTING,
            ConnectionStatus.CONNECTED,
            ConnectionStatus.DISCONNECTED,
            ConnectionStatus.CONNECTING,
            ConnectionStatus.CONNECTED,
        ]
        assert link.retry.attempts >= 1
        assert any("State update error: render failed" in line for line in link.logs)

        await link.close()
