"""Command line entry point.

``hudrelay serve`` runs the relay. ``hudrelay watch`` connects to a relay
the way a display does and logs the reconstructed state. ``hudrelay demo``
plays the scripted demo drive through a reducer.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import math
import signal
import sys
from pathlib import Path
from typing import Any

import aiohttp

from hudrelay.config import LinkConfig, RelayConfig
from hudrelay.demo import DemoPlayer
from hudrelay.exceptions import HudConfigError, HudTransportError
from hudrelay.link.bootstrap import LinkConfigStore, fetch_relay_config, merge_link_config
from hudrelay.link.manager import ConnectionStatus, LinkManager
from hudrelay.models.vehicle import VehicleState
from hudrelay.relay.server import run_relay
from hudrelay.state.reducer import StateReducer

_LOG = logging.getLogger("hudrelay")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="hudrelay",
        description="MQTT to WebSocket telemetry relay for heads-up displays.",
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", parents=[common], help="Run the relay (configured from the environment).")
    serve.add_argument("--host", default=None, help="Listen address (overrides HOST).")
    serve.add_argument("--port", type=int, default=None, help="Listen port (overrides PORT).")

    watch = sub.add_parser("watch", parents=[common], help="Connect to a relay and log vehicle state.")
    watch.add_argument(
        "--relay",
        required=True,
        help="Relay base URL, e.g. http://hud.local:8080",
    )
    watch.add_argument("--proxy-url", default=None, help="Explicit WebSocket URL override.")
    watch.add_argument("--topic-prefix", default=None, help="Topic prefix override.")
    watch.add_argument("--car-id", type=int, default=None, help="Vehicle id override.")
    watch.add_argument(
        "--config-file",
        type=Path,
        default=None,
        help="JSON file holding the local override record.",
    )

    demo = sub.add_parser("demo", parents=[common], help="Play the scripted demo drive and log each scene.")
    demo.add_argument("--speed", type=float, default=1.0, help="Playback speed multiplier (default 1.0).")
    return parser.parse_args(argv)


def _describe(state: VehicleState) -> str:
    def _num(value: float) -> str:
        return "--" if math.isnan(value) else f"{value:g}"

    parts = [
        f"speed={_num(state.speed)}",
        f"gear={state.gear}",
        f"battery={_num(state.battery_level)}%",
        f"power={_num(state.power)}kW",
        f"range={_num(state.range)}km",
    ]
    if state.destination:
        parts.append(f"destination={state.destination!r}")
        parts.append(f"eta={state.est_arrival_time or '--'}")
    if state.is_charging:
        parts.append(f"charging={_num(state.charger_power)}kW")
    return " ".join(parts)


def _install_stop_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)


async def _watch(args: argparse.Namespace) -> int:
    store = LinkConfigStore(args.config_file) if args.config_file else None
    local = store.load() if store is not None else LinkConfig()

    overrides: dict[str, Any] = {}
    if args.proxy_url is not None:
        overrides["proxy_url"] = args.proxy_url
    if args.topic_prefix is not None:
        overrides["topic_prefix"] = args.topic_prefix
    if args.car_id is not None:
        overrides["car_id"] = args.car_id
    if overrides:
        local = local.model_copy(update=overrides)
        if store is not None:
            store.save(local)

    stop = asyncio.Event()
    _install_stop_handlers(stop)

    async with aiohttp.ClientSession() as session:
        try:
            server = await fetch_relay_config(session, args.relay)
        except HudTransportError as exc:
            _LOG.warning("Could not fetch relay config, using local values: %s", exc)
            server = None
        else:
            _LOG.info("Relay config: prefix=%s car=%s", server.topic_prefix, server.car_id)
        config = merge_link_config(local, server)
        if store is not None and server is not None:
            store.save(config)

        reducer = StateReducer()
        reducer.add_listener(lambda state, _patch: _LOG.info("%s", _describe(state)))

        def _on_status(status: ConnectionStatus) -> None:
            if status != ConnectionStatus.CONNECTED:
                _LOG.info("Searching for vehicle... (%s)", status)

        async with LinkManager(reducer, page_url=args.relay, session=session, on_status=_on_status) as link:
            link.connect(config)
            await stop.wait()
    return 0


async def _demo(speed: float) -> int:
    reducer = StateReducer()
    player = DemoPlayer(
        reducer,
        speed=speed,
        on_scene=lambda label: _LOG.info("%s | %s", label, _describe(reducer.state)),
    )
    await player.play()
    _LOG.info("Final: %s", _describe(reducer.state))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        overrides: dict[str, Any] = {}
        if args.host is not None:
            overrides["http_host"] = args.host
        if args.port is not None:
            overrides["http_port"] = args.port
        try:
            config = RelayConfig.from_env(**overrides)
        except HudConfigError as exc:
            print(f"hudrelay: {exc}", file=sys.stderr)
            return 2
        run_relay(config)
        return 0

    if args.command == "watch":
        return asyncio.run(_watch(args))
    if args.speed <= 0:
        print("hudrelay: --speed must be positive", file=sys.stderr)
        return 2
    return asyncio.run(_demo(args.speed))


if __name__ == "__main__":
    raise SystemExit(main())
