#!/usr/bin/env python3
"""Run the weather engine from a terminal and log every client event.

Useful to check a provider token and location id without the broadcast
front-end.  Node-graph writes are printed instead of sent.

Configuration is read from ``WXC_*`` environment variables (see
:class:`pywxcontrol.config.WxConfig`) plus the settings document.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pywxcontrol import WeatherControlEngine, WxConfig  # noqa: E402
from pywxcontrol._redact import redact_for_log  # noqa: E402


class _PrintingNodeGraph:
    async def set_property(self, node: str, path: str, value: Any) -> None:
        print(f"  node {node} :: {path} = {value!r}")


def _print_event(event: str, payload: dict[str, Any]) -> None:
    print(f"[{event}] {json.dumps(redact_for_log(payload), default=str)}")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--settings", help="Path to the settings JSON document")
    parser.add_argument("--city-id", help="Override the configured location id for this run")
    parser.add_argument("--token", help="Override the configured provider token for this run")
    parser.add_argument("--interval", type=int, help="Poll interval in seconds")
    parser.add_argument("--cycles", type=int, default=0, help="Stop after N polls (0 = run until Ctrl-C)")
    parser.add_argument("--link", action="store_true", help="Print node-graph property writes")
    parser.add_argument("--save", action="store_true", help="Persist settings changes after the run")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable DEBUG logging")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {}
    if args.settings:
        overrides["settings_path"] = args.settings
    config = WxConfig.from_env(**overrides)

    async with WeatherControlEngine(config, node_graph=_PrintingNodeGraph()) as engine:
        engine.attach_client(_print_event)
        engine.load_settings()
        if args.token:
            engine.change_token(args.token)
        if args.city_id:
            engine.change_city_id(args.city_id)
        if args.interval:
            engine.change_polling_interval(args.interval)
        if args.link:
            await engine.change_linked(True)

        if args.cycles <= 0:
            engine.start_polling()
            try:
                await asyncio.Event().wait()
            finally:
                engine.stop_polling()
        else:
            for index in range(args.cycles):
                await engine.update_now()
                if index + 1 < args.cycles:
                    await asyncio.sleep(engine.settings.poll_interval_seconds)

        if args.save:
            print(f"persist: {engine.store_ini()}")
        return 0 if engine.last_fetch_valid else 1


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
