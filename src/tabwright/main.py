"""
命令行入口

    tabwright status
    tabwright tabs
    tabwright open https://example.com
    tabwright act <targetId> '{"kind": "click", "ref": "12"}'
    tabwright eval <targetId> "document.title"
    tabwright screenshot <targetId> out.png --full-page

输出为 JSON；出错时把错误写到 stderr 并以状态码 1 退出。
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from .browser import BrowserSession
from .config import Settings
from .core.errors import BrowserDriverError, MalformedAction


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tabwright", description="Drive a running Chromium tab by tab")
    parser.add_argument("--host", default=None, help="DevTools control endpoint host")
    parser.add_argument("--port", type=int, default=None, help="DevTools control endpoint port")
    parser.add_argument("--log-level", default=None, help="logging level (default: settings.log_level)")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="show session status")
    sub.add_parser("tabs", help="list open tabs")

    p = sub.add_parser("open", help="open a new tab")
    p.add_argument("url")

    p = sub.add_parser("focus", help="activate a tab")
    p.add_argument("target_id")

    p = sub.add_parser("close", help="close a tab")
    p.add_argument("target_id")

    p = sub.add_parser("act", help="dispatch an action descriptor (JSON)")
    p.add_argument("target_id")
    p.add_argument("action")

    p = sub.add_parser("eval", help="evaluate an expression over the raw protocol")
    p.add_argument("target_id")
    p.add_argument("expression")

    p = sub.add_parser("screenshot", help="save a screenshot")
    p.add_argument("target_id")
    p.add_argument("path")
    p.add_argument("--full-page", action="store_true")
    p.add_argument("--format", choices=["png", "jpeg"], default="png")
    p.add_argument("--quality", type=int, default=90)

    return parser


def _settings_from_args(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {}
    if args.host:
        overrides["cdp_host"] = args.host
    if args.port:
        overrides["cdp_port"] = args.port
    if args.log_level:
        overrides["log_level"] = args.log_level
    return Settings(**overrides)


async def run_command(session: BrowserSession, args: argparse.Namespace) -> Any:
    command = args.command
    if command == "status":
        return await session.status()
    if command == "tabs":
        return [t.to_dict() for t in await session.list_tabs()]
    if command == "open":
        return (await session.open_tab(args.url)).to_dict()
    if command == "focus":
        await session.focus_tab(args.target_id)
        return {"focused": args.target_id}
    if command == "close":
        await session.close_tab(args.target_id)
        return {"closed": args.target_id}
    if command == "act":
        try:
            action = json.loads(args.action)
        except json.JSONDecodeError as e:
            raise MalformedAction(f"action is not valid JSON: {e}", target_id=args.target_id) from e
        return await session.act(args.target_id, action)
    if command == "eval":
        return await session.evaluate(args.target_id, args.expression)
    if command == "screenshot":
        data = await session.screenshot(
            args.target_id, format=args.format, quality=args.quality, full_page=args.full_page,
        )
        Path(args.path).write_bytes(data)
        return {"saved_to": args.path, "bytes": len(data)}
    raise ValueError(f"unknown command: {command}")


async def _run(args: argparse.Namespace, config: Settings) -> Any:
    async with BrowserSession(config) as session:
        return await run_command(session, args)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = _settings_from_args(args)

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        result = asyncio.run(_run(args, config))
    except BrowserDriverError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, ensure_ascii=False, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
