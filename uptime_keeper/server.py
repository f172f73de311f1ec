from __future__ import annotations

import argparse
import asyncio
import sys

import httpx
import structlog
import uvicorn

from uptime_keeper.aggregator import Aggregator
from uptime_keeper.app import create_app
from uptime_keeper.log_config import configure_logging
from uptime_keeper.registry import SQLiteEndpointRegistry
from uptime_keeper.settings import Settings, load_settings
from uptime_keeper.telegram import TelegramConfig, TelegramNotifier, redact_telegram_response, set_webhook


logger = structlog.get_logger(__name__)


def _telegram_config(settings: Settings) -> TelegramConfig:
    return TelegramConfig(
        bot_token=settings.telegram_bot_token,
        chat_id=settings.telegram_chat_id,
        api_base_url=settings.telegram_api_base_url,
    )


def serve(settings: Settings) -> int:
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0


async def run_check_once(settings: Settings, *, manual: bool) -> int:
    registry = SQLiteEndpointRegistry(settings.db_path)
    try:
        await registry.ensure_schema()
        async with httpx.AsyncClient() as client:
            aggregator = Aggregator(
                registry=registry,
                notifier=TelegramNotifier(client, _telegram_config(settings)),
                client=client,
                probe_config=settings.probe_config(),
                max_concurrency=settings.max_concurrency,
                report_timezone=settings.report_timezone,
            )
            report = await aggregator.run_cycle(manual=manual)
    finally:
        registry.close()
    if report is None:
        return 0
    return 0 if report.all_healthy else 1


async def list_endpoints(settings: Settings) -> int:
    registry = SQLiteEndpointRegistry(settings.db_path)
    try:
        await registry.ensure_schema()
        async for url in registry.iter_endpoints():
            print(url)
    finally:
        registry.close()
    return 0


async def register_webhook(settings: Settings, url: str | None) -> int:
    target = url or settings.webhook_url()
    if not target:
        print("No webhook URL: pass --url or set UPTIME_KEEPER_PUBLIC_BASE_URL", file=sys.stderr)
        return 2
    if not settings.telegram_bot_token:
        print("TG_BOT_TOKEN is not set", file=sys.stderr)
        return 2
    async with httpx.AsyncClient() as client:
        ok, data = await set_webhook(client, _telegram_config(settings), target)
    print(redact_telegram_response(data))
    return 0 if ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="uptime-keeper", description="Telegram-controlled uptime keeper")
    parser.add_argument("--config", default=None, help="Path to a YAML config file")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Run the webhook server and scheduler (default)")

    check = sub.add_parser("check", help="Run one check cycle and exit")
    check.add_argument("--manual", action="store_true", help="Report even when no endpoints are registered")

    hook = sub.add_parser("set-webhook", help="Register the webhook URL with Telegram")
    hook.add_argument("--url", default=None, help="Webhook URL (defaults to public base URL + webhook path)")

    sub.add_parser("list", help="Print registered endpoints")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(args.config)
    configure_logging(settings.log_level, json_output=settings.log_json)

    command = args.command or "serve"
    if command == "serve":
        return serve(settings)
    if command == "check":
        return asyncio.run(run_check_once(settings, manual=args.manual))
    if command == "set-webhook":
        return asyncio.run(register_webhook(settings, args.url))
    if command == "list":
        return asyncio.run(list_endpoints(settings))
    raise SystemExit(f"Unknown command: {command}")


if __name__ == "__main__":
    sys.exit(main())
