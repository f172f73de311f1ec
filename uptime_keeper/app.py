from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx
import structlog
from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from uptime_keeper import __version__
from uptime_keeper.aggregator import Aggregator
from uptime_keeper.commands import CommandDispatcher
from uptime_keeper.registry import EndpointRegistry, SQLiteEndpointRegistry
from uptime_keeper.scheduler import SCHEDULED_CHECK_JOB_ID, CheckScheduler
from uptime_keeper.schema import TelegramUpdate
from uptime_keeper.settings import Settings
from uptime_keeper.telegram import Notifier, TelegramConfig, TelegramNotifier


logger = structlog.get_logger(__name__)

ACK_TEXT = "OK"


def _ack() -> PlainTextResponse:
    return PlainTextResponse(ACK_TEXT)


async def run_command_safely(dispatcher: CommandDispatcher, text: str) -> None:
    try:
        await dispatcher.handle(text)
    except Exception:
        logger.exception("Command handling failed")


async def run_scheduled_cycle(aggregator: Aggregator) -> None:
    try:
        await aggregator.run_cycle(manual=False)
    except Exception:
        logger.exception("Scheduled check cycle failed")


def create_app(
    settings: Settings | None = None,
    *,
    registry: EndpointRegistry | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    """Build the webhook service.

    ``registry`` and ``notifier`` replace the SQLite registry and the Telegram
    notifier built from ``settings``. Collaborators are created on startup.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        client = httpx.AsyncClient()
        app.state.http_client = client

        reg = registry
        if reg is None:
            reg = SQLiteEndpointRegistry(settings.db_path)
            await reg.ensure_schema()
        app.state.registry = reg

        note = notifier
        if note is None:
            note = TelegramNotifier(
                client,
                TelegramConfig(
                    bot_token=settings.telegram_bot_token,
                    chat_id=settings.telegram_chat_id,
                    api_base_url=settings.telegram_api_base_url,
                ),
            )
        app.state.notifier = note

        aggregator = Aggregator(
            registry=reg,
            notifier=note,
            client=client,
            probe_config=settings.probe_config(),
            max_concurrency=settings.max_concurrency,
            report_timezone=settings.report_timezone,
        )
        app.state.aggregator = aggregator
        app.state.dispatcher = CommandDispatcher(registry=reg, notifier=note, aggregator=aggregator)

        scheduler = CheckScheduler()
        if settings.schedule_enabled:
            scheduler.add_cron_job(
                SCHEDULED_CHECK_JOB_ID,
                run_scheduled_cycle,
                settings.schedule_cron,
                kwargs={"aggregator": aggregator},
                description="Scheduled endpoint check",
            )
            scheduler.start()
        app.state.scheduler = scheduler

        if not settings.telegram_chat_id:
            logger.warning("TG_CHAT_ID not configured; all inbound messages will be dropped")
        logger.info("Uptime keeper started", webhook_path=settings.webhook_path, schedule=settings.schedule_cron)
        try:
            yield
        finally:
            scheduler.stop()
            await client.aclose()
            if registry is None and isinstance(reg, SQLiteEndpointRegistry):
                reg.close()
            logger.info("Uptime keeper stopped")

    app = FastAPI(title="Uptime Keeper", version=__version__, lifespan=lifespan)
    app.state.settings = settings

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"ok": True, "ts": time.time()}

    @app.api_route(settings.webhook_path, methods=["GET", "HEAD", "PUT", "DELETE", "PATCH", "OPTIONS"])
    async def webhook_ack() -> PlainTextResponse:
        return _ack()

    @app.post(settings.webhook_path)
    async def telegram_webhook(req: Request, background_tasks: BackgroundTasks) -> PlainTextResponse:
        # Every update gets the same acknowledgment; work continues after the response.
        try:
            try:
                update = TelegramUpdate.model_validate(await req.json())
            except (ValueError, ValidationError):
                logger.info("Dropping malformed update")
                return _ack()

            message = update.message
            if message is None or not message.text:
                return _ack()

            chat_id = str(message.chat.id)
            if not settings.telegram_chat_id or chat_id != settings.telegram_chat_id:
                logger.info("Dropping update from unauthorized chat", chat_id=chat_id)
                return _ack()

            background_tasks.add_task(run_command_safely, app.state.dispatcher, message.text)
        except Exception:
            logger.exception("Webhook handling failed")
        return _ack()

    return app
