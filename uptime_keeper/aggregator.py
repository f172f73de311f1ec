from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx
import structlog

from uptime_keeper.probe import ProbeConfig, ProbeOutcome, probe_with_retry
from uptime_keeper.registry import EndpointRegistry
from uptime_keeper.telegram import Notifier


logger = structlog.get_logger(__name__)

NO_ENDPOINTS_TEXT = "📭 No endpoints are registered yet."


def load_timezone(name: str) -> tzinfo:
    cleaned = (name or "").strip()
    if not cleaned or cleaned.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(cleaned)
    except ZoneInfoNotFoundError:
        logger.warning("Timezone not found; falling back to UTC", tz=cleaned)
        return timezone.utc


@dataclass(frozen=True)
class Report:
    manual: bool
    healthy: tuple[ProbeOutcome, ...]
    unhealthy: tuple[ProbeOutcome, ...]
    generated_at: datetime

    @property
    def all_healthy(self) -> bool:
        return not self.unhealthy


def build_report(outcomes: list[ProbeOutcome], *, manual: bool, generated_at: datetime) -> Report:
    """Stable partition of ``outcomes``; order within each group is kept."""
    return Report(
        manual=manual,
        healthy=tuple(o for o in outcomes if o.success),
        unhealthy=tuple(o for o in outcomes if not o.success),
        generated_at=generated_at,
    )


def render_report(report: Report, tz: tzinfo) -> str:
    trigger = "Manual" if report.manual else "Scheduled"
    if report.all_healthy:
        header = f"🟢 {trigger} check complete (all healthy)"
    else:
        header = f"🔴 {trigger} check complete (problems detected)"

    lines = [header, ""]
    lines.extend(f"✅ {o.url} → {o.detail}" for o in report.healthy)
    lines.extend(f"❌ {o.url} → {o.detail}" for o in report.unhealthy)
    checked_at = report.generated_at.astimezone(tz).strftime("%Y-%m-%d %H:%M:%S")
    lines.extend(["", f"⏱ Checked at: {checked_at}"])
    return "\n".join(lines)


class Aggregator:
    """Probes every registered endpoint and sends one report per cycle."""

    def __init__(
        self,
        *,
        registry: EndpointRegistry,
        notifier: Notifier,
        client: httpx.AsyncClient,
        probe_config: ProbeConfig,
        max_concurrency: int = 20,
        report_timezone: str = "Asia/Shanghai",
    ) -> None:
        self.registry = registry
        self.notifier = notifier
        self.client = client
        self.probe_config = probe_config
        self.max_concurrency = max(0, int(max_concurrency))
        self.tz = load_timezone(report_timezone)

    async def _probe_all(self) -> list[ProbeOutcome]:
        gate = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency > 0 else None

        async def _gated(url: str) -> ProbeOutcome:
            async with gate if gate is not None else contextlib.nullcontext():
                return await probe_with_retry(self.client, url, self.probe_config)

        tasks: list[asyncio.Task[ProbeOutcome]] = []
        try:
            async for url in self.registry.iter_endpoints():
                tasks.append(asyncio.create_task(_gated(url)))
            # gather keeps submission order, which is registry scan order.
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

    async def run_cycle(self, manual: bool = False) -> Report | None:
        logger.info("Running check cycle", manual=manual)
        outcomes = await self._probe_all()
        if not outcomes:
            logger.info("No endpoints registered", manual=manual)
            if manual:
                await self.notifier.notify(NO_ENDPOINTS_TEXT)
            return None

        report = build_report(outcomes, manual=manual, generated_at=datetime.now(timezone.utc))
        logger.info(
            "Check cycle finished",
            manual=manual,
            healthy=len(report.healthy),
            unhealthy=len(report.unhealthy),
        )
        await self.notifier.notify(render_report(report, self.tz))
        return report
