from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass

import httpx
import structlog


logger = structlog.get_logger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/143.0.0.0 Safari/537.36"
)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

TIMEOUT_DETAIL = "timeout"
UNKNOWN_ERROR_DETAIL = "unknown error"
CACHE_BUST_PARAM = "_nocache"


@dataclass(frozen=True)
class ProbeConfig:
    timeout_seconds: float = 10.0
    max_attempts: int = 3
    retry_delay_seconds: float = 5.0
    user_agent: str = DEFAULT_USER_AGENT


@dataclass(frozen=True)
class ProbeOutcome:
    url: str
    success: bool
    # Status code as text, "timeout", or the transport error text.
    detail: str


def cache_busting_url(url: str, *, now_ms: int | None = None, nonce: int | None = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    if nonce is None:
        nonce = random.randint(0, 999)
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{CACHE_BUST_PARAM}={now_ms}{nonce}"


def _error_text(exc: BaseException) -> str:
    text = str(exc).strip()
    return text if text else type(exc).__name__


async def probe_once(client: httpx.AsyncClient, url: str, config: ProbeConfig) -> ProbeOutcome:
    """Run one liveness attempt against ``url``.

    The request gets its own deadline; expiry cancels only this request and is
    reported as ``"timeout"``. Transport errors become failed outcomes.
    """
    target = cache_busting_url(url)
    headers = dict(NO_CACHE_HEADERS)
    headers["User-Agent"] = config.user_agent
    try:
        resp = await asyncio.wait_for(
            client.get(target, headers=headers, follow_redirects=True, timeout=config.timeout_seconds),
            timeout=config.timeout_seconds,
        )
    except (asyncio.TimeoutError, httpx.TimeoutException):
        return ProbeOutcome(url=url, success=False, detail=TIMEOUT_DETAIL)
    except httpx.HTTPError as exc:
        return ProbeOutcome(url=url, success=False, detail=_error_text(exc))

    status = resp.status_code
    return ProbeOutcome(url=url, success=200 <= status < 300, detail=str(status))


async def probe_with_retry(client: httpx.AsyncClient, url: str, config: ProbeConfig) -> ProbeOutcome:
    """Probe ``url`` up to ``config.max_attempts`` times and return the terminal outcome.

    Stops at the first success. Sleeps ``retry_delay_seconds`` between a failed
    attempt and the next one, never after the last. Always returns an outcome.
    """
    attempts = max(1, int(config.max_attempts))
    last_detail = ""

    for attempt in range(1, attempts + 1):
        try:
            outcome = await probe_once(client, url, config)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Probe attempt crashed", url=url, attempt=attempt, error=_error_text(exc))
            outcome = ProbeOutcome(url=url, success=False, detail=_error_text(exc))

        if outcome.success:
            if attempt > 1:
                logger.info("Probe recovered after retry", url=url, attempt=attempt)
            return outcome

        last_detail = outcome.detail
        logger.debug("Probe attempt failed", url=url, attempt=attempt, detail=outcome.detail)
        if attempt < attempts:
            await asyncio.sleep(config.retry_delay_seconds)

    return ProbeOutcome(url=url, success=False, detail=last_detail or UNKNOWN_ERROR_DETAIL)
