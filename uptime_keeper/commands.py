from __future__ import annotations

import enum
from dataclasses import dataclass

import structlog

from uptime_keeper.aggregator import NO_ENDPOINTS_TEXT, Aggregator
from uptime_keeper.registry import ENDPOINT_MARKER, EndpointRegistry
from uptime_keeper.telegram import Notifier
from uptime_keeper.validation import is_valid_endpoint


logger = structlog.get_logger(__name__)

HELP_TEXT = "\n".join(
    [
        "📌 Usage:",
        "Send a link starting with http:// or https:// to add it to the watch list.",
        "",
        "Commands:",
        "/list   show all watched endpoints",
        "/remove <url>   stop watching an endpoint",
        "/check   run a check right now",
        "/help   show this help",
    ]
)
INVALID_URL_TEXT = "❌ Invalid URL format. Expected http:// or https:// followed by the address."
CHECKING_TEXT = "🚀 Checking all endpoints now, please wait..."

REMOVE_PREFIX = "/remove"


class CommandKind(enum.Enum):
    HELP = "help"
    LIST = "list"
    REMOVE = "remove"
    CHECK = "check"
    ADD = "add"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    # Set for REMOVE (possibly invalid) and ADD (always valid).
    url: str | None = None


def parse_command(text: str) -> Command:
    """Classify an inbound message. The first matching rule wins."""
    s = (text or "").strip()
    if s == "/help":
        return Command(CommandKind.HELP)
    if s == "/list":
        return Command(CommandKind.LIST)
    if s.startswith(REMOVE_PREFIX):
        return Command(CommandKind.REMOVE, url=s[len(REMOVE_PREFIX) :].strip())
    if s == "/check":
        return Command(CommandKind.CHECK)
    if is_valid_endpoint(s):
        return Command(CommandKind.ADD, url=s)
    return Command(CommandKind.UNRECOGNIZED)


def format_endpoint_list(urls: list[str]) -> str:
    lines = ["📌 Watched endpoints:", ""]
    lines.extend(f"{i}. {url}" for i, url in enumerate(urls, start=1))
    return "\n".join(lines)


class CommandDispatcher:
    """Applies operator commands to the registry and replies through the notifier.

    Holds no per-message state; each call to ``handle`` stands alone.
    """

    def __init__(self, *, registry: EndpointRegistry, notifier: Notifier, aggregator: Aggregator) -> None:
        self.registry = registry
        self.notifier = notifier
        self.aggregator = aggregator

    async def handle(self, text: str) -> Command:
        command = parse_command(text)
        logger.info("Handling command", kind=command.kind.value)

        if command.kind is CommandKind.LIST:
            await self._list()
        elif command.kind is CommandKind.REMOVE:
            await self._remove(command.url or "")
        elif command.kind is CommandKind.CHECK:
            await self.notifier.notify(CHECKING_TEXT)
            await self.aggregator.run_cycle(manual=True)
        elif command.kind is CommandKind.ADD:
            await self._add(command.url or "")
        else:
            await self.notifier.notify(HELP_TEXT)
        return command

    async def _list(self) -> None:
        urls = [url async for url in self.registry.iter_endpoints()]
        if not urls:
            await self.notifier.notify(NO_ENDPOINTS_TEXT)
            return
        await self.notifier.notify(format_endpoint_list(urls))

    async def _remove(self, url: str) -> None:
        if not is_valid_endpoint(url):
            await self.notifier.notify(INVALID_URL_TEXT)
            return
        await self.registry.delete(url)
        await self.notifier.notify(f"🗑 Removed:\n{url}")

    async def _add(self, url: str) -> None:
        await self.registry.put(url, ENDPOINT_MARKER)
        await self.notifier.notify(f"✅ Now watching:\n{url}")
