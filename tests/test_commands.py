from __future__ import annotations

from pathlib import Path

import pytest

from uptime_keeper.aggregator import NO_ENDPOINTS_TEXT
from uptime_keeper.commands import (
    CHECKING_TEXT,
    HELP_TEXT,
    INVALID_URL_TEXT,
    Command,
    CommandDispatcher,
    CommandKind,
    parse_command,
)
from uptime_keeper.registry import SQLiteEndpointRegistry


class _RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[str] = []

    async def notify(self, text: str) -> bool:
        self.messages.append(text)
        return True


class _FakeAggregator:
    def __init__(self, notifier: _RecordingNotifier) -> None:
        self.notifier = notifier
        self.cycles: list[bool] = []

    async def run_cycle(self, manual: bool = False):
        self.cycles.append(manual)
        await self.notifier.notify("REPORT")
        return None


@pytest.fixture
def harness(tmp_path: Path):
    registry = SQLiteEndpointRegistry(str(tmp_path / "endpoints.db"))
    notifier = _RecordingNotifier()
    aggregator = _FakeAggregator(notifier)
    dispatcher = CommandDispatcher(registry=registry, notifier=notifier, aggregator=aggregator)
    try:
        yield dispatcher, registry, notifier, aggregator
    finally:
        registry.close()


async def _all(registry: SQLiteEndpointRegistry) -> list[str]:
    return [url async for url in registry.iter_endpoints()]


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("/help", Command(CommandKind.HELP)),
        ("  /help  ", Command(CommandKind.HELP)),
        ("/list", Command(CommandKind.LIST)),
        ("/check", Command(CommandKind.CHECK)),
        ("/remove https://a.test", Command(CommandKind.REMOVE, url="https://a.test")),
        ("/remove   https://a.test  ", Command(CommandKind.REMOVE, url="https://a.test")),
        ("/remove", Command(CommandKind.REMOVE, url="")),
        ("/removehttps://a.test", Command(CommandKind.REMOVE, url="https://a.test")),
        ("https://a.test", Command(CommandKind.ADD, url="https://a.test")),
        (" https://a.test\n", Command(CommandKind.ADD, url="https://a.test")),
        ("/HELP", Command(CommandKind.UNRECOGNIZED)),
        ("/start", Command(CommandKind.UNRECOGNIZED)),
        ("/list extra", Command(CommandKind.UNRECOGNIZED)),
        ("hello", Command(CommandKind.UNRECOGNIZED)),
        ("", Command(CommandKind.UNRECOGNIZED)),
    ],
)
def test_parse_command_precedence(text: str, expected: Command) -> None:
    assert parse_command(text) == expected


@pytest.mark.asyncio
async def test_help_and_fallback_send_help(harness) -> None:
    dispatcher, _registry, notifier, _agg = harness
    await dispatcher.handle("/help")
    await dispatcher.handle("what is this")
    assert notifier.messages == [HELP_TEXT, HELP_TEXT]


@pytest.mark.asyncio
async def test_add_twice_is_idempotent_and_confirmed_twice(harness) -> None:
    dispatcher, registry, notifier, _agg = harness
    await dispatcher.handle("https://example.com")
    await dispatcher.handle("https://example.com")
    assert await _all(registry) == ["https://example.com"]
    assert len(notifier.messages) == 2
    assert all("https://example.com" in m for m in notifier.messages)


@pytest.mark.asyncio
async def test_list_empty_and_numbered(harness) -> None:
    dispatcher, registry, notifier, _agg = harness
    await dispatcher.handle("/list")
    assert notifier.messages == [NO_ENDPOINTS_TEXT]

    await registry.put("https://b.test")
    await registry.put("https://a.test")
    await dispatcher.handle("/list")
    lines = notifier.messages[-1].splitlines()
    assert lines[-2:] == ["1. https://a.test", "2. https://b.test"]


@pytest.mark.asyncio
async def test_remove_unknown_url_still_confirms(harness) -> None:
    dispatcher, registry, notifier, _agg = harness
    await dispatcher.handle("/remove https://nope.test")
    assert await _all(registry) == []
    assert len(notifier.messages) == 1
    assert "https://nope.test" in notifier.messages[0]
    assert notifier.messages[0] != INVALID_URL_TEXT


@pytest.mark.asyncio
async def test_remove_existing_url(harness) -> None:
    dispatcher, registry, _notifier, _agg = harness
    await registry.put("https://a.test")
    await registry.put("https://b.test")
    await dispatcher.handle("/remove https://a.test")
    assert await _all(registry) == ["https://b.test"]


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["/remove not-a-url", "/remove", "/remove ftp://a.test"])
async def test_remove_invalid_url_reports_format_error(harness, text: str) -> None:
    dispatcher, registry, notifier, _agg = harness
    await registry.put("https://a.test")
    await dispatcher.handle(text)
    assert notifier.messages == [INVALID_URL_TEXT]
    assert await _all(registry) == ["https://a.test"]


@pytest.mark.asyncio
async def test_check_acknowledges_then_runs_manual_cycle(harness) -> None:
    dispatcher, registry, notifier, aggregator = harness
    command = await dispatcher.handle("/check")
    assert command.kind is CommandKind.CHECK
    assert aggregator.cycles == [True]
    assert notifier.messages == [CHECKING_TEXT, "REPORT"]
    assert await _all(registry) == []
