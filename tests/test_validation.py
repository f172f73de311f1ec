from __future__ import annotations

import pytest

from uptime_keeper.validation import is_valid_endpoint


@pytest.mark.parametrize(
    "text",
    [
        "http://example.com",
        "https://example.com/path?q=1",
        "HTTPS://EXAMPLE.COM",
        "Http://x",
        "https://localhost:8080/health",
        "https://no-tld",
    ],
)
def test_accepts_scheme_prefixed_urls(text: str) -> None:
    assert is_valid_endpoint(text) is True


@pytest.mark.parametrize(
    "text",
    [
        "",
        "http://",
        "https://",
        "ftp://example.com",
        "example.com",
        " https://example.com",
        "https://example.com ",
        "https://exa mple.com",
        "https://example.com\n",
        "/list",
        "/check",
        "/remove https://example.com",
        None,
        42,
    ],
)
def test_rejects_everything_else(text) -> None:
    assert is_valid_endpoint(text) is False
