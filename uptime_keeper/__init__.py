"""Uptime keeper: probe registered HTTP(S) endpoints and report through Telegram."""

__version__ = "0.1.0"
