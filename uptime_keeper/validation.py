from __future__ import annotations

import re
from typing import Any


_ENDPOINT_RE = re.compile(r"^https?://\S+$", re.IGNORECASE)


def is_valid_endpoint(text: Any) -> bool:
    """Return True if ``text`` is an ``http://`` or ``https://`` URL with no whitespace.

    No host or TLD validation is done. Non-string input is simply not valid.
    """
    if not isinstance(text, str):
        return False
    # fullmatch: "$" alone would accept a trailing newline.
    return _ENDPOINT_RE.fullmatch(text) is not None
