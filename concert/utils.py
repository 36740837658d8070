"""
concert.utils
-------------
Small helpers shared across components: base64, UTC time, and Go-style
duration strings ("720h", "1h30m", "500ms") as used in deployment files.
"""

from __future__ import annotations
import base64, re
from datetime import datetime, timedelta, timezone

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")


def b64d(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"))


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration string made of one or more <number><unit> groups.

    Raises ValueError on anything else, including an empty string.
    """
    s = value.strip()
    if s == "0":
        return timedelta(0)
    if not s:
        raise ValueError("empty duration")

    sign = 1
    if s[0] in "+-":
        sign = -1 if s[0] == "-" else 1
        s = s[1:]

    pos = 0
    total = 0.0
    for m in _DURATION_RE.finditer(s):
        if m.start() != pos:
            raise ValueError(f"invalid duration: {value!r}")
        total += float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
        pos = m.end()
    if pos != len(s) or pos == 0:
        raise ValueError(f"invalid duration: {value!r}")
    return timedelta(seconds=sign * total)
