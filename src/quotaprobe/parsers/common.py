from __future__ import annotations

from datetime import datetime, timezone
import json
import re

from quotaprobe.errors import ParseFailed

ANSI_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)|\x1b[@-Z\\-_]")


def strip_ansi(text: str) -> str:
    return ANSI_RE.sub("", text).replace("\r\n", "\n").replace("\r", "\n")


def decode_json(raw: bytes | str) -> dict:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ParseFailed(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ParseFailed(f"expected a JSON object, got {type(data).__name__}")
    return data


def parse_iso(value: object) -> datetime | None:
    """Parse an ISO-8601 instant; anything unparseable is treated as absent."""
    if not isinstance(value, str) or not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def fraction_to_percent(fraction: object) -> float:
    if isinstance(fraction, bool) or not isinstance(fraction, (int, float)):
        raise ParseFailed(f"remainingFraction is not a number: {fraction!r}")
    return round(float(fraction) * 100.0, 1)
