"""Timeframe normalization and lookback range presets."""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from screener.exceptions import ConfigError
from screener.types import DateRange, RangePreset

DEFAULT_TIMEZONE = "Asia/Kolkata"

# Session open used by the "today" preset, in exchange local time.
SESSION_OPEN = time(9, 15)

# Canonical timeframe keys
TIMEFRAMES = ("1m", "3m", "5m", "10m", "15m", "30m", "1h", "1d")

_PRESET_SPANS = {
    RangePreset.ONE_HOUR: timedelta(hours=1),
    RangePreset.TWO_HOURS: timedelta(hours=2),
    RangePreset.FOUR_HOURS: timedelta(hours=4),
    RangePreset.TWO_DAYS: timedelta(days=2),
}


def normalize_timeframe(value: Any) -> str:
    """Return the canonical timeframe key for ``value``.

    :raises ConfigError: If the timeframe is not supported.
    """
    key = str(value or "").strip().lower()
    if key not in TIMEFRAMES:
        raise ConfigError(
            f"Invalid timeframe '{value}'. Valid options: {list(TIMEFRAMES)}"
        )
    return key


def load_timezone(name: str) -> ZoneInfo:
    """Look up an IANA timezone.

    :raises ConfigError: If the zone is unknown.
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Unknown timezone: {name}") from e


def resolve_range(
    preset: RangePreset | str,
    now: datetime | None = None,
    tz: str = DEFAULT_TIMEZONE,
) -> DateRange:
    """Translate a lookback preset into a concrete date range ending at ``now``.

    ``today`` starts at the session open in the exchange timezone; the other
    presets are trailing windows.

    :param preset: Lookback preset.
    :param now: Reference time (defaults to the current UTC time).
    :param tz: Exchange timezone used for ``today``.
    :returns: DateRange ending at ``now``.
    """
    preset = RangePreset(preset)
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    span = _PRESET_SPANS.get(preset)
    if span is not None:
        return DateRange(start=now - span, end=now)

    local_now = now.astimezone(load_timezone(tz))
    start = local_now.replace(
        hour=SESSION_OPEN.hour, minute=SESSION_OPEN.minute, second=0, microsecond=0
    )
    return DateRange(start=start, end=now)
