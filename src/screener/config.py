"""Configuration loading for the screener.

Example config file (screener.yaml):

    provider: "yahoo"
    timezone: "Asia/Kolkata"
    history:
      path: "~/.screener/history.json"
      max_entries: 200
    retry:
      max_attempts: 3
      base_delay: 0.6
    throttle_seconds: 0.25
    session:
      freshness_minutes: 10
    watchlist:
      - "NSE:INFY-EQ"
      - "NSE:TCS-EQ"
    defaults:
      timeframe: "5m"
      indicator: "VWAP"
      window: 20
      side: "BELOW"
      breakout_mode: "CLOSE"
      confirm_with_live: true
      preset: "today"
    logging:
      level: "INFO"
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError

from screener.exceptions import ConfigError, ScreenerError
from screener.timeframes import DEFAULT_TIMEZONE, load_timezone
from screener.types import MAX_HISTORY, MAX_WATCHLIST, FrozenModel, Instrument, ScanParams

DEFAULT_HISTORY_PATH = "~/.screener/history.json"

VALID_PROVIDERS = frozenset(["yahoo", "synthetic"])

VALID_LOG_LEVELS = frozenset(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])

# Default watchlist (ten NIFTY 50 constituents)
DEFAULT_WATCHLIST = [
    "NSE:ADANIENT-EQ",
    "NSE:ADANIPORTS-EQ",
    "NSE:APOLLOHOSP-EQ",
    "NSE:ASIANPAINT-EQ",
    "NSE:AXISBANK-EQ",
    "NSE:BAJAJ-AUTO-EQ",
    "NSE:BAJFINANCE-EQ",
    "NSE:BAJAJFINSV-EQ",
    "NSE:BPCL-EQ",
    "NSE:BHARTIARTL-EQ",
]


class ScreenerConfig(FrozenModel):
    """Validated screener configuration.

    :param provider: Candle/quote provider type.
    :param timezone: Exchange timezone for the ``today`` preset.
    :param history_path: History file location.
    :param max_history: Maximum retained history entries.
    :param retry_max_attempts: Attempts per provider call.
    :param retry_base_delay: Wait before the first retry, in seconds.
    :param throttle_seconds: Pause between symbols.
    :param session_freshness_minutes: Session token lifetime.
    :param watchlist: Default watchlist.
    :param defaults: Default scan parameters.
    :param log_level: Logging level name.
    """

    provider: str = "yahoo"
    timezone: str = DEFAULT_TIMEZONE
    history_path: Path = Path(DEFAULT_HISTORY_PATH)
    max_history: int = MAX_HISTORY
    retry_max_attempts: int = 3
    retry_base_delay: float = 0.6
    throttle_seconds: float = 0.25
    session_freshness_minutes: float = 10.0
    watchlist: list[Instrument] = Field(
        default_factory=lambda: [Instrument.parse(s) for s in DEFAULT_WATCHLIST]
    )
    defaults: ScanParams = Field(default_factory=ScanParams)
    log_level: str = "INFO"


def _section(raw_config: dict[str, Any], name: str) -> dict[str, Any]:
    section = raw_config.get(name, {})
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return section


def _number(value: Any, field: str, minimum: float, integer: bool = False) -> Any:
    try:
        number = int(value) if integer else float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{field}' must be a number") from e
    if number < minimum:
        raise ConfigError(f"'{field}' must be at least {minimum}")
    return number


def parse_config(raw_config: dict[str, Any]) -> ScreenerConfig:
    """Validate a raw configuration mapping.

    :param raw_config: Parsed YAML mapping.
    :returns: Validated ScreenerConfig.
    :raises ConfigError: If any field is invalid.
    """
    if not isinstance(raw_config, dict):
        raise ConfigError("Configuration must be a YAML mapping")

    provider = raw_config.get("provider", "yahoo")
    if provider not in VALID_PROVIDERS:
        raise ConfigError(
            f"Invalid provider '{provider}'. Valid options: {sorted(VALID_PROVIDERS)}"
        )

    tz_name = raw_config.get("timezone", DEFAULT_TIMEZONE)
    load_timezone(str(tz_name))

    # Parse history (optional)
    raw_history = _section(raw_config, "history")
    history_path = Path(str(raw_history.get("path", DEFAULT_HISTORY_PATH))).expanduser()
    max_history = _number(
        raw_history.get("max_entries", MAX_HISTORY), "history.max_entries", 1, integer=True
    )

    # Parse retry (optional)
    raw_retry = _section(raw_config, "retry")
    max_attempts = _number(
        raw_retry.get("max_attempts", 3), "retry.max_attempts", 1, integer=True
    )
    base_delay = _number(raw_retry.get("base_delay", 0.6), "retry.base_delay", 0.0)

    throttle = _number(raw_config.get("throttle_seconds", 0.25), "throttle_seconds", 0.0)

    # Parse session (optional)
    raw_session = _section(raw_config, "session")
    freshness = _number(
        raw_session.get("freshness_minutes", 10), "session.freshness_minutes", 0.0
    )

    # Parse watchlist (optional)
    raw_watchlist = raw_config.get("watchlist", DEFAULT_WATCHLIST)
    if not isinstance(raw_watchlist, list) or not raw_watchlist:
        raise ConfigError("'watchlist' must be a non-empty list")
    if len(raw_watchlist) > MAX_WATCHLIST:
        raise ConfigError(f"'watchlist' may contain at most {MAX_WATCHLIST} symbols")
    try:
        watchlist = [Instrument.parse(str(s)) for s in raw_watchlist]
    except ConfigError as e:
        raise ConfigError(f"Invalid watchlist entry: {e}") from e

    # Parse defaults (optional)
    raw_defaults = _section(raw_config, "defaults")
    try:
        defaults = ScanParams(**raw_defaults)
    except ValidationError as e:
        raise ConfigError(f"Invalid scan defaults: {e}") from e
    except ScreenerError as e:
        raise ConfigError(f"Invalid scan defaults: {e}") from e

    # Parse logging (optional)
    raw_logging = _section(raw_config, "logging")
    log_level = str(raw_logging.get("level", "INFO")).upper()
    if log_level not in VALID_LOG_LEVELS:
        raise ConfigError(
            f"Invalid log level '{log_level}'. "
            f"Valid options: {sorted(VALID_LOG_LEVELS)}"
        )

    return ScreenerConfig(
        provider=provider,
        timezone=str(tz_name),
        history_path=history_path,
        max_history=max_history,
        retry_max_attempts=max_attempts,
        retry_base_delay=base_delay,
        throttle_seconds=throttle,
        session_freshness_minutes=freshness,
        watchlist=watchlist,
        defaults=defaults,
        log_level=log_level,
    )


def load_screener_config(config_path: str | Path | None = None) -> ScreenerConfig:
    """Parse and validate a screener configuration file.

    Without a path, the built-in defaults are returned.

    :param config_path: Path to YAML configuration file.
    :returns: Validated ScreenerConfig object.
    :raises ConfigError: If file cannot be read or config is invalid.
    """
    if config_path is None:
        return parse_config({})

    config_path = Path(config_path)

    # Read and parse YAML
    try:
        with open(config_path) as f:
            raw_config = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {config_path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file: {e}") from e

    if raw_config is None:
        raw_config = {}
    return parse_config(raw_config)
