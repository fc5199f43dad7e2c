"""Provider session management.

The session held with the external provider is cached with a freshness
window. :class:`SessionManager` owns the credentials, the current token and
the time it was issued; the clock is injected so staleness is deterministic
in tests.
"""

from __future__ import annotations

import logging
import os
import re
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Mapping

from pydantic import field_validator

from screener.exceptions import ConfigError
from screener.types import FrozenModel

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS = timedelta(minutes=10)

# Environment variable -> Credentials field
ENV_VARS = {
    "SCREENER_API_KEY": "api_key",
    "SCREENER_CLIENT_CODE": "client_code",
    "SCREENER_MPIN": "mpin",
    "SCREENER_TOTP_SECRET": "totp_secret",
}

_MPIN = re.compile(r"^\d{4}$")


class Credentials(FrozenModel):
    """Broker login credentials.

    :param api_key: Application key issued by the broker.
    :param client_code: Account client code.
    :param mpin: Four digit login PIN.
    :param totp_secret: Shared secret for one-time passwords.
    """

    api_key: str
    client_code: str
    mpin: str
    totp_secret: str

    @field_validator("mpin")
    @classmethod
    def _mpin_digits(cls, value: str) -> str:
        if not _MPIN.match(value):
            raise ValueError("mpin must be exactly 4 digits")
        return value

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Credentials:
        """Read credentials from environment variables.

        :raises ConfigError: If a variable is missing or malformed.
        """
        environ = os.environ if environ is None else environ
        missing = [name for name in ENV_VARS if not environ.get(name)]
        if missing:
            raise ConfigError(f"Missing credentials. Set {', '.join(missing)}")
        if not _MPIN.match(environ["SCREENER_MPIN"]):
            raise ConfigError("SCREENER_MPIN must be exactly 4 digits")
        return cls(**{field: environ[name] for name, field in ENV_VARS.items()})


class SessionToken(FrozenModel):
    """An issued session token and when it was issued."""

    token: str
    issued_at: datetime


Authenticator = Callable[[Credentials], str]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """Caches a provider session and renews it when stale.

    ``ensure_fresh`` is idempotent and safe to call before every batch.
    Renewal is serialized: concurrent callers wait for the in-flight renewal
    and then reuse its token.

    :param authenticate: Performs the login and returns a token.
    :param credentials: Credentials, or a zero-argument loader returning them.
        Defaults to :meth:`Credentials.from_env`.
    :param clock: Returns the current time.
    :param freshness: How long a token stays valid.
    """

    def __init__(
        self,
        authenticate: Authenticator,
        credentials: Credentials | Callable[[], Credentials] | None = None,
        clock: Clock = utc_now,
        freshness: timedelta = DEFAULT_FRESHNESS,
    ) -> None:
        self._authenticate = authenticate
        self._credentials = credentials if credentials is not None else Credentials.from_env
        self._clock = clock
        self.freshness = freshness
        self._token: SessionToken | None = None
        self._lock = threading.Lock()

    @property
    def token(self) -> SessionToken | None:
        return self._token

    def is_fresh(self) -> bool:
        """Whether a token exists and is younger than the freshness window."""
        token = self._token
        return token is not None and self._clock() - token.issued_at < self.freshness

    def ensure_fresh(self) -> SessionToken:
        """Return a fresh token, renewing it if necessary.

        :raises ConfigError: If credentials are missing or malformed.
        """
        token = self._token
        if token is not None and self.is_fresh():
            return token
        with self._lock:
            if self._token is not None and self.is_fresh():
                return self._token
            credentials = self._resolve_credentials()
            logger.info("Establishing provider session for %s", credentials.client_code)
            value = self._authenticate(credentials)
            self._token = SessionToken(token=value, issued_at=self._clock())
            return self._token

    # Provider-facing name
    ensure_session = ensure_fresh

    def invalidate(self) -> None:
        """Drop the cached token so the next call renews."""
        with self._lock:
            self._token = None

    def _resolve_credentials(self) -> Credentials:
        if isinstance(self._credentials, Credentials):
            return self._credentials
        return self._credentials()
