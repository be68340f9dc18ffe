# core/credential_pool.py
"""
Credential Pool

Holds the API keys used to call the inference service and hands them out in a
stable round-robin order.

Keys come from the process environment:
    GEMINI_API_KEY1 .. GEMINI_API_KEY{CREDENTIAL_SLOTS}   (numbered slots, in slot order)
    GEMINI_API_KEYS                                       (comma-separated list, appended)

Unset or blank entries are dropped at load time and never enter the pool.
An empty pool is a normal state: `next()` returns None and `all()` returns [].

One pool is created per process by whoever owns the dispatcher (see
api/app.py); tests build their own instances so rotation state never leaks.
"""

import os
import logging
from typing import List, Mapping, Optional, Sequence

from core import metrics
from core.config import CREDENTIAL_LIST_VAR, CREDENTIAL_PREFIX, CREDENTIAL_SLOTS

logger = logging.getLogger(__name__)


def load_credentials(
    environ: Optional[Mapping[str, str]] = None,
    prefix: str = CREDENTIAL_PREFIX,
    list_var: str = CREDENTIAL_LIST_VAR,
    slots: int = CREDENTIAL_SLOTS,
) -> List[str]:
    """
    Read every configured credential source and return a fresh list.

    Order is configuration order: numbered slots first (1..slots), then the
    comma-separated list. Nothing in `environ` is modified.
    """
    env = os.environ if environ is None else environ
    keys: List[str] = []

    for slot in range(1, slots + 1):
        value = (env.get(f"{prefix}{slot}") or "").strip()
        if value:
            keys.append(value)

    keys.extend(k.strip() for k in (env.get(list_var) or "").split(",") if k.strip())
    return keys


class CredentialPool:
    """Ordered pool of credentials with a round-robin cursor."""

    def __init__(self, credentials: Sequence[str] = ()):
        self._credentials: List[str] = [c.strip() for c in credentials if c and c.strip()]
        self._cursor = 0

        if not self._credentials:
            logger.warning(
                "No API keys configured",
                extra={"event": "credentials_missing", "prefix": CREDENTIAL_PREFIX},
            )
        else:
            logger.info(
                "Credential pool loaded",
                extra={"event": "credentials_loaded", "count": len(self._credentials)},
            )
        metrics.set_credentials_configured(len(self._credentials))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CredentialPool":
        """Build a pool from the environment; contents are cached for the pool's lifetime."""
        return cls(load_credentials(environ))

    @staticmethod
    def load(environ: Optional[Mapping[str, str]] = None) -> List[str]:
        return load_credentials(environ)

    def next(self) -> Optional[str]:
        """
        Return the credential at the cursor and advance it (wrapping).
        Returns None when the pool is empty.
        """
        if not self._credentials:
            logger.warning("Credential requested from an empty pool", extra={"event": "credentials_missing"})
            return None

        credential = self._credentials[self._cursor]
        self._cursor = (self._cursor + 1) % len(self._credentials)
        return credential

    def all(self) -> List[str]:
        """Every credential in configuration order (a copy)."""
        return list(self._credentials)

    def reset(self) -> None:
        """Rewind the rotation cursor to the first credential."""
        self._cursor = 0

    @property
    def count(self) -> int:
        return len(self._credentials)

    @property
    def cursor(self) -> int:
        return self._cursor

    def __len__(self) -> int:
        return len(self._credentials)

    def __repr__(self) -> str:
        # never render key material
        return f"CredentialPool(count={len(self._credentials)}, cursor={self._cursor})"
