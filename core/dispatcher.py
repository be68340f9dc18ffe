# core/dispatcher.py
"""
Key-Rotating Request Dispatcher

Runs one logical request against the inference service, trying each
credential in the pool strictly in order until one succeeds:

    credentials = pool.all()
    []                         -> Fallback (no credentials, zero attempts)
    attempt i succeeds         -> Success (no further credentials tried)
    quota error, i not last    -> try credential i + 1
    quota error on last        -> Fallback (quota exhausted)
    any other error            -> Fallback (service error), remaining credentials untouched

Only quota-class errors are retried: anything else (bad request, auth,
transport, malformed output) is assumed to be credential-independent.

The dispatcher never raises service failures to its caller. Every path ends
in a DispatchOutcome, and fallback results are produced by a caller-supplied
pure function of the request, so callers always get a usable answer.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from core import metrics
from core.config import DISPATCH_ATTEMPT_TIMEOUT
from core.credential_pool import CredentialPool
from core.exceptions import LLMError
from core.request_context import get_request_id

logger = logging.getLogger(__name__)

T = TypeVar("T")  # Result type of the dispatched operation


# ----------------------------------------------------------------------
# Error classification
# ----------------------------------------------------------------------
class ErrorClass(str, Enum):
    QUOTA_EXCEEDED = "quota_exceeded"
    OTHER = "other"


def classify_error_signal(status: Optional[int], message: Optional[str]) -> ErrorClass:
    """
    Classify a raw error signal.

    Quota-class if the status is 429 or the message contains "quota" or "429"
    (case-sensitive, matching the upstream service's error text).
    """
    if status == 429:
        return ErrorClass.QUOTA_EXCEEDED
    text = message or ""
    if "quota" in text or "429" in text:
        return ErrorClass.QUOTA_EXCEEDED
    return ErrorClass.OTHER


def _status_of(exc: BaseException) -> Optional[int]:
    for attr in ("status_code", "status"):
        raw = getattr(exc, attr, None)
        if raw is None:
            continue
        try:
            return int(raw)
        except (TypeError, ValueError):
            continue
    return None


def classify_error(exc: BaseException) -> ErrorClass:
    """Classify an exception raised by a credential attempt."""
    return classify_error_signal(_status_of(exc), str(exc))


# ----------------------------------------------------------------------
# Requests and outcomes
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class DispatchRequest:
    """One logical request. The payload is shared, unchanged, by every attempt."""
    operation: str
    payload: Any


class FallbackKind(str, Enum):
    NO_CREDENTIALS = "no_credentials"
    QUOTA_EXHAUSTED = "quota_exhausted"
    SERVICE_ERROR = "service_error"


@dataclass(frozen=True)
class Success(Generic[T]):
    result: T
    attempts: int

    is_fallback = False


@dataclass(frozen=True)
class Fallback(Generic[T]):
    result: T
    reason: str
    kind: FallbackKind
    attempts: int

    is_fallback = True


DispatchOutcome = Union[Success, Fallback]


# Per-attempt outcomes
@dataclass(frozen=True)
class AttemptSucceeded:
    result: Any


@dataclass(frozen=True)
class RetryableFailure:
    error: BaseException


@dataclass(frozen=True)
class FatalFailure:
    error: BaseException


AttemptOutcome = Union[AttemptSucceeded, RetryableFailure, FatalFailure]


class Step(str, Enum):
    SUCCEED = "succeed"
    CONTINUE = "continue"
    EXHAUSTED = "exhausted"
    FAIL = "fail"


def next_step(outcome: AttemptOutcome, is_last: bool) -> Step:
    """Decide what the failover loop does after one attempt."""
    if isinstance(outcome, AttemptSucceeded):
        return Step.SUCCEED
    if isinstance(outcome, RetryableFailure):
        return Step.EXHAUSTED if is_last else Step.CONTINUE
    return Step.FAIL


def fallback_reason(kind: FallbackKind, attempts: int = 0, error: Optional[BaseException] = None) -> str:
    if kind is FallbackKind.NO_CREDENTIALS:
        return "no credentials configured"
    if kind is FallbackKind.QUOTA_EXHAUSTED:
        return f"all {attempts} credential(s) exhausted: quota exceeded"
    name = type(error).__name__ if error is not None else "unknown error"
    return f"inference service error ({name})"


# ----------------------------------------------------------------------
# Dispatcher
# ----------------------------------------------------------------------
class KeyRotatingDispatcher:
    """
    Sequential, quota-aware failover across a CredentialPool.

    Typical usage:
        dispatcher = KeyRotatingDispatcher(CredentialPool.from_env())
        outcome = await dispatcher.dispatch(
            DispatchRequest("schedule_follow_up", payload),
            attempt=call_model,          # async (credential, payload) -> result
            fallback=default_decision,   # (request) -> result, no I/O
        )
    """

    def __init__(self, pool: CredentialPool, attempt_timeout: Optional[float] = DISPATCH_ATTEMPT_TIMEOUT):
        self.pool = pool
        self.attempt_timeout = attempt_timeout

    async def dispatch(
        self,
        request: DispatchRequest,
        attempt: Callable[[str, Any], Awaitable[T]],
        fallback: Callable[[DispatchRequest], T],
    ) -> DispatchOutcome:
        start = time.monotonic()
        credentials = self.pool.all()
        total = len(credentials)

        if not credentials:
            logger.warning(
                "No API keys configured, using fallback",
                extra={"event": "dispatch_fallback", "operation": request.operation,
                       "request_id": get_request_id()},
            )
            return self._fallback(request, fallback, FallbackKind.NO_CREDENTIALS, 0, None, start)

        for index, credential in enumerate(credentials):
            logger.info(
                "Attempting with API key %d/%d", index + 1, total,
                extra={"event": "dispatch_attempt", "operation": request.operation,
                       "key_index": index + 1, "request_id": get_request_id()},
            )
            outcome = await self._try_credential(request, attempt, credential, index, total)
            step = next_step(outcome, is_last=index == total - 1)

            if step is Step.SUCCEED:
                metrics.record_outcome(request.operation, "success", index + 1, time.monotonic() - start)
                return Success(result=outcome.result, attempts=index + 1)
            if step is Step.CONTINUE:
                logger.info(
                    "Quota exceeded, trying next API key",
                    extra={"event": "dispatch_failover", "operation": request.operation,
                           "key_index": index + 1},
                )
                continue
            if step is Step.EXHAUSTED:
                return self._fallback(request, fallback, FallbackKind.QUOTA_EXHAUSTED,
                                      index + 1, outcome.error, start)
            return self._fallback(request, fallback, FallbackKind.SERVICE_ERROR,
                                  index + 1, outcome.error, start)

        # Unreachable: the last attempt always terminates the loop above
        return self._fallback(request, fallback, FallbackKind.QUOTA_EXHAUSTED, total, None, start)

    async def _try_credential(
        self,
        request: DispatchRequest,
        attempt: Callable[[str, Any], Awaitable[Any]],
        credential: str,
        index: int,
        total: int,
    ) -> AttemptOutcome:
        attempt_start = time.monotonic()
        try:
            if self.attempt_timeout:
                result = await asyncio.wait_for(attempt(credential, request.payload), timeout=self.attempt_timeout)
            else:
                result = await attempt(credential, request.payload)
        except asyncio.TimeoutError as te:
            # A TimeoutError raised by the attempt itself keeps its own identity
            if self.attempt_timeout and time.monotonic() - attempt_start >= self.attempt_timeout:
                exc = LLMError(f"attempt timed out after {self.attempt_timeout}s")
                exc.__cause__ = te
            else:
                exc = te
        except Exception as e:
            exc = e
        else:
            metrics.record_attempt(request.operation, "success")
            return AttemptSucceeded(result)

        error_class = classify_error(exc)
        is_quota = error_class is ErrorClass.QUOTA_EXCEEDED
        metrics.record_attempt(request.operation, "quota_exceeded" if is_quota else "error")
        logger.error(
            "Error with API key %d/%d", index + 1, total,
            extra={
                "event": "dispatch_attempt_failed",
                "operation": request.operation,
                "key_index": index + 1,
                "is_quota_error": is_quota,
                "error_type": type(exc).__name__,
                "error_message": str(exc),
                "status": _status_of(exc),
                "request_id": get_request_id(),
            },
        )
        return RetryableFailure(exc) if is_quota else FatalFailure(exc)

    def _fallback(
        self,
        request: DispatchRequest,
        fallback: Callable[[DispatchRequest], T],
        kind: FallbackKind,
        attempts: int,
        error: Optional[BaseException],
        start: float,
    ) -> Fallback:
        reason = fallback_reason(kind, attempts, error)
        if kind is FallbackKind.QUOTA_EXHAUSTED:
            logger.warning("All API keys exhausted, using fallback",
                           extra={"event": "dispatch_fallback", "operation": request.operation,
                                  "kind": kind.value, "attempts": attempts})
        elif kind is FallbackKind.SERVICE_ERROR:
            logger.warning("Non-retryable error, using fallback",
                           extra={"event": "dispatch_fallback", "operation": request.operation,
                                  "kind": kind.value, "attempts": attempts})
        metrics.record_outcome(request.operation, kind.value, attempts, time.monotonic() - start)
        return Fallback(result=fallback(request), reason=reason, kind=kind, attempts=attempts)
