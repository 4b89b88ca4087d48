"""
Error Taxonomy

All failures raised by the request pipeline, the exchange-state engine and the
Future/Promise primitive live here so callers can catch them selectively.

Hierarchy:
    ExchangeError
    ├── TransportError          network/connection failure (never retried)
    ├── DecodeError             body does not match the expected schema
    ├── ExchangeBusinessError   well-formed envelope that rejects the request
    ├── SigningError            request could not be authenticated
    └── InvariantViolation      event stream inconsistent with local state
        └── ResyncRequired      local book/order list must be rebuilt

    FutureError
    ├── FutureDropped           promise was closed without a value
    ├── FutureTimeout           bounded wait expired
    ├── FutureAlreadyAwaited    second waiter on a one-shot future
    └── PromiseAlreadyUsed      second resolution of a one-shot promise

Usage:
    from core.errors import ExchangeBusinessError, TransportError

    try:
        order = dispatcher.send(request)
    except ExchangeBusinessError as e:
        logger.warning(f"Order rejected: {e.code} {e.message}")
"""

from typing import Optional


class ExchangeError(Exception):
    """Base class for every error raised while talking to an exchange."""


class TransportError(ExchangeError):
    """The request never produced an HTTP/WebSocket response."""


class DecodeError(ExchangeError):
    """
    The response body could not be decoded into the expected type.

    Attributes:
        body: The raw body (truncated) that failed to decode, for diagnostics
    """

    def __init__(self, message: str, body: Optional[str] = None):
        super().__init__(message)
        self.body = body[:512] if body else body


class ExchangeBusinessError(ExchangeError):
    """
    The exchange answered, but rejected the semantics of the request.

    Classification is made from the response envelope only; `status` is kept
    for diagnostics and may well be 200.

    Attributes:
        code: Provider error code (exchange-specific, may be None)
        message: Provider error message
        status: HTTP status of the response carrying the envelope
    """

    def __init__(self, message: str, code: Optional[object] = None, status: Optional[int] = None):
        self.code = code
        self.message = message
        self.status = status
        super().__init__(self.__str__())

    def __str__(self) -> str:
        code = f" [{self.code}]" if self.code is not None else ""
        status = f" (HTTP {self.status})" if self.status is not None else ""
        return f"exchange rejected request{code}: {self.message}{status}"


class SigningError(ExchangeError):
    """Headers, query or body could not be produced for an authenticated request."""


class InvariantViolation(ExchangeError):
    """
    An event contradicts the local exchange state.

    Examples: registering a market twice, removing a price level the book
    never had, filling an order that was never added.
    """


class ResyncRequired(InvariantViolation):
    """
    Local state has drifted from the upstream stream and must be rebuilt.

    Attributes:
        product: The market that needs a fresh snapshot, if known
    """

    def __init__(self, message: str, product=None):
        super().__init__(message)
        self.product = product


class FutureError(Exception):
    """Base class for Future/Promise failures."""


class FutureDropped(FutureError):
    """The paired promise was closed without resolving."""

    def __init__(self, message: str = "promise dropped without resolving"):
        super().__init__(message)


class FutureTimeout(FutureError):
    """A bounded wait expired before the promise reached a terminal state."""


class FutureAlreadyAwaited(FutureError):
    """A one-shot future was waited on more than once."""


class PromiseAlreadyUsed(FutureError):
    """A one-shot promise was resolved, rejected or closed after completing."""
