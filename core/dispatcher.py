"""
Dispatcher: Executes Request Descriptors

The Dispatcher is the single place where a RequestDescriptor turns into
network traffic:

    1. Read method, path, query, headers and body from the descriptor
       (for an AuthenticatedRequest this is when signing happens)
    2. Build the URL: host + path [+ "?" + encoded query]
    3. Send through the HttpClient
    4. Hand the response to descriptor.decode()

Failure classification:
    - building parts fails           -> SigningError
    - no response obtained           -> TransportError (from the HttpClient)
    - response rejected by envelope  -> ExchangeBusinessError (from decode)
    - response not decodable         -> DecodeError

Any status code, 4xx and 5xx included, reaches decode(); the exchange's
envelope decides whether it is an error.

Usage:
    with HttpxClient(timeout=settings.request_timeout) as http:
        dispatcher = Dispatcher(settings.host_for("gdax"), http, exchange="gdax")
        book = dispatcher.send(GetOrderbook(btc_usd))
"""

import time
from typing import Optional, TypeVar

from core.api import RequestDescriptor
from core.errors import DecodeError, ExchangeError, SigningError
from core.logging import get_logger, log_api_request, log_api_response
from core.transport import HttpClient, PreparedRequest

T = TypeVar("T")


class Dispatcher:
    """
    Sends descriptors to one exchange host.

    Thread-safe as long as the HttpClient is; it holds no per-request state.

    Args:
        host: Scheme and authority, e.g. "https://api.binance.com"
        http_client: Transport used to send requests
        exchange: Exchange name used in log lines
    """

    def __init__(self, host: str, http_client: HttpClient, exchange: str = "exchange"):
        self.host = host.rstrip("/")
        self.http_client = http_client
        self.exchange = exchange
        self.logger = get_logger(__name__)

    def prepare(self, descriptor: RequestDescriptor) -> PreparedRequest:
        """
        Materialize a descriptor into a PreparedRequest.

        Raises:
            SigningError: If headers, query or body could not be produced
        """
        try:
            method = descriptor.method()
            path = descriptor.path()
            query = descriptor.query()
            headers = descriptor.headers()
            body = descriptor.body()
        except ExchangeError:
            raise
        except Exception as e:
            self.logger.error(f"[{self.exchange}] Failed to build {descriptor.__class__.__name__}: {e}")
            raise SigningError(f"Could not build request: {e}") from e

        url = f"{self.host}{path}"
        if query:
            url = f"{url}?{query.encode()}"

        headers = dict(headers)
        payload: Optional[bytes] = None
        if body is not None:
            payload = body.as_bytes()
            headers.setdefault("Content-Type", body.content_type)

        return PreparedRequest(method=method, url=url, headers=headers, body=payload)

    def send(self, descriptor: RequestDescriptor[T]) -> T:
        """
        Execute a descriptor and decode its response.

        Raises:
            SigningError, TransportError, ExchangeBusinessError, DecodeError
        """
        request = self.prepare(descriptor)

        log_api_request(self.exchange, request.method.value, request.url)
        started = time.monotonic()
        response = self.http_client.send(request)
        log_api_response(self.exchange, request.url, response.status, time.monotonic() - started)

        try:
            return descriptor.decode(response)
        except ExchangeError as e:
            self.logger.warning(f"[{self.exchange}] {descriptor.__class__.__name__} failed: {e}")
            raise
        except Exception as e:
            self.logger.error(f"[{self.exchange}] Could not decode {descriptor.__class__.__name__}: {e}")
            raise DecodeError(f"Could not decode response: {e}", body=response.text()) from e
