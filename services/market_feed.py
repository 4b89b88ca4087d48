"""
Market Feed: One Thread per WebSocket Connection

MarketFeed connects to an exchange WebSocket, subscribes, and applies every
translated frame to an ExchangeState:

    connect -> send subscribe frames -> loop: recv -> translate -> state.apply

Frame handling:
    - Ping                      answered with Pong
    - text / binary             JSON-decoded and passed to feed.events_from_message
    - undecodable JSON          logged and skipped
    - protocol mismatch         logged and skipped (DecodeError)
    - exchange error message    logged (ExchangeBusinessError)
    - ResyncRequired            market cleared, fresh snapshot requested once;
                                the snapshot Batch (headed by OrderbookCleared)
                                replaces any deltas applied in the meantime
                                (a feed with no resubscribe frames, such as
                                Gemini, ends the loop with the error kept in
                                `feed.error`; a new connection resends the book)
    - TransportError            loop ends, error kept in `feed.error`

There is no reconnection; a caller that wants one starts a new MarketFeed.

Usage:
    state = ExchangeState(1, "gdax")
    feed = MarketFeed(adapter.feed([btc_usd]), state)
    feed.start()
    ...
    feed.stop()
    feed.join(timeout=5.0)
"""

import json
import threading
from typing import Optional, Set

from core.config import settings
from core.errors import DecodeError, ExchangeBusinessError, ExchangeError, ResyncRequired, TransportError
from core.events import Batch, ExchangeEvent, MarketAdded, OrderbookCleared
from core.exchange_interface import ExchangeFeed
from core.exchange_state import ExchangeState
from core.logging import get_logger, log_websocket_event
from core.schemas import CurrencyPair
from core.transport import SyncWebsocketClient, WebsocketClient, WebsocketConnection, WebsocketMessage


class MarketFeed:
    """
    Background market-data connection feeding one ExchangeState.

    Args:
        feed: Exchange-specific translator (e.g. GdaxFeed)
        state: State the events are applied to
        ws_client: WebSocket client (defaults to websockets.sync)
        recv_timeout: Seconds without any frame before the connection is
                      considered dead (defaults to settings.ws_recv_timeout)

    Attributes:
        error: Exception that ended the feed, if it ended on failure
    """

    def __init__(
        self,
        feed: ExchangeFeed,
        state: ExchangeState,
        ws_client: Optional[WebsocketClient] = None,
        recv_timeout: Optional[float] = None,
    ) -> None:
        self.feed = feed
        self.state = state
        self.ws_client = ws_client or SyncWebsocketClient()
        self.recv_timeout = recv_timeout if recv_timeout is not None else settings.ws_recv_timeout
        self.error: Optional[BaseException] = None
        self._running = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._connection: Optional[WebsocketConnection] = None
        self._resyncing: Set[CurrencyPair] = set()
        self._logger = get_logger(__name__)

    @property
    def running(self) -> bool:
        return self._running.is_set()

    def start(self) -> None:
        """Register missing markets, then connect on a new thread."""
        if self._running.is_set():
            return

        known = set(self.state.products())
        for product in self.feed.products:
            if product not in known:
                self.state.apply(MarketAdded(product=product))

        self.error = None
        self._resyncing.clear()
        self._running.set()
        self._thread = threading.Thread(target=self._run, name=f"{self.feed.name}-feed", daemon=True)
        self._thread.start()
        self._logger.info(f"Starting {self.feed.name} market feed for {len(self.feed.products)} product(s)")

    def stop(self) -> None:
        if not self._running.is_set():
            return
        self._logger.info(f"Stopping {self.feed.name} market feed...")
        self._running.clear()
        connection = self._connection
        if connection is not None:
            # Unblocks recv() on the feed thread
            connection.close()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    # ============================================
    # Feed Thread
    # ============================================

    def _run(self) -> None:
        try:
            self._connection = self.ws_client.connect(self.feed.url)
            log_websocket_event(self.feed.name, "connected", details=self.feed.url)

            for message in self.feed.subscribe_messages():
                self._send_json(message)
            log_websocket_event(self.feed.name, "subscribed", details=", ".join(str(p) for p in self.feed.products))

            while self._running.is_set():
                try:
                    frame = self._connection.recv(timeout=self.recv_timeout)
                except TimeoutError as e:
                    raise TransportError(f"No frame received within {self.recv_timeout}s") from e
                self._handle_frame(frame)

        except TransportError as e:
            # A closed socket after stop() is the normal way out
            if self._running.is_set():
                self.error = e
                self._logger.error(f"{self.feed.name} feed transport failure: {e}")
        except ExchangeError as e:
            self.error = e
            self._logger.error(f"{self.feed.name} feed stopped on {e.__class__.__name__}: {e}")
        finally:
            self._running.clear()
            if self._connection is not None:
                self._connection.close()
                self._connection = None
            log_websocket_event(self.feed.name, "disconnected")

    def _handle_frame(self, frame: WebsocketMessage) -> None:
        if frame.kind == "ping":
            self._connection.send(WebsocketMessage.pong(frame.data))
            return
        if frame.kind == "pong":
            return

        try:
            message = json.loads(frame.data)
        except ValueError as e:
            self._logger.warning(f"Skipping undecodable {self.feed.name} frame: {e}")
            return

        try:
            event = self.feed.events_from_message(message)
        except ResyncRequired as e:
            self._resync(e)
            return
        except DecodeError as e:
            self._logger.warning(f"Skipping {self.feed.name} frame: {e}")
            return
        except ExchangeBusinessError as e:
            self._logger.error(f"{self.feed.name} feed error message: {e}")
            return

        try:
            self.state.apply(event)
        except ResyncRequired as e:
            self._resync(e)
            return

        product = _snapshot_product(event)
        if product in self._resyncing:
            self._resyncing.discard(product)
            self._logger.info(f"{self.feed.name} {product} rebuilt from snapshot")

    def _resync(self, error: ResyncRequired) -> None:
        if error.product is None:
            raise error
        if error.product not in self.state.products():
            self._logger.warning(f"Ignoring {self.feed.name} update for unsubscribed market {error.product}")
            return

        if error.product in self._resyncing:
            self._logger.debug(f"{self.feed.name} {error.product} already waiting for a snapshot: {error}")
            return

        self._logger.warning(f"{self.feed.name} {error.product} out of sync ({error}); requesting snapshot")
        self._resyncing.add(error.product)
        self.state.reset_market(error.product)
        messages = self.feed.resubscribe_messages(error.product)
        if not messages:
            self._logger.error(f"{self.feed.name} cannot resend a snapshot on this connection; reconnect required")
            raise error
        for message in messages:
            self._send_json(message)

    def _send_json(self, message: dict) -> None:
        self._connection.send(WebsocketMessage.text(json.dumps(message)))


def _snapshot_product(event: ExchangeEvent) -> Optional[CurrencyPair]:
    """Product whose book this event replaces, if it is a snapshot Batch."""
    if isinstance(event, Batch) and event.events and isinstance(event.events[0], OrderbookCleared):
        return event.events[0].product
    return None
