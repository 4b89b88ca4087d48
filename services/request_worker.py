"""
Request Worker: Dedicated I/O Thread for REST Calls

RequestWorker owns one thread that sends RequestDescriptors through a
Dispatcher, one at a time, and hands each outcome back to the caller through
a one-shot Future.

    with RequestWorker(adapter.dispatcher(http), name="gdax-rest") as worker:
        future = worker.submit(adapter.authenticate(GetOrders()))
        ...
        orders = future.wait(timeout=5.0)

Outcomes:
    - success         -> future.wait() returns the decoded value
    - ExchangeError   -> future.wait() re-raises it on the caller's thread
    - anything else   -> logged; the promise is dropped (FutureDropped)
    - stopped first   -> the promise is dropped (FutureDropped)
"""

import queue
import threading
from typing import Optional, Tuple

from core.api import RequestDescriptor
from core.dispatcher import Dispatcher
from core.errors import ExchangeError
from core.future import Future, Promise
from core.logging import get_logger

_STOP = object()


class RequestWorker:
    """
    Single-threaded executor of request descriptors.

    Args:
        dispatcher: Dispatcher used for every request
        name: Thread name
        max_queue_size: Bound of the request queue (0 = unbounded)
    """

    def __init__(self, dispatcher: Dispatcher, name: str = "request-worker", max_queue_size: int = 0) -> None:
        self._dispatcher = dispatcher
        self._name = name
        self._queue: "queue.Queue" = queue.Queue(maxsize=max_queue_size)
        self._running = threading.Event()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._logger = get_logger(__name__)

    @property
    def running(self) -> bool:
        return self._running.is_set()

    def start(self) -> None:
        with self._lock:
            if self._running.is_set():
                return
            self._running.set()
            self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
            self._thread.start()
        self._logger.info(f"Request worker '{self._name}' started")

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop the worker thread.

        The request in flight (if any) completes; requests still queued are
        dropped, so their futures raise FutureDropped.
        """
        with self._lock:
            if not self._running.is_set():
                return
            self._running.clear()
            self._queue.put(_STOP)
            thread, self._thread = self._thread, None

        self._logger.info(f"Stopping request worker '{self._name}'...")
        if thread is not None:
            thread.join(timeout)
        self._drain()
        self._logger.info(f"Request worker '{self._name}' stopped")

    def submit(self, descriptor: RequestDescriptor) -> Future:
        """
        Queue a descriptor for sending.

        Raises:
            RuntimeError: If the worker is not running
        """
        future, promise = Future.create()
        with self._lock:
            if not self._running.is_set():
                raise RuntimeError(f"Request worker '{self._name}' is not running")
            self._queue.put((descriptor, promise))
        self._logger.debug(f"Queued {descriptor.__class__.__name__} on '{self._name}'")
        return future

    # ============================================
    # Worker Thread
    # ============================================

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            descriptor, promise = item
            self._execute(descriptor, promise)

    def _execute(self, descriptor: RequestDescriptor, promise: Promise) -> None:
        with promise:
            if not self._running.is_set():
                return
            try:
                value = self._dispatcher.send(descriptor)
            except ExchangeError as e:
                promise.reject(e)
            except Exception:
                self._logger.exception(f"Unexpected failure sending {descriptor.__class__.__name__}")
            else:
                promise.resolve(value)

    def _drain(self) -> None:
        dropped = 0
        while True:
            try:
                item: Tuple = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is _STOP:
                continue
            item[1].close()
            dropped += 1
        if dropped:
            self._logger.warning(f"Dropped {dropped} queued request(s) on '{self._name}'")

    def __enter__(self) -> "RequestWorker":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
