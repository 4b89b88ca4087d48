"""
Unified Logging Configuration

This module sets up the logging used by every part of ccex: the request
pipeline, the exchange-state engine, the adapters and the background
services. Modules obtain a child logger with get_logger(__name__) instead of
printing.

Usage:
    from core.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Market feed started")
    logger.debug("Applied event: OrderbookOfferUpdated")

Log Levels used across the code base:
    DEBUG    - Per-request and per-event traces (URLs, status codes, event types)
    INFO     - Lifecycle (worker/feed started or stopped, markets added)
    WARNING  - Skipped or undecodable frames, resync requests
    ERROR    - Invariant violations, transport failures

Secrets:
    Credentials are pydantic SecretStr values and render as '**********'.
    Helpers below log method/URL/status only, never headers or bodies,
    because authenticated requests carry API keys and signatures there.

Configuration:
    LOG_LEVEL and LOG_FILE settings (environment or .env) configure the
    "ccex" logger at import time; setup_logging() can reconfigure it.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from core.config import settings

ROOT_LOGGER_NAME = "ccex"
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: str = DEFAULT_FORMAT,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure and return the "ccex" logger.

    Handlers are attached to the "ccex" logger only, so embedding
    applications keep control of the root logger. Calling this again
    replaces the previous handlers.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Also write to this file, rotated at max_bytes
        log_format: Format string for every handler
        max_bytes: Size of one log file before rotation
        backup_count: Number of rotated files kept

    Returns:
        logging.Logger: Configured "ccex" logger

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Dispatcher ready")
        2024-01-01 12:00:00 [INFO] ccex: Dispatcher ready
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    formatter = logging.Formatter(log_format, datefmt=DATE_FORMAT)

    handlers: list = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count))

    app_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        app_logger.addHandler(handler)

    app_logger.setLevel(level)
    app_logger.propagate = False
    return app_logger


# ============================================
# Initialize Logger with Settings
# ============================================

logger = setup_logging(log_level=settings.log_level, log_file=settings.log_file)


# ============================================
# Convenience Functions
# ============================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger of the application logger.

    Args:
        name: Name for the logger (typically __name__)

    Returns:
        logging.Logger: e.g. "ccex.core.dispatcher"
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_log_level(level: str) -> None:
    """
    Change the log level at runtime.

    Args:
        level: New log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))


# ============================================
# Log Helper Functions
# ============================================

def log_api_request(exchange: str, method: str, url: str) -> None:
    """
    Log an outbound REST request.

    Example:
        >>> log_api_request("binance", "GET", "https://api.binance.com/api/v3/depth?symbol=BTCUSDT")
        [DEBUG] API Request: binance GET https://api.binance.com/api/v3/depth?symbol=BTCUSDT
    """
    # Signed queries carry the signature; keep only the path part.
    logger.debug(f"API Request: {exchange} {method} {url.split('?', 1)[0]}")


def log_api_response(exchange: str, url: str, status: int, response_time: Optional[float] = None) -> None:
    """
    Log a REST response with status and timing information.

    Example:
        >>> log_api_response("gdax", "https://api.gdax.com/orders", 200, 0.342)
        [DEBUG] API Response: gdax https://api.gdax.com/orders | Status: 200 | Time: 0.342s
    """
    time_str = f" | Time: {response_time:.3f}s" if response_time is not None else ""
    logger.debug(f"API Response: {exchange} {url.split('?', 1)[0]} | Status: {status}{time_str}")


def log_websocket_event(exchange: str, event: str, product: Optional[str] = None, details: Optional[str] = None) -> None:
    """
    Log a WebSocket lifecycle event with consistent formatting.

    Args:
        exchange: Exchange name
        event: Event type ("connected", "subscribed", "closed", "error")
        product: Product symbol (optional)
        details: Additional details (optional)

    Example:
        >>> log_websocket_event("gdax", "error", details="Connection reset")
        [ERROR] WebSocket: gdax error | Connection reset
    """
    product_str = f" | Product: {product}" if product else ""
    details_str = f" | {details}" if details else ""

    level = logging.ERROR if event == "error" else logging.INFO
    logger.log(level, f"WebSocket: {exchange} {event}{product_str}{details_str}")
