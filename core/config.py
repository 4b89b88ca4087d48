"""
Configuration Management Module

Loads, validates and exposes ccex configuration from environment variables
(or a .env file) using Pydantic Settings.

Key Features:
- Per-exchange REST hosts and WebSocket URLs, with sandbox variants
- Optional per-exchange API credentials held as SecretStr
- Request and WebSocket timeouts for the transport layer
- Log level for core.logging

Usage:
    from core.config import settings

    host = settings.host_for("gdax")
    credential = settings.credential_for("gdax")  # None when not configured
"""

from typing import Dict, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.schemas import Credential


class Settings(BaseSettings):
    """
    Application Settings

    Attributes:
        environment: "production" or "sandbox"; selects hosts in host_for()
        log_level: Logging level for core.logging
        log_file: Optional rotating log file for core.logging
        request_timeout: Total timeout of one REST call, in seconds
        ws_recv_timeout: Timeout of one WebSocket recv(), in seconds
        *_host / *_ws_url: Exchange endpoints
        *_api_key / *_api_secret / gdax_passphrase: Optional credentials
    """

    # ============================================
    # Application Configuration
    # ============================================

    environment: str = Field(
        default="production",
        description="Exchange environment (production, sandbox)"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    log_file: Optional[str] = Field(
        default=None,
        description="Optional path of a rotating log file, in addition to stdout"
    )

    # ============================================
    # Transport
    # ============================================

    request_timeout: float = Field(
        default=10.0,
        description="HTTP request timeout in seconds"
    )

    ws_recv_timeout: float = Field(
        default=30.0,
        description="WebSocket receive timeout in seconds"
    )

    # ============================================
    # Exchange Endpoints
    # ============================================

    binance_host: str = Field(default="https://api.binance.com")

    gdax_host: str = Field(default="https://api.exchange.coinbase.com")
    gdax_sandbox_host: str = Field(default="https://api-public.sandbox.exchange.coinbase.com")
    gdax_ws_url: str = Field(default="wss://ws-feed.exchange.coinbase.com")
    gdax_sandbox_ws_url: str = Field(default="wss://ws-feed-public.sandbox.exchange.coinbase.com")

    gemini_host: str = Field(default="https://api.gemini.com")
    gemini_sandbox_host: str = Field(default="https://api.sandbox.gemini.com")
    gemini_ws_url: str = Field(default="wss://api.gemini.com")
    gemini_sandbox_ws_url: str = Field(default="wss://api.sandbox.gemini.com")

    # ============================================
    # Credentials (optional, private endpoints only)
    # ============================================

    binance_api_key: str = Field(default="")
    binance_api_secret: SecretStr = Field(default=SecretStr(""))

    gdax_api_key: str = Field(default="")
    gdax_api_secret: SecretStr = Field(default=SecretStr(""))
    gdax_passphrase: SecretStr = Field(default=SecretStr(""))

    gemini_api_key: str = Field(default="")
    gemini_api_secret: SecretStr = Field(default=SecretStr(""))

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False
    )

    # ============================================
    # Helpers
    # ============================================

    @property
    def is_sandbox(self) -> bool:
        return self.environment.lower() == "sandbox"

    def host_for(self, exchange: str) -> str:
        """
        REST host for an exchange, honouring the sandbox environment.

        Raises:
            ValueError: If the exchange has no configured host
        """
        exchange = exchange.lower()
        hosts: Dict[str, str] = {
            "binance": self.binance_host,
            "gdax": self.gdax_sandbox_host if self.is_sandbox else self.gdax_host,
            "gemini": self.gemini_sandbox_host if self.is_sandbox else self.gemini_host,
        }
        if exchange not in hosts:
            raise ValueError(f"No host configured for exchange '{exchange}'")
        return hosts[exchange]

    def ws_url_for(self, exchange: str) -> str:
        exchange = exchange.lower()
        urls: Dict[str, str] = {
            "gdax": self.gdax_sandbox_ws_url if self.is_sandbox else self.gdax_ws_url,
            "gemini": self.gemini_sandbox_ws_url if self.is_sandbox else self.gemini_ws_url,
        }
        if exchange not in urls:
            raise ValueError(f"No WebSocket URL configured for exchange '{exchange}'")
        return urls[exchange]

    def credential_for(self, exchange: str) -> Optional[Credential]:
        """
        Build a Credential for an exchange from the configured secrets.

        Returns:
            Credential, or None when the key or secret is missing
        """
        exchange = exchange.lower()
        if exchange == "binance":
            key, secret, passphrase = self.binance_api_key, self.binance_api_secret, None
        elif exchange == "gdax":
            key, secret, passphrase = self.gdax_api_key, self.gdax_api_secret, self.gdax_passphrase
        elif exchange == "gemini":
            key, secret, passphrase = self.gemini_api_key, self.gemini_api_secret, None
        else:
            raise ValueError(f"Unknown exchange '{exchange}'")

        if not key or not secret.get_secret_value():
            return None
        return Credential(key=key, secret=secret, passphrase=passphrase)


# ============================================
# Global Settings Instance
# ============================================

settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration(config: Optional[Settings] = None) -> None:
    """
    Validate critical configuration settings.

    Args:
        config: Settings to check (defaults to the global instance)

    Raises:
        ValueError: If a setting is missing or invalid
    """
    # logging.py imports this module, so import lazily
    from core.logging import logger

    config = config or settings

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{config.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    if config.environment.lower() not in ("production", "sandbox"):
        raise ValueError(
            f"Invalid ENVIRONMENT: '{config.environment}'. Must be 'production' or 'sandbox'"
        )

    if config.request_timeout <= 0:
        raise ValueError(f"REQUEST_TIMEOUT must be positive, got {config.request_timeout}")
    if config.ws_recv_timeout <= 0:
        raise ValueError(f"WS_RECV_TIMEOUT must be positive, got {config.ws_recv_timeout}")

    for name in ("binance_host", "gdax_host", "gdax_sandbox_host", "gemini_host", "gemini_sandbox_host"):
        value = getattr(config, name)
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"{name.upper()} must be an http(s) URL, got '{value}'")

    for name in ("gdax_ws_url", "gdax_sandbox_ws_url", "gemini_ws_url", "gemini_sandbox_ws_url"):
        value = getattr(config, name)
        if not value.startswith(("ws://", "wss://")):
            raise ValueError(f"{name.upper()} must be a ws(s) URL, got '{value}'")

    logger.info("Configuration validated successfully")
    logger.info(f"Environment: {config.environment.lower()}")
    logger.info(f"Log level: {config.log_level.upper()}")
