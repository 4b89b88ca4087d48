"""
Exchange Manager — Central Registry for Exchange Adapters

The ExchangeManager maps exchange names to adapter classes and builds
adapters on demand. Adapters are cheap, credential-bound objects, so the
manager creates a new one per call instead of holding instances.

Example Usage:
    manager = ExchangeManager()
    print(manager.list_exchanges())   # ['binance', 'gdax', 'gemini']

    gemini = manager.create("gemini", credential=settings.credential_for("gemini"))
    sandbox = manager.create("gdax", host="https://api-public.sandbox.exchange.coinbase.com")

    # Adding a new exchange:
    # 1. Implement an ExchangeAdapter subclass with a unique `name`
    # 2. manager.register(MyAdapter)
"""

from typing import Dict, List, Optional, Type

from core.exchange_interface import ExchangeAdapter
from core.logging import get_logger
from core.schemas import Credential

logger = get_logger(__name__)


class ExchangeManager:
    """
    Registry and factory of exchange adapters.

    Attributes:
        adapters: Dictionary mapping exchange names to adapter classes
    """

    def __init__(self):
        # Each exchange module imports from core, so import at call time
        from exchanges.binance import BinanceAdapter
        from exchanges.gdax import GdaxAdapter
        from exchanges.gemini import GeminiAdapter

        self.adapters: Dict[str, Type[ExchangeAdapter]] = {}
        for adapter_cls in (BinanceAdapter, GdaxAdapter, GeminiAdapter):
            self.register(adapter_cls)

        logger.info(f"ExchangeManager initialized with {len(self.adapters)} exchange(s): {', '.join(self.adapters)}")

    def register(self, adapter_cls: Type[ExchangeAdapter]) -> None:
        """
        Register an adapter class under its `name`; re-registering replaces it.

        Raises:
            ValueError: If the class does not declare a name
        """
        name = getattr(adapter_cls, "name", None)
        if not name:
            raise ValueError(f"{adapter_cls.__name__} does not declare an exchange name")
        self.adapters[name.lower()] = adapter_cls
        logger.debug(f"Registered exchange adapter: {name}")

    def create(self, name: str, credential: Optional[Credential] = None, host: Optional[str] = None) -> ExchangeAdapter:
        """
        Build an adapter by exchange name.

        Args:
            name: Exchange name (case-insensitive)
            credential: API key material for private requests
            host: REST host override

        Raises:
            ValueError: If the exchange is not registered
        """
        name = name.lower()

        if name not in self.adapters:
            available = ", ".join(self.adapters)
            logger.error(f"Exchange '{name}' not found. Available: {available}")
            raise ValueError(
                f"Exchange '{name}' is not supported. "
                f"Available exchanges: {available}"
            )

        return self.adapters[name](credential=credential, host=host)

    def has_exchange(self, name: str) -> bool:
        return name.lower() in self.adapters

    def list_exchanges(self) -> List[str]:
        return list(self.adapters)

    def get_capabilities(self, name: str) -> Dict[str, bool]:
        """
        Capabilities of a registered exchange.

        Raises:
            ValueError: If the exchange is not registered
        """
        name = name.lower()
        if name not in self.adapters:
            raise ValueError(f"Exchange '{name}' is not supported")
        return dict(self.adapters[name].capabilities)

    def __repr__(self) -> str:
        return f"<ExchangeManager(exchanges={self.list_exchanges()})>"
