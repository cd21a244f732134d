"""Price oracle protocol — price feed abstraction."""
from typing import Protocol


class PriceOracle(Protocol):
    """Abstract interface for fetching asset prices.

    Prices are integers at PRICE_PRECISION; 0 means no usable price.
    """

    async def get_price(self, feed_id: str) -> int: ...
