"""Pyth Network price oracle service."""
import logging
import ssl

import aiohttp
import certifi

from ..config import PythConfig
from ..precision import PRICE_PRECISION

logger = logging.getLogger(__name__)


def _normalize_feed_id(feed_id: str) -> str:
    """Hermes reports feed ids without the 0x prefix."""
    return feed_id[2:].lower() if feed_id.lower().startswith("0x") else feed_id.lower()


def scale_price(price_raw: int, expo: int) -> int:
    """Rescale a Pyth ``price * 10**expo`` pair to an integer at PRICE_PRECISION."""
    shift = expo + PRICE_PRECISION
    if shift >= 0:
        return price_raw * 10**shift
    return price_raw // 10**-shift


class PythOracle:
    """Fetch prices from Pyth Network oracle."""

    def __init__(self, config: PythConfig) -> None:
        self.hermes_url = config.hermes_url

    async def get_price(self, feed_id: str) -> int:
        """Return the latest price for one feed, or 0 when it is unavailable."""
        prices = await self.fetch_prices([feed_id])
        return prices.get(feed_id, 0)

    async def fetch_prices(self, feed_ids: list[str]) -> dict[str, int]:
        """Fetch current prices for several feeds in a single Hermes request.

        Args:
            feed_ids: Pyth price feed ids, with or without ``0x`` prefix.

        Returns:
            Mapping of the requested feed ids to prices at PRICE_PRECISION.
            Feeds missing from the response are absent from the mapping.
        """
        prices: dict[str, int] = {}

        # Create reverse mapping from normalized feed ID to requested ids
        id_to_requested: dict[str, list[str]] = {}
        for feed_id in feed_ids:
            id_to_requested.setdefault(_normalize_feed_id(feed_id), []).append(feed_id)

        if not id_to_requested:
            return prices

        query_params = "&".join([f"ids[]={fid}" for fid in id_to_requested])
        url = f"{self.hermes_url}?{query_params}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching prices from Pyth: HTTP %s", response.status
                        )
                        return prices

                    data = await response.json()
                    for item in data.get("parsed", []):
                        feed_id = _normalize_feed_id(item.get("id", ""))
                        price_data = item.get("price", {})
                        price = scale_price(
                            int(price_data.get("price", 0)),
                            int(price_data.get("expo", 0)),
                        )

                        for requested in id_to_requested.get(feed_id, []):
                            prices[requested] = price

                    logger.debug("Fetched %d prices from Pyth Network", len(prices))

        except Exception as e:
            logger.error("Error fetching prices from Pyth: %s", e)

        return prices
