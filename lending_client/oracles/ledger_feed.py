"""On-ledger price feed oracle, read through the ledger RPC client."""
import logging

from ..chains.ledger.client import LedgerRpcClient

logger = logging.getLogger(__name__)


class LedgerFeedOracle:
    """Read prices from the price feed contract an asset names as its oracle.

    Feed contracts already report prices at PRICE_PRECISION.
    """

    def __init__(self, client: LedgerRpcClient) -> None:
        self.client = client

    async def get_price(self, feed_id: str) -> int:
        try:
            price = await self.client.get_feed_price(feed_id)
        except Exception as e:
            logger.error("Error fetching price from feed %s: %s", feed_id, e)
            return 0
        if price < 0:
            logger.warning("Feed %s reported a negative price: %s", feed_id, price)
            return 0
        return price
