"""Ledger JSON-RPC client with fallback support."""
import logging
import ssl
from typing import Any, Sequence

import aiohttp
import certifi

from ...config import LedgerConfig
from ...models import AccumulatorRecord, PositionRecord, Receipt
from ...operations import Operation, TransferAuthorization

logger = logging.getLogger(__name__)


class LedgerRpcError(RuntimeError):
    """The ledger node returned an error or could not be reached."""


def _to_int(value: Any) -> int:
    """Decode an integer that may arrive as int, decimal string or 0x-hex string."""
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    text = str(value)
    return int(text, 16) if text.lower().startswith("0x") else int(text)


class LedgerRpcClient:
    """Lending ledger RPC client with automatic endpoint fallback.

    Reads fail over to the next endpoint. Submissions go to one endpoint only,
    so an operation is never sent twice.
    """

    def __init__(self, config: LedgerConfig) -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.lending_address = config.lending_address
        self.current_rpc_index = 0

    async def rpc_call(
        self, method: str, params: list[Any], fallback: bool = True
    ) -> Any:
        """Make RPC call, falling back to alternative endpoints when allowed."""
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        attempts = len(self.endpoints) if fallback else min(1, len(self.endpoints))
        last_error: Exception | None = None
        for attempt in range(attempts):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.post(
                        rpc_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        result = await response.json()
                        if "error" in result:
                            raise LedgerRpcError(f"RPC Error: {result['error']}")

                        if rpc_index != self.current_rpc_index:
                            logger.info("Switched to RPC endpoint: %s", rpc_url)
                            self.current_rpc_index = rpc_index

                        return result.get("result")
            except Exception as e:
                last_error = e
                logger.warning("RPC endpoint %s failed on %s: %s", rpc_url, method, e)
                if attempt < attempts - 1:
                    logger.info("Trying next endpoint...")
                continue

        if not fallback and last_error is not None:
            raise LedgerRpcError(f"{method} failed: {last_error}") from last_error
        raise LedgerRpcError(f"All RPC endpoints failed. Last error: {last_error}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_public_balance(self, identity: str, asset: str) -> int:
        """Get the public token balance of ``identity``."""
        return _to_int(await self.rpc_call("token_balanceOfPublic", [asset, identity]))

    async def get_private_balance(self, identity: str, asset: str) -> int:
        """Get the private token balance of ``identity``."""
        return _to_int(await self.rpc_call("token_balanceOfPrivate", [asset, identity]))

    async def get_position(
        self, identity: str, market_id: int, asset: str
    ) -> PositionRecord:
        """Get the raw supplied/borrowed principal of ``identity`` in one asset."""
        result = await self.rpc_call(
            "lending_getPosition",
            [self.lending_address, identity, market_id, asset],
        ) or {}
        return PositionRecord(
            principal_supplied=_to_int(result.get("collateral")),
            principal_borrowed=_to_int(result.get("debt")),
        )

    async def get_total_supplied(self, market_id: int, asset: str) -> int:
        return _to_int(
            await self.rpc_call(
                "lending_getTotalDepositedAssets",
                [self.lending_address, market_id, asset],
            )
        )

    async def get_total_borrowed(self, market_id: int, asset: str) -> int:
        return _to_int(
            await self.rpc_call(
                "lending_getTotalBorrowedAssets",
                [self.lending_address, market_id, asset],
            )
        )

    async def get_accumulators(
        self, market_id: int, asset: str
    ) -> tuple[AccumulatorRecord, AccumulatorRecord]:
        """Get the (deposit, borrow) accumulator records of one asset."""
        result = await self.rpc_call(
            "lending_getAccumulators", [self.lending_address, market_id, asset]
        ) or []
        records = [
            AccumulatorRecord(
                value=_to_int(item.get("value")),
                last_updated_ts=_to_int(item.get("last_updated_ts")),
            )
            for item in result[:2]
        ]
        while len(records) < 2:
            records.append(AccumulatorRecord())
        return records[0], records[1]

    async def get_feed_price(self, feed_address: str, feed_index: int = 0) -> int:
        """Read a price from an on-ledger price feed contract."""
        result = await self.rpc_call("priceFeed_getPrice", [feed_address, feed_index])
        if isinstance(result, dict):
            return _to_int(result.get("price"))
        return _to_int(result)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def set_public_authorization(self, request: TransferAuthorization) -> None:
        """Register a public transfer authorization and wait for inclusion."""
        result = await self.rpc_call(
            "authwit_setPublic",
            [
                {
                    "caller": request.caller,
                    "contract": request.asset,
                    "action": request.action,
                    "params": request.params(),
                    "authorized": True,
                }
            ],
            fallback=False,
        ) or {}
        status = result.get("status", "success")
        if status != "success":
            raise LedgerRpcError(f"Public authorization not included: {status}")
        logger.info(
            "Public authorization registered for %s nonce %s", request.action, request.nonce
        )

    async def create_private_authorization(self, request: TransferAuthorization) -> str:
        """Create a private authorization witness for one transfer."""
        result = await self.rpc_call(
            "authwit_createPrivate",
            [
                {
                    "caller": request.caller,
                    "contract": request.asset,
                    "action": request.action,
                    "params": request.params(),
                }
            ],
            fallback=False,
        ) or {}
        witness = result.get("witness", "")
        if not witness:
            raise LedgerRpcError("Ledger returned no authorization witness")
        return witness

    async def submit(
        self, operation: Operation, authorizations: Sequence[str] = ()
    ) -> Receipt:
        """Send one operation to the lending contract and wait for the receipt."""
        result = await self.rpc_call(
            "lending_send",
            [
                self.lending_address,
                operation.METHOD,
                operation.params(),
                {"authWitnesses": list(authorizations)},
            ],
            fallback=False,
        ) or {}
        status = result.get("status", "")
        if status != "success":
            raise LedgerRpcError(f"{operation.METHOD} was not applied: {status or 'no status'}")

        block = result.get("block_number")
        receipt = Receipt(
            tx_hash=result.get("tx_hash", ""),
            status=status,
            block_number=_to_int(block) if block is not None else None,
        )
        logger.info("%s included in tx %s", operation.METHOD, receipt.tx_hash)
        return receipt
