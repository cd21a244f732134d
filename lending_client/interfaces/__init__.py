"""Protocol interfaces for the lending client."""
from .address_store import PrivateAddressStore
from .ledger import LedgerClient
from .price_oracle import PriceOracle

__all__ = ["LedgerClient", "PriceOracle", "PrivateAddressStore"]
