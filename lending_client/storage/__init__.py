"""Local persistence for private address entries."""
from .address_store import JsonFileAddressStore

__all__ = ["JsonFileAddressStore"]
