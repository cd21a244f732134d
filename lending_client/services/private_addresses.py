"""Private address book for one owner, backed by a PrivateAddressStore."""
import logging

from ..errors import UnknownRecipient
from ..interfaces import PrivateAddressStore
from ..models import PrivateAddressEntry
from ..privacy import derive_private_address, generate_secret, same_address

logger = logging.getLogger(__name__)


class PrivateAddressBook:
    """Derived private addresses of one owner.

    Entries are keyed by derived address; adding an address twice is a no-op.
    Every change is written through to the store immediately.
    """

    def __init__(self, store: PrivateAddressStore, owner: str) -> None:
        self.store = store
        self.owner = owner
        self._entries: list[PrivateAddressEntry] = store.load(owner)

    @property
    def entries(self) -> tuple[PrivateAddressEntry, ...]:
        return tuple(self._entries)

    def reload(self) -> None:
        self._entries = self.store.load(self.owner)

    def find(self, address: str) -> PrivateAddressEntry | None:
        for entry in self._entries:
            if same_address(entry.address, address):
                return entry
        return None

    def secret_for(self, address: str) -> int:
        """Return the stored secret of ``address``.

        Raises:
            UnknownRecipient: no entry exists for ``address``.
        """
        entry = self.find(address)
        if entry is None:
            raise UnknownRecipient(f"No stored secret for private address {address}")
        return entry.secret

    def add_with_secret(self, secret: int) -> PrivateAddressEntry:
        """Derive the address for ``secret`` and store it if not already known."""
        address = derive_private_address(secret, self.owner)
        existing = self.find(address)
        if existing is not None:
            return existing

        entry = PrivateAddressEntry(address=address, secret=secret)
        self._entries.append(entry)
        self.store.save(self.owner, self._entries)
        logger.info("Added private address %s for %s", address, self.owner)
        return entry

    def add_new(self) -> PrivateAddressEntry:
        """Generate a fresh secret and store the address derived from it."""
        return self.add_with_secret(generate_secret())

    def remove(self, address: str) -> bool:
        remaining = [e for e in self._entries if not same_address(e.address, address)]
        if len(remaining) == len(self._entries):
            return False
        self._entries = remaining
        self.store.save(self.owner, self._entries)
        logger.info("Removed private address %s for %s", address, self.owner)
        return True

    def clear(self) -> None:
        self._entries = []
        self.store.save(self.owner, [])
        logger.info("Cleared private addresses for %s", self.owner)
