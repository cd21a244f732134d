"""JSON-file private address store.

Layout, one document for all owners:

    {"0xowner...": [{"address": "0x...", "secret": "123..."}, ...], ...}

Secrets are stored as decimal strings so they survive JSON tooling that
truncates large integers.
"""
import json
import logging
import os
import threading
from pathlib import Path

from ..models import PrivateAddressEntry

logger = logging.getLogger(__name__)


class JsonFileAddressStore:
    """Persist private address entries per owner in a single JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_all(self) -> dict[str, list[dict[str, str]]]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error("Private address file %s is corrupt: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.error("Private address file %s has an unexpected layout", self.path)
            return {}
        return data

    def _write_all(self, data: dict[str, list[dict[str, str]]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)

    def load(self, owner: str) -> list[PrivateAddressEntry]:
        with self._lock:
            raw_entries = self._read_all().get(owner.lower(), [])

        entries = []
        for raw in raw_entries:
            try:
                entries.append(
                    PrivateAddressEntry(address=raw["address"], secret=int(raw["secret"]))
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed private address entry: %s", e)
        return entries

    def save(self, owner: str, entries: list[PrivateAddressEntry]) -> None:
        with self._lock:
            data = self._read_all()
            if entries:
                data[owner.lower()] = [
                    {"address": e.address, "secret": str(e.secret)} for e in entries
                ]
            else:
                data.pop(owner.lower(), None)
            self._write_all(data)
        logger.debug("Saved %d private addresses for %s", len(entries), owner)
