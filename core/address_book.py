"""
Address Book - identity id -> wallet address

Registration is an upsert: registering the same identity again replaces
its previous address. Addresses are validated before they are accepted and
stored lower-case; equality is case-insensitive.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from .abi import normalize_address

logger = logging.getLogger("tiers.address_book")


@dataclass(frozen=True)
class RegisteredHolder:
    identity: str
    address: str
    registered_at: float = 0.0


class AddressBook(ABC):

    @abstractmethod
    def upsert(self, identity: str, address: str) -> RegisteredHolder:
        ...

    @abstractmethod
    def get(self, identity: str) -> Optional[RegisteredHolder]:
        ...

    @abstractmethod
    def holders(self) -> list[RegisteredHolder]:
        ...


class MemoryAddressBook(AddressBook):
    """Process-local address book (no persistence)."""

    def __init__(self):
        self._entries: dict[str, RegisteredHolder] = {}

    def upsert(self, identity: str, address: str) -> RegisteredHolder:
        holder = RegisteredHolder(
            identity=str(identity),
            address=normalize_address(address),
            registered_at=time.time(),
        )
        self._entries[holder.identity] = holder
        return holder

    def get(self, identity: str) -> Optional[RegisteredHolder]:
        return self._entries.get(str(identity))

    def holders(self) -> list[RegisteredHolder]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


class JsonAddressBook(MemoryAddressBook):
    """
    Address book persisted to a JSON file.

    Every upsert rewrites the file via tmp + rename so a crash mid-write
    never leaves a truncated book behind.
    """

    def __init__(self, path):
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self):
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"address book {self.path} is corrupt: {e}") from e

        for entry in data.get("holders", []):
            holder = RegisteredHolder(**entry)
            self._entries[holder.identity] = holder
        logger.info(f"Address book loaded: {len(self._entries)} holders from {self.path}")

    def _save(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {"holders": [asdict(h) for h in self._entries.values()]}
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def upsert(self, identity: str, address: str) -> RegisteredHolder:
        holder = super().upsert(identity, address)
        self._save()
        logger.info(f"Registered user ID: {holder.identity} with wallet address: {holder.address}")
        return holder
