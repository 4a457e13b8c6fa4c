"""
OrderGuard Key Registry

Binds client public keys to stable integer client ids.

Ids are zero-based insertion indices. Registration is idempotent: the
same key bytes always map back to the id they were first given. The
registry only grows; there is no removal or key rotation.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .errors import RegistrationRejected, UnknownClient
from .util import key_fingerprint


@dataclass(frozen=True)
class ClientRecord:
    """Immutable registry entry."""
    id: int
    public_key: bytes

    @property
    def fingerprint(self) -> str:
        return key_fingerprint(self.public_key)


class KeyRegistry:
    """
    Append-only mapping from public key bytes to client id.

    Thread-safe: the find-or-append step runs under a single lock, so
    concurrent registrations of identical key bytes yield one id.
    """

    def __init__(self, max_clients: int = 0):
        self._records: List[ClientRecord] = []
        self._by_key: Dict[bytes, int] = {}
        self._max_clients = max_clients
        self._lock = threading.Lock()

    def register_with_status(
        self,
        public_key: bytes,
        on_create: Optional[Callable[[int], object]] = None
    ) -> Tuple[int, bool]:
        """
        Register a key and report whether a new record was created.

        ``on_create`` is called with the new id inside the critical
        section, before the record is committed. If it raises, nothing is
        registered and the exception propagates.

        Returns:
            Tuple of (client_id, created)

        Raises:
            RegistrationRejected: If the key is empty or the registry is full
        """
        key = bytes(public_key)
        if not key:
            raise RegistrationRejected("public key is empty")

        with self._lock:
            existing = self._by_key.get(key)
            if existing is not None:
                return existing, False

            if self._max_clients and len(self._records) >= self._max_clients:
                raise RegistrationRejected(
                    f"registry is full ({self._max_clients} clients)"
                )

            client_id = len(self._records)
            if on_create is not None:
                on_create(client_id)
            self._records.append(ClientRecord(id=client_id, public_key=key))
            self._by_key[key] = client_id
            return client_id, True

    def register(self, public_key: bytes) -> int:
        """Register a key and return its client id."""
        client_id, _ = self.register_with_status(public_key)
        return client_id

    def lookup(self, client_id: int) -> bytes:
        """
        Get the public key registered under a client id.

        Raises:
            UnknownClient: If the id was never assigned
        """
        record = self.get_record(client_id)
        return record.public_key

    def get_record(self, client_id: int) -> ClientRecord:
        """Get the full record for a client id."""
        # Negative indices would wrap around the list.
        if isinstance(client_id, bool) or not isinstance(client_id, int) or client_id < 0:
            raise UnknownClient(client_id)
        with self._lock:
            if client_id >= len(self._records):
                raise UnknownClient(client_id)
            return self._records[client_id]

    def find(self, public_key: bytes) -> int:
        """Return the id registered for a key, or -1 if absent."""
        with self._lock:
            return self._by_key.get(bytes(public_key), -1)

    def records(self) -> List[ClientRecord]:
        """Snapshot of all records in id order."""
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, client_id: object) -> bool:
        with self._lock:
            return (
                isinstance(client_id, int)
                and not isinstance(client_id, bool)
                and 0 <= client_id < len(self._records)
            )
