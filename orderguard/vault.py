"""
OrderGuard Order Vault

Keeps accepted orders confidential at rest.

Each order is sealed with XChaCha20-Poly1305 (IETF AEAD) under the
process-wide master key. Every message gets a fresh random 192-bit
nonce, stored in front of the ciphertext:

    blob = nonce (24 bytes) || ciphertext || tag (16 bytes)

The owning client id is bound as associated data, so a blob copied
into another client's history fails authentication.

Histories are bounded FIFO rings: once a history holds ``capacity``
entries, each append evicts the oldest one.
"""

import logging
import threading
from collections import deque
from typing import Deque, Dict, Iterator, List, Optional

from nacl import bindings
from nacl.exceptions import CryptoError
from nacl.utils import random as random_bytes

from .config import HISTORY_CAPACITY
from .errors import DecryptionFailure, EncryptionFailure, KeyGenerationFailure, UnknownClient

logger = logging.getLogger(__name__)

KEY_SIZE = bindings.crypto_aead_xchacha20poly1305_ietf_KEYBYTES
NONCE_SIZE = bindings.crypto_aead_xchacha20poly1305_ietf_NPUBBYTES
TAG_SIZE = bindings.crypto_aead_xchacha20poly1305_ietf_ABYTES


class MasterKey:
    """
    The symmetric key protecting every stored order.

    Generated once per process and never rotated. The raw bytes are not
    validated here; malformed material surfaces as an encryption or
    decryption failure.
    """

    __slots__ = ("_key",)

    def __init__(self, key: bytes):
        self._key = bytes(key)

    @classmethod
    def generate(cls) -> "MasterKey":
        """
        Generate a fresh 256-bit key.

        Raises:
            KeyGenerationFailure: If the system RNG is unavailable
        """
        try:
            return cls(random_bytes(KEY_SIZE))
        except (CryptoError, OSError) as e:
            raise KeyGenerationFailure(f"Master key generation failed: {e}") from e

    @property
    def is_valid(self) -> bool:
        return len(self._key) == KEY_SIZE

    def __bytes__(self) -> bytes:
        return self._key

    def __repr__(self) -> str:
        return f"MasterKey(<{len(self._key) * 8} bits>)"


class OrderHistory:
    """Fixed-capacity ring of ciphertext blobs, oldest first."""

    def __init__(self, capacity: int = HISTORY_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: Deque[bytes] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, blob: bytes) -> bool:
        """
        Append a blob.

        Returns:
            True if the oldest entry was evicted to make room
        """
        with self._lock:
            evicted = len(self._entries) == self.capacity
            self._entries.append(blob)
            return evicted

    def snapshot(self) -> List[bytes]:
        """Copy of the current entries in arrival order."""
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _associated_data(client_id: int) -> bytes:
    return f"orderguard:client:{client_id}".encode("ascii")


class OrderVault:
    """
    Encrypts orders and keeps one bounded history per client.

    Histories for different clients lock independently; the vault-wide
    lock only guards history creation.
    """

    def __init__(self, master_key: MasterKey, capacity: int = HISTORY_CAPACITY):
        if capacity <= 0:
            raise ValueError(f"history capacity must be positive, got {capacity}")
        self._master_key = master_key
        self.capacity = capacity
        self._histories: Dict[int, OrderHistory] = {}
        self._lock = threading.Lock()

    # ============================================================
    # Histories
    # ============================================================

    def create_history(self, client_id: int) -> bool:
        """
        Create the history for a client if it does not exist yet.

        Returns:
            True if a new history was created
        """
        with self._lock:
            if client_id in self._histories:
                return False
            self._histories[client_id] = OrderHistory(self.capacity)
            return True

    def _history(self, client_id: int) -> OrderHistory:
        history = self._histories.get(client_id)
        if history is None:
            raise UnknownClient(client_id)
        return history

    def history_size(self, client_id: int) -> int:
        return len(self._history(client_id))

    # ============================================================
    # Encryption
    # ============================================================

    def encrypt(self, client_id: int, plaintext: bytes, nonce: Optional[bytes] = None) -> bytes:
        """
        Seal plaintext for a client.

        Raises:
            EncryptionFailure: On malformed key material or input
        """
        try:
            nonce = nonce if nonce is not None else random_bytes(NONCE_SIZE)
            sealed = bindings.crypto_aead_xchacha20poly1305_ietf_encrypt(
                bytes(plaintext), _associated_data(client_id), nonce, bytes(self._master_key)
            )
        except (CryptoError, TypeError, ValueError) as e:
            raise EncryptionFailure(f"Encryption failed for client {client_id}: {e}") from e
        return nonce + sealed

    def decrypt(self, client_id: int, blob: bytes) -> bytes:
        """
        Open a blob sealed for a client.

        Raises:
            DecryptionFailure: If the blob is truncated, tampered, bound to
                another client, or the key is malformed
        """
        if len(blob) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionFailure(f"Ciphertext too short for client {client_id}")
        nonce, sealed = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
        try:
            return bindings.crypto_aead_xchacha20poly1305_ietf_decrypt(
                sealed, _associated_data(client_id), nonce, bytes(self._master_key)
            )
        except (CryptoError, TypeError, ValueError) as e:
            raise DecryptionFailure(f"Decryption failed for client {client_id}: {e}") from e

    # ============================================================
    # Operations
    # ============================================================

    def encrypt_and_store(self, client_id: int, plaintext: bytes) -> bool:
        """
        Encrypt an order and append it to the client's history.

        A full history evicts its oldest entry; that is not a failure.

        Returns:
            False only if encryption failed (the caller logs it). Existing
            entries are untouched.

        Raises:
            UnknownClient: If the client has no history
        """
        history = self._history(client_id)
        try:
            blob = self.encrypt(client_id, plaintext)
        except EncryptionFailure:
            return False

        if history.append(blob):
            logger.debug("History for client %s at capacity; evicted oldest order", client_id)
        return True

    def list_decrypted(self, client_id: int) -> Iterator[str]:
        """
        Decrypt a client's history, oldest first.

        The history is snapshotted when this is called; entries are
        decrypted lazily as the iterator is consumed. The iterator is
        single-use.

        Raises:
            UnknownClient: If the client has no history (raised eagerly)
            DecryptionFailure: From the iterator, for a bad entry
        """
        entries = self._history(client_id).snapshot()
        return self._decrypt_all(client_id, entries)

    def _decrypt_all(self, client_id: int, entries: List[bytes]) -> Iterator[str]:
        for blob in entries:
            plaintext = self.decrypt(client_id, blob)
            try:
                text = plaintext.decode("utf-8")
            except UnicodeDecodeError as e:
                raise DecryptionFailure(f"Stored order for client {client_id} is not UTF-8") from e
            yield text
