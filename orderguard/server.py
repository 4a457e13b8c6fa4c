"""
OrderGuard server context.

Owns all server-side state for one process: the master key, the key
registry, the order vault and the protocol that ties them together.
Build it once with ``create_server()`` and hand the instance to every
client; nothing here is module-global.
"""

import logging
from typing import Optional

from . import config
from .errors import InvalidKeyMaterial, RegistrationRejected
from .logging_config import audit_log
from .messages import SignedEnvelope
from .protocol import OrderProtocol, ProtocolResult
from .registry import KeyRegistry
from .signing import SignatureEngine
from .util import key_fingerprint
from .vault import MasterKey, OrderVault

logger = logging.getLogger(__name__)

REJECTED_ID = -1


class ServerContext:
    """Shared server-side state plus the two request entry points."""

    def __init__(
        self,
        master_key: MasterKey,
        registry: KeyRegistry,
        signatures: SignatureEngine,
        vault: OrderVault
    ):
        self.master_key = master_key
        self.registry = registry
        self.signatures = signatures
        self.vault = vault
        self.protocol = OrderProtocol(registry, signatures, vault)

    def register_client(self, public_key: bytes) -> int:
        """
        Register a client public key.

        Returns:
            The client id (the existing id for a known key), or -1 if
            the key was rejected
        """
        try:
            key = bytes(public_key)
        except (TypeError, ValueError):
            audit_log.registration_rejected("", f"public key must be bytes, not {type(public_key).__name__}")
            return REJECTED_ID

        fingerprint = key_fingerprint(key)
        try:
            self.signatures.load_public_key(key)
            # The history exists before the id becomes visible.
            client_id, created = self.registry.register_with_status(
                key, on_create=self.vault.create_history
            )
        except (InvalidKeyMaterial, RegistrationRejected) as e:
            audit_log.registration_rejected(fingerprint, str(e))
            return REJECTED_ID

        audit_log.client_registered(client_id, fingerprint, new=created)
        return client_id

    def accept_message(self, message: str) -> str:
        """Handle one envelope in wire form."""
        return self.protocol.accept_message(message)

    def process(self, envelope: SignedEnvelope) -> ProtocolResult:
        """Handle one deserialized envelope, returning the full result."""
        return self.protocol.process(envelope)


def create_server(
    key_size: Optional[int] = None,
    history_capacity: Optional[int] = None,
    max_clients: Optional[int] = None,
    master_key: Optional[MasterKey] = None
) -> ServerContext:
    """
    Build a server context from configuration.

    Args:
        key_size: RSA size for keys generated through this server's engine
        history_capacity: Orders kept per client
        max_clients: Registry limit (0 = unlimited)
        master_key: Existing key; a fresh one is generated when omitted

    Raises:
        KeyGenerationFailure: If the master key cannot be generated
        ValueError: If the history capacity is not positive
    """
    for check, passed in config.validate_config().items():
        if not passed:
            logger.warning("Configuration check failed: %s", check)

    key = master_key if master_key is not None else MasterKey.generate()
    capacity = history_capacity if history_capacity is not None else config.HISTORY_CAPACITY
    limit = max_clients if max_clients is not None else config.MAX_CLIENTS

    return ServerContext(
        master_key=key,
        registry=KeyRegistry(max_clients=limit),
        signatures=SignatureEngine(key_size=key_size or config.RSA_KEY_SIZE),
        vault=OrderVault(key, capacity=capacity),
    )
