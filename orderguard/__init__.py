"""
OrderGuard

Signed, encrypted order intake for a simulated stock server.

Clients register an RSA public key and receive a client id. Every order
they send is signed; the server verifies the signature against the
registered key before anything else happens. Accepted buy/sell orders
are encrypted under a per-process master key and kept in a bounded
per-client history that can be read back with a signed GetOrders.

Usage:
    from orderguard import ClientAgent, create_server

    server = create_server()
    client = ClientAgent.create(server)

    client.buy_stock("ABC", "012")   # '{"signatureValid":true,"stored":true}'
    client.get_orders()              # one announcement line per stored order
"""

__version__ = "1.0.0"
__license__ = "Apache-2.0"

from .client import ClientAgent
from .errors import (
    DecryptionFailure,
    EncryptionFailure,
    InvalidKeyMaterial,
    KeyGenerationFailure,
    MalformedPayload,
    OrderGuardError,
    RegistrationRejected,
    UnknownClient,
)
from .messages import (
    ENCRYPTION_FAILURE,
    FAILURE,
    NO_ORDERS_IN_QUEUE,
    Acknowledgment,
    BuyStock,
    GetOrders,
    OrderType,
    SellStock,
    SignedEnvelope,
    parse_order,
    parse_server_response,
    parse_signed_message,
    random_order,
    serialize_order,
)
from .protocol import OrderProtocol, Outcome, ProtocolResult, ProtocolState
from .registry import ClientRecord, KeyRegistry
from .server import REJECTED_ID, ServerContext, create_server
from .signing import (
    KeyPair,
    SignatureEngine,
    generate_signing_key,
    sign_data,
    verify_signature,
)
from .vault import MasterKey, OrderHistory, OrderVault


__all__ = [
    # Version
    "__version__",

    # Server
    "ServerContext",
    "create_server",
    "REJECTED_ID",

    # Client
    "ClientAgent",

    # Registry
    "KeyRegistry",
    "ClientRecord",

    # Signing
    "SignatureEngine",
    "KeyPair",
    "generate_signing_key",
    "sign_data",
    "verify_signature",

    # Vault
    "OrderVault",
    "OrderHistory",
    "MasterKey",

    # Protocol
    "OrderProtocol",
    "ProtocolState",
    "ProtocolResult",
    "Outcome",

    # Messages
    "BuyStock",
    "SellStock",
    "GetOrders",
    "OrderType",
    "SignedEnvelope",
    "Acknowledgment",
    "serialize_order",
    "parse_order",
    "parse_signed_message",
    "parse_server_response",
    "random_order",
    "NO_ORDERS_IN_QUEUE",
    "FAILURE",
    "ENCRYPTION_FAILURE",

    # Errors
    "OrderGuardError",
    "KeyGenerationFailure",
    "InvalidKeyMaterial",
    "RegistrationRejected",
    "UnknownClient",
    "EncryptionFailure",
    "DecryptionFailure",
    "MalformedPayload",
]
