"""
OrderGuard client agent.

A client owns an RSA key pair and the id the server assigned to its
public key. Every order it submits is serialized, signed and wrapped in
an envelope before being handed to the server in one synchronous call.
"""

import logging
from typing import Optional, Union

from .errors import RegistrationRejected
from .messages import (
    BuyStock,
    GetOrders,
    SellStock,
    SignedEnvelope,
    serialize_order,
)
from .security import sanitize_for_logging
from .server import REJECTED_ID, ServerContext
from .signing import KeyPair, SignatureEngine

logger = logging.getLogger(__name__)

AnyOrder = Union[BuyStock, SellStock, GetOrders]


class ClientAgent:
    """Signs orders with its own engine and submits them to a server."""

    def __init__(
        self,
        client_id: int,
        key_pair: KeyPair,
        server: ServerContext,
        signatures: Optional[SignatureEngine] = None
    ):
        self.client_id = client_id
        self.key_pair = key_pair
        self.server = server
        self.signatures = signatures or SignatureEngine(key_size=key_pair.key_size)

    @classmethod
    def create(
        cls,
        server: ServerContext,
        key_size: Optional[int] = None,
        signatures: Optional[SignatureEngine] = None
    ) -> "ClientAgent":
        """
        Generate a key pair and register it with the server.

        Raises:
            KeyGenerationFailure: If the key pair cannot be generated
            RegistrationRejected: If the server returns -1
        """
        engine = signatures or SignatureEngine()
        key_pair = engine.generate_key_pair(key_size)
        return cls.from_key_pair(server, key_pair, engine)

    @classmethod
    def from_key_pair(
        cls,
        server: ServerContext,
        key_pair: KeyPair,
        signatures: Optional[SignatureEngine] = None
    ) -> "ClientAgent":
        """
        Register an existing key pair with the server.

        Raises:
            RegistrationRejected: If the server returns -1
        """
        client_id = server.register_client(key_pair.public_key)
        if client_id == REJECTED_ID:
            raise RegistrationRejected(
                "server does not seem to accept the client registration!"
            )
        return cls(client_id, key_pair, server, signatures)

    def build_envelope(self, order: AnyOrder) -> SignedEnvelope:
        """Serialize and sign an order."""
        content = serialize_order(order)
        signature = self.signatures.sign(content.encode("utf-8"), self.key_pair.private_key)
        return SignedEnvelope(client_id=self.client_id, content=content, signature=signature)

    def submit_order(self, order: AnyOrder) -> str:
        """Sign and send an order; return the server's response unchanged."""
        envelope = self.build_envelope(order)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "client %s sending %s",
                self.client_id,
                sanitize_for_logging(envelope.model_dump(by_alias=True)),
            )
        response = self.server.accept_message(envelope.to_wire())
        logger.debug("client %s result from server: %s", self.client_id, response.strip())
        return response

    def buy_stock(self, stock_id: str, amount: str) -> str:
        return self.submit_order(BuyStock(stock_id=stock_id, amount=amount))

    def sell_stock(self, stock_id: str, amount: str) -> str:
        return self.submit_order(SellStock(stock_id=stock_id, amount=amount))

    def get_orders(self) -> str:
        return self.submit_order(GetOrders())

    def __repr__(self) -> str:
        return f"ClientAgent(client_id={self.client_id}, fingerprint={self.key_pair.fingerprint})"
