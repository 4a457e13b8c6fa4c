"""
OrderGuard Order Protocol

Server-side handling of a single signed envelope.

State machine:

    ENVELOPE_RECEIVED -> SIGNATURE_CHECKED -> DISPATCHED -> RESPONSE_READY

Every envelope ends in RESPONSE_READY, either with the requested result
or with a failure response. There is no retry.

Invariants:
- The client id must resolve before the signature is looked at.
- The signature is checked before the order is parsed. An invalid
  signature never reaches the vault, so unauthenticated data is never
  stored.
- No exception escapes request handling; failures are logged once here
  and mapped to a response text.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .errors import DecryptionFailure, MalformedPayload, UnknownClient
from .logging_config import audit_log, request_scope
from .messages import (
    ENCRYPTION_FAILURE,
    FAILURE,
    NO_ORDERS_IN_QUEUE,
    GetOrders,
    SignedEnvelope,
    create_server_response_message,
    create_server_send_orders_message,
    parse_order,
    parse_signed_message,
)
from .registry import KeyRegistry
from .signing import SignatureEngine
from .vault import OrderVault


class ProtocolState(str, Enum):
    """States an envelope passes through."""
    ENVELOPE_RECEIVED = "ENVELOPE_RECEIVED"
    SIGNATURE_CHECKED = "SIGNATURE_CHECKED"
    DISPATCHED = "DISPATCHED"
    RESPONSE_READY = "RESPONSE_READY"


class Outcome(str, Enum):
    """How a request was resolved."""
    ACCEPTED = "ACCEPTED"                      # buy/sell stored
    LISTED = "LISTED"                          # history returned
    EMPTY = "EMPTY"                            # history empty
    SIGNATURE_INVALID = "SIGNATURE_INVALID"
    UNKNOWN_CLIENT = "UNKNOWN_CLIENT"
    MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"
    ENCRYPTION_FAILURE = "ENCRYPTION_FAILURE"
    DECRYPTION_FAILURE = "DECRYPTION_FAILURE"
    INTERNAL_ERROR = "INTERNAL_ERROR"          # fail closed


FAILED_OUTCOMES = frozenset({
    Outcome.UNKNOWN_CLIENT,
    Outcome.MALFORMED_PAYLOAD,
    Outcome.ENCRYPTION_FAILURE,
    Outcome.DECRYPTION_FAILURE,
    Outcome.INTERNAL_ERROR,
})


@dataclass
class ProtocolResult:
    """Result of processing one envelope."""
    outcome: Outcome
    response: str
    client_id: Optional[int] = None
    signature_valid: Optional[bool] = None
    states: List[ProtocolState] = field(default_factory=list)
    request_id: str = ""

    @property
    def state(self) -> ProtocolState:
        return self.states[-1]

    def failed(self) -> bool:
        return self.outcome in FAILED_OUTCOMES


class OrderProtocol:
    """
    Verifies envelopes and dispatches orders to the vault.

    Holds references to the shared server-side components; it keeps no
    state of its own between requests.
    """

    def __init__(self, registry: KeyRegistry, signatures: SignatureEngine, vault: OrderVault):
        self.registry = registry
        self.signatures = signatures
        self.vault = vault

    def accept_message(self, message: str) -> str:
        """Handle one envelope in wire form and return the response text."""
        with request_scope() as request_id:
            try:
                envelope = parse_signed_message(message)
            except MalformedPayload as e:
                audit_log.request_failed(Outcome.MALFORMED_PAYLOAD.value, str(e))
                return FAILURE
            return self._process(envelope, request_id).response

    def process(self, envelope: SignedEnvelope) -> ProtocolResult:
        """Handle one already-deserialized envelope."""
        with request_scope() as request_id:
            return self._process(envelope, request_id)

    def _process(self, envelope: SignedEnvelope, request_id: str) -> ProtocolResult:
        result = ProtocolResult(
            outcome=Outcome.INTERNAL_ERROR,
            response=FAILURE,
            client_id=envelope.client_id,
            states=[ProtocolState.ENVELOPE_RECEIVED],
            request_id=request_id,
        )
        try:
            self._run(envelope, result)
        except UnknownClient as e:
            # id resolved but no history behind it
            self._fail(result, Outcome.UNKNOWN_CLIENT, FAILURE, str(e))
        except Exception as e:
            # Any error = fail closed
            result.outcome = Outcome.INTERNAL_ERROR
            result.response = FAILURE
            audit_log.request_failed(result.outcome.value, repr(e), envelope.client_id)
        result.states.append(ProtocolState.RESPONSE_READY)
        return result

    def _fail(self, result: ProtocolResult, outcome: Outcome, response: str, reason: str) -> None:
        result.outcome = outcome
        result.response = response
        audit_log.request_failed(outcome.value, reason, result.client_id)

    def _run(self, envelope: SignedEnvelope, result: ProtocolResult) -> None:
        client_id = envelope.client_id
        audit_log.order_received(client_id, len(envelope.content))

        # ENVELOPE_RECEIVED: resolve the claimed identity
        try:
            public_key = self.registry.lookup(client_id)
        except UnknownClient as e:
            self._fail(result, Outcome.UNKNOWN_CLIENT, FAILURE, str(e))
            return

        # SIGNATURE_CHECKED
        valid = self.signatures.verify(envelope.payload, envelope.signature, public_key)
        result.states.append(ProtocolState.SIGNATURE_CHECKED)
        result.signature_valid = valid
        if not valid:
            result.outcome = Outcome.SIGNATURE_INVALID
            result.response = create_server_response_message(False)
            audit_log.security_event(
                "invalid_signature", severity="medium", client_id=client_id
            )
            return
        audit_log.signature_checked(client_id)

        # DISPATCHED
        result.states.append(ProtocolState.DISPATCHED)
        try:
            order = parse_order(envelope.content)
        except MalformedPayload as e:
            self._fail(result, Outcome.MALFORMED_PAYLOAD, FAILURE, str(e))
            return

        if isinstance(order, GetOrders):
            self._list_orders(client_id, result)
        else:
            self._store_order(client_id, order.type, envelope, result)

    def _store_order(self, client_id: int, order_type: str, envelope: SignedEnvelope, result: ProtocolResult) -> None:
        if not self.vault.encrypt_and_store(client_id, envelope.payload):
            self._fail(result, Outcome.ENCRYPTION_FAILURE, ENCRYPTION_FAILURE,
                       f"{order_type} could not be encrypted")
            return

        audit_log.order_stored(client_id, order_type, self.vault.history_size(client_id))
        result.outcome = Outcome.ACCEPTED
        result.response = create_server_response_message(True, stored=True)

    def _list_orders(self, client_id: int, result: ProtocolResult) -> None:
        try:
            lines = [
                create_server_send_orders_message(order)
                for order in self.vault.list_decrypted(client_id)
            ]
        except DecryptionFailure as e:
            self._fail(result, Outcome.DECRYPTION_FAILURE, FAILURE, str(e))
            return

        audit_log.orders_listed(client_id, len(lines))
        if not lines:
            result.outcome = Outcome.EMPTY
            result.response = NO_ORDERS_IN_QUEUE
            return

        result.outcome = Outcome.LISTED
        result.response = "".join(line + "\n" for line in lines)
