"""
OrderGuard wire messages.

Pydantic models and factory helpers for the JSON text exchanged between
clients and the server. All JSON produced here is canonical (sorted
keys, compact separators) so that signed content is reproducible.

Order:
    {"amount":"012","stockId":"ABC","type":"BuyStock"}
    {"type":"GetOrders"}

Envelope:
    {"clientId":0,"content":"<order json>","signature":"<base64>"}
"""

import random
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError as PydanticValidationError,
    field_serializer,
    field_validator,
)

from .errors import MalformedPayload
from .security import ValidationError, validate_amount, validate_base64, validate_stock_id
from .util import b64d, b64e, canonicalize_str

# ============================================================
# Response literals
# ============================================================

NO_ORDERS_IN_QUEUE = "no orders in queue"
FAILURE = '{"Failure"}'
ENCRYPTION_FAILURE = '{"Failure during encryption"}'


class OrderType(str, Enum):
    BUY_STOCK = "BuyStock"
    SELL_STOCK = "SellStock"
    GET_ORDERS = "GetOrders"


# ============================================================
# Orders
# ============================================================

class _StockOrder(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    stock_id: str = Field(alias="stockId")
    amount: str

    @field_validator("stock_id", mode="before")
    @classmethod
    def _check_stock_id(cls, value):
        try:
            return validate_stock_id(value)
        except ValidationError as e:
            raise ValueError(e.message) from e

    @field_validator("amount", mode="before")
    @classmethod
    def _check_amount(cls, value):
        try:
            return validate_amount(value)
        except ValidationError as e:
            raise ValueError(e.message) from e


class BuyStock(_StockOrder):
    type: Literal["BuyStock"] = "BuyStock"


class SellStock(_StockOrder):
    type: Literal["SellStock"] = "SellStock"


class GetOrders(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Literal["GetOrders"] = "GetOrders"


Order = Annotated[Union[BuyStock, SellStock, GetOrders], Field(discriminator="type")]

_ORDER_ADAPTER: TypeAdapter = TypeAdapter(Order)


def serialize_order(order: Union[BuyStock, SellStock, GetOrders]) -> str:
    """Canonical JSON text of an order."""
    return canonicalize_str(order.model_dump(by_alias=True))


def parse_order(content: str) -> Union[BuyStock, SellStock, GetOrders]:
    """
    Parse order JSON.

    Raises:
        MalformedPayload: If the text is not a valid order
    """
    try:
        return _ORDER_ADAPTER.validate_json(content)
    except PydanticValidationError as e:
        raise MalformedPayload(f"Invalid order: {e.error_count()} validation error(s)") from e


def create_buy_stock_message(stock_id: str, amount: str) -> str:
    return serialize_order(BuyStock(stock_id=stock_id, amount=amount))


def create_sell_stock_message(stock_id: str, amount: str) -> str:
    return serialize_order(SellStock(stock_id=stock_id, amount=amount))


def create_get_orders_message() -> str:
    return serialize_order(GetOrders())


# ============================================================
# Envelope
# ============================================================

class SignedEnvelope(BaseModel):
    """
    A client's signed order.

    ``signature`` is raw bytes in Python and base64 text on the wire.
    An empty signature is accepted here and fails verification later.
    """
    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    client_id: int = Field(alias="clientId", strict=True)
    content: str
    signature: bytes

    @field_validator("signature", mode="before")
    @classmethod
    def _decode_signature(cls, value):
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if isinstance(value, str) and not value.strip():
            return b""
        try:
            return b64d(validate_base64(value, "signature"))
        except ValidationError as e:
            raise ValueError(e.message) from e

    @field_serializer("signature")
    def _encode_signature(self, value: bytes) -> str:
        return b64e(value)

    @property
    def payload(self) -> bytes:
        """The exact bytes the signature covers."""
        return self.content.encode("utf-8")

    def to_wire(self) -> str:
        return canonicalize_str(self.model_dump(by_alias=True))


def create_signed_message(client_id: int, content: str, signature: bytes) -> str:
    return SignedEnvelope(client_id=client_id, content=content, signature=signature).to_wire()


def parse_signed_message(message: str) -> SignedEnvelope:
    """
    Parse envelope JSON.

    Raises:
        MalformedPayload: If the text is not a valid envelope
    """
    try:
        return SignedEnvelope.model_validate_json(message)
    except PydanticValidationError as e:
        raise MalformedPayload(f"Invalid envelope: {e.error_count()} validation error(s)") from e


# ============================================================
# Server responses
# ============================================================

class Acknowledgment(BaseModel):
    """Server reply to a buy/sell request, or to any badly signed request."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    signature_valid: bool = Field(alias="signatureValid")
    stored: bool = False


def create_server_response_message(signature_valid: bool, stored: bool = False) -> str:
    ack = Acknowledgment(signature_valid=signature_valid, stored=stored)
    return canonicalize_str(ack.model_dump(by_alias=True))


def parse_server_response(message: str) -> Optional[Acknowledgment]:
    """Parse an acknowledgment; None for any other response text."""
    try:
        return Acknowledgment.model_validate_json(message)
    except PydanticValidationError:
        return None


def create_server_send_orders_message(order: str) -> str:
    """One announcement line for a listed order."""
    return canonicalize_str({"type": "ServerSendOrders", "order": order})


# ============================================================
# Random order content
# ============================================================

STOCK_ID_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
AMOUNT_ALPHABET = "0123456789"


def _random_string(alphabet: str, length: int, rng: random.Random) -> str:
    return "".join(rng.choice(alphabet) for _ in range(length))


def random_order(
    kind: Union[OrderType, str],
    rng: Optional[random.Random] = None
) -> Union[BuyStock, SellStock, GetOrders]:
    """
    Build an order with random content.

    Buy orders get a 12-character symbol and a 3-digit amount; sell
    orders a 12-character symbol and a 10-digit amount.
    """
    rng = rng or random.Random()
    kind = OrderType(kind)
    if kind is OrderType.BUY_STOCK:
        return BuyStock(
            stock_id=_random_string(STOCK_ID_ALPHABET, 12, rng),
            amount=_random_string(AMOUNT_ALPHABET, 3, rng),
        )
    if kind is OrderType.SELL_STOCK:
        return SellStock(
            stock_id=_random_string(STOCK_ID_ALPHABET, 12, rng),
            amount=_random_string(AMOUNT_ALPHABET, 10, rng),
        )
    return GetOrders()
