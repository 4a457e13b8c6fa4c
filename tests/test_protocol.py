import json

import pytest

from orderguard import (
    ENCRYPTION_FAILURE,
    FAILURE,
    NO_ORDERS_IN_QUEUE,
    ClientAgent,
    GetOrders,
    MasterKey,
    Outcome,
    ProtocolState,
    SignedEnvelope,
    create_server,
    parse_server_response,
)
from orderguard.messages import BuyStock, create_buy_stock_message


@pytest.fixture
def agent(server, key_pairs):
    return ClientAgent.from_key_pair(server, key_pairs[0])


def _corrupt(envelope: SignedEnvelope) -> SignedEnvelope:
    signature = bytearray(envelope.signature)
    signature[10] ^= 0xFF
    return envelope.model_copy(update={"signature": bytes(signature)})


def test_valid_order_walks_every_state(server, agent):
    result = server.process(agent.build_envelope(BuyStock(stock_id="ABC", amount="012")))
    assert result.outcome is Outcome.ACCEPTED
    assert result.signature_valid is True
    assert result.states == [
        ProtocolState.ENVELOPE_RECEIVED,
        ProtocolState.SIGNATURE_CHECKED,
        ProtocolState.DISPATCHED,
        ProtocolState.RESPONSE_READY,
    ]
    assert result.state is ProtocolState.RESPONSE_READY
    assert result.request_id
    ack = parse_server_response(result.response)
    assert ack.signature_valid and ack.stored


def test_invalid_signature_short_circuits(server, agent):
    envelope = _corrupt(agent.build_envelope(BuyStock(stock_id="ABC", amount="012")))
    result = server.process(envelope)
    assert result.outcome is Outcome.SIGNATURE_INVALID
    assert result.states == [
        ProtocolState.ENVELOPE_RECEIVED,
        ProtocolState.SIGNATURE_CHECKED,
        ProtocolState.RESPONSE_READY,
    ]
    assert parse_server_response(result.response).signature_valid is False
    assert server.vault.history_size(agent.client_id) == 0


def test_signed_by_another_key_is_not_stored(server, agent, key_pairs):
    content = create_buy_stock_message("ABC", "012")
    forged = SignedEnvelope(
        client_id=agent.client_id,
        content=content,
        signature=server.signatures.sign(content.encode(), key_pairs[1].private_key),
    )
    assert server.process(forged).outcome is Outcome.SIGNATURE_INVALID
    assert server.vault.history_size(agent.client_id) == 0


def test_content_swapped_after_signing_is_rejected(server, agent):
    envelope = agent.build_envelope(BuyStock(stock_id="ABC", amount="012"))
    swapped = envelope.model_copy(update={"content": create_buy_stock_message("ABC", "999")})
    assert server.process(swapped).outcome is Outcome.SIGNATURE_INVALID
    assert server.vault.history_size(agent.client_id) == 0


def test_unknown_client_bypasses_signature_check(server, agent):
    envelope = agent.build_envelope(GetOrders()).model_copy(update={"client_id": 99})
    result = server.process(envelope)
    assert result.outcome is Outcome.UNKNOWN_CLIENT
    assert result.response == FAILURE
    assert result.signature_valid is None
    assert result.states == [ProtocolState.ENVELOPE_RECEIVED, ProtocolState.RESPONSE_READY]
    assert result.failed()


def test_get_orders_requires_valid_signature(server, agent):
    agent.buy_stock("ABC", "012")
    result = server.process(_corrupt(agent.build_envelope(GetOrders())))
    assert result.outcome is Outcome.SIGNATURE_INVALID
    assert "ABC" not in result.response


def test_signed_garbage_is_malformed_payload(server, agent):
    content = "this is not an order"
    envelope = SignedEnvelope(
        client_id=agent.client_id,
        content=content,
        signature=server.signatures.sign(content.encode(), agent.key_pair.private_key),
    )
    result = server.process(envelope)
    assert result.outcome is Outcome.MALFORMED_PAYLOAD
    assert result.response == FAILURE
    assert result.signature_valid is True
    assert server.vault.history_size(agent.client_id) == 0


@pytest.mark.parametrize("wire", ["", "garbage", '{"clientId":0}'])
def test_malformed_wire_message(server, agent, wire):
    assert server.accept_message(wire) == FAILURE


def test_empty_history_returns_sentinel(server, agent):
    result = server.process(agent.build_envelope(GetOrders()))
    assert result.outcome is Outcome.EMPTY
    assert result.response == NO_ORDERS_IN_QUEUE


def test_listing_format(server, agent):
    agent.buy_stock("ABC", "012")
    agent.sell_stock("XYZ", "7")
    result = server.process(agent.build_envelope(GetOrders()))
    assert result.outcome is Outcome.LISTED
    assert result.response.endswith("\n")
    lines = result.response.splitlines()
    assert len(lines) == 2
    orders = [json.loads(json.loads(line)["order"]) for line in lines]
    assert orders == [
        {"type": "BuyStock", "stockId": "ABC", "amount": "012"},
        {"type": "SellStock", "stockId": "XYZ", "amount": "7"},
    ]


def test_encryption_failure_response(key_pairs):
    server = create_server(key_size=2048, master_key=MasterKey(b"bad key"))
    agent = ClientAgent.from_key_pair(server, key_pairs[0])
    result = server.process(agent.build_envelope(BuyStock(stock_id="ABC", amount="1")))
    assert result.outcome is Outcome.ENCRYPTION_FAILURE
    assert result.response == ENCRYPTION_FAILURE
    assert server.vault.history_size(agent.client_id) == 0


def test_decryption_failure_response(server, agent):
    agent.buy_stock("ABC", "1")
    history = server.vault._histories[agent.client_id]
    blob = bytearray(history._entries[0])
    blob[-1] ^= 0x01
    history._entries[0] = bytes(blob)
    result = server.process(agent.build_envelope(GetOrders()))
    assert result.outcome is Outcome.DECRYPTION_FAILURE
    assert result.response == FAILURE
    # history left as it was
    assert server.vault.history_size(agent.client_id) == 1


def test_unexpected_error_fails_closed(server, agent, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(server.vault, "list_decrypted", explode)
    result = server.process(agent.build_envelope(GetOrders()))
    assert result.outcome is Outcome.INTERNAL_ERROR
    assert result.response == FAILURE
    assert result.state is ProtocolState.RESPONSE_READY
