import json
import logging
from concurrent.futures import ThreadPoolExecutor

from orderguard import ClientAgent, MasterKey, create_server
from orderguard.logging_config import (
    StructuredFormatter,
    configure_logging,
    get_request_id,
    request_scope,
)
from orderguard.messages import BuyStock
from orderguard.security import sanitize_for_logging


def _events(caplog):
    return [r.extra_fields["event_type"] for r in caplog.records if hasattr(r, "extra_fields")]


def test_structured_formatter_emits_json():
    with request_scope("req-123"):
        record = logging.LogRecord("orderguard.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        record.extra_fields = {"client_id": 4}
        data = json.loads(StructuredFormatter().format(record))
    assert data["message"] == "hello world"
    assert data["level"] == "INFO"
    assert data["request_id"] == "req-123"
    assert data["client_id"] == 4


def test_request_scope_generates_and_restores():
    with request_scope() as rid:
        assert get_request_id() == rid and len(rid) == 36
    assert get_request_id() == ""


def test_nested_request_scope_restores_outer_id():
    with request_scope("outer"):
        with request_scope("inner"):
            assert get_request_id() == "inner"
        assert get_request_id() == "outer"


def test_request_keeps_caller_request_id(server, key_pairs):
    agent = ClientAgent.from_key_pair(server, key_pairs[0])
    with request_scope("caller"):
        agent.get_orders()
        assert get_request_id() == "caller"


def test_registration_is_audited(server, key_pairs, caplog):
    caplog.set_level(logging.INFO, logger="orderguard.audit")
    server.register_client(key_pairs[0].public_key)
    server.register_client(b"junk")
    assert _events(caplog) == ["CLIENT_REGISTERED", "REGISTRATION_REJECTED"]


def test_invalid_signature_is_a_security_event(server, key_pairs, caplog):
    agent = ClientAgent.from_key_pair(server, key_pairs[0])
    envelope = agent.build_envelope(BuyStock(stock_id="ABC", amount="1"))
    bad = envelope.model_copy(update={"signature": b"\x00" * len(envelope.signature)})

    caplog.set_level(logging.INFO, logger="orderguard.audit")
    server.process(bad)

    events = _events(caplog)
    assert events.count("SECURITY_EVENT") == 1
    assert "SIGNATURE_CHECKED" not in events
    assert "ORDER_STORED" not in events
    assert len([r for r in caplog.records if r.levelno >= logging.WARNING]) == 1
    request_ids = {r.extra_fields["request_id"] for r in caplog.records if hasattr(r, "extra_fields")}
    assert len(request_ids) == 1 and "" not in request_ids


def test_failures_logged_once_per_request(server, caplog):
    caplog.set_level(logging.INFO, logger="orderguard.audit")
    server.accept_message('{"clientId":7,"content":"x","signature":""}')
    assert _events(caplog).count("REQUEST_FAILED") == 1


def test_encryption_failure_logged_once(key_pairs, caplog):
    server = create_server(key_size=2048, master_key=MasterKey(b"bad key"))
    agent = ClientAgent.from_key_pair(server, key_pairs[0])

    caplog.set_level(logging.INFO)
    agent.buy_stock("ABC", "1")

    errors = [r for r in caplog.records if r.levelno >= logging.ERROR]
    assert len(errors) == 1
    assert errors[0].extra_fields["outcome"] == "ENCRYPTION_FAILURE"


def test_concurrent_requests_log_distinct_ids(server, key_pairs, caplog):
    agents = [ClientAgent.from_key_pair(server, pair) for pair in key_pairs[:2]]
    caplog.set_level(logging.INFO, logger="orderguard.audit")

    def run(agent):
        for _ in range(5):
            agent.get_orders()

    with ThreadPoolExecutor(max_workers=2) as pool:
        list(pool.map(run, agents))

    listed = [r.extra_fields for r in caplog.records
              if getattr(r, "extra_fields", {}).get("event_type") == "ORDERS_LISTED"]
    request_ids = {fields["request_id"] for fields in listed}
    assert len(listed) == 10
    assert len(request_ids) == 10 and "" not in request_ids


def test_debug_events_suppressed_at_info(server, key_pairs, caplog):
    caplog.set_level(logging.INFO, logger="orderguard.audit")
    agent = ClientAgent.from_key_pair(server, key_pairs[0])
    agent.get_orders()
    assert "ORDER_RECEIVED" not in _events(caplog)


def test_sanitize_masks_key_material():
    data = sanitize_for_logging({"signature": "AAAABBBBCCCCDDDD", "client_id": 1, "nested": {"public_key": "x"}})
    assert data["signature"] == "AAAA...DDDD"
    assert data["client_id"] == 1
    assert data["nested"]["public_key"] == "[REDACTED]"


def test_configure_logging_writes_json_lines(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    log_file = tmp_path / "orderguard.log"
    try:
        configure_logging(level="INFO", json_format=True, log_file=str(log_file))
        logging.getLogger("orderguard.test").info("server started")
        for handler in root.handlers:
            handler.flush()
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)

    line = log_file.read_text().strip().splitlines()[-1]
    assert json.loads(line)["message"] == "server started"
