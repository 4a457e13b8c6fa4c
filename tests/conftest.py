import pytest

from orderguard import SignatureEngine, create_server

# 4096-bit generation is too slow to repeat per test
TEST_KEY_SIZE = 2048


@pytest.fixture(scope="session")
def engine():
    return SignatureEngine(key_size=TEST_KEY_SIZE)


@pytest.fixture(scope="session")
def key_pairs(engine):
    return [engine.generate_key_pair() for _ in range(4)]


@pytest.fixture
def server():
    return create_server(key_size=TEST_KEY_SIZE, history_capacity=100)
