"""
Unit Test Configuration
=======================
Fixtures for pure logic tests - NO NETWORK I/O ALLOWED.
"""

import pytest


@pytest.fixture(autouse=True)
def isolate_unit_tests(monkeypatch):
    """
    Block the Solana RPC transport for unit tests.
    Any test that accidentally hits the network fails loudly.
    """
    def block_network(*args, **kwargs):
        raise RuntimeError(
            "Network I/O detected in unit test! "
            "Use MockLedger or mock the AsyncClient instead."
        )

    monkeypatch.setattr("httpx.AsyncClient.send", block_network)
