"""Shared fixtures for seneschal_sponsor tests."""

from __future__ import annotations

import pytest

from seneschal_sponsor.models.config import SponsorConfig
from seneschal_sponsor.workflow.orchestrator import SponsorWorkflow

from tests.mocks import CountingStore, MockChainClient, MockContentStore, MockSigner

# Well-known development keys (anvil/hardhat accounts 0 and 2)
TEST_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
OTHER_KEY = "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a"

CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"

# Proposal id the mock chain reports in topic 2 of the sponsorship event
ON_CHAIN_ID = "0x" + "0" * 62 + "2a"


def make_test_config(**overrides) -> SponsorConfig:
    """Build a SponsorConfig suitable for testing."""
    defaults = dict(
        rpc_url="http://127.0.0.1:8545",
        chain_id=100,
        contract_address=CONTRACT_ADDRESS,
        private_key=TEST_KEY,
        confirmations=1,
        confirmation_timeout=5,
        block_poll_interval=0.01,
        signature_timeout=5,
        kubo_rpc_url="http://127.0.0.1:5001",
        db_path=":memory:",
    )
    defaults.update(overrides)
    return SponsorConfig(**defaults)


@pytest.fixture
def test_config():
    """Default SponsorConfig for tests."""
    return make_test_config()


@pytest.fixture
async def store():
    """Initialized in-memory store that counts metadata writes."""
    s = CountingStore(":memory:")
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def mock_signer():
    return MockSigner(TEST_KEY)


@pytest.fixture
def mock_chain():
    return MockChainClient(CONTRACT_ADDRESS, ON_CHAIN_ID, TEST_ADDRESS)


@pytest.fixture
def mock_content():
    return MockContentStore()


@pytest.fixture
def workflow(test_config, store, mock_signer, mock_chain, mock_content):
    """Fully wired SponsorWorkflow with mocked collaborators."""
    return SponsorWorkflow.from_collaborators(
        test_config,
        signer=mock_signer,
        chain=mock_chain,
        content_store=mock_content,
        store=store,
    )
