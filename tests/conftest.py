"""Pytest configuration and fixtures."""

from unittest.mock import AsyncMock

import pytest
from eth_abi import encode
from web3 import Web3

from landchain.core.config import Settings
from landchain.infrastructure.blockchain.client import ChainClient
from landchain.infrastructure.blockchain.contracts import ContractRegistry
from landchain.infrastructure.blockchain.events import event_topic
from landchain.infrastructure.blockchain.signer import SignerContext

# Well-known development key (Hardhat/Anvil account #0)
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

TOKEN_ADDRESS = "0x0000000000000000000000000000000000000abc"
TEST_CHAIN_ID = 31337
GWEI = 1_000_000_000

TOKEN_ABI = [
    {
        "type": "function",
        "name": "balanceOf",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "transfer",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "event",
        "name": "Transfer",
        "anonymous": False,
        "inputs": [
            {"name": "from", "type": "address", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "value", "type": "uint256", "indexed": False},
        ],
    },
]

TRANSFER_EVENT_ABI = TOKEN_ABI[2]


def address_topic(address: str) -> str:
    """32-byte topic for an indexed address."""
    return "0x" + "0" * 24 + address[2:].lower()


def make_transfer_log(
    sender: str,
    recipient: str,
    value: int,
    address: str = TOKEN_ADDRESS,
    block_number: int = 101,
    log_index: int = 0,
    tx_hash: str = "0x" + "ab" * 32,
) -> dict:
    """Raw eth_getLogs entry for a token Transfer."""
    return {
        "address": Web3.to_checksum_address(address),
        "topics": [
            event_topic(TRANSFER_EVENT_ABI),
            address_topic(sender),
            address_topic(recipient),
        ],
        "data": Web3.to_hex(encode(["uint256"], [value])),
        "blockNumber": block_number,
        "transactionHash": tx_hash,
        "logIndex": log_index,
    }


@pytest.fixture(scope="function")
def settings():
    """Create settings instance for testing."""
    return Settings(
        _env_file=None,
        environment="testing",
        rpc_url="http://localhost:8545",
        private_key=TEST_PRIVATE_KEY,
        confirmation_poll_interval=0.01,
        event_poll_interval=0.01,
        event_reconnect_delay=0.01,
    )


@pytest.fixture
def mock_client():
    """Chain client mock answering like an idle dev node."""
    client = AsyncMock(spec=ChainClient)
    client.chain_id = TEST_CHAIN_ID
    client.get_chain_id.return_value = TEST_CHAIN_ID
    client.get_block_number.return_value = 100
    client.get_gas_price.return_value = GWEI
    client.get_balance.return_value = 10**18
    client.get_transaction_count.return_value = 0
    client.estimate_gas.return_value = 100_000
    client.get_logs.return_value = []
    client.get_transaction.return_value = None
    client.get_transaction_receipt.return_value = None
    client.send_raw_transaction.side_effect = lambda raw: Web3.to_hex(
        Web3.keccak(raw)
    )
    return client


@pytest.fixture
def signer():
    """Signer for the development key."""
    return SignerContext(TEST_PRIVATE_KEY)


@pytest.fixture
def registry(mock_client):
    """Registry with the test token registered as "Token"."""
    registry = ContractRegistry(mock_client)
    registry.register("Token", TOKEN_ADDRESS, TOKEN_ABI)
    return registry


@pytest.fixture
def token_abi():
    return TOKEN_ABI


@pytest.fixture
def token_address():
    return Web3.to_checksum_address(TOKEN_ADDRESS)


@pytest.fixture
def transfer_log():
    """Factory for raw token Transfer logs."""
    return make_transfer_log
