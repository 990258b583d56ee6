"""Tests for signer and nonce allocation."""

import asyncio

import pytest
from web3 import Web3

from landchain.infrastructure.blockchain.errors import ConfigurationError
from landchain.infrastructure.blockchain.nonce import NonceAllocator
from landchain.infrastructure.blockchain.signer import SignerContext

DEV_KEY = "ac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
DEV_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


class TestSignerContext:
    """Tests for SignerContext."""

    def test_address_from_key(self):
        """Test key with or without 0x derives the same address."""
        assert SignerContext(DEV_KEY).address == DEV_ADDRESS
        assert SignerContext(f"0x{DEV_KEY}").address == DEV_ADDRESS

    def test_missing_key(self):
        with pytest.raises(ConfigurationError):
            SignerContext("")

    def test_invalid_key_not_leaked(self):
        """Test a malformed key is rejected without echoing it."""
        bad_key = "0x1234deadbeef"

        with pytest.raises(ConfigurationError) as exc_info:
            SignerContext(bad_key)

        assert "deadbeef" not in str(exc_info.value)
        assert exc_info.value.__cause__ is None

    def test_repr_hides_key(self, signer):
        assert DEV_KEY not in repr(signer)
        assert DEV_ADDRESS in repr(signer)

    def test_sign_transaction(self, signer):
        """Test signing returns raw bytes and their hash."""
        raw, tx_hash = signer.sign_transaction(
            {
                "to": DEV_ADDRESS,
                "value": 0,
                "gas": 21000,
                "gasPrice": 1_000_000_000,
                "nonce": 0,
                "chainId": 31337,
                "data": "0x",
            }
        )

        assert isinstance(raw, bytes)
        assert tx_hash == Web3.to_hex(Web3.keccak(raw))


class TestNonceAllocator:
    """Tests for NonceAllocator."""

    @pytest.mark.asyncio
    async def test_allocates_sequentially(self, mock_client):
        """Test first nonce comes from the node, later ones are local."""
        mock_client.get_transaction_count.return_value = 7
        allocator = NonceAllocator(mock_client, DEV_ADDRESS)

        assert await allocator.allocate() == 7
        assert await allocator.allocate() == 8
        assert allocator.peek == 9
        mock_client.get_transaction_count.assert_called_once_with(DEV_ADDRESS, "pending")

    @pytest.mark.asyncio
    async def test_concurrent_allocations_unique(self, mock_client):
        """Test concurrent callers never share a nonce."""
        allocator = NonceAllocator(mock_client, DEV_ADDRESS)

        nonces = await asyncio.gather(*[allocator.allocate() for _ in range(20)])

        assert sorted(nonces) == list(range(20))

    @pytest.mark.asyncio
    async def test_resync_reads_node_again(self, mock_client):
        """Test resync drops the local counter."""
        mock_client.get_transaction_count.return_value = 3
        allocator = NonceAllocator(mock_client, DEV_ADDRESS)
        allocator.commit(await allocator.allocate())
        allocator.commit(await allocator.allocate())

        allocator.resync()
        mock_client.get_transaction_count.return_value = 4

        assert allocator.peek is None
        assert await allocator.allocate() == 4
        assert mock_client.get_transaction_count.call_count == 2

    @pytest.mark.asyncio
    async def test_resync_deferred_while_outstanding(self, mock_client):
        mock_client.get_transaction_count.return_value = 3
        allocator = NonceAllocator(mock_client, DEV_ADDRESS)
        await allocator.allocate()

        allocator.resync()

        assert allocator.outstanding == 1
        assert await allocator.allocate() == 4
        mock_client.get_transaction_count.assert_called_once()

    @pytest.mark.asyncio
    async def test_release_latest_steps_back(self, mock_client):
        """Test releasing the newest nonce makes it the next one again."""
        mock_client.get_transaction_count.return_value = 5
        allocator = NonceAllocator(mock_client, DEV_ADDRESS)
        allocator.commit(await allocator.allocate())
        failed = await allocator.allocate()

        allocator.release(failed)

        assert failed == 6
        assert allocator.peek == 6
        assert await allocator.allocate() == 6

    @pytest.mark.asyncio
    async def test_release_gap_is_refilled(self, mock_client):
        """Test a released nonce behind an in-flight one is reused, not duplicated."""
        mock_client.get_transaction_count.return_value = 5
        allocator = NonceAllocator(mock_client, DEV_ADDRESS)
        failed = await allocator.allocate()
        in_flight = await allocator.allocate()

        allocator.release(failed)
        mock_client.get_transaction_count.return_value = 5

        assert await allocator.allocate() == 5
        assert await allocator.allocate() == 7
        assert in_flight == 6
        mock_client.get_transaction_count.assert_called_once()

    @pytest.mark.asyncio
    async def test_release_unknown_nonce_ignored(self, mock_client):
        allocator = NonceAllocator(mock_client, DEV_ADDRESS)
        allocator.commit(await allocator.allocate())

        allocator.release(0)
        allocator.release(42)

        assert allocator.peek == 1
