"""Tests for event subscriptions."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from web3 import Web3

from landchain.infrastructure.blockchain.catalog import CatalogEntry
from landchain.infrastructure.blockchain.contracts import ContractRegistry
from landchain.infrastructure.blockchain.errors import (
    ContractEventNotFoundError,
    ContractNotFoundError,
)
from landchain.infrastructure.blockchain.poller import LogPoller, PollerConfig
from landchain.infrastructure.blockchain.subscriptions import (
    EventSubscriptionRegistry,
    subscription_key,
)

SENDER = "0x0000000000000000000000000000000000000001"
RECIPIENT = "0x0000000000000000000000000000000000000002"


@pytest.fixture
def poller(mock_client):
    return LogPoller(mock_client, PollerConfig(poll_interval=0.01))


@pytest.fixture
def subscriptions(registry, poller):
    return EventSubscriptionRegistry(registry, poller)


class TestEventSubscriptionRegistry:
    """Tests for EventSubscriptionRegistry."""

    def test_subscribe(self, subscriptions, poller, token_address):
        key = subscriptions.subscribe("Token", "Transfer", MagicMock())

        assert key == f"{token_address}-Transfer"
        assert subscriptions.active_keys() == [key]
        assert subscriptions.is_subscribed("Token", "Transfer")
        assert subscriptions.is_subscribed(token_address.lower(), "Transfer")
        assert poller.listener_count == 1

    def test_subscription_key_checksums(self, token_address):
        assert subscription_key(token_address.lower(), "Transfer") == (
            f"{token_address}-Transfer"
        )

    def test_unknown_event(self, subscriptions, poller):
        with pytest.raises(ContractEventNotFoundError):
            subscriptions.subscribe("Token", "Approval", MagicMock())
        assert poller.listener_count == 0

    def test_unknown_alias(self, subscriptions):
        with pytest.raises(ContractNotFoundError):
            subscriptions.subscribe("Unknown", "Transfer", MagicMock())

    @pytest.mark.asyncio
    async def test_resubscribe_delivers_once(
        self, subscriptions, poller, mock_client, transfer_log
    ):
        """Test subscribing twice leaves one listener and one delivery."""
        first = MagicMock()
        second = MagicMock()
        subscriptions.subscribe("Token", "Transfer", first)
        subscriptions.subscribe("Token", "Transfer", second)
        mock_client.get_logs.return_value = [transfer_log(SENDER, RECIPIENT, 5)]

        await poller.poll_once()

        assert len(subscriptions) == 1
        assert poller.listener_count == 1
        first.assert_not_called()
        second.assert_called_once()

    @pytest.mark.asyncio
    async def test_transfer_delivered_to_callback(
        self, subscriptions, poller, mock_client, token_address, transfer_log
    ):
        """Test an on-chain Transfer(0x1, 0x2, 5) reaches the callback once."""
        callback = AsyncMock()
        subscriptions.subscribe(token_address, "Transfer", callback)
        mock_client.get_logs.return_value = [
            transfer_log(
                SENDER,
                RECIPIENT,
                5,
                block_number=101,
                tx_hash="0x" + "ef" * 32,
            )
        ]

        await poller.poll_once()

        callback.assert_awaited_once()
        event = callback.call_args.args[0]
        assert event.args == (SENDER, RECIPIENT, 5)
        assert event.block_number == 101
        assert event.transaction_hash == "0x" + "ef" * 32
        assert event.event_name == "Transfer"

    @pytest.mark.asyncio
    async def test_callback_error_contained(
        self, subscriptions, poller, mock_client, transfer_log
    ):
        """Test callback failures never reach the poller."""
        subscriptions.subscribe(
            "Token", "Transfer", MagicMock(side_effect=RuntimeError("handler bug"))
        )
        mock_client.get_logs.return_value = [transfer_log(SENDER, RECIPIENT, 5)]

        assert await poller.poll_once() == 1
        assert poller.stats.errors == 0

    def test_unsubscribe(self, subscriptions, poller):
        subscriptions.subscribe("Token", "Transfer", MagicMock())

        assert subscriptions.unsubscribe("Token", "Transfer") is True
        assert len(subscriptions) == 0
        assert poller.listener_count == 0

    def test_unsubscribe_unknown(self, subscriptions):
        """Test unknown keys and aliases never raise."""
        assert subscriptions.unsubscribe("Token", "Transfer") is False
        assert subscriptions.unsubscribe("Unknown", "Transfer") is False
        assert subscriptions.unsubscribe("0x" + "55" * 20, "Transfer") is False

    def test_unsubscribe_keeps_other_listeners(
        self, subscriptions, poller, token_abi
    ):
        other = "0x" + "66" * 20
        subscriptions.subscribe("Token", "Transfer", MagicMock())
        subscriptions.subscribe(other, "Transfer", MagicMock(), abi=token_abi)

        subscriptions.unsubscribe(other, "Transfer")

        assert subscriptions.active_keys() == [subscription_key(
            subscriptions.registry.get_by_alias("Token").address, "Transfer"
        )]
        assert poller.listener_count == 1

    def test_teardown_idempotent(self, subscriptions, poller):
        subscriptions.subscribe("Token", "Transfer", MagicMock())

        subscriptions.teardown()
        subscriptions.teardown()

        assert len(subscriptions) == 0
        assert poller.listener_count == 0

    def test_bootstrap_core_listeners(self, mock_client, poller, settings):
        """Test core events of registered catalog contracts are subscribed."""
        settings.land_parcel_nft_address = "0x" + "11" * 20
        settings.dispute_resolution_address = "0x" + "22" * 20
        registry = ContractRegistry(mock_client)
        registry.register_static(settings)
        subscriptions = EventSubscriptionRegistry(registry, poller)

        keys = subscriptions.bootstrap_core_listeners(AsyncMock())

        nft = Web3.to_checksum_address("0x" + "11" * 20)
        assert len(keys) == 6
        assert f"{nft}-Transfer" in keys
        assert f"{nft}-ParcelMinted" in keys
        assert poller.listener_count == 6

    def test_bootstrap_skips_unregistered(self, subscriptions):
        catalog = (
            CatalogEntry("Token", "unused", "MockRWF", core_events=("Transfer",)),
            CatalogEntry("Missing", "unused", "MockRWF", core_events=("Transfer",)),
        )

        keys = subscriptions.bootstrap_core_listeners(MagicMock(), catalog=catalog)

        assert len(keys) == 1
