"""Contract event subscriptions keyed by address and event name."""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

from web3 import Web3

from landchain.infrastructure.blockchain.catalog import CONTRACT_CATALOG, CatalogEntry
from landchain.infrastructure.blockchain.contracts import ContractRegistry
from landchain.infrastructure.blockchain.errors import ContractNotFoundError
from landchain.infrastructure.blockchain.events import EventDecoder, NormalizedEvent
from landchain.infrastructure.blockchain.poller import LogPoller

logger = logging.getLogger(__name__)

# Subscriber callback; may be a plain function or a coroutine function
EventCallback = Callable[[NormalizedEvent], Awaitable[Any] | Any]


@dataclass
class Subscription:
    """An active subscription and the poller listener backing it."""

    key: str
    address: str
    event_name: str
    decoder: EventDecoder = field(repr=False)
    callback: EventCallback = field(repr=False)
    handle: int = 0


def subscription_key(address: str, event_name: str) -> str:
    """Key of a subscription: checksummed address and event name."""
    return f"{Web3.to_checksum_address(address)}-{event_name}"


class EventSubscriptionRegistry:
    """At most one active listener per (contract address, event name).

    Subscribing again under the same key replaces the previous callback.
    Callback failures are logged and never reach the poller.
    """

    def __init__(self, registry: ContractRegistry, poller: LogPoller):
        """Initialize subscription registry.

        Args:
            registry: Contract registry used to resolve targets
            poller: Log poller the listeners are installed on
        """
        self.registry = registry
        self.poller = poller
        self._subscriptions: dict[str, Subscription] = {}

    def __len__(self) -> int:
        return len(self._subscriptions)

    def active_keys(self) -> list[str]:
        """Keys of active subscriptions."""
        return list(self._subscriptions.keys())

    def subscribe(
        self,
        address_or_alias: str,
        event_name: str,
        callback: EventCallback,
        abi: list[dict[str, Any]] | None = None,
    ) -> str:
        """Deliver future occurrences of an event to a callback.

        Args:
            address_or_alias: Contract alias or address
            event_name: Event name in the ABI
            callback: Called with each NormalizedEvent
            abi: ABI to use instead of the registered one

        Returns:
            Subscription key

        Raises:
            ContractNotFoundError: Unknown alias
            ContractEventNotFoundError: Event not in the ABI
        """
        binding = self.registry.resolve(address_or_alias, abi)
        decoder = binding.event_decoder(event_name)
        key = subscription_key(binding.address, event_name)

        existing = self._subscriptions.pop(key, None)
        if existing is not None:
            self.poller.remove_listener(existing.handle)
            logger.debug(f"Replacing subscription {key}")

        subscription = Subscription(
            key=key,
            address=binding.address,
            event_name=event_name,
            decoder=decoder,
            callback=callback,
        )
        subscription.handle = self.poller.add_listener(
            binding.address, decoder.topic, self._make_listener(subscription)
        )
        self._subscriptions[key] = subscription

        logger.info(f"Subscribed to {event_name} events on {binding.label}")
        return key

    def _make_listener(self, subscription: Subscription):
        async def listener(log: dict[str, Any]) -> None:
            try:
                event = subscription.decoder.decode(log)
                result = subscription.callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Error handling event {subscription.event_name}: {e}",
                    extra={"subscription": subscription.key},
                )

        return listener

    def _key_for(self, address_or_alias: str, event_name: str) -> str | None:
        if Web3.is_address(address_or_alias):
            return subscription_key(address_or_alias, event_name)
        try:
            binding = self.registry.get_by_alias(address_or_alias)
        except ContractNotFoundError:
            return None
        return subscription_key(binding.address, event_name)

    def is_subscribed(self, address_or_alias: str, event_name: str) -> bool:
        key = self._key_for(address_or_alias, event_name)
        return key is not None and key in self._subscriptions

    def unsubscribe(self, address_or_alias: str, event_name: str) -> bool:
        """Remove a subscription.

        Returns:
            True if a subscription was removed; unknown keys only log a warning
        """
        key = self._key_for(address_or_alias, event_name)
        subscription = self._subscriptions.pop(key, None) if key else None
        if subscription is None:
            logger.warning(
                f"No subscription for {event_name} on {address_or_alias}"
            )
            return False

        self.poller.remove_listener(subscription.handle)
        logger.info(f"Unsubscribed from {event_name} events on {address_or_alias}")
        return True

    def bootstrap_core_listeners(
        self,
        publish: EventCallback,
        catalog: Iterable[CatalogEntry] = CONTRACT_CATALOG,
    ) -> list[str]:
        """Subscribe the core events of every registered catalog contract.

        Args:
            publish: Callback receiving every core event
            catalog: Catalog entries to bootstrap

        Returns:
            Keys of the subscriptions made
        """
        keys = []
        for entry in catalog:
            if entry.alias not in self.registry:
                continue
            for event_name in entry.core_events:
                keys.append(self.subscribe(entry.alias, event_name, publish))

        logger.info(f"Core contract event listeners setup completed ({len(keys)})")
        return keys

    def teardown(self) -> None:
        """Remove every subscription and its listener."""
        if not self._subscriptions:
            return
        for subscription in self._subscriptions.values():
            self.poller.remove_listener(subscription.handle)
        count = len(self._subscriptions)
        self._subscriptions.clear()
        logger.info(f"Removed {count} event subscriptions")
