"""Log poller delivering contract logs to registered listeners."""

import asyncio
import inspect
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from web3 import Web3

from landchain.core.config import Settings, get_settings
from landchain.infrastructure.blockchain.client import ChainClient
from landchain.infrastructure.blockchain.codec import as_hex

logger = logging.getLogger(__name__)


class PollerState(str, Enum):
    """Log poller state."""

    STOPPED = "stopped"
    RUNNING = "running"
    RECONNECTING = "reconnecting"
    ERROR = "error"


@dataclass
class PollerConfig:
    """Configuration for the log poller."""

    # Polling interval in seconds
    poll_interval: float = 3.0

    # Block range for each poll
    block_batch_size: int = 1000

    # Confirmation blocks before delivering
    confirmation_blocks: int = 0

    # Reconnect delay (seconds), multiplied by the attempt number
    reconnect_delay: float = 5.0

    # Maximum consecutive failed polls before giving up
    max_reconnect_attempts: int = 10

    @classmethod
    def from_settings(cls, settings: Settings) -> "PollerConfig":
        return cls(
            poll_interval=settings.event_poll_interval,
            block_batch_size=settings.event_block_batch_size,
            confirmation_blocks=settings.event_confirmation_blocks,
            reconnect_delay=settings.event_reconnect_delay,
            max_reconnect_attempts=settings.event_max_reconnect_attempts,
        )


@dataclass
class PollerStats:
    """Statistics for the log poller."""

    state: PollerState = PollerState.STOPPED
    current_block: int = 0
    latest_chain_block: int = 0
    logs_delivered: int = 0
    errors: int = 0
    last_error: str = ""
    last_log_time: datetime | None = None
    started_at: datetime | None = None


# Listener callback type; may be a plain function or a coroutine function
LogCallback = Callable[[dict[str, Any]], Awaitable[None] | None]


@dataclass
class LogListener:
    """Callback for logs of one event topic at one address."""

    handle: int
    address: str
    topic: str
    callback: LogCallback = field(repr=False)

    def matches(self, log: dict[str, Any]) -> bool:
        topics = log.get("topics") or []
        if not topics:
            return False
        address = log.get("address", "")
        return (
            address.lower() == self.address.lower()
            and as_hex(topics[0]).lower() == self.topic
        )


class LogPoller:
    """Polls ``eth_getLogs`` and pushes matching logs to listeners.

    The cursor starts at the chain head when started, so only logs emitted
    from then on are delivered. Listeners are called in log order; a
    failing listener does not affect the others.
    """

    def __init__(self, client: ChainClient, config: PollerConfig | None = None):
        """Initialize log poller.

        Args:
            client: Blockchain client for RPC calls
            config: Poller configuration (defaults from settings)
        """
        self.client = client
        self.config = config or PollerConfig.from_settings(get_settings())

        self._state = PollerState.STOPPED
        self._stats = PollerStats()
        self._listeners: dict[int, LogListener] = {}
        self._handles = itertools.count(1)
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

    @property
    def state(self) -> PollerState:
        """Get current poller state."""
        return self._state

    @property
    def stats(self) -> PollerStats:
        """Get poller statistics."""
        self._stats.state = self._state
        return self._stats

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_listener(self, address: str, topic: str, callback: LogCallback) -> int:
        """Install a listener.

        Args:
            address: Contract address to watch
            topic: Event topic0 (0x hex)
            callback: Called with each matching raw log

        Returns:
            Handle for ``remove_listener``
        """
        handle = next(self._handles)
        self._listeners[handle] = LogListener(
            handle=handle,
            address=Web3.to_checksum_address(address),
            topic=topic.lower(),
            callback=callback,
        )
        return handle

    def remove_listener(self, handle: int) -> bool:
        """Remove one listener.

        Returns:
            True if the handle was installed
        """
        return self._listeners.pop(handle, None) is not None

    def clear_listeners(self) -> None:
        self._listeners.clear()

    async def start(self) -> None:
        """Start polling from the current chain head."""
        if self._state == PollerState.RUNNING:
            logger.warning("Log poller is already running")
            return

        self._stop_event.clear()
        self._stats.started_at = datetime.now(timezone.utc)
        self._stats.current_block = await self.client.get_block_number()
        self._stats.latest_chain_block = self._stats.current_block

        logger.info(f"Starting log poller from block {self._stats.current_block}")

        self._task = asyncio.create_task(self._poll_loop())
        self._state = PollerState.RUNNING

    async def stop(self) -> None:
        """Stop the poller."""
        if self._state == PollerState.STOPPED:
            return

        logger.info("Stopping log poller...")
        self._stop_event.set()

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self._state = PollerState.STOPPED
        logger.info("Log poller stopped")

    async def _poll_loop(self) -> None:
        """Main polling loop."""
        reconnect_attempts = 0

        while not self._stop_event.is_set():
            try:
                await self.poll_once()
                reconnect_attempts = 0
                await asyncio.sleep(self.config.poll_interval)

            except asyncio.CancelledError:
                break

            except Exception as e:
                self._stats.errors += 1
                self._stats.last_error = str(e)
                logger.error(f"Log polling error: {e}")

                reconnect_attempts += 1
                if reconnect_attempts >= self.config.max_reconnect_attempts:
                    logger.error("Max reconnect attempts reached, stopping")
                    self._state = PollerState.ERROR
                    break

                self._state = PollerState.RECONNECTING
                delay = self.config.reconnect_delay * reconnect_attempts
                logger.info(f"Reconnecting in {delay}s (attempt {reconnect_attempts})")
                await asyncio.sleep(delay)
                self._state = PollerState.RUNNING

    async def poll_once(self) -> int:
        """Execute one polling cycle.

        Returns:
            Number of listener deliveries made
        """
        latest_block = await self.client.get_block_number()
        self._stats.latest_chain_block = latest_block

        safe_block = latest_block - self.config.confirmation_blocks
        from_block = self._stats.current_block + 1
        if from_block > safe_block:
            return 0

        to_block = min(from_block + self.config.block_batch_size - 1, safe_block)

        listeners = list(self._listeners.values())
        if not listeners:
            self._stats.current_block = to_block
            return 0

        addresses = sorted({listener.address for listener in listeners})
        topics = sorted({listener.topic for listener in listeners})
        logs = await self.client.get_logs(
            from_block=from_block,
            to_block=to_block,
            address=addresses,
            topics=[topics],
        )
        logs.sort(key=lambda log: (log.get("blockNumber", 0), log.get("logIndex", 0)))

        delivered = 0
        for log in logs:
            for listener in listeners:
                # Skip listeners removed by an earlier callback in this cycle
                if listener.handle not in self._listeners or not listener.matches(log):
                    continue
                await self._deliver(listener, log)
                delivered += 1

        self._stats.current_block = to_block
        if delivered:
            self._stats.logs_delivered += delivered
            self._stats.last_log_time = datetime.now(timezone.utc)
            logger.debug(
                f"Delivered {delivered} logs from blocks {from_block}-{to_block}"
            )
        return delivered

    async def _deliver(self, listener: LogListener, log: dict[str, Any]) -> None:
        try:
            result = listener.callback(log)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self._stats.errors += 1
            logger.error(f"Log listener {listener.handle} error: {e}")

    def get_sync_status(self) -> dict[str, Any]:
        """Get synchronization status."""
        stats = self.stats
        return {
            "state": stats.state.value,
            "current_block": stats.current_block,
            "latest_block": stats.latest_chain_block,
            "blocks_behind": max(0, stats.latest_chain_block - stats.current_block),
            "listeners": self.listener_count,
            "logs_delivered": stats.logs_delivered,
            "errors": stats.errors,
            "last_error": stats.last_error,
        }
