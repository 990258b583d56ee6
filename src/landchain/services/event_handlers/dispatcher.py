"""Event dispatcher routing decoded contract events to handlers.

A handler is registered for an event name, optionally narrowed to the
contract that emits it. Same-named events from different contracts (an
ERC-20 ``Transfer`` and a parcel NFT ``Transfer``) therefore reach
different handlers.
"""

import itertools
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Coroutine

from web3 import Web3

from landchain.infrastructure.blockchain.events import NormalizedEvent

logger = logging.getLogger(__name__)


Handler = Callable[[NormalizedEvent], Coroutine[Any, Any, None]]


@dataclass(frozen=True)
class EventRoute:
    """Event name, optionally restricted to one emitting contract."""

    event_name: str
    contract_address: str | None = None

    @classmethod
    def create(cls, event_name: str, contract_address: str | None = None) -> "EventRoute":
        if contract_address:
            contract_address = Web3.to_checksum_address(contract_address)
        return cls(event_name, contract_address or None)

    def accepts(self, event: NormalizedEvent) -> bool:
        if event.event_name != self.event_name:
            return False
        if self.contract_address is None:
            return True
        return event.contract_address.lower() == self.contract_address.lower()

    def __str__(self) -> str:
        if self.contract_address is None:
            return self.event_name
        return f"{self.event_name}@{self.contract_address}"


@dataclass
class HandlerStats:
    """Per-handler counters."""

    handler_name: str
    route: str
    handled: int = 0
    failed: int = 0
    total_time_ms: float = 0.0
    last_handled_at: datetime | None = None
    last_error: str = ""


@dataclass
class DispatcherStats:
    """Dispatcher counters; ``routes`` maps route label to handler count."""

    dispatched: int = 0
    unrouted: int = 0
    handler_errors: int = 0
    routes: dict[str, int] = field(default_factory=dict)


class EventHandlerBase(ABC):
    """Handler bound to one route, with timing and failure accounting."""

    def __init__(self, event_name: str, contract_address: str | None = None):
        """Initialize handler.

        Args:
            event_name: Event name this handler processes
            contract_address: Only accept events from this contract
        """
        self.route = EventRoute.create(event_name, contract_address)
        self.stats = HandlerStats(
            handler_name=type(self).__name__, route=str(self.route)
        )

    @property
    def event_name(self) -> str:
        return self.route.event_name

    @abstractmethod
    async def handle(self, event: NormalizedEvent) -> None:
        """Process one decoded event."""

    async def __call__(self, event: NormalizedEvent) -> None:
        started = time.perf_counter()
        try:
            await self.handle(event)
        except Exception as e:
            self.stats.failed += 1
            self.stats.last_error = str(e)
            logger.error(f"{type(self).__name__} failed on {event.event_name}: {e}")
            raise
        else:
            self.stats.handled += 1
            self.stats.last_handled_at = datetime.now(timezone.utc)
        finally:
            self.stats.total_time_ms += (time.perf_counter() - started) * 1000


@dataclass
class _Registration:
    route: EventRoute
    handler: Handler | EventHandlerBase
    priority: int
    sequence: int


class EventDispatcher:
    """Outbound channel for decoded contract events.

    Middleware sees every event first. Matching handlers then run in
    descending priority (registration order breaks ties); a failing handler
    is logged and counted without stopping the rest.
    """

    def __init__(self):
        self._registrations: dict[str, list[_Registration]] = {}
        self._middleware: list[Handler] = []
        self._sequence = itertools.count()
        self._stats = DispatcherStats()

    @property
    def stats(self) -> DispatcherStats:
        return self._stats

    def _recount(self, event_name: str) -> None:
        for label in [k for k in self._stats.routes if k.split("@")[0] == event_name]:
            del self._stats.routes[label]
        for registration in self._registrations.get(event_name, []):
            label = str(registration.route)
            self._stats.routes[label] = self._stats.routes.get(label, 0) + 1

    def register_handler(
        self,
        event_name: str,
        handler: Handler | EventHandlerBase,
        priority: int = 0,
        contract_address: str | None = None,
    ) -> EventRoute:
        """Register a handler.

        Args:
            event_name: Event name to handle
            handler: Coroutine function or EventHandlerBase instance
            priority: Higher runs first
            contract_address: Only route events emitted by this contract;
                defaults to the handler's own route for EventHandlerBase

        Returns:
            Route the handler was registered under
        """
        if contract_address is None and isinstance(handler, EventHandlerBase):
            contract_address = handler.route.contract_address
        route = EventRoute.create(event_name, contract_address)

        registrations = self._registrations.setdefault(event_name, [])
        registrations.append(
            _Registration(route, handler, priority, next(self._sequence))
        )
        registrations.sort(key=lambda r: (-r.priority, r.sequence))
        self._recount(event_name)

        logger.info(f"Registered handler for {route} (priority={priority})")
        return route

    def unregister_handler(
        self, event_name: str, handler: Handler | EventHandlerBase
    ) -> bool:
        """Remove every registration of ``handler`` for an event name.

        Returns:
            True if anything was removed
        """
        registrations = self._registrations.get(event_name)
        if not registrations:
            return False

        kept = [r for r in registrations if r.handler is not handler]
        if len(kept) == len(registrations):
            return False

        if kept:
            self._registrations[event_name] = kept
        else:
            del self._registrations[event_name]
        self._recount(event_name)
        return True

    def add_middleware(self, middleware: Handler) -> None:
        """Run ``middleware`` on every event before any handler."""
        self._middleware.append(middleware)

    def handlers_for(self, event: NormalizedEvent) -> list[Handler | EventHandlerBase]:
        """Handlers that would receive ``event``, in call order."""
        return [
            r.handler
            for r in self._registrations.get(event.event_name, [])
            if r.route.accepts(event)
        ]

    async def dispatch(self, event: NormalizedEvent) -> bool:
        """Dispatch an event to its handlers.

        Returns:
            True if at least one handler completed
        """
        self._stats.dispatched += 1

        for middleware in self._middleware:
            try:
                await middleware(event)
            except Exception as e:
                self._stats.handler_errors += 1
                logger.error(f"Event middleware failed on {event.event_name}: {e}")

        handlers = self.handlers_for(event)
        if not handlers:
            self._stats.unrouted += 1
            logger.debug(
                f"No handler for {event.event_name} from {event.contract_address}"
            )
            return False

        completed = 0
        for handler in handlers:
            try:
                await handler(event)
                completed += 1
            except Exception as e:
                self._stats.handler_errors += 1
                logger.error(
                    f"Handler error for {event.event_name} "
                    f"(tx {event.transaction_hash}): {e}"
                )
        return completed > 0

    async def dispatch_batch(self, events: list[NormalizedEvent]) -> int:
        """Dispatch events in order; returns how many were handled."""
        handled = 0
        for event in events:
            handled += await self.dispatch(event)
        return handled

    def get_registered_events(self) -> list[str]:
        return list(self._registrations)

    def get_handler_count(
        self, event_name: str, contract_address: str | None = None
    ) -> int:
        """Count handlers for an event name.

        With ``contract_address``, only handlers that would accept events
        from that contract are counted.
        """
        registrations = self._registrations.get(event_name, [])
        if contract_address is None:
            return len(registrations)
        address = contract_address.lower()
        return sum(
            1
            for r in registrations
            if r.route.contract_address is None
            or r.route.contract_address.lower() == address
        )

    def clear_handlers(self, event_name: str | None = None) -> None:
        """Drop handlers for one event name, or all of them."""
        if event_name is None:
            self._registrations.clear()
            self._stats.routes.clear()
            return
        self._registrations.pop(event_name, None)
        self._recount(event_name)
