"""Event handlers module."""

from landchain.services.event_handlers.dispatcher import (
    DispatcherStats,
    EventDispatcher,
    EventHandlerBase,
    EventRoute,
    HandlerStats,
)
from landchain.services.event_handlers.handlers import (
    CORE_EVENT_MESSAGES,
    DomainEventLogHandler,
    ParcelTransferHandler,
    register_all_handlers,
)

__all__ = [
    # Dispatcher
    "EventDispatcher",
    "EventHandlerBase",
    "EventRoute",
    "HandlerStats",
    "DispatcherStats",
    # Handlers
    "CORE_EVENT_MESSAGES",
    "DomainEventLogHandler",
    "ParcelTransferHandler",
    "register_all_handlers",
]
