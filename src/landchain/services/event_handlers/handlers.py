"""Handlers for the core land-registry contract events.

Each handler records the domain event in the log with its decoded
arguments; downstream consumers hook in through the dispatcher.
"""

import logging
from typing import Any

from landchain.infrastructure.blockchain.events import NormalizedEvent
from landchain.services.event_handlers.dispatcher import (
    EventDispatcher,
    EventHandlerBase,
)

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Event name -> log message
CORE_EVENT_MESSAGES: dict[str, str] = {
    "HeirDesignated": "Heir designated",
    "ParcelMinted": "Parcel minted",
    "InheritanceRequested": "Inheritance requested",
    "InheritanceExecuted": "Inheritance executed",
    "InheritanceRejected": "Inheritance rejected",
    "ParcelFlagged": "Parcel flagged for expropriation",
    "CompensationDeposited": "Compensation deposited",
    "CompensationClaimed": "Compensation claimed",
    "ComplianceAssessed": "Compliance assessed",
    "FineIssued": "Fine issued",
    "IncentiveAwarded": "Incentive awarded",
    "DisputeCreated": "Dispute created",
    "EvidenceSubmitted": "Evidence submitted",
    "RulingExecuted": "Ruling executed",
}


def _event_extra(event: NormalizedEvent) -> dict[str, Any]:
    extra: dict[str, Any] = {
        "event_name": event.event_name,
        "contract_address": event.contract_address,
        "block_number": event.block_number,
        "tx_hash": event.transaction_hash,
    }
    for name, value in event.named_args.items():
        extra[f"arg_{name}"] = value.hex() if isinstance(value, bytes) else str(value)
    return extra


class DomainEventLogHandler(EventHandlerBase):
    """Logs a core domain event with its arguments."""

    def __init__(self, event_name: str, message: str):
        super().__init__(event_name)
        self.message = message

    async def handle(self, event: NormalizedEvent) -> None:
        logger.info(self.message, extra=_event_extra(event))


class ParcelTransferHandler(EventHandlerBase):
    """Handler for land parcel NFT Transfer events.

    Bound to the parcel contract, so token ``Transfer`` events never reach
    it. Mints (transfers from the zero address) are logged separately from
    ownership changes.
    """

    def __init__(self, parcel_address: str):
        super().__init__("Transfer", contract_address=parcel_address)

    async def handle(self, event: NormalizedEvent) -> None:
        if not self.route.accepts(event):
            logger.debug(f"Ignoring Transfer from {event.contract_address}")
            return
        sender = event.named_args.get("from")
        if sender == ZERO_ADDRESS:
            logger.info("Land parcel issued", extra=_event_extra(event))
        else:
            logger.info("Land parcel transferred", extra=_event_extra(event))


def register_all_handlers(
    dispatcher: EventDispatcher, parcel_address: str | None = None
) -> None:
    """Register the core event handlers with the dispatcher.

    Args:
        dispatcher: Event dispatcher instance
        parcel_address: LandParcelNFT address; parcel transfers are not
            handled when it is not configured
    """
    count = 0
    if parcel_address:
        dispatcher.register_handler("Transfer", ParcelTransferHandler(parcel_address))
        count += 1
    else:
        logger.info("LandParcelNFT address not configured, parcel transfers not logged")

    for event_name, message in CORE_EVENT_MESSAGES.items():
        dispatcher.register_handler(
            event_name, DomainEventLogHandler(event_name, message)
        )
        count += 1

    logger.info(f"Registered {count} core event handlers")
