"""Per-signer nonce allocation."""

import asyncio
import logging

from landchain.infrastructure.blockchain.client import ChainClient

logger = logging.getLogger(__name__)


class NonceAllocator:
    """Hands out nonces for one signer without ever sharing one in flight.

    The first allocation reads the pending transaction count from the node;
    later allocations increment locally under a lock. A nonce whose broadcast
    failed is handed back with ``release`` and reused by the next allocation,
    so no gap is left behind the transactions that did go out.

    The node is only consulted again once nothing is outstanding: its pending
    count does not include nonces reserved but not yet broadcast, nor
    transactions queued behind a gap.
    """

    def __init__(self, client: ChainClient, address: str):
        self.client = client
        self.address = address
        self._next_nonce: int | None = None
        self._outstanding: set[int] = set()
        self._released: set[int] = set()
        self._lock = asyncio.Lock()

    async def allocate(self) -> int:
        """Reserve a nonce; released gaps are filled first."""
        async with self._lock:
            if self._released:
                nonce = min(self._released)
                self._released.discard(nonce)
            else:
                if self._next_nonce is None:
                    self._next_nonce = await self.client.get_transaction_count(
                        self.address, "pending"
                    )
                    logger.debug(
                        f"Nonce synced for {self.address}: {self._next_nonce}"
                    )
                nonce = self._next_nonce
                self._next_nonce += 1
            self._outstanding.add(nonce)
            return nonce

    def commit(self, nonce: int) -> None:
        """Mark a reserved nonce as broadcast."""
        self._outstanding.discard(nonce)

    def release(self, nonce: int) -> None:
        """Hand back a reserved nonce whose broadcast failed.

        The most recent allocation steps the counter back; any other nonce
        is kept as a gap for the next allocation to fill.
        """
        if nonce not in self._outstanding:
            return
        self._outstanding.discard(nonce)

        if self._next_nonce == nonce + 1:
            self._next_nonce = nonce
            while self._next_nonce - 1 in self._released:
                self._next_nonce -= 1
                self._released.discard(self._next_nonce)
        else:
            self._released.add(nonce)
        logger.debug(f"Nonce {nonce} released for {self.address}")

        if not self._outstanding and not self._released:
            self.resync()

    def resync(self) -> None:
        """Forget the local counter; the next allocation re-reads the node.

        Ignored while nonces are outstanding or released gaps are pending.
        """
        if self._outstanding or self._released:
            logger.debug(
                f"Nonce resync deferred for {self.address}: "
                f"{len(self._outstanding)} outstanding, {len(self._released)} released"
            )
            return
        self._next_nonce = None

    @property
    def outstanding(self) -> int:
        """Number of nonces reserved but not yet broadcast."""
        return len(self._outstanding)

    @property
    def peek(self) -> int | None:
        """Next nonce that would be handed out, if known."""
        if self._released:
            return min(self._released)
        return self._next_nonce
