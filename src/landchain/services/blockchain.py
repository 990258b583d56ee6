"""Blockchain service wiring client, signer, contracts, transactions and events."""

import logging
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any

from web3 import Web3

from landchain.core.config import Settings, get_settings
from landchain.infrastructure.blockchain.client import ChainClient, Web3ChainClient
from landchain.infrastructure.blockchain.contracts import ContractRegistry
from landchain.infrastructure.blockchain.errors import ChainRpcError, ConfigurationError
from landchain.infrastructure.blockchain.poller import LogPoller, PollerConfig
from landchain.infrastructure.blockchain.signer import SignerContext
from landchain.infrastructure.blockchain.subscriptions import EventSubscriptionRegistry
from landchain.infrastructure.blockchain.transaction import TransactionManager
from landchain.services.event_handlers.dispatcher import EventDispatcher
from landchain.services.event_handlers.handlers import register_all_handlers

logger = logging.getLogger(__name__)


@dataclass
class ChainStatus:
    """Network and signer status snapshot."""

    connected: bool
    chain_id: int | None = None
    block_number: int | None = None
    gas_price: int | None = None
    signer_address: str | None = None
    signer_balance: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class BlockchainService:
    """Owns the blockchain components for the lifetime of the process.

    ``start`` brings them up in dependency order: client, signer, contract
    registry, transaction manager, log poller, core event listeners.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: ChainClient | None = None,
        dispatcher: EventDispatcher | None = None,
    ):
        """Initialize blockchain service.

        Args:
            settings: Settings (defaults to the cached settings)
            client: Blockchain client (defaults to a Web3ChainClient)
            dispatcher: Dispatcher receiving core contract events
        """
        self.settings = settings or get_settings()
        self.client = client or Web3ChainClient(settings=self.settings)
        self.dispatcher = dispatcher or EventDispatcher()

        self.signer: SignerContext | None = None
        self.contracts: ContractRegistry | None = None
        self.transactions: TransactionManager | None = None
        self.poller: LogPoller | None = None
        self.subscriptions: EventSubscriptionRegistry | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Connect and start listening for core contract events.

        Raises:
            ConfigurationError: Missing RPC URL or key, wrong chain, bad address
            ChainRpcError: Node unreachable
        """
        if self._running:
            logger.warning("Blockchain service is already running")
            return

        await self.client.connect()

        self.signer = SignerContext(self.settings.private_key)

        self.contracts = ContractRegistry(self.client)
        self.contracts.register_static(self.settings)

        self.transactions = TransactionManager(
            self.client, self.signer, self.contracts, settings=self.settings
        )
        self.contracts.transaction_manager = self.transactions

        self.poller = LogPoller(self.client, PollerConfig.from_settings(self.settings))
        await self.poller.start()

        self.subscriptions = EventSubscriptionRegistry(self.contracts, self.poller)
        try:
            self.subscriptions.bootstrap_core_listeners(self.dispatcher.dispatch)
        except Exception:
            logger.error("Core listener bootstrap failed, stopping log poller")
            self.subscriptions.teardown()
            await self.poller.stop()
            raise

        self._running = True
        logger.info(
            f"Blockchain service started (signer={self.signer.address}, "
            f"contracts={len(self.contracts)}, subscriptions={len(self.subscriptions)})"
        )

    async def stop(self) -> None:
        """Remove all subscriptions and stop polling."""
        if not self._running:
            return

        if self.subscriptions is not None:
            self.subscriptions.teardown()
        if self.poller is not None:
            await self.poller.stop()

        self._running = False
        logger.info("Blockchain service stopped")

    def _require_started(self) -> None:
        if not self._running:
            raise ConfigurationError("Blockchain service is not started")

    async def get_status(self) -> ChainStatus:
        """Get network status.

        Returns:
            ChainStatus; ``connected`` is False when the node does not answer
        """
        signer_address = self.signer.address if self.signer else None
        try:
            block_number = await self.client.get_block_number()
            gas_price = await self.client.get_gas_price()
            balance = (
                await self.client.get_balance(signer_address)
                if signer_address
                else None
            )
        except ChainRpcError as e:
            logger.error(f"Failed to get network status: {e}")
            return ChainStatus(connected=False, signer_address=signer_address)

        return ChainStatus(
            connected=True,
            chain_id=self.client.chain_id,
            block_number=block_number,
            gas_price=gas_price,
            signer_address=signer_address,
            signer_balance=balance,
        )

    async def get_balance(self, address: str | None = None) -> int:
        """Native balance in wei of an address (the signer by default)."""
        self._require_started()
        return await self.client.get_balance(address or self.signer.address)

    @staticmethod
    def to_wei(amount: int | float | str | Decimal, unit: str = "ether") -> int:
        """Convert an amount in ``unit`` to wei."""
        return Web3.to_wei(Decimal(str(amount)), unit)

    @staticmethod
    def from_wei(amount: int, unit: str = "ether") -> Decimal:
        """Convert wei to ``unit``."""
        return Decimal(str(Web3.from_wei(amount, unit)))

    @staticmethod
    def parse_units(amount: int | float | str | Decimal, decimals: int) -> int:
        """Convert a token amount to base units for a token with ``decimals``.

        Raises:
            ValueError: Negative decimals, or more fractional digits than
                ``decimals`` allows
        """
        if decimals < 0:
            raise ValueError(f"decimals must be non-negative, got {decimals}")
        scaled = Decimal(str(amount)).scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"{amount} has more than {decimals} decimal places")
        return int(scaled)

    @staticmethod
    def format_units(amount: int, decimals: int) -> Decimal:
        """Convert base units of a token with ``decimals`` to a token amount."""
        if decimals < 0:
            raise ValueError(f"decimals must be non-negative, got {decimals}")
        return Decimal(amount).scaleb(-decimals)

    @staticmethod
    def is_address(value: Any) -> bool:
        return Web3.is_address(value)

    @staticmethod
    def to_checksum_address(address: str) -> str:
        return Web3.to_checksum_address(address)


def create_blockchain_service(settings: Settings | None = None) -> BlockchainService:
    """Create a service with the core event handlers registered.

    Args:
        settings: Settings (defaults to the cached settings)

    Returns:
        Unstarted BlockchainService
    """
    settings = settings or get_settings()
    dispatcher = EventDispatcher()
    register_all_handlers(dispatcher, parcel_address=settings.land_parcel_nft_address)
    return BlockchainService(settings=settings, dispatcher=dispatcher)
