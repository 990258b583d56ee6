"""Blockchain client over a single JSON-RPC endpoint."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TransactionNotFound
from web3.types import BlockIdentifier, TxParams, Wei

from landchain.core.config import Settings, get_settings
from landchain.infrastructure.blockchain.errors import (
    ChainRpcError,
    ConfigurationError,
)

logger = logging.getLogger(__name__)

# Priority fee assumed when the node cannot suggest one (1 gwei)
DEFAULT_PRIORITY_FEE = 1_000_000_000


@dataclass
class FeeData:
    """Current fee quote from the node.

    ``gas_price`` is the legacy quote; the remaining fields come from the
    fee market and are ``None`` on chains without EIP-1559.
    """

    gas_price: int | None
    max_fee_per_gas: int | None
    max_priority_fee_per_gas: int | None
    base_fee_per_gas: int | None

    @property
    def effective_gas_price(self) -> int | None:
        """Legacy price, or base fee plus priority fee when unavailable."""
        if self.gas_price:
            return self.gas_price
        if self.base_fee_per_gas is not None:
            return self.base_fee_per_gas + (self.max_priority_fee_per_gas or 0)
        return None


class ChainClient(ABC):
    """Abstract base class for blockchain clients."""

    chain_id: int | None = None

    @abstractmethod
    async def connect(self) -> None:
        """Open the transport and verify the node is reachable."""
        ...

    @abstractmethod
    async def get_chain_id(self) -> int:
        """Get the chain id reported by the node."""
        ...

    @abstractmethod
    async def get_block_number(self) -> int:
        """Get current block number."""
        ...

    @abstractmethod
    async def get_block(self, block_identifier: BlockIdentifier) -> dict[str, Any]:
        """Get block by number or hash."""
        ...

    @abstractmethod
    async def get_gas_price(self) -> int:
        """Get the effective gas price in wei."""
        ...

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        """Get native balance of address in wei."""
        ...

    @abstractmethod
    async def get_transaction_count(
        self, address: str, block_identifier: BlockIdentifier = "pending"
    ) -> int:
        """Get transaction count (nonce) for address."""
        ...

    @abstractmethod
    async def estimate_gas(self, transaction: TxParams) -> int:
        """Estimate gas for transaction."""
        ...

    @abstractmethod
    async def eth_call(
        self, transaction: TxParams, block_identifier: BlockIdentifier = "latest"
    ) -> bytes:
        """Execute eth_call (read-only contract call)."""
        ...

    @abstractmethod
    async def get_logs(
        self,
        from_block: int,
        to_block: int,
        address: str | list[str] | None = None,
        topics: list[Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Get logs matching filter."""
        ...

    @abstractmethod
    async def get_transaction(self, tx_hash: str) -> dict[str, Any] | None:
        """Get a transaction by hash, ``None`` if unknown."""
        ...

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        """Get transaction receipt, ``None`` if not mined."""
        ...

    @abstractmethod
    async def send_raw_transaction(self, signed_tx: bytes) -> str:
        """Broadcast a signed transaction and return its hash."""
        ...


class Web3ChainClient(ChainClient):
    """JSON-RPC client backed by ``AsyncWeb3``.

    Every node failure is converted to ``ChainRpcError``. Nothing is retried
    here: reads may be retried by callers, writes must not be.
    """

    def __init__(
        self,
        rpc_url: str | None = None,
        expected_chain_id: int | None = None,
        request_timeout: float | None = None,
        settings: Settings | None = None,
    ):
        """Initialize client.

        Args:
            rpc_url: JSON-RPC endpoint. If None, uses settings.rpc_url.
            expected_chain_id: Chain the node must report on connect
            request_timeout: HTTP timeout per request in seconds
            settings: Settings instance (defaults to the cached settings)
        """
        settings = settings or get_settings()
        self.rpc_url = rpc_url if rpc_url is not None else settings.rpc_url
        self.expected_chain_id = (
            expected_chain_id
            if expected_chain_id is not None
            else settings.expected_chain_id
        )
        self.request_timeout = request_timeout or settings.request_timeout
        self.chain_id: int | None = None
        self._web3: AsyncWeb3 | None = None

    @property
    def web3(self) -> AsyncWeb3:
        """Get or create Web3 instance."""
        if self._web3 is None:
            self._web3 = self._create_web3()
        return self._web3

    @property
    def is_connected(self) -> bool:
        """Whether connect() has verified the node."""
        return self.chain_id is not None

    def _create_web3(self) -> AsyncWeb3:
        """Create Web3 instance for the configured endpoint."""
        if not self.rpc_url:
            raise ConfigurationError("RPC URL is not configured (set RPC_URL)")
        return AsyncWeb3(
            AsyncHTTPProvider(
                self.rpc_url, request_kwargs={"timeout": self.request_timeout}
            )
        )

    async def _execute(self, method: str, *args: Any) -> Any:
        """Execute a ``web3.eth`` call, mapping failures to ChainRpcError.

        Args:
            method: ``web3.eth`` method or awaitable property name
            *args: Positional arguments for the method

        Returns:
            Result from the Web3 call

        Raises:
            ChainRpcError: If the node or transport fails
            TransactionNotFound: Passed through for lookups of unknown hashes
        """
        try:
            target = getattr(self.web3.eth, method)
            result = target(*args) if callable(target) else target
            return await result
        except TransactionNotFound:
            raise
        except ConfigurationError:
            raise
        except ContractLogicError as e:
            logger.info(f"RPC {method} reverted: {e}")
            raise ChainRpcError(method, str(e), reverted=True) from e
        except Exception as e:
            logger.warning(f"RPC {method} failed: {e}")
            raise ChainRpcError(method, str(e)) from e

    async def connect(self) -> None:
        """Verify the node is reachable and record its chain id.

        Raises:
            ConfigurationError: If no RPC URL is set or the chain id differs
            ChainRpcError: If the node cannot be reached
        """
        if not self.rpc_url:
            raise ConfigurationError("RPC URL is not configured (set RPC_URL)")

        chain_id = await self._execute("chain_id")
        if self.expected_chain_id is not None and chain_id != self.expected_chain_id:
            raise ConfigurationError(
                f"Node reports chain {chain_id}, expected {self.expected_chain_id}",
                details={"chain_id": chain_id, "expected": self.expected_chain_id},
            )
        block_number = await self.get_block_number()
        self.chain_id = chain_id
        logger.info(f"Connected to chain {chain_id} at block {block_number}")

    async def get_chain_id(self) -> int:
        """Get the chain id reported by the node."""
        if self.chain_id is None:
            self.chain_id = await self._execute("chain_id")
        return self.chain_id

    async def get_block_number(self) -> int:
        """Get current block number."""
        return await self._execute("block_number")

    async def get_block(self, block_identifier: BlockIdentifier) -> dict[str, Any]:
        """Get block by number or hash."""
        block = await self._execute("get_block", block_identifier)
        return dict(block) if block else {}

    async def get_fee_data(self) -> FeeData:
        """Get the legacy gas price and fee-market quote."""
        gas_price: int | None = None
        try:
            gas_price = await self._execute("gas_price")
        except ChainRpcError as e:
            logger.debug(f"Legacy gas price unavailable: {e.reason}")

        block = await self.get_block("latest")
        base_fee = block.get("baseFeePerGas")
        max_priority_fee: int | None = None
        max_fee: int | None = None
        if base_fee is not None:
            try:
                max_priority_fee = await self._execute("max_priority_fee")
            except ChainRpcError:
                max_priority_fee = DEFAULT_PRIORITY_FEE
            max_fee = base_fee * 2 + max_priority_fee

        return FeeData(
            gas_price=gas_price,
            max_fee_per_gas=max_fee,
            max_priority_fee_per_gas=max_priority_fee,
            base_fee_per_gas=base_fee,
        )

    async def get_gas_price(self) -> int:
        """Get current gas price.

        Falls back to base fee plus priority fee when the node does not
        answer ``eth_gasPrice``.
        """
        try:
            gas_price = await self._execute("gas_price")
            if gas_price:
                return gas_price
        except ChainRpcError as e:
            logger.debug(f"Legacy gas price unavailable, using fee market: {e.reason}")

        fee_data = await self.get_fee_data()
        effective = fee_data.effective_gas_price
        if effective is None:
            raise ChainRpcError("eth_gasPrice", "Unable to fetch gas price from provider")
        return effective

    async def get_balance(self, address: str) -> Wei:
        """Get native balance of address."""
        return await self._execute("get_balance", Web3.to_checksum_address(address))

    async def get_transaction_count(
        self, address: str, block_identifier: BlockIdentifier = "pending"
    ) -> int:
        """Get transaction count (nonce) for address."""
        return await self._execute(
            "get_transaction_count",
            Web3.to_checksum_address(address),
            block_identifier,
        )

    async def estimate_gas(self, transaction: TxParams) -> int:
        """Estimate gas for transaction."""
        return await self._execute("estimate_gas", transaction)

    async def eth_call(
        self, transaction: TxParams, block_identifier: BlockIdentifier = "latest"
    ) -> bytes:
        """Execute eth_call (read-only contract call)."""
        return await self._execute("call", transaction, block_identifier)

    async def get_logs(
        self,
        from_block: int,
        to_block: int,
        address: str | list[str] | None = None,
        topics: list[Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Get logs matching filter."""
        filter_params: dict[str, Any] = {
            "fromBlock": from_block,
            "toBlock": to_block,
        }
        if address:
            filter_params["address"] = address
        if topics:
            filter_params["topics"] = topics

        logs = await self._execute("get_logs", filter_params)
        return [dict(log) for log in logs]

    async def get_transaction(self, tx_hash: str) -> dict[str, Any] | None:
        """Get transaction by hash."""
        try:
            tx = await self._execute("get_transaction", tx_hash)
        except TransactionNotFound:
            return None
        return dict(tx) if tx else None

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        """Get transaction receipt."""
        try:
            receipt = await self._execute("get_transaction_receipt", tx_hash)
        except TransactionNotFound:
            return None
        return dict(receipt) if receipt else None

    async def send_raw_transaction(self, signed_tx: bytes) -> str:
        """Send signed raw transaction.

        Args:
            signed_tx: Signed transaction bytes

        Returns:
            Transaction hash as 0x-prefixed hex string
        """
        tx_hash = await self._execute("send_raw_transaction", signed_tx)
        return tx_hash if isinstance(tx_hash, str) else Web3.to_hex(tx_hash)

    async def health_check(self) -> bool:
        """Check if client is connected and RPC is healthy."""
        try:
            block_number = await self.get_block_number()
            return block_number > 0
        except ChainRpcError:
            return False
        except ConfigurationError:
            return False
