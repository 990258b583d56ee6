"""Transaction manager for sending on-chain transactions.

Drives a contract call through build -> estimate -> submit -> confirm, and
supports superseding a pending transaction (speed-up / cancel) by
re-broadcasting with the same nonce at a higher price:

- Gas estimation with a fixed safety buffer (never below 20%)
- Gas price re-quoted at submit time
- Nonces from a per-signer allocator
- Confirmation waiting with timeout
- No retries of sends: a broadcast cannot be taken back
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from web3.types import TxParams

from landchain.core.config import Settings, get_settings
from landchain.infrastructure.blockchain.client import ChainClient
from landchain.infrastructure.blockchain.codec import as_hex
from landchain.infrastructure.blockchain.contracts import ContractRegistry
from landchain.infrastructure.blockchain.errors import (
    BatchSubmitError,
    ChainError,
    ContractCallError,
    TransactionAlreadyMinedError,
    TransactionNotFoundError,
    TransactionRevertedError,
    TransactionSubmitError,
    TransactionTimeoutError,
)
from landchain.infrastructure.blockchain.nonce import NonceAllocator
from landchain.infrastructure.blockchain.signer import SignerContext

logger = logging.getLogger(__name__)

# Gas of a plain value transfer
TRANSFER_GAS = 21_000

BPS_DENOMINATOR = 10_000


class SubmitStage(str, Enum):
    """Where a submission is in its build/estimate/send flow."""

    BUILT = "built"
    ESTIMATING = "estimating"
    SUBMITTED = "submitted"


class TransactionStatus(str, Enum):
    """Lifecycle status of a submitted transaction."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    REPLACED = "replaced"


@dataclass
class TransactionResult:
    """What was broadcast, captured at send time."""

    hash: str
    from_address: str
    to: str
    value: int
    gas_limit: int
    gas_price: int
    nonce: int


@dataclass
class PendingTransaction:
    """In-memory record of a transaction sent by this process."""

    hash: str
    from_address: str
    to: str
    nonce: int
    gas_limit: int
    gas_price: int
    value: int
    data: str
    submitted_at: datetime
    status: TransactionStatus = TransactionStatus.PENDING
    method: str | None = None
    replaced_by: str | None = None


@dataclass
class TransactionReceiptView:
    """Receipt fields exposed to callers."""

    hash: str
    block_number: int
    block_hash: str
    gas_used: int
    status: int
    from_address: str
    to: str | None
    contract_address: str | None = None
    logs: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_receipt(cls, receipt: dict[str, Any]) -> "TransactionReceiptView":
        """Build from a raw receipt dict."""
        return cls(
            hash=as_hex(receipt.get("transactionHash", b"")),
            block_number=receipt.get("blockNumber", 0),
            block_hash=as_hex(receipt.get("blockHash", b"")),
            gas_used=receipt.get("gasUsed", 0),
            status=receipt.get("status", 0),
            from_address=receipt.get("from", ""),
            to=receipt.get("to"),
            contract_address=receipt.get("contractAddress"),
            logs=[dict(log) for log in receipt.get("logs", [])],
        )


@dataclass
class TransactionStatusView:
    """Point-in-time status of a transaction."""

    status: TransactionStatus
    receipt: TransactionReceiptView | None = None
    confirmations: int = 0


@dataclass
class CostEstimate:
    """Gas cost preview in wei."""

    gas_estimate: int
    gas_price: int
    estimated_cost: int


@dataclass
class BatchItem:
    """One call in a batch submission."""

    target: str
    method: str
    args: list[Any] = field(default_factory=list)
    value: int = 0
    abi: list[dict[str, Any]] | None = None
    gas_limit: int | None = None


class TransactionManager:
    """Builds, signs, sends and tracks transactions for one signer.

    Concurrent submits never share a nonce: the allocator serializes
    reservation and reuses nonces whose broadcast failed. Business-level
    ordering is the caller's concern.
    """

    def __init__(
        self,
        client: ChainClient,
        signer: SignerContext,
        registry: ContractRegistry,
        settings: Settings | None = None,
        nonce_allocator: NonceAllocator | None = None,
    ):
        """Initialize transaction manager.

        Args:
            client: Blockchain client for reads and broadcasting
            signer: Signer for the platform key
            registry: Contract registry used to resolve targets
            settings: Settings (defaults to the cached settings)
            nonce_allocator: Allocator (defaults to one for the signer)
        """
        self.client = client
        self.signer = signer
        self.registry = registry
        self.settings = settings or get_settings()
        self.nonces = nonce_allocator or NonceAllocator(client, signer.address)
        self._transactions: dict[str, PendingTransaction] = {}

        logger.info(f"TransactionManager initialized for address: {signer.address}")

    @property
    def address(self) -> str:
        """Get the signer address."""
        return self.signer.address

    def apply_gas_buffer(self, estimate: int) -> int:
        """Gas limit for an estimate: ``ceil(estimate * (1 + buffer))``."""
        factor = BPS_DENOMINATOR + self.settings.gas_limit_buffer_bps
        return -(-estimate * factor // BPS_DENOMINATOR)

    def bump_gas_price(self, original: int, override: int | None = None) -> int:
        """Replacement price: the larger of the override and original + bump."""
        factor = BPS_DENOMINATOR + self.settings.gas_price_bump_bps
        minimum = -(-original * factor // BPS_DENOMINATOR)
        return max(override or 0, minimum)

    async def submit(
        self,
        target: str,
        method: str,
        args: list[Any] | None = None,
        value: int = 0,
        abi: list[dict[str, Any]] | None = None,
        gas_limit: int | None = None,
        gas_price: int | None = None,
    ) -> TransactionResult:
        """Send a contract function call transaction.

        Args:
            target: Contract alias or address
            method: Name of function to call
            args: Function arguments
            value: Amount of native token to send (in wei)
            abi: ABI to use instead of the registered one
            gas_limit: Explicit gas limit (skips estimation)
            gas_price: Explicit gas price (skips the price quote)

        Returns:
            TransactionResult captured at broadcast

        Raises:
            ContractNotFoundError: Unknown alias
            ContractMethodNotFoundError: Function not in the ABI
            TransactionSubmitError: Estimation, signing or broadcast failed
        """
        args = list(args or [])
        binding = self.registry.resolve(target, abi)
        binding.get_function_abi(method)

        stage = SubmitStage.BUILT
        try:
            data = binding.encode_call(method, args)

            if gas_limit is None:
                stage = SubmitStage.ESTIMATING
                tx_for_estimate: TxParams = {
                    "from": self.signer.address,
                    "to": binding.address,
                    "data": data,
                    "value": value,
                }
                estimated_gas = await self.client.estimate_gas(tx_for_estimate)
                gas_limit = self.apply_gas_buffer(estimated_gas)
                logger.debug(f"Estimated gas: {estimated_gas}, using: {gas_limit}")

            # Always a fresh quote; an earlier estimate's price may be stale
            if gas_price is None:
                gas_price = await self.client.get_gas_price()
        except Exception as e:
            logger.error(
                f"Transaction failed while {stage.value}: {binding.label}.{method}: {e}"
            )
            raise TransactionSubmitError(binding.label, method, args, str(e)) from e

        return await self._sign_and_send(
            to=binding.address,
            data=data,
            value=value,
            gas_limit=gas_limit,
            gas_price=gas_price,
            method=method,
            args=args,
            target=binding.label,
        )

    async def send_raw(
        self,
        to: str,
        data: str = "0x",
        value: int = 0,
        gas_limit: int = TRANSFER_GAS,
    ) -> TransactionResult:
        """Send a value transfer or pre-encoded call.

        Args:
            to: Recipient address
            data: Pre-encoded calldata
            value: Amount in wei
            gas_limit: Gas limit (no estimation)
        """
        try:
            gas_price = await self.client.get_gas_price()
        except Exception as e:
            raise TransactionSubmitError(to, "raw", [], str(e)) from e

        return await self._sign_and_send(
            to=to,
            data=data,
            value=value,
            gas_limit=gas_limit,
            gas_price=gas_price,
            method="raw",
            args=[],
            target=to,
        )

    async def _sign_and_send(
        self,
        *,
        to: str,
        data: str,
        value: int,
        gas_limit: int,
        gas_price: int,
        method: str,
        args: list[Any],
        target: str,
        nonce: int | None = None,
    ) -> TransactionResult:
        """Sign and broadcast, then record the pending transaction.

        A nonce is allocated unless one is given (replacements pass the
        original nonce).
        """
        allocated = nonce is None
        try:
            if nonce is None:
                nonce = await self.nonces.allocate()
            chain_id = await self.client.get_chain_id()

            tx = {
                "to": to,
                "data": data,
                "value": value,
                "gas": gas_limit,
                "gasPrice": gas_price,
                "nonce": nonce,
                "chainId": chain_id,
            }
            raw_tx, signed_hash = self.signer.sign_transaction(tx)
            logger.debug(f"Transaction signed, hash: {signed_hash}")

            tx_hash = await self.client.send_raw_transaction(raw_tx)
        except Exception as e:
            if allocated and nonce is not None:
                self.nonces.release(nonce)
            logger.error(f"Transaction failed: {target}.{method}: {e}")
            raise TransactionSubmitError(target, method, args, str(e)) from e

        if allocated:
            self.nonces.commit(nonce)
        self._transactions[tx_hash] = PendingTransaction(
            hash=tx_hash,
            from_address=self.signer.address,
            to=to,
            nonce=nonce,
            gas_limit=gas_limit,
            gas_price=gas_price,
            value=value,
            data=data,
            submitted_at=datetime.now(timezone.utc),
            method=method,
        )
        logger.info(
            f"Transaction sent: {tx_hash}, "
            f"function: {method}, "
            f"target: {target}, "
            f"nonce: {nonce}, gas: {gas_limit}, gas_price: {gas_price}"
        )

        return TransactionResult(
            hash=tx_hash,
            from_address=self.signer.address,
            to=to,
            value=value,
            gas_limit=gas_limit,
            gas_price=gas_price,
            nonce=nonce,
        )

    async def wait_for_confirmation(
        self,
        tx_hash: str,
        confirmations: int = 1,
        timeout_ms: int | None = None,
    ) -> TransactionReceiptView:
        """Wait until the transaction has ``confirmations`` blocks.

        Args:
            tx_hash: Transaction hash
            confirmations: Required confirmations (the mined block counts)
            timeout_ms: Maximum wait in milliseconds

        Returns:
            Receipt of the successful transaction

        Raises:
            TransactionTimeoutError: Not confirmed in time (may still be mined)
            TransactionRevertedError: Mined with status 0
        """
        if timeout_ms is None:
            timeout_ms = self.settings.confirmation_timeout_ms
        confirmations = max(1, confirmations)
        logger.info(
            f"Waiting for transaction confirmation: {tx_hash} "
            f"(confirmations={confirmations}, timeout={timeout_ms}ms)"
        )

        try:
            receipt = await asyncio.wait_for(
                self._poll_receipt(tx_hash, confirmations), timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            logger.warning(f"Transaction {tx_hash} not confirmed within {timeout_ms}ms")
            raise TransactionTimeoutError(tx_hash, timeout_ms, confirmations) from None

        view = TransactionReceiptView.from_receipt(receipt)
        if view.status != 1:
            self._set_status(tx_hash, TransactionStatus.FAILED)
            logger.error(f"Transaction reverted: {tx_hash} (block {view.block_number})")
            raise TransactionRevertedError(tx_hash, view)

        self._set_status(tx_hash, TransactionStatus.CONFIRMED)
        logger.info(
            f"Transaction confirmed: {tx_hash}, "
            f"block: {view.block_number}, gas used: {view.gas_used}"
        )
        return view

    async def _poll_receipt(self, tx_hash: str, confirmations: int) -> dict[str, Any]:
        """Poll until a receipt with enough confirmations exists."""
        while True:
            receipt = await self.client.get_transaction_receipt(tx_hash)
            if receipt and receipt.get("blockNumber") is not None:
                if confirmations == 1:
                    return receipt
                current_block = await self.client.get_block_number()
                if current_block - receipt["blockNumber"] + 1 >= confirmations:
                    return receipt
            await asyncio.sleep(self.settings.confirmation_poll_interval)

    async def get_status(self, tx_hash: str) -> TransactionStatusView:
        """Get transaction status and confirmation count.

        Args:
            tx_hash: Transaction hash

        Returns:
            PENDING without a receipt, otherwise CONFIRMED or FAILED
        """
        receipt = await self.client.get_transaction_receipt(tx_hash)
        if not receipt:
            return TransactionStatusView(status=TransactionStatus.PENDING)

        current_block = await self.client.get_block_number()
        view = TransactionReceiptView.from_receipt(receipt)
        confirmations = max(0, current_block - view.block_number + 1)
        status = (
            TransactionStatus.CONFIRMED if view.status == 1 else TransactionStatus.FAILED
        )
        self._set_status(tx_hash, status)

        return TransactionStatusView(
            status=status, receipt=view, confirmations=confirmations
        )

    async def _load_replaceable(self, tx_hash: str, action: str) -> dict[str, Any]:
        """Fetch a pending transaction of this signer that may be replaced."""
        original = await self.client.get_transaction(tx_hash)
        if not original:
            raise TransactionNotFoundError(tx_hash)

        receipt = await self.client.get_transaction_receipt(tx_hash)
        if receipt:
            raise TransactionAlreadyMinedError(tx_hash, action)

        sender = original.get("from", "")
        if sender and sender.lower() != self.signer.address.lower():
            raise TransactionSubmitError(
                sender, action, [tx_hash], "transaction was not sent by this signer"
            )
        return original

    def _original_price(self, original: dict[str, Any]) -> int:
        return original.get("gasPrice") or original.get("maxFeePerGas") or 0

    async def speed_up(
        self, tx_hash: str, new_gas_price: int | None = None
    ) -> TransactionResult:
        """Re-send a pending transaction with the same nonce at a higher price.

        Args:
            tx_hash: Hash of the pending transaction
            new_gas_price: Desired price; raised to the minimum bump if lower

        Raises:
            TransactionNotFoundError: Unknown hash
            TransactionAlreadyMinedError: Already has a receipt
            TransactionSubmitError: Broadcast failed
        """
        original = await self._load_replaceable(tx_hash, "speed up")
        gas_price = self.bump_gas_price(self._original_price(original), new_gas_price)

        result = await self._sign_and_send(
            to=original["to"],
            data=as_hex(original.get("input", "0x")),
            value=original.get("value", 0),
            gas_limit=original["gas"],
            gas_price=gas_price,
            method="speedUp",
            args=[tx_hash],
            target=original["to"],
            nonce=original["nonce"],
        )
        self._mark_replaced(tx_hash, result.hash)
        logger.info(
            f"Speed up transaction sent: {result.hash}, "
            f"original: {tx_hash}, gas_price: {gas_price}, nonce: {result.nonce}"
        )
        return result

    async def cancel(
        self, tx_hash: str, new_gas_price: int | None = None
    ) -> TransactionResult:
        """Supersede a pending transaction with a zero-value self-transfer.

        Args:
            tx_hash: Hash of the pending transaction
            new_gas_price: Desired price; raised to the minimum bump if lower

        Raises:
            TransactionNotFoundError: Unknown hash
            TransactionAlreadyMinedError: Already has a receipt
            TransactionSubmitError: Broadcast failed
        """
        original = await self._load_replaceable(tx_hash, "cancel")
        gas_price = self.bump_gas_price(self._original_price(original), new_gas_price)

        result = await self._sign_and_send(
            to=self.signer.address,
            data="0x",
            value=0,
            gas_limit=TRANSFER_GAS,
            gas_price=gas_price,
            method="cancel",
            args=[tx_hash],
            target=self.signer.address,
            nonce=original["nonce"],
        )
        self._mark_replaced(tx_hash, result.hash)
        logger.info(
            f"Cancel transaction sent: {result.hash}, "
            f"original: {tx_hash}, gas_price: {gas_price}, nonce: {result.nonce}"
        )
        return result

    async def batch_submit(self, items: list[BatchItem]) -> list[TransactionResult]:
        """Submit calls one after another, stopping at the first failure.

        Args:
            items: Calls to submit, in order

        Returns:
            Results of all submissions

        Raises:
            BatchSubmitError: With the failing index and the results already sent
        """
        results: list[TransactionResult] = []
        for index, item in enumerate(items):
            if index and self.settings.batch_send_interval > 0:
                await asyncio.sleep(self.settings.batch_send_interval)
            try:
                result = await self.submit(
                    item.target,
                    item.method,
                    item.args,
                    value=item.value,
                    abi=item.abi,
                    gas_limit=item.gas_limit,
                )
            except ChainError as e:
                logger.error(
                    f"Batch transaction failed at index {index}: "
                    f"{item.target}.{item.method}: {e}"
                )
                raise BatchSubmitError(index, e, results) from e
            results.append(result)

        logger.info(f"Batch transactions completed: {len(results)} transactions sent")
        return results

    async def estimate_cost(
        self,
        target: str,
        method: str,
        args: list[Any] | None = None,
        value: int = 0,
        abi: list[dict[str, Any]] | None = None,
    ) -> CostEstimate:
        """Preview the cost of a call without sending it.

        Returns:
            Gas estimate, current gas price and their product (wei)
        """
        args = list(args or [])
        binding = self.registry.resolve(target, abi)
        binding.get_function_abi(method)
        try:
            data = binding.encode_call(method, args)
        except Exception as e:
            raise ContractCallError(
                binding.address, method, args, f"invalid arguments: {e}"
            ) from e

        gas_estimate = await self.client.estimate_gas(
            {
                "from": self.signer.address,
                "to": binding.address,
                "data": data,
                "value": value,
            }
        )
        gas_price = await self.client.get_gas_price()
        return CostEstimate(
            gas_estimate=gas_estimate,
            gas_price=gas_price,
            estimated_cost=gas_estimate * gas_price,
        )

    def get_pending(self, tx_hash: str) -> PendingTransaction | None:
        """Tracked record for a hash sent by this manager."""
        return self._transactions.get(tx_hash)

    def pending_transactions(self) -> list[PendingTransaction]:
        """Tracked transactions still awaiting an outcome."""
        return [
            tx
            for tx in self._transactions.values()
            if tx.status == TransactionStatus.PENDING
        ]

    def _set_status(self, tx_hash: str, status: TransactionStatus) -> None:
        record = self._transactions.get(tx_hash)
        if record is not None:
            record.status = status

    def _mark_replaced(self, tx_hash: str, replacement_hash: str) -> None:
        record = self._transactions.get(tx_hash)
        if record is not None:
            record.status = TransactionStatus.REPLACED
            record.replaced_by = replacement_hash


__all__ = [
    "BatchItem",
    "CostEstimate",
    "PendingTransaction",
    "SubmitStage",
    "TransactionManager",
    "TransactionReceiptView",
    "TransactionResult",
    "TransactionStatus",
    "TransactionStatusView",
]
