"""Typed errors raised by the blockchain layer.

Every error carries a machine-readable ``kind`` so callers can choose a
retry policy by pattern-matching instead of parsing messages: timeouts and
RPC failures may be retried, reverts and configuration errors may not.
Context (method, args, target address, tx hash) is attached in ``details``;
the signing key is never part of an error.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Discriminator for chain errors."""

    CONFIGURATION = "configuration"
    RPC = "rpc"
    CONTRACT_NOT_FOUND = "contract_not_found"
    METHOD_NOT_FOUND = "method_not_found"
    EVENT_NOT_FOUND = "event_not_found"
    CONTRACT_CALL = "contract_call"
    SUBMIT = "submit"
    BATCH = "batch"
    TIMEOUT = "timeout"
    REVERTED = "reverted"
    TX_NOT_FOUND = "tx_not_found"
    ALREADY_MINED = "already_mined"


# Kinds whose operation may be safely re-attempted by the caller
RETRYABLE_KINDS = frozenset({ErrorKind.RPC, ErrorKind.TIMEOUT})


class ChainError(Exception):
    """Base exception for the blockchain layer.

    Attributes:
        message: Human-readable error description
        kind: Discriminator used for retry decisions
        tx_hash: Related transaction hash, if any
        details: Additional diagnostic context
    """

    kind: ErrorKind = ErrorKind.RPC

    def __init__(
        self,
        message: str,
        *,
        tx_hash: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.tx_hash = tx_hash
        self.details = details or {}

    @property
    def retryable(self) -> bool:
        """Whether the failed operation may be retried."""
        return self.kind in RETRYABLE_KINDS

    def __str__(self) -> str:
        if self.tx_hash:
            return f"[{self.kind.value}] {self.message} (tx: {self.tx_hash})"
        return f"[{self.kind.value}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"kind={self.kind.value!r}, "
            f"tx_hash={self.tx_hash!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert the error to a JSON-serializable dict."""
        return {
            "error": self.__class__.__name__,
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
            "tx_hash": self.tx_hash,
            "details": self.details,
        }


class ConfigurationError(ChainError):
    """Missing or invalid connection/signer configuration."""

    kind = ErrorKind.CONFIGURATION


class ChainRpcError(ChainError):
    """JSON-RPC transport or node failure."""

    kind = ErrorKind.RPC

    def __init__(self, method: str, reason: str, *, reverted: bool = False) -> None:
        super().__init__(
            f"RPC {method} failed: {reason}",
            details={"rpc_method": method, "reason": reason, "reverted": reverted},
        )
        self.method = method
        self.reason = reason
        self.reverted = reverted

    @property
    def retryable(self) -> bool:
        """Execution reverts are deterministic; transport failures are not."""
        return not self.reverted


class ContractNotFoundError(ChainError):
    """Unknown contract alias."""

    kind = ErrorKind.CONTRACT_NOT_FOUND

    def __init__(self, alias: str) -> None:
        super().__init__(
            f"Contract not registered: {alias}", details={"alias": alias}
        )
        self.alias = alias


class ContractMethodNotFoundError(ChainError):
    """Function name not present in the contract ABI."""

    kind = ErrorKind.METHOD_NOT_FOUND

    def __init__(self, address: str, method: str) -> None:
        super().__init__(
            f"Function {method} not found in ABI of {address}",
            details={"address": address, "method": method},
        )
        self.address = address
        self.method = method


class ContractEventNotFoundError(ChainError):
    """Event name not present in the contract ABI."""

    kind = ErrorKind.EVENT_NOT_FOUND

    def __init__(self, address: str, event_name: str) -> None:
        super().__init__(
            f"Event {event_name} not found in ABI of {address}",
            details={"address": address, "event_name": event_name},
        )
        self.address = address
        self.event_name = event_name


class ContractCallError(ChainError):
    """A read-only contract call reverted or could not be decoded."""

    kind = ErrorKind.CONTRACT_CALL

    def __init__(
        self, address: str, method: str, args: list[Any], reason: str
    ) -> None:
        super().__init__(
            f"Call {method} on {address} failed: {reason}",
            details={
                "address": address,
                "method": method,
                "args": [str(a) for a in args],
                "reason": reason,
            },
        )
        self.address = address
        self.method = method
        self.args_ = args
        self.reason = reason


class TransactionSubmitError(ChainError):
    """Estimating, signing or broadcasting a transaction failed."""

    kind = ErrorKind.SUBMIT

    def __init__(
        self, target: str, method: str, args: list[Any], reason: str
    ) -> None:
        super().__init__(
            f"Submitting {method} to {target} failed: {reason}",
            details={
                "target": target,
                "method": method,
                "args": [str(a) for a in args],
                "reason": reason,
            },
        )
        self.target = target
        self.method = method
        self.args_ = args
        self.reason = reason


class BatchSubmitError(ChainError):
    """A batch submission stopped at a failing item.

    Transactions in ``results`` were already broadcast and cannot be
    rolled back.
    """

    kind = ErrorKind.BATCH

    def __init__(self, index: int, cause: Exception, results: list[Any]) -> None:
        super().__init__(
            f"Batch item {index} failed: {cause}",
            details={
                "index": index,
                "sent": [getattr(r, "hash", None) for r in results],
            },
        )
        self.index = index
        self.cause = cause
        self.results = results


class TransactionTimeoutError(ChainError):
    """Confirmation wait exceeded; the transaction may still be mined."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, tx_hash: str, timeout_ms: int, confirmations: int) -> None:
        super().__init__(
            f"Transaction not confirmed ({confirmations} conf) within {timeout_ms}ms",
            tx_hash=tx_hash,
            details={"timeout_ms": timeout_ms, "confirmations": confirmations},
        )
        self.timeout_ms = timeout_ms


class TransactionRevertedError(ChainError):
    """Transaction was mined with a failed status."""

    kind = ErrorKind.REVERTED

    def __init__(self, tx_hash: str, receipt: Any = None) -> None:
        super().__init__(
            "Transaction reverted",
            tx_hash=tx_hash,
            details={"block_number": getattr(receipt, "block_number", None)},
        )
        self.receipt = receipt


class TransactionNotFoundError(ChainError):
    """The node has no record of the transaction."""

    kind = ErrorKind.TX_NOT_FOUND

    def __init__(self, tx_hash: str) -> None:
        super().__init__("Original transaction not found", tx_hash=tx_hash)


class TransactionAlreadyMinedError(ChainError):
    """The transaction already has a receipt and cannot be replaced."""

    kind = ErrorKind.ALREADY_MINED

    def __init__(self, tx_hash: str, action: str) -> None:
        super().__init__(
            f"Transaction already mined, cannot {action}",
            tx_hash=tx_hash,
            details={"action": action},
        )
        self.action = action
