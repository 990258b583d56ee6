"""Blockchain infrastructure module."""

from landchain.infrastructure.blockchain.catalog import (
    CONTRACT_CATALOG,
    ABILoader,
    CatalogEntry,
    get_abi_loader,
)
from landchain.infrastructure.blockchain.client import (
    ChainClient,
    FeeData,
    Web3ChainClient,
)
from landchain.infrastructure.blockchain.contracts import (
    ContractBinding,
    ContractRegistry,
    LandParcelInfo,
)
from landchain.infrastructure.blockchain.errors import (
    BatchSubmitError,
    ChainError,
    ChainRpcError,
    ConfigurationError,
    ContractCallError,
    ContractEventNotFoundError,
    ContractMethodNotFoundError,
    ContractNotFoundError,
    ErrorKind,
    TransactionAlreadyMinedError,
    TransactionNotFoundError,
    TransactionRevertedError,
    TransactionSubmitError,
    TransactionTimeoutError,
)
from landchain.infrastructure.blockchain.events import (
    EventDecoder,
    NormalizedEvent,
)
from landchain.infrastructure.blockchain.nonce import NonceAllocator
from landchain.infrastructure.blockchain.poller import (
    LogPoller,
    PollerConfig,
    PollerState,
)
from landchain.infrastructure.blockchain.signer import SignerContext
from landchain.infrastructure.blockchain.subscriptions import (
    EventSubscriptionRegistry,
    subscription_key,
)
from landchain.infrastructure.blockchain.transaction import (
    BatchItem,
    CostEstimate,
    PendingTransaction,
    TransactionManager,
    TransactionReceiptView,
    TransactionResult,
    TransactionStatus,
    TransactionStatusView,
)

__all__ = [
    # Client
    "ChainClient",
    "FeeData",
    "Web3ChainClient",
    # Signing
    "SignerContext",
    "NonceAllocator",
    # Contracts
    "ABILoader",
    "CatalogEntry",
    "CONTRACT_CATALOG",
    "ContractBinding",
    "ContractRegistry",
    "LandParcelInfo",
    "get_abi_loader",
    # Events
    "EventDecoder",
    "NormalizedEvent",
    "LogPoller",
    "PollerConfig",
    "PollerState",
    "EventSubscriptionRegistry",
    "subscription_key",
    # Transactions
    "BatchItem",
    "CostEstimate",
    "PendingTransaction",
    "TransactionManager",
    "TransactionReceiptView",
    "TransactionResult",
    "TransactionStatus",
    "TransactionStatusView",
    # Errors
    "ErrorKind",
    "ChainError",
    "ConfigurationError",
    "ChainRpcError",
    "ContractNotFoundError",
    "ContractMethodNotFoundError",
    "ContractEventNotFoundError",
    "ContractCallError",
    "TransactionSubmitError",
    "BatchSubmitError",
    "TransactionTimeoutError",
    "TransactionRevertedError",
    "TransactionNotFoundError",
    "TransactionAlreadyMinedError",
]
