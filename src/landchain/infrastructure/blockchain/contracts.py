"""Contract registry and ABI-bound contract handles.

Bindings are built once from the static catalog at startup; raw addresses
get ephemeral bindings per call. Method and event names are checked
against the loaded ABI before anything is encoded or sent.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable

from eth_abi import decode
from web3 import Web3
from web3.types import BlockIdentifier, TxParams

from landchain.core.config import Settings
from landchain.infrastructure.blockchain.catalog import (
    CONTRACT_CATALOG,
    ABILoader,
    CatalogEntry,
    get_abi_loader,
)
from landchain.infrastructure.blockchain.client import ChainClient
from landchain.infrastructure.blockchain.codec import (
    abi_type,
    find_abi_entry,
    normalize_value,
)
from landchain.infrastructure.blockchain.errors import (
    ChainRpcError,
    ConfigurationError,
    ContractCallError,
    ContractEventNotFoundError,
    ContractMethodNotFoundError,
    ContractNotFoundError,
)
from landchain.infrastructure.blockchain.events import (
    EventDecoder,
    NormalizedEvent,
)

if TYPE_CHECKING:
    from landchain.infrastructure.blockchain.transaction import (
        TransactionManager,
        TransactionResult,
    )

logger = logging.getLogger(__name__)

# Codec-only instance, never connected
_codec_w3 = Web3()

LAND_PARCEL_ALIAS = "LandParcelNFT"


@dataclass
class LandParcelInfo:
    """On-chain view of one land parcel token."""

    token_id: int
    owner: str
    token_uri: str
    heir: str


class ContractBinding:
    """A contract address bound to its ABI."""

    def __init__(
        self, address: str, abi: list[dict[str, Any]], alias: str | None = None
    ):
        """Initialize binding.

        Args:
            address: Contract address (any casing)
            abi: Contract ABI as list of dicts
            alias: Catalog alias, None for ad hoc bindings
        """
        self.alias = alias
        self.address = Web3.to_checksum_address(address)
        self.abi = abi
        self._contract = _codec_w3.eth.contract(address=self.address, abi=abi)

    @property
    def label(self) -> str:
        """Alias if registered, address otherwise."""
        return self.alias or self.address

    def has_function(self, name: str) -> bool:
        return find_abi_entry(self.abi, "function", name) is not None

    def has_event(self, name: str) -> bool:
        return find_abi_entry(self.abi, "event", name) is not None

    def get_function_abi(self, name: str) -> dict[str, Any]:
        """Get function ABI entry.

        Raises:
            ContractMethodNotFoundError: If the ABI has no such function
        """
        entry = find_abi_entry(self.abi, "function", name)
        if entry is None:
            raise ContractMethodNotFoundError(self.label, name)
        return entry

    def get_event_abi(self, name: str) -> dict[str, Any]:
        """Get event ABI entry.

        Raises:
            ContractEventNotFoundError: If the ABI has no such event
        """
        entry = find_abi_entry(self.abi, "event", name)
        if entry is None:
            raise ContractEventNotFoundError(self.label, name)
        return entry

    def event_decoder(self, name: str) -> EventDecoder:
        """Decoder for one of this contract's events."""
        return EventDecoder(self.get_event_abi(name))

    def encode_call(self, method: str, args: list[Any] | None = None) -> str:
        """Encode function call data.

        Args:
            method: Name of the function to call
            args: Function arguments

        Returns:
            0x-prefixed calldata
        """
        self.get_function_abi(method)
        func = self._contract.get_function_by_name(method)
        return func(*(args or []))._encode_transaction_data()

    def decode_result(self, method: str, data: bytes) -> Any:
        """Decode function result.

        Args:
            method: Name of the function
            data: Raw eth_call result

        Returns:
            None for no outputs, the value for one, a tuple for several
        """
        outputs = self.get_function_abi(method).get("outputs", [])
        output_types = [abi_type(o) for o in outputs]
        if not output_types:
            return None

        decoded = [
            normalize_value(t, v) for t, v in zip(output_types, decode(output_types, data))
        ]
        return decoded[0] if len(decoded) == 1 else tuple(decoded)

    def __repr__(self) -> str:
        return f"ContractBinding(alias={self.alias!r}, address={self.address!r})"


class ContractRegistry:
    """Registry of known contracts keyed by alias.

    One instance is built at startup and handed to its dependents.
    """

    def __init__(self, client: ChainClient, abi_loader: ABILoader | None = None):
        """Initialize contract registry.

        Args:
            client: Blockchain client for RPC calls
            abi_loader: ABI source (defaults to the packaged ABIs)
        """
        self.client = client
        self.abi_loader = abi_loader or get_abi_loader()
        self.transaction_manager: "TransactionManager | None" = None
        self._bindings: dict[str, ContractBinding] = {}

    def __contains__(self, alias: object) -> bool:
        return alias in self._bindings

    def __len__(self) -> int:
        return len(self._bindings)

    def aliases(self) -> list[str]:
        """Registered aliases in registration order."""
        return list(self._bindings.keys())

    def bindings(self) -> list[ContractBinding]:
        return list(self._bindings.values())

    def register(
        self, alias: str, address: str, abi: list[dict[str, Any]]
    ) -> ContractBinding:
        """Register a contract under a unique alias.

        Raises:
            ConfigurationError: If the alias is taken or the address invalid
        """
        if alias in self._bindings:
            raise ConfigurationError(f"Contract alias already registered: {alias}")
        if not Web3.is_address(address):
            raise ConfigurationError(
                f"Invalid address configured for {alias}: {address}",
                details={"alias": alias},
            )
        binding = ContractBinding(address, abi, alias=alias)
        self._bindings[alias] = binding
        logger.debug(f"Registered contract {alias} at {binding.address}")
        return binding

    def register_static(
        self,
        settings: Settings,
        catalog: Iterable[CatalogEntry] = CONTRACT_CATALOG,
    ) -> list[str]:
        """Register every catalog contract that has a configured address.

        Args:
            settings: Settings holding the contract addresses
            catalog: Catalog entries to register

        Returns:
            Aliases that were registered
        """
        registered = []
        for entry in catalog:
            address = getattr(settings, entry.address_setting, None)
            if not address:
                logger.info(
                    f"Skipping {entry.alias}: {entry.address_env_var} not configured"
                )
                continue
            self.register(entry.alias, address, self.abi_loader.get_abi(entry.abi_name))
            registered.append(entry.alias)

        logger.info(f"Initialized {len(registered)} core contracts: {registered}")
        return registered

    def get_by_alias(self, alias: str) -> ContractBinding:
        """Get binding by alias.

        Raises:
            ContractNotFoundError: If the alias is not registered
        """
        binding = self._bindings.get(alias)
        if binding is None:
            raise ContractNotFoundError(alias)
        return binding

    def find_by_address(self, address: str) -> ContractBinding | None:
        """Registered binding at address, if any."""
        checksum = Web3.to_checksum_address(address)
        for binding in self._bindings.values():
            if binding.address == checksum:
                return binding
        return None

    def resolve(
        self, address_or_alias: str, abi: list[dict[str, Any]] | None = None
    ) -> ContractBinding:
        """Resolve an alias or raw address to a binding.

        A raw address with an explicit ABI yields an ephemeral binding; a
        raw address without one falls back to the registered binding.

        Raises:
            ContractNotFoundError: Unknown alias, or raw address with no ABI
        """
        if Web3.is_address(address_or_alias):
            if abi is not None:
                return ContractBinding(address_or_alias, abi)
            binding = self.find_by_address(address_or_alias)
            if binding is None:
                raise ContractNotFoundError(address_or_alias)
            return binding

        binding = self.get_by_alias(address_or_alias)
        if abi is not None:
            return ContractBinding(binding.address, abi, alias=binding.alias)
        return binding

    async def call_read(
        self,
        address_or_alias: str,
        method: str,
        args: list[Any] | None = None,
        abi: list[dict[str, Any]] | None = None,
        block_identifier: BlockIdentifier = "latest",
    ) -> Any:
        """Call contract function (read-only).

        Args:
            address_or_alias: Contract alias or address
            method: Function name
            args: Function arguments
            abi: ABI to use instead of the registered one
            block_identifier: Block to read at

        Returns:
            Decoded function result

        Raises:
            ContractMethodNotFoundError: Function not in the ABI
            ContractCallError: Revert, bad arguments or undecodable result
            ChainRpcError: Transport failure
        """
        args = args or []
        binding = self.resolve(address_or_alias, abi)
        binding.get_function_abi(method)

        try:
            data = binding.encode_call(method, args)
        except Exception as e:
            raise ContractCallError(
                binding.address, method, args, f"invalid arguments: {e}"
            ) from e

        tx_params: TxParams = {"to": binding.address, "data": data}
        try:
            result = await self.client.eth_call(tx_params, block_identifier)
        except ChainRpcError as e:
            if not e.reverted:
                raise
            logger.error(f"Contract call failed: {binding.label}.{method}: {e.reason}")
            raise ContractCallError(binding.address, method, args, e.reason) from e

        try:
            decoded = binding.decode_result(method, result)
        except Exception as e:
            raise ContractCallError(
                binding.address, method, args, f"cannot decode result: {e}"
            ) from e

        logger.debug(f"Contract call successful: {binding.label}.{method}")
        return decoded

    async def call_write(
        self,
        address_or_alias: str,
        method: str,
        args: list[Any] | None = None,
        value: int = 0,
        abi: list[dict[str, Any]] | None = None,
        gas_limit: int | None = None,
        gas_price: int | None = None,
    ) -> "TransactionResult":
        """Submit a state-changing call through the transaction manager."""
        if self.transaction_manager is None:
            raise ConfigurationError("No transaction manager attached to registry")
        return await self.transaction_manager.submit(
            address_or_alias,
            method,
            args,
            value=value,
            abi=abi,
            gas_limit=gas_limit,
            gas_price=gas_price,
        )

    async def get_contract_events(
        self,
        address_or_alias: str,
        event_name: str,
        from_block: int = 0,
        to_block: int | str = "latest",
        abi: list[dict[str, Any]] | None = None,
    ) -> list[NormalizedEvent]:
        """Query historical events of one type.

        Args:
            address_or_alias: Contract alias or address
            event_name: Event name in the ABI
            from_block: First block (inclusive)
            to_block: Last block (inclusive) or "latest"
            abi: ABI to use instead of the registered one

        Returns:
            Decoded events in log order
        """
        binding = self.resolve(address_or_alias, abi)
        decoder = binding.event_decoder(event_name)
        logs = await self.client.get_logs(
            from_block=from_block,
            to_block=to_block,
            address=binding.address,
            topics=[decoder.topic],
        )
        return decoder.decode_many(logs)

    async def get_land_parcel_info(self, token_id: int) -> LandParcelInfo:
        """Read owner, metadata URI and designated heir of a parcel.

        The three reads run concurrently against the LandParcelNFT binding.

        Raises:
            ContractNotFoundError: LandParcelNFT not registered
            ContractCallError: A read reverted (e.g. nonexistent token)
        """
        self.get_by_alias(LAND_PARCEL_ALIAS)
        try:
            owner, token_uri, heir = await asyncio.gather(
                self.call_read(LAND_PARCEL_ALIAS, "ownerOf", [token_id]),
                self.call_read(LAND_PARCEL_ALIAS, "tokenURI", [token_id]),
                self.call_read(LAND_PARCEL_ALIAS, "getHeir", [token_id]),
            )
        except ContractCallError as e:
            logger.error(f"Failed to get land parcel info for token {token_id}: {e}")
            raise
        return LandParcelInfo(
            token_id=token_id, owner=owner, token_uri=token_uri, heir=heir
        )

    async def get_token_balance(self, address_or_alias: str, holder: str) -> int:
        """``balanceOf(holder)`` on a token contract, in base units."""
        return await self.call_read(address_or_alias, "balanceOf", [holder])
