"""Tests for the contract catalog and registry."""

from unittest.mock import AsyncMock

import pytest
from eth_abi import encode
from web3 import Web3

from landchain.infrastructure.blockchain.catalog import (
    CONTRACT_CATALOG,
    ABILoader,
    get_abi_loader,
)
from landchain.infrastructure.blockchain.contracts import (
    ContractBinding,
    ContractRegistry,
    LandParcelInfo,
)
from landchain.infrastructure.blockchain.errors import (
    ChainRpcError,
    ConfigurationError,
    ContractCallError,
    ContractEventNotFoundError,
    ContractMethodNotFoundError,
    ContractNotFoundError,
)

HOLDER = "0x0000000000000000000000000000000000000123"


class TestABILoader:
    """Tests for ABILoader and the catalog."""

    def test_loads_packaged_abis(self):
        """Test every catalog contract has a packaged ABI."""
        loader = get_abi_loader()

        for entry in CONTRACT_CATALOG:
            abi = loader.get_abi(entry.abi_name)
            assert isinstance(abi, list)
            assert len(abi) > 0

    def test_core_events_exist_in_abis(self):
        """Test catalog core events are declared in their ABIs."""
        loader = get_abi_loader()

        for entry in CONTRACT_CATALOG:
            binding = ContractBinding(
                "0x" + "11" * 20, loader.get_abi(entry.abi_name), alias=entry.alias
            )
            for event_name in entry.core_events:
                assert binding.has_event(event_name), f"{entry.alias}.{event_name}"

    def test_unknown_abi(self):
        with pytest.raises(ValueError):
            get_abi_loader().get_abi("NotAContract")

    def test_missing_directory(self, tmp_path):
        loader = ABILoader(tmp_path / "missing")
        assert loader.names == []

    def test_address_env_var(self):
        assert CONTRACT_CATALOG[0].address_env_var == "LAND_PARCEL_NFT_ADDRESS"


class TestContractBinding:
    """Tests for ContractBinding."""

    def test_address_checksummed(self, token_abi):
        binding = ContractBinding("0x" + "ab" * 20, token_abi)
        assert binding.address == Web3.to_checksum_address("0x" + "ab" * 20)
        assert binding.label == binding.address

    def test_encode_call(self, token_abi, token_address):
        """Test calldata is selector plus ABI-encoded arguments."""
        binding = ContractBinding(token_address, token_abi, alias="Token")

        data = binding.encode_call("balanceOf", [HOLDER])

        selector = Web3.keccak(text="balanceOf(address)")[:4]
        assert data == Web3.to_hex(selector + encode(["address"], [HOLDER]))

    def test_unknown_function(self, token_abi, token_address):
        binding = ContractBinding(token_address, token_abi, alias="Token")

        with pytest.raises(ContractMethodNotFoundError) as exc_info:
            binding.encode_call("balanceOff", [HOLDER])

        assert exc_info.value.method == "balanceOff"

    def test_unknown_event(self, token_abi, token_address):
        binding = ContractBinding(token_address, token_abi)

        with pytest.raises(ContractEventNotFoundError):
            binding.get_event_abi("Approval")

    def test_decode_single_result(self, token_abi, token_address):
        binding = ContractBinding(token_address, token_abi)
        assert binding.decode_result("balanceOf", encode(["uint256"], [42])) == 42


class TestContractRegistry:
    """Tests for ContractRegistry."""

    def test_register_static_from_settings(self, mock_client, settings):
        """Test only aliases with configured addresses are registered."""
        nft_address = "0x" + "11" * 20
        settings.land_parcel_nft_address = nft_address
        settings.eco_credits_address = "0x" + "22" * 20
        registry = ContractRegistry(mock_client)

        registered = registry.register_static(settings)

        assert registered == ["LandParcelNFT", "EcoCredits"]
        assert registry.get_by_alias("LandParcelNFT").address == (
            Web3.to_checksum_address(nft_address)
        )
        assert "InheritanceLogic" not in registry
        with pytest.raises(ContractNotFoundError):
            registry.get_by_alias("InheritanceLogic")

    def test_register_invalid_address(self, mock_client, token_abi):
        registry = ContractRegistry(mock_client)

        with pytest.raises(ConfigurationError):
            registry.register("Token", "0xnot-an-address", token_abi)

    def test_register_duplicate_alias(self, registry, token_abi):
        with pytest.raises(ConfigurationError):
            registry.register("Token", "0x" + "33" * 20, token_abi)

    def test_resolve(self, registry, token_address, token_abi):
        """Test alias, registered address and ad hoc address resolution."""
        assert registry.resolve("Token").alias == "Token"
        assert registry.resolve(token_address.lower()).alias == "Token"

        other = "0x" + "44" * 20
        ad_hoc = registry.resolve(other, token_abi)
        assert ad_hoc.alias is None
        assert ad_hoc.address == Web3.to_checksum_address(other)

        with pytest.raises(ContractNotFoundError):
            registry.resolve(other)

    @pytest.mark.asyncio
    async def test_call_read_balance_of(self, registry, mock_client, token_address):
        """Test a read returns what the raw eth_call returns."""
        mock_client.eth_call.return_value = encode(["uint256"], [1_500])

        balance = await registry.call_read("Token", "balanceOf", [HOLDER])

        assert balance == 1_500
        selector = Web3.keccak(text="balanceOf(address)")[:4]
        tx_params, block = mock_client.eth_call.call_args.args
        assert tx_params == {
            "to": token_address,
            "data": Web3.to_hex(selector + encode(["address"], [HOLDER])),
        }
        assert block == "latest"

    @pytest.mark.asyncio
    async def test_call_read_unknown_method(self, registry, mock_client):
        """Test a typo'd method fails before any RPC."""
        with pytest.raises(ContractMethodNotFoundError):
            await registry.call_read("Token", "balanceOff", [HOLDER])

        mock_client.eth_call.assert_not_called()

    @pytest.mark.asyncio
    async def test_call_read_revert(self, registry, mock_client):
        mock_client.eth_call.side_effect = ChainRpcError(
            "call", "execution reverted", reverted=True
        )

        with pytest.raises(ContractCallError) as exc_info:
            await registry.call_read("Token", "balanceOf", [HOLDER])

        assert exc_info.value.method == "balanceOf"

    @pytest.mark.asyncio
    async def test_call_read_transport_error(self, registry, mock_client):
        """Test transport failures are not disguised as call errors."""
        mock_client.eth_call.side_effect = ChainRpcError("call", "timeout")

        with pytest.raises(ChainRpcError):
            await registry.call_read("Token", "balanceOf", [HOLDER])

    @pytest.mark.asyncio
    async def test_call_read_bad_arguments(self, registry):
        with pytest.raises(ContractCallError):
            await registry.call_read("Token", "balanceOf", ["not-an-address"])

    @pytest.mark.asyncio
    async def test_call_write_requires_manager(self, registry):
        with pytest.raises(ConfigurationError):
            await registry.call_write("Token", "transfer", [HOLDER, 1])

    @pytest.mark.asyncio
    async def test_call_write_delegates(self, registry):
        manager = AsyncMock()
        manager.submit.return_value = "result"
        registry.transaction_manager = manager

        result = await registry.call_write("Token", "transfer", [HOLDER, 1], value=0)

        assert result == "result"
        manager.submit.assert_called_once_with(
            "Token",
            "transfer",
            [HOLDER, 1],
            value=0,
            abi=None,
            gas_limit=None,
            gas_price=None,
        )

    @pytest.mark.asyncio
    async def test_get_contract_events(
        self, registry, mock_client, token_address, transfer_log
    ):
        """Test historical query filters by address and topic and decodes."""
        mock_client.get_logs.return_value = [
            transfer_log(
                "0x0000000000000000000000000000000000000001",
                "0x0000000000000000000000000000000000000002",
                5,
            )
        ]

        events = await registry.get_contract_events("Token", "Transfer", from_block=10)

        assert len(events) == 1
        assert events[0].args[2] == 5
        kwargs = mock_client.get_logs.call_args.kwargs
        assert kwargs["from_block"] == 10
        assert kwargs["to_block"] == "latest"
        assert kwargs["address"] == token_address
        assert kwargs["topics"] == [events[0].raw["topics"][0]]


PARCEL_ADDRESS = "0x" + "11" * 20
OWNER = "0x0000000000000000000000000000000000000aaa"
HEIR = "0x0000000000000000000000000000000000000bbb"


def selector(signature: str) -> str:
    return Web3.to_hex(Web3.keccak(text=signature)[:4])


@pytest.fixture
def parcel_registry(mock_client):
    """Registry with the packaged LandParcelNFT ABI registered."""
    registry = ContractRegistry(mock_client)
    registry.register(
        "LandParcelNFT", PARCEL_ADDRESS, get_abi_loader().get_abi("LandParcelNFT")
    )
    return registry


class TestParcelAndTokenReads:
    """Tests for the land parcel and token balance reads."""

    @pytest.mark.asyncio
    async def test_get_land_parcel_info(self, parcel_registry, mock_client):
        """Test owner, URI and heir are read and combined."""
        answers = {
            selector("ownerOf(uint256)"): encode(["address"], [OWNER]),
            selector("tokenURI(uint256)"): encode(["string"], ["ipfs://parcel-7"]),
            selector("getHeir(uint256)"): encode(["address"], [HEIR]),
        }

        async def eth_call(tx_params, block):
            return answers[tx_params["data"][:10]]

        mock_client.eth_call.side_effect = eth_call

        info = await parcel_registry.get_land_parcel_info(7)

        assert info == LandParcelInfo(
            token_id=7,
            owner=Web3.to_checksum_address(OWNER),
            token_uri="ipfs://parcel-7",
            heir=Web3.to_checksum_address(HEIR),
        )
        assert mock_client.eth_call.await_count == 3

    @pytest.mark.asyncio
    async def test_get_land_parcel_info_nonexistent_token(
        self, parcel_registry, mock_client
    ):
        mock_client.eth_call.side_effect = ChainRpcError(
            "call", "ERC721: invalid token ID", reverted=True
        )

        with pytest.raises(ContractCallError):
            await parcel_registry.get_land_parcel_info(404)

    @pytest.mark.asyncio
    async def test_get_land_parcel_info_not_registered(self, registry, mock_client):
        with pytest.raises(ContractNotFoundError):
            await registry.get_land_parcel_info(1)

        mock_client.eth_call.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_token_balance(self, registry, mock_client):
        mock_client.eth_call.return_value = encode(["uint256"], [42 * 10**18])

        balance = await registry.get_token_balance("Token", HOLDER)

        assert balance == 42 * 10**18
        tx_params, _ = mock_client.eth_call.call_args.args
        assert tx_params["data"].startswith(selector("balanceOf(address)"))

    @pytest.mark.asyncio
    async def test_get_token_balance_without_balance_of(
        self, parcel_registry, mock_client
    ):
        """Test a contract without balanceOf fails before any RPC."""
        with pytest.raises(ContractMethodNotFoundError):
            await parcel_registry.get_token_balance("LandParcelNFT", HOLDER)

        mock_client.eth_call.assert_not_called()
