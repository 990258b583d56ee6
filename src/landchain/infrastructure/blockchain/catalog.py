"""Static contract catalog and ABI loading.

Loads ABIs from the ``abis/`` directory shipped with the package and
describes, per alias, which setting holds its address and which events
are listened to at startup.
"""

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

ABI_DIR = Path(__file__).parent / "abis"


class ABILoader:
    """Loads and caches contract ABIs from JSON files."""

    def __init__(self, abi_dir: Path = ABI_DIR):
        self.abi_dir = abi_dir
        self._abis: dict[str, list[dict[str, Any]]] = {}
        self._load_all_abis()

    def _load_all_abis(self) -> None:
        """Load all ABIs from the ABI directory."""
        if not self.abi_dir.exists():
            logger.warning(f"ABI directory not found: {self.abi_dir}")
            return

        for abi_file in sorted(self.abi_dir.glob("*.json")):
            with open(abi_file, "r") as f:
                data = json.load(f)
            abi = data.get("abi", [])
            if abi:
                self._abis[abi_file.stem] = abi
                logger.debug(f"Loaded ABI: {abi_file.stem} ({len(abi)} entries)")

        logger.info(f"Loaded {len(self._abis)} ABIs: {list(self._abis.keys())}")

    def get_abi(self, contract_name: str) -> list[dict[str, Any]]:
        """Get ABI by contract name.

        Args:
            contract_name: Contract name (e.g., "LandParcelNFT")

        Returns:
            Contract ABI as list of dicts
        """
        if contract_name not in self._abis:
            raise ValueError(f"ABI not found for contract: {contract_name}")
        return self._abis[contract_name]

    @property
    def names(self) -> list[str]:
        """Names of all loaded ABIs."""
        return list(self._abis.keys())


@lru_cache(maxsize=1)
def get_abi_loader() -> ABILoader:
    """Get the shared loader for the packaged ABIs."""
    return ABILoader()


@dataclass(frozen=True)
class CatalogEntry:
    """One contract known to the platform."""

    alias: str
    address_setting: str
    abi_name: str
    core_events: tuple[str, ...] = field(default_factory=tuple)

    @property
    def address_env_var(self) -> str:
        """Environment variable that configures the address."""
        return self.address_setting.upper()


CONTRACT_CATALOG: tuple[CatalogEntry, ...] = (
    CatalogEntry(
        alias="LandParcelNFT",
        address_setting="land_parcel_nft_address",
        abi_name="LandParcelNFT",
        core_events=("Transfer", "HeirDesignated", "ParcelMinted"),
    ),
    CatalogEntry(
        alias="InheritanceLogic",
        address_setting="inheritance_logic_address",
        abi_name="InheritanceLogic",
        core_events=(
            "InheritanceRequested",
            "InheritanceExecuted",
            "InheritanceRejected",
        ),
    ),
    CatalogEntry(
        alias="ExpropriationCompensationManager",
        address_setting="expropriation_compensation_manager_address",
        abi_name="ExpropriationCompensationManager",
        core_events=(
            "ParcelFlagged",
            "CompensationDeposited",
            "CompensationClaimed",
        ),
    ),
    CatalogEntry(
        alias="ComplianceRuleEngine",
        address_setting="compliance_rule_engine_address",
        abi_name="ComplianceRuleEngine",
        core_events=("ComplianceAssessed", "FineIssued", "IncentiveAwarded"),
    ),
    CatalogEntry(
        alias="DisputeResolution",
        address_setting="dispute_resolution_address",
        abi_name="DisputeResolution",
        core_events=("DisputeCreated", "EvidenceSubmitted", "RulingExecuted"),
    ),
    CatalogEntry(
        alias="RwaLandGovToken",
        address_setting="rwa_land_gov_token_address",
        abi_name="RwaLandGovToken",
    ),
    CatalogEntry(
        alias="MockRWF",
        address_setting="mock_rwf_address",
        abi_name="MockRWF",
    ),
    CatalogEntry(
        alias="EcoCredits",
        address_setting="eco_credits_address",
        abi_name="EcoCredits",
    ),
)
