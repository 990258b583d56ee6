"""Application configuration management using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="landchain", description="Application name")
    environment: Literal["development", "testing", "staging", "production"] = Field(
        default="development", description="Runtime environment"
    )

    # Chain connection
    rpc_url: str = Field(
        default="",
        description="JSON-RPC endpoint of the blockchain node",
    )
    private_key: str = Field(
        default="",
        repr=False,
        description="Hex private key of the platform signer",
    )
    expected_chain_id: int | None = Field(
        default=None,
        description="If set, connect() fails when the node reports another chain",
    )
    request_timeout: float = Field(
        default=30.0, description="HTTP timeout for a single RPC request (seconds)"
    )

    # Contract addresses (aliases without an address are not registered)
    land_parcel_nft_address: str | None = Field(
        default=None, description="LandParcelNFT contract address"
    )
    inheritance_logic_address: str | None = Field(
        default=None, description="InheritanceLogic contract address"
    )
    expropriation_compensation_manager_address: str | None = Field(
        default=None, description="ExpropriationCompensationManager contract address"
    )
    compliance_rule_engine_address: str | None = Field(
        default=None, description="ComplianceRuleEngine contract address"
    )
    dispute_resolution_address: str | None = Field(
        default=None, description="DisputeResolution contract address"
    )
    rwa_land_gov_token_address: str | None = Field(
        default=None, description="RwaLandGovToken contract address"
    )
    mock_rwf_address: str | None = Field(
        default=None, description="MockRWF token contract address"
    )
    eco_credits_address: str | None = Field(
        default=None, description="EcoCredits token contract address"
    )

    # Transactions
    gas_limit_buffer_bps: int = Field(
        default=2000,
        ge=2000,
        description="Safety buffer added to gas estimates (basis points, min 20%)",
    )
    gas_price_bump_bps: int = Field(
        default=1000,
        ge=1000,
        description="Minimum price bump for speed-up/cancel replacements (basis points)",
    )
    confirmation_timeout_ms: int = Field(
        default=300_000, description="Default confirmation wait timeout (ms)"
    )
    confirmation_poll_interval: float = Field(
        default=2.0, description="Receipt polling interval while waiting (seconds)"
    )
    batch_send_interval: float = Field(
        default=0.0, description="Optional pause between batch sends (seconds)"
    )

    # Event listening
    event_poll_interval: float = Field(
        default=3.0, description="Log polling interval (seconds)"
    )
    event_block_batch_size: int = Field(
        default=1000, description="Maximum blocks fetched per eth_getLogs call"
    )
    event_confirmation_blocks: int = Field(
        default=0, description="Blocks to wait before delivering a log"
    )
    event_max_reconnect_attempts: int = Field(
        default=10, description="Consecutive poll failures before the poller stops"
    )
    event_reconnect_delay: float = Field(
        default=5.0, description="Base back-off after a poll failure (seconds)"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log output format"
    )

    @computed_field
    @property
    def contract_addresses(self) -> dict[str, str | None]:
        """Configured contract addresses keyed by setting name."""
        return {
            "land_parcel_nft_address": self.land_parcel_nft_address,
            "inheritance_logic_address": self.inheritance_logic_address,
            "expropriation_compensation_manager_address": (
                self.expropriation_compensation_manager_address
            ),
            "compliance_rule_engine_address": self.compliance_rule_engine_address,
            "dispute_resolution_address": self.dispute_resolution_address,
            "rwa_land_gov_token_address": self.rwa_land_gov_token_address,
            "mock_rwf_address": self.mock_rwf_address,
            "eco_credits_address": self.eco_credits_address,
        }

    @computed_field
    @property
    def confirmation_timeout_seconds(self) -> float:
        """Default confirmation timeout in seconds."""
        return self.confirmation_timeout_ms / 1000


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
