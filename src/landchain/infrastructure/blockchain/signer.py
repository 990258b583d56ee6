"""Signer holding the platform's single in-memory key."""

import logging
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from landchain.infrastructure.blockchain.errors import ConfigurationError

logger = logging.getLogger(__name__)


class SignerContext:
    """Derives the signer address and signs transactions.

    The only component allowed to produce signatures; read paths never
    touch it.
    """

    def __init__(self, private_key: str | None):
        """Initialize signer.

        Args:
            private_key: Private key for signing (hex string with or without 0x)

        Raises:
            ConfigurationError: If the key is missing or malformed
        """
        if not private_key:
            raise ConfigurationError("Private key is not configured (set PRIVATE_KEY)")

        key = private_key if private_key.startswith("0x") else f"0x{private_key}"
        try:
            self._account: LocalAccount = Account.from_key(key)
        except Exception as e:
            # The exception text may echo key material; keep only its type
            raise ConfigurationError(
                f"Invalid private key ({type(e).__name__})"
            ) from None

        logger.info(f"Signer initialized: {self._account.address}")

    @property
    def address(self) -> str:
        """Get the checksummed signer address."""
        return self._account.address

    def sign_transaction(self, transaction: dict[str, Any]) -> tuple[bytes, str]:
        """Sign a transaction dict.

        Args:
            transaction: Fully populated transaction (nonce, gas, chainId, ...)

        Returns:
            Tuple of (raw signed bytes, 0x-prefixed transaction hash)
        """
        signed = self._account.sign_transaction(transaction)
        return bytes(signed.raw_transaction), Web3.to_hex(signed.hash)

    def __repr__(self) -> str:
        return f"SignerContext(address={self.address!r})"
