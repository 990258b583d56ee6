"""ABI helpers shared by contract calls and event decoding."""

from typing import Any

from eth_utils import to_bytes
from web3 import Web3


def as_bytes(value: Any) -> bytes:
    """Coerce HexBytes, bytes or a hex string to bytes."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return to_bytes(hexstr=value) if value not in ("", "0x") else b""
    raise TypeError(f"Cannot convert {type(value).__name__} to bytes")


def as_hex(value: Any) -> str:
    """Coerce HexBytes, bytes or a hex string to a 0x-prefixed string."""
    if isinstance(value, str):
        return value if value.startswith("0x") else f"0x{value}"
    return Web3.to_hex(value)


def abi_type(param: dict[str, Any]) -> str:
    """Canonical type string for an ABI parameter, expanding tuples."""
    type_str = param["type"]
    if type_str.startswith("tuple"):
        components = ",".join(abi_type(c) for c in param.get("components", []))
        return f"({components}){type_str[len('tuple'):]}"
    return type_str


def is_dynamic_type(type_str: str) -> bool:
    """Whether an indexed parameter of this type is stored hashed in a topic."""
    return (
        type_str in ("string", "bytes")
        or type_str.endswith("]")
        or type_str.startswith("(")
    )


def normalize_value(type_str: str, value: Any) -> Any:
    """Checksum decoded addresses (eth-abi returns them lowercase)."""
    if type_str == "address" and isinstance(value, str):
        return Web3.to_checksum_address(value)
    if type_str.startswith("address[") and isinstance(value, (list, tuple)):
        return type(value)(Web3.to_checksum_address(v) for v in value)
    return value


def find_abi_entry(
    abi: list[dict[str, Any]], entry_type: str, name: str
) -> dict[str, Any] | None:
    """First ABI entry of ``entry_type`` ("function"/"event") named ``name``."""
    for item in abi:
        if item.get("type") == entry_type and item.get("name") == name:
            return item
    return None
