"""Event decoding: raw logs into normalized domain events."""

import logging
from dataclasses import dataclass, field
from typing import Any

from eth_abi import decode
from eth_utils import event_abi_to_log_topic
from web3 import Web3

from landchain.infrastructure.blockchain.codec import (
    abi_type,
    as_bytes,
    as_hex,
    is_dynamic_type,
    normalize_value,
)

logger = logging.getLogger(__name__)


@dataclass
class NormalizedEvent:
    """Decoded contract event delivered to subscribers."""

    contract_address: str
    block_number: int
    transaction_hash: str
    event_name: str
    args: tuple[Any, ...]
    named_args: dict[str, Any] = field(default_factory=dict)
    log_index: int = 0
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dict (raw log omitted)."""
        return {
            "contract_address": self.contract_address,
            "block_number": self.block_number,
            "transaction_hash": self.transaction_hash,
            "log_index": self.log_index,
            "event_name": self.event_name,
            "args": [
                as_hex(a) if isinstance(a, (bytes, bytearray)) else a
                for a in self.args
            ],
        }


def event_topic(event_abi: dict[str, Any]) -> str:
    """keccak topic0 of an event ABI entry as 0x hex."""
    return Web3.to_hex(event_abi_to_log_topic(event_abi))


class EventDecoder:
    """Decodes logs of a single event ABI entry."""

    def __init__(self, event_abi: dict[str, Any]):
        """Initialize decoder.

        Args:
            event_abi: ABI entry with ``type == "event"``
        """
        self.event_abi = event_abi
        self.event_name: str = event_abi["name"]
        self.topic = event_topic(event_abi)
        self._inputs: list[dict[str, Any]] = event_abi.get("inputs", [])
        self._data_types = [
            abi_type(p) for p in self._inputs if not p.get("indexed")
        ]

    def matches(self, log: dict[str, Any]) -> bool:
        """Whether the log's topic0 is this event."""
        topics = log.get("topics") or []
        return bool(topics) and as_hex(topics[0]).lower() == self.topic.lower()

    def decode(self, log: dict[str, Any]) -> NormalizedEvent:
        """Decode a raw log.

        Args:
            log: Raw log entry from eth_getLogs

        Returns:
            NormalizedEvent with arguments in ABI order

        Raises:
            ValueError: If the log does not belong to this event
        """
        topics = [as_bytes(t) for t in log.get("topics", [])]
        if not topics or Web3.to_hex(topics[0]).lower() != self.topic.lower():
            raise ValueError(f"Log is not a {self.event_name} event")

        indexed_topics = iter(topics[1:])
        data = as_bytes(log.get("data", b""))
        data_values = iter(decode(self._data_types, data) if self._data_types else ())

        args: list[Any] = []
        named_args: dict[str, Any] = {}
        for position, param in enumerate(self._inputs):
            type_str = abi_type(param)
            if param.get("indexed"):
                topic = next(indexed_topics, None)
                if topic is None:
                    raise ValueError(f"{self.event_name}: missing indexed topic")
                # Dynamic indexed values are only available as their hash
                if is_dynamic_type(type_str):
                    value: Any = Web3.to_hex(topic)
                else:
                    value = decode([type_str], topic)[0]
            else:
                value = next(data_values)
            value = normalize_value(type_str, value)
            args.append(value)
            named_args[param.get("name") or f"arg{position}"] = value

        address = log.get("address", "")
        return NormalizedEvent(
            contract_address=Web3.to_checksum_address(address) if address else "",
            block_number=log.get("blockNumber", 0),
            transaction_hash=as_hex(log.get("transactionHash", b"")),
            event_name=self.event_name,
            args=tuple(args),
            named_args=named_args,
            log_index=log.get("logIndex", 0),
            raw=log,
        )

    def decode_many(self, logs: list[dict[str, Any]]) -> list[NormalizedEvent]:
        """Decode logs of this event, skipping logs that fail to decode."""
        events = []
        for log in logs:
            if not self.matches(log):
                continue
            try:
                events.append(self.decode(log))
            except Exception as e:
                logger.error(f"Failed to decode event {self.event_name}: {e}")
        return events
