"""
Validation of user-typed requests.

Everything here runs before the engine sees a request; a rejected request
never touches simulator state.
"""

import re
from typing import Optional

from coherence_sim.config import SimulatorConfig
from coherence_sim.engine import Request
from coherence_sim.errors import MalformedAddress, MalformedPayload, MalformedRequest, UnknownNode
from coherence_sim.memory import Block, parse_block
from coherence_sim.msi_data_types import Operation

_OPERATIONS = {
    "r": Operation.READ,
    "read": Operation.READ,
    "w": Operation.WRITE,
    "write": Operation.WRITE,
}


def parse_address(text: str, config: SimulatorConfig) -> int:
    """
    Args:
        text: `0x` followed by exactly config.hex_digits hex digits

    Raises:
        MalformedAddress
    """
    pattern = rf"0[xX][0-9A-Fa-f]{{{config.hex_digits}}}"
    if text is None or not re.fullmatch(pattern, text.strip()):
        raise MalformedAddress(
            f"invalid address {text!r}: expected 0x followed by {config.hex_digits} hex digits"
        )
    return int(text.strip(), 16)


def parse_operation(text: str) -> Operation:
    try:
        return _OPERATIONS[text.strip().lower()]
    except (KeyError, AttributeError):
        raise MalformedRequest(f"unknown operation {text!r}: expected read or write") from None


def parse_payload(text: str, block_size: int) -> Block:
    try:
        return parse_block(text.strip(), block_size)
    except (ValueError, AttributeError):
        raise MalformedPayload(
            f"invalid payload {text!r}: expected {block_size} hex digits"
        ) from None


def parse_request(address_text: str, operation_text: str, payload_text: Optional[str],
                  requester: str, config: SimulatorConfig) -> Request:
    """
    Turn the four user-facing fields into a Request.

    Raises:
        MalformedAddress, MalformedPayload, MalformedRequest, UnknownNode
    """
    if requester not in config.node_ids:
        raise UnknownNode(requester)

    address = parse_address(address_text, config)
    operation = parse_operation(operation_text)

    payload = None
    if operation == Operation.WRITE:
        if not payload_text:
            raise MalformedPayload(f"write needs a payload of {config.block_size} hex digits")
        payload = parse_payload(payload_text, config.block_size)

    return Request(address, operation, payload, requester)
