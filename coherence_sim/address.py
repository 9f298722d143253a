from dataclasses import dataclass
from typing import Dict, List

from coherence_sim.config import SimulatorConfig
from coherence_sim.errors import UnknownNode
from coherence_sim.msi_data_types import OwnerMapping


@dataclass(frozen=True)
class DecodedAddress:
    """
    Address split into its cache fields
    ----------------------------------------------
    |       tag       |  index   |    offset     |
    |  tag_bits bits  | idx bits |  offset bits  |
    ----------------------------------------------

    With the default 24 bit layout the address 0x01A3C7 splits into
    tag=0x01A3, index=0xC, offset=0x7.
    """
    tag: int
    index: int
    offset: int


class AddressCodec:
    """
    Decodes addresses and maps them to their home node.

    All methods are pure; the codec holds only the geometry and the
    node-id table derived from the config.
    """

    def __init__(self, config: SimulatorConfig) -> None:
        self.config = config
        self.offset_bits: int = config.offset_bits
        self.index_bits: int = config.index_bits
        self.address_bits: int = config.address_bits
        self.num_nodes: int = config.num_nodes

        self.node_ids: List[str] = config.node_ids
        self._node_index: Dict[str, int] = {n: i for i, n in enumerate(self.node_ids)}

    def decode(self, address: int) -> DecodedAddress:
        offset = address & ((1 << self.offset_bits) - 1)
        index = (address >> self.offset_bits) & ((1 << self.index_bits) - 1)
        tag = address >> (self.offset_bits + self.index_bits)
        return DecodedAddress(tag, index, offset)

    def compose(self, tag: int, index: int, offset: int = 0) -> int:
        """Inverse of decode(); rebuilds an evicted line's block address."""
        return (tag << (self.offset_bits + self.index_bits)) | (index << self.offset_bits) | offset

    def block_address(self, address: int) -> int:
        return address & ~((1 << self.offset_bits) - 1)

    def resolve_owner(self, address: int) -> int:
        """
        Home node index of an address.

        high_bits:
            The top log2(num_nodes) address bits select the node. With four
            nodes and 24 bit addresses that is the top two bits of the first
            hex digit, so 0x0xxxxx-0x3xxxxx live on CPU00, 0x4xxxxx-0x7xxxxx
            on CPU01 and so on.

        interleaved:
            Block number modulo the node count, so consecutive blocks are
            spread round-robin across nodes.
        """
        if self.config.owner_mapping == OwnerMapping.INTERLEAVED:
            return (address >> self.offset_bits) % self.num_nodes
        selector_bits = self.config.selector_bits
        return (address >> (self.address_bits - selector_bits)) & ((1 << selector_bits) - 1)

    def node_id(self, index: int) -> str:
        try:
            return self.node_ids[index]
        except IndexError:
            raise UnknownNode(index) from None

    def node_index(self, node_id: str) -> int:
        try:
            return self._node_index[node_id]
        except KeyError:
            raise UnknownNode(node_id) from None

    def format_address(self, address: int) -> str:
        return f"0x{address:0{self.config.hex_digits}X}"

    def format_tag(self, tag: int) -> str:
        digits = max(1, -(-self.config.tag_bits // 4))
        return f"{tag:0{digits}X}"
