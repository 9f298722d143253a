import logging
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)

# A block is an immutable run of `block_size` data units. Each unit holds one
# hex digit (0..15), which is the granularity payloads are typed in.
Block = bytes

UNIT_MAX = 0xF


def zero_block(size: int) -> Block:
    return bytes(size)


def parse_block(text: str, size: int) -> Block:
    """
    Turn a string of exactly `size` hex digits into a block.

    Raises:
        ValueError: wrong length or a non-hex character
    """
    if len(text) != size:
        raise ValueError(f"expected {size} hex digits, got {len(text)}")
    try:
        return bytes(int(ch, 16) for ch in text)
    except ValueError:
        raise ValueError(f"not a hex string: {text!r}") from None


def format_block(block: Block) -> str:
    return "".join(f"{unit:X}" for unit in block)


class BackingStore:
    """
    Block-granular memory behind the caches.

    The directory protocol gives every node one of these as its private
    memory; the snoop protocol shares a single instance between all nodes.
    Blocks are created zero-filled the first time they are touched.
    """

    def __init__(self, block_size: int, name: str = "memory"):
        if block_size <= 0:
            raise ValueError("block size must be positive")
        self.block_size = block_size
        self.name = name
        self.blocks: Dict[int, Block] = {}

    def read(self, block_address: int) -> Block:
        if block_address not in self.blocks:
            self.blocks[block_address] = zero_block(self.block_size)
        return self.blocks[block_address]

    def peek(self, block_address: int) -> Block:
        """Like read() but leaves untouched blocks unallocated."""
        return self.blocks.get(block_address, zero_block(self.block_size))

    def write(self, block_address: int, data: Block) -> None:
        if len(data) != self.block_size:
            raise ValueError(f"write of {len(data)} units to a {self.block_size} unit block")
        if any(unit > UNIT_MAX for unit in data):
            raise ValueError("block units must be single hex digits")

        self.blocks[block_address] = bytes(data)
        logger.info("write back %s[0x%X] <- %s", self.name, block_address, format_block(data))

    def snapshot(self) -> List[Tuple[int, Block]]:
        return sorted(self.blocks.items())

    def __contains__(self, block_address: int) -> bool:
        return block_address in self.blocks

    def __len__(self) -> int:
        return len(self.blocks)
