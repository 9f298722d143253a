# types
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from coherence_sim.memory import Block, zero_block
from coherence_sim.msi_data_types import CacheState


# ============================================================================
# Cache Line Data Structure
# ============================================================================

@dataclass
class CacheLine:
    """
    One direct-mapped cache slot.

    Fields:
        tag: High address bits of the block held here (None until first fill)
        state: Current MSI state (INVALID, SHARED, or MODIFIED)
        dirty: Data differs from the backing store; only legal when MODIFIED
        data: Whole block payload

    Notes:
        - An INVALID line keeps whatever tag and data it had; hit tests
          ignore them
    """
    tag: Optional[int] = None
    state: CacheState = CacheState.INVALID
    dirty: bool = False
    data: Block = b""

    @property
    def valid(self) -> bool:
        return self.state != CacheState.INVALID

    def holds(self, tag: int) -> bool:
        return self.valid and self.tag == tag


@dataclass(frozen=True)
class CacheLineView:
    """Read-only copy of a line handed out for display and tests."""
    index: int
    tag: Optional[int]
    state: CacheState
    dirty: bool
    data: Block


# ============================================================================
# Node Cache
# ============================================================================

class NodeCache:
    """
    Fixed array of direct-mapped lines owned by a single node.

    The cache knows nothing about coherence: engines decide what to
    install, invalidate, or write back and drive the lines directly.
    """

    def __init__(self, node_id: str, num_lines: int, block_size: int) -> None:
        self.node_id: str = node_id
        self.num_lines: int = num_lines
        self.block_size: int = block_size
        self.lines: List[CacheLine] = []
        self.reset()

    def reset(self) -> None:
        self.lines = [CacheLine(data=zero_block(self.block_size)) for _ in range(self.num_lines)]

    def line(self, index: int) -> CacheLine:
        return self.lines[index]

    def lookup(self, index: int, tag: int) -> bool:
        """
        Hit test.

        Args:
            index: Cache line selected by the address
            tag: Tag of the requested block

        Returns:
            True iff the line is non-INVALID and holds this tag
        """
        return self.lines[index].holds(tag)

    def install(self, index: int, tag: int, data: Block, state: CacheState, dirty: bool = False) -> CacheLine:
        line = self.lines[index]
        line.tag = tag
        line.data = bytes(data)
        line.state = state
        line.dirty = dirty
        return line

    def invalidate(self, index: int) -> None:
        line = self.lines[index]
        line.state = CacheState.INVALID
        line.dirty = False

    def dirty_lines(self) -> Iterator[Tuple[int, CacheLine]]:
        for index, line in enumerate(self.lines):
            if line.state == CacheState.MODIFIED and line.dirty:
                yield index, line

    def snapshot(self) -> List[CacheLineView]:
        return [
            CacheLineView(i, line.tag, line.state, line.dirty, line.data)
            for i, line in enumerate(self.lines)
        ]
