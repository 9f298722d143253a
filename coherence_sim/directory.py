"""
Directory bookkeeping for the directory-based MSI protocol.

Every node is the home of part of the address space. For each block of
that part that some cache holds, the home keeps a DirectoryEntry:

    - State: UNCACHED, SHARED, or EXCLUSIVE
    - Sharers: set of node ids with a copy

Entries are created lazily on first caching and dropped as soon as their
sharer set becomes empty, so a missing entry and an UNCACHED entry mean
the same thing.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from coherence_sim.msi_data_types import DirectoryState


# ============================================================================
# Directory Entry
# ============================================================================

@dataclass
class DirectoryEntry:
    """
    Directory state for a single block.

    Fields:
        state: Aggregate state of the block
               - UNCACHED: No cache has a copy (sharers empty)
               - SHARED: One or more caches have read-only copies
               - EXCLUSIVE: Exactly one cache has a MODIFIED copy
        sharers: Node ids holding a copy

    Example States:
        DirectoryEntry(UNCACHED, set()): No cache has copy
        DirectoryEntry(SHARED, {"CPU01"}): CPU01 has a shared copy
        DirectoryEntry(SHARED, {"CPU01", "CPU10"}): Both have shared copies
        DirectoryEntry(EXCLUSIVE, {"CPU10"}): CPU10 owns the block
    """
    state: DirectoryState = DirectoryState.UNCACHED
    sharers: Set[str] = field(default_factory=set)

    def owner(self) -> Optional[str]:
        """
        Node holding the block exclusively.

        Returns:
            The single sharer if EXCLUSIVE, otherwise None
        """
        if self.state != DirectoryState.EXCLUSIVE:
            return None
        if len(self.sharers) != 1:
            return None
        return next(iter(self.sharers))

    def view(self) -> "DirectoryEntryView":
        return DirectoryEntryView(self.state, frozenset(self.sharers))


@dataclass(frozen=True)
class DirectoryEntryView:
    state: DirectoryState
    sharers: FrozenSet[str]


# ============================================================================
# Directory Store
# ============================================================================

class DirectoryStore:
    """
    The directory kept by one home node.

    Attributes:
        home: Node id owning the address range
        entries: block address → DirectoryEntry
    """

    def __init__(self, home: str) -> None:
        self.home: str = home
        self.entries: Dict[int, DirectoryEntry] = {}

    def entry_for(self, block_address: int) -> DirectoryEntry:
        """
        Get directory entry for a block, creating an UNCACHED one if necessary.
        """
        if block_address not in self.entries:
            self.entries[block_address] = DirectoryEntry()
        return self.entries[block_address]

    def get(self, block_address: int) -> Optional[DirectoryEntry]:
        return self.entries.get(block_address)

    def remove(self, block_address: int) -> None:
        self.entries.pop(block_address, None)

    def reset(self) -> None:
        self.entries.clear()

    def snapshot(self) -> List[Tuple[int, DirectoryEntryView]]:
        return [(addr, entry.view()) for addr, entry in sorted(self.entries.items())]

    def __len__(self) -> int:
        return len(self.entries)
