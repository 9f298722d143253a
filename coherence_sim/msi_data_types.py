from enum import Enum, IntEnum
from dataclasses import dataclass
from typing import Optional



class CacheState(IntEnum):
    """
    MSI coherence states of a cache line

    State Meanings:
    - INVALID: Line holds nothing usable (tag and data are leftovers)
    - SHARED: Clean read-only copy, may be held by several nodes
    - MODIFIED: Only copy in the system, may be dirty (must write back on eviction)

    State Invariants:
    1. At most one node can be MODIFIED for any block
    2. If one node is MODIFIED, all others must be INVALID for that block
    3. Multiple nodes can be SHARED simultaneously
    4. A dirty line is always MODIFIED
    """

    INVALID = 0   # No valid copy in this cache
    SHARED = 1    # Read-only copy (clean)
    MODIFIED = 2  # Read-write copy (dirty)

    @property
    def abbr(self) -> str:
        return self.name[0]


class DirectoryState(IntEnum):
    """
    Aggregate state a home node records for one block.

    - UNCACHED: no node caches the block (sharers empty)
    - SHARED: one or more nodes hold clean copies
    - EXCLUSIVE: exactly one node holds the block MODIFIED
    """

    UNCACHED = 0
    SHARED = 1
    EXCLUSIVE = 2

    @property
    def abbr(self) -> str:
        return self.name[0]


class Operation(IntEnum):
    """
    Processor-initiated requests (CPU → Cache).

    READ: Processor Read
        - May cause a cache miss (block is loaded)

    WRITE: Processor Write
        - Requires exclusive access (upgrade or miss)
        - Always carries a whole-block payload
    """

    READ = 0
    WRITE = 1


class SnoopEvent(IntEnum):
    """
    Events a node observes on behalf of another node's request.

    BUS_RD: Another node is reading (read miss or write-miss load)
        - A MODIFIED holder must flush and downgrade to SHARED

    BUS_RDX: Another node wrote after a miss
        - Holders invalidate, flushing dirty data first

    BUS_UPGR: Another node wrote after a hit (upgrade from SHARED)
        - Holders invalidate
    """

    BUS_RD = 0
    BUS_RDX = 1
    BUS_UPGR = 2


class CoherenceCmd(IntEnum):
    """
    Bus transactions a requesting node issues.

    - BUS_RD: Read miss, need data
    - BUS_RDX: Write miss, need data and exclusive access
    - BUS_UPGR: Write hit on a SHARED line, need exclusive access only
    - EVICT_CLEAN: Evicting a SHARED line (no writeback needed)
    - EVICT_DIRTY: Evicting a MODIFIED line (writeback included)
    """

    BUS_RD = 1
    BUS_RDX = 2
    BUS_UPGR = 3
    EVICT_CLEAN = 4
    EVICT_DIRTY = 5


class Protocol(str, Enum):
    """Supported coherence protocol families"""
    DIRECTORY = "directory"
    SNOOP = "snoop"


class OwnerMapping(str, Enum):
    """How a directory-protocol address picks its home node"""
    HIGH_BITS = "high_bits"      # top log2(nodes) address bits
    INTERLEAVED = "interleaved"  # consecutive blocks round-robin


@dataclass(frozen=True)
class TransitionResult:
    """
    Outcome of a state-machine lookup.

    Fields:
        next_state: State the line moves to
        issue_cmd: Bus transaction the requester must issue (processor events)
        flush: Whether the line must write its data back first (snoop events)
    """
    next_state: CacheState
    issue_cmd: Optional[CoherenceCmd] = None
    flush: bool = False
