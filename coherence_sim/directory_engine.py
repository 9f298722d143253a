"""
Directory-based MSI coherence engine.

Every node is the home of part of the address space (see
AddressCodec.resolve_owner). The home keeps the block in its private
memory and tracks cached copies in its DirectoryStore:

    CPU00 cache ─┐                 ┌─ CPU00 memory + directory
    CPU01 cache ─┼──→ Directory ───┼─ CPU01 memory + directory
    CPU10 cache ─┤     Engine      ├─ CPU10 memory + directory
    CPU11 cache ─┘                 └─ CPU11 memory + directory

A request is classified by on_processor_event() into BUS_RD, BUS_RDX,
BUS_UPGR or a silent hit, then handled according to the home directory
entry's state. Misses evict the destination line first (EVICT_CLEAN or
EVICT_DIRTY).
"""

import logging
from typing import Dict, Optional, Tuple

from coherence_sim.address import DecodedAddress
from coherence_sim.cache import CacheLine
from coherence_sim.config import SimulatorConfig
from coherence_sim.directory import DirectoryEntry, DirectoryEntryView, DirectoryStore
from coherence_sim.engine import CoherenceEngine, RequestTrace
from coherence_sim.memory import BackingStore, Block
from coherence_sim.msi_data_types import (
    CacheState,
    CoherenceCmd,
    DirectoryState,
    Operation,
    Protocol,
    TransitionResult,
)
from coherence_sim.msi_functions import on_processor_event

logger = logging.getLogger(__name__)


class DirectoryEngine(CoherenceEngine):
    """
    Directory protocol over per-node private memories.

    Attributes:
        memories: home node id → BackingStore
        directories: home node id → DirectoryStore
    """

    protocol = Protocol.DIRECTORY

    def __init__(self, config: SimulatorConfig) -> None:
        super().__init__(config)
        self.memories: Dict[str, BackingStore] = {
            node_id: BackingStore(config.block_size, name=f"{node_id} memory")
            for node_id in self.node_ids
        }
        self.directories: Dict[str, DirectoryStore] = {
            node_id: DirectoryStore(node_id) for node_id in self.node_ids
        }

    # ---------------------------------------------------------------------
    # Public extras
    # ---------------------------------------------------------------------

    def home_of(self, address: int) -> str:
        return self.codec.node_id(self.codec.resolve_owner(address))

    def directory_snapshot(self, node_id: str):
        """(block address, DirectoryEntryView) pairs kept by `node_id`, sorted."""
        with self._lock:
            self._cache(node_id)
            return self.directories[node_id].snapshot()

    def directory_entry(self, address: int) -> Optional[DirectoryEntryView]:
        block = self.codec.block_address(address)
        with self._lock:
            entry = self.directories[self.home_of(block)].get(block)
            return entry.view() if entry is not None else None

    # ---------------------------------------------------------------------
    # Request dispatch
    # ---------------------------------------------------------------------

    def _execute(self, address: int, operation: Operation, payload: Optional[Block],
                 requester: str, trace: RequestTrace) -> Tuple[bool, Optional[str]]:
        decoded = self.codec.decode(address)
        block = self.codec.block_address(address)
        home = self.home_of(block)
        cache = self.caches[requester]

        hit = cache.lookup(decoded.index, decoded.tag)
        effective = cache.line(decoded.index).state if hit else CacheState.INVALID
        tr: TransitionResult = on_processor_event(effective, operation)

        trace.note(f"{operation.name.lower()} {'hit' if hit else 'miss'} at line {decoded.index:X}, "
                   f"home node {home}")

        if tr.issue_cmd is None:
            # hit that needs no coherence traffic
            if operation == Operation.WRITE:
                line = cache.line(decoded.index)
                line.data = payload
                line.dirty = True
                trace.note("update exclusive copy in place")
            else:
                trace.note("read from cache")
            return hit, home

        if tr.issue_cmd == CoherenceCmd.BUS_RD:
            self._evict(requester, decoded.index, trace)
            self._bus_rd(requester, home, block, decoded, trace)
        elif tr.issue_cmd == CoherenceCmd.BUS_RDX:
            self._evict(requester, decoded.index, trace)
            self._bus_rdx(requester, home, block, decoded, payload, trace)
        elif tr.issue_cmd == CoherenceCmd.BUS_UPGR:
            self._bus_upgr(requester, home, block, decoded, payload, trace)
        else:
            raise ValueError(f"unexpected bus command {tr.issue_cmd!r}")

        return hit, home

    # ---------------------------------------------------------------------
    # Bus transactions
    # ---------------------------------------------------------------------

    def _bus_rd(self, requester: str, home: str, block: int, decoded: DecodedAddress,
                trace: RequestTrace) -> None:
        """
        Read miss.

        Case 1: UNCACHED
            - Load from the home node's memory
            - State: UNCACHED → SHARED, sharers = {requester}

        Case 2: SHARED
            - Copy from a current sharer (all shared copies are identical)
            - Sharers: add requester

        Case 3: EXCLUSIVE
            - Owner writes its dirty block back to home memory
            - Owner downgrades MODIFIED → SHARED and hands over its data
            - State: EXCLUSIVE → SHARED, sharers: add requester
        """
        entry = self.directories[home].entry_for(block)

        if entry.state == DirectoryState.UNCACHED:
            data = self.memories[home].read(block)
            trace.note(f"directory UNCACHED: load block from {home} memory")
            entry.state = DirectoryState.SHARED
            entry.sharers = {requester}

        elif entry.state == DirectoryState.SHARED:
            source = self._pick_sharer(entry, requester)
            data = self._peer_line(source, decoded).data
            trace.touch(source)
            trace.note(f"directory SHARED: copy block from {source}")
            entry.sharers.add(requester)

        elif entry.state == DirectoryState.EXCLUSIVE:
            owner = self._exclusive_owner(entry, requester)
            owner_line = self._peer_line(owner, decoded)
            trace.touch(owner)
            self._write_back(owner, owner_line, block, home, trace)
            owner_line.state = CacheState.SHARED
            data = owner_line.data
            trace.note(f"directory EXCLUSIVE: copy block from {owner}, {owner} downgraded to SHARED")
            entry.state = DirectoryState.SHARED
            entry.sharers.add(requester)

        else:
            raise ValueError(f"invalid directory state {entry.state!r}")

        self.caches[requester].install(decoded.index, decoded.tag, data, CacheState.SHARED)
        trace.note(f"line {decoded.index:X} now SHARED, sharers {self._fmt_sharers(entry)}")

    def _bus_rdx(self, requester: str, home: str, block: int, decoded: DecodedAddress,
                 payload: Block, trace: RequestTrace) -> None:
        """
        Write miss.

        Case 1: UNCACHED
            - Load from home memory, then overwrite with the payload

        Case 2: SHARED
            - Copy the block from a sharer, then invalidate every sharer

        Case 3: EXCLUSIVE
            - Owner writes back to home memory, hands over its data and
              is invalidated

        All cases end with the requester MODIFIED/dirty and the directory
        EXCLUSIVE with sharers = {requester}.
        """
        entry = self.directories[home].entry_for(block)

        if entry.state == DirectoryState.UNCACHED:
            fetched = self.memories[home].read(block)
            trace.note(f"directory UNCACHED: load block from {home} memory")

        elif entry.state == DirectoryState.SHARED:
            # copy first, the source is among the lines invalidated next
            source = self._pick_sharer(entry, requester)
            fetched = self._peer_line(source, decoded).data
            trace.touch(source)
            trace.note(f"directory SHARED: copy block from {source}")
            self._invalidate_sharers(entry, requester, block, home, decoded, trace)

        elif entry.state == DirectoryState.EXCLUSIVE:
            owner = self._exclusive_owner(entry, requester)
            owner_line = self._peer_line(owner, decoded)
            trace.touch(owner)
            self._write_back(owner, owner_line, block, home, trace)
            fetched = owner_line.data
            trace.note(f"directory EXCLUSIVE: take block and ownership from {owner}")
            self.caches[owner].invalidate(decoded.index)
            trace.note(f"invalidate {owner}")

        else:
            raise ValueError(f"invalid directory state {entry.state!r}")

        # fetched block lands first, then the payload replaces it whole
        self.caches[requester].install(decoded.index, decoded.tag, fetched, CacheState.SHARED)
        self._complete_write(requester, decoded, payload, entry, trace)

    def _bus_upgr(self, requester: str, home: str, block: int, decoded: DecodedAddress,
                  payload: Block, trace: RequestTrace) -> None:
        """
        Write hit on a SHARED line: invalidate every other sharer, no data
        transfer needed.
        """
        entry = self.directories[home].get(block)
        if entry is None or entry.state != DirectoryState.SHARED or requester not in entry.sharers:
            raise ValueError(f"invalid directory state for upgrade of 0x{block:X}")

        trace.note("directory SHARED: upgrade to exclusive")
        self._invalidate_sharers(entry, requester, block, home, decoded, trace)
        self._complete_write(requester, decoded, payload, entry, trace)

    # ---------------------------------------------------------------------
    # Evictions
    # ---------------------------------------------------------------------

    def _evict(self, requester: str, index: int, trace: RequestTrace) -> None:
        """
        Free the destination line before a miss loads a different block.

        INVALID: nothing to do
        SHARED: EVICT_CLEAN, drop requester from the victim's sharer set
        MODIFIED: EVICT_DIRTY, write back to the victim's home memory
        """
        cache = self.caches[requester]
        line = cache.line(index)
        if not line.valid:
            return

        victim = self.codec.compose(line.tag, index)
        victim_home = self.home_of(victim)

        if line.state == CacheState.SHARED:
            self._evict_clean(requester, victim, victim_home)
            cmd = CoherenceCmd.EVICT_CLEAN
        elif line.state == CacheState.MODIFIED:
            self._evict_dirty(requester, line, victim, victim_home, trace)
            cmd = CoherenceCmd.EVICT_DIRTY
        else:
            raise ValueError(f"invalid MSI state {line.state!r}")

        cache.invalidate(index)
        trace.note(f"{cmd.name}: replaced {self.codec.format_address(victim)} "
                   f"(home {victim_home}) from line {index:X}")
        logger.info("%s evicted %s via %s", requester, self.codec.format_address(victim), cmd.name)

    def _evict_clean(self, requester: str, victim: int, victim_home: str) -> None:
        directory = self.directories[victim_home]
        entry = directory.get(victim)
        if entry is None:
            return
        entry.sharers.discard(requester)
        if not entry.sharers:
            directory.remove(victim)

    def _evict_dirty(self, requester: str, line: CacheLine, victim: int, victim_home: str,
                     trace: RequestTrace) -> None:
        self._write_back(requester, line, victim, victim_home, trace)
        self.directories[victim_home].remove(victim)

    # ---------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------

    def _complete_write(self, requester: str, decoded: DecodedAddress, payload: Block,
                        entry: DirectoryEntry, trace: RequestTrace) -> None:
        self.caches[requester].install(decoded.index, decoded.tag, payload, CacheState.MODIFIED, dirty=True)
        entry.state = DirectoryState.EXCLUSIVE
        entry.sharers = {requester}
        trace.note(f"line {decoded.index:X} now MODIFIED, directory EXCLUSIVE for {requester}")

    def _invalidate_sharers(self, entry: DirectoryEntry, keep: str, block: int, home: str,
                            decoded: DecodedAddress, trace: RequestTrace) -> None:
        for node_id in sorted(entry.sharers):
            if node_id == keep:
                continue
            line = self.caches[node_id].line(decoded.index)
            if line.holds(decoded.tag):
                # shared copies are normally clean
                if line.dirty:
                    self._write_back(node_id, line, block, home, trace)
                self.caches[node_id].invalidate(decoded.index)
            trace.touch(node_id)
            trace.note(f"invalidate {node_id}")

    def _write_back(self, node_id: str, line: CacheLine, block: int, home: str,
                    trace: RequestTrace) -> None:
        if not line.dirty:
            return
        self.memories[home].write(block, line.data)
        line.dirty = False
        trace.note(f"write back {node_id} copy of {self.codec.format_address(block)} to {home} memory")

    def _peer_line(self, node_id: str, decoded: DecodedAddress) -> CacheLine:
        line = self.caches[node_id].line(decoded.index)
        if not line.holds(decoded.tag):
            raise ValueError(f"directory lists {node_id} but its line does not hold the block")
        return line

    @staticmethod
    def _pick_sharer(entry: DirectoryEntry, requester: str) -> str:
        candidates = sorted(entry.sharers - {requester})
        if not candidates:
            raise ValueError("invalid directory state: SHARED without another sharer")
        return candidates[0]

    @staticmethod
    def _exclusive_owner(entry: DirectoryEntry, requester: str) -> str:
        owner = entry.owner()
        if owner is None or owner == requester:
            raise ValueError("invalid directory state: EXCLUSIVE without a single other owner")
        return owner

    @staticmethod
    def _fmt_sharers(entry: DirectoryEntry) -> str:
        return "{" + ", ".join(sorted(entry.sharers)) + "}"

    # ---------------------------------------------------------------------
    # Engine hooks
    # ---------------------------------------------------------------------

    def _store_for(self, block_address: int) -> BackingStore:
        return self.memories[self.home_of(block_address)]

    def _reset_protocol_state(self) -> None:
        for directory in self.directories.values():
            directory.reset()
