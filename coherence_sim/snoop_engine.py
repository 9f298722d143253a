# External
import logging

# types
from typing import Optional, Tuple

from coherence_sim.address import DecodedAddress
from coherence_sim.config import SimulatorConfig
from coherence_sim.engine import CoherenceEngine, RequestTrace
from coherence_sim.memory import BackingStore, Block
from coherence_sim.msi_data_types import (
    CacheState,
    Operation,
    Protocol,
    SnoopEvent,
    TransitionResult,
)

# Functions
from coherence_sim.msi_functions import on_processor_event, on_snoop_event

logger = logging.getLogger(__name__)


class SnoopEngine(CoherenceEngine):
    """
    Broadcast (snooping) MSI over one shared main memory.

    There is no directory: on a miss every other node inspects its own
    line at the same index, and on a write every other node drops its copy.
    """

    protocol = Protocol.SNOOP

    def __init__(self, config: SimulatorConfig) -> None:
        super().__init__(config)
        self.memory: BackingStore = BackingStore(config.block_size, name="main memory")

    def _execute(self, address: int, operation: Operation, payload: Optional[Block],
                 requester: str, trace: RequestTrace) -> Tuple[bool, Optional[str]]:
        decoded = self.codec.decode(address)
        block = self.codec.block_address(address)
        cache = self.caches[requester]
        line = cache.line(decoded.index)

        hit = cache.lookup(decoded.index, decoded.tag)
        tr: TransitionResult = on_processor_event(line.state if hit else CacheState.INVALID, operation)
        trace.note(f"{operation.name.lower()} {'hit' if hit else 'miss'} at line {decoded.index:X}")

        if not hit:
            self._write_back_victim(requester, decoded.index, trace)
            self._load_block(requester, decoded, block, trace)

        if operation == Operation.WRITE:
            line.state = tr.next_state
            line.dirty = True
            line.data = payload
            trace.note(f"line {decoded.index:X} now MODIFIED")

            # invalidate after the copy above, never before it
            event = SnoopEvent.BUS_UPGR if hit else SnoopEvent.BUS_RDX
            self._broadcast_invalidate(requester, decoded, block, event, trace)
        elif hit:
            trace.note("read from cache")

        return hit, None

    # ---------------------------------------------------------------------
    # Miss handling
    # ---------------------------------------------------------------------

    def _write_back_victim(self, requester: str, index: int, trace: RequestTrace) -> None:
        """
        Implicit eviction: a dirty MODIFIED line at the destination index is
        flushed to main memory before another block is loaded over it.
        """
        line = self.caches[requester].line(index)
        if line.state == CacheState.MODIFIED and line.dirty:
            victim = self.codec.compose(line.tag, index)
            self.memory.write(victim, line.data)
            line.dirty = False
            trace.note(f"write back replaced block {self.codec.format_address(victim)} to main memory")
            logger.info("%s evicted dirty %s", requester, self.codec.format_address(victim))
        self.caches[requester].invalidate(index)

    def _load_block(self, requester: str, decoded: DecodedAddress, block: int,
                    trace: RequestTrace) -> None:
        """
        Snoop the other nodes for the block, falling back to main memory.

        The first peer (in node order) holding a valid copy answers the
        BUS_RD: a MODIFIED peer writes back, downgrades to SHARED and clears
        its dirty flag; a SHARED peer just supplies data. Either way the
        requester ends up SHARED.
        """
        for node_id in self.node_ids:
            if node_id == requester:
                continue
            peer = self.caches[node_id].line(decoded.index)
            if not peer.holds(decoded.tag):
                continue

            tr = on_snoop_event(peer.state, SnoopEvent.BUS_RD)
            if tr.flush:
                self.memory.write(block, peer.data)
                peer.dirty = False
                trace.note(f"{node_id} held the block MODIFIED: write back to main memory")
            peer.state = tr.next_state

            trace.touch(node_id)
            trace.note(f"copy block from {node_id}, {node_id} now {peer.state.name}")
            self.caches[requester].install(decoded.index, decoded.tag, peer.data, CacheState.SHARED)
            return

        data = self.memory.read(block)
        trace.note("no other cache holds the block: load from main memory")
        self.caches[requester].install(decoded.index, decoded.tag, data, CacheState.SHARED)

    # ---------------------------------------------------------------------
    # Write broadcast
    # ---------------------------------------------------------------------

    def _broadcast_invalidate(self, requester: str, decoded: DecodedAddress, block: int,
                              event: SnoopEvent, trace: RequestTrace) -> None:
        invalidated = []
        for node_id in self.node_ids:
            if node_id == requester:
                continue
            peer = self.caches[node_id].line(decoded.index)
            if not peer.holds(decoded.tag):
                continue

            tr = on_snoop_event(peer.state, event)
            if tr.flush and peer.dirty:
                self.memory.write(block, peer.data)
            peer.state = tr.next_state
            peer.dirty = False
            invalidated.append(node_id)
            trace.touch(node_id)

        if invalidated:
            trace.note(f"{event.name}: invalidate " + ", ".join(invalidated))
        else:
            trace.note(f"{event.name}: no other copies to invalidate")

    # ---------------------------------------------------------------------
    # Engine hooks
    # ---------------------------------------------------------------------

    def _store_for(self, block_address: int) -> BackingStore:
        return self.memory

    def _reset_protocol_state(self) -> None:
        pass
