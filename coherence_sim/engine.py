"""
Protocol-independent part of the coherence engines.

A CoherenceEngine owns every node's cache, the backing store(s) and the
request log of one simulated system. Requests run one at a time and are
fully applied before execute() returns:

    caller ──→ execute() ──→ _execute()  [protocol specific]
                   │
                   └──→ RequestLog.record()

Subclasses provide _execute(), _store_for() and _reset_protocol_state().
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from coherence_sim.address import AddressCodec
from coherence_sim.cache import CacheLine, CacheLineView, NodeCache
from coherence_sim.config import SimulatorConfig
from coherence_sim.errors import MalformedPayload, UnknownNode
from coherence_sim.memory import BackingStore, Block, UNIT_MAX
from coherence_sim.msi_data_types import Operation, Protocol
from coherence_sim.request_log import RequestLog

logger = logging.getLogger(__name__)


# ============================================================================
# Request / Outcome
# ============================================================================

@dataclass(frozen=True)
class Request:
    """
    One processor request
    -------------------------------------------------------------
    | address | operation | payload (WRITE only) | requester   |
    |   int   | READ/WRITE|   block_size units   |  node id    |
    -------------------------------------------------------------
    """
    address: int
    operation: Operation
    payload: Optional[Block]
    requester: str


@dataclass(frozen=True)
class RequestOutcome:
    """
    What a request did.

    Fields:
        address / address_text: Requested address, raw and formatted
        operation: READ or WRITE
        requester: Node that issued the request
        hit: Whether the requester's cache already held the block
        owner: Home node of the block (directory protocol), else None
        participants: Nodes whose caches took part, requester first
        narrative: Ordered description of every step taken
        data: Requester's line contents after the request
    """
    address: int
    address_text: str
    operation: Operation
    requester: str
    hit: bool
    owner: Optional[str]
    participants: Tuple[str, ...]
    narrative: Tuple[str, ...]
    data: Block


@dataclass
class RequestTrace:
    """Collects narrative steps and participating nodes while a request runs."""
    requester: str
    steps: List[str] = field(default_factory=list)
    participants: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.participants.append(self.requester)

    def note(self, step: str) -> None:
        logger.debug("%s: %s", self.requester, step)
        self.steps.append(step)

    def touch(self, node_id: str) -> None:
        if node_id not in self.participants:
            self.participants.append(node_id)


# ============================================================================
# Engine Base
# ============================================================================

class CoherenceEngine:
    """
    Shared machinery for the directory and snoop engines.

    Attributes:
        config: System geometry
        codec: Address decoder / home-node mapping
        caches: node id → NodeCache
        log: Bounded history of executed requests
    """

    protocol: Protocol

    def __init__(self, config: SimulatorConfig) -> None:
        self.config: SimulatorConfig = config
        self.codec: AddressCodec = AddressCodec(config)
        self.node_ids: List[str] = list(self.codec.node_ids)
        self.caches: Dict[str, NodeCache] = {
            node_id: NodeCache(node_id, config.cache_lines, config.block_size)
            for node_id in self.node_ids
        }
        self.log: RequestLog = RequestLog(config.history_limit)

        # one request in flight at a time
        self._lock = threading.RLock()

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------

    def execute(self, address: int, operation: Operation, payload: Optional[Block], requester: str) -> RequestOutcome:
        """
        Run one request to completion.

        Args:
            address: Well-formed address (validated by the caller)
            operation: READ or WRITE
            payload: Whole block to write (WRITE only, ignored for READ)
            requester: Issuing node id

        Returns:
            RequestOutcome, which is also recorded in the request log

        Raises:
            UnknownNode: requester is not a configured node
            MalformedPayload: WRITE without a block-sized payload
        """
        operation = Operation(operation)
        with self._lock:
            cache = self._cache(requester)
            if operation == Operation.WRITE:
                payload = self._check_payload(payload)

            trace = RequestTrace(requester)
            hit, owner = self._execute(address, operation, payload, requester, trace)

            line = cache.line(self.codec.decode(address).index)
            outcome = RequestOutcome(
                address=address,
                address_text=self.codec.format_address(address),
                operation=operation,
                requester=requester,
                hit=hit,
                owner=owner,
                participants=tuple(trace.participants),
                narrative=tuple(trace.steps),
                data=line.data,
            )
            self.log.record(outcome)
            return outcome

    def submit(self, request: Request) -> RequestOutcome:
        return self.execute(request.address, request.operation, request.payload, request.requester)

    def reset(self) -> None:
        """
        Flush every dirty MODIFIED line, then return caches, directories and
        the request log to their startup state. Backing stores keep their data.
        """
        with self._lock:
            flushed = 0
            for node_id in self.node_ids:
                cache = self.caches[node_id]
                for index, line in cache.dirty_lines():
                    self._flush_line(index, line)
                    flushed += 1
                cache.reset()
            self._reset_protocol_state()
            self.log.clear()
            logger.info("reset %s system, flushed %d dirty line(s)", self.protocol.value, flushed)

    def snapshot(self, node_id: str) -> List[CacheLineView]:
        with self._lock:
            return self._cache(node_id).snapshot()

    def memory_block(self, address: int) -> Block:
        """Contents of the backing store that owns `address` (no side effects)."""
        block_address = self.codec.block_address(address)
        with self._lock:
            return self._store_for(block_address).peek(block_address)

    # ---------------------------------------------------------------------
    # Helpers shared by both protocols
    # ---------------------------------------------------------------------

    def _cache(self, node_id: str) -> NodeCache:
        try:
            return self.caches[node_id]
        except (KeyError, TypeError):
            raise UnknownNode(node_id) from None

    def _check_payload(self, payload: Optional[Block]) -> Block:
        if payload is None:
            raise MalformedPayload("write request without a payload")
        if len(payload) != self.config.block_size or any(u > UNIT_MAX for u in payload):
            raise MalformedPayload(
                f"payload must be {self.config.block_size} hex-digit units"
            )
        return bytes(payload)

    def _flush_line(self, index: int, line: CacheLine) -> None:
        block_address = self.codec.compose(line.tag, index)
        self._store_for(block_address).write(block_address, line.data)
        line.dirty = False

    # ---------------------------------------------------------------------
    # Protocol hooks
    # ---------------------------------------------------------------------

    def _execute(self, address: int, operation: Operation, payload: Optional[Block],
                 requester: str, trace: RequestTrace) -> Tuple[bool, Optional[str]]:
        """Apply the protocol; returns (hit, home node or None)."""
        raise NotImplementedError

    def _store_for(self, block_address: int) -> BackingStore:
        raise NotImplementedError

    def _reset_protocol_state(self) -> None:
        raise NotImplementedError
