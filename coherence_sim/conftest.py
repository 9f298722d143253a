"""
Shared test utilities.

CoherenceHarness wraps an engine with short read/write helpers and checks
the protocol invariants after every request:

1. A dirty line is MODIFIED
2. At most one node holds a block MODIFIED, and then nobody else holds it
3. (directory) every entry's sharers are exactly the nodes holding the block
"""

from collections import defaultdict
from typing import Dict, List, Optional, Tuple

import pytest

from coherence_sim import create_engine
from coherence_sim.config import SimulatorConfig
from coherence_sim.directory_engine import DirectoryEngine
from coherence_sim.engine import RequestOutcome
from coherence_sim.memory import Block, parse_block, format_block
from coherence_sim.msi_data_types import CacheState, DirectoryState, Operation


class CoherenceHarness:
    """Complete test system: engine plus invariant checks."""

    def __init__(self, protocol: str = "directory", **overrides) -> None:
        self.config = SimulatorConfig(protocol=protocol, **overrides)
        self.engine = create_engine(self.config)
        self.codec = self.engine.codec

    # ---- requests ----

    def read(self, node: str, addr: int) -> RequestOutcome:
        outcome = self.engine.execute(addr, Operation.READ, None, node)
        self.verify_invariants()
        return outcome

    def write(self, node: str, addr: int, payload: str) -> RequestOutcome:
        outcome = self.engine.execute(addr, Operation.WRITE, self.block(payload), node)
        self.verify_invariants()
        return outcome

    def block(self, text: str) -> Block:
        return parse_block(text, self.config.block_size)

    # ---- inspection ----

    def line(self, node: str, addr: int):
        return self.engine.caches[node].line(self.codec.decode(addr).index)

    def state(self, node: str, addr: int) -> CacheState:
        """State of `addr` in `node`'s cache; INVALID if the slot holds another block."""
        decoded = self.codec.decode(addr)
        line = self.engine.caches[node].line(decoded.index)
        return line.state if line.holds(decoded.tag) else CacheState.INVALID

    def dir_entry(self, addr: int) -> Optional[Tuple[DirectoryState, frozenset]]:
        view = self.engine.directory_entry(addr)
        return None if view is None else (view.state, view.sharers)

    def memory(self, addr: int) -> str:
        return format_block(self.engine.memory_block(addr))

    # ---- invariants ----

    def holders(self) -> Dict[int, List[Tuple[str, CacheState]]]:
        found: Dict[int, List[Tuple[str, CacheState]]] = defaultdict(list)
        for node_id in self.engine.node_ids:
            for view in self.engine.snapshot(node_id):
                if view.state != CacheState.INVALID:
                    found[self.codec.compose(view.tag, view.index)].append((node_id, view.state))
        return found

    def verify_invariants(self) -> None:
        for node_id in self.engine.node_ids:
            for view in self.engine.snapshot(node_id):
                assert not view.dirty or view.state == CacheState.MODIFIED, (
                    f"{node_id} line {view.index:X} dirty but {view.state.name}"
                )

        holders = self.holders()
        for block, nodes in holders.items():
            modified = [n for n, s in nodes if s == CacheState.MODIFIED]
            assert len(modified) <= 1, f"several writers of {block:#x}: {modified}"
            if modified:
                assert len(nodes) == 1, f"{block:#x} MODIFIED in {modified[0]} but also held by {nodes}"

        if isinstance(self.engine, DirectoryEngine):
            self._verify_directories(holders)

    def _verify_directories(self, holders) -> None:
        listed = set()
        for home in self.engine.node_ids:
            for block, view in self.engine.directory_snapshot(home):
                assert self.engine.home_of(block) == home, f"{block:#x} tracked by wrong home {home}"
                actual = {n for n, _ in holders.get(block, [])}
                assert set(view.sharers) == actual, (
                    f"directory {home} lists {sorted(view.sharers)} for {block:#x}, caches hold {sorted(actual)}"
                )
                assert view.sharers, f"empty entry for {block:#x} left in directory {home}"
                if view.state == DirectoryState.EXCLUSIVE:
                    assert len(view.sharers) == 1
                    (owner,) = view.sharers
                    assert dict(holders[block])[owner] == CacheState.MODIFIED
                else:
                    assert view.state == DirectoryState.SHARED
                    assert all(s == CacheState.SHARED for _, s in holders[block])
                listed.add(block)
        untracked = set(holders) - listed
        assert not untracked, f"cached blocks without directory entry: {[hex(b) for b in untracked]}"


@pytest.fixture
def directory_system() -> CoherenceHarness:
    return CoherenceHarness("directory")


@pytest.fixture
def snoop_system() -> CoherenceHarness:
    return CoherenceHarness("snoop")
