"""
Directory and snoop based MSI cache-coherence simulator.

    from coherence_sim import create_engine, SimulatorConfig, Operation

    engine = create_engine(SimulatorConfig(protocol="snoop"))
    engine.execute(0x020000, Operation.WRITE, bytes([0xA] * 16), "CPU00")
"""

from typing import Optional

from coherence_sim.config import SimulatorConfig, load_config
from coherence_sim.directory_engine import DirectoryEngine
from coherence_sim.engine import CoherenceEngine, Request, RequestOutcome
from coherence_sim.msi_data_types import CacheState, DirectoryState, Operation, Protocol
from coherence_sim.snoop_engine import SnoopEngine


def create_engine(config: Optional[SimulatorConfig] = None) -> CoherenceEngine:
    config = config or SimulatorConfig()
    if config.protocol == Protocol.DIRECTORY:
        return DirectoryEngine(config)
    if config.protocol == Protocol.SNOOP:
        return SnoopEngine(config)
    raise ValueError(f"unknown protocol {config.protocol!r}")


__all__ = [
    "CacheState",
    "CoherenceEngine",
    "DirectoryEngine",
    "DirectoryState",
    "Operation",
    "Protocol",
    "Request",
    "RequestOutcome",
    "SimulatorConfig",
    "SnoopEngine",
    "create_engine",
    "load_config",
]
