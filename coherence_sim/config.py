from __future__ import annotations
import os
from typing import Any, Dict, List

from pydantic import BaseModel, Field, model_validator

from coherence_sim.msi_data_types import OwnerMapping, Protocol


class SimulatorConfig(BaseModel):
    """Geometry and protocol selection for one simulated system"""

    model_config = {"frozen": True}

    protocol: Protocol = Field(
        default=Protocol.DIRECTORY,
        description="Coherence protocol family",
    )
    num_nodes: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Number of processing nodes (power of two)",
    )
    address_bits: int = Field(
        default=24,
        ge=8,
        le=64,
        multiple_of=4,
        description="Address width; addresses are written as hex digits",
    )
    index_bits: int = Field(
        default=4,
        ge=0,
        le=16,
        description="Bits selecting a direct-mapped cache line",
    )
    offset_bits: int = Field(
        default=4,
        ge=0,
        le=12,
        description="Bits addressing a unit within a block",
    )
    history_limit: int = Field(
        default=10,
        ge=1,
        le=10000,
        description="Requests kept in the request log",
    )
    owner_mapping: OwnerMapping = Field(
        default=OwnerMapping.HIGH_BITS,
        description="Address to home-node mapping (directory protocol)",
    )

    @model_validator(mode="after")
    def _check_layout(self) -> "SimulatorConfig":
        if self.num_nodes & (self.num_nodes - 1):
            raise ValueError(f"num_nodes must be a power of two, got {self.num_nodes}")
        if self.tag_bits < self.selector_bits:
            raise ValueError(
                f"tag is {self.tag_bits} bits, needs at least {self.selector_bits} "
                f"to carry the owner selector"
            )
        return self

    # Derived geometry

    @property
    def cache_lines(self) -> int:
        return 1 << self.index_bits

    @property
    def block_size(self) -> int:
        return 1 << self.offset_bits

    @property
    def tag_bits(self) -> int:
        return self.address_bits - self.index_bits - self.offset_bits

    @property
    def selector_bits(self) -> int:
        return (self.num_nodes - 1).bit_length()

    @property
    def hex_digits(self) -> int:
        return self.address_bits // 4

    @property
    def node_ids(self) -> List[str]:
        width = max(1, self.selector_bits)
        return [f"CPU{i:0{width}b}" for i in range(self.num_nodes)]


_ENV_FIELDS = {
    "protocol": "COHERENCE_PROTOCOL",
    "num_nodes": "COHERENCE_NUM_NODES",
    "address_bits": "COHERENCE_ADDRESS_BITS",
    "index_bits": "COHERENCE_INDEX_BITS",
    "offset_bits": "COHERENCE_OFFSET_BITS",
    "history_limit": "COHERENCE_HISTORY_LIMIT",
    "owner_mapping": "COHERENCE_OWNER_MAPPING",
}


def load_config(**overrides: Any) -> SimulatorConfig:
    """
    Build a config from COHERENCE_* environment variables, then apply
    explicit overrides (None values are ignored).
    """
    values: Dict[str, Any] = {}
    for field, env_name in _ENV_FIELDS.items():
        raw = os.getenv(env_name)
        if raw is not None and raw != "":
            values[field] = raw.strip()
    values.update({k: v for k, v in overrides.items() if v is not None})
    return SimulatorConfig(**values)
