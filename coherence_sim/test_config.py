import pytest
from pydantic import ValidationError

from coherence_sim.config import SimulatorConfig, load_config
from coherence_sim.msi_data_types import OwnerMapping, Protocol


def test_defaults():
    config = SimulatorConfig()
    assert config.protocol == Protocol.DIRECTORY
    assert config.num_nodes == 4
    assert config.cache_lines == 16
    assert config.block_size == 16
    assert config.tag_bits == 16
    assert config.hex_digits == 6
    assert config.history_limit == 10
    assert config.owner_mapping == OwnerMapping.HIGH_BITS


def test_frozen():
    config = SimulatorConfig()
    with pytest.raises(ValidationError):
        config.num_nodes = 8


@pytest.mark.parametrize("overrides", [
    {"num_nodes": 3},
    {"num_nodes": 0},
    {"address_bits": 26},
    {"address_bits": 8, "index_bits": 4, "offset_bits": 4},
    {"protocol": "token"},
    {"history_limit": 0},
])
def test_rejects_bad_geometry(overrides):
    with pytest.raises(ValidationError):
        SimulatorConfig(**overrides)


def test_load_config_from_environment(monkeypatch):
    monkeypatch.setenv("COHERENCE_PROTOCOL", "snoop")
    monkeypatch.setenv("COHERENCE_NUM_NODES", "8")
    monkeypatch.setenv("COHERENCE_HISTORY_LIMIT", "")

    config = load_config()

    assert config.protocol == Protocol.SNOOP
    assert config.num_nodes == 8
    assert config.history_limit == 10


def test_load_config_overrides_win(monkeypatch):
    monkeypatch.setenv("COHERENCE_PROTOCOL", "snoop")

    config = load_config(protocol="directory", num_nodes=None)

    assert config.protocol == Protocol.DIRECTORY
    assert config.num_nodes == 4
