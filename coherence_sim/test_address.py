import pytest

from coherence_sim.address import AddressCodec, DecodedAddress
from coherence_sim.config import SimulatorConfig
from coherence_sim.errors import UnknownNode


@pytest.fixture
def codec():
    return AddressCodec(SimulatorConfig())


def test_decode_fields(codec):
    assert codec.decode(0x01A3C7) == DecodedAddress(tag=0x01A3, index=0xC, offset=0x7)
    assert codec.decode(0x000000) == DecodedAddress(0, 0, 0)
    assert codec.decode(0xFFFFFF) == DecodedAddress(0xFFFF, 0xF, 0xF)


def test_compose_inverts_decode(codec):
    for addr in (0x000000, 0x01A3C7, 0x7FFFF0, 0xFFFFFF):
        d = codec.decode(addr)
        assert codec.compose(d.tag, d.index, d.offset) == addr


def test_block_address_clears_offset(codec):
    assert codec.block_address(0x01A3C7) == 0x01A3C0
    assert codec.block_address(0x01A3C0) == 0x01A3C0


@pytest.mark.parametrize("addr, owner", [
    (0x010000, 0),
    (0x3FFFFF, 0),
    (0x400000, 1),
    (0x7ABCDE, 1),
    (0x800000, 2),
    (0xC00000, 3),
])
def test_resolve_owner_high_bits(codec, addr, owner):
    assert codec.resolve_owner(addr) == owner


def test_resolve_owner_interleaved():
    codec = AddressCodec(SimulatorConfig(owner_mapping="interleaved"))
    assert [codec.resolve_owner(b * 0x10) for b in range(6)] == [0, 1, 2, 3, 0, 1]
    # offset does not change the owner
    assert codec.resolve_owner(0x00001F) == 1


def test_resolve_owner_scales_with_node_count():
    codec = AddressCodec(SimulatorConfig(num_nodes=8))
    assert codec.node_ids[5] == "CPU101"
    assert codec.resolve_owner(0xA00000) == 5
    single = AddressCodec(SimulatorConfig(num_nodes=1))
    assert single.node_ids == ["CPU0"]
    assert single.resolve_owner(0xFFFFFF) == 0


def test_node_lookup(codec):
    assert codec.node_ids == ["CPU00", "CPU01", "CPU10", "CPU11"]
    assert codec.node_id(2) == "CPU10"
    assert codec.node_index("CPU11") == 3
    with pytest.raises(UnknownNode):
        codec.node_id(4)
    with pytest.raises(UnknownNode):
        codec.node_index("CPU22")


def test_formatting(codec):
    assert codec.format_address(0x10) == "0x000010"
    assert codec.format_address(0xABCDEF) == "0xABCDEF"
    assert codec.format_tag(0x1A) == "001A"
