import struct

import pytest

from kfdtopo import elf
from kfdtopo.textparse import KfdError


def test_hash_gnu_empty_is_seed():
    assert elf.hash_gnu("") == 5381


def test_hash_gnu_str_and_bytes_agree():
    assert elf.hash_gnu("kernel.kd") == elf.hash_gnu(b"kernel.kd")


def test_hash_gnu_fits_32_bits():
    value = elf.hash_gnu("a_very_long_symbol_name_that_overflows_the_hash" * 4)
    assert 0 <= value <= 0xFFFFFFFF


def test_symbol_info_decomposition():
    info = (elf.STB_GLOBAL << 4) | elf.STT_FUNC
    assert elf.symbol_binding(info) == elf.STB_GLOBAL
    assert elf.symbol_type(info) == elf.STT_FUNC


def test_rela_info_decomposition():
    r_info = (5 << 32) | elf.R_AMDGPU_RELATIVE64
    assert elf.rela_type(r_info) == elf.R_AMDGPU_RELATIVE64
    assert elf.rela_symbol(r_info) == 5


@pytest.mark.parametrize(
    "mach,name,version",
    [(0x2C, "gfx900", 90000), (0x3F, "gfx90a", 90010), (0x4C, "gfx942", 90402)],
)
def test_known_machs(mach, name, version):
    assert elf.get_name(mach) == name
    assert elf.get_gfx_version(mach) == version
    assert elf.get_mach(version) == mach


def test_generic_mach_has_no_version():
    assert elf.get_name(0x51) == "gfx9-generic"
    assert elf.get_gfx_version(0x51) == 0


def test_unknown_values():
    assert elf.get_name(0x27) == ""
    assert elf.get_gfx_version(0x27) == 0
    assert elf.get_mach(12345) == elf.EF_AMDGPU_MACH_NONE
    assert elf.get_mach(0) == elf.EF_AMDGPU_MACH_NONE


def test_mach_table_round_trip():
    for mach, name, version in elf.AMDGPU_MACHS:
        assert elf.get_name(mach) == name
        if version:
            assert elf.get_mach(elf.get_gfx_version(mach)) == mach


def test_format_matches_names_for_specific_targets():
    for mach, name, version in elf.AMDGPU_MACHS:
        if version:
            assert elf.format_gfx_version(version) == name


def test_format_documented_examples():
    assert elf.format_gfx_version(100300) == "gfx1030"
    assert elf.format_gfx_version(90010) == "gfx90a"


def _pack_table(nbuckets, symndx, maskwords, shift2, bloom, buckets, values):
    return (
        struct.pack("<4I", nbuckets, symndx, maskwords, shift2)
        + struct.pack(f"<{maskwords}Q", *bloom)
        + struct.pack(f"<{nbuckets}I", *buckets)
        + struct.pack(f"<{len(values)}I", *values)
    )


def test_gnu_hash_round_trip():
    data = _pack_table(2, 1, 1, 6, [0xFFFF0000FFFF0000], [1, 3], [10, 11, 12])
    table = elf.GnuHashTable.from_bytes(data)
    assert table.nbuckets == 2
    assert table.symndx == 1
    assert table.maskwords == 1
    assert table.shift2 == 6
    assert table.filter == [0xFFFF0000FFFF0000]
    assert table.buckets == [1, 3]
    assert table.values == [10, 11, 12]


def test_gnu_hash_truncated_header():
    with pytest.raises(KfdError) as info:
        elf.GnuHashTable.from_bytes(b"\x00" * 8)
    assert info.value.code == 22


def test_gnu_hash_truncated_buckets():
    data = struct.pack("<4I", 4, 1, 1, 6) + struct.pack("<Q", 0)
    with pytest.raises(KfdError):
        elf.GnuHashTable.from_bytes(data)