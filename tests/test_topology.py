import builtins
import errno
import io
from pathlib import Path
from unittest import mock

import pytest

from kfdtopo.nodes import NodeProperties
from kfdtopo.textparse import KfdError, page_size
from kfdtopo.topology import (
    Topology,
    compute_cwsr_sizes,
    count_nodes,
    parse_cache,
    parse_io_link,
    parse_memory_bank,
    parse_properties,
    read_node,
    read_sysfs_uint,
    vgpr_size_per_cu,
)

GPU_PROPERTIES = (
    "cpu_cores_count 0\n"
    "simd_count 120\n"
    "mem_banks_count 1\n"
    "caches_count 3\n"
    "io_links_count 1\n"
    "gfx_target_version 90010\n"
    "simd_per_cu 4\n"
    "array_count 8\n"
    "simd_arrays_per_engine 1\n"
    "num_xcc 1\n"
    "lds_size_in_kb 64\n"
    "local_mem_size 68702699520\n"
    "vendor_id 4098\n"
)


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


def _make_tree(root: Path, gpu_properties: str = GPU_PROPERTIES) -> Path:
    _write(root / "generation_id", "7\n")
    cpu = root / "nodes" / "0"
    _write(cpu / "gpu_id", "0\n")
    _write(cpu / "properties", "cpu_cores_count 16\n")
    gpu = root / "nodes" / "1"
    _write(gpu / "gpu_id", "4660\n")
    _write(gpu / "properties", gpu_properties)
    _write(
        gpu / "mem_banks" / "0" / "properties",
        "heap_type 1\nsize_in_bytes 68702699520\nwidth 4096\n",
    )
    _write(gpu / "caches" / "0" / "properties", "level 1\nsize 16\ntype 5\n")
    _write(gpu / "caches" / "1" / "properties", "level 1\nsize 16\ntype 5\n")
    _write(gpu / "caches" / "2" / "properties", "level 2\nsize 8192\ntype 5\n")
    _write(
        gpu / "io_links" / "0" / "properties",
        "type 2\nnode_from 1\nnode_to 0\nweight 20\n",
    )
    return root


def test_read_sysfs_uint_parses_leading_digits(tmp_path):
    path = tmp_path / "value"
    path.write_text("42\n")
    assert read_sysfs_uint(path) == 42


def test_read_sysfs_uint_missing_file(tmp_path):
    with pytest.raises(KfdError) as info:
        read_sysfs_uint(tmp_path / "absent")
    assert info.value.code == errno.ENOENT


def test_read_sysfs_uint_rejects_text(tmp_path):
    path = tmp_path / "value"
    path.write_text("abc\n")
    with pytest.raises(KfdError) as info:
        read_sysfs_uint(path)
    assert info.value.code == errno.EINVAL


def test_parse_properties_reads_known_keys():
    props = parse_properties(GPU_PROPERTIES, 99)
    assert props.gpu_id == 99
    assert props.simd_count == 120
    assert props.gfx_target_version == 90010
    assert props.vendor_id == 4098
    assert props.local_mem_size == 68702699520


def test_parse_properties_truncates_narrow_fields():
    big = 2**40 + 5
    props = parse_properties(f"vendor_id {big}\nhive_id {big}\n", 1)
    assert props.hive_id == big
    assert props.vendor_id < 2**32
    assert props.vendor_id == big & 0xFFFFFFFF or props.vendor_id == 5


def test_parse_properties_skips_malformed_lines():
    text = "bogus\n\nsimd_count abc\n unknown 3\nnot_a_key 12\nnum_gws 2"
    props = parse_properties(text, 3)
    assert props == NodeProperties(gpu_id=3, num_gws=2)


def test_parse_memory_bank():
    bank = parse_memory_bank("heap_type 1\nsize_in_bytes 68702699520\nflags 2\n")
    assert bank.heap_type == 1
    assert bank.size_in_bytes == 68702699520
    assert bank.flags == 2
    assert bank.width == 0


def test_parse_cache_maps_renamed_keys():
    cache = parse_cache(
        "cache_line_size 128\ncache_lines_per_tag 1\nassociation 16\nlevel 2\n"
    )
    assert cache.line_size == 128
    assert cache.lines_per_tag == 1
    assert cache.associativity == 16
    assert cache.level == 2


def test_parse_io_link():
    link = parse_io_link("type 11\nnode_from 1\nnode_to 2\nmax_bandwidth 50000\n")
    assert (link.type, link.node_from, link.node_to) == (11, 1, 2)
    assert link.max_bandwidth == 50000


def test_count_nodes_stops_at_gap(tmp_path):
    for index in (0, 1, 3):
        (tmp_path / "nodes" / str(index)).mkdir(parents=True)
    assert count_nodes(tmp_path) == 2


def test_count_nodes_empty(tmp_path):
    assert count_nodes(tmp_path) == 0


def test_read_node_cpu_has_no_subtrees(tmp_path):
    root = _make_tree(tmp_path)
    node = read_node(root, 0)
    assert node.props.gpu_id == 0
    assert node.props.cpu_cores_count == 16
    assert node.memory_banks == []
    assert node.caches == []
    assert node.io_links == []


def test_read_node_gpu_dedups_caches(tmp_path):
    root = _make_tree(tmp_path)
    node = read_node(root, 1)
    assert node.props.gpu_id == 4660
    assert len(node.memory_banks) == 1
    assert [c.level for c in node.caches] == [1, 2]
    assert node.io_links[0].node_to == 0


def test_read_node_missing_bank_raises(tmp_path):
    root = _make_tree(tmp_path, GPU_PROPERTIES + "mem_banks_count 2\n")
    with pytest.raises(KfdError) as info:
        read_node(root, 1)
    assert info.value.code == errno.ENOENT


def test_vgpr_size_per_cu_values():
    assert vgpr_size_per_cu(90402) == 0x80000
    assert vgpr_size_per_cu(90500) == 0x80000
    assert vgpr_size_per_cu(110000) == 0x60000
    assert vgpr_size_per_cu(90000) == 0x40000


@pytest.mark.parametrize("gfx", [90000, 90010, 100300, 110000, 120000])
def test_compute_cwsr_sizes_page_aligned(gfx):
    props = NodeProperties(
        gfx_target_version=gfx, simd_count=120, simd_per_cu=4, array_count=8
    )
    cwsr, ctl = compute_cwsr_sizes(props)
    assert ctl % page_size() == 0
    assert (cwsr - ctl) % page_size() == 0
    assert cwsr > ctl


def test_compute_cwsr_sizes_gfx10_clamped():
    props = NodeProperties(
        gfx_target_version=100300, simd_count=4000, simd_per_cu=2
    )
    _, ctl = compute_cwsr_sizes(props)
    assert ctl <= 0x7000


def test_topology_create(tmp_path):
    root = _make_tree(tmp_path)
    topo = Topology.create(root)
    assert topo.generation == 7
    assert len(topo.nodes) == 1
    node = topo.nodes[0]
    assert node.props.gpu_id == 4660
    expected = compute_cwsr_sizes(parse_properties(GPU_PROPERTIES, 4660))
    assert (node.props.cwsr_size, node.props.ctl_stack_size) == expected


def test_topology_keeps_reported_cwsr(tmp_path):
    root = _make_tree(
        tmp_path, GPU_PROPERTIES + "cwsr_size 123456\nctl_stack_size 4096\n"
    )
    node = Topology.create(root).nodes[0]
    assert node.props.cwsr_size == 123456
    assert node.props.ctl_stack_size == 4096


def test_topology_missing_generation(tmp_path):
    with pytest.raises(KfdError) as info:
        Topology.create(tmp_path)
    assert info.value.code == errno.ENOENT


def _generation_open(values):
    real_open = builtins.open
    sequence = iter(values)

    def fake_open(path, *args, **kwargs):
        if str(path).endswith("generation_id"):
            return io.BytesIO(f"{next(sequence)}\n".encode())
        return real_open(path, *args, **kwargs)

    return fake_open


def test_topology_retries_until_stable(tmp_path):
    root = _make_tree(tmp_path)
    with mock.patch("builtins.open", _generation_open([1, 2, 2, 2])):
        topo = Topology.create(root)
    assert topo.generation == 2
    assert len(topo.nodes) == 1


def test_topology_gives_up_when_generation_keeps_changing(tmp_path):
    root = _make_tree(tmp_path)
    with mock.patch("builtins.open", _generation_open(range(1, 100))):
        with pytest.raises(KfdError) as info:
            Topology.create(root)
    assert info.value.code == errno.EAGAIN