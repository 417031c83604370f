"""Snapshot of the KFD topology exported through sysfs."""

from __future__ import annotations

import errno
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TypeVar, Union

from kfdtopo.abi import (
    GFX_VERSION_GFX9_8,
    GFX_VERSION_GFX9_A,
    GFX_VERSION_GFX10_1,
    GFX_VERSION_GFX11,
    GFX_VERSION_GFX942,
    GFX_VERSION_GFX950,
    CwsrHeader,
    gfx_version_major,
)
from kfdtopo.nodes import CacheInfo, IoLink, MemoryBank, NodeInfo, NodeProperties
from kfdtopo.textparse import (
    KfdError,
    align_up,
    consume_integer,
    consume_line,
    page_size,
    split,
)

SYSFS_TOPOLOGY = "/sys/devices/virtual/kfd/kfd/topology"
MAX_GENERATION_RETRIES = 3

_MASK32 = 0xFFFFFFFF

PathLike = Union[str, "os.PathLike[str]"]
_Record = TypeVar("_Record")

# Property keys that keep their full 64-bit value; all others are truncated
# to 32 bits.
_WIDE_PROPERTY_KEYS = frozenset({"local_mem_size", "unique_id", "hive_id"})
_PROPERTY_KEYS = {
    f.name: f.name for f in fields(NodeProperties) if f.name != "gpu_id"
}
_MEMORY_BANK_KEYS = {
    "heap_type": "heap_type",
    "size_in_bytes": "size_in_bytes",
    "flags": "flags",
    "width": "width",
    "mem_clk_max": "mem_clk_max",
}
_CACHE_KEYS = {
    "processor_id_low": "processor_id_low",
    "level": "level",
    "size": "size",
    "cache_line_size": "line_size",
    "cache_lines_per_tag": "lines_per_tag",
    "association": "associativity",
    "latency": "latency",
    "type": "type",
}
_IO_LINK_KEYS = {
    name: name
    for name in (
        "type",
        "node_from",
        "node_to",
        "weight",
        "min_latency",
        "max_latency",
        "min_bandwidth",
        "max_bandwidth",
        "flags",
    )
}


def _read_sysfs(path: PathLike) -> str:
    """Return the whole contents of a sysfs file as text."""
    try:
        with open(path, "rb") as handle:
            data = handle.read()
    except OSError as exc:
        raise KfdError(
            exc.errno or errno.EIO, f"failed to open sysfs file '{path}'"
        ) from exc
    return data.decode("latin-1")


def read_sysfs_uint(path: PathLike) -> int:
    """Read a sysfs file holding a single unsigned integer."""
    value, _ = consume_integer(_read_sysfs(path))
    return value


def _key_values(text: str):
    """Yield ``(key, value)`` for each well-formed ``key value`` line."""
    while text:
        line, text = consume_line(text)
        key, val_str = split(line, " ")
        if not key:
            continue
        try:
            value, _ = consume_integer(val_str)
        except KfdError:
            continue
        yield key, value


def _parse_record(
    record: _Record,
    text: str,
    keys: dict[str, str],
    wide: frozenset[str] = frozenset(),
) -> _Record:
    for key, value in _key_values(text):
        attr = keys.get(key)
        if attr is None:
            continue
        setattr(record, attr, value if key in wide else value & _MASK32)
    return record


def parse_properties(text: str, gpu_id: int) -> NodeProperties:
    """Parse a node's ``properties`` file."""
    props = NodeProperties(gpu_id=gpu_id)
    return _parse_record(props, text, _PROPERTY_KEYS, _WIDE_PROPERTY_KEYS)


def parse_memory_bank(text: str) -> MemoryBank:
    """Parse a ``mem_banks/N/properties`` file."""
    return _parse_record(
        MemoryBank(), text, _MEMORY_BANK_KEYS, frozenset({"size_in_bytes"})
    )


def parse_cache(text: str) -> CacheInfo:
    """Parse a ``caches/N/properties`` file."""
    return _parse_record(CacheInfo(), text, _CACHE_KEYS)


def parse_io_link(text: str) -> IoLink:
    """Parse an ``io_links/N/properties`` file."""
    return _parse_record(IoLink(), text, _IO_LINK_KEYS)


def _node_dir(root: PathLike, index: int) -> Path:
    return Path(root) / "nodes" / str(index)


def _read_entries(root: PathLike, index: int, subdir: str, count: int, parse):
    base = _node_dir(root, index) / subdir
    for entry in range(count):
        yield parse(_read_sysfs(base / str(entry) / "properties"))


def _read_caches(root: PathLike, index: int, count: int) -> list[CacheInfo]:
    # Several caches are duplicated across each compute unit.
    caches: list[CacheInfo] = []
    seen: set[tuple[int, int, int]] = set()
    for cache in _read_entries(root, index, "caches", count, parse_cache):
        identity = (cache.level, cache.size, cache.type)
        if identity in seen:
            continue
        seen.add(identity)
        caches.append(cache)
    return caches


def _read_properties(root: PathLike, index: int) -> NodeProperties:
    node = _node_dir(root, index)
    gpu_id = read_sysfs_uint(node / "gpu_id")
    return parse_properties(_read_sysfs(node / "properties"), gpu_id & _MASK32)


def count_nodes(root: PathLike) -> int:
    """Count node directories by probing sequential indices."""
    count = 0
    while os.path.isdir(_node_dir(root, count)):
        count += 1
    return count


def read_node(root: PathLike, index: int) -> NodeInfo:
    """Read one node's properties, memory banks, caches and IO links."""
    props = _read_properties(root, index)
    if props.gpu_id == 0:
        return NodeInfo(props=props)
    banks = list(
        _read_entries(
            root, index, "mem_banks", props.mem_banks_count, parse_memory_bank
        )
    )
    caches = _read_caches(root, index, props.caches_count)
    links = list(
        _read_entries(root, index, "io_links", props.io_links_count, parse_io_link)
    )
    return NodeInfo(props=props, memory_banks=banks, caches=caches, io_links=links)


def vgpr_size_per_cu(gfx_version: int) -> int:
    """VGPR file size per CU in bytes for a gfx_target_version."""
    if gfx_version in (
        GFX_VERSION_GFX942,
        GFX_VERSION_GFX9_A,
        GFX_VERSION_GFX9_8,
        GFX_VERSION_GFX950,
    ):
        return 0x80000
    if gfx_version >= GFX_VERSION_GFX11:
        return 0x60000
    return 0x40000


def compute_cwsr_sizes(props: NodeProperties) -> tuple[int, int]:
    """Return ``(cwsr_size, ctl_stack_size)`` for a node's properties."""
    gfxv = props.gfx_target_version
    sgpr_size_per_cu = 0x4000
    lds_size_per_cu = 0x10000
    hwreg_size_per_cu = 0x1000

    num_xcc = props.num_xcc or 1
    simd_per_cu = props.simd_per_cu or 1
    cu_num = props.simd_count // simd_per_cu // num_xcc

    if gfxv < GFX_VERSION_GFX10_1:
        arrays_per_engine = props.simd_arrays_per_engine or 1
        max_waves = (props.array_count // arrays_per_engine * 512) & _MASK32
        wave_num = min((cu_num * 40) & _MASK32, max_waves)
    else:
        wave_num = (cu_num * 32) & _MASK32

    if gfxv == GFX_VERSION_GFX950:
        lds_per_cu = (props.lds_size_in_kb << 10) & _MASK32
    else:
        lds_per_cu = lds_size_per_cu
    wg_data_per_cu = (
        vgpr_size_per_cu(gfxv) + sgpr_size_per_cu + lds_per_cu + hwreg_size_per_cu
    ) & _MASK32
    wg_data_size = align_up(cu_num * wg_data_per_cu, page_size()) & _MASK32

    ctl_stack_bytes = 12 if gfxv >= GFX_VERSION_GFX10_1 else 8
    ctl_stack_size = (wave_num * ctl_stack_bytes + 8) & _MASK32
    ctl_stack_size = align_up(CwsrHeader.SIZE + ctl_stack_size, page_size()) & _MASK32

    if gfx_version_major(gfxv) == 10:
        ctl_stack_size = min(ctl_stack_size, 0x7000)

    return (ctl_stack_size + wg_data_size) & _MASK32, ctl_stack_size


@dataclass
class Topology:
    """GPU nodes of the KFD topology and the generation they were read at."""

    nodes: list[NodeInfo] = field(default_factory=list)
    generation: int = 0

    @classmethod
    def create(cls, root: PathLike = SYSFS_TOPOLOGY) -> Topology:
        """Take a consistent snapshot of the topology under ``root``.

        The scan is retried if the generation id changes while reading;
        ``KfdError`` with ``EAGAIN`` is raised if it never settles.
        """
        generation_path = Path(root) / "generation_id"
        for _ in range(MAX_GENERATION_RETRIES):
            gen_before = read_sysfs_uint(generation_path)
            topo = cls(generation=gen_before & _MASK32)

            for index in range(count_nodes(root)):
                node = read_node(root, index)
                if node.props.gpu_id == 0:
                    continue
                # Newer kernels report these; derive them otherwise.
                if not node.props.cwsr_size or not node.props.ctl_stack_size:
                    cwsr, ctl = compute_cwsr_sizes(node.props)
                    node.props.cwsr_size = cwsr
                    node.props.ctl_stack_size = ctl
                topo.nodes.append(node)

            if read_sysfs_uint(generation_path) == gen_before:
                return topo

        raise KfdError(errno.EAGAIN, "topology generation changed during scan")