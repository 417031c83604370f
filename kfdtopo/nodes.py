"""Records describing nodes of the KFD sysfs topology."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class NodeProperties:
    """Properties of one topology node; ``gpu_id`` is 0 for CPU-only nodes."""

    gpu_id: int = 0
    vendor_id: int = 0
    device_id: int = 0
    location_id: int = 0
    domain: int = 0
    gfx_target_version: int = 0
    drm_render_minor: int = 0
    cpu_cores_count: int = 0
    simd_count: int = 0
    array_count: int = 0
    simd_arrays_per_engine: int = 0
    cu_per_simd_array: int = 0
    simd_per_cu: int = 0
    max_waves_per_simd: int = 0
    wave_front_size: int = 0
    max_slots_scratch_cu: int = 0
    mem_banks_count: int = 0
    caches_count: int = 0
    io_links_count: int = 0
    num_sdma_engines: int = 0
    num_sdma_xgmi_engines: int = 0
    num_sdma_queues_per_engine: int = 0
    num_cp_queues: int = 0
    num_xcc: int = 0
    num_gws: int = 0
    max_engine_clk_fcompute: int = 0
    max_engine_clk_ccompute: int = 0
    lds_size_in_kb: int = 0
    gds_size_in_kb: int = 0
    local_mem_size: int = 0
    family_id: int = 0
    fw_version: int = 0
    sdma_fw_version: int = 0
    capability: int = 0
    capability2: int = 0
    debug_prop: int = 0
    cwsr_size: int = 0
    ctl_stack_size: int = 0
    unique_id: int = 0
    hive_id: int = 0

    CAP_WATCHPOINTS_SUPPORTED: ClassVar[int] = 0x00000080
    CAP_WATCHPOINTS_COUNT_MASK: ClassVar[int] = 0x00000F00
    CAP_WATCHPOINTS_COUNT_SHIFT: ClassVar[int] = 8
    CAP_DOORBELL_TYPE_MASK: ClassVar[int] = 0x00003000
    CAP_DOORBELL_TYPE_SHIFT: ClassVar[int] = 12
    CAP_TRAP_DEBUG: ClassVar[int] = 0x00008000
    CAP_TRAP_DEBUG_WAVE_OVERRIDE: ClassVar[int] = 0x00010000
    CAP_TRAP_DEBUG_WAVE_MODE: ClassVar[int] = 0x00020000
    CAP_TRAP_DEBUG_PRECISE_MEM: ClassVar[int] = 0x00040000
    CAP_MEM_EDCSUPPORTED: ClassVar[int] = 0x00100000
    CAP_ASIC_REVISION_MASK: ClassVar[int] = 0x03C00000
    CAP_ASIC_REVISION_SHIFT: ClassVar[int] = 22
    NODE_CAP_SRAM_EDCSUPPORTED: ClassVar[int] = 0x04000000
    NODE_CAP_SVMAPI_SUPPORTED: ClassVar[int] = 0x08000000
    CAP_TRAP_DEBUG_FW: ClassVar[int] = 0x20000000
    CAP_TRAP_DEBUG_PRECISE_ALU: ClassVar[int] = 0x40000000
    CAP_PER_QUEUE_RESET: ClassVar[int] = 0x80000000

    CAP2_PER_SDMA_QUEUE_RESET: ClassVar[int] = 0x00000001

    DBG_DISPATCH_INFO_ALWAYS_VALID: ClassVar[int] = 0x00000400
    DBG_WATCHPOINTS_EXCLUSIVE: ClassVar[int] = 0x00000800

    def watchpoint_count(self) -> int:
        """Number of hardware watchpoints encoded in ``capability``."""
        return (
            self.capability & self.CAP_WATCHPOINTS_COUNT_MASK
        ) >> self.CAP_WATCHPOINTS_COUNT_SHIFT

    def doorbell_type(self) -> int:
        """Doorbell type encoded in ``capability``."""
        return (
            self.capability & self.CAP_DOORBELL_TYPE_MASK
        ) >> self.CAP_DOORBELL_TYPE_SHIFT

    def asic_revision(self) -> int:
        """ASIC revision encoded in ``capability``."""
        return (
            self.capability & self.CAP_ASIC_REVISION_MASK
        ) >> self.CAP_ASIC_REVISION_SHIFT


@dataclass
class MemoryBank:
    """One memory heap of a node (heap type, size, flags, bus and clock)."""

    heap_type: int = 0
    size_in_bytes: int = 0
    flags: int = 0
    width: int = 0
    mem_clk_max: int = 0

    FLAG_HOT_PLUGGABLE: ClassVar[int] = 0x01
    FLAG_NON_VOLATILE: ClassVar[int] = 0x02


@dataclass
class CacheInfo:
    """One cache level of a node."""

    processor_id_low: int = 0
    level: int = 0
    size: int = 0
    line_size: int = 0
    lines_per_tag: int = 0
    associativity: int = 0
    latency: int = 0
    type: int = 0


@dataclass
class IoLink:
    """A link from one topology node to another."""

    type: int = 0
    node_from: int = 0
    node_to: int = 0
    weight: int = 0
    min_latency: int = 0
    max_latency: int = 0
    min_bandwidth: int = 0
    max_bandwidth: int = 0
    flags: int = 0

    FLAG_ENABLED: ClassVar[int] = 0x01
    FLAG_NON_COHERENT: ClassVar[int] = 0x02
    FLAG_NO_ATOMICS_32: ClassVar[int] = 0x04
    FLAG_NO_ATOMICS_64: ClassVar[int] = 0x08
    FLAG_NO_P2P_DMA: ClassVar[int] = 0x10


@dataclass
class NodeInfo:
    """A node's properties together with its banks, caches and links."""

    props: NodeProperties = field(default_factory=NodeProperties)
    memory_banks: list[MemoryBank] = field(default_factory=list)
    caches: list[CacheInfo] = field(default_factory=list)
    io_links: list[IoLink] = field(default_factory=list)