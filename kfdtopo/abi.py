"""AMDHSA compute ABI records: kernel descriptor, implicit args, packets."""

from __future__ import annotations

import errno
import struct
from dataclasses import dataclass, field, fields
from typing import ClassVar

from kfdtopo.textparse import KfdError

# gfx_target_version values of interest.
GFX_VERSION_GFX9 = 90000
GFX_VERSION_GFX9_8 = 90008
GFX_VERSION_GFX9_A = 90010
GFX_VERSION_GFX942 = 90402
GFX_VERSION_GFX950 = 90500
GFX_VERSION_GFX10_1 = 100100
GFX_VERSION_GFX11 = 110000
GFX_VERSION_GFX11_1 = 110001
GFX_VERSION_GFX11_5 = 110005
GFX_VERSION_GFX1151 = 110501
GFX_VERSION_GFX12 = 120000
GFX_VERSION_GFX12_1 = 120001
GFX_VERSION_GFX1250 = 120500

# COMPUTE_PGM_RSRC1 bit 20: launch waves with STATUS.PRIV=1.
COMPUTE_PGM_RSRC1_PRIV = 1 << 20
# COMPUTE_PGM_RSRC1 bit 29: pair two CUs into a work-group processor.
COMPUTE_PGM_RSRC1_WGP = 1 << 29
# COMPUTE_PGM_RSRC3 bit 13: group launch guarantee (GFX12+).
COMPUTE_PGM_RSRC3_GLG_EN = 1 << 13

# Required alignment for the private scratch region.
PRIVATE_SEGMENT_ALIGN = 0x10000

# Kernel code properties bits.
ENABLE_SGPR_PRIVATE_SEGMENT_BUFFER = 1 << 0
ENABLE_SGPR_DISPATCH_PTR = 1 << 1
ENABLE_SGPR_QUEUE_PTR = 1 << 2
ENABLE_SGPR_KERNARG_SEGMENT_PTR = 1 << 3
ENABLE_SGPR_DISPATCH_ID = 1 << 4
ENABLE_SGPR_FLAT_SCRATCH_INIT = 1 << 5
ENABLE_SGPR_PRIVATE_SEGMENT_SIZE = 1 << 6
ENABLE_WAVEFRONT_SIZE32 = 1 << 10
USES_DYNAMIC_STACK = 1 << 11

# Kernarg preload specification fields.
KERNARG_PRELOAD_LENGTH_MASK = 0x007F
KERNARG_PRELOAD_OFFSET_SHIFT = 7
KERNARG_PRELOAD_OFFSET_MASK = 0xFF80

# Size of the compatibility prologue skipped when kernargs are preloaded.
KERNARG_PRELOAD_PROLOG_SIZE = 256


def gfx_version_major(version: int) -> int:
    """Major component of a packed gfx_target_version."""
    return (version // 10000) % 100


def gfx_version_minor(version: int) -> int:
    """Minor component of a packed gfx_target_version."""
    return (version // 100) % 100


def gfx_version_step(version: int) -> int:
    """Stepping component of a packed gfx_target_version."""
    return version % 100


def needs_cwsr_priv_wa(gfx: int) -> bool:
    """Whether the GFX11.0 CWSR-under-PRIV work-around applies."""
    return gfx_version_major(gfx) == 11 and gfx_version_minor(gfx) == 0


@dataclass(frozen=True)
class Dim3:
    """Three-dimensional extent; unset dimensions are 1."""

    x: int = 1
    y: int = 1
    z: int = 1


@dataclass
class DispatchConfig:
    """Grid and block shape of a launch plus its dynamic LDS bytes."""

    grid: Dim3 = field(default_factory=Dim3)
    block: Dim3 = field(default_factory=Dim3)
    dynamic_lds: int = 0


def _unpack(layout: struct.Struct, data: bytes, what: str) -> tuple:
    if len(data) < layout.size:
        raise KfdError(
            errno.EINVAL,
            f"{what} needs {layout.size} bytes, got {len(data)}",
        )
    return layout.unpack_from(data)


@dataclass
class KernelDescriptor:
    """AMDHSA kernel descriptor (64 bytes)."""

    group_segment_fixed_size: int = 0
    private_segment_fixed_size: int = 0
    kernarg_size: int = 0
    kernel_code_entry_byte_offset: int = 0
    compute_pgm_rsrc3: int = 0
    compute_pgm_rsrc1: int = 0
    compute_pgm_rsrc2: int = 0
    kernel_code_properties: int = 0
    kernarg_preload: int = 0

    LAYOUT: ClassVar[struct.Struct] = struct.Struct("<3I4xq20x3I2H4x")
    SIZE: ClassVar[int] = 64

    @classmethod
    def from_bytes(cls, data: bytes) -> KernelDescriptor:
        """Decode a descriptor; raises ``KfdError`` if ``data`` is short."""
        return cls(*_unpack(cls.LAYOUT, data, "kernel descriptor"))

    def to_bytes(self) -> bytes:
        """Encode the descriptor in its 64-byte wire form."""
        return self.LAYOUT.pack(
            *(getattr(self, f.name) for f in fields(self))
        )


@dataclass
class ImplicitArgs:
    """Implicit kernarg block appended after the explicit arguments."""

    block_count_x: int = 0
    block_count_y: int = 0
    block_count_z: int = 0
    group_size_x: int = 0
    group_size_y: int = 0
    group_size_z: int = 0
    remainder_x: int = 0
    remainder_y: int = 0
    remainder_z: int = 0
    global_offset_x: int = 0
    global_offset_y: int = 0
    global_offset_z: int = 0
    grid_dims: int = 0
    printf_buffer: int = 0
    hostcall_buffer: int = 0
    multigrid_sync_arg: int = 0
    heap_v1: int = 0
    default_queue: int = 0
    completion_action: int = 0
    dynamic_lds_size: int = 0
    private_base: int = 0
    shared_base: int = 0
    queue_ptr: int = 0

    LAYOUT: ClassVar[struct.Struct] = struct.Struct(
        "<3I3H3H16x3QH6x6QI68x2IQ48x"
    )
    SIZE: ClassVar[int] = 256
    # Byte offset and struct code of each field within the block.
    FIELDS: ClassVar[dict[str, tuple[int, str]]] = {
        "block_count_x": (0, "I"),
        "block_count_y": (4, "I"),
        "block_count_z": (8, "I"),
        "group_size_x": (12, "H"),
        "group_size_y": (14, "H"),
        "group_size_z": (16, "H"),
        "remainder_x": (18, "H"),
        "remainder_y": (20, "H"),
        "remainder_z": (22, "H"),
        "global_offset_x": (40, "Q"),
        "global_offset_y": (48, "Q"),
        "global_offset_z": (56, "Q"),
        "grid_dims": (64, "H"),
        "printf_buffer": (72, "Q"),
        "hostcall_buffer": (80, "Q"),
        "multigrid_sync_arg": (88, "Q"),
        "heap_v1": (96, "Q"),
        "default_queue": (104, "Q"),
        "completion_action": (112, "Q"),
        "dynamic_lds_size": (120, "I"),
        "private_base": (192, "I"),
        "shared_base": (196, "I"),
        "queue_ptr": (200, "Q"),
    }

    @classmethod
    def from_bytes(cls, data: bytes) -> ImplicitArgs:
        """Decode the block; raises ``KfdError`` if ``data`` is short."""
        return cls(*_unpack(cls.LAYOUT, data, "implicit args"))

    def to_bytes(self) -> bytes:
        """Encode the block in its 256-byte wire form."""
        return self.LAYOUT.pack(
            *(getattr(self, f.name) for f in fields(self))
        )


@dataclass
class CwsrHeader:
    """Context save/restore area header (40 bytes)."""

    control_stack_offset: int = 0
    control_stack_size: int = 0
    wave_state_offset: int = 0
    wave_state_size: int = 0
    debug_offset: int = 0
    debug_size: int = 0
    err_payload_addr: int = 0
    err_event_id: int = 0
    reserved1: int = 0

    LAYOUT: ClassVar[struct.Struct] = struct.Struct("<6IQ2I")
    SIZE: ClassVar[int] = 40

    @classmethod
    def from_bytes(cls, data: bytes) -> CwsrHeader:
        """Decode a header; raises ``KfdError`` if ``data`` is short."""
        return cls(*_unpack(cls.LAYOUT, data, "CWSR header"))

    def to_bytes(self) -> bytes:
        """Encode the header in its 40-byte wire form."""
        return self.LAYOUT.pack(
            *(getattr(self, f.name) for f in fields(self))
        )


@dataclass
class DispatchPacket:
    """HSA AQL kernel dispatch packet (64 bytes)."""

    header: int = 0
    setup: int = 0
    workgroup_size_x: int = 0
    workgroup_size_y: int = 0
    workgroup_size_z: int = 0
    reserved0: int = 0
    grid_size_x: int = 0
    grid_size_y: int = 0
    grid_size_z: int = 0
    private_segment_size: int = 0
    group_segment_size: int = 0
    kernel_object: int = 0
    kernarg_address: int = 0
    reserved1: int = 0
    completion_signal: int = 0

    LAYOUT: ClassVar[struct.Struct] = struct.Struct("<6H5I4Q")
    SIZE: ClassVar[int] = 64

    @classmethod
    def from_bytes(cls, data: bytes) -> DispatchPacket:
        """Decode a packet; raises ``KfdError`` if ``data`` is short."""
        return cls(*_unpack(cls.LAYOUT, data, "dispatch packet"))

    def to_bytes(self) -> bytes:
        """Encode the packet in its 64-byte wire form."""
        return self.LAYOUT.pack(
            *(getattr(self, f.name) for f in fields(self))
        )


def grid_dims(grid: Dim3, block: Dim3) -> int:
    """Number of dimensions a launch uses (1 to 3)."""
    return 1 + int(grid.y > 1 or block.y > 1) + int(grid.z > 1 or block.z > 1)


def fill_dispatch_packet(
    grid: Dim3,
    block: Dim3,
    private_size: int = 0,
    group_size: int = 0,
) -> DispatchPacket:
    """Build the dispatch packet the ABI reads as an implicit argument."""
    return DispatchPacket(
        setup=grid_dims(grid, block) & 0xFFFF,
        workgroup_size_x=block.x & 0xFFFF,
        workgroup_size_y=block.y & 0xFFFF,
        workgroup_size_z=block.z & 0xFFFF,
        grid_size_x=(block.x * grid.x) & 0xFFFFFFFF,
        grid_size_y=(block.y * grid.y) & 0xFFFFFFFF,
        grid_size_z=(block.z * grid.z) & 0xFFFFFFFF,
        private_segment_size=private_size,
        group_segment_size=group_size,
    )