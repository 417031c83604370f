"""Occupancy, kernarg layout and scratch sizing for compute dispatches."""

from __future__ import annotations

import errno
import struct

from kfdtopo.abi import (
    COMPUTE_PGM_RSRC1_WGP,
    ENABLE_WAVEFRONT_SIZE32,
    GFX_VERSION_GFX10_1,
    GFX_VERSION_GFX11,
    GFX_VERSION_GFX12,
    Dim3,
    DispatchConfig,
    DispatchPacket,
    ImplicitArgs,
    KernelDescriptor,
    fill_dispatch_packet,
    grid_dims,
)
from kfdtopo.nodes import NodeProperties
from kfdtopo.textparse import KfdError, align_up

_MASK16 = 0xFFFF
_MASK32 = 0xFFFFFFFF


def blocks_per_cu(
    props: NodeProperties,
    gfx_version: int,
    kd: KernelDescriptor,
    block: Dim3,
    dynamic_lds: int = 0,
) -> int:
    """Maximum concurrent blocks per physical CU for a kernel and block size.

    Accounts for register usage, wave-slot limits and LDS.
    """
    simd_per_cu = props.simd_per_cu or 1
    wave_size = 32 if kd.kernel_code_properties & ENABLE_WAVEFRONT_SIZE32 else 64
    max_waves = props.max_waves_per_simd or 8
    rdna = gfx_version >= GFX_VERSION_GFX10_1

    # Wave64 on RDNA occupies two wave32 slots, halving the usable VGPRs.
    granulated_vgprs = kd.compute_pgm_rsrc1 & 0x3F
    if rdna:
        wave64_on_rdna = wave_size == 64
        vgpr_granule = 4 if wave64_on_rdna else 8
        total_vgprs = 512 if wave64_on_rdna else 1024
    else:
        vgpr_granule = 4
        total_vgprs = 256
    used_vgprs = (granulated_vgprs + 1) * vgpr_granule
    vgpr_waves = total_vgprs // used_vgprs

    gpr_waves = min(vgpr_waves, max_waves)
    if not rdna:
        # SGPRs only limit occupancy before GFX10.
        granulated_sgprs = (kd.compute_pgm_rsrc1 >> 6) & 0xF
        used_sgprs = (granulated_sgprs + 1) * 8
        sgpr_waves = 800 // align_up(used_sgprs, 16)
        gpr_waves = min(gpr_waves, sgpr_waves)

    wgp_mode = rdna and bool(kd.compute_pgm_rsrc1 & COMPUTE_PGM_RSRC1_WGP)
    simds = simd_per_cu * 2 if wgp_mode else simd_per_cu
    waves_per_cu = (simds * min(max_waves, gpr_waves)) & _MASK32

    block_size = (block.x * block.y * block.z) & _MASK32
    waves_per_block = align_up(block_size, wave_size) // wave_size
    result = waves_per_cu // waves_per_block if waves_per_block > 0 else 0

    kernel_lds = (kd.group_segment_fixed_size + dynamic_lds) & _MASK32
    if kernel_lds > 0:
        lds_per_cu = (props.lds_size_in_kb * 1024) & _MASK32
        result = min(result, lds_per_cu // kernel_lds)

    return result


def occupancy(
    props: NodeProperties,
    gfx_version: int,
    kd: KernelDescriptor,
    cfg: DispatchConfig,
) -> int:
    """Minimum number of CUs needed to run every block of the launch.

    Returns 0xFFFFFFFF when blocks exist but none fits on a CU.
    """
    bpc = blocks_per_cu(props, gfx_version, kd, cfg.block, cfg.dynamic_lds)
    total_blocks = (cfg.grid.x * cfg.grid.y * cfg.grid.z) & _MASK32
    if bpc == 0:
        return _MASK32 if total_blocks > 0 else 0
    return ((total_blocks + bpc - 1) & _MASK32) // bpc


def kernarg_alloc_size(kd_kernarg_size: int) -> int:
    """Kernarg allocation size including implicit args and dispatch packet."""
    return align_up(kd_kernarg_size, 64) + DispatchPacket.SIZE


def fill_implicit_args(
    buf: bytearray,
    explicit_size: int,
    kd: KernelDescriptor,
    cfg: DispatchConfig,
) -> None:
    """Fill the implicit kernarg block and trailing dispatch packet in ``buf``.

    Only implicit fields that fall within the descriptor's kernarg size are
    written. Raises ``KfdError`` if ``buf`` cannot hold the dispatch packet.
    """
    needed = kernarg_alloc_size(kd.kernarg_size)
    if len(buf) < needed:
        raise KfdError(
            errno.EINVAL,
            f"kernarg buffer of {len(buf)} bytes, need {needed}",
        )

    implicit_offset = align_up(explicit_size, 8)
    avail = max(kd.kernarg_size - implicit_offset, 0)

    def put(name: str, value: int) -> None:
        offset, code = ImplicitArgs.FIELDS[name]
        if offset + struct.calcsize(code) <= avail:
            struct.pack_into("<" + code, buf, implicit_offset + offset, value)

    grid, block = cfg.grid, cfg.block
    put("block_count_x", grid.x & _MASK32)
    put("block_count_y", grid.y & _MASK32)
    put("block_count_z", grid.z & _MASK32)
    put("group_size_x", block.x & _MASK16)
    put("group_size_y", block.y & _MASK16)
    put("group_size_z", block.z & _MASK16)
    put("grid_dims", grid_dims(grid, block) & _MASK16)

    pkt_offset = align_up(kd.kernarg_size, 64)
    packet = fill_dispatch_packet(
        grid,
        block,
        kd.private_segment_fixed_size,
        kd.group_segment_fixed_size,
    )
    buf[pkt_offset : pkt_offset + DispatchPacket.SIZE] = packet.to_bytes()


def scratch_alignment_unit(gfx_version: int) -> int:
    """COMPUTE_TMPRING_SIZE.WAVESIZE granularity in bytes."""
    return 256 if gfx_version >= GFX_VERSION_GFX11 else 1024


def max_wave_scratch(gfx_version: int) -> int:
    """Largest per-wave scratch size before WAVESIZE overflows."""
    if gfx_version >= GFX_VERSION_GFX12:
        return ((1 << 18) - 1) * 256
    if gfx_version >= GFX_VERSION_GFX11:
        return ((1 << 15) - 1) * 256
    return ((1 << 13) - 1) * 1024