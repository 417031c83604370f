# kfdtopo

Read the AMD KFD GPU topology that Linux exports through sysfs, and work with
the data layouts and sizing rules of the AMDHSA compute ABI. Pure Python, no
dependencies.

## Modules

- `kfdtopo.topology` — `Topology.create(root)` snapshots every GPU node under
  the KFD sysfs topology directory (by default
  `/sys/devices/virtual/kfd/kfd/topology`, also available as
  `SYSFS_TOPOLOGY`). The result has `nodes` (a list of `NodeInfo`) and
  `generation`. CPU-only nodes (`gpu_id` 0) are left out. The `generation_id`
  file is read before and after the scan; if it changed, the scan is retried,
  and after three unsettled attempts a `KfdError` with code `EAGAIN` is
  raised. When a node reports no `cwsr_size` or `ctl_stack_size`, both are
  filled in by `compute_cwsr_sizes(props)`, which returns
  `(cwsr_size, ctl_stack_size)` using `vgpr_size_per_cu(gfx_version)`.
  The lower-level pieces are public too: `read_sysfs_uint(path)`,
  `count_nodes(root)`, `read_node(root, index)`, and the text parsers
  `parse_properties(text, gpu_id)`, `parse_memory_bank(text)`,
  `parse_cache(text)` and `parse_io_link(text)`. Caches that repeat the same
  level, size and type are kept only once. Unknown keys and lines without a
  leading number are ignored; values are truncated to 32 bits except
  `local_mem_size`, `unique_id`, `hive_id` and `size_in_bytes`.
- `kfdtopo.nodes` — dataclasses `NodeProperties`, `MemoryBank`, `CacheInfo`,
  `IoLink` and `NodeInfo`, with the capability, flag and debug bit constants.
  `NodeProperties.watchpoint_count()`, `doorbell_type()` and
  `asic_revision()` decode fields of `capability`.
- `kfdtopo.abi` — `KernelDescriptor` (64 bytes), `ImplicitArgs` (256 bytes),
  `CwsrHeader` (40 bytes) and `DispatchPacket` (64 bytes), each with
  little-endian `from_bytes` / `to_bytes`; a short buffer raises `KfdError`
  with `EINVAL`. Also `Dim3`, `DispatchConfig`, `fill_dispatch_packet(grid,
  block, private_size, group_size)`, `grid_dims`, `gfx_version_major` /
  `minor` / `step`, `needs_cwsr_priv_wa`, and the `GFX_VERSION_*`,
  `COMPUTE_PGM_RSRC*` and kernel-code-property constants.
- `kfdtopo.occupancy` — `blocks_per_cu(props, gfx_version, kd, block,
  dynamic_lds)` (limited by VGPRs, SGPRs before GFX10, wave slots, WGP mode
  and LDS), `occupancy(props, gfx_version, kd, cfg)` (returns `0xFFFFFFFF`
  when blocks exist but none fits), `kernarg_alloc_size(kd_kernarg_size)`,
  `fill_implicit_args(buf, explicit_size, kd, cfg)` (writes only the implicit
  fields that fit within the descriptor's `kernarg_size`, then the dispatch
  packet at the next 64-byte boundary), `scratch_alignment_unit` and
  `max_wave_scratch`.
- `kfdtopo.elf` — ELF64 and AMDGPU constants, the `AMDGPU_MACHS` table with
  `get_name(mach)`, `get_gfx_version(mach)`, `get_mach(gfx_version)` and
  `format_gfx_version(version)`; `hash_gnu(name)`; `symbol_binding`,
  `symbol_type`, `rela_type`, `rela_symbol`; and `GnuHashTable.from_bytes`
  for reading a `.gnu.hash` section.
- `kfdtopo.condition` — `Condition` (`LT`, `LTE`, `EQ`, `NE`, `GTE`, `GT`,
  numbered as in SDMA and PM4 wait packets) with
  `evaluate(value, reference)`.
- `kfdtopo.textparse` — `KfdError` (with `code` and `message`),
  `page_size`, `align_up`, `lo`, `hi`, `split`, `consume_front`,
  `consume_line` and `consume_integer` (unsigned 64-bit; `EINVAL` without a
  leading digit, `ERANGE` on overflow).

## Example

```python
from kfdtopo.topology import Topology
from kfdtopo.elf import format_gfx_version

topo = Topology.create()
print("generation", topo.generation)
for node in topo.nodes:
    props = node.props
    print(props.gpu_id, format_gfx_version(props.gfx_target_version),
          props.cwsr_size, props.ctl_stack_size, len(node.caches))
```

Point `root` at a copy of the sysfs tree to inspect a saved topology:

```python
topo = Topology.create("/tmp/saved-topology")
```

Occupancy of a kernel from its descriptor bytes:

```python
from kfdtopo.abi import Dim3, DispatchConfig, KernelDescriptor
from kfdtopo.occupancy import occupancy

kd = KernelDescriptor.from_bytes(descriptor_bytes)
cfg = DispatchConfig(grid=Dim3(x=64), block=Dim3(x=256))
cus = occupancy(node.props, node.props.gfx_target_version, kd, cfg)
```

## What it does not do

The package only reads topology files and computes layouts and sizes. It does
not open `/dev/kfd`, create queues, allocate GPU memory, wait on signals,
dispatch kernels or load code objects, and `kfdtopo.elf` offers constants,
the machine table and hash helpers rather than a full ELF reader. There is no
command-line tool.

## Tests

```
pip install -e .[test]
pytest
```