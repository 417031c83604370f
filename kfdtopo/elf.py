"""ELF64 little-endian constants and AMDGPU machine helpers."""

from __future__ import annotations

import errno
import struct
from dataclasses import dataclass, field

from kfdtopo.textparse import KfdError

# e_ident indices and values.
EI_MAG0 = 0
EI_MAG1 = 1
EI_MAG2 = 2
EI_MAG3 = 3
EI_CLASS = 4
EI_DATA = 5
EI_VERSION = 6
EI_OSABI = 7
EI_ABIVERSION = 8
EI_NIDENT = 16

ELFMAG = b"\x7fELF"
ELFCLASS64 = 2
ELFDATA2LSB = 1
EV_CURRENT = 1

# Object file types.
ET_NONE = 0
ET_REL = 1
ET_EXEC = 2
ET_DYN = 3
ET_CORE = 4

# Machine types.
EM_NONE = 0
EM_AMDGPU = 224

# Section header types.
SHT_NULL = 0
SHT_PROGBITS = 1
SHT_SYMTAB = 2
SHT_STRTAB = 3
SHT_RELA = 4
SHT_HASH = 5
SHT_DYNAMIC = 6
SHT_NOTE = 7
SHT_NOBITS = 8
SHT_REL = 9
SHT_DYNSYM = 11
SHT_GNU_HASH = 0x6FFFFFF6

# Section header flags.
SHF_WRITE = 0x1
SHF_ALLOC = 0x2
SHF_EXECINSTR = 0x4

# Special section indices.
SHN_UNDEF = 0
SHN_ABS = 0xFFF1
SHN_AMDGPU_LDS = 0xFF00

# Symbol table.
STN_UNDEF = 0
STB_LOCAL = 0
STB_GLOBAL = 1
STB_WEAK = 2
STT_NOTYPE = 0
STT_OBJECT = 1
STT_FUNC = 2
STT_SECTION = 3

# Program header types.
PT_NULL = 0
PT_LOAD = 1
PT_DYNAMIC = 2
PT_INTERP = 3
PT_NOTE = 4
PT_PHDR = 6
PT_TLS = 7
PT_GNU_RELRO = 0x6474E552

# Dynamic section tags.
DT_NULL = 0
DT_RELA = 7
DT_RELASZ = 8
DT_RELAENT = 9

# AMDGPU relocation types.
R_AMDGPU_NONE = 0
R_AMDGPU_RELATIVE64 = 13

# Program header flags.
PF_X = 1
PF_W = 2
PF_R = 4

# AMDGPU OS/ABI identification.
ELFOSABI_AMDGPU_HSA = 64
ELFOSABI_AMDGPU_PAL = 65
ELFOSABI_AMDGPU_MESA3D = 66

ELFABIVERSION_AMDGPU_HSA_V2 = 0
ELFABIVERSION_AMDGPU_HSA_V3 = 1
ELFABIVERSION_AMDGPU_HSA_V4 = 2
ELFABIVERSION_AMDGPU_HSA_V5 = 3
ELFABIVERSION_AMDGPU_HSA_V6 = 4

# e_flags machine selection and feature bits.
EF_AMDGPU_MACH = 0x0FF
EF_AMDGPU_MACH_NONE = 0x000

EF_AMDGPU_FEATURE_XNACK_V2 = 0x01
EF_AMDGPU_FEATURE_TRAP_HANDLER_V2 = 0x02
EF_AMDGPU_FEATURE_XNACK_V3 = 0x100
EF_AMDGPU_FEATURE_SRAMECC_V3 = 0x200
EF_AMDGPU_FEATURE_XNACK_V4 = 0x300
EF_AMDGPU_FEATURE_XNACK_UNSUPPORTED_V4 = 0x000
EF_AMDGPU_FEATURE_XNACK_ANY_V4 = 0x100
EF_AMDGPU_FEATURE_XNACK_OFF_V4 = 0x200
EF_AMDGPU_FEATURE_XNACK_ON_V4 = 0x300
EF_AMDGPU_FEATURE_SRAMECC_V4 = 0xC00
EF_AMDGPU_FEATURE_SRAMECC_UNSUPPORTED_V4 = 0x000
EF_AMDGPU_FEATURE_SRAMECC_ANY_V4 = 0x400
EF_AMDGPU_FEATURE_SRAMECC_OFF_V4 = 0x800
EF_AMDGPU_FEATURE_SRAMECC_ON_V4 = 0xC00
EF_AMDGPU_GENERIC_VERSION = 0xFF000000
EF_AMDGPU_GENERIC_VERSION_OFFSET = 24
EF_AMDGPU_GENERIC_VERSION_MIN = 1
EF_AMDGPU_GENERIC_VERSION_MAX = 0xFF

# Note types.
NT_AMD_HSA_CODE_OBJECT_VERSION = 1
NT_AMD_HSA_HSAIL = 2
NT_AMD_HSA_ISA_VERSION = 3
NT_AMD_HSA_METADATA = 10
NT_AMD_HSA_ISA_NAME = 11
NT_AMD_PAL_METADATA = 12
NT_AMDGPU_METADATA = 32

# (mach, name, gfx_target_version); generic targets carry version 0.
AMDGPU_MACHS: tuple[tuple[int, str, int], ...] = (
    (0x20, "gfx600", 60000),
    (0x21, "gfx601", 60001),
    (0x22, "gfx700", 70000),
    (0x23, "gfx701", 70001),
    (0x24, "gfx702", 70002),
    (0x25, "gfx703", 70003),
    (0x26, "gfx704", 70004),
    (0x28, "gfx801", 80001),
    (0x29, "gfx802", 80002),
    (0x2A, "gfx803", 80003),
    (0x2B, "gfx810", 80100),
    (0x2C, "gfx900", 90000),
    (0x2D, "gfx902", 90002),
    (0x2E, "gfx904", 90004),
    (0x2F, "gfx906", 90006),
    (0x30, "gfx908", 90008),
    (0x31, "gfx909", 90009),
    (0x32, "gfx90c", 90012),
    (0x33, "gfx1010", 100100),
    (0x34, "gfx1011", 100101),
    (0x35, "gfx1012", 100102),
    (0x36, "gfx1030", 100300),
    (0x37, "gfx1031", 100301),
    (0x38, "gfx1032", 100302),
    (0x39, "gfx1033", 100303),
    (0x3A, "gfx602", 60002),
    (0x3B, "gfx705", 70005),
    (0x3C, "gfx805", 80005),
    (0x3D, "gfx1035", 100305),
    (0x3E, "gfx1034", 100304),
    (0x3F, "gfx90a", 90010),
    (0x41, "gfx1100", 110000),
    (0x42, "gfx1013", 100103),
    (0x43, "gfx1150", 110500),
    (0x44, "gfx1103", 110003),
    (0x45, "gfx1036", 100306),
    (0x46, "gfx1101", 110001),
    (0x47, "gfx1102", 110002),
    (0x48, "gfx1200", 120000),
    (0x49, "gfx1250", 120500),
    (0x4A, "gfx1151", 110501),
    (0x4C, "gfx942", 90402),
    (0x4E, "gfx1201", 120001),
    (0x4F, "gfx950", 90500),
    (0x50, "gfx1310", 130100),
    (0x51, "gfx9-generic", 0),
    (0x52, "gfx10-1-generic", 0),
    (0x53, "gfx10-3-generic", 0),
    (0x54, "gfx11-generic", 0),
    (0x55, "gfx1152", 110502),
    (0x58, "gfx1153", 110503),
    (0x59, "gfx12-generic", 0),
    (0x5A, "gfx1251", 120501),
    (0x5B, "gfx12-5-generic", 0),
    (0x5C, "gfx1172", 110702),
    (0x5D, "gfx1170", 110700),
    (0x5E, "gfx1171", 110701),
    (0x5F, "gfx9-4-generic", 0),
)

EF_AMDGPU_MACH_AMDGCN_FIRST = 0x20
EF_AMDGPU_MACH_AMDGCN_LAST = 0x5F

_NAME_BY_MACH = {mach: name for mach, name, _ in AMDGPU_MACHS}
_VERSION_BY_MACH = {mach: version for mach, _, version in AMDGPU_MACHS}
_MACH_BY_VERSION = {version: mach for mach, _, version in AMDGPU_MACHS if version}

_MASK32 = 0xFFFFFFFF


def hash_gnu(name: str | bytes) -> int:
    """Return the 32-bit GNU symbol hash of ``name``."""
    data = name.encode() if isinstance(name, str) else name
    h = 5381
    for byte in data:
        h = (h * 33 + byte) & _MASK32
    return h


def symbol_binding(st_info: int) -> int:
    """Binding (STB_*) from a symbol's ``st_info`` byte."""
    return (st_info & 0xFF) >> 4


def symbol_type(st_info: int) -> int:
    """Type (STT_*) from a symbol's ``st_info`` byte."""
    return st_info & 0xF


def rela_type(r_info: int) -> int:
    """Relocation type from a RELA ``r_info`` field."""
    return r_info & _MASK32


def rela_symbol(r_info: int) -> int:
    """Symbol index from a RELA ``r_info`` field."""
    return (r_info >> 32) & _MASK32


def get_name(mach: int) -> str:
    """Canonical name of an EF_AMDGPU_MACH value, or "" if unknown."""
    return _NAME_BY_MACH.get(mach, "")


def get_gfx_version(mach: int) -> int:
    """Packed gfx_target_version of a mach; 0 for generic or unknown."""
    return _VERSION_BY_MACH.get(mach, 0)


def get_mach(gfx_version: int) -> int:
    """EF_AMDGPU_MACH value for a gfx_target_version, or EF_AMDGPU_MACH_NONE."""
    if not gfx_version:
        return EF_AMDGPU_MACH_NONE
    return _MACH_BY_VERSION.get(gfx_version, EF_AMDGPU_MACH_NONE)


def format_gfx_version(version: int) -> str:
    """Format a gfx_target_version as a target name such as "gfx90a"."""
    major = (version // 10000) % 100
    minor = (version // 100) % 100
    step = version % 100
    return f"gfx{major}{minor:x}{step:x}"


_GNU_HASH_HEADER = struct.Struct("<4I")


@dataclass
class GnuHashTable:
    """Parsed layout of a ``.gnu.hash`` section."""

    nbuckets: int
    symndx: int
    maskwords: int
    shift2: int
    filter: list[int] = field(default_factory=list)
    buckets: list[int] = field(default_factory=list)
    values: list[int] = field(default_factory=list)

    @classmethod
    def from_bytes(cls, data: bytes) -> GnuHashTable:
        """Parse a GNU hash table; raises ``KfdError`` if it is truncated."""
        view = memoryview(data)
        if len(view) < _GNU_HASH_HEADER.size:
            raise KfdError(errno.EINVAL, "GNU hash table header truncated")
        nbuckets, symndx, maskwords, shift2 = _GNU_HASH_HEADER.unpack_from(view)
        offset = _GNU_HASH_HEADER.size
        fixed = offset + maskwords * 8 + nbuckets * 4
        if len(view) < fixed:
            raise KfdError(errno.EINVAL, "GNU hash table truncated")
        bloom = list(struct.unpack_from(f"<{maskwords}Q", view, offset))
        offset += maskwords * 8
        buckets = list(struct.unpack_from(f"<{nbuckets}I", view, offset))
        offset += nbuckets * 4
        count = (len(view) - offset) // 4
        values = list(struct.unpack_from(f"<{count}I", view, offset))
        return cls(nbuckets, symndx, maskwords, shift2, bloom, buckets, values)