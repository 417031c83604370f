"""KFD sysfs topology discovery, AMDGPU machine tables and compute ABI helpers."""

__version__ = "0.1.0"
__all__ = ["abi", "condition", "elf", "nodes", "occupancy", "textparse", "topology"]