[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kfdtopo"
version = "0.1.0"
description = "KFD sysfs topology discovery, AMDGPU machine tables and HSA compute ABI layouts"
requires-python = ">=3.10"
dependencies = []
keywords = ["amdgpu", "kfd", "hsa", "topology", "sysfs", "elf", "gpu", "occupancy"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Hardware",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["kfdtopo"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
