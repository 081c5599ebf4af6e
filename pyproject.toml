[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hydrakit"
version = "0.1.0"
description = "Simulated pieces of a small x86_64 kernel: printf formatting, descriptor tables, I/O ports, interrupts, PCI, devices, partitions, paging and a tiny shell"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "kernel",
    "x86_64",
    "printf",
    "gdt",
    "idt",
    "pci",
    "partitions",
    "paging",
    "emulation",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Operating System Kernels",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["hydrakit"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
