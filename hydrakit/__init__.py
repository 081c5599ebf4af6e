"""Simulated building blocks of a small x86_64 kernel: formatting, descriptor tables,
ports, interrupts, PCI, devices, partitions, paging and a shell."""

__version__ = "0.1.0"