"""Core pieces for managing external disks: uevent parsing, storage daemon requests, a block info cache and a voldata mount path store."""

__version__ = "0.1.0"