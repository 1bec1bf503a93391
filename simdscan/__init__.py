"""Classify SIMD instructions in x86-64 disassembly by ISA extension."""

__version__ = "0.1.2"

from .isa import ISA_TABLE, ISA_TAGS, ClassifierTableError, classify_mnemonic, normalize_mnemonic
from .scanner import Aggregate, scan, scan_parallel, scan_sharded

__all__ = [
    "ISA_TABLE",
    "ISA_TAGS",
    "ClassifierTableError",
    "classify_mnemonic",
    "normalize_mnemonic",
    "Aggregate",
    "scan",
    "scan_sharded",
    "scan_parallel",
]
