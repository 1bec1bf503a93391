"""
scanner.py – fold objdump-style disassembly lines into per-ISA statistics.
"""

from __future__ import annotations
import re
from collections import Counter, defaultdict
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from functools import reduce
from typing import Iterable, Sequence

from .isa import ISA_TAGS, classify_mnemonic, normalize_mnemonic

# We detect an instruction line by:
#   (optional whitespace)(hex addr): [hex byte pairs] prefixes* mnemonic operands
INSN_RE = re.compile(
    r"""^\s*
        [0-9a-fA-F]+:           # address
        \s+
        (?:[0-9a-fA-F]{2}\s)*   # raw bytes, absent with --no-show-raw-insn
        \s*
        (?![0-9a-fA-F]{2}(?:\s|$))
        (?P<insn>\S.*)$         # prefixes, mnemonic, operands
    """,
    re.VERBOSE,
)

# Tokens that may precede the mnemonic on the same line
PREFIXES = frozenset(
    {
        "lock", "rep", "repe", "repz", "repne", "repnz",
        "data16", "data32", "addr16", "addr32",
        "notrack", "bnd", "xacquire", "xrelease",
        "cs", "ds", "es", "fs", "gs", "ss",
    }
)


def parse_mnemonic(line: str) -> str | None:
    """Return the raw mnemonic token of an instruction line, else None."""
    m = INSN_RE.match(line)
    if not m:
        return None
    for tok in m.group("insn").split():
        low = tok.lower()
        # {vex}, {evex}, rex.W …
        if low in PREFIXES or low.startswith(("{", "rex")):
            continue
        # .byte / .word directives and "(bad)"
        if not low[0].isalpha():
            return None
        return tok
    return None


@dataclass
class Aggregate:
    """Per-scan statistics; counts only ever grow."""

    detail: bool = False
    isa_counts: Counter = field(default_factory=Counter)
    inst_detail: dict[str, Counter] = field(default_factory=lambda: defaultdict(Counter))
    total_insts: int = 0

    def add(self, line: str) -> None:
        tok = parse_mnemonic(line)
        if tok is None:
            return
        self.total_insts += 1
        mnem = normalize_mnemonic(tok)
        isa = classify_mnemonic(mnem)
        if isa is None:
            return
        self.isa_counts[isa] += 1
        if self.detail:
            self.inst_detail[isa][mnem] += 1

    def merge(self, other: Aggregate) -> Aggregate:
        """Add *other*'s counts into this aggregate and return it."""
        self.isa_counts.update(other.isa_counts)
        for isa, counts in other.inst_detail.items():
            self.inst_detail[isa].update(counts)
        self.total_insts += other.total_insts
        return self

    @property
    def total_simd_insts(self) -> int:
        return sum(self.isa_counts.values())

    @property
    def has_simd(self) -> bool:
        return self.total_simd_insts > 0

    @property
    def isa_summary(self) -> dict[str, int]:
        return {isa: self.isa_counts[isa] for isa in ISA_TAGS if self.isa_counts[isa] > 0}

    @property
    def isa_details(self) -> dict[str, dict] | None:
        if not self.detail:
            return None
        details = {}
        for isa in ISA_TAGS:
            counts = self.inst_detail.get(isa)
            if not counts:
                continue
            ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
            details[isa] = {
                "unique_mnemonics": len(counts),
                "occurrences": dict(ranked),
            }
        return details


def scan(lines: Iterable[str], detail: bool = False) -> Aggregate:
    """Classify every instruction line in *lines* in a single pass."""
    agg = Aggregate(detail=detail)
    for ln in lines:
        agg.add(ln)
    return agg


def _shards(lines: Sequence[str], count: int) -> list[Sequence[str]]:
    size = max(1, -(-len(lines) // max(1, count)))
    return [lines[i : i + size] for i in range(0, len(lines), size)]


def _scan_shard(args: tuple[Sequence[str], bool]) -> Aggregate:
    shard, detail = args
    return scan(shard, detail)


def scan_sharded(lines: Sequence[str], shards: int, detail: bool = False) -> Aggregate:
    """Scan contiguous shards independently and merge the partial results."""
    parts = [scan(shard, detail) for shard in _shards(lines, shards)]
    return reduce(Aggregate.merge, parts, Aggregate(detail=detail))


def scan_parallel(lines: Sequence[str], jobs: int, detail: bool = False) -> Aggregate:
    """Like scan_sharded, with each shard scanned in a worker process."""
    if jobs <= 1 or len(lines) < 2:
        return scan(lines, detail)
    with ProcessPoolExecutor(max_workers=jobs) as pool:
        parts = pool.map(_scan_shard, [(s, detail) for s in _shards(lines, jobs)])
        return reduce(Aggregate.merge, parts, Aggregate(detail=detail))
