"""
cli.py – command-line front end.

$ simdscan path/to/binary
$ simdscan -f yaml --show-insts path/to/binary        # extra detail
$ objdump -d a.out | simdscan --listing -             # pre-made listing

Requires: GNU objdump (binutils) unless --listing is used.
"""

from __future__ import annotations
import argparse, json, os, subprocess, sys
from pathlib import Path

from . import __version__
from .scanner import Aggregate, scan_parallel

DEFAULT_OBJDUMP = "objdump"


def disassemble(path: Path, objdump: str = DEFAULT_OBJDUMP) -> list[str]:
    """Return list of lines from objdump -d output (exits on error)."""
    try:
        out = subprocess.check_output(
            [objdump, "-d", "--no-show-raw-insn", str(path)],
            text=True,
            errors="replace",
            stderr=subprocess.STDOUT,
        )
    except FileNotFoundError:
        sys.exit(f"[error] {objdump} not found – install binutils or pass --objdump")
    except subprocess.CalledProcessError as e:
        sys.stderr.write(e.output or "")
        sys.exit(f"[error] objdump failed ({e.returncode})")
    return out.splitlines()


def read_listing(source: str) -> list[str]:
    """Return lines of an existing disassembly listing ("-" for stdin)."""
    if source == "-":
        return sys.stdin.read().splitlines()
    try:
        with open(source, encoding="utf-8", errors="replace") as f:
            return f.read().splitlines()
    except OSError as e:
        sys.exit(f"[error] cannot read {source}: {e.strerror}")


def build_report(binary: str, agg: Aggregate, top: int | None = None) -> dict:
    """Structured report in output field order."""
    report = {
        "binary": binary,
        "has_simd": agg.has_simd,
        "isa_summary": agg.isa_summary,
        "total_simd_insts": agg.total_simd_insts,
    }
    details = agg.isa_details
    if details is not None:
        if top is not None:
            for detail in details.values():
                occ = detail["occurrences"]
                detail["occurrences"] = dict(list(occ.items())[:top])
        report["isa_details"] = details
    return report


def emit(report: dict, fmt: str) -> str:
    if fmt == "yaml":
        try:
            import yaml
        except ModuleNotFoundError:
            sys.exit("[error] PyYAML not installed – choose JSON or install PyYAML")
        return yaml.dump(report, sort_keys=False, allow_unicode=True)
    return json.dumps(report, indent=2)


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer {text!r}")
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        prog="simdscan",
        description="Detect SIMD instructions and classify by ISA extension.",
    )
    ap.add_argument(
        "binary",
        help="ELF / Mach-O / PE (x86-64); with --listing, a disassembly text file or '-'",
    )
    ap.add_argument(
        "-f",
        "--format",
        choices=["json", "yaml"],
        default="json",
        help="output format (default json)",
    )
    ap.add_argument(
        "--show-insts",
        action="store_true",
        help="include per-ISA instruction breakdown",
    )
    ap.add_argument(
        "--top",
        type=_positive_int,
        metavar="N",
        help="with --show-insts, list only the N most frequent mnemonics per ISA "
        "(unique_mnemonics still counts them all)",
    )
    ap.add_argument(
        "--listing",
        action="store_true",
        help="treat BINARY as objdump -d output instead of running objdump",
    )
    ap.add_argument(
        "--objdump",
        default=os.environ.get("SIMDSCAN_OBJDUMP", DEFAULT_OBJDUMP),
        metavar="PATH",
        help="disassembler to run (default $SIMDSCAN_OBJDUMP or objdump)",
    )
    ap.add_argument(
        "-j",
        "--jobs",
        type=_positive_int,
        default=1,
        help="scan the listing in N worker processes (default 1)",
    )
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return ap.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    if args.listing:
        lines = read_listing(args.binary)
    else:
        binary = Path(args.binary)
        if not binary.exists():
            sys.exit(f"[error] {binary} not found")
        lines = disassemble(binary, args.objdump)

    agg = scan_parallel(lines, args.jobs, detail=args.show_insts)
    if agg.total_insts == 0:
        sys.stderr.write(f"[warn] no instructions found in {args.binary}\n")

    report = build_report(args.binary, agg, top=args.top)
    print(emit(report, args.format))


if __name__ == "__main__":
    main()
