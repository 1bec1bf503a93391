"""
isa.py – map x86 instruction mnemonics to the SIMD ISA extension they belong to.

The table is an immutable ``{mnemonic: ISA}`` mapping built once at import.
Anything the table does not list is tried against a short ordered list of
``(predicate, ISA)`` rules (VEX forms of legacy SSE, FMA, AVX-512 families).
"""

from __future__ import annotations
import re
from types import MappingProxyType
from typing import Callable, Iterable, Mapping

# Canonical output order.
ISA_TAGS: tuple[str, ...] = ("SSE", "SSE2", "SSE3", "SSSE3", "SSE4", "AVX", "AVX-512")

# Tags whose mnemonics gain a VEX form by prefixing "v".
LEGACY_TAGS = frozenset(ISA_TAGS[:5])


class ClassifierTableError(ValueError):
    """Raised when the static table lists one mnemonic under two ISAs."""


# ─────────────────────────  Instruction tables  ────────────────────────────────
# Lower-case mnemonics.  A mnemonic may appear under exactly one ISA:
#   pextrw           → SSE   (its MMX-register form predates the SSE4.1 one)
#   MMX-era integer  → SSE2  (SSE2 widened them to XMM; MMX is not tracked)
#   movsd / cmpsd    → SSE2  (AT&T spells the string forms movsl / cmpsl)
#   movd / movq      → not listed, AT&T movq is also the 64-bit GPR move

_SSE = (
    # packed / scalar single precision
    "addps", "addss", "subps", "subss", "mulps", "mulss", "divps", "divss",
    "maxps", "maxss", "minps", "minss", "sqrtps", "sqrtss",
    "rcpps", "rcpss", "rsqrtps", "rsqrtss",
    "andps", "andnps", "orps", "xorps",
    "cmpps", "cmpss", "comiss", "ucomiss",
    "shufps", "unpckhps", "unpcklps",
    # conversions
    "cvtpi2ps", "cvtps2pi", "cvtsi2ss", "cvtss2si", "cvttps2pi", "cvttss2si",
    # data movement
    "movaps", "movups", "movss", "movhps", "movlps", "movhlps", "movlhps",
    "movmskps", "movntps", "movntq", "maskmovq",
    "ldmxcsr", "stmxcsr",
    # cache control
    "sfence", "prefetchnta", "prefetcht0", "prefetcht1", "prefetcht2",
    # integer extensions on MMX registers
    "pavgb", "pavgw", "pextrw", "pinsrw", "pmaxsw", "pmaxub", "pminsw",
    "pminub", "pmovmskb", "pmulhuw", "psadbw", "pshufw",
)

_SSE2 = (
    # packed / scalar double precision
    "addpd", "addsd", "subpd", "subsd", "mulpd", "mulsd", "divpd", "divsd",
    "maxpd", "maxsd", "minpd", "minsd", "sqrtpd", "sqrtsd",
    "andpd", "andnpd", "orpd", "xorpd",
    "cmppd", "cmpsd", "comisd", "ucomisd",
    "shufpd", "unpckhpd", "unpcklpd",
    # conversions
    "cvtdq2pd", "cvtdq2ps", "cvtpd2dq", "cvtpd2pi", "cvtpd2ps", "cvtpi2pd",
    "cvtps2dq", "cvtps2pd", "cvtsd2si", "cvtsd2ss", "cvtsi2sd", "cvtss2sd",
    "cvttpd2dq", "cvttpd2pi", "cvttps2dq", "cvttsd2si",
    # data movement
    "movapd", "movupd", "movsd", "movhpd", "movlpd", "movmskpd",
    "movdqa", "movdqu", "movdq2q", "movq2dq",
    "movntpd", "movntdq", "movnti", "maskmovdqu",
    # cache control
    "lfence", "mfence", "clflush", "pause",
    # 128-bit integer
    "paddb", "paddw", "paddd", "paddq", "paddsb", "paddsw", "paddusb", "paddusw",
    "psubb", "psubw", "psubd", "psubq", "psubsb", "psubsw", "psubusb", "psubusw",
    "pmullw", "pmulhw", "pmuludq", "pmaddwd",
    "pand", "pandn", "por", "pxor",
    "pcmpeqb", "pcmpeqw", "pcmpeqd", "pcmpgtb", "pcmpgtw", "pcmpgtd",
    "packsswb", "packssdw", "packuswb",
    "punpckhbw", "punpckhwd", "punpckhdq", "punpckhqdq",
    "punpcklbw", "punpcklwd", "punpckldq", "punpcklqdq",
    "psllw", "pslld", "psllq", "pslldq",
    "psrlw", "psrld", "psrlq", "psrldq", "psraw", "psrad",
    "pshufd", "pshufhw", "pshuflw",
)

_SSE3 = (
    "addsubpd", "addsubps", "haddpd", "haddps", "hsubpd", "hsubps",
    "movddup", "movshdup", "movsldup", "lddqu", "fisttp",
)

_SSSE3 = (
    "pabsb", "pabsw", "pabsd", "psignb", "psignw", "psignd",
    "phaddw", "phaddd", "phaddsw", "phsubw", "phsubd", "phsubsw",
    "pmaddubsw", "pmulhrsw", "pshufb", "palignr",
)

_SSE4 = (
    # SSE4.1
    "blendps", "blendpd", "blendvps", "blendvpd", "pblendvb", "pblendw",
    "dpps", "dppd", "mpsadbw", "phminposuw",
    "pmulld", "pmuldq", "packusdw", "pcmpeqq", "ptest",
    "pminsb", "pmaxsb", "pminuw", "pmaxuw", "pminud", "pmaxud", "pminsd", "pmaxsd",
    "roundps", "roundpd", "roundss", "roundsd",
    "insertps", "extractps", "pinsrb", "pinsrd", "pinsrq",
    "pextrb", "pextrd", "pextrq",
    "pmovsxbw", "pmovsxbd", "pmovsxbq", "pmovsxwd", "pmovsxwq", "pmovsxdq",
    "pmovzxbw", "pmovzxbd", "pmovzxbq", "pmovzxwd", "pmovzxwq", "pmovzxdq",
    "movntdqa",
    # SSE4.2
    "pcmpgtq", "pcmpestri", "pcmpestrm", "pcmpistri", "pcmpistrm",
    "crc32", "popcnt",
    # SSE4a
    "extrq", "insertq", "movntsd", "movntss", "lzcnt",
)

# AVX / AVX2 / F16C mnemonics with no legacy SSE spelling.  VEX forms of the
# legacy tables above ("vaddps", "vpshufb", …) are classified by rule.
_AVX = (
    "vmovd", "vmovq", "vzeroupper", "vzeroall",
    "vbroadcastss", "vbroadcastsd", "vbroadcastf128", "vbroadcasti128",
    "vpbroadcastb", "vpbroadcastw", "vpbroadcastd", "vpbroadcastq",
    "vinsertf128", "vextractf128", "vinserti128", "vextracti128",
    "vperm2f128", "vperm2i128", "vpermilps", "vpermilpd",
    "vpermd", "vpermq", "vpermps", "vpermpd", "vpblendd",
    "vmaskmovps", "vmaskmovpd", "vpmaskmovd", "vpmaskmovq",
    "vtestps", "vtestpd",
    "vpsllvd", "vpsllvq", "vpsrlvd", "vpsrlvq", "vpsravd",
    "vgatherdps", "vgatherdpd", "vgatherqps", "vgatherqpd",
    "vpgatherdd", "vpgatherdq", "vpgatherqd", "vpgatherqq",
    "vcvtph2ps", "vcvtps2ph",
)

_AVX512 = (
    "kunpckbw", "kunpckwd", "kunpckdq",
    "valignd", "valignq", "vpermb", "vpermw",
    "vpabsq", "vpmullq", "vpsraq", "vpsravq", "vpsravw", "vpsllvw", "vpsrlvw",
    "vpmaxsq", "vpmaxuq", "vpminsq", "vpminuq",
    "vpandd", "vpandq", "vpandnd", "vpandnq", "vpord", "vporq", "vpxord", "vpxorq",
    "vpcmpb", "vpcmpub", "vpcmpw", "vpcmpuw", "vpcmpd", "vpcmpud", "vpcmpq", "vpcmpuq",
    "vpbroadcastmb2q", "vpbroadcastmw2d",
    "vdbpsadbw", "vpmultishiftqb", "vpmadd52luq", "vpmadd52huq",
    "vpdpbusd", "vpdpbusds", "vpdpwssd", "vpdpwssds", "vpshufbitqmb",
    "vcvtne2ps2bf16", "vcvtneps2bf16", "vdpbf16ps", "vp2intersectd", "vp2intersectq",
) + tuple(
    f"k{op}{width}"
    for op in ("add", "and", "andn", "mov", "not", "or", "ortest",
               "shiftl", "shiftr", "test", "xnor", "xor")
    for width in "bwdq"
)

_GROUPS: tuple[tuple[str, Iterable[str]], ...] = (
    ("SSE", _SSE),
    ("SSE2", _SSE2),
    ("SSE3", _SSE3),
    ("SSSE3", _SSSE3),
    ("SSE4", _SSE4),
    ("AVX", _AVX),
    ("AVX-512", _AVX512),
)


def build_table(groups: Iterable[tuple[str, Iterable[str]]]) -> Mapping[str, str]:
    """Flatten ``(ISA, mnemonics)`` groups into a read-only mnemonic → ISA map."""
    table: dict[str, str] = {}
    for isa, mnemonics in groups:
        if isa not in ISA_TAGS:
            raise ClassifierTableError(f"unknown ISA tag {isa!r}")
        for mnem in mnemonics:
            mnem = mnem.lower()
            prev = table.setdefault(mnem, isa)
            if prev != isa:
                raise ClassifierTableError(
                    f"{mnem!r} is listed under both {prev} and {isa}"
                )
    return MappingProxyType(table)


ISA_TABLE: Mapping[str, str] = build_table(_GROUPS)


# ─────────────────────────────  Fallback rules  ────────────────────────────────
def _is_vex_legacy(mnem: str) -> bool:
    # VEX prefix always implies AVX, whatever the legacy extension was
    return mnem.startswith("v") and ISA_TABLE.get(mnem[1:]) in LEGACY_TAGS


# FMA3 (vfmadd231ps) and FMA4 (vfmaddps)
_FMA_RE = re.compile(
    r"vf(?:n?madd|n?msub|maddsub|msubadd)(?:132|213|231)?(?:ps|pd|ss|sd)"
)

_AVX512_RE = re.compile(
    "|".join(
        (
            r"vp?(?:compress|expand)(?:ps|pd|[bwdq])",
            r"v(?:getexp|getmant|scalef|rndscale|range|reduce|fixupimm|fpclass"
            r"|rcp14|rsqrt14|rcp28|rsqrt28|exp2)(?:ps|pd|ss|sd)",
            r"vperm[it]2(?:ps|pd|[bwdq])",
            r"vpmov(?:s|us)?(?:qb|qw|qd|db|dw|wb)",
            r"vpmov(?:m2[bwdq]|[bwdq]2m)",
            r"v(?:broadcast|extract|insert|shuf)[fi](?:32x[248]|64x[24])",
            r"vmovdq[au](?:8|16|32|64)",
            r"vp?blendm(?:ps|pd|[bwdq])",
            r"vp(?:ternlog|conflict|lzcnt|rolv?|rorv?)[dq]",
            r"vp(?:shld|shrd)v?[wdq]",
            r"vpopcnt[bwdq]",
            r"vptestn?m[bwdq]",
            r"vp?scatter[dq](?:ps|pd|d|q)",
            r"vcvtt?(?:ps|pd|ss|sd)2u(?:dq|qq|si)",
            r"vcvtt?(?:ps|pd)2qq",
            r"vcvtu(?:dq|qq|si)2(?:ps|pd|ss|sd)",
            r"vcvtqq2(?:ps|pd)",
        )
    )
)

Rule = tuple[Callable[[str], object], str]

# Evaluated in order, only after an exact table lookup misses.
RULES: tuple[Rule, ...] = (
    (_is_vex_legacy, "AVX"),
    (_FMA_RE.fullmatch, "AVX"),
    (_AVX512_RE.fullmatch, "AVX-512"),
)


def classify_mnemonic(mnem: str) -> str | None:
    """Return the ISA extension for *mnem*, or None if it is not SIMD."""
    mnem = mnem.lower()
    isa = ISA_TABLE.get(mnem)
    if isa is not None:
        return isa
    for matches, rule_isa in RULES:
        if matches(mnem):
            return rule_isa
    return None


# ───────────────────────────────  Normalizing  ─────────────────────────────────
_CMP_PREDICATES = (
    "eq|lt|le|unord|neq|nlt|nle|ord|eq_uq|nge|ngt|false|neq_oq|ge|gt|true"
    "|eq_os|lt_oq|le_oq|unord_s|neq_us|nlt_uq|nle_uq|ord_s|eq_us|nge_uq"
    "|ngt_uq|false_os|neq_os|ge_oq|gt_oq|true_us"
)
# cmpltps → cmpps, vcmpnge_uqpd → vcmppd
_CMP_PSEUDO_RE = re.compile(rf"(v?)cmp(?:{_CMP_PREDICATES})(ps|pd|ss|sd)")
# vpcmpnltud → vpcmpud
_VPCMP_PSEUDO_RE = re.compile(r"vpcmp(?:eq|lt|le|false|neq|nlt|nle|true)(u?[bwdq])")

# AT&T operand-size suffixes: cvtsi2sdl, crc32b, vcvtpd2psx
_SIZE_SUFFIXES = "bwlqxy"
# x87 memory sizes: fisttps, fisttpll
_X87_SUFFIXES = ("s", "ll")


def normalize_mnemonic(token: str) -> str:
    """
    Lower-case *token* and, if it does not classify as written, fold
    comparison-predicate pseudo-ops and AT&T size suffixes into the base
    mnemonic.  Tokens that stay unknown are returned lower-cased.
    """
    mnem = token.lower()
    if classify_mnemonic(mnem) is not None:
        return mnem

    m = _CMP_PSEUDO_RE.fullmatch(mnem)
    if m:
        return f"{m.group(1)}cmp{m.group(2)}"
    m = _VPCMP_PSEUDO_RE.fullmatch(mnem)
    if m:
        return f"vpcmp{m.group(1)}"

    if len(mnem) > 2:
        stems = [mnem[:-1]] if mnem[-1] in _SIZE_SUFFIXES else []
        if mnem.startswith("f"):
            stems += [mnem[: -len(sfx)] for sfx in _X87_SUFFIXES if mnem.endswith(sfx)]
        for stem in stems:
            if classify_mnemonic(stem) is not None:
                return stem
    return mnem
