# bindweave/abi.py
"""
Target ABI descriptions.

A ``TargetABI`` answers the questions the layout resolver and the emitter ask
about primitive types: how big, how aligned, signed or not, and which Rust
spelling matches.  Presets cover the handful of targets bindweave knows about;
``target_for(triple)`` looks one up by its triple.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Tuple

from .errors import ConfigError


class PrimitiveKind(Enum):
    """Builtin C/C++ scalar types."""

    VOID = "void"
    BOOL = "bool"
    CHAR = "char"
    SCHAR = "signed char"
    UCHAR = "unsigned char"
    WCHAR = "wchar_t"
    CHAR16 = "char16_t"
    CHAR32 = "char32_t"
    SHORT = "short"
    USHORT = "unsigned short"
    INT = "int"
    UINT = "unsigned int"
    LONG = "long"
    ULONG = "unsigned long"
    LONGLONG = "long long"
    ULONGLONG = "unsigned long long"
    INT128 = "__int128"
    UINT128 = "unsigned __int128"
    HALF = "_Float16"
    FLOAT = "float"
    DOUBLE = "double"
    LONGDOUBLE = "long double"
    NULLPTR = "std::nullptr_t"

    @property
    def is_integer(self) -> bool:
        return self not in _NON_INTEGER

    @property
    def is_float(self) -> bool:
        return self in (
            PrimitiveKind.HALF,
            PrimitiveKind.FLOAT,
            PrimitiveKind.DOUBLE,
            PrimitiveKind.LONGDOUBLE,
        )


_NON_INTEGER = frozenset({
    PrimitiveKind.VOID,
    PrimitiveKind.HALF,
    PrimitiveKind.FLOAT,
    PrimitiveKind.DOUBLE,
    PrimitiveKind.LONGDOUBLE,
    PrimitiveKind.NULLPTR,
})

_ALWAYS_SIGNED = frozenset({
    PrimitiveKind.SCHAR,
    PrimitiveKind.SHORT,
    PrimitiveKind.INT,
    PrimitiveKind.LONG,
    PrimitiveKind.LONGLONG,
    PrimitiveKind.INT128,
})

# Rust spellings that depend on the platform go through std::os::raw so the
# generated code stays portable between hosts sharing a data model.
_RAW_NAMES: Dict[PrimitiveKind, str] = {
    PrimitiveKind.CHAR: "::std::os::raw::c_char",
    PrimitiveKind.SCHAR: "::std::os::raw::c_schar",
    PrimitiveKind.UCHAR: "::std::os::raw::c_uchar",
    PrimitiveKind.SHORT: "::std::os::raw::c_short",
    PrimitiveKind.USHORT: "::std::os::raw::c_ushort",
    PrimitiveKind.INT: "::std::os::raw::c_int",
    PrimitiveKind.UINT: "::std::os::raw::c_uint",
    PrimitiveKind.LONG: "::std::os::raw::c_long",
    PrimitiveKind.ULONG: "::std::os::raw::c_ulong",
    PrimitiveKind.LONGLONG: "::std::os::raw::c_longlong",
    PrimitiveKind.ULONGLONG: "::std::os::raw::c_ulonglong",
    PrimitiveKind.FLOAT: "f32",
    PrimitiveKind.DOUBLE: "f64",
    PrimitiveKind.BOOL: "bool",
    PrimitiveKind.INT128: "i128",
    PrimitiveKind.UINT128: "u128",
    PrimitiveKind.CHAR16: "u16",
    PrimitiveKind.CHAR32: "u32",
    PrimitiveKind.HALF: "u16",
    PrimitiveKind.NULLPTR: "*const ::std::os::raw::c_void",
}


class BitfieldFlavor(Enum):
    """How consecutive bitfields share storage."""

    ITANIUM = "itanium"
    MSVC = "msvc"


@dataclass(frozen=True)
class TargetABI:
    """Size/alignment/signedness table for one target triple."""

    triple: str
    pointer_size: int
    sizes: Dict[PrimitiveKind, Tuple[int, int]] = field(repr=False)
    char_signed: bool = True
    wchar_signed: bool = True
    bitfields: BitfieldFlavor = BitfieldFlavor.ITANIUM
    max_field_align: int = 16

    @property
    def pointer_align(self) -> int:
        return self.pointer_size

    def size_align(self, kind: PrimitiveKind) -> Tuple[int, int]:
        """Return ``(size, align)`` for a primitive; ``void`` is ``(0, 1)``."""
        return self.sizes[kind]

    def is_signed(self, kind: PrimitiveKind) -> bool:
        if kind in _ALWAYS_SIGNED:
            return True
        if kind is PrimitiveKind.CHAR:
            return self.char_signed
        if kind is PrimitiveKind.WCHAR:
            return self.wchar_signed
        return False

    def bits(self, kind: PrimitiveKind) -> int:
        return self.sizes[kind][0] * 8

    def rust_name(self, kind: PrimitiveKind) -> str:
        """Rust spelling of a primitive in type position."""
        if kind is PrimitiveKind.VOID:
            return "::std::os::raw::c_void"
        if kind is PrimitiveKind.WCHAR:
            size = self.sizes[kind][0]
            return f"{'i' if self.wchar_signed else 'u'}{size * 8}"
        if kind is PrimitiveKind.LONGDOUBLE:
            size, align = self.sizes[kind]
            if size == 8:
                return "f64"
            if size == 16 and align == 16:
                return "u128"
            return f"[u{align * 8}; {size // align}usize]"
        return _RAW_NAMES[kind]

    def fixed_int(self, size: int, signed: bool) -> str:
        """Fixed-width Rust integer of ``size`` bytes."""
        return f"{'i' if signed else 'u'}{size * 8}"


def _lp64_sizes() -> Dict[PrimitiveKind, Tuple[int, int]]:
    return {
        PrimitiveKind.VOID: (0, 1),
        PrimitiveKind.BOOL: (1, 1),
        PrimitiveKind.CHAR: (1, 1),
        PrimitiveKind.SCHAR: (1, 1),
        PrimitiveKind.UCHAR: (1, 1),
        PrimitiveKind.WCHAR: (4, 4),
        PrimitiveKind.CHAR16: (2, 2),
        PrimitiveKind.CHAR32: (4, 4),
        PrimitiveKind.SHORT: (2, 2),
        PrimitiveKind.USHORT: (2, 2),
        PrimitiveKind.INT: (4, 4),
        PrimitiveKind.UINT: (4, 4),
        PrimitiveKind.LONG: (8, 8),
        PrimitiveKind.ULONG: (8, 8),
        PrimitiveKind.LONGLONG: (8, 8),
        PrimitiveKind.ULONGLONG: (8, 8),
        PrimitiveKind.INT128: (16, 16),
        PrimitiveKind.UINT128: (16, 16),
        PrimitiveKind.HALF: (2, 2),
        PrimitiveKind.FLOAT: (4, 4),
        PrimitiveKind.DOUBLE: (8, 8),
        PrimitiveKind.LONGDOUBLE: (16, 16),
        PrimitiveKind.NULLPTR: (8, 8),
    }


def _make_targets() -> Dict[str, TargetABI]:
    x86_64 = TargetABI(triple="x86_64-unknown-linux-gnu", pointer_size=8,
                       sizes=_lp64_sizes())

    aarch64 = TargetABI(triple="aarch64-unknown-linux-gnu", pointer_size=8,
                        sizes=_lp64_sizes(), char_signed=False,
                        wchar_signed=False)

    i686_sizes = _lp64_sizes()
    i686_sizes.update({
        PrimitiveKind.LONG: (4, 4),
        PrimitiveKind.ULONG: (4, 4),
        PrimitiveKind.LONGLONG: (8, 4),
        PrimitiveKind.ULONGLONG: (8, 4),
        PrimitiveKind.DOUBLE: (8, 4),
        PrimitiveKind.LONGDOUBLE: (12, 4),
        PrimitiveKind.NULLPTR: (4, 4),
    })
    del i686_sizes[PrimitiveKind.INT128]
    del i686_sizes[PrimitiveKind.UINT128]
    i686 = TargetABI(triple="i686-unknown-linux-gnu", pointer_size=4,
                     sizes=i686_sizes)

    msvc_sizes = _lp64_sizes()
    msvc_sizes.update({
        PrimitiveKind.LONG: (4, 4),
        PrimitiveKind.ULONG: (4, 4),
        PrimitiveKind.WCHAR: (2, 2),
        PrimitiveKind.LONGDOUBLE: (8, 8),
    })
    msvc = TargetABI(triple="x86_64-pc-windows-msvc", pointer_size=8,
                     sizes=msvc_sizes, wchar_signed=False,
                     bitfields=BitfieldFlavor.MSVC)

    return {t.triple: t for t in (x86_64, aarch64, i686, msvc)}


DEFAULT_TARGET = "x86_64-unknown-linux-gnu"


def target_for(triple: str) -> TargetABI:
    """Return the ABI preset for ``triple``; unknown triples are a ConfigError."""
    targets = _make_targets()
    try:
        return targets[triple]
    except KeyError:
        raise ConfigError(
            f"unknown target '{triple}'",
            hint="known targets: " + ", ".join(sorted(targets)),
        ) from None


def known_targets() -> Tuple[str, ...]:
    return tuple(sorted(_make_targets()))
