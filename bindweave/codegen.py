"""
bindweave/codegen.py
====================

Rust code generator.

This module turns a filtered, laid-out and named ``TypeGraph`` into Rust
source.  The generated text:

1. Starts with a one-line header comment naming the generator version
2. Declares every emitted aggregate as a ``#[repr(C)]`` struct or union
3. Declares enums in the configured ``EnumStyle``
4. Declares type aliases and ``extern`` blocks for functions
5. Optionally asserts every computed size, alignment and offset at compile
   time

Architecture
------------
Declarations are emitted in dependency order: a topological sort over the
by-value dependencies among emitted Items, ties broken by Id.  Pointer edges
do not order anything, which is what makes self-referential and mutually
recursive aggregates legal: Rust needs no forward declarations, and an
incomplete type is a zero-sized opaque handle.

The emitter never decides layout.  Every offset, padding byte and bitfield
storage unit comes from the ``Layout`` attached by the layout resolver; the
emitter only spells it.  Identical graphs and options give byte-identical
output.
"""

from __future__ import annotations

import logging
from io import StringIO
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import __version__
from .abi import PrimitiveKind, TargetABI, target_for
from .errors import BindgenErrorCodes, DiagnosticCollector, InvariantViolationError
from .ir import (
    AliasPayload,
    ArrayPayload,
    BitfieldMember,
    Compound,
    EnumPayload,
    FunctionPayload,
    FunctionProtoPayload,
    Item,
    ItemId,
    ItemKind,
    Layout,
    LayoutSlot,
    PointerPayload,
    PrimitivePayload,
    SlotKind,
    TypeGraph,
)
from .options import BindgenOptions, EnumStyle

__all__ = [
    "emit_rust",
    "RustEmitter",
    "CodeEmitter",
]

logger = logging.getLogger(__name__)

RAW = "::std::os::raw"

_ABI_STRINGS: Dict[str, str] = {
    "C": "C",
    "stdcall": "stdcall",
    "fastcall": "fastcall",
    "thiscall": "thiscall",
    "vectorcall": "vectorcall",
    "win64": "win64",
    "sysv64": "sysv64",
    "aapcs": "aapcs",
}


# ═══════════════════════════════════════════════════════════════════════════
# CODE EMITTER
# ═══════════════════════════════════════════════════════════════════════════

class CodeEmitter:
    """Line-oriented text buffer with indentation and brace blocks."""

    def __init__(self, indent_str: str = "    ") -> None:
        self._buffer = StringIO()
        self._indent_str = indent_str
        self._indent_level = 0

    def emit(self, code: str) -> None:
        """Emit a line of code at the current indentation."""
        if code.strip():
            self._buffer.write(self._indent_str * self._indent_level)
            self._buffer.write(code)
        self._buffer.write("\n")

    def emit_blank(self, count: int = 1) -> None:
        for _ in range(count):
            self._buffer.write("\n")

    def indent(self) -> None:
        self._indent_level += 1

    def dedent(self) -> None:
        self._indent_level = max(0, self._indent_level - 1)

    def block(self, header: str, close: str = "}") -> "CodeEmitter._BlockContext":
        """Context manager for ``header {`` ... ``}`` blocks."""
        return self._BlockContext(self, header, close)

    class _BlockContext:
        """Context manager for code blocks."""

        def __init__(self, emitter: "CodeEmitter", header: str, close: str) -> None:
            self._emitter = emitter
            self._header = header
            self._close = close

        def __enter__(self) -> "CodeEmitter":
            self._emitter.emit(f"{self._header} {{")
            self._emitter.indent()
            return self._emitter

        def __exit__(self, *args: Any) -> None:
            self._emitter.dedent()
            self._emitter.emit(self._close)

    def get_code(self) -> str:
        return self._buffer.getvalue()

    @staticmethod
    def escape_string(s: str) -> str:
        """Escape a string for a Rust string literal."""
        return s.replace("\\", "\\\\").replace('"', '\\"')


# ═══════════════════════════════════════════════════════════════════════════
# RUST EMITTER
# ═══════════════════════════════════════════════════════════════════════════

class RustEmitter:
    """Spells a prepared ``TypeGraph`` as Rust declarations."""

    def __init__(
        self,
        options: Optional[BindgenOptions] = None,
        abi: Optional[TargetABI] = None,
        diagnostics: Optional[DiagnosticCollector] = None,
    ) -> None:
        self._options = options or BindgenOptions()
        self._abi = abi or target_for(self._options.target)
        self._diag = diagnostics if diagnostics is not None else DiagnosticCollector()
        self._graph: Optional[TypeGraph] = None
        self._copy_cache: Dict[ItemId, bool] = {}
        self._union_cache: Dict[ItemId, bool] = {}
        self._dispatch: Dict[ItemKind, Callable[[CodeEmitter, Item], None]] = {
            ItemKind.STRUCT: self._emit_aggregate,
            ItemKind.UNION: self._emit_aggregate,
            ItemKind.ENUM: self._emit_enum,
            ItemKind.FUNCTION: self._emit_function,
            ItemKind.TYPE_ALIAS: self._emit_alias,
        }

    @property
    def graph(self) -> TypeGraph:
        if self._graph is None:
            raise InvariantViolationError("emitter used without a graph")
        return self._graph

    # ── Entry point ───────────────────────────────────────────────────

    def emit(self, graph: TypeGraph) -> str:
        self._graph = graph
        self._copy_cache = {}
        self._union_cache = {}

        ids = [item.id for item in graph.emitted_items() if self._should_emit(item)]
        order = graph.topological_order(ids)
        out = CodeEmitter()
        if self._options.header_comment:
            out.emit(f"/* automatically generated by bindweave {__version__} */")
            out.emit_blank()
        for index, item_id in enumerate(order):
            if index:
                out.emit_blank()
            item = graph[item_id]
            self._dispatch[item.kind](out, item)
        logger.info("emitted %d declarations", len(order))
        return out.get_code()

    def _should_emit(self, item: Item) -> bool:
        if item.kind not in self._dispatch:
            return False
        payload = item.payload
        if isinstance(payload, FunctionPayload):
            return not payload.unsupported and payload.linkage != "internal"
        if isinstance(payload, AliasPayload) and payload.redundant:
            target = self.graph[payload.target]
            if target.names is not None and item.names is not None:
                return target.names.item != item.names.item
        return True

    # ── Type spelling ─────────────────────────────────────────────────

    def name_of(self, item: Item) -> str:
        if item.names is None:
            raise InvariantViolationError(
                f"{item.describe()} is referenced but was never named",
                code=BindgenErrorCodes.DANGLING_REFERENCE,
            )
        return item.names.item

    def rust_type(self, type_id: ItemId) -> str:
        """Rust spelling of a type in field, parameter or alias position."""
        graph = self.graph
        item = graph[type_id]
        payload = item.payload
        if isinstance(payload, PrimitivePayload):
            return self._abi.rust_name(payload.kind)
        if isinstance(payload, PointerPayload):
            target = graph[graph.resolve_alias(payload.pointee)]
            if isinstance(target.payload, FunctionProtoPayload):
                return f"::std::option::Option<{self._fn_type(target.payload)}>"
            mutability = "const" if payload.is_const else "mut"
            return f"*{mutability} {self.rust_type(payload.pointee)}"
        if isinstance(payload, ArrayPayload):
            return f"[{self.rust_type(payload.element)}; {payload.length or 0}usize]"
        if isinstance(payload, FunctionProtoPayload):
            return self._fn_type(payload)
        if isinstance(payload, EnumPayload) and not item.name:
            return self.rust_type(payload.repr_id)
        if item.kind.is_type:
            return self.name_of(item)
        raise InvariantViolationError(
            f"{item.describe()} cannot appear in a Rust type",
            code=BindgenErrorCodes.INVARIANT_BROKEN,
        )

    def _fn_type(self, proto: FunctionProtoPayload) -> str:
        params = [self.rust_type(p) for p in proto.params]
        if proto.variadic:
            params.append("...")
        abi = _ABI_STRINGS[proto.callconv]
        return f'unsafe extern "{abi}" fn({", ".join(params)}){self._ret(proto.result)}'

    def _ret(self, type_id: ItemId, noreturn: bool = False) -> str:
        if noreturn:
            return " -> !"
        item = self.graph[type_id]
        if isinstance(item.payload, PrimitivePayload) and item.payload.kind is PrimitiveKind.VOID:
            return ""
        return f" -> {self.rust_type(type_id)}"

    # ── Value semantics ───────────────────────────────────────────────

    def is_copy(self, type_id: ItemId) -> bool:
        """Trivially copyable: no indirection, vtable or copy constructor by value."""
        if type_id in self._copy_cache:
            return self._copy_cache[type_id]
        self._copy_cache[type_id] = True   # recursion through by-value cycles is impossible
        graph = self.graph
        item = graph[type_id]
        payload = item.payload
        result = True
        if isinstance(payload, PointerPayload):
            result = False
        elif isinstance(payload, ArrayPayload):
            result = self.is_copy(payload.element)
        elif isinstance(payload, AliasPayload):
            result = self.is_copy(payload.target)
        elif isinstance(payload, Compound) and not self._is_blob(item):
            layout = item.layout
            result = (not payload.has_vtable and not payload.nontrivial_copy
                      and layout is not None
                      and all(self.is_copy(s.type_id) for s in layout.slots
                              if s.type_id is not None))
        self._copy_cache[type_id] = result
        return result

    def contains_union(self, type_id: ItemId) -> bool:
        if type_id in self._union_cache:
            return self._union_cache[type_id]
        self._union_cache[type_id] = False
        graph = self.graph
        item = graph[type_id]
        payload = item.payload
        result = False
        if isinstance(payload, ArrayPayload):
            result = self.contains_union(payload.element)
        elif isinstance(payload, AliasPayload):
            result = self.contains_union(payload.target)
        elif isinstance(payload, Compound) and not self._is_blob(item):
            layout = item.layout
            result = item.kind is ItemKind.UNION or (
                layout is not None
                and any(self.contains_union(s.type_id) for s in layout.slots
                        if s.type_id is not None))
        self._union_cache[type_id] = result
        return result

    def _is_blob(self, item: Item) -> bool:
        return (self.graph.is_opaque(item.id) or item.layout is None
                or item.layout.opaque or self._repr_conflict(item.layout))

    @staticmethod
    def _repr_conflict(layout: Layout) -> bool:
        """Rust rejects ``packed`` together with ``align``."""
        return layout.pack is not None and layout.explicit_align is not None

    def _derives(self, item: Item) -> List[str]:
        derives: List[str] = []
        copy = self.is_copy(item.id)
        packed = item.layout is not None and item.layout.pack is not None
        if (self._options.derive_debug and not self.contains_union(item.id)
                and (copy or not packed)):
            derives.append("Debug")
        if copy:
            derives.extend(["Copy", "Clone"])
        return derives

    # ═════════════════════════════════════════════════════════════════
    # AGGREGATES
    # ═════════════════════════════════════════════════════════════════

    def _emit_aggregate(self, out: CodeEmitter, item: Item) -> None:
        name = self.name_of(item)
        keyword = "union" if item.kind is ItemKind.UNION else "struct"
        layout = item.layout
        if layout is not None and not layout.opaque and self._repr_conflict(layout):
            self._diag.warning(
                BindgenErrorCodes.UNSUPPORTED_TYPE,
                f"'{name}' is both packed and aligned; emitting it as an opaque blob",
                location=item.location,
                item=item.name,
            )
        if self._is_blob(item):
            self._emit_opaque(out, item, name, layout)
            return

        assert layout is not None and item.names is not None
        out.emit(f"#[repr({self._repr(layout)})]")
        derives = self._derives(item)
        if derives:
            out.emit(f"#[derive({', '.join(derives)})]")
        with out.block(f"pub {keyword} {name}"):
            for slot, slot_name in zip(layout.slots, item.names.slots):
                out.emit(f"pub {slot_name}: {self._slot_type(item, slot)},")
        self._emit_bitfield_accessors(out, item, name, layout)
        if self._options.layout_tests:
            self._emit_assertions(out, name, layout, item.names.slots)

    def _repr(self, layout: Layout) -> str:
        if layout.pack is not None:
            return "C, packed" if layout.pack == 1 else f"C, packed({layout.pack})"
        natural = max([s.align for s in layout.slots] + [1])
        if layout.align > natural:
            return f"C, align({layout.align})"
        return "C"

    def _slot_type(self, owner: Item, slot: LayoutSlot) -> str:
        if slot.kind is SlotKind.VTABLE:
            return f"*const {RAW}::c_void"
        if slot.kind is SlotKind.PADDING:
            return f"[u8; {slot.size}usize]"
        if slot.kind is SlotKind.BITFIELD_UNIT:
            return self._unit_type(slot)
        assert slot.type_id is not None
        spelled = self.rust_type(slot.type_id)
        if owner.kind is ItemKind.UNION and not self.is_copy(slot.type_id):
            return f"::std::mem::ManuallyDrop<{spelled}>"
        return spelled

    @staticmethod
    def _unit_type(slot: LayoutSlot) -> str:
        if slot.size in (1, 2, 4, 8) and slot.align == slot.size:
            return f"u{slot.size * 8}"
        return f"[u8; {slot.size}usize]"

    def _emit_opaque(self, out: CodeEmitter, item: Item, name: str,
                     layout: Optional[Layout]) -> None:
        keyword = "union" if item.kind is ItemKind.UNION else "struct"
        if layout is None:
            out.emit("#[repr(C)]")
            out.emit("#[derive(Debug, Copy, Clone)]")
            with out.block(f"pub struct {name}"):
                out.emit("_unused: [u8; 0],")
            return
        out.emit(f"#[repr(C, align({layout.align}))]")
        out.emit("#[derive(Debug, Copy, Clone)]" if keyword == "struct"
                 else "#[derive(Copy, Clone)]")
        with out.block(f"pub {keyword} {name}"):
            out.emit(f"pub _opaque_blob: [u8; {layout.size}usize],")
        if self._options.layout_tests:
            self._emit_assertions(out, name, Layout(layout.size, layout.align), ())

    # ── Bitfields ─────────────────────────────────────────────────────

    def _emit_bitfield_accessors(self, out: CodeEmitter, item: Item, name: str,
                                 layout: Layout) -> None:
        assert item.names is not None
        units = [
            (slot, item.names.slots[i], item.names.bitfields[i])
            for i, slot in enumerate(layout.slots)
            if slot.kind is SlotKind.BITFIELD_UNIT and any(m.name for m in slot.members)
        ]
        if not units:
            return
        with out.block(f"impl {name}"):
            first = True
            for slot, unit_name, member_names in units:
                for member, member_name in zip(slot.members, member_names):
                    if not member_name:
                        continue
                    if not first:
                        out.emit_blank()
                    first = False
                    self._emit_getter(out, slot, unit_name, member, member_name)
                    out.emit_blank()
                    self._emit_setter(out, slot, unit_name, member, member_name)

    def _accessor_type(self, member: BitfieldMember) -> str:
        graph = self.graph
        item = graph[graph.resolve_alias(member.type_id)]
        if isinstance(item.payload, EnumPayload):
            return self.rust_type(item.payload.repr_id)
        return self.rust_type(item.id)

    def _is_bool(self, member: BitfieldMember) -> bool:
        item = self.graph[self.graph.resolve_alias(member.type_id)]
        return isinstance(item.payload, PrimitivePayload) and item.payload.kind is PrimitiveKind.BOOL

    def _emit_getter(self, out: CodeEmitter, slot: LayoutSlot, unit: str,
                     member: BitfieldMember, name: str) -> None:
        ty = self._accessor_type(member)
        off, width = member.bit_offset, member.bit_width
        mask = (1 << width) - 1
        out.emit("#[inline]")
        with out.block(f"pub fn {name}(&self) -> {ty}"):
            if self._unit_type(slot).startswith("u"):
                bits = slot.size * 8
                if member.signed:
                    value = (f"((self.{unit} << {bits - off - width}u32) as i{bits} "
                             f">> {bits - width}u32)")
                else:
                    value = f"((self.{unit} >> {off}u32) & {mask:#x})"
            else:
                out.emit("let mut val: u64 = 0;")
                with out.block(f"for i in 0..{width}usize"):
                    out.emit(f"let bit = {off}usize + i;")
                    with out.block(f"if (self.{unit}[bit / 8] >> (bit % 8)) & 1 != 0"):
                        out.emit("val |= 1u64 << i;")
                if member.signed:
                    value = f"(((val << {64 - width}u32) as i64) >> {64 - width}u32)"
                else:
                    value = "val"
            if self._is_bool(member):
                out.emit(f"{value} != 0")
            else:
                out.emit(f"{value} as {ty}")

    def _emit_setter(self, out: CodeEmitter, slot: LayoutSlot, unit: str,
                     member: BitfieldMember, name: str) -> None:
        ty = self._accessor_type(member)
        off, width = member.bit_offset, member.bit_width
        mask = (1 << width) - 1
        out.emit("#[inline]")
        with out.block(f"pub fn set_{name}(&mut self, val: {ty})"):
            unit_type = self._unit_type(slot)
            if unit_type.startswith("u"):
                out.emit(f"let val = (val as {unit_type}) & {mask:#x};")
                out.emit(f"self.{unit} = (self.{unit} & !({mask:#x} << {off}u32)) "
                         f"| (val << {off}u32);")
            else:
                out.emit("let val = val as u64;")
                with out.block(f"for i in 0..{width}usize"):
                    out.emit(f"let bit = {off}usize + i;")
                    out.emit("let mask = 1u8 << (bit % 8);")
                    with out.block("if (val >> i) & 1 != 0"):
                        out.emit(f"self.{unit}[bit / 8] |= mask;")
                    with out.block("else"):
                        out.emit(f"self.{unit}[bit / 8] &= !mask;")

    # ── Layout assertions ─────────────────────────────────────────────

    def _emit_assertions(self, out: CodeEmitter, name: str, layout: Layout,
                         slot_names: Sequence[str]) -> None:
        out.emit("#[allow(clippy::unnecessary_operation, clippy::identity_op)]")
        with out.block("const _: () =", close="};"):
            out.emit(f'["Size of {name}"][::std::mem::size_of::<{name}>() - {layout.size}usize];')
            out.emit(f'["Alignment of {name}"][::std::mem::align_of::<{name}>() - {layout.align}usize];')
            for slot, slot_name in zip(layout.slots, slot_names):
                if slot.kind is SlotKind.PADDING:
                    continue
                out.emit(f'["Offset of field: {name}::{slot_name}"]'
                         f'[::std::mem::offset_of!({name}, {slot_name}) - {slot.offset}usize];')

    # ═════════════════════════════════════════════════════════════════
    # ENUMS
    # ═════════════════════════════════════════════════════════════════

    def _emit_enum(self, out: CodeEmitter, item: Item) -> None:
        payload = item.payload
        assert isinstance(payload, EnumPayload) and item.names is not None
        repr_type = self.rust_type(payload.repr_id)
        variants = list(zip(payload.variants, item.names.variants))
        name = item.names.item
        style = self._options.enum_style

        if not name:
            for variant, const in variants:
                out.emit(f"pub const {const}: {repr_type} = {variant.value};")
            return

        blob = self.graph.is_opaque(item.id) or not payload.is_complete
        if blob or style is EnumStyle.CONSTS or (style is EnumStyle.RUST and not variants):
            out.emit(f"pub type {name} = {repr_type};")
            if not blob:
                for variant, const in variants:
                    out.emit(f"pub const {const}: {name} = {variant.value};")
            return

        if style is EnumStyle.NEWTYPE:
            with out.block(f"impl {name}"):
                for variant, const in variants:
                    out.emit(f"pub const {const}: {name} = {name}({variant.value});")
            out.emit("#[repr(transparent)]")
            out.emit("#[derive(Debug, Copy, Clone, Hash, PartialEq, Eq)]")
            out.emit(f"pub struct {name}(pub {repr_type});")
            return

        repr_item = self.graph[self.graph.resolve_alias(payload.repr_id)]
        assert isinstance(repr_item.payload, PrimitivePayload)
        size, _ = self._abi.size_align(repr_item.payload.kind)
        fixed = self._abi.fixed_int(size, self._abi.is_signed(repr_item.payload.kind))
        first_for_value: Dict[int, str] = {}
        duplicates = []
        for variant, const in variants:
            if variant.value in first_for_value:
                duplicates.append((const, first_for_value[variant.value]))
            else:
                first_for_value[variant.value] = const
        if duplicates:
            with out.block(f"impl {name}"):
                for const, original in duplicates:
                    out.emit(f"pub const {const}: {name} = {name}::{original};")
        out.emit(f"#[repr({fixed})]")
        out.emit("#[derive(Debug, Copy, Clone, Hash, PartialEq, Eq)]")
        with out.block(f"pub enum {name}"):
            for variant, const in variants:
                if first_for_value[variant.value] == const:
                    out.emit(f"{const} = {variant.value},")

    # ═════════════════════════════════════════════════════════════════
    # FUNCTIONS AND ALIASES
    # ═════════════════════════════════════════════════════════════════

    def _emit_function(self, out: CodeEmitter, item: Item) -> None:
        payload = item.payload
        assert isinstance(payload, FunctionPayload) and item.names is not None
        names = item.names
        params = [f"{pname}: {self.rust_type(p.type_id)}"
                  for p, pname in zip(payload.params, names.params)]
        if payload.variadic:
            params.append("...")
        abi = _ABI_STRINGS[payload.callconv]
        with out.block(f'extern "{abi}"'):
            if payload.mangled_name:
                out.emit(f'#[link_name = "\\u{{1}}{CodeEmitter.escape_string(names.symbol)}"]')
            elif names.symbol != names.item:
                out.emit(f'#[link_name = "{CodeEmitter.escape_string(names.symbol)}"]')
            ret = self._ret(payload.return_id, payload.noreturn)
            out.emit(f"pub fn {names.item}({', '.join(params)}){ret};")

    def _emit_alias(self, out: CodeEmitter, item: Item) -> None:
        payload = item.payload
        assert isinstance(payload, AliasPayload)
        out.emit(f"pub type {self.name_of(item)} = {self.rust_type(payload.target)};")


def emit_rust(graph: TypeGraph, options: Optional[BindgenOptions] = None) -> str:
    return RustEmitter(options).emit(graph)
