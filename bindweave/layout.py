"""
bindweave/layout.py
═══════════════════

Layout resolver: size, alignment and byte offsets of aggregates.

Theory
──────
An aggregate is laid out field by field.  The running offset is kept in
*bits* so that bitfields and ordinary fields share one cursor:

    offset  = align_up(offset, field_align)        (ordinary field)
    size    = align_up(end_of_last_field, aggregate_align)

Field alignment is the natural alignment of the field's type, capped by the
aggregate's packing (``packed`` caps at 1, ``#pragma pack(N)`` at N) and
raised by an explicit field alignment.

Bitfields follow one of two flavours, chosen by the target:

  * **Itanium / System V** — a bitfield is placed at the next free bit unless
    it would cross the storage unit of its declared type, in which case it
    moves to the next unit boundary.  Zero-width bitfields round the cursor
    up to the next unit.  Only named bitfields raise the aggregate's
    alignment.  Consecutive bitfields form a *run*; after the aggregate size
    is known each run becomes one storage unit, widened to the largest
    member type when that keeps it aligned and inside the aggregate.

  * **MSVC** — a storage unit of the declared type's size is opened for a
    bitfield and reused by following bitfields only while their declared
    type has the same size and the bits still fit.

The result is a ``Layout`` of ordered slots (base, vtable pointer, field,
bitfield unit, padding).  Padding slots are synthesised according to the
``PaddingPolicy``.  Items whose layout cannot be computed degrade to opaque
with a warning; a by-value containment cycle aborts the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Set, Tuple

from .abi import BitfieldFlavor, PrimitiveKind, TargetABI, target_for, DEFAULT_TARGET
from .errors import (
    BindgenErrorCodes,
    DiagnosticCollector,
    InvalidLayoutError,
    InvariantViolationError,
    LayoutError,
)
from .ir import (
    ArrayPayload,
    BitfieldMember,
    Compound,
    EnumPayload,
    Field,
    Item,
    ItemId,
    ItemKind,
    Layout,
    LayoutSlot,
    PrimitivePayload,
    Selection,
    SlotKind,
    TypeGraph,
)
from .options import PaddingPolicy

logger = logging.getLogger(__name__)


def align_up(value: int, align: int) -> int:
    if align <= 1:
        return value
    return (value + align - 1) // align * align


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — WORKING STATE
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class _Run:
    """Consecutive bitfields waiting to become one storage unit."""
    start_bit: int
    end_bit: int = 0
    members: List[Tuple[Field, int, bool]] = field(default_factory=list)  # field, bit, signed
    max_type_size: int = 1
    fixed_size: Optional[int] = None   # MSVC units have their declared size

    @property
    def start_byte(self) -> int:
        return self.start_bit // 8


@dataclass
class _Aggregate:
    """Mutable state while one aggregate is being laid out."""
    is_union: bool
    pack: Optional[int]
    offset_bits: int = 0
    align: int = 1
    slots: List[LayoutSlot] = field(default_factory=list)
    runs: List[_Run] = field(default_factory=list)
    open_run: Optional[_Run] = None
    size_bits: int = 0
    anon_count: int = 0
    base_count: int = 0

    def cap(self, align: int) -> int:
        return min(align, self.pack) if self.pack else align

    def close_run(self) -> None:
        if self.open_run is not None:
            self.runs.append(self.open_run)
            self.open_run = None

    def advance(self, end_bits: int) -> None:
        if self.is_union:
            self.size_bits = max(self.size_bits, end_bits)
        else:
            self.offset_bits = end_bits
            self.size_bits = max(self.size_bits, end_bits)


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — THE RESOLVER
# ═════════════════════════════════════════════════════════════════════════

class LayoutResolver:
    """Computes ``Layout`` for the aggregates of a type graph.

    ``resolve(graph)`` returns a new snapshot whose selected aggregates carry
    a Layout (or none, for incomplete types).  ``layout_of`` and
    ``size_align`` answer queries against the graph last passed to
    ``resolve`` or ``attach``.
    """

    def __init__(
        self,
        abi: Optional[TargetABI] = None,
        padding: PaddingPolicy = PaddingPolicy.ALWAYS,
        diagnostics: Optional[DiagnosticCollector] = None,
    ) -> None:
        self._abi = abi or target_for(DEFAULT_TARGET)
        self._padding = padding
        self._diag = diagnostics if diagnostics is not None else DiagnosticCollector()
        self._graph: Optional[TypeGraph] = None
        self._layouts: Dict[ItemId, Optional[Layout]] = {}
        self._in_progress: List[ItemId] = []
        self._degraded: Dict[ItemId, str] = {}
        self._flattened: Set[ItemId] = set()

    @property
    def abi(self) -> TargetABI:
        return self._abi

    def attach(self, graph: TypeGraph) -> "LayoutResolver":
        self._graph = graph
        self._layouts = {}
        self._in_progress = []
        self._degraded = {}
        self._flattened = set()
        return self

    @property
    def graph(self) -> TypeGraph:
        if self._graph is None:
            raise InvariantViolationError("layout resolver used before attach()")
        return self._graph

    # ── Entry point ───────────────────────────────────────────────────

    def resolve(self, graph: TypeGraph) -> TypeGraph:
        self.attach(graph)
        selection = graph.selection
        if selection is None:
            scope = [i.id for i in graph.items(ItemKind.STRUCT, ItemKind.UNION)]
        else:
            scope = [i for i in sorted(selection.emitted) if graph[i].kind.is_aggregate]

        for item_id in scope:
            self.layout_of(item_id)

        replacements: Dict[ItemId, Item] = {}
        for item_id, layout in sorted(self._layouts.items()):
            item = graph[item_id]
            changes = {"layout": layout}
            if item_id in self._degraded:
                changes["opaque"] = True
                changes["opaque_reason"] = self._degraded[item_id]
            replacements[item_id] = replace(item, **changes)

        new_selection = None
        if selection is not None:
            emitted = selection.emitted - self._flattened
            opaque = (selection.opaque | frozenset(self._degraded)) & emitted
            new_selection = Selection(selection.roots, emitted, opaque)
        logger.info("laid out %d aggregates (%d degraded, %d flattened)",
                    len(replacements), len(self._degraded), len(self._flattened))
        return graph.evolve(replacements, new_selection)

    # ── Queries ───────────────────────────────────────────────────────

    def layout_of(self, item_id: ItemId) -> Optional[Layout]:
        """Layout of an aggregate, None when its size is unknown."""
        if item_id in self._layouts:
            return self._layouts[item_id]
        graph = self.graph
        if item_id in self._in_progress:
            cycle = graph.containment_cycle(item_id) or self._in_progress + [item_id]
            names = " -> ".join(graph[i].qualified_name or graph[i].name or f"#{i}"
                                for i in cycle)
            raise InvariantViolationError(
                f"aggregate contains itself by value: {names}",
                code=BindgenErrorCodes.CONTAINMENT_CYCLE,
                location=graph[item_id].location,
            )

        item = graph[item_id]
        payload = item.payload
        assert isinstance(payload, Compound), item.describe()
        self._in_progress.append(item_id)
        try:
            layout = self._layout_or_degrade(item, payload)
        finally:
            self._in_progress.pop()
        self._layouts[item_id] = layout
        return layout

    def size_align(self, type_id: ItemId) -> Tuple[int, int]:
        """``(size, align)`` of a type used by value."""
        graph = self.graph
        item = graph[type_id]
        payload = item.payload
        kind = item.kind
        if kind is ItemKind.PRIMITIVE:
            assert isinstance(payload, PrimitivePayload)
            if payload.kind is PrimitiveKind.VOID:
                raise LayoutError("'void' has no size",
                                  code=BindgenErrorCodes.INCOMPLETE_FIELD)
            try:
                return self._abi.size_align(payload.kind)
            except KeyError:
                raise LayoutError(
                    f"'{payload.kind.value}' is not available on {self._abi.triple}",
                    code=BindgenErrorCodes.UNSUPPORTED_TYPE,
                ) from None
        if kind is ItemKind.POINTER:
            return self._abi.pointer_size, self._abi.pointer_align
        if kind is ItemKind.ARRAY:
            assert isinstance(payload, ArrayPayload)
            size, align = self.size_align(payload.element)
            return size * (payload.length or 0), align
        if kind is ItemKind.ENUM:
            assert isinstance(payload, EnumPayload)
            return self.size_align(payload.repr_id)
        if kind is ItemKind.TYPE_ALIAS:
            return self.size_align(graph.resolve_alias(type_id))
        if kind.is_aggregate:
            layout = self.layout_of(type_id)
            if layout is None:
                raise LayoutError(
                    f"field of incomplete type '{item.qualified_name or item.name}'",
                    code=BindgenErrorCodes.INCOMPLETE_FIELD,
                )
            return layout.size, layout.align
        raise LayoutError(
            f"{item.describe()} cannot be stored by value",
            code=BindgenErrorCodes.UNSUPPORTED_TYPE,
        )

    def is_signed(self, type_id: ItemId) -> bool:
        item = self.graph[self.graph.resolve_alias(type_id)]
        if isinstance(item.payload, EnumPayload):
            return self.is_signed(item.payload.repr_id)
        if isinstance(item.payload, PrimitivePayload):
            return self._abi.is_signed(item.payload.kind)
        return False

    # ── Degradation ───────────────────────────────────────────────────

    def _layout_or_degrade(self, item: Item, payload: Compound) -> Optional[Layout]:
        opaque = self.graph.is_opaque(item.id)
        if not payload.is_complete:
            return self._hinted(payload)
        try:
            layout = self._compute(item, payload)
        except LayoutError as exc:
            exc.error_message.item = item.name
            if not exc.location.file:
                exc.error_message.location = item.location
            self._diag.report(exc)
            logger.warning("%s degraded to opaque: %s", item.describe(),
                           exc.error_message.message)
            self._degraded[item.id] = exc.error_message.message
            return self._hinted(payload)
        if opaque:
            return Layout(layout.size, layout.align, opaque=True)
        return layout

    @staticmethod
    def _hinted(payload: Compound) -> Optional[Layout]:
        if payload.size_hint is None:
            return None
        return Layout(payload.size_hint, payload.align_hint or 1, opaque=True)

    # ═════════════════════════════════════════════════════════════════
    #  PART 3 — AGGREGATE LAYOUT
    # ═════════════════════════════════════════════════════════════════

    def _compute(self, item: Item, payload: Compound) -> Layout:
        pack = 1 if payload.packed else payload.pack
        agg = _Aggregate(is_union=item.kind is ItemKind.UNION, pack=pack)

        self._place_bases(agg, payload)
        for fld in payload.fields:
            if fld.is_bitfield:
                self._place_bitfield(agg, fld)
            else:
                agg.close_run()
                if fld.anonymous:
                    self._place_anonymous(agg, item, fld)
                else:
                    self._place_field(agg, fld)
        agg.close_run()

        if payload.align:
            agg.align = max(agg.align, payload.align)
        size = align_up((agg.size_bits + 7) // 8, agg.align)
        if size == 0 and payload.is_cxx:
            size = 1

        slots = self._finish_runs(agg, size)
        slots.sort(key=lambda s: (s.offset, s.kind is not SlotKind.VTABLE))
        if not agg.is_union:
            slots = self._pad(slots, size, pack)

        if payload.size_hint is not None and payload.size_hint != size:
            raise LayoutError(
                f"computed size {size} of '{item.qualified_name or item.name}' "
                f"differs from the front-end size {payload.size_hint}",
                code=BindgenErrorCodes.SIZE_MISMATCH,
            )
        if payload.align_hint is not None and payload.align_hint != agg.align:
            raise LayoutError(
                f"computed alignment {agg.align} of '{item.qualified_name or item.name}' "
                f"differs from the front-end alignment {payload.align_hint}",
                code=BindgenErrorCodes.SIZE_MISMATCH,
            )
        return Layout(
            size=size,
            align=agg.align,
            slots=tuple(slots),
            pack=pack,
            explicit_align=payload.align,
        )

    def _place_bases(self, agg: _Aggregate, payload: Compound) -> None:
        graph = self.graph
        vtable_inherited = False
        base_slots: List[LayoutSlot] = []
        for base in payload.bases:
            target = graph.resolve_alias(base.type_id)
            base_payload = graph[target].payload
            if isinstance(base_payload, Compound) and base_payload.has_vtable:
                vtable_inherited = True
            size, align = self.size_align(target)
            layout = self.layout_of(target)
            if layout is not None and layout.is_empty and not layout.opaque:
                continue
            base_slots.append(self._base_slot(agg, target, size, align))

        if payload.has_vtable and not vtable_inherited:
            ptr = self._abi.pointer_size
            agg.slots.append(LayoutSlot(SlotKind.VTABLE, "vtable_", 0, ptr,
                                        align=agg.cap(ptr)))
            agg.align = max(agg.align, agg.cap(self._abi.pointer_align))
            agg.advance(ptr * 8)
        for slot in base_slots:
            offset = align_up(agg.offset_bits // 8, slot.align)
            agg.slots.append(replace(slot, offset=offset))
            agg.align = max(agg.align, slot.align)
            agg.advance((offset + slot.size) * 8)

    def _base_slot(self, agg: _Aggregate, target: ItemId, size: int, align: int) -> LayoutSlot:
        name = "_base" if agg.base_count == 0 else f"_base_{agg.base_count}"
        agg.base_count += 1
        return LayoutSlot(SlotKind.BASE, name, 0, size, align=agg.cap(align), type_id=target)

    def _place_field(self, agg: _Aggregate, fld: Field) -> None:
        size, natural = self.size_align(fld.type_id)
        align = agg.cap(natural)
        if fld.align:
            align = max(align, fld.align)
        offset = 0 if agg.is_union else align_up((agg.offset_bits + 7) // 8, align)
        agg.slots.append(LayoutSlot(SlotKind.FIELD, fld.name, offset, size,
                                    align=agg.cap(natural), type_id=fld.type_id))
        agg.align = max(agg.align, align)
        agg.advance((offset + size) * 8)

    def _place_anonymous(self, agg: _Aggregate, owner: Item, fld: Field) -> None:
        """Anonymous member aggregate: flatten when it is of the owner's kind."""
        graph = self.graph
        nested = graph[fld.type_id]
        layout = self.layout_of(nested.id)
        same_kind = nested.kind is owner.kind
        if not same_kind or layout is None or layout.opaque:
            agg.anon_count += 1
            self._place_field(agg, replace(fld, name=f"__anon_{agg.anon_count}"))
            return

        align = agg.cap(layout.align)
        offset = 0 if agg.is_union else align_up((agg.offset_bits + 7) // 8, align)
        for slot in layout.slots:
            if slot.kind is SlotKind.PADDING:
                continue
            agg.slots.append(replace(slot, offset=offset + slot.offset))
        agg.align = max(agg.align, align)
        agg.advance((offset + layout.size) * 8)
        self._flattened.add(nested.id)
        logger.debug("flattened %s into %s", nested.describe(), owner.describe())

    # ── Bitfields ─────────────────────────────────────────────────────

    def _place_bitfield(self, agg: _Aggregate, fld: Field) -> None:
        width = fld.bit_width or 0
        size, natural = self.size_align(fld.type_id)
        if width > size * 8:
            raise InvalidLayoutError(fld.name or "<unnamed>", width, size * 8)
        if self._abi.bitfields is BitfieldFlavor.MSVC:
            self._place_bitfield_msvc(agg, fld, width, size, natural)
        else:
            self._place_bitfield_itanium(agg, fld, width, size, natural)

    def _place_bitfield_itanium(self, agg: _Aggregate, fld: Field, width: int,
                                size: int, natural: int) -> None:
        unit_align = agg.cap(natural)
        cursor = 0 if agg.is_union else agg.offset_bits
        if width == 0:
            agg.close_run()
            if not agg.is_union:
                agg.advance(align_up(cursor, unit_align * 8))
            return

        if agg.pack != 1:
            unit_start = cursor - cursor % (unit_align * 8)
            if cursor + width > unit_start + size * 8:
                cursor = align_up(cursor, unit_align * 8)
        if fld.align:
            cursor = align_up(cursor, fld.align * 8)

        if agg.is_union:
            agg.close_run()
        run = agg.open_run
        if run is None:
            run = _Run(start_bit=cursor)
            agg.open_run = run
        run.members.append((fld, cursor, self.is_signed(fld.type_id)))
        run.end_bit = cursor + width
        run.max_type_size = max(run.max_type_size, size)
        if fld.name:
            agg.align = max(agg.align, unit_align)
        if fld.align:
            agg.align = max(agg.align, fld.align)
        agg.advance(cursor + width)

    def _place_bitfield_msvc(self, agg: _Aggregate, fld: Field, width: int,
                             size: int, natural: int) -> None:
        run = agg.open_run
        if width == 0:
            agg.close_run()
            return
        if agg.is_union:
            agg.close_run()
            run = None
        fits = (run is not None and run.fixed_size == size
                and run.end_bit + width <= run.start_bit + size * 8)
        if not fits:
            agg.close_run()
            align = agg.cap(natural)
            start = 0 if agg.is_union else align_up((agg.offset_bits + 7) // 8, align)
            run = _Run(start_bit=start * 8, end_bit=start * 8, fixed_size=size,
                       max_type_size=size)
            agg.open_run = run
            agg.align = max(agg.align, align)
            agg.advance((start + size) * 8)
        assert run is not None
        run.members.append((fld, run.end_bit, self.is_signed(fld.type_id)))
        run.end_bit += width

    def _finish_runs(self, agg: _Aggregate, size: int) -> List[LayoutSlot]:
        """Turn bitfield runs into storage-unit slots."""
        slots = list(agg.slots)
        starts = sorted([s.offset for s in agg.slots] + [r.start_byte for r in agg.runs])
        unit_index = 0
        for run in sorted(agg.runs, key=lambda r: r.start_bit):
            start = run.start_byte
            if run.fixed_size is not None:
                unit_size = run.fixed_size
            else:
                unit_size = (run.end_bit + 7) // 8 - start
                limit = min([s for s in starts if s >= start + unit_size] + [size])
                wide = run.max_type_size
                if (unit_size <= wide and start % wide == 0 and start + wide <= limit
                        and wide <= agg.align):
                    unit_size = wide
            unit_align = unit_size if unit_size in (1, 2, 4, 8) and start % unit_size == 0 else 1
            unit_index += 1
            members = tuple(
                BitfieldMember(
                    name=fld.name,
                    type_id=fld.type_id,
                    bit_offset=bit - start * 8,
                    bit_width=fld.bit_width or 0,
                    signed=signed,
                )
                for fld, bit, signed in run.members
            )
            slots.append(LayoutSlot(SlotKind.BITFIELD_UNIT, f"_bitfield_{unit_index}",
                                    start, unit_size, align=min(unit_align, agg.align),
                                    members=members))
        return slots

    # ── Padding ───────────────────────────────────────────────────────

    def _pad(self, slots: List[LayoutSlot], size: int, pack: Optional[int]) -> List[LayoutSlot]:
        """Insert ``__padding_N`` slots per the padding policy."""
        out: List[LayoutSlot] = []
        cursor = 0
        count = 0
        rust_align = 1
        for slot in slots:
            if slot.offset > cursor:
                natural = align_up(cursor, slot.align)
                if self._padding is PaddingPolicy.ALWAYS or natural != slot.offset:
                    count += 1
                    out.append(LayoutSlot(SlotKind.PADDING, f"__padding_{count}",
                                          cursor, slot.offset - cursor))
            out.append(slot)
            rust_align = max(rust_align, slot.align)
            cursor = max(cursor, slot.offset + slot.size)
        if size > cursor:
            natural_size = align_up(cursor, rust_align)
            if self._padding is PaddingPolicy.ALWAYS or natural_size != size:
                count += 1
                out.append(LayoutSlot(SlotKind.PADDING, f"__padding_{count}",
                                      cursor, size - cursor))
        return out


def resolve_layouts(graph: TypeGraph, abi: Optional[TargetABI] = None,
                    padding: PaddingPolicy = PaddingPolicy.ALWAYS,
                    diagnostics: Optional[DiagnosticCollector] = None) -> TypeGraph:
    """Convenience wrapper around ``LayoutResolver.resolve``."""
    return LayoutResolver(abi, padding, diagnostics).resolve(graph)
