# tests/test_layout.py
"""
Tests for the layout resolver: offsets, padding, bitfields, degradation.
"""

import pytest

from bindweave.errors import (
    BindgenErrorCodes,
    InvariantViolationError,
)
from bindweave.ir import SlotKind
from bindweave.layout import LayoutResolver, align_up
from bindweave.options import BindgenOptions, MaterializeAll, PaddingPolicy
from tests.conftest import (
    ANON_MEMBER_DECL, BAD_BITFIELD_DECL, BITFIELD_DECL,
    CONTAINMENT_CYCLE_DECL, CXX_CLASS_DECL, INCOMPLETE_DECL,
    LINKED_LIST_DECL, MIXED_BITFIELD_DECL, PACKED_DECL, POINT_DECL,
    SIZE_MISMATCH_DECL, TEMPLATE_DECL, UNION_DECL,
    laid_out, selected, slot_table,
)

MSVC = BindgenOptions(target="x86_64-pc-windows-msvc")
I686 = BindgenOptions(target="i686-unknown-linux-gnu")


def test_align_up():
    assert align_up(0, 8) == 0
    assert align_up(5, 4) == 8
    assert align_up(8, 8) == 8
    assert align_up(3, 1) == 3


class TestPlainStructs:

    def test_point(self):
        graph = laid_out(POINT_DECL)
        layout = graph.find("Point").layout
        assert (layout.size, layout.align) == (16, 8)
        assert slot_table(graph, "Point") == [
            ("x", 0, 4), ("__padding_1", 4, 4), ("y", 8, 8)]
        assert layout.slots[1].kind is SlotKind.PADDING

    def test_point_without_padding_slots(self):
        options = BindgenOptions(padding=PaddingPolicy.WHEN_REQUIRED)
        graph = laid_out(POINT_DECL, options)
        assert slot_table(graph, "Point") == [("x", 0, 4), ("y", 8, 8)]
        assert graph.find("Point").layout.size == 16

    def test_point_on_i686(self):
        graph = laid_out(POINT_DECL, I686)
        layout = graph.find("Point").layout
        assert (layout.size, layout.align) == (12, 4)
        assert slot_table(graph, "Point") == [("x", 0, 4), ("y", 4, 8)]

    def test_self_referential_pointer(self):
        graph = laid_out(LINKED_LIST_DECL)
        assert slot_table(graph, "Node") == [
            ("value", 0, 4), ("__padding_1", 4, 4), ("next", 8, 8)]

    def test_tail_padding(self):
        graph = laid_out('''
            (translation-unit "t.h" (struct T (field d "double") (field c "char")))
        ''')
        assert slot_table(graph, "T") == [
            ("d", 0, 8), ("c", 8, 1), ("__padding_1", 9, 7)]

    def test_arrays(self):
        graph = laid_out('''
            (translation-unit "a.h" (struct A (field c "char") (field xs "short[3]")))
        ''')
        assert slot_table(graph, "A") == [
            ("c", 0, 1), ("__padding_1", 1, 1), ("xs", 2, 6)]

    def test_incomplete_struct_has_no_layout(self):
        graph = laid_out(INCOMPLETE_DECL)
        assert graph.find("Handle").layout is None


class TestPackingAndAlignment:

    def test_packed(self):
        graph = laid_out(PACKED_DECL)
        layout = graph.find("P").layout
        assert (layout.size, layout.align, layout.pack) == (5, 1, 1)
        assert slot_table(graph, "P") == [("c", 0, 1), ("i", 1, 4)]

    def test_pragma_pack(self):
        graph = laid_out(PACKED_DECL)
        layout = graph.find("Q").layout
        assert (layout.size, layout.align, layout.pack) == (6, 2, 2)
        assert slot_table(graph, "Q") == [("c", 0, 1), ("__padding_1", 1, 1), ("i", 2, 4)]

    def test_explicit_alignment(self):
        graph = laid_out(PACKED_DECL)
        layout = graph.find("Al").layout
        assert (layout.size, layout.align, layout.explicit_align) == (16, 16, 16)
        assert slot_table(graph, "Al") == [("x", 0, 4), ("__padding_1", 4, 12)]

    def test_union(self):
        graph = laid_out(UNION_DECL)
        layout = graph.find("U").layout
        assert (layout.size, layout.align) == (8, 8)
        assert slot_table(graph, "U") == [("i", 0, 4), ("d", 0, 8)]


class TestBitfields:

    def test_single_unit(self):
        graph = laid_out(BITFIELD_DECL)
        layout = graph.find("Flags").layout
        assert layout.size == 4
        (unit,) = layout.slots
        assert unit.kind is SlotKind.BITFIELD_UNIT
        assert (unit.name, unit.offset, unit.size) == ("_bitfield_1", 0, 4)
        assert [(m.name, m.bit_offset, m.bit_width) for m in unit.members] == [
            ("a", 0, 3), ("b", 3, 5)]
        assert not any(m.signed for m in unit.members)

    def test_mixed_types_share_a_unit_on_itanium(self):
        graph = laid_out(MIXED_BITFIELD_DECL)
        assert slot_table(graph, "Mixed") == [("_bitfield_1", 0, 4)]
        members = graph.find("Mixed").layout.slots[0].members
        assert [m.bit_offset for m in members] == [0, 4]
        assert all(m.signed for m in members)

    def test_mixed_types_split_on_msvc(self):
        graph = laid_out(MIXED_BITFIELD_DECL, MSVC)
        assert graph.find("Mixed").layout.size == 8
        assert slot_table(graph, "Mixed") == [
            ("_bitfield_1", 0, 1), ("__padding_1", 1, 3), ("_bitfield_2", 4, 4)]

    def test_bitfield_crossing_a_unit_moves(self):
        graph = laid_out('''
            (translation-unit "b.h"
              (struct B (field a "unsigned char" :bits 6) (field b "unsigned char" :bits 4)))
        ''')
        layout = graph.find("B").layout
        assert layout.size == 2
        assert slot_table(graph, "B") == [("_bitfield_1", 0, 2)]
        members = layout.slots[0].members
        assert [(m.name, m.bit_offset) for m in members] == [("a", 0), ("b", 8)]

    def test_zero_width_bitfield_closes_unit(self):
        graph = laid_out('''
            (translation-unit "z.h"
              (struct Z
                (field a "unsigned int" :bits 1)
                (field _ "unsigned int" :bits 0)
                (field b "unsigned int" :bits 1)))
        ''')
        assert slot_table(graph, "Z") == [("_bitfield_1", 0, 4), ("_bitfield_2", 4, 4)]

    def test_unnamed_bitfield_reserves_bits(self):
        graph = laid_out('''
            (translation-unit "u.h"
              (struct U
                (field a "unsigned int" :bits 3)
                (field _ "unsigned int" :bits 5)
                (field b "unsigned int" :bits 2)))
        ''')
        (unit,) = graph.find("U").layout.slots
        assert (unit.offset, unit.size) == (0, 4)
        assert [(m.name, m.bit_offset, m.bit_width) for m in unit.members] == [
            ("a", 0, 3), ("", 3, 5), ("b", 8, 2)]

    def test_unnamed_bitfield_does_not_raise_alignment(self):
        graph = laid_out('''
            (translation-unit "u.h"
              (struct U (field c "char") (field _ "int" :bits 4)))
        ''')
        layout = graph.find("U").layout
        assert (layout.size, layout.align) == (2, 1)

    def test_bitfield_then_field(self):
        graph = laid_out('''
            (translation-unit "m.h"
              (struct M (field flag "unsigned char" :bits 1) (field n "int")))
        ''')
        assert slot_table(graph, "M") == [
            ("_bitfield_1", 0, 1), ("__padding_1", 1, 3), ("n", 4, 4)]


class TestCxxRecords:

    def test_vtable_pointer(self):
        graph = laid_out(CXX_CLASS_DECL)
        assert slot_table(graph, "Widget") == [
            ("vtable_", 0, 8), ("id", 8, 4), ("__padding_1", 12, 4)]
        assert graph.find("Widget").layout.slots[0].kind is SlotKind.VTABLE

    def test_base_subobject(self):
        graph = laid_out(CXX_CLASS_DECL)
        assert slot_table(graph, "Derived") == [("_base", 0, 4), ("b", 4, 4)]
        base = graph.find("Derived").layout.slots[0]
        assert base.kind is SlotKind.BASE
        assert base.type_id == graph.find("Base").id

    def test_empty_struct_has_size_one(self):
        graph = laid_out(CXX_CLASS_DECL)
        assert graph.find("Empty").layout.size == 1
        assert slot_table(graph, "Empty") == [("__padding_1", 0, 1)]

    def test_empty_base_takes_no_space(self):
        graph = laid_out('''
            (translation-unit "e.hpp" :language c++
              (struct Tag)
              (struct Tagged (base "Tag") (field v "int")))
        ''')
        assert slot_table(graph, "Tagged") == [("v", 0, 4)]

    def test_template_instantiations(self):
        graph = laid_out(TEMPLATE_DECL)
        ints = graph.find("Box<int>").layout
        doubles = graph.find("Box<double>").layout
        assert (ints.size, ints.opaque) == (8, True)
        assert (doubles.size, doubles.align) == (16, 8)
        assert slot_table(graph, "Holder") == [("ints", 0, 8), ("doubles", 8, 16)]

    def test_materialized_instantiation_has_slots(self):
        graph = laid_out(TEMPLATE_DECL, BindgenOptions(instantiation_policy=MaterializeAll()))
        assert slot_table(graph, "Box<double>") == [
            ("value", 0, 8), ("count", 8, 4), ("__padding_1", 12, 4)]


class TestAnonymousMembers:

    def test_union_member_becomes_field(self):
        graph = laid_out(ANON_MEMBER_DECL)
        assert slot_table(graph, "Value") == [("tag", 0, 4), ("__anon_1", 4, 4)]
        assert graph.selection is not None
        assert graph.find("Value__anon_1").id in graph.selection.emitted

    def test_same_kind_member_is_flattened(self):
        graph = laid_out(ANON_MEMBER_DECL)
        assert slot_table(graph, "Flat") == [("a", 0, 4), ("b", 4, 4), ("c", 8, 4)]
        nested = graph.find("Flat__anon_1")
        assert nested.id not in graph.selection.emitted


class TestDegradation:

    def test_oversized_bitfield_degrades_only_its_item(self, diagnostics):
        graph = laid_out(BAD_BITFIELD_DECL, diagnostics=diagnostics)
        bad = graph.find("Bad")
        assert bad.opaque
        assert bad.layout is None
        assert bad.id in graph.selection.opaque
        assert slot_table(graph, "Good") == [("v", 0, 4)]
        (warning,) = diagnostics.warnings()
        assert warning.code == BindgenErrorCodes.INVALID_BITFIELD
        assert warning.item == "Bad"

    def test_size_mismatch_keeps_front_end_size(self, diagnostics):
        graph = laid_out(SIZE_MISMATCH_DECL, diagnostics=diagnostics)
        layout = graph.find("S").layout
        assert layout.opaque
        assert (layout.size, layout.align) == (12, 1)
        assert diagnostics.by_code(BindgenErrorCodes.SIZE_MISMATCH)

    def test_field_of_incomplete_type(self, diagnostics):
        graph = laid_out('''
            (translation-unit "i.h"
              (struct Outer (field h "struct Hidden")))
        ''', diagnostics=diagnostics)
        assert graph.find("Outer").opaque
        assert diagnostics.by_code(BindgenErrorCodes.INCOMPLETE_FIELD)

    def test_containment_cycle_aborts(self):
        with pytest.raises(InvariantViolationError) as info:
            laid_out(CONTAINMENT_CYCLE_DECL)
        assert info.value.code == BindgenErrorCodes.CONTAINMENT_CYCLE
        assert "A" in str(info.value)


class TestQueries:

    def test_size_align_of_pointer_and_enum(self):
        graph = selected('''
            (translation-unit "q.h"
              (enum E (const X))
              (struct S (field e "enum E") (field p "void *")))
        ''')
        resolver = LayoutResolver(BindgenOptions().abi()).attach(graph)
        fields = graph.find("S").payload.fields
        assert resolver.size_align(fields[0].type_id) == (4, 4)
        assert resolver.size_align(fields[1].type_id) == (8, 8)

    def test_resolve_is_pure(self):
        graph = selected(POINT_DECL)
        resolver = LayoutResolver(BindgenOptions().abi())
        first = resolver.resolve(graph)
        second = resolver.resolve(graph)
        assert graph.find("Point").layout is None
        assert first.find("Point").layout == second.find("Point").layout
