# tests/test_naming.py
"""
Tests for Rust identifier resolution.
"""

import pytest

from bindweave.errors import NameCollisionUnresolvableError
from bindweave.ir import ItemKind, ItemNames
from bindweave.naming import RUST_KEYWORDS, NameResolver, escape_identifier
from bindweave.options import BindgenOptions, EnumStyle
from tests.conftest import (
    ANON_ENUM_DECL, ANON_MEMBER_DECL, BITFIELD_DECL, ENUM_DECL,
    KEYWORD_DECL, NAMESPACE_COLLISION_DECL, POINT_DECL, TEMPLATE_DECL,
    TYPEDEF_ANON_DECL, laid_out, named,
)


class TestEscaping:

    @pytest.mark.parametrize("raw, ident", [
        ("type", "type_"),
        ("match", "match_"),
        ("union", "union_"),
        ("Self", "Self_"),
        ("plain", "plain"),
        ("operator+", "operator_"),
        ("2d", "_2d"),
        ("a b", "a_b"),
        ("", "_"),
    ])
    def test_escape_identifier(self, raw, ident):
        assert escape_identifier(raw) == ident

    def test_escaped_keywords_are_not_keywords(self):
        for keyword in RUST_KEYWORDS:
            assert escape_identifier(keyword) not in RUST_KEYWORDS


class TestItemNames:

    def test_point(self):
        graph = named(POINT_DECL)
        point = graph.find("Point", ItemKind.STRUCT)
        assert point.names.item == "Point"
        assert point.names.slots == ("x", "__padding_1", "y")
        fn = graph.find("make_point")
        assert fn.names.item == "make_point"
        assert fn.names.params == ("x", "y")
        assert fn.names.symbol == "make_point"

    def test_redundant_alias_shares_target_name(self):
        graph = named(POINT_DECL)
        alias = graph.find("Point", ItemKind.TYPE_ALIAS)
        assert alias.names.item == "Point"

    def test_keywords(self):
        graph = named(KEYWORD_DECL)
        record = graph.find("type")
        assert record.names.item == "type_"
        assert record.names.slots == ("match_", "fn_")
        move = graph.find("move")
        assert move.names.item == "move_"
        assert move.names.params == ("ref_",)
        assert move.names.symbol == "move"

    def test_unnamed_parameters(self):
        graph = named('''
            (translation-unit "u.h" (function f "void" (param "int") (param "int")))
        ''')
        assert graph.find("f").names.params == ("arg0", "arg1")

    def test_bitfield_member_names(self):
        graph = named(BITFIELD_DECL)
        flags = graph.find("Flags")
        assert flags.names.slots == ("_bitfield_1",)
        assert flags.names.bitfields == (("a", "b"),)

    def test_template_instantiation_names(self):
        graph = named(TEMPLATE_DECL)
        assert graph.find("Box<int>").names.item == "Box_int"
        assert graph.find("Box<double>").names.item == "Box_double"

    def test_anonymous_member_name(self):
        graph = named(ANON_MEMBER_DECL)
        assert graph.find("Value__anon_1").names.item == "Value__anon_1"

    def test_typedef_of_anonymous_struct(self):
        graph = named(TYPEDEF_ANON_DECL)
        record = graph.find("Vec2", ItemKind.STRUCT)
        assert record.names.item == "Vec2"


class TestCollisions:

    def test_flattened_namespaces_get_suffixes(self):
        graph = named(NAMESPACE_COLLISION_DECL)
        handles = [h.names.item for h in graph.find_all("Handle")]
        assert handles == ["Handle", "Handle_1"]
        inits = graph.find_all("init")
        assert [i.names.item for i in inits] == ["init", "init_1"]
        assert [i.names.symbol for i in inits] == ["init", "init"]

    def test_namespaced_names(self):
        graph = named(NAMESPACE_COLLISION_DECL, BindgenOptions(flatten_namespaces=False))
        handles = [h.names.item for h in graph.find_all("Handle")]
        assert handles == ["a_Handle", "b_Handle"]

    def test_type_and_function_namespaces_are_separate(self):
        graph = named('''
            (translation-unit "s.h"
              (struct stat (field size "long"))
              (function stat "int" (param buf "struct stat *")))
        ''')
        record = graph.find("stat", ItemKind.STRUCT)
        fn = graph.find("stat", ItemKind.FUNCTION)
        assert record.names.item == "stat"
        assert fn.names.item == "stat"

    def test_escaped_name_collides_with_existing(self):
        graph = named('''
            (translation-unit "k.h"
              (struct type_ (field a "int"))
              (struct type (field b "int")))
        ''')
        assert graph.find("type_").names.item == "type_"
        assert graph.find("type").names.item == "type__1"

    def test_duplicate_field_names_are_suffixed(self):
        graph = named('''
            (translation-unit "d.h"
              (struct D (field __padding_1 "char") (field x "int")))
        ''')
        assert graph.find("D").names.slots == ("__padding_1", "__padding_1_1", "x")

    def test_check_rejects_duplicates(self):
        graph = laid_out(NAMESPACE_COLLISION_DECL)
        first, second = graph.find_all("Handle")
        names = {first.id: ItemNames(item="Handle"), second.id: ItemNames(item="Handle")}
        with pytest.raises(NameCollisionUnresolvableError):
            NameResolver()._check(names, graph)


class TestEnumNames:

    def test_consts_style_prefixes_variants(self):
        graph = named(ENUM_DECL)
        assert graph.find("Color").names.variants == ("Color_RED", "Color_GREEN", "Color_BLUE")

    def test_rust_style_keeps_variants(self):
        graph = named(ENUM_DECL, BindgenOptions(enum_style=EnumStyle.RUST))
        assert graph.find("Color").names.variants == ("RED", "GREEN", "BLUE")

    def test_anonymous_enum_constants_are_values(self):
        graph = named(ANON_ENUM_DECL)
        (enum,) = graph.items(ItemKind.ENUM)
        assert enum.names.item == ""
        assert enum.names.variants == ("MAX_ITEMS", "MIN_ITEMS")

    def test_constant_colliding_with_function(self):
        graph = named('''
            (translation-unit "c.h"
              (enum (const reset 1))
              (function reset "void"))
        ''')
        (enum,) = graph.items(ItemKind.ENUM)
        assert enum.names.variants == ("reset",)
        assert graph.find("reset").names.item == "reset_1"

    def test_newtype_enum_claims_its_constructor_name(self):
        src = '''
            (translation-unit "n.h"
              (enum foo (const A 1))
              (function foo "void" (param x "enum foo")))
        '''
        graph = named(src, BindgenOptions(enum_style=EnumStyle.NEWTYPE))
        (enum,) = graph.items(ItemKind.ENUM)
        (fn,) = graph.items(ItemKind.FUNCTION)
        assert enum.names.item == "foo"
        assert fn.names.item == "foo_1"
        assert fn.names.symbol == "foo"

    def test_consts_enum_leaves_value_name_free(self):
        src = '''
            (translation-unit "n.h"
              (enum foo (const A 1))
              (function foo "void" (param x "enum foo")))
        '''
        graph = named(src)
        (fn,) = graph.items(ItemKind.FUNCTION)
        assert fn.names.item == "foo"
