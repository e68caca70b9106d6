# tests/test_decl_reader.py
"""
Tests for the ``.decl`` declaration-tree reader.
"""

import pytest

from bindweave.decl_reader import read_decl_file, read_sexp
from bindweave.decls import DeclKind, Language, TypeRefKind
from bindweave.errors import BindgenErrorCodes, ParseError
from tests.conftest import (
    ANON_MEMBER_DECL, CXX_CLASS_DECL, ENUM_DECL, FORWARD_DECL,
    FUNCTIONS_DECL, POINT_DECL, TEMPLATE_DECL, TYPEDEF_ANON_DECL,
    read,
)


class TestSexp:

    def test_atoms(self):
        form = read_sexp('(a "s t" :kw 12 -3 0x1f 017)')
        assert form.head == "a"
        assert form[1] == "s t"
        assert form[2] == "kw"
        assert form[3:] == [12, -3, 31, 15]

    def test_comments_and_nesting(self):
        form = read_sexp('; leading comment\n(outer\n  (inner 1) ; trailing\n)')
        assert form.head == "outer"
        assert form[1].head == "inner"
        assert form[1].line == 3

    def test_escaped_quotes(self):
        form = read_sexp(r'(s "say \"hi\"")')
        assert form[1] == 'say "hi"'

    def test_unbalanced(self):
        with pytest.raises(ParseError) as info:
            read_sexp("(a (b)")
        assert info.value.code == BindgenErrorCodes.SYNTAX_ERROR


class TestTranslationUnit:

    def test_point(self):
        tu = read(POINT_DECL)
        assert tu.kind is DeclKind.TRANSLATION_UNIT
        assert tu.name == "point.h"
        assert tu.language is Language.C
        kinds = [c.kind for c in tu.children]
        assert kinds == [DeclKind.STRUCT, DeclKind.TYPEDEF, DeclKind.FUNCTION]

    def test_fields_and_usr(self):
        point = read(POINT_DECL).find("Point")
        assert point.usr == "tag:Point"
        fields = point.children_of(DeclKind.FIELD)
        assert [f.name for f in fields] == ["x", "y"]
        assert fields[0].type.kind is TypeRefKind.PRIMITIVE

    def test_typedef_resolves_to_tag(self):
        tu = read(POINT_DECL)
        typedef = tu.children[1]
        assert typedef.usr == "typedef:Point"
        assert typedef.type.kind is TypeRefKind.RECORD
        assert typedef.type.usr == "tag:Point"

    def test_function_uses_typedef_name(self):
        fn = read(POINT_DECL).children[2]
        assert fn.type.kind is TypeRefKind.TYPEDEF
        assert [p.name for p in fn.children_of(DeclKind.PARAM)] == ["x", "y"]

    def test_language_cxx(self):
        assert read(TEMPLATE_DECL).language is Language.CXX

    def test_unknown_language(self):
        with pytest.raises(ParseError):
            read('(translation-unit "x.h" :language fortran)')

    def test_not_a_translation_unit(self):
        with pytest.raises(ParseError):
            read('(struct Point)')


class TestDeclarations:

    def test_enum_constants(self):
        enum = read(ENUM_DECL).find("Color")
        values = [(c.name, c.value) for c in enum.children]
        assert values == [("RED", None), ("GREEN", None), ("BLUE", 5)]

    def test_forward_declaration(self):
        tu = read(FORWARD_DECL)
        forward, _, definition = tu.children
        assert not forward.is_definition
        assert definition.is_definition
        assert forward.usr == definition.usr

    def test_function_attributes(self):
        tu = read(FUNCTIONS_DECL)
        by_name = {c.name: c for c in tu.children}
        assert by_name["log_msg"].variadic
        assert by_name["die"].noreturn
        assert by_name["helper"].linkage == "internal"
        assert by_name["bad_call"].callconv == "stdcall"

    def test_unnamed_bitfields(self):
        tu = read('''
            (translation-unit "u.h"
              (struct U
                (field a "unsigned int" :bits 3)
                (field _ "unsigned int" :bits 5)
                (field _ "unsigned int" :bits 0)))
        ''')
        fields = tu.find("U").children_of(DeclKind.FIELD)
        assert [(f.name, f.bit_width) for f in fields] == [("a", 3), ("", 5), ("", 0)]
        assert len({f.usr for f in fields}) == 3

    def test_anonymous_member_gets_synthetic_field(self):
        value = read(ANON_MEMBER_DECL).find("Value")
        union = value.children_of(DeclKind.UNION)[0]
        assert union.anonymous_member
        synthetic = [f for f in value.children_of(DeclKind.FIELD) if not f.name]
        assert len(synthetic) == 1
        assert synthetic[0].type.usr == union.usr

    def test_inline_typedef_record(self):
        tu = read(TYPEDEF_ANON_DECL)
        record, typedef = tu.children
        assert record.kind is DeclKind.STRUCT
        assert record.typedef_name == "Vec2"
        assert not record.anonymous_member
        assert typedef.type.usr == record.usr

    def test_class_template(self):
        template = read(TEMPLATE_DECL).find("Box")
        assert template.kind is DeclKind.CLASS_TEMPLATE
        params = template.children_of(DeclKind.TEMPLATE_PARAM)
        assert [p.name for p in params] == ["T"]
        value = template.children_of(DeclKind.FIELD)[0]
        assert value.type.kind is TypeRefKind.TEMPLATE_PARAM

    def test_instantiation_reference(self):
        holder = read(TEMPLATE_DECL).find("Holder")
        ints = holder.children_of(DeclKind.FIELD)[0]
        assert ints.type.kind is TypeRefKind.INSTANTIATION
        assert ints.type.usr == "template:Box"
        assert ints.type.args[0].kind is TypeRefKind.PRIMITIVE

    def test_cxx_class_attributes(self):
        tu = read(CXX_CLASS_DECL)
        widget = tu.find("Widget")
        assert widget.kind is DeclKind.CLASS
        assert widget.has_vtable
        derived = tu.find("Derived")
        base = derived.children_of(DeclKind.BASE)[0]
        assert base.type.usr == "tag:Base"
        area = tu.find("area")
        assert area.mangled_name == "_Z4aread"

    def test_namespaces_qualify_usrs(self):
        tu = read('''
            (translation-unit "ns.hpp" :language c++
              (namespace outer
                (namespace inner (struct Thing (field x "int")))
                (typedef ThingAlias "inner::Thing")))
        ''')
        thing = tu.find("Thing")
        assert thing.usr == "tag:outer::inner::Thing"
        alias = tu.find("ThingAlias")
        assert alias.type.usr == "tag:outer::inner::Thing"


class TestErrors:

    def test_unknown_type_name(self):
        with pytest.raises(ParseError) as info:
            read('(translation-unit "x.h" (struct S (field f "mystery_t")))')
        assert info.value.code == BindgenErrorCodes.UNKNOWN_TYPE_NAME
        assert info.value.location.file == "test.decl"

    def test_only_bitfields_may_be_unnamed(self):
        with pytest.raises(ParseError):
            read('(translation-unit "x.h" (struct S (field _ "int")))')

    def test_unknown_form(self):
        with pytest.raises(ParseError):
            read('(translation-unit "x.h" (variable v "int"))')

    def test_unknown_attribute(self):
        with pytest.raises(ParseError):
            read('(translation-unit "x.h" (struct S :shiny (field f "int")))')

    def test_attribute_needs_integer(self):
        with pytest.raises(ParseError):
            read('(translation-unit "x.h" (struct S :size "big"))')

    def test_namespace_requires_cxx(self):
        with pytest.raises(ParseError):
            read('(translation-unit "x.h" (namespace n))')

    def test_class_requires_cxx(self):
        with pytest.raises(ParseError):
            read('(translation-unit "x.h" (class C))')

    def test_missing_file(self, tmp_path):
        with pytest.raises(ParseError):
            read_decl_file(tmp_path / "absent.decl")

    def test_read_file(self, decl_file):
        path = decl_file(POINT_DECL, "point.decl")
        tu = read_decl_file(path)
        assert tu.find("Point").location.file == str(path)
