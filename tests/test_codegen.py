# tests/test_codegen.py
"""
Tests for Rust code generation: prepared type graph → Rust source.
Verifies exact spellings of declarations, layout assertions and accessors.
"""

import pytest

from bindweave import __version__
from bindweave.codegen import CodeEmitter
from bindweave.errors import BindgenErrorCodes
from bindweave.options import (
    BindgenOptions,
    DenyPolicy,
    EnumStyle,
    MaterializeAll,
    PaddingPolicy,
)
from tests.conftest import (
    ALIASED_STRUCT_DECL, ANON_ENUM_DECL, ANON_MEMBER_DECL, BAD_BITFIELD_DECL, BITFIELD_DECL,
    CLOSURE_DECL, CXX_CLASS_DECL, ENUM_DECL, FUNCTIONS_DECL,
    INCOMPLETE_DECL, KEYWORD_DECL, LINKED_LIST_DECL, MIXED_BITFIELD_DECL,
    PACKED_DECL,
    POINT_DECL, SIGNED_ENUM_DECL, SIZE_MISMATCH_DECL, TEMPLATE_DECL,
    TYPEDEF_ANON_DECL, UNION_DECL, bindgen,
)

INT = "::std::os::raw::c_int"
UINT = "::std::os::raw::c_uint"

POINT_RS = f'''\
/* automatically generated by bindweave {__version__} */

#[repr(C)]
#[derive(Debug, Copy, Clone)]
pub struct Point {{
    pub x: ::std::os::raw::c_int,
    pub __padding_1: [u8; 4usize],
    pub y: f64,
}}
#[allow(clippy::unnecessary_operation, clippy::identity_op)]
const _: () = {{
    ["Size of Point"][::std::mem::size_of::<Point>() - 16usize];
    ["Alignment of Point"][::std::mem::align_of::<Point>() - 8usize];
    ["Offset of field: Point::x"][::std::mem::offset_of!(Point, x) - 0usize];
    ["Offset of field: Point::y"][::std::mem::offset_of!(Point, y) - 8usize];
}};

extern "C" {{
    pub fn make_point(x: ::std::os::raw::c_int, y: f64) -> Point;
}}
'''


def _gen(src: str, **options) -> str:
    """Run the pipeline, return the Rust text."""
    return bindgen(src, BindgenOptions(**options)).text


def _lines(src: str, **options):
    return [line.strip() for line in _gen(src, **options).splitlines()]


class TestCodeEmitter:

    def test_blocks_indent(self):
        out = CodeEmitter()
        with out.block("pub struct A"):
            out.emit("pub x: u8,")
        assert out.get_code() == "pub struct A {\n    pub x: u8,\n}\n"

    def test_custom_close(self):
        out = CodeEmitter()
        with out.block("const _: () =", close="};"):
            out.emit("x;")
        assert out.get_code() == "const _: () = {\n    x;\n};\n"

    def test_blank_lines_have_no_indent(self):
        out = CodeEmitter()
        out.indent()
        out.emit("")
        assert out.get_code() == "\n"

    def test_escape_string(self):
        assert CodeEmitter.escape_string('a"b\\c') == 'a\\"b\\\\c'


class TestStructs:

    def test_point_exact_output(self):
        assert _gen(POINT_DECL) == POINT_RS

    def test_output_is_deterministic(self):
        assert _gen(CXX_CLASS_DECL) == _gen(CXX_CLASS_DECL)

    def test_no_header_comment(self):
        text = _gen(POINT_DECL, header_comment=False)
        assert text.startswith("#[repr(C)]\n")

    def test_no_layout_tests(self):
        text = _gen(POINT_DECL, layout_tests=False)
        assert "const _: ()" not in text
        assert "offset_of!" not in text

    def test_no_derive_debug(self):
        lines = _lines(POINT_DECL, derive_debug=False)
        assert "#[derive(Copy, Clone)]" in lines

    def test_padding_when_required(self):
        lines = _lines(POINT_DECL, padding=PaddingPolicy.WHEN_REQUIRED)
        assert "pub __padding_1: [u8; 4usize]," not in lines

    def test_self_referential(self):
        lines = _lines(LINKED_LIST_DECL)
        assert "pub next: *mut Node," in lines
        assert "#[derive(Debug)]" in lines

    def test_keywords_are_escaped(self):
        lines = _lines(KEYWORD_DECL)
        assert "pub struct type_ {" in lines
        assert f"pub match_: {INT}," in lines
        assert '#[link_name = "move"]' in lines
        assert f"pub fn move_(ref_: {INT});" in lines

    def test_dependencies_come_first(self):
        text = _gen(CLOSURE_DECL)
        assert text.index("pub struct Inner {") < text.index("pub struct Outer {")

    def test_typedef_of_anonymous_struct(self):
        lines = _lines(TYPEDEF_ANON_DECL)
        assert "pub struct Vec2 {" in lines
        assert not any(line.startswith("pub type Vec2") for line in lines)


class TestReprs:

    def test_packed(self):
        lines = _lines(PACKED_DECL)
        assert "#[repr(C, packed)]" in lines
        assert "#[repr(C, packed(2))]" in lines
        assert "#[repr(C, align(16))]" in lines
        assert "pub __padding_1: [u8; 12usize]," in lines

    def test_packed_and_aligned_becomes_blob(self):
        result = bindgen('''
            (translation-unit "pa.h"
              (struct PA :packed :align 8 (field c "char") (field i "int")))
        ''')
        lines = [line.strip() for line in result.text.splitlines()]
        assert "#[repr(C, align(8))]" in lines
        assert "pub _opaque_blob: [u8; 8usize]," in lines
        assert result.diagnostics.by_code(BindgenErrorCodes.UNSUPPORTED_TYPE)

    def test_union(self):
        text = _gen(UNION_DECL)
        assert "#[derive(Copy, Clone)]\npub union U {" in text
        assert "__padding" not in text

    def test_anonymous_members(self):
        lines = _lines(ANON_MEMBER_DECL)
        assert "pub __anon_1: Value__anon_1," in lines
        assert "pub union Value__anon_1 {" in lines
        assert "pub b: ::std::os::raw::c_int," in lines
        assert "pub struct Flat__anon_1 {" not in lines


class TestBitfields:

    def test_storage_unit_and_accessors(self):
        text = _gen(BITFIELD_DECL)
        lines = [line.strip() for line in text.splitlines()]
        assert "pub _bitfield_1: u32," in lines
        assert "impl Flags {" in lines
        assert f"pub fn a(&self) -> {UINT} {{" in lines
        assert f"((self._bitfield_1 >> 0u32) & 0x7) as {UINT}" in lines
        assert f"((self._bitfield_1 >> 3u32) & 0x1f) as {UINT}" in lines
        assert f"pub fn set_b(&mut self, val: {UINT}) {{" in lines
        assert ("self._bitfield_1 = (self._bitfield_1 & !(0x1f << 3u32)) "
                "| (val << 3u32);") in lines

    def test_signed_bitfield_sign_extends(self):
        lines = _lines('''
            (translation-unit "s.h" (struct S (field v "int" :bits 4)))
        ''')
        assert f"((self._bitfield_1 << 28u32) as i32 >> 28u32) as {INT}" in lines

    def test_bool_bitfield(self):
        lines = _lines('''
            (translation-unit "b.h" (struct B (field on "bool" :bits 1)))
        ''')
        assert "((self._bitfield_1 >> 0u32) & 0x1) != 0" in lines

    def test_msvc_units(self):
        lines = _lines(MIXED_BITFIELD_DECL, target="x86_64-pc-windows-msvc")
        assert "pub _bitfield_1: u8," in lines
        assert "pub __padding_1: [u8; 3usize]," in lines
        assert "pub _bitfield_2: u32," in lines


class TestEnums:

    def test_consts_style(self):
        lines = _lines(ENUM_DECL)
        assert f"pub type Color = {UINT};" in lines
        assert "pub const Color_RED: Color = 0;" in lines
        assert "pub const Color_BLUE: Color = 5;" in lines

    def test_rust_style(self):
        lines = _lines(ENUM_DECL, enum_style=EnumStyle.RUST)
        assert "#[repr(u32)]" in lines
        assert "pub enum Color {" in lines
        assert "RED = 0," in lines

    def test_rust_style_duplicate_values(self):
        lines = _lines('''
            (translation-unit "d.h" (enum Level (const LOW 0) (const MIN 0)))
        ''', enum_style=EnumStyle.RUST)
        assert "pub const MIN: Level = Level::LOW;" in lines
        assert "MIN = 0," not in lines

    def test_newtype_style(self):
        lines = _lines(ENUM_DECL, enum_style=EnumStyle.NEWTYPE)
        assert "impl Color {" in lines
        assert "pub const RED: Color = Color(0);" in lines
        assert "#[repr(transparent)]" in lines
        assert f"pub struct Color(pub {UINT});" in lines

    def test_newtype_enum_and_same_named_function(self):
        lines = _lines('''
            (translation-unit "n.h"
              (enum foo (const A 1))
              (function foo "void" (param x "enum foo")))
        ''', enum_style=EnumStyle.NEWTYPE)
        assert f"pub struct foo(pub {UINT});" in lines
        assert '#[link_name = "foo"]' in lines
        assert "pub fn foo_1(x: foo);" in lines

    def test_anonymous_enum(self):
        lines = _lines(ANON_ENUM_DECL)
        assert f"pub const MAX_ITEMS: {UINT} = 16;" in lines

    def test_signed_repr(self):
        lines = _lines(SIGNED_ENUM_DECL)
        assert f"pub type Sign = {INT};" in lines
        assert "pub const Sign_NEG: Sign = -1;" in lines

    def test_same_named_enums_in_namespaces(self):
        lines = _lines('''
            (translation-unit "modes.hpp" :language c++
              (namespace a (enum Mode (const ON)) (function set_a "void" (param m "Mode")))
              (namespace b (enum Mode (const OFF)) (function set_b "void" (param m "Mode"))))
        ''')
        assert f"pub type Mode = {UINT};" in lines
        assert f"pub type Mode_1 = {UINT};" in lines
        assert "pub fn set_a(m: Mode);" in lines
        assert "pub fn set_b(m: Mode_1);" in lines


class TestFunctions:

    def test_function_pointers_variadics_and_noreturn(self):
        lines = _lines(FUNCTIONS_DECL)
        assert ("pub type callback_t = ::std::option::Option<unsafe extern \"C\" "
                f"fn({INT}, *mut ::std::os::raw::c_void)>;") in lines
        assert (f"pub fn log_msg(fmt: *const ::std::os::raw::c_char, ...) -> {INT};"
                in lines)
        assert f"pub fn die(code: {INT}) -> !;" in lines

    def test_skipped_functions(self):
        result = bindgen(FUNCTIONS_DECL)
        assert "fn helper" not in result.text
        assert "fn bad_call" not in result.text
        assert result.diagnostics.by_code(BindgenErrorCodes.UNSUPPORTED_DECLARATION)

    def test_mangled_link_name(self):
        lines = _lines(CXX_CLASS_DECL)
        assert r'#[link_name = "\u{1}_Z4aread"]' in lines
        assert "pub fn area(w: f64) -> f64;" in lines

    def test_other_calling_convention(self):
        lines = _lines('''
            (translation-unit "w.h" (function win "void" :callconv stdcall))
        ''')
        assert 'extern "stdcall" {' in lines


class TestOpaque:

    def test_incomplete_type(self):
        lines = _lines(INCOMPLETE_DECL)
        assert "pub struct Handle {" in lines
        assert "_unused: [u8; 0]," in lines
        assert ("pub fn open_handle(path: *const ::std::os::raw::c_char) -> *mut Handle;"
                in lines)

    def test_degraded_bitfield_item(self):
        result = bindgen(BAD_BITFIELD_DECL)
        lines = [line.strip() for line in result.text.splitlines()]
        assert "_unused: [u8; 0]," in lines
        assert "pub v: ::std::os::raw::c_int," in lines
        assert result.diagnostics.by_code(BindgenErrorCodes.INVALID_BITFIELD)

    def test_size_mismatch_blob(self):
        lines = _lines(SIZE_MISMATCH_DECL)
        assert "#[repr(C, align(1))]" in lines
        assert "pub _opaque_blob: [u8; 12usize]," in lines

    def test_blocklisted_dependency_blob(self):
        lines = _lines(CLOSURE_DECL, allowlist_functions=("use_outer",),
                       blocklist_types=("Inner",))
        assert "#[repr(C, align(4))]" in lines
        assert "pub _opaque_blob: [u8; 4usize]," in lines
        assert "pub struct Unrelated {" not in lines

    def test_force_include(self):
        lines = _lines(CLOSURE_DECL, allowlist_functions=("use_outer",),
                       blocklist_types=("Inner",), deny_policy=DenyPolicy.FORCE_INCLUDE)
        assert "pub v: ::std::os::raw::c_int," in lines

    def test_blocklisted_alias_keeps_target_fields(self):
        lines = _lines(ALIASED_STRUCT_DECL, blocklist_types=("FooT",))
        assert "pub struct Foo {" in lines
        assert f"pub x: {INT}," in lines
        assert "_opaque_blob" not in " ".join(lines)
        assert "pub type FooT = Foo;" in lines


class TestCxx:

    def test_vtable_and_base(self):
        lines = _lines(CXX_CLASS_DECL)
        assert "pub vtable_: *const ::std::os::raw::c_void," in lines
        assert "pub _base: Base," in lines
        assert "pub struct Empty {" in lines

    def test_template_instantiations_are_blobs(self):
        text = _gen(TEMPLATE_DECL)
        lines = [line.strip() for line in text.splitlines()]
        assert "pub struct Box_int {" in lines
        assert "pub _opaque_blob: [u8; 8usize]," in lines
        assert "pub _opaque_blob: [u8; 16usize]," in lines
        assert "pub ints: Box_int," in lines
        assert '["Size of Holder"][::std::mem::size_of::<Holder>() - 24usize];' in lines

    def test_materialized_instantiations(self):
        lines = _lines(TEMPLATE_DECL, instantiation_policy=MaterializeAll())
        assert "pub value: f64," in lines
        assert "pub _opaque_blob: [u8; 8usize]," not in lines


@pytest.mark.parametrize("src", [
    POINT_DECL, BITFIELD_DECL, ENUM_DECL, FUNCTIONS_DECL, CXX_CLASS_DECL,
    TEMPLATE_DECL, ANON_MEMBER_DECL, PACKED_DECL,
])
def test_braces_balance(src):
    text = _gen(src)
    assert text.count("{") == text.count("}")
    assert text.endswith("\n")
