# tests/test_clang_frontend.py
"""
Tests for the libclang front-end.

Skipped when the libclang shared library cannot be loaded.
"""

from pathlib import Path

import pytest

cindex = pytest.importorskip("clang.cindex")

from bindweave.clang_frontend import ClangFrontend, parse_header  # noqa: E402
from bindweave.decls import DeclKind, Language  # noqa: E402
from bindweave.errors import ParseError  # noqa: E402
from bindweave.options import BindgenOptions  # noqa: E402
from bindweave.session import generate_from_files  # noqa: E402


@pytest.fixture(scope="module", autouse=True)
def libclang():
    try:
        cindex.Index.create()
    except Exception as exc:  # LibclangError or OSError, depending on the install
        pytest.skip(f"libclang unavailable: {exc}")


@pytest.fixture
def header(tmp_path):
    def _write(text: str, name: str = "api.h") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path
    return _write


POINT_H = """
struct Point { int x; double y; };
typedef struct Point Point;
Point make_point(int x, double y);
"""


class TestLanguage:

    @pytest.mark.parametrize("name, language", [
        ("api.h", Language.C),
        ("api.hpp", Language.CXX),
        ("api.HH", Language.CXX),
        ("api.cpp", Language.CXX),
    ])
    def test_by_suffix(self, name, language):
        assert ClangFrontend().language_for(Path(name)) is language

    def test_forced(self):
        frontend = ClangFrontend(BindgenOptions(language="c++"))
        assert frontend.language_for(Path("api.h")) is Language.CXX

    def test_arguments(self):
        frontend = ClangFrontend(BindgenOptions(clang_args=("-DX=1",)))
        assert frontend.clang_arguments(Language.C) == [
            "-x", "c-header", "-target", frontend._options.target, "-DX=1"]


class TestLowering:

    def test_point(self, header):
        tu = parse_header(header(POINT_H))
        assert tu.kind is DeclKind.TRANSLATION_UNIT
        kinds = [(c.kind, c.name) for c in tu.children]
        assert (DeclKind.STRUCT, "Point") in kinds
        assert (DeclKind.FUNCTION, "make_point") in kinds
        point = tu.find("Point")
        assert [f.name for f in point.children_of(DeclKind.FIELD)] == ["x", "y"]

    def test_enum(self, header):
        tu = parse_header(header("enum Color { RED, GREEN, BLUE = 5 };\n"))
        color = tu.find("Color")
        values = [(c.name, c.value) for c in color.children_of(DeclKind.ENUM_CONSTANT)]
        assert values == [("RED", 0), ("GREEN", 1), ("BLUE", 5)]

    def test_clang_errors_are_parse_errors(self, header):
        with pytest.raises(ParseError) as info:
            parse_header(header("struct Broken { int x };\nint y = ;\n"))
        assert info.value.error_message.notes


class TestEndToEnd:

    def test_point(self, header):
        text = generate_from_files([header(POINT_H)]).text
        assert "pub struct Point {" in text
        assert "pub __padding_1: [u8; 4usize]," in text
        assert "pub y: f64," in text
        assert "pub fn make_point(x: ::std::os::raw::c_int, y: f64) -> Point;" in text

    def test_bitfields(self, header):
        text = generate_from_files([header("struct F { unsigned a : 3; unsigned b : 5; };\n")]).text
        assert "pub _bitfield_1: u32," in text
        assert "pub fn set_b(&mut self, val: ::std::os::raw::c_uint) {" in text

    def test_directive_in_header(self, header):
        path = header("// bindweave-flags: --allowlist-type Keep\n"
                      "struct Keep { int a; };\nstruct Drop { int b; };\n")
        text = generate_from_files([path]).text
        assert "pub struct Keep {" in text
        assert "Drop" not in text

    def test_cxx_class(self, header):
        path = header("class Widget {\npublic:\n  virtual ~Widget();\n  int id;\n};\n",
                      "widget.hpp")
        text = generate_from_files([path]).text
        assert "pub vtable_: *const ::std::os::raw::c_void," in text
        assert "pub id: ::std::os::raw::c_int," in text
