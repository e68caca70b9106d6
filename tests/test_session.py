# tests/test_session.py
"""
End-to-end tests: inputs on disk → Rust text, through ``BindgenSession``.
"""

import pytest

from bindweave.errors import (
    BindgenErrorCodes,
    ConfigError,
    InvariantViolationError,
    ParseError,
)
from bindweave.ir import ItemKind
from bindweave.options import BindgenOptions
from bindweave.session import (
    BindgenSession,
    generate_bindings,
    generate_from_files,
    parse_inputs,
)
from tests.conftest import (
    ANON_MEMBER_DECL, BAD_BITFIELD_DECL, BITFIELD_DECL, CONTAINMENT_CYCLE_DECL,
    CXX_CLASS_DECL, ENUM_DECL, MUTUAL_DECL, POINT_DECL, TEMPLATE_DECL, read,
)


class TestSession:

    def test_runs_once(self):
        session = BindgenSession()
        session.run(read(POINT_DECL))
        with pytest.raises(InvariantViolationError):
            session.run(read(POINT_DECL))

    def test_invalid_options_fail_early(self):
        with pytest.raises(ConfigError):
            BindgenSession(BindgenOptions(target="nope"))

    @pytest.mark.parametrize("src", [POINT_DECL, CXX_CLASS_DECL, TEMPLATE_DECL])
    def test_deterministic(self, src):
        assert generate_bindings(read(src)).text == generate_bindings(read(src)).text

    def test_degraded_items_are_warnings(self):
        result = generate_bindings(read(BAD_BITFIELD_DECL))
        assert "pub struct Good {" in result.text
        assert not result.diagnostics.has_errors()
        assert [w.item for w in result.diagnostics.warnings()] == ["Bad"]

    def test_containment_cycle_produces_no_text(self):
        with pytest.raises(InvariantViolationError) as info:
            generate_bindings(read(CONTAINMENT_CYCLE_DECL))
        assert info.value.code == BindgenErrorCodes.CONTAINMENT_CYCLE

    def test_pointer_cycle_is_fine(self):
        text = generate_bindings(read(MUTUAL_DECL)).text
        assert "pub b: *mut B," in text
        assert "pub a: *mut A," in text


class TestInputs:

    def test_merged_inputs_share_declarations(self, decl_file):
        first = decl_file(POINT_DECL, "first.decl")
        second = decl_file(POINT_DECL.replace('"point.h"', '"other.h"'), "second.decl")
        result = generate_from_files([first, second])
        structs = [i for i in result.graph.find_all("Point") if i.kind is ItemKind.STRUCT]
        assert len(structs) == 1
        assert result.text.count("pub struct Point {") == 1
        assert result.text.count("pub fn make_point(") == 1

    def test_merged_translation_unit(self, decl_file):
        c_file = decl_file(POINT_DECL, "a.decl")
        cxx_file = decl_file(CXX_CLASS_DECL, "b.decl")
        tu = parse_inputs([c_file, cxx_file])
        assert tu.name == "point.h"
        assert tu.language.value == "c++"

    def test_no_inputs(self):
        with pytest.raises(ConfigError):
            parse_inputs([])

    def test_directive_applies_to_run(self, decl_file):
        path = decl_file("; bindweave-flags: --enum-style rust\n" + ENUM_DECL)
        text = generate_from_files([path]).text
        assert "pub enum Color {" in text

    def test_directive_extends_caller_options(self, decl_file):
        path = decl_file("; bindweave-flags: --allowlist-type Color\n" + ENUM_DECL)
        options = BindgenOptions(header_comment=False)
        text = generate_from_files([path], options).text
        assert text.startswith("pub type Color")

    def test_malformed_input(self, decl_file):
        path = decl_file('(translation-unit "x.h" (struct')
        with pytest.raises(ParseError):
            generate_from_files([path])


def test_stage_functions_compose():
    from bindweave.codegen import emit_rust
    from bindweave.importer import Importer
    from bindweave.layout import resolve_layouts
    from bindweave.naming import resolve_names
    from bindweave.reachability import select_items

    graph = Importer().import_translation_unit(read(POINT_DECL))
    graph = resolve_names(resolve_layouts(select_items(graph)))
    assert emit_rust(graph) == generate_bindings(read(POINT_DECL)).text


@pytest.mark.parametrize("src", [POINT_DECL, BITFIELD_DECL, ANON_MEMBER_DECL, TEMPLATE_DECL])
def test_prepared_graph_is_a_fixed_point(src):
    from bindweave.codegen import RustEmitter
    from bindweave.layout import resolve_layouts
    from bindweave.naming import resolve_names
    from bindweave.reachability import select_items

    result = generate_bindings(read(src))
    assert RustEmitter().emit(result.graph) == result.text
    again = resolve_names(resolve_layouts(select_items(result.graph)))
    assert again.selection == result.graph.selection
    assert RustEmitter().emit(again) == result.text
