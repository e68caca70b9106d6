# tests/conftest.py
"""
Shared fixtures for the bindweave test suite.

Declaration trees are written in the ``.decl`` S-expression format so the
pipeline can be exercised without libclang.  The helpers below run the
pipeline up to a given stage.
"""

from typing import Optional

import pytest

from bindweave.decl_reader import read_decl_text
from bindweave.errors import DiagnosticCollector
from bindweave.importer import Importer
from bindweave.ir import TypeGraph
from bindweave.layout import LayoutResolver
from bindweave.naming import NameResolver
from bindweave.options import BindgenOptions
from bindweave.reachability import ReachabilityFilter
from bindweave.session import BindgenResult, generate_bindings


# ─────────────────────────────────────────────────────────────────────────
# Declaration sources
# ─────────────────────────────────────────────────────────────────────────

POINT_DECL = '''
(translation-unit "point.h" :language c
  (struct Point
    (field x "int")
    (field y "double"))
  (typedef Point "struct Point")
  (function make_point "Point" (param x "int") (param y "double")))
'''

BITFIELD_DECL = '''
(translation-unit "flags.h" :language c
  (struct Flags
    (field a "unsigned int" :bits 3)
    (field b "unsigned int" :bits 5)))
'''

MIXED_BITFIELD_DECL = '''
(translation-unit "mixed.h" :language c
  (struct Mixed
    (field a "char" :bits 4)
    (field b "int" :bits 4)))
'''

BAD_BITFIELD_DECL = '''
(translation-unit "bad.h" :language c
  (struct Bad (field wide "char" :bits 9))
  (struct Good (field v "int")))
'''

LINKED_LIST_DECL = '''
(translation-unit "list.h" :language c
  (struct Node
    (field value "int")
    (field next "struct Node *")))
'''

MUTUAL_DECL = '''
(translation-unit "mutual.h" :language c
  (struct A (field b "struct B *"))
  (struct B (field a "struct A *")))
'''

CONTAINMENT_CYCLE_DECL = '''
(translation-unit "cycle.h" :language c
  (struct A (field b "struct B"))
  (struct B (field a "struct A")))
'''

ENUM_DECL = '''
(translation-unit "color.h" :language c
  (enum Color
    (const RED)
    (const GREEN)
    (const BLUE 5)))
'''

ANON_ENUM_DECL = '''
(translation-unit "limits.h" :language c
  (enum (const MAX_ITEMS 16) (const MIN_ITEMS 2)))
'''

SIGNED_ENUM_DECL = '''
(translation-unit "sign.h" :language c
  (enum Sign (const NEG -1) (const POS 1)))
'''

KEYWORD_DECL = '''
(translation-unit "kw.h" :language c
  (struct type
    (field match "int")
    (field fn "int"))
  (function move "void" (param ref "int")))
'''

NAMESPACE_COLLISION_DECL = '''
(translation-unit "ns.hpp" :language c++
  (namespace a
    (struct Handle (field x "int"))
    (function init "void"))
  (namespace b
    (struct Handle (field y "long"))
    (function init "void")))
'''

CLOSURE_DECL = '''
(translation-unit "closure.h" :language c
  (struct Inner (field v "int"))
  (struct Outer
    (field inner "struct Inner")
    (field other "struct Other *"))
  (struct Other (field z "int"))
  (struct Unrelated (field q "int"))
  (function use_outer "void" (param o "struct Outer *"))
  (function unrelated_fn "int"))
'''

FORWARD_DECL = '''
(translation-unit "fwd.h" :language c
  (struct Node :forward)
  (function visit "void" (param n "struct Node *"))
  (struct Node (field v "int")))
'''

INCOMPLETE_DECL = '''
(translation-unit "handle.h" :language c
  (struct Handle :forward)
  (function open_handle "struct Handle *" (param path "const char *")))
'''

TEMPLATE_DECL = '''
(translation-unit "box.hpp" :language c++
  (class-template Box
    (template-param T)
    (field value "T")
    (field count "int"))
  (struct Holder
    (field ints "Box<int>")
    (field doubles "Box<double>")))
'''

PACKED_DECL = '''
(translation-unit "packed.h" :language c
  (struct P :packed (field c "char") (field i "int"))
  (struct Q :pack 2 (field c "char") (field i "int"))
  (struct Al :align 16 (field x "int")))
'''

UNION_DECL = '''
(translation-unit "union.h" :language c
  (union U (field i "int") (field d "double")))
'''

ANON_MEMBER_DECL = '''
(translation-unit "anon.h" :language c
  (struct Value
    (field tag "int")
    (union (field i "int") (field f "float")))
  (struct Flat
    (field a "int")
    (struct (field b "int") (field c "int"))))
'''

TYPEDEF_ANON_DECL = '''
(translation-unit "vec.h" :language c
  (typedef Vec2 (struct (field x "float") (field y "float"))))
'''

ALIASED_STRUCT_DECL = '''
(translation-unit "foo.h" :language c
  (struct Foo (field x "int"))
  (typedef FooT "struct Foo")
  (function take "void" (param p "FooT *"))
  (function take_foo "void" (param p "struct Foo *")))
'''

FUNCTIONS_DECL = '''
(translation-unit "funcs.h" :language c
  (typedef callback_t "void (*)(int, void *)")
  (function register_cb "int" (param cb "callback_t") (param data "void *"))
  (function log_msg "int" (param fmt "const char *") :variadic)
  (function die "void" (param code "int") :noreturn)
  (function helper "void" :linkage internal)
  (function bad_call "void" (param x "int") :callconv stdcall :variadic))
'''

CXX_CLASS_DECL = '''
(translation-unit "widget.hpp" :language c++
  (class Widget :vtable (field id "int"))
  (struct Base (field a "int"))
  (struct Derived (base "Base") (field b "int"))
  (struct Empty)
  (function area "double" (param w "double") :mangled "_Z4aread")
  (function-template maxOf))
'''

SIZE_MISMATCH_DECL = '''
(translation-unit "hint.h" :language c
  (struct S :size 12 (field x "int")))
'''


# ─────────────────────────────────────────────────────────────────────────
# Pipeline helpers
# ─────────────────────────────────────────────────────────────────────────

def read(src: str, filename: str = "test.decl"):
    """Parse ``.decl`` text into a translation-unit DeclNode."""
    return read_decl_text(src, filename)


def import_graph(src: str, options: Optional[BindgenOptions] = None) -> TypeGraph:
    return Importer(options).import_translation_unit(read(src))


def selected(src: str, options: Optional[BindgenOptions] = None) -> TypeGraph:
    return ReachabilityFilter(options).select(import_graph(src, options))


def laid_out(src: str, options: Optional[BindgenOptions] = None,
             diagnostics: Optional[DiagnosticCollector] = None) -> TypeGraph:
    opts = options or BindgenOptions()
    return LayoutResolver(opts.abi(), opts.padding, diagnostics).resolve(selected(src, opts))


def named(src: str, options: Optional[BindgenOptions] = None) -> TypeGraph:
    return NameResolver(options).resolve(laid_out(src, options))


def bindgen(src: str, options: Optional[BindgenOptions] = None) -> BindgenResult:
    """Run the whole pipeline on ``.decl`` text."""
    return generate_bindings(read(src), options)


def slot_table(graph: TypeGraph, name: str):
    """``[(slot name, offset, size), ...]`` of a laid-out aggregate."""
    item = graph.find(name)
    assert item is not None and item.layout is not None, name
    return [(s.name, s.offset, s.size) for s in item.layout.slots]


# ─────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────

@pytest.fixture
def options():
    return BindgenOptions()


@pytest.fixture
def diagnostics():
    return DiagnosticCollector()


@pytest.fixture
def decl_file(tmp_path):
    """Write ``.decl`` text to a temporary file and return its path."""
    def _write(src: str, name: str = "input.decl"):
        path = tmp_path / name
        path.write_text(src, encoding="utf-8")
        return path
    return _write
