"""bindweave — C/C++ → Rust binding generator.

This package lowers native declarations into a type graph, filters it,
lays it out for a target ABI, names it and emits ABI-faithful Rust.

Submodules
----------
errors
    Exception hierarchy, structured error codes (``BWG-XXXX``),
    ``ErrorMessage`` and the per-run ``DiagnosticCollector``.

abi
    Primitive sizes, alignments and bitfield rules per target triple.

decls, ctypes_grammar, decl_reader, clang_frontend
    The front-end-neutral declaration tree and the two front-ends that
    produce it: libclang for real headers and a ``.decl`` S-expression
    reader built on parsimonious.

options, directives
    ``BindgenOptions`` and the ``// bindweave-flags:`` input directive.

importer, ir
    Declaration tree → ``TypeGraph`` of Items joined by typed edges.

reachability, layout, naming, codegen
    The pipeline stages: selection, layout, identifiers, Rust text.

irdump
    S-expression rendering of the graph for debugging.

session, main
    ``BindgenSession`` (one run) and the ``bindweave`` CLI.

Usage
-----
Command-line::

    bindweave include/api.h -o src/bindings.rs -- -I include
    python -m bindweave point.decl --allowlist-type 'Point'

Programmatic::

    from bindweave.options import BindgenOptions
    from bindweave.session import generate_from_files

    result = generate_from_files(["api.h"], BindgenOptions())
    print(result.text)

"""

from __future__ import annotations

__version__: str = "0.1.0"
__all__: list[str] = [
    "__version__",
    "errors",
    "session",
    "main",
]
