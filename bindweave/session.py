# bindweave/session.py
"""
One binding-generation run.

``BindgenSession`` owns everything that lives for the duration of a run:
the options, the ``DiagnosticCollector`` and the importer with its dedup
cache.  ``run`` sequences the stages::

    import  →  select  →  layout  →  names  →  emit

Each stage takes the previous ``TypeGraph`` snapshot and returns a new one.
A run-scoped error propagates out of ``run`` and no text is produced; an
Item-scoped problem only degrades that Item and shows up as a warning in
``BindgenResult.diagnostics``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .decl_reader import read_decl_file
from .decls import DeclKind, DeclNode, Language
from .directives import apply_directives
from .errors import ConfigError, DiagnosticCollector, InvariantViolationError, SourceLocation
from .importer import Importer
from .ir import TypeGraph
from .layout import LayoutResolver
from .naming import NameResolver
from .options import BindgenOptions
from .reachability import ReachabilityFilter
from .codegen import RustEmitter

logger = logging.getLogger(__name__)

DECL_SUFFIX = ".decl"

PathLike = Union[str, Path]


@dataclass(frozen=True)
class BindgenResult:
    """Output of a successful run."""

    text: str
    graph: TypeGraph
    diagnostics: DiagnosticCollector


class BindgenSession:
    """A single run; create a new session for every run."""

    def __init__(self, options: Optional[BindgenOptions] = None) -> None:
        self.options = (options or BindgenOptions()).validate()
        self.diagnostics = DiagnosticCollector()
        self.importer = Importer(self.options, self.diagnostics)
        self._used = False

    def run(self, tu: DeclNode) -> BindgenResult:
        if self._used:
            raise InvariantViolationError("a BindgenSession runs exactly once")
        self._used = True
        options = self.options
        abi = options.abi()

        graph = self.importer.import_translation_unit(tu)
        logger.info("imported %d items from %s", len(graph), tu.name)
        graph = ReachabilityFilter(options).select(graph)
        graph = LayoutResolver(abi, options.padding, self.diagnostics).resolve(graph)
        graph = NameResolver(options).resolve(graph)
        text = RustEmitter(options, abi, self.diagnostics).emit(graph)

        warnings = len(self.diagnostics.warnings())
        if warnings:
            logger.info("%s: %d item(s) degraded", tu.name, warnings)
        return BindgenResult(text=text, graph=graph, diagnostics=self.diagnostics)


def generate_bindings(tu: DeclNode, options: Optional[BindgenOptions] = None) -> BindgenResult:
    """Run the whole pipeline on an already parsed translation unit."""
    return BindgenSession(options).run(tu)


# ── Inputs ───────────────────────────────────────────────────────

def options_for_inputs(paths: Sequence[PathLike], options: BindgenOptions) -> BindgenOptions:
    """``options`` extended by every input's ``bindweave-flags`` directives."""
    for path in paths:
        options = apply_directives(options, path)
    return options


def parse_input(path: PathLike, options: BindgenOptions) -> DeclNode:
    path = Path(path)
    if path.suffix == DECL_SUFFIX:
        return read_decl_file(path)
    # libclang is only loaded for header inputs.
    from .clang_frontend import parse_header
    return parse_header(path, options)


def parse_inputs(paths: Sequence[PathLike], options: Optional[BindgenOptions] = None) -> DeclNode:
    """Parse every input and merge them into one translation unit.

    Declarations seen in more than one input share a USR and are imported
    once.
    """
    options = options or BindgenOptions()
    if not paths:
        raise ConfigError("no input files")
    units: List[DeclNode] = [parse_input(p, options) for p in paths]
    if len(units) == 1:
        return units[0]
    language = Language.CXX if any(u.language is Language.CXX for u in units) else Language.C
    merged = DeclNode(
        kind=DeclKind.TRANSLATION_UNIT,
        name=units[0].name,
        location=SourceLocation(units[0].name, 1, 1),
        language=language,
    )
    for unit in units:
        merged.children.extend(unit.children)
    return merged


def generate_from_files(paths: Sequence[PathLike],
                        options: Optional[BindgenOptions] = None) -> BindgenResult:
    """Apply directives, parse ``paths`` and run the pipeline."""
    options = options_for_inputs(paths, options or BindgenOptions())
    tu = parse_inputs(paths, options)
    return BindgenSession(options).run(tu)
