# bindweave/reachability.py
"""
Reachability filter: the closed subgraph that allow/deny rules imply.

Roots are the declarations the user asked for (allowlists) or, without
allowlists, every top-level declaration.  The closure follows structural
and alias edges from the roots; every declaration reached is emitted.
Denied declarations are never roots.  When something emitted still needs a
denied declaration, ``DenyPolicy`` decides whether it becomes an opaque
placeholder (edges not followed) or is pulled in in full.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, FrozenSet, Iterable, Optional, Pattern, Set

from .errors import BindgenErrorCodes, InvariantViolationError
from .ir import (
    NOMINAL_EDGES,
    STRUCTURAL_EDGES,
    Compound,
    EnumPayload,
    FunctionPayload,
    Item,
    ItemId,
    ItemKind,
    Selection,
    TypeGraph,
)
from .options import BindgenOptions, DenyPolicy

logger = logging.getLogger(__name__)

CLOSURE_EDGES: FrozenSet = STRUCTURAL_EDGES | NOMINAL_EDGES


def _matches(patterns: Iterable[Pattern[str]], item: Item) -> bool:
    names = {item.name, item.qualified_name} - {""}
    if not names and isinstance(item.payload, EnumPayload):
        # Anonymous enums are selected through their constants.
        names = {v.name for v in item.payload.variants}
    return any(p.fullmatch(n) for p in patterns for n in names)


class ReachabilityFilter:
    """Attaches a ``Selection`` to a type graph."""

    def __init__(self, options: Optional[BindgenOptions] = None) -> None:
        opts = options or BindgenOptions()
        self._options = opts
        self._allow_types = opts.patterns("allowlist_types")
        self._allow_functions = opts.patterns("allowlist_functions")
        self._allow_items = opts.patterns("allowlist_items")
        self._block_types = opts.patterns("blocklist_types")
        self._block_functions = opts.patterns("blocklist_functions")
        self._block_items = opts.patterns("blocklist_items")
        self._opaque = opts.patterns("opaque_types")

    # ── Rules ─────────────────────────────────────────────────────────

    def is_denied(self, item: Item) -> bool:
        if _matches(self._block_items, item):
            return True
        if item.kind.is_type and _matches(self._block_types, item):
            return True
        return item.kind is ItemKind.FUNCTION and _matches(self._block_functions, item)

    def is_allowed(self, item: Item) -> bool:
        if _matches(self._allow_items, item):
            return True
        if item.kind.is_type and _matches(self._allow_types, item):
            return True
        return item.kind is ItemKind.FUNCTION and _matches(self._allow_functions, item)

    def forced_opaque(self, item: Item) -> bool:
        return item.kind.is_type and _matches(self._opaque, item)

    @staticmethod
    def can_be_root(item: Item) -> bool:
        if not item.kind.is_declaration or item.kind is ItemKind.TEMPLATE:
            return False
        payload = item.payload
        if isinstance(payload, FunctionPayload):
            return payload.linkage != "internal" and not payload.unsupported
        if isinstance(payload, Compound) and payload.anonymous_member:
            return False
        return True

    def roots(self, graph: TypeGraph) -> Set[ItemId]:
        has_allowlist = self._options.has_allowlist
        roots: Set[ItemId] = set()
        for item in graph.declarations():
            if not self.can_be_root(item) or self.is_denied(item):
                continue
            if has_allowlist:
                if self.is_allowed(item):
                    roots.add(item.id)
            elif item.top_level:
                roots.add(item.id)
        return roots

    # ── Closure ───────────────────────────────────────────────────────

    def select(self, graph: TypeGraph) -> TypeGraph:
        roots = self.roots(graph)
        emitted: Set[ItemId] = set()
        opaque: Set[ItemId] = set()
        seen: Set[ItemId] = set()
        queue: Deque[ItemId] = deque(sorted(roots))

        while queue:
            node = queue.popleft()
            if node in seen:
                continue
            seen.add(node)
            item = graph[node]
            if item.kind is ItemKind.TEMPLATE:
                continue
            if item.kind.is_declaration:
                emitted.add(node)
                stop = self.forced_opaque(item) or item.opaque
                if (not stop and node not in roots and self.is_denied(item)
                        and self._options.deny_policy is DenyPolicy.OPAQUE):
                    stop = True
                if stop and (item.kind.is_aggregate or item.kind is ItemKind.ENUM):
                    opaque.add(node)
                    continue
                # A denied alias is still emitted; its target is judged on its own rules.
            for edge in graph.edges(node, CLOSURE_EDGES):
                if edge.target not in seen:
                    queue.append(edge.target)

        selection = Selection(frozenset(roots), frozenset(emitted), frozenset(opaque))
        self.verify(graph, selection)
        logger.info("selected %d of %d declarations (%d roots, %d opaque)",
                    len(emitted), len(graph.declarations()), len(roots), len(opaque))
        return graph.evolve(selection=selection)

    def verify(self, graph: TypeGraph, selection: Selection) -> None:
        """Every emitted non-opaque Item's dependencies must be emitted."""
        for item_id in sorted(selection.emitted):
            if item_id in selection.opaque or graph[item_id].opaque:
                continue
            for dep in graph.declaration_dependencies(item_id, CLOSURE_EDGES):
                if dep not in selection.emitted and graph[dep].kind is not ItemKind.TEMPLATE:
                    raise InvariantViolationError(
                        f"{graph[item_id].describe()} needs {graph[dep].describe()}, "
                        "which was not selected",
                        code=BindgenErrorCodes.DANGLING_REFERENCE,
                    )


def select_items(graph: TypeGraph, options: Optional[BindgenOptions] = None) -> TypeGraph:
    return ReachabilityFilter(options).select(graph)
