"""
bindweave/ir.py
═══════════════

The type graph: an Id-indexed arena of Items connected by typed edges.

    ┌─────────────────────────────────────────────────────────────────┐
    │  Edge Kinds                                                     │
    │    FIELD            — aggregate → field type        (structural)│
    │    BASE             — class → base class            (structural)│
    │    PARAM / RETURN   — function → parameter / result (structural)│
    │    ELEMENT          — array → element type          (structural)│
    │    POINTEE          — pointer → pointee   (structural, indirect)│
    │    ENUM_REPR        — enum → backing integer        (structural)│
    │    ALIAS            — typedef → target                 (nominal)│
    │    INSTANTIATION_OF — instantiation → template     (bookkeeping)│
    │    TEMPLATE_ARG     — instantiation → argument     (bookkeeping)│
    └─────────────────────────────────────────────────────────────────┘

Items never hold other Items, only ``ItemId`` keys, so self-referential and
mutually recursive declarations are ordinary graph cycles.  Edges are not
stored: they are derived from each Item's payload on demand, so an Item and
its edges can never disagree.

Snapshots
---------
A ``TypeGraph`` is immutable.  Pipeline stages return a new graph via
``evolve`` carrying replacement Items (with a Layout, with names) and, after
filtering, a ``Selection``.  Ids are dense, allocated once by the
``GraphBuilder`` and never reused.

Usage example::

    graph = importer.import_translation_unit(tu)
    point = graph.find("Point")
    for edge in graph.edges(point.id):
        print(edge.kind.name, graph[edge.target].describe())

    dot_str = graph.to_dot()
"""

from __future__ import annotations

import heapq
from collections import defaultdict, deque
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import (
    Any,
    Deque,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Mapping,
    NewType,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)

from .abi import PrimitiveKind
from .errors import (
    BindgenErrorCodes,
    InvariantViolationError,
    SourceLocation,
)

ItemId = NewType("ItemId", int)


# ═══════════════════════════════════════════════════════════════════════════
#  PART 0 — KINDS
# ═══════════════════════════════════════════════════════════════════════════

class ItemKind(Enum):
    """Closed set of Item kinds.

    The first six are declarations; the rest are anonymous type nodes used to
    spell field and parameter types.
    """
    STRUCT = auto()
    UNION = auto()
    ENUM = auto()
    FUNCTION = auto()
    TYPE_ALIAS = auto()
    TEMPLATE = auto()

    PRIMITIVE = auto()
    POINTER = auto()
    ARRAY = auto()
    FUNCTION_PROTO = auto()
    TEMPLATE_PARAM = auto()

    @property
    def is_aggregate(self) -> bool:
        return self in (ItemKind.STRUCT, ItemKind.UNION)

    @property
    def is_declaration(self) -> bool:
        return self in _DECLARATION_KINDS

    @property
    def is_type(self) -> bool:
        """Declarations that live in the type namespace."""
        return self in (ItemKind.STRUCT, ItemKind.UNION, ItemKind.ENUM,
                        ItemKind.TYPE_ALIAS)


_DECLARATION_KINDS = frozenset({
    ItemKind.STRUCT, ItemKind.UNION, ItemKind.ENUM, ItemKind.FUNCTION,
    ItemKind.TYPE_ALIAS, ItemKind.TEMPLATE,
})


class EdgeKind(Enum):
    FIELD = auto()
    BASE = auto()
    PARAM = auto()
    RETURN = auto()
    ELEMENT = auto()
    POINTEE = auto()
    ENUM_REPR = auto()
    ALIAS = auto()
    INSTANTIATION_OF = auto()
    TEMPLATE_ARG = auto()


STRUCTURAL_EDGES: FrozenSet[EdgeKind] = frozenset({
    EdgeKind.FIELD, EdgeKind.BASE, EdgeKind.PARAM, EdgeKind.RETURN,
    EdgeKind.ELEMENT, EdgeKind.POINTEE, EdgeKind.ENUM_REPR,
})
NOMINAL_EDGES: FrozenSet[EdgeKind] = frozenset({EdgeKind.ALIAS})
BOOKKEEPING_EDGES: FrozenSet[EdgeKind] = frozenset({
    EdgeKind.INSTANTIATION_OF, EdgeKind.TEMPLATE_ARG,
})

# Edges along which the target must be complete for the source to be laid out.
CONTAINMENT_EDGES: FrozenSet[EdgeKind] = frozenset({
    EdgeKind.FIELD, EdgeKind.BASE, EdgeKind.ELEMENT, EdgeKind.ALIAS,
    EdgeKind.ENUM_REPR,
})

# Everything a declaration needs declared before it, pointers excepted.
ORDERING_EDGES: FrozenSet[EdgeKind] = (STRUCTURAL_EDGES | NOMINAL_EDGES) - {EdgeKind.POINTEE}


# ═══════════════════════════════════════════════════════════════════════════
#  PART 1 — PAYLOADS
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class Field:
    name: str
    type_id: ItemId
    bit_width: Optional[int] = None
    align: Optional[int] = None
    anonymous: bool = False

    @property
    def is_bitfield(self) -> bool:
        return self.bit_width is not None


@dataclass(frozen=True, slots=True)
class Base:
    type_id: ItemId
    is_virtual: bool = False


@dataclass(frozen=True, slots=True)
class Compound:
    """Struct/union body (also the body of a class template)."""
    fields: Tuple[Field, ...] = ()
    bases: Tuple[Base, ...] = ()
    is_complete: bool = True
    packed: bool = False
    pack: Optional[int] = None
    align: Optional[int] = None
    size_hint: Optional[int] = None
    align_hint: Optional[int] = None
    has_vtable: bool = False
    nontrivial_copy: bool = False
    anonymous_member: bool = False
    template_id: Optional[ItemId] = None
    template_args: Tuple[ItemId, ...] = ()
    is_cxx: bool = False


@dataclass(frozen=True, slots=True)
class EnumVariant:
    name: str
    value: int


@dataclass(frozen=True, slots=True)
class EnumPayload:
    variants: Tuple[EnumVariant, ...]
    repr_id: ItemId
    scoped: bool = False
    is_complete: bool = True


@dataclass(frozen=True, slots=True)
class Param:
    name: str
    type_id: ItemId


@dataclass(frozen=True, slots=True)
class FunctionPayload:
    params: Tuple[Param, ...]
    return_id: ItemId
    variadic: bool = False
    callconv: str = "C"
    linkage: str = "external"
    mangled_name: str = ""
    noreturn: bool = False
    unsupported: str = ""


@dataclass(frozen=True, slots=True)
class AliasPayload:
    target: ItemId
    redundant: bool = False


@dataclass(frozen=True, slots=True)
class TemplatePayload:
    params: Tuple[str, ...]
    body: Compound


@dataclass(frozen=True, slots=True)
class PrimitivePayload:
    kind: PrimitiveKind


@dataclass(frozen=True, slots=True)
class PointerPayload:
    pointee: ItemId
    is_const: bool = False
    is_reference: bool = False


@dataclass(frozen=True, slots=True)
class ArrayPayload:
    element: ItemId
    length: Optional[int] = None


@dataclass(frozen=True, slots=True)
class FunctionProtoPayload:
    params: Tuple[ItemId, ...]
    result: ItemId
    variadic: bool = False
    callconv: str = "C"


@dataclass(frozen=True, slots=True)
class TemplateParamPayload:
    name: str


Payload = Union[
    Compound, EnumPayload, FunctionPayload, AliasPayload, TemplatePayload,
    PrimitivePayload, PointerPayload, ArrayPayload, FunctionProtoPayload,
    TemplateParamPayload,
]


# ═══════════════════════════════════════════════════════════════════════════
#  PART 2 — LAYOUT AND NAMES
# ═══════════════════════════════════════════════════════════════════════════

class SlotKind(Enum):
    FIELD = auto()
    BASE = auto()
    VTABLE = auto()
    BITFIELD_UNIT = auto()
    PADDING = auto()


@dataclass(frozen=True, slots=True)
class BitfieldMember:
    """One named bitfield inside a storage unit."""
    name: str
    type_id: ItemId
    bit_offset: int
    bit_width: int
    signed: bool = False


@dataclass(frozen=True, slots=True)
class LayoutSlot:
    """A byte range of an aggregate.

    ``type_id`` is set for FIELD and BASE slots.  Bitfield units and padding
    are plain storage of ``size`` bytes aligned to ``align``.
    """
    kind: SlotKind
    name: str
    offset: int
    size: int
    align: int = 1
    type_id: Optional[ItemId] = None
    members: Tuple[BitfieldMember, ...] = ()


@dataclass(frozen=True, slots=True)
class Layout:
    size: int
    align: int
    slots: Tuple[LayoutSlot, ...] = ()
    pack: Optional[int] = None
    explicit_align: Optional[int] = None
    opaque: bool = False

    @property
    def is_empty(self) -> bool:
        return not any(s.kind is not SlotKind.PADDING for s in self.slots)


@dataclass(frozen=True, slots=True)
class ItemNames:
    """Final Rust identifiers, attached by the name resolver.

    ``slots`` parallels ``Layout.slots``, ``bitfields`` parallels each
    bitfield unit's ``members`` (empty tuple for other slots), ``variants``
    parallels ``EnumPayload.variants`` and ``params`` parallels
    ``FunctionPayload.params``.
    """
    item: str
    slots: Tuple[str, ...] = ()
    bitfields: Tuple[Tuple[str, ...], ...] = ()
    variants: Tuple[str, ...] = ()
    params: Tuple[str, ...] = ()
    symbol: str = ""


# ═══════════════════════════════════════════════════════════════════════════
#  PART 3 — ITEMS AND EDGES
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class Item:
    id: ItemId
    kind: ItemKind
    payload: Payload
    name: str = ""
    qualified_name: str = ""
    location: SourceLocation = field(default_factory=SourceLocation)
    usr: str = ""
    parent: Optional[ItemId] = None
    namespace: Tuple[str, ...] = ()
    top_level: bool = False
    opaque: bool = False
    opaque_reason: str = ""
    layout: Optional[Layout] = None
    names: Optional[ItemNames] = None

    def describe(self) -> str:
        label = self.qualified_name or self.name or "<anonymous>"
        return f"#{self.id} {self.kind.name.lower()} {label}"

    def __repr__(self) -> str:
        return f"Item({self.describe()})"


@dataclass(frozen=True, slots=True)
class Edge:
    source: ItemId
    target: ItemId
    kind: EdgeKind
    label: str = ""

    def __repr__(self) -> str:
        lbl = f" [{self.label}]" if self.label else ""
        return f"Edge({self.source}→{self.target} {self.kind.name}{lbl})"


def payload_edges(item: Item) -> List[Edge]:
    """Derive the outgoing edges of ``item`` from its payload."""
    src = item.id
    p = item.payload
    out: List[Edge] = []
    if isinstance(p, Compound):
        for base in p.bases:
            out.append(Edge(src, base.type_id, EdgeKind.BASE))
        for f in p.fields:
            out.append(Edge(src, f.type_id, EdgeKind.FIELD, f.name))
        if p.template_id is not None:
            out.append(Edge(src, p.template_id, EdgeKind.INSTANTIATION_OF))
        for arg in p.template_args:
            out.append(Edge(src, arg, EdgeKind.TEMPLATE_ARG))
    elif isinstance(p, EnumPayload):
        out.append(Edge(src, p.repr_id, EdgeKind.ENUM_REPR))
    elif isinstance(p, FunctionPayload):
        for param in p.params:
            out.append(Edge(src, param.type_id, EdgeKind.PARAM, param.name))
        out.append(Edge(src, p.return_id, EdgeKind.RETURN))
    elif isinstance(p, AliasPayload):
        out.append(Edge(src, p.target, EdgeKind.ALIAS))
    elif isinstance(p, PointerPayload):
        out.append(Edge(src, p.pointee, EdgeKind.POINTEE))
    elif isinstance(p, ArrayPayload):
        out.append(Edge(src, p.element, EdgeKind.ELEMENT))
    elif isinstance(p, FunctionProtoPayload):
        for i, param in enumerate(p.params):
            out.append(Edge(src, param, EdgeKind.PARAM, f"arg{i}"))
        out.append(Edge(src, p.result, EdgeKind.RETURN))
    return out


# ═══════════════════════════════════════════════════════════════════════════
#  PART 4 — SELECTION
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Selection:
    """Output of the reachability filter.

    ``emitted`` holds every declaration to emit; ``opaque`` is the subset
    emitted as opaque placeholders.
    """
    roots: FrozenSet[ItemId] = frozenset()
    emitted: FrozenSet[ItemId] = frozenset()
    opaque: FrozenSet[ItemId] = frozenset()


# ═══════════════════════════════════════════════════════════════════════════
#  PART 5 — THE GRAPH
# ═══════════════════════════════════════════════════════════════════════════

class TypeGraph:
    """Immutable snapshot of all Items of one run."""

    def __init__(
        self,
        items: Sequence[Item],
        selection: Optional[Selection] = None,
        name: str = "",
    ) -> None:
        self._items: Tuple[Item, ...] = tuple(items)
        for index, item in enumerate(self._items):
            if item.id != index:
                raise InvariantViolationError(
                    f"item {item.describe()} stored at index {index}",
                    code=BindgenErrorCodes.INVARIANT_BROKEN,
                )
        self._selection = selection
        self._name = name
        self._edge_cache: Dict[ItemId, List[Edge]] = {}

    # ── Access ────────────────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self._name

    @property
    def selection(self) -> Optional[Selection]:
        return self._selection

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Item]:
        return iter(self._items)

    def __getitem__(self, item_id: int) -> Item:
        try:
            return self._items[item_id]
        except IndexError:
            raise InvariantViolationError(
                f"dangling item id {item_id}",
                code=BindgenErrorCodes.DANGLING_REFERENCE,
            ) from None

    def __contains__(self, item_id: object) -> bool:
        return isinstance(item_id, int) and 0 <= item_id < len(self._items)

    def items(self, *kinds: ItemKind) -> List[Item]:
        if not kinds:
            return list(self._items)
        return [item for item in self._items if item.kind in kinds]

    def declarations(self) -> List[Item]:
        return [item for item in self._items if item.kind.is_declaration]

    def find(self, name: str, kind: Optional[ItemKind] = None) -> Optional[Item]:
        """First declaration whose raw or qualified name is ``name``."""
        for item in self._items:
            if not item.kind.is_declaration:
                continue
            if kind is not None and item.kind is not kind:
                continue
            if name in (item.name, item.qualified_name):
                return item
        return None

    def find_all(self, name: str) -> List[Item]:
        return [
            item for item in self._items
            if item.kind.is_declaration and name in (item.name, item.qualified_name)
        ]

    # ── Snapshots ─────────────────────────────────────────────────────

    def evolve(
        self,
        replacements: Optional[Mapping[ItemId, Item]] = None,
        selection: Optional[Selection] = None,
    ) -> "TypeGraph":
        """Return a new snapshot with some Items replaced."""
        items = list(self._items)
        for item_id, item in (replacements or {}).items():
            if item.id != item_id or item_id not in self:
                raise InvariantViolationError(
                    f"replacement for id {item_id} has id {item.id}",
                )
            items[item_id] = item
        return TypeGraph(
            items,
            selection=selection if selection is not None else self._selection,
            name=self._name,
        )

    def is_emitted(self, item_id: ItemId) -> bool:
        if self._selection is None:
            return self[item_id].kind.is_declaration
        return item_id in self._selection.emitted

    def is_opaque(self, item_id: ItemId) -> bool:
        item = self[item_id]
        if item.opaque:
            return True
        return self._selection is not None and item_id in self._selection.opaque

    def emitted_items(self) -> List[Item]:
        """Emitted declarations in Id order (all declarations without a selection)."""
        return [item for item in self._items
                if item.kind.is_declaration and self.is_emitted(item.id)]

    # ── Edges ─────────────────────────────────────────────────────────

    def edges(self, item_id: ItemId,
              kinds: Optional[Iterable[EdgeKind]] = None) -> List[Edge]:
        if item_id not in self._edge_cache:
            self._edge_cache[item_id] = payload_edges(self[item_id])
        edges = self._edge_cache[item_id]
        if kinds is None:
            return list(edges)
        wanted = set(kinds)
        return [e for e in edges if e.kind in wanted]

    def all_edges(self) -> List[Edge]:
        out: List[Edge] = []
        for item in self._items:
            out.extend(self.edges(item.id))
        return out

    def resolve_alias(self, item_id: ItemId) -> ItemId:
        """Follow ALIAS edges to the first non-alias Item."""
        seen: Set[ItemId] = set()
        current = item_id
        while self[current].kind is ItemKind.TYPE_ALIAS:
            if current in seen:
                raise InvariantViolationError(
                    f"typedef cycle through {self[current].describe()}",
                    code=BindgenErrorCodes.CONTAINMENT_CYCLE,
                )
            seen.add(current)
            payload = self[current].payload
            assert isinstance(payload, AliasPayload)
            current = payload.target
        return current

    def reachable_forward(
        self,
        start: ItemId,
        kinds: Optional[Iterable[EdgeKind]] = None,
    ) -> Set[ItemId]:
        """All Items reachable from ``start`` via edges of ``kinds``."""
        wanted = set(kinds) if kinds is not None else None
        visited: Set[ItemId] = set()
        queue: Deque[ItemId] = deque([start])
        while queue:
            node = queue.popleft()
            if node in visited:
                continue
            visited.add(node)
            for edge in self.edges(node):
                if wanted is None or edge.kind in wanted:
                    queue.append(edge.target)
        return visited

    def declaration_dependencies(
        self,
        item_id: ItemId,
        kinds: FrozenSet[EdgeKind] = ORDERING_EDGES,
    ) -> List[ItemId]:
        """Declarations ``item_id`` depends on, looking through type nodes.

        The walk follows ``kinds`` edges, passes through anonymous type nodes
        and stops at the first declaration on each path.
        """
        found: Set[ItemId] = set()
        seen: Set[ItemId] = {item_id}
        stack = [e.target for e in self.edges(item_id, kinds)]
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            if self[node].kind.is_declaration:
                found.add(node)
                continue
            stack.extend(e.target for e in self.edges(node, kinds))
        return sorted(found)

    # ── Ordering ──────────────────────────────────────────────────────

    def topological_order(
        self,
        ids: Iterable[ItemId],
        kinds: FrozenSet[EdgeKind] = ORDERING_EDGES,
        strict: bool = True,
    ) -> List[ItemId]:
        """Kahn's algorithm over the declaration dependencies among ``ids``.

        Dependencies come first; ties are broken by ascending Id.  With
        ``strict`` a remaining cycle raises ``InvariantViolationError``;
        otherwise the cyclic Items are appended in Id order.
        """
        members = sorted(set(ids))
        member_set = set(members)
        in_degree: Dict[ItemId, int] = {m: 0 for m in members}
        users: Dict[ItemId, List[ItemId]] = defaultdict(list)
        for m in members:
            for dep in self.declaration_dependencies(m, kinds):
                if dep in member_set and dep != m:
                    in_degree[m] += 1
                    users[dep].append(m)

        ready = [m for m in members if in_degree[m] == 0]
        heapq.heapify(ready)
        order: List[ItemId] = []
        while ready:
            node = heapq.heappop(ready)
            order.append(node)
            for user in users[node]:
                in_degree[user] -= 1
                if in_degree[user] == 0:
                    heapq.heappush(ready, user)

        if len(order) != len(members):
            remaining = [m for m in members if m not in set(order)]
            if strict:
                names = ", ".join(self[m].describe() for m in remaining)
                raise InvariantViolationError(
                    f"dependency cycle without indirection among: {names}",
                    code=BindgenErrorCodes.CONTAINMENT_CYCLE,
                )
            order.extend(remaining)
        return order

    def containment_cycle(self, start: ItemId) -> Optional[List[ItemId]]:
        """Return a by-value containment cycle through ``start``, if any."""
        path: List[ItemId] = []
        on_path: Set[ItemId] = set()
        done: Set[ItemId] = set()

        def visit(node: ItemId) -> Optional[List[ItemId]]:
            if node in on_path:
                return path[path.index(node):] + [node]
            if node in done:
                return None
            path.append(node)
            on_path.add(node)
            for edge in self.edges(node, CONTAINMENT_EDGES):
                if self[edge.target].kind is ItemKind.TEMPLATE:
                    continue
                cycle = visit(edge.target)
                if cycle:
                    return cycle
            path.pop()
            on_path.discard(node)
            done.add(node)
            return None

        return visit(start)

    # ── Export ────────────────────────────────────────────────────────

    def to_dot(self, title: Optional[str] = None,
               highlight: Optional[Iterable[ItemId]] = None) -> str:
        """
        Export the graph in Graphviz DOT format.

        Emitted Items (when a selection is attached) are filled, opaque ones
        dashed; ``highlight`` ids are filled yellow.
        """
        title = title or (f"bindweave: {self._name}" if self._name else "bindweave")
        marked = set(highlight or ())

        lines: List[str] = [
            f'digraph "{_dot_escape(title)}" {{',
            '  rankdir=LR;',
            '  node [shape=box, fontname="Courier", fontsize=10];',
            '  edge [fontname="Courier", fontsize=8];',
        ]

        _KIND_STYLE: Dict[EdgeKind, str] = {
            EdgeKind.FIELD:            'color="blue"',
            EdgeKind.BASE:             'color="blue", style="bold"',
            EdgeKind.PARAM:            'color="darkgreen"',
            EdgeKind.RETURN:           'color="darkgreen", style="dashed"',
            EdgeKind.ELEMENT:          'color="blue", style="dashed"',
            EdgeKind.POINTEE:          'color="gray40", style="dotted"',
            EdgeKind.ENUM_REPR:        'color="purple"',
            EdgeKind.ALIAS:            'color="orange"',
            EdgeKind.INSTANTIATION_OF: 'color="red", style="dotted"',
            EdgeKind.TEMPLATE_ARG:     'color="red", style="dotted"',
        }

        for item in self._items:
            label = _dot_escape(_node_label(item))
            attrs = [f'label="{label}"']
            if item.id in marked:
                attrs.append('style="filled", fillcolor="yellow"')
            elif self._selection is not None and item.id in self._selection.emitted:
                if self.is_opaque(item.id):
                    attrs.append('style="dashed"')
                else:
                    attrs.append('style="filled", fillcolor="lightblue"')
            if not item.kind.is_declaration:
                attrs.append('shape="ellipse"')
            lines.append(f'  n{item.id} [{", ".join(attrs)}];')

        for edge in self.all_edges():
            style = _KIND_STYLE[edge.kind]
            elbl = _dot_escape(edge.label) if edge.label else edge.kind.name
            lines.append(
                f'  n{edge.source} -> n{edge.target} [label="{elbl}", {style}];'
            )

        lines.append("}")
        return "\n".join(lines) + "\n"

    # ── Summary ───────────────────────────────────────────────────────

    def summary(self) -> Dict[str, Any]:
        """Return a dictionary summarising graph statistics."""
        kind_counts: Dict[str, int] = defaultdict(int)
        for item in self._items:
            kind_counts[item.kind.name] += 1
        edge_counts: Dict[str, int] = defaultdict(int)
        for e in self.all_edges():
            edge_counts[e.kind.name] += 1
        result: Dict[str, Any] = {
            "items": len(self._items),
            "items_by_kind": dict(kind_counts),
            "edges_by_kind": dict(edge_counts),
            "opaque": sum(1 for i in self._items if i.opaque),
        }
        if self._selection is not None:
            result["emitted"] = len(self._selection.emitted)
            result["roots"] = len(self._selection.roots)
        return result

    def __repr__(self) -> str:
        return f"TypeGraph(name='{self._name}', items={len(self._items)})"


def _node_label(item: Item) -> str:
    if isinstance(item.payload, PrimitivePayload):
        return f"#{item.id} {item.payload.kind.value}"
    if isinstance(item.payload, PointerPayload):
        return f"#{item.id} {'&' if item.payload.is_reference else '*'}"
    if isinstance(item.payload, ArrayPayload):
        n = "" if item.payload.length is None else item.payload.length
        return f"#{item.id} [{n}]"
    return item.describe()


def _dot_escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


# ═══════════════════════════════════════════════════════════════════════════
#  PART 6 — BUILDER
# ═══════════════════════════════════════════════════════════════════════════

class GraphBuilder:
    """Mutable arena used while importing; ``freeze`` yields a TypeGraph.

    Type nodes (primitives, pointers, arrays, function prototypes, template
    parameters) are interned on their payload.
    """

    def __init__(self, name: str = "") -> None:
        self._name = name
        self._items: List[Optional[Item]] = []
        self._interned: Dict[Tuple[ItemKind, Payload], ItemId] = {}

    def __len__(self) -> int:
        return len(self._items)

    def reserve(self) -> ItemId:
        """Allocate an Id whose Item is supplied later with ``set``."""
        self._items.append(None)
        return ItemId(len(self._items) - 1)

    def set(self, item: Item) -> Item:
        self._items[item.id] = item
        return item

    def get(self, item_id: ItemId) -> Item:
        item = self._items[item_id]
        if item is None:
            raise InvariantViolationError(f"item {item_id} read before it was built")
        return item

    def peek(self, item_id: ItemId) -> Optional[Item]:
        return self._items[item_id]

    def update(self, item_id: ItemId, **changes: Any) -> Item:
        return self.set(replace(self.get(item_id), **changes))

    def add(self, kind: ItemKind, payload: Payload, **attrs: Any) -> ItemId:
        item_id = self.reserve()
        self.set(Item(id=item_id, kind=kind, payload=payload, **attrs))
        return item_id

    def intern(self, kind: ItemKind, payload: Payload) -> ItemId:
        """Return the shared Id of a structurally identical type node."""
        key = (kind, payload)
        if key not in self._interned:
            self._interned[key] = self.add(kind, payload)
        return self._interned[key]

    def primitive(self, kind: PrimitiveKind) -> ItemId:
        return self.intern(ItemKind.PRIMITIVE, PrimitivePayload(kind))

    def freeze(self, name: Optional[str] = None) -> TypeGraph:
        missing = [i for i, item in enumerate(self._items) if item is None]
        if missing:
            raise InvariantViolationError(
                f"items reserved but never built: {missing}",
            )
        items = [item for item in self._items if item is not None]
        graph = TypeGraph(items, name=self._name if name is None else name)
        for edge in graph.all_edges():
            if edge.target not in graph:
                raise InvariantViolationError(
                    f"{graph[edge.source].describe()} refers to missing id {edge.target}",
                    code=BindgenErrorCodes.DANGLING_REFERENCE,
                )
        return graph
