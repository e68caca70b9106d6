# bindweave/naming.py
"""
Name resolver: stable, collision-free Rust identifiers.

Two namespaces are tracked separately, mirroring Rust: *types* (structs,
unions, enums, aliases) and *values* (functions and top-level constants).
Every emitted Item gets a natural name derived from its raw or qualified
name; collisions are broken in Id order by appending ``_1``, ``_2``, ... to
later names.

Escaping rules:

* characters outside ``[A-Za-z0-9_]`` become ``_``;
* a leading digit gets a ``_`` prefix;
* a Rust keyword (strict, reserved, or ``union``) gets one trailing ``_``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Dict, List, Optional, Set, Tuple

from .errors import NameCollisionUnresolvableError
from .ir import (
    AliasPayload,
    ArrayPayload,
    Compound,
    EnumPayload,
    FunctionPayload,
    FunctionProtoPayload,
    Item,
    ItemId,
    ItemKind,
    ItemNames,
    PointerPayload,
    PrimitivePayload,
    SlotKind,
    TemplateParamPayload,
    TypeGraph,
)
from .options import BindgenOptions, EnumStyle

logger = logging.getLogger(__name__)

RUST_KEYWORDS = frozenset({
    # strict
    "as", "break", "const", "continue", "crate", "else", "enum", "extern",
    "false", "fn", "for", "if", "impl", "in", "let", "loop", "match", "mod",
    "move", "mut", "pub", "ref", "return", "self", "Self", "static", "struct",
    "super", "trait", "true", "type", "unsafe", "use", "where", "while",
    "async", "await", "dyn",
    # reserved
    "abstract", "become", "box", "do", "final", "macro", "override", "priv",
    "typeof", "unsized", "virtual", "yield", "try", "gen",
    # weak, but not usable as a type or field name in generated code
    "union",
})

_INVALID = re.compile(r"[^A-Za-z0-9_]")


def escape_identifier(name: str) -> str:
    """Map an arbitrary raw name to a valid Rust identifier."""
    ident = _INVALID.sub("_", name) or "_"
    if ident[0].isdigit():
        ident = "_" + ident
    if ident in RUST_KEYWORDS:
        ident += "_"
    return ident


class _Namespace:
    """One Rust namespace; hands out names in first-come order."""

    def __init__(self) -> None:
        self._owners: Dict[str, str] = {}

    def claim(self, natural: str, owner: str) -> str:
        name = natural
        suffix = 0
        while name in self._owners:
            suffix += 1
            name = f"{natural}_{suffix}"
        self._owners[name] = owner
        return name


def _unique_within(names: List[str]) -> Tuple[str, ...]:
    """Deduplicate member names of one Item, keeping empties."""
    space = _Namespace()
    out = []
    for n in names:
        out.append(space.claim(n, n) if n else "")
    return tuple(out)


class NameResolver:
    """Attaches ``ItemNames`` to every emitted Item."""

    def __init__(self, options: Optional[BindgenOptions] = None) -> None:
        self._options = options or BindgenOptions()
        self._graph: Optional[TypeGraph] = None
        self._natural_cache: Dict[ItemId, str] = {}

    # ── Natural names ─────────────────────────────────────────────────

    def natural_name(self, item_id: ItemId) -> str:
        """Unescaped, unsuffixed name of a declaration."""
        if item_id in self._natural_cache:
            return self._natural_cache[item_id]
        assert self._graph is not None
        item = self._graph[item_id]
        payload = item.payload
        if isinstance(payload, Compound) and payload.template_id is not None:
            template = self.natural_name(payload.template_id)
            args = [self.type_word(a) for a in payload.template_args]
            natural = "_".join([template] + args)
        else:
            path = item.qualified_name or item.name
            if self._options.flatten_namespaces and item.namespace:
                prefix = "::".join(item.namespace) + "::"
                if path.startswith(prefix):
                    path = path[len(prefix):]
            natural = path.replace("::", "_")
        self._natural_cache[item_id] = natural
        return natural

    def type_word(self, type_id: ItemId) -> str:
        """Name fragment for a type appearing in an instantiation name."""
        assert self._graph is not None
        item = self._graph[type_id]
        payload = item.payload
        if isinstance(payload, PrimitivePayload):
            return payload.kind.value.replace(" ", "_")
        if isinstance(payload, PointerPayload):
            word = self.type_word(payload.pointee)
            if payload.is_const:
                word = "const_" + word
            return word + ("_ref" if payload.is_reference else "_ptr")
        if isinstance(payload, ArrayPayload):
            n = "" if payload.length is None else f"_{payload.length}"
            return f"{self.type_word(payload.element)}_array{n}"
        if isinstance(payload, FunctionProtoPayload):
            return "fn"
        if isinstance(payload, TemplateParamPayload):
            return payload.name
        return self.natural_name(type_id)

    # ── Resolution ────────────────────────────────────────────────────

    def resolve(self, graph: TypeGraph) -> TypeGraph:
        self._graph = graph
        self._natural_cache = {}
        types = _Namespace()
        values = _Namespace()
        style = self._options.enum_style

        emitted = [item for item in graph.emitted_items() if item.kind is not ItemKind.TEMPLATE]
        names: Dict[ItemId, ItemNames] = {}

        # Types first: enum constants are named after their enum.
        deferred_aliases: List[Item] = []
        for item in emitted:
            if not item.kind.is_type:
                continue
            if isinstance(item.payload, AliasPayload) and item.payload.redundant:
                deferred_aliases.append(item)
                continue
            if isinstance(item.payload, EnumPayload) and not item.name:
                names[item.id] = ItemNames(item="")
                continue
            natural = escape_identifier(self.natural_name(item.id))
            final = types.claim(natural, item.describe())
            if self._is_tuple_struct(graph, item):
                # A tuple struct also defines a constructor value.
                values.claim(final, item.describe())
            names[item.id] = ItemNames(item=final)

        for alias in deferred_aliases:
            assert isinstance(alias.payload, AliasPayload)
            target = alias.payload.target
            shared = names.get(target)
            if shared is None:
                natural = escape_identifier(self.natural_name(alias.id))
                names[alias.id] = ItemNames(item=types.claim(natural, alias.describe()))
            else:
                names[alias.id] = ItemNames(item=shared.item)

        for item in emitted:
            payload = item.payload
            if item.kind is ItemKind.FUNCTION:
                assert isinstance(payload, FunctionPayload)
                natural = escape_identifier(self.natural_name(item.id))
                final = values.claim(natural, item.describe())
                params = _unique_within([
                    escape_identifier(p.name) if p.name else f"arg{i}"
                    for i, p in enumerate(payload.params)
                ])
                names[item.id] = ItemNames(
                    item=final,
                    params=params,
                    symbol=payload.mangled_name or item.name,
                )
            elif isinstance(payload, EnumPayload):
                base = names[item.id]
                variants = self._variant_names(item, base.item, style, values)
                names[item.id] = replace(base, variants=variants)
            elif item.kind.is_aggregate and item.layout is not None:
                names[item.id] = self._slot_names(item, names[item.id])

        self._check(names, graph)
        replacements = {i: replace(graph[i], names=n) for i, n in names.items()}
        logger.info("named %d items", len(replacements))
        return graph.evolve(replacements)

    def _is_tuple_struct(self, graph: TypeGraph, item: Item) -> bool:
        """True for enums emitted as a `#[repr(transparent)]` newtype."""
        payload = item.payload
        return (isinstance(payload, EnumPayload)
                and self._options.enum_style is EnumStyle.NEWTYPE
                and payload.is_complete
                and not graph.is_opaque(item.id))

    def _variant_names(self, item: Item, enum_name: str, style: EnumStyle,
                       values: _Namespace) -> Tuple[str, ...]:
        assert isinstance(item.payload, EnumPayload)
        variants = item.payload.variants
        if not enum_name:
            return tuple(values.claim(escape_identifier(v.name), item.describe())
                         for v in variants)
        if style is EnumStyle.CONSTS or (style is EnumStyle.RUST and not variants):
            return tuple(values.claim(escape_identifier(f"{enum_name}_{v.name}"),
                                      item.describe())
                         for v in variants)
        return _unique_within([escape_identifier(v.name) for v in variants])

    @staticmethod
    def _slot_names(item: Item, names: ItemNames) -> ItemNames:
        assert item.layout is not None
        slots = _unique_within([escape_identifier(s.name) for s in item.layout.slots])
        bitfields = []
        for slot in item.layout.slots:
            if slot.kind is SlotKind.BITFIELD_UNIT:
                bitfields.append(_unique_within([
                    escape_identifier(m.name) if m.name else "" for m in slot.members
                ]))
            else:
                bitfields.append(())
        return replace(names, slots=slots, bitfields=tuple(bitfields))

    def _check(self, names: Dict[ItemId, ItemNames], graph: TypeGraph) -> None:
        """Last line of defence: no two emitted Items share an identifier."""
        consts = self._options.enum_style is EnumStyle.CONSTS
        seen: Dict[Tuple[str, str], ItemId] = {}
        for item_id in sorted(names):
            item = graph[item_id]
            entry = names[item_id]
            payload = item.payload
            if isinstance(payload, AliasPayload) and payload.redundant:
                target = names.get(payload.target)
                if target is not None and target.item == entry.item:
                    continue
            keys: Set[Tuple[str, str]] = set()
            if item.kind is ItemKind.FUNCTION:
                keys.add(("value", entry.item))
            elif entry.item:
                keys.add(("type", entry.item))
                if self._is_tuple_struct(graph, item):
                    keys.add(("value", entry.item))
            if isinstance(payload, EnumPayload) and (consts or not entry.item):
                keys.update(("value", v) for v in entry.variants)
            for key in sorted(keys):
                if key in seen:
                    raise NameCollisionUnresolvableError(
                        key[1], graph[seen[key]].describe(), item.describe(),
                        location=item.location,
                    )
                seen[key] = item_id


def resolve_names(graph: TypeGraph, options: Optional[BindgenOptions] = None) -> TypeGraph:
    return NameResolver(options).resolve(graph)
