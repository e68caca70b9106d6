# bindweave/importer.py
"""
AST importer: declaration tree → type graph.

The importer walks a front-end ``DeclNode`` translation unit and creates one
Item per distinct declaration.  Its cache is keyed by ``(translation unit,
USR)`` so that

* a header seen twice yields one Item;
* a forward declaration and its later definition share one Id (the
  definition completes the Item in place);
* a class-template instantiation with the same alias-canonical arguments is
  materialised once.

Declarations referenced before the walk reaches them (``struct B *`` inside
``struct A`` when ``B`` is defined further down) are imported on demand from
an index built up front.  References to USRs the front-end never declared
become opaque Items.

Shapes Rust cannot express raise ``UnsupportedConstructError`` internally; the
importer catches it at Item granularity, records a warning and degrades the
Item (aggregates become opaque, functions are marked unsupported).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .abi import PrimitiveKind
from .decls import DeclKind, DeclNode, Language, TypeRef, TypeRefKind
from .errors import (
    BindgenErrorCodes,
    DiagnosticCollector,
    ParseError,
    UnsupportedConstructError,
)
from .ir import (
    AliasPayload,
    ArrayPayload,
    Base,
    Compound,
    EnumPayload,
    EnumVariant,
    Field,
    FunctionPayload,
    FunctionProtoPayload,
    GraphBuilder,
    Item,
    ItemId,
    ItemKind,
    Param,
    PointerPayload,
    PrimitivePayload,
    TemplateParamPayload,
    TemplatePayload,
    TypeGraph,
)
from .options import BindgenOptions

logger = logging.getLogger(__name__)

KNOWN_CALLCONVS = frozenset({
    "C", "stdcall", "fastcall", "thiscall", "vectorcall", "win64", "sysv64",
    "aapcs",
})
VARIADIC_CALLCONVS = frozenset({"C", "win64", "sysv64", "aapcs"})

_SIGNED_LIMITS = {
    PrimitiveKind.INT: (-(1 << 31), (1 << 31) - 1),
    PrimitiveKind.LONGLONG: (-(1 << 63), (1 << 63) - 1),
}
_UNSIGNED_LIMITS = {
    PrimitiveKind.UINT: (1 << 32) - 1,
    PrimitiveKind.ULONGLONG: (1 << 64) - 1,
}


@dataclass(frozen=True)
class _Context:
    """Where a declaration sits: its namespace path, parent and root-ness."""
    namespace: Tuple[str, ...] = ()
    parent_usr: str = ""
    top_level: bool = True


class Importer:
    """Lowers declaration trees into a ``TypeGraph``.

    One importer belongs to one run; its cache is never shared.
    """

    def __init__(self, options: Optional[BindgenOptions] = None,
                 diagnostics: Optional[DiagnosticCollector] = None) -> None:
        self._options = options or BindgenOptions()
        self._diag = diagnostics if diagnostics is not None else DiagnosticCollector()
        self._builder = GraphBuilder()
        self._cache: Dict[Tuple[str, str], ItemId] = {}
        self._index: Dict[str, Tuple[DeclNode, _Context]] = {}
        self._template_decls: Dict[ItemId, DeclNode] = {}
        self._instantiations: Dict[Tuple[ItemId, Tuple[ItemId, ...]], ItemId] = {}
        self._anon_counts: Dict[object, int] = {}
        self._tu = ""
        self._language = Language.C

    @property
    def diagnostics(self) -> DiagnosticCollector:
        return self._diag

    # ─────────────────────────────────────────────────────────────────────
    # Entry points
    # ─────────────────────────────────────────────────────────────────────

    def import_translation_unit(self, tu: DeclNode) -> TypeGraph:
        """Import every declaration of ``tu`` and return the graph so far."""
        if tu.kind is not DeclKind.TRANSLATION_UNIT:
            raise ParseError(f"expected a translation unit, got {tu.kind.value}")
        self._tu = tu.name
        self._language = tu.language
        self._index.clear()
        self._build_index(tu.children, _Context())
        logger.info("importing %s (%d indexed declarations)", tu.name, len(self._index))

        for child in tu.children:
            self._import(child, self._context_for(child, _Context()))
        graph = self._builder.freeze(tu.name)
        logger.debug("import produced %d items", len(graph))
        return graph

    def import_decl(self, node: DeclNode) -> Optional[ItemId]:
        """Import one declaration at translation-unit scope.

        Returns the Item's Id (the cached one when the declaration was seen
        before), or None for declarations that produce no Item (namespaces,
        unsupported templates).
        """
        if node.usr and node.usr not in self._index:
            self._build_index([node], _Context())
        return self._import(node, self._context_for(node, _Context()))

    def graph(self) -> TypeGraph:
        return self._builder.freeze(self._tu)

    # ─────────────────────────────────────────────────────────────────────
    # Index and contexts
    # ─────────────────────────────────────────────────────────────────────

    def _context_for(self, node: DeclNode, outer: _Context) -> _Context:
        if node.system_header:
            return _Context(outer.namespace, outer.parent_usr, False)
        return outer

    def _build_index(self, nodes: List[DeclNode], ctx: _Context) -> None:
        for node in nodes:
            ctx_here = self._context_for(node, ctx)
            if node.kind is DeclKind.NAMESPACE:
                inner = _Context(ctx_here.namespace + (node.name,), "", ctx_here.top_level)
                self._build_index(node.children, inner)
                continue
            if node.usr and node.kind not in (DeclKind.FIELD, DeclKind.PARAM,
                                              DeclKind.ENUM_CONSTANT, DeclKind.BASE):
                known = self._index.get(node.usr)
                if known is None or (node.is_definition and not known[0].is_definition):
                    self._index[node.usr] = (node, ctx_here)
            if node.kind.is_record or node.kind is DeclKind.CLASS_TEMPLATE:
                for child in node.children:
                    self._build_index([child], self._child_context(node, child, ctx_here))

    def _child_context(self, record: DeclNode, child: DeclNode, ctx: _Context) -> _Context:
        """Context of a declaration nested inside ``record``."""
        if self._language is Language.C and child.name:
            # C has no nested scopes for tags.
            return _Context(ctx.namespace, "", ctx.top_level)
        if child.kind is DeclKind.ENUM and not (child.name or child.typedef_name):
            return _Context(ctx.namespace, record.usr, ctx.top_level)
        named = bool(child.name or child.typedef_name) and not child.anonymous_member
        return _Context(ctx.namespace, record.usr, ctx.top_level and named)

    def _parent_id(self, ctx: _Context) -> Optional[ItemId]:
        if not ctx.parent_usr:
            return None
        return self._cache.get((self._tu, ctx.parent_usr))

    # ─────────────────────────────────────────────────────────────────────
    # Dispatch
    # ─────────────────────────────────────────────────────────────────────

    def _import(self, node: DeclNode, ctx: _Context) -> Optional[ItemId]:
        kind = node.kind
        if kind is DeclKind.NAMESPACE:
            inner = _Context(ctx.namespace + (node.name,), "", ctx.top_level)
            for child in node.children:
                self._import(child, self._context_for(child, inner))
            return None
        if kind.is_record:
            return self._import_record(node, ctx)
        if kind is DeclKind.ENUM:
            return self._import_enum(node, ctx)
        if kind is DeclKind.TYPEDEF:
            return self._import_typedef(node, ctx)
        if kind is DeclKind.FUNCTION:
            return self._import_function(node, ctx)
        if kind is DeclKind.CLASS_TEMPLATE:
            return self._import_template(node, ctx)
        if kind is DeclKind.FUNCTION_TEMPLATE:
            self._diag.warning(
                BindgenErrorCodes.UNSUPPORTED_DECLARATION,
                f"skipping function template '{node.name}': "
                f"{node.unsupported_reason or 'function templates cannot be bound'}",
                location=node.location,
                item=node.name,
            )
            return None
        return None

    # ─────────────────────────────────────────────────────────────────────
    # Naming helpers
    # ─────────────────────────────────────────────────────────────────────

    def _next_anon(self, key: object) -> int:
        self._anon_counts[key] = self._anon_counts.get(key, 0) + 1
        return self._anon_counts[key]

    def _names_for(self, node: DeclNode, ctx: _Context,
                   parent: Optional[ItemId], kind_word: str) -> Tuple[str, str]:
        """Raw and qualified name, synthesising one for anonymous types."""
        name = node.name or node.typedef_name
        synthesized = not name
        if synthesized:
            if parent is not None:
                parent_item = self._builder.get(parent)
                name = f"{parent_item.name}__anon_{self._next_anon(parent)}"
            else:
                name = f"__anon_{kind_word}_{self._next_anon(kind_word)}"
        if parent is not None and not synthesized and self._language is Language.CXX:
            qualified = f"{self._builder.get(parent).qualified_name}::{name}"
        else:
            qualified = "::".join(ctx.namespace + (name,))
        return name, qualified

    # ─────────────────────────────────────────────────────────────────────
    # Records
    # ─────────────────────────────────────────────────────────────────────

    def _import_record(self, node: DeclNode, ctx: _Context) -> ItemId:
        key = (self._tu, node.usr)
        kind = ItemKind.UNION if node.kind is DeclKind.UNION else ItemKind.STRUCT
        item_id = self._cache.get(key)
        if item_id is not None:
            existing = self._builder.get(item_id)
            complete = isinstance(existing.payload, Compound) and existing.payload.is_complete
            if complete or existing.opaque or not node.is_definition:
                return item_id
            logger.debug("completing forward declaration %s", existing.describe())
        else:
            item_id = self._builder.reserve()
            self._cache[key] = item_id

        parent = self._parent_id(ctx)
        name, qualified = self._names_for(node, ctx, parent, kind.name.lower())
        anonymous_member = node.anonymous_member
        shell = Item(
            id=item_id,
            kind=kind,
            payload=Compound(is_complete=False, anonymous_member=anonymous_member,
                             size_hint=node.size_hint, align_hint=node.align_hint,
                             is_cxx=self._language is Language.CXX),
            name=name,
            qualified_name=qualified,
            location=node.location,
            usr=node.usr,
            parent=parent,
            namespace=ctx.namespace,
            top_level=ctx.top_level and not anonymous_member,
        )
        self._builder.set(shell)
        if not node.is_definition:
            return item_id

        try:
            fields, bases = self._members(node, ctx, subst=None)
        except UnsupportedConstructError as exc:
            self._degrade(item_id, exc)
            return item_id

        self._builder.update(item_id, payload=Compound(
            fields=tuple(fields),
            bases=tuple(bases),
            is_complete=True,
            packed=node.packed,
            pack=node.pack,
            align=node.align,
            size_hint=node.size_hint,
            align_hint=node.align_hint,
            has_vtable=node.has_vtable,
            nontrivial_copy=node.nontrivial_copy,
            anonymous_member=anonymous_member,
            is_cxx=self._language is Language.CXX,
        ))
        return item_id

    def _members(self, node: DeclNode, ctx: _Context,
                 subst: Optional[Dict[str, ItemId]]) -> Tuple[List[Field], List[Base]]:
        fields: List[Field] = []
        bases: List[Base] = []
        for child in node.children:
            if child.kind is DeclKind.FIELD:
                assert child.type is not None
                type_id = self._type(child.type, subst)
                anonymous = not child.name and self._is_anonymous_member(type_id)
                fields.append(Field(
                    name=child.name,
                    type_id=type_id,
                    bit_width=child.bit_width,
                    align=child.align,
                    anonymous=anonymous,
                ))
            elif child.kind is DeclKind.BASE:
                if child.is_virtual:
                    raise UnsupportedConstructError(
                        f"virtual base '{child.name}' has no fixed layout",
                        location=child.location,
                    )
                assert child.type is not None
                bases.append(Base(type_id=self._type(child.type, subst)))
            elif child.kind is DeclKind.TEMPLATE_PARAM:
                continue
            elif subst is None:
                self._import(child, self._child_context(node, child, ctx))
        return fields, bases

    def _is_anonymous_member(self, type_id: ItemId) -> bool:
        item = self._builder.peek(type_id)
        return (item is not None and isinstance(item.payload, Compound)
                and item.payload.anonymous_member)

    def _degrade(self, item_id: ItemId, exc: UnsupportedConstructError) -> None:
        item = self._builder.get(item_id)
        payload = item.payload
        assert isinstance(payload, Compound)
        self._builder.update(
            item_id,
            opaque=True,
            opaque_reason=exc.error_message.message,
            payload=Compound(is_complete=False, size_hint=payload.size_hint,
                             align_hint=payload.align_hint,
                             anonymous_member=payload.anonymous_member,
                             template_id=payload.template_id,
                             template_args=payload.template_args,
                             is_cxx=payload.is_cxx),
        )
        exc.error_message.item = item.name
        if not exc.location.file:
            exc.error_message.location = item.location
        self._diag.report(exc)
        logger.warning("%s degraded to opaque: %s", item.describe(), exc.error_message.message)

    # ─────────────────────────────────────────────────────────────────────
    # Enums
    # ─────────────────────────────────────────────────────────────────────

    def _import_enum(self, node: DeclNode, ctx: _Context) -> ItemId:
        key = (self._tu, node.usr)
        item_id = self._cache.get(key)
        if item_id is not None:
            existing = self._builder.get(item_id)
            assert isinstance(existing.payload, EnumPayload)
            if existing.payload.is_complete or not node.is_definition:
                return item_id
        else:
            item_id = self._builder.reserve()
            self._cache[key] = item_id

        parent = self._parent_id(ctx)
        anonymous = not node.name and not node.typedef_name
        name, qualified = ("", "") if anonymous else self._names_for(node, ctx, parent, "enum")

        variants: List[EnumVariant] = []
        next_value = 0
        for const in node.children_of(DeclKind.ENUM_CONSTANT):
            value = const.value if const.value is not None else next_value
            variants.append(EnumVariant(const.name, value))
            next_value = value + 1

        if node.type is not None:
            repr_id = self._type(node.type, None)
        else:
            repr_id = self._builder.primitive(self._enum_repr(variants))

        self._builder.set(Item(
            id=item_id,
            kind=ItemKind.ENUM,
            payload=EnumPayload(
                variants=tuple(variants),
                repr_id=repr_id,
                scoped=node.scoped,
                is_complete=node.is_definition,
            ),
            name=name,
            qualified_name=qualified,
            location=node.location,
            usr=node.usr,
            parent=parent,
            namespace=ctx.namespace,
            top_level=ctx.top_level,
        ))
        return item_id

    @staticmethod
    def _enum_repr(variants: List[EnumVariant]) -> PrimitiveKind:
        if not variants:
            return PrimitiveKind.UINT
        low = min(v.value for v in variants)
        high = max(v.value for v in variants)
        if low < 0:
            for kind in (PrimitiveKind.INT, PrimitiveKind.LONGLONG):
                lo, hi = _SIGNED_LIMITS[kind]
                if lo <= low and high <= hi:
                    return kind
            return PrimitiveKind.LONGLONG
        for kind in (PrimitiveKind.UINT, PrimitiveKind.ULONGLONG):
            if high <= _UNSIGNED_LIMITS[kind]:
                return kind
        return PrimitiveKind.ULONGLONG

    # ─────────────────────────────────────────────────────────────────────
    # Typedefs
    # ─────────────────────────────────────────────────────────────────────

    def _import_typedef(self, node: DeclNode, ctx: _Context) -> ItemId:
        key = (self._tu, node.usr)
        if key in self._cache:
            return self._cache[key]
        item_id = self._builder.reserve()
        self._cache[key] = item_id
        parent = self._parent_id(ctx)
        name, qualified = self._names_for(node, ctx, parent, "typedef")
        assert node.type is not None
        common = dict(
            name=name,
            qualified_name=qualified,
            location=node.location,
            usr=node.usr,
            parent=parent,
            namespace=ctx.namespace,
            top_level=ctx.top_level,
        )
        try:
            target = self._type(node.type, None)
        except UnsupportedConstructError as exc:
            self._builder.set(Item(id=item_id, kind=ItemKind.STRUCT,
                                   payload=Compound(size_hint=node.type.size_hint,
                                                    align_hint=node.type.align_hint),
                                   **common))
            self._degrade(item_id, exc)
            return item_id

        target_item = self._builder.peek(target)
        redundant = (target_item is not None and target_item.kind.is_declaration
                     and target_item.name == name)
        self._builder.set(Item(
            id=item_id,
            kind=ItemKind.TYPE_ALIAS,
            payload=AliasPayload(target=target, redundant=redundant),
            **common,
        ))
        return item_id

    # ─────────────────────────────────────────────────────────────────────
    # Functions
    # ─────────────────────────────────────────────────────────────────────

    def _import_function(self, node: DeclNode, ctx: _Context) -> ItemId:
        key = (self._tu, node.usr)
        if key in self._cache:
            return self._cache[key]
        item_id = self._builder.reserve()
        self._cache[key] = item_id
        qualified = "::".join(ctx.namespace + (node.name,))

        reason = node.unsupported_reason
        params: List[Param] = []
        return_id = self._builder.primitive(PrimitiveKind.VOID)
        try:
            if node.callconv not in KNOWN_CALLCONVS:
                raise UnsupportedConstructError(f"unknown calling convention '{node.callconv}'")
            if node.variadic and node.callconv not in VARIADIC_CALLCONVS:
                raise UnsupportedConstructError(
                    f"variadic function with '{node.callconv}' calling convention",
                    code=BindgenErrorCodes.UNSUPPORTED_ABI,
                )
            for param in node.children_of(DeclKind.PARAM):
                assert param.type is not None
                params.append(Param(param.name, self._type(_decay(param.type), None)))
            assert node.type is not None
            return_id = self._type(node.type, None)
            by_value = [return_id] + [p.type_id for p in params]
            if any(self._long_double_by_value(t) for t in by_value):
                raise UnsupportedConstructError(
                    f"'long double' passed by value has no Rust equivalent on "
                    f"{self._options.target}",
                    code=BindgenErrorCodes.UNSUPPORTED_ABI,
                )
        except UnsupportedConstructError as exc:
            reason = exc.error_message.message
            params = []

        if reason:
            self._diag.warning(
                BindgenErrorCodes.UNSUPPORTED_DECLARATION,
                f"skipping function '{node.name}': {reason}",
                location=node.location,
                item=node.name,
            )

        self._builder.set(Item(
            id=item_id,
            kind=ItemKind.FUNCTION,
            payload=FunctionPayload(
                params=tuple(params),
                return_id=return_id,
                variadic=node.variadic,
                callconv=node.callconv,
                linkage=node.linkage,
                mangled_name=node.mangled_name,
                noreturn=node.noreturn,
                unsupported=reason,
            ),
            name=node.name,
            qualified_name=qualified,
            location=node.location,
            usr=node.usr,
            namespace=ctx.namespace,
            top_level=ctx.top_level,
        ))
        return item_id

    # ─────────────────────────────────────────────────────────────────────
    # Templates
    # ─────────────────────────────────────────────────────────────────────

    def _import_template(self, node: DeclNode, ctx: _Context) -> ItemId:
        key = (self._tu, node.usr)
        if key in self._cache:
            return self._cache[key]
        item_id = self._builder.reserve()
        self._cache[key] = item_id
        name = node.name
        qualified = "::".join(ctx.namespace + (name,))
        params = tuple(p.name for p in node.children_of(DeclKind.TEMPLATE_PARAM))
        item = Item(
            id=item_id,
            kind=ItemKind.TEMPLATE,
            payload=TemplatePayload(params=params, body=Compound(is_complete=False)),
            name=name,
            qualified_name=qualified,
            location=node.location,
            usr=node.usr,
            namespace=ctx.namespace,
        )
        self._builder.set(item)
        self._template_decls[item_id] = node

        opaque_reason = ""
        try:
            fields, bases = self._members(node, ctx, subst=None)
        except UnsupportedConstructError as exc:
            opaque_reason = exc.error_message.message
            fields, bases = [], []
        self._builder.update(
            item_id,
            opaque=bool(opaque_reason),
            opaque_reason=opaque_reason,
            payload=TemplatePayload(
                params=params,
                body=Compound(
                    fields=tuple(fields),
                    bases=tuple(bases),
                    packed=node.packed,
                    align=node.align,
                    has_vtable=node.has_vtable,
                    nontrivial_copy=node.nontrivial_copy,
                    is_cxx=True,
                ),
            ),
        )
        return item_id

    def _instantiate(self, ref: TypeRef, subst: Optional[Dict[str, ItemId]]) -> ItemId:
        template_id = self._declared(ref, ItemKind.TEMPLATE)
        template = self._builder.get(template_id)
        if template.kind is not ItemKind.TEMPLATE:
            raise UnsupportedConstructError(f"'{ref.name}' is not a class template")
        assert isinstance(template.payload, TemplatePayload)

        args = tuple(self._type(arg, subst) for arg in ref.args)
        if len(args) != len(template.payload.params):
            raise UnsupportedConstructError(
                f"'{ref.spelling()}' supplies {len(args)} arguments for "
                f"{len(template.payload.params)} template parameters"
            )
        canonical = tuple(self._canonical(a) for a in args)
        spelling = f"{template.name}<{', '.join(self._spell(a) for a in canonical)}>"

        if any(self._is_dependent(a) for a in canonical):
            # Still inside a template body; there is nothing to lay out yet.
            return self._builder.intern(ItemKind.TEMPLATE_PARAM, TemplateParamPayload(spelling))

        key = (template_id, canonical)
        if key in self._instantiations:
            return self._instantiations[key]

        item_id = self._builder.reserve()
        self._instantiations[key] = item_id
        qualified = "::".join(template.namespace + (spelling,))
        materialize = self._options.instantiation_policy.selects(
            template.qualified_name, spelling)
        self._builder.set(Item(
            id=item_id,
            kind=ItemKind.STRUCT,
            payload=Compound(is_complete=False, template_id=template_id,
                             template_args=args, size_hint=ref.size_hint,
                             align_hint=ref.align_hint, is_cxx=True),
            name=spelling,
            qualified_name=qualified,
            location=template.location,
            usr=f"{template.usr}<{','.join(str(a) for a in canonical)}>",
            namespace=template.namespace,
            opaque=not materialize,
            opaque_reason="" if materialize else "template instantiation kept opaque",
        ))

        node = self._template_decls[template_id]
        body_subst = dict(zip(template.payload.params, canonical))
        try:
            if template.opaque:
                raise UnsupportedConstructError(template.opaque_reason)
            fields, bases = self._members(node, _Context(template.namespace, "", False),
                                          subst=body_subst)
        except UnsupportedConstructError as exc:
            self._degrade(item_id, exc)
            return item_id

        body = template.payload.body
        self._builder.update(item_id, payload=Compound(
            fields=tuple(fields),
            bases=tuple(bases),
            is_complete=True,
            packed=body.packed,
            align=body.align,
            size_hint=ref.size_hint,
            align_hint=ref.align_hint,
            has_vtable=body.has_vtable,
            nontrivial_copy=body.nontrivial_copy,
            template_id=template_id,
            template_args=args,
            is_cxx=True,
        ))
        logger.debug("instantiated %s (%s)", spelling,
                     "materialized" if materialize else "opaque")
        return item_id

    def _canonical(self, item_id: ItemId) -> ItemId:
        seen = set()
        item = self._builder.get(item_id)
        while item.kind is ItemKind.TYPE_ALIAS and item.id not in seen:
            seen.add(item.id)
            assert isinstance(item.payload, AliasPayload)
            item = self._builder.get(item.payload.target)
        return item.id

    def _is_dependent(self, item_id: ItemId) -> bool:
        item = self._builder.get(item_id)
        if item.kind is ItemKind.TEMPLATE_PARAM:
            return True
        payload = item.payload
        if isinstance(payload, PointerPayload):
            return self._is_dependent(payload.pointee)
        if isinstance(payload, ArrayPayload):
            return self._is_dependent(payload.element)
        if isinstance(payload, FunctionProtoPayload):
            return (self._is_dependent(payload.result)
                    or any(self._is_dependent(p) for p in payload.params))
        return False

    def _spell(self, item_id: ItemId) -> str:
        """C-ish spelling of a type node, used for instantiation names."""
        item = self._builder.get(item_id)
        payload = item.payload
        if isinstance(payload, PrimitivePayload):
            return payload.kind.value
        if isinstance(payload, PointerPayload):
            const = "const " if payload.is_const else ""
            return f"{const}{self._spell(payload.pointee)}{'&' if payload.is_reference else '*'}"
        if isinstance(payload, ArrayPayload):
            n = "" if payload.length is None else payload.length
            return f"{self._spell(payload.element)}[{n}]"
        if isinstance(payload, FunctionProtoPayload):
            params = ", ".join(self._spell(p) for p in payload.params)
            return f"{self._spell(payload.result)}({params})"
        if isinstance(payload, TemplateParamPayload):
            return payload.name
        return item.qualified_name or item.name

    def _long_double_by_value(self, type_id: ItemId) -> bool:
        """True when ``type_id`` is a ``long double`` wider than ``f64``."""
        item = self._builder.peek(type_id)
        while item is not None and isinstance(item.payload, AliasPayload):
            item = self._builder.peek(item.payload.target)
        if item is None or not isinstance(item.payload, PrimitivePayload):
            return False
        if item.payload.kind is not PrimitiveKind.LONGDOUBLE:
            return False
        size, _ = self._options.abi().sizes.get(PrimitiveKind.LONGDOUBLE, (8, 8))
        return size != 8

    # ─────────────────────────────────────────────────────────────────────
    # Types
    # ─────────────────────────────────────────────────────────────────────

    def _type(self, ref: TypeRef, subst: Optional[Dict[str, ItemId]]) -> ItemId:
        kind = ref.kind
        if kind is TypeRefKind.PRIMITIVE:
            assert ref.primitive is not None
            return self._builder.primitive(ref.primitive)
        if ref.is_indirection:
            assert ref.inner is not None
            pointee = self._type(ref.inner, subst)
            return self._builder.intern(ItemKind.POINTER, PointerPayload(
                pointee=pointee,
                is_const=ref.inner.is_const,
                is_reference=kind is not TypeRefKind.POINTER,
            ))
        if kind is TypeRefKind.ARRAY:
            assert ref.inner is not None
            element = self._type(ref.inner, subst)
            return self._builder.intern(ItemKind.ARRAY, ArrayPayload(element, ref.length))
        if kind is TypeRefKind.FUNCTION:
            assert ref.inner is not None
            if ref.callconv not in KNOWN_CALLCONVS:
                raise UnsupportedConstructError(f"unknown calling convention '{ref.callconv}'")
            if ref.variadic and ref.callconv not in VARIADIC_CALLCONVS:
                raise UnsupportedConstructError(
                    f"variadic function type with '{ref.callconv}' calling convention",
                    code=BindgenErrorCodes.UNSUPPORTED_ABI,
                )
            result = self._type(ref.inner, subst)
            params = tuple(self._type(_decay(p), subst) for p in ref.params)
            proto = FunctionProtoPayload(params, result, ref.variadic, ref.callconv)
            proto_id = self._builder.intern(ItemKind.FUNCTION_PROTO, proto)
            if subst is None and self._is_dependent(proto_id):
                raise UnsupportedConstructError(
                    "function type depends on a template parameter",
                    code=BindgenErrorCodes.UNSUPPORTED_TYPE,
                )
            return proto_id
        if kind in (TypeRefKind.RECORD, TypeRefKind.ENUM, TypeRefKind.TYPEDEF):
            expected = {
                TypeRefKind.RECORD: ItemKind.STRUCT,
                TypeRefKind.ENUM: ItemKind.ENUM,
                TypeRefKind.TYPEDEF: ItemKind.TYPE_ALIAS,
            }[kind]
            return self._declared(ref, expected)
        if kind is TypeRefKind.INSTANTIATION:
            return self._instantiate(ref, subst)
        if kind is TypeRefKind.TEMPLATE_PARAM:
            if subst is not None and ref.name in subst:
                return subst[ref.name]
            return self._builder.intern(ItemKind.TEMPLATE_PARAM, TemplateParamPayload(ref.name))
        raise UnsupportedConstructError(
            f"type '{ref.name}' is not supported: {ref.reason or 'unknown shape'}",
            code=BindgenErrorCodes.UNSUPPORTED_TYPE,
        )

    def _declared(self, ref: TypeRef, expected: ItemKind) -> ItemId:
        """Id of the declaration ``ref`` names, importing it on demand."""
        key = (self._tu, ref.usr)
        if key in self._cache:
            return self._cache[key]
        indexed = self._index.get(ref.usr)
        if indexed is not None:
            node, ctx = indexed
            imported = self._import(node, ctx)
            if imported is not None:
                return imported
        if expected is ItemKind.TYPE_ALIAS:
            raise ParseError(
                f"unknown type name '{ref.name}'",
                code=BindgenErrorCodes.UNKNOWN_TYPE_NAME,
            )
        if expected is ItemKind.TEMPLATE:
            raise UnsupportedConstructError(f"unknown class template '{ref.name}'")

        # Never declared: an incomplete type.
        item_id = self._builder.reserve()
        self._cache[key] = item_id
        name = ref.name.split("::")[-1] if ref.name else f"__anon_opaque_{item_id}"
        if expected is ItemKind.ENUM:
            payload = EnumPayload(variants=(), repr_id=self._builder.primitive(PrimitiveKind.INT),
                                  is_complete=False)
        else:
            payload = Compound(is_complete=False)
        self._builder.set(Item(
            id=item_id,
            kind=expected,
            payload=payload,
            name=name,
            qualified_name=ref.name or name,
            usr=ref.usr,
            namespace=tuple(ref.name.split("::")[:-1]) if ref.name else (),
        ))
        logger.debug("'%s' is never defined; importing it as opaque", ref.name)
        return item_id


def _decay(ref: TypeRef) -> TypeRef:
    """Parameter adjustment: arrays and functions become pointers."""
    if ref.kind is TypeRefKind.ARRAY:
        assert ref.inner is not None
        return TypeRef.pointer(ref.inner)
    if ref.kind is TypeRefKind.FUNCTION:
        return TypeRef.pointer(ref)
    return ref
