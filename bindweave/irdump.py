# bindweave/irdump.py
"""
S-expression rendering of a type graph.

One form per Item in Id order, so two dumps of the same graph are
byte-identical and can be diffed between runs.  The vocabulary is close to
the ``.decl`` input format::

    (item 4 struct "Point" :emitted
      (field x 1)
      (field y 2)
      (layout 16 8
        (slot field x 0 4)
        (slot padding __padding_1 4 4)
        (slot field y 8 8)))
"""

from __future__ import annotations

from typing import Callable, Dict, List

from .ir import (
    AliasPayload,
    ArrayPayload,
    Compound,
    EnumPayload,
    FunctionPayload,
    FunctionProtoPayload,
    Item,
    ItemKind,
    Layout,
    PointerPayload,
    PrimitivePayload,
    SlotKind,
    TemplateParamPayload,
    TemplatePayload,
    TypeGraph,
)


def _atom(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _compound_body(body: Compound) -> List[str]:
    lines = []
    attrs = []
    if not body.is_complete:
        attrs.append(":forward")
    if body.packed:
        attrs.append(":packed")
    if body.pack is not None:
        attrs.append(f":pack {body.pack}")
    if body.align is not None:
        attrs.append(f":align {body.align}")
    if body.has_vtable:
        attrs.append(":vtable")
    if body.nontrivial_copy:
        attrs.append(":nontrivial")
    if body.anonymous_member:
        attrs.append(":anonymous")
    if body.template_id is not None:
        args = " ".join(str(a) for a in body.template_args)
        attrs.append(f":instance-of {body.template_id} ({args})")
    if attrs:
        lines.append(" ".join(attrs))
    for base in body.bases:
        virtual = " :virtual" if base.is_virtual else ""
        lines.append(f"(base {base.type_id}{virtual})")
    for f in body.fields:
        extra = ""
        if f.bit_width is not None:
            extra += f" :bits {f.bit_width}"
        if f.align is not None:
            extra += f" :align {f.align}"
        if f.anonymous:
            extra += " :anonymous"
        lines.append(f"(field {f.name or '_'} {f.type_id}{extra})")
    return lines


def _dump_compound(item: Item) -> List[str]:
    assert isinstance(item.payload, Compound)
    return _compound_body(item.payload)


def _dump_enum(item: Item) -> List[str]:
    p = item.payload
    assert isinstance(p, EnumPayload)
    lines = [f":repr {p.repr_id}" + (" :scoped" if p.scoped else "")]
    lines.extend(f"(const {v.name} {v.value})" for v in p.variants)
    return lines


def _dump_function(item: Item) -> List[str]:
    p = item.payload
    assert isinstance(p, FunctionPayload)
    attrs = [f":returns {p.return_id}", f":callconv {p.callconv}"]
    if p.variadic:
        attrs.append(":variadic")
    if p.noreturn:
        attrs.append(":noreturn")
    if p.linkage != "external":
        attrs.append(f":linkage {p.linkage}")
    if p.mangled_name:
        attrs.append(f":mangled {_atom(p.mangled_name)}")
    if p.unsupported:
        attrs.append(f":unsupported {_atom(p.unsupported)}")
    lines = [" ".join(attrs)]
    lines.extend(f"(param {param.name or '_'} {param.type_id})" for param in p.params)
    return lines


def _dump_alias(item: Item) -> List[str]:
    p = item.payload
    assert isinstance(p, AliasPayload)
    return [f":target {p.target}" + (" :redundant" if p.redundant else "")]


def _dump_template(item: Item) -> List[str]:
    p = item.payload
    assert isinstance(p, TemplatePayload)
    lines = [f"(template-param {name})" for name in p.params]
    return lines + _compound_body(p.body)


def _dump_primitive(item: Item) -> List[str]:
    assert isinstance(item.payload, PrimitivePayload)
    return [_atom(item.payload.kind.value)]


def _dump_pointer(item: Item) -> List[str]:
    p = item.payload
    assert isinstance(p, PointerPayload)
    out = f":pointee {p.pointee}"
    if p.is_const:
        out += " :const"
    if p.is_reference:
        out += " :reference"
    return [out]


def _dump_array(item: Item) -> List[str]:
    p = item.payload
    assert isinstance(p, ArrayPayload)
    length = "?" if p.length is None else str(p.length)
    return [f":element {p.element} :length {length}"]


def _dump_proto(item: Item) -> List[str]:
    p = item.payload
    assert isinstance(p, FunctionProtoPayload)
    params = " ".join(str(x) for x in p.params)
    out = f":params ({params}) :returns {p.result} :callconv {p.callconv}"
    if p.variadic:
        out += " :variadic"
    return [out]


def _dump_template_param(item: Item) -> List[str]:
    assert isinstance(item.payload, TemplateParamPayload)
    return [item.payload.name]


_DUMPERS: Dict[ItemKind, Callable[[Item], List[str]]] = {
    ItemKind.STRUCT: _dump_compound,
    ItemKind.UNION: _dump_compound,
    ItemKind.ENUM: _dump_enum,
    ItemKind.FUNCTION: _dump_function,
    ItemKind.TYPE_ALIAS: _dump_alias,
    ItemKind.TEMPLATE: _dump_template,
    ItemKind.PRIMITIVE: _dump_primitive,
    ItemKind.POINTER: _dump_pointer,
    ItemKind.ARRAY: _dump_array,
    ItemKind.FUNCTION_PROTO: _dump_proto,
    ItemKind.TEMPLATE_PARAM: _dump_template_param,
}


def _dump_layout(layout: Layout) -> List[str]:
    head = f"(layout {layout.size} {layout.align}"
    if layout.opaque:
        return [head + " :opaque)"]
    if layout.pack is not None:
        head += f" :pack {layout.pack}"
    if layout.explicit_align is not None:
        head += f" :align {layout.explicit_align}"
    lines = [head]
    for slot in layout.slots:
        kind = slot.kind.name.lower().replace("_", "-")
        text = f"  (slot {kind} {slot.name} {slot.offset} {slot.size}"
        if slot.type_id is not None:
            text += f" :type {slot.type_id}"
        if slot.kind is SlotKind.BITFIELD_UNIT:
            for m in slot.members:
                text += f" (bits {m.name or '_'} {m.bit_offset} {m.bit_width})"
        lines.append(text + ")")
    lines[-1] += ")"
    return lines


def _dump_item(graph: TypeGraph, item: Item) -> List[str]:
    head = f"(item {item.id} {item.kind.name.lower()}"
    if item.kind.is_declaration:
        head += f" {_atom(item.qualified_name or item.name)}"
    if graph.selection is not None and graph.is_emitted(item.id):
        head += " :emitted"
    if graph.is_opaque(item.id):
        head += " :opaque"
    if item.opaque_reason:
        head += f" :reason {_atom(item.opaque_reason)}"
    if item.names is not None and item.names.item:
        head += f" :rust {item.names.item}"

    body = _DUMPERS[item.kind](item)
    if item.layout is not None:
        body.extend(_dump_layout(item.layout))
    if not body:
        return [head + ")"]
    lines = [head] + ["  " + line for line in body]
    lines[-1] += ")"
    return lines


def dump_ir(graph: TypeGraph) -> str:
    """Render every Item of ``graph`` as an S-expression, in Id order."""
    lines = [f"(type-graph {_atom(graph.name)}"]
    for item in graph:
        lines.extend("  " + line for line in _dump_item(graph, item))
    lines[-1] += ")"
    return "\n".join(lines) + "\n"
