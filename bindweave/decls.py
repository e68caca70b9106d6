# bindweave/decls.py
"""
Front-end neutral declaration tree.

Both front-ends (libclang and the ``.decl`` reader) lower their input to these
nodes; the importer consumes nothing else.  A ``DeclNode`` is a declaration
(record, enum, typedef, function, ...); a ``TypeRef`` is a type as written at
a use site (field type, parameter type, typedef target).

Declarations referenced from a ``TypeRef`` are named by their USR, the
front-end's stable declaration identity.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from .abi import PrimitiveKind
from .errors import SourceLocation


# ── Kinds ────────────────────────────────────────────────────────

class DeclKind(Enum):
    TRANSLATION_UNIT = "translation-unit"
    NAMESPACE = "namespace"
    STRUCT = "struct"
    UNION = "union"
    CLASS = "class"
    ENUM = "enum"
    ENUM_CONSTANT = "const"
    FIELD = "field"
    BASE = "base"
    TYPEDEF = "typedef"
    FUNCTION = "function"
    PARAM = "param"
    CLASS_TEMPLATE = "class-template"
    TEMPLATE_PARAM = "template-param"
    FUNCTION_TEMPLATE = "function-template"

    @property
    def is_record(self) -> bool:
        return self in (DeclKind.STRUCT, DeclKind.UNION, DeclKind.CLASS)


class TypeRefKind(Enum):
    PRIMITIVE = "primitive"
    POINTER = "pointer"
    REFERENCE = "reference"
    RVALUE_REFERENCE = "rvalue-reference"
    ARRAY = "array"
    FUNCTION = "function"
    RECORD = "record"
    ENUM = "enum"
    TYPEDEF = "typedef"
    INSTANTIATION = "instantiation"
    TEMPLATE_PARAM = "template-param"
    UNSUPPORTED = "unsupported"


class Language(Enum):
    C = "c"
    CXX = "c++"


# ── Types ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TypeRef:
    """A type as spelled at a use site.

    Only the attributes relevant to ``kind`` are set:

    * ``PRIMITIVE``: ``primitive``
    * ``POINTER`` / ``REFERENCE`` / ``RVALUE_REFERENCE``: ``inner`` (pointee)
    * ``ARRAY``: ``inner`` (element), ``length`` (None for ``T[]``)
    * ``FUNCTION``: ``inner`` (result), ``params``, ``variadic``, ``callconv``
    * ``RECORD`` / ``ENUM`` / ``TYPEDEF``: ``usr`` and ``name``
    * ``INSTANTIATION``: ``usr`` of the template, ``name``, ``args``
    * ``TEMPLATE_PARAM``: ``name``
    * ``UNSUPPORTED``: ``name`` (spelling) and ``reason``
    """

    kind: TypeRefKind
    primitive: Optional[PrimitiveKind] = None
    inner: Optional["TypeRef"] = None
    length: Optional[int] = None
    params: Tuple["TypeRef", ...] = ()
    variadic: bool = False
    callconv: str = "C"
    usr: str = ""
    name: str = ""
    args: Tuple["TypeRef", ...] = ()
    is_const: bool = False
    size_hint: Optional[int] = None
    align_hint: Optional[int] = None
    reason: str = ""

    # Convenience constructors

    @classmethod
    def prim(cls, kind: PrimitiveKind, is_const: bool = False) -> "TypeRef":
        return cls(TypeRefKind.PRIMITIVE, primitive=kind, is_const=is_const)

    @classmethod
    def pointer(cls, pointee: "TypeRef", is_const: bool = False) -> "TypeRef":
        return cls(TypeRefKind.POINTER, inner=pointee, is_const=is_const)

    @classmethod
    def array(cls, element: "TypeRef", length: Optional[int]) -> "TypeRef":
        return cls(TypeRefKind.ARRAY, inner=element, length=length)

    @classmethod
    def record(cls, usr: str, name: str = "") -> "TypeRef":
        return cls(TypeRefKind.RECORD, usr=usr, name=name)

    @classmethod
    def enum(cls, usr: str, name: str = "") -> "TypeRef":
        return cls(TypeRefKind.ENUM, usr=usr, name=name)

    @classmethod
    def typedef(cls, usr: str, name: str = "") -> "TypeRef":
        return cls(TypeRefKind.TYPEDEF, usr=usr, name=name)

    @classmethod
    def unsupported(cls, spelling: str, reason: str) -> "TypeRef":
        return cls(TypeRefKind.UNSUPPORTED, name=spelling, reason=reason)

    def with_const(self, is_const: bool = True) -> "TypeRef":
        return replace(self, is_const=is_const)

    @property
    def is_indirection(self) -> bool:
        return self.kind in (
            TypeRefKind.POINTER,
            TypeRefKind.REFERENCE,
            TypeRefKind.RVALUE_REFERENCE,
        )

    def spelling(self) -> str:
        """Readable C-ish spelling, used in diagnostics and IR dumps."""
        const = "const " if self.is_const else ""
        if self.kind is TypeRefKind.PRIMITIVE:
            assert self.primitive is not None
            return f"{const}{self.primitive.value}"
        if self.kind is TypeRefKind.POINTER:
            assert self.inner is not None
            return f"{self.inner.spelling()} *{' const' if self.is_const else ''}"
        if self.kind is TypeRefKind.REFERENCE:
            assert self.inner is not None
            return f"{self.inner.spelling()} &"
        if self.kind is TypeRefKind.RVALUE_REFERENCE:
            assert self.inner is not None
            return f"{self.inner.spelling()} &&"
        if self.kind is TypeRefKind.ARRAY:
            assert self.inner is not None
            n = "" if self.length is None else str(self.length)
            return f"{self.inner.spelling()}[{n}]"
        if self.kind is TypeRefKind.FUNCTION:
            assert self.inner is not None
            params = [p.spelling() for p in self.params]
            if self.variadic:
                params.append("...")
            return f"{self.inner.spelling()} ({', '.join(params)})"
        if self.kind is TypeRefKind.INSTANTIATION:
            args = ", ".join(a.spelling() for a in self.args)
            return f"{const}{self.name}<{args}>"
        return f"{const}{self.name}"


# ── Declarations ─────────────────────────────────────────────────

@dataclass
class DeclNode:
    """One declaration from the front-end.

    ``children`` holds fields, bases, nested declarations, enum constants,
    parameters and template parameters in source order.
    """

    kind: DeclKind
    name: str = ""
    usr: str = ""
    location: SourceLocation = field(default_factory=SourceLocation)
    type: Optional[TypeRef] = None
    children: List["DeclNode"] = field(default_factory=list)

    # records
    is_definition: bool = True
    packed: bool = False
    pack: Optional[int] = None
    align: Optional[int] = None
    size_hint: Optional[int] = None
    align_hint: Optional[int] = None
    has_vtable: bool = False
    nontrivial_copy: bool = False
    anonymous_member: bool = False
    typedef_name: str = ""

    # fields / bases
    bit_width: Optional[int] = None
    is_virtual: bool = False

    # enums
    value: Optional[int] = None
    scoped: bool = False

    # functions
    variadic: bool = False
    callconv: str = "C"
    linkage: str = "external"
    mangled_name: str = ""
    noreturn: bool = False

    # translation unit
    language: Language = Language.C

    # declared in a system header; pulled in only when referenced
    system_header: bool = False

    # set when the front-end saw a shape it cannot describe
    unsupported_reason: str = ""

    def walk(self) -> Iterator["DeclNode"]:
        """Pre-order traversal including ``self``."""
        yield self
        for child in self.children:
            yield from child.walk()

    def children_of(self, *kinds: DeclKind) -> List["DeclNode"]:
        return [c for c in self.children if c.kind in kinds]

    def find(self, name: str) -> Optional["DeclNode"]:
        """First declaration named ``name`` anywhere below this node."""
        for node in self.walk():
            if node is not self and node.name == name:
                return node
        return None
