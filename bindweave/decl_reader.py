# bindweave/decl_reader.py
"""
Declaration-tree reader (``.decl`` files).

A ``.decl`` file is an S-expression rendering of a header's declarations.  It
lets tests and bug reports pin down an exact declaration tree without needing
the native front-end.  Example::

    ; bindweave-flags: --allowlist-function make_point
    (translation-unit "point.h" :language c
      (struct Point
        (field x "int")
        (field y "double"))
      (typedef Point "struct Point")
      (function make_point "Point" (param x "int") (param y "double")))

Forms
-----
``(namespace NAME decl*)``
``(struct|union|class NAME? attr* member*)`` where a member is
``(field NAME TYPE attr*)``, ``(base TYPE attr*)`` or a nested declaration;
a bitfield written ``(field _ TYPE :bits N)`` has no name.
A nested unnamed record that is not the type of a field is an anonymous
member.
``(enum NAME? attr* (const NAME VALUE?)*)``
``(typedef NAME TYPE)`` / ``(using NAME TYPE)``
``(function NAME RET (param NAME? TYPE)* attr*)``
``(class-template NAME (template-param T)* attr* member*)``
``(function-template NAME ...)``

``TYPE`` is either a C type-name string (parsed by ``ctypes_grammar``) or an
inline record/enum form.  Attributes are keywords, some followed by a value:
``:forward :packed :pack N :align N :size N :alignof N :vtable :nontrivial
:bits N :repr "T" :scoped :variadic :callconv X :linkage internal|external
:mangled "S" :noreturn :virtual :loc "F:L:C" :usr "S"``.

Names are resolved in lexical scope, declare-before-use, the way a compiler
would: typedef names in C; typedef, tag and template names in C++.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import (
    Any,
    Dict,
    Iterator,
    List,
    Optional,
    Sequence,
    Union,
)

from parsimonious.exceptions import ParseError as PegParseError
from parsimonious.grammar import Grammar
from parsimonious.nodes import NodeVisitor

from .ctypes_grammar import STD_TYPEDEFS, TypeNameResolver, parse_type_name
from .decls import DeclKind, DeclNode, Language, TypeRef, TypeRefKind
from .errors import (
    BindgenError,
    BindgenErrorCodes,
    ParseError,
    SourceLocation,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  PART 1 — S-EXPRESSION GRAMMAR
# ═══════════════════════════════════════════════════════════════════

SEXP_GRAMMAR = Grammar(r'''
    document            = _ sexp _
    sexp                = list / atom
    list                = "(" _ (sexp _)* ")"
    atom                = string / number / keyword / symbol
    string              = ~r'"(?:[^"\\]|\\.)*"'
    number              = ~r"-?(0[xX][0-9a-fA-F]+|[0-9]+)(?![^\s()\";])"
    keyword             = ~r":[^\s()\";]+"
    symbol              = ~r"[^\s()\";]+"
    _                   = ~r"(\s|;[^\n]*)*"
''')


class Symbol(str):
    """A bare word in a ``.decl`` file."""

    def __repr__(self) -> str:
        return f"Symbol({str(self)!r})"


class Keyword(str):
    """A ``:keyword`` (stored without the colon)."""

    def __repr__(self) -> str:
        return f"Keyword({str(self)!r})"


class Form(list):
    """A parenthesised list, remembering the line it started on."""

    def __init__(self, items: Sequence[Any] = (), line: int = 0) -> None:
        super().__init__(items)
        self.line = line

    @property
    def head(self) -> Optional[str]:
        return str(self[0]) if self and isinstance(self[0], Symbol) else None


class SexpVisitor(NodeVisitor):
    """Parse tree → nested ``Form`` / atom values."""

    grammar = SEXP_GRAMMAR

    def __init__(self, text: str) -> None:
        self._text = text

    def generic_visit(self, node, visited_children):
        return visited_children or node

    def visit_document(self, node, visited_children):
        return visited_children[1]

    def visit_sexp(self, node, visited_children):
        return visited_children[0]

    def visit_list(self, node, visited_children):
        _, _, items, _ = visited_children
        line = self._text.count("\n", 0, node.start) + 1
        values = [item[0] for item in items] if isinstance(items, list) else []
        return Form(values, line=line)

    def visit_atom(self, node, visited_children):
        return visited_children[0]

    def visit_string(self, node, visited_children):
        body = node.text[1:-1]
        return body.replace('\\"', '"').replace("\\\\", "\\")

    def visit_number(self, node, visited_children):
        return int(node.text, 0) if not _is_octal(node.text) else int(node.text, 8)

    def visit_keyword(self, node, visited_children):
        return Keyword(node.text[1:])

    def visit_symbol(self, node, visited_children):
        return Symbol(node.text)


def _is_octal(text: str) -> bool:
    digits = text.lstrip("-")
    return len(digits) > 1 and digits.startswith("0") and digits[1].isdigit()


def read_sexp(text: str, filename: str = "<decl>") -> Form:
    """Read the single top-level form of a ``.decl`` document."""
    try:
        result = SexpVisitor(text).parse(text)
    except PegParseError as exc:
        raise ParseError(
            "malformed declaration file",
            code=BindgenErrorCodes.SYNTAX_ERROR,
            location=SourceLocation(filename, exc.line() or 0, exc.column()),
            cause=exc,
        ) from exc
    if not isinstance(result, Form):
        raise ParseError(
            "expected a (translation-unit ...) form",
            code=BindgenErrorCodes.SYNTAX_ERROR,
            location=SourceLocation(filename, 1, 1),
        )
    return result


# ═══════════════════════════════════════════════════════════════════
#  PART 2 — SCOPES
# ═══════════════════════════════════════════════════════════════════

_FLAG_ATTRS = frozenset({
    "forward", "packed", "vtable", "nontrivial", "scoped", "variadic",
    "noreturn", "virtual",
})
_VALUE_ATTRS = frozenset({
    "pack", "align", "size", "alignof", "bits", "repr", "callconv", "linkage",
    "mangled", "loc", "usr", "language",
})
_RECORD_KINDS = {
    "struct": DeclKind.STRUCT,
    "union": DeclKind.UNION,
    "class": DeclKind.CLASS,
}


class _Scope:
    """One lexical scope: translation unit, namespace, record or template."""

    def __init__(self, name: str = "", parent: Optional["_Scope"] = None,
                 qualified: str = "") -> None:
        self.name = name
        self.parent = parent
        self.qualified = qualified
        self.names: Dict[str, TypeRef] = {}
        self.tags: Dict[str, TypeRef] = {}
        self.templates: Dict[str, TypeRef] = {}
        self.children: Dict[str, "_Scope"] = {}

    def child(self, name: str) -> "_Scope":
        if name not in self.children:
            qualified = f"{self.qualified}::{name}" if self.qualified else name
            self.children[name] = _Scope(name, self, qualified)
        return self.children[name]

    def chain(self) -> Iterator["_Scope"]:
        scope: Optional[_Scope] = self
        while scope is not None:
            yield scope
            scope = scope.parent

    def qualify(self, name: str) -> str:
        return f"{self.qualified}::{name}" if self.qualified else name


class _ScopeResolver(TypeNameResolver):
    def __init__(self, scope: _Scope, language: Language) -> None:
        self._scope = scope
        self._language = language

    def _target_scope(self, parts: Sequence[str]) -> Optional[_Scope]:
        if len(parts) == 1:
            return None
        for scope in self._scope.chain():
            if parts[0] in scope.children:
                found = scope.children[parts[0]]
                for part in parts[1:-1]:
                    if part not in found.children:
                        return None
                    found = found.children[part]
                return found
        return None

    def lookup(self, parts: Sequence[str], tag: Optional[str]) -> TypeRef:
        name = parts[-1]
        if len(parts) > 1:
            scope = self._target_scope(parts)
            if scope is not None:
                table = scope.tags if tag else scope.names
                if name in table:
                    return table[name]
            return super().lookup(parts, tag)

        for scope in self._scope.chain():
            table = scope.tags if tag else scope.names
            if name in table:
                return table[name]

        if tag is None:
            if name in STD_TYPEDEFS:
                return TypeRef.prim(STD_TYPEDEFS[name])
            return super().lookup(parts, tag)

        # An elaborated reference to an undeclared tag names an incomplete type.
        usr = f"tag:{name}"
        if tag == "enum":
            return TypeRef.enum(usr, name)
        return TypeRef.record(usr, name)

    def instantiate(self, parts: Sequence[str], args: Sequence[TypeRef]) -> TypeRef:
        name = parts[-1]
        scopes = [self._target_scope(parts)] if len(parts) > 1 else list(self._scope.chain())
        for scope in scopes:
            if scope is not None and name in scope.templates:
                template = scope.templates[name]
                return replace(template, args=tuple(args))
        return super().instantiate(parts, args)


# ═══════════════════════════════════════════════════════════════════
#  PART 3 — FORM INTERPRETER
# ═══════════════════════════════════════════════════════════════════

class DeclReader:
    """Builds a ``DeclNode`` translation unit from a parsed ``.decl`` form."""

    def __init__(self, filename: str = "<decl>") -> None:
        self._filename = filename
        self._language = Language.C
        self._anon_counter = 0

    # ─────────────────────────────────────────────────────────────
    # Entry points
    # ─────────────────────────────────────────────────────────────

    def read(self, text: str) -> DeclNode:
        return self.build(read_sexp(text, self._filename))

    def build(self, form: Form) -> DeclNode:
        if form.head != "translation-unit" or len(form) < 2 or not isinstance(form[1], str):
            raise self._error(form, "expected (translation-unit \"NAME\" ...)")
        name = str(form[1])
        attrs, body = self._split_attrs(form, 2)
        language = attrs.get("language", "c")
        if str(language) in ("c++", "cxx", "cpp"):
            self._language = Language.CXX
        elif str(language) == "c":
            self._language = Language.C
        else:
            raise self._error(form, f"unknown language '{language}'")

        tu = DeclNode(
            kind=DeclKind.TRANSLATION_UNIT,
            name=name,
            location=SourceLocation(name, 1, 1),
            language=self._language,
        )
        scope = _Scope()
        for item in body:
            tu.children.extend(self._decl(item, scope))
        logger.debug("read %d top-level declarations from %s",
                     len(tu.children), self._filename)
        return tu

    # ─────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────

    def _error(self, form: Any, message: str,
               code=BindgenErrorCodes.SYNTAX_ERROR) -> ParseError:
        line = form.line if isinstance(form, Form) else 0
        return ParseError(message, code=code,
                          location=SourceLocation(self._filename, line))

    def _split_attrs(self, form: Form, start: int):
        """Separate ``:attr value`` pairs from nested forms after ``start``."""
        attrs: Dict[str, Any] = {}
        body: List[Any] = []
        i = start
        while i < len(form):
            item = form[i]
            if isinstance(item, Keyword):
                key = str(item)
                if key in _FLAG_ATTRS:
                    attrs[key] = True
                    i += 1
                    continue
                if key in _VALUE_ATTRS:
                    if i + 1 >= len(form):
                        raise self._error(form, f"attribute :{key} needs a value")
                    attrs[key] = form[i + 1]
                    i += 2
                    continue
                raise self._error(form, f"unknown attribute :{key}")
            body.append(item)
            i += 1
        return attrs, body

    def _location(self, form: Form, attrs: Dict[str, Any]) -> SourceLocation:
        if "loc" in attrs:
            return SourceLocation.parse(str(attrs["loc"]))
        return SourceLocation(self._filename, form.line)

    def _int_attr(self, form: Form, attrs: Dict[str, Any], key: str) -> Optional[int]:
        if key not in attrs:
            return None
        value = attrs[key]
        if not isinstance(value, int) or isinstance(value, bool):
            raise self._error(form, f"attribute :{key} expects an integer")
        return value

    def _anon_usr(self) -> str:
        self._anon_counter += 1
        return f"anon:{self._filename}:{self._anon_counter}"

    def _name_of(self, form: Form, index: int) -> Optional[str]:
        if len(form) > index and isinstance(form[index], Symbol):
            return str(form[index])
        return None

    def _type(self, spec: Any, scope: _Scope, owner: DeclNode,
              form: Form, typedef_name: str = "") -> TypeRef:
        """Resolve a TYPE operand: a type-name string or an inline declaration."""
        if isinstance(spec, Form):
            if spec.head not in ("struct", "union", "class", "enum"):
                raise self._error(spec, "inline type must be a struct/union/class/enum")
            nested = self._decl(spec, scope, typedef_name=typedef_name)
            owner.children.extend(nested)
            decl = nested[-1]
            if decl.kind is DeclKind.ENUM:
                return TypeRef.enum(decl.usr, decl.name)
            return TypeRef.record(decl.usr, decl.name)
        if isinstance(spec, str) and not isinstance(spec, (Symbol, Keyword)):
            return parse_type_name(
                spec,
                _ScopeResolver(scope, self._language),
                location=SourceLocation(self._filename, form.line),
            )
        raise self._error(form, f"expected a type, got {spec!r}")

    # ─────────────────────────────────────────────────────────────
    # Declarations
    # ─────────────────────────────────────────────────────────────

    def _decl(self, form: Any, scope: _Scope, typedef_name: str = "") -> List[DeclNode]:
        if not isinstance(form, Form) or form.head is None:
            raise self._error(form, f"expected a declaration form, got {form!r}")
        head = form.head
        if head == "namespace":
            return [self._namespace(form, scope)]
        if head in _RECORD_KINDS:
            return [self._record(form, scope, typedef_name)]
        if head == "enum":
            return [self._enum(form, scope, typedef_name)]
        if head in ("typedef", "using"):
            return self._typedef(form, scope)
        if head == "function":
            return [self._function(form, scope)]
        if head == "class-template":
            return [self._class_template(form, scope)]
        if head == "function-template":
            return [self._function_template(form, scope)]
        raise self._error(form, f"unknown declaration form '{head}'")

    def _namespace(self, form: Form, scope: _Scope) -> DeclNode:
        if self._language is not Language.CXX:
            raise self._error(form, "namespaces require :language c++")
        name = self._name_of(form, 1)
        if name is None:
            raise self._error(form, "namespace needs a name")
        attrs, body = self._split_attrs(form, 2)
        inner = scope.child(name)
        node = DeclNode(
            kind=DeclKind.NAMESPACE,
            name=name,
            usr=f"namespace:{inner.qualified}",
            location=self._location(form, attrs),
        )
        for item in body:
            node.children.extend(self._decl(item, inner))
        return node

    def _register_tag(self, scope: _Scope, name: str, ref: TypeRef) -> None:
        scope.tags[name] = ref
        if self._language is Language.CXX:
            scope.names.setdefault(name, ref)

    def _record(self, form: Form, scope: _Scope, typedef_name: str = "") -> DeclNode:
        kind = _RECORD_KINDS[form.head or ""]
        if kind is DeclKind.CLASS and self._language is not Language.CXX:
            raise self._error(form, "class requires :language c++")
        name = self._name_of(form, 1)
        attrs, body = self._split_attrs(form, 2 if name else 1)

        # C hoists nested tags to file scope.
        tag_scope = scope
        if self._language is Language.C:
            while tag_scope.parent is not None:
                tag_scope = tag_scope.parent

        if name:
            usr = str(attrs.get("usr") or f"tag:{tag_scope.qualify(name)}")
        else:
            usr = str(attrs.get("usr") or self._anon_usr())
        node = DeclNode(
            kind=kind,
            name=name or "",
            usr=usr,
            location=self._location(form, attrs),
            is_definition=not attrs.get("forward", False),
            packed=bool(attrs.get("packed", False)),
            pack=self._int_attr(form, attrs, "pack"),
            align=self._int_attr(form, attrs, "align"),
            size_hint=self._int_attr(form, attrs, "size"),
            align_hint=self._int_attr(form, attrs, "alignof"),
            has_vtable=bool(attrs.get("vtable", False)),
            nontrivial_copy=bool(attrs.get("nontrivial", False)),
            typedef_name=typedef_name,
        )
        if name:
            self._register_tag(tag_scope, name, TypeRef.record(usr, tag_scope.qualify(name)))

        inner = scope.child(name) if name else _Scope("", scope, scope.qualified)
        field_types = set()
        for member in body:
            if not isinstance(member, Form):
                raise self._error(form, f"unexpected {member!r} in {form.head} body")
            if member.head == "field":
                node.children.append(self._field(member, inner, node))
                ref = node.children[-1].type
                if ref is not None and ref.kind is TypeRefKind.RECORD:
                    field_types.add(ref.usr)
            elif member.head == "base":
                node.children.append(self._base(member, inner))
            else:
                nested = self._decl(member, inner)
                node.children.extend(nested)

        # Unnamed records that no field refers to are anonymous members.
        members: List[DeclNode] = []
        for child in node.children:
            members.append(child)
            if (child.kind.is_record and not child.name and not child.typedef_name
                    and child.usr not in field_types):
                child.anonymous_member = True
                members.append(DeclNode(
                    kind=DeclKind.FIELD,
                    name="",
                    usr=f"{child.usr}:member",
                    location=child.location,
                    type=TypeRef.record(child.usr),
                ))
        node.children = members
        return node

    def _field(self, form: Form, scope: _Scope, owner: DeclNode) -> DeclNode:
        name = self._name_of(form, 1)
        if name is None or len(form) < 3:
            raise self._error(form, "expected (field NAME TYPE ...)")
        attrs, rest = self._split_attrs(form, 3)
        if rest:
            raise self._error(form, "unexpected forms after field type")
        bit_width = self._int_attr(form, attrs, "bits")
        usr = f"{owner.usr}::{name}"
        if name == "_":
            if bit_width is None:
                raise self._error(form, "only bitfields may be unnamed")
            name = ""
            usr = f"{owner.usr}::<unnamed>{len(owner.children)}"
        return DeclNode(
            kind=DeclKind.FIELD,
            name=name,
            usr=usr,
            location=self._location(form, attrs),
            type=self._type(form[2], scope, owner, form),
            bit_width=bit_width,
            align=self._int_attr(form, attrs, "align"),
        )

    def _base(self, form: Form, scope: _Scope) -> DeclNode:
        if len(form) < 2:
            raise self._error(form, "expected (base TYPE ...)")
        attrs, rest = self._split_attrs(form, 2)
        ref = self._type(form[1], scope, DeclNode(DeclKind.BASE), form)
        return DeclNode(
            kind=DeclKind.BASE,
            name=ref.name,
            location=self._location(form, attrs),
            type=ref,
            is_virtual=bool(attrs.get("virtual", False)),
        )

    def _enum(self, form: Form, scope: _Scope, typedef_name: str = "") -> DeclNode:
        name = self._name_of(form, 1)
        attrs, body = self._split_attrs(form, 2 if name else 1)
        tag_scope = scope
        if self._language is Language.C:
            while tag_scope.parent is not None:
                tag_scope = tag_scope.parent
        if name:
            usr = str(attrs.get("usr") or f"tag:{tag_scope.qualify(name)}")
        else:
            usr = str(attrs.get("usr") or self._anon_usr())

        repr_ref = None
        if "repr" in attrs:
            repr_ref = self._type(attrs["repr"], scope, DeclNode(DeclKind.ENUM), form)

        node = DeclNode(
            kind=DeclKind.ENUM,
            name=name or "",
            usr=usr,
            location=self._location(form, attrs),
            type=repr_ref,
            is_definition=not attrs.get("forward", False),
            scoped=bool(attrs.get("scoped", False)),
            typedef_name=typedef_name,
        )
        if name:
            self._register_tag(tag_scope, name, TypeRef.enum(usr, tag_scope.qualify(name)))

        for item in body:
            if not isinstance(item, Form) or item.head != "const":
                raise self._error(form, f"expected (const NAME VALUE?) in enum, got {item!r}")
            const_name = self._name_of(item, 1)
            if const_name is None:
                raise self._error(item, "enum constant needs a name")
            value = item[2] if len(item) > 2 else None
            if value is not None and (not isinstance(value, int) or isinstance(value, bool)):
                raise self._error(item, "enum constant value must be an integer")
            node.children.append(DeclNode(
                kind=DeclKind.ENUM_CONSTANT,
                name=const_name,
                usr=f"{usr}::{const_name}",
                location=SourceLocation(self._filename, item.line),
                value=value,
            ))
        return node

    def _typedef(self, form: Form, scope: _Scope) -> List[DeclNode]:
        name = self._name_of(form, 1)
        if name is None or len(form) < 3:
            raise self._error(form, f"expected ({form.head} NAME TYPE)")
        attrs, rest = self._split_attrs(form, 3)
        if rest:
            raise self._error(form, "unexpected forms after typedef target")
        holder = DeclNode(DeclKind.TYPEDEF)
        target = self._type(form[2], scope, holder, form, typedef_name=name)
        qualified = scope.qualify(name)
        usr = str(attrs.get("usr") or f"typedef:{qualified}")
        node = DeclNode(
            kind=DeclKind.TYPEDEF,
            name=name,
            usr=usr,
            location=self._location(form, attrs),
            type=target,
        )
        scope.names[name] = TypeRef.typedef(usr, qualified)
        return holder.children + [node]

    def _function(self, form: Form, scope: _Scope) -> DeclNode:
        name = self._name_of(form, 1)
        if name is None or len(form) < 3:
            raise self._error(form, "expected (function NAME RET ...)")
        attrs, body = self._split_attrs(form, 3)
        result = self._type(form[2], scope, DeclNode(DeclKind.FUNCTION), form)
        callconv = str(attrs.get("callconv", "C"))
        linkage = str(attrs.get("linkage", "external"))
        if linkage not in ("internal", "external"):
            raise self._error(form, f"unknown linkage '{linkage}'")
        node = DeclNode(
            kind=DeclKind.FUNCTION,
            name=name,
            usr=str(attrs.get("usr") or f"function:{scope.qualify(name)}"),
            location=self._location(form, attrs),
            type=result,
            variadic=bool(attrs.get("variadic", False)),
            callconv=callconv,
            linkage=linkage,
            mangled_name=str(attrs.get("mangled", "")),
            noreturn=bool(attrs.get("noreturn", False)),
        )
        for item in body:
            if not isinstance(item, Form) or item.head != "param":
                raise self._error(form, f"expected (param NAME? TYPE), got {item!r}")
            pname = self._name_of(item, 1)
            type_index = 2 if pname else 1
            if len(item) <= type_index:
                raise self._error(item, "parameter needs a type")
            node.children.append(DeclNode(
                kind=DeclKind.PARAM,
                name=pname or "",
                location=SourceLocation(self._filename, item.line),
                type=self._type(item[type_index], scope, node, item),
            ))
        return node

    def _class_template(self, form: Form, scope: _Scope) -> DeclNode:
        if self._language is not Language.CXX:
            raise self._error(form, "class-template requires :language c++")
        name = self._name_of(form, 1)
        if name is None:
            raise self._error(form, "class-template needs a name")
        attrs, body = self._split_attrs(form, 2)
        qualified = scope.qualify(name)
        usr = str(attrs.get("usr") or f"template:{qualified}")
        scope.templates[name] = TypeRef(TypeRefKind.INSTANTIATION, usr=usr, name=qualified)

        inner = scope.child(name)
        node = DeclNode(
            kind=DeclKind.CLASS_TEMPLATE,
            name=name,
            usr=usr,
            location=self._location(form, attrs),
            packed=bool(attrs.get("packed", False)),
            align=self._int_attr(form, attrs, "align"),
            has_vtable=bool(attrs.get("vtable", False)),
            nontrivial_copy=bool(attrs.get("nontrivial", False)),
        )
        members = []
        for item in body:
            if isinstance(item, Form) and item.head == "template-param":
                pname = self._name_of(item, 1)
                if pname is None:
                    raise self._error(item, "template-param needs a name")
                inner.names[pname] = TypeRef(TypeRefKind.TEMPLATE_PARAM, name=pname)
                node.children.append(DeclNode(
                    kind=DeclKind.TEMPLATE_PARAM,
                    name=pname,
                    location=SourceLocation(self._filename, item.line),
                ))
            else:
                members.append(item)

        node.children.extend(self._record_body(members, inner, node))
        return node

    def _record_body(self, body: Sequence[Any], scope: _Scope,
                     owner: DeclNode) -> List[DeclNode]:
        members: List[DeclNode] = []
        for member in body:
            if not isinstance(member, Form):
                raise self._error(member, f"unexpected {member!r} in template body")
            if member.head == "field":
                members.append(self._field(member, scope, owner))
            elif member.head == "base":
                members.append(self._base(member, scope))
            else:
                members.extend(self._decl(member, scope))
        return members

    def _function_template(self, form: Form, scope: _Scope) -> DeclNode:
        name = self._name_of(form, 1) or ""
        attrs, _ = self._split_attrs(form, 2)
        return DeclNode(
            kind=DeclKind.FUNCTION_TEMPLATE,
            name=name,
            usr=f"function-template:{scope.qualify(name)}",
            location=self._location(form, attrs),
            unsupported_reason="function templates cannot be bound",
        )


# ═══════════════════════════════════════════════════════════════════
#  PART 4 — PUBLIC API
# ═══════════════════════════════════════════════════════════════════

def read_decl_text(text: str, filename: str = "<decl>") -> DeclNode:
    """Parse ``.decl`` source text into a translation-unit ``DeclNode``."""
    return DeclReader(filename).read(text)


def read_decl_file(path: Union[str, Path]) -> DeclNode:
    """Read and parse a ``.decl`` file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ParseError(
            f"cannot read {path}: {exc.strerror}",
            location=SourceLocation(str(path)),
            cause=exc,
        ) from exc
    try:
        return read_decl_text(text, str(path))
    except BindgenError:
        logger.debug("failed to read %s", path)
        raise
