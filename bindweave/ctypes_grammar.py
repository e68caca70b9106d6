# bindweave/ctypes_grammar.py
"""
C/C++ Type-Name Parser
======================

A Parsimonious PEG grammar for C *type names* (the abstract declarators that
appear in casts and ``sizeof``), plus a ``NodeVisitor`` that lowers them to
``TypeRef`` values.  The ``.decl`` reader spells every field, parameter and
typedef target this way::

    "const struct Point *"
    "unsigned long long"
    "void (*)(int, const char *, ...)"
    "int (*[4])(void)"
    "ns::Box<int>"

Identifiers are not resolved here.  The visitor hands every name it meets to
a ``TypeNameResolver``, which knows what is in scope and returns the matching
``TypeRef`` (or raises ``ParseError`` for an unknown name).

Declarator semantics
--------------------
Each declarator is lowered to a function ``TypeRef -> TypeRef``.  Pointer
operators wrap the base type left to right, suffixes (``[N]``, ``(params)``)
apply innermost-last, and a parenthesised group applies after the suffixes
that follow it.  ``int (*)[3]`` is therefore a pointer to an array of three
ints, and ``int *[3]`` an array of three pointers.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import (
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from parsimonious.exceptions import ParseError as PegParseError
from parsimonious.grammar import Grammar
from parsimonious.nodes import NodeVisitor

from .abi import PrimitiveKind
from .decls import TypeRef, TypeRefKind
from .errors import (
    BindgenError,
    BindgenErrorCodes,
    ParseError,
    SourceLocation,
)

logger = logging.getLogger(__name__)

Declarator = Callable[[TypeRef], TypeRef]


# ═══════════════════════════════════════════════════════════════════
#  PART 1 — GRAMMAR
# ═══════════════════════════════════════════════════════════════════

TYPE_NAME_GRAMMAR = Grammar(r'''
    type_name           = cv_list _ base_type cv_list declarator? _

    cv_list             = (_ cv_word)*
    cv_word             = ~"(const|volatile|restrict|__restrict__|__restrict)(?![A-Za-z0-9_])"

    base_type           = builtin / elaborated / qualified_name
    builtin             = builtin_word (_ builtin_word)*
    builtin_word        = ~"(unsigned|signed|short|long|int|char|void|bool|_Bool|float|double|wchar_t|char16_t|char32_t|__int128|_Float16)(?![A-Za-z0-9_])"
    elaborated          = tag_word _ qualified_name
    tag_word            = ~"(struct|union|enum|class)(?![A-Za-z0-9_])"

    qualified_name      = global_scope? name_part (_ "::" _ name_part)*
    global_scope        = "::" _
    name_part           = identifier template_args?
    template_args       = _ "<" _ template_arg (_ "," _ template_arg)* _ ">"
    template_arg        = integer / type_name
    identifier          = !reserved ~"[A-Za-z_][A-Za-z0-9_]*"
    reserved            = cv_word / builtin_word / tag_word / callconv_word

    # ─────────────────────────────────────────────────────────────
    # Abstract declarators
    # ─────────────────────────────────────────────────────────────

    declarator          = pointer_declarator / direct_declarator
    pointer_declarator  = ptr_operator+ direct_declarator?
    ptr_operator        = _ ptr_symbol cv_list
    ptr_symbol          = "&&" / "*" / "&"
    direct_declarator   = grouped_declarator / suffix+
    grouped_declarator  = group suffix*
    group               = _ "(" _ callconv? pointer_declarator _ ")"
    callconv            = callconv_word _
    callconv_word       = ~"(__cdecl|__stdcall|__fastcall|__thiscall|__vectorcall)(?![A-Za-z0-9_])"

    suffix              = array_suffix / function_suffix
    array_suffix        = _ "[" _ integer? _ "]"
    function_suffix     = _ "(" _ param_list? _ ")" fn_attribute?
    param_list          = ellipsis / params
    params              = type_name (_ "," _ type_name)* (_ "," _ ellipsis)?
    ellipsis            = "..."
    fn_attribute        = _ "__attribute__" _ "((" _ attr_callconv _ "))"
    attr_callconv       = ~"(cdecl|stdcall|fastcall|thiscall|vectorcall|ms_abi|sysv_abi)"

    integer             = ~"-?(0[xX][0-9a-fA-F]+|[0-9]+)[uUlL]*"
    _                   = ~r"\s*"
''')


# ═══════════════════════════════════════════════════════════════════
#  PART 2 — BUILTIN TYPES AND NAME RESOLUTION
# ═══════════════════════════════════════════════════════════════════

_CALLCONV_KEYWORDS: Dict[str, str] = {
    "__cdecl": "C",
    "__stdcall": "stdcall",
    "__fastcall": "fastcall",
    "__thiscall": "thiscall",
    "__vectorcall": "vectorcall",
    "cdecl": "C",
    "stdcall": "stdcall",
    "fastcall": "fastcall",
    "thiscall": "thiscall",
    "vectorcall": "vectorcall",
    "ms_abi": "win64",
    "sysv_abi": "sysv64",
}

# <stdint.h> names usable without a declaration in scope.
STD_TYPEDEFS: Dict[str, PrimitiveKind] = {
    "int8_t": PrimitiveKind.SCHAR,
    "uint8_t": PrimitiveKind.UCHAR,
    "int16_t": PrimitiveKind.SHORT,
    "uint16_t": PrimitiveKind.USHORT,
    "int32_t": PrimitiveKind.INT,
    "uint32_t": PrimitiveKind.UINT,
    "int64_t": PrimitiveKind.LONGLONG,
    "uint64_t": PrimitiveKind.ULONGLONG,
}


def builtin_from_words(words: Sequence[str]) -> PrimitiveKind:
    """Map a builtin specifier sequence (``unsigned long long``) to its kind."""
    counts: Dict[str, int] = {}
    for word in words:
        word = "bool" if word == "_Bool" else word
        counts[word] = counts.get(word, 0) + 1

    unsigned = counts.pop("unsigned", 0)
    signed = counts.pop("signed", 0)
    if unsigned and signed:
        raise ParseError(f"both signed and unsigned in '{' '.join(words)}'",
                         code=BindgenErrorCodes.SYNTAX_ERROR)
    longs = counts.pop("long", 0)
    shorts = counts.pop("short", 0)
    ints = counts.pop("int", 0)
    rest = sorted(counts)
    if any(counts[w] > 1 for w in rest) or len(rest) > 1 or ints > 1:
        raise _bad_builtin(words)

    base = rest[0] if rest else None
    if base is None:
        if shorts:
            if longs:
                raise _bad_builtin(words)
            return PrimitiveKind.USHORT if unsigned else PrimitiveKind.SHORT
        if longs == 1:
            return PrimitiveKind.ULONG if unsigned else PrimitiveKind.LONG
        if longs == 2:
            return PrimitiveKind.ULONGLONG if unsigned else PrimitiveKind.LONGLONG
        if longs > 2:
            raise _bad_builtin(words)
        # plain "int", "unsigned", "signed"
        return PrimitiveKind.UINT if unsigned else PrimitiveKind.INT

    if ints or shorts:
        raise _bad_builtin(words)
    if base == "char":
        if longs:
            raise _bad_builtin(words)
        if unsigned:
            return PrimitiveKind.UCHAR
        return PrimitiveKind.SCHAR if signed else PrimitiveKind.CHAR
    if base == "__int128":
        if longs:
            raise _bad_builtin(words)
        return PrimitiveKind.UINT128 if unsigned else PrimitiveKind.INT128
    if unsigned or signed:
        raise _bad_builtin(words)
    if base == "double":
        if longs > 1:
            raise _bad_builtin(words)
        return PrimitiveKind.LONGDOUBLE if longs else PrimitiveKind.DOUBLE
    if longs:
        raise _bad_builtin(words)
    return {
        "void": PrimitiveKind.VOID,
        "bool": PrimitiveKind.BOOL,
        "float": PrimitiveKind.FLOAT,
        "wchar_t": PrimitiveKind.WCHAR,
        "char16_t": PrimitiveKind.CHAR16,
        "char32_t": PrimitiveKind.CHAR32,
        "_Float16": PrimitiveKind.HALF,
    }[base]


def _bad_builtin(words: Sequence[str]) -> ParseError:
    return ParseError(f"invalid type specifier '{' '.join(words)}'",
                      code=BindgenErrorCodes.SYNTAX_ERROR)


class TypeNameResolver:
    """Resolves the names a type spelling mentions.

    Subclasses override ``lookup`` and ``instantiate``; the defaults reject
    every name.
    """

    def lookup(self, parts: Sequence[str], tag: Optional[str]) -> TypeRef:
        """Resolve ``ns::Name`` (``tag`` is ``struct``/``union``/... or None)."""
        raise ParseError(
            f"unknown type name '{'::'.join(parts)}'",
            code=BindgenErrorCodes.UNKNOWN_TYPE_NAME,
        )

    def instantiate(self, parts: Sequence[str], args: Sequence[TypeRef]) -> TypeRef:
        """Resolve a template-id ``Name<args>``."""
        raise ParseError(
            f"unknown template '{'::'.join(parts)}'",
            code=BindgenErrorCodes.UNKNOWN_TYPE_NAME,
        )


class MappingResolver(TypeNameResolver):
    """Resolver backed by a plain ``name -> TypeRef`` mapping.

    Tagged lookups (``struct Foo``) of unknown names produce a reference to an
    undeclared record, which the importer later treats as opaque.
    """

    def __init__(self, names: Optional[Mapping[str, TypeRef]] = None) -> None:
        self._names: Dict[str, TypeRef] = dict(names or {})

    def lookup(self, parts: Sequence[str], tag: Optional[str]) -> TypeRef:
        name = "::".join(parts)
        if name in self._names:
            return self._names[name]
        if tag is None and name in STD_TYPEDEFS:
            return TypeRef.prim(STD_TYPEDEFS[name])
        if tag == "enum":
            return TypeRef.enum(f"tag:{name}", name)
        if tag is not None:
            return TypeRef.record(f"tag:{name}", name)
        return super().lookup(parts, tag)


# ═══════════════════════════════════════════════════════════════════
#  PART 3 — VISITOR (parse tree → TypeRef)
# ═══════════════════════════════════════════════════════════════════

def _opt(value):
    """Unwrap an optional match: ``[x]`` → ``x``, unmatched → ``None``."""
    if isinstance(value, list) and value:
        return value[0]
    return None


def _parse_int(text: str) -> int:
    digits = re.sub(r"[uUlL]+$", "", text)
    negative = digits.startswith("-")
    digits = digits.lstrip("-")
    if digits.lower().startswith("0x"):
        value = int(digits, 16)
    elif len(digits) > 1 and digits.startswith("0"):
        value = int(digits, 8)
    else:
        value = int(digits)
    return -value if negative else value


class TypeNameVisitor(NodeVisitor):
    """Transforms a type-name parse tree into a ``TypeRef``."""

    grammar = TYPE_NAME_GRAMMAR
    unwrapped_exceptions = (BindgenError,)

    def __init__(self, resolver: TypeNameResolver) -> None:
        self._resolver = resolver

    def generic_visit(self, node, visited_children):
        return visited_children or node.text.strip()

    # ─────────────────────────────────────────────────────────────
    # Type name
    # ─────────────────────────────────────────────────────────────

    def visit_type_name(self, node, visited_children):
        lead_const, _, base, trail_const, declarator, _ = visited_children
        if lead_const or trail_const:
            base = base.with_const(True)
        apply = _opt(declarator)
        return apply(base) if apply else base

    def visit_cv_list(self, node, visited_children):
        return "const" in node.text.split()

    def visit_base_type(self, node, visited_children):
        child = visited_children[0]
        if isinstance(child, TypeRef):
            return child
        return self._resolve(child, None, node.text.strip())

    def visit_builtin(self, node, visited_children):
        return TypeRef.prim(builtin_from_words(node.text.split()))

    def visit_elaborated(self, node, visited_children):
        tag = node.children[0].text
        parts = visited_children[2]
        return self._resolve(parts, tag, node.text.strip())

    def visit_qualified_name(self, node, visited_children):
        _, first, rest = visited_children
        parts = [first]
        for item in rest or []:
            parts.append(item[3])
        return parts

    def visit_name_part(self, node, visited_children):
        _, args = visited_children
        return (node.children[0].text, _opt(args))

    def visit_template_args(self, node, visited_children):
        _, _, _, first, rest, _, _ = visited_children
        args = [first]
        for item in rest or []:
            args.append(item[3])
        return args

    def visit_template_arg(self, node, visited_children):
        return visited_children[0]

    def visit_integer(self, node, visited_children):
        return _parse_int(node.text)

    def _resolve(self, parts: List[Tuple[str, Optional[list]]],
                 tag: Optional[str], spelling: str) -> TypeRef:
        names = [name for name, _ in parts]
        if any(args is not None for _, args in parts[:-1]):
            return TypeRef.unsupported(spelling, "member of a template instantiation")
        args = parts[-1][1]
        if args is None:
            return self._resolver.lookup(names, tag)
        if any(not isinstance(a, TypeRef) for a in args):
            return TypeRef.unsupported(spelling, "non-type template argument")
        return self._resolver.instantiate(names, args)

    # ─────────────────────────────────────────────────────────────
    # Declarators
    # ─────────────────────────────────────────────────────────────

    def visit_declarator(self, node, visited_children):
        return visited_children[0]

    def visit_pointer_declarator(self, node, visited_children):
        pointers, direct = visited_children
        direct = _opt(direct)

        def apply(ref: TypeRef) -> TypeRef:
            for ptr in pointers:
                ref = ptr(ref)
            return direct(ref) if direct else ref

        return apply

    def visit_ptr_operator(self, node, visited_children):
        symbol = node.children[1].text
        is_const = visited_children[2]
        kind = {
            "*": TypeRefKind.POINTER,
            "&": TypeRefKind.REFERENCE,
            "&&": TypeRefKind.RVALUE_REFERENCE,
        }[symbol]
        return lambda ref: TypeRef(kind, inner=ref, is_const=is_const)

    def visit_direct_declarator(self, node, visited_children):
        child = visited_children[0]
        if callable(child):
            return child
        return _compose_suffixes(child)

    def visit_grouped_declarator(self, node, visited_children):
        group, suffixes = visited_children
        apply_suffixes = _compose_suffixes(suffixes or [])
        return lambda ref: group(apply_suffixes(ref))

    def visit_group(self, node, visited_children):
        _, _, _, callconv, inner, _, _ = visited_children
        callconv = _opt(callconv)

        def apply(ref: TypeRef) -> TypeRef:
            if callconv and ref.kind is TypeRefKind.FUNCTION:
                ref = replace(ref, callconv=callconv)
            return inner(ref)

        return apply

    def visit_callconv(self, node, visited_children):
        return _CALLCONV_KEYWORDS[node.children[0].text]

    def visit_suffix(self, node, visited_children):
        return visited_children[0]

    def visit_array_suffix(self, node, visited_children):
        length = _opt(visited_children[3])
        return lambda ref: TypeRef.array(ref, length)

    def visit_function_suffix(self, node, visited_children):
        _, _, _, param_list, _, _, attribute = visited_children
        params, variadic = _opt(param_list) or ([], False)
        if (len(params) == 1 and not variadic
                and params[0].kind is TypeRefKind.PRIMITIVE
                and params[0].primitive is PrimitiveKind.VOID):
            params = []
        callconv = _opt(attribute) or "C"
        return lambda ref: TypeRef(
            TypeRefKind.FUNCTION,
            inner=ref,
            params=tuple(params),
            variadic=variadic,
            callconv=callconv,
        )

    def visit_param_list(self, node, visited_children):
        child = visited_children[0]
        if node.text.strip() == "...":
            return ([], True)
        return child

    def visit_params(self, node, visited_children):
        first, rest, ellipsis = visited_children
        params = [first]
        for item in rest or []:
            params.append(item[3])
        return (params, _opt(ellipsis) is not None)

    def visit_fn_attribute(self, node, visited_children):
        return _CALLCONV_KEYWORDS[node.children[5].text]


def _compose_suffixes(suffixes: Sequence[Declarator]) -> Declarator:
    def apply(ref: TypeRef) -> TypeRef:
        for suffix in reversed(suffixes):
            ref = suffix(ref)
        return ref

    return apply


# ═══════════════════════════════════════════════════════════════════
#  PART 4 — PUBLIC API
# ═══════════════════════════════════════════════════════════════════

def parse_type_name(
    text: str,
    resolver: Optional[TypeNameResolver] = None,
    location: Optional[SourceLocation] = None,
) -> TypeRef:
    """Parse a C type name into a ``TypeRef``.

    Raises ``ParseError`` when the spelling is malformed or names an unknown
    type.
    """
    visitor = TypeNameVisitor(resolver or MappingResolver())
    try:
        return visitor.parse(text)
    except PegParseError as exc:
        logger.debug("type name %r failed at column %s", text, exc.column())
        raise ParseError(
            f"malformed type name '{text}' (column {exc.column()})",
            code=BindgenErrorCodes.SYNTAX_ERROR,
            location=location,
            cause=exc,
        ) from exc
    except ParseError as exc:
        if location is not None and not exc.location.file:
            exc.error_message.location = location
        raise
