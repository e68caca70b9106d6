# bindweave/clang_frontend.py
"""
libclang front-end.

Parses a C or C++ header with ``clang.cindex`` and lowers the cursor tree
to the front-end neutral ``DeclNode`` model.  Only declarations are kept:
records, enums, typedefs, free functions, namespaces and class templates.
Methods, variables and macros are not bound.

Clang's own record layout is carried along as size/alignment hints, which
the layout resolver checks its result against.  ``#pragma pack`` and
``aligned`` attributes are recovered from those numbers: a record aligned
below its widest member was packed, one aligned above it was over-aligned.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from clang.cindex import (
    Cursor,
    CursorKind,
    Diagnostic,
    Index,
    LinkageKind,
    TranslationUnit,
    TranslationUnitLoadError,
    Type,
    TypeKind,
)

from .abi import PrimitiveKind
from .ctypes_grammar import STD_TYPEDEFS
from .decls import DeclKind, DeclNode, Language, TypeRef, TypeRefKind
from .errors import BindgenErrorCodes, ErrorNote, ParseError, SourceLocation
from .options import BindgenOptions

logger = logging.getLogger(__name__)

CXX_SUFFIXES = frozenset({".hpp", ".hh", ".hxx", ".h++", ".cpp", ".cc", ".cxx"})

_PRIMITIVES: Dict[TypeKind, PrimitiveKind] = {
    TypeKind.VOID: PrimitiveKind.VOID,
    TypeKind.BOOL: PrimitiveKind.BOOL,
    TypeKind.CHAR_S: PrimitiveKind.CHAR,
    TypeKind.CHAR_U: PrimitiveKind.CHAR,
    TypeKind.SCHAR: PrimitiveKind.SCHAR,
    TypeKind.UCHAR: PrimitiveKind.UCHAR,
    TypeKind.WCHAR: PrimitiveKind.WCHAR,
    TypeKind.CHAR16: PrimitiveKind.CHAR16,
    TypeKind.CHAR32: PrimitiveKind.CHAR32,
    TypeKind.SHORT: PrimitiveKind.SHORT,
    TypeKind.USHORT: PrimitiveKind.USHORT,
    TypeKind.INT: PrimitiveKind.INT,
    TypeKind.UINT: PrimitiveKind.UINT,
    TypeKind.LONG: PrimitiveKind.LONG,
    TypeKind.ULONG: PrimitiveKind.ULONG,
    TypeKind.LONGLONG: PrimitiveKind.LONGLONG,
    TypeKind.ULONGLONG: PrimitiveKind.ULONGLONG,
    TypeKind.INT128: PrimitiveKind.INT128,
    TypeKind.UINT128: PrimitiveKind.UINT128,
    TypeKind.HALF: PrimitiveKind.HALF,
    TypeKind.FLOAT: PrimitiveKind.FLOAT,
    TypeKind.DOUBLE: PrimitiveKind.DOUBLE,
    TypeKind.LONGDOUBLE: PrimitiveKind.LONGDOUBLE,
    TypeKind.NULLPTR: PrimitiveKind.NULLPTR,
}

# Calling-convention attributes as clang spells them in function types.
_CALLCONV_ATTRS = (
    ("stdcall", "stdcall"),
    ("fastcall", "fastcall"),
    ("thiscall", "thiscall"),
    ("vectorcall", "vectorcall"),
    ("ms_abi", "win64"),
    ("sysv_abi", "sysv64"),
    ('pcs("aapcs")', "aapcs"),
)

_NORETURN_TOKENS = frozenset({"_Noreturn", "noreturn", "__noreturn__"})

_RECORD_KINDS = {
    CursorKind.STRUCT_DECL: DeclKind.STRUCT,
    CursorKind.UNION_DECL: DeclKind.UNION,
    CursorKind.CLASS_DECL: DeclKind.CLASS,
}

_TEMPLATE_PARAM_KINDS = (
    CursorKind.TEMPLATE_TYPE_PARAMETER,
    CursorKind.TEMPLATE_NON_TYPE_PARAMETER,
    CursorKind.TEMPLATE_TEMPLATE_PARAMETER,
)


def _is_unnamed(cursor: Cursor) -> bool:
    spelling = cursor.spelling or ""
    return not spelling or "(anonymous" in spelling or "(unnamed" in spelling


def _location(cursor: Cursor) -> SourceLocation:
    loc = cursor.location
    if loc.file is None:
        return SourceLocation()
    return SourceLocation(loc.file.name, loc.line, loc.column)


def _callconv(fn_type: Type) -> str:
    spelling = fn_type.spelling
    for attr, name in _CALLCONV_ATTRS:
        if attr in spelling:
            return name
    return "C"


def _positive(value: int) -> Optional[int]:
    return value if value > 0 else None


class ClangFrontend:
    """Lowers one libclang translation unit to a ``DeclNode`` tree."""

    def __init__(self, options: Optional[BindgenOptions] = None) -> None:
        self._options = options or BindgenOptions()
        self._language = Language.C
        self._templates: Dict[str, str] = {}

    # ─────────────────────────────────────────────────────────────
    # Parsing
    # ─────────────────────────────────────────────────────────────

    def language_for(self, path: Path) -> Language:
        if self._options.language == "c++":
            return Language.CXX
        if self._options.language == "c":
            return Language.C
        return Language.CXX if path.suffix.lower() in CXX_SUFFIXES else Language.C

    def clang_arguments(self, language: Language) -> List[str]:
        args = ["-x", "c++-header" if language is Language.CXX else "c-header",
                "-target", self._options.target]
        args.extend(self._options.clang_args)
        return args

    def parse(self, path: Union[str, Path]) -> DeclNode:
        path = Path(path)
        self._language = self.language_for(path)
        self._templates = {}
        args = self.clang_arguments(self._language)
        logger.info("parsing %s with clang %s", path, " ".join(args))
        try:
            tu = Index.create().parse(
                str(path),
                args=args,
                options=TranslationUnit.PARSE_SKIP_FUNCTION_BODIES,
            )
        except TranslationUnitLoadError as exc:
            raise ParseError(
                f"clang could not load {path}",
                location=SourceLocation(str(path)),
                cause=exc,
            ) from exc
        self._check_diagnostics(tu, path)
        return self.lower(tu.cursor, str(path))

    def _check_diagnostics(self, tu: TranslationUnit, path: Path) -> None:
        notes = []
        for diag in tu.diagnostics:
            if diag.severity < Diagnostic.Error:
                logger.debug("clang: %s", diag)
                continue
            loc = diag.location
            where = SourceLocation(loc.file.name if loc.file else str(path),
                                   loc.line, loc.column)
            notes.append(ErrorNote(diag.spelling, where, label="clang"))
        if notes:
            raise ParseError(
                f"clang reported {len(notes)} error(s) in {path}",
                code=BindgenErrorCodes.FRONTEND_FAILURE,
                location=notes[0].location,
                notes=notes,
            )

    # ─────────────────────────────────────────────────────────────
    # Lowering
    # ─────────────────────────────────────────────────────────────

    def lower(self, root: Cursor, name: str) -> DeclNode:
        tu = DeclNode(
            kind=DeclKind.TRANSLATION_UNIT,
            name=name,
            location=SourceLocation(name, 1, 1),
            language=self._language,
        )
        tu.children = self._scope(root.get_children())
        logger.debug("lowered %d top-level declarations from %s", len(tu.children), name)
        return tu

    def _scope(self, cursors) -> List[DeclNode]:
        """Lower the declarations of one scope, in source order."""
        cursors = [c for c in cursors if c.location.file is not None]
        typedef_names = self._typedef_names(cursors)
        nodes: List[DeclNode] = []
        for cursor in cursors:
            nodes.extend(self._decl(cursor, typedef_names))
        return nodes

    @staticmethod
    def _typedef_names(cursors: Sequence[Cursor]) -> Dict[str, str]:
        """``typedef struct {...} Name;``: unnamed tag USR → typedef name."""
        names: Dict[str, str] = {}
        for cursor in cursors:
            if cursor.kind is not CursorKind.TYPEDEF_DECL:
                continue
            target = cursor.underlying_typedef_type.get_declaration()
            if target.kind in _RECORD_KINDS or target.kind is CursorKind.ENUM_DECL:
                if _is_unnamed(target):
                    names.setdefault(target.get_usr(), cursor.spelling)
        return names

    def _decl(self, cursor: Cursor, typedef_names: Dict[str, str]) -> List[DeclNode]:
        kind = cursor.kind
        if kind is CursorKind.NAMESPACE:
            return [self._namespace(cursor)]
        if kind in (CursorKind.LINKAGE_SPEC, CursorKind.UNEXPOSED_DECL):
            return self._scope(cursor.get_children())
        if kind in _RECORD_KINDS:
            return [self._record(cursor, typedef_names.get(cursor.get_usr(), ""))]
        if kind is CursorKind.ENUM_DECL:
            return [self._enum(cursor, typedef_names.get(cursor.get_usr(), ""))]
        if kind in (CursorKind.TYPEDEF_DECL, CursorKind.TYPE_ALIAS_DECL):
            return [self._typedef(cursor)]
        if kind is CursorKind.FUNCTION_DECL:
            return [self._function(cursor)]
        if kind is CursorKind.CLASS_TEMPLATE:
            return [self._class_template(cursor)]
        if kind is CursorKind.FUNCTION_TEMPLATE:
            return [DeclNode(
                kind=DeclKind.FUNCTION_TEMPLATE,
                name=cursor.spelling,
                usr=cursor.get_usr(),
                location=_location(cursor),
                unsupported_reason="function templates cannot be bound",
            )]
        logger.debug("ignoring %s '%s'", kind.name, cursor.spelling)
        return []

    def _common(self, cursor: Cursor) -> dict:
        return dict(
            usr=cursor.get_usr(),
            location=_location(cursor),
            system_header=cursor.location.is_in_system_header,
        )

    def _namespace(self, cursor: Cursor) -> DeclNode:
        node = DeclNode(kind=DeclKind.NAMESPACE, name=cursor.spelling, **self._common(cursor))
        node.children = self._scope(cursor.get_children())
        return node

    # ── Records ──────────────────────────────────────────────────

    def _record(self, cursor: Cursor, typedef_name: str = "") -> DeclNode:
        node = DeclNode(
            kind=_RECORD_KINDS[cursor.kind],
            name="" if _is_unnamed(cursor) else cursor.spelling,
            is_definition=cursor.is_definition(),
            typedef_name=typedef_name,
            **self._common(cursor),
        )
        if not node.is_definition:
            return node
        node.size_hint = _positive(cursor.type.get_size())
        node.align_hint = _positive(cursor.type.get_align())
        node.children = self._record_body(cursor, node)
        self._record_attributes(cursor, node)
        return node

    def _record_body(self, cursor: Cursor, owner: DeclNode) -> List[DeclNode]:
        children = [c for c in cursor.get_children()]
        typedef_names = self._typedef_names(children)
        members: List[DeclNode] = []
        field_types = set()
        for child in children:
            kind = child.kind
            if kind is CursorKind.FIELD_DECL:
                ref = self._type(child.type)
                if ref.kind is TypeRefKind.RECORD:
                    field_types.add(ref.usr)
                members.append(DeclNode(
                    kind=DeclKind.FIELD,
                    name=child.spelling,
                    usr=child.get_usr(),
                    location=_location(child),
                    type=ref,
                    bit_width=child.get_bitfield_width() if child.is_bitfield() else None,
                ))
            elif kind is CursorKind.CXX_BASE_SPECIFIER:
                members.append(DeclNode(
                    kind=DeclKind.BASE,
                    name=child.type.spelling,
                    location=_location(child),
                    type=self._type(child.type),
                    is_virtual=any(t.spelling == "virtual" for t in child.get_tokens()),
                ))
            elif kind in (CursorKind.CXX_METHOD, CursorKind.DESTRUCTOR):
                if child.is_virtual_method():
                    owner.has_vtable = True
                if kind is CursorKind.DESTRUCTOR and not child.is_default_method():
                    owner.nontrivial_copy = True
            elif kind is CursorKind.CONSTRUCTOR:
                if child.is_copy_constructor() and not child.is_default_method():
                    owner.nontrivial_copy = True
            elif kind in _TEMPLATE_PARAM_KINDS:
                members.append(DeclNode(
                    kind=DeclKind.TEMPLATE_PARAM,
                    name=child.spelling,
                    location=_location(child),
                ))
            elif child.location.file is not None:
                members.extend(self._decl(child, typedef_names))

        # Unnamed records that no field refers to are anonymous members.
        out: List[DeclNode] = []
        for member in members:
            out.append(member)
            if (member.kind.is_record and not member.name and not member.typedef_name
                    and member.usr not in field_types):
                member.anonymous_member = True
                out.append(DeclNode(
                    kind=DeclKind.FIELD,
                    usr=f"{member.usr}:member",
                    location=member.location,
                    type=TypeRef.record(member.usr),
                ))
        return out

    def _record_attributes(self, cursor: Cursor, node: DeclNode) -> None:
        node.packed = any(c.kind is CursorKind.PACKED_ATTR for c in cursor.get_children())
        natural = 1
        for child in cursor.get_children():
            if child.kind in (CursorKind.FIELD_DECL, CursorKind.CXX_BASE_SPECIFIER):
                natural = max(natural, child.type.get_align())
        if node.has_vtable:
            natural = max(natural, self._options.abi().pointer_align)
        align = node.align_hint
        if align is None:
            return
        if node.packed:
            node.align = align if align > 1 else None
        elif align > natural:
            node.align = align
        elif align < natural:
            node.pack = align

    # ── Enums, typedefs, functions ───────────────────────────────

    def _enum(self, cursor: Cursor, typedef_name: str = "") -> DeclNode:
        node = DeclNode(
            kind=DeclKind.ENUM,
            name="" if _is_unnamed(cursor) else cursor.spelling,
            is_definition=cursor.is_definition(),
            scoped=cursor.is_scoped_enum(),
            typedef_name=typedef_name,
            **self._common(cursor),
        )
        node.type = self._type(cursor.enum_type)
        for child in cursor.get_children():
            if child.kind is CursorKind.ENUM_CONSTANT_DECL:
                node.children.append(DeclNode(
                    kind=DeclKind.ENUM_CONSTANT,
                    name=child.spelling,
                    usr=child.get_usr(),
                    location=_location(child),
                    value=child.enum_value,
                ))
        return node

    def _typedef(self, cursor: Cursor) -> DeclNode:
        return DeclNode(
            kind=DeclKind.TYPEDEF,
            name=cursor.spelling,
            type=self._type(cursor.underlying_typedef_type),
            **self._common(cursor),
        )

    def _function(self, cursor: Cursor) -> DeclNode:
        fn_type = cursor.type
        mangled = ""
        if self._language is Language.CXX:
            symbol = cursor.mangled_name or ""
            if symbol not in ("", cursor.spelling, "_" + cursor.spelling):
                mangled = symbol
        internal = cursor.linkage in (LinkageKind.INTERNAL, LinkageKind.UNIQUE_EXTERNAL)
        node = DeclNode(
            kind=DeclKind.FUNCTION,
            name=cursor.spelling,
            type=self._type(cursor.result_type),
            variadic=(fn_type.kind is TypeKind.FUNCTIONPROTO
                      and fn_type.is_function_variadic()),
            callconv=_callconv(fn_type),
            linkage="internal" if internal else "external",
            mangled_name=mangled,
            noreturn=any(t.spelling in _NORETURN_TOKENS for t in cursor.get_tokens()),
            **self._common(cursor),
        )
        for arg in cursor.get_arguments():
            node.children.append(DeclNode(
                kind=DeclKind.PARAM,
                name=arg.spelling,
                location=_location(arg),
                type=self._type(arg.type),
            ))
        return node

    def _class_template(self, cursor: Cursor) -> DeclNode:
        node = DeclNode(
            kind=DeclKind.CLASS_TEMPLATE,
            name=cursor.spelling,
            **self._common(cursor),
        )
        self._templates[self._qualified(cursor)] = node.usr
        node.children = self._record_body(cursor, node)
        node.packed = any(c.kind is CursorKind.PACKED_ATTR for c in cursor.get_children())
        return node

    # ─────────────────────────────────────────────────────────────
    # Types
    # ─────────────────────────────────────────────────────────────

    @staticmethod
    def _qualified(cursor: Cursor) -> str:
        parts = []
        scope = cursor
        while scope is not None and scope.kind is not CursorKind.TRANSLATION_UNIT:
            if scope.kind in (CursorKind.NAMESPACE, CursorKind.CLASS_TEMPLATE) \
                    or scope.kind in _RECORD_KINDS or scope.kind is CursorKind.ENUM_DECL:
                if not _is_unnamed(scope):
                    parts.append(scope.spelling)
            scope = scope.semantic_parent
        return "::".join(reversed(parts))

    def _type(self, t: Type) -> TypeRef:
        ref = self._type_unqualified(t)
        if t.is_const_qualified() and not ref.is_indirection:
            ref = ref.with_const()
        return ref

    def _type_unqualified(self, t: Type) -> TypeRef:
        kind = t.kind
        if kind in _PRIMITIVES:
            return TypeRef.prim(_PRIMITIVES[kind])
        if kind is TypeKind.POINTER:
            return TypeRef.pointer(self._type(t.get_pointee()), is_const=t.is_const_qualified())
        if kind is TypeKind.LVALUEREFERENCE:
            return TypeRef(TypeRefKind.REFERENCE, inner=self._type(t.get_pointee()))
        if kind is TypeKind.RVALUEREFERENCE:
            return TypeRef(TypeRefKind.RVALUE_REFERENCE, inner=self._type(t.get_pointee()))
        if kind is TypeKind.CONSTANTARRAY:
            return TypeRef.array(self._type(t.element_type), t.element_count)
        if kind is TypeKind.INCOMPLETEARRAY:
            return TypeRef.array(self._type(t.element_type), None)
        if kind in (TypeKind.FUNCTIONPROTO, TypeKind.FUNCTIONNOPROTO):
            proto = kind is TypeKind.FUNCTIONPROTO
            return TypeRef(
                TypeRefKind.FUNCTION,
                inner=self._type(t.get_result()),
                params=tuple(self._type(a) for a in t.argument_types()) if proto else (),
                variadic=proto and t.is_function_variadic(),
                callconv=_callconv(t),
            )
        if kind is TypeKind.ELABORATED:
            return self._type(t.get_named_type())
        if kind is TypeKind.TYPEDEF:
            return self._typedef_ref(t)
        if kind is TypeKind.RECORD:
            return self._record_ref(t)
        if kind is TypeKind.ENUM:
            decl = t.get_declaration()
            return TypeRef.enum(decl.get_usr(), self._qualified(decl))
        if kind in (TypeKind.UNEXPOSED, TypeKind.AUTO):
            return self._unexposed(t)
        return TypeRef.unsupported(t.spelling, f"{kind.spelling} types")

    def _typedef_ref(self, t: Type) -> TypeRef:
        decl = t.get_declaration()
        if decl.location.file is None:
            # Builtin typedefs (__builtin_va_list) have no declaration to import.
            return self._type(t.get_canonical())
        if decl.location.is_in_system_header and decl.spelling in STD_TYPEDEFS:
            return TypeRef.prim(STD_TYPEDEFS[decl.spelling])
        return TypeRef.typedef(decl.get_usr(), self._qualified(decl))

    def _record_ref(self, t: Type) -> TypeRef:
        decl = t.get_declaration()
        qualified = self._qualified(decl)
        count = t.get_num_template_arguments()
        if count > 0:
            return self._instantiation_ref(t, decl, count)
        return TypeRef(TypeRefKind.RECORD, usr=decl.get_usr(), name=qualified,
                       size_hint=_positive(t.get_size()),
                       align_hint=_positive(t.get_align()))

    def _instantiation_ref(self, t: Type, decl: Cursor, count: int) -> TypeRef:
        base = self._qualified(decl).split("<", 1)[0]
        usr = self._templates.get(base)
        if usr is None:
            return TypeRef.unsupported(t.spelling, "specialization of an unknown template")
        args = []
        for i in range(count):
            arg = t.get_template_argument_type(i)
            if arg.kind is TypeKind.INVALID:
                return TypeRef.unsupported(t.spelling, "non-type template argument")
            args.append(self._type(arg))
        return TypeRef(TypeRefKind.INSTANTIATION, usr=usr, name=base, args=tuple(args),
                       size_hint=_positive(t.get_size()),
                       align_hint=_positive(t.get_align()))

    def _unexposed(self, t: Type) -> TypeRef:
        decl = t.get_declaration()
        if decl.kind is CursorKind.TEMPLATE_TYPE_PARAMETER:
            return TypeRef(TypeRefKind.TEMPLATE_PARAM, name=decl.spelling)
        if decl.kind is CursorKind.CLASS_TEMPLATE and t.get_num_template_arguments() > 0:
            return self._instantiation_ref(t, decl, t.get_num_template_arguments())
        if decl.kind in _RECORD_KINDS and t.get_num_template_arguments() > 0:
            return self._instantiation_ref(t, decl, t.get_num_template_arguments())
        canonical = t.get_canonical()
        if canonical.kind not in (TypeKind.UNEXPOSED, TypeKind.AUTO, TypeKind.INVALID):
            return self._type(canonical)
        return TypeRef.unsupported(t.spelling, "dependent or unexposed type")


def parse_header(path: Union[str, Path], options: Optional[BindgenOptions] = None) -> DeclNode:
    """Parse one header into a translation-unit ``DeclNode``."""
    return ClangFrontend(options).parse(path)
