# bindweave/options.py
"""
Run configuration.

``BindgenOptions`` is the single, frozen configuration object a session runs
with.  It is built from command-line arguments (``options_from_args``) or
directly in library code, and it can be extended by per-input directives
(see ``directives``).
"""

from __future__ import annotations

import argparse
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Pattern, Sequence, Tuple

from .abi import DEFAULT_TARGET, TargetABI, known_targets, target_for
from .errors import ConfigError


# ═══════════════════════════════════════════════════════════════════════════════
# POLICY ENUMS
# ═══════════════════════════════════════════════════════════════════════════════

class DenyPolicy(Enum):
    """What happens to a denied Item that an emitted Item needs."""

    OPAQUE = "opaque"
    FORCE_INCLUDE = "force-include"


class EnumStyle(Enum):
    CONSTS = "consts"
    NEWTYPE = "newtype"
    RUST = "rust"


class PaddingPolicy(Enum):
    ALWAYS = "always"
    WHEN_REQUIRED = "when-required"


# ═══════════════════════════════════════════════════════════════════════════════
# TEMPLATE INSTANTIATION POLICIES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class InstantiationPolicy(ABC):
    """Decides which class-template instantiations are materialised."""

    @abstractmethod
    def selects(self, template_name: str, spelling: str) -> bool:
        ...

    @abstractmethod
    def describe(self) -> str:
        ...


@dataclass(frozen=True)
class OpaqueInstantiations(InstantiationPolicy):
    """Every instantiation is an opaque blob."""

    def selects(self, template_name: str, spelling: str) -> bool:
        return False

    def describe(self) -> str:
        return "opaque"


@dataclass(frozen=True)
class MaterializeAll(InstantiationPolicy):
    """Every instantiation gets a full definition."""

    def selects(self, template_name: str, spelling: str) -> bool:
        return True

    def describe(self) -> str:
        return "all"


@dataclass(frozen=True)
class MaterializeMatching(InstantiationPolicy):
    """Instantiations whose template name or spelling matches a pattern."""

    patterns: Tuple[str, ...] = ()

    def selects(self, template_name: str, spelling: str) -> bool:
        compact = spelling.replace(" ", "")
        for pattern in self.patterns:
            regex = re.compile(pattern)
            if (regex.fullmatch(template_name) or regex.fullmatch(spelling)
                    or regex.fullmatch(compact)):
                return True
        return False

    def describe(self) -> str:
        return "matching:" + ",".join(self.patterns)


def parse_instantiation_policy(text: str) -> InstantiationPolicy:
    """``opaque`` | ``all`` | ``matching:RE[,RE...]``."""
    if text == "opaque":
        return OpaqueInstantiations()
    if text == "all":
        return MaterializeAll()
    if text.startswith("matching:"):
        patterns = tuple(p for p in text[len("matching:"):].split(",") if p)
        if not patterns:
            raise ConfigError("matching: instantiation policy needs at least one pattern")
        _compile_all(patterns, "--instantiate")
        return MaterializeMatching(patterns)
    raise ConfigError(
        f"unknown instantiation policy '{text}'",
        hint="use opaque, all or matching:PATTERN[,PATTERN...]",
    )


# ═══════════════════════════════════════════════════════════════════════════════
# OPTIONS
# ═══════════════════════════════════════════════════════════════════════════════

_LIST_FIELDS = (
    "clang_args",
    "allowlist_types",
    "allowlist_functions",
    "allowlist_items",
    "blocklist_types",
    "blocklist_functions",
    "blocklist_items",
    "opaque_types",
)


@dataclass(frozen=True)
class BindgenOptions:
    """Everything a run needs to know besides its inputs."""

    target: str = DEFAULT_TARGET
    clang_args: Tuple[str, ...] = ()
    language: Optional[str] = None

    allowlist_types: Tuple[str, ...] = ()
    allowlist_functions: Tuple[str, ...] = ()
    allowlist_items: Tuple[str, ...] = ()
    blocklist_types: Tuple[str, ...] = ()
    blocklist_functions: Tuple[str, ...] = ()
    blocklist_items: Tuple[str, ...] = ()
    opaque_types: Tuple[str, ...] = ()
    deny_policy: DenyPolicy = DenyPolicy.OPAQUE

    instantiation_policy: InstantiationPolicy = field(default_factory=OpaqueInstantiations)
    enum_style: EnumStyle = EnumStyle.CONSTS
    padding: PaddingPolicy = PaddingPolicy.ALWAYS
    flatten_namespaces: bool = True
    layout_tests: bool = True
    derive_debug: bool = True
    header_comment: bool = True

    def __post_init__(self) -> None:
        for name in _LIST_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value))

    # ─────────────────────────────────────────────────────────────────────────
    # Validation
    # ─────────────────────────────────────────────────────────────────────────

    def validate(self) -> "BindgenOptions":
        """Raise ``ConfigError`` for unknown targets or bad patterns."""
        target_for(self.target)
        for name in _LIST_FIELDS[1:]:
            _compile_all(getattr(self, name), "--" + name.replace("_", "-"))
        if self.language not in (None, "c", "c++"):
            raise ConfigError(f"unknown language '{self.language}'")
        return self

    def abi(self) -> TargetABI:
        return target_for(self.target)

    def patterns(self, name: str) -> Tuple[Pattern[str], ...]:
        return _compile_all(getattr(self, name), "--" + name.replace("_", "-"))

    @property
    def has_allowlist(self) -> bool:
        return bool(self.allowlist_types or self.allowlist_functions or self.allowlist_items)

    # ─────────────────────────────────────────────────────────────────────────
    # Merging
    # ─────────────────────────────────────────────────────────────────────────

    def merged(self, overrides: Dict[str, Any]) -> "BindgenOptions":
        """Return a copy with ``overrides`` applied.

        List-valued options are extended; scalar options are replaced.
        """
        changes: Dict[str, Any] = {}
        known = {f.name for f in fields(self)}
        for key, value in overrides.items():
            if key not in known:
                raise ConfigError(f"unknown option '{key}'")
            if key in _LIST_FIELDS:
                changes[key] = tuple(getattr(self, key)) + tuple(value)
            else:
                changes[key] = value
        return replace(self, **changes)


def _compile_all(patterns: Iterable[str], flag: str) -> Tuple[Pattern[str], ...]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as exc:
            raise ConfigError(
                f"invalid pattern '{pattern}' for {flag}: {exc}",
                cause=exc,
            ) from exc
    return tuple(compiled)


# ═══════════════════════════════════════════════════════════════════════════════
# ARGPARSE INTEGRATION
# ═══════════════════════════════════════════════════════════════════════════════

def add_option_arguments(parser: argparse.ArgumentParser,
                         suppress_defaults: bool = False) -> None:
    """Add every ``BindgenOptions`` flag to ``parser``.

    With ``suppress_defaults`` unset flags are absent from the namespace,
    which is how directive flags are told apart from defaults.
    """
    def default(value: Any) -> Any:
        return argparse.SUPPRESS if suppress_defaults else value

    sel = parser.add_argument_group("selection")
    for kind in ("type", "function", "item"):
        sel.add_argument(f"--allowlist-{kind}", dest=f"allowlist_{kind}s",
                         action="append", metavar="REGEX", default=default([]),
                         help=f"emit {kind}s whose name matches REGEX")
        sel.add_argument(f"--blocklist-{kind}", dest=f"blocklist_{kind}s",
                         action="append", metavar="REGEX", default=default([]),
                         help=f"never emit {kind}s whose name matches REGEX")
    sel.add_argument("--opaque-type", dest="opaque_types", action="append",
                     metavar="REGEX", default=default([]),
                     help="emit matching types as opaque blobs")
    sel.add_argument("--deny-policy", choices=[p.value for p in DenyPolicy],
                     default=default(DenyPolicy.OPAQUE.value),
                     help="what to do with denied types that are still needed")

    gen = parser.add_argument_group("generation")
    gen.add_argument("--target", default=default(DEFAULT_TARGET),
                     help="target triple (known: %s)" % ", ".join(known_targets()))
    gen.add_argument("--language", choices=["c", "c++"], default=default(None),
                     help="force the input language")
    gen.add_argument("--instantiate", dest="instantiation_policy",
                     default=default("opaque"), metavar="POLICY",
                     help="template instantiations: opaque | all | matching:RE[,RE]")
    gen.add_argument("--enum-style", choices=[s.value for s in EnumStyle],
                     default=default(EnumStyle.CONSTS.value))
    gen.add_argument("--padding", choices=[p.value for p in PaddingPolicy],
                     default=default(PaddingPolicy.ALWAYS.value),
                     help="when to materialise padding fields")
    gen.add_argument("--no-flatten-namespaces", dest="flatten_namespaces",
                     action="store_false", default=default(True),
                     help="prefix names with their namespace path")
    gen.add_argument("--no-layout-tests", dest="layout_tests",
                     action="store_false", default=default(True),
                     help="omit compile-time layout assertions")
    gen.add_argument("--no-derive-debug", dest="derive_debug",
                     action="store_false", default=default(True))
    gen.add_argument("--no-header-comment", dest="header_comment",
                     action="store_false", default=default(True))


def _convert(key: str, value: Any) -> Any:
    if key == "deny_policy":
        return DenyPolicy(value)
    if key == "enum_style":
        return EnumStyle(value)
    if key == "padding":
        return PaddingPolicy(value)
    if key == "instantiation_policy":
        return parse_instantiation_policy(value)
    return value


def overrides_from_namespace(ns: argparse.Namespace) -> Dict[str, Any]:
    """Typed option values present in ``ns`` (only ``BindgenOptions`` keys)."""
    known = {f.name for f in fields(BindgenOptions)}
    result: Dict[str, Any] = {}
    for key, value in vars(ns).items():
        if key in known:
            result[key] = _convert(key, value)
    return result


def options_from_args(ns: argparse.Namespace,
                      clang_args: Sequence[str] = ()) -> BindgenOptions:
    """Build validated options from parsed command-line arguments."""
    values = overrides_from_namespace(ns)
    values["clang_args"] = tuple(clang_args)
    for key in _LIST_FIELDS:
        if key in values:
            values[key] = tuple(values[key] or ())
    return BindgenOptions(**values).validate()
