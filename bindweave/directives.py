# bindweave/directives.py
"""
Per-input flag directives.

An input may carry extra command-line flags in its leading comment block::

    // bindweave-flags: --allowlist-type 'Point' --enum-style rust
    ; bindweave-flags: --target x86_64-pc-windows-msvc

The first form is for C/C++ headers, the second for ``.decl`` files.  The
flags are parsed with the same argparse definitions the CLI uses and are
merged onto the command-line options: list options extend, scalar options
replace.
"""

from __future__ import annotations

import argparse
import logging
import shlex
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Union

from .errors import ConfigError, SourceLocation
from .options import BindgenOptions, add_option_arguments, overrides_from_namespace

logger = logging.getLogger(__name__)

DIRECTIVE = "bindweave-flags:"
_COMMENT_PREFIXES = ("//", ";")


class _DirectiveParser(argparse.ArgumentParser):
    """argparse parser that raises instead of exiting."""

    def error(self, message: str) -> NoReturn:
        raise ConfigError(f"bad {DIRECTIVE} directive: {message}")


def _parser() -> argparse.ArgumentParser:
    parser = _DirectiveParser(prog="bindweave-flags", add_help=False)
    add_option_arguments(parser, suppress_defaults=True)
    return parser


def find_directives(text: str) -> List[str]:
    """Flag strings from the leading comment lines of ``text``.

    Scanning stops at the first line that is neither blank nor a comment.
    """
    found = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        prefix = next((p for p in _COMMENT_PREFIXES if stripped.startswith(p)), None)
        if prefix is None:
            break
        body = stripped.lstrip(prefix[0]).strip()
        if body.startswith(DIRECTIVE):
            found.append(body[len(DIRECTIVE):].strip())
    return found


def parse_directive_flags(flags: str, origin: str = "<input>") -> Dict[str, Any]:
    """Typed ``BindgenOptions`` overrides named by one directive."""
    try:
        argv = shlex.split(flags)
    except ValueError as exc:
        raise ConfigError(
            f"bad {DIRECTIVE} directive: {exc}",
            location=SourceLocation(origin),
            cause=exc,
        ) from exc
    ns = _parser().parse_args(argv)
    return overrides_from_namespace(ns)


def apply_directives(options: BindgenOptions, source: Union[str, Path]) -> BindgenOptions:
    """Return ``options`` extended by the directives of the file ``source``."""
    path = Path(source)
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise ConfigError(f"cannot read {path}: {exc}", cause=exc) from exc
    return apply_directive_text(options, text, str(path))


def apply_directive_text(options: BindgenOptions, text: str,
                         origin: str = "<input>") -> BindgenOptions:
    merged = options
    for flags in find_directives(text):
        overrides = parse_directive_flags(flags, origin)
        if overrides:
            logger.info("%s: directive flags %s", origin, sorted(overrides))
            merged = merged.merged(overrides)
    if merged is not options:
        merged.validate()
    return merged
