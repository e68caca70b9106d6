#!/usr/bin/env python3
"""bindweave/main.py — CLI entry-point for bindweave.

Usage examples
--------------
    # Bind a C header, writing Rust to stdout
    bindweave include/api.h

    # Bind selected declarations only, passing include paths to clang
    bindweave api.h -o src/ffi.rs --allowlist-function 'api_.*' -- -I include

    # Bind a declaration-tree file and dump the IR for debugging
    python -m bindweave point.decl --emit-ir point.ir --emit-ir-graphviz point.dot

    # Show version and exit
    bindweave --version

Exit codes
----------
    0   Success (warnings about degraded items may have been printed).
    1   Unrecoverable parse failure or internal invariant violation.
    2   Infrastructure or configuration failure (bad option, unreadable file).

Diagnostics always go to stderr, never into the generated output.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, TextIO, Tuple

from . import __version__
from .errors import BindgenError, ConfigError, ErrorMessage
from .irdump import dump_ir
from .options import add_option_arguments, options_from_args
from .session import BindgenResult, generate_from_files

_log = logging.getLogger("bindweave")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``bindweave`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("bindweave")
    root.setLevel(level)
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)


def _resolve_path(raw: str, label: str = "file") -> Path:
    """Resolve *raw* to an absolute ``Path``, raising on missing files."""
    p = Path(raw).expanduser().resolve()
    if not p.exists():
        _log.error("%s not found: %s", label, p)
        raise SystemExit(EXIT_INFRA)
    return p


def _write_output(dest: Optional[str], text: str) -> None:
    """Write *text* to *dest*; ``None`` or ``"-"`` means stdout."""
    if dest is None or dest == "-":
        sys.stdout.write(text)
        sys.stdout.flush()
        return
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as fh:
        fh.write(text)
    _log.info("wrote %s", p)


def _emit_diagnostics(messages: Iterable[ErrorMessage], fmt: str, stream: TextIO) -> int:
    """Write *messages* to *stream*; returns the number of errors."""
    color = fmt == "gcc" and hasattr(stream, "isatty") and stream.isatty()
    errors = 0
    for msg in messages:
        if msg.severity is not None and msg.severity.is_error():
            errors += 1
        if fmt == "json":
            stream.write(json.dumps(msg.to_json()) + "\n")
        else:
            stream.write(msg.to_gcc_format(color=color) + "\n")
    return errors


def split_clang_args(argv: Sequence[str]) -> Tuple[List[str], List[str]]:
    """Split ``argv`` at the first ``--``: own arguments, clang arguments."""
    argv = list(argv)
    if "--" in argv:
        index = argv.index("--")
        return argv[:index], argv[index + 1:]
    return argv, []


# ===========================================================================
# Parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bindweave",
        description="Generate ABI-faithful Rust bindings for C/C++ declarations.",
        epilog="Arguments after -- are passed to clang unchanged.",
    )
    parser.add_argument("inputs", nargs="+", metavar="INPUT",
                        help="header files, or .decl declaration-tree files")
    parser.add_argument("-o", "--output", default=None, metavar="PATH",
                        help="write Rust here instead of stdout")
    parser.add_argument("--emit-ir", default=None, metavar="PATH",
                        help="write the type graph as S-expressions ('-' for stderr)")
    parser.add_argument("--emit-ir-graphviz", default=None, metavar="PATH",
                        help="write the type graph in Graphviz DOT format")
    parser.add_argument("--diagnostics-format", choices=["gcc", "json"], default="gcc")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="increase log verbosity (-v info, -vv debug)")
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {__version__}")
    add_option_arguments(parser)
    return parser


def _write_debug_renderings(args: argparse.Namespace, result: BindgenResult) -> None:
    if args.emit_ir:
        text = dump_ir(result.graph)
        if args.emit_ir == "-":
            sys.stderr.write(text)
        else:
            _write_output(args.emit_ir, text)
    if args.emit_ir_graphviz:
        _write_output(args.emit_ir_graphviz, result.graph.to_dot())


def run(args: argparse.Namespace, clang_args: Sequence[str]) -> int:
    """Generate bindings for ``args.inputs``; returns an exit code."""
    inputs = [_resolve_path(raw, "input") for raw in args.inputs]
    try:
        options = options_from_args(args, clang_args)
        result = generate_from_files(inputs, options)
    except ConfigError as exc:
        _emit_diagnostics([exc.error_message], args.diagnostics_format, sys.stderr)
        return EXIT_INFRA
    except BindgenError as exc:
        _emit_diagnostics([exc.error_message], args.diagnostics_format, sys.stderr)
        return EXIT_ERROR

    _emit_diagnostics(result.diagnostics, args.diagnostics_format, sys.stderr)
    try:
        # Dumps first; a failed dump leaves no bindings file.
        _write_debug_renderings(args, result)
        _write_output(args.output, result.text)
    except OSError as exc:
        _log.error("cannot write output: %s", exc)
        return EXIT_INFRA
    return EXIT_OK


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the bindweave CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    own, clang_args = split_clang_args(sys.argv[1:] if argv is None else argv)
    parser = _build_parser()
    try:
        args = parser.parse_args(own)
    except SystemExit as exc:
        # --help and --version exit 0; usage errors are configuration failures.
        return EXIT_OK if exc.code == 0 else EXIT_INFRA

    _configure_logging(args.verbose)

    try:
        return run(args, clang_args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130  # Standard UNIX convention for SIGINT
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA
    except Exception as exc:
        _log.error("Unhandled exception: %s", exc, exc_info=True)
        return EXIT_INFRA


# ---------------------------------------------------------------------------
# Module execution support
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    raise SystemExit(main())
