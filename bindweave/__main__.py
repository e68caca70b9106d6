"""
bindweave/__main__.py
=====================

Allows ``python -m bindweave INPUT... [options] [-- clang-args]``.
"""

from bindweave.main import main

if __name__ == "__main__":
    raise SystemExit(main())
