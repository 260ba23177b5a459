"""Entry point for `python -m kubelog`.

Usage:
    python -m kubelog log APPNAME [-f] [--prefix] [--timestamps]
    uv run python -m kubelog log APPNAME
"""

from __future__ import annotations

from kubelog.cli import cli

cli()
