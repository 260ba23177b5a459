"""kubelog command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``kubelog`` script).
"""

from kubelog.cli.main import cli

__all__ = ["cli"]
