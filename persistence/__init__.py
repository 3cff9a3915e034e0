"""
Persistence layer for finished workflow runs.

This package provides archival of terminal run snapshots,
with a JSON-file implementation behind a small protocol.
"""

from .run_archive import JSONRunArchive, RunArchive

__all__ = ['JSONRunArchive', 'RunArchive']
