"""
notesync - a local-first note store with one-way batch sync.

Notes live in a single SQLite table. Each note carries a sync status that
records whether its latest local state has been accepted by the remote API.
A sync cycle sends every pending or errored note to the remote in one
request and reconciles the statuses from the remote's accept/reject lists.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notesync")
except PackageNotFoundError:
    __version__ = "0.1.0"
