"""CommitRace — read-after-commit consistency harness for SQLite.

Runs repeated trials against pairs of fresh on-disk stores, each opened
through a pool with one writer and one read-only connection, and checks
that a committed write is visible to the independently pooled reader
while unrelated write load runs on the other store.
"""

__version__ = "0.1.0"
