"""Store layer — pooled SQLite connections, transactions, provisioning.

Every store is opened through a RolePartitionedPool: one writable
connection and one read-only connection, nothing else.
"""

from commitrace.store.pool import (
    JournalMode,
    PoolOptions,
    PoolRole,
    RolePartitionedPool,
    SingleConnectionPool,
    SynchronousMode,
)
from commitrace.store.provisioner import StoreProvisioner
from commitrace.store.transaction import Transaction, TransactionState

__all__ = [
    "JournalMode",
    "PoolOptions",
    "PoolRole",
    "RolePartitionedPool",
    "SingleConnectionPool",
    "StoreProvisioner",
    "SynchronousMode",
    "Transaction",
    "TransactionState",
]
