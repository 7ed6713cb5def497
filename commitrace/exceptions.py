"""CommitRace exception hierarchy.

All custom exceptions inherit from CommitRaceError. None of them are
recovered inside the harness: the first failure ends the run.
"""


class CommitRaceError(Exception):
    """Base exception for all CommitRace errors."""


class ProvisioningError(CommitRaceError):
    """Raised when a store location cannot be provisioned.

    Examples: the database path already exists, parent directory
    creation failed.
    """

    def __init__(self, message: str = "", path: str | None = None) -> None:
        self.path = path
        super().__init__(message)


class PoolConnectionError(CommitRaceError):
    """Raised when a pool cannot open, configure, or close a connection.

    Examples: database file cannot be opened, pragma rejected,
    acquire on a closed pool.
    """

    def __init__(self, message: str = "", role: str | None = None) -> None:
        self.role = role
        super().__init__(message)


class TransactionError(CommitRaceError):
    """Raised when begin, execute, or commit fails on a connection.

    Examples: write attempted through the read-only connection,
    constraint violation, use of a finished transaction.
    """

    def __init__(self, message: str = "", statement: str | None = None) -> None:
        self.statement = statement
        super().__init__(message)


class ConsistencyViolation(CommitRaceError, AssertionError):
    """Raised when a read issued after a commit does not observe it."""

    def __init__(self, trial_index: int, message: str | None = None) -> None:
        self.trial_index = trial_index
        super().__init__(
            message or f"Failed to retrieve on the {trial_index}-th iteration"
        )
