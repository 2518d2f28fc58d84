"""Exception taxonomy for client resolution and document transforms."""


class TransformEngineError(Exception):
    """Base class for errors raised by the transform engine."""


class TransformValidationError(TransformEngineError):
    """Raised when a transform request is structurally invalid.

    No job record is created for these.
    """


class NotFoundError(TransformEngineError):
    """Raised when a record is missing or owned by another user.

    Both cases produce the same message so callers cannot probe for
    other tenants' records.
    """


class TransformExecutionError(TransformEngineError):
    """Raised when deriving or persisting a document fails."""


class DataAccessError(TransformEngineError):
    """Raised when the record store cannot be reached or rejects a request."""

    def __init__(self, message: str, table: str | None = None, operation: str | None = None):
        super().__init__(message)
        self.table = table
        self.operation = operation


class TransformCancelled(TransformEngineError):
    """Raised internally when a job is observed as cancelled between steps."""
