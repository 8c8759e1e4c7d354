class QueueError(Exception):
    """Base class for queue errors."""


class InvalidArgumentError(QueueError, ValueError):
    """An argument had the wrong type or an out-of-domain value."""


class IndexSetupError(QueueError):
    """An index could not be created, e.g. its name would overflow the namespace limit."""


class IndexConflictError(QueueError):
    """The store already holds an index with the same name or key spec."""


class RemoteQueueError(QueueError):
    """The server answered a client request with an error."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code
