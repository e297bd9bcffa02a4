"""Error types raised by the upload queue and its collaborators."""


class QueueError(Exception):
    """Base class for upload queue errors."""


class NotConnected(QueueError):
    """Raised when the record store is used before connect() or after close()."""

    def __init__(self, message: str = "Record store is not connected. Call connect() first.") -> None:
        super().__init__(message)


class DuplicateKey(QueueError):
    """Raised when inserting a record whose id already exists."""

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"Record already exists: {record_id}")


class NotFound(QueueError):
    """Raised when an operation references a record that does not exist."""

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"Upload not found: {record_id}")


class TransferFailed(QueueError):
    """Raised by a transfer client when the remote upload did not succeed.

    Attributes:
        status_code: HTTP status returned by the server, if one was received
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_client_error(self) -> bool:
        """True for 4xx responses, which will not succeed on a plain retry."""
        return self.status_code is not None and 400 <= self.status_code < 500
