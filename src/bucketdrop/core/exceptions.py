"""Error taxonomy for the share lifecycle."""


class ShareError(Exception):
    """Base exception for share operations."""
    pass


class UnauthorizedError(ShareError):
    """Raised when the password is missing or not on the allow-list."""
    pass


class BadRequestError(ShareError):
    """Raised for malformed uploads: no files, unusable or duplicate names."""
    pass


class FileTooLargeError(BadRequestError):
    """Raised when a single file exceeds the configured per-file limit."""
    pass


class QuotaExceededError(ShareError):
    """Raised when an upload would push a bucket past its quota."""

    def __init__(self, available_bytes: int, requested_bytes: int):
        self.available_bytes = available_bytes
        self.requested_bytes = requested_bytes
        super().__init__(
            f"Upload of {requested_bytes} bytes exceeds quota, {available_bytes} bytes available"
        )


class ShareNotFoundError(ShareError):
    """Raised when a bucket or share does not exist or holds no files."""
    pass


class RateLimitedError(ShareError):
    """Raised when a client exceeds the request rate."""

    def __init__(self, retry_after: float):
        self.retry_after = retry_after
        super().__init__(f"Too many requests, retry in {retry_after:.0f}s")


class StorageIOError(ShareError):
    """Raised when an unexpected filesystem operation fails."""
    pass
