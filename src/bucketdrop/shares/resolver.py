"""Password to bucket id derivation."""

import hashlib
from typing import Protocol

BUCKET_ID_LENGTH = 16


class BucketResolver(Protocol):
    """Maps a password to the id of its storage bucket."""

    def resolve(self, password: str) -> str:
        ...


class Sha256BucketResolver:
    """Bucket ids are a truncated hex SHA-256 of the password.

    This is a keying function, not an access check: callers verify the password
    against the allow-list before resolving it.
    """

    def __init__(self, length: int = BUCKET_ID_LENGTH):
        if not 8 <= length <= 64:
            raise ValueError(f"Bucket id length must be between 8 and 64, got {length}")
        self.length = length

    def resolve(self, password: str) -> str:
        return hashlib.sha256(password.encode("utf-8")).hexdigest()[: self.length]
