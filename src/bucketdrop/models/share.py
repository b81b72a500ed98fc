"""Share API data models."""

from datetime import datetime

from pydantic import BaseModel


class FileInfo(BaseModel):
    """A file contained in a share."""

    name: str
    size_bytes: int
    content_type: str


class UploadResponse(BaseModel):
    """Response model for a completed upload."""

    url: str
    bucket_id: str
    share_id: str
    files: list[FileInfo]
    burn_after_download: bool
    created_at: datetime
    expires_at: datetime


class QuotaResponse(BaseModel):
    """Response model for a bucket quota lookup."""

    used: int
    max: int
    available: int
