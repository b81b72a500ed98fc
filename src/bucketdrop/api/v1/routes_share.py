"""Share API routes: upload, quota lookup and bearer-link downloads."""

import logging
import math
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse

from bucketdrop.core.exceptions import (
    BadRequestError,
    FileTooLargeError,
    QuotaExceededError,
    RateLimitedError,
    ShareNotFoundError,
    StorageIOError,
    UnauthorizedError,
)
from bucketdrop.core.logging import share_context
from bucketdrop.models.share import FileInfo, QuotaResponse, UploadResponse
from bucketdrop.shares.service import ShareService
from bucketdrop.storage.base import UploadItem

router = APIRouter(prefix="/api", tags=["shares"])
download_router = APIRouter(tags=["download"])
logger = logging.getLogger(__name__)


def get_share_service(request: Request) -> ShareService:
    return request.app.state.share_service


def client_id(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def rate_limited(request: Request, service: ShareService = Depends(get_share_service)) -> None:
    """Dependency throttling the calling client."""
    try:
        service.throttle(client_id(request))
    except RateLimitedError as e:
        raise HTTPException(
            status_code=429,
            detail="Too many requests",
            headers={"Retry-After": str(max(math.ceil(e.retry_after), 1))},
        )


def content_disposition(filename: str) -> str:
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'


def _upload_item(file: UploadFile) -> UploadItem:
    file.file.seek(0, 2)  # Seek to end
    size_bytes = file.file.tell()
    file.file.seek(0)  # Reset to beginning
    return UploadItem(
        name=file.filename or "unnamed",
        content_type=file.content_type or "application/octet-stream",
        size_bytes=size_bytes,
        data=file.file,
    )


@router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=201,
    dependencies=[Depends(rate_limited)],
)
def upload_share(
    file: list[UploadFile] | None = File(None),
    burn: bool = Form(False),
    x_password: str | None = Header(None),
    service: ShareService = Depends(get_share_service),
) -> UploadResponse:
    """Store the uploaded files as one share and return its download link."""
    try:
        result = service.upload(x_password, [_upload_item(f) for f in file or []], burn=burn)
    except UnauthorizedError:
        raise HTTPException(status_code=401, detail="Unauthorized")
    except FileTooLargeError as e:
        raise HTTPException(status_code=413, detail=str(e))
    except BadRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except QuotaExceededError as e:
        raise HTTPException(
            status_code=413,
            detail={"message": "Bucket quota exceeded", "available": e.available_bytes},
        )
    except StorageIOError as e:
        logger.error(f"Failed to store share: {e}")
        raise HTTPException(status_code=500, detail="Failed to store files")

    share = result.share
    share_context.set({"bucket_id": share.bucket_id, "share_id": share.share_id})
    return UploadResponse(
        url=result.url,
        bucket_id=share.bucket_id,
        share_id=share.share_id,
        files=[
            FileInfo(name=f.name, size_bytes=f.size_bytes, content_type=f.content_type)
            for f in share.files
        ],
        burn_after_download=share.burn_after_download,
        created_at=share.created_at,
        expires_at=result.expires_at,
    )


@router.get("/quota", response_model=QuotaResponse, dependencies=[Depends(rate_limited)])
def get_quota(
    x_password: str | None = Header(None),
    service: ShareService = Depends(get_share_service),
) -> QuotaResponse:
    """Report used, maximum and available bytes of the caller's bucket."""
    try:
        usage = service.quota(x_password)
    except UnauthorizedError:
        raise HTTPException(status_code=401, detail="Unauthorized")
    except StorageIOError as e:
        logger.error(f"Failed to compute quota: {e}")
        raise HTTPException(status_code=500, detail="Failed to read storage")

    return QuotaResponse(used=usage.used, max=usage.max, available=usage.available)


@download_router.get("/d/{bucket_id}/{share_id}")
@download_router.get("/d/{bucket_id}/{share_id}/{name}")
def download_share(
    bucket_id: str,
    share_id: str,
    name: str | None = None,
    service: ShareService = Depends(get_share_service),
) -> StreamingResponse:
    """Stream a share: the raw file for single-file shares, a zip otherwise.

    No credential is needed; the link itself grants access. The trailing
    ``name`` segment only makes links readable and is ignored.
    """
    share_context.set({"bucket_id": bucket_id, "share_id": share_id})
    try:
        download = service.download(bucket_id, share_id)
    except ShareNotFoundError:
        raise HTTPException(status_code=404, detail="Not Found")
    except StorageIOError as e:
        logger.error(f"Failed to open share: {e}")
        raise HTTPException(status_code=500, detail="Failed to read share")

    headers = {"Content-Disposition": content_disposition(download.filename)}
    if download.size is not None:
        headers["Content-Length"] = str(download.size)
    return StreamingResponse(download.chunks, media_type=download.media_type, headers=headers)
