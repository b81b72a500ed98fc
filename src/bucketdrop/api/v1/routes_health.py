"""Health check endpoint for bucketdrop."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint.

    Returns:
        dict: Health status response with status, service, and version fields
    """
    settings = request.app.state.settings_store.get()
    return {
        "status": "ok",
        "service": settings.service_name,
        "version": settings.service_version,
    }
