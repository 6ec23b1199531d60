"""Shared FastAPI dependencies for API routers."""

from fastapi import Request, Response

from app.helpers.cache_headers import NO_STORE
from app.services.ztm_service import ZtmService


def get_ztm_service(request: Request) -> ZtmService:
    """Return the feed gateway created in the application lifespan."""
    ztm_service: ZtmService = request.app.state.ztm_service
    return ztm_service


def no_store(response: Response) -> None:
    """Mark a per-user response as uncacheable."""
    response.headers["Cache-Control"] = NO_STORE
