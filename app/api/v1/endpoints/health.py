"""Health check endpoint. Used for liveness probes; never touches the database."""

from fastapi import APIRouter, Request

from app.schemas.health import HealthResponse

router = APIRouter()


@router.get("", response_model=HealthResponse)
def health_check(request: Request) -> HealthResponse:
    """Return ok plus whether the cache store is connected (the service degrades without it)."""
    cache = getattr(request.app.state, "cache", None)
    return HealthResponse(cache_available=bool(cache is not None and cache.is_available()))
