"""Health check endpoints."""

from fastapi import APIRouter, Request

from liquidesk import __version__
from liquidesk.config import get_settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "liquidesk"}


@router.get("/health/detailed")
async def detailed_health(request: Request):
    """Detailed health check with configuration and collaborator info."""
    settings = get_settings()
    services = getattr(request.app.state, "services", None)

    collaborators = {}
    if services is not None:
        collaborators = {
            "wallet_service": services.wallet_service.name,
            "bank_verifier": type(services.bank_verifier).__name__,
            "transfer_executor": type(services.executor).__name__,
            "transfer_configured": services.executor.is_configured(),
        }

    return {
        "status": "healthy",
        "service": "liquidesk",
        "version": __version__,
        "collaborators": collaborators,
        "config": settings.get_safe_dict(),
    }
