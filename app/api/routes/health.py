from __future__ import annotations

from fastapi import APIRouter, HTTPException

from app.config import settings

router = APIRouter()


@router.get("")
async def health_check():
    """Liveness probe."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/ready")
async def readiness_check():
    """Readiness requires the inference and search providers; company databases are optional."""
    providers = {
        "inference": bool(settings.openai_api_key),
        "search": bool(settings.tavily_api_key),
        "crunchbase": bool(settings.crunchbase_api_key),
        "peopledatalabs": bool(settings.pdl_api_key),
    }
    if not (providers["inference"] and providers["search"]):
        raise HTTPException(status_code=503, detail="Inference and search providers are not configured")
    return {"status": "ready", "version": settings.app_version, "providers": providers}
