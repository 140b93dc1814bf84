import shutil

from fastapi import APIRouter, Depends

from app.core.config import Settings, get_settings

router = APIRouter()


@router.get("/ready")
def readiness_probe(settings: Settings = Depends(get_settings)):
    checks = {
        "ffmpeg": shutil.which(settings.FFMPEG_BINARY) is not None,
        "primary_provider": bool(settings.GEMINI_API_KEY),
        "fallback_provider": bool(settings.GROQ_API_KEY),
    }
    ready = checks["ffmpeg"] and checks["primary_provider"]
    return {"status": "ready" if ready else "degraded", "checks": checks}


@router.get("/live")
def liveness_probe():
    return {"status": "alive"}
