import asyncio
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse

from app.core.config import Settings, get_settings
from app.core.errors import PipelineError, UploadTooLarge
from app.core.logger import get_logger
from app.schemas.media import MediaInput
from app.schemas.products import AnalyzeResponse
from app.services.cleanup import ScratchSpace
from app.services.inventory import InMemoryInventoryStore, get_inventory_store, validate_mode
from app.services.pipeline import ProductPipeline, classify_media, get_pipeline, upload_suffix

router = APIRouter()
log = get_logger(__name__)

_CHUNK = 1024 * 1024


async def _stream_upload(file: UploadFile, scratch: ScratchSpace, limit: int) -> Path:
    dest = scratch.make_file("upload", suffix=upload_suffix(file.filename, file.content_type))
    size = 0
    # Stream to disk in chunks; the limit is checked before each write
    with dest.open("wb") as f:
        while True:
            chunk = await file.read(_CHUNK)
            if not chunk:
                break
            size += len(chunk)
            if size > limit:
                raise UploadTooLarge(limit)
            f.write(chunk)
    return dest


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": message})


@router.post("/analyze", response_model=AnalyzeResponse, response_model_by_alias=True)
async def analyze_media(
    media: UploadFile = File(...),
    mode: str = Form("append"),
    shop_id: str = Form("default"),
    include_collage: bool = Form(True),
    pipeline: ProductPipeline = Depends(get_pipeline),
    store: InMemoryInventoryStore = Depends(get_inventory_store),
    settings: Settings = Depends(get_settings),
):
    """Detect products in an uploaded shelf photo or video and merge them into inventory."""
    try:
        mode = validate_mode(mode)
        classify_media(media.content_type)
        async with pipeline.scratch() as scratch:
            path = await _stream_upload(media, scratch, settings.MAX_UPLOAD_BYTES)
            upload = MediaInput(mime_type=media.content_type or "", filename=media.filename or "upload", path=path)
            result = await asyncio.wait_for(pipeline.run(upload), timeout=settings.PIPELINE_TIMEOUT_SEC)
    except PipelineError as e:
        log.warning("Analyze failed (%s): %s", type(e).__name__, e.message)
        return _error(e.status_code, e.message)
    except asyncio.TimeoutError:
        log.error("Analyze timed out after %.0fs", settings.PIPELINE_TIMEOUT_SEC)
        return _error(504, "Analysis timed out")
    except Exception:
        log.exception("Analyze crashed")
        return _error(500, "Analysis failed")

    added = store.merge(shop_id, result.products, mode)
    collage_b64 = result.collage.to_base64() if (include_collage and result.collage) else None
    return AnalyzeResponse(
        ok=True,
        added=added,
        products=result.products,
        mode=mode,
        provider=result.inference.provider,
        collage_base64=collage_b64,
    )
