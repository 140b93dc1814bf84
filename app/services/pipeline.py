"""
Media-to-product-list pipeline for one upload.

staged upload -> FrameSampler -> select_frames -> build_collage ->
VisionClient -> parse_products

The HTTP route streams the upload into a ScratchSpace from ``scratch()``;
callers holding bytes get them staged here instead. Every temporary path
comes from a ScratchSpace, so the staged upload and the frame directory are
removed on every exit path, including cancellation by an upstream
timeout. Stage errors propagate unchanged; there is no partial result.
"""

from __future__ import annotations

import asyncio
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from app.core.config import Settings, get_settings
from app.core.errors import UnsupportedMediaType
from app.core.logger import get_logger
from app.schemas.media import Collage, InferenceResult, MediaInput, MediaKind
from app.schemas.products import ProductCandidate
from app.services.cleanup import ScratchSpace
from app.services.collage import build_collage
from app.services.frame_sampler import FrameSampler
from app.services.frame_selector import select_frames
from app.services.product_parser import parse_products
from app.services.vision_client import VisionClient, get_vision_client

log = get_logger(__name__)


def classify_media(mime_type: Optional[str]) -> MediaKind:
    mime = (mime_type or "").split(";", 1)[0].strip().lower()
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("video/"):
        return "video"
    raise UnsupportedMediaType(mime_type)


def upload_suffix(filename: Optional[str], mime_type: Optional[str]) -> str:
    suffix = Path(filename or "").suffix
    if suffix:
        return suffix.lower()
    return mimetypes.guess_extension((mime_type or "").split(";", 1)[0]) or ""


@dataclass
class PipelineConfig:
    tmp_dir: str = "./.tmp"
    max_frames: int = 20
    tile_width: int = 320
    min_canvas_height: int = 200
    jpeg_quality: int = 85
    decode_concurrency: int = 8
    direct_image_uploads: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineConfig":
        return cls(
            tmp_dir=settings.TMP_DIR,
            max_frames=settings.MAX_FRAMES,
            tile_width=settings.TILE_WIDTH,
            min_canvas_height=settings.MIN_CANVAS_HEIGHT,
            jpeg_quality=settings.JPEG_QUALITY,
            decode_concurrency=settings.DECODE_CONCURRENCY,
            direct_image_uploads=settings.DIRECT_IMAGE_UPLOADS,
        )


@dataclass
class PipelineResult:
    products: List[ProductCandidate]
    inference: InferenceResult
    collage: Optional[Collage] = None


class ProductPipeline:
    def __init__(
        self,
        vision: VisionClient,
        sampler: Optional[FrameSampler] = None,
        config: Optional[PipelineConfig] = None,
    ) -> None:
        self.vision = vision
        self.sampler = sampler or FrameSampler()
        self.config = config or PipelineConfig()

    def scratch(self) -> ScratchSpace:
        """A ScratchSpace under this pipeline's tmp root, for staging uploads."""
        return ScratchSpace(self.config.tmp_dir)

    async def run(self, media: MediaInput) -> PipelineResult:
        kind = classify_media(media.mime_type)
        log.info("Processing %s: %s (%d bytes)", media.mime_type, media.filename, media.size)

        async with self.scratch() as scratch:
            if kind == "image" and self.config.direct_image_uploads:
                collage = None
                image = media.data if media.path is None else await asyncio.to_thread(media.path.read_bytes)
                inference = await self.vision.analyze(image, media.mime_type)
            else:
                upload = media.path
                if upload is None:
                    upload = scratch.make_file("upload", suffix=upload_suffix(media.filename, media.mime_type))
                    await asyncio.to_thread(upload.write_bytes, media.data or b"")
                collage = await self._collage_for(upload, kind, scratch)
                inference = await self.vision.analyze(collage.data, collage.mime_type)

            products = parse_products(inference.text)
            log.info("Parsed %d products via %s (%s)", len(products), inference.provider, inference.role)
            return PipelineResult(products=products, inference=inference, collage=collage)

    async def _collage_for(self, source: Path, kind: MediaKind, scratch: ScratchSpace) -> Collage:
        frame_set = await self.sampler.sample(source, kind, scratch)
        selected = select_frames(frame_set.paths, self.config.max_frames)
        if len(selected) < len(frame_set):
            log.info("Selected %d of %d frames", len(selected), len(frame_set))
        return await build_collage(
            selected,
            tile_width=self.config.tile_width,
            min_height=self.config.min_canvas_height,
            quality=self.config.jpeg_quality,
            max_concurrency=self.config.decode_concurrency,
        )


_pipeline: Optional[ProductPipeline] = None


def get_pipeline() -> ProductPipeline:
    global _pipeline
    if _pipeline is None:
        settings = get_settings()
        sampler = FrameSampler(
            ffmpeg_binary=settings.FFMPEG_BINARY,
            sample_fps=settings.SAMPLE_FPS,
            max_concurrent_extractions=settings.EXTRACT_CONCURRENCY,
        )
        _pipeline = ProductPipeline(get_vision_client(), sampler, PipelineConfig.from_settings(settings))
    return _pipeline
