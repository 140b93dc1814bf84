"""
Collage compositor: selected frames side by side in one JPEG.

Each frame is scaled to a fixed tile width keeping its aspect ratio, then
centred vertically on a white canvas as tall as the tallest tile (never less
than ``min_height``). Frames that Pillow cannot decode are logged and
dropped; the canvas only counts the survivors. The output format and quality
are fixed because the vision prompt is written for a JPEG collage.
"""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from PIL import Image

from app.core.errors import CompositeError
from app.core.logger import get_logger
from app.schemas.media import Collage

log = get_logger(__name__)

TILE_WIDTH = 320
MIN_HEIGHT = 200
JPEG_QUALITY = 85


@dataclass
class DecodedFrame:
    path: Path
    image: Image.Image

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def scaled_height(self, tile_width: int) -> int:
        return max(1, round(tile_width / self.width * self.height))


def _decode(path: Path) -> Image.Image:
    with Image.open(path) as im:
        im.load()
        # RGBA keeps transparency so pasting reveals the white background
        if im.mode in ("RGBA", "LA") or (im.mode == "P" and "transparency" in im.info):
            return im.convert("RGBA")
        return im.convert("RGB")


async def _decode_one(path: Path, slots: asyncio.Semaphore) -> Optional[DecodedFrame]:
    async with slots:
        try:
            image = await asyncio.to_thread(_decode, path)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            log.warning("Failed to load frame %s: %s", path.name, e)
            return None
    if image.width <= 0 or image.height <= 0:
        log.warning("Skipping empty frame %s", path.name)
        return None
    return DecodedFrame(path=path, image=image)


async def decode_frames(paths: Sequence[Path], max_concurrency: int = 8) -> List[DecodedFrame]:
    """Decode all frames concurrently; failed decodes are dropped, order kept."""
    slots = asyncio.Semaphore(max(1, max_concurrency))
    results = await asyncio.gather(*(_decode_one(Path(p), slots) for p in paths))
    return [r for r in results if r is not None]


def compose(
    frames: Sequence[DecodedFrame],
    tile_width: int = TILE_WIDTH,
    min_height: int = MIN_HEIGHT,
    quality: int = JPEG_QUALITY,
) -> Collage:
    if not frames:
        raise CompositeError("Failed to load any frames for the collage")

    heights = [f.scaled_height(tile_width) for f in frames]
    canvas_h = max(max(heights), min_height)
    canvas_w = tile_width * len(frames)

    canvas = Image.new("RGB", (canvas_w, canvas_h), (255, 255, 255))
    x = 0
    for frame, h in zip(frames, heights):
        tile = frame.image.resize((tile_width, h), Image.Resampling.LANCZOS)
        y = (canvas_h - h) // 2
        if tile.mode == "RGBA":
            canvas.paste(tile, (x, y), mask=tile)
        else:
            canvas.paste(tile, (x, y))
        x += tile_width

    buf = io.BytesIO()
    canvas.save(buf, format="JPEG", quality=quality)
    return Collage(data=buf.getvalue(), width=canvas_w, height=canvas_h, frame_count=len(frames))


async def build_collage(
    paths: Sequence[Path],
    tile_width: int = TILE_WIDTH,
    min_height: int = MIN_HEIGHT,
    quality: int = JPEG_QUALITY,
    max_concurrency: int = 8,
) -> Collage:
    """Decode ``paths`` and compose them into one JPEG collage.

    Raises CompositeError when no frame decodes.
    """
    decoded = await decode_frames(paths, max_concurrency=max_concurrency)
    if len(decoded) < len(paths):
        log.info("Collage: %d of %d frames decoded", len(decoded), len(paths))
    collage = await asyncio.to_thread(compose, decoded, tile_width, min_height, quality)
    log.info("Collage built: %dx%d from %d frames", collage.width, collage.height, collage.frame_count)
    return collage
