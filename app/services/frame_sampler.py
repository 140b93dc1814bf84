"""
Frame sampling: turn an uploaded media file into ordered still frames.

- Videos: one ffmpeg run with ``-vf fps=<rate>`` writing numbered PNGs into a
  fresh scratch directory. The run is a single awaitable call; if the awaiting
  task is cancelled the ffmpeg process group is killed before the
  cancellation propagates.
- Images: the file is copied into a fresh scratch directory as a one-frame
  sequence.

Directories always come from ScratchSpace, so each call gets its own
uniquely named location and nothing from another request is ever listed.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import cv2  # OpenCV is only used to probe container metadata

from app.core.errors import CopyError, ExtractionError
from app.core.logger import get_logger
from app.schemas.media import Frame, FrameSet, MediaKind
from app.services.cleanup import ScratchSpace

log = get_logger(__name__)

FRAME_PATTERN = "frame_%04d.png"
# Keep the tail of ffmpeg's stderr; the head is just the build banner
_STDERR_TAIL = 800


@dataclass
class VideoProbe:
    fps: float
    frame_count: int

    @property
    def duration_sec(self) -> float:
        if self.fps <= 0:
            return 0.0
        return self.frame_count / self.fps


def probe_video(video_path: str) -> Optional[VideoProbe]:
    """Read fps and frame count via OpenCV. Returns None when unreadable."""
    cap = cv2.VideoCapture(video_path)
    try:
        if not cap.isOpened():
            return None
        fps = cap.get(cv2.CAP_PROP_FPS) or 0.0
        count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        return VideoProbe(fps=float(fps), frame_count=max(count, 0))
    finally:
        cap.release()


class FrameSampler:
    def __init__(
        self,
        ffmpeg_binary: str = "ffmpeg",
        sample_fps: int = 1,
        max_concurrent_extractions: int = 2,
    ) -> None:
        self.ffmpeg_binary = ffmpeg_binary
        self.sample_fps = sample_fps
        self.max_concurrent_extractions = max(1, max_concurrent_extractions)
        self._extract_slots: Optional[asyncio.Semaphore] = None
        self._slots_loop: Optional[asyncio.AbstractEventLoop] = None

    def _slots(self) -> asyncio.Semaphore:
        # A semaphore binds to the loop it first waits on; keep one per running loop
        loop = asyncio.get_running_loop()
        if self._extract_slots is None or self._slots_loop is not loop:
            self._extract_slots = asyncio.Semaphore(self.max_concurrent_extractions)
            self._slots_loop = loop
        return self._extract_slots

    async def sample(self, source: Path, kind: MediaKind, scratch: ScratchSpace) -> FrameSet:
        if kind == "video":
            return await self.extract_video_frames(source, scratch)
        return await self.copy_image_frame(source, scratch)

    async def extract_video_frames(self, video_path: Path, scratch: ScratchSpace) -> FrameSet:
        frame_dir = scratch.make_dir("frames")

        probe = await asyncio.to_thread(probe_video, str(video_path))
        if probe is None:
            log.info("OpenCV could not probe %s; relying on ffmpeg", video_path.name)
        else:
            log.info(
                "Sampling %s: %.1fs at %d fps (~%d frames expected)",
                video_path.name,
                probe.duration_sec,
                self.sample_fps,
                round(probe.duration_sec * self.sample_fps),
            )

        cmd = [
            self.ffmpeg_binary,
            "-hide_banner",
            "-loglevel", "error",
            "-y",
            "-i", str(video_path),
            "-vf", f"fps={self.sample_fps}",
            str(frame_dir / FRAME_PATTERN),
        ]
        async with self._slots():
            returncode, stderr = await self._run_ffmpeg(cmd)

        if returncode != 0:
            tail = stderr.strip()[-_STDERR_TAIL:]
            raise ExtractionError(f"FFmpeg error (exit {returncode}): {tail or 'no output'}")

        frames = _collect_frames(frame_dir)
        if not frames:
            raise ExtractionError("No frames extracted from video")
        log.info("Extracted %d frames into %s", len(frames), frame_dir.name)
        return FrameSet(frames=frames, directory=frame_dir)

    async def copy_image_frame(self, image_path: Path, scratch: ScratchSpace) -> FrameSet:
        frame_dir = scratch.make_dir("image")
        dest = frame_dir / f"frame_0001{image_path.suffix.lower() or '.img'}"
        try:
            await asyncio.to_thread(shutil.copyfile, image_path, dest)
        except OSError as e:
            raise CopyError(f"Failed to stage image {image_path.name}: {e}") from e
        return FrameSet(frames=[Frame(path=dest, index=0)], directory=frame_dir)

    async def _run_ffmpeg(self, cmd: List[str]) -> Tuple[int, str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except FileNotFoundError as e:
            raise ExtractionError(f"ffmpeg binary not found: {self.ffmpeg_binary}") from e

        try:
            _, err = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                _kill_process_group(proc)
                await proc.wait()
            log.warning("ffmpeg cancelled; process group %s killed", proc.pid)
            raise
        return proc.returncode or 0, err.decode(errors="replace")


def _kill_process_group(proc: asyncio.subprocess.Process) -> None:
    # ffmpeg runs in its own session, so wrapper scripts and their children die together
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass  # already exited


def _collect_frames(frame_dir: Path) -> List[Frame]:
    # numeric sort; %04d overflows past 9999 frames
    paths = sorted(
        (p for p in frame_dir.iterdir() if p.suffix == ".png"),
        key=lambda p: int(p.stem.rsplit("_", 1)[-1]),
    )
    return [Frame(path=p, index=i) for i, p in enumerate(paths)]
