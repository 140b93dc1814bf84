from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional

from app.core.config import get_settings
from app.core.logger import get_logger
from app.services.cleanup import cleanup_paths

log = get_logger(__name__)


PeriodicCallable = Callable[[], Awaitable[None]]

# Prefixes ScratchSpace gives to everything it creates
SCRATCH_PREFIXES = ("frames_", "image_", "upload_")


class PeriodicScheduler:
    """Very small periodic task scheduler.

    schedule(coro_func, interval) will run the coroutine indefinitely at
    approximately the given interval until stop() is called.
    """

    def __init__(self) -> None:
        self._tasks: list[asyncio.Task] = []
        self._running = False

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False
        for t in self._tasks:
            t.cancel()
        for t in self._tasks:
            try:
                await t
            except asyncio.CancelledError:
                pass
        self._tasks.clear()

    def schedule(self, func: PeriodicCallable, interval_sec: float) -> None:
        async def _loop() -> None:
            while self._running:
                start = time.time()
                try:
                    await func()
                except Exception:
                    log.exception("Periodic task failed")
                # maintain approximate interval
                elapsed = time.time() - start
                await asyncio.sleep(max(0.0, interval_sec - elapsed))

        task = asyncio.create_task(_loop())
        self._tasks.append(task)


_scheduler: Optional[PeriodicScheduler] = None


def get_scheduler() -> PeriodicScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = PeriodicScheduler()
    return _scheduler


def _stale_scratch(base: Path, max_age_sec: float, now: float) -> tuple[list[Path], list[Path]]:
    files: list[Path] = []
    dirs: list[Path] = []
    for p in base.iterdir():
        if not p.name.startswith(SCRATCH_PREFIXES):
            continue
        try:
            age = now - p.stat().st_mtime
        except FileNotFoundError:
            continue
        if age <= max_age_sec:
            continue
        (dirs if p.is_dir() else files).append(p)
    return files, dirs


async def sweep_stale_scratch(base: Optional[Path] = None, max_age_sec: Optional[float] = None) -> int:
    """Remove scratch entries left behind by a killed worker process.

    Live requests clean up after themselves; this only catches what an
    abrupt shutdown skipped. Returns the number of entries removed.
    """
    settings = get_settings()
    base = Path(base or settings.TMP_DIR)
    max_age = settings.STALE_TMP_MAX_AGE_SEC if max_age_sec is None else max_age_sec
    if not base.exists():
        return 0
    files, dirs = await asyncio.to_thread(_stale_scratch, base, max_age, time.time())
    if not files and not dirs:
        return 0
    failures = await asyncio.to_thread(cleanup_paths, files, dirs)
    removed = len(files) + len(dirs) - len(failures)
    if removed:
        log.info("Swept %d stale scratch entries from %s", removed, base)
    return removed
