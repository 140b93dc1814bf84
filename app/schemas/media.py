from __future__ import annotations

import base64
from dataclasses import dataclass
from pathlib import Path
from typing import List, Literal, Optional

MediaKind = Literal["image", "video"]
ProviderRole = Literal["primary", "fallback"]


@dataclass
class MediaInput:
    """An uploaded file as received at the HTTP boundary.

    Either ``path`` points at the upload already staged on disk, or ``data``
    holds its bytes (programmatic callers and tests).
    """

    mime_type: str
    filename: str = "upload"
    data: Optional[bytes] = None
    path: Optional[Path] = None

    @property
    def size(self) -> int:
        if self.path is not None:
            return self.path.stat().st_size
        return len(self.data or b"")


@dataclass
class Frame:
    path: Path
    index: int


@dataclass
class FrameSet:
    """Ordered frames plus the scratch directory that holds them."""

    frames: List[Frame]
    directory: Path

    @property
    def paths(self) -> List[Path]:
        return [f.path for f in self.frames]

    def __len__(self) -> int:
        return len(self.frames)


@dataclass
class Collage:
    data: bytes
    width: int
    height: int
    frame_count: int
    mime_type: str = "image/jpeg"

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode()


@dataclass
class InferenceResult:
    text: str
    provider: str
    role: ProviderRole = "primary"

