from __future__ import annotations

import math
from typing import List, Sequence, TypeVar

T = TypeVar("T")

DEFAULT_MAX_FRAMES = 20


def select_frames(frames: Sequence[T], max_frames: int = DEFAULT_MAX_FRAMES) -> List[T]:
    """Bound ``frames`` to ``max_frames`` by fixed-stride sampling.

    stride = ceil(total / max_frames); every stride-th frame is kept in order
    and the result is truncated to ``max_frames``. This spreads the selection
    across the whole clip instead of taking a prefix. Inputs within the bound
    pass through unchanged. A cap below 1 is treated as 1.
    """
    cap = max(1, max_frames)
    total = len(frames)
    if total <= cap:
        return list(frames)
    stride = math.ceil(total / cap)
    return list(frames[::stride])[:cap]
