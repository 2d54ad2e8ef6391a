"""Frame admission queue.

Bounded FIFO between frame producers (HTTP/WebSocket handlers) and the single
inference consumer.

Rules:
    - depth never exceeds `maxsize`; the bound is enforced before inserting
    - a full queue sheds load according to the drop policy (oldest by default)
    - `enqueue` never suspends; `get` suspends until a frame is available
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections import deque
from collections.abc import Callable

from camrelay.core.types import PendingFrame

logger = logging.getLogger(__name__)

DropHook = Callable[[PendingFrame], None]


class FrameAdmissionQueue:
    """Bounded queue of frames awaiting inference.

    Drop policies:
        oldest: evict the oldest queued frame, then admit the new one
        newest: reject the incoming frame
        random: evict a uniformly chosen queued frame, then admit the new one

    Example:
        queue = FrameAdmissionQueue(maxsize=2)
        queue.enqueue(f1); queue.enqueue(f2); queue.enqueue(f3)
        # queue now holds [f2, f3], dropped_count == 1
    """

    def __init__(
        self,
        maxsize: int = 10,
        drop_policy: str = "oldest",
        on_drop: DropHook | None = None,
        rng: random.Random | None = None,
    ) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        if drop_policy not in {"oldest", "newest", "random"}:
            raise ValueError("drop_policy must be oldest|newest|random")

        self._maxsize = maxsize
        self._drop_policy = drop_policy
        self._on_drop = on_drop
        self._rng = rng or random.Random()
        self._frames: deque[PendingFrame] = deque()
        self._not_empty = asyncio.Event()
        self._dropped_count = 0
        self._total_put = 0

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def drop_policy(self) -> str:
        return self._drop_policy

    @property
    def size(self) -> int:
        return len(self._frames)

    @property
    def dropped_count(self) -> int:
        """Number of frames shed because the queue was full."""
        return self._dropped_count

    @property
    def total_put(self) -> int:
        return self._total_put

    def enqueue(self, frame: PendingFrame) -> bool:
        """Admit a frame, shedding one frame first if the queue is full.

        Returns:
            True if `frame` was admitted, False if it was rejected itself
            (`newest` policy only).
        """

        self._total_put += 1
        if len(self._frames) >= self._maxsize:
            if self._drop_policy == "newest":
                self._drop(frame)
                return False
            if self._drop_policy == "random":
                index = self._rng.randrange(len(self._frames))
                victim = self._frames[index]
                del self._frames[index]
            else:
                victim = self._frames.popleft()
            self._drop(victim)

        self._frames.append(frame)
        self._not_empty.set()
        return True

    async def get(self) -> PendingFrame:
        """Wait for and remove the oldest queued frame."""

        while not self._frames:
            self._not_empty.clear()
            await self._not_empty.wait()
        frame = self._frames.popleft()
        if not self._frames:
            self._not_empty.clear()
        return frame

    def rebind(self) -> None:
        """Recreate the wakeup event for a new event loop."""

        self._not_empty = asyncio.Event()
        if self._frames:
            self._not_empty.set()

    def get_nowait(self) -> PendingFrame | None:
        if not self._frames:
            return None
        return self._frames.popleft()

    def snapshot(self) -> list[PendingFrame]:
        """Queued frames, oldest first (read-only copy)."""

        return list(self._frames)

    def clear(self) -> list[PendingFrame]:
        """Remove and return every queued frame."""

        cleared = list(self._frames)
        self._frames.clear()
        self._not_empty.clear()
        return cleared

    def metrics(self) -> dict[str, int | str]:
        return {
            "size": self.size,
            "maxsize": self._maxsize,
            "drop_policy": self._drop_policy,
            "dropped_count": self._dropped_count,
            "total_put": self._total_put,
        }

    def _drop(self, frame: PendingFrame) -> None:
        self._dropped_count += 1
        logger.debug(
            "Queue full, dropped frame %r (policy=%s, total dropped=%d)",
            frame.frame_id,
            self._drop_policy,
            self._dropped_count,
        )
        if self._on_drop is not None:
            try:
                self._on_drop(frame)
            except Exception:
                logger.exception("Drop hook failed for frame %r", frame.frame_id)
