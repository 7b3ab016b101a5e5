# app/managers/outbound_buffer.py - Ordered buffer of client-bound frames

import asyncio
import logging
from collections import deque
from typing import Deque, List, Optional

from app.models.messages import Message, MessageKind

logger = logging.getLogger(__name__)


class OutboundBuffer:
    """FIFO between the router and the client writer task.

    Transcript deltas that arrive while the previous delta of the same turn
    is still waiting are merged into it, so a slow client receives one
    growing frame per turn instead of fragments.
    """

    def __init__(self, max_frames: int = 0, name: str = ""):
        self.max_frames = max_frames
        self.name = name
        self._items: Deque[Message] = deque()
        self._ready = asyncio.Event()
        self._closed = False
        self.merged_count = 0
        self.dropped_count = 0

    def __len__(self) -> int:
        return len(self._items)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def items(self) -> List[Message]:
        return list(self._items)

    def put(self, message: Message):
        if self._closed:
            return

        self._items.append(message)
        self._enforce_bound()
        self._ready.set()

    def put_transcript_delta(self, message: Message) -> bool:
        """Queue a transcript delta; returns True when merged into the tail"""
        if self._closed:
            return False

        if self._items:
            tail = self._items[-1]
            if tail.kind is MessageKind.TRANSCRIPT_DELTA and tail.turn_id == message.turn_id:
                tail.append_delta(message.delta)
                self.merged_count += 1
                return True

        self.put(message)
        return False

    async def get(self) -> Optional[Message]:
        """Next frame, or None once the buffer is closed"""
        while not self._items:
            if self._closed:
                return None
            self._ready.clear()
            await self._ready.wait()

        if self._closed:
            return None

        return self._items.popleft()

    def drain(self) -> List[Message]:
        """Remove and return everything still buffered, oldest first"""
        drained = list(self._items)
        self._items.clear()
        return drained

    def close(self):
        """Stop delivery; anything still buffered is discarded"""
        self._closed = True
        self._items.clear()
        self._ready.set()

    def _enforce_bound(self):
        if self.max_frames <= 0:
            return

        while len(self._items) > self.max_frames:
            victim = next((m for m in self._items if m.kind is MessageKind.AUDIO_DELTA), None)
            if victim is None:
                # Control and transcript frames are never dropped
                return
            self._items.remove(victim)
            self.dropped_count += 1
            logger.warning(f"Outbound buffer {self.name} over {self.max_frames} frames, dropped oldest audio frame")
