# app/managers/audio_queue.py - Serialized playback of assistant audio chunks

import logging
from collections import deque
from typing import Any, Deque, Dict, Optional, Tuple

from app.errors import DecodeFailure

logger = logging.getLogger(__name__)


class AudioPlayback:
    """Playback collaborator used by AudioFrameQueue.

    ``start`` begins playing one chunk and must not block. It reports back
    through ``queue.on_playback_complete()`` or ``queue.on_playback_failed()``,
    or raises DecodeFailure straight away when the chunk cannot be decoded.
    """

    def start(self, chunk: bytes, meta: Optional[Dict[str, Any]] = None):
        raise NotImplementedError


class AudioFrameQueue:
    """FIFO of PCM buffers, one playing at a time"""

    def __init__(self, playback: Optional[AudioPlayback] = None, max_chunks: int = 0, name: str = ""):
        self.playback = playback
        self.max_chunks = max_chunks
        self.name = name
        self._chunks: Deque[Tuple[bytes, Optional[Dict[str, Any]]]] = deque()
        self._playing = False
        self._starting = False
        self._completed_during_start = False
        self._failed_during_start = False
        self._closed = False

        self.played_count = 0
        self.skipped_count = 0
        self.dropped_count = 0

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def is_closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._chunks)

    def enqueue(self, chunk: bytes, meta: Optional[Dict[str, Any]] = None):
        """Append a chunk and start playback if idle"""
        if self._closed:
            logger.debug(f"Audio queue {self.name} closed, ignoring chunk of {len(chunk)} bytes")
            return

        self._chunks.append((chunk, meta))
        self._enforce_bound()

        if not self._playing:
            self._play_head()

    def on_playback_complete(self):
        """Called by the playback collaborator when the head finished playing"""
        if self._closed or not self._playing:
            return

        if self._starting:
            self._completed_during_start = True
            return

        self._chunks.popleft()
        self.played_count += 1
        self._playing = False
        self._play_head()

    def on_playback_failed(self, error: Exception):
        """A chunk that fails to decode counts as played; the queue moves on"""
        if self._closed or not self._playing:
            return

        logger.warning(f"Audio queue {self.name}: skipping chunk after playback failure: {error}")
        if self._starting:
            self._failed_during_start = True
            return

        self._chunks.popleft()
        self.skipped_count += 1
        self._playing = False
        self._play_head()

    def close(self):
        """Drop everything still queued; later callbacks are ignored"""
        if self._closed:
            return
        self._closed = True
        discarded = len(self._chunks)
        self._chunks.clear()
        self._playing = False
        if discarded:
            logger.debug(f"Audio queue {self.name} closed with {discarded} chunks discarded")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "pending": len(self._chunks),
            "playing": self._playing,
            "played": self.played_count,
            "skipped": self.skipped_count,
            "dropped": self.dropped_count,
        }

    def _play_head(self):
        # Loops instead of recursing so a run of bad chunks or synchronous
        # completions cannot grow the stack.
        while self._chunks and not self._closed:
            chunk, meta = self._chunks[0]
            self._playing = True
            self._starting = True
            self._completed_during_start = False
            self._failed_during_start = False
            try:
                if self.playback is None:
                    raise DecodeFailure("No playback attached")
                self.playback.start(chunk, meta)
            except DecodeFailure as e:
                logger.warning(f"Audio queue {self.name}: skipping undecodable chunk ({len(chunk)} bytes): {e}")
                self._chunks.popleft()
                self.skipped_count += 1
                self._playing = False
                continue
            finally:
                self._starting = False

            if self._failed_during_start:
                self._chunks.popleft()
                self.skipped_count += 1
            elif self._completed_during_start:
                self._chunks.popleft()
                self.played_count += 1
            else:
                return
            self._playing = False

        self._playing = False

    def _enforce_bound(self):
        if self.max_chunks <= 0:
            return

        while len(self._chunks) > self.max_chunks:
            # The head is in the middle of playing; drop the oldest waiting chunk
            index = 1 if self._playing else 0
            if index >= len(self._chunks):
                return
            del self._chunks[index]
            self.dropped_count += 1
            logger.warning(f"Audio queue {self.name} over {self.max_chunks} chunks, dropped oldest pending chunk")
