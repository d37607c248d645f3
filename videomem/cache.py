"""
Bounded cache of decoded frame payloads.

Keys are frame numbers; values are the decoded payload text, or ``None`` for a
frame that could not be resolved (so a broken frame is extracted only once).
Eviction is least-recently-used.
"""

from __future__ import annotations

from collections import OrderedDict


class FrameCache:
    """
    LRU cache keyed by frame number.

    Usage:
        cache = FrameCache(capacity=100)
        cache.put(3, '{"text": "...", "frame": 3}')
        if 3 in cache:
            payload = cache[3]
    """

    def __init__(self, capacity: int = 100):
        if capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {capacity}")
        self.capacity = capacity
        self.evictions = 0
        self._entries: OrderedDict[int, str | None] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, frame_number: object) -> bool:
        return frame_number in self._entries

    def __getitem__(self, frame_number: int) -> str | None:
        value = self._entries[frame_number]
        self._entries.move_to_end(frame_number)
        return value

    def get(self, frame_number: int, default: str | None = None) -> str | None:
        if frame_number not in self._entries:
            return default
        return self[frame_number]

    def put(self, frame_number: int, payload: str | None) -> None:
        """Store a payload, evicting the least recently used entry when full."""
        if self.capacity == 0:
            return
        if frame_number in self._entries:
            self._entries.move_to_end(frame_number)
        self._entries[frame_number] = payload
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)
            self.evictions += 1

    def clear(self) -> None:
        self._entries.clear()

    def frames(self) -> list[int]:
        """Cached frame numbers, least recently used first."""
        return list(self._entries)
