from __future__ import annotations

import heapq
import itertools
from collections.abc import Hashable


Vertex = Hashable
Key = tuple[float, float]

_COMPACT_MIN_ENTRIES = 64
_COMPACT_STALE_FACTOR = 4


class OpenList:
    """Min-heap of ``(key, vertex)`` entries with lazy invalidation.

    ``_best`` holds the authoritative key of every vertex that is logically
    queued. Heap entries whose key no longer matches it are stale; they are
    dropped when they surface at the top instead of being removed in place.
    Ties on equal keys pop in insertion order.
    """

    def __init__(self) -> None:
        self._heap: list[tuple[float, float, int, Vertex]] = []
        self._best: dict[Vertex, Key] = {}
        self._seq = itertools.count()
        self.stale_dropped = 0

    def __len__(self) -> int:
        return len(self._best)

    def __bool__(self) -> bool:
        return bool(self._best)

    def __contains__(self, v: Vertex) -> bool:
        return v in self._best

    @property
    def heap_size(self) -> int:
        return len(self._heap)

    def key_of(self, v: Vertex) -> Key | None:
        return self._best.get(v)

    def push(self, v: Vertex, key: Key) -> None:
        self._best[v] = key
        heapq.heappush(self._heap, (key[0], key[1], next(self._seq), v))
        if len(self._heap) > _COMPACT_MIN_ENTRIES and len(self._heap) > _COMPACT_STALE_FACTOR * len(self._best):
            self._compact()

    def invalidate(self, v: Vertex) -> None:
        self._best.pop(v, None)

    def _is_live(self, entry: tuple[float, float, int, Vertex]) -> bool:
        k1, k2, _, v = entry
        best = self._best.get(v)
        return best is not None and best[0] == k1 and best[1] == k2

    def _drop_stale_top(self) -> None:
        while self._heap and not self._is_live(self._heap[0]):
            heapq.heappop(self._heap)
            self.stale_dropped += 1

    def peek_min_key(self) -> Key | None:
        self._drop_stale_top()
        if not self._heap:
            return None
        k1, k2, _, _ = self._heap[0]
        return (k1, k2)

    def pop_min(self) -> tuple[Vertex, Key] | None:
        self._drop_stale_top()
        if not self._heap:
            return None
        k1, k2, _, v = heapq.heappop(self._heap)
        del self._best[v]
        return v, (k1, k2)

    def clear(self) -> None:
        self._heap.clear()
        self._best.clear()

    def _compact(self) -> None:
        live = [entry for entry in self._heap if self._is_live(entry)]
        self.stale_dropped += len(self._heap) - len(live)
        heapq.heapify(live)
        self._heap = live
