# kavach/feed.py
# ------------------------------------------------------------
# Update feed consumed by the SSE stream.
#
# Monitors push {"type": ..., "data": ...} messages after every
# successful tick. The stream route replays everything newer than
# its cursor. Two backends:
# - MemoryFeed: bounded deque, single process
# - RedisFeed:  bounded Redis list, shared between workers
#
# Cursors are absolute sequence numbers so trimming the oldest
# messages never shifts what a reader has already seen.
# ------------------------------------------------------------

from __future__ import annotations

from collections import deque
import json
from typing import Any, Deque, Dict, List, Protocol, Tuple

import redis

K_UPDATES = "updates:stream"      # list of JSON messages (SSE pulls from here)
K_UPDATES_SEQ = "updates:seq"     # total messages ever pushed

DEFAULT_MAXLEN = 500


class UpdateFeed(Protocol):
    def push(self, kind: str, data: Dict[str, Any]) -> None: ...

    def read_since(self, cursor: int) -> Tuple[List[Dict[str, Any]], int]: ...

    def cursor(self) -> int: ...

    def backlog(self) -> int: ...


class MemoryFeed:
    def __init__(self, maxlen: int = DEFAULT_MAXLEN) -> None:
        self._items: Deque[Dict[str, Any]] = deque(maxlen=maxlen)
        self._seq = 0

    def push(self, kind: str, data: Dict[str, Any]) -> None:
        self._items.append({"type": kind, "data": data})
        self._seq += 1

    def read_since(self, cursor: int) -> Tuple[List[Dict[str, Any]], int]:
        oldest = self._seq - len(self._items)
        start = max(cursor, oldest)
        items = list(self._items)[start - oldest:]
        return items, self._seq

    def cursor(self) -> int:
        return self._seq

    def backlog(self) -> int:
        return len(self._items)

    def clear(self) -> None:
        self._items.clear()


class RedisFeed:
    def __init__(
        self,
        r: redis.Redis,
        key: str = K_UPDATES,
        seq_key: str = K_UPDATES_SEQ,
        maxlen: int = DEFAULT_MAXLEN,
    ) -> None:
        self._r = r
        self._key = key
        self._seq_key = seq_key
        self._maxlen = maxlen

    def push(self, kind: str, data: Dict[str, Any]) -> None:
        pipe = self._r.pipeline(transaction=True)
        pipe.rpush(self._key, json.dumps({"type": kind, "data": data}))
        # keep last N
        pipe.ltrim(self._key, -self._maxlen, -1)
        pipe.incr(self._seq_key)
        pipe.execute()

    def read_since(self, cursor: int) -> Tuple[List[Dict[str, Any]], int]:
        seq = self.cursor()
        length = self._r.llen(self._key)
        oldest = seq - length
        start = max(cursor, oldest)
        if start >= seq:
            return [], seq
        raw = self._r.lrange(self._key, start - oldest, -1)
        return [json.loads(x) for x in raw], seq

    def cursor(self) -> int:
        v = self._r.get(self._seq_key)
        return int(v) if v else 0

    def backlog(self) -> int:
        return self._r.llen(self._key)

    def clear(self) -> None:
        self._r.delete(self._key)
