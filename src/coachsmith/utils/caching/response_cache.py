"""
Reply cache for the coach endpoint.

Maps (user, normalized question) to a previously generated answer. Entries
live for a fixed TTL and are overwritten wholesale on re-insert. This cache
only saves latency and model cost; a miss must never change the answer.
"""

import hashlib
import json
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional

from coachsmith.logger import get_logger
from .lru import LRUCache
from .stats import CacheStats

logger = get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class CacheEntry:
    key: str
    response_text: str
    sql_query: Optional[str]
    result_count: int
    created_at: float


def normalize_question(text: str) -> str:
    """Lower-case, trim and collapse whitespace."""
    return _WHITESPACE_RE.sub(" ", text.strip().lower())


class ResponseCache:
    """In-memory, process-local reply cache with TTL expiry."""

    CATEGORY = "coach_reply"

    def __init__(
        self,
        ttl_seconds: int = 300,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries = LRUCache(max_size=max_entries, default_ttl=ttl_seconds, clock=clock)
        logger.info(f"ResponseCache initialized: ttl={ttl_seconds}s, max_entries={max_entries}")

    def _generate_key(self, user_id: str, question_text: str) -> str:
        key_str = json.dumps([self.CATEGORY, user_id, normalize_question(question_text)])
        return hashlib.sha256(key_str.encode("utf-8")).hexdigest()

    def get(self, user_id: str, question_text: str) -> Optional[CacheEntry]:
        key = self._generate_key(user_id, question_text)
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"[cache-miss] {self.CATEGORY}: key={key[:16]}...")
            return None
        logger.info(f"[cache-hit] {self.CATEGORY} key={key[:16]}...")
        return entry

    def put(
        self,
        user_id: str,
        question_text: str,
        response_text: str,
        *,
        sql_query: Optional[str] = None,
        result_count: int = 0,
    ) -> CacheEntry:
        key = self._generate_key(user_id, question_text)
        entry = CacheEntry(
            key=key,
            response_text=response_text,
            sql_query=sql_query or None,
            result_count=result_count,
            created_at=self._clock(),
        )
        self._entries.set(key, entry)
        logger.info(f"[cache-set] {self.CATEGORY} key={key[:16]}... ttl={self.ttl_seconds}s")
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def size(self) -> int:
        return self._entries.size()

    def stats(self) -> CacheStats:
        return self._entries.stats
