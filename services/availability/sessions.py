# ============================================================
# sessions.py — Dernier résultat de vérification par session
# ------------------------------------------------------------
# Map explicite session_id → CheckResult, avec expiration :
#   - après CHECK_RESULT_TTL secondes
#   - ou à la réception de CheckoutCompleted (consumer.py)
# Deux backends : mémoire (par défaut) et Redis (REDIS_URL).
# ============================================================
import json
import logging
import threading
import time
from typing import Dict, Optional, Tuple

import redis

from models import CheckResult

logger = logging.getLogger(__name__)

KEY_PREFIX = "pavc:check:"


class MemorySessionResults:
    def __init__(self, ttl: int, clock=time.time):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[float, CheckResult]] = {}

    def put(self, session_id: str, result: CheckResult) -> None:
        with self._lock:
            self._entries[session_id] = (self._clock() + self.ttl, result)
            self._purge_expired()

    def get(self, session_id: str) -> Optional[CheckResult]:
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            expires_at, result = entry
            if expires_at <= self._clock():
                del self._entries[session_id]
                return None
            return result

    def discard(self, session_id: str) -> bool:
        with self._lock:
            return self._entries.pop(session_id, None) is not None

    def __len__(self):
        with self._lock:
            self._purge_expired()
            return len(self._entries)

    def _purge_expired(self):
        now = self._clock()
        for sid in [k for k, (exp, _) in self._entries.items() if exp <= now]:
            del self._entries[sid]


class RedisSessionResults:
    def __init__(self, client, ttl: int):
        self.client = client
        self.ttl = ttl

    @classmethod
    def from_url(cls, url: str, ttl: int) -> "RedisSessionResults":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )
        logger.info("session results stored in redis")
        return cls(client, ttl)

    def put(self, session_id: str, result: CheckResult) -> None:
        self.client.setex(KEY_PREFIX + session_id, self.ttl, json.dumps(result.to_dict()))

    def get(self, session_id: str) -> Optional[CheckResult]:
        raw = self.client.get(KEY_PREFIX + session_id)
        if not raw:
            return None
        try:
            return CheckResult.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError):
            logger.warning("dropping unreadable check result for session %s", session_id)
            self.client.delete(KEY_PREFIX + session_id)
            return None

    def discard(self, session_id: str) -> bool:
        return bool(self.client.delete(KEY_PREFIX + session_id))


def build_session_results(redis_url: str, ttl: int):
    if redis_url:
        return RedisSessionResults.from_url(redis_url, ttl)
    return MemorySessionResults(ttl)
