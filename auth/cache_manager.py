"""
In-memory cache for actor display profiles.

Single-instance only; data is lost on restart. Authorization decisions never
read from here: they re-fetch the actor so a role change takes effect on the
next request. Role or profile changes invalidate the entry.
"""

from datetime import datetime, timedelta
from typing import Optional
import threading

from loguru import logger

from core.timeutils import utcnow


class ActorCache:
    """TTL cache of actor_id -> profile dict"""

    def __init__(self, ttl: int = 300):
        self.ttl = ttl
        self.profiles = {}  # profile:actor_id -> (profile, expiry)
        self.lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def _is_expired(self, expiry_time: Optional[datetime]) -> bool:
        if expiry_time is None:
            return False
        return utcnow() > expiry_time

    def _cleanup_expired(self):
        now = utcnow()
        self.profiles = {k: v for k, v in self.profiles.items() if v[1] > now}

    def cache_profile(self, actor_id: str, profile: dict, ttl: Optional[int] = None):
        with self.lock:
            expiry = utcnow() + timedelta(seconds=ttl if ttl is not None else self.ttl)
            self.profiles[f"profile:{actor_id}"] = (dict(profile), expiry)

    def get_profile(self, actor_id: str) -> Optional[dict]:
        with self.lock:
            key = f"profile:{actor_id}"
            if key in self.profiles:
                profile, expiry = self.profiles[key]
                if not self._is_expired(expiry):
                    self.hits += 1
                    return dict(profile)
                del self.profiles[key]
            self.misses += 1
            return None

    def invalidate(self, actor_id: str):
        """Drop everything cached for an actor (role change, profile update)."""
        with self.lock:
            if self.profiles.pop(f"profile:{actor_id}", None) is not None:
                logger.debug(f"[CACHE] Invalidated profile for actor {actor_id}")

    def clear(self):
        with self.lock:
            self.profiles.clear()
            self.hits = 0
            self.misses = 0

    def size(self) -> int:
        with self.lock:
            self._cleanup_expired()
            return len(self.profiles)


# Global instance
actor_cache = ActorCache()
