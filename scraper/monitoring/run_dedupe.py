"""
Run-level offer dedupe shared across worker processes.

Each run keeps a Redis set of identity keys (``scrape:dedupe:{run_id}``)
with a 2 hour TTL. SADD tells us atomically whether the key was new.

Redis problems fail open: the offer is treated as new and a warning is
logged, so an outage never blocks ingestion.

Usage:
    from scraper.monitoring import get_run_dedupe

    dedupe = get_run_dedupe()
    if dedupe.is_duplicate(run_id, offer.identity_key):
        ...
    dedupe.cleanup(run_id)
"""

import logging
from typing import Optional

from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_DEDUPE_TTL = 2 * 60 * 60


class RunDedupe:
    """Identity-key sets per run, stored in Redis."""

    def __init__(
        self,
        redis_client=None,
        ttl: int = DEFAULT_DEDUPE_TTL,
        key_prefix: str = "scrape:dedupe:",
    ):
        """
        Args:
            redis_client: Redis client instance (None disables dedupe)
            ttl: Lifetime of a run's set in seconds
            key_prefix: Redis key prefix
        """
        self.redis_client = redis_client
        self.ttl = ttl
        self.key_prefix = key_prefix

    def _get_key(self, run_id: str) -> str:
        return f"{self.key_prefix}{run_id}"

    def is_duplicate(self, run_id: str, identity_key: str) -> bool:
        """
        Record ``identity_key`` for the run and report whether it was seen before.

        Returns:
            True only when Redis confirms the key was already in the set
        """
        if self.redis_client is None:
            return False

        key = self._get_key(run_id)
        try:
            added = self.redis_client.sadd(key, identity_key)
            if added:
                self.redis_client.expire(key, self.ttl)
            return added == 0
        except Exception as e:
            logger.warning(f"Run dedupe unavailable for {run_id}, treating offer as new: {e}")
            return False

    def count(self, run_id: str) -> int:
        """Number of identity keys recorded for the run (0 when Redis is unavailable)."""
        if self.redis_client is None:
            return 0
        try:
            return int(self.redis_client.scard(self._get_key(run_id)))
        except Exception as e:
            logger.warning(f"Failed to read run dedupe size for {run_id}: {e}")
            return 0

    def cleanup(self, run_id: str) -> None:
        if self.redis_client is None:
            return
        try:
            self.redis_client.delete(self._get_key(run_id))
        except Exception as e:
            logger.warning(f"Failed to clean up run dedupe for {run_id}: {e}")


_run_dedupe: Optional[RunDedupe] = None


def get_run_dedupe() -> RunDedupe:
    """
    Get the process-wide RunDedupe.

    Connects to Redis on first call.
    """
    global _run_dedupe

    if _run_dedupe is None:
        _run_dedupe = RunDedupe(
            redis_client=get_redis_client(),
            ttl=getattr(settings, "SCRAPER_DEDUPE_TTL", DEFAULT_DEDUPE_TTL),
        )
    return _run_dedupe


def get_redis_client():
    """
    Redis client for dedupe sets, or None when not configured or unreachable.
    """
    import redis

    url = getattr(settings, "SCRAPER_DEDUPE_REDIS_URL", "")
    if not url:
        logger.debug("SCRAPER_DEDUPE_REDIS_URL not set, run dedupe disabled")
        return None

    try:
        client = redis.from_url(url)
        client.ping()
        return client
    except redis.RedisError as e:
        logger.warning(f"Failed to connect to Redis for run dedupe: {e}")
        return None
