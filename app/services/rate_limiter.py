from fastapi import Request

from app.core.logger import logger

RATE_LIMIT_PREFIX = "ratelimit:"


class RateLimiter:
    """
    Per-client request counter kept in the KV store.

    Every accepted request rewrites the counter with a full TTL, so a client that
    keeps hammering the endpoint keeps extending its own window. Reads and writes
    are not atomic; two simultaneous requests may both see the same count.
    """

    def __init__(self, kv, max_requests: int = 10, window_seconds: int = 60 * 15):
        self.kv = kv
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    async def check_and_increment(self, client_key: str) -> bool:
        key = f"{RATE_LIMIT_PREFIX}{client_key}"
        raw = await self.kv.get(key)
        try:
            count = int(raw) if raw is not None else 0
        except ValueError:
            logger.warning(f"⚠️ Corrupt rate limit counter for {client_key}: {raw!r}, resetting")
            count = 0

        if count >= self.max_requests:
            logger.warning(f"🚫 Rate limit hit for {client_key} ({count} requests in window)")
            return False

        await self.kv.put(key, str(count + 1), ttl=self.window_seconds)
        return True


def client_key_from_request(request: Request) -> str:
    """Best guess at the caller's network address behind Cloudflare or a proxy."""
    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host
    return "unknown"
