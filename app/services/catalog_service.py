import json
from typing import Any, Dict, List, Tuple

from app.core.config_loader import load_service_catalog
from app.core.logger import logger

SERVICES_CACHE_KEY = "services-list"


class CatalogService:
    """Service descriptors from the JSON catalog, cached in the KV store."""

    def __init__(self, kv, path: str, ttl: int = 60 * 60):
        self.kv = kv
        self.path = path
        self.ttl = ttl

    async def list_services(self) -> Tuple[List[Dict[str, Any]], bool]:
        """Returns (services, served_from_cache)."""
        cached = await self.kv.get(SERVICES_CACHE_KEY)
        if cached:
            try:
                return json.loads(cached), True
            except ValueError:
                logger.warning("⚠️ Discarding unreadable services cache entry")

        services = load_service_catalog(self.path)
        await self.kv.put(SERVICES_CACHE_KEY, json.dumps(services), ttl=self.ttl)
        return services, False
