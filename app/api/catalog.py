from typing import Dict, Any

from fastapi import APIRouter, Depends

from app.api.deps import get_catalog_service
from app.models.api_models import ServiceDescriptor
from app.services.catalog_service import CatalogService

router = APIRouter()


@router.get("/services")
async def list_services(catalog: CatalogService = Depends(get_catalog_service)) -> Dict[str, Any]:
    services, cached = await catalog.list_services()
    body = {
        "success": True,
        "data": [ServiceDescriptor(**s).model_dump() for s in services],
    }
    if cached:
        body["cached"] = True
    return body
