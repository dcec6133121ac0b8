"""API v1 router that aggregates all endpoint routers."""

from fastapi import APIRouter

from catalog_sync_service.api.v1 import catalog, health

api_router = APIRouter()

api_router.include_router(
    health.router,
    tags=["Health"],
)

api_router.include_router(
    catalog.router,
    prefix="/catalog",
    tags=["Catalog Sync"],
)
