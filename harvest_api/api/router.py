"""Aggregate all API routers."""

from fastapi import APIRouter

from harvest_api.api.crawl import router as crawl_router
from harvest_api.api.data import router as data_router
from harvest_api.api.health import router as health_router

api_router = APIRouter(prefix="/api")
api_router.include_router(crawl_router, tags=["crawl"])
api_router.include_router(data_router, tags=["data"])

# GET /health lives at the root
root_router = APIRouter()
root_router.include_router(health_router, tags=["health"])
