"""API routes."""

from fastapi import APIRouter

from tippool.api.routes import departments, categories, tips, pools, reports

api_router = APIRouter()

api_router.include_router(departments.router, prefix="/departments", tags=["departments"])
api_router.include_router(categories.router, prefix="/categories", tags=["categories"])
api_router.include_router(tips.router, prefix="/tips", tags=["tips"])
api_router.include_router(pools.router, prefix="/pools", tags=["pools"])
api_router.include_router(reports.router, prefix="/reports", tags=["reports"])
