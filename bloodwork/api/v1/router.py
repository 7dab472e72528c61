from fastapi import APIRouter

from bloodwork.api.v1.endpoints import analysis, documents

api_router = APIRouter()

api_router.include_router(documents.router, prefix="/documents", tags=["Documents"])
api_router.include_router(analysis.router, prefix="/analysis", tags=["Analysis"])

__all__ = ["api_router"]
