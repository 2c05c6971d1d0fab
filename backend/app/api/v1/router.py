from fastapi import APIRouter
from app.api.v1.endpoints import tests, reports

api_router = APIRouter()


@api_router.get("/health", tags=["Health"])
async def health_check():
    """Simple health check endpoint for load balancer"""
    return {"status": "healthy", "service": "collegesync-backend"}


api_router.include_router(tests.router)
api_router.include_router(reports.router)
