"""
Utility routes: health check for load balancers and container orchestrators.
"""
from fastapi import APIRouter

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/health-check/")
async def health_check() -> bool:
    """
    Liveness check.

    Request path: GET /api/v1/utils/health-check/
    """
    return True
