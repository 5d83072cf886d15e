from fastapi import APIRouter

from app.api.v1.auth import router as auth_router
from app.config.settings import settings
from app.modules.transfers.router import router as transfers_router
from app.modules.users import users_router

# Main API v1 router
api_router = APIRouter()

# ===== MODULE ROUTES =====

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

# /api/v1/transfers/...
api_router.include_router(transfers_router)

# /api/v1/users/...
api_router.include_router(users_router)

# ===== ROOT ENDPOINTS =====

@api_router.get("/")
async def api_root():
    return {
        "message": f"{settings.app_name} v1",
        "version": settings.version,
        "status": "active",
        "available_endpoints": {
            "authentication": "/api/v1/auth",
            "transfers": "/api/v1/transfers",
            "users": "/api/v1/users",
        }
    }

@api_router.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.version,
    }
