from fastapi import APIRouter

from optimizecode.api.routes import auth, billing, health, optimize, user

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router, tags=["auth"])
api_router.include_router(optimize.router, tags=["optimize"])
api_router.include_router(user.router, tags=["user"])
api_router.include_router(billing.router, tags=["billing"])
