from fastapi import APIRouter

from .endpoints import health, claims, trades, pnl, expenses, categories, tokens


# Create main API router
api_router = APIRouter()

# Include endpoint routers
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(claims.router, prefix="/claims", tags=["claims"])
api_router.include_router(trades.router, prefix="/trades", tags=["trades"])
api_router.include_router(pnl.router, prefix="/pnl", tags=["pnl"])
api_router.include_router(expenses.router, prefix="/expenses", tags=["expenses"])
api_router.include_router(categories.router, prefix="/categories", tags=["categories"])
api_router.include_router(tokens.router, prefix="/tokens", tags=["tokens"])
