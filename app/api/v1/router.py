"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from app.api.v1 import admin, bookings, disputes, internal

api_router = APIRouter()

# Bookings
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])

# Disputes
api_router.include_router(disputes.router, prefix="/disputes", tags=["Disputes"])

# Admin
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])

# Internal
api_router.include_router(internal.router, prefix="/internal", tags=["Internal"])
