"""API routes."""

from fastapi import APIRouter

from app.api.routes import admin, auth, contact, profile, tickets

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(tickets.router, prefix="/tickets", tags=["tickets"])
api_router.include_router(profile.router, prefix="/profile", tags=["profile"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
api_router.include_router(contact.router, prefix="/contact", tags=["contact"])
