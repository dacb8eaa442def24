"""Routes package for FastAPI endpoints.

This package contains all API route modules for the convention survey service.
"""

from app.routes import admin, coupons, gm_interest, health, sessions, survey

__all__ = ["admin", "coupons", "gm_interest", "health", "sessions", "survey"]
