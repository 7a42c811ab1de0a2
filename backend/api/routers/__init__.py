"""API Routers package

This package contains all API route handlers.
Routers are organized by feature domain.
"""

from . import access_tokens_router, auth_router

__all__ = [
    "access_tokens_router",
    "auth_router",
]
