"""
app/api/api_v1/identity/__init__.py
Initialize identity module
"""

from .router import router as identity_router

__all__ = ["identity_router"]
