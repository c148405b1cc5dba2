"""
app/api/api_v1/documents/__init__.py
Initialize documents module
"""

from .router import router as documents_router

__all__ = ["documents_router"]
