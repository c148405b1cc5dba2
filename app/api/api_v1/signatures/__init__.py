"""
app/api/api_v1/signatures/__init__.py
Initialize signatures module
"""

from .router import router as signatures_router

__all__ = ["signatures_router"]
