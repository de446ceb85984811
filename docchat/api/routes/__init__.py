"""FastAPI route modules."""

from docchat.api.routes import assets

__all__ = ["assets"]
