"""API package."""
from .routes import router
from .auth import require_api_key

__all__ = ["router", "require_api_key"]
