"""HTTP API package."""
from .main import attach_services, create_app

__all__ = ["attach_services", "create_app"]
