"""Configuration package for the checkout payment service."""
from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
