"""API package for the outbound governor."""

from governor.api.app import app, create_app
from governor.api.routes import get_executor, router

__all__ = ["app", "create_app", "get_executor", "router"]
