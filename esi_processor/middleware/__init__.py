"""Hosting integrations."""

from esi_processor.middleware.asgi import ESIMiddleware


__all__ = ["ESIMiddleware"]
