"""Processor settings loading."""

from .app import ESISettings, get_settings


__all__ = ["ESISettings", "get_settings"]
