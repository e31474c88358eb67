"""Command line interface."""

from esi_processor.cli.main import cli


__all__ = ["cli"]
