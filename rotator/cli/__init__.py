"""Command-line interface for the secret rotator."""

from rotator.cli.main import build_parser, main

__all__ = ["build_parser", "main"]
