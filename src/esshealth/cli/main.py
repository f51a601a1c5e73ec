"""Console script entry point."""

from __future__ import annotations

from esshealth.cli.app import main

__all__ = ["main"]
