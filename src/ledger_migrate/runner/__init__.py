"""
CLI runner module.

Provides commands:
- up: Apply pending migrations (default)
- status: Show applied and pending migrations
- init: Write a default config file
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
