"""
Entry point for ``python -m slotbook``.

Usage: python -m slotbook [command] [options]
"""

from .cli.app import app

if __name__ == "__main__":
    app()
