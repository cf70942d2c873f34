"""
Entry point for running the CLI as a module.

Usage:
    python -m solux_api serve
"""

from solux_api.cli import app

if __name__ == "__main__":
    app()
