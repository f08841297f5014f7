"""
Convenience entry point for running rehearsalplanner directly.

Usage: python -m rehearsalplanner [command] [options]
"""

from .cli.app import app

if __name__ == "__main__":
    app()
