"""Main entry point for the HTML Catalog.

This allows the package to be run as:
    python -m htmlcatalog
"""

from .cli.main import cli

if __name__ == "__main__":
    cli()
