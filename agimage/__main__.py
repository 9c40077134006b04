"""Main entry point when executing agimage as a package.

This allows running the package using python -m agimage.
"""

from agimage.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
