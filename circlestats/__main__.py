"""Main entry point when executing circlestats as a package.

This allows running the package using python -m circlestats.
"""

from circlestats.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
