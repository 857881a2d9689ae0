"""
Package entry point.

Allows running the application via:

    python -m icsuntis

This simply forwards execution to icsuntis.cli.main().
"""

from icsuntis.cli import main

if __name__ == "__main__":
    main()
