"""
Package entry point.

Allows running the application via:

    python -m coursefeed

This simply forwards execution to coursefeed.cli.main().
"""

from coursefeed.cli import main

if __name__ == "__main__":
    main()
