"""Main entry point for the callflow CLI.

Usage:
    python -m callflow --help
    callflow --help  # If installed via pip/uv
"""

from callflow.cli import main

if __name__ == "__main__":
    main()
