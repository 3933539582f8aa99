"""Main entry point for the succession CLI.

Usage:
    python -m succession.main --help
    succession --help  # If installed via pip/uv
"""

from succession.cli import main

if __name__ == "__main__":
    main()
