"""
Entry point for running the oracle as a module.

Usage:
    python -m wrkoracle
"""

from wrkoracle.cli import main

if __name__ == "__main__":
    main()
