"""
Entry point for running cardsafe as a module.

Usage:
    python -m cardsafe [command] [options]
"""

from cardsafe.cli import main

if __name__ == "__main__":
    main()
