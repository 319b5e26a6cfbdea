"""
Entry point for running the tracker as a module.

Usage:
    python -m payin_tracker
"""

from payin_tracker.cli import main

if __name__ == "__main__":
    main()
