"""``python -m samrunner`` entry point."""

import sys

from samrunner.cli import main

if __name__ == "__main__":
    sys.exit(main())
