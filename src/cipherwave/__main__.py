"""Run with: python -m cipherwave"""

import sys

from cipherwave.cli import main

if __name__ == "__main__":
    sys.exit(main())
