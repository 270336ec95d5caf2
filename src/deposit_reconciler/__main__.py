"""Allow ``python -m deposit_reconciler``."""

import sys

from deposit_reconciler.cli import main

if __name__ == "__main__":
    sys.exit(main())
