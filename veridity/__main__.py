"""Entry point for ``python -m veridity``."""

import sys

from veridity.zk.cli import main

if __name__ == "__main__":
    sys.exit(main())
