"""Entry point for ``python -m heirloom``."""

import sys

from heirloom.cli import main

sys.exit(main())
