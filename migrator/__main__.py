"""Allow ``python -m migrator``."""

import sys

from .cli import main

sys.exit(main())
