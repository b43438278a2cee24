"""Allow ``python -m cm_toolkit``."""

import sys

from .app import main

sys.exit(main())
