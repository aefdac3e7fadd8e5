"""Allow running as ``python -m nodeflow``."""

import sys

from nodeflow.cli import main

sys.exit(main())
