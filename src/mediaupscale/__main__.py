"""Allow running as ``python -m mediaupscale``."""
import sys

from .cli import main

sys.exit(main())
