"""Allow `python -m bluebird`."""

import sys

from bluebird.cli import main

sys.exit(main())
