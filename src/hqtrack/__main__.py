import sys

from hqtrack.cli import main

sys.exit(main())
