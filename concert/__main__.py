import sys

from concert.cli import main

sys.exit(main())
