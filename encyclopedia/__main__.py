import sys

from encyclopedia.cli import main

sys.exit(main())
