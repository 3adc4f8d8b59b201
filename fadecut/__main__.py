import sys

from fadecut.cli import main

sys.exit(main())
