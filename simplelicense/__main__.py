import sys

from simplelicense.cli import main

sys.exit(main())
