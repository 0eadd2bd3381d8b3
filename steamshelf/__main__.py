import sys

from steamshelf.cli import main

sys.exit(main())
