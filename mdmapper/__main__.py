import sys

from mdmapper.cli import main

sys.exit(main())
