import sys

from deedlink.cli import main

sys.exit(main())
