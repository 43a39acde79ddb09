import sys

from efsctl.cli import main

sys.exit(main())
