import sys

from walletcycle.cli import main

sys.exit(main())
