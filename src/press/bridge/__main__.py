import sys

from press.bridge.cli import main

sys.exit(main())
