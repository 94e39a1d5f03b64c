import sys

from library_automount.cli import main

sys.exit(main())
