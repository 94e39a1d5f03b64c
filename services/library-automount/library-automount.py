#!/usr/bin/env python3
"""
Service entry point, called from the udev-started systemd unit as

    library-automount.py {add|remove|retrigger} <device>
"""

import sys

from library_automount.cli import main

if __name__ == "__main__":
    sys.exit(main())
