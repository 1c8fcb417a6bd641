#!/usr/bin/env python

import sys

try:
    from provider_mirror.main import main as run_main_process
except ImportError as e:
    print("Error: Could not import the main application module. Is the 'provider_mirror' package installed?", file=sys.stderr)
    print(f"Details: {e}", file=sys.stderr)
    sys.exit(1)


if __name__ == "__main__":
    # Execute the main application logic and exit with its status code
    sys.exit(run_main_process())
