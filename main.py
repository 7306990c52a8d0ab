#!/usr/bin/env python3
"""
GKE Legacy Network to VPC Converter

Switches a GCE legacy network to custom subnet mode and upgrades the control
planes and node pools of every GKE cluster attached to it.

This script supports running directly from a source checkout: it adds the
local `src/` directory to sys.path. For production use, prefer installing the
project and using the `gkeconvert` console script.

Examples:
  # Validate only (the default)
  python3 main.py -p my-project -n default --control-plane-version 1.20 --node-version -

  # Convert
  python3 main.py -p my-project -n default --in-place-control-plane \\
      --node-version latest --no-validate-only
"""

import os
import sys

# Add src/ to path to import modules directly
REPO_ROOT = os.path.dirname(os.path.abspath(__file__))
SRC_PATH = os.path.join(REPO_ROOT, "src")
if SRC_PATH not in sys.path:
    sys.path.insert(0, SRC_PATH)

from cli import main

if __name__ == "__main__":
    sys.exit(main())
