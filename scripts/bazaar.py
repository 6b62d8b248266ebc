#!/usr/bin/env python3
# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Bazaar marketplace bot script entry point.

Delegates to :func:`bazaar.service.main`.  Equivalent to ``uv run bazaar``.
"""

import sys
from pathlib import Path


# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from bazaar.service import main


if __name__ == "__main__":
    sys.exit(main())
