"""Pytest bootstrap for local source imports.

Ensure ``import gitlanes`` and ``import fakes`` resolve to this checkout
even when the ``pytest`` script runs without the repository root on
sys.path.
"""

from __future__ import annotations

import sys
from pathlib import Path


TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent

for entry in (str(PROJECT_ROOT), str(TESTS_DIR)):
    if entry not in sys.path:
        sys.path.insert(0, entry)
