"""Test fixtures and configuration helpers."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

# Keep the package importable when the tests run from a plain checkout.
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
