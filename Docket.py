#!/usr/bin/env python3
"""Docket: resilient configuration and multi-provider chat core.

Usage:
    # Server mode (default)
    python Docket.py

    # Validate bundled configuration documents
    python Docket.py validate
    python Docket.py validate --domain provider providers-draft.yaml

Then open http://127.0.0.1:8890/health
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure bin/ is on the path so sibling modules are importable
sys.path.insert(0, str(Path(__file__).resolve().parent / "bin"))

from docket import main


if __name__ == "__main__":
    raise SystemExit(main())
