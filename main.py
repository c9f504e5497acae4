#!/usr/bin/env python3
"""Run EpiCheck from a source checkout without installing it.

    python main.py login
    python main.py activities
    python main.py scan 2025/B-PRO-100/PAR-1-1/acti-123456/event-654321
"""

import pathlib
import sys

SRC_PATH = pathlib.Path(__file__).resolve().parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from epicheck.core.main import main  # noqa: E402


if __name__ == "__main__":
    sys.exit(main())
