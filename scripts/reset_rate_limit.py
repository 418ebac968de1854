#!/usr/bin/env python3
"""
Reset the OTP rate limits of a running portal server (development helper).

See portal/cli.py for details.
"""

import sys
from pathlib import Path

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from portal.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
