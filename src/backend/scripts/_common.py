"""
Common setup for backend scripts.

Puts the backend root on sys.path so scripts run directly
(python scripts/foo.py) can import db, models, services, etc.

Usage:
    import scripts._common  # noqa: F401
"""

import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).parent.parent
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))
