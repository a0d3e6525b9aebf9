#!/usr/bin/env python3
"""
Account merge launcher for running from a source checkout.

Usage:
    ./scripts/merge_accounts.py merge --source alice-alt --target alice --dry-run
    ./scripts/merge_accounts.py karma --user alice
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from account_merge.tool import main


if __name__ == "__main__":
    sys.exit(main())
