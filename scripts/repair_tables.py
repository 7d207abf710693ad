#!/usr/bin/env python3
"""Check and repair custom tables whose metadata and physical tables disagree.

Reports:
- orphaned tables: physical custom_* tables with no metadata row
- missing tables: metadata rows whose main table does not exist

With --repair, missing tables are recreated from their metadata. Orphaned
tables are only reported; drop them by hand after inspection.

Usage:
    python scripts/repair_tables.py [--repair]
"""

import argparse
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from apps.api.main import create_app


def check_and_repair(repair: bool = False) -> int:
    """Print the consistency report; returns the process exit code."""
    app = create_app()

    with app.app_context():
        service = app.custom_tables

        orphaned = service.find_orphaned_tables()
        missing = service.find_missing_tables()

        print(f"Orphaned physical tables: {len(orphaned)}")
        for name in orphaned:
            print(f"  - {name}")
        print(f"Tables missing physical storage: {len(missing)}")
        for name in missing:
            print(f"  - {name}")

        if not missing:
            return 0
        if not repair:
            print("Run with --repair to recreate missing tables.")
            return 1

        result = service.repair_missing_tables()
        for name in result["repaired"]:
            print(f"Repaired {name}")
        for name, error in result["failed"].items():
            print(f"Failed to repair {name}: {error}")

        return 1 if result["failed"] else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Custom table consistency check")
    parser.add_argument(
        "--repair",
        action="store_true",
        help="Recreate physical tables that exist only as metadata",
    )
    args = parser.parse_args()

    try:
        sys.exit(check_and_repair(repair=args.repair))
    except Exception as e:
        print(f"Error checking custom tables: {e}")
        import traceback

        traceback.print_exc()
        sys.exit(1)
