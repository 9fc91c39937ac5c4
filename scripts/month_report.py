#!/usr/bin/env python3
"""
Month Report - open approval items + workload chart for one month (read-only)

Usage:
  python scripts/month_report.py --month 2024-09-01
  python scripts/month_report.py --month 2024-09-01 --db data/rota.db --output-dir reports/

Outputs to outputs/ directory:
  <YYYY-MM>_month_report.txt
  <YYYY-MM>_workload.png
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from ward_rota.config import DEFAULT_DB_PATH, DEFAULT_OUTPUT_DIR
from ward_rota.errors import RotaError
from ward_rota.exporter import export_month_report, export_workload_chart
from ward_rota.service import RotaService
from ward_rota.store import SQLiteStore

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")


def main():
    parser = argparse.ArgumentParser(description="Month approval report and workload chart")
    parser.add_argument("--month",      required=True, help="First day of month YYYY-MM-01")
    parser.add_argument("--db",         default=str(DEFAULT_DB_PATH))
    parser.add_argument("--output-dir", default=None, help="Output directory (default: outputs/)")
    args = parser.parse_args()

    out_dir = Path(args.output_dir) if args.output_dir else DEFAULT_OUTPUT_DIR
    store = SQLiteStore(args.db)
    service = RotaService(store)
    try:
        report = service.check_month(args.month)
        prefix = f"{report.month_start:%Y-%m}"
        print(export_month_report(report, out_dir / f"{prefix}_month_report.txt"))

        names = {d.id: d.name for d in service.list_doctors(active_only=False)}
        counts = service.workload_counts(args.month)
        if counts:
            export_workload_chart(counts, out_dir / f"{prefix}_workload.png", names,
                                  title=f"Slot workload {prefix}")
            print(f"  ✓ Visual  → {prefix}_workload.png")
    except RotaError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        store.close()


if __name__ == "__main__":
    main()
