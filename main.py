"""
Agency Sales Dashboard: smoke run from raw exports to dashboard dicts.

Decodes the three ERP CSV exports, merges them, stores the result in a
session and prints the analysis of the first agency.

Usage:
    python main.py [DATA_DIR]

Without DATA_DIR the default docs/ directory is used; if it does not exist,
simulated exports are written to a temporary directory and used instead.
"""

import argparse
import logging
import sys
import tempfile
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent))

from sales_dashboard.config import DATA_DIR
from sales_dashboard.dashboard import (
    calculate_analysis,
    get_available_agencies,
    get_insight_messages,
)
from sales_dashboard.loaders.default_files import load_default_dataset
from sales_dashboard.session_store import create_session, get_session
from sales_dashboard.simulator import write_export_files

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def _print_table(title: str, rows: list[dict], limit: int = 5) -> None:
    print(f"\n{title}: {len(rows)} rows")
    for row in rows[:limit]:
        print(f"  {row}")


def main(argv: list[str] | None = None) -> int:
    """Load exports, round-trip a session and print one agency's dashboard."""
    parser = argparse.ArgumentParser(description="Sales dashboard pipeline smoke test")
    parser.add_argument("data_dir", nargs="?", default=None, help="directory holding the three CSV exports")
    args = parser.parse_args(argv)

    print("=" * 70)
    print("  AGENCY SALES DASHBOARD")
    print("  Upload-to-dashboard smoke run")
    print("=" * 70)
    print()

    # ------------------------------------------------------------------
    # 1. Find or simulate the exports
    # ------------------------------------------------------------------
    print("[ 1 ] SOURCE EXPORTS")
    print("-" * 40)

    data_dir = Path(args.data_dir) if args.data_dir else DATA_DIR
    if args.data_dir is None and not data_dir.is_dir():
        data_dir = Path(tempfile.mkdtemp(prefix="sales-dashboard-"))
        write_export_files(data_dir)
        logger.info("No data directory found; using simulated exports in %s", data_dir)

    try:
        default_data = load_default_dataset(data_dir)
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        return 1

    for source, name in default_data.files.items():
        print(f"  {source:10s} <- {name}")
    print(f"\nDataset counts: {default_data.counts()}")

    # ------------------------------------------------------------------
    # 2. Session round trip
    # ------------------------------------------------------------------
    print("\n")
    print("[ 2 ] SESSION STORE")
    print("-" * 40)

    session_id = create_session(default_data.dataset)
    dataset = get_session(session_id)
    print(f"\nSession {session_id}: {'restored' if dataset is not None else 'MISSING'}")
    if dataset is None:
        return 1

    # ------------------------------------------------------------------
    # 3. Analysis for the first agency
    # ------------------------------------------------------------------
    print("\n")
    print("[ 3 ] AGENCY ANALYSIS")
    print("-" * 40)

    agencies = get_available_agencies(dataset)
    print(f"\nAvailable agencies: {agencies}")
    if not agencies:
        logger.warning("Dataset has no agencies; nothing to analyse")
        return 1

    agency = agencies[0]
    for benchmark in ("overall", "club1000"):
        analysis = calculate_analysis(dataset, agency, benchmark)
        print(f"\nKPI cards, {agency} vs {benchmark}:")
        for card in analysis["kpis"]:
            print(f"  {card['label']:26s} | {card['value']:>22s} | {card['delta']:+7.1f}% {card['tone']}")

    _print_table("Top regions", analysis["region_main"])
    _print_table("Growth customers", analysis["growth_customers"])
    _print_table("Monthly new products", analysis["monthly_new_products"], limit=12)
    print(f"\nCross-sell ratio: {analysis['cross_sell_ratio']}")
    print(f"Growth scatter points: {len(analysis['growth_scatter']['points'])}")
    for segment in analysis["growth_segments"]["segments"]:
        print(f"  {segment['label']:30s} {segment['customer_count']:>4d}")

    print("\nInsight text (cross_sell_interpretation):")
    for message in get_insight_messages(agency, "cross_sell_interpretation"):
        print(f"  - {message}")

    print("\n" + "=" * 70)
    print("  Smoke run finished.")
    print("=" * 70)
    return 0


if __name__ == "__main__":
    sys.exit(main())
