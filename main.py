#!/usr/bin/env python3
# saath-saath/main.py
"""
Command-Line Interface for the Saath-Saath Group Buying Simulation.

This script replays a day of vendor orders through the group buying engine
without the dashboard, and quotes bulk prices from the seed catalog.

Usage:
    python main.py                          # Run with defaults
    python main.py --dataset sparse         # Run specific dataset
    python main.py --radius 1.5 --min-savings 100
    python main.py --quote onions 30 --group-size 4
    python main.py --verbose                # Show detailed output

Exit Codes:
    0: Success
    1: Data loading error
    2: Simulation error
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Dict, List, Any, Optional

# Ensure saathsaath package is importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from saathsaath import config
from saathsaath.catalog import default_catalog
from saathsaath.pricing import calculate_optimal_price
from saathsaath.simulation import Simulation
from saathsaath.utils import format_rupees


BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Available datasets
DATASETS: Dict[str, Dict[str, str]] = {
    "delhi": {
        "vendors": os.path.join(BASE_DIR, "data/vendors_delhi.csv"),
        "orders": os.path.join(BASE_DIR, "data/orders_delhi.csv"),
        "description": "12 vendors in three Delhi clusters, 16 morning orders"
    },
    "sparse": {
        "vendors": os.path.join(BASE_DIR, "data/vendors_sparse.csv"),
        "orders": os.path.join(BASE_DIR, "data/orders_sparse.csv"),
        "description": "6 vendors spread across NCR, no neighbours"
    },
}


def print_header() -> None:
    """Print the CLI header."""
    print("\n" + "=" * 60)
    print("  SAATH-SAATH - Group Buying for Street Food Vendors")
    print("  Bulk Pricing and Group Formation Simulation")
    print("=" * 60 + "\n")


def print_results_table(results: Dict[str, Any]) -> None:
    """
    Print the KPI summary and the groups that were formed.

    Args:
        results: KPI results from Simulation.run()
    """
    metrics = [
        "Orders",
        "Groups Formed",
        "Grouped Orders",
        "Avg Group Size",
        "Total Savings",
        "Savings Rate",  # THE KEY METRIC
        "Delivery Distance",
    ]

    print("\n" + "=" * 60)
    print("  RESULTS")
    print("=" * 60 + "\n")

    for metric in metrics:
        print(f"| {metric:<25} | {str(results.get(metric, 'N/A')):^26} |")

    groups = results.get("groups", [])
    if groups:
        print("\n" + "-" * 60)
        print(f"  {'Group':<12}{'Members':<24}{'Savings':>10}{'Route':>12}")
        print("-" * 60)
        routes = {d["group_id"]: d for d in results.get("deliveries", [])}
        for group in sorted(groups, key=lambda g: g.group_id):
            members = ", ".join(group.member_ids)
            route = routes.get(group.group_id)
            route_str = f"{route['distance_km']:.1f} km" if route else "-"
            print(f"  {group.group_id:<12}{members:<24}"
                  f"{format_rupees(group.total_savings):>10}{route_str:>12}")

    top = [row for row in results.get("vendor_savings", []) if row["total_savings"] > 0][:5]
    if top:
        print("\n  Top saving vendors:")
        for row in top:
            print(f"    {row['name']:<25} {format_rupees(row['total_savings']):>8} "
                  f"across {row['groups']} group(s)")

    print("\n" + "=" * 60 + "\n")


def print_quote(product_id: str, quantity: float, group_size: int) -> int:
    """
    Print a bulk price quote for one catalog product.

    Returns:
        Exit code
    """
    catalog = default_catalog()
    product = catalog.get(product_id)
    if product is None:
        print(f"ERROR: Unknown product '{product_id}'")
        print(f"Available products: {', '.join(catalog.keys())}")
        return 1
    if quantity <= 0:
        print("ERROR: Quantity must be positive")
        return 1

    quote = calculate_optimal_price(product, quantity, group_size)
    unit = product.unit.value
    print(f"\n{product.name}: {quantity:g} {unit} for a group of {group_size}")
    print(f"  Base price:  {format_rupees(product.base_price)}/{unit}")
    print(f"  Unit price:  ₹{quote.unit_price:.2f}/{unit}")
    print(f"  Total:       ₹{quote.total_price:,.2f}")
    print(f"  Savings:     ₹{quote.savings:,.2f} ({quote.discount_percentage:.1f}% off)")
    if quote.tier is None:
        next_tier = min(
            (t for t in product.bulk_pricing if t.min_quantity > quantity),
            key=lambda t: t.min_quantity,
            default=None,
        )
        if next_tier is not None:
            print(f"  Order {next_tier.min_quantity - quantity:g} {unit} more "
                  f"to reach ₹{next_tier.price_per_unit:g}/{unit}")
    print()
    return 0


def load_data_safe(dataset_name: str) -> Optional[tuple]:
    """
    Load data with graceful error handling.

    Args:
        dataset_name: Key from DATASETS dictionary

    Returns:
        Tuple of (vendors, products, orders) or None if error
    """
    if dataset_name not in DATASETS:
        print(f"ERROR: Unknown dataset '{dataset_name}'")
        print(f"Available datasets: {', '.join(DATASETS.keys())}")
        return None

    dataset = DATASETS[dataset_name]
    vendor_file = dataset["vendors"]
    order_file = dataset["orders"]

    # Check file existence
    if not os.path.exists(vendor_file):
        print(f"ERROR: Vendor file not found: {vendor_file}")
        print("Please ensure the data/ directory contains the required CSV files.")
        return None

    if not os.path.exists(order_file):
        print(f"ERROR: Order file not found: {order_file}")
        return None

    try:
        vendors, products, orders = Simulation.load_data(vendor_file, order_file)
        print(f"Loaded {len(orders)} orders and {len(vendors)} vendors from '{dataset_name}' dataset")
        return vendors, products, orders
    except (OSError, ValueError) as e:
        print(f"ERROR: Failed to load data: {e}")
        return None


def run_simulation_safe(
    vendors,
    products,
    orders,
    args: argparse.Namespace,
) -> Optional[Dict[str, Any]]:
    """
    Run the replay with error handling.

    Args:
        vendors: List of Vendor objects
        products: List of Product objects
        orders: List of Order objects
        args: Parsed CLI arguments with the formation thresholds

    Returns:
        Results dictionary or None if error
    """
    try:
        sim = Simulation(
            vendors, products, orders,
            radius_km=args.radius,
            minimum_members=args.min_members,
            minimum_savings=args.min_savings,
            window_hours=args.window_hours,
        )
        if args.geocode_missing:
            located = sim.store.geocode_missing_locations()
            print(f"Geocoded {located} vendor stall(s)")
        return sim.run(verbose=args.verbose)
    except Exception as e:
        print(f"ERROR: Simulation failed: {e}")
        import traceback
        traceback.print_exc()
        return None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Saath-Saath Group Buying Simulation CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                # Default: delhi dataset
  python main.py --dataset sparse               # Vendors too far apart to group
  python main.py --radius 6 --min-savings 20    # Looser formation rules
  python main.py --quote onions 30              # Price quote from the catalog
  python main.py --list-datasets                # Show available datasets
        """
    )

    parser.add_argument(
        "--dataset", "-d",
        type=str,
        default="delhi",
        help=f"Dataset to use (default: delhi). Options: {', '.join(DATASETS.keys())}"
    )

    parser.add_argument(
        "--radius", "-r",
        type=float,
        default=config.GROUP_RADIUS_KM,
        help=f"Matching radius in km (default: {config.GROUP_RADIUS_KM})"
    )

    parser.add_argument(
        "--min-savings",
        type=float,
        default=config.MINIMUM_SAVINGS,
        help=f"Minimum projected savings in rupees (default: {config.MINIMUM_SAVINGS:g})"
    )

    parser.add_argument(
        "--min-members",
        type=int,
        default=config.MINIMUM_MEMBERS,
        help=f"Minimum vendors per group (default: {config.MINIMUM_MEMBERS})"
    )

    parser.add_argument(
        "--window-hours",
        type=float,
        default=config.COMPATIBILITY_WINDOW_HOURS,
        help=f"Recency window for compatible orders (default: {config.COMPATIBILITY_WINDOW_HOURS:g})"
    )

    parser.add_argument(
        "--quote",
        nargs=2,
        metavar=("PRODUCT", "QTY"),
        help="Quote the bulk price of a catalog product and exit"
    )

    parser.add_argument(
        "--group-size",
        type=int,
        default=1,
        help="Group size for --quote (default: 1)"
    )

    parser.add_argument(
        "--geocode-missing",
        action="store_true",
        help="Geocode vendors without stall coordinates via Nominatim before the replay"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show detailed simulation progress"
    )

    parser.add_argument(
        "--list-datasets",
        action="store_true",
        help="List available datasets and exit"
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # List datasets mode
    if args.list_datasets:
        print("\nAvailable Datasets:")
        print("-" * 50)
        for name, info in DATASETS.items():
            exists = "OK" if (os.path.exists(info["orders"]) and os.path.exists(info["vendors"])) else "MISSING"
            print(f"  {name:15} [{exists}] - {info['description']}")
        return 0

    # Quote mode
    if args.quote:
        product_id, qty_str = args.quote
        try:
            quantity = float(qty_str)
        except ValueError:
            print(f"ERROR: Invalid quantity '{qty_str}'")
            return 1
        return print_quote(product_id, quantity, args.group_size)

    print_header()

    # Load data
    data = load_data_safe(args.dataset)
    if data is None:
        return 1

    vendors, products, orders = data

    print(f"\nRadius {args.radius:g} km, minimum savings {format_rupees(args.min_savings)}, "
          f"{args.min_members}+ members, {args.window_hours:g}h window")
    print("-" * 40)

    results = run_simulation_safe(vendors, products, orders, args)
    if results is None:
        return 2

    print_results_table(results)

    return 0


if __name__ == "__main__":
    sys.exit(main())
