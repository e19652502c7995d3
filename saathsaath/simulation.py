# saath-saath/saathsaath/simulation.py
"""
Replay simulation for the Saath-Saath Group Buying Engine.

This module replays a day of vendor orders through the group formation
pipeline. Key responsibilities:
- Loading vendors and orders from CSV
- Feeding orders to the engine in creation order with a simulated clock
- Planning the delivery route of every formed group
- KPI calculation and reporting

KEY METRIC: Savings Rate = group savings / value of grouped demand at base price
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from . import config
from .catalog import default_catalog
from .matching import GroupBuyingEngine
from .models import (
    BuyingGroup,
    FormationOutcome,
    FormationState,
    Location,
    Order,
    OrderStatus,
    Product,
    Vendor,
)
from .routing import measure_route_on_roads, optimize_route
from .store import InMemoryDocumentStore, load_orders_csv, load_vendors_csv

logger = logging.getLogger(__name__)


class Simulation:
    """
    Replays orders through the group buying engine.

    Orders are submitted one at a time in creation order. The engine's clock
    is pinned to the creation time of the order being processed, so
    compatibility windows and group deadlines behave as they would live.
    Orders that went through individually stay pending and can be picked up
    by a later order's group.

    Attributes:
        store: In-memory document store holding the replayed state
        engine: The group buying engine under test
        current_time: Simulated clock
        outcomes: Formation outcome per submitted order, in submission order
    """

    def __init__(
        self,
        vendors: List[Vendor],
        products: List[Product],
        orders: List[Order],
        radius_km: float = config.GROUP_RADIUS_KM,
        minimum_members: int = config.MINIMUM_MEMBERS,
        minimum_savings: float = config.MINIMUM_SAVINGS,
        window_hours: float = config.COMPATIBILITY_WINDOW_HOURS,
        depot: Optional[Location] = None,
    ) -> None:
        # Sort orders by creation time for proper replay
        self.master_orders_list: List[Order] = sorted(orders, key=lambda o: o.created_at)
        self.store = InMemoryDocumentStore(vendors=vendors, products=products)

        self.current_time: datetime = (
            self.master_orders_list[0].created_at if self.master_orders_list else datetime.now()
        )
        self.engine = GroupBuyingEngine(
            self.store,
            radius_km=radius_km,
            minimum_members=minimum_members,
            minimum_savings=minimum_savings,
            window_hours=window_hours,
            clock=lambda: self.current_time,
        )
        self.depot: Location = depot or Location(*config.DEPOT_LOCATION, address="Depot")
        self.outcomes: List[FormationOutcome] = []

    @staticmethod
    def load_data(
        vendor_file: str,
        order_file: str,
        catalog: Optional[Mapping[str, Product]] = None,
    ) -> Tuple[List[Vendor], List[Product], List[Order]]:
        """
        Load simulation data from CSV files.

        Args:
            vendor_file: Path to vendors CSV
            order_file: Path to orders CSV
            catalog: Products keyed by ID (defaults to the seed catalog)

        Returns:
            Tuple of (vendors, products, orders) lists

        Raises:
            FileNotFoundError: If files don't exist
            ValueError: If file format is invalid
        """
        if catalog is None:
            catalog = default_catalog()
        vendors = load_vendors_csv(vendor_file)
        orders = load_orders_csv(order_file, catalog)
        return vendors, list(catalog.values()), orders

    def submit(self, order: Order) -> FormationOutcome:
        """Save one order, advance the clock to its creation time and run formation."""
        self.current_time = order.created_at
        self.store.add_order(order)
        outcome = self.engine.process_order(order)
        self.outcomes.append(outcome)
        return outcome

    def run(self, verbose: bool = True) -> Dict[str, Any]:
        """
        Replay every order.

        Args:
            verbose: Whether to print progress

        Returns:
            Dictionary of KPI results
        """
        if verbose:
            print(f"======== Replaying {len(self.master_orders_list)} orders ========")

        for order in self.master_orders_list:
            outcome = self.submit(order)
            if verbose:
                line = (f"[{self.current_time.strftime('%H:%M')}] {order.order_id} "
                        f"({order.vendor_id}): {outcome.state.value}")
                if outcome.formed:
                    line += (f" -> {outcome.group.group_id} with "
                             f"{outcome.group.num_members} vendors, "
                             f"savings ₹{outcome.group.total_savings:.0f}")
                print(line)

        if verbose:
            print("Replay complete. Calculating results...")

        return self.get_results()

    def plan_delivery(self, group: BuyingGroup) -> Dict[str, Any]:
        """
        Plan the delivery route from the depot through the group's stalls.

        Returns:
            Dictionary with the route, distance, time and score
        """
        stops: List[Location] = []
        stop_vendors: List[str] = []
        for vendor_id in group.member_ids:
            vendor = self.store.get_vendor(vendor_id)
            if vendor is None or vendor.stall_location is None:
                continue
            stops.append(vendor.stall_location)
            stop_vendors.append(vendor_id)

        route = optimize_route(self.depot, stops, stop_vendors)
        distance_km, time_min = route.total_distance_km, route.total_time_min
        if config.USE_ROAD_DISTANCE:
            distance_km, time_min = measure_route_on_roads(route)

        return {
            "group_id": group.group_id,
            "route": route,
            "distance_km": distance_km,
            "time_min": time_min,
            "score": route.optimization_score,
            "path": [p.location.as_tuple() for p in route.points],
        }

    def get_results(self) -> Dict[str, Any]:
        """
        Calculate and return KPI results.

        Returns:
            Dictionary with KPIs, group details and route data for visualization
        """
        total_orders = len(self.outcomes)
        groups = self.store.list_groups()
        orders = self.store.list_orders()

        grouped_orders = sum(1 for o in orders if o.status == OrderStatus.GROUPED)
        individual_orders = sum(1 for o in orders if o.status == OrderStatus.PENDING)
        formed_outcomes = sum(1 for o in self.outcomes if o.state == FormationState.FORMED)

        total_savings = sum(g.total_savings for g in groups)
        total_group_value = sum(g.total_value for g in groups)
        gross_value = sum(
            p.unit_price * p.total_quantity for g in groups for p in g.products
        )
        avg_group_size = (
            sum(g.num_members for g in groups) / len(groups) if groups else 0
        )
        savings_rate = (total_savings / gross_value) * 100 if gross_value > 0 else 0
        grouping_rate = (grouped_orders / total_orders) * 100 if total_orders > 0 else 0
        vendors_in_groups = {vid for g in groups for vid in g.member_ids}

        deliveries = [self.plan_delivery(g) for g in groups]
        total_route_km = sum(d["distance_km"] for d in deliveries)
        total_route_min = sum(d["time_min"] for d in deliveries)
        avg_route_score = (
            sum(d["score"] for d in deliveries) / len(deliveries) if deliveries else 0
        )

        return {
            # Order counts
            "total_orders": total_orders,
            "grouped_orders": grouped_orders,
            "individual_orders": individual_orders,
            "grouping_rate_pct": round(grouping_rate, 2),

            # Groups
            "groups_formed": len(groups),
            "formation_events": formed_outcomes,
            "avg_group_size": round(avg_group_size, 2),
            "vendors_in_groups": len(vendors_in_groups),

            # Money (rupees)
            "total_savings": round(total_savings, 2),
            "total_group_value": round(total_group_value, 2),
            "savings_rate_pct": round(savings_rate, 2),
            "avg_savings_per_group": round(total_savings / len(groups), 2) if groups else 0,

            # Delivery
            "total_route_distance_km": round(total_route_km, 2),
            "total_route_time_min": total_route_min,
            "avg_route_score": round(avg_route_score, 2),

            # Display format
            "Orders": total_orders,
            "Groups Formed": len(groups),
            "Grouped Orders": f"{grouped_orders}/{total_orders}",
            "Avg Group Size": f"{avg_group_size:.2f}",
            "Total Savings": f"₹{total_savings:,.0f}",
            "Savings Rate": f"{savings_rate:.2f}%",
            "Delivery Distance": f"{total_route_km:.2f} km",

            # Details for visualization
            "groups": groups,
            "deliveries": deliveries,
            "vendor_savings": vendor_savings(self.store),
        }


def vendor_savings(store: InMemoryDocumentStore) -> List[Dict[str, Any]]:
    """
    Per-vendor order and savings statistics.

    Savings come from each vendor's member shares in the groups they
    joined.

    Returns:
        One dict per vendor with orders, spend, groups and savings,
        highest savings first
    """
    stats: Dict[str, Dict[str, Any]] = {}
    for vendor in store.list_vendors():
        stats[vendor.vendor_id] = {
            "vendor_id": vendor.vendor_id,
            "name": vendor.name,
            "orders": 0,
            "total_spent": 0.0,
            "groups": 0,
            "total_savings": 0.0,
        }

    for order in store.list_orders():
        entry = stats.get(order.vendor_id)
        if entry is None:
            continue
        entry["orders"] += 1
        entry["total_spent"] += order.total_amount

    for group in store.list_groups():
        for vendor_id in group.member_ids:
            if vendor_id in stats:
                stats[vendor_id]["groups"] += 1
        for product in group.products:
            for share in product.member_orders:
                if share.vendor_id in stats:
                    stats[share.vendor_id]["total_savings"] += share.individual_savings

    rows = list(stats.values())
    for row in rows:
        row["total_spent"] = round(row["total_spent"], 2)
        row["total_savings"] = round(row["total_savings"], 2)
    rows.sort(key=lambda r: r["total_savings"], reverse=True)
    return rows
