# saath-saath/saathsaath/matching.py
"""
Group Buying Engine for the Saath-Saath marketplace.

This module turns a newly placed order into a buying group when pooling it
with nearby vendors' orders is worth it. For every new order the pipeline:

1. **Nearby vendors**: Finds vendors whose stalls lie within the group
   radius of the ordering vendor's stall (Haversine, inclusive boundary).

2. **Compatible orders**: Keeps recent pending orders from those vendors
   that share at least one product with the new order.

3. **Savings projection**: Pools quantities per product and prices the
   pooled quantity on the bulk tier ladder.

4. **Decision**: Forms a group when there are enough members and the
   projected savings clear the threshold; otherwise the order is processed
   individually.

5. **Commit**: Writes the group and claims its orders in one atomic store
   call guarded by each order's version, so an order can never end up in
   two groups.

Store failures never propagate out of the pipeline. Every read is captured
as a LookupResult and a failed read counts as "nothing found", which makes
the order fall through to individual processing.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from . import config, utils
from .models import (
    BuyingGroup,
    FormationOutcome,
    FormationState,
    GroupProduct,
    GroupStatus,
    Location,
    MemberShare,
    Order,
    OrderStatus,
    Product,
    Vendor,
)
from .pricing import calculate_bulk_discount, project_savings
from .store import DocumentStore, StoreError, safe_lookup

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[FormationState, int], None]


def find_nearby_vendors(
    vendors: Sequence[Vendor],
    center: Location,
    radius_km: float,
) -> List[Vendor]:
    """
    Filter vendors to those whose stall lies within radius_km of center.

    Vendors without a stall location are skipped. The boundary is inclusive.

    Args:
        vendors: Candidate vendors
        center: Centre point
        radius_km: Search radius in km

    Returns:
        Matching vendors in input order
    """
    nearby: List[Vendor] = []
    for vendor in vendors:
        if vendor.stall_location is None:
            logger.debug(f"Skipping {vendor.vendor_id}: no stall location")
            continue
        if utils.distance_between(center, vendor.stall_location) <= radius_km:
            nearby.append(vendor)
    return nearby


def find_compatible_orders(
    candidate_orders: Sequence[Order],
    reference_order: Order,
    window_hours: float = config.COMPATIBILITY_WINDOW_HOURS,
    now: Optional[datetime] = None,
) -> List[Order]:
    """
    Filter candidate orders to those that could be pooled with a reference order.

    A candidate is compatible when it is pending, was created within the last
    window_hours, and shares at least one product with the reference.

    Note: the reference order itself is not filtered out here; callers must
    exclude it from the candidates.

    Returns:
        Compatible orders in input order
    """
    if now is None:
        now = datetime.now()
    cutoff = now - timedelta(hours=window_hours)
    reference_products = reference_order.product_ids

    return [
        order for order in candidate_orders
        if order.status == OrderStatus.PENDING
        and order.created_at >= cutoff
        and not reference_products.isdisjoint(order.product_ids)
    ]


def should_form_group(
    compatible_count: int,
    projected_savings: float,
    minimum_members: int = config.MINIMUM_MEMBERS,
    minimum_savings: float = config.MINIMUM_SAVINGS,
) -> bool:
    """
    Decide whether a group is worth forming.

    The ordering vendor counts as one member, so minimum_members - 1
    compatible orders are needed, and savings must reach minimum_savings.
    """
    return compatible_count >= minimum_members - 1 and projected_savings >= minimum_savings


def build_group(
    reference_order: Order,
    compatible_orders: Sequence[Order],
    catalog: Mapping[str, Product],
    center: Location,
    now: datetime,
    radius_km: float = config.GROUP_RADIUS_KM,
    minimum_members: int = config.MINIMUM_MEMBERS,
) -> BuyingGroup:
    """
    Build the buying group record for a reference order and its compatible orders.

    Per product: total quantity, resolved bulk price, total savings and each
    member's share of the savings (savings_per_unit * member quantity).
    Products missing from the catalog are left out of the record.

    Returns:
        An unsaved BuyingGroup in FORMING state (group_id is None)
    """
    all_orders = [reference_order, *compatible_orders]

    member_ids: List[str] = []
    for order in all_orders:
        if order.vendor_id not in member_ids:
            member_ids.append(order.vendor_id)

    product_map: Dict[str, GroupProduct] = {}
    for order in all_orders:
        for item in order.items:
            product = catalog.get(item.product_id)
            if product is None:
                continue

            group_product = product_map.get(item.product_id)
            if group_product is None:
                group_product = GroupProduct(
                    product_id=product.product_id,
                    product_name=product.name,
                    total_quantity=0,
                    unit_price=product.base_price,
                    bulk_price=product.base_price,
                    total_savings=0.0,
                )
                product_map[item.product_id] = group_product

            group_product.total_quantity += item.quantity
            group_product.member_orders.append(MemberShare(
                vendor_id=order.vendor_id,
                order_id=order.order_id,
                quantity=item.quantity,
            ))

    # Bulk price is known only once every member's quantity is in
    for group_product in product_map.values():
        product = catalog[group_product.product_id]
        bulk_price = calculate_bulk_discount(product, group_product.total_quantity)
        savings_per_unit = group_product.unit_price - bulk_price

        group_product.bulk_price = bulk_price
        group_product.total_savings = savings_per_unit * group_product.total_quantity
        for share in group_product.member_orders:
            share.individual_savings = savings_per_unit * share.quantity

    products = list(product_map.values())
    return BuyingGroup(
        member_ids=member_ids,
        order_ids=[o.order_id for o in all_orders],
        trigger_order_id=reference_order.order_id,
        products=products,
        total_value=sum(p.bulk_price * p.total_quantity for p in products),
        total_savings=sum(p.total_savings for p in products),
        center_location=center,
        radius_km=radius_km,
        formation_deadline=now + timedelta(minutes=config.FORMATION_DEADLINE_MINS),
        minimum_members=minimum_members,
        delivery_slot=now + timedelta(hours=config.DELIVERY_SLOT_HOURS),
        created_at=now,
        updated_at=now,
        status=GroupStatus.FORMING,
    )


class GroupBuyingEngine:
    """
    Runs the group formation pipeline for new orders against a document store.

    Attributes:
        store: Document store holding vendors, orders, products and groups
        radius_km: Matching radius around the ordering vendor's stall
        minimum_members: Vendors needed (including the ordering vendor)
        minimum_savings: Projected savings needed, in rupees
        window_hours: Recency window for compatible orders
        clock: Returns the current time; injectable for replays and tests
    """

    def __init__(
        self,
        store: DocumentStore,
        radius_km: float = config.GROUP_RADIUS_KM,
        minimum_members: int = config.MINIMUM_MEMBERS,
        minimum_savings: float = config.MINIMUM_SAVINGS,
        window_hours: float = config.COMPATIBILITY_WINDOW_HOURS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.radius_km = radius_km
        self.minimum_members = minimum_members
        self.minimum_savings = minimum_savings
        self.window_hours = window_hours
        self.clock = clock

    def process_order(
        self,
        order: Order,
        on_progress: Optional[ProgressCallback] = None,
    ) -> FormationOutcome:
        """
        Run group formation for a newly placed order.

        The order must already be saved in the store, since forming a group
        claims it there. Running it again for an order that is already in a
        group returns the stored group without matching anything new.

        Args:
            order: The new order
            on_progress: Optional callback receiving (state, percent complete)

        Returns:
            FormationOutcome in FORMED or INDIVIDUAL state. Never raises for
            store failures.
        """
        def report(state: FormationState, percent: int) -> None:
            if on_progress is not None:
                on_progress(state, percent)

        now = self.clock()
        report(FormationState.SEARCHING, 10)

        # Re-read the order: it may already have been claimed or cancelled
        stored = self._lookup_order(order.order_id)
        if stored is not None:
            if stored.group_id is not None:
                existing = self._lookup_group(stored.group_id)
                if existing is not None:
                    report(FormationState.FORMED, 100)
                    return FormationOutcome(
                        order_id=order.order_id,
                        state=FormationState.FORMED,
                        group=existing,
                        reason=f"already in {existing.group_id}",
                    )
                report(FormationState.INDIVIDUAL, 100)
                return self._individual(order, reason=f"already claimed by {stored.group_id}")
            if stored.status != OrderStatus.PENDING:
                report(FormationState.INDIVIDUAL, 100)
                return self._individual(order, reason=f"order is {stored.status.value}")
            order = stored

        vendor = self._lookup_vendor(order.vendor_id)
        if vendor is None:
            report(FormationState.INDIVIDUAL, 100)
            return self._individual(order, reason="vendor not found")

        # Step 1: nearby vendors
        nearby_vendors: List[Vendor] = []
        if vendor.stall_location is None:
            logger.info(f"Vendor {vendor.vendor_id} has no stall location; skipping geo-matching")
        else:
            vendors = safe_lookup(self.store.list_vendors).or_empty("vendors")
            nearby_vendors = find_nearby_vendors(vendors, vendor.stall_location, self.radius_km)
        report(FormationState.SEARCHING, 30)

        # Step 2: compatible orders from other nearby vendors
        neighbour_ids = {v.vendor_id for v in nearby_vendors if v.vendor_id != vendor.vendor_id}
        compatible_orders: List[Order] = []
        if neighbour_ids:
            pending = safe_lookup(
                lambda: self.store.list_orders(status=OrderStatus.PENDING)
            ).or_empty("pending orders")
            candidates = [
                o for o in pending
                if o.order_id != order.order_id and o.vendor_id in neighbour_ids
            ]
            compatible_orders = find_compatible_orders(
                candidates, order, self.window_hours, now
            )
        report(FormationState.SEARCHING, 50)

        # Step 3: projected savings
        catalog: Dict[str, Product] = {}
        if compatible_orders:
            products = safe_lookup(self.store.list_products).or_empty("products")
            catalog = {p.product_id: p for p in products}
        savings = project_savings([order, *compatible_orders], catalog)
        report(FormationState.SEARCHING, 70)

        outcome = FormationOutcome(
            order_id=order.order_id,
            state=FormationState.SEARCHING,
            nearby_vendors=nearby_vendors,
            compatible_orders=compatible_orders,
            projected_savings=savings,
        )

        # Step 4: decision
        if not should_form_group(len(compatible_orders), savings,
                                 self.minimum_members, self.minimum_savings):
            outcome.state = FormationState.INDIVIDUAL
            outcome.reason = (
                f"{len(compatible_orders)} compatible orders, "
                f"projected savings {utils.format_rupees(savings)}"
            )
            report(FormationState.INDIVIDUAL, 100)
            return outcome

        # Step 5: build and commit
        group = build_group(
            order, compatible_orders, catalog, vendor.stall_location, now,
            radius_km=self.radius_km, minimum_members=self.minimum_members,
        )
        expected_versions = {o.order_id: o.version for o in [order, *compatible_orders]}
        try:
            group.group_id = self.store.create_group(group, expected_versions)
        except StoreError as e:
            logger.warning(f"Could not create group for order {order.order_id}: {e}")
            outcome.state = FormationState.INDIVIDUAL
            outcome.reason = f"group commit failed: {e}"
            report(FormationState.INDIVIDUAL, 100)
            return outcome

        # A retry for the same trigger returns the group committed earlier
        committed = self._lookup_group(group.group_id)
        if committed is not None:
            group = committed

        logger.info(
            f"Formed {group.group_id} for order {order.order_id}: "
            f"{group.num_members} members, savings {utils.format_rupees(group.total_savings)}"
        )
        outcome.state = FormationState.FORMED
        outcome.group = group
        outcome.reason = f"{group.num_members} members"
        report(FormationState.FORMED, 100)
        return outcome

    def list_active_groups(self) -> List[BuyingGroup]:
        """Groups still forming, newest first. Empty if the store fails."""
        return safe_lookup(
            lambda: self.store.list_groups(status=GroupStatus.FORMING)
        ).or_empty("active groups")

    def _lookup_vendor(self, vendor_id: str) -> Optional[Vendor]:
        found = safe_lookup(
            lambda: [v for v in [self.store.get_vendor(vendor_id)] if v is not None]
        ).or_empty(f"vendor {vendor_id}")
        return found[0] if found else None

    def _lookup_order(self, order_id: str) -> Optional[Order]:
        found = safe_lookup(
            lambda: [o for o in [self.store.get_order(order_id)] if o is not None]
        ).or_empty(f"order {order_id}")
        return found[0] if found else None

    def _lookup_group(self, group_id: str) -> Optional[BuyingGroup]:
        found = safe_lookup(
            lambda: [g for g in [self.store.get_group(group_id)] if g is not None]
        ).or_empty(f"group {group_id}")
        return found[0] if found else None

    @staticmethod
    def _individual(order: Order, reason: str) -> FormationOutcome:
        return FormationOutcome(
            order_id=order.order_id,
            state=FormationState.INDIVIDUAL,
            reason=reason,
        )
