"""
Unit tests for vendor matching and the group buying engine.
"""
import unittest
from unittest.mock import MagicMock
from datetime import timedelta
import sys
import os

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from saathsaath.matching import (
    GroupBuyingEngine,
    build_group,
    find_compatible_orders,
    find_nearby_vendors,
    should_form_group,
)
from saathsaath.models import FormationState, GroupStatus, Location, OrderStatus
from saathsaath.store import InMemoryDocumentStore, StoreUnavailableError
from tests.factories import (
    NOW,
    STALL_A,
    STALL_B,
    STALL_FAR,
    make_catalog,
    make_order,
    make_vendor,
)


class TestFindNearbyVendors(unittest.TestCase):
    """Test cases for the radius filter."""

    def setUp(self):
        self.vendors = [
            make_vendor("v1", STALL_A),
            make_vendor("v2", STALL_B),
            make_vendor("v3", STALL_FAR),
            make_vendor("v4", None),
        ]

    def test_radius_filter(self):
        nearby = find_nearby_vendors(self.vendors, STALL_A, 2.0)
        self.assertEqual([v.vendor_id for v in nearby], ["v1", "v2"])

    def test_vendor_without_location_never_matches(self):
        nearby = find_nearby_vendors(self.vendors, STALL_A, 20000.0)
        self.assertNotIn("v4", [v.vendor_id for v in nearby])

    def test_boundary_is_inclusive(self):
        from saathsaath.utils import distance_between
        exact = distance_between(STALL_A, STALL_FAR)
        nearby = find_nearby_vendors(self.vendors, STALL_A, exact)
        self.assertIn("v3", [v.vendor_id for v in nearby])

    def test_larger_radius_is_superset(self):
        previous = set()
        for radius in (0.0, 0.01, 0.5, 2.0, 10.0):
            current = {v.vendor_id for v in find_nearby_vendors(self.vendors, STALL_A, radius)}
            self.assertTrue(previous <= current)
            previous = current


class TestFindCompatibleOrders(unittest.TestCase):
    """Test cases for the compatibility filter."""

    def setUp(self):
        self.reference = make_order("ref", "v1", {"onions": 15})

    def test_shared_product_pending_and_recent(self):
        candidate = make_order("o2", "v2", {"onions": 15}, created_at=NOW - timedelta(minutes=30))
        self.assertEqual(find_compatible_orders([candidate], self.reference, 2, NOW), [candidate])

    def test_no_shared_product(self):
        candidate = make_order("o2", "v2", {"potatoes": 15})
        self.assertEqual(find_compatible_orders([candidate], self.reference, 2, NOW), [])

    def test_too_old(self):
        candidate = make_order("o2", "v2", {"onions": 15}, created_at=NOW - timedelta(hours=2, minutes=1))
        self.assertEqual(find_compatible_orders([candidate], self.reference, 2, NOW), [])

    def test_not_pending(self):
        candidate = make_order("o2", "v2", {"onions": 15})
        candidate.status = OrderStatus.GROUPED
        self.assertEqual(find_compatible_orders([candidate], self.reference, 2, NOW), [])

    def test_should_form_group(self):
        self.assertTrue(should_form_group(1, 50.0, 2, 50.0))
        self.assertFalse(should_form_group(0, 500.0, 2, 50.0))
        self.assertFalse(should_form_group(3, 49.99, 2, 50.0))


class TestBuildGroup(unittest.TestCase):
    """Test cases for the group record builder."""

    def test_aggregation_and_member_shares(self):
        catalog = make_catalog()
        reference = make_order("o1", "v1", {"onions": 15, "potatoes": 5})
        other = make_order("o2", "v2", {"onions": 15, "paneer": 2})

        group = build_group(reference, [other], catalog, STALL_A, NOW)

        self.assertEqual(group.member_ids, ["v1", "v2"])
        self.assertEqual(group.order_ids, ["o1", "o2"])
        self.assertEqual(group.trigger_order_id, "o1")
        self.assertIsNone(group.group_id)
        self.assertEqual(group.status, GroupStatus.FORMING)
        self.assertEqual(group.formation_deadline, NOW + timedelta(minutes=30))
        self.assertEqual(group.delivery_slot, NOW + timedelta(hours=4))

        products = {p.product_id: p for p in group.products}
        self.assertNotIn("paneer", products)

        onions = products["onions"]
        self.assertEqual(onions.total_quantity, 30)
        self.assertEqual(onions.bulk_price, 25)
        self.assertEqual(onions.total_savings, 150)
        self.assertEqual([s.individual_savings for s in onions.member_orders], [75, 75])

        potatoes = products["potatoes"]
        self.assertEqual(potatoes.bulk_price, 25)
        self.assertEqual(potatoes.total_savings, 0)

        self.assertEqual(group.total_savings, 150)
        self.assertEqual(group.total_value, 25 * 30 + 25 * 5)

    def test_same_vendor_counted_once(self):
        catalog = make_catalog()
        group = build_group(
            make_order("o1", "v1", {"onions": 10}),
            [make_order("o2", "v1", {"onions": 10}), make_order("o3", "v2", {"onions": 10})],
            catalog, STALL_A, NOW,
        )
        self.assertEqual(group.member_ids, ["v1", "v2"])
        self.assertEqual(group.num_members, 2)


class TestGroupBuyingEngine(unittest.TestCase):
    """End-to-end tests for process_order against an in-memory store."""

    def setUp(self):
        catalog = make_catalog()
        self.store = InMemoryDocumentStore(
            vendors=[
                make_vendor("v1", STALL_A),
                make_vendor("v2", STALL_B),
                make_vendor("v3", STALL_FAR),
                make_vendor("v4", None),
            ],
            products=catalog.values(),
        )
        self.engine = GroupBuyingEngine(self.store, clock=lambda: NOW)

    def _submit(self, order):
        self.store.add_order(order)
        return self.engine.process_order(order)

    def test_two_neighbours_form_group(self):
        first = self._submit(make_order("o1", "v1", {"onions": 15}, created_at=NOW - timedelta(minutes=10)))
        self.assertEqual(first.state, FormationState.INDIVIDUAL)

        outcome = self._submit(make_order("o2", "v2", {"onions": 15}))

        self.assertEqual(outcome.state, FormationState.FORMED)
        self.assertTrue(outcome.formed)
        self.assertEqual([v.vendor_id for v in outcome.nearby_vendors], ["v1", "v2"])
        self.assertEqual([o.order_id for o in outcome.compatible_orders], ["o1"])
        self.assertEqual(outcome.projected_savings, 150.0)

        group = outcome.group
        self.assertEqual(group.num_members, 2)
        self.assertEqual(group.total_savings, 150.0)
        self.assertEqual(group.center_location, STALL_B)
        self.assertIsNotNone(group.group_id)

        # Both orders are claimed by the group
        for order_id in ("o1", "o2"):
            stored = self.store.get_order(order_id)
            self.assertEqual(stored.status, OrderStatus.GROUPED)
            self.assertEqual(stored.group_id, group.group_id)
        self.assertEqual(len(self.engine.list_active_groups()), 1)

    def test_single_order_is_individual(self):
        outcome = self._submit(make_order("o1", "v1", {"onions": 15}))

        self.assertEqual(outcome.state, FormationState.INDIVIDUAL)
        self.assertIsNone(outcome.group)
        self.assertEqual(self.store.list_groups(), [])
        self.assertEqual(self.store.get_order("o1").status, OrderStatus.PENDING)

    def test_vendor_without_location_is_individual(self):
        self._submit(make_order("o1", "v1", {"onions": 15}))
        outcome = self._submit(make_order("o2", "v4", {"onions": 15}))

        self.assertEqual(outcome.state, FormationState.INDIVIDUAL)
        self.assertEqual(outcome.nearby_vendors, [])
        self.assertEqual(self.store.list_groups(), [])

    def test_far_vendor_is_not_grouped(self):
        self._submit(make_order("o1", "v1", {"onions": 15}))
        outcome = self._submit(make_order("o2", "v3", {"onions": 15}))
        self.assertEqual(outcome.state, FormationState.INDIVIDUAL)

    def test_unknown_product_does_not_break_pipeline(self):
        self._submit(make_order("o1", "v1", {"paneer": 40}))
        outcome = self._submit(make_order("o2", "v2", {"paneer": 40}))

        self.assertEqual(outcome.state, FormationState.INDIVIDUAL)
        self.assertEqual(outcome.projected_savings, 0.0)

    def test_savings_below_threshold(self):
        self._submit(make_order("o1", "v1", {"onions": 4}))
        outcome = self._submit(make_order("o2", "v2", {"onions": 4}))

        self.assertEqual(len(outcome.compatible_orders), 1)
        self.assertEqual(outcome.state, FormationState.INDIVIDUAL)

    def test_savings_exactly_at_threshold_forms(self):
        # 2 x 5kg onions -> 10kg at 28: savings 20
        engine = GroupBuyingEngine(self.store, minimum_savings=20.0, clock=lambda: NOW)
        self.store.add_order(make_order("o1", "v1", {"onions": 5}))
        order = make_order("o2", "v2", {"onions": 5})
        self.store.add_order(order)

        outcome = engine.process_order(order)
        self.assertEqual(outcome.projected_savings, 20.0)
        self.assertEqual(outcome.state, FormationState.FORMED)

    def test_own_earlier_order_is_not_a_partner(self):
        self._submit(make_order("o1", "v1", {"onions": 15}))
        outcome = self._submit(make_order("o2", "v1", {"onions": 15}))

        self.assertEqual(outcome.compatible_orders, [])
        self.assertEqual(outcome.state, FormationState.INDIVIDUAL)

    def test_grouped_order_is_not_reused(self):
        self._submit(make_order("o1", "v1", {"onions": 15}))
        self._submit(make_order("o2", "v2", {"onions": 15}))
        outcome = self._submit(make_order("o3", "v2", {"onions": 15}))

        self.assertEqual(outcome.state, FormationState.INDIVIDUAL)
        self.assertEqual(len(self.store.list_groups()), 1)

    def test_rerun_for_grouped_order_returns_stored_group(self):
        self._submit(make_order("o1", "v1", {"onions": 15}))
        trigger = make_order("o2", "v2", {"onions": 15})
        formed = self._submit(trigger)
        late = self._submit(make_order("o3", "v1", {"onions": 15}))
        self.assertEqual(late.state, FormationState.INDIVIDUAL)

        again = self.engine.process_order(trigger)

        stored = self.store.get_group(formed.group.group_id)
        self.assertEqual(again.state, FormationState.FORMED)
        self.assertEqual(again.group.group_id, stored.group_id)
        self.assertEqual(again.group.order_ids, stored.order_ids)
        self.assertNotIn("o3", again.group.order_ids)
        self.assertEqual(again.compatible_orders, [])
        self.assertEqual(self.store.get_order("o3").status, OrderStatus.PENDING)
        self.assertEqual(len(self.store.list_groups()), 1)

    def test_cancelled_order_is_not_matched(self):
        self._submit(make_order("o1", "v1", {"onions": 15}))
        order = make_order("o2", "v2", {"onions": 15})
        self.store.add_order(order)
        self.store.update_order_status("o2", OrderStatus.CANCELLED)

        outcome = self.engine.process_order(order)

        self.assertEqual(outcome.state, FormationState.INDIVIDUAL)
        self.assertEqual(outcome.reason, "order is cancelled")
        self.assertEqual(self.store.list_groups(), [])

    def test_progress_callback(self):
        updates = []
        self._submit(make_order("o1", "v1", {"onions": 15}))
        order = make_order("o2", "v2", {"onions": 15})
        self.store.add_order(order)

        self.engine.process_order(order, on_progress=lambda state, pct: updates.append((state, pct)))

        self.assertEqual([pct for _, pct in updates], [10, 30, 50, 70, 100])
        self.assertEqual(updates[-1][0], FormationState.FORMED)

    def test_unknown_vendor(self):
        outcome = self._submit(make_order("o1", "ghost", {"onions": 15}))
        self.assertEqual(outcome.state, FormationState.INDIVIDUAL)
        self.assertEqual(outcome.reason, "vendor not found")


class TestEngineStoreFailures(unittest.TestCase):
    """The pipeline degrades to individual processing when the store fails."""

    def setUp(self):
        self.store = MagicMock()
        self.store.get_vendor.return_value = make_vendor("v1", STALL_A)
        self.store.list_vendors.return_value = [make_vendor("v1", STALL_A), make_vendor("v2", STALL_B)]
        self.store.list_products.return_value = list(make_catalog().values())
        self.engine = GroupBuyingEngine(self.store, clock=lambda: NOW)
        self.order = make_order("o1", "v1", {"onions": 15})
        self.store.get_order.return_value = self.order
        self.store.get_group.return_value = None

    def test_order_query_failure(self):
        self.store.list_orders.side_effect = StoreUnavailableError("timeout")

        with self.assertLogs("saathsaath.store", level="WARNING"):
            outcome = self.engine.process_order(self.order)

        self.assertEqual(outcome.state, FormationState.INDIVIDUAL)
        self.assertEqual(outcome.compatible_orders, [])
        self.store.create_group.assert_not_called()

    def test_vendor_query_failure(self):
        self.store.list_vendors.side_effect = StoreUnavailableError("timeout")

        with self.assertLogs("saathsaath.store", level="WARNING"):
            outcome = self.engine.process_order(self.order)

        self.assertEqual(outcome.state, FormationState.INDIVIDUAL)
        self.assertEqual(outcome.nearby_vendors, [])

    def test_vendor_lookup_failure(self):
        self.store.get_vendor.side_effect = StoreUnavailableError("timeout")
        outcome = self.engine.process_order(self.order)
        self.assertEqual(outcome.state, FormationState.INDIVIDUAL)

    def test_group_commit_failure(self):
        self.store.list_orders.return_value = [make_order("o2", "v2", {"onions": 15})]
        self.store.create_group.side_effect = StoreUnavailableError("write failed")

        with self.assertLogs("saathsaath.matching", level="WARNING"):
            outcome = self.engine.process_order(self.order)

        self.assertEqual(outcome.state, FormationState.INDIVIDUAL)
        self.assertIn("write failed", outcome.reason)

    def test_commit_sends_expected_versions(self):
        partner = make_order("o2", "v2", {"onions": 15})
        partner.version = 3
        self.store.list_orders.return_value = [partner]
        self.store.create_group.return_value = "group_0001"

        outcome = self.engine.process_order(self.order)

        self.assertEqual(outcome.state, FormationState.FORMED)
        self.assertEqual(outcome.group.group_id, "group_0001")
        _, expected_versions = self.store.create_group.call_args[0]
        self.assertEqual(expected_versions, {"o1": 0, "o2": 3})

    def test_commit_returns_group_already_stored(self):
        catalog = make_catalog()
        earlier_partner = make_order("o5", "v2", {"onions": 15})
        committed = build_group(self.order, [earlier_partner], catalog, STALL_A, NOW)
        committed.group_id = "group_0001"
        self.store.list_orders.return_value = [make_order("o2", "v2", {"onions": 15})]
        self.store.create_group.return_value = "group_0001"
        self.store.get_group.return_value = committed

        outcome = self.engine.process_order(self.order)

        self.assertEqual(outcome.state, FormationState.FORMED)
        self.assertEqual(outcome.group.order_ids, ["o1", "o5"])


if __name__ == '__main__':
    unittest.main()
