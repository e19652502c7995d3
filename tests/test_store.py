"""
Unit tests for the in-memory document store and CSV loaders.
"""
import unittest
from unittest.mock import MagicMock
import tempfile
import threading
import sys
import os

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from saathsaath.catalog import default_catalog
from saathsaath.matching import build_group
from saathsaath.models import Location, OrderStatus, PaymentMethod, VerificationStatus
from saathsaath.store import (
    ConflictError,
    InMemoryDocumentStore,
    NotFoundError,
    StoreError,
    StoreUnavailableError,
    load_orders_csv,
    load_vendors_csv,
    safe_lookup,
)
from tests.factories import NOW, STALL_A, make_catalog, make_order, make_vendor


class TestSafeLookup(unittest.TestCase):
    """Test cases for LookupResult handling."""

    def test_success(self):
        result = safe_lookup(lambda: [1, 2])
        self.assertTrue(result.ok)
        self.assertEqual(result.or_empty("numbers"), [1, 2])

    def test_store_error_becomes_empty(self):
        def fail():
            raise StoreUnavailableError("connection reset")

        result = safe_lookup(fail)
        self.assertFalse(result.ok)
        self.assertIsInstance(result.error, StoreUnavailableError)
        with self.assertLogs("saathsaath.store", level="WARNING") as logs:
            self.assertEqual(result.or_empty("orders"), [])
        self.assertIn("connection reset", logs.output[0])

    def test_other_errors_propagate(self):
        def broken():
            raise TypeError("bug")

        with self.assertRaises(TypeError):
            safe_lookup(broken)


class TestInMemoryDocumentStore(unittest.TestCase):
    """Test cases for group creation and order claims."""

    def setUp(self):
        self.catalog = make_catalog()
        self.store = InMemoryDocumentStore(
            vendors=[make_vendor("v1"), make_vendor("v2"), make_vendor("v3")],
            products=self.catalog.values(),
        )
        self.o1 = make_order("o1", "v1", {"onions": 15})
        self.o2 = make_order("o2", "v2", {"onions": 15})
        self.o3 = make_order("o3", "v3", {"onions": 15})
        for order in (self.o1, self.o2, self.o3):
            self.store.add_order(order)

    def _group(self, reference, others):
        return build_group(reference, others, self.catalog, STALL_A, NOW)

    def test_duplicate_order_rejected(self):
        with self.assertRaises(StoreError):
            self.store.add_order(make_order("o1", "v1", {"onions": 1}))

    def test_orders_are_copies(self):
        order = self.store.get_order("o1")
        order.status = OrderStatus.CANCELLED
        self.assertEqual(self.store.get_order("o1").status, OrderStatus.PENDING)

    def test_create_group_claims_orders(self):
        group_id = self.store.create_group(self._group(self.o1, [self.o2]), {"o1": 0, "o2": 0})

        self.assertEqual(group_id, "group_0001")
        for order_id in ("o1", "o2"):
            order = self.store.get_order(order_id)
            self.assertEqual(order.status, OrderStatus.GROUPED)
            self.assertEqual(order.group_id, group_id)
            self.assertEqual(order.version, 1)
        self.assertEqual(self.store.get_group(group_id).group_id, group_id)
        self.assertEqual([o.order_id for o in self.store.list_orders(OrderStatus.PENDING)], ["o3"])

    def test_order_cannot_join_two_groups(self):
        self.store.create_group(self._group(self.o1, [self.o2]), {"o1": 0, "o2": 0})

        with self.assertRaises(ConflictError):
            self.store.create_group(self._group(self.o3, [self.o2]), {"o3": 0, "o2": 0})

        # Nothing written for the failed claim
        self.assertEqual(self.store.get_order("o3").status, OrderStatus.PENDING)
        self.assertEqual(len(self.store.list_groups()), 1)

    def test_stale_version_conflicts(self):
        self.store.update_order_status("o2", OrderStatus.PENDING)
        with self.assertRaises(ConflictError):
            self.store.create_group(self._group(self.o1, [self.o2]), {"o1": 0, "o2": 0})

    def test_missing_order_conflicts(self):
        ghost = make_order("o9", "v2", {"onions": 15})
        with self.assertRaises(ConflictError):
            self.store.create_group(self._group(self.o1, [ghost]), {"o1": 0, "o9": 0})

    def test_retry_with_same_trigger_is_idempotent(self):
        first = self.store.create_group(self._group(self.o1, [self.o2]), {"o1": 0, "o2": 0})
        retry = self.store.create_group(self._group(self.o1, [self.o2]), {"o1": 0, "o2": 0})

        self.assertEqual(first, retry)
        self.assertEqual(len(self.store.list_groups()), 1)

    def test_concurrent_claims_only_one_wins(self):
        results = []
        errors = []

        def claim(reference, partner):
            try:
                results.append(self.store.create_group(
                    self._group(reference, [partner]),
                    {reference.order_id: 0, partner.order_id: 0},
                ))
            except ConflictError as e:
                errors.append(e)

        threads = [
            threading.Thread(target=claim, args=(self.o1, self.o2)),
            threading.Thread(target=claim, args=(self.o3, self.o2)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(results), 1)
        self.assertEqual(len(errors), 1)

    def test_update_missing_order(self):
        with self.assertRaises(NotFoundError):
            self.store.update_order_status("nope", OrderStatus.CANCELLED)

    def test_list_products_hides_inactive(self):
        potatoes = self.catalog["potatoes"]
        potatoes.is_active = False
        self.assertEqual([p.product_id for p in self.store.list_products()], ["onions"])

    def test_geocode_missing_locations(self):
        vendor = make_vendor("v9", None)
        vendor.stall_address = "Karol Bagh, New Delhi"
        self.store.add_vendor(vendor)
        geocoder = MagicMock(return_value=Location(28.6519, 77.1909))

        updated = self.store.geocode_missing_locations(geocoder)

        self.assertEqual(updated, 1)
        geocoder.assert_called_once_with("Karol Bagh, New Delhi")
        self.assertEqual(self.store.get_vendor("v9").stall_location, Location(28.6519, 77.1909))

    def test_vendors_are_copies(self):
        vendor = self.store.get_vendor("v1")
        vendor.stall_location = None
        self.assertIsNotNone(self.store.get_vendor("v1").stall_location)
        self.assertTrue(all(v.stall_location is not None for v in self.store.list_vendors()))

    def test_geocoding_does_not_touch_caller_vendor(self):
        vendor = make_vendor("v9", None)
        vendor.stall_address = "Karol Bagh, New Delhi"
        self.store.add_vendor(vendor)

        self.store.geocode_missing_locations(lambda address: Location(28.6519, 77.1909))

        self.assertIsNone(vendor.stall_location)

    def test_geocode_failure_leaves_vendor_unlocated(self):
        vendor = make_vendor("v9", None)
        vendor.stall_address = "Unknown"
        self.store.add_vendor(vendor)

        self.assertEqual(self.store.geocode_missing_locations(lambda address: None), 0)
        self.assertIsNone(self.store.get_vendor("v9").stall_location)


class TestCsvLoaders(unittest.TestCase):
    """Test cases for CSV loading."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmpdir.cleanup()

    def _write(self, name, content):
        path = os.path.join(self.tmpdir.name, name)
        with open(path, 'w') as f:
            f.write(content)
        return path

    def test_load_vendors(self):
        path = self._write("vendors.csv", (
            "vendor_id,name,phone,stall_address,stall_lat,stall_lng,verification_status,credit_limit\n"
            "v1,Ramesh,+919810000001,\"Chandni Chowk, Delhi\",28.6562,77.2410,verified,5000\n"
            "v2,Lakshmi,+919810000002,Karol Bagh,,,pending,\n"
        ))

        vendors = load_vendors_csv(path)

        self.assertEqual(len(vendors), 2)
        self.assertEqual(vendors[0].stall_location.as_tuple(), (28.6562, 77.2410))
        self.assertEqual(vendors[0].stall_address, "Chandni Chowk, Delhi")
        self.assertEqual(vendors[0].verification_status, VerificationStatus.VERIFIED)
        self.assertEqual(vendors[0].credit_limit, 5000.0)
        self.assertIsNone(vendors[1].stall_location)
        self.assertEqual(vendors[1].credit_limit, 0.0)

    def test_invalid_latitude(self):
        path = self._write("vendors.csv", (
            "vendor_id,name,phone,stall_address,stall_lat,stall_lng,verification_status,credit_limit\n"
            "v1,Ramesh,,Somewhere,128.0,77.2,verified,0\n"
        ))
        with self.assertRaises(ValueError):
            load_vendors_csv(path)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_vendors_csv(os.path.join(self.tmpdir.name, "nope.csv"))

    def test_load_orders(self):
        path = self._write("orders.csv", (
            "order_id,vendor_id,created_at,items,payment_method,status\n"
            "o1,v1,2025-01-15 07:00:00,onions:15;paneer:2,snpl,pending\n"
            "o2,v2,2025-01-15T07:10:00,potatoes:8.5,,\n"
        ))

        orders = load_orders_csv(path, default_catalog())

        self.assertEqual(len(orders), 2)
        first = orders[0]
        self.assertEqual(first.payment_method, PaymentMethod.SNPL)
        self.assertEqual([i.product_id for i in first.items], ["onions", "paneer"])
        self.assertEqual(first.items[0].unit_price, 30.0)
        self.assertEqual(first.items[1].unit_price, 0.0)
        self.assertEqual(first.created_at, NOW.replace(hour=7))
        self.assertEqual(orders[1].items[0].quantity, 8.5)
        self.assertEqual(orders[1].status, OrderStatus.PENDING)

    def test_offset_timestamps_become_market_time(self):
        path = self._write("orders.csv", (
            "order_id,vendor_id,created_at,items,payment_method,status\n"
            "o1,v1,2025-01-15T09:00:00+05:30,onions:15,cash,pending\n"
            "o2,v2,2025-01-15T03:40:00+00:00,onions:15,cash,pending\n"
            "o3,v3,2025-01-15 09:20:00,onions:15,cash,pending\n"
        ))

        orders = load_orders_csv(path, default_catalog())

        self.assertEqual(orders[0].created_at, NOW)
        self.assertEqual(orders[1].created_at, NOW.replace(minute=10))
        self.assertTrue(all(o.created_at.tzinfo is None for o in orders))
        self.assertEqual(sorted(orders, key=lambda o: o.created_at)[-1].order_id, "o3")

    def test_bad_quantity(self):
        path = self._write("orders.csv", (
            "order_id,vendor_id,created_at,items,payment_method,status\n"
            "o1,v1,2025-01-15 07:00:00,onions:-3,cash,pending\n"
        ))
        with self.assertRaises(ValueError) as ctx:
            load_orders_csv(path, default_catalog())
        self.assertIn("Invalid order data", str(ctx.exception))

    def test_bundled_datasets_load(self):
        root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        catalog = default_catalog()
        for name in ("delhi", "sparse"):
            vendors = load_vendors_csv(os.path.join(root, "data", f"vendors_{name}.csv"))
            orders = load_orders_csv(os.path.join(root, "data", f"orders_{name}.csv"), catalog)
            vendor_ids = {v.vendor_id for v in vendors}
            self.assertTrue(all(o.vendor_id in vendor_ids for o in orders))


if __name__ == '__main__':
    unittest.main()
