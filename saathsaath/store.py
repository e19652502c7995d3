# saath-saath/saathsaath/store.py
"""
Document store collaborator for the group buying engine.

The engine never talks to a database directly. It reads vendors, orders
and products through a DocumentStore and writes buying groups back through
it. Only single-field filters are assumed (e.g. orders by status); any
further filtering happens in memory in the engine.

InMemoryDocumentStore is the reference implementation used by the
simulation, the CLI and the tests. It can be loaded from CSV files.
"""

from __future__ import annotations

import copy
import csv
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Generic, Iterable, List, Mapping, Optional, TypeVar

from . import config
from .models import (
    BuyingGroup,
    GroupStatus,
    Location,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    Product,
    Vendor,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


# =============================================================================
# ERRORS
# =============================================================================

class StoreError(Exception):
    """Base class for document store failures."""


class StoreUnavailableError(StoreError):
    """The store could not be reached or the query failed. Usually transient."""


class NotFoundError(StoreError):
    """A referenced document does not exist."""


class ConflictError(StoreError):
    """
    An optimistic-lock check failed: a document changed between the read
    and the write (e.g. an order was claimed by another group).
    """


@dataclass
class LookupResult(Generic[T]):
    """
    Outcome of a store read: either a list of documents or the error that
    prevented reading them.
    """
    value: List[T]
    error: Optional[StoreError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def or_empty(self, what: str) -> List[T]:
        """Return the documents, or an empty list (logged) if the read failed."""
        if self.error is not None:
            logger.warning(f"Lookup of {what} failed, treating as empty: {self.error}")
            return []
        return self.value


def safe_lookup(fetch: Callable[[], List[T]]) -> LookupResult[T]:
    """Run a store read and capture a StoreError instead of raising it."""
    try:
        return LookupResult(value=list(fetch()))
    except StoreError as e:
        return LookupResult(value=[], error=e)


# =============================================================================
# STORE INTERFACE
# =============================================================================

class DocumentStore:
    """
    Interface of the managed document database the engine depends on.

    Implementations raise StoreError subclasses on failure.
    """

    def list_vendors(self) -> List[Vendor]:
        raise NotImplementedError

    def get_vendor(self, vendor_id: str) -> Optional[Vendor]:
        raise NotImplementedError

    def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        raise NotImplementedError

    def get_order(self, order_id: str) -> Optional[Order]:
        raise NotImplementedError

    def add_order(self, order: Order) -> str:
        raise NotImplementedError

    def list_products(self) -> List[Product]:
        raise NotImplementedError

    def create_group(self, group: BuyingGroup, expected_versions: Mapping[str, int]) -> str:
        """
        Atomically create a group and claim its member orders.

        Args:
            group: The group record to persist
            expected_versions: order_id -> version observed when the group
                was built. Every order must still be pending, ungrouped and
                at that version.

        Returns:
            The new group ID (or the existing one if a group was already
            created for group.trigger_order_id)

        Raises:
            ConflictError: If any member order changed; nothing is written
        """
        raise NotImplementedError

    def list_groups(self, status: Optional[GroupStatus] = None) -> List[BuyingGroup]:
        raise NotImplementedError


class InMemoryDocumentStore(DocumentStore):
    """
    Thread-safe in-memory DocumentStore.

    Vendors, orders and groups are handed out as copies so that callers
    only see changes by reading again, as with a remote store.
    """

    def __init__(
        self,
        vendors: Iterable[Vendor] = (),
        products: Iterable[Product] = (),
        orders: Iterable[Order] = (),
    ) -> None:
        self._lock = threading.Lock()
        self._vendors: Dict[str, Vendor] = {v.vendor_id: copy.copy(v) for v in vendors}
        self._products: Dict[str, Product] = {p.product_id: p for p in products}
        self._orders: Dict[str, Order] = {}
        self._groups: Dict[str, BuyingGroup] = {}
        self._groups_by_trigger: Dict[str, str] = {}
        self._next_group_number = 1

        for order in orders:
            self.add_order(order)

    # ---- vendors -----------------------------------------------------------

    def list_vendors(self) -> List[Vendor]:
        with self._lock:
            return [copy.copy(v) for v in self._vendors.values()]

    def get_vendor(self, vendor_id: str) -> Optional[Vendor]:
        with self._lock:
            vendor = self._vendors.get(vendor_id)
            return copy.copy(vendor) if vendor is not None else None

    def add_vendor(self, vendor: Vendor) -> str:
        with self._lock:
            self._vendors[vendor.vendor_id] = copy.copy(vendor)
        return vendor.vendor_id

    def geocode_missing_locations(
        self,
        geocoder: Optional[Callable[[str], Optional[Location]]] = None,
    ) -> int:
        """
        Fill in stall locations for vendors that only have an address.

        Args:
            geocoder: Address -> Location function (defaults to Nominatim)

        Returns:
            Number of vendors that received a location
        """
        if geocoder is None:
            from .utils import geocode_address
            geocoder = geocode_address

        with self._lock:
            missing = [
                v for v in self._vendors.values()
                if v.stall_location is None and v.stall_address
            ]

        updated = 0
        for vendor in missing:
            location = geocoder(vendor.stall_address)
            if location is None:
                logger.info(f"Could not geocode stall address of {vendor.vendor_id}")
                continue
            with self._lock:
                vendor.stall_location = location
            updated += 1
        return updated

    # ---- products ----------------------------------------------------------

    def list_products(self) -> List[Product]:
        with self._lock:
            return [p for p in self._products.values() if p.is_active]

    def add_product(self, product: Product) -> str:
        with self._lock:
            self._products[product.product_id] = product
        return product.product_id

    # ---- orders ------------------------------------------------------------

    def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        with self._lock:
            return [
                copy.copy(o) for o in self._orders.values()
                if status is None or o.status == status
            ]

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            return copy.copy(order) if order is not None else None

    def add_order(self, order: Order) -> str:
        with self._lock:
            if order.order_id in self._orders:
                raise StoreError(f"Order {order.order_id} already exists")
            self._orders[order.order_id] = copy.copy(order)
        return order.order_id

    def update_order_status(self, order_id: str, status: OrderStatus) -> None:
        """Set an order's status and bump its version."""
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                raise NotFoundError(f"Order {order_id} not found")
            order.status = status
            order.version += 1

    # ---- groups ------------------------------------------------------------

    def create_group(self, group: BuyingGroup, expected_versions: Mapping[str, int]) -> str:
        with self._lock:
            existing_id = self._groups_by_trigger.get(group.trigger_order_id)
            if existing_id is not None:
                logger.info(
                    f"Group {existing_id} already exists for order {group.trigger_order_id}"
                )
                return existing_id

            # Validate every claim before touching anything
            for order_id, version in expected_versions.items():
                order = self._orders.get(order_id)
                if order is None:
                    raise ConflictError(f"Order {order_id} no longer exists")
                if order.status != OrderStatus.PENDING or order.group_id is not None:
                    raise ConflictError(
                        f"Order {order_id} is already {order.status.value}"
                        + (f" in group {order.group_id}" if order.group_id else "")
                    )
                if order.version != version:
                    raise ConflictError(
                        f"Order {order_id} changed (version {order.version}, expected {version})"
                    )

            group_id = f"group_{self._next_group_number:04d}"
            self._next_group_number += 1

            stored = copy.deepcopy(group)
            stored.group_id = group_id
            self._groups[group_id] = stored
            self._groups_by_trigger[group.trigger_order_id] = group_id

            for order_id in expected_versions:
                order = self._orders[order_id]
                order.status = OrderStatus.GROUPED
                order.group_id = group_id
                order.version += 1

            return group_id

    def get_group(self, group_id: str) -> Optional[BuyingGroup]:
        with self._lock:
            group = self._groups.get(group_id)
            return copy.deepcopy(group) if group is not None else None

    def list_groups(self, status: Optional[GroupStatus] = None) -> List[BuyingGroup]:
        with self._lock:
            groups = [
                copy.deepcopy(g) for g in self._groups.values()
                if status is None or g.status == status
            ]
        groups.sort(key=lambda g: g.created_at, reverse=True)
        return groups


# =============================================================================
# CSV LOADING
# =============================================================================

def _parse_timestamp(value: str) -> datetime:
    """
    Parse 'YYYY-MM-DD HH:MM:SS' or ISO-8601 timestamps.

    Timestamps with a UTC offset are converted to market local time and
    returned naive, so every order time compares with every other.
    """
    value = value.strip()
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT)
    except ValueError:
        parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        market_tz = timezone(timedelta(hours=config.MARKET_UTC_OFFSET_HOURS))
        parsed = parsed.astimezone(market_tz).replace(tzinfo=None)
    return parsed


def _parse_location(lat_str: str, lng_str: str) -> Optional[Location]:
    """Parse an optional coordinate pair, validating ranges."""
    lat_str, lng_str = (lat_str or "").strip(), (lng_str or "").strip()
    if not lat_str and not lng_str:
        return None
    lat, lng = float(lat_str), float(lng_str)
    if not -90 <= lat <= 90:
        raise ValueError(f"latitude {lat} out of range")
    if not -180 <= lng <= 180:
        raise ValueError(f"longitude {lng} out of range")
    return Location(lat, lng)


def load_vendors_csv(vendor_file: str) -> List[Vendor]:
    """
    Load vendors from CSV.

    Columns: vendor_id, name, phone, stall_address, stall_lat, stall_lng,
    verification_status, credit_limit. stall_lat/stall_lng may be empty.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If a row is malformed
    """
    if not os.path.exists(vendor_file):
        raise FileNotFoundError(f"Vendor file not found: {vendor_file}")

    vendors: List[Vendor] = []
    with open(vendor_file, 'r', newline='') as f:
        reader = csv.DictReader(f)
        for row in reader:
            try:
                location = _parse_location(row.get('stall_lat', ''), row.get('stall_lng', ''))
                address = row.get('stall_address', '') or ''
                if location is not None and address:
                    location = Location(location.latitude, location.longitude, address)
                vendors.append(Vendor(
                    vendor_id=row['vendor_id'],
                    name=row['name'],
                    phone=row.get('phone', '') or '',
                    stall_address=address,
                    stall_location=location,
                    verification_status=VerificationStatus(
                        (row.get('verification_status') or 'pending').strip()
                    ),
                    credit_limit=float(row.get('credit_limit') or 0),
                ))
            except (KeyError, ValueError) as e:
                raise ValueError(f"Invalid vendor data in {vendor_file}: {e}")
    return vendors


def _parse_items(items_str: str, catalog: Mapping[str, Product]) -> List[OrderItem]:
    """Parse 'onions:15;potatoes:8' into order items priced at catalog base price."""
    items: List[OrderItem] = []
    for chunk in items_str.split(';'):
        chunk = chunk.strip()
        if not chunk:
            continue
        product_id, qty_str = chunk.split(':')
        product_id = product_id.strip()
        quantity = float(qty_str)
        if quantity <= 0:
            raise ValueError(f"quantity for {product_id} must be positive")
        product = catalog.get(product_id)
        items.append(OrderItem(
            product_id=product_id,
            product_name=product.name if product else product_id,
            quantity=quantity,
            unit_price=product.base_price if product else 0.0,
        ))
    if not items:
        raise ValueError("order has no items")
    return items


def load_orders_csv(order_file: str, catalog: Mapping[str, Product]) -> List[Order]:
    """
    Load orders from CSV.

    Columns: order_id, vendor_id, created_at, items, payment_method, status.
    items is 'product_id:quantity' pairs separated by ';'.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If a row is malformed
    """
    if not os.path.exists(order_file):
        raise FileNotFoundError(f"Order file not found: {order_file}")

    orders: List[Order] = []
    with open(order_file, 'r', newline='') as f:
        reader = csv.DictReader(f)
        for row in reader:
            try:
                orders.append(Order(
                    order_id=row['order_id'],
                    vendor_id=row['vendor_id'],
                    items=_parse_items(row['items'], catalog),
                    created_at=_parse_timestamp(row['created_at']),
                    payment_method=PaymentMethod((row.get('payment_method') or 'cash').strip()),
                    status=OrderStatus((row.get('status') or 'pending').strip()),
                ))
            except (KeyError, ValueError) as e:
                raise ValueError(f"Invalid order data in {order_file}: {e}")
    return orders
