# saath-saath/saathsaath/models.py
"""
Core domain models for the Saath-Saath Group Buying Engine.

This module defines the fundamental data structures used throughout the engine:
- Vendor: A street-food vendor with an optional stall location
- Product: A staple ingredient with a bulk pricing ladder
- Order: A vendor's purchase request made of line items
- BuyingGroup: A set of compatible orders pooled to reach a bulk tier
- OptimizedRoute: A delivery route produced by the route optimiser
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Tuple, Optional, Set


class VerificationStatus(Enum):
    """KYC state of a vendor account."""
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class ProductCategory(Enum):
    VEGETABLES = "vegetables"
    SPICES = "spices"
    OIL = "oil"
    FLOUR = "flour"
    DAIRY = "dairy"
    OTHER = "other"


class Unit(Enum):
    KG = "kg"
    LITRE = "litre"
    PIECE = "piece"
    GRAM = "gram"


class OrderStatus(Enum):
    """Lifecycle states for an order."""
    PENDING = "pending"        # Placed, not yet part of a group
    GROUPED = "grouped"        # Claimed by a buying group
    CONFIRMED = "confirmed"    # Confirmed for delivery
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(Enum):
    CASH = "cash"
    CREDIT = "credit"
    SNPL = "snpl"  # Supply Now Pay Later


class GroupStatus(Enum):
    """Lifecycle states for a buying group."""
    FORMING = "forming"
    CONFIRMED = "confirmed"
    ORDERED = "ordered"
    DELIVERED = "delivered"


class FormationState(Enum):
    """
    States of the group formation pipeline for a single order.

    - NEW: Order received, nothing looked up yet
    - SEARCHING: Nearby vendor and compatible order lookups running
    - FORMED: A buying group was created for the order
    - INDIVIDUAL: No viable group; the order proceeds on its own
    """
    NEW = "NEW"
    SEARCHING = "SEARCHING"
    FORMED = "FORMED"
    INDIVIDUAL = "INDIVIDUAL"


@dataclass(frozen=True)
class Location:
    """A geographic point, optionally with a human-readable address."""
    latitude: float
    longitude: float
    address: Optional[str] = None

    def as_tuple(self) -> Tuple[float, float]:
        """Returns the location as a (lat, lng) tuple."""
        return (self.latitude, self.longitude)


@dataclass
class Vendor:
    """
    Represents a street-food vendor registered on the platform.

    Attributes:
        vendor_id: Opaque identifier issued by the identity provider
        name: Display name
        phone: 10-digit mobile number
        stall_address: Free-text stall address
        stall_location: Geographic point of the stall. Vendors without one
            are excluded from geo-matching until it is set.
        verification_status: KYC state
        credit_limit: SNPL credit limit in rupees
        total_savings: Cumulative savings from group purchases in rupees
    """
    vendor_id: str
    name: str
    phone: str = ""
    stall_address: str = ""
    stall_location: Optional[Location] = None
    verification_status: VerificationStatus = VerificationStatus.PENDING
    credit_limit: float = 0.0
    total_savings: float = 0.0
    created_at: Optional[datetime] = None

    @property
    def has_location(self) -> bool:
        return self.stall_location is not None

    def __repr__(self) -> str:
        return f"Vendor({self.vendor_id}, {self.name})"


@dataclass(frozen=True)
class BulkTier:
    """A price break: orders of at least min_quantity pay price_per_unit."""
    min_quantity: float
    price_per_unit: float
    discount_percentage: float = 0.0


@dataclass
class Product:
    """
    A staple ingredient sold by weight, volume or piece.

    Attributes:
        product_id: Unique identifier (e.g. 'onions')
        name: Display name
        category: Product category, drives seasonal pricing
        unit: Unit of measure for quantities
        base_price: Per-unit price when no bulk tier applies
        bulk_pricing: Bulk tiers; expected to have non-increasing prices
            as min_quantity grows
        current_stock: Units available at the supplier
        supplier_id: Supplier reference
        is_active: Inactive products are not listed
    """
    product_id: str
    name: str
    category: ProductCategory
    unit: Unit
    base_price: float
    bulk_pricing: List[BulkTier] = field(default_factory=list)
    current_stock: float = 0.0
    supplier_id: str = ""
    is_active: bool = True

    def __repr__(self) -> str:
        return f"Product({self.product_id}, {self.base_price}/{self.unit.value})"


@dataclass
class OrderItem:
    """A single order line."""
    product_id: str
    product_name: str
    quantity: float
    unit_price: float

    @property
    def total_price(self) -> float:
        return self.quantity * self.unit_price


@dataclass
class Order:
    """
    A vendor's purchase request.

    Attributes:
        order_id: Unique identifier
        vendor_id: Owning vendor
        items: Order lines
        payment_method: How the vendor pays
        status: Current lifecycle state
        created_at: When the order was placed
        delivery_address: Free-text delivery address
        delivery_location: Optional geographic delivery point
        group_id: Buying group this order belongs to, once grouped
        version: Optimistic-lock counter, bumped by the store on every write
    """
    order_id: str
    vendor_id: str
    items: List[OrderItem]
    created_at: datetime
    payment_method: PaymentMethod = PaymentMethod.CASH
    status: OrderStatus = OrderStatus.PENDING
    delivery_address: str = ""
    delivery_location: Optional[Location] = None
    group_id: Optional[str] = None
    version: int = 0

    @property
    def total_amount(self) -> float:
        return sum(item.total_price for item in self.items)

    @property
    def product_ids(self) -> Set[str]:
        """Returns the set of product IDs on this order."""
        return {item.product_id for item in self.items}

    def __repr__(self) -> str:
        return f"Order({self.order_id}, {self.vendor_id}, {self.status.value})"


@dataclass
class MemberShare:
    """One member's contribution to a grouped product."""
    vendor_id: str
    order_id: str
    quantity: float
    individual_savings: float = 0.0


@dataclass
class GroupProduct:
    """Aggregated demand for one product inside a buying group."""
    product_id: str
    product_name: str
    total_quantity: float
    unit_price: float          # Base (individual) price
    bulk_price: float          # Resolved tier price for total_quantity
    total_savings: float
    member_orders: List[MemberShare] = field(default_factory=list)


@dataclass
class BuyingGroup:
    """
    A set of compatible orders pooled to qualify for bulk pricing.

    Membership and per-product aggregation are fixed when the group is
    created; the group only holds back-references to its orders and vendors.

    Attributes:
        group_id: Identifier assigned by the store on creation
        member_ids: Unique vendor IDs, in first-seen order
        order_ids: IDs of the member orders
        trigger_order_id: Order whose submission formed the group
        products: Per-product aggregation
        total_value: Sum of bulk_price * total_quantity over products
        total_savings: Sum of per-product savings
        center_location: Stall location of the triggering vendor
        radius_km: Matching radius used
        formation_deadline: Confirmation deadline
        minimum_members: Member threshold used for formation
        delivery_slot: Planned delivery time
    """
    member_ids: List[str]
    order_ids: List[str]
    trigger_order_id: str
    products: List[GroupProduct]
    total_value: float
    total_savings: float
    center_location: Location
    radius_km: float
    formation_deadline: datetime
    minimum_members: int
    delivery_slot: datetime
    created_at: datetime
    updated_at: datetime
    status: GroupStatus = GroupStatus.FORMING
    group_id: Optional[str] = None

    @property
    def num_members(self) -> int:
        return len(self.member_ids)

    def __repr__(self) -> str:
        return (f"BuyingGroup({self.group_id}, members={self.member_ids}, "
                f"savings={self.total_savings:.2f})")


@dataclass
class FormationOutcome:
    """Result of running the formation pipeline for one order."""
    order_id: str
    state: FormationState
    nearby_vendors: List[Vendor] = field(default_factory=list)
    compatible_orders: List[Order] = field(default_factory=list)
    projected_savings: float = 0.0
    group: Optional[BuyingGroup] = None
    reason: str = ""

    @property
    def formed(self) -> bool:
        return self.state == FormationState.FORMED


@dataclass
class RoutePoint:
    """
    A single point on a delivery route.

    Attributes:
        location: Geographic point
        vendor_id: Vendor served at this point, if any
        distance_km: Length of the leg arriving at this point
        estimated_time_min: Travel time of that leg in minutes
    """
    location: Location
    vendor_id: Optional[str] = None
    distance_km: Optional[float] = None
    estimated_time_min: Optional[int] = None


@dataclass
class OptimizedRoute:
    """A visiting order for delivery stops with its distance, time and score."""
    points: List[RoutePoint]
    total_distance_km: float
    total_time_min: int
    optimization_score: int

    @property
    def num_stops(self) -> int:
        return max(len(self.points) - 1, 0)

    def __repr__(self) -> str:
        return (f"OptimizedRoute(stops={self.num_stops}, "
                f"dist={self.total_distance_km:.2f}km, score={self.optimization_score})")
