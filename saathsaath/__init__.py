# saath-saath/saathsaath/__init__.py

from .models import (
    Vendor,
    Product,
    BulkTier,
    Order,
    OrderItem,
    BuyingGroup,
    Location,
    OrderStatus,
    GroupStatus,
    FormationState,
    FormationOutcome,
    OptimizedRoute,
)
from .config import (
    GROUP_RADIUS_KM,
    MINIMUM_MEMBERS,
    MINIMUM_SAVINGS,
    COMPATIBILITY_WINDOW_HOURS,
)
from .matching import GroupBuyingEngine, find_nearby_vendors, find_compatible_orders, build_group
from .pricing import calculate_bulk_discount, resolve_price, project_savings, calculate_optimal_price
from .routing import optimize_route
from .store import InMemoryDocumentStore, DocumentStore, StoreError, ConflictError
from .simulation import Simulation
from .utils import haversine_distance

__version__ = "1.0.0"
__author__ = "Saath-Saath Team"

__all__ = [
    # Models
    "Vendor",
    "Product",
    "BulkTier",
    "Order",
    "OrderItem",
    "BuyingGroup",
    "Location",
    "OrderStatus",
    "GroupStatus",
    "FormationState",
    "FormationOutcome",
    "OptimizedRoute",
    # Core
    "GroupBuyingEngine",
    "Simulation",
    "DocumentStore",
    "InMemoryDocumentStore",
    "StoreError",
    "ConflictError",
    # Functions
    "find_nearby_vendors",
    "find_compatible_orders",
    "build_group",
    "calculate_bulk_discount",
    "resolve_price",
    "project_savings",
    "calculate_optimal_price",
    "optimize_route",
    "haversine_distance",
    # Config
    "GROUP_RADIUS_KM",
    "MINIMUM_MEMBERS",
    "MINIMUM_SAVINGS",
    "COMPATIBILITY_WINDOW_HOURS",
]
