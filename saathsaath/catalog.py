# saath-saath/saathsaath/catalog.py
"""
Seed product catalog and demo locations.

The catalog lists the staple ingredients street-food vendors buy most,
each with a three-step bulk pricing ladder. Prices are in rupees per unit.
"""

from __future__ import annotations

from typing import Dict, List, Tuple

from .models import BulkTier, Location, Product, ProductCategory, Unit


# (id, name, category, unit, base price, stock, supplier, [(min qty, price, discount %)])
_CATALOG_ROWS: List[Tuple[str, str, ProductCategory, Unit, float, float, str, List[Tuple[float, float, float]]]] = [
    ("onions", "Onions", ProductCategory.VEGETABLES, Unit.KG, 30, 1000, "supplier_1",
     [(10, 28, 6.7), (25, 25, 16.7), (50, 22, 26.7)]),
    ("potatoes", "Potatoes", ProductCategory.VEGETABLES, Unit.KG, 25, 800, "supplier_1",
     [(10, 23, 8), (25, 20, 20), (50, 18, 28)]),
    ("tomatoes", "Tomatoes", ProductCategory.VEGETABLES, Unit.KG, 40, 600, "supplier_1",
     [(10, 38, 5), (25, 35, 12.5), (50, 32, 20)]),
    ("green_chilies", "Green Chilies", ProductCategory.VEGETABLES, Unit.KG, 80, 200, "supplier_2",
     [(5, 75, 6.25), (10, 70, 12.5), (20, 65, 18.75)]),
    ("turmeric_powder", "Turmeric Powder", ProductCategory.SPICES, Unit.KG, 200, 100, "supplier_2",
     [(5, 190, 5), (10, 180, 10), (25, 170, 15)]),
    ("red_chili_powder", "Red Chili Powder", ProductCategory.SPICES, Unit.KG, 250, 80, "supplier_2",
     [(5, 240, 4), (10, 225, 10), (20, 210, 16)]),
    ("garam_masala", "Garam Masala", ProductCategory.SPICES, Unit.KG, 400, 50, "supplier_2",
     [(3, 380, 5), (5, 360, 10), (10, 340, 15)]),
    ("mustard_oil", "Mustard Oil", ProductCategory.OIL, Unit.LITRE, 150, 200, "supplier_3",
     [(5, 145, 3.3), (10, 140, 6.7), (20, 135, 10)]),
    ("sunflower_oil", "Sunflower Oil", ProductCategory.OIL, Unit.LITRE, 120, 300, "supplier_3",
     [(10, 115, 4.2), (20, 110, 8.3), (50, 105, 12.5)]),
    ("wheat_flour", "Wheat Flour", ProductCategory.FLOUR, Unit.KG, 35, 500, "supplier_1",
     [(25, 33, 5.7), (50, 31, 11.4), (100, 29, 17.1)]),
    ("besan", "Gram Flour (Besan)", ProductCategory.FLOUR, Unit.KG, 60, 200, "supplier_1",
     [(10, 57, 5), (25, 54, 10), (50, 51, 15)]),
]


def default_products() -> List[Product]:
    """Build fresh Product objects for the seed catalog."""
    return [
        Product(
            product_id=pid,
            name=name,
            category=category,
            unit=unit,
            base_price=float(base),
            bulk_pricing=[BulkTier(float(q), float(p), float(d)) for q, p, d in tiers],
            current_stock=float(stock),
            supplier_id=supplier,
        )
        for pid, name, category, unit, base, stock, supplier, tiers in _CATALOG_ROWS
    ]


def default_catalog() -> Dict[str, Product]:
    """Seed catalog keyed by product_id."""
    return {p.product_id: p for p in default_products()}


# Well-known Delhi locations for demos and the delivery depot
DEMO_LOCATIONS: Dict[str, Location] = {
    "connaught_place": Location(28.6139, 77.2090, "Connaught Place, New Delhi"),
    "chandni_chowk": Location(28.6562, 77.2410, "Chandni Chowk, Delhi"),
    "noida_sector_18": Location(28.5355, 77.3910, "Noida Sector 18"),
    "gurgaon_cyber_city": Location(28.4595, 77.0266, "Gurgaon Cyber City"),
    "azadpur_mandi": Location(28.7041, 77.1025, "Azadpur Mandi, Delhi"),
}
