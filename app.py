"""
Saath-Saath - Group Buying Dashboard
======================================

Dashboard for replaying vendor orders through the group buying engine.

Features:
- KPI cards for groups, savings and delivery distance
- Folium map of vendor stalls, buying groups and delivery routes
- Group and per-vendor savings tables
- Bulk price calculator for the seed catalog
- Configurable formation thresholds
"""

import streamlit as st
import pandas as pd
import folium
import os
import sys
from typing import Dict, Any, List, Tuple, Optional

from streamlit_folium import st_folium

# Ensure saathsaath is importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from saathsaath.simulation import Simulation
from saathsaath.catalog import default_catalog, DEMO_LOCATIONS
from saathsaath.pricing import calculate_optimal_price, compare_product_prices
from saathsaath.utils import format_rupees
from saathsaath import config

# =============================================================================
# PAGE CONFIG
# =============================================================================

st.set_page_config(
    page_title="Saath-Saath Group Buying",
    page_icon="🧺",
    layout="wide",
    initial_sidebar_state="expanded"
)

# =============================================================================
# CUSTOM STYLING
# =============================================================================

st.markdown("""
<style>
    .main .block-container {
        padding-top: 2rem;
        padding-bottom: 2rem;
    }

    /* KPI Cards */
    .kpi-card {
        background: linear-gradient(135deg, #f7971e 0%, #ffd200 100%);
        border-radius: 16px;
        padding: 1.5rem;
        color: #1a1a2e;
        text-align: center;
        box-shadow: 0 10px 40px rgba(247, 151, 30, 0.3);
    }

    .kpi-card.green {
        background: linear-gradient(135deg, #11998e 0%, #38ef7d 100%);
        color: white;
        box-shadow: 0 10px 40px rgba(17, 153, 142, 0.3);
    }

    .kpi-value {
        font-size: 2.5rem;
        font-weight: 800;
        margin: 0.5rem 0;
    }

    .kpi-label {
        font-size: 0.9rem;
        opacity: 0.9;
        text-transform: uppercase;
        letter-spacing: 1px;
    }

    .kpi-delta {
        font-size: 1rem;
        font-weight: 600;
        padding: 0.25rem 0.75rem;
        border-radius: 20px;
        background: rgba(255,255,255,0.3);
        display: inline-block;
        margin-top: 0.5rem;
    }

    .section-header {
        font-size: 1.5rem;
        font-weight: 700;
        color: #1a1a2e;
        margin: 2rem 0 1rem 0;
        padding-bottom: 0.5rem;
        border-bottom: 3px solid #f7971e;
    }

    #MainMenu {visibility: hidden;}
    footer {visibility: hidden;}
</style>
""", unsafe_allow_html=True)

# =============================================================================
# DATA LOADING
# =============================================================================

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Available datasets
DATASETS: Dict[str, Dict[str, str]] = {
    "Delhi Clusters (16 orders)": {
        "vendors": os.path.join(BASE_DIR, "data/vendors_delhi.csv"),
        "orders": os.path.join(BASE_DIR, "data/orders_delhi.csv"),
    },
    "Spread Across NCR (8 orders)": {
        "vendors": os.path.join(BASE_DIR, "data/vendors_sparse.csv"),
        "orders": os.path.join(BASE_DIR, "data/orders_sparse.csv"),
    },
}

GROUP_COLORS = ['#e6194b', '#3cb44b', '#4363d8', '#f58231', '#911eb4', '#42d4f4', '#f032e6']


def get_available_datasets() -> Dict[str, Dict[str, str]]:
    """Return only datasets that exist on disk."""
    available = {}
    for name, paths in DATASETS.items():
        if os.path.exists(paths["vendors"]) and os.path.exists(paths["orders"]):
            available[name] = paths
    return available


def run_simulation(vendor_file: str, order_file: str, params: Dict[str, float]) -> Dict[str, Any]:
    """Load the dataset and replay it with the given thresholds."""
    vendors, products, orders = Simulation.load_data(vendor_file, order_file)
    sim = Simulation(
        vendors, products, orders,
        radius_km=params["radius_km"],
        minimum_savings=params["minimum_savings"],
        window_hours=params["window_hours"],
    )
    results = sim.run(verbose=False)
    results["vendors"] = vendors
    return results


# =============================================================================
# MAP VISUALIZATION
# =============================================================================

def create_group_map(results: Dict[str, Any]) -> folium.Map:
    """
    Create a Folium map of vendors, buying groups and delivery routes.

    - Grey markers: vendors not in any group
    - Coloured circles: group radius around the ordering vendor's stall
    - Coloured lines: delivery route from the depot
    """
    vendors = [v for v in results["vendors"] if v.stall_location is not None]
    if vendors:
        center_lat = sum(v.stall_location.latitude for v in vendors) / len(vendors)
        center_lng = sum(v.stall_location.longitude for v in vendors) / len(vendors)
    else:
        center = DEMO_LOCATIONS["connaught_place"]
        center_lat, center_lng = center.latitude, center.longitude

    m = folium.Map(
        location=[center_lat, center_lng],
        zoom_start=12,
        tiles='cartodbpositron'
    )

    grouped_vendor_color: Dict[str, str] = {}
    groups = sorted(results["groups"], key=lambda g: g.group_id)
    routes = {d["group_id"]: d for d in results["deliveries"]}

    group_layer = folium.FeatureGroup(name="Buying Groups")
    route_layer = folium.FeatureGroup(name="Delivery Routes")
    for i, group in enumerate(groups):
        color = GROUP_COLORS[i % len(GROUP_COLORS)]
        for vendor_id in group.member_ids:
            grouped_vendor_color[vendor_id] = color

        folium.Circle(
            location=list(group.center_location.as_tuple()),
            radius=group.radius_km * 1000,
            color=color,
            fill=True,
            fillOpacity=0.05,
            popup=f"{group.group_id}: {group.num_members} vendors, "
                  f"savings {format_rupees(group.total_savings)}"
        ).add_to(group_layer)

        delivery = routes.get(group.group_id)
        if delivery and len(delivery["path"]) >= 2:
            folium.PolyLine(
                locations=delivery["path"],
                weight=3,
                color=color,
                opacity=0.8,
                popup=f"{group.group_id}: {delivery['distance_km']:.1f} km, "
                      f"{delivery['time_min']} min"
            ).add_to(route_layer)
    group_layer.add_to(m)
    route_layer.add_to(m)

    vendor_layer = folium.FeatureGroup(name="Vendor Stalls")
    for vendor in vendors:
        color = grouped_vendor_color.get(vendor.vendor_id, '#888888')
        folium.CircleMarker(
            location=list(vendor.stall_location.as_tuple()),
            radius=6,
            color=color,
            fill=True,
            fillColor=color,
            fillOpacity=0.8,
            popup=f"{vendor.name} ({vendor.vendor_id})"
        ).add_to(vendor_layer)
    vendor_layer.add_to(m)

    depot_lat, depot_lng = config.DEPOT_LOCATION
    folium.Marker(
        location=[depot_lat, depot_lng],
        popup="Depot",
        icon=folium.Icon(color="black", icon="home")
    ).add_to(m)

    folium.LayerControl().add_to(m)
    return m


# =============================================================================
# SIDEBAR
# =============================================================================

def render_sidebar() -> Optional[Tuple[Dict[str, str], Dict[str, float]]]:
    """Render the sidebar configuration panel."""
    st.sidebar.markdown("## 🎛️ Configuration")
    st.sidebar.markdown("---")

    st.sidebar.markdown("### 📊 Dataset")
    available_datasets = get_available_datasets()

    if not available_datasets:
        st.sidebar.error("No datasets found in data/ folder!")
        return None

    selected_dataset = st.sidebar.selectbox(
        "Select Dataset",
        options=list(available_datasets.keys()),
        index=0,
        help="Choose the order day to replay"
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown("### ⚙️ Formation Rules")

    radius_km = st.sidebar.slider(
        "Matching Radius (km)",
        min_value=0.5,
        max_value=10.0,
        value=float(config.GROUP_RADIUS_KM),
        step=0.5,
        help="How far apart stalls may be to buy together"
    )

    minimum_savings = st.sidebar.slider(
        "Minimum Savings (₹)",
        min_value=0,
        max_value=500,
        value=int(config.MINIMUM_SAVINGS),
        step=10,
        help="Projected savings needed before a group is formed"
    )

    window_hours = st.sidebar.slider(
        "Compatibility Window (hours)",
        min_value=0.5,
        max_value=6.0,
        value=float(config.COMPATIBILITY_WINDOW_HOURS),
        step=0.5,
        help="How old a pending order may be and still be pooled"
    )

    params = {
        "radius_km": radius_km,
        "minimum_savings": float(minimum_savings),
        "window_hours": window_hours,
    }

    st.sidebar.markdown("---")
    if st.sidebar.button("🧺 Run Replay", use_container_width=True):
        st.session_state["dataset"] = available_datasets[selected_dataset]
        st.session_state["params"] = params
        st.session_state.pop("simulation_results", None)

    if "dataset" in st.session_state:
        return st.session_state["dataset"], st.session_state["params"]

    st.sidebar.markdown("---")
    st.sidebar.markdown("### 📖 About")
    st.sidebar.info("""
    Street-food vendors near each other pool their orders
    to reach bulk price tiers.

    A group forms when at least two vendors within the radius
    order a shared product and the pooled savings clear the threshold.
    """)
    return None


# =============================================================================
# KPI DISPLAY
# =============================================================================

def render_kpi_row(results: Dict[str, Any]) -> None:
    """Render the top KPI cards."""
    col1, col2, col3, col4 = st.columns(4)

    with col1:
        st.markdown(f"""
        <div class="kpi-card">
            <div class="kpi-label">Groups Formed</div>
            <div class="kpi-value">{results['groups_formed']}</div>
            <div class="kpi-delta">avg {results['avg_group_size']:.1f} vendors</div>
        </div>
        """, unsafe_allow_html=True)

    with col2:
        st.markdown(f"""
        <div class="kpi-card green">
            <div class="kpi-label">Total Savings</div>
            <div class="kpi-value">{format_rupees(results['total_savings'])}</div>
            <div class="kpi-delta">{results['savings_rate_pct']:.1f}% off base price</div>
        </div>
        """, unsafe_allow_html=True)

    with col3:
        st.markdown(f"""
        <div class="kpi-card">
            <div class="kpi-label">Orders Grouped</div>
            <div class="kpi-value">{results['grouped_orders']}/{results['total_orders']}</div>
            <div class="kpi-delta">{results['grouping_rate_pct']:.0f}% of orders</div>
        </div>
        """, unsafe_allow_html=True)

    with col4:
        st.markdown(f"""
        <div class="kpi-card green">
            <div class="kpi-label">Delivery Distance</div>
            <div class="kpi-value">{results['total_route_distance_km']:.1f} km</div>
            <div class="kpi-delta">score {results['avg_route_score']:.0f}/100</div>
        </div>
        """, unsafe_allow_html=True)


# =============================================================================
# TABLES
# =============================================================================

def render_group_table(results: Dict[str, Any]) -> None:
    """Render one row per group product."""
    st.markdown('<div class="section-header">🧺 Buying Groups</div>', unsafe_allow_html=True)

    rows: List[Dict[str, Any]] = []
    for group in sorted(results["groups"], key=lambda g: g.group_id):
        for product in group.products:
            rows.append({
                "Group": group.group_id,
                "Members": ", ".join(group.member_ids),
                "Product": product.product_name,
                "Quantity": product.total_quantity,
                "Base ₹": product.unit_price,
                "Bulk ₹": product.bulk_price,
                "Savings ₹": round(product.total_savings, 2),
            })

    if not rows:
        st.info("No groups formed with these settings. Try a larger radius or a lower savings threshold.")
        return

    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)


def render_vendor_table(results: Dict[str, Any]) -> None:
    """Render per-vendor savings."""
    st.markdown('<div class="section-header">👥 Vendor Savings</div>', unsafe_allow_html=True)

    df = pd.DataFrame(results["vendor_savings"])
    df = df.rename(columns={
        "vendor_id": "Vendor",
        "name": "Name",
        "orders": "Orders",
        "total_spent": "Spent ₹",
        "groups": "Groups",
        "total_savings": "Savings ₹",
    })
    st.dataframe(df, use_container_width=True, hide_index=True)


# =============================================================================
# PRICE CALCULATOR
# =============================================================================

def render_price_calculator() -> None:
    """Render the bulk price calculator."""
    with st.expander("Bulk Price Calculator", expanded=False):
        catalog = default_catalog()
        col1, col2, col3 = st.columns(3)
        with col1:
            product_id = st.selectbox(
                "Product",
                options=list(catalog.keys()),
                format_func=lambda pid: catalog[pid].name,
            )
        with col2:
            quantity = st.number_input("Quantity", min_value=1.0, value=25.0, step=1.0)
        with col3:
            group_size = st.number_input("Group Size", min_value=1, value=1, step=1)

        product = catalog[product_id]
        quote = calculate_optimal_price(product, quantity, int(group_size))
        st.markdown(f"""
        **{product.name}**: ₹{quote.unit_price:.2f}/{product.unit.value}
        (base {format_rupees(product.base_price)}), total ₹{quote.total_price:,.2f},
        you save **₹{quote.savings:,.2f}** ({quote.discount_percentage:.1f}%)
        """)

        tiers = pd.DataFrame([
            {"From": t.min_quantity, "Price ₹": t.price_per_unit, "Discount %": t.discount_percentage}
            for t in sorted(product.bulk_pricing, key=lambda t: t.min_quantity)
        ])
        st.dataframe(tiers, use_container_width=True, hide_index=True)

        st.markdown("Cheapest per unit at this quantity:")
        ranking = compare_product_prices(catalog.values(), quantity)[:5]
        st.dataframe(pd.DataFrame([
            {"Rank": r["rank"], "Product": r["product"].name, "Unit ₹": r["pricing"].unit_price}
            for r in ranking
        ]), use_container_width=True, hide_index=True)


# =============================================================================
# MAIN APPLICATION
# =============================================================================

def main():
    """Main application entry point."""

    st.markdown("""
    <div style="text-align: center; padding: 1rem 0 2rem 0;">
        <h1 style="font-size: 3rem; font-weight: 800; color: #f7971e; margin-bottom: 0.5rem;">
            Saath-Saath
        </h1>
        <p style="font-size: 1.2rem; color: #666; max-width: 700px; margin: 0 auto;">
            Group Buying for Street Food Vendors
        </p>
    </div>
    """, unsafe_allow_html=True)

    sidebar_result = render_sidebar()

    if sidebar_result is None:
        st.markdown("---")
        st.markdown("👈 Select a dataset and formation rules, then click **Run Replay**.")
        render_price_calculator()
        return

    dataset, params = sidebar_result

    st.markdown("---")

    if "simulation_results" in st.session_state:
        results = st.session_state["simulation_results"]
    else:
        with st.spinner("Replaying orders..."):
            try:
                results = run_simulation(dataset["vendors"], dataset["orders"], params)
            except (OSError, ValueError) as e:
                st.error(f"Failed to load data: {e}")
                return
        st.session_state["simulation_results"] = results
    st.success("Replay complete!")

    render_kpi_row(results)

    st.markdown('<div class="section-header">🗺️ Groups and Delivery Routes</div>', unsafe_allow_html=True)
    st_folium(create_group_map(results), width=None, height=500, use_container_width=True)

    render_group_table(results)
    render_vendor_table(results)

    st.markdown("<br>", unsafe_allow_html=True)
    render_price_calculator()

    st.markdown("---")
    st.markdown("""
    <div style="text-align: center; color: #888; padding: 1rem;">
        Saath-Saath | Together we buy better
    </div>
    """, unsafe_allow_html=True)


if __name__ == "__main__":
    main()
