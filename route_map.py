"""Streamlit map: step-by-step group formation on a tiny scenario.

Run:
    streamlit run route_map.py

Submits a handful of orders one at a time and shows, after each one, which
stalls are grouped and the delivery route for every group formed so far.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List

import streamlit as st
import pydeck as pdk

from saathsaath import config
from saathsaath.catalog import default_catalog
from saathsaath.matching import GroupBuyingEngine
from saathsaath.models import Location, Order, OrderItem, Vendor
from saathsaath.routing import optimize_route
from saathsaath.store import InMemoryDocumentStore

# -----------------------------------------------------------------------------
# Hard-coded scenario around Chandni Chowk
# V1 & V2: stalls 35m apart, both need onions -> should group on the 2nd order
# V3: 300m away, needs potatoes only -> no partner until V4 orders potatoes
# V5: Karol Bagh, 5km away -> always individual
# -----------------------------------------------------------------------------
START = datetime(2025, 1, 15, 7, 0)

VENDORS: List[Vendor] = [
    Vendor("V1", "Ramesh Chaat", "", "Chandni Chowk", Location(28.6562, 77.2410)),
    Vendor("V2", "Sunita Pakode", "", "Chandni Chowk", Location(28.6565, 77.2412)),
    Vendor("V3", "Mohan Samosa", "", "Paranthe Wali Gali", Location(28.6590, 77.2400)),
    Vendor("V4", "Geeta Paratha", "", "Kinari Bazaar", Location(28.6550, 77.2425)),
    Vendor("V5", "Lakshmi Idli", "", "Karol Bagh", Location(28.6519, 77.1909)),
]

SCENARIO: List[Dict] = [
    {"order": "O1", "vendor": "V1", "minute": 0, "items": {"onions": 15}},
    {"order": "O2", "vendor": "V3", "minute": 5, "items": {"potatoes": 12}},
    {"order": "O3", "vendor": "V2", "minute": 10, "items": {"onions": 15, "tomatoes": 4}},
    {"order": "O4", "vendor": "V5", "minute": 15, "items": {"onions": 30}},
    {"order": "O5", "vendor": "V4", "minute": 20, "items": {"potatoes": 15}},
]


def build_order(step: Dict, catalog) -> Order:
    return Order(
        order_id=step["order"],
        vendor_id=step["vendor"],
        items=[
            OrderItem(pid, catalog[pid].name, qty, catalog[pid].base_price)
            for pid, qty in step["items"].items()
        ],
        created_at=START + timedelta(minutes=step["minute"]),
    )


# -----------------------------------------------------------------------------
# Trace engine
# -----------------------------------------------------------------------------

def run_with_trace() -> List[Dict]:
    catalog = default_catalog()
    store = InMemoryDocumentStore(vendors=VENDORS, products=catalog.values())
    clock = {"now": START}
    engine = GroupBuyingEngine(store, clock=lambda: clock["now"])
    depot = Location(*config.DEPOT_LOCATION)
    stalls = {v.vendor_id: v.stall_location for v in VENDORS}

    timeline: List[Dict] = []
    for step in SCENARIO:
        order = build_order(step, catalog)
        clock["now"] = order.created_at
        store.add_order(order)
        outcome = engine.process_order(order)

        groups = []
        for group in store.list_groups():
            route = optimize_route(depot, [stalls[v] for v in group.member_ids], group.member_ids)
            groups.append({
                "id": group.group_id,
                "members": group.member_ids,
                "savings": group.total_savings,
                "path": [[p.location.longitude, p.location.latitude] for p in route.points],
                "distance_km": route.total_distance_km,
                "time_min": route.total_time_min,
            })

        timeline.append({
            "time": order.created_at.strftime("%H:%M"),
            "order": order.order_id,
            "vendor": order.vendor_id,
            "state": outcome.state.value,
            "reason": outcome.reason,
            "projected": outcome.projected_savings,
            "nearby": [v.vendor_id for v in outcome.nearby_vendors],
            "order_status": {o.order_id: o.status.value for o in store.list_orders()},
            "order_vendor": {o.order_id: o.vendor_id for o in store.list_orders()},
            "groups": groups,
        })

    return timeline


@st.cache_data(show_spinner=False)
def get_timeline() -> List[Dict]:
    return run_with_trace()


# -----------------------------------------------------------------------------
# Map helpers
# -----------------------------------------------------------------------------

def stall_layer(step: Dict) -> pdk.Layer:
    color_map = {
        "grouped": [16, 185, 129],
        "pending": [251, 191, 36],
    }
    vendor_status: Dict[str, str] = {}
    for order_id, status in step["order_status"].items():
        vendor_id = step["order_vendor"][order_id]
        if vendor_status.get(vendor_id) != "grouped":
            vendor_status[vendor_id] = status

    data = [
        {
            "position": [v.stall_location.longitude, v.stall_location.latitude],
            "color": color_map.get(vendor_status.get(v.vendor_id), [100, 116, 139]),
            "label": f"{v.vendor_id} {v.name}: {vendor_status.get(v.vendor_id, 'no order')}",
        }
        for v in VENDORS
    ]
    return pdk.Layer(
        "ScatterplotLayer",
        data,
        get_position="position",
        get_fill_color="color",
        get_radius=60,
        pickable=True,
        stroked=True,
        filled=True,
        line_width_min_pixels=1,
    )


def route_layer(groups: List[Dict]) -> pdk.Layer:
    data = [
        {"path": g["path"], "label": f"{g['id']}: {g['distance_km']} km", "color": [59, 130, 246]}
        for g in groups
    ]
    return pdk.Layer(
        "PathLayer",
        data,
        get_path="path",
        get_color="color",
        width_min_pixels=3,
        pickable=True,
    )


# -----------------------------------------------------------------------------
# UI
# -----------------------------------------------------------------------------

st.set_page_config(page_title="Group Formation Map", page_icon="🗺️", layout="wide")
st.title("🗺️ Group Formation on a Map")
st.write("**Demo:** 5 vendors around Chandni Chowk and Karol Bagh. Watch orders pool into groups.")

timeline = get_timeline()
idx = st.slider("Order", 1, len(timeline), 1, help="Step through the orders as they arrive")
current = timeline[idx - 1]

col1, col2 = st.columns([1, 1])
with col1:
    st.markdown(f"**Time:** {current['time']}")
    st.markdown(f"**{current['order']}** from {current['vendor']}: **{current['state']}**")
    st.markdown(f"Nearby stalls: {', '.join(current['nearby']) or '-'}")
    st.markdown(f"Projected savings: ₹{current['projected']:.0f} ({current['reason']})")

with col2:
    st.markdown("**Groups so far**")
    if current["groups"]:
        for g in current["groups"]:
            st.markdown(
                f"- {g['id']}: {', '.join(g['members'])}, savings ₹{g['savings']:.0f}, "
                f"delivery {g['distance_km']} km / {g['time_min']} min"
            )
    else:
        st.markdown("(none)")

center_lat = sum(v.stall_location.latitude for v in VENDORS) / len(VENDORS)
center_lng = sum(v.stall_location.longitude for v in VENDORS) / len(VENDORS)

view_state = pdk.ViewState(latitude=center_lat, longitude=center_lng, zoom=12)

layers = [route_layer(current["groups"]), stall_layer(current)]

st.pydeck_chart(pdk.Deck(layers=layers, initial_view_state=view_state, tooltip={"text": "{label}"}))

st.markdown("---")
st.markdown("#### Timeline Table")
rows = [
    {
        "time": step["time"],
        "order": step["order"],
        "vendor": step["vendor"],
        "outcome": step["state"],
        "projected ₹": round(step["projected"], 2),
        "groups": len(step["groups"]),
    }
    for step in timeline
]
st.dataframe(rows, use_container_width=True, hide_index=True)
