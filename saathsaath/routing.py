# saath-saath/saathsaath/routing.py
"""
Delivery route optimisation.

Orders stops with the greedy nearest-neighbour heuristic: from the current
position, always drive to the closest unvisited stop. This is the classic
NN approximation of the travelling salesperson problem; it is fast and
good enough for the handful of stalls in a buying group, but not optimal
(no backtracking or 2-opt improvement is attempted).
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from . import config, utils
from .models import Location, OptimizedRoute, RoutePoint

logger = logging.getLogger(__name__)


def optimize_route(
    start: Location,
    destinations: Sequence[Location],
    vendor_ids: Optional[Sequence[Optional[str]]] = None,
) -> OptimizedRoute:
    """
    Order delivery stops with the nearest-neighbour heuristic.

    Args:
        start: Starting point (e.g. the depot)
        destinations: Stops to visit
        vendor_ids: Optional vendor ID per destination, carried onto the
            route points

    Returns:
        OptimizedRoute with points starting at `start`, total distance in km
        (2 decimals), total time in minutes and an optimisation score
        (direct start-to-end distance over travelled distance, as a percentage)
    """
    if vendor_ids is not None and len(vendor_ids) != len(destinations):
        raise ValueError("vendor_ids must match destinations in length")

    if not destinations:
        return OptimizedRoute(
            points=[RoutePoint(location=start)],
            total_distance_km=0.0,
            total_time_min=0,
            optimization_score=100,
        )

    unvisited: List[Tuple[Location, Optional[str]]] = [
        (loc, vendor_ids[i] if vendor_ids is not None else None)
        for i, loc in enumerate(destinations)
    ]
    route: List[RoutePoint] = [RoutePoint(location=start)]
    current = start
    total_distance = 0.0

    while unvisited:
        nearest_index = 0
        nearest_distance = utils.distance_between(current, unvisited[0][0])

        for i in range(1, len(unvisited)):
            distance = utils.distance_between(current, unvisited[i][0])
            if distance < nearest_distance:
                nearest_distance = distance
                nearest_index = i

        next_location, vendor_id = unvisited.pop(nearest_index)
        route.append(RoutePoint(
            location=next_location,
            vendor_id=vendor_id,
            distance_km=nearest_distance,
            estimated_time_min=utils.calculate_travel_time_minutes(nearest_distance),
        ))
        total_distance += nearest_distance
        current = next_location

    return OptimizedRoute(
        points=route,
        total_distance_km=round(total_distance, 2),
        total_time_min=utils.calculate_travel_time_minutes(total_distance),
        optimization_score=calculate_optimization_score(route),
    )


def calculate_optimization_score(route: Sequence[RoutePoint]) -> int:
    """
    Score a route 0-100 by how close it is to a straight line.

    Routes with at most one leg score 100, as does a multi-stop route that
    never moves.
    """
    if len(route) <= 2:
        return 100

    total_distance = sum(point.distance_km or 0.0 for point in route)
    if total_distance <= 0:
        return 100

    direct_distance = utils.distance_between(route[0].location, route[-1].location)
    return round(direct_distance / total_distance * 100)


def road_leg(start: Location, end: Location) -> RoutePoint:
    """
    Measure one leg along roads.

    Uses OSRM when USE_ROAD_DISTANCE is enabled; falls back to the
    Haversine distance and the city-speed estimate when it is disabled or
    the service fails.

    Returns:
        RoutePoint at `end` with the leg's distance and travel time
    """
    if config.USE_ROAD_DISTANCE:
        result = utils.osrm_route(start.latitude, start.longitude, end.latitude, end.longitude)
        if result is not None:
            distance_km, duration_min = result
            return RoutePoint(
                location=end,
                distance_km=distance_km,
                estimated_time_min=round(duration_min),
            )
        logger.debug("Falling back to Haversine distance for road leg")

    distance = utils.distance_between(start, end)
    return RoutePoint(
        location=end,
        distance_km=distance,
        estimated_time_min=utils.calculate_travel_time_minutes(distance),
    )


def measure_route_on_roads(route: OptimizedRoute) -> Tuple[float, int]:
    """
    Re-measure an optimised route leg by leg with road_leg().

    Returns:
        Tuple of (total_distance_km, total_time_min)
    """
    total_distance = 0.0
    total_time = 0
    for previous, point in zip(route.points, route.points[1:]):
        leg = road_leg(previous.location, point.location)
        total_distance += leg.distance_km or 0.0
        total_time += leg.estimated_time_min or 0
    return round(total_distance, 2), total_time
