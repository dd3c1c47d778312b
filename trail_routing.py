# trail_routing.py
"""
Route finding along a trail network.

A user path is a list of clicked waypoints. Waypoints that follow features are
snapped onto the nearest trail, and consecutive waypoints are joined by a route
along the trails:

- same trail:        walk the trail's vertices between the two snapped points.
- different trails:  depth-bounded search across trail intersections, keeping
                     the candidate with the shortest haversine length.
- nothing reachable: straight segment to the new waypoint.

Trail intersections are discovered from endpoint proximity: a trail's first or
last vertex lying within TRAIL_INTERSECTION_THRESH (degrees) of another trail
forms one undirected junction between the pair.

Usage:
    from trail_routing import Path, PathPoint

    path = Path()
    path.add_point(PathPoint((-121.70, 45.37), True), features, dist_threshold=2e-3)
    path.add_point(PathPoint((-121.69, 45.38), True), features, dist_threshold=2e-3)
    path.route   # [(lon, lat), ...]
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Sequence, Tuple

import networkx as nx

from feature_index import FAR_AWAY, FeatureEntrySet, TrailEntry, closest_on_line
from tile_coords import LonLat, Route, route_length_miles

# --------------------------- Config ---------------------------

# distance (degrees) for trails to be considered intersecting
TRAIL_INTERSECTION_THRESH = 2e-4

# maximum number of trail-to-trail hops explored by the route search
ROUTE_FINDING_DEPTH = 8

# points closer than this (degrees) are treated as the same point
POINT_EQUAL_EPS = 1e-5

logger = logging.getLogger("trails.routing")


# ---------------------------- Types ---------------------------

@dataclass(frozen=True)
class PathPoint:
    coord: LonLat
    # whether to follow features from the previous point to this one
    follow_features: bool = True

    def __post_init__(self):
        object.__setattr__(self, "coord", (float(self.coord[0]), float(self.coord[1])))


@dataclass(frozen=True)
class TrailPoint:
    """A point and the trail it was snapped onto (None when snapping failed)."""
    trail: Optional[TrailEntry]
    pt: LonLat


@dataclass(frozen=True)
class Intersection:
    point: LonLat
    trail0_id: int
    trail1_id: int

    @property
    def pair(self) -> FrozenSet[int]:
        return frozenset((self.trail0_id, self.trail1_id))


# -------------------------- Helpers ---------------------------

def _dist(p0: Sequence[float], p1: Sequence[float]) -> float:
    return math.hypot(p0[0] - p1[0], p0[1] - p1[1])


def points_equal(p0: Sequence[float], p1: Sequence[float]) -> bool:
    return _dist(p0, p1) < POINT_EQUAL_EPS


def closest_on_route(point: Sequence[float], route: Route) -> Tuple[LonLat, float]:
    """Closest point on a polyline, and its distance in coordinate units."""
    closest: LonLat = (point[0], point[1])
    min_dist = FAR_AWAY
    for a, b in zip(route[:-1], route[1:]):
        pt, d = closest_on_line(point, a, b)
        if d < min_dist:
            min_dist = d
            closest = pt
    return closest, min_dist


def nearest_point(point: LonLat, features: FeatureEntrySet,
                  dist_threshold: Optional[float] = None) -> TrailPoint:
    """Snap point onto the nearest visible trail.

    With a threshold, points farther than it from every trail come back
    unsnapped (``trail is None``).
    """
    trail, _ = features.closest_trail(point)
    if trail is None:
        return TrailPoint(None, point)
    closest, min_dist = closest_on_route(point, trail.route)
    if dist_threshold is None or min_dist < dist_threshold:
        return TrailPoint(trail, closest)
    return TrailPoint(None, point)


def route_point_index(pt: TrailPoint) -> int:
    """Index of the trail vertex closest to pt."""
    route = pt.trail.route
    return min(range(len(route)), key=lambda i: _dist(pt.pt, route[i]))


def _join(head: Route, tail: Route) -> Route:
    if head and tail and points_equal(head[-1], tail[0]):
        return head + tail[1:]
    return head + tail


# ------------------------ Same trail --------------------------

def route_on_trail(start: TrailPoint, end: TrailPoint) -> Route:
    """Vertices of one trail walked from start to end, finishing at end.pt.

    Empty when both points settle on the same vertex.
    """
    verts = start.trail.route
    start_index = route_point_index(start)
    end_index = route_point_index(end)
    if start_index == end_index:
        return []

    step = 1 if end_index > start_index else -1
    # skip a nearest vertex that lies behind the snapped point
    ahead = verts[start_index + step]
    if (not points_equal(start.pt, verts[start_index])
            and _dist(start.pt, ahead) < _dist(verts[start_index], ahead)):
        start_index += step
    behind = verts[end_index - step]
    if (not points_equal(end.pt, verts[end_index])
            and _dist(end.pt, behind) < _dist(verts[end_index], behind)):
        end_index -= step

    # empty when both points fell inside the same segment
    route: Route = [tuple(verts[i]) for i in range(start_index, end_index + step, step)]
    if not route or not points_equal(route[-1], end.pt):
        route.append(end.pt)
    return route


# ------------------------ Intersections -----------------------

def find_intersections(features: FeatureEntrySet,
                       thresh: float = TRAIL_INTERSECTION_THRESH) -> List[Intersection]:
    """Pairwise junctions between visible trails, found from trail endpoints."""
    trails = [t for t in features.trails() if len(t.route) >= 2]
    found: List[Intersection] = []
    for trail in trails:
        for endpoint in (trail.route[0], trail.route[-1]):
            for other in trails:
                if other.id == trail.id:
                    continue
                _, d = closest_on_route(endpoint, other.route)
                if d >= thresh:
                    continue
                pair = frozenset((trail.id, other.id))
                if any(i.pair == pair and _dist(i.point, endpoint) < thresh for i in found):
                    continue
                found.append(Intersection(tuple(endpoint), trail.id, other.id))
    return found


def build_intersection_graph(features: FeatureEntrySet,
                             thresh: float = TRAIL_INTERSECTION_THRESH) -> nx.MultiGraph:
    """Trail adjacency: one node per trail id, one edge (with ``point``) per junction."""
    G = nx.MultiGraph()
    for trail in features.trails():
        G.add_node(trail.id, trail=trail)
    for inter in find_intersections(features, thresh):
        G.add_edge(inter.trail0_id, inter.trail1_id, point=inter.point)
    logger.debug("intersection graph: trails=%d junctions=%d", G.number_of_nodes(), G.number_of_edges())
    return G


# ------------------------ Cross trail -------------------------

def _search(start: TrailPoint, end: TrailPoint, G: nx.MultiGraph, depth: int,
            visited: FrozenSet[int]) -> Optional[Route]:
    if start.trail.id == end.trail.id:
        return route_on_trail(start, end)
    if depth <= 0 or start.trail.id not in G:
        return None

    best: Optional[Route] = None
    best_len = math.inf
    for _, neighbor, point in G.edges(start.trail.id, data="point"):
        if neighbor in visited:
            continue
        leg = route_on_trail(start, TrailPoint(start.trail, point))
        rest = _search(TrailPoint(G.nodes[neighbor]["trail"], point), end, G,
                       depth - 1, visited | {neighbor})
        if rest is None:
            continue
        candidate = _join(leg, rest)
        length = route_length_miles([start.pt] + candidate)
        if length < best_len:
            best, best_len = candidate, length
    return best


def find_route(start: TrailPoint, end: TrailPoint, features: FeatureEntrySet,
               max_depth: int = ROUTE_FINDING_DEPTH,
               graph: Optional[nx.MultiGraph] = None) -> Optional[Route]:
    """Shortest route along trails from start to end, or None when unreachable."""
    if start.trail is None or end.trail is None:
        return None
    if start.trail.id == end.trail.id:
        return route_on_trail(start, end)
    G = build_intersection_graph(features) if graph is None else graph
    route = _search(start, end, G, max_depth, frozenset((start.trail.id,)))
    if route is None:
        logger.debug("no route from trail %s to trail %s within %d hops",
                     start.trail.id, end.trail.id, max_depth)
    return route


# ---------------------------- Path ----------------------------

@dataclass
class Path:
    """User waypoints and the route derived from them."""
    points: List[PathPoint] = field(default_factory=list)
    route: Route = field(default_factory=list)

    def add_point(self, point: PathPoint, features: FeatureEntrySet, dist_threshold: float) -> None:
        if not point.follow_features:
            self.points.append(point)
            self.route.append(point.coord)
            return

        if not self.points:
            snapped = nearest_point(point.coord, features, dist_threshold)
            self.points.append(PathPoint(snapped.pt, True))
            self.route.append(snapped.pt)
            return

        prev = self.points[-1]
        # previous point is assumed to already sit near a trail
        start = nearest_point(prev.coord, features, None)
        end = nearest_point(point.coord, features, dist_threshold)

        sub_route = None
        if end.trail is not None:
            sub_route = find_route(start, end, features)
        if sub_route is None:
            # off-trail or unreachable: straight line
            self.points.append(PathPoint(end.pt, True))
            self.route.append(end.pt)
            return

        if not points_equal(prev.coord, start.pt):
            self.route.append(start.pt)
        self.route.extend(sub_route)
        if not self.route or self.route[-1] != end.pt:
            self.route.append(end.pt)
        self.points.append(PathPoint(end.pt, True))

    def pop_point(self) -> Optional[PathPoint]:
        """Remove the last waypoint and the route leading to it."""
        if not self.points:
            return None
        pt = self.points.pop()
        if not self.points:
            self.route = []
            return pt
        last = self.points[-1].coord
        while self.route and self.route[-1] != last:
            self.route.pop()
        return pt

    def length_miles(self) -> float:
        return route_length_miles(self.route)
