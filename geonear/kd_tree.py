"""
Static 2-D KD-tree over latitude/longitude for nearest-location lookup.

The tree is built once by median split, alternating the split axis by depth
(latitude at even depth, longitude at odd depth), and answers one query:
the single nearest stored point under haversine distance.

Nodes live in an arena: a flat list of points plus parallel lists of child
indices.  Build, query and teardown all run on explicit work-lists, so tree
height is never limited by the interpreter's recursion limit.

Pruning
-------
Two bounds decide whether the far side of a split is searched:

``approximate`` (default)
    Distance from the target to the point that shares the target's
    coordinate on the other axis and the node's coordinate on the split
    axis.  For latitude splits this is exact.  For longitude splits it is
    measured along a parallel, which is longer than the great-circle
    distance to the split meridian, so in rare configurations the true
    nearest point is pruned away.

``spherical``
    A proven lower bound: the meridian arc for latitude splits, and the
    great-circle distance to the far longitude wedge for longitude splits.
    Results always match a linear scan.  A tree holding any point outside
    [-90, 90] x [-180, 180] cannot place that point in a wedge, so it
    searches every node instead.
"""

from __future__ import annotations

import math
from typing import Iterable, Iterator, NamedTuple, Optional

from geonear.distance import EARTH_RADIUS_KM, distance, haversine_km


LATITUDE = 0
LONGITUDE = 1

PRUNING_MODES = ("approximate", "spherical")


class Point(NamedTuple):
    """A labelled location in decimal degrees."""
    label: str
    latitude: float
    longitude: float


class QueryResult(NamedTuple):
    point: Point
    distance_km: float
    nodes_visited: int


class EmptyIndexError(LookupError):
    """Raised when a nearest-neighbor query hits an index with no points."""


def _coord(point, axis: int) -> float:
    return point.latitude if axis == LATITUDE else point.longitude


def _as_point(value, default_label: str = "") -> Point:
    """Coerce a Point, a (label, lat, lon) triple or a (lat, lon) pair."""
    if isinstance(value, Point):
        point = value
    elif len(value) == 2:
        point = Point(default_label, float(value[0]), float(value[1]))
    elif len(value) == 3:
        point = Point(str(value[0]), float(value[1]), float(value[2]))
    else:
        raise ValueError(
            f"Expected a Point, (label, lat, lon) or (lat, lon), got {value!r}"
        )
    if not (math.isfinite(point.latitude) and math.isfinite(point.longitude)):
        raise ValueError(f"Coordinates must be finite, got {point!r}")
    return point


# ============================================================================
# Pruning bounds
# ============================================================================

def approximate_bound_km(target: Point, split: Point, axis: int) -> float:
    """Distance to the split line measured along the other axis's line."""
    if axis == LATITUDE:
        return haversine_km(target.latitude, target.longitude,
                            split.latitude, target.longitude)
    return haversine_km(target.latitude, target.longitude,
                        target.latitude, split.longitude)


def spherical_bound_km(target: Point, split: Point, axis: int) -> float:
    """Lower bound on the distance from *target* to the far side of *split*.

    Coordinates outside [-90, 90] / [-180, 180] give a bound of 0, which
    disables pruning at that node instead of guessing at the wrap-around.
    """
    if abs(target.latitude) > 90.0 or abs(split.latitude) > 90.0:
        return 0.0

    if axis == LATITUDE:
        return EARTH_RADIUS_KM * math.radians(abs(target.latitude - split.latitude))

    q, s = target.longitude, split.longitude
    if abs(q) > 180.0 or abs(s) > 180.0:
        return 0.0
    # The far wedge is bounded by the split meridian and the antimeridian.
    if q < s:
        gap = min(s - q, q + 180.0)
    else:
        gap = min(q - s, 180.0 - q)
    gap = math.radians(min(max(gap, 0.0), 90.0))
    x = math.sin(gap) * math.cos(math.radians(target.latitude))
    return EARTH_RADIUS_KM * math.asin(min(max(x, 0.0), 1.0))


def _in_range(point) -> bool:
    return abs(point.latitude) <= 90.0 and abs(point.longitude) <= 180.0


def _no_bound(target: Point, split: Point, axis: int) -> float:
    return 0.0


_BOUNDS = {
    "approximate": approximate_bound_km,
    "spherical": spherical_bound_km,
}


# ============================================================================
# KD-tree
# ============================================================================

class KDTree:
    """
    Static KD-tree of :class:`Point` for 1-nearest-neighbor queries.

    Parameters
    ----------
    points : iterable
        Points, ``(label, lat, lon)`` triples, or a mix.  The caller's
        sequence is never reordered.
    pruning : str
        ``"approximate"`` (default) or ``"spherical"``.  See module docs.
    """

    def __init__(self, points: Iterable = (), pruning: str = "approximate"):
        if pruning not in _BOUNDS:
            raise ValueError(
                f"Unknown pruning mode: '{pruning}'. Choose from: {list(PRUNING_MODES)}"
            )
        self.pruning = pruning
        self._bound = _BOUNDS[pruning]
        self._points: list[Optional[Point]] = []
        self._left: list[Optional[int]] = []
        self._right: list[Optional[int]] = []
        self._root: Optional[int] = None
        self._build([_as_point(p) for p in points])
        if pruning == "spherical" and not all(_in_range(p) for p in self._points):
            self._bound = _no_bound

    @classmethod
    def build(cls, points: Iterable, pruning: str = "approximate") -> "KDTree":
        return cls(points, pruning=pruning)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _new_node(self, point: Point) -> int:
        self._points.append(point)
        self._left.append(None)
        self._right.append(None)
        return len(self._points) - 1

    def _build(self, points: list[Point]) -> None:
        # Entries carry the insertion index as the secondary sort key so
        # duplicate coordinates always produce the same tree shape.
        stack = [(list(enumerate(points)), 0, None, None)]
        while stack:
            subset, depth, parent, is_left = stack.pop()
            if not subset:
                continue

            axis = depth % 2
            subset.sort(key=lambda e: (_coord(e[1], axis), e[0]))
            mid = len(subset) // 2

            node = self._new_node(subset[mid][1])
            if parent is None:
                self._root = node
            elif is_left:
                self._left[parent] = node
            else:
                self._right[parent] = node

            stack.append((subset[mid + 1:], depth + 1, node, False))
            stack.append((subset[:mid], depth + 1, node, True))

    # ------------------------------------------------------------------
    # Nearest neighbor
    # ------------------------------------------------------------------

    def nearest(self, target) -> Point:
        """Return the stored point closest to *target*.

        Raises
        ------
        EmptyIndexError
            If the tree holds no points.  Check ``len(tree)`` first.
        """
        return self.nearest_with_stats(target).point

    def nearest_with_distance(self, target) -> tuple:
        """Return ``(point, distance_km)`` for the nearest stored point."""
        result = self.nearest_with_stats(target)
        return result.point, result.distance_km

    def nearest_with_stats(self, target) -> QueryResult:
        if self._root is None:
            raise EmptyIndexError("nearest() called on an empty KDTree")
        target = _as_point(target)

        best = self._points[self._root]
        best_dist = distance(target, best)
        visited = 0

        # (node, depth, split): split is the parent whose pruning bound must
        # still beat the running best before the node is searched.
        stack: list[tuple[int, int, Optional[int]]] = [(self._root, 0, None)]
        while stack:
            node, depth, split = stack.pop()
            if split is not None:
                split_axis = (depth - 1) % 2
                if not self._bound(target, self._points[split], split_axis) < best_dist:
                    continue

            visited += 1
            point = self._points[node]
            d = distance(target, point)
            if d < best_dist:
                best, best_dist = point, d

            axis = depth % 2
            if _coord(target, axis) < _coord(point, axis):
                near, far = self._left[node], self._right[node]
            else:
                near, far = self._right[node], self._left[node]

            # Far side is pushed first so the whole near subtree runs before it.
            if far is not None:
                stack.append((far, depth + 1, node))
            if near is not None:
                stack.append((near, depth + 1, None))

        return QueryResult(best, best_dist, visited)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._points)

    @property
    def is_empty(self) -> bool:
        return self._root is None

    def __iter__(self) -> Iterator[Point]:
        """Yield stored points in pre-order."""
        stack = [] if self._root is None else [self._root]
        while stack:
            node = stack.pop()
            yield self._points[node]
            if self._right[node] is not None:
                stack.append(self._right[node])
            if self._left[node] is not None:
                stack.append(self._left[node])

    def points(self) -> list[Point]:
        return list(self)

    def height(self) -> int:
        """Number of levels; 0 for an empty tree."""
        if self._root is None:
            return 0
        tallest = 0
        stack = [(self._root, 1)]
        while stack:
            node, level = stack.pop()
            tallest = max(tallest, level)
            for child in (self._left[node], self._right[node]):
                if child is not None:
                    stack.append((child, level + 1))
        return tallest

    def check_invariants(self) -> None:
        """Raise AssertionError if any subtree violates the median-split order."""
        if self._root is None:
            return
        # Each entry carries the (axis, lo, hi) constraints inherited from ancestors.
        stack = [(self._root, 0, ())]
        while stack:
            node, depth, bounds = stack.pop()
            point = self._points[node]
            for axis, lo, hi in bounds:
                c = _coord(point, axis)
                if not lo <= c <= hi:
                    raise AssertionError(
                        f"{point!r} breaks split on axis {axis}: not in [{lo}, {hi}]"
                    )
            axis = depth % 2
            c = _coord(point, axis)
            if self._left[node] is not None:
                stack.append((self._left[node], depth + 1,
                              bounds + ((axis, -math.inf, c),)))
            if self._right[node] is not None:
                stack.append((self._right[node], depth + 1,
                              bounds + ((axis, c, math.inf),)))

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def clear(self) -> int:
        """Release every node and leave an empty tree.  Returns the node count."""
        released = 0
        stack = [] if self._root is None else [self._root]
        while stack:
            node = stack.pop()
            for child in (self._left[node], self._right[node]):
                if child is not None:
                    stack.append(child)
            self._points[node] = None
            self._left[node] = self._right[node] = None
            released += 1

        self._points.clear()
        self._left.clear()
        self._right.clear()
        self._root = None
        return released

    def __enter__(self) -> "KDTree":
        return self

    def __exit__(self, *exc) -> None:
        self.clear()

    def __repr__(self) -> str:
        return f"KDTree(n={len(self)}, height={self.height()}, pruning='{self.pruning}')"
